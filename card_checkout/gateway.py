from dataclasses import dataclass
from typing import Optional

from card_checkout.charges import ChargeDataHook, ChargeDescriptionHook, ChargeOrchestrator
from card_checkout.checkout import CheckoutService
from card_checkout.config import GatewaySettings
from card_checkout.customers import CustomerDataHook, CustomerResolver, DescriptionHook
from card_checkout.provider import StripeProvider
from card_checkout.refunds import RefundOrchestrator
from card_checkout.store import CustomerStore, SqlOrderStore


@dataclass
class Gateway:
    settings: GatewaySettings
    provider: StripeProvider
    customers: CustomerStore
    orders: SqlOrderStore
    resolver: CustomerResolver
    charges: ChargeOrchestrator
    refunds: RefundOrchestrator
    checkout: CheckoutService


def build_gateway(
    settings: GatewaySettings,
    session_factory,
    provider: Optional[StripeProvider] = None,
    customer_data_hook: Optional[CustomerDataHook] = None,
    customer_description_hook: Optional[DescriptionHook] = None,
    charge_data_hook: Optional[ChargeDataHook] = None,
    charge_description_hook: Optional[ChargeDescriptionHook] = None,
) -> Gateway:
    provider = provider or StripeProvider(settings.secret_key, settings.publishable_key)
    customers = CustomerStore(session_factory, location=settings.customer_location)
    orders = SqlOrderStore(session_factory)
    resolver = CustomerResolver(
        provider,
        customers,
        customer_data_hook=customer_data_hook,
        description_hook=customer_description_hook,
    )
    charges = ChargeOrchestrator(
        settings,
        provider,
        orders,
        resolver,
        charge_data_hook=charge_data_hook,
        description_hook=charge_description_hook,
    )
    return Gateway(
        settings=settings,
        provider=provider,
        customers=customers,
        orders=orders,
        resolver=resolver,
        charges=charges,
        refunds=RefundOrchestrator(provider, orders),
        checkout=CheckoutService(settings, orders, charges),
    )
