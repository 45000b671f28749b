import hashlib
from typing import Any, Callable, Dict, Optional, Tuple

from card_checkout.config import GatewaySettings
from card_checkout.customers import CustomerResolver
from card_checkout.errors import CheckoutError, DataInconsistencyError, Outcome, ValidationError
from card_checkout.log import get_logger
from card_checkout.provider import StripeProvider
from card_checkout.schemas import (
    ANONYMOUS,
    MINIMUM_CHARGE_AMOUNT,
    Buyer,
    ChargeRequest,
    ChargeResult,
    FormData,
    OrderView,
    PayPageKey,
)
from card_checkout.store import SqlOrderStore

logger = get_logger(__name__)

ChargeDataHook = Callable[[Dict[str, Any], FormData, OrderView], Dict[str, Any]]
ChargeDescriptionHook = Callable[[str, FormData, OrderView], str]


def default_charge_description(order: OrderView) -> str:
    product_name = order.item_names[0] if order.item_names else "Purchases"
    return f"Payment for {product_name} (Order: {order.number})"


def idempotency_key(order: OrderView, source: str) -> str:
    # Resubmitting one attempt replays its charge; each recorded failure starts a new attempt
    digest = hashlib.sha256(
        f"{order.id}:{order.order_key}:{order.failed_attempts}:{source}".encode()
    ).hexdigest()
    return f"charge-{order.id}-{digest[:24]}"


class ChargeOrchestrator:
    def __init__(
        self,
        settings: GatewaySettings,
        provider: StripeProvider,
        orders: SqlOrderStore,
        resolver: CustomerResolver,
        charge_data_hook: Optional[ChargeDataHook] = None,
        description_hook: Optional[ChargeDescriptionHook] = None,
    ):
        self.settings = settings
        self.provider = provider
        self.orders = orders
        self.resolver = resolver
        self.charge_data_hook = charge_data_hook
        self.description_hook = description_hook

    def minimum_amount(self, order: OrderView, pay_page: Optional[PayPageKey] = None) -> int:
        # Pay-page links tied to a verified order key may settle small balances
        if pay_page is not None and pay_page.verifies(order):
            return 0
        return MINIMUM_CHARGE_AMOUNT

    def is_available(self, order: Optional[OrderView] = None, pay_page: Optional[PayPageKey] = None, secure: bool = True) -> bool:
        if not self.settings.enabled:
            return False
        if not self.settings.has_keys:
            return False
        if not secure and not self.settings.test_mode:
            return False
        if order is not None and order.total < self.minimum_amount(order, pay_page):
            return False
        return True

    def validate(self, order: OrderView, form: FormData, pay_page: Optional[PayPageKey] = None) -> None:
        if not form.currency:
            raise ValidationError("Order currency is missing", code="currency_missing")
        minimum = self.minimum_amount(order, pay_page)
        if form.amount < minimum:
            raise ValidationError(
                f"Amount {form.amount} is below the minimum chargeable amount of {minimum}",
                code="amount_too_small",
            )

    def uses_saved_cards(self, buyer: Buyer, form: FormData) -> bool:
        return (
            buyer.authenticated
            and self.settings.saved_cards
            and (form.save_card or form.chosen_card != "new")
        )

    def select_source(self, order: OrderView, form: FormData, buyer: Buyer) -> Tuple[str, Optional[str]]:
        """Return ``(card, customer_id)`` for the charge; customer is None for one-time charges."""
        if not self.uses_saved_cards(buyer, form):
            if not form.token:
                raise ValidationError("Please enter your card details.", fields={"card-number": "missing"})
            return form.token, None

        resolved = self.resolver.resolve_customer(buyer, form, order)
        if resolved.ok:
            return resolved.value.card_id, resolved.value.customer_id
        if isinstance(resolved.error, DataInconsistencyError) and form.token:
            logger.warning(
                "saved_card_fallback_to_token",
                order_id=order.id,
                user_id=buyer.user_id,
                reason=resolved.error.message,
            )
            return form.token, None
        raise resolved.error

    def build_request(self, order: OrderView, form: FormData, card: str, customer: Optional[str]) -> ChargeRequest:
        description = default_charge_description(order)
        if self.description_hook is not None:
            description = self.description_hook(description, form, order)
        return ChargeRequest(
            amount=form.amount,
            currency=form.currency,
            capture_mode=self.settings.charge_type,
            card=card,
            description=description,
            customer=customer,
        )

    def charge(
        self,
        order: OrderView,
        form: FormData,
        buyer: Buyer = ANONYMOUS,
        pay_page: Optional[PayPageKey] = None,
    ) -> Outcome[ChargeResult]:
        try:
            self.validate(order, form, pay_page)
            card, customer = self.select_source(order, form, buyer)
            request = self.build_request(order, form, card, customer)

            extra: Dict[str, Any] = {}
            if self.charge_data_hook is not None:
                extra = dict(self.charge_data_hook(extra, form, order))
            result = self.provider.create_charge(request, extra=extra, idempotency_key=idempotency_key(order, card))
        except CheckoutError as e:
            logger.info("charge_failed", order_id=order.id, kind=e.kind, code=e.code)
            return Outcome.failure(e)

        self.orders.record_charge(order.id, result, request.capture_mode)
        logger.info(
            "charge_created",
            order_id=order.id,
            transaction_id=result.transaction_id,
            customer_id=result.customer_id,
            capture_mode=request.capture_mode.value,
        )
        return Outcome.success(result)
