from contextlib import contextmanager
from typing import Any, Dict, Optional

import stripe

from card_checkout.errors import ProviderError
from card_checkout.log import get_logger
from card_checkout.schemas import (
    CardSummary,
    ChargeRequest,
    ChargeResult,
    ProviderCustomer,
    RefundRequest,
    RefundResult,
)

logger = get_logger(__name__)


def _field(obj, name: str, default=None):
    if obj is None:
        return default
    try:
        return obj[name]
    except (KeyError, TypeError):
        return getattr(obj, name, default)


def card_summary(card) -> Optional[CardSummary]:
    # An unexpanded reference is just the card id
    if card is None or isinstance(card, str):
        return None
    return CardSummary(
        id=_field(card, "id"),
        brand=_field(card, "brand", ""),
        last4=_field(card, "last4", ""),
        exp_month=_field(card, "exp_month"),
        exp_year=_field(card, "exp_year"),
    )


@contextmanager
def provider_call(operation: str):
    try:
        yield
    except stripe.StripeError as e:
        logger.warning(
            "provider_call_failed",
            operation=operation,
            error_type=type(e).__name__,
            code=e.code,
            http_status=e.http_status,
            request_id=e.request_id,
        )
        raise ProviderError(
            e.user_message or str(e) or "Payment provider error",
            code=e.code,
            user_message=e.user_message,
            http_status=e.http_status,
        ) from e


class StripeProvider:
    """Only the provider calls the checkout flow needs.

    Keys are passed per call so several configurations can coexist in one process.
    """

    def __init__(self, secret_key: str, publishable_key: str = ""):
        self.secret_key = secret_key
        self.publishable_key = publishable_key

    def create_token(self, card_fields: Dict[str, Any]) -> str:
        with provider_call("create_token"):
            token = stripe.Token.create(card=card_fields, api_key=self.publishable_key or self.secret_key)
        return _field(token, "id")

    def create_customer(self, data: Dict[str, Any]) -> ProviderCustomer:
        with provider_call("create_customer"):
            customer = stripe.Customer.create(api_key=self.secret_key, expand=["default_source"], **data)
        logger.info("provider_customer_created", customer_id=_field(customer, "id"))
        return ProviderCustomer(id=_field(customer, "id"), default_card=card_summary(_field(customer, "default_source")))

    def get_customer(self, customer_id: str) -> ProviderCustomer:
        with provider_call("get_customer"):
            customer = stripe.Customer.retrieve(customer_id, api_key=self.secret_key)
        return ProviderCustomer(
            id=_field(customer, "id"),
            deleted=bool(_field(customer, "deleted", False)),
        )

    def add_card(self, customer_id: str, token: str) -> CardSummary:
        """Attach a tokenized card to an existing customer.

        The default card is tracked locally; charges always name the card explicitly.
        """
        with provider_call("add_card"):
            card = stripe.Customer.create_source(customer_id, source=token, api_key=self.secret_key)
        logger.info("provider_card_added", customer_id=customer_id, card_id=_field(card, "id"))
        return card_summary(card)

    def create_charge(
        self,
        request: ChargeRequest,
        extra: Optional[Dict[str, Any]] = None,
        idempotency_key: Optional[str] = None,
    ) -> ChargeResult:
        params = dict(extra or {})
        params.update(request.to_params())
        with provider_call("create_charge"):
            charge = stripe.Charge.create(api_key=self.secret_key, idempotency_key=idempotency_key, **params)

        balance = _field(charge, "balance_transaction")
        if isinstance(balance, str):
            fee, balance_id = None, balance
        else:
            fee, balance_id = _field(balance, "fee"), _field(balance, "id")
        return ChargeResult(
            transaction_id=_field(charge, "id"),
            fee=fee,
            balance_transaction=balance_id,
            customer_id=request.customer,
        )

    def create_refund(self, request: RefundRequest) -> RefundResult:
        with provider_call("create_refund"):
            refund = stripe.Refund.create(
                charge=request.transaction_id, api_key=self.secret_key, **request.to_params()
            )
        return RefundResult(
            refund_id=_field(refund, "id"),
            transaction_id=request.transaction_id,
            amount=_field(refund, "amount"),
            status=_field(refund, "status"),
        )
