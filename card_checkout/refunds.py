from decimal import Decimal, InvalidOperation
from typing import Optional

from card_checkout.errors import MissingTransactionError, Outcome, ProviderError, ValidationError, error_detail
from card_checkout.log import get_logger
from card_checkout.provider import StripeProvider
from card_checkout.schemas import RefundRequest, RefundResult, to_minor_units
from card_checkout.store import SqlOrderStore

logger = get_logger(__name__)


class RefundOrchestrator:
    def __init__(self, provider: StripeProvider, orders: SqlOrderStore):
        self.provider = provider
        self.orders = orders

    def refund(self, order_id: int, amount: Optional[Decimal] = None, reason: Optional[str] = None) -> Outcome[RefundResult]:
        """Refund a completed order in full, or ``amount`` (major units) of it."""
        order = self.orders.get_order(order_id)
        if order is None:
            raise LookupError(f"Order {order_id} not found")

        if not order.transaction_id:
            return Outcome.failure(MissingTransactionError(
                "Credit Card Refund failed because the Transaction ID is missing."
            ))

        minor_amount = None
        if amount is not None:
            try:
                minor_amount = to_minor_units(amount, order.currency)
            except (InvalidOperation, ValueError):
                return Outcome.failure(ValidationError(f"Invalid refund amount {amount!r}"))
            if minor_amount <= 0:
                return Outcome.failure(ValidationError("Refund amount must be positive"))

        request = RefundRequest(transaction_id=order.transaction_id, amount=minor_amount, reason=reason or None)
        try:
            result = self.provider.create_refund(request)
        except ProviderError as e:
            self.orders.add_order_note(order.id, f'Credit Card Refund Failed with message: "{e.message}"{error_detail(e)}')
            return Outcome.failure(e)

        logger.info(
            "refund_created",
            order_id=order.id,
            transaction_id=order.transaction_id,
            refund_id=result.refund_id,
            amount=result.amount,
        )
        return Outcome.success(result)
