from dataclasses import dataclass, field
from typing import List, Optional

from card_checkout.card_form import form_error_message
from card_checkout.charges import ChargeOrchestrator
from card_checkout.config import GatewaySettings
from card_checkout.errors import ProviderError, ValidationError, error_detail
from card_checkout.log import get_logger
from card_checkout.notices import NoticeList
from card_checkout.schemas import ANONYMOUS, Buyer, CheckoutSubmission, FormData, OrderView, PayPageKey
from card_checkout.store import SqlOrderStore

logger = get_logger(__name__)

GENERIC_ERROR = "Transaction Error: Could not complete your payment."
GATEWAY_NAME = "Card Checkout"


@dataclass
class CheckoutResult:
    result: str
    redirect: Optional[str] = None
    transaction_id: Optional[str] = None
    notices: List[str] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.result == "success"


class CheckoutService:
    """Runs one payment attempt for an order.

    Callers serialize attempts per order; nothing here locks.
    """

    def __init__(self, settings: GatewaySettings, orders: SqlOrderStore, charges: ChargeOrchestrator):
        self.settings = settings
        self.orders = orders
        self.charges = charges

    def return_url(self, order: OrderView) -> str:
        return self.settings.return_url.format(order_id=order.id, order_key=order.order_key)

    def process_payment(
        self,
        order_id: int,
        submission: CheckoutSubmission,
        buyer: Buyer = ANONYMOUS,
    ) -> CheckoutResult:
        notices = NoticeList()
        order = self.orders.get_order(order_id)
        if order is None:
            raise LookupError(f"Order {order_id} not found")
        if order.status == "completed":
            notices.add("This order has already been paid.", notice_class="transaction")
            return CheckoutResult(result="failure", notices=notices.messages())

        form = FormData.assemble(order, submission)
        pay_page = PayPageKey(order.id, submission.order_key) if submission.order_key else None

        if form.errors:
            # Card fields were rejected in the browser; nothing was sent to the provider
            for field_name, kind in form.field_errors.items():
                notices.add(form_error_message(field_name, kind), notice_class=f"field:{field_name}")
            message = "card form failed validation"
            detail = ""
        else:
            outcome = self.charges.charge(order, form, buyer=buyer, pay_page=pay_page)
            if outcome.ok:
                self.order_complete(order, outcome.value.transaction_id)
                return CheckoutResult(
                    result="success",
                    redirect=self.return_url(order),
                    transaction_id=outcome.value.transaction_id,
                )
            error = outcome.error
            message = error.message
            detail = error_detail(error)
            if isinstance(error, ProviderError):
                notices.add(f"Error: {error.user_message or GENERIC_ERROR}", notice_class="provider")
            elif isinstance(error, ValidationError) and error.fields:
                for field_name, kind in error.fields.items():
                    notices.add(form_error_message(field_name, kind), notice_class=f"field:{field_name}")

        self.payment_failed(order, message, detail)
        if notices.count("error") == 0:
            notices.add(GENERIC_ERROR, notice_class="transaction")
        return CheckoutResult(result="failure", notices=notices.messages())

    def order_complete(self, order: OrderView, transaction_id: str) -> None:
        if order.status == "completed":
            return
        self.orders.mark_complete(order.id, transaction_id)
        self.orders.add_order_note(
            order.id, f'{GATEWAY_NAME} payment completed with Transaction Id of "{transaction_id}"'
        )

    def payment_failed(self, order: OrderView, message: str, detail: str = "") -> None:
        logger.info("payment_failed", order_id=order.id)
        self.orders.record_failed_attempt(order.id)
        self.orders.add_order_note(order.id, f'{GATEWAY_NAME} payment failed with message: "{message}"{detail}')
