from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional

from pydantic import AfterValidator, BaseModel, field_validator

MINIMUM_CHARGE_AMOUNT = 50

# Currencies the provider expects in whole units rather than cents
ZERO_DECIMAL_CURRENCIES = {
    "bif", "clp", "djf", "gnf", "jpy", "kmf", "krw", "mga",
    "pyg", "rwf", "ugx", "vnd", "vuv", "xaf", "xof", "xpf",
}

FieldErrorKind = Literal["missing", "invalid"]


def to_minor_units(amount, currency: str) -> int:
    value = Decimal(str(amount))
    if currency.lower() not in ZERO_DECIMAL_CURRENCIES:
        value = value * 100
    return int(value.quantize(Decimal(1), rounding=ROUND_HALF_UP))


class CaptureMode(str, Enum):
    CAPTURE = "capture"
    AUTHORIZE = "authorize"


@dataclass
class CardSummary:
    id: str
    brand: str
    last4: str
    exp_month: int
    exp_year: int


@dataclass
class CustomerRecord:
    customer_id: str
    cards: List[CardSummary] = field(default_factory=list)
    default_card_id: Optional[str] = None

    def card_at(self, selector: str) -> Optional[CardSummary]:
        index = int(selector)
        if 0 <= index < len(self.cards):
            return self.cards[index]
        return None


@dataclass
class ProviderCustomer:
    id: str
    default_card: Optional[CardSummary] = None
    deleted: bool = False


@dataclass
class CustomerRef:
    customer_id: str
    card_id: str


@dataclass(frozen=True)
class ChargeRequest:
    amount: int
    currency: str
    capture_mode: CaptureMode
    card: str
    description: str
    customer: Optional[str] = None

    def to_params(self) -> Dict[str, Any]:
        params = {
            "amount": self.amount,
            "currency": self.currency,
            "capture": self.capture_mode == CaptureMode.CAPTURE,
            "source": self.card,
            "description": self.description,
            "expand": ["balance_transaction"],
        }
        if self.customer:
            params["customer"] = self.customer
        return params


@dataclass
class ChargeResult:
    transaction_id: str
    fee: Optional[int] = None
    balance_transaction: Optional[str] = None
    customer_id: Optional[str] = None


@dataclass(frozen=True)
class RefundRequest:
    transaction_id: str
    amount: Optional[int] = None
    reason: Optional[str] = None

    def to_params(self) -> Dict[str, Any]:
        params: Dict[str, Any] = {}
        if self.amount is not None:
            params["amount"] = self.amount
        if self.reason:
            params["metadata"] = {"reason": self.reason}
        return params


@dataclass
class RefundResult:
    refund_id: str
    transaction_id: str
    amount: Optional[int] = None
    status: Optional[str] = None


@dataclass(frozen=True)
class OrderView:
    """Read-only snapshot of an order as the order system exposes it."""

    id: int
    number: str
    order_key: str
    status: str
    total: int
    currency: str
    user_id: Optional[str] = None
    billing_first_name: str = ""
    billing_last_name: str = ""
    billing_email: str = ""
    item_names: List[str] = field(default_factory=list)
    transaction_id: Optional[str] = None
    failed_attempts: int = 0

    @property
    def billing_name(self) -> str:
        return f"{self.billing_first_name} {self.billing_last_name}".strip()


@dataclass(frozen=True)
class Buyer:
    user_id: Optional[str] = None
    username: str = ""
    email: str = ""

    @property
    def authenticated(self) -> bool:
        return bool(self.user_id)


ANONYMOUS = Buyer()


@dataclass(frozen=True)
class PayPageKey:
    order_id: int
    order_key: str

    def verifies(self, order: OrderView) -> bool:
        return self.order_id == order.id and self.order_key == order.order_key


def _check_chosen_card(value: str) -> str:
    value = value.strip()
    if value != "new" and not value.isdigit():
        raise ValueError("chosen_card must be 'new' or a saved card index")
    return value


CardSelector = Annotated[str, AfterValidator(_check_chosen_card)]


class CheckoutSubmission(BaseModel):
    token: str = ""
    chosen_card: CardSelector = "new"
    save_card: bool = False
    billing_name: Optional[str] = None
    billing_zip: Optional[str] = None
    form_errors: bool = False
    field_errors: Dict[str, FieldErrorKind] = {}
    order_key: Optional[str] = None


class CustomerInfo(BaseModel):
    name: str = ""
    billing_email: str = ""


class FormData(BaseModel):
    amount: int
    currency: str
    token: str = ""
    chosen_card: CardSelector = "new"
    save_card: bool = False
    customer: CustomerInfo = CustomerInfo()
    billing_name: Optional[str] = None
    billing_zip: Optional[str] = None
    errors: bool = False
    field_errors: Dict[str, FieldErrorKind] = {}

    @field_validator("currency")
    @classmethod
    def lower_currency(cls, value: str) -> str:
        return value.strip().lower()

    @classmethod
    def assemble(cls, order: OrderView, submission: CheckoutSubmission) -> "FormData":
        return cls(
            amount=order.total,
            currency=order.currency,
            token=submission.token.strip(),
            chosen_card=submission.chosen_card,
            save_card=submission.save_card,
            customer=CustomerInfo(name=order.billing_name, billing_email=order.billing_email),
            billing_name=submission.billing_name,
            billing_zip=submission.billing_zip,
            errors=submission.form_errors or bool(submission.field_errors),
            field_errors=submission.field_errors,
        )
