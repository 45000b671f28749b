"""
Card form validation and tokenization.

Runs before anything reaches the checkout endpoint: card data is checked
locally and exchanged for a single-use token, so the server only ever sees
the token. A form that fails validation never calls the tokenizer.
"""

import re
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from card_checkout.errors import FormStateError, ProviderError

NUMBER_FIELD = "card-number"
EXPIRY_FIELD = "card-expiry"
CVC_FIELD = "card-cvc"

FIELD_LABELS = {
    NUMBER_FIELD: "Credit Card Number",
    EXPIRY_FIELD: "Credit Card Expiration",
    CVC_FIELD: "Credit Card CVC",
}

MISSING = "missing"
INVALID = "invalid"


@dataclass(frozen=True)
class CardBrand:
    name: str
    pattern: str
    lengths: Sequence[int]
    cvc_lengths: Sequence[int] = (3,)
    luhn: bool = True

    def matches(self, number: str) -> bool:
        return re.match(self.pattern, number) is not None


# First match wins, so narrower prefixes come first
CARD_BRANDS = (
    CardBrand("maestro", r"^(5(018|0[23]|[68])|6(39|7))", tuple(range(12, 20))),
    CardBrand("visa", r"^4", (13, 16, 19)),
    CardBrand("mastercard", r"^(5[1-5]|2[2-7])", (16,)),
    CardBrand("amex", r"^3[47]", (15,), cvc_lengths=(4,)),
    CardBrand("dinersclub", r"^3[0689]", (14,)),
    CardBrand("discover", r"^6([045]|22)", (16,)),
    CardBrand("unionpay", r"^(62|88)", (16, 17, 18, 19), luhn=False),
    CardBrand("jcb", r"^35", (16,)),
)


def normalize_number(number: str) -> str:
    return re.sub(r"[\s-]", "", number or "")


def card_brand(number: str) -> Optional[CardBrand]:
    number = normalize_number(number)
    for brand in CARD_BRANDS:
        if brand.matches(number):
            return brand
    return None


def luhn_check(number: str) -> bool:
    total = 0
    for position, char in enumerate(reversed(number)):
        digit = int(char)
        if position % 2:
            digit *= 2
            if digit > 9:
                digit -= 9
        total += digit
    return total % 10 == 0


def validate_card_number(number: str) -> bool:
    number = normalize_number(number)
    if not number.isdigit():
        return False
    brand = card_brand(number)
    if brand is None:
        return False
    return len(number) in brand.lengths and (not brand.luhn or luhn_check(number))


def parse_card_expiry(value: str) -> Tuple[Optional[int], Optional[int]]:
    """Split ``MM/YY`` or ``MM / YYYY`` into integers; unparseable parts are None."""
    month, _, year = (value or "").partition("/")
    month, year = month.strip(), year.strip()
    parsed_month = int(month) if month.isdigit() else None
    parsed_year = int(year) if year.isdigit() else None
    if parsed_year is not None and len(year) == 2:
        parsed_year += 2000
    return parsed_month, parsed_year


def validate_card_expiry(month, year, today: Optional[date] = None) -> bool:
    today = today or date.today()
    try:
        month, year = int(month), int(year)
    except (TypeError, ValueError):
        return False
    if not 1 <= month <= 12:
        return False
    if year < 100:
        year += 2000
    # Cards are valid through the last day of the expiry month
    return (year, month) >= (today.year, today.month)


def validate_card_cvc(cvc: str, brand: Optional[CardBrand] = None) -> bool:
    cvc = (cvc or "").strip()
    if not cvc.isdigit():
        return False
    if brand is not None:
        return len(cvc) in brand.cvc_lengths
    return 3 <= len(cvc) <= 4


@dataclass
class CardFields:
    number: str = ""
    cvc: str = ""
    expiry: str = ""
    exp_month: Optional[int] = None
    exp_year: Optional[int] = None
    name: str = ""
    address_line1: str = ""
    address_line2: str = ""
    address_city: str = ""
    address_state: str = ""
    address_zip: str = ""
    address_country: str = ""

    def expiry_values(self) -> Tuple[Optional[int], Optional[int]]:
        if self.exp_month or self.exp_year:
            return self.exp_month, self.exp_year
        return parse_card_expiry(self.expiry)

    def token_params(self) -> Dict[str, object]:
        month, year = self.expiry_values()
        params = {
            "number": normalize_number(self.number),
            "cvc": self.cvc.strip(),
            "exp_month": month,
            "exp_year": year,
            "name": self.name,
            "address_line1": self.address_line1,
            "address_line2": self.address_line2,
            "address_city": self.address_city,
            "address_state": self.address_state,
            "address_zip": self.address_zip,
            "address_country": self.address_country,
        }
        return {key: value for key, value in params.items() if value not in ("", None)}


@dataclass(frozen=True)
class FieldError:
    field: str
    kind: str


def validate_card_fields(fields: CardFields, today: Optional[date] = None) -> List[FieldError]:
    errors = []

    if not normalize_number(fields.number):
        errors.append(FieldError(NUMBER_FIELD, MISSING))
    elif not validate_card_number(fields.number):
        errors.append(FieldError(NUMBER_FIELD, INVALID))

    month, year = fields.expiry_values()
    if not month or not year:
        errors.append(FieldError(EXPIRY_FIELD, MISSING))
    elif not validate_card_expiry(month, year, today=today):
        errors.append(FieldError(EXPIRY_FIELD, INVALID))

    if not fields.cvc.strip():
        errors.append(FieldError(CVC_FIELD, MISSING))
    elif not validate_card_cvc(fields.cvc, card_brand(fields.number)):
        errors.append(FieldError(CVC_FIELD, INVALID))

    return errors


def form_error_message(field_name: str, kind: str = MISSING) -> str:
    label = FIELD_LABELS.get(field_name, field_name)
    if kind == INVALID:
        return f"Please enter a valid {label}."
    return f"{label} is a required field."


class FormState(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    VALIDATION_FAILED = "validation_failed"
    TOKEN_REQUESTED = "token_requested"
    TOKEN_RECEIVED = "token_received"
    SUBMITTING = "submitting"


TRANSITIONS = {
    FormState.IDLE: {FormState.VALIDATING, FormState.SUBMITTING},
    FormState.VALIDATING: {FormState.TOKEN_REQUESTED, FormState.VALIDATION_FAILED},
    FormState.VALIDATION_FAILED: {FormState.IDLE},
    FormState.TOKEN_REQUESTED: {FormState.TOKEN_RECEIVED, FormState.IDLE},
    FormState.TOKEN_RECEIVED: {FormState.SUBMITTING},
    FormState.SUBMITTING: {FormState.IDLE},
}


@dataclass
class CheckoutForm:
    """Checkout form lifecycle for one payment attempt.

    ``tokenizer`` exchanges card fields for a token, usually
    ``StripeProvider.create_token``. Saved-card submissions skip tokenization.
    """

    tokenizer: Callable[[Dict[str, object]], str]
    today: Optional[date] = None
    state: FormState = FormState.IDLE
    errors: List[FieldError] = field(default_factory=list)
    provider_message: Optional[str] = None
    token: Optional[str] = field(default=None, repr=False)

    def _move(self, target: FormState) -> None:
        if target not in TRANSITIONS[self.state]:
            raise FormStateError(f"Cannot move checkout form from {self.state.value} to {target.value}")
        self.state = target

    def request_token(self, fields: CardFields) -> FormState:
        self.errors = []
        self.provider_message = None
        self._move(FormState.VALIDATING)

        errors = validate_card_fields(fields, today=self.today)
        if errors:
            self.errors = errors
            self._move(FormState.VALIDATION_FAILED)
            self._move(FormState.IDLE)
            return FormState.VALIDATION_FAILED

        self._move(FormState.TOKEN_REQUESTED)
        try:
            self.token = self.tokenizer(fields.token_params())
        except ProviderError as e:
            self.provider_message = e.user_message or e.message
            self._move(FormState.IDLE)
            return self.state
        self._move(FormState.TOKEN_RECEIVED)
        return self.state

    def submit(self, chosen_card: str = "new", save_card: bool = False, **extra) -> Dict[str, object]:
        """Hand the form over to the server-side flow; returns the submission payload."""
        if chosen_card == "new" and self.state != FormState.TOKEN_RECEIVED:
            raise FormStateError("A new card must be tokenized before the form is submitted")
        self._move(FormState.SUBMITTING)
        payload = {"chosen_card": chosen_card, "save_card": save_card}
        if chosen_card == "new":
            payload["token"] = self.token
            self.token = None
        payload.update(extra)
        return payload

    def reset(self) -> None:
        self.state = FormState.IDLE
        self.token = None
        self.errors = []
        self.provider_message = None

    def error_payload(self) -> Dict[str, object]:
        """Hidden fields posted when validation failed, as the server expects them."""
        return {
            "form_errors": bool(self.errors),
            "field_errors": {error.field: error.kind for error in self.errors},
        }
