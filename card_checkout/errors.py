from dataclasses import dataclass
from typing import Dict, Generic, Optional, TypeVar

T = TypeVar("T")


class CheckoutError(Exception):
    kind = "checkout_error"

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.code = code


class ValidationError(CheckoutError):
    """Client-detectable problem with the submitted payment data.

    ``fields`` maps a form field to ``"missing"`` or ``"invalid"``.
    """

    kind = "validation"

    def __init__(self, message: str, fields: Optional[Dict[str, str]] = None, code: Optional[str] = None):
        super().__init__(message, code=code)
        self.fields = dict(fields or {})


class ProviderError(CheckoutError):
    """The payment provider rejected the call or could not be reached."""

    kind = "provider"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        user_message: Optional[str] = None,
        http_status: Optional[int] = None,
    ):
        super().__init__(message, code=code)
        self.user_message = user_message
        self.http_status = http_status


class MissingTransactionError(CheckoutError):
    kind = "missing_transaction"


class DataInconsistencyError(CheckoutError):
    """A locally stored customer or card reference does not match the provider."""

    kind = "data_inconsistency"


class FormStateError(CheckoutError):
    kind = "form_state"


@dataclass
class Outcome(Generic[T]):
    """Success value or typed failure returned by the orchestrators."""

    value: Optional[T] = None
    error: Optional[CheckoutError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> "Outcome[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: CheckoutError) -> "Outcome[T]":
        return cls(error=error)


def error_detail(error: CheckoutError) -> str:
    """Provider code and HTTP status suffix for operator-facing order notes."""
    parts = [
        f"{name}: {value}"
        for name, value in (("code", error.code), ("http_status", getattr(error, "http_status", None)))
        if value
    ]
    return f" ({', '.join(parts)})" if parts else ""
