import os
from functools import lru_cache
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv
from pydantic import BaseModel

from card_checkout.schemas import CaptureMode

BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(dotenv_path=BASE_DIR / ".env")

# environment variable -> settings field
ENV_FIELDS = {
    "GATEWAY_ENABLED": "enabled",
    "GATEWAY_TEST_MODE": "test_mode",
    "GATEWAY_CHARGE_TYPE": "charge_type",
    "GATEWAY_SAVED_CARDS": "saved_cards",
    "GATEWAY_ADDITIONAL_FIELDS": "additional_fields",
    "GATEWAY_RETURN_URL": "return_url",
    "STRIPE_TEST_SECRET_KEY": "test_secret_key",
    "STRIPE_TEST_PUBLISHABLE_KEY": "test_publishable_key",
    "STRIPE_LIVE_SECRET_KEY": "live_secret_key",
    "STRIPE_LIVE_PUBLISHABLE_KEY": "live_publishable_key",
    "DATABASE_URL": "database_url",
    "JWT_SECRET": "jwt_secret",
}


class GatewaySettings(BaseModel):
    enabled: bool = True
    test_mode: bool = True
    charge_type: CaptureMode = CaptureMode.CAPTURE
    saved_cards: bool = True
    additional_fields: bool = False
    return_url: str = "/checkout/order-received/{order_id}?key={order_key}"

    test_secret_key: str = ""
    test_publishable_key: str = ""
    live_secret_key: str = ""
    live_publishable_key: str = ""

    database_url: str = "sqlite:///./card_checkout.db"
    jwt_secret: str = ""

    @property
    def secret_key(self) -> str:
        return self.test_secret_key if self.test_mode else self.live_secret_key

    @property
    def publishable_key(self) -> str:
        return self.test_publishable_key if self.test_mode else self.live_publishable_key

    @property
    def customer_location(self) -> str:
        # Test and live customers never share stored records
        return "test" if self.test_mode else "live"

    @property
    def has_keys(self) -> bool:
        return bool(self.secret_key or self.publishable_key)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "GatewaySettings":
        environ = os.environ if environ is None else environ
        values = {
            name: environ[key].strip()
            for key, name in ENV_FIELDS.items()
            if environ.get(key, "").strip()
        }
        return cls(**values)


@lru_cache(maxsize=None)
def get_settings() -> GatewaySettings:
    return GatewaySettings.from_env()
