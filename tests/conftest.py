import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET", "test-jwt-secret")

import pytest
from jose import jwt
from sqlalchemy.orm import sessionmaker

from card_checkout.config import GatewaySettings
from card_checkout.database import Base, make_engine
from card_checkout.gateway import build_gateway
from card_checkout.models import Order, OrderItem
from card_checkout.provider import StripeProvider
from card_checkout.schemas import Buyer, FormData

SECRET_KEY = "sk_test_123"


@pytest.fixture
def session_factory(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'test_checkout.db'}")
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def settings():
    return GatewaySettings(
        test_secret_key=SECRET_KEY,
        test_publishable_key="pk_test_123",
        saved_cards=True,
    )


@pytest.fixture
def provider():
    return StripeProvider(SECRET_KEY, "pk_test_123")


@pytest.fixture
def gateway(settings, session_factory, provider):
    return build_gateway(settings, session_factory, provider=provider)


@pytest.fixture
def make_order(session_factory):
    def _make(total=1000, currency="usd", user_id=None, status="pending", transaction_id=None, items=("Concert ticket",)):
        db = session_factory()
        order = Order(
            number=f"ORDER-{total}-{user_id or 'guest'}",
            order_key="wc_order_abc123",
            user_id=user_id,
            status=status,
            total=total,
            currency=currency,
            billing_first_name="Ada",
            billing_last_name="Lovelace",
            billing_email="ada@example.com",
            transaction_id=transaction_id,
            items=[OrderItem(name=name) for name in items],
        )
        db.add(order)
        db.commit()
        order_id = order.id
        db.close()
        return order_id
    return _make


@pytest.fixture
def buyer():
    return Buyer(user_id="42", username="ada", email="ada@example.com")


@pytest.fixture
def form():
    def _form(**overrides):
        values = {"amount": 1000, "currency": "usd", "token": "tok_abc"}
        values.update(overrides)
        return FormData(**values)
    return _form


def card(card_id="card_1", brand="Visa", last4="4242"):
    return {"id": card_id, "object": "card", "brand": brand, "last4": last4, "exp_month": 12, "exp_year": 2030}


def charge(charge_id="ch_123", fee=59):
    return {"id": charge_id, "object": "charge", "balance_transaction": {"id": "txn_1", "fee": fee}}


def bearer(sub="42", **claims):
    claims["sub"] = sub
    return {"Authorization": f"Bearer {jwt.encode(claims, os.environ['JWT_SECRET'], algorithm='HS256')}"}
