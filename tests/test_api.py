import pytest
from fastapi.testclient import TestClient

from card_checkout.main import app as fastapi_app
from card_checkout.routes import get_gateway
from card_checkout.schemas import CardSummary, CustomerRecord
from conftest import bearer, charge


@pytest.fixture
def client(gateway):
    fastapi_app.dependency_overrides[get_gateway] = lambda: gateway
    with TestClient(fastapi_app) as c:
        yield c
    fastapi_app.dependency_overrides.clear()


def test_checkout_config_for_guest(client):
    response = client.get("/checkout/config")

    assert response.status_code == 200
    assert response.json() == {
        "publishable_key": "pk_test_123",
        "saved_cards_enabled": True,
        "additional_fields": False,
        "has_card": False,
        "cards": [],
    }


def test_checkout_config_lists_saved_cards(client, gateway):
    gateway.customers.upsert_customer_record(
        "42", CustomerRecord("cus_1", [CardSummary("card_1", "Visa", "4242", 12, 2030)], "card_1")
    )

    response = client.get("/checkout/config", headers=bearer("42"))

    body = response.json()
    assert body["has_card"] is True
    assert body["cards"] == [
        {"index": 0, "brand": "Visa", "last4": "4242", "exp_month": 12, "exp_year": 2030, "default": True}
    ]


def test_pay_order_success(client, make_order, mocker):
    mocker.patch("stripe.Charge.create", return_value=charge("ch_api"))
    order_id = make_order()

    response = client.post(f"/orders/{order_id}/payment", json={"token": "tok_abc"})

    assert response.status_code == 200
    assert response.json()["transaction_id"] == "ch_api"
    assert response.json()["result"] == "success"


def test_pay_order_below_minimum_is_unavailable(client, make_order, mocker):
    create = mocker.patch("stripe.Charge.create")
    order_id = make_order(total=20)

    response = client.post(f"/orders/{order_id}/payment", json={"token": "tok_abc"})

    assert response.status_code == 409
    create.assert_not_called()


def test_pay_order_form_errors(client, make_order):
    order_id = make_order()

    response = client.post(
        f"/orders/{order_id}/payment",
        json={"form_errors": True, "field_errors": {"card-expiry": "invalid"}},
    )

    assert response.status_code == 402
    assert response.json()["notices"] == ["Please enter a valid Credit Card Expiration."]


def test_pay_order_rejects_bad_card_selector(client, make_order):
    response = client.post(f"/orders/{make_order()}/payment", json={"chosen_card": "../1"})

    assert response.status_code == 422


def test_pay_unknown_order(client):
    response = client.post("/orders/999/payment", json={"token": "tok_abc"})

    assert response.status_code == 404


def test_invalid_bearer_token(client, make_order):
    response = client.post(
        f"/orders/{make_order()}/payment",
        json={"token": "tok_abc"},
        headers={"Authorization": "Bearer not-a-jwt"},
    )

    assert response.status_code == 401


def test_refund_requires_auth(client, make_order):
    response = client.post(f"/orders/{make_order()}/refund", json={})

    assert response.status_code == 422


def test_buyer_token_cannot_refund(client, make_order, mocker):
    create = mocker.patch("stripe.Refund.create")
    order_id = make_order(status="completed", user_id="7", transaction_id="ch_victim")

    response = client.post(f"/orders/{order_id}/refund", json={}, headers=bearer("42"))

    assert response.status_code == 403
    create.assert_not_called()


def test_refund_missing_transaction(client, make_order, mocker):
    create = mocker.patch("stripe.Refund.create")
    order_id = make_order(status="completed")

    response = client.post(f"/orders/{order_id}/refund", json={}, headers=bearer("1", role="admin"))

    assert response.status_code == 409
    assert response.json()["error"] == "missing_transaction"
    create.assert_not_called()


def test_purge_requires_admin_and_confirmation(client, gateway):
    gateway.customers.upsert_customer_record("42", CustomerRecord("cus_1"))

    forbidden = client.delete("/admin/customers?confirm=yes", headers=bearer("42"))
    unconfirmed = client.delete("/admin/customers", headers=bearer("1", role="admin"))
    confirmed = client.delete("/admin/customers?confirm=yes", headers=bearer("1", role="admin"))

    assert forbidden.status_code == 403
    assert unconfirmed.json()["deleted"] == 0
    assert confirmed.json() == {"deleted": 1}
    assert gateway.customers.get_customer_record("42") is None
