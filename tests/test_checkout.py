import stripe

from card_checkout.checkout import GENERIC_ERROR
from card_checkout.schemas import CheckoutSubmission
from conftest import charge


def test_successful_payment_completes_order(gateway, make_order, mocker):
    mocker.patch("stripe.Charge.create", return_value=charge("ch_done"))
    order_id = make_order()

    result = gateway.checkout.process_payment(order_id, CheckoutSubmission(token="tok_abc"))

    assert result.succeeded
    assert result.transaction_id == "ch_done"
    assert result.redirect == f"/checkout/order-received/{order_id}?key=wc_order_abc123"
    order = gateway.orders.get_order(order_id)
    assert order.status == "completed"
    assert order.transaction_id == "ch_done"
    assert gateway.orders.get_order_notes(order_id) == [
        'Card Checkout payment completed with Transaction Id of "ch_done"'
    ]


def test_form_errors_abort_before_provider(gateway, make_order, mocker):
    create = mocker.patch("stripe.Charge.create")
    order_id = make_order()

    result = gateway.checkout.process_payment(
        order_id,
        CheckoutSubmission(form_errors=True, field_errors={"card-number": "invalid", "card-cvc": "missing"}),
    )

    assert not result.succeeded
    assert result.notices == [
        "Please enter a valid Credit Card Number.",
        "Credit Card CVC is a required field.",
    ]
    create.assert_not_called()
    assert gateway.orders.get_order(order_id).transaction_id is None


def test_decline_produces_single_notice_and_order_note(gateway, make_order, mocker):
    mocker.patch(
        "stripe.Charge.create",
        side_effect=stripe.CardError("Your card was declined.", "number", code="card_declined", http_status=402),
    )
    order_id = make_order()

    result = gateway.checkout.process_payment(order_id, CheckoutSubmission(token="tok_abc"))

    assert result.result == "failure"
    assert result.notices == ["Error: Your card was declined."]
    order = gateway.orders.get_order(order_id)
    assert order.status == "pending"
    assert order.transaction_id is None
    assert gateway.orders.get_order_notes(order_id) == [
        'Card Checkout payment failed with message: "Your card was declined." (code: card_declined, http_status: 402)'
    ]


def test_generic_notice_when_nothing_else_explains_failure(gateway, make_order, mocker):
    create = mocker.patch("stripe.Charge.create")
    order_id = make_order(total=10)

    result = gateway.checkout.process_payment(order_id, CheckoutSubmission(token="tok_abc"))

    assert result.notices == [GENERIC_ERROR]
    create.assert_not_called()


def test_completed_order_is_not_charged_again(gateway, make_order, mocker):
    create = mocker.patch("stripe.Charge.create")
    order_id = make_order(status="completed", transaction_id="ch_first")

    result = gateway.checkout.process_payment(order_id, CheckoutSubmission(token="tok_abc"))

    assert result.notices == ["This order has already been paid."]
    create.assert_not_called()
    assert gateway.orders.get_order(order_id).transaction_id == "ch_first"
