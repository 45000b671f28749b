from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from card_checkout.auth import current_buyer, require_admin
from card_checkout.config import get_settings
from card_checkout.database import SessionLocal
from card_checkout.errors import MissingTransactionError, ProviderError
from card_checkout.gateway import Gateway, build_gateway
from card_checkout.schemas import Buyer, CheckoutSubmission, PayPageKey

router = APIRouter()


class RefundBody(BaseModel):
    amount: Optional[Decimal] = None
    reason: Optional[str] = None


def get_gateway() -> Gateway:
    return build_gateway(get_settings(), SessionLocal)


@router.get("/checkout/config")
def checkout_config(buyer: Buyer = Depends(current_buyer), gateway: Gateway = Depends(get_gateway)):
    settings = gateway.settings
    record = gateway.customers.get_customer_record(buyer.user_id) if buyer.authenticated else None
    cards = record.cards if record and settings.saved_cards else []
    return {
        "publishable_key": settings.publishable_key,
        "saved_cards_enabled": settings.saved_cards,
        "additional_fields": settings.additional_fields,
        "has_card": bool(cards),
        "cards": [
            {
                "index": index,
                "brand": card.brand,
                "last4": card.last4,
                "exp_month": card.exp_month,
                "exp_year": card.exp_year,
                "default": card.id == record.default_card_id,
            }
            for index, card in enumerate(cards)
        ],
    }


@router.post("/orders/{order_id}/payment")
def pay_order(
    order_id: int,
    submission: CheckoutSubmission,
    request: Request,
    buyer: Buyer = Depends(current_buyer),
    gateway: Gateway = Depends(get_gateway),
):
    order = gateway.orders.get_order(order_id)
    if order is None:
        raise HTTPException(status_code=404, detail="Order not found")

    pay_page = PayPageKey(order.id, submission.order_key) if submission.order_key else None
    secure = request.url.scheme == "https"
    if not gateway.charges.is_available(order, pay_page=pay_page, secure=secure):
        raise HTTPException(status_code=409, detail="Payment method unavailable for this order")

    result = gateway.checkout.process_payment(order_id, submission, buyer=buyer)
    if not result.succeeded:
        return JSONResponse(status_code=402, content={"result": result.result, "notices": result.notices})
    return {"result": result.result, "redirect": result.redirect, "transaction_id": result.transaction_id}


@router.post("/orders/{order_id}/refund")
def refund_order(
    order_id: int,
    body: RefundBody,
    admin=Depends(require_admin),
    gateway: Gateway = Depends(get_gateway),
):
    if gateway.orders.get_order(order_id) is None:
        raise HTTPException(status_code=404, detail="Order not found")

    outcome = gateway.refunds.refund(order_id, amount=body.amount, reason=body.reason)
    if outcome.ok:
        refund = outcome.value
        return {"status": "refunded", "refund_id": refund.refund_id, "amount": refund.amount}

    error = outcome.error
    if isinstance(error, MissingTransactionError):
        status_code = 409
    elif isinstance(error, ProviderError):
        status_code = 502
    else:
        status_code = 400
    return JSONResponse(status_code=status_code, content={"error": error.kind, "message": error.message})


@router.delete("/admin/customers")
def delete_test_customers(
    confirm: str = "no",
    admin=Depends(require_admin),
    gateway: Gateway = Depends(get_gateway),
):
    if confirm != "yes":
        return {
            "deleted": 0,
            "message": "Are you sure you want to delete all test data? This action cannot be undone.",
        }
    return {"deleted": gateway.customers.purge("test")}
