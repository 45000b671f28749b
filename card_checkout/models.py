from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from card_checkout.database import Base


def _now():
    return datetime.now(timezone.utc)


class CustomerAccount(Base):
    __tablename__ = "provider_customers"
    __table_args__ = (UniqueConstraint("user_id", "location"),)

    id = Column(Integer, primary_key=True)
    user_id = Column(String, index=True, nullable=False)
    location = Column(String, nullable=False)            # test | live
    customer_id = Column(String, nullable=False)         # Stripe Customer ID
    default_card_id = Column(String)

    cards = relationship(
        "SavedCard",
        back_populates="customer",
        order_by="SavedCard.position",
        cascade="all, delete-orphan",
    )


class SavedCard(Base):
    __tablename__ = "saved_cards"

    id = Column(Integer, primary_key=True)
    card_id = Column(String, nullable=False)             # Stripe Card ID
    customer_row_id = Column(Integer, ForeignKey("provider_customers.id"), nullable=False)
    position = Column(Integer, nullable=False)
    brand = Column(String)
    last4 = Column(String(4))
    exp_month = Column(Integer)
    exp_year = Column(Integer)

    customer = relationship("CustomerAccount", back_populates="cards")


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True)
    number = Column(String, unique=True, index=True)
    order_key = Column(String, nullable=False)
    user_id = Column(String, index=True)
    status = Column(String, default="pending")           # pending | processing | completed | refunded
    total = Column(Integer, nullable=False)              # minor units
    currency = Column(String, nullable=False)
    billing_first_name = Column(String, default="")
    billing_last_name = Column(String, default="")
    billing_email = Column(String, default="")

    transaction_id = Column(String, index=True)          # Stripe Charge ID
    provider_fee = Column(Integer)
    provider_customer_id = Column(String)
    capture_mode = Column(String)
    needs_capture = Column(Boolean, default=False)
    failed_attempts = Column(Integer, default=0, nullable=False)

    items = relationship("OrderItem", order_by="OrderItem.id", cascade="all, delete-orphan")
    notes = relationship("OrderNote", order_by="OrderNote.id", cascade="all, delete-orphan")


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False)
    name = Column(String, nullable=False)


class OrderNote(Base):
    __tablename__ = "order_notes"

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False)
    text = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_now)
