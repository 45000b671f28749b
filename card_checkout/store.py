from typing import List, Optional, Protocol

from card_checkout.log import get_logger
from card_checkout.models import CustomerAccount, Order, OrderNote, SavedCard
from card_checkout.schemas import CardSummary, ChargeResult, CaptureMode, CustomerRecord, OrderView

logger = get_logger(__name__)


class OrderSystem(Protocol):
    def get_order(self, order_id: int) -> Optional[OrderView]: ...

    def get_order_total(self, order_id: int) -> int: ...

    def set_transaction_id(self, order_id: int, transaction_id: str) -> None: ...

    def add_order_note(self, order_id: int, text: str) -> None: ...

    def mark_complete(self, order_id: int, transaction_id: str) -> None: ...

    def record_failed_attempt(self, order_id: int) -> None: ...


def _to_record(account: CustomerAccount) -> CustomerRecord:
    return CustomerRecord(
        customer_id=account.customer_id,
        cards=[
            CardSummary(
                id=card.card_id,
                brand=card.brand,
                last4=card.last4,
                exp_month=card.exp_month,
                exp_year=card.exp_year,
            )
            for card in account.cards
        ],
        default_card_id=account.default_card_id,
    )


def _to_row(card: CardSummary, position: int) -> SavedCard:
    return SavedCard(
        card_id=card.id,
        position=position,
        brand=card.brand,
        last4=card.last4,
        exp_month=card.exp_month,
        exp_year=card.exp_year,
    )


class CustomerStore:
    """Maps local users to their provider customer and saved cards."""

    def __init__(self, session_factory, location: str = "test"):
        self.session_factory = session_factory
        self.location = location

    def _account(self, db, user_id: str) -> Optional[CustomerAccount]:
        return db.query(CustomerAccount).filter_by(user_id=str(user_id), location=self.location).first()

    def get_customer_record(self, user_id: str) -> Optional[CustomerRecord]:
        with self.session_factory() as db:
            account = self._account(db, user_id)
            if account is None:
                return None
            return _to_record(account)

    def upsert_customer_record(self, user_id: str, record: CustomerRecord) -> CustomerRecord:
        with self.session_factory() as db:
            account = self._account(db, user_id)
            if account is None:
                account = CustomerAccount(user_id=str(user_id), location=self.location)
                db.add(account)
            account.customer_id = record.customer_id
            account.default_card_id = record.default_card_id
            account.cards = [_to_row(card, position) for position, card in enumerate(record.cards)]
            db.commit()
            return _to_record(account)

    def add_card(self, user_id: str, customer_id: str, card: CardSummary) -> CustomerRecord:
        """Append a card to the user's record and make it the default."""
        with self.session_factory() as db:
            account = self._account(db, user_id)
            if account is None:
                account = CustomerAccount(user_id=str(user_id), location=self.location, customer_id=customer_id)
                db.add(account)
            account.customer_id = customer_id
            account.cards.append(_to_row(card, len(account.cards)))
            account.default_card_id = card.id
            db.commit()
            return _to_record(account)

    def set_default_card(self, user_id: str, card_id: str) -> None:
        with self.session_factory() as db:
            account = self._account(db, user_id)
            if account is None:
                return
            account.default_card_id = card_id
            db.commit()

    def purge(self, location: str = "test") -> int:
        """Delete every stored record for ``location``. Administrative use only."""
        with self.session_factory() as db:
            accounts = db.query(CustomerAccount).filter_by(location=location).all()
            for account in accounts:
                db.delete(account)
            db.commit()
        logger.info("customer_records_purged", location=location, count=len(accounts))
        return len(accounts)


def _to_view(order: Order) -> OrderView:
    return OrderView(
        id=order.id,
        number=order.number or str(order.id),
        order_key=order.order_key,
        status=order.status,
        total=order.total,
        currency=order.currency,
        user_id=order.user_id,
        billing_first_name=order.billing_first_name or "",
        billing_last_name=order.billing_last_name or "",
        billing_email=order.billing_email or "",
        item_names=[item.name for item in order.items],
        transaction_id=order.transaction_id,
        failed_attempts=order.failed_attempts or 0,
    )


class SqlOrderStore:
    """Order system backed by the ``orders`` table.

    Line items and totals are read, never written.
    """

    def __init__(self, session_factory):
        self.session_factory = session_factory

    def _order(self, db, order_id: int) -> Order:
        order = db.get(Order, order_id)
        if order is None:
            raise LookupError(f"Order {order_id} not found")
        return order

    def get_order(self, order_id: int) -> Optional[OrderView]:
        with self.session_factory() as db:
            order = db.get(Order, order_id)
            return _to_view(order) if order is not None else None

    def get_order_total(self, order_id: int) -> int:
        with self.session_factory() as db:
            return self._order(db, order_id).total

    def set_transaction_id(self, order_id: int, transaction_id: str) -> None:
        with self.session_factory() as db:
            self._order(db, order_id).transaction_id = transaction_id
            db.commit()

    def record_charge(self, order_id: int, result: ChargeResult, capture_mode: CaptureMode) -> None:
        with self.session_factory() as db:
            order = self._order(db, order_id)
            order.transaction_id = result.transaction_id
            order.provider_fee = result.fee
            order.provider_customer_id = result.customer_id
            order.capture_mode = capture_mode.value
            order.needs_capture = capture_mode == CaptureMode.AUTHORIZE
            db.commit()

    def add_order_note(self, order_id: int, text: str) -> None:
        with self.session_factory() as db:
            self._order(db, order_id)
            db.add(OrderNote(order_id=order_id, text=text))
            db.commit()

    def record_failed_attempt(self, order_id: int) -> None:
        with self.session_factory() as db:
            order = self._order(db, order_id)
            order.failed_attempts = (order.failed_attempts or 0) + 1
            db.commit()

    def get_order_notes(self, order_id: int) -> List[str]:
        with self.session_factory() as db:
            return [note.text for note in self._order(db, order_id).notes]

    def mark_complete(self, order_id: int, transaction_id: str) -> None:
        with self.session_factory() as db:
            order = self._order(db, order_id)
            order.status = "completed"
            order.transaction_id = transaction_id
            db.commit()
