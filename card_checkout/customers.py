from typing import Any, Callable, Dict, Optional

from card_checkout.errors import CheckoutError, DataInconsistencyError, Outcome, ProviderError, ValidationError
from card_checkout.log import get_logger
from card_checkout.provider import StripeProvider
from card_checkout.schemas import Buyer, CustomerRecord, CustomerRef, FormData, OrderView
from card_checkout.store import CustomerStore

logger = get_logger(__name__)

CustomerDataHook = Callable[[Dict[str, Any], FormData, Optional[OrderView]], Dict[str, Any]]
DescriptionHook = Callable[[str, FormData, Optional[OrderView]], str]


def default_customer_description(buyer: Buyer, form: FormData) -> str:
    # username (#user_id - email) Full Name
    return f"{buyer.username} (#{buyer.user_id} - {buyer.email}) {form.customer.name}".strip()


class CustomerResolver:
    """Finds or creates the provider customer for a signed-in buyer.

    Each call makes at most one provider mutation (create the customer or add
    a card) and one local write.
    """

    def __init__(
        self,
        provider: StripeProvider,
        store: CustomerStore,
        customer_data_hook: Optional[CustomerDataHook] = None,
        description_hook: Optional[DescriptionHook] = None,
    ):
        self.provider = provider
        self.store = store
        self.customer_data_hook = customer_data_hook
        self.description_hook = description_hook

    def resolve_customer(self, buyer: Buyer, form: FormData, order: Optional[OrderView] = None) -> Outcome[CustomerRef]:
        try:
            return Outcome.success(self._resolve(buyer, form, order))
        except CheckoutError as e:
            return Outcome.failure(e)

    def _resolve(self, buyer: Buyer, form: FormData, order: Optional[OrderView]) -> CustomerRef:
        if not buyer.authenticated:
            raise ValidationError("Saved cards require a signed-in customer")

        record = self.store.get_customer_record(buyer.user_id)
        if record is not None:
            try:
                self._check_live_customer(record)
            except DataInconsistencyError as e:
                logger.warning(
                    "stale_customer_record",
                    user_id=buyer.user_id,
                    customer_id=record.customer_id,
                    reason=e.message,
                )
                # The stored row stays until a new customer replaces it
                record = None

        if record is None:
            return self._create_customer(buyer, form, order)

        if form.chosen_card == "new":
            return self._add_card(buyer, record, form)

        card = record.card_at(form.chosen_card)
        if card is None:
            raise DataInconsistencyError(
                f"Saved card {form.chosen_card} does not exist for customer {record.customer_id}"
            )
        if record.default_card_id != card.id:
            self.store.set_default_card(buyer.user_id, card.id)
        return CustomerRef(customer_id=record.customer_id, card_id=card.id)

    def _check_live_customer(self, record: CustomerRecord) -> None:
        try:
            customer = self.provider.get_customer(record.customer_id)
        except ProviderError as e:
            if e.code == "resource_missing":
                raise DataInconsistencyError(e.message, code=e.code) from e
            raise
        if customer.deleted:
            raise DataInconsistencyError(f"Customer {record.customer_id} was deleted at the provider")

    def _require_token(self, form: FormData) -> str:
        if not form.token:
            raise ValidationError("Please enter your card details.", fields={"card-number": "missing"})
        return form.token

    def _add_card(self, buyer: Buyer, record: CustomerRecord, form: FormData) -> CustomerRef:
        card = self.provider.add_card(record.customer_id, self._require_token(form))
        self.store.add_card(buyer.user_id, record.customer_id, card)
        return CustomerRef(customer_id=record.customer_id, card_id=card.id)

    def _create_customer(self, buyer: Buyer, form: FormData, order: Optional[OrderView]) -> CustomerRef:
        token = self._require_token(form)

        data: Dict[str, Any] = {}
        if self.customer_data_hook is not None:
            data = dict(self.customer_data_hook(data, form, order))
        description = default_customer_description(buyer, form)
        if self.description_hook is not None:
            description = self.description_hook(description, form, order)
        data["description"] = description
        data["email"] = form.customer.billing_email or buyer.email
        data["source"] = token

        customer = self.provider.create_customer(data)
        cards = [customer.default_card] if customer.default_card else []
        self.store.upsert_customer_record(
            buyer.user_id,
            CustomerRecord(
                customer_id=customer.id,
                cards=cards,
                default_card_id=customer.default_card.id if customer.default_card else None,
            ),
        )
        if customer.default_card is None:
            # The token was spent on the new customer and cannot be charged again
            raise ProviderError(
                f"Customer {customer.id} was created without a default card",
                code="missing_default_card",
            )
        return CustomerRef(customer_id=customer.id, card_id=customer.default_card.id)
