import stripe

from card_checkout.errors import DataInconsistencyError, ProviderError, ValidationError
from card_checkout.schemas import ANONYMOUS, CardSummary, CustomerRecord
from conftest import SECRET_KEY, card


def existing_record(gateway, user_id="42"):
    return gateway.customers.upsert_customer_record(
        user_id,
        CustomerRecord(
            customer_id="cus_existing",
            cards=[CardSummary("card_old", "Visa", "4242", 12, 2030), CardSummary("card_other", "MasterCard", "4444", 1, 2031)],
            default_card_id="card_old",
        ),
    )


def test_new_customer_created_with_token(gateway, buyer, form, mocker):
    create = mocker.patch("stripe.Customer.create", return_value={"id": "cus_new", "default_source": card("card_new")})

    outcome = gateway.resolver.resolve_customer(buyer, form(token="tok_new", save_card=True))

    assert outcome.ok
    assert outcome.value.customer_id == "cus_new"
    assert outcome.value.card_id == "card_new"
    create.assert_called_once()
    kwargs = create.call_args.kwargs
    assert kwargs["source"] == "tok_new"
    assert kwargs["email"] == "ada@example.com"
    assert kwargs["description"] == "ada (#42 - ada@example.com)"
    assert kwargs["api_key"] == SECRET_KEY

    record = gateway.customers.get_customer_record("42")
    assert record.customer_id == "cus_new"
    assert [c.id for c in record.cards] == ["card_new"]
    assert record.default_card_id == "card_new"


def test_customer_hooks_extend_data_and_description(settings, session_factory, provider, buyer, form, mocker):
    from card_checkout.gateway import build_gateway

    gateway = build_gateway(
        settings,
        session_factory,
        provider=provider,
        customer_data_hook=lambda data, form, order: {**data, "metadata": {"tier": "gold"}, "source": "tok_ignored"},
        customer_description_hook=lambda description, form, order: f"VIP {description}",
    )
    create = mocker.patch("stripe.Customer.create", return_value={"id": "cus_new", "default_source": card()})

    gateway.resolver.resolve_customer(buyer, form())

    kwargs = create.call_args.kwargs
    assert kwargs["metadata"] == {"tier": "gold"}
    assert kwargs["description"].startswith("VIP ada")
    assert kwargs["source"] == "tok_abc"


def test_existing_customer_new_card_is_added_and_made_default(gateway, buyer, form, mocker):
    existing_record(gateway)
    mocker.patch("stripe.Customer.retrieve", return_value={"id": "cus_existing"})
    add = mocker.patch("stripe.Customer.create_source", return_value=card("card_added", last4="1881"))
    create = mocker.patch("stripe.Customer.create")

    outcome = gateway.resolver.resolve_customer(buyer, form(token="tok_next", chosen_card="new"))

    assert outcome.value.card_id == "card_added"
    add.assert_called_once_with("cus_existing", source="tok_next", api_key=SECRET_KEY)
    create.assert_not_called()
    record = gateway.customers.get_customer_record("42")
    assert [c.id for c in record.cards] == ["card_old", "card_other", "card_added"]
    assert record.default_card_id == "card_added"


def test_selecting_saved_card_makes_no_provider_mutation(gateway, buyer, form, mocker):
    existing_record(gateway)
    retrieve = mocker.patch("stripe.Customer.retrieve", return_value={"id": "cus_existing"})
    add = mocker.patch("stripe.Customer.create_source")
    create = mocker.patch("stripe.Customer.create")

    first = gateway.resolver.resolve_customer(buyer, form(token="", chosen_card="1"))
    second = gateway.resolver.resolve_customer(buyer, form(token="", chosen_card="1"))

    assert first.value.card_id == second.value.card_id == "card_other"
    assert retrieve.call_count == 2
    add.assert_not_called()
    create.assert_not_called()
    assert gateway.customers.get_customer_record("42").default_card_id == "card_other"


def test_saved_card_index_out_of_range(gateway, buyer, form, mocker):
    existing_record(gateway)
    mocker.patch("stripe.Customer.retrieve", return_value={"id": "cus_existing"})

    outcome = gateway.resolver.resolve_customer(buyer, form(chosen_card="7"))

    assert isinstance(outcome.error, DataInconsistencyError)


def test_stale_customer_falls_back_to_new_customer(gateway, buyer, form, mocker):
    existing_record(gateway)
    mocker.patch(
        "stripe.Customer.retrieve",
        side_effect=stripe.InvalidRequestError("No such customer: 'cus_existing'", "id", code="resource_missing"),
    )
    create = mocker.patch("stripe.Customer.create", return_value={"id": "cus_fresh", "default_source": card("card_fresh")})

    outcome = gateway.resolver.resolve_customer(buyer, form(token="tok_new"))

    assert outcome.value.customer_id == "cus_fresh"
    create.assert_called_once()
    record = gateway.customers.get_customer_record("42")
    assert record.customer_id == "cus_fresh"
    assert [c.id for c in record.cards] == ["card_fresh"]


def test_deleted_customer_without_token_asks_for_card(gateway, buyer, form, mocker):
    existing_record(gateway)
    mocker.patch("stripe.Customer.retrieve", return_value={"id": "cus_existing", "deleted": True})

    outcome = gateway.resolver.resolve_customer(buyer, form(token="", chosen_card="0"))

    assert isinstance(outcome.error, ValidationError)
    record = gateway.customers.get_customer_record("42")
    assert record.customer_id == "cus_existing"
    assert [c.id for c in record.cards] == ["card_old", "card_other"]


def test_provider_failure_is_returned(gateway, buyer, form, mocker):
    mocker.patch("stripe.Customer.create", side_effect=stripe.APIConnectionError("Network down"))

    outcome = gateway.resolver.resolve_customer(buyer, form())

    assert isinstance(outcome.error, ProviderError)
    assert gateway.customers.get_customer_record("42") is None


def test_anonymous_buyer_is_rejected(gateway, form, mocker):
    create = mocker.patch("stripe.Customer.create")

    outcome = gateway.resolver.resolve_customer(ANONYMOUS, form())

    assert isinstance(outcome.error, ValidationError)
    create.assert_not_called()


def test_stale_record_kept_when_replacement_customer_fails(gateway, buyer, form, mocker):
    existing_record(gateway)
    mocker.patch("stripe.Customer.retrieve", return_value={"id": "cus_existing", "deleted": True})
    mocker.patch("stripe.Customer.create", side_effect=stripe.APIConnectionError("Network down"))

    outcome = gateway.resolver.resolve_customer(buyer, form(token="tok_new"))

    assert isinstance(outcome.error, ProviderError)
    record = gateway.customers.get_customer_record("42")
    assert record.customer_id == "cus_existing"
    assert record.default_card_id == "card_old"


def test_customer_created_without_card_is_a_provider_error(gateway, buyer, form, mocker):
    mocker.patch("stripe.Customer.create", return_value={"id": "cus_bare"})

    outcome = gateway.resolver.resolve_customer(buyer, form(token="tok_new"))

    assert isinstance(outcome.error, ProviderError)
    assert outcome.error.code == "missing_default_card"
    record = gateway.customers.get_customer_record("42")
    assert record.customer_id == "cus_bare"
    assert record.cards == []
