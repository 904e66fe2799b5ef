import pytest
import stripe
from fastapi import HTTPException

from intake_backend.payments import service
from intake_backend.payments.state import AttemptState, CheckoutAttempt

ONE_TIME_PRICE = {"id": "price_once", "unit_amount": 39900, "currency": "usd", "recurring": None}
MONTHLY_PRICE = {"id": "price_month", "unit_amount": 39900, "currency": "usd", "recurring": {"interval": "month", "interval_count": 1}}


class FakeStripe:
    """Enregistre les appels faits à stripe_client et renvoie des objets prévisibles."""

    def __init__(self):
        self.calls = []
        self.price = ONE_TIME_PRICE
        self.customers = []
        self.setup_intent = {"id": "seti_1", "status": "succeeded", "payment_method": "pm_from_setup"}
        self.subscription = {"id": "sub_1", "status": "active", "latest_invoice": None}
        self.attach_error = None

    def install(self, monkeypatch):
        prefix = "intake_backend.payments.service.stripe_client."
        monkeypatch.setattr(prefix + "retrieve_price", self.retrieve_price)
        monkeypatch.setattr(prefix + "find_customer_by_email", self.find_customer_by_email)
        monkeypatch.setattr(prefix + "create_customer", self.create_customer)
        monkeypatch.setattr(prefix + "update_customer", self.update_customer)
        monkeypatch.setattr(prefix + "create_payment_intent", self.create_payment_intent)
        monkeypatch.setattr(prefix + "create_setup_intent", self.create_setup_intent)
        monkeypatch.setattr(prefix + "retrieve_setup_intent", self.retrieve_setup_intent)
        monkeypatch.setattr(prefix + "attach_payment_method", self.attach_payment_method)
        monkeypatch.setattr(prefix + "create_subscription", self.create_subscription)
        monkeypatch.setattr(prefix + "retrieve_payment_intent", lambda pid: {"id": pid, "status": "requires_action", "client_secret": f"{pid}_secret"})
        return self

    def names(self):
        return [name for name, _ in self.calls]

    def retrieve_price(self, price_id):
        self.calls.append(("retrieve_price", price_id))
        return dict(self.price, id=price_id)

    def find_customer_by_email(self, email):
        self.calls.append(("find_customer_by_email", email))
        return self.customers[0] if self.customers else None

    def create_customer(self, **params):
        self.calls.append(("create_customer", params))
        return {"id": "cus_new", **params}

    def update_customer(self, customer_id, **params):
        self.calls.append(("update_customer", (customer_id, params)))
        return {"id": customer_id, **params}

    def create_payment_intent(self, **params):
        self.calls.append(("create_payment_intent", params))
        return {"id": "pi_1", "client_secret": "pi_1_secret"}

    def create_setup_intent(self, **params):
        self.calls.append(("create_setup_intent", params))
        return {"id": "seti_1", "client_secret": "seti_1_secret"}

    def retrieve_setup_intent(self, setup_intent_id):
        self.calls.append(("retrieve_setup_intent", setup_intent_id))
        return self.setup_intent

    def attach_payment_method(self, payment_method_id, customer_id):
        self.calls.append(("attach_payment_method", (payment_method_id, customer_id)))
        if self.attach_error is not None:
            raise self.attach_error
        return {"id": payment_method_id, "customer": customer_id}

    def create_subscription(self, **params):
        self.calls.append(("create_subscription", params))
        return self.subscription


@pytest.fixture
def fake_stripe(monkeypatch):
    return FakeStripe().install(monkeypatch)


def test_price_id_is_required(fake_stripe):
    with pytest.raises(HTTPException) as exc:
        service.create_checkout_intent(price_id="")
    assert exc.value.status_code == 400
    assert exc.value.detail == "Price ID is required"
    assert fake_stripe.calls == []


def test_one_time_price_creates_payment_intent(fake_stripe):
    res = service.create_checkout_intent(
        price_id="price_once",
        amount=100,
        product_id="prod_1",
        product_name="Tirzepatide",
        customer_email="patient@example.com",
        customer_name="Jane Doe",
        metadata={"intakeId": "rec123"},
    )
    assert res == {"clientSecret": "pi_1_secret", "paymentIntentId": "pi_1", "customerId": "cus_new", "type": "payment"}
    params = dict(fake_stripe.calls)["create_payment_intent"]
    # Le montant du prix Stripe prime sur celui du client
    assert params["amount"] == 39900
    assert params["currency"] == "usd"
    assert params["receipt_email"] == "patient@example.com"
    assert params["description"] == "Order for Tirzepatide"
    assert params["metadata"] == {
        "productId": "prod_1",
        "productName": "Tirzepatide",
        "priceId": "price_once",
        "source": "otmens-intake",
        "intakeId": "rec123",
    }
    assert "create_setup_intent" not in fake_stripe.names()


def test_client_amount_used_only_when_price_has_none(fake_stripe):
    fake_stripe.price = {"unit_amount": None, "currency": None, "recurring": None}
    service.create_checkout_intent(price_id="price_custom", amount=5000, currency="EUR")
    params = dict(fake_stripe.calls)["create_payment_intent"]
    assert params["amount"] == 5000
    assert params["currency"] == "eur"


def test_missing_amount_everywhere_is_rejected(fake_stripe):
    fake_stripe.price = {"unit_amount": None, "recurring": None}
    with pytest.raises(HTTPException) as exc:
        service.create_checkout_intent(price_id="price_custom")
    assert exc.value.status_code == 400


def test_recurring_price_only_creates_setup_intent(fake_stripe):
    fake_stripe.price = MONTHLY_PRICE
    res = service.create_checkout_intent(price_id="price_month", customer_email="patient@example.com")
    assert res["type"] == "subscription_setup"
    assert res["setupIntentId"] == "seti_1"
    assert res["clientSecret"] == "seti_1_secret"
    params = dict(fake_stripe.calls)["create_setup_intent"]
    assert params["usage"] == "off_session"
    assert params["customer"] == "cus_new"
    names = fake_stripe.names()
    assert "create_subscription" not in names
    assert "create_payment_intent" not in names


def test_existing_customer_is_reused_and_renamed(fake_stripe):
    fake_stripe.customers = [{"id": "cus_old", "email": "patient@example.com", "name": "Old Name"}]
    customer = service.resolve_customer("patient@example.com", "New Name")
    assert customer["id"] == "cus_old"
    assert ("update_customer", ("cus_old", {"name": "New Name"})) in fake_stripe.calls
    assert "create_customer" not in fake_stripe.names()


def test_existing_customer_same_name_not_updated(fake_stripe):
    fake_stripe.customers = [{"id": "cus_old", "name": "Jane Doe"}]
    service.resolve_customer("patient@example.com", "Jane Doe")
    assert "update_customer" not in fake_stripe.names()


def test_guest_customer_without_email(fake_stripe):
    customer = service.resolve_customer("", "")
    assert customer["name"] == "Guest"
    assert customer["metadata"]["source"] == "otmens-intake"
    assert "find_customer_by_email" not in fake_stripe.names()


def test_finalize_requires_fields(fake_stripe):
    with pytest.raises(HTTPException) as exc:
        service.finalize_subscription(customer_id="cus_1", price_id="price_month")
    assert exc.value.status_code == 400
    assert exc.value.detail == "customerId, priceId, and paymentMethodId are required"


def test_finalize_active_subscription(fake_stripe):
    res = service.finalize_subscription(customer_id="cus_1", price_id="price_month", payment_method_id="pm_1")
    assert res == {"subscriptionId": "sub_1", "status": "active", "customerId": "cus_1", "success": True}
    names = fake_stripe.names()
    assert names.index("attach_payment_method") < names.index("update_customer") < names.index("create_subscription")
    params = dict(fake_stripe.calls)["create_subscription"]
    assert params["payment_behavior"] == "allow_incomplete"
    assert params["default_payment_method"] == "pm_1"
    assert params["expand"] == ["latest_invoice.payment_intent"]
    assert params["items"] == [{"price": "price_month"}]


def test_finalize_reads_payment_method_from_setup_intent(fake_stripe):
    service.finalize_subscription(customer_id="cus_1", price_id="price_month", setup_intent_id="seti_1")
    assert ("attach_payment_method", ("pm_from_setup", "cus_1")) in fake_stripe.calls


def test_finalize_rejects_unfinished_setup_intent(fake_stripe):
    fake_stripe.setup_intent = {"id": "seti_1", "status": "requires_payment_method", "payment_method": None}
    with pytest.raises(HTTPException) as exc:
        service.finalize_subscription(customer_id="cus_1", price_id="price_month", setup_intent_id="seti_1")
    assert exc.value.status_code == 400
    assert "create_subscription" not in fake_stripe.names()


def test_already_attached_payment_method_is_tolerated(fake_stripe):
    fake_stripe.attach_error = stripe.InvalidRequestError(
        "The payment method you provided has already been attached to a customer.", "payment_method",
    )
    res = service.finalize_subscription(customer_id="cus_1", price_id="price_month", payment_method_id="pm_1")
    assert res["success"] is True
    assert "create_subscription" in fake_stripe.names()


def test_other_attach_errors_propagate(fake_stripe):
    fake_stripe.attach_error = stripe.CardError("Your card was declined.", "payment_method", "card_declined", http_status=402)
    with pytest.raises(stripe.CardError):
        service.finalize_subscription(customer_id="cus_1", price_id="price_month", payment_method_id="pm_1")
    assert "create_subscription" not in fake_stripe.names()


def test_incomplete_subscription_requires_action(fake_stripe):
    fake_stripe.subscription = {
        "id": "sub_2",
        "status": "incomplete",
        "latest_invoice": {"id": "in_1", "payment_intent": {"id": "pi_3ds", "status": "requires_action", "client_secret": "pi_3ds_secret"}},
    }
    res = service.finalize_subscription(customer_id="cus_1", price_id="price_month", payment_method_id="pm_1")
    assert res == {
        "subscriptionId": "sub_2",
        "status": "incomplete",
        "customerId": "cus_1",
        "clientSecret": "pi_3ds_secret",
        "requiresAction": True,
    }


def test_unexpanded_intent_is_retrieved(fake_stripe):
    fake_stripe.subscription = {"id": "sub_3", "status": "incomplete", "latest_invoice": {"id": "in_2", "payment_intent": "pi_raw"}}
    res = service.finalize_subscription(customer_id="cus_1", price_id="price_month", payment_method_id="pm_1")
    assert res["requiresAction"] is True
    assert res["clientSecret"] == "pi_raw_secret"


def test_incomplete_subscription_with_paid_intent_succeeds():
    attempt = CheckoutAttempt(AttemptState.CONFIRMING)
    sub = {"id": "sub_4", "status": "incomplete", "latest_invoice": {"id": "in_3", "payment_intent": {"id": "pi_ok", "status": "succeeded"}}}
    outcome = service.evaluate_subscription(sub, attempt)
    assert outcome.state is AttemptState.SUCCEEDED
    assert attempt.state is AttemptState.SUCCEEDED


def test_no_actionable_intent_is_a_failure(fake_stripe):
    fake_stripe.subscription = {"id": "sub_5", "status": "incomplete", "latest_invoice": {"id": "in_4", "payment_intent": None}}
    res = service.finalize_subscription(customer_id="cus_1", price_id="price_month", payment_method_id="pm_1")
    assert res["success"] is False
    assert res["error"] == "Your card was declined or could not be processed."
