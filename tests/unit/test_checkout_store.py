import json

import pytest

from intake_backend.checkout.models import CheckoutStep, PaymentStatus, Product, ShippingAddress
from intake_backend.checkout.store import (
    CHECKOUT_STORAGE_KEY,
    CheckoutStore,
    get_patient_info,
    load_shipping_from_intake,
)
from intake_backend.session.storage import MemoryStorage

PRODUCT = Product(
    id="prod_Tlz6Xoylok5j7H",
    name="Tirzepatide",
    description="Weekly injection",
    price_id="price_6mo",
    price=191400,
    interval="month",
    metadata={"medication": "tirzepatide", "interval_count": "6"},
)
ADDRESS = ShippingAddress(
    street="1 Main St", unit="4B", city="Tampa", state="FL", zip_code="33602",
    full_address="1 Main St, 4B, Tampa, FL 33602",
)


def test_defaults():
    store = CheckoutStore(MemoryStorage())
    assert store.current_step is CheckoutStep.PRODUCT
    assert store.selected_product is None
    assert store.shipping_address is None
    assert store.billing_address_same_as_shipping is True
    assert store.payment_intent_id is None
    assert store.payment_status is PaymentStatus.IDLE
    assert store.error is None


def test_shipping_address_round_trip():
    storage = MemoryStorage()
    CheckoutStore(storage).set_shipping_address(ADDRESS)
    assert CheckoutStore(storage).shipping_address == ADDRESS


def test_only_selection_survives_reload():
    storage = MemoryStorage()
    store = CheckoutStore(storage)
    store.set_selected_product(PRODUCT)
    store.set_billing_address_same_as_shipping(False)
    store.set_payment_intent_id("pi_1")
    store.set_payment_status("processing")
    store.set_error("Card declined")
    store.set_current_step(CheckoutStep.PAYMENT)

    reloaded = CheckoutStore(storage)
    assert reloaded.selected_product == PRODUCT
    assert reloaded.billing_address_same_as_shipping is False
    assert reloaded.payment_intent_id is None
    assert reloaded.payment_status is PaymentStatus.IDLE
    assert reloaded.error is None
    assert reloaded.current_step is CheckoutStep.PRODUCT

    record = json.loads(storage.get_item(CHECKOUT_STORAGE_KEY))
    assert record["version"] == 1
    assert set(record["state"]) == {"selectedProduct", "shippingAddress", "billingAddressSameAsShipping"}
    assert record["state"]["selectedProduct"]["priceId"] == "price_6mo"


def test_reset_restores_and_persists_defaults():
    storage = MemoryStorage()
    store = CheckoutStore(storage)
    store.set_selected_product(PRODUCT)
    store.set_shipping_address(ADDRESS)
    store.set_billing_address_same_as_shipping(False)
    store.set_payment_status(PaymentStatus.FAILED)
    store.set_error("boom")
    store.set_current_step("confirmation")

    store.reset()
    assert store.current_step is CheckoutStep.PRODUCT
    assert store.selected_product is None
    assert store.shipping_address is None
    assert store.billing_address_same_as_shipping is True
    assert store.payment_status is PaymentStatus.IDLE
    assert store.error is None

    reloaded = CheckoutStore(storage)
    assert reloaded.selected_product is None
    assert reloaded.shipping_address is None


@pytest.mark.parametrize("raw", [
    "not json",
    json.dumps({"version": 99, "state": {"billingAddressSameAsShipping": False}}),
    json.dumps({"version": 1, "state": {"selectedProduct": {"id": "p"}}}),
])
def test_malformed_or_unknown_record_hydrates_defaults(raw):
    store = CheckoutStore(MemoryStorage({CHECKOUT_STORAGE_KEY: raw}))
    assert store.selected_product is None
    assert store.billing_address_same_as_shipping is True


@pytest.mark.parametrize("stored, expected", [
    (False, False),
    (True, True),
    ("false", True),
    (0, True),
    (None, True),
])
def test_billing_flag_only_accepts_real_booleans(stored, expected):
    raw = json.dumps({"version": 1, "state": {"billingAddressSameAsShipping": stored}})
    store = CheckoutStore(MemoryStorage({CHECKOUT_STORAGE_KEY: raw}))
    assert store.billing_address_same_as_shipping is expected


def test_unknown_status_rejected():
    with pytest.raises(ValueError):
        CheckoutStore(MemoryStorage()).set_payment_status("refunded")


def test_patient_info_from_legacy_keys():
    storage = MemoryStorage({
        "intake_name": json.dumps({"firstName": "Jane", "lastName": "Doe"}),
        "intake_contact": json.dumps({"email": "jane@example.com", "phone": "5551234567"}),
        "intake_dob": json.dumps({"month": "04", "day": "09", "year": "1980"}),
    })
    info = get_patient_info(storage)
    assert (info.first_name, info.last_name) == ("Jane", "Doe")
    assert info.email == "jane@example.com"
    assert info.dob == "04/09/1980"


def test_patient_info_partial_dob_and_garbage():
    storage = MemoryStorage({
        "intake_name": "Jane",
        "intake_dob": json.dumps({"month": "04", "year": "1980"}),
    })
    info = get_patient_info(storage)
    assert info.first_name == ""
    assert info.dob == ""


def test_load_shipping_from_intake():
    storage = MemoryStorage({"intake_address": json.dumps({"street": "1 Main St", "city": "Tampa", "zipCode": "33602"})})
    address = load_shipping_from_intake(storage)
    assert address.street == "1 Main St"
    assert address.zip_code == "33602"
    assert address.full_address == ""

    assert load_shipping_from_intake(MemoryStorage({"intake_address": json.dumps({"city": "Tampa"})})) is None
    assert load_shipping_from_intake(MemoryStorage()) is None
