"""
Session de checkout côté client.

Persistance: un seul enregistrement versionné sous `checkout-storage`
    {"version": 1, "state": {"selectedProduct": ..., "shippingAddress": ..., "billingAddressSameAsShipping": ...}}
Seuls produit, adresse et option de facturation survivent à un rechargement:
identifiant de paiement, statut et erreur repartent toujours de None / idle.
L'identité du patient n'est pas copiée ici: elle est lue à la demande dans le dossier d'intake.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from pydantic import ValidationError

from intake_backend.checkout.models import CheckoutStep, PaymentStatus, Product, ShippingAddress
from intake_backend.session.intake_record import load_intake_record
from intake_backend.session.storage import Storage, read_json, write_json

logger = logging.getLogger(__name__)

CHECKOUT_STORAGE_KEY = "checkout-storage"
CHECKOUT_STORAGE_VERSION = 1


class CheckoutStore:
    def __init__(self, storage: Storage):
        self.storage = storage
        self._apply_defaults()
        self._hydrate()

    def _apply_defaults(self) -> None:
        self.current_step: CheckoutStep = CheckoutStep.PRODUCT
        self.selected_product: Optional[Product] = None
        self.shipping_address: Optional[ShippingAddress] = None
        self.billing_address_same_as_shipping: bool = True
        self.payment_intent_id: Optional[str] = None
        self.payment_status: PaymentStatus = PaymentStatus.IDLE
        self.error: Optional[str] = None

    def _hydrate(self) -> None:
        record = read_json(self.storage, CHECKOUT_STORAGE_KEY)
        if record is None:
            return
        if not isinstance(record, dict) or record.get("version") != CHECKOUT_STORAGE_VERSION:
            logger.warning("checkout.store unknown record, using defaults")
            return
        state = record.get("state")
        if not isinstance(state, dict):
            return
        try:
            product = state.get("selectedProduct")
            address = state.get("shippingAddress")
            self.selected_product = Product.model_validate(product) if product else None
            self.shipping_address = ShippingAddress.model_validate(address) if address else None
            same = state.get("billingAddressSameAsShipping")
            # Seul un vrai booléen est repris ("false", 0, None -> valeur par défaut)
            self.billing_address_same_as_shipping = same if isinstance(same, bool) else True
        except ValidationError as e:
            logger.warning("checkout.store invalid record errors=%s, using defaults", e.error_count())
            self._apply_defaults()

    def _persist(self) -> None:
        state: Dict[str, Any] = {
            "selectedProduct": self.selected_product.model_dump(mode="json", by_alias=True) if self.selected_product else None,
            "shippingAddress": self.shipping_address.model_dump(mode="json", by_alias=True) if self.shipping_address else None,
            "billingAddressSameAsShipping": self.billing_address_same_as_shipping,
        }
        write_json(self.storage, CHECKOUT_STORAGE_KEY, {"version": CHECKOUT_STORAGE_VERSION, "state": state})

    # --- Actions ---

    def set_selected_product(self, product: Optional[Product]) -> None:
        self.selected_product = product
        self._persist()

    def set_shipping_address(self, address: ShippingAddress) -> None:
        self.shipping_address = address
        self._persist()

    def set_billing_address_same_as_shipping(self, same: bool) -> None:
        self.billing_address_same_as_shipping = bool(same)
        self._persist()

    def set_payment_intent_id(self, payment_intent_id: str) -> None:
        self.payment_intent_id = payment_intent_id

    def set_payment_status(self, status: Union[PaymentStatus, str]) -> None:
        self.payment_status = PaymentStatus(status)

    def set_error(self, error: Optional[str]) -> None:
        self.error = error

    def set_current_step(self, step: Union[CheckoutStep, str]) -> None:
        self.current_step = CheckoutStep(step)

    def reset(self) -> None:
        self._apply_defaults()
        self._persist()


@dataclass(frozen=True)
class PatientInfo:
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    phone: str = ""
    dob: str = ""

# module intake_backend.checkout.store
def get_patient_info(storage: Storage) -> PatientInfo:
    """Identité du patient depuis le dossier d'intake; chaînes vides par défaut, jamais d'exception."""
    record = load_intake_record(storage)
    return PatientInfo(
        first_name=record.first_name,
        last_name=record.last_name,
        email=record.email,
        phone=record.phone,
        dob=record.dob.formatted(),
    )

def load_shipping_from_intake(storage: Storage) -> Optional[ShippingAddress]:
    """Adresse du dossier d'intake, ou None si ni rue ni adresse complète."""
    address = load_intake_record(storage).address
    if address is None or not (address.street or address.full_address):
        return None
    return address
