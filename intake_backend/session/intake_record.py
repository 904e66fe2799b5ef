"""
Dossier d'intake côté client: un seul enregistrement typé et versionné.

Remplace les clés éparses de l'ancien format (intake_name, intake_contact,
intake_dob, intake_address), chacune contenant un JSON parsé indépendamment.
Contrat de lecture:
- enregistrement courant (INTAKE_RECORD_KEY, version connue) -> valeurs typées
- enregistrement absent -> migration depuis les anciennes clés
- JSON illisible, version inconnue ou champs invalides -> valeurs par défaut (jamais d'exception)
"""
import json
import logging
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from intake_backend.checkout.models import ShippingAddress
from intake_backend.session.storage import Storage, write_json

logger = logging.getLogger(__name__)

INTAKE_RECORD_KEY = "intake_record"
INTAKE_RECORD_VERSION = 1
LEGACY_NAME_KEY = "intake_name"
LEGACY_CONTACT_KEY = "intake_contact"
LEGACY_DOB_KEY = "intake_dob"
LEGACY_ADDRESS_KEY = "intake_address"
LEGACY_KEYS = (LEGACY_NAME_KEY, LEGACY_CONTACT_KEY, LEGACY_DOB_KEY, LEGACY_ADDRESS_KEY)


class DateOfBirth(BaseModel):
    month: str = ""
    day: str = ""
    year: str = ""

    def formatted(self) -> str:
        """MM/DD/YYYY uniquement si les trois parties sont présentes."""
        if self.month and self.day and self.year:
            return f"{self.month}/{self.day}/{self.year}"
        return ""


class IntakeRecord(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    version: int = INTAKE_RECORD_VERSION
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    phone: str = ""
    dob: DateOfBirth = Field(default_factory=DateOfBirth)
    address: Optional[ShippingAddress] = None

    def is_empty(self) -> bool:
        return self == IntakeRecord()

# module intake_backend.session.intake_record
def safe_json_parse(raw: Optional[str], fallback: Any) -> Any:
    """JSON objet/tableau ou `fallback` (valeur absente, non JSON ou illisible)."""
    if not raw:
        return fallback
    trimmed = raw.strip()
    if not trimmed.startswith(("{", "[")):
        return fallback
    try:
        return json.loads(trimmed)
    except ValueError:
        logger.warning("session.intake_record malformed json")
        return fallback

def _text(value: Any) -> str:
    if value is None or isinstance(value, (dict, list)):
        return ""
    return str(value)

def _mapping(raw: Optional[str]) -> Dict[str, Any]:
    parsed = safe_json_parse(raw, {})
    return parsed if isinstance(parsed, dict) else {}

def address_from_mapping(data: Dict[str, Any]) -> Optional[ShippingAddress]:
    """Adresse si street ou fullAddress est renseigné, sinon None."""
    street = _text(data.get("street"))
    full_address = _text(data.get("fullAddress") or data.get("full_address"))
    if not street and not full_address:
        return None
    return ShippingAddress(
        street=street,
        unit=_text(data.get("unit")),
        city=_text(data.get("city")),
        state=_text(data.get("state")),
        zip_code=_text(data.get("zipCode") or data.get("zip_code")),
        full_address=full_address,
    )

def parse_intake_record(raw: Optional[str]) -> IntakeRecord:
    data = _mapping(raw)
    if not data:
        return IntakeRecord()
    if data.get("version") != INTAKE_RECORD_VERSION:
        logger.warning("session.intake_record unknown version=%r, using defaults", data.get("version"))
        return IntakeRecord()
    try:
        return IntakeRecord.model_validate(data)
    except ValidationError as e:
        logger.warning("session.intake_record invalid fields errors=%s, using defaults", e.error_count())
        return IntakeRecord()

def migrate_legacy(storage: Storage) -> IntakeRecord:
    """Construit l'enregistrement à partir des anciennes clés (chacune tolérée si illisible)."""
    name = _mapping(storage.get_item(LEGACY_NAME_KEY))
    contact = _mapping(storage.get_item(LEGACY_CONTACT_KEY))
    dob = _mapping(storage.get_item(LEGACY_DOB_KEY))
    address = _mapping(storage.get_item(LEGACY_ADDRESS_KEY))
    return IntakeRecord(
        first_name=_text(name.get("firstName")),
        last_name=_text(name.get("lastName")),
        email=_text(contact.get("email")),
        phone=_text(contact.get("phone")),
        dob=DateOfBirth(
            month=_text(dob.get("month")),
            day=_text(dob.get("day")),
            year=_text(dob.get("year")),
        ),
        address=address_from_mapping(address),
    )

def load_intake_record(storage: Storage) -> IntakeRecord:
    raw = storage.get_item(INTAKE_RECORD_KEY)
    if raw is not None:
        return parse_intake_record(raw)
    return migrate_legacy(storage)

def save_intake_record(storage: Storage, record: IntakeRecord) -> None:
    write_json(storage, INTAKE_RECORD_KEY, record.model_dump(mode="json", by_alias=True))

def migrate_storage(storage: Storage) -> IntakeRecord:
    """
    Migration explicite vers le format versionné:
    écrit l'enregistrement puis supprime les anciennes clés. Sans effet si déjà migré.
    """
    if storage.get_item(INTAKE_RECORD_KEY) is not None:
        return load_intake_record(storage)
    record = migrate_legacy(storage)
    save_intake_record(storage, record)
    for key in LEGACY_KEYS:
        storage.remove_item(key)
    logger.info("session.intake_record migrated legacy keys")
    return record
