from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class AuditEventType(str, Enum):
    SESSION_START = "SESSION_START"
    SESSION_END = "SESSION_END"
    SESSION_TIMEOUT = "SESSION_TIMEOUT"
    PHI_ACCESS = "PHI_ACCESS"
    PHI_UPDATE = "PHI_UPDATE"
    PHI_DELETE = "PHI_DELETE"
    CONSENT_ACCEPTED = "CONSENT_ACCEPTED"
    CONSENT_REVOKED = "CONSENT_REVOKED"
    FORM_SUBMITTED = "FORM_SUBMITTED"
    FORM_STEP_COMPLETED = "FORM_STEP_COMPLETED"
    API_REQUEST = "API_REQUEST"
    API_ERROR = "API_ERROR"
    AUTH_ATTEMPT = "AUTH_ATTEMPT"
    AUTH_SUCCESS = "AUTH_SUCCESS"
    AUTH_FAILURE = "AUTH_FAILURE"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class AuditEvent(BaseModel):
    """
    Événement d'audit (accès PHI, session, consentement, formulaire).
    Accepte les clés camelCase (navigateur) comme snake_case; sérialisé en snake_case.
    Aucun contenu PHI dans `details`: uniquement des identifiants techniques.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, use_enum_values=True)

    timestamp: str = Field(default_factory=utc_now_iso)
    event_type: AuditEventType
    session_id: str = "unknown"
    user_id: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    resource: Optional[str] = None
    action: Optional[str] = None
    details: Optional[Dict[str, Any]] = None
    success: bool = True
    error_message: Optional[str] = None

    def to_row(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")
