"""
Journal d'audit côté client (session d'intake).

- Tampon en mémoire (50 événements max, les plus anciens sont évincés).
- Copie persistée dans le stockage de session sous `audit_log` (100 derniers).
- Envoi groupé différé: au plus un flush toutes les 5 secondes vers un `sink`
  (par ex. http_sink -> POST /api/audit). En cas d'échec le tampon est conservé.
"""
import logging
import threading
from typing import Any, Callable, Dict, List, Optional

import httpx

from intake_backend.audit.models import AuditEvent, AuditEventType
from intake_backend.session.scheduling import Scheduler, ThreadScheduler, TimerHandle
from intake_backend.session.storage import Storage, read_json, write_json

logger = logging.getLogger(__name__)

AUDIT_LOG_KEY = "audit_log"
SESSION_ID_KEY = "intake_session_id"
MAX_BUFFER_SIZE = 50
MAX_STORED_EVENTS = 100
FLUSH_DELAY_SECONDS = 5.0

Sink = Callable[[List[Dict[str, Any]]], Any]

# module intake_backend.audit.trail
def http_sink(url: str, timeout: float = 10.0) -> Sink:
    """Sink HTTP: POST {"events": [...]} ; une réponse non 2xx lève une erreur (tampon conservé)."""
    def send(events: List[Dict[str, Any]]) -> None:
        res = httpx.post(url, json={"events": events}, timeout=timeout)
        res.raise_for_status()
    return send


class AuditTrail:
    def __init__(
        self,
        storage: Storage,
        sink: Optional[Sink] = None,
        scheduler: Optional[Scheduler] = None,
        user_agent: str = "client",
    ):
        self.storage = storage
        self.sink = sink
        self.scheduler = scheduler or ThreadScheduler()
        self.user_agent = user_agent
        self.buffer: List[AuditEvent] = []
        self._flush_handle: Optional[TimerHandle] = None
        # Le flush tourne sur le thread du scheduler: tampon, copie persistée et handle sous verrou
        self._lock = threading.Lock()

    def session_id(self) -> str:
        return self.storage.get_item(SESSION_ID_KEY) or "unknown"

    def log_event(
        self,
        event_type: AuditEventType,
        resource: Optional[str] = None,
        action: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        success: bool = True,
        error_message: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> AuditEvent:
        event = AuditEvent(
            event_type=event_type,
            session_id=self.session_id(),
            user_id=user_id,
            ip_address="client",
            user_agent=self.user_agent,
            resource=resource,
            action=action,
            details=details,
            success=success,
            error_message=error_message,
        )
        logger.debug("audit.event type=%s resource=%s action=%s", event.event_type, resource or "", action or "")

        with self._lock:
            self.buffer.append(event)
            if len(self.buffer) > MAX_BUFFER_SIZE:
                self.buffer.pop(0)

            stored = read_json(self.storage, AUDIT_LOG_KEY, [])
            if not isinstance(stored, list):
                stored = []
            stored.append(event.to_row())
            try:
                write_json(self.storage, AUDIT_LOG_KEY, stored[-MAX_STORED_EVENTS:])
            except Exception:
                # Stockage plein ou indisponible: le tampon mémoire suffit
                logger.warning("audit.persist failed key=%s", AUDIT_LOG_KEY)

            if self.sink is not None:
                self._queue_flush()
        return event

    def _queue_flush(self) -> None:
        # Appelé sous self._lock
        if self._flush_handle is not None:
            return
        self._flush_handle = self.scheduler.call_later(FLUSH_DELAY_SECONDS, self._on_flush_timer)

    def _on_flush_timer(self) -> None:
        with self._lock:
            self._flush_handle = None
        self.flush()

    def flush(self) -> bool:
        """
        Envoie le tampon au sink.
        Le tampon est détaché avant l'envoi: les événements journalisés pendant l'envoi
        restent dans le nouveau tampon. En cas d'échec, les événements envoyés y sont
        remis devant (50 au plus, les plus anciens évincés).
        """
        if self.sink is None:
            return False
        with self._lock:
            pending = self.buffer
            if not pending:
                return False
            self.buffer = []
        events = [e.to_row() for e in pending]
        try:
            self.sink(events)
        except Exception as e:
            logger.warning("audit.flush failed events=%s: %s", len(events), e)
            with self._lock:
                self.buffer = (pending + self.buffer)[-MAX_BUFFER_SIZE:]
            return False
        return True

    def get_audit_log(self) -> List[Dict[str, Any]]:
        stored = read_json(self.storage, AUDIT_LOG_KEY, [])
        return stored if isinstance(stored, list) else []

    def clear_audit_log(self) -> None:
        with self._lock:
            self.storage.remove_item(AUDIT_LOG_KEY)
            self.buffer = []
            if self._flush_handle is not None:
                self._flush_handle.cancel()
                self._flush_handle = None

    # --- Raccourcis ---

    def log_phi_access(self, resource: str, details: Optional[Dict[str, Any]] = None) -> AuditEvent:
        return self.log_event(AuditEventType.PHI_ACCESS, resource=resource, details=details)

    def log_phi_update(self, resource: str, details: Optional[Dict[str, Any]] = None) -> AuditEvent:
        return self.log_event(AuditEventType.PHI_UPDATE, resource=resource, details=details)

    def log_consent_accepted(self, consent_type: str) -> AuditEvent:
        return self.log_event(
            AuditEventType.CONSENT_ACCEPTED, resource="consent", action="accept",
            details={"consentType": consent_type},
        )

    def log_form_step_completed(self, step_id: str) -> AuditEvent:
        return self.log_event(
            AuditEventType.FORM_STEP_COMPLETED, resource="intake-form", action="complete-step",
            details={"stepId": step_id},
        )

    def log_form_submitted(self, record_id: Optional[str] = None) -> AuditEvent:
        return self.log_event(
            AuditEventType.FORM_SUBMITTED, resource="intake-form", action="submit",
            details={"recordId": record_id},
        )

    def log_session_start(self) -> AuditEvent:
        return self.log_event(AuditEventType.SESSION_START, resource="session", action="start")

    def log_session_timeout(self) -> AuditEvent:
        return self.log_event(
            AuditEventType.SESSION_TIMEOUT, resource="session", action="timeout",
            details={"reason": "inactivity"},
        )

    def log_api_request(self, endpoint: str, method: str, success: bool, error_message: Optional[str] = None) -> AuditEvent:
        return self.log_event(
            AuditEventType.API_REQUEST, resource=endpoint, action=method,
            success=success, error_message=error_message,
        )
