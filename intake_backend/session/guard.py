"""
Cycle de vie de la session d'intake (données de santé côté client).

- Inactivité: avertissement `warning_time` avant l'expiration, puis expiration à `timeout`.
  Les signaux d'activité sont limités à une réinitialisation par seconde.
- Expiration: effacement des données d'intake, événement SESSION_TIMEOUT,
  puis on_timeout() ou redirection vers /?session=expired.
- Montage: un rechargement de page avec des réponses déjà saisies efface tout
  et renvoie à l'accueil (pas de reprise d'une session à moitié remplie).
- Fermeture d'onglet: confirmation demandée seulement si des données existent
  et qu'aucune redirection vers le checkout n'est en cours.
"""
import logging
import math
import threading
from typing import Callable, List, Optional

from intake_backend.audit.models import AuditEventType
from intake_backend.audit.trail import AuditTrail
from intake_backend.session.intake_record import INTAKE_RECORD_KEY
from intake_backend.session.scheduling import Clock, Scheduler, ThreadScheduler, TimerHandle, default_clock
from intake_backend.session.storage import Storage

logger = logging.getLogger(__name__)

ACTIVITY_EVENTS = frozenset({"mousedown", "mousemove", "keydown", "scroll", "touchstart", "click"})
ACTIVITY_THROTTLE_SECONDS = 1.0
EXPIRED_REDIRECT = "/?session=expired"
RELOAD_REDIRECT = "/"

LOCAL_INTAKE_STORE_KEY = "eon-intake-storage"
NAVIGATION_FLAG_KEY = "intake_navigation_flag"
CHECKOUT_REDIRECT_KEY = "checkout_redirect_in_progress"

# Clés connues du tunnel d'intake (réponses, consentements, suivi de soumission)
INTAKE_STORAGE_KEYS = (
    "intake_goals", "intake_name", "intake_state", "intake_contact", "intake_dob",
    "intake_address", "intake_sex", "intake_ideal_weight", "intake_current_weight",
    "intake_height", "intake_session_id", "intake_checkpoints", "intake_submitted",
    "intake_id", "intake_pending_sync", INTAKE_RECORD_KEY,
    "activity_level", "medication_preference", "glp1_history", "glp1_type",
    "has_chronic_conditions", "chronic_conditions", "digestive_conditions",
    "taking_medications", "current_medications", "allergies",
    "has_mental_health_condition", "mental_health_conditions", "surgery_history",
    "surgery_details", "blood_pressure", "alcohol_consumption", "common_side_effects",
    "personalized_treatment_interest", "referral_sources", "referrer_name",
    "referrer_type", "health_improvements", "completed_checkpoints",
    "personal_thyroid_cancer", "personal_men", "personal_pancreatitis",
    "personal_gastroparesis", "personal_diabetes_t2", "pregnancy_breastfeeding",
    "semaglutide_dosage", "semaglutide_side_effects", "semaglutide_success",
    "tirzepatide_dosage", "tirzepatide_side_effects", "tirzepatide_success",
    "dosage_satisfaction", "dosage_interest", "recreational_drugs",
    "weight_loss_history", "weight_loss_support", "kidney_conditions",
    "medical_conditions", "family_conditions",
    "privacy_policy_accepted", "privacy_policy_accepted_at",
    "terms_of_use_accepted", "terms_of_use_accepted_at",
    "consent_privacy_policy_accepted", "consent_privacy_policy_accepted_at",
    "telehealth_consent_accepted", "telehealth_consent_accepted_at",
    "cancellation_policy_accepted", "cancellation_policy_accepted_at",
    "florida_bill_of_rights_accepted", "florida_bill_of_rights_accepted_at",
    "florida_consent_accepted", "florida_consent_accepted_at",
    "submission_status", "submission_error", "submitted_intake_id",
    CHECKOUT_REDIRECT_KEY,
)

# Présence d'une de ces clés = le patient a commencé l'intake
STARTED_MARKER_KEYS = ("intake_goals", "intake_name", "intake_state", INTAKE_RECORD_KEY)

# module intake_backend.session.guard
def is_phi_key(key: str) -> bool:
    return key.startswith("intake_") or "consent" in key or "personal" in key


class SessionTimeoutGuard:
    def __init__(
        self,
        storage: Storage,
        local_storage: Optional[Storage] = None,
        timeout: Optional[float] = None,
        warning_time: Optional[float] = None,
        on_warning: Optional[Callable[[int], None]] = None,
        on_timeout: Optional[Callable[[], None]] = None,
        navigate: Optional[Callable[[str], None]] = None,
        audit: Optional[AuditTrail] = None,
        scheduler: Optional[Scheduler] = None,
        clock: Optional[Clock] = None,
        enabled: bool = True,
    ):
        from intake_backend.config import SESSION_TIMEOUT_SECONDS, SESSION_WARNING_SECONDS
        self.storage = storage
        self.local_storage = local_storage
        self.timeout = float(timeout if timeout is not None else SESSION_TIMEOUT_SECONDS)
        self.warning_time = float(warning_time if warning_time is not None else SESSION_WARNING_SECONDS)
        self.on_warning = on_warning
        self.on_timeout = on_timeout
        self.navigate = navigate
        self.audit = audit
        self.scheduler = scheduler or ThreadScheduler()
        self.clock = clock or default_clock
        self.enabled = enabled

        self.last_activity = self.clock()
        self._warning_handle: Optional[TimerHandle] = None
        self._timeout_handle: Optional[TimerHandle] = None
        self._throttle_handle: Optional[TimerHandle] = None
        self.expired = False
        # Les minuteries s'exécutent sur le thread du scheduler: handles et état sous verrou
        self._lock = threading.RLock()

    # --- Minuteries ---

    def start(self) -> None:
        """Arme les minuteries initiales (équivalent de l'installation des écouteurs)."""
        with self._lock:
            self.expired = False
            self.reset_timeout()

    def reset_timeout(self) -> None:
        with self._lock:
            if not self.enabled or self.expired:
                return
            self.last_activity = self.clock()
            self._cancel_timers()
            if self.on_warning is not None and self.warning_time < self.timeout:
                self._warning_handle = self.scheduler.call_later(self.timeout - self.warning_time, self._fire_warning)
            self._timeout_handle = self.scheduler.call_later(self.timeout, self._expire)

    def on_activity(self, event_type: str) -> bool:
        """
        Signal d'activité utilisateur. Retourne True si une réinitialisation a été planifiée.
        Le premier signal planifie un reset 1 s plus tard; les suivants sont ignorés entre-temps.
        Sans effet une fois la session expirée.
        """
        if not self.enabled or event_type not in ACTIVITY_EVENTS:
            return False
        with self._lock:
            if self.expired or self._throttle_handle is not None:
                return False
            self._throttle_handle = self.scheduler.call_later(ACTIVITY_THROTTLE_SECONDS, self._on_throttle_elapsed)
            return True

    def _on_throttle_elapsed(self) -> None:
        with self._lock:
            self._throttle_handle = None
            self.reset_timeout()

    def get_remaining_time(self) -> float:
        return max(0.0, self.timeout - (self.clock() - self.last_activity))

    def _fire_warning(self) -> None:
        with self._lock:
            self._warning_handle = None
            if self.expired or self.on_warning is None:
                return
            minutes = math.ceil(self.get_remaining_time() / 60)
        self.on_warning(minutes)

    def _expire(self) -> None:
        with self._lock:
            if self.expired:
                return
            self.expired = True
            self._timeout_handle = None
            self._cancel_all()
        if self.audit is not None:
            self.audit.log_session_timeout()
        removed = self.clear_session_data()
        logger.warning("session.timeout inactivity, cleared keys=%s", len(removed))
        if self.on_timeout is not None:
            self.on_timeout()
        elif self.navigate is not None:
            self.navigate(EXPIRED_REDIRECT)

    def _cancel_timers(self) -> None:
        # Appelé sous self._lock
        for handle in (self._warning_handle, self._timeout_handle):
            if handle is not None:
                handle.cancel()
        self._warning_handle = None
        self._timeout_handle = None

    def _cancel_all(self) -> None:
        self._cancel_timers()
        if self._throttle_handle is not None:
            self._throttle_handle.cancel()
            self._throttle_handle = None

    def stop(self) -> None:
        with self._lock:
            self._cancel_all()

    # --- Données ---

    def clear_session_data(self) -> List[str]:
        """Efface les clés d'intake (préfixe, consentement, données personnelles, liste connue) et le store local."""
        keys = {k for k in self.storage.keys() if is_phi_key(k)}
        keys.update(k for k in INTAKE_STORAGE_KEYS if self.storage.get_item(k) is not None)
        for key in keys:
            self.storage.remove_item(key)
        if self.local_storage is not None:
            self.local_storage.remove_item(LOCAL_INTAKE_STORE_KEY)
        return sorted(keys)

    def _local_store_present(self) -> bool:
        return self.local_storage is not None and self.local_storage.get_item(LOCAL_INTAKE_STORE_KEY) is not None

    def has_intake_data(self) -> bool:
        if any(self.storage.get_item(k) for k in STARTED_MARKER_KEYS):
            return True
        return self._local_store_present()

    def on_mount(self, navigation_type: Optional[str] = None) -> bool:
        """
        À chaque montage de la zone d'intake.
        - reload avec données existantes: effacement + redirection vers l'accueil (retourne True)
        - sinon: pose intake_navigation_flag (retourne False)
        """
        if self.audit is not None:
            self.audit.log_session_start()
        if navigation_type == "reload" and self.has_intake_data():
            if self.audit is not None:
                self.audit.log_event(AuditEventType.PHI_DELETE, resource="session", action="reload-wipe")
            removed = self.clear_session_data()
            logger.info("session.reload wipe cleared keys=%s", len(removed))
            if self.navigate is not None:
                self.navigate(RELOAD_REDIRECT)
            return True
        self.storage.set_item(NAVIGATION_FLAG_KEY, "true")
        return False

    def should_prompt_before_unload(self) -> bool:
        if self.storage.get_item(CHECKOUT_REDIRECT_KEY) == "true":
            return False
        return self.has_intake_data() or bool(self.storage.get_item("intake_contact"))
