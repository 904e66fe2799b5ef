import logging
from typing import Any, Dict, List

logger = logging.getLogger(__name__)

# module intake_backend.audit.repository
def insert_events(rows: List[Dict[str, Any]]) -> int:
    """
    Insère les événements d'audit dans la table Supabase (AUDIT_TABLE_NAME).
    Best-effort: Supabase non configuré ou en erreur -> journalisé, retourne 0.
    """
    if not rows:
        return 0
    from intake_backend.config import AUDIT_TABLE_NAME
    # Importer le module pour bénéficier des monkeypatchs de tests
    from intake_backend.infra import supabase_client
    try:
        client = supabase_client.get_service_supabase()
        res = client.table(AUDIT_TABLE_NAME).insert(rows).execute()
    except Exception:
        logger.exception("Erreur insert_events table=%s count=%s", AUDIT_TABLE_NAME, len(rows))
        return 0
    data = getattr(res, "data", None) or []
    return len(data) if isinstance(data, list) else len(rows)
