from typing import Optional
from supabase import create_client, Client

_service_supabase: Optional[Client] = None

def get_service_supabase() -> Client:
    """Client Supabase service-role (contourne RLS), créé une seule fois."""
    global _service_supabase
    from intake_backend.config import SUPABASE_URL, SUPABASE_SERVICE_KEY
    if not SUPABASE_URL or not SUPABASE_SERVICE_KEY:
        raise RuntimeError("SUPABASE_URL/SUPABASE_SERVICE_KEY manquants pour get_service_supabase()")
    if _service_supabase is None:
        _service_supabase = create_client(SUPABASE_URL, SUPABASE_SERVICE_KEY)
    return _service_supabase
