import pytest
from typing import Generator
from fastapi.testclient import TestClient
from unittest.mock import MagicMock

from intake_backend.app_setup.factory import create_app
from intake_backend.utils.rate_limit import InMemoryRateLimitStore

# Marquage automatique selon le dossier
def pytest_collection_modifyitems(config, items):
    for item in items:
        nodeid = item.nodeid.replace("\\", "/")
        if "tests/unit/" in nodeid:
            item.add_marker(pytest.mark.unit)
        elif "tests/integration/" in nodeid:
            item.add_marker(pytest.mark.integration)

@pytest.fixture()
def rate_limit_store() -> InMemoryRateLimitStore:
    """Store neuf par test: aucun compteur partagé entre tests."""
    return InMemoryRateLimitStore()

@pytest.fixture()
def app(rate_limit_store):
    return create_app(rate_limit_store=rate_limit_store)

@pytest.fixture()
def client(app) -> Generator[TestClient, None, None]:
    with TestClient(app) as c:
        yield c

# Configuration de test: clés factices, CRM désactivé (aucun appel réseau)
@pytest.fixture(autouse=True)
def _test_config(monkeypatch):
    monkeypatch.setattr("intake_backend.config.STRIPE_SECRET_KEY", "sk_test_dummy")
    monkeypatch.setattr("intake_backend.config.STRIPE_WEBHOOK_SECRET", "whsec_test")
    monkeypatch.setattr("intake_backend.config.STRIPE_METADATA_SOURCE", "otmens-intake")
    monkeypatch.setattr("intake_backend.config.AIRTABLE_PAT", "")
    monkeypatch.setattr("intake_backend.config.AIRTABLE_BASE_ID", "")
    monkeypatch.setattr("intake_backend.config.RATE_LIMIT_ENABLED", True)
    monkeypatch.setattr("intake_backend.config.RATE_LIMIT_MAX_REQUESTS", 60)
    monkeypatch.setattr("intake_backend.config.RATE_LIMIT_WINDOW_SECONDS", 60)

# Supabase: jamais de vrai client pendant les tests
@pytest.fixture(autouse=True)
def mock_supabase(monkeypatch):
    client = MagicMock()
    monkeypatch.setattr("intake_backend.infra.supabase_client.get_service_supabase", lambda: client)
    return client

@pytest.fixture
def crm_calls(monkeypatch):
    """Remplace la synchro Airtable et enregistre les appels."""
    calls = []

    def _fake_patch(**kwargs):
        calls.append(kwargs)
        return True

    monkeypatch.setattr("intake_backend.records.repository.patch_payment_status", _fake_patch)
    return calls
