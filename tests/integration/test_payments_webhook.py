import hashlib
import hmac
import json
import time

WEBHOOK_URL = "/api/stripe/webhook"


def _sign(payload: bytes, secret: str = "whsec_test") -> str:
    ts = int(time.time())
    signed = f"{ts}.".encode() + payload
    signature = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={ts},v1={signature}"


def _payload(event_type: str, obj: dict) -> bytes:
    return json.dumps({"id": "evt_1", "object": "event", "type": event_type, "data": {"object": obj}}).encode()


def test_missing_signature_header(client, crm_calls):
    r = client.post(WEBHOOK_URL, content=_payload("payment_intent.succeeded", {"id": "pi_1"}))
    assert r.status_code == 400
    assert r.json() == {"error": "Missing stripe-signature header"}
    assert crm_calls == []


def test_missing_webhook_secret(client, monkeypatch, crm_calls):
    monkeypatch.setattr("intake_backend.config.STRIPE_WEBHOOK_SECRET", "")
    payload = _payload("payment_intent.succeeded", {"id": "pi_1"})
    r = client.post(WEBHOOK_URL, content=payload, headers={"stripe-signature": _sign(payload)})
    assert r.status_code == 500
    assert r.json() == {"error": "Webhook secret not configured"}


def test_invalid_signature_is_rejected_without_processing(client, crm_calls):
    payload = _payload("payment_intent.succeeded", {"id": "pi_1", "metadata": {"intakeId": "rec123"}})
    r = client.post(WEBHOOK_URL, content=payload, headers={"stripe-signature": _sign(payload, secret="whsec_other")})
    assert r.status_code == 400
    assert r.json() == {"error": "Invalid signature"}
    assert crm_calls == []


def test_tampered_payload_is_rejected(client, crm_calls):
    payload = _payload("payment_intent.succeeded", {"id": "pi_1", "amount": 100})
    header = _sign(payload)
    tampered = payload.replace(b'"amount": 100', b'"amount": 1')
    r = client.post(WEBHOOK_URL, content=tampered, headers={"stripe-signature": header})
    assert r.status_code == 400
    assert crm_calls == []


def test_succeeded_event_updates_crm(client, crm_calls):
    obj = {"id": "pi_1", "object": "payment_intent", "amount": 39900, "metadata": {"intakeId": "rec123", "productName": "Monthly"}}
    payload = _payload("payment_intent.succeeded", obj)
    r = client.post(WEBHOOK_URL, content=payload, headers={"stripe-signature": _sign(payload)})
    assert r.status_code == 200
    assert r.json() == {"received": True}
    assert crm_calls == [{
        "intake_id": "rec123",
        "status": "Paid",
        "payment_intent_id": "pi_1",
        "amount_cents": 39900,
        "product_name": "Monthly",
    }]


def test_side_effect_failure_still_acknowledged(client, monkeypatch):
    def _crm_down(**kwargs):
        raise RuntimeError("CRM down")

    monkeypatch.setattr("intake_backend.records.repository.patch_payment_status", _crm_down)
    obj = {"id": "pi_2", "object": "payment_intent", "amount": 100, "metadata": {"intakeId": "rec9"}}
    payload = _payload("payment_intent.payment_failed", obj)
    r = client.post(WEBHOOK_URL, content=payload, headers={"stripe-signature": _sign(payload)})
    assert r.status_code == 200
    assert r.json() == {"received": True}


def test_unhandled_event_acknowledged(client, crm_calls):
    payload = _payload("invoice.finalized", {"id": "in_1", "object": "invoice"})
    r = client.post(WEBHOOK_URL, content=payload, headers={"stripe-signature": _sign(payload)})
    assert r.status_code == 200
    assert crm_calls == []
