from intake_backend.payments.webhook import handle_event


def _event(event_type, obj):
    return {"id": "evt_1", "type": event_type, "data": {"object": obj}}


def test_succeeded_marks_record_paid(crm_calls):
    obj = {"id": "pi_1", "amount": 39900, "metadata": {"intakeId": "rec123", "productName": "Monthly"}}
    assert handle_event(_event("payment_intent.succeeded", obj)) == "recorded"
    assert crm_calls == [{
        "intake_id": "rec123",
        "status": "Paid",
        "payment_intent_id": "pi_1",
        "amount_cents": 39900,
        "product_name": "Monthly",
    }]


def test_failed_marks_record_failed(crm_calls):
    obj = {"id": "pi_2", "amount": 104900, "metadata": {"intakeId": "rec456"}}
    handle_event(_event("payment_intent.payment_failed", obj))
    assert crm_calls[0]["status"] == "Failed"
    assert crm_calls[0]["intake_id"] == "rec456"


def test_subscription_events_are_only_logged(crm_calls):
    assert handle_event(_event("customer.subscription.updated", {"id": "sub_1", "status": "active"})) == "logged"
    assert crm_calls == []


def test_unknown_events_are_ignored(crm_calls):
    assert handle_event(_event("charge.refunded", {"id": "ch_1"})) == "ignored"
    assert crm_calls == []
