AUDIT_URL = "/api/audit"


def _event(**overrides):
    event = {
        "eventType": "FORM_STEP_COMPLETED",
        "timestamp": "2026-01-05T10:00:00.000Z",
        "sessionId": "sess-1",
        "userAgent": "Mozilla/5.0",
        "ipAddress": "client",
        "resource": "intake-form",
        "action": "complete",
        "details": {"stepId": "dob"},
        "success": True,
    }
    event.update(overrides)
    return event


def test_events_are_stored_with_real_ip(client, mock_supabase):
    mock_supabase.table.return_value.insert.return_value.execute.return_value.data = [{"id": 1}, {"id": 2}]
    r = client.post(
        AUDIT_URL,
        json={"events": [_event(), _event(eventType="SESSION_START")]},
        headers={"x-forwarded-for": "203.0.113.7"},
    )
    assert r.status_code == 200
    assert r.json() == {"received": 2}
    rows = mock_supabase.table.return_value.insert.call_args[0][0]
    assert [row["event_type"] for row in rows] == ["FORM_STEP_COMPLETED", "SESSION_START"]
    assert all(row["ip_address"] == "203.0.113.7" for row in rows)
    assert rows[0]["details"] == {"stepId": "dob"}


def test_storage_failure_still_acknowledged(client, mock_supabase):
    mock_supabase.table.return_value.insert.return_value.execute.side_effect = RuntimeError("db down")
    r = client.post(AUDIT_URL, json={"events": [_event()]})
    assert r.status_code == 200
    assert r.json() == {"received": 1}


def test_events_must_be_a_list(client):
    r = client.post(AUDIT_URL, json={"events": {"eventType": "SESSION_START"}})
    assert r.status_code == 400
    assert r.json() == {"error": "events must be a list"}


def test_invalid_event_rejected(client, mock_supabase):
    r = client.post(AUDIT_URL, json={"events": [_event(eventType="NOT_AN_EVENT")]})
    assert r.status_code == 400
    assert r.json() == {"error": "Invalid audit event"}
    mock_supabase.table.assert_not_called()


def test_invalid_json(client):
    r = client.post(AUDIT_URL, content=b"{", headers={"content-type": "application/json"})
    assert r.status_code == 400
    assert r.json() == {"error": "Invalid JSON body"}
