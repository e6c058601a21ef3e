def test_health_reports_counts(client):
    resp = client.get('/health')
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "ok"
    assert body["total_books"] == 0
    assert body["total_members"] == 0


def test_empty_dashboard(client):
    body = client.get('/').json()
    assert body["counts"] == {"books": 0, "members": 0, "active_loans": 0, "pending_fines": 0}
    assert body["recent_transactions"] == []
