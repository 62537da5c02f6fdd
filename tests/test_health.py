def test_health_status(client):
    response = client.get("/health")
    assert response.status_code == 200

    data = response.json()
    assert data["status"] == "ok"
    assert "timestamp" in data
    assert data["app"] == "moneybuddy"


def test_root_banner(client):
    response = client.get("/")
    assert response.status_code == 200
    assert "MoneyBuddy" in response.json()["message"]


def test_metrics_endpoint_exposed(client):
    """
    The Prometheus /metrics endpoint is available
    and returns something that looks like metrics text.
    """
    client.get("/health")
    resp = client.get("/metrics")
    assert resp.status_code == 200

    text = resp.text
    # Prometheus text format usually starts with '# HELP' / '# TYPE'
    assert "# HELP" in text or "# TYPE" in text
