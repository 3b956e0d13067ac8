from src.helpdesk.observability.metrics import sanitize_path


def test_metrics_endpoint_exposes_histogram_and_counters(client):
    # Trigger requests so the histogram and chat counter have observations
    assert client.get("/health").status_code == 200
    assert client.post("/chat", json={"userId": "u1", "message": "Laptop overheating"}).status_code == 200

    m = client.get("/metrics")
    assert m.status_code == 200
    body = m.text
    assert "# TYPE helpdesk_request_latency_seconds histogram" in body
    assert "helpdesk_chat_messages_total" in body
    assert 'outcome="accepted"' in body


def test_health_reports_store_and_scheduler(client):
    body = client.get("/health").json()
    assert body["status"] == "ok"
    assert body["components"]["store"] == "memory"
    assert body["components"]["scheduler"] == "stopped"


def test_health_reports_generator_provider(client, monkeypatch):
    for key in ("GEMINI_API_KEY", "OPENAI_API_KEY", "HELPDESK_MODEL_PROVIDER"):
        monkeypatch.delenv(key, raising=False)
    assert client.get("/health").json()["components"]["generator"] == "unconfigured"
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    assert client.get("/health").json()["components"]["generator"] == "openai"


def test_sanitize_path_collapses_ids():
    assert sanitize_path("/conversations/abc123/messages") == "/conversations"
    assert sanitize_path("/articles?page=2") == "/articles"
    assert sanitize_path("") == "/"
