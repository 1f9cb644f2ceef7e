import json

from factories import make_server, make_snapshot


def _events(text):
    return [json.loads(line[len("data:"):].strip()) for line in text.splitlines() if line.startswith("data:")]


def test_chart_stream_count_one(client):
    client.post("/api/snapshots", json=make_snapshot(1000, make_server(cpu=42.0)))
    resp = client.get("/api/servers/1/charts/stream?count=1")
    assert resp.status_code == 200
    assert resp.headers.get("Content-Type", "").startswith("text/event-stream")

    events = _events(resp.get_data(as_text=True))
    assert len(events) == 1
    payload = events[0]
    assert payload["id"] == 1
    cpu = payload["charts"][0]
    assert cpu["current"] == {"cpu": 42.0}
    assert payload["overview"]["name"] == "web-1"


def test_chart_stream_multiple_events(client):
    client.post("/api/snapshots", json=make_snapshot(1000, make_server(host_id=7, name="db-7")))
    resp = client.get("/api/servers/7/charts/stream?count=3")
    events = _events(resp.get_data(as_text=True))
    assert len(events) == 3
    assert all(e["id"] == 7 and e["overview"]["name"] == "db-7" for e in events)


def test_chart_stream_for_unknown_host_is_404(client, registry):
    resp = client.get("/api/servers/7/charts/stream?count=3")
    assert resp.status_code == 404
    assert registry.hosts == {}
