from factories import make_server, make_snapshot


def test_metrics_endpoint(client):
    client.post("/api/snapshots", json=make_snapshot(1000, make_server(cpu=12.5)))
    client.post("/api/servers/1/charts")
    client.post("/api/snapshots", json=make_snapshot(2000, make_server(cpu=15.0)))

    resp = client.get("/metrics")
    assert resp.status_code == 200
    content_type = resp.headers.get("Content-Type", "")
    assert "text" in content_type
    assert b"hostcharts_buffer_points" in resp.data
    assert b'hostcharts_latest_value{host="1",metric="cpu",channel="cpu"} 15.0' in resp.data
    assert b"hostcharts_history_records 2.0" in resp.data
    assert b"hostcharts_clock_offset_ms" in resp.data
    assert b"hostcharts_memory_rss_bytes" in resp.data
