import os
import socket
import logging
import time
import json
import threading
from functools import wraps
from typing import Optional

import psutil
from dotenv import load_dotenv
from flask import Flask, Response, abort, current_app, jsonify, request
from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, Gauge, generate_latest

from .charts import ChartRegistry, InvalidSnapshot, PresenterConfig
from .collector import LocalCollector
from .config import CONFIGS, BaseConfig

load_dotenv()


def require_api_key(func):
    @wraps(func)
    def wrapper(*args, **kwargs):
        key = os.getenv("API_KEY")
        # If API_KEY is set, the live feed must present it
        if key:
            provided = request.headers.get("X-API-KEY") or request.args.get("api_key")
            if provided != key:
                abort(401)
        return func(*args, **kwargs)

    return wrapper


def get_registry() -> ChartRegistry:
    return current_app.extensions["hostcharts"]


def presenter_config() -> PresenterConfig:
    return PresenterConfig(translucent_cards=bool(current_app.config.get("CUSTOM_BACKGROUND")))


def _int_arg(name: str, default: Optional[int] = None) -> Optional[int]:
    value = request.args.get(name)
    try:
        return int(value) if value is not None else default
    except ValueError:
        return default


def start_sampler(app: Flask, registry: ChartRegistry) -> threading.Thread:
    """Feed snapshots of the local machine into ``registry`` from a daemon thread."""
    collector = LocalCollector(
        host_id=app.config["LOCAL_HOST_ID"],
        name=app.config.get("LOCAL_HOST_NAME") or None,
    )
    interval = float(app.config.get("METRICS_SAMPLE_INTERVAL", 1))

    def _sampler():
        while True:
            try:
                registry.ingest(collector.snapshot())
            except Exception:
                logging.getLogger(__name__).exception("Error when sampling local host")
            time.sleep(interval)

    t = threading.Thread(target=_sampler, daemon=True, name="hostcharts-sampler")
    t.start()
    return t


def create_app(config_object: object | str | None = None) -> Flask:
    app = Flask(__name__)

    # Load default config then override with provided config object
    env = os.getenv("FLASK_ENV", "").lower()
    app.config.from_object(CONFIGS.get(env, BaseConfig))
    if config_object:
        if isinstance(config_object, str):
            app.config.from_envvar(config_object, silent=True)
        elif isinstance(config_object, type):
            app.config.from_object(config_object)
        else:
            app.config.from_mapping(config_object)

    logging.basicConfig(
        level=app.config["LOG_LEVEL"],
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    # Fail startup in production when FLASK_SECRET_KEY is not set
    if env == "production" and not os.getenv("FLASK_SECRET_KEY"):
        raise RuntimeError(
            "FLASK_SECRET_KEY must be set to a secure value in production"
        )

    registry = ChartRegistry(
        history_size=app.config["HISTORY_MAX_RECORDS"],
        capacity=app.config["WINDOW_CAPACITY"],
        window_span_ms=app.config["WINDOW_SPAN_MS"],
    )
    app.extensions["hostcharts"] = registry

    @app.route("/")
    def index():
        return jsonify({"service": "hostcharts", "servers": get_registry().servers()})

    @app.route("/health")
    def health_check():
        return jsonify({"status": "healthy", "service": "hostcharts"})

    @app.route("/api/snapshots", methods=["POST"])
    @require_api_key
    def ingest_snapshot():
        payload = request.get_json(force=True, silent=True)
        if payload is None:
            return jsonify({"error": "invalid JSON"}), 400
        try:
            updated = get_registry().ingest(payload)
        except InvalidSnapshot as e:
            app.logger.debug(f"Rejected snapshot: {e}")
            return jsonify({"error": str(e)}), 400
        return jsonify({"status": "ok", "updated": updated})

    @app.route("/api/history")
    def api_history():
        """History replay, newest record first.
        Query params:
          - limit (int): maximum number of records to return (default: all kept)
        """
        limit = _int_arg("limit")
        if limit is not None and limit < 0:
            limit = 0
        return jsonify({"records": get_registry().recent_history(limit)})

    @app.route("/api/servers")
    def api_servers():
        return jsonify({"servers": get_registry().servers()})

    @app.route("/api/servers/<int:server_id>/charts", methods=["GET", "POST"])
    def server_charts(server_id):
        registry = get_registry()
        if request.method == "POST":
            registry.mount(server_id)
        payload = registry.chart_payload(server_id, presenter_config())
        if payload is None:
            abort(404)
        return jsonify(payload)

    @app.route("/api/servers/<int:server_id>/charts", methods=["DELETE"])
    def unmount_charts(server_id):
        if not get_registry().unmount(server_id):
            abort(404)
        return jsonify({"status": "ok"})

    @app.route("/api/servers/<int:server_id>/overview")
    def server_overview(server_id):
        overview = get_registry().overview(server_id)
        if overview is None:
            abort(404)
        return jsonify(overview)

    @app.route("/api/servers/<int:server_id>/charts/stream")
    def server_charts_stream(server_id):
        """Server-Sent Events stream of chart payloads for one host.
        - If the optional query param `count` is provided it will send exactly that many events then close (useful for tests).
        - The interval between messages is controlled by REALTIME_INTERVAL (seconds, default 1).
        - Hosts that were never seen get a 404 before the stream starts.
        """
        registry = get_registry()
        presenter = presenter_config()
        interval = float(app.config.get("REALTIME_INTERVAL", 1))
        first = registry.chart_payload(server_id, presenter)
        if first is None:
            abort(404)

        def event_stream(count: Optional[int] = None):
            sent = 0
            payload = first
            try:
                while count is None or sent < count:
                    if payload is None:
                        return
                    payload["overview"] = registry.overview(server_id)
                    yield f"data: {json.dumps(payload)}\n\n"
                    sent += 1
                    if count is None or sent < count:
                        time.sleep(interval)
                        payload = registry.chart_payload(server_id, presenter)
            except GeneratorExit:
                # Client disconnected
                return

        return Response(event_stream(_int_arg("count")), mimetype="text/event-stream")

    @app.route("/metrics")
    def metrics():
        prom = CollectorRegistry()
        hostname = socket.gethostname()
        stats = get_registry().stats()

        points_g = Gauge(
            "hostcharts_buffer_points",
            "Samples currently held in a chart window",
            ["host", "metric"],
            registry=prom,
        )
        value_g = Gauge(
            "hostcharts_latest_value",
            "Newest sample value per chart channel",
            ["host", "metric", "channel"],
            registry=prom,
        )
        history_g = Gauge(
            "hostcharts_history_records", "Snapshots kept for replay", registry=prom
        )
        ingested_g = Gauge(
            "hostcharts_snapshots_ingested", "Live snapshots received", registry=prom
        )
        offset_g = Gauge(
            "hostcharts_clock_offset_ms",
            "Local clock minus feed clock in milliseconds",
            registry=prom,
        )
        mem_rss_g = Gauge(
            "hostcharts_memory_rss_bytes",
            "Process RSS memory in bytes",
            ["hostname"],
            registry=prom,
        )

        for buf in stats["buffers"]:
            points_g.labels(host=str(buf["host"]), metric=buf["metric"]).set(buf["points"])
            for channel, value in buf["values"].items():
                value_g.labels(
                    host=str(buf["host"]), metric=buf["metric"], channel=channel
                ).set(value)
        history_g.set(stats["history"])
        ingested_g.set(stats["ingested"])
        offset_g.set(stats["clock_offset_ms"])

        try:
            mem_rss_g.labels(hostname=hostname).set(psutil.Process().memory_info().rss)
        except psutil.Error:
            mem_rss_g.labels(hostname=hostname).set(0)

        return Response(generate_latest(prom), mimetype=CONTENT_TYPE_LATEST)

    # Security headers
    @app.after_request
    def set_security_headers(response):
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("X-Frame-Options", "DENY")
        response.headers.setdefault("Referrer-Policy", "no-referrer")
        response.headers.setdefault("Content-Security-Policy", "default-src 'self'")
        return response

    # Start background sampler for the local host when enabled and not testing
    if app.config.get("METRICS_SAMPLER_ENABLED") and not app.config.get("TESTING"):
        start_sampler(app, registry)

    return app


__all__ = ["create_app", "require_api_key"]
