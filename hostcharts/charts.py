"""Chart state for every monitored host.

``HostCharts`` owns the window buffers of one host (one per metric) and is
the only place that bootstraps them. ``ChartRegistry`` holds the process-wide
pieces: the history log replayed into newly mounted charts, the clock offset
of the live feed and the mounted hosts.
"""
import logging
import math
import threading
from collections import deque
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, NamedTuple, Optional

from .clock_sync import ClockSync, format_duration, format_elapsed_label, format_time_ago, now_ms
from .series import MetricSpec, as_float, find_server, gpu_names, metric_by_name, metrics_for_server
from .window_buffer import CAPACITY, WINDOW_SPAN_MS, Sample, WindowBuffer

logger = logging.getLogger(__name__)

# A host counts as online if it reported within this many ms of server "now"
ONLINE_THRESHOLD_MS = 30000


class InvalidSnapshot(ValueError):
    pass


class PresenterConfig(NamedTuple):
    translucent_cards: bool = False


def validate_snapshot(snapshot: Any) -> int:
    """Return the snapshot's server timestamp or raise ``InvalidSnapshot``."""
    if not isinstance(snapshot, Mapping):
        raise InvalidSnapshot("snapshot must be a JSON object")
    now = snapshot.get("now")
    if isinstance(now, bool) or not isinstance(now, (int, float)):
        raise InvalidSnapshot("missing or non-numeric field: now")
    if not math.isfinite(now):
        raise InvalidSnapshot("non-finite field: now")
    if not isinstance(snapshot.get("servers"), list):
        raise InvalidSnapshot("missing field: servers")
    return int(now)


def parse_last_active(value: Any) -> int:
    """Epoch ms of a host's ``last_active`` string, 0 when unknown."""
    if not isinstance(value, str) or not value or value.startswith("000"):
        return 0
    try:
        dt = datetime.fromisoformat(value)
    except ValueError:
        logger.debug("Unparseable last_active %r", value)
        return 0
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp() * 1000)


def format_boot_time(boot_ms: int) -> str:
    """ISO-8601 UTC string of a boot timestamp, empty when unknown."""
    if not boot_ms:
        return ""
    try:
        return datetime.fromtimestamp(boot_ms / 1000, tz=timezone.utc).isoformat()
    except (OverflowError, OSError, ValueError):
        logger.debug("Boot time out of range: %r", boot_ms)
        return ""


class HostCharts:
    def __init__(self, host_id: int, capacity: int = CAPACITY, window_span_ms: int = WINDOW_SPAN_MS):
        self.host_id = host_id
        self.capacity = capacity
        self.window_span_ms = window_span_ms
        self.buffers: Dict[str, WindowBuffer] = {}
        self.latest_server: Optional[Mapping[str, Any]] = None

    def _buffer_for(self, spec: MetricSpec, replay=()) -> WindowBuffer:
        buf = self.buffers.get(spec.name)
        if buf is None:
            buf = WindowBuffer(spec.channels, self.capacity, self.window_span_ms, spec.interpolate)
            self.buffers[spec.name] = buf
        if not buf.bootstrapped:
            buf.bootstrap(Sample(ts, spec.extract(server)) for ts, server in replay)
        return buf

    def bootstrap(self, history: Iterable[Mapping[str, Any]]) -> None:
        """Seed every metric from ``history`` (newest-first, as the log keeps it).

        Records without this host are skipped and only the newest
        ``capacity`` of the rest are replayed. Metrics that only show up
        later start from an empty window.
        """
        replay = []
        for record in reversed(list(history)):
            server = find_server(record, self.host_id)
            if server is None:
                continue
            replay.append((int(record["now"]), server))
        replay = replay[-self.capacity:]
        if replay:
            self.latest_server = replay[-1][1]
            for spec in metrics_for_server(self.latest_server):
                self._buffer_for(spec, replay)
        logger.debug("Bootstrapped host %s from %d records", self.host_id, len(replay))

    def append(self, server: Mapping[str, Any], timestamp: int, now: int) -> None:
        for spec in metrics_for_server(server):
            buf = self._buffer_for(spec)
            buf.append(Sample(timestamp, spec.extract(server)), now)
        self.latest_server = server

    def specs(self) -> List[MetricSpec]:
        if self.latest_server is not None:
            return metrics_for_server(self.latest_server)
        return [s for s in (metric_by_name(n) for n in self.buffers) if s is not None]

    def payload(self, now: int) -> List[Dict[str, Any]]:
        charts = []
        for spec in self.specs():
            buf = self.buffers.get(spec.name)
            points = buf.snapshot() if buf is not None else ()
            if points:
                current = dict(points[-1].channels)
            elif self.latest_server is not None:
                current = spec.extract(self.latest_server)
            else:
                current = {}
            charts.append({
                "metric": spec.name,
                "label": spec.label,
                "channels": list(spec.channels),
                "scaling": spec.scaling.kind,
                "domain": spec.scaling.compute(points).as_list(),
                "current": current,
                "points": [
                    {
                        "timestamp": p.timestamp,
                        "label": format_elapsed_label(p.timestamp, now),
                        "values": dict(p.channels),
                    }
                    for p in points
                ],
            })
        return charts


class ChartRegistry:
    def __init__(
        self,
        history_size: int = 120,
        capacity: int = CAPACITY,
        window_span_ms: int = WINDOW_SPAN_MS,
    ):
        self.history: deque = deque(maxlen=max(1, int(history_size)))
        self.capacity = capacity
        self.window_span_ms = window_span_ms
        self.clock = ClockSync()
        self.hosts: Dict[int, HostCharts] = {}
        self.ingested = 0
        self.lock = threading.Lock()

    def ingest(self, snapshot: Mapping[str, Any], local_now: Optional[int] = None) -> int:
        """Take one live snapshot. Returns the number of mounted hosts updated."""
        server_now = validate_snapshot(snapshot)
        if local_now is None:
            local_now = now_ms()
        updated = 0
        with self.lock:
            self.clock.update(server_now, local_now)
            now = self.clock.server_time(local_now)
            for host_id, charts in self.hosts.items():
                server = find_server(snapshot, host_id)
                if server is None:
                    logger.debug("Host %s missing from snapshot at %d", host_id, server_now)
                    continue
                charts.append(server, server_now, now)
                updated += 1
            # Only snapshots that charted cleanly are kept for replay
            self.history.appendleft(snapshot)
            self.ingested += 1
        return updated

    def _mount_locked(self, host_id: int) -> HostCharts:
        charts = self.hosts.get(host_id)
        if charts is None:
            charts = HostCharts(host_id, self.capacity, self.window_span_ms)
            charts.bootstrap(self.history)
            self.hosts[host_id] = charts
            logger.info("Mounted charts for host %s (%d history records)", host_id, len(self.history))
        return charts

    def mount(self, host_id: int) -> HostCharts:
        with self.lock:
            return self._mount_locked(host_id)

    def unmount(self, host_id: int) -> bool:
        with self.lock:
            charts = self.hosts.pop(host_id, None)
        if charts is not None:
            logger.info("Unmounted charts for host %s", host_id)
        return charts is not None

    def _latest_server(self, host_id: int) -> Optional[Mapping[str, Any]]:
        for record in self.history:
            server = find_server(record, host_id)
            if server is not None:
                return server
        return None

    def servers(self) -> List[Dict[str, Any]]:
        with self.lock:
            if not self.history:
                return []
            latest = self.history[0]
        return [
            {"id": s.get("id"), "name": s.get("name", "")}
            for s in latest.get("servers", [])
            if isinstance(s, Mapping)
        ]

    def recent_history(self, limit: Optional[int] = None) -> List[Mapping[str, Any]]:
        with self.lock:
            records = list(self.history)
        return records[:limit] if limit is not None else records

    def chart_payload(
        self,
        host_id: int,
        presenter: PresenterConfig = PresenterConfig(),
        local_now: Optional[int] = None,
    ) -> Optional[Dict[str, Any]]:
        """Chart payload for ``host_id``, or None if the host was never seen.

        A host found in the history log is mounted on first request.
        """
        with self.lock:
            if host_id not in self.hosts and self._latest_server(host_id) is None:
                return None
            charts = self._mount_locked(host_id)
            now = self.clock.server_time(local_now)
            return {
                "id": host_id,
                "now": now,
                "presenter": presenter._asdict(),
                "charts": charts.payload(now),
            }

    def overview(self, host_id: int, local_now: Optional[int] = None) -> Optional[Dict[str, Any]]:
        with self.lock:
            server = self._latest_server(host_id)
            server_now = self.clock.server_time(local_now)
        if server is None:
            return None

        last_active = parse_last_active(server.get("last_active"))
        host = server.get("host") if isinstance(server.get("host"), Mapping) else {}
        state = server.get("state") if isinstance(server.get("state"), Mapping) else {}
        boot_ms = as_float(host.get("boot_time")) * 1000
        boot_ms = int(boot_ms) if math.isfinite(boot_ms) else 0
        cpu_info = host.get("cpu") if isinstance(host.get("cpu"), list) else []

        return {
            "id": host_id,
            "name": server.get("name", ""),
            "online": bool(last_active) and server_now - last_active <= ONLINE_THRESHOLD_MS,
            "last_active_ago": format_time_ago(max(0, server_now - last_active) // 1000) if last_active else "",
            "uptime": format_duration(max(0, server_now - boot_ms) // 1000) if boot_ms else "",
            "server_time": server_now,
            "platform": str(host.get("platform") or ""),
            "platform_version": str(host.get("platform_version") or ""),
            "arch": str(host.get("arch") or ""),
            "version": str(host.get("version") or ""),
            "cpu_info": [str(c) for c in cpu_info],
            "gpu_info": gpu_names(server),
            "mem_total": as_float(host.get("mem_total")),
            "swap_total": as_float(host.get("swap_total")),
            "disk_total": as_float(host.get("disk_total")),
            "load_1": as_float(state.get("load_1")),
            "load_5": as_float(state.get("load_5")),
            "load_15": as_float(state.get("load_15")),
            "net_in_transfer": as_float(state.get("net_in_transfer")),
            "net_out_transfer": as_float(state.get("net_out_transfer")),
            "boot_time": format_boot_time(boot_ms),
        }

    def stats(self) -> Dict[str, Any]:
        """Point counts and latest values, for the Prometheus endpoint."""
        with self.lock:
            buffers = []
            for host_id, charts in self.hosts.items():
                for name, buf in charts.buffers.items():
                    latest = buf.latest()
                    buffers.append({
                        "host": host_id,
                        "metric": name,
                        "points": len(buf),
                        "values": dict(latest.channels) if latest else {},
                    })
            return {
                "buffers": buffers,
                "history": len(self.history),
                "ingested": self.ingested,
                "clock_offset_ms": self.clock.offset_ms,
            }
