"""Snapshots of the machine the service runs on.

Produces records in the same shape as the live feed so the local host can be
charted without an external agent.
"""
import logging
import platform
import socket
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import psutil

logger = logging.getLogger(__name__)


def count_connections() -> Dict[str, int]:
    try:
        tcp = len(psutil.net_connections(kind="tcp"))
        udp = len(psutil.net_connections(kind="udp"))
    except (psutil.AccessDenied, PermissionError):
        logger.debug("Not permitted to list connections; reporting 0")
        tcp = udp = 0
    return {"tcp": tcp, "udp": udp}


class LocalCollector:
    """Builds wire-format snapshots from psutil readings.

    Network speeds are derived from the cumulative interface counters, so the
    first reading after construction reports 0 bytes/s.
    """

    def __init__(self, host_id: int = 0, name: Optional[str] = None):
        self.host_id = host_id
        self.name = name or socket.gethostname()
        self._last_net = None
        self._last_net_at = None

    def _net_speeds(self, now: float) -> Dict[str, float]:
        counters = psutil.net_io_counters()
        speeds = {"in": 0.0, "out": 0.0}
        if self._last_net is not None and now > self._last_net_at:
            elapsed = now - self._last_net_at
            speeds["in"] = max(0, counters.bytes_recv - self._last_net.bytes_recv) / elapsed
            speeds["out"] = max(0, counters.bytes_sent - self._last_net.bytes_sent) / elapsed
        self._last_net = counters
        self._last_net_at = now
        return speeds

    def server_record(self, now: Optional[float] = None) -> Dict[str, Any]:
        now = time.time() if now is None else now
        ram = psutil.virtual_memory()
        swap = psutil.swap_memory()
        disk = psutil.disk_usage("/")
        boot_time = psutil.boot_time()
        speeds = self._net_speeds(now)
        conns = count_connections()
        load_1, load_5, load_15 = psutil.getloadavg()

        return {
            "id": self.host_id,
            "name": self.name,
            "last_active": datetime.fromtimestamp(now, tz=timezone.utc).isoformat(),
            "host": {
                "platform": platform.system(),
                "platform_version": platform.release(),
                "arch": platform.machine(),
                "cpu": [f"{platform.processor() or platform.machine()} {psutil.cpu_count() or 0} Core"],
                "mem_total": ram.total,
                "swap_total": swap.total,
                "disk_total": disk.total,
                "gpu": [],
                "boot_time": int(boot_time),
            },
            "state": {
                "cpu": psutil.cpu_percent(interval=None),
                "mem_used": ram.used,
                "swap_used": swap.used,
                "disk_used": disk.used,
                "net_in_speed": speeds["in"],
                "net_out_speed": speeds["out"],
                "net_in_transfer": self._last_net.bytes_recv,
                "net_out_transfer": self._last_net.bytes_sent,
                "tcp_conn_count": conns["tcp"],
                "udp_conn_count": conns["udp"],
                "process_count": len(psutil.pids()),
                "gpu": [],
                "uptime": int(now - boot_time),
                "load_1": load_1,
                "load_5": load_5,
                "load_15": load_15,
            },
        }

    def snapshot(self, now: Optional[float] = None) -> Dict[str, Any]:
        now = time.time() if now is None else now
        return {"now": int(now * 1000), "servers": [self.server_record(now)]}
