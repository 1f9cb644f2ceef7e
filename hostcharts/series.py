"""Per-metric channel extraction from raw host snapshots.

A raw snapshot looks like::

    {"now": 1700000000000,
     "servers": [{"id": 1, "name": "web-1", "last_active": "...",
                  "host": {"platform": "linux", "platform_version": "6.1", "arch": "x86_64",
                           "cpu": ["Intel Xeon 4 Virtual Core"], "mem_total": ..., "swap_total": ...,
                           "disk_total": ..., "gpu": ["RTX 4090"], "boot_time": 1699990000},
                  "state": {"cpu": 12.5, "mem_used": ..., "swap_used": ...,
                            "disk_used": ..., "net_in_speed": ..., "net_out_speed": ...,
                            "tcp_conn_count": 40, "udp_conn_count": 3,
                            "process_count": 210, "gpu": [35.0], "uptime": 10000,
                            "load_1": 0.4, "load_5": 0.3, "load_15": 0.2,
                            "net_in_transfer": ..., "net_out_transfer": ...}}]}

Every metric the charts know about is described by a ``MetricSpec``: which
channels it has, how to pull them out of a server record, how to interpolate
the window boundary and how to scale the Y axis.
"""
import math
from typing import Any, Callable, Dict, List, Mapping, NamedTuple, Optional

from . import domain
from .window_buffer import Interpolator, linear, linear_rounded

MB = 1024 * 1024


class MetricSpec(NamedTuple):
    name: str
    label: str
    channels: tuple
    extract: Callable[[Mapping[str, Any]], Dict[str, float]]
    interpolate: Interpolator
    scaling: Any


def as_float(value: Any) -> float:
    """``value`` as a finite float, 0.0 for anything else."""
    try:
        number = float(value or 0)
    except (TypeError, ValueError, OverflowError):
        return 0.0
    return number if math.isfinite(number) else 0.0


def _num(record: Optional[Mapping[str, Any]], key: str) -> float:
    if not isinstance(record, Mapping):
        return 0.0
    return as_float(record.get(key))


def _percent(used: float, total: float) -> float:
    return used / total * 100 if total else 0.0


def find_server(snapshot: Mapping[str, Any], host_id: int) -> Optional[Mapping[str, Any]]:
    for server in snapshot.get("servers") or []:
        if isinstance(server, Mapping) and server.get("id") == host_id:
            return server
    return None


def extract_cpu(server):
    return {"cpu": _num(server.get("state"), "cpu")}


def extract_mem(server):
    host, state = server.get("host"), server.get("state")
    return {
        "mem": _percent(_num(state, "mem_used"), _num(host, "mem_total")),
        "swap": _percent(_num(state, "swap_used"), _num(host, "swap_total")),
    }


def extract_disk(server):
    return {"disk": _percent(_num(server.get("state"), "disk_used"), _num(server.get("host"), "disk_total"))}


def extract_process(server):
    return {"process": _num(server.get("state"), "process_count")}


def extract_network(server):
    state = server.get("state")
    return {
        "upload": _num(state, "net_out_speed") / MB,
        "download": _num(state, "net_in_speed") / MB,
    }


def extract_connections(server):
    state = server.get("state")
    return {
        "tcp": _num(state, "tcp_conn_count"),
        "udp": _num(state, "udp_conn_count"),
    }


def gpu_loads(server) -> List[float]:
    state = server.get("state")
    loads = state.get("gpu") if isinstance(state, Mapping) else None
    if not isinstance(loads, list):
        return []
    return [as_float(v) for v in loads]


def gpu_metric(index: int, label: Optional[str] = None) -> MetricSpec:
    def extract_gpu(server):
        loads = gpu_loads(server)
        return {"gpu": loads[index] if index < len(loads) else 0.0}

    return MetricSpec(
        name=f"gpu:{index}",
        label=label or f"#{index + 1}",
        channels=("gpu",),
        extract=extract_gpu,
        interpolate=linear,
        scaling=domain.PERCENT,
    )


CPU = MetricSpec("cpu", "CPU", ("cpu",), extract_cpu, linear, domain.PERCENT)
PROCESS = MetricSpec("process", "Process", ("process",), extract_process, linear_rounded, domain.COUNT)
DISK = MetricSpec("disk", "Disk", ("disk",), extract_disk, linear, domain.PERCENT)
MEM = MetricSpec("mem", "Memory", ("mem", "swap"), extract_mem, linear, domain.PERCENT)
NETWORK = MetricSpec("network", "Network", ("upload", "download"), extract_network, linear, domain.THROUGHPUT)
CONNECTIONS = MetricSpec("connections", "Connections", ("tcp", "udp"), extract_connections, linear_rounded, domain.COUNT)

METRICS = {m.name: m for m in (CPU, PROCESS, DISK, MEM, NETWORK, CONNECTIONS)}


def metric_by_name(name: str) -> Optional[MetricSpec]:
    if name in METRICS:
        return METRICS[name]
    if name.startswith("gpu:"):
        try:
            return gpu_metric(int(name.split(":", 1)[1]))
        except ValueError:
            return None
    return None


def gpu_names(server) -> List[str]:
    host = server.get("host")
    names = host.get("gpu") if isinstance(host, Mapping) else None
    if not isinstance(names, list):
        return []
    return [str(n) for n in names]


def metrics_for_server(server: Mapping[str, Any]) -> List[MetricSpec]:
    """Metrics charted for ``server``, in display order."""
    loads = gpu_loads(server)
    names = gpu_names(server)
    gpus = []
    for i in range(len(loads)):
        label = names[i] if len(names) == len(loads) else None
        gpus.append(gpu_metric(i, label))
    return [CPU, *gpus, PROCESS, DISK, MEM, NETWORK, CONNECTIONS]
