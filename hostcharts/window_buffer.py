"""Time-bounded sliding window of metric samples.

A ``WindowBuffer`` keeps the last ``window_span_ms`` of samples for one metric
of one host. It is seeded once from history with ``bootstrap()`` and then
grows through ``append()``, which trims the head of the window and replaces
the dropped points with a single sample interpolated at the window edge, so a
rolling chart never jumps when old points fall off.

The buffer is not thread-safe; the owner serializes access.
"""
import logging
import math
from typing import Callable, Dict, Iterable, Mapping, NamedTuple, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)

WINDOW_SPAN_MS = 60000
CAPACITY = 60

# (older value, newer value, ratio) -> value at the boundary
Interpolator = Callable[[float, float, float], float]


class Sample(NamedTuple):
    timestamp: int
    channels: Mapping[str, float]


def linear(older: float, newer: float, ratio: float) -> float:
    return older + ratio * (newer - older)


def linear_rounded(older: float, newer: float, ratio: float) -> float:
    """Linear interpolation rounded half-up, for count-valued channels."""
    return float(math.floor(linear(older, newer, ratio) + 0.5))


class WindowBuffer:
    def __init__(
        self,
        channels: Sequence[str],
        capacity: int = CAPACITY,
        window_span_ms: int = WINDOW_SPAN_MS,
        interpolate: Interpolator = linear,
    ):
        self.channels = tuple(channels)
        self.capacity = int(capacity)
        self.window_span_ms = int(window_span_ms)
        self.interpolate = interpolate
        self.bootstrapped = False
        self._samples: list = []
        self._view: Tuple[Sample, ...] = ()

    def __len__(self) -> int:
        return len(self._samples)

    def bootstrap(self, history: Iterable[Sample]) -> None:
        """Replace the contents with ``history`` (chronological, untrimmed).

        History may have gaps or span more than the window; the first
        ``append`` performs the first trim.
        """
        self._samples = list(history)
        self.bootstrapped = True
        self._publish()

    def append(self, sample: Sample, now: int) -> None:
        samples = self._samples
        if not samples:
            # Two identical points so a line renderer always has a segment.
            samples.extend([sample, sample])
            self._publish()
            return

        last_ts = samples[-1].timestamp
        if sample.timestamp < last_ts:
            logger.debug(
                "Clamping out-of-order sample %d to %d", sample.timestamp, last_ts
            )
            sample = Sample(last_ts, sample.channels)
        samples.append(sample)

        cutoff = now - self.window_span_ms
        oldest = 0
        for i, s in enumerate(samples):
            if s.timestamp >= cutoff:
                oldest = i
                break

        if oldest > 0:
            older = samples[oldest - 1]
            newer = samples[oldest]
            if older.timestamp < cutoff < newer.timestamp:
                boundary = self._boundary(older, newer, cutoff)
                samples = [boundary] + samples[oldest:]
            else:
                samples = samples[oldest - 1:]

        if len(samples) > self.capacity:
            samples = samples[-self.capacity:]

        self._samples = samples
        self._publish()

    def _boundary(self, older: Sample, newer: Sample, cutoff: int) -> Sample:
        ratio = (cutoff - older.timestamp) / (newer.timestamp - older.timestamp)
        values: Dict[str, float] = {}
        for name, old_value in older.channels.items():
            values[name] = self.interpolate(old_value, newer.channels.get(name, old_value), ratio)
        return Sample(cutoff, values)

    def snapshot(self) -> Tuple[Sample, ...]:
        """Current samples, oldest first. Never recomputed on read."""
        return self._view

    def latest(self) -> Optional[Sample]:
        return self._samples[-1] if self._samples else None

    def _publish(self) -> None:
        self._view = tuple(self._samples)
