"""Y-axis bounds for rolling charts.

Percent metrics use a fixed ``[0, 100]`` axis. Count and throughput metrics
use an adaptive axis that puts the window maximum at 85% of the chart height
and a non-zero minimum at 15%.
"""
import math
from typing import Iterable, NamedTuple

from .window_buffer import Sample

HEADROOM = 0.85
FLOOR_SHARE = 0.15
MIN_THROUGHPUT_FLOOR = 0.1


class AxisDomain(NamedTuple):
    low: float
    high: float

    def as_list(self) -> list:
        return [self.low, self.high]


class FixedScaling:
    kind = "fixed"

    def __init__(self, low: float = 0, high: float = 100):
        self.domain = AxisDomain(low, high)

    def compute(self, samples: Iterable[Sample]) -> AxisDomain:
        return self.domain


class AdaptiveScaling:
    """Axis range derived from every channel value currently in the window.

    ``integer_floor`` selects the count flavour (lower bound floored to an
    integer); otherwise the lower bound is clamped to at least 0.1.
    """

    kind = "adaptive"

    def __init__(self, default: AxisDomain, integer_floor: bool):
        self.default = default
        self.integer_floor = integer_floor

    def compute(self, samples: Iterable[Sample]) -> AxisDomain:
        values = [v for s in samples for v in s.channels.values()]
        if not values:
            return self.default

        max_value = max(values)
        min_value = min(values)
        high = math.ceil(max_value / HEADROOM)

        if min_value == 0:
            low = 0
        elif self.integer_floor:
            low = math.floor(min_value - (min_value * FLOOR_SHARE) / HEADROOM)
        else:
            low = max(MIN_THROUGHPUT_FLOOR, min_value - (min_value * FLOOR_SHARE) / HEADROOM)
        return AxisDomain(low, high)


PERCENT = FixedScaling()
COUNT = AdaptiveScaling(AxisDomain(0, 100), integer_floor=True)
THROUGHPUT = AdaptiveScaling(AxisDomain(0, 1), integer_floor=False)
