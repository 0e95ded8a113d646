"""
Latency histogram.

Buckets are closed integer-millisecond ranges keyed by their lower bound
in a SortedDict; the last bucket is open-ended. A sample is truncated to
whole milliseconds and placed in the bucket with the greatest lower bound
not above it.
"""

import math
from typing import Iterable

from sortedcontainers import SortedDict


# (lower bound in ms, bucket name), in declared order
DEFAULT_BUCKETS: tuple[tuple[int, str], ...] = (
    (0, "< 100ms"),
    (100, "100-199ms"),
    (200, "200-299ms"),
    (300, "300-399ms"),
    (400, "400-499ms"),
    (500, "500-999ms"),
    (1000, ">= 1000ms"),
)


class Histogram:
    """
    Fixed set of latency buckets covering [0, inf) with no gaps.

    Args:
        buckets: (lower_bound_ms, name) pairs. The lowest bound must be 0,
                 bounds and names must be unique.
    """

    def __init__(self, buckets: Iterable[tuple[int, str]] = DEFAULT_BUCKETS):
        self._bounds: SortedDict[int, str] = SortedDict()
        for lower, name in buckets:
            lower = int(lower)
            if lower in self._bounds:
                raise ValueError(f"Duplicate bucket bound: {lower}")
            self._bounds[lower] = name

        if not self._bounds or self._bounds.peekitem(0)[0] != 0:
            raise ValueError("Buckets must start at 0ms")
        if len(set(self._bounds.values())) != len(self._bounds):
            raise ValueError("Bucket names must be unique")

        self.counts: dict[str, int] = {name: 0 for name in self._bounds.values()}

    @property
    def names(self) -> list[str]:
        """Bucket names in ascending latency order."""
        return list(self._bounds.values())

    def classify(self, latency_ms: float) -> str:
        """Return the name of the bucket holding latency_ms."""
        if math.isinf(latency_ms) and latency_ms > 0:
            return self._bounds.peekitem(-1)[1]
        if math.isnan(latency_ms) or latency_ms < 0:
            ms = 0
        else:
            ms = int(latency_ms)
        idx = self._bounds.bisect_right(ms) - 1
        return self._bounds.peekitem(idx)[1]

    def rebuild(self, samples: Iterable[float]) -> dict[str, int]:
        """Reset all buckets and count samples from scratch. Returns a copy of the counts."""
        for name in self.counts:
            self.counts[name] = 0
        for sample in samples:
            self.counts[self.classify(sample)] += 1
        return dict(self.counts)

    def total(self) -> int:
        return sum(self.counts.values())

    def __str__(self) -> str:
        return " ".join(f"[{name}]={count}" for name, count in self.counts.items())
