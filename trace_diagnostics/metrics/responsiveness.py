"""Response-latency satisfaction curve."""

from __future__ import annotations

from dataclasses import dataclass

from trace_diagnostics.statistics import clamp, interpolate


@dataclass(frozen=True)
class ReferenceDistribution:
    """
    A latency tolerance histogram.

    ``counts[i]`` is the relative number of users still satisfied at the left
    edge of bin i (``min_ms + i * bin_width_ms``). Below ``min_ms`` the
    underflow count applies; at or above the last bin edge, the overflow count.
    """

    min_ms: float
    bin_width_ms: float
    counts: tuple[float, ...]
    underflow_count: float
    overflow_count: float = 0.0

    @property
    def max_ms(self) -> float:
        return self.min_ms + self.bin_width_ms * len(self.counts)

    @property
    def max_count(self) -> float:
        return max((self.underflow_count, self.overflow_count) + self.counts)

    def interpolated_count_at(self, value_ms: float) -> float:
        if value_ms < self.min_ms:
            return self.underflow_count
        if value_ms >= self.max_ms:
            return self.overflow_count
        index = int((value_ms - self.min_ms) // self.bin_width_ms)
        left_edge = self.min_ms + index * self.bin_width_ms
        right_count = (
            self.counts[index + 1] if index + 1 < len(self.counts) else self.overflow_count
        )
        return interpolate(
            value_ms,
            left_edge,
            self.counts[index],
            left_edge + self.bin_width_ms,
            right_count
        )


# Tolerance for fast (scroll-like) responses. A 50ms task plus 16ms of
# follow-up latency is fully satisfying; satisfaction then decays to zero by
# 2266ms.
FAST_RESPONSE_DISTRIBUTION = ReferenceDistribution(
    min_ms=66,
    bin_width_ms=100,
    counts=(
        1000, 880, 760, 640, 530, 440, 360, 295, 240, 195, 158,
        128, 103, 83, 66, 52, 40, 30, 22, 15, 9, 4
    ),
    underflow_count=1000,
    overflow_count=0
)


def satisfied_fraction(distribution: ReferenceDistribution, latency_ms: float) -> float:
    """Fraction in [0, 1] of users satisfied by a response taking ``latency_ms``."""
    max_count = distribution.max_count
    if max_count <= 0:
        return 0.0
    return clamp(distribution.interpolated_count_at(latency_ms) / max_count, 0.0, 1.0)
