# dnsperf/stats.py
# Version: 1.0.0
# Per-domain latency statistics, recomputed from the measurement log

"""
Stats Aggregator

The measurement log is the source of truth. After each domain's nameservers
have been measured the full history for that domain is folded through a
Welford accumulator and the resulting summary replaces the stored row.
"""

import math
from typing import Iterable, Optional

from dnsperf.constants import REPORT_TIMESTAMP_FORMAT
from dnsperf.models import DomainStats, Measurement


class RunningStats:
    """Welford running mean / variance with min and max timestamps"""

    def __init__(self):
        self.count = 0
        self.mean = 0.0
        self._m2 = 0.0
        self.first = None
        self.last = None

    def add(self, value: float, observed_at=None):
        self.count += 1
        delta = value - self.mean
        self.mean += delta / self.count
        self._m2 += delta * (value - self.mean)

        if observed_at is not None:
            if self.first is None or observed_at < self.first:
                self.first = observed_at
            if self.last is None or observed_at > self.last:
                self.last = observed_at

    @property
    def variance(self) -> Optional[float]:
        """Sample variance (divisor count - 1), None below two samples"""
        if self.count < 2:
            return None
        return self._m2 / (self.count - 1)

    @property
    def stddev(self) -> Optional[float]:
        variance = self.variance
        if variance is None:
            return None
        return math.sqrt(max(variance, 0.0))


def update_stats(domain: str, measurements: Iterable[Measurement]) -> Optional[DomainStats]:
    """
    Summarize the successful measurements for a domain

    Args:
        domain: Domain the summary is keyed by
        measurements: Full measurement history for the domain

    Returns:
        DomainStats, or None when there is nothing to summarize yet
    """
    running = RunningStats()
    for measurement in measurements:
        if not measurement.succeeded or measurement.domain != domain:
            continue
        running.add(float(measurement.latency_us), measurement.observed_at)

    if running.count == 0:
        return None

    return DomainStats(
        domain=domain,
        count=running.count,
        mean_latency_us=running.mean,
        stddev_latency_us=running.stddev,
        first_observed_at=running.first,
        last_observed_at=running.last,
    )


def _format_ms(value_us: Optional[float]) -> str:
    if value_us is None:
        return "n/a"
    return f"{value_us / 1000.0:.3f}"


def _format_time(value) -> str:
    if value is None:
        return "never"
    return value.strftime(REPORT_TIMESTAMP_FORMAT)


def format_stats_line(stats: DomainStats) -> str:
    """One-line human readable summary for the per-pass report"""
    return (
        f"domain: {stats.domain} count: {stats.count} queries, "
        f"Avg: {_format_ms(stats.mean_latency_us)} ms, "
        f"Stddev: {_format_ms(stats.stddev_latency_us)} ms, "
        f"first query: {_format_time(stats.first_observed_at)}, "
        f"last query: {_format_time(stats.last_observed_at)}"
    )
