"""Data models for latency measurements and per-domain statistics"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Tuple


@dataclass(frozen=True)
class Nameserver:
    """An authoritative nameserver discovered for a domain"""

    hostname: str
    addresses: Tuple[str, ...]

    def __str__(self):
        return f"{self.hostname} ({', '.join(self.addresses)})"


@dataclass(frozen=True)
class Measurement:
    """A single timed query against one authoritative nameserver"""

    domain: str
    nameserver: str
    latency_us: int
    observed_at: datetime
    succeeded: bool = True
    note: Optional[str] = None

    def __post_init__(self):
        if self.succeeded and self.latency_us <= 0:
            raise ValueError(
                f"Successful measurement for {self.domain} via {self.nameserver} "
                f"must have a positive latency, got {self.latency_us}us"
            )


@dataclass(frozen=True)
class DomainStats:
    """Summary of all successful measurements recorded for a domain"""

    domain: str
    count: int
    mean_latency_us: Optional[float] = None
    stddev_latency_us: Optional[float] = None
    first_observed_at: Optional[datetime] = None
    last_observed_at: Optional[datetime] = None

    @classmethod
    def empty(cls, domain: str) -> "DomainStats":
        """Null-valued row used to pre-seed the stats store"""
        return cls(domain=domain, count=0)
