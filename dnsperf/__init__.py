"""
dnsperf - Authoritative DNS latency monitor
Periodically times queries against the authoritative nameservers of a set of
domains and keeps a raw latency log plus per-domain summary statistics
"""

from .version import __author__, __version__

__all__ = ["__author__", "__version__"]
