# dnsperf/metrics.py
# Version: 1.0.0
# Prometheus metrics for the latency monitor

"""
dnsperf Metrics Collection Module

Exposes the per-domain latency summary and per-pass counters in Prometheus
format so the monitor can be scraped alongside the database it writes.
"""

import logging
from typing import Optional

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, Info
from prometheus_client.twisted import MetricsResource
from twisted.web import server

from .constants import METRICS_DEFAULT_ADDRESS, METRICS_DEFAULT_PORT
from .models import DomainStats

logger = logging.getLogger(__name__)

METRIC_NAMESPACE = "dnsperf"
LATENCY_BUCKETS = (0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0)


class MetricsCollector:
    """Centralized metrics collection for the monitor"""

    def __init__(self, enabled: bool = True, registry: Optional[CollectorRegistry] = None):
        self.enabled = enabled

        if not self.enabled:
            logger.info("Metrics collection disabled")
            return

        self.registry = registry or CollectorRegistry()
        self._init_measurement_metrics()
        self._init_summary_metrics()
        self._init_pass_metrics()

        logger.info("Metrics collector initialized")

    def _init_measurement_metrics(self):
        """Initialize per-query metrics"""
        self.measurements_total = Counter(
            f"{METRIC_NAMESPACE}_measurements_total",
            "Timed authoritative queries by outcome",
            ["domain", "result"],
            registry=self.registry,
        )

        self.query_latency = Histogram(
            f"{METRIC_NAMESPACE}_query_latency_seconds",
            "Authoritative query round-trip time in seconds",
            ["domain"],
            buckets=LATENCY_BUCKETS,
            registry=self.registry,
        )

        self.nameserver_failures = Counter(
            f"{METRIC_NAMESPACE}_nameserver_failures_total",
            "Failed timed queries per nameserver",
            ["domain", "nameserver"],
            registry=self.registry,
        )

    def _init_summary_metrics(self):
        """Initialize per-domain summary gauges"""
        self.domain_mean = Gauge(
            f"{METRIC_NAMESPACE}_domain_latency_mean_seconds",
            "Mean latency over the whole measurement log",
            ["domain"],
            registry=self.registry,
        )

        self.domain_stddev = Gauge(
            f"{METRIC_NAMESPACE}_domain_latency_stddev_seconds",
            "Sample standard deviation of latency over the whole measurement log",
            ["domain"],
            registry=self.registry,
        )

        self.domain_queries = Gauge(
            f"{METRIC_NAMESPACE}_domain_queries",
            "Successful measurements logged for the domain",
            ["domain"],
            registry=self.registry,
        )

    def _init_pass_metrics(self):
        """Initialize scheduler metrics"""
        self.passes_total = Counter(
            f"{METRIC_NAMESPACE}_passes_total",
            "Completed scheduler passes",
            registry=self.registry,
        )

        self.pass_duration = Histogram(
            f"{METRIC_NAMESPACE}_pass_duration_seconds",
            "Wall time of one pass over all domains",
            buckets=(0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0),
            registry=self.registry,
        )

        self.info = Info(
            f"{METRIC_NAMESPACE}_info", "dnsperf version and configuration", registry=self.registry
        )

    def record_success(self, domain: str, latency_us: int):
        """Record a logged measurement"""
        if not self.enabled:
            return
        self.measurements_total.labels(domain=domain, result="success").inc()
        self.query_latency.labels(domain=domain).observe(latency_us / 1_000_000)

    def record_failure(self, domain: str, nameserver: str):
        """Record a timed query that produced no measurement"""
        if not self.enabled:
            return
        self.measurements_total.labels(domain=domain, result="failure").inc()
        self.nameserver_failures.labels(domain=domain, nameserver=nameserver).inc()

    def update_domain_stats(self, stats: DomainStats):
        """Mirror the stored summary row"""
        if not self.enabled:
            return
        self.domain_queries.labels(domain=stats.domain).set(stats.count)
        if stats.mean_latency_us is not None:
            self.domain_mean.labels(domain=stats.domain).set(stats.mean_latency_us / 1_000_000)
        if stats.stddev_latency_us is not None:
            self.domain_stddev.labels(domain=stats.domain).set(
                stats.stddev_latency_us / 1_000_000
            )

    def record_pass(self, duration: float):
        """Record a completed pass"""
        if not self.enabled:
            return
        self.passes_total.inc()
        self.pass_duration.observe(duration)

    def set_info(self, version: str, domains, interval_ms: int):
        """Set version and configuration info"""
        if self.enabled:
            self.info.info(
                {
                    "version": version,
                    "domains": str(len(domains)),
                    "interval_ms": str(interval_ms),
                }
            )


class MetricsServer:
    """HTTP server for Prometheus metrics endpoint"""

    def __init__(
        self,
        collector: MetricsCollector,
        listen_address: str = METRICS_DEFAULT_ADDRESS,
        listen_port: int = METRICS_DEFAULT_PORT,
        reactor=None,
    ):
        self.collector = collector
        self.listen_address = listen_address
        self.listen_port = listen_port
        self.site = None
        if reactor is None:
            from twisted.internet import reactor
        self._reactor = reactor

    def start(self):
        """Start metrics HTTP server"""
        if not self.collector.enabled:
            logger.info("Metrics server not started (metrics disabled)")
            return

        root = MetricsResource(registry=self.collector.registry)
        factory = server.Site(root)

        self.site = self._reactor.listenTCP(
            self.listen_port, factory, interface=self.listen_address
        )

        logger.info(f"Metrics server listening on {self.listen_address}:{self.listen_port}/metrics")

    def stop(self):
        """Stop metrics HTTP server"""
        if self.site:
            self.site.stopListening()
            self.site = None
            logger.info("Metrics server stopped")
