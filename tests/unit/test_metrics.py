#!/usr/bin/env python3
"""Unit tests for Prometheus metrics"""

from unittest.mock import Mock

import pytest
from prometheus_client import CollectorRegistry

from dnsperf.metrics import MetricsCollector, MetricsServer
from dnsperf.models import DomainStats


@pytest.fixture
def registry():
    return CollectorRegistry()


@pytest.fixture
def collector(registry):
    return MetricsCollector(registry=registry)


class TestMetricsCollector:
    """Test metric updates"""

    def test_success_and_failure(self, collector, registry):
        collector.record_success("example.com", 50000)
        collector.record_success("example.com", 150000)
        collector.record_failure("example.com", "ns2.example.com")

        assert registry.get_sample_value(
            "dnsperf_measurements_total", {"domain": "example.com", "result": "success"}
        ) == 2.0
        assert registry.get_sample_value(
            "dnsperf_measurements_total", {"domain": "example.com", "result": "failure"}
        ) == 1.0
        assert registry.get_sample_value(
            "dnsperf_query_latency_seconds_count", {"domain": "example.com"}
        ) == 2.0
        assert registry.get_sample_value(
            "dnsperf_query_latency_seconds_sum", {"domain": "example.com"}
        ) == pytest.approx(0.2)

    def test_domain_stats_gauges(self, collector, registry):
        collector.update_domain_stats(DomainStats("example.com", 3, 60000.0, 10000.0))

        assert registry.get_sample_value("dnsperf_domain_queries", {"domain": "example.com"}) == 3.0
        assert registry.get_sample_value(
            "dnsperf_domain_latency_mean_seconds", {"domain": "example.com"}
        ) == pytest.approx(0.06)
        assert registry.get_sample_value(
            "dnsperf_domain_latency_stddev_seconds", {"domain": "example.com"}
        ) == pytest.approx(0.01)

    def test_undefined_stddev_not_exported(self, collector, registry):
        collector.update_domain_stats(DomainStats("example.com", 1, 60000.0, None))
        assert registry.get_sample_value(
            "dnsperf_domain_latency_stddev_seconds", {"domain": "example.com"}
        ) is None

    def test_pass_metrics(self, collector, registry):
        collector.record_pass(0.75)
        collector.record_pass(1.25)
        assert registry.get_sample_value("dnsperf_passes_total") == 2.0
        assert registry.get_sample_value("dnsperf_pass_duration_seconds_sum") == pytest.approx(2.0)

    def test_disabled_collector_is_noop(self):
        collector = MetricsCollector(enabled=False)
        collector.record_success("example.com", 50000)
        collector.record_failure("example.com", "ns1.example.com")
        collector.update_domain_stats(DomainStats("example.com", 1, 1.0))
        collector.record_pass(1.0)
        collector.set_info("1.0.0", ["example.com"], 1000)
        assert not hasattr(collector, "registry")


class TestMetricsServer:
    """Test the HTTP endpoint lifecycle"""

    def test_start_and_stop(self, collector):
        reactor = Mock()
        server = MetricsServer(collector, "127.0.0.1", 9153, reactor=reactor)

        server.start()
        port, _factory = reactor.listenTCP.call_args[0]
        assert port == 9153
        assert reactor.listenTCP.call_args[1] == {"interface": "127.0.0.1"}

        listening = server.site
        server.stop()
        listening.stopListening.assert_called_once_with()
        assert server.site is None

    def test_disabled_does_not_listen(self):
        reactor = Mock()
        server = MetricsServer(MetricsCollector(enabled=False), reactor=reactor)
        server.start()
        reactor.listenTCP.assert_not_called()
        server.stop()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
