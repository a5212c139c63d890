#!/usr/bin/env python3
"""Unit tests for the authoritative query timer"""

from twisted.internet import defer
from twisted.names import dns, error
from twisted.trial import unittest

from dnsperf.errors import MeasurementError
from dnsperf.timer import QueryTimer


def response(rcode=dns.OK, answers=()):
    message = dns.Message(rCode=rcode)
    message.answers = list(answers)
    return message


def answered(name=b"abc.example.com", address="192.0.2.7"):
    return response(answers=[dns.RRHeader(name, payload=dns.Record_A(address))])


class FakeQueryResolver:
    """Stands in for a client.Resolver pinned to one nameserver"""

    def __init__(self, servers, timeout, result):
        self.servers = servers
        self.timeout = timeout
        self.result = result
        self.queries = []

    def queryUDP(self, queries, timeout=None):
        self.queries.extend(queries)
        if isinstance(self.result, Exception):
            return defer.fail(self.result)
        if isinstance(self.result, defer.Deferred):
            return self.result
        return defer.succeed(self.result)


class TimerTestMixin:
    def make_timer(self, result, ticks=(1.0, 1.05), **kwargs):
        self.resolvers = []

        def factory(servers, timeout):
            resolver = FakeQueryResolver(servers, timeout, result)
            self.resolvers.append(resolver)
            return resolver

        return QueryTimer(resolver_factory=factory, clock=iter(ticks).__next__, **kwargs)


class TestQueryTimer(TimerTestMixin, unittest.SynchronousTestCase):
    """Test timed queries"""

    def test_answered_query_reports_microseconds(self):
        timer = self.make_timer(answered(b"x.example.com"))

        latency = self.successResultOf(timer.measure(["192.0.2.1"], "x.example.com"))

        self.assertEqual(latency, 50000)

    def test_query_pinned_to_nameserver(self):
        """Each measurement gets its own resolver aimed only at the nameserver"""
        timer = self.make_timer(answered(), port=5353, timeout=2.0)

        self.successResultOf(timer.measure(["192.0.2.1", "2001:db8::1"], "abc.example.com"))

        self.assertEqual(len(self.resolvers), 1)
        resolver = self.resolvers[0]
        self.assertEqual(resolver.servers, [("192.0.2.1", 5353), ("2001:db8::1", 5353)])
        self.assertEqual(resolver.timeout, (2.0,))
        self.assertEqual(len(resolver.queries), 1)
        self.assertEqual(resolver.queries[0].type, dns.A)
        self.assertEqual(str(resolver.queries[0].name), "abc.example.com")

    def test_nxdomain_counts_as_round_trip(self):
        """Opting out of the A record requirement accepts a bare NXDOMAIN"""
        timer = self.make_timer(response(rcode=dns.ENAME), require_answer=False)
        self.assertEqual(self.successResultOf(timer.measure(["192.0.2.1"], "abc.example.com")), 50000)

    def test_servfail_is_failure(self):
        timer = self.make_timer(response(rcode=dns.ESERVER))
        self.failureResultOf(timer.measure(["192.0.2.1"], "abc.example.com"), MeasurementError)

    def test_refused_is_failure(self):
        timer = self.make_timer(response(rcode=dns.EREFUSED))
        self.failureResultOf(timer.measure(["192.0.2.1"], "abc.example.com"), MeasurementError)

    def test_nxdomain_fails_by_default(self):
        """A reply without an A record is not a measurement"""
        timer = self.make_timer(response(rcode=dns.ENAME))
        failure = self.failureResultOf(timer.measure(["192.0.2.1"], "abc.example.com"), MeasurementError)
        self.assertIn("no A record", failure.getErrorMessage())

    def test_empty_noerror_fails_by_default(self):
        timer = self.make_timer(response())
        self.failureResultOf(timer.measure(["192.0.2.1"], "abc.example.com"), MeasurementError)

    def test_empty_noerror_accepted_when_opted_out(self):
        timer = self.make_timer(response(), require_answer=False)
        self.assertEqual(self.successResultOf(timer.measure(["192.0.2.1"], "abc.example.com")), 50000)

    def test_servfail_fails_when_opted_out(self):
        timer = self.make_timer(response(rcode=dns.ESERVER), require_answer=False)
        self.failureResultOf(timer.measure(["192.0.2.1"], "abc.example.com"), MeasurementError)

    def test_timeout(self):
        timer = self.make_timer(error.DNSQueryTimeoutError(0), timeout=1.5)
        failure = self.failureResultOf(timer.measure(["192.0.2.1"], "abc.example.com"), MeasurementError)
        self.assertIn("timed out", failure.getErrorMessage())

    def test_network_error(self):
        timer = self.make_timer(OSError("Network is unreachable"))
        self.failureResultOf(timer.measure(["192.0.2.1"], "abc.example.com"), MeasurementError)

    def test_send_error(self):
        class UnsendableResolver(FakeQueryResolver):
            def queryUDP(self, queries, timeout=None):
                raise OSError("Address family not supported by protocol")

        def factory(servers, timeout):
            return UnsendableResolver(servers, timeout, None)

        timer = QueryTimer(resolver_factory=factory)
        self.failureResultOf(timer.measure(["192.0.2.1"], "abc.example.com"), MeasurementError)

    def test_zero_elapsed_rejected(self):
        """A non-positive interval is never reported as a latency"""
        timer = self.make_timer(answered(), ticks=(3.0, 3.0))
        self.failureResultOf(timer.measure(["192.0.2.1"], "abc.example.com"), MeasurementError)

    def test_no_addresses(self):
        timer = self.make_timer(response())
        self.failureResultOf(timer.measure([], "abc.example.com"), MeasurementError)
        self.assertEqual(self.resolvers, [])

    def test_cancellation_passes_through(self):
        pending = defer.Deferred()
        timer = self.make_timer(pending)

        d = timer.measure(["192.0.2.1"], "abc.example.com")
        d.cancel()

        self.failureResultOf(d, defer.CancelledError)
