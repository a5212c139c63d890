# dnsperf/timer.py
# Version: 1.0.0
# Times one A query against a pinned set of authoritative addresses

"""
Authoritative Query Timer

Each measurement builds its own resolver pinned to exactly one nameserver's
addresses, sends a single A query for the probe name and reports the
elapsed time in microseconds. The resolver is dropped once the query
completes; the UDP port it used is released by Twisted at that point.
"""

import logging
import time
from typing import Callable, Optional, Sequence

from twisted.internet import defer
from twisted.names import client, dns

from dnsperf.constants import DNS_DEFAULT_PORT, DNS_QUERY_TIMEOUT
from dnsperf.errors import MeasurementError

logger = logging.getLogger(__name__)

# Rcodes that complete a round trip when require_answer is off; a random
# label normally draws NXDOMAIN.
ANSWERED_RCODES = {dns.OK, dns.ENAME}


class QueryTimer:
    """Measures the round-trip latency of one query to one nameserver"""

    def __init__(
        self,
        timeout: float = DNS_QUERY_TIMEOUT,
        port: int = DNS_DEFAULT_PORT,
        require_answer: bool = True,
        resolver_factory: Optional[Callable] = None,
        clock: Callable[[], float] = time.perf_counter,
        reactor=None,
    ):
        self.timeout = timeout
        self.port = port
        self.require_answer = require_answer
        self._resolver_factory = resolver_factory or self._build_resolver
        self._clock = clock
        self._reactor = reactor

    def _build_resolver(self, servers, timeout):
        # A bare client.Resolver: no cache resolver in front of it
        return client.Resolver(servers=servers, timeout=timeout, reactor=self._reactor)

    def measure(self, addresses: Sequence[str], query_name: str):
        """
        Time an A query for query_name sent straight to the given addresses

        Returns:
            Deferred firing with the latency in microseconds (always > 0),
            or failing with MeasurementError
        """
        if not addresses:
            return defer.fail(MeasurementError(f"No addresses to query for {query_name}"))

        servers = [(address, self.port) for address in addresses]
        resolver = self._resolver_factory(servers, (self.timeout,))
        query = dns.Query(query_name, dns.A, dns.IN)

        started = self._clock()
        try:
            d = resolver.queryUDP([query], timeout=(self.timeout,))
        except Exception as e:
            return defer.fail(MeasurementError(f"Could not send query for {query_name}: {e}"))

        d.addCallbacks(
            self._on_response,
            self._on_failure,
            callbackArgs=(query_name, started),
            errbackArgs=(query_name,),
        )
        return d

    def _on_response(self, message: dns.Message, query_name: str, started: float) -> int:
        elapsed = self._clock() - started
        latency_us = int(round(elapsed * 1_000_000))

        if message.rCode not in ANSWERED_RCODES:
            raise MeasurementError(f"{query_name}: server answered with rcode {message.rCode}")

        if self.require_answer and not any(rr.type == dns.A for rr in message.answers):
            raise MeasurementError(f"{query_name}: response carried no A record")

        if latency_us <= 0:
            raise MeasurementError(f"{query_name}: non-positive elapsed time {latency_us}us")

        logger.debug(f"{query_name}: {latency_us}us (rcode {message.rCode})")
        return latency_us

    def _on_failure(self, reason, query_name: str):
        if reason.check(defer.CancelledError):
            return reason
        if reason.check(defer.TimeoutError):
            raise MeasurementError(f"{query_name}: timed out after {self.timeout}s")
        raise MeasurementError(f"{query_name}: {reason.getErrorMessage()}")
