# dnsperf/monitor.py
"""Scheduler loop: measure every domain's nameservers, then sleep, forever"""

import logging
import time
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from twisted.internet import defer, task

from .config import MonitorSettings
from .constants import REPORT_LOGGER
from .errors import MeasurementError, StoreError
from .models import DomainStats, Measurement, Nameserver
from .probe import generate_probe_name
from .stats import format_stats_line, update_stats

logger = logging.getLogger(__name__)
report_logger = logging.getLogger(REPORT_LOGGER)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class LatencyMonitor:
    """Runs measurement passes over the configured domains

    Between passes the monitor is idle for the configured interval; there is
    no terminal state other than an explicit stop().
    """

    def __init__(
        self,
        settings: MonitorSettings,
        store,
        discovery,
        timer,
        metrics=None,
        reactor=None,
        now: Callable[[], datetime] = utc_now,
        probe_name: Callable[..., str] = generate_probe_name,
    ):
        self.settings = settings
        self.store = store
        self.discovery = discovery
        self.timer = timer
        self.metrics = metrics
        if reactor is None:
            from twisted.internet import reactor
        self._reactor = reactor
        self._now = now
        self._probe_name = probe_name

        self.domains = tuple(settings.domains)
        self.passes = 0
        self.pass_started_at: Optional[float] = None
        self.last_stats: Dict[str, DomainStats] = {}

        self._running = False
        self._current: Optional[defer.Deferred] = None
        self._finished: Optional[defer.Deferred] = None

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> defer.Deferred:
        """Start looping; the returned Deferred fires with the pass count after stop()"""
        if self._running:
            logger.warning("Latency monitor already started")
            return self._finished

        self._running = True
        self._finished = defer.Deferred()
        logger.info(
            f"Started latency monitor: {len(self.domains)} domains, "
            f"interval {self.settings.interval_ms} ms"
        )
        self._loop()
        return self._finished

    def stop(self):
        """Interrupt the current pass or sleep and stop looping"""
        if not self._running and self._current is None:
            return
        logger.info("Stopping latency monitor")
        self._running = False
        if self._current is not None:
            self._current.cancel()

    @defer.inlineCallbacks
    def _loop(self):
        try:
            while self._running:
                self._current = self.run_pass()
                try:
                    yield self._current
                except defer.CancelledError:
                    raise
                except Exception:
                    logger.exception("Measurement pass failed")
                if not self._running:
                    break
                logger.debug(f"Idle for {self.settings.interval_ms} ms")
                self._current = task.deferLater(
                    self._reactor, self.settings.interval_seconds, lambda: None
                )
                yield self._current
        except defer.CancelledError:
            logger.info(f"Latency monitor interrupted after {self.passes} passes")
        finally:
            self._current = None
            self._running = False
            finished, self._finished = self._finished, None
            if finished is not None:
                finished.callback(self.passes)

    def run_once(self) -> defer.Deferred:
        """Run a single pass outside the loop; stop() cancels it"""
        d = self.run_pass()
        self._current = d

        def clear(result):
            if self._current is d:
                self._current = None
            return result

        d.addBoth(clear)
        return d

    @defer.inlineCallbacks
    def run_pass(self):
        """Visit every domain once, in configured order

        Returns:
            Deferred firing with the number of measurements logged this pass
        """
        self.pass_started_at = self._reactor.seconds()
        wall_start = time.monotonic()
        logged = 0
        logger.debug(f"Pass {self.passes + 1} started")

        for domain in self.domains:
            try:
                count = yield self.measure_domain(domain)
                logged += count
            except defer.CancelledError:
                raise
            except Exception:
                logger.exception(f"Unexpected error while measuring {domain}")

        self.passes += 1
        duration = time.monotonic() - wall_start
        if self.metrics is not None:
            self.metrics.record_pass(duration)
        logger.info(f"Pass {self.passes} complete: {logged} measurements in {duration:.2f}s")
        self.report()
        return logged

    @defer.inlineCallbacks
    def measure_domain(self, domain: str):
        """Discover, measure each nameserver, then refresh the domain's stats"""
        nameservers = yield self.discovery.discover(domain)
        if not nameservers:
            return 0

        if self.settings.parallel_nameservers:
            results = yield defer.DeferredList(
                [self.measure_nameserver(domain, ns) for ns in nameservers],
                consumeErrors=True,
            )
            for ok, result in results:
                if not ok and result.check(defer.CancelledError):
                    result.raiseException()

            outcomes = []
            for ns, (ok, result) in zip(nameservers, results):
                if not ok:
                    logger.error(f"{domain}: unexpected error measuring {ns}: {result.getErrorMessage()}")
                    result = None
                outcomes.append(result)
        else:
            outcomes = []
            for ns in nameservers:
                try:
                    outcome = yield self.measure_nameserver(domain, ns)
                except defer.CancelledError:
                    raise
                except Exception as e:
                    logger.error(f"{domain}: unexpected error measuring {ns}: {e}")
                    outcome = None
                outcomes.append(outcome)

        logged = sum(1 for outcome in outcomes if outcome is not None)
        self.refresh_stats(domain)
        return logged

    @defer.inlineCallbacks
    def measure_nameserver(self, domain: str, nameserver: Nameserver):
        """Time one probe query; log it on success

        Returns:
            Deferred firing with the logged Measurement, or None
        """
        query_name = self._probe_name(domain, self.settings.probe_label_length)
        try:
            latency_us = yield self.timer.measure(nameserver.addresses, query_name)
        except MeasurementError as e:
            logger.debug(f"{domain}: {nameserver} skipped: {e}")
            if self.metrics is not None:
                self.metrics.record_failure(domain, nameserver.hostname)
            return None

        measurement = Measurement(
            domain=domain,
            nameserver=nameserver.hostname,
            latency_us=latency_us,
            observed_at=self._now(),
            note=",".join(nameserver.addresses),
        )
        try:
            self.store.append_measurement(measurement)
        except StoreError as e:
            logger.error(f"Could not log measurement for {domain} via {nameserver.hostname}: {e}")
            return None

        logger.debug(f"{domain}: {nameserver} {latency_us}us")
        if self.metrics is not None:
            self.metrics.record_success(domain, latency_us)
        return measurement

    def refresh_stats(self, domain: str) -> Optional[DomainStats]:
        """Recompute the domain summary from the full log and store it"""
        try:
            stats = update_stats(domain, self.store.measurements_for(domain))
            if stats is None:
                return None
            self.store.upsert_stats(stats)
        except StoreError as e:
            logger.error(f"Could not update stats for {domain}: {e}")
            return None

        self.last_stats[domain] = stats
        if self.metrics is not None:
            self.metrics.update_domain_stats(stats)
        return stats

    def report(self) -> List[str]:
        """Log one summary line per domain with measurements"""
        try:
            rows = self.store.all_stats()
        except StoreError as e:
            logger.error(f"Could not read stats for report: {e}")
            rows = [self.last_stats[d] for d in self.domains if d in self.last_stats]

        lines = [format_stats_line(stats) for stats in rows if stats.count > 0]
        for line in lines:
            report_logger.info(line)
        return lines
