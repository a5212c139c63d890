#!/usr/bin/env python3
"""
Main entry point for dnsperf
Measures authoritative DNS latency for a set of domains on a fixed interval
"""

import argparse
import logging
import logging.handlers
import os
import sys

from dnsperf.constants import (
    LOG_FILE_BACKUP_COUNT,
    LOG_FILE_MAX_BYTES,
    LOG_FORMAT,
    MIN_INTERVAL_MS,
)
from dnsperf.errors import ConfigError, StoreError


def setup_logging(log_file=None, log_level="INFO", syslog=False):
    """Setup logging configuration"""
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    # Setup root logger
    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)

    # Clear existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    formatter = logging.Formatter(LOG_FORMAT)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file and log_file.lower() != "none":
        try:
            log_dir = os.path.dirname(log_file)
            if log_dir and not os.path.exists(log_dir):
                os.makedirs(log_dir, mode=0o755)

            file_handler = logging.handlers.RotatingFileHandler(
                log_file, maxBytes=LOG_FILE_MAX_BYTES, backupCount=LOG_FILE_BACKUP_COUNT
            )
            file_handler.setFormatter(formatter)
            root_logger.addHandler(file_handler)
        except OSError as e:
            print(f"Warning: Could not setup file logging to {log_file}: {e}", file=sys.stderr)

    if syslog:
        try:
            syslog_handler = logging.handlers.SysLogHandler(address="/dev/log")
            syslog_formatter = logging.Formatter("dnsperf[%(process)d]: %(levelname)s - %(message)s")
            syslog_handler.setFormatter(syslog_formatter)
            root_logger.addHandler(syslog_handler)
        except OSError as e:
            print(f"Warning: Could not setup syslog: {e}", file=sys.stderr)


def _validate_interval(value):
    """Validate the inter-pass interval in milliseconds"""
    try:
        interval = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid interval: {value}")
    if interval < MIN_INTERVAL_MS:
        raise argparse.ArgumentTypeError(f"Interval must be at least {MIN_INTERVAL_MS} ms")
    return interval


def _parse_arguments(argv=None):
    """Parse command line arguments"""
    parser = argparse.ArgumentParser(
        description="Track DNS latency against the authoritative nameservers of a set of "
        "domains, keeping a raw log and per-domain statistics.",
        epilog="Each query asks for a random label under the domain so no cache can answer it.",
    )
    parser.add_argument(
        "-c", "--config", default="/etc/dnsperf/dnsperf.cfg", help="Configuration file path"
    )
    parser.add_argument("-l", "--logfile", help="Log file path (overrides config)")
    parser.add_argument(
        "-L", "--loglevel", choices=["DEBUG", "INFO", "WARNING", "ERROR"], help="Log level"
    )
    parser.add_argument(
        "-i",
        "--interval",
        type=_validate_interval,
        help="Milliseconds to sleep between passes (overrides config)",
    )
    parser.add_argument("-D", "--database", help="SQLite database path (overrides config)")
    parser.add_argument(
        "-r",
        "--reset-db",
        action="store_true",
        help="Drop and recreate the measurement tables before starting",
    )
    parser.add_argument("--once", action="store_true", help="Run a single pass and exit")
    parser.add_argument(
        "--dry-run", action="store_true", help="Keep measurements in memory instead of the database"
    )
    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument(
        "-q", "--quiet", action="store_true", help="Only log warnings and errors (no report)"
    )
    verbosity.add_argument("-v", "--verbose", action="store_true", help="Log every query")
    parser.add_argument("--version", action="store_true", help="Show version")

    return parser.parse_args(argv)


def _handle_version_check(args):
    """Handle version check and exit if requested"""
    if args.version:
        from dnsperf import __version__

        print(f"dnsperf version {__version__}")
        sys.exit(0)


def _load_configuration(config_path):
    """Load configuration from file"""
    from dnsperf.config import DNSPerfConfig

    print(f"Loading configuration from: {config_path}")
    return DNSPerfConfig(config_path)


def _get_logging_config(config, args):
    """Get logging configuration from config and args"""
    log_file = args.logfile or config.get("log-file", "log-file")
    log_level = args.loglevel or config.get("log-file", "debug-level", "INFO")
    if args.quiet:
        log_level = "WARNING"
    elif args.verbose:
        log_level = "DEBUG"
    syslog = config.getboolean("log-file", "syslog", False)

    return log_file, log_level, syslog


def _log_settings(settings, logger):
    """Log the effective settings"""
    logger.info("Configuration loaded:")
    logger.info(f"  Domains ({settings.domain_source}): {', '.join(settings.domains)}")
    logger.info(f"  Interval: {settings.interval_ms} ms")
    if settings.bootstrap_servers:
        servers = ", ".join(f"{host}:{port}" for host, port in settings.bootstrap_servers)
        logger.info(f"  Discovery resolvers: {servers}")
    else:
        logger.info(f"  Discovery resolvers: {settings.resolv_conf}")
    logger.info(
        f"  Timeouts: discovery {settings.discovery_timeout}s, query {settings.query_timeout}s"
    )
    logger.info(
        f"  Nameservers measured {'in parallel' if settings.parallel_nameservers else 'in sequence'}"
    )
    logger.info(f"  Storage: {'memory (dry run)' if settings.dry_run else settings.database_path}")


def _open_store(settings, logger):
    """Open and initialize storage; returns (store, domains)"""
    from dnsperf.storage import MemoryStore, SQLiteStore

    store = MemoryStore() if settings.dry_run else SQLiteStore(settings.database_path)

    if settings.domain_source == "database":
        store.initialize(settings.domains if settings.reset_db else (), reset=settings.reset_db)
        domains = store.load_domains()
        if not domains:
            logger.info("Domains table is empty, seeding it with the configured list")
            store.seed_domains(settings.domains)
            domains = store.load_domains()
        from dnsperf.validation import validate_domain_list

        domains = validate_domain_list(domains)
    else:
        store.initialize(settings.domains, reset=settings.reset_db)
        domains = settings.domains

    return store, tuple(domains)


def _initialize_monitor(settings, store, metrics, reactor=None):
    """Build the discovery, timer and scheduler components"""
    from dnsperf.discovery import NameserverDiscovery
    from dnsperf.monitor import LatencyMonitor
    from dnsperf.timer import QueryTimer

    discovery = NameserverDiscovery(
        resolv_conf=settings.resolv_conf,
        bootstrap_servers=settings.bootstrap_servers,
        timeout=settings.discovery_timeout,
        use_ipv6=settings.use_ipv6,
        reactor=reactor,
    )
    timer = QueryTimer(
        timeout=settings.query_timeout,
        port=settings.dns_port,
        require_answer=settings.require_answer,
        reactor=reactor,
    )
    return LatencyMonitor(settings, store, discovery, timer, metrics=metrics, reactor=reactor)


def _install_shutdown_hooks(reactor, monitor, store, metrics_server, logger):
    """Stop the loop before the reactor shuts down, close storage after"""

    def before_shutdown():
        logger.info("Shutting down...")
        monitor.stop()
        if metrics_server is not None:
            metrics_server.stop()

    def after_shutdown():
        store.close()
        logger.info("dnsperf stopped")

    reactor.addSystemEventTrigger("before", "shutdown", before_shutdown)
    reactor.addSystemEventTrigger("after", "shutdown", after_shutdown)


def run(settings, logger, reactor=None):
    """Open storage, start the monitor and run the reactor until stopped"""
    if reactor is None:
        from twisted.internet import reactor

    from dataclasses import replace

    from twisted.internet.defer import CancelledError
    from twisted.internet.error import ReactorNotRunning

    from dnsperf import __version__
    from dnsperf.metrics import MetricsCollector, MetricsServer

    try:
        store, domains = _open_store(settings, logger)
    except StoreError as e:
        logger.error(f"Storage unavailable: {e}")
        sys.exit(1)
    except ConfigError as e:
        logger.error(f"Invalid domain list in database: {e.message}")
        sys.exit(1)

    settings = replace(settings, domains=domains)

    metrics = MetricsCollector(enabled=settings.metrics_enabled)
    metrics.set_info(__version__, settings.domains, settings.interval_ms)
    metrics_server = None
    if settings.metrics_enabled:
        metrics_server = MetricsServer(
            metrics, settings.metrics_address, settings.metrics_port, reactor=reactor
        )
        reactor.callWhenRunning(metrics_server.start)

    monitor = _initialize_monitor(settings, store, metrics, reactor)
    _install_shutdown_hooks(reactor, monitor, store, metrics_server, logger)

    def stop_reactor(result):
        try:
            reactor.stop()
        except ReactorNotRunning:
            # Already shutting down on a signal
            pass
        return result

    def report_failure(failure):
        if failure.check(CancelledError):
            logger.info("Measurement pass interrupted")
            return None
        logger.error(f"Monitor failed: {failure.getErrorMessage()}")

    def start():
        if settings.run_once:
            d = monitor.run_once()
        else:
            d = monitor.start()
        d.addErrback(report_failure)
        d.addBoth(stop_reactor)

    reactor.callWhenRunning(start)
    logger.info("dnsperf started")
    reactor.run()


def main(argv=None):
    """Main entry point"""
    args = _parse_arguments(argv)

    _handle_version_check(args)

    try:
        config = _load_configuration(args.config)

        log_file, log_level, syslog = _get_logging_config(config, args)
        setup_logging(log_file, log_level, syslog)
        logger = logging.getLogger("dnsperf")

        logger.info("Starting dnsperf authoritative DNS latency monitor")

        from dnsperf.config import build_settings

        settings = build_settings(config, args)
        _log_settings(settings, logger)

    except ConfigError as e:
        print(f"Configuration Error: {e.message}", file=sys.stderr)
        if e.suggestion:
            print(f"Suggestion: {e.suggestion}", file=sys.stderr)
        sys.exit(1)

    try:
        run(settings, logger)
    except Exception as e:
        print(f"Error running dnsperf: {e}", file=sys.stderr)
        import traceback

        traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    main()
