import configparser
import logging
import os
import sys
from dataclasses import dataclass
from typing import Any, List, Optional, Tuple

from .constants import (
    DEFAULT_DATABASE_PATH,
    DEFAULT_DOMAINS,
    DEFAULT_INTERVAL_MS,
    DNS_DEFAULT_PORT,
    DNS_DISCOVERY_TIMEOUT,
    DNS_QUERY_TIMEOUT,
    MAX_DNS_LABEL_LENGTH,
    MAX_PORT_NUMBER,
    METRICS_DEFAULT_ADDRESS,
    METRICS_DEFAULT_PORT,
    MIN_INTERVAL_MS,
    MIN_PORT_NUMBER,
    PROBE_LABEL_LENGTH,
    SYSTEM_RESOLV_CONF,
)
from .errors import ConfigError
from .validation import validate_domain_list

DOMAIN_SOURCES = ("config", "database")


class DNSPerfConfig:
    """Configuration manager for dnsperf"""

    DEFAULT_CONFIG_PATH = "/etc/dnsperf/dnsperf.cfg"
    DEFAULT_CONFIG = {
        'monitor': {
            'domains': ','.join(DEFAULT_DOMAINS),
            'domain-source': 'config',
            'interval-ms': str(DEFAULT_INTERVAL_MS),
            'parallel-nameservers': 'true',
            'probe-label-length': str(PROBE_LABEL_LENGTH),
        },
        'resolver': {
            'resolv-conf': SYSTEM_RESOLV_CONF,
            'bootstrap-servers': '',
            'port': str(DNS_DEFAULT_PORT),
            'discovery-timeout': str(DNS_DISCOVERY_TIMEOUT),
            'query-timeout': str(DNS_QUERY_TIMEOUT),
            'use-ipv6': 'false',
            'require-answer': 'true',
        },
        'database': {
            'path': DEFAULT_DATABASE_PATH,
        },
        'log-file': {
            'log-file': 'none',
            'debug-level': 'INFO',
            'syslog': 'false',
        },
        'metrics': {
            'enabled': 'false',
            'listen-address': METRICS_DEFAULT_ADDRESS,
            'listen-port': str(METRICS_DEFAULT_PORT),
        },
    }

    def __init__(self, config_path: Optional[str] = None):
        self.config_path = config_path or self.DEFAULT_CONFIG_PATH
        self.config = configparser.ConfigParser()
        self._load_defaults()
        self._load_config()

    def _load_defaults(self):
        """Load default configuration"""
        for section, options in self.DEFAULT_CONFIG.items():
            self.config.add_section(section)
            for key, value in options.items():
                self.config.set(section, key, value)

    def _load_config(self):
        """Load configuration from file"""
        if os.path.exists(self.config_path):
            try:
                self.config.read(self.config_path)
            except configparser.Error as e:
                raise ConfigError(f"Error reading config file {self.config_path}: {e}") from e
        else:
            print(f"Warning: Config file {self.config_path} not found, using defaults", file=sys.stderr)

    def get(self, section: str, option: str, fallback: Any = None) -> str:
        """Get configuration value"""
        try:
            return self.config.get(section, option)
        except (configparser.NoSectionError, configparser.NoOptionError):
            return fallback

    def getint(self, section: str, option: str, fallback: int = 0) -> int:
        """Get integer configuration value"""
        try:
            return self.config.getint(section, option)
        except (configparser.NoSectionError, configparser.NoOptionError, ValueError):
            return fallback

    def getfloat(self, section: str, option: str, fallback: float = 0.0) -> float:
        """Get float configuration value"""
        try:
            return self.config.getfloat(section, option)
        except (configparser.NoSectionError, configparser.NoOptionError, ValueError):
            return fallback

    def getboolean(self, section: str, option: str, fallback: bool = False) -> bool:
        """Get boolean configuration value"""
        try:
            return self.config.getboolean(section, option)
        except (configparser.NoSectionError, configparser.NoOptionError, ValueError):
            return fallback

    def get_domains(self) -> List[str]:
        """Configured domain list, comma or newline separated"""
        raw = self.get('monitor', 'domains', '') or ''
        return [name.strip() for name in raw.replace('\n', ',').split(',') if name.strip()]

    def get_bootstrap_servers(self) -> List[Tuple[str, int]]:
        """Get recursive resolvers used for NS discovery instead of resolv.conf

        Supports multiple formats:
        - Comma-separated list: "1.1.1.1,8.8.8.8,9.9.9.9"
        - With ports: "1.1.1.1:53,8.8.8.8:53,192.168.1.1:5353"
        - IPv6: "[2606:4700:4700::1111],[2001:4860:4860::8888]"
        - IPv6 with ports: "[2606:4700:4700::1111]:53"

        Returns:
            List of (host, port) tuples, empty to use the system resolvers
        """
        servers = []
        server_addresses = self.get('resolver', 'bootstrap-servers') or ''
        default_port = self.getint('resolver', 'port', DNS_DEFAULT_PORT)

        for server_spec in server_addresses.split(','):
            server_spec = server_spec.strip()
            if not server_spec:
                continue
            servers.append(parse_server_spec(server_spec, default_port))

        return servers


def parse_server_spec(server_spec: str, default_port: int = DNS_DEFAULT_PORT) -> Tuple[str, int]:
    """Parse IP[:port] or [IPv6]:port into a (host, port) tuple"""
    # IPv6 with port: [2606:4700:4700::1111]:53
    if server_spec.startswith('[') and ']:' in server_spec:
        bracket_end = server_spec.index(']')
        host = server_spec[1:bracket_end]
        port_str = server_spec[bracket_end + 2:]
    # IPv6 without port: [2606:4700:4700::1111]
    elif server_spec.startswith('[') and server_spec.endswith(']'):
        return server_spec[1:-1], default_port
    # IPv4 with port: 1.1.1.1:53
    elif server_spec.count(':') == 1:
        host, port_str = server_spec.rsplit(':', 1)
    # IPv4 or bare IPv6 without port
    else:
        return server_spec, default_port

    try:
        port = int(port_str)
    except ValueError:
        logging.warning(f"Invalid port '{port_str}' for server '{host}', using default {default_port}")
        return host, default_port
    if not MIN_PORT_NUMBER <= port <= MAX_PORT_NUMBER:
        raise ConfigError(
            f"Port for server '{host}' must be between {MIN_PORT_NUMBER} and {MAX_PORT_NUMBER}"
        )
    return host, port


@dataclass(frozen=True)
class MonitorSettings:
    """Immutable runtime settings, built once at startup"""

    domains: Tuple[str, ...] = DEFAULT_DOMAINS
    domain_source: str = 'config'
    interval_ms: int = DEFAULT_INTERVAL_MS
    parallel_nameservers: bool = True
    probe_label_length: int = PROBE_LABEL_LENGTH
    resolv_conf: str = SYSTEM_RESOLV_CONF
    bootstrap_servers: Tuple[Tuple[str, int], ...] = ()
    dns_port: int = DNS_DEFAULT_PORT
    discovery_timeout: float = DNS_DISCOVERY_TIMEOUT
    query_timeout: float = DNS_QUERY_TIMEOUT
    use_ipv6: bool = False
    require_answer: bool = True
    database_path: str = DEFAULT_DATABASE_PATH
    reset_db: bool = False
    dry_run: bool = False
    run_once: bool = False
    metrics_enabled: bool = False
    metrics_address: str = METRICS_DEFAULT_ADDRESS
    metrics_port: int = METRICS_DEFAULT_PORT

    @property
    def interval_seconds(self) -> float:
        return self.interval_ms / 1000.0


def _arg(args, name, default=None):
    return getattr(args, name, default) if args is not None else default


def build_settings(config: DNSPerfConfig, args=None) -> MonitorSettings:
    """Merge config file values and command-line overrides, validating as we go

    Raises:
        ConfigError: On any invalid value
    """
    interval_ms = _arg(args, 'interval') or config.getint('monitor', 'interval-ms', DEFAULT_INTERVAL_MS)
    if interval_ms < MIN_INTERVAL_MS:
        raise ConfigError(
            f"Interval must be at least {MIN_INTERVAL_MS} ms, got {interval_ms}",
            "Set 'interval-ms' in [monitor] or pass --interval",
        )

    domain_source = (config.get('monitor', 'domain-source', 'config') or 'config').strip().lower()
    if domain_source not in DOMAIN_SOURCES:
        raise ConfigError(
            f"Unknown domain-source '{domain_source}'",
            f"Use one of: {', '.join(DOMAIN_SOURCES)}",
        )

    domains = validate_domain_list(config.get_domains() or DEFAULT_DOMAINS)

    probe_label_length = config.getint('monitor', 'probe-label-length', PROBE_LABEL_LENGTH)
    if not 1 <= probe_label_length <= MAX_DNS_LABEL_LENGTH:
        raise ConfigError(
            f"probe-label-length must be between 1 and {MAX_DNS_LABEL_LENGTH}, "
            f"got {probe_label_length}"
        )

    discovery_timeout = config.getfloat('resolver', 'discovery-timeout', DNS_DISCOVERY_TIMEOUT)
    query_timeout = config.getfloat('resolver', 'query-timeout', DNS_QUERY_TIMEOUT)
    for name, value in (('discovery-timeout', discovery_timeout), ('query-timeout', query_timeout)):
        if value <= 0:
            raise ConfigError(f"{name} must be positive, got {value}")

    dns_port = config.getint('resolver', 'port', DNS_DEFAULT_PORT)
    metrics_port = config.getint('metrics', 'listen-port', METRICS_DEFAULT_PORT)
    for name, value in (('port', dns_port), ('listen-port', metrics_port)):
        if not MIN_PORT_NUMBER <= value <= MAX_PORT_NUMBER:
            raise ConfigError(
                f"{name} must be between {MIN_PORT_NUMBER} and {MAX_PORT_NUMBER}, got {value}"
            )

    return MonitorSettings(
        domains=domains,
        domain_source=domain_source,
        interval_ms=interval_ms,
        parallel_nameservers=config.getboolean('monitor', 'parallel-nameservers', True),
        probe_label_length=probe_label_length,
        resolv_conf=config.get('resolver', 'resolv-conf', SYSTEM_RESOLV_CONF),
        bootstrap_servers=tuple(config.get_bootstrap_servers()),
        dns_port=dns_port,
        discovery_timeout=discovery_timeout,
        query_timeout=query_timeout,
        use_ipv6=config.getboolean('resolver', 'use-ipv6', False),
        require_answer=config.getboolean('resolver', 'require-answer', True),
        database_path=_arg(args, 'database') or config.get('database', 'path', DEFAULT_DATABASE_PATH),
        reset_db=bool(_arg(args, 'reset_db', False)),
        dry_run=bool(_arg(args, 'dry_run', False)),
        run_once=bool(_arg(args, 'once', False)),
        metrics_enabled=config.getboolean('metrics', 'enabled', False),
        metrics_address=config.get('metrics', 'listen-address', METRICS_DEFAULT_ADDRESS),
        metrics_port=metrics_port,
    )
