# dnsperf/constants.py
# Version: 1.0.0
# dnsperf constants - all hardcoded values in one place for easy configuration

"""
dnsperf Constants

All hardcoded values are defined here at the top of the module for easy
visibility and modification.
"""

# =============================================================================
# DNS PROTOCOL CONSTANTS
# =============================================================================
DNS_DEFAULT_PORT = 53
MAX_DNS_NAME_LENGTH = 253  # Presentation form, no trailing dot
MAX_DNS_LABEL_LENGTH = 63

# =============================================================================
# TIMEOUT SETTINGS
# =============================================================================
DNS_DISCOVERY_TIMEOUT = 5.0  # Seconds to wait for NS / address lookups
DNS_QUERY_TIMEOUT = 5.0  # Seconds to wait for a timed authoritative query

# =============================================================================
# SCHEDULER SETTINGS
# =============================================================================
DEFAULT_INTERVAL_MS = 1000  # Sleep between passes
MIN_INTERVAL_MS = 1

# Default working set, in rank order
DEFAULT_DOMAINS = (
    "google.com",
    "facebook.com",
    "youtube.com",
    "yahoo.com",
    "live.com",
    "wikipedia.org",
    "baidu.com",
    "blogger.com",
    "msn.com",
    "qq.com",
)

# =============================================================================
# CACHE-BUSTING PROBE NAMES
# =============================================================================
PROBE_LABEL_LENGTH = 12
PROBE_ALPHABET = "abcdefghijklmnopqrstuvwxyz0123456789"

# =============================================================================
# RESOLVER CONFIGURATION
# =============================================================================
SYSTEM_RESOLV_CONF = "/etc/resolv.conf"

# =============================================================================
# STORAGE
# =============================================================================
DEFAULT_DATABASE_PATH = "/var/lib/dnsperf/dnsperf.db"
LOG_TABLE = "dnsqueries"
STATS_TABLE = "domain_stats"
DOMAINS_TABLE = "domains"

# =============================================================================
# LOGGING AND REPORTING
# =============================================================================
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_FILE_MAX_BYTES = 10 * 1024 * 1024
LOG_FILE_BACKUP_COUNT = 5
REPORT_LOGGER = "dnsperf.report"
REPORT_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

# =============================================================================
# METRICS
# =============================================================================
METRICS_DEFAULT_PORT = 9153
METRICS_DEFAULT_ADDRESS = "127.0.0.1"

# Port range validation
MIN_PORT_NUMBER = 1
MAX_PORT_NUMBER = 65535
