"""Exception types shared across dnsperf"""


class DNSPerfError(Exception):
    """Base class for dnsperf errors"""

    pass


class ConfigError(DNSPerfError):
    """Configuration error with an optional hint for the operator"""

    def __init__(self, message: str, suggestion: str = None):
        self.message = message
        self.suggestion = suggestion
        super().__init__(message)


class DiscoveryError(DNSPerfError):
    """Nameserver discovery failed for a domain or a single NS hostname"""

    pass


class MeasurementError(DNSPerfError):
    """A timed query did not produce a usable latency"""

    pass


class StoreError(DNSPerfError):
    """Log or stats store could not be read or written"""

    pass
