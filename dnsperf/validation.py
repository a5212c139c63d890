# dnsperf/validation.py
# Version: 1.0.0
# Domain name validation for the configured working set

"""
Domain Validation Module

Rejects domain names that cannot be queried before the scheduler starts, so
that a typo in the configuration fails at startup instead of silently
producing an empty pass every interval.
"""

import logging
import re

from dnsperf.constants import MAX_DNS_LABEL_LENGTH, MAX_DNS_NAME_LENGTH
from dnsperf.errors import ConfigError

logger = logging.getLogger(__name__)

LABEL_PATTERN = re.compile(r"^[A-Za-z0-9_](?:[A-Za-z0-9_-]*[A-Za-z0-9_])?$")


class DomainValidationError(ConfigError):
    """Domain name is not a valid DNS name"""

    pass


def normalize_domain(name: str) -> str:
    """Strip whitespace and the trailing root dot, lowercase"""
    return name.strip().rstrip(".").lower()


def validate_domain_name(name: str) -> str:
    """
    Validate DNS name format

    Args:
        name: Domain name as configured

    Returns:
        The normalized name

    Raises:
        DomainValidationError: If name is invalid
    """
    normalized = normalize_domain(name or "")

    if not normalized:
        raise DomainValidationError("Empty domain name", "Remove the empty entry from the list")

    if len(normalized) > MAX_DNS_NAME_LENGTH:
        raise DomainValidationError(
            f"Domain name too long: {len(normalized)} characters (maximum {MAX_DNS_NAME_LENGTH})"
        )

    for label in normalized.split("."):
        if not label:
            raise DomainValidationError(
                f"Empty label in domain name: {name!r}", "Check for doubled dots"
            )
        if len(label) > MAX_DNS_LABEL_LENGTH:
            raise DomainValidationError(
                f"Label too long in {name!r}: {len(label)} characters "
                f"(maximum {MAX_DNS_LABEL_LENGTH})"
            )
        if not LABEL_PATTERN.match(label):
            raise DomainValidationError(
                f"Invalid characters in label {label!r} of {name!r}",
                "Use only letters, digits, hyphens and underscores; "
                "labels may not start or end with a hyphen",
            )

    return normalized


def validate_domain_list(names) -> tuple:
    """Validate every name, dropping duplicates while keeping order"""
    domains = []
    for name in names:
        domain = validate_domain_name(name)
        if domain in domains:
            logger.warning(f"Duplicate domain {domain} ignored")
            continue
        domains.append(domain)

    if not domains:
        raise DomainValidationError("No domains configured", "Set 'domains' in [monitor]")

    return tuple(domains)
