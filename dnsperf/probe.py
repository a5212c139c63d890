"""Cache-busting probe names

Every timed query asks for a freshly generated label under the measured
domain so that no resolver along the way can answer from cache.
"""

import logging
import random
from typing import Optional

from dnsperf.constants import (
    MAX_DNS_LABEL_LENGTH,
    MAX_DNS_NAME_LENGTH,
    PROBE_ALPHABET,
    PROBE_LABEL_LENGTH,
)

logger = logging.getLogger(__name__)

_system_random = random.SystemRandom()


def generate_probe_name(
    domain: str, length: int = PROBE_LABEL_LENGTH, rng: Optional[random.Random] = None
) -> str:
    """Return ``<random-label>.<domain>``, truncating the label to fit 253 octets"""
    rng = rng or _system_random
    domain = domain.rstrip(".")

    # One octet goes to the separating dot
    room = MAX_DNS_NAME_LENGTH - len(domain) - 1
    size = min(length, MAX_DNS_LABEL_LENGTH, room)
    if size < 1:
        logger.warning(f"No room for a probe label under {domain}, querying it directly")
        return domain

    token = "".join(rng.choice(PROBE_ALPHABET) for _ in range(size))
    return f"{token}.{domain}"
