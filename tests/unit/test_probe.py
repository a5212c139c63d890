#!/usr/bin/env python3
"""Unit tests for cache-busting probe names"""

import random

import pytest

from dnsperf.constants import MAX_DNS_LABEL_LENGTH, MAX_DNS_NAME_LENGTH, PROBE_LABEL_LENGTH
from dnsperf.probe import generate_probe_name
from dnsperf.validation import validate_domain_name


class TestProbeName:
    """Test probe name generation"""

    def test_probe_is_subdomain(self):
        """Probe name is one extra label under the domain"""
        name = generate_probe_name("example.com")
        label, _, parent = name.partition(".")
        assert parent == "example.com"
        assert len(label) == PROBE_LABEL_LENGTH
        assert label.isalnum() and label == label.lower()

    def test_probe_is_valid_dns_name(self):
        """Generated names pass the domain validator"""
        for _ in range(50):
            validate_domain_name(generate_probe_name("google.com"))

    def test_trailing_dot_dropped(self):
        """A fully qualified input does not produce a doubled dot"""
        name = generate_probe_name("example.com.")
        assert name.endswith(".example.com")
        assert ".." not in name

    def test_probe_names_are_distinct(self):
        """1000 generations for one domain are essentially all different"""
        names = {generate_probe_name("example.com") for _ in range(1000)}
        assert len(names) >= 990

    def test_seeded_rng_is_reproducible(self):
        """An injected generator makes output deterministic"""
        first = generate_probe_name("example.com", rng=random.Random(7))
        second = generate_probe_name("example.com", rng=random.Random(7))
        assert first == second

    def test_label_capped_at_63(self):
        """Requested length larger than a DNS label is capped"""
        name = generate_probe_name("example.com", length=100)
        assert len(name.split(".")[0]) == MAX_DNS_LABEL_LENGTH

    def test_long_domain_truncates_token(self):
        """Token shrinks so the whole name stays within 253 octets"""
        domain = ".".join(["a" * 60] * 4)  # 243 characters
        name = generate_probe_name(domain)
        assert len(name) == MAX_DNS_NAME_LENGTH
        assert name.endswith("." + domain)
        assert len(name.split(".")[0]) == MAX_DNS_NAME_LENGTH - len(domain) - 1

    def test_no_room_returns_domain(self):
        """Generation never fails, even when no label fits"""
        domain = ".".join(["a" * 63] * 3 + ["b" * 61])  # 253 characters
        assert generate_probe_name(domain) == domain


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
