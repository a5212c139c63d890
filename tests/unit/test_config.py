#!/usr/bin/env python3
"""Unit tests for configuration loading and settings"""

import argparse

import pytest

from dnsperf.config import DNSPerfConfig, MonitorSettings, build_settings, parse_server_spec
from dnsperf.constants import DEFAULT_DOMAINS, DEFAULT_INTERVAL_MS
from dnsperf.errors import ConfigError


def write_config(tmp_path, text):
    path = tmp_path / "dnsperf.cfg"
    path.write_text(text)
    return DNSPerfConfig(str(path))


def make_args(**overrides):
    values = {"interval": None, "database": None, "reset_db": False, "dry_run": False, "once": False}
    values.update(overrides)
    return argparse.Namespace(**values)


class TestDefaults:
    """Test behaviour without a config file"""

    def test_missing_file_uses_defaults(self, tmp_path, capsys):
        config = DNSPerfConfig(str(tmp_path / "missing.cfg"))
        settings = build_settings(config)

        assert "not found" in capsys.readouterr().err
        assert settings.domains == DEFAULT_DOMAINS
        assert settings.interval_ms == DEFAULT_INTERVAL_MS
        assert settings.interval_seconds == 1.0
        assert settings.parallel_nameservers is True
        assert settings.bootstrap_servers == ()
        assert settings.metrics_enabled is False
        assert settings.require_answer is True
        assert settings == MonitorSettings()


class TestBuildSettings:
    """Test merging the config file with command-line overrides"""

    def test_file_values(self, tmp_path):
        config = write_config(
            tmp_path,
            "[monitor]\n"
            "domains = Example.com, wikipedia.org.\n"
            "    qq.com\n"
            "interval-ms = 2500\n"
            "parallel-nameservers = no\n"
            "[resolver]\n"
            "bootstrap-servers = 1.1.1.1, [2606:4700:4700::1111]:5353\n"
            "query-timeout = 2.5\n"
            "require-answer = no\n"
            "[database]\n"
            "path = /tmp/dnsperf-test.db\n",
        )

        settings = build_settings(config, make_args())

        assert settings.domains == ("example.com", "wikipedia.org", "qq.com")
        assert settings.interval_ms == 2500
        assert settings.parallel_nameservers is False
        assert settings.bootstrap_servers == (("1.1.1.1", 53), ("2606:4700:4700::1111", 5353))
        assert settings.query_timeout == 2.5
        assert settings.require_answer is False
        assert settings.database_path == "/tmp/dnsperf-test.db"

    def test_arguments_override_file(self, tmp_path):
        config = write_config(tmp_path, "[monitor]\ninterval-ms = 2500\n")
        args = make_args(interval=10, database="/tmp/other.db", reset_db=True, dry_run=True, once=True)

        settings = build_settings(config, args)

        assert settings.interval_ms == 10
        assert settings.database_path == "/tmp/other.db"
        assert settings.reset_db and settings.dry_run and settings.run_once

    def test_invalid_domain(self, tmp_path):
        config = write_config(tmp_path, "[monitor]\ndomains = good.com, bad..com\n")
        with pytest.raises(ConfigError):
            build_settings(config)

    def test_invalid_interval(self, tmp_path):
        config = write_config(tmp_path, "[monitor]\ninterval-ms = -5\n")
        with pytest.raises(ConfigError, match="Interval"):
            build_settings(config)

    def test_unknown_domain_source(self, tmp_path):
        config = write_config(tmp_path, "[monitor]\ndomain-source = ldap\n")
        with pytest.raises(ConfigError, match="domain-source") as excinfo:
            build_settings(config)
        assert excinfo.value.suggestion

    def test_database_domain_source(self, tmp_path):
        config = write_config(tmp_path, "[monitor]\ndomain-source = Database\n")
        assert build_settings(config).domain_source == "database"

    @pytest.mark.parametrize(
        "section, option, value",
        [
            ("resolver", "query-timeout", "0"),
            ("resolver", "discovery-timeout", "-1"),
            ("resolver", "port", "70000"),
            ("metrics", "listen-port", "0"),
            ("monitor", "probe-label-length", "64"),
        ],
    )
    def test_out_of_range_values(self, tmp_path, section, option, value):
        config = write_config(tmp_path, f"[{section}]\n{option} = {value}\n")
        with pytest.raises(ConfigError):
            build_settings(config)


class TestParseServerSpec:
    """Test resolver address parsing"""

    def test_formats(self):
        assert parse_server_spec("8.8.8.8") == ("8.8.8.8", 53)
        assert parse_server_spec("192.168.1.1:5353") == ("192.168.1.1", 5353)
        assert parse_server_spec("[2001:4860:4860::8888]") == ("2001:4860:4860::8888", 53)
        assert parse_server_spec("[2001:4860:4860::8888]:54") == ("2001:4860:4860::8888", 54)
        assert parse_server_spec("2001:4860:4860::8888") == ("2001:4860:4860::8888", 53)

    def test_default_port(self):
        assert parse_server_spec("9.9.9.9", default_port=5300) == ("9.9.9.9", 5300)

    def test_bad_port_falls_back(self):
        assert parse_server_spec("1.1.1.1:dns") == ("1.1.1.1", 53)

    def test_port_out_of_range(self):
        with pytest.raises(ConfigError):
            parse_server_spec("1.1.1.1:99999")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
