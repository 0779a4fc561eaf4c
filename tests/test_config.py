"""Tests for configuration loading and logging setup."""
from __future__ import annotations

import logging
from pathlib import Path
from unittest.mock import patch

import pytest
from colorlog import ColoredFormatter

from hwmon_metrics.config import AppConfig, MonitorOptions, load_config
from hwmon_metrics.hardware import HardwareType
from hwmon_metrics.logging_utils import TRACE_LEVEL, configure_logging, resolve_log_level

EXAMPLE_CONFIG = Path(__file__).resolve().parent.parent / "config" / "example.cfg"


def _write(tmp_path, text):
    path = tmp_path / "hwmon.cfg"
    path.write_text(text, encoding="utf-8")
    return path


class TestMonitorOptions:
    def test_defaults_enable_everything(self):
        options = MonitorOptions()

        assert options.interval_ms == 1000
        assert all(options.is_enabled(hardware_type) for hardware_type in HardwareType)

    def test_super_io_follows_motherboard(self):
        options = MonitorOptions(motherboard=False)

        assert not options.is_enabled(HardwareType.MOTHERBOARD)
        assert not options.is_enabled(HardwareType.SUPER_IO)
        assert options.is_enabled(HardwareType.CONTROLLER)

    def test_each_flag_gates_its_class(self):
        options = MonitorOptions(gpu=False, storage=False)

        assert not options.is_enabled(HardwareType.GPU)
        assert not options.is_enabled(HardwareType.STORAGE)
        assert options.is_enabled(HardwareType.CPU)


class TestLoadConfig:
    def test_example_config(self):
        config = load_config(EXAMPLE_CONFIG)

        assert config.provider.kind == "librehardwaremonitor"
        assert config.provider.url == "http://localhost:8085/data.json"
        assert config.export.exporter == "prometheus"
        assert config.mqtt.username is None

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "absent.cfg")

    def test_empty_file_uses_defaults(self, tmp_path):
        config = load_config(_write(tmp_path, ""))

        assert config == AppConfig()

    def test_sections_are_parsed(self, tmp_path):
        path = _write(
            tmp_path,
            """
[monitor]
gpu = false
motherboard = no
interval_ms = 250

[provider]
kind = Local
timeout_s = 0.5

[export]
exporter = mqtt
interval_s = 5

[mqtt]
host = broker.lan
port = 8883
tls = true
ca_cert = /etc/ssl/ca.pem
""",
        )

        config = load_config(path)

        assert config.monitor == MonitorOptions(gpu=False, motherboard=False, interval_ms=250)
        assert config.provider.kind == "local"
        assert config.provider.timeout_s == 0.5
        assert config.export.exporter == "mqtt"
        assert config.export.interval_s == 5.0
        assert config.mqtt.host == "broker.lan"
        assert config.mqtt.port == 8883
        assert config.mqtt.tls_enabled
        assert config.mqtt.ca_cert == "/etc/ssl/ca.pem"

    def test_unknown_provider(self, tmp_path):
        with pytest.raises(ValueError, match="provider kind"):
            load_config(_write(tmp_path, "[provider]\nkind = wmi\n"))

    def test_unknown_exporter(self, tmp_path):
        with pytest.raises(ValueError, match="exporter"):
            load_config(_write(tmp_path, "[export]\nexporter = statsd\n"))

    def test_bad_boolean(self, tmp_path):
        with pytest.raises(ValueError):
            load_config(_write(tmp_path, "[monitor]\ncpu = maybe\n"))


class TestLogging:
    @pytest.mark.parametrize(
        "verbosity, fallback, expected",
        [
            (0, "INFO", logging.INFO),
            (0, "warning", logging.WARNING),
            (0, "trace", TRACE_LEVEL),
            (0, "bogus", logging.INFO),
            (1, "ERROR", logging.DEBUG),
            (2, "ERROR", TRACE_LEVEL),
        ],
    )
    def test_resolve_log_level(self, verbosity, fallback, expected):
        assert resolve_log_level(verbosity, fallback) == expected

    def test_configure_logging_installs_trace(self):
        with patch("logging.basicConfig") as basic_config:
            configure_logging(logging.DEBUG, color=False)

        assert logging.getLevelName(TRACE_LEVEL) == "TRACE"
        assert hasattr(logging.getLogger("hwmon_metrics"), "trace")
        kwargs = basic_config.call_args.kwargs
        assert kwargs["level"] == logging.DEBUG
        assert kwargs["force"] is True
        assert not isinstance(kwargs["handlers"][0].formatter, ColoredFormatter)
        assert logging.getLogger("opentelemetry").level == logging.INFO
        logging.getLogger("opentelemetry").setLevel(logging.NOTSET)

    def test_configure_logging_colors_on_request(self):
        with patch("logging.basicConfig") as basic_config:
            configure_logging(logging.INFO, color=True)

        handler = basic_config.call_args.kwargs["handlers"][0]
        assert isinstance(handler.formatter, ColoredFormatter)
        logging.getLogger("opentelemetry").setLevel(logging.NOTSET)
