from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
import configparser

from hwmon_metrics.hardware import HardwareType

PROVIDER_KINDS = ("librehardwaremonitor", "local")
EXPORTERS = ("console", "prometheus", "mqtt")


@dataclass(frozen=True)
class MonitorOptions:
    battery: bool = True
    controller: bool = True
    cpu: bool = True
    gpu: bool = True
    memory: bool = True
    motherboard: bool = True
    network: bool = True
    storage: bool = True
    interval_ms: int = 1000

    def is_enabled(self, hardware_type: HardwareType) -> bool:
        # Super I/O chips hang off the motherboard and share its switch.
        if hardware_type in (HardwareType.MOTHERBOARD, HardwareType.SUPER_IO):
            return self.motherboard
        return getattr(self, hardware_type.value)


@dataclass(frozen=True)
class ProviderConfig:
    kind: str = "librehardwaremonitor"
    url: str | None = None
    timeout_s: float = 2.0


@dataclass(frozen=True)
class ExportConfig:
    exporter: str = "console"
    interval_s: float = 15.0
    prometheus_addr: str = "0.0.0.0"
    prometheus_port: int = 9464


@dataclass(frozen=True)
class MqttConfig:
    host: str = "localhost"
    port: int = 1883
    base_topic: str = "telemetry/hwmon"
    client_id: str = "hwmon-metrics"
    username: str | None = None
    password: str | None = None
    qos: int = 0
    retain: bool = False
    tls_enabled: bool = False
    ca_cert: str | None = None
    keepalive: int = 60


@dataclass(frozen=True)
class AppConfig:
    monitor: MonitorOptions = field(default_factory=MonitorOptions)
    provider: ProviderConfig = field(default_factory=ProviderConfig)
    export: ExportConfig = field(default_factory=ExportConfig)
    mqtt: MqttConfig = field(default_factory=MqttConfig)


def _get_optional(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value if value else None


def load_config(path: str | Path) -> AppConfig:
    parser = configparser.ConfigParser()
    read_files = parser.read(path)
    if not read_files:
        raise FileNotFoundError(f"Config file not found: {path}")

    defaults = MonitorOptions()
    # Use parser.getboolean with fallback to handle a missing [monitor] section
    monitor = MonitorOptions(
        battery=parser.getboolean("monitor", "battery", fallback=defaults.battery),
        controller=parser.getboolean("monitor", "controller", fallback=defaults.controller),
        cpu=parser.getboolean("monitor", "cpu", fallback=defaults.cpu),
        gpu=parser.getboolean("monitor", "gpu", fallback=defaults.gpu),
        memory=parser.getboolean("monitor", "memory", fallback=defaults.memory),
        motherboard=parser.getboolean("monitor", "motherboard", fallback=defaults.motherboard),
        network=parser.getboolean("monitor", "network", fallback=defaults.network),
        storage=parser.getboolean("monitor", "storage", fallback=defaults.storage),
        interval_ms=parser.getint("monitor", "interval_ms", fallback=defaults.interval_ms),
    )

    kind = parser.get("provider", "kind", fallback="librehardwaremonitor").strip().lower()
    if kind not in PROVIDER_KINDS:
        raise ValueError(f"Unknown provider kind: {kind}")
    provider = ProviderConfig(
        kind=kind,
        url=_get_optional(parser.get("provider", "url", fallback=None)),
        timeout_s=parser.getfloat("provider", "timeout_s", fallback=2.0),
    )

    exporter = parser.get("export", "exporter", fallback="console").strip().lower()
    if exporter not in EXPORTERS:
        raise ValueError(f"Unknown exporter: {exporter}")
    export = ExportConfig(
        exporter=exporter,
        interval_s=parser.getfloat("export", "interval_s", fallback=15.0),
        prometheus_addr=parser.get("export", "prometheus_addr", fallback="0.0.0.0"),
        prometheus_port=parser.getint("export", "prometheus_port", fallback=9464),
    )

    mqtt = MqttConfig(
        host=parser.get("mqtt", "host", fallback="localhost"),
        port=parser.getint("mqtt", "port", fallback=1883),
        base_topic=parser.get("mqtt", "base_topic", fallback="telemetry/hwmon"),
        client_id=parser.get("mqtt", "client_id", fallback="hwmon-metrics"),
        username=_get_optional(parser.get("mqtt", "username", fallback=None)),
        password=_get_optional(parser.get("mqtt", "password", fallback=None)),
        qos=parser.getint("mqtt", "qos", fallback=0),
        retain=parser.getboolean("mqtt", "retain", fallback=False),
        tls_enabled=parser.getboolean("mqtt", "tls", fallback=False),
        ca_cert=_get_optional(parser.get("mqtt", "ca_cert", fallback=None)),
        keepalive=parser.getint("mqtt", "keepalive", fallback=60),
    )

    return AppConfig(monitor=monitor, provider=provider, export=export, mqtt=mqtt)
