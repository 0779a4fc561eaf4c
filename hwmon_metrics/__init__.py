"""Hardware sensor metrics for OpenTelemetry."""

__version__ = "0.1.0"

from hwmon_metrics.config import AppConfig, MonitorOptions, load_config  # noqa: E402
from hwmon_metrics.hardware import Hardware, HardwareType, Sensor, SensorIndex, SensorType  # noqa: E402
from hwmon_metrics.librehardwaremonitor import LibreHardwareMonitorProvider  # noqa: E402
from hwmon_metrics.local import LocalProvider  # noqa: E402
from hwmon_metrics.metrics import HardwareMonitorMetrics  # noqa: E402
from hwmon_metrics.provider import ProviderError, SensorProvider  # noqa: E402

__all__ = [
    "AppConfig",
    "Hardware",
    "HardwareMonitorMetrics",
    "HardwareType",
    "LibreHardwareMonitorProvider",
    "LocalProvider",
    "MonitorOptions",
    "ProviderError",
    "Sensor",
    "SensorIndex",
    "SensorProvider",
    "SensorType",
    "load_config",
]
