"""Pytest configuration and shared fixtures."""
from __future__ import annotations

from typing import Any

import pytest
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import InMemoryMetricReader

from hwmon_metrics.config import MonitorOptions
from hwmon_metrics.hardware import Hardware, HardwareType, SensorType
from hwmon_metrics.provider import SensorProvider


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "concurrency: mark test as exercising threads and locks"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as integration test"
    )


class FakeProvider(SensorProvider):
    """Provider over a prebuilt tree; refresh only counts calls."""

    def __init__(self, roots: list[Hardware], options: MonitorOptions | None = None) -> None:
        super().__init__(options or MonitorOptions(interval_ms=60_000))
        self._roots = roots
        self.refresh_count = 0
        self.refresh_error: Exception | None = None
        self.close_count = 0

    def _discover(self) -> list[Hardware]:
        return self._roots

    def refresh(self) -> None:
        self.refresh_count += 1
        if self.refresh_error is not None:
            raise self.refresh_error

    def close(self) -> None:
        self.close_count += 1
        super().close()


def make_hardware(
    hardware_type: HardwareType,
    name: str,
    sensors: list[tuple[SensorType, str, float | None]] = (),
    sub_hardware: list[Hardware] = (),
) -> Hardware:
    hardware = Hardware(f"/{hardware_type.value}/{name}", hardware_type, name)
    for sub in sub_hardware:
        hardware.add_sub_hardware(sub)
    for index, (sensor_type, sensor_name, value) in enumerate(sensors):
        hardware.add_sensor(
            f"{hardware.identifier}/{sensor_type.value}/{index}", sensor_type, sensor_name, value
        )
    return hardware


def collect(reader: InMemoryMetricReader) -> dict[str, list[tuple[dict[str, Any], float]]]:
    """Collect once and return ``{metric name: [(attributes, value), ...]}``."""
    result: dict[str, list[tuple[dict[str, Any], float]]] = {}
    data = reader.get_metrics_data()
    if data is None:
        return result
    for resource_metrics in data.resource_metrics:
        for scope_metrics in resource_metrics.scope_metrics:
            for metric in scope_metrics.metrics:
                result[metric.name] = [
                    (dict(point.attributes or {}), point.value)
                    for point in metric.data.data_points
                ]
    return result


@pytest.fixture
def options():
    """Monitor options with a refresh interval long enough to only tick once."""
    return MonitorOptions(interval_ms=60_000)


@pytest.fixture
def reader():
    return InMemoryMetricReader()


@pytest.fixture
def meter_provider(reader):
    provider = MeterProvider(metric_readers=[reader])
    yield provider
    provider.shutdown()
