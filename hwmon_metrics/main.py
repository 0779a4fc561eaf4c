from __future__ import annotations

import argparse
import logging
import time

from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import (
    ConsoleMetricExporter,
    InMemoryMetricReader,
    MetricReader,
    PeriodicExportingMetricReader,
)
from opentelemetry.sdk.resources import Resource

from hwmon_metrics import __version__
from hwmon_metrics.config import AppConfig, load_config
from hwmon_metrics.hardware import Hardware
from hwmon_metrics.librehardwaremonitor import LibreHardwareMonitorProvider
from hwmon_metrics.local import LocalProvider
from hwmon_metrics.logging_utils import configure_logging, resolve_log_level
from hwmon_metrics.metrics import HardwareMonitorMetrics
from hwmon_metrics.provider import SensorProvider


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Hardware sensor metrics exporter")
    parser.add_argument(
        "--config",
        default="config/example.cfg",
        help="CFG file with [monitor], [provider], [export] and [mqtt] sections",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Log level name (TRACE, DEBUG, INFO, WARNING, ERROR)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Raise verbosity: -v for DEBUG, -vv for TRACE",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Collect every instrument a single time, print the metrics JSON, then exit",
    )
    parser.add_argument(
        "--list-sensors",
        action="store_true",
        help="Print the discovered hardware tree and exit",
    )
    return parser


def build_provider(config: AppConfig) -> SensorProvider:
    if config.provider.kind == "local":
        return LocalProvider(config.monitor)
    if not config.provider.url:
        raise ValueError("[provider] url is required for the librehardwaremonitor provider")
    return LibreHardwareMonitorProvider(
        config.monitor, config.provider.url, timeout_s=config.provider.timeout_s
    )


def build_reader(config: AppConfig) -> MetricReader:
    export = config.export
    interval_ms = max(1.0, export.interval_s * 1000)
    if export.exporter == "prometheus":
        from opentelemetry.exporter.prometheus import PrometheusMetricReader
        from prometheus_client import start_http_server

        start_http_server(export.prometheus_port, addr=export.prometheus_addr)
        logging.getLogger("hwmon_metrics").info(
            "Serving Prometheus metrics on %s:%s", export.prometheus_addr, export.prometheus_port
        )
        return PrometheusMetricReader()
    if export.exporter == "mqtt":
        from hwmon_metrics.mqtt_exporter import MqttMetricExporter

        exporter = MqttMetricExporter(config.mqtt)
        exporter.connect()
        return PeriodicExportingMetricReader(exporter, export_interval_millis=interval_ms)
    return PeriodicExportingMetricReader(ConsoleMetricExporter(), export_interval_millis=interval_ms)


def build_meter_provider(reader: MetricReader) -> MeterProvider:
    resource = Resource.create({"service.name": "hwmon-metrics", "service.version": __version__})
    return MeterProvider(metric_readers=[reader], resource=resource)


def format_tree(roots: list[Hardware]) -> list[str]:
    lines: list[str] = []

    def walk(hardware: Hardware, depth: int) -> None:
        indent = "  " * depth
        lines.append(f"{indent}{hardware.name} [{hardware.hardware_type.value}] {hardware.identifier}")
        for sub in hardware.sub_hardware:
            walk(sub, depth + 1)
        for sensor in hardware.sensors:
            lines.append(
                f"{indent}  - {sensor.name} [{sensor.sensor_type.value}] = {sensor.value}"
            )

    for root in roots:
        walk(root, 0)
    return lines


def main() -> None:
    parser = build_parser()
    args = parser.parse_args()

    level = resolve_log_level(args.verbose, args.log_level)
    configure_logging(level)
    logger = logging.getLogger("hwmon_metrics")
    config = load_config(args.config)
    provider = build_provider(config)

    if args.list_sensors:
        provider.open()
        try:
            for line in format_tree(provider.hardware):
                print(line)
        finally:
            provider.close()
        return

    if args.once:
        reader = InMemoryMetricReader()
        meter_provider = build_meter_provider(reader)
        with HardwareMonitorMetrics(config.monitor, provider, meter_provider):
            data = reader.get_metrics_data()
        print(data.to_json() if data is not None else "{}")
        meter_provider.shutdown()
        logger.info("Single-run mode enabled; exiting after one collection.")
        return

    meter_provider = build_meter_provider(build_reader(config))
    monitor = HardwareMonitorMetrics(config.monitor, provider, meter_provider)
    logger.info(
        "Hardware monitor started. Refreshing every %s ms via %s provider.",
        config.monitor.interval_ms,
        config.provider.kind,
    )

    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        logger.info("Hardware monitor stopped.")
    finally:
        monitor.close()
        meter_provider.shutdown()


if __name__ == "__main__":
    main()
