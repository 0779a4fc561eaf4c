from __future__ import annotations

import logging
import threading
from typing import Callable, Iterable

from opentelemetry import metrics
from opentelemetry.metrics import CallbackOptions, MeterProvider, Observation

from hwmon_metrics import __version__
from hwmon_metrics.config import MonitorOptions
from hwmon_metrics.hardware import HardwareType, Sensor, SensorIndex, SensorType
from hwmon_metrics.logging_utils import TRACE_LEVEL
from hwmon_metrics.provider import SensorProvider
from hwmon_metrics.timer import RefreshTimer

METER_NAME = "hwmon_metrics"

PERCENTAGE_USED = "Percentage Used"
REMAINING_LIFE = "Remaining Life"

SensorPair = tuple["Sensor | None", "Sensor | None"]


def _value(sensor: Sensor) -> float:
    return sensor.value if sensor.value is not None else 0.0


def _find(sensors: Iterable[Sensor], name: str) -> Sensor:
    for sensor in sensors:
        if sensor.name == name:
            return sensor
    raise LookupError(f"No sensor named {name!r}")


def pair_by_hardware(first: list[Sensor], second: list[Sensor]) -> list[SensorPair]:
    """Match sensors of two lists that belong to the same hardware node.

    Pairs keep the order of ``first``; sensors of ``second`` without a
    partner are appended as ``(None, sensor)``.
    """
    remaining = list(second)
    pairs: list[SensorPair] = []
    for sensor in first:
        match = next((other for other in remaining if other.hardware is sensor.hardware), None)
        if match is not None:
            remaining.remove(match)
        pairs.append((sensor, match))
    pairs.extend((None, sensor) for sensor in remaining)
    return pairs


class HardwareMonitorMetrics:
    """Publishes provider sensors as OpenTelemetry observable instruments.

    One lock guards the provider: the refresh timer holds it for a full
    refresh and every instrument callback holds it while reading its
    sensors, so a collection never sees a half-refreshed tree.
    """

    def __init__(
        self,
        options: MonitorOptions,
        provider: SensorProvider,
        meter_provider: MeterProvider | None = None,
    ) -> None:
        self.options = options
        self.provider = provider
        self.logger = logging.getLogger(self.__class__.__name__)
        self.registered: list[str] = []
        self._lock = threading.Lock()
        self._closed = False

        meter_provider = meter_provider or metrics.get_meter_provider()
        self.meter = meter_provider.get_meter(METER_NAME, __version__)

        self.provider.open()
        try:
            self.index = SensorIndex(self.provider.hardware)
            self._setup_battery()
            self._setup_cpu()
            self._setup_gpu()
            self._setup_io()
            self._setup_memory()
            self._setup_storage()
            self._setup_network()
        except Exception:
            self.provider.close()
            raise
        self.logger.info(
            "Registered %d instruments from %d sensors.", len(self.registered), len(self.index)
        )

        self.timer = RefreshTimer(options.interval_ms / 1000, self.refresh)
        self.timer.start()

    def __enter__(self) -> HardwareMonitorMetrics:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self.timer.cancel()
        with self._lock:
            self.provider.close()
        self.logger.info("Hardware monitor closed.")

    def refresh(self) -> None:
        with self._lock:
            self.provider.refresh()
        self.logger.log(TRACE_LEVEL, "Hardware tree refreshed.")

    def _register(
        self,
        name: str,
        description: str,
        measure: Callable[[], list[Observation]],
        counter: bool = False,
    ) -> None:
        def callback(options: CallbackOptions) -> list[Observation]:
            return measure()

        if counter:
            self.meter.create_observable_counter(name, callbacks=[callback], description=description)
        else:
            self.meter.create_observable_up_down_counter(name, callbacks=[callback], description=description)
        self.registered.append(name)
        self.logger.debug("Registered instrument %s.", name)

    def _measure_simple(self, sensor: Sensor) -> list[Observation]:
        with self._lock:
            return [Observation(_value(sensor))]

    def _measure_by_sensor_name(self, sensors: list[Sensor]) -> list[Observation]:
        with self._lock:
            return [Observation(_value(sensor), {"name": sensor.name}) for sensor in sensors]

    def _measure_by_hardware_name(self, sensors: list[Sensor]) -> list[Observation]:
        with self._lock:
            return [Observation(_value(sensor), {"name": sensor.hardware.name}) for sensor in sensors]

    def _measure_pairs(
        self, pairs: list[SensorPair], first_type: str, second_type: str
    ) -> list[Observation]:
        observations: list[Observation] = []
        with self._lock:
            for first, second in pairs:
                if first is not None:
                    observations.append(
                        Observation(_value(first), {"name": first.hardware.name, "type": first_type})
                    )
                if second is not None:
                    observations.append(
                        Observation(_value(second), {"name": second.hardware.name, "type": second_type})
                    )
        return observations

    def _setup_battery(self) -> None:
        voltage_sensors = self.index.sensors(HardwareType.BATTERY, SensorType.VOLTAGE)
        level_charge = next((s for s in voltage_sensors if s.name == "Charge Level"), None)
        level_degradation = next((s for s in voltage_sensors if s.name == "Degradation Level"), None)
        voltage = voltage_sensors[0] if voltage_sensors else None
        current = self.index.first(HardwareType.BATTERY, SensorType.CURRENT)
        energy_sensors = self.index.sensors(HardwareType.BATTERY, SensorType.ENERGY)
        power = self.index.first(HardwareType.BATTERY, SensorType.POWER)
        time_span = self.index.first(HardwareType.BATTERY, SensorType.TIME_SPAN)

        simple = [
            ("hardware.battery.charge", "Battery charge.", level_charge),
            ("hardware.battery.degradation", "Battery degradation.", level_degradation),
            ("hardware.battery.voltage", "Battery voltage.", voltage),
            ("hardware.battery.current", "Battery current.", current),
        ]
        for name, description, sensor in simple:
            if sensor is not None:
                self._register(name, description, lambda sensor=sensor: self._measure_simple(sensor))

        if energy_sensors:
            self._register(
                "hardware.battery.capacity",
                "Battery capacity.",
                lambda: self._measure_battery_capacity(energy_sensors),
            )

        if power is not None:
            self._register("hardware.battery.rate", "Battery rate.", lambda: self._measure_simple(power))

        if time_span is not None:
            self._register(
                "hardware.battery.remaining", "Battery remaining.", lambda: self._measure_simple(time_span)
            )

    def _measure_battery_capacity(self, sensors: list[Sensor]) -> list[Observation]:
        designed = _find(sensors, "Designed Capacity")
        full_charged = _find(sensors, "Full Charged Capacity")
        remaining = _find(sensors, "Remaining Capacity")
        with self._lock:
            return [
                Observation(_value(designed), {"type": "designed"}),
                Observation(_value(full_charged), {"type": "full"}),
                Observation(_value(remaining), {"type": "remaining"}),
            ]

    def _setup_cpu(self) -> None:
        # TODO: map CPU load, clock, power and temperature sensors to hardware.cpu.* instruments.
        self.logger.debug(
            "CPU metrics not mapped (%d temperature sensors discovered).",
            len(self.index.sensors(HardwareType.CPU, SensorType.TEMPERATURE)),
        )

    def _setup_gpu(self) -> None:
        # TODO: map GPU load, memory and temperature sensors to hardware.gpu.* instruments.
        self.logger.debug(
            "GPU metrics not mapped (%d load sensors discovered).",
            len(self.index.sensors(HardwareType.GPU, SensorType.LOAD)),
        )

    def _setup_io(self) -> None:
        for sensor_type, suffix in (
            (SensorType.CONTROL, "control"),
            (SensorType.FAN, "fan"),
            (SensorType.TEMPERATURE, "temperature"),
            (SensorType.VOLTAGE, "voltage"),
        ):
            sensors = self.index.sensors(HardwareType.SUPER_IO, sensor_type)
            if sensors:
                self._register(
                    f"hardware.io.{suffix}",
                    f"I/O {suffix}.",
                    lambda sensors=sensors: self._measure_by_sensor_name(sensors),
                )

    def _setup_memory(self) -> None:
        data_sensors = self.index.sensors(HardwareType.MEMORY, SensorType.DATA)
        load_sensors = self.index.sensors(HardwareType.MEMORY, SensorType.LOAD)

        if data_sensors:
            self._register(
                "hardware.memory.used",
                "Memory used.",
                lambda: self._measure_memory(data_sensors, "Memory Used", "Virtual Memory Used"),
            )
            self._register(
                "hardware.memory.available",
                "Memory available.",
                lambda: self._measure_memory(data_sensors, "Memory Available", "Virtual Memory Available"),
            )

        if load_sensors:
            self._register(
                "hardware.memory.load",
                "Memory load.",
                lambda: self._measure_memory(load_sensors, "Memory", "Virtual Memory"),
            )

    def _measure_memory(
        self, sensors: list[Sensor], physical_name: str, virtual_name: str
    ) -> list[Observation]:
        physical = _find(sensors, physical_name)
        virtual = _find(sensors, virtual_name)
        with self._lock:
            return [
                Observation(_value(physical), {"type": "physical"}),
                Observation(_value(virtual), {"type": "virtual"}),
            ]

    def _setup_storage(self) -> None:
        used = self.index.sensors(HardwareType.STORAGE, SensorType.LOAD, "Used Space")
        data_read = self.index.sensors(HardwareType.STORAGE, SensorType.DATA, "Data Read")
        data_written = self.index.sensors(HardwareType.STORAGE, SensorType.DATA, "Data Written")
        throughput = self.index.sensors(HardwareType.STORAGE, SensorType.THROUGHPUT)
        temperature = self.index.sensors(HardwareType.STORAGE, SensorType.TEMPERATURE)
        level = self.index.sensors(HardwareType.STORAGE, SensorType.LEVEL)
        life = [s for s in level if s.name in (PERCENTAGE_USED, REMAINING_LIFE)]
        spare = [s for s in level if s.name == "Available Spare"]
        amplification = self.index.sensors(HardwareType.STORAGE, SensorType.FACTOR, "Write Amplification")

        if used:
            self._register("hardware.storage.used", "Storage used.", lambda: self._measure_by_hardware_name(used))

        if data_read or data_written:
            data_pairs = pair_by_hardware(data_read, data_written)
            self._register(
                "hardware.storage.bytes",
                "Storage bytes.",
                lambda: self._measure_pairs(data_pairs, "read", "write"),
            )

        if throughput:
            speed_pairs = pair_by_hardware(
                [s for s in throughput if s.name == "Read Rate"],
                [s for s in throughput if s.name == "Write Rate"],
            )
            self._register(
                "hardware.storage.speed",
                "Storage speed.",
                lambda: self._measure_pairs(speed_pairs, "read", "write"),
            )

        if temperature:
            self._register(
                "hardware.storage.temperature",
                "Storage temperature.",
                lambda: self._measure_by_hardware_name(temperature),
            )

        if life:
            self._register("hardware.storage.life", "Storage life.", lambda: self._measure_storage_life(life))

        if amplification:
            self._register(
                "hardware.storage.amplification",
                "Storage amplification.",
                lambda: self._measure_storage_life(amplification),
            )

        if spare:
            self._register("hardware.storage.spare", "Storage spare.", lambda: self._measure_storage_life(spare))

    def _measure_storage_life(self, sensors: list[Sensor]) -> list[Observation]:
        observations: list[Observation] = []
        with self._lock:
            for sensor in sensors:
                value = _value(sensor)
                # Report wear as life left so both sensor flavours read higher-is-better.
                if sensor.name == PERCENTAGE_USED:
                    value = 100 - value
                observations.append(Observation(value, {"name": sensor.hardware.name}))
        return observations

    def _setup_network(self) -> None:
        data = self.index.sensors(HardwareType.NETWORK, SensorType.DATA)
        throughput = self.index.sensors(HardwareType.NETWORK, SensorType.THROUGHPUT)
        load = self.index.sensors(HardwareType.NETWORK, SensorType.LOAD)

        if data:
            data_pairs = pair_by_hardware(
                [s for s in data if s.name == "Data Downloaded"],
                [s for s in data if s.name == "Data Uploaded"],
            )
            self._register(
                "hardware.network.bytes",
                "Network bytes.",
                lambda: self._measure_pairs(data_pairs, "download", "upload"),
                counter=True,
            )

        if throughput:
            speed_pairs = pair_by_hardware(
                [s for s in throughput if s.name == "Download Speed"],
                [s for s in throughput if s.name == "Upload Speed"],
            )
            self._register(
                "hardware.network.speed",
                "Network speed.",
                lambda: self._measure_pairs(speed_pairs, "download", "upload"),
            )

        if load:
            self._register("hardware.network.load", "Network load.", lambda: self._measure_by_hardware_name(load))
