from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Iterator


class HardwareType(str, Enum):
    BATTERY = "battery"
    CPU = "cpu"
    GPU = "gpu"
    MEMORY = "memory"
    MOTHERBOARD = "motherboard"
    NETWORK = "network"
    STORAGE = "storage"
    CONTROLLER = "controller"
    SUPER_IO = "superio"


class SensorType(str, Enum):
    VOLTAGE = "voltage"
    CURRENT = "current"
    POWER = "power"
    CLOCK = "clock"
    TEMPERATURE = "temperature"
    LOAD = "load"
    FREQUENCY = "frequency"
    FAN = "fan"
    FLOW = "flow"
    CONTROL = "control"
    LEVEL = "level"
    FACTOR = "factor"
    DATA = "data"
    SMALL_DATA = "smalldata"
    THROUGHPUT = "throughput"
    TIME_SPAN = "timespan"
    ENERGY = "energy"
    NOISE = "noise"
    CONDUCTIVITY = "conductivity"
    HUMIDITY = "humidity"

    @classmethod
    def parse(cls, value: str | None) -> SensorType | None:
        if not value:
            return None
        key = value.replace(" ", "").replace("_", "").lower()
        for member in cls:
            if member.value == key:
                return member
        return None


@dataclass(eq=False)
class Sensor:
    identifier: str
    sensor_type: SensorType
    name: str
    hardware: Hardware
    value: float | None = None

    def __repr__(self) -> str:
        return (
            f"Sensor({self.identifier!r}, {self.sensor_type.value}, "
            f"{self.name!r}, value={self.value!r})"
        )


@dataclass(eq=False)
class Hardware:
    identifier: str
    hardware_type: HardwareType
    name: str
    sub_hardware: list[Hardware] = field(default_factory=list)
    sensors: list[Sensor] = field(default_factory=list)

    def add_sensor(
        self,
        identifier: str,
        sensor_type: SensorType,
        name: str,
        value: float | None = None,
    ) -> Sensor:
        sensor = Sensor(identifier, sensor_type, name, self, value)
        self.sensors.append(sensor)
        return sensor

    def add_sub_hardware(self, hardware: Hardware) -> Hardware:
        self.sub_hardware.append(hardware)
        return hardware

    def __repr__(self) -> str:
        return f"Hardware({self.identifier!r}, {self.hardware_type.value}, {self.name!r})"


def iter_sensors(hardware: Hardware) -> Iterator[Sensor]:
    """Yield every sensor below ``hardware``, sub-hardware first.

    Sub-hardware is visited in order and recursively before the node's own
    sensors, so a motherboard's Super I/O chip sensors come ahead of the
    motherboard's sensors.
    """
    for sub in hardware.sub_hardware:
        yield from iter_sensors(sub)
    yield from hardware.sensors


def iter_hardware(roots: Iterable[Hardware]) -> Iterator[Hardware]:
    for hardware in roots:
        yield hardware
        yield from iter_hardware(hardware.sub_hardware)


class SensorIndex:
    """Flat, filterable view over a hardware tree captured once."""

    def __init__(self, roots: Iterable[Hardware]) -> None:
        self._sensors: list[Sensor] = [
            sensor for root in roots for sensor in iter_sensors(root)
        ]

    def __len__(self) -> int:
        return len(self._sensors)

    def sensors(
        self,
        hardware_type: HardwareType,
        sensor_type: SensorType,
        name: str | None = None,
    ) -> list[Sensor]:
        return [
            sensor
            for sensor in self._sensors
            if sensor.hardware.hardware_type == hardware_type
            and sensor.sensor_type == sensor_type
            and (name is None or sensor.name == name)
        ]

    def first(
        self,
        hardware_type: HardwareType,
        sensor_type: SensorType,
        name: str | None = None,
    ) -> Sensor | None:
        matches = self.sensors(hardware_type, sensor_type, name)
        return matches[0] if matches else None
