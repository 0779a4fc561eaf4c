"""Tests for the hardware tree and the sensor index."""
from __future__ import annotations

from conftest import make_hardware

from hwmon_metrics.hardware import HardwareType, SensorIndex, SensorType, iter_hardware, iter_sensors


def _motherboard():
    super_io = make_hardware(
        HardwareType.SUPER_IO,
        "Nuvoton NCT6798D",
        [(SensorType.TEMPERATURE, "SYSTIN", 30.0), (SensorType.FAN, "CPU Fan", 900.0)],
    )
    ec = make_hardware(HardwareType.CONTROLLER, "EC", [(SensorType.TEMPERATURE, "Chipset", 45.0)])
    return make_hardware(
        HardwareType.MOTHERBOARD,
        "ASUS PRIME",
        [(SensorType.VOLTAGE, "Board 12V", 12.1)],
        sub_hardware=[super_io, ec],
    )


class TestTraversal:
    def test_sub_hardware_sensors_come_first(self):
        board = _motherboard()

        names = [sensor.name for sensor in iter_sensors(board)]

        assert names == ["SYSTIN", "CPU Fan", "Chipset", "Board 12V"]

    def test_nested_sub_hardware_is_depth_first(self):
        leaf = make_hardware(HardwareType.SUPER_IO, "leaf", [(SensorType.FAN, "leaf fan", 1.0)])
        middle = make_hardware(
            HardwareType.CONTROLLER, "middle", [(SensorType.FAN, "middle fan", 2.0)], [leaf]
        )
        sibling = make_hardware(HardwareType.CONTROLLER, "sibling", [(SensorType.FAN, "sibling fan", 3.0)])
        root = make_hardware(
            HardwareType.MOTHERBOARD, "root", [(SensorType.FAN, "root fan", 4.0)], [middle, sibling]
        )

        names = [sensor.name for sensor in iter_sensors(root)]

        assert names == ["leaf fan", "middle fan", "sibling fan", "root fan"]

    def test_iter_hardware_walks_every_node(self):
        board = _motherboard()
        disk = make_hardware(HardwareType.STORAGE, "disk")

        names = [hardware.name for hardware in iter_hardware([board, disk])]

        assert names == ["ASUS PRIME", "Nuvoton NCT6798D", "EC", "disk"]

    def test_sensor_keeps_owner(self):
        board = _motherboard()

        owners = {sensor.name: sensor.hardware.name for sensor in iter_sensors(board)}

        assert owners["SYSTIN"] == "Nuvoton NCT6798D"
        assert owners["Board 12V"] == "ASUS PRIME"


class TestSensorIndex:
    def test_filters_by_hardware_and_sensor_type(self):
        index = SensorIndex([_motherboard()])

        temperatures = index.sensors(HardwareType.SUPER_IO, SensorType.TEMPERATURE)

        assert [sensor.name for sensor in temperatures] == ["SYSTIN"]

    def test_filters_by_name(self):
        disks = [
            make_hardware(
                HardwareType.STORAGE,
                f"disk{i}",
                [(SensorType.THROUGHPUT, "Read Rate", 1.0), (SensorType.THROUGHPUT, "Write Rate", 2.0)],
            )
            for i in range(2)
        ]
        index = SensorIndex(disks)

        reads = index.sensors(HardwareType.STORAGE, SensorType.THROUGHPUT, "Read Rate")

        assert [sensor.hardware.name for sensor in reads] == ["disk0", "disk1"]

    def test_order_follows_provider_enumeration(self):
        first = make_hardware(HardwareType.NETWORK, "eth0", [(SensorType.LOAD, "Network Utilization", 1.0)])
        second = make_hardware(HardwareType.NETWORK, "wlan0", [(SensorType.LOAD, "Network Utilization", 2.0)])

        index = SensorIndex([second, first])

        assert [s.hardware.name for s in index.sensors(HardwareType.NETWORK, SensorType.LOAD)] == [
            "wlan0",
            "eth0",
        ]

    def test_first_returns_none_when_missing(self):
        index = SensorIndex([_motherboard()])

        assert index.first(HardwareType.BATTERY, SensorType.VOLTAGE) is None
        assert index.first(HardwareType.MOTHERBOARD, SensorType.VOLTAGE).name == "Board 12V"

    def test_len_counts_all_sensors(self):
        assert len(SensorIndex([_motherboard()])) == 4
        assert len(SensorIndex([])) == 0


class TestSensorType:
    def test_parse_accepts_provider_spellings(self):
        assert SensorType.parse("Temperature") is SensorType.TEMPERATURE
        assert SensorType.parse("TimeSpan") is SensorType.TIME_SPAN
        assert SensorType.parse("timespan") is SensorType.TIME_SPAN
        assert SensorType.parse("SmallData") is SensorType.SMALL_DATA

    def test_parse_unknown(self):
        assert SensorType.parse("Gravity") is None
        assert SensorType.parse("") is None
        assert SensorType.parse(None) is None
