from __future__ import annotations

from dataclasses import dataclass
import os
import time
from typing import Any, Iterator, NamedTuple

import psutil

from hwmon_metrics.config import MonitorOptions
from hwmon_metrics.hardware import Hardware, HardwareType, Sensor, SensorType, iter_sensors
from hwmon_metrics.provider import ProviderError, SensorProvider

GIB = 1024 * 1024 * 1024

_SKIPPED_DISK_PREFIXES = ("loop", "ram", "zram", "dm-", "sr")
_LOOPBACK_NICS = {"lo", "lo0", "Loopback Pseudo-Interface 1"}
_CHIP_TYPES = {
    "coretemp": HardwareType.CPU,
    "k10temp": HardwareType.CPU,
    "zenpower": HardwareType.CPU,
    "cpu_thermal": HardwareType.CPU,
    "nvme": HardwareType.STORAGE,
    "drivetemp": HardwareType.STORAGE,
    "amdgpu": HardwareType.GPU,
    "radeon": HardwareType.GPU,
    "nouveau": HardwareType.GPU,
}


class Reading(NamedTuple):
    hardware_id: str
    hardware_type: HardwareType
    hardware_name: str
    parent_id: str | None
    sensor_id: str
    sensor_type: SensorType
    sensor_name: str
    value: float | None


@dataclass
class IoSnapshot:
    timestamp: float
    values: dict[str, Any]


def _rate(current: int, previous: Any, attr: str, elapsed: float) -> float:
    if previous is None or elapsed <= 0:
        return 0.0
    return max(0.0, (current - getattr(previous, attr)) / elapsed)


def _physical_disks(names: list[str]) -> list[str]:
    disks = [name for name in names if not name.startswith(_SKIPPED_DISK_PREFIXES)]
    # Linux reports partitions (sda1, nvme0n1p1) next to their parent disk.
    return [
        name
        for name in disks
        if not any(other != name and name.startswith(other) for other in disks)
    ]


class LocalProvider(SensorProvider):
    """Samples the local machine through psutil.

    The tree mirrors the LibreHardwareMonitor layout and sensor names so the
    same metric mapping applies. Data sensors are in GiB, throughput in
    bytes per second, loads and levels in percent.
    """

    def __init__(self, options: MonitorOptions) -> None:
        super().__init__(options)
        self._sensors: dict[str, Sensor] = {}
        self._last_disk: IoSnapshot | None = None
        self._last_net: IoSnapshot | None = None

    def open(self) -> None:
        super().open()
        self._sensors = {
            sensor.identifier: sensor
            for root in self.hardware
            for sensor in iter_sensors(root)
        }

    def close(self) -> None:
        super().close()
        self._sensors = {}
        self._last_disk = None
        self._last_net = None

    def refresh(self) -> None:
        if not self.opened:
            raise ProviderError("Local provider is not open.")
        values = {reading.sensor_id: reading.value for reading in self._sample()}
        for identifier, sensor in self._sensors.items():
            sensor.value = values.get(identifier)

    def _discover(self) -> list[Hardware]:
        nodes: dict[str, Hardware] = {}
        roots: list[Hardware] = []
        for reading in self._sample():
            hardware = nodes.get(reading.hardware_id)
            if hardware is None:
                hardware = Hardware(reading.hardware_id, reading.hardware_type, reading.hardware_name)
                nodes[reading.hardware_id] = hardware
                parent = nodes.get(reading.parent_id) if reading.parent_id else None
                if parent is None and reading.parent_id:
                    parent = Hardware(reading.parent_id, HardwareType.MOTHERBOARD, "Motherboard")
                    nodes[reading.parent_id] = parent
                    roots.append(parent)
                if parent is None:
                    roots.append(hardware)
                else:
                    parent.add_sub_hardware(hardware)
            hardware.add_sensor(reading.sensor_id, reading.sensor_type, reading.sensor_name, reading.value)
        return roots

    def _sample(self) -> list[Reading]:
        readings: list[Reading] = []
        try:
            readings.extend(self._sample_memory())
            readings.extend(self._sample_storage())
            readings.extend(self._sample_network())
            readings.extend(self._sample_battery())
            readings.extend(self._sample_chips())
        except psutil.Error as exc:
            raise ProviderError(f"psutil sampling failed: {exc}") from exc
        return readings

    def _sample_memory(self) -> Iterator[Reading]:
        vm = psutil.virtual_memory()
        swap = psutil.swap_memory()

        def reading(sensor_id: str, sensor_type: SensorType, name: str, value: float) -> Reading:
            return Reading("/ram", HardwareType.MEMORY, "Generic Memory", None,
                           f"/ram/{sensor_id}", sensor_type, name, float(value))

        yield reading("load/0", SensorType.LOAD, "Memory", vm.percent)
        yield reading("load/1", SensorType.LOAD, "Virtual Memory", swap.percent)
        yield reading("data/0", SensorType.DATA, "Memory Used", vm.used / GIB)
        yield reading("data/1", SensorType.DATA, "Memory Available", vm.available / GIB)
        yield reading("data/2", SensorType.DATA, "Virtual Memory Used", swap.used / GIB)
        yield reading("data/3", SensorType.DATA, "Virtual Memory Available", swap.free / GIB)

    def _sample_storage(self) -> Iterator[Reading]:
        io_stats = psutil.disk_io_counters(perdisk=True) or {}
        now = time.monotonic()
        last = self._last_disk
        elapsed = now - last.timestamp if last else 0.0
        disks = _physical_disks(list(io_stats))
        usage = self._disk_usage(disks)
        for name in disks:
            counters = io_stats[name]
            previous = last.values.get(name) if last else None
            hardware_id = f"/hdd/{name}"

            def reading(sensor_id: str, sensor_type: SensorType, label: str, value: float) -> Reading:
                return Reading(hardware_id, HardwareType.STORAGE, name, None,
                               f"{hardware_id}/{sensor_id}", sensor_type, label, value)

            if name in usage:
                yield reading("load/0", SensorType.LOAD, "Used Space", usage[name])
            yield reading("data/0", SensorType.DATA, "Data Read", counters.read_bytes / GIB)
            yield reading("data/1", SensorType.DATA, "Data Written", counters.write_bytes / GIB)
            yield reading("throughput/0", SensorType.THROUGHPUT, "Read Rate",
                          _rate(counters.read_bytes, previous, "read_bytes", elapsed))
            yield reading("throughput/1", SensorType.THROUGHPUT, "Write Rate",
                          _rate(counters.write_bytes, previous, "write_bytes", elapsed))
        self._last_disk = IoSnapshot(timestamp=now, values=io_stats)

    def _disk_usage(self, disks: list[str]) -> dict[str, float]:
        used = dict.fromkeys(disks, 0)
        total = dict.fromkeys(disks, 0)
        for part in psutil.disk_partitions(all=False):
            # Snap squashfs images always read full.
            if part.fstype == "squashfs":
                continue
            device = os.path.basename(part.device)
            disk = next((name for name in disks if device.startswith(name)), None)
            if disk is None:
                continue
            try:
                disk_usage = psutil.disk_usage(part.mountpoint)
            except OSError:
                self.logger.debug("Skipping usage for %s (unreadable).", part.mountpoint)
                continue
            used[disk] += disk_usage.used
            total[disk] += disk_usage.total
        return {disk: used[disk] / total[disk] * 100 for disk in disks if total[disk]}

    def _sample_network(self) -> Iterator[Reading]:
        io_stats = psutil.net_io_counters(pernic=True) or {}
        # Some containers reject the interface ioctl.
        try:
            iface_stats = psutil.net_if_stats()
        except OSError:
            self.logger.debug("Failed to get network interface stats (ioctl not supported).")
            iface_stats = {}
        now = time.monotonic()
        last = self._last_net
        elapsed = now - last.timestamp if last else 0.0
        for name, counters in io_stats.items():
            if name in _LOOPBACK_NICS:
                continue
            previous = last.values.get(name) if last else None
            hardware_id = f"/nic/{name}"

            def reading(sensor_id: str, sensor_type: SensorType, label: str, value: float) -> Reading:
                return Reading(hardware_id, HardwareType.NETWORK, name, None,
                               f"{hardware_id}/{sensor_id}", sensor_type, label, value)

            download = _rate(counters.bytes_recv, previous, "bytes_recv", elapsed)
            upload = _rate(counters.bytes_sent, previous, "bytes_sent", elapsed)
            yield reading("data/0", SensorType.DATA, "Data Downloaded", counters.bytes_recv / GIB)
            yield reading("data/1", SensorType.DATA, "Data Uploaded", counters.bytes_sent / GIB)
            yield reading("throughput/0", SensorType.THROUGHPUT, "Download Speed", download)
            yield reading("throughput/1", SensorType.THROUGHPUT, "Upload Speed", upload)
            stats = iface_stats.get(name)
            if stats is not None and stats.speed:
                link_bps = stats.speed * 1_000_000 / 8
                utilization = min(max(download, upload) / link_bps * 100, 100.0)
                yield reading("load/0", SensorType.LOAD, "Network Utilization", utilization)
        self._last_net = IoSnapshot(timestamp=now, values=io_stats)

    def _sample_battery(self) -> Iterator[Reading]:
        if not hasattr(psutil, "sensors_battery"):
            return
        battery = psutil.sensors_battery()
        if battery is None:
            return
        yield Reading("/battery/0", HardwareType.BATTERY, "Battery", None,
                      "/battery/0/level/0", SensorType.LEVEL, "Charge Level", float(battery.percent))
        # psutil reports unknown/unlimited time as negative sentinels.
        remaining = float(battery.secsleft) if battery.secsleft is not None and battery.secsleft >= 0 else None
        yield Reading("/battery/0", HardwareType.BATTERY, "Battery", None,
                      "/battery/0/timespan/0", SensorType.TIME_SPAN, "Remaining Time", remaining)

    def _sample_chips(self) -> Iterator[Reading]:
        temperatures = psutil.sensors_temperatures() if hasattr(psutil, "sensors_temperatures") else {}
        fans = psutil.sensors_fans() if hasattr(psutil, "sensors_fans") else {}
        groups = (
            (temperatures, SensorType.TEMPERATURE, "temperature"),
            (fans, SensorType.FAN, "fan"),
        )
        for entries_by_chip, sensor_type, segment in groups:
            for chip, entries in (entries_by_chip or {}).items():
                hardware_type = _CHIP_TYPES.get(chip, HardwareType.SUPER_IO)
                parent_id = "/motherboard" if hardware_type == HardwareType.SUPER_IO else None
                hardware_id = f"/lpc/{chip}" if parent_id else f"/{hardware_type.value}/{chip}"
                for index, entry in enumerate(entries):
                    label = entry.label or f"{chip} #{index + 1}"
                    yield Reading(hardware_id, hardware_type, chip, parent_id,
                                  f"{hardware_id}/{segment}/{index}", sensor_type, label,
                                  float(entry.current))
