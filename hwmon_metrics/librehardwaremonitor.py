from __future__ import annotations

import json
import re
from typing import Any
from urllib.request import urlopen

from hwmon_metrics.config import MonitorOptions
from hwmon_metrics.hardware import Hardware, HardwareType, Sensor, SensorType, iter_sensors
from hwmon_metrics.logging_utils import TRACE_LEVEL
from hwmon_metrics.provider import ProviderError, SensorProvider
from hwmon_metrics.schema import validate_payload

_NUMBER = re.compile(r"[-+]?\d+(?:\.\d+)?")
_TIME_SPAN = re.compile(r"^(?:(\d+)\.)?(\d+):(\d{1,2}):(\d{1,2})(?:\.\d+)?$")
_THROUGHPUT_SCALE = {"B/s": 1.0, "KB/s": 1024.0, "MB/s": 1024.0**2, "GB/s": 1024.0**3}

_ID_PREFIXES: list[tuple[tuple[str, ...], HardwareType]] = [
    (("motherboard", "mainboard"), HardwareType.MOTHERBOARD),
    (("lpc",), HardwareType.SUPER_IO),
    (("amdcpu", "intelcpu", "cpu"), HardwareType.CPU),
    (("gpu", "nvidiagpu", "atigpu", "intelgpu"), HardwareType.GPU),
    (("ram", "vram", "memory"), HardwareType.MEMORY),
    (("hdd", "ssd", "nvme", "storage"), HardwareType.STORAGE),
    (("nic", "network"), HardwareType.NETWORK),
    (("battery",), HardwareType.BATTERY),
]

_ICON_KEYWORDS: list[tuple[tuple[str, ...], HardwareType]] = [
    (("battery",), HardwareType.BATTERY),
    (("hdd", "ssd", "nvme"), HardwareType.STORAGE),
    (("nvidia", "ati", "amd", "intel", "gpu"), HardwareType.GPU),
    (("mainboard", "motherboard"), HardwareType.MOTHERBOARD),
    (("chip",), HardwareType.SUPER_IO),
    (("cpu",), HardwareType.CPU),
    (("ram",), HardwareType.MEMORY),
    (("nic",), HardwareType.NETWORK),
]


def classify_hardware_id(hardware_id: str) -> HardwareType:
    head = hardware_id.strip("/").split("/", 1)[0].lower()
    for prefixes, hardware_type in _ID_PREFIXES:
        if any(head.startswith(prefix) for prefix in prefixes):
            return hardware_type
    # Fan controllers, coolers, PSUs and embedded controllers.
    return HardwareType.CONTROLLER


def classify_icon(image_url: str) -> HardwareType | None:
    icon = image_url.rsplit("/", 1)[-1].lower()
    for keywords, hardware_type in _ICON_KEYWORDS:
        if any(keyword in icon for keyword in keywords):
            return hardware_type
    return None


def parse_value(value: Any, sensor_type: SensorType) -> float | None:
    """Convert a LibreHardwareMonitor value to the sensor's native unit.

    Numbers pass through. Text such as ``"45.0 °C"`` loses its unit,
    throughput text is scaled to bytes per second, and ``h:mm:ss`` time
    spans become seconds.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).replace(",", "").strip()
    if not text or text == "-":
        return None
    if sensor_type == SensorType.TIME_SPAN:
        match = _TIME_SPAN.match(text)
        if match:
            days, hours, minutes, seconds = (int(part or 0) for part in match.groups())
            return float(((days * 24 + hours) * 60 + minutes) * 60 + seconds)
    match = _NUMBER.match(text)
    if not match:
        return None
    number = float(match.group())
    if sensor_type == SensorType.THROUGHPUT:
        unit = text[match.end():].strip()
        return number * _THROUGHPUT_SCALE.get(unit, 1.0)
    return number


def _has_key(raw: Any, key: str) -> bool:
    nodes = [raw]
    while nodes:
        node = nodes.pop()
        if isinstance(node, dict):
            if node.get(key):
                return True
            nodes.extend(node.get("Children", []))
    return False


def parse_tree(raw: dict[str, Any]) -> list[Hardware]:
    """Build the hardware tree from a ``data.json`` payload.

    Builds that publish ``HardwareId`` are classified by id prefix; older
    builds fall back to the node icon.
    """
    use_ids = _has_key(raw, "HardwareId")
    roots: list[Hardware] = []
    seen: dict[str, int] = {}

    def unique(identifier: str) -> str:
        # Text-derived ids repeat for identical devices; number repeats in tree order.
        count = seen.get(identifier, 0)
        seen[identifier] = count + 1
        return identifier if count == 0 else f"{identifier}#{count}"

    def hardware_type_of(node: dict[str, Any]) -> HardwareType | None:
        if node.get("SensorId"):
            return None
        if use_ids:
            hardware_id = node.get("HardwareId")
            return classify_hardware_id(hardware_id) if hardware_id else None
        if node.get("Type") or node.get("Value"):
            return None
        return classify_icon(node.get("ImageURL") or "")

    def is_sensor(node: dict[str, Any]) -> bool:
        if node.get("SensorId") or node.get("Type"):
            return True
        return not node.get("Children") and node.get("Value") not in (None, "")

    def walk(
        node: dict[str, Any], owner: Hardware | None, group_type: SensorType | None
    ) -> None:
        text = (node.get("Text") or "").replace("\x00", "").strip()
        hardware_type = hardware_type_of(node)
        if hardware_type is not None:
            identifier = node.get("HardwareId") or unique(f"/{hardware_type.value}/{text}")
            hardware = Hardware(identifier, hardware_type, text)
            if owner is None:
                roots.append(hardware)
            else:
                owner.add_sub_hardware(hardware)
            owner = hardware
            group_type = None
        elif owner is not None and is_sensor(node):
            sensor_id = node.get("SensorId") or ""
            sensor_type = SensorType.parse(node.get("Type"))
            if sensor_type is None and sensor_id:
                parts = sensor_id.strip("/").split("/")
                sensor_type = SensorType.parse(parts[-2]) if len(parts) >= 2 else None
            sensor_type = sensor_type or group_type
            if sensor_type is not None:
                identifier = sensor_id or unique(f"{owner.identifier}/{sensor_type.value}/{text}")
                raw_value = node.get("RawValue", node.get("Value"))
                owner.add_sensor(identifier, sensor_type, text, parse_value(raw_value, sensor_type))
            return
        elif owner is not None:
            # Sensor groups ("Voltages", "Fans", ...) carry the type in their icon.
            icon = (node.get("ImageURL") or "").rsplit("/", 1)[-1].split(".", 1)[0]
            group_type = SensorType.parse(icon) or group_type
        for child in node.get("Children", []):
            if isinstance(child, dict):
                walk(child, owner, group_type)

    walk(raw, None, None)
    return roots


class LibreHardwareMonitorProvider(SensorProvider):
    """Reads the LibreHardwareMonitor remote web server (``/data.json``)."""

    def __init__(self, options: MonitorOptions, url: str, timeout_s: float = 2.0) -> None:
        super().__init__(options)
        self.url = url
        self.timeout_s = timeout_s
        self._sensors: dict[str, Sensor] = {}

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

    def refresh(self) -> None:
        if not self.opened:
            raise ProviderError("LibreHardwareMonitor provider is not open.")
        fresh = {
            sensor.identifier: sensor.value
            for root in parse_tree(self._fetch())
            for sensor in iter_sensors(root)
        }
        for identifier, sensor in self._sensors.items():
            sensor.value = fresh.get(identifier)

    def _discover(self) -> list[Hardware]:
        return parse_tree(self._fetch())

    def _fetch(self) -> dict[str, Any]:
        try:
            with urlopen(self.url, timeout=self.timeout_s) as response:
                payload = response.read().decode("utf-8")
        except OSError as exc:
            raise ProviderError(f"Failed to fetch {self.url}: {exc}") from exc
        if self.logger.isEnabledFor(TRACE_LEVEL):
            self.logger.log(TRACE_LEVEL, "LibreHardwareMonitor raw payload: %s", payload)
        try:
            raw = json.loads(payload)
        except json.JSONDecodeError as exc:
            raise ProviderError(f"Invalid JSON from {self.url}: {exc}") from exc
        errors = validate_payload(raw)
        if errors:
            self.logger.debug("Schema errors: %s", errors)
            raise ProviderError(
                f"Payload from {self.url} failed validation with {len(errors)} errors."
            )
        return raw
