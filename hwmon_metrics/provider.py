from __future__ import annotations

from abc import ABC, abstractmethod
import logging

from hwmon_metrics.config import MonitorOptions
from hwmon_metrics.hardware import Hardware, iter_hardware, iter_sensors


class ProviderError(RuntimeError):
    """Raised when a sensor provider cannot open or refresh its hardware tree."""


class SensorProvider(ABC):
    """Source of a hardware tree whose sensor values are refreshed in place.

    Implementations build the tree in ``open()`` and never replace the
    ``Hardware`` or ``Sensor`` objects afterwards; ``refresh()`` only
    rewrites ``Sensor.value``.
    """

    def __init__(self, options: MonitorOptions) -> None:
        self.options = options
        self.logger = logging.getLogger(self.__class__.__name__)
        self._hardware: list[Hardware] = []
        self._opened = False

    @property
    def hardware(self) -> list[Hardware]:
        return self._hardware

    @property
    def opened(self) -> bool:
        return self._opened

    def open(self) -> None:
        if self._opened:
            return
        self._hardware = self._filter_enabled(self._discover())
        self._opened = True
        self.logger.info(
            "Discovered %d hardware nodes with %d sensors.",
            sum(1 for _ in iter_hardware(self._hardware)),
            sum(1 for root in self._hardware for _ in iter_sensors(root)),
        )

    def close(self) -> None:
        if not self._opened:
            return
        self._opened = False
        self._hardware = []
        self.logger.debug("Provider closed.")

    def _filter_enabled(self, nodes: list[Hardware]) -> list[Hardware]:
        kept: list[Hardware] = []
        for hardware in nodes:
            if not self.options.is_enabled(hardware.hardware_type):
                self.logger.debug("Skipping disabled hardware %r.", hardware)
                continue
            hardware.sub_hardware[:] = self._filter_enabled(hardware.sub_hardware)
            kept.append(hardware)
        return kept

    @abstractmethod
    def refresh(self) -> None:
        """Update every sensor value of the open tree."""

    @abstractmethod
    def _discover(self) -> list[Hardware]:
        """Build the full hardware tree, before enable-flag filtering."""
