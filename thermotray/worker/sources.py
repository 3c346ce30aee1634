import glob
import psutil
import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from thermotray.config import effective_settings as config
from thermotray.errors import SourceUnavailableError

log = logging.getLogger(__name__)

# Sensor labels that report the whole CPU package rather than a single core.
PACKAGE_LABELS = ("Package id 0", "Tctl", "Tdie", "CPU")


class ValueSource(ABC):
    """A synchronous sensor that returns a reading, or None when it has none."""

    @abstractmethod
    def poll(self) -> Optional[float]:
        """Reads the sensor once."""

    def close(self) -> None:
        pass


class PsutilTemperatureSource(ValueSource):
    """
    Reads the CPU temperature through psutil.sensors_temperatures().

    Chips listed in `preferred_chips` are tried first, in order; within a
    chip, a package-level label is preferred over the first core.
    """

    def __init__(self, preferred_chips: Optional[List[str]] = None):
        if not hasattr(psutil, "sensors_temperatures"):
            raise SourceUnavailableError("psutil cannot read temperatures on this platform.")
        self.preferred_chips = list(preferred_chips if preferred_chips is not None else config.SENSOR_LABELS)

    def _chip_order(self, readings: Dict[str, list]) -> List[str]:
        preferred = [chip for chip in self.preferred_chips if chip in readings]
        return preferred + sorted(chip for chip in readings if chip not in preferred)

    def poll(self) -> Optional[float]:
        readings = psutil.sensors_temperatures()
        if not readings:
            return None

        for chip in self._chip_order(readings):
            entries = [entry for entry in readings[chip] if entry.current is not None]
            if not entries:
                continue
            for entry in entries:
                if entry.label in PACKAGE_LABELS:
                    return float(entry.current)
            return float(entries[0].current)
        return None


class ThermalZoneSource(ValueSource):
    """Reads the first valid Linux thermal zone, reported in millidegrees Celsius."""

    def __init__(self, pattern: Optional[str] = None):
        self.pattern = pattern or config.THERMAL_ZONE_GLOB

    def poll(self) -> Optional[float]:
        for path in sorted(glob.glob(self.pattern)):
            try:
                with open(path, 'r') as f:
                    millidegrees = int(f.read().strip())
            except (OSError, ValueError) as e:
                log.debug(f"Skipping thermal zone '{path}': {e}")
                continue
            return millidegrees / 1000.0
        return None


SOURCES = {
    "psutil": PsutilTemperatureSource,
    "thermal_zone": ThermalZoneSource,
}


def create_source(kind: Optional[str] = None) -> ValueSource:
    """
    Creates the configured value source.

    :param kind: Source name, defaults to SENSOR_SOURCE.
    :raises SourceUnavailableError: If the source is unknown or cannot be opened.
    """
    kind = (kind or config.SENSOR_SOURCE).lower()
    if kind not in SOURCES:
        raise SourceUnavailableError(f"Unknown sensor source '{kind}'. Choose one of: {', '.join(SOURCES)}.")
    return SOURCES[kind]()
