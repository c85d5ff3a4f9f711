# controller/reading_log.py
import logging
from typing import Dict, Iterable, List, Optional, Sequence

from .models import SensorType, sensor_of

logger = logging.getLogger(__name__)

DEFAULT_MATCH_FIELDS = ("type", "timestamp", "lat")


def match_key(reading, fields: Sequence[str]):
    # fields missing on a variant (lat on an accelerometer sample) compare as None
    return tuple(getattr(reading, field, None) for field in fields)


class ReadingLog:
    """Append-only readings of one simulation run, in append order."""

    def __init__(self, match_fields: Sequence[str] = DEFAULT_MATCH_FIELDS):
        self.match_fields = tuple(match_fields)
        self._entries: List = []

    def __len__(self):
        return len(self._entries)

    def __iter__(self):
        return iter(self._entries)

    def append(self, reading):
        self._entries.append(reading)

    def clear(self):
        self._entries.clear()

    def entries(self, sensor: Optional[SensorType] = None) -> List:
        if sensor is None:
            return list(self._entries)
        return [r for r in self._entries if sensor_of(r) is sensor]

    def last(self, sensor: SensorType):
        for reading in reversed(self._entries):
            if sensor_of(reading) is sensor:
                return reading
        return None

    def unsynced(self, sensors: Iterable[SensorType]) -> Dict[SensorType, List]:
        """Copies of the unsynced readings, grouped per sensor type."""
        grouped = {sensor: [] for sensor in sensors}
        for reading in self._entries:
            sensor = sensor_of(reading)
            if sensor in grouped and not reading.synced:
                grouped[sensor].append(reading.model_copy())
        return {sensor: readings for sensor, readings in grouped.items() if readings}

    def unsynced_count(self, sensor: SensorType) -> int:
        return sum(1 for r in self._entries if sensor_of(r) is sensor and not r.synced)

    def apply_ack(self, acknowledged) -> int:
        """Each acknowledged reading claims one entry, unsynced first. Returns the match count."""
        claimed = set()
        matched = 0
        for sent in acknowledged:
            key = match_key(sent, self.match_fields)
            candidates = [
                i for i, entry in enumerate(self._entries)
                if i not in claimed and match_key(entry, self.match_fields) == key
            ]
            if not candidates:
                logger.warning(
                    f"[SYNC] Acknowledged {sent.type} reading at {sent.timestamp} "
                    f"has no matching log entry; discarding"
                )
                continue
            pending = [i for i in candidates if not self._entries[i].synced]
            chosen = pending[0] if pending else candidates[0]
            claimed.add(chosen)
            self._entries[chosen].mark_synced()
            matched += 1
        return matched
