# controller/reading_sync.py
import asyncio
import logging
from typing import Callable, Dict, List

from telemetry_sim.errors import UpstreamError
from .models import SensorType, SyncResult

logger = logging.getLogger(__name__)


class ReadingSynchronizer:
    """Sends reading copies to the data sink; successes go to `on_ack`."""

    def __init__(self, sink, sensor_ids: Dict[SensorType, str],
                 on_ack: Callable[[SensorType, List], int]):
        self.sink = sink
        self.sensor_ids = dict(sensor_ids)
        self.on_ack = on_ack

    async def submit(self, sensor: SensorType, readings: List) -> SyncResult:
        sensor_id = self.sensor_ids.get(sensor, "")
        try:
            await self.sink.submit(sensor, sensor_id, readings)
        except UpstreamError as e:
            logger.error(f"[SYNC] Failed to sync {len(readings)} {sensor.value} reading(s): {e}")
            return SyncResult(sensor=sensor, submitted=len(readings), ok=False, error=str(e))

        acknowledged = self.on_ack(sensor, readings)
        logger.info(f"[SYNC] {sensor.value} batch of {len(readings)} acknowledged, {acknowledged} flipped")
        return SyncResult(sensor=sensor, submitted=len(readings), acknowledged=acknowledged, ok=True)

    async def submit_all(self, pending: Dict[SensorType, List]) -> List[SyncResult]:
        """One batch per sensor type, sent concurrently."""
        sensors = [sensor for sensor, readings in pending.items() if readings]
        results = await asyncio.gather(*(self.submit(sensor, pending[sensor]) for sensor in sensors))
        return list(results)
