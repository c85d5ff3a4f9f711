# controller/virtual_clock.py
import logging
import time
from datetime import datetime, timedelta
from typing import Optional

from telemetry_sim.errors import UpstreamError
from .events import EventChannel
from .models import ClockState
from .scheduler import PeriodicTicker

logger = logging.getLogger(__name__)


class VirtualClock:
    """Local clock anchored to one remote time fetch."""

    def __init__(self, time_source, interval_ms, wall_clock=time.time):
        self.time_source = time_source
        self.wall_clock = wall_clock
        self.state: Optional[ClockState] = None
        self.channel: EventChannel[datetime] = EventChannel("virtual_clock")
        self._emitter = PeriodicTicker("virtual_clock", interval_ms)

    async def sync(self) -> datetime:
        try:
            remote_time = await self.time_source.fetch()
        except UpstreamError as e:
            logger.error(f"[CLOCK] Sync failed: {e}")
            raise

        self.state = ClockState(
            last_synced_remote_time=remote_time,
            last_sync_local_timestamp=self.wall_clock(),
        )
        self.channel.publish(remote_time)
        self._emitter.start(self.tick)
        logger.info(f"[CLOCK] Synced to remote time {remote_time.isoformat()}")
        return remote_time

    def tick(self) -> Optional[datetime]:
        if self.state is None:
            return None
        elapsed = self.wall_clock() - self.state.last_sync_local_timestamp
        now = self.state.last_synced_remote_time + timedelta(seconds=elapsed)
        self.channel.publish(now)
        return now

    def local_now(self) -> Optional[datetime]:
        return self.channel.value

    def stop(self):
        self._emitter.cancel()
        self.state = None
        self.channel.publish(None)
        logger.info("[CLOCK] Stopped and cleared")
