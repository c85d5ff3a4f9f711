# controller/simulation_controller.py
import asyncio
import logging
import math
import time
from functools import partial
from typing import List, Optional

import numpy as np

from telemetry_sim.errors import (
    ConfigurationError,
    SimulationActiveError,
    SimulationError,
    SyncUnavailableError,
)
from .models import AccelSample, GpsSample, SensorType, SimulationState, SyncResult, sensor_of
from .reading_log import ReadingLog
from .reading_sync import ReadingSynchronizer
from .route_engine import RouteTraversalEngine
from .scheduler import PeriodicTicker
from .virtual_clock import VirtualClock

logger = logging.getLogger(__name__)


class SimulationController:
    # Background work from an older generation is dropped when it finishes.

    def __init__(self, settings, edm, config_store, match_fields=None, clock=None,
                 rng=None, wall_clock=time.time):
        self.settings = settings
        self.edm = edm
        self.config_store = config_store
        self.clock = clock or VirtualClock(edm.time, settings.clock_interval_ms, wall_clock=wall_clock)
        self.readings = ReadingLog(match_fields) if match_fields else ReadingLog()
        self.rng = rng or np.random.default_rng(settings.random_seed)

        self.state = SimulationState.IDLE
        self.generation = 0
        self.route_config = None
        self.engine: Optional[RouteTraversalEngine] = None
        self.synchronizer: Optional[ReadingSynchronizer] = None
        self.accel_generated = 0
        self.accel_quota = 0

        self._ticker = PeriodicTicker("simulation", settings.tick_interval_ms)
        self._pending = set()
        self._starting = False
        self._completed = asyncio.Event()

    # === State ===

    @property
    def running(self):
        return self._ticker.active

    @property
    def paused(self):
        return self.state is SimulationState.RUNNING and not self.running

    @property
    def index(self):
        return self.engine.index if self.engine else 0

    @property
    def manual_sync_available(self):
        if self.state is not SimulationState.COMPLETED or self.route_config is None:
            return False
        if self.route_config.auto_sync:
            return False
        return any(self.readings.unsynced_count(s) for s in self.route_config.sensors)

    # === Transitions ===

    async def start(self):
        if self.running or self._starting:
            raise SimulationActiveError("A simulation is already running.")
        if self.state is SimulationState.COMPLETED:
            raise SimulationError("Simulation already completed. Reset it before starting again.")

        config = self.config_store.current if self.state is SimulationState.IDLE else self.route_config
        if config is None:
            raise ConfigurationError(
                "Please set up a route using the configuration form and/or an accelerometer sensor id."
            )
        if config.data_source.uses_route and not config.coordinates:
            raise ConfigurationError("The active configuration has no route.")

        generation = self.generation
        self._starting = True
        try:
            await self.clock.sync()
        finally:
            self._starting = False
        if generation != self.generation:
            self.clock.stop()
            raise SimulationError("Simulation was reset while starting.")

        if self.state is SimulationState.IDLE:
            self._begin_run(config)
            logger.info(f"[SIM] Run {self.generation} started ({config.data_source.name})")
        else:
            logger.info(f"[SIM] Run {self.generation} resumed at waypoint {self.index}")
        self.state = SimulationState.RUNNING
        self._ticker.start(self.tick)

    def _begin_run(self, config):
        self.generation += 1
        self.route_config = config
        self.readings.clear()
        self.accel_generated = 0
        self._completed = asyncio.Event()

        if config.data_source.uses_route:
            self.engine = RouteTraversalEngine(config.coordinates, self.settings.step_meters)
        else:
            self.engine = None
            if config.duration_s > 0:
                self.accel_quota = math.ceil(config.duration_s * 1000 / self.settings.tick_interval_ms)
            else:
                self.accel_quota = self.settings.accel_sample_count

        sensor_ids = {sensor: config.sensor_id(sensor) for sensor in config.sensors}
        self.synchronizer = ReadingSynchronizer(
            self.edm.sink, sensor_ids, on_ack=partial(self._acknowledge, self.generation)
        )

    def stop(self):
        if not self.running:
            return False
        self._ticker.cancel()
        logger.info(f"[SIM] Run {self.generation} paused at waypoint {self.index}")
        return True

    def reset(self):
        self._ticker.cancel()
        self.generation += 1
        self.readings.clear()
        self.engine = None
        self.synchronizer = None
        self.route_config = None
        self.accel_generated = 0
        self.accel_quota = 0
        self.clock.stop()
        self.config_store.clear()
        self.state = SimulationState.IDLE
        logger.info("[SIM] Simulation reset")

    def _complete(self):
        self._ticker.cancel()
        self.state = SimulationState.COMPLETED
        self._completed.set()
        logger.info(f"[SIM] Run {self.generation} completed with {len(self.readings)} readings")

    # === Ticking ===

    def tick(self):
        if self.state is not SimulationState.RUNNING:
            return
        timestamp = self.clock.local_now()

        if self.engine is not None:
            step = self.engine.advance()
            if step.completed:
                self._complete()
                return
            lon, lat = step.position
            self._spawn(self._record_gps(self.generation, lat, lon, timestamp))
            if SensorType.ACCELEROMETER in self.route_config.sensors:
                self._append(self._accel_sample(timestamp))
        else:
            self._append(self._accel_sample(timestamp))
            self.accel_generated += 1
            if self.accel_generated >= self.accel_quota:
                self._complete()

    def _accel_sample(self, timestamp):
        low, high = self.settings.accel_range
        x, y, z = self.rng.uniform(low, high, size=3)
        return AccelSample(x=float(x), y=float(y), z=float(z), timestamp=timestamp)

    async def _record_gps(self, generation, lat, lon, timestamp):
        altitude = await self.edm.elevation.get_elevation(lat, lon)
        if generation != self.generation:
            logger.debug(f"[SIM] Dropping elevation result from stale run {generation}")
            return
        self._append(GpsSample(lat=lat, lng=lon, alt=altitude, timestamp=timestamp))

    def _append(self, reading):
        self.readings.append(reading)
        if self.route_config.auto_sync:
            self._spawn(self.synchronizer.submit(sensor_of(reading), [reading.model_copy()]))

    # === Synchronisation ===

    def _acknowledge(self, generation, sensor, readings):
        if generation != self.generation:
            logger.debug(f"[SYNC] Dropping {sensor.value} acknowledgement from stale run {generation}")
            return 0
        return self.readings.apply_ack(readings)

    async def sync_now(self) -> List[SyncResult]:
        if not self.manual_sync_available:
            raise SyncUnavailableError("There are no completed, unsynced readings to sync.")
        pending = self.readings.unsynced(self.route_config.sensors)
        return await self.synchronizer.submit_all(pending)

    # === Background work ===

    def _spawn(self, coro):
        task = asyncio.get_running_loop().create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task):
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"[SIM] Background task failed: {task.exception()!r}")

    async def drain(self):
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def wait_until_completed(self, timeout=None):
        await asyncio.wait_for(self._completed.wait(), timeout)

    async def shutdown(self):
        self._ticker.cancel()
        self.clock.stop()
        await self.drain()

    # === Accessors ===

    def get_readings(self):
        return [reading.model_dump(mode="json") for reading in self.readings]

    def get_status(self):
        sensors = self.route_config.sensors if self.route_config else ()
        last_gps = self.readings.last(SensorType.GPS)
        last_accel = self.readings.last(SensorType.ACCELEROMETER)
        now = self.clock.local_now()
        return {
            "state": self.state.value,
            "paused": self.paused,
            "generation": self.generation,
            "data_source": self.route_config.data_source.value if self.route_config else None,
            "auto_sync": self.route_config.auto_sync if self.route_config else False,
            "index": self.index,
            "route_length": len(self.engine.route) if self.engine else 0,
            "remaining_m": self.engine.remaining_meters() if self.engine else 0.0,
            "readings": len(self.readings),
            "unsynced": {s.value: self.readings.unsynced_count(s) for s in sensors},
            "manual_sync_available": self.manual_sync_available,
            "last_gps": last_gps.model_dump(mode="json") if last_gps else None,
            "last_accelerometer": last_accel.model_dump(mode="json") if last_accel else None,
            "virtual_time": now.isoformat() if now else None,
        }
