import asyncio
from datetime import datetime, timezone

import pytest

from telemetry_sim.config.load_config import (
    LoggingSettings,
    ServiceSettings,
    Settings,
    SimulationSettings,
    SyncSettings,
)
from telemetry_sim.controller.route_config import RouteConfigStore
from telemetry_sim.data_processing.geodesy import destination
from telemetry_sim.errors import UpstreamError

REMOTE_TIME = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)
ORIGIN = (-79.3832, 43.6532)  # (lon, lat)


def make_settings(**overrides):
    values = dict(
        tick_interval_ms=60000,
        step_meters=50,
        accel_sample_count=3,
        max_route_distance_m=3000,
        accel_range=(-0.5, 0.5),
        clock_interval_ms=1000,
        random_seed=7,
    )
    values.update(overrides)
    return SimulationSettings(**values)


def make_app_settings(**overrides):
    return Settings(
        simulation=make_settings(**overrides),
        sync=SyncSettings(match_fields=["type", "timestamp", "lat"]),
        services=ServiceSettings(
            data_api_url="http://sink.test",
            route_api_url="http://osrm.test",
            elevation_api_url="http://meteo.test",
            request_timeout_s=5,
        ),
        logging=LoggingSettings(level="DEBUG"),
    )


def build_route(legs, start=ORIGIN):
    """legs: (meters, bearing_deg) pairs walked from start."""
    points = [start]
    for meters, heading in legs:
        points.append(destination(points[-1], meters / 1000.0, heading))
    return points


class FakeTimeSource:
    def __init__(self, remote_time=REMOTE_TIME, fail=False):
        self.remote_time = remote_time
        self.fail = fail
        self.calls = 0

    async def fetch(self):
        self.calls += 1
        if self.fail:
            raise UpstreamError("time source unavailable")
        return self.remote_time


class FakeElevation:
    def __init__(self, value=120.0):
        self.value = value
        self.calls = []
        self.gate = None

    async def get_elevation(self, lat, lon):
        self.calls.append((lat, lon))
        if self.gate is not None:
            await self.gate.wait()
        return self.value


class FakeSink:
    def __init__(self, fail_for=()):
        self.fail_for = set(fail_for)
        self.batches = []
        self.gate = None

    async def submit(self, sensor, sensor_id, readings):
        self.batches.append((sensor, sensor_id, list(readings)))
        if self.gate is not None:
            await self.gate.wait()
        if sensor in self.fail_for:
            raise UpstreamError(f"{sensor.value} sink rejected the batch")
        return 200


class FakeRoutes:
    def __init__(self, result=None):
        self.result = result
        self.calls = []

    async def get_route(self, start, end):
        self.calls.append((start, end))
        return self.result


class FakeEdm:
    def __init__(self):
        self.time = FakeTimeSource()
        self.elevation = FakeElevation()
        self.sink = FakeSink()
        self.routes = FakeRoutes()
        self.closed = False

    async def aclose(self):
        self.closed = True


@pytest.fixture
def edm():
    return FakeEdm()


@pytest.fixture
def store():
    return RouteConfigStore()


def run(coro):
    return asyncio.run(coro)
