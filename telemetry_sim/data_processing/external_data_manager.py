# data_processing/external_data_manager.py
import logging
from datetime import timezone
from typing import Optional

import httpx
from pydantic import ValidationError

from telemetry_sim.controller.models import (
    ElevationResponse,
    OsrmResponse,
    RouteResult,
    SensorBatch,
    SensorType,
    ServerTimeResponse,
)
from telemetry_sim.errors import UpstreamError

logger = logging.getLogger(__name__)

SINK_PATHS = {
    SensorType.GPS: "/DataCollector/GPS",
    SensorType.ACCELEROMETER: "/DataCollector/Accelerometer",
}


class RouteProvider:
    def __init__(self, client: httpx.AsyncClient, base_url: str):
        self.client = client
        self.base_url = base_url.rstrip("/")

    async def get_route(self, start, end) -> RouteResult:
        """start/end are (lat, lon) pairs."""
        coordinates = f"{start[1]},{start[0]};{end[1]},{end[0]}"
        url = f"{self.base_url}/route/v1/driving/{coordinates}"
        params = {"overview": "full", "geometries": "geojson"}

        logger.info(f"[ROUTE] Requesting route {coordinates}")
        try:
            response = await self.client.get(url, params=params)
            response.raise_for_status()
            data = OsrmResponse.model_validate(response.json())
        except (httpx.HTTPError, ValueError, ValidationError) as e:
            raise UpstreamError(f"Route lookup failed: {e}") from e

        if data.code != "Ok" or not data.routes:
            return RouteResult(status=data.code)

        route = data.routes[0]
        return RouteResult(
            status=data.code,
            total_distance_m=route.distance,
            polyline=route.geometry.coordinates,
        )


class ElevationProvider:
    """
    Elevation lookups that degrade instead of failing: the last good value is
    reused, and before any success a coordinate-derived placeholder is returned.
    """

    def __init__(self, client: httpx.AsyncClient, base_url: str):
        self.client = client
        self.base_url = base_url.rstrip("/")
        self.last_elevation: Optional[float] = None

    @staticmethod
    def approximate_elevation(lat, lon):
        return abs(lat) * 10 + abs(lon) * 5

    async def get_elevation(self, lat, lon) -> float:
        try:
            response = await self.client.get(
                f"{self.base_url}/v1/elevation",
                params={"latitude": lat, "longitude": lon},
            )
            response.raise_for_status()
            elevation = ElevationResponse.model_validate(response.json()).elevation[0]
        except (httpx.HTTPError, ValueError, ValidationError, IndexError) as e:
            if self.last_elevation is not None:
                logger.warning(f"[ELEVATION] Lookup failed ({e}); reusing {self.last_elevation}")
                return self.last_elevation
            fallback = self.approximate_elevation(lat, lon)
            logger.warning(f"[ELEVATION] Lookup failed ({e}); using placeholder {fallback}")
            return fallback

        self.last_elevation = elevation
        return elevation


class TimeSource:
    def __init__(self, client: httpx.AsyncClient, base_url: str):
        self.client = client
        self.base_url = base_url.rstrip("/")

    async def fetch(self):
        try:
            response = await self.client.get(f"{self.base_url}/DataCollector/Time")
            response.raise_for_status()
            server_time = ServerTimeResponse.model_validate(response.json()).serverTime
        except (httpx.HTTPError, ValueError, ValidationError) as e:
            raise UpstreamError(f"Failed to sync with server time: {e}") from e

        if server_time.tzinfo is None:
            server_time = server_time.replace(tzinfo=timezone.utc)
        return server_time


class DataSink:
    def __init__(self, client: httpx.AsyncClient, base_url: str):
        self.client = client
        self.base_url = base_url.rstrip("/")

    async def submit(self, sensor: SensorType, sensor_id: str, readings):
        batch = SensorBatch(Data=readings, SensorId=sensor_id)
        url = f"{self.base_url}{SINK_PATHS[sensor]}"
        try:
            response = await self.client.post(url, json=batch.to_payload())
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise UpstreamError(f"Failed to sync {sensor.value} reading(s): {e}") from e
        return response.status_code


class ExternalDataManager:
    """Bundles every upstream service behind one shared HTTP client."""

    def __init__(self, services, client: Optional[httpx.AsyncClient] = None):
        self.client = client or httpx.AsyncClient(
            timeout=services.request_timeout_s,
            headers={"Content-Type": "application/json"},
        )
        self.routes = RouteProvider(self.client, services.route_api_url)
        self.elevation = ElevationProvider(self.client, services.elevation_api_url)
        self.time = TimeSource(self.client, services.data_api_url)
        self.sink = DataSink(self.client, services.data_api_url)

    async def aclose(self):
        await self.client.aclose()
