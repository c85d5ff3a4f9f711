# controller/route_config.py
import logging
from typing import Optional, Tuple

from geopy.point import Point

from telemetry_sim.errors import ConfigurationError, SimulationActiveError
from .events import EventChannel
from .models import LatLon, RouteConfig, RouteConfigRequest, SensorType

logger = logging.getLogger(__name__)


def parse_coordinates(text: str) -> Tuple[float, float]:
    """Parse "lat, lon" text into a (lat, lon) tuple."""
    if not text or not text.strip():
        raise ConfigurationError("Coordinates are required.")
    parts = text.split(",")
    if len(parts) != 2:
        raise ConfigurationError(f"Invalid coordinates '{text}': expected 'lat, lon'")
    try:
        lat, lon = (float(part) for part in parts)
    except ValueError as e:
        raise ConfigurationError(f"Invalid coordinates '{text}': {e}") from e
    # Point wraps out-of-range longitudes instead of rejecting them
    if not -90.0 <= lat <= 90.0 or not -180.0 <= lon <= 180.0:
        raise ConfigurationError(f"Invalid coordinates '{text}': out of range")
    point = Point(lat, lon)
    return point.latitude, point.longitude


class RouteConfigStore:
    """Holds the active route configuration and announces changes on `channel`."""

    def __init__(self):
        self.channel: EventChannel[RouteConfig] = EventChannel("route_config")
        self.active = False

    @property
    def current(self) -> Optional[RouteConfig]:
        return self.channel.value

    def update(self, config: RouteConfig):
        self.active = True
        self.channel.publish(config)

    def clear(self):
        self.active = False
        self.channel.publish(None)
        logger.info("[CONFIG] Active route configuration cleared")


class RouteConfigurator:
    def __init__(self, store: RouteConfigStore, route_provider, max_route_distance_m: float):
        self.store = store
        self.route_provider = route_provider
        self.max_route_distance_m = max_route_distance_m

    def _check_sensor_ids(self, request: RouteConfigRequest):
        sensors = request.data_source.sensors
        if SensorType.GPS in sensors and not request.gps_sensor_id.strip():
            raise ConfigurationError("A GPS sensor id is required.")
        if SensorType.ACCELEROMETER in sensors and not request.accelerometer_sensor_id.strip():
            raise ConfigurationError("An accelerometer sensor id is required.")

    async def configure(self, request: RouteConfigRequest) -> RouteConfig:
        if self.store.active:
            raise SimulationActiveError(
                "A route is already in progress. Please wait for it to finish "
                "or reset it before starting a new one."
            )
        self._check_sensor_ids(request)

        config = RouteConfig(
            data_source=request.data_source,
            gps_sensor_id=request.gps_sensor_id.strip(),
            accelerometer_sensor_id=request.accelerometer_sensor_id.strip(),
            auto_sync=request.auto_sync,
            duration_s=request.duration_s if not request.data_source.uses_route else 0,
        )

        if request.data_source.uses_route:
            start = parse_coordinates(request.start_point)
            end = parse_coordinates(request.destination)
            result = await self.route_provider.get_route(start, end)

            if result.status != "Ok" or not result.polyline:
                raise ConfigurationError("No valid route found. Please check your coordinates.")
            if result.total_distance_m > self.max_route_distance_m:
                raise ConfigurationError(
                    f"Distance is too far: {result.total_distance_m / 1000:.2f} km. "
                    f"Distance should be less than {self.max_route_distance_m / 1000:.2f} km"
                )

            config.start = LatLon(lat=start[0], lon=start[1])
            config.destination = LatLon(lat=end[0], lon=end[1])
            config.coordinates = list(result.polyline)
            config.total_distance_m = result.total_distance_m
            logger.info(
                f"[CONFIG] Route accepted: {len(config.coordinates)} waypoints, "
                f"{result.total_distance_m / 1000:.2f} km"
            )
        else:
            logger.info("[CONFIG] Accelerometer-only configuration accepted")

        self.store.update(config)
        return config
