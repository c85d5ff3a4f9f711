# controller/route_engine.py
import logging
from typing import List, NamedTuple

from telemetry_sim.data_processing.geodesy import bearing, destination, distance_meters
from telemetry_sim.errors import ConfigurationError
from .models import Waypoint

logger = logging.getLogger(__name__)


class TraversalStep(NamedTuple):
    position: Waypoint
    index: int
    completed: bool


class RouteTraversalEngine:
    # A tick that ends mid-segment overwrites the current waypoint of the private copy.

    def __init__(self, route, step_meters):
        if not route:
            raise ConfigurationError("Route has no waypoints.")
        if step_meters <= 0:
            raise ConfigurationError(f"step_meters must be positive, got {step_meters}")
        self._route: List[Waypoint] = [(float(lon), float(lat)) for lon, lat in route]
        self.step_meters = float(step_meters)
        self._index = 0

    @property
    def index(self) -> int:
        return self._index

    @property
    def route(self) -> List[Waypoint]:
        return list(self._route)

    @property
    def position(self) -> Waypoint:
        return self._route[self._index]

    @property
    def completed(self) -> bool:
        return self._index >= len(self._route) - 1

    def remaining_meters(self) -> float:
        return sum(
            distance_meters(self._route[i], self._route[i + 1])
            for i in range(self._index, len(self._route) - 1)
        )

    def advance(self) -> TraversalStep:
        remaining = self.step_meters
        last = len(self._route) - 1

        while remaining > 0 and self._index < last:
            current = self._route[self._index]
            nxt = self._route[self._index + 1]
            segment_len = distance_meters(current, nxt)

            if segment_len <= remaining:
                remaining -= segment_len
                self._index += 1
            else:
                heading = bearing(current, nxt)
                self._route[self._index] = destination(current, remaining / 1000.0, heading)
                remaining = 0

        if self.completed:
            logger.info(f"[ROUTE] Reached final waypoint {self._index}")
        return TraversalStep(self._route[self._index], self._index, self.completed)
