# models.py

from datetime import datetime
from enum import Enum, IntEnum
from typing import Annotated, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field

# (lon, lat) in degrees, GeoJSON order
Waypoint = Tuple[float, float]


class SensorType(str, Enum):
    GPS = "gps"
    ACCELEROMETER = "accelerometer"


class DataSource(IntEnum):
    GPS = 1
    ACCELEROMETER = 2
    GPS_AND_ACCELEROMETER = 3

    @property
    def sensors(self) -> Tuple[SensorType, ...]:
        if self is DataSource.GPS:
            return (SensorType.GPS,)
        if self is DataSource.ACCELEROMETER:
            return (SensorType.ACCELEROMETER,)
        return (SensorType.GPS, SensorType.ACCELEROMETER)

    @property
    def uses_route(self) -> bool:
        return SensorType.GPS in self.sensors


class SimulationState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"


class _Sample(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    timestamp: datetime = Field(alias="dt")
    synced: bool = Field(default=False, alias="isSynced")

    def mark_synced(self):
        # one-way: nothing in the package ever sets synced back to False
        self.synced = True

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude={"type"})


class GpsSample(_Sample):
    type: Literal["gps"] = "gps"
    lat: float
    lng: float
    alt: float


class AccelSample(_Sample):
    type: Literal["accelerometer"] = "accelerometer"
    x: float
    y: float
    z: float


Reading = Annotated[Union[GpsSample, AccelSample], Field(discriminator="type")]


def sensor_of(reading) -> SensorType:
    if isinstance(reading, GpsSample):
        return SensorType.GPS
    if isinstance(reading, AccelSample):
        return SensorType.ACCELEROMETER
    raise TypeError(f"Unknown reading type: {type(reading).__name__}")


class SensorBatch(BaseModel):
    Data: List[Reading]
    SensorId: str

    def to_payload(self) -> dict:
        return {
            "Data": [reading.to_wire() for reading in self.Data],
            "SensorId": self.SensorId,
        }


class SyncResult(BaseModel):
    sensor: SensorType
    submitted: int
    acknowledged: int = 0
    ok: bool
    error: Optional[str] = None


class ClockState(BaseModel):
    last_synced_remote_time: datetime
    last_sync_local_timestamp: float


class LatLon(BaseModel):
    lat: float
    lon: float


class RouteConfigRequest(BaseModel):
    data_source: DataSource = DataSource.GPS
    gps_sensor_id: str = ""
    accelerometer_sensor_id: str = ""
    start_point: str = ""
    destination: str = ""
    auto_sync: bool = False
    duration_s: float = 0


class RouteConfig(BaseModel):
    data_source: DataSource
    gps_sensor_id: str = ""
    accelerometer_sensor_id: str = ""
    auto_sync: bool = False
    duration_s: float = 0
    start: Optional[LatLon] = None
    destination: Optional[LatLon] = None
    coordinates: List[Waypoint] = Field(default_factory=list)
    total_distance_m: Optional[float] = None

    @property
    def sensors(self):
        return self.data_source.sensors

    def sensor_id(self, sensor: SensorType) -> str:
        if sensor is SensorType.GPS:
            return self.gps_sensor_id
        return self.accelerometer_sensor_id


# === Upstream payloads ===

class OsrmGeometry(BaseModel):
    coordinates: List[Waypoint]
    type: str = "LineString"


class OsrmRoute(BaseModel):
    geometry: OsrmGeometry
    distance: float
    duration: float = 0.0


class OsrmResponse(BaseModel):
    code: str
    routes: List[OsrmRoute] = Field(default_factory=list)


class RouteResult(BaseModel):
    status: str
    total_distance_m: Optional[float] = None
    polyline: List[Waypoint] = Field(default_factory=list)


class ElevationResponse(BaseModel):
    elevation: List[float]


class ServerTimeResponse(BaseModel):
    serverTime: datetime
