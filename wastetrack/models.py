# wastetrack/models.py
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator

TRUCK_LOCATION_UPDATE = "truckLocationUpdate"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TruckStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    MAINTENANCE = "maintenance"


class Coordinates(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class TruckRecord(BaseModel):
    truckId: str # e.g. license plate or internal fleet code
    driverName: str
    plateNumber: Optional[str] = None
    route: Optional[str] = None
    currentLocation: Coordinates
    status: TruckStatus = TruckStatus.ACTIVE
    lastUpdated: datetime = Field(default_factory=utcnow)
    sequence: int = 0 # bumped on every accepted location update

    @field_validator("truckId")
    @classmethod
    def _strip_truck_id(cls, value: str) -> str:
        truck_id = value.strip()
        if not truck_id:
            raise ValueError("truckId must be non-empty")
        return truck_id

    @field_validator("lastUpdated")
    @classmethod
    def _ensure_tz_aware(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class TruckLocationView(BaseModel):
    """Public projection returned by the location queries."""
    truckId: str
    driverName: str
    currentLocation: Coordinates
    lastUpdated: datetime
    status: TruckStatus

    @classmethod
    def from_record(cls, record: TruckRecord) -> "TruckLocationView":
        return cls(
            truckId=record.truckId,
            driverName=record.driverName,
            currentLocation=record.currentLocation,
            lastUpdated=record.lastUpdated,
            status=record.status,
        )


class BroadcastEvent(BaseModel):
    """Payload of a truckLocationUpdate event. Never persisted."""
    truckId: str
    latitude: float
    longitude: float
    currentLocation: Coordinates
    lastUpdated: datetime
    status: Optional[TruckStatus] = None
    driverName: Optional[str] = None
    sequence: Optional[int] = None

    @classmethod
    def from_record(cls, record: TruckRecord) -> "BroadcastEvent":
        return cls(
            truckId=record.truckId,
            latitude=record.currentLocation.latitude,
            longitude=record.currentLocation.longitude,
            currentLocation=record.currentLocation,
            lastUpdated=record.lastUpdated,
            status=record.status,
            driverName=record.driverName,
            sequence=record.sequence,
        )

    def envelope(self) -> dict:
        return {"event": TRUCK_LOCATION_UPDATE, "data": self.model_dump(mode="json")}


class TruckMarker(BaseModel):
    """One map marker held by a viewer."""
    truckId: str
    latitude: float
    longitude: float
    driverName: Optional[str] = None
    status: str = "unknown" # may be a status the viewer has never seen
    lastUpdated: datetime = Field(default_factory=utcnow)
    sequence: Optional[int] = None
