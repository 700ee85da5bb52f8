# wastetrack/services/tracking_service.py
import logging
from typing import Any, Dict, List, Optional

from wastetrack.core.geo import parse_coordinate
from wastetrack.data.truck_store import TruckStore
from wastetrack.exceptions import TruckNotFoundError, TruckValidationError
from wastetrack.models import (
    BroadcastEvent,
    Coordinates,
    TruckLocationView,
    TruckRecord,
    TruckStatus,
    utcnow,
)
from wastetrack.services.broadcast import BroadcastChannel

logger = logging.getLogger(__name__)

REQUIRED_REGISTRATION_FIELDS = ["truckId", "driverName", "latitude", "longitude"]
UPDATABLE_DETAIL_FIELDS = ["driverName", "plateNumber", "route", "status"]


def _parse_status(value: Any) -> TruckStatus:
    try:
        return TruckStatus(value)
    except ValueError:
        allowed = ", ".join(s.value for s in TruckStatus)
        raise TruckValidationError(f"Field 'status' ('{value}') must be one of: {allowed}.")


def _require_text(payload: Dict[str, Any], field: str) -> str:
    value = payload.get(field)
    if not isinstance(value, str) or not value.strip():
        raise TruckValidationError(f"Field '{field}' must be a non-empty string.")
    return value.strip()


def _optional_text(payload: Dict[str, Any], field: str) -> Optional[str]:
    value = payload.get(field)
    if value is None:
        return None
    if not isinstance(value, str):
        raise TruckValidationError(f"Field '{field}' must be a string.")
    return value.strip() or None


class TruckTrackingService:
    """
    Registration, location updates and location queries for the fleet.

    The broadcast channel is handed in by whoever builds the service; the
    service only ever publishes after the store write has succeeded.
    """

    def __init__(self, store: TruckStore, channel: BroadcastChannel):
        self.store = store
        self.channel = channel

    def register_truck(self, payload: Dict[str, Any]) -> TruckRecord:
        for field in REQUIRED_REGISTRATION_FIELDS:
            if payload.get(field) is None:
                raise TruckValidationError(
                    f"Missing field: {field}. Required fields: {', '.join(REQUIRED_REGISTRATION_FIELDS)}."
                )

        record = TruckRecord(
            truckId=_require_text(payload, "truckId"),
            driverName=_require_text(payload, "driverName"),
            plateNumber=_optional_text(payload, "plateNumber"),
            route=_optional_text(payload, "route"),
            currentLocation=Coordinates(
                latitude=parse_coordinate("latitude", payload["latitude"]),
                longitude=parse_coordinate("longitude", payload["longitude"]),
            ),
            status=_parse_status(payload["status"]) if payload.get("status") is not None else TruckStatus.ACTIVE,
            lastUpdated=utcnow(),
        )
        return self.store.create(record)

    def list_trucks(self) -> List[TruckRecord]:
        return self.store.list_records()

    def update_truck_details(self, truck_id: str, payload: Dict[str, Any]) -> TruckRecord:
        if "truckId" in payload and payload["truckId"] != truck_id:
            raise TruckValidationError("Field 'truckId' cannot be changed.")
        if not any(payload.get(field) is not None for field in UPDATABLE_DETAIL_FIELDS):
            raise TruckValidationError(
                f"Nothing to update. Provide at least one of: {', '.join(UPDATABLE_DETAIL_FIELDS)}."
            )

        changes: Dict[str, Any] = {}
        if payload.get("driverName") is not None:
            changes["driverName"] = _require_text(payload, "driverName")
        if payload.get("plateNumber") is not None:
            changes["plateNumber"] = _optional_text(payload, "plateNumber")
        if payload.get("route") is not None:
            changes["route"] = _optional_text(payload, "route")
        if payload.get("status") is not None:
            changes["status"] = _parse_status(payload["status"])

        def apply(record: TruckRecord) -> TruckRecord:
            return record.model_copy(update=changes)

        updated = self.store.update(truck_id, apply)
        logger.info(f"Truck '{truck_id}' details updated: {sorted(changes)}")
        return updated

    def update_location(self, truck_id: str, payload: Dict[str, Any]) -> TruckRecord:
        for field in ("latitude", "longitude"):
            if payload.get(field) is None:
                raise TruckValidationError(f"Missing field: {field}")

        # Same range rules as registration; out-of-range positions are rejected.
        latitude = parse_coordinate("latitude", payload["latitude"])
        longitude = parse_coordinate("longitude", payload["longitude"])
        status = _parse_status(payload["status"]) if payload.get("status") is not None else None

        def apply(record: TruckRecord) -> TruckRecord:
            now = utcnow()
            record.currentLocation = Coordinates(latitude=latitude, longitude=longitude)
            record.lastUpdated = max(now, record.lastUpdated)
            record.sequence += 1
            if status is not None:
                record.status = status
            return record

        # A store failure propagates from here, so nothing is broadcast.
        updated = self.store.update(truck_id, apply)
        reached = self.channel.publish(BroadcastEvent.from_record(updated))
        logger.info(
            f"Truck '{truck_id}' moved to ({latitude}, {longitude}), seq={updated.sequence}, "
            f"broadcast to {reached} viewer(s)."
        )
        return updated

    def get_location(self, truck_id: str) -> TruckLocationView:
        record = self.store.get(truck_id)
        if record is None:
            raise TruckNotFoundError("Truck not found or no location data available.")
        return TruckLocationView.from_record(record)

    def list_active_locations(self) -> List[TruckLocationView]:
        return [TruckLocationView.from_record(r) for r in self.store.list_records(status=TruckStatus.ACTIVE)]
