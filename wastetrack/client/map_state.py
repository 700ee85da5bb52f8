"""Per-truck marker state held by a map viewer.

Merges a full registry snapshot with incremental truckLocationUpdate
events. This is the only place that mutates the viewer's markers.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from pydantic import ValidationError

from wastetrack.core.geo import coordinates_from_payload, within_radius
from wastetrack.models import TruckMarker, utcnow

logger = logging.getLogger(__name__)

DEFAULT_NEARBY_RADIUS_KM = 5.0


class TruckMapState:
    """
    Mapping of truckId to its last known marker.

    With a `center` set, only trucks within `radius_km` of it are kept and a
    truck that drives out of range is removed. Without one, entries are
    never removed by events.
    """

    def __init__(
        self,
        center: Optional[Tuple[float, float]] = None,
        radius_km: float = DEFAULT_NEARBY_RADIUS_KM,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.center = center
        self.radius_km = radius_km
        self._clock = clock
        self._markers: Dict[str, TruckMarker] = {}

    def __len__(self) -> int:
        return len(self._markers)

    def __contains__(self, truck_id: str) -> bool:
        return truck_id in self._markers

    def get(self, truck_id: str) -> Optional[TruckMarker]:
        return self._markers.get(truck_id)

    def markers(self) -> List[TruckMarker]:
        return [self._markers[k] for k in sorted(self._markers)]

    def clear(self):
        self._markers = {}

    def _in_range(self, latitude: float, longitude: float) -> bool:
        if self.center is None:
            return True
        return within_radius(self.center[0], self.center[1], latitude, longitude, self.radius_km)

    def replace_all(self, snapshot: Iterable[Dict[str, Any]]):
        """Replaces every marker with the registry snapshot."""
        markers: Dict[str, TruckMarker] = {}
        for item in snapshot:
            coords = coordinates_from_payload(item)
            if not item.get("truckId") or coords is None:
                logger.warning(f"Skipping snapshot entry without truckId or coordinates: {item}")
                continue
            if not self._in_range(*coords):
                continue
            try:
                marker = TruckMarker(
                    truckId=item["truckId"],
                    latitude=coords[0],
                    longitude=coords[1],
                    driverName=item.get("driverName"),
                    status=item.get("status") or "unknown",
                    lastUpdated=item.get("lastUpdated") or self._clock(),
                    sequence=item.get("sequence"),
                )
            except ValidationError as e:
                logger.warning(f"Skipping malformed snapshot entry {item.get('truckId')}: {e}")
                continue
            markers[marker.truckId] = marker
        self._markers = markers
        logger.info(f"Map state loaded with {len(markers)} truck(s).")

    def apply_event(self, data: Dict[str, Any]) -> bool:
        """
        Merges one truckLocationUpdate payload.

        Returns True when the event's sequence number skips ahead of the
        last one seen for that truck, meaning at least one event was missed.
        """
        truck_id = data.get("truckId") if isinstance(data, dict) else None
        if not truck_id:
            logger.warning(f"Ignoring location event without truckId: {data}")
            return False

        coords = coordinates_from_payload(data)
        existing = self._markers.get(truck_id)

        if coords is not None and not self._in_range(*coords):
            if existing is not None:
                logger.info(f"Truck '{truck_id}' left the nearby radius; removing marker.")
                del self._markers[truck_id]
            return False

        if existing is None:
            if coords is None:
                logger.warning(f"Ignoring event for unseen truck '{truck_id}' without coordinates.")
                return False
            try:
                self._markers[truck_id] = TruckMarker(
                    truckId=truck_id,
                    latitude=coords[0],
                    longitude=coords[1],
                    driverName=data.get("driverName"),
                    status=data.get("status") or "unknown",
                    lastUpdated=data.get("lastUpdated") or self._clock(),
                    sequence=data.get("sequence"),
                )
            except ValidationError as e:
                logger.warning(f"Ignoring malformed event for truck '{truck_id}': {e}")
            return False

        changes: Dict[str, Any] = {}
        if coords is not None:
            changes["latitude"], changes["longitude"] = coords
        for field in ("driverName", "status", "lastUpdated", "sequence"):
            if data.get(field) is not None:
                changes[field] = data[field]

        gap = False
        incoming_seq = changes.get("sequence")
        if isinstance(incoming_seq, int) and existing.sequence is not None:
            gap = incoming_seq > existing.sequence + 1
            if gap:
                logger.warning(
                    f"Missed {incoming_seq - existing.sequence - 1} update(s) for truck '{truck_id}'."
                )

        try:
            merged = TruckMarker.model_validate({**existing.model_dump(), **changes})
        except ValidationError as e:
            logger.warning(f"Ignoring malformed event for truck '{truck_id}': {e}")
            return False
        self._markers[truck_id] = merged
        return gap
