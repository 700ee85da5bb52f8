from __future__ import annotations

from datetime import datetime, timezone

from wastetrack.client.map_state import TruckMapState

RECEIVED_AT = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


def _state(**kwargs) -> TruckMapState:
    return TruckMapState(clock=lambda: RECEIVED_AT, **kwargs)


def _snapshot_entry(truck_id: str, lat: float, lng: float, **extra) -> dict:
    entry = {
        "truckId": truck_id,
        "driverName": "Ram",
        "currentLocation": {"latitude": lat, "longitude": lng},
        "lastUpdated": "2026-01-01T10:00:00Z",
        "status": "active",
    }
    entry.update(extra)
    return entry


def test_event_merges_into_existing_entry() -> None:
    state = _state()
    state.replace_all([_snapshot_entry("T1", 1.0, 1.0)])

    state.apply_event({"truckId": "T1", "latitude": 2.0, "longitude": 2.0})

    marker = state.get("T1")
    assert (marker.latitude, marker.longitude) == (2.0, 2.0)
    assert marker.driverName == "Ram"
    assert marker.status == "active"
    assert marker.lastUpdated == datetime(2026, 1, 1, 10, 0, tzinfo=timezone.utc)


def test_event_for_unseen_truck_is_added_with_defaults() -> None:
    state = _state()
    state.replace_all([_snapshot_entry("T1", 1.0, 1.0)])

    state.apply_event({"truckId": "T2", "latitude": 3.0, "longitude": 4.0})

    assert [m.truckId for m in state.markers()] == ["T1", "T2"]
    new = state.get("T2")
    assert new.status == "unknown"
    assert new.lastUpdated == RECEIVED_AT
    assert new.driverName is None


def test_nested_current_location_is_accepted() -> None:
    state = _state()
    state.apply_event({"truckId": "T1", "currentLocation": {"latitude": 5.0, "longitude": 6.0}, "status": "active"})
    assert (state.get("T1").latitude, state.get("T1").longitude) == (5.0, 6.0)


def test_event_without_coordinates_updates_other_fields_only() -> None:
    state = _state()
    state.replace_all([_snapshot_entry("T1", 1.0, 1.0)])

    state.apply_event({"truckId": "T1", "status": "maintenance"})

    marker = state.get("T1")
    assert marker.status == "maintenance"
    assert (marker.latitude, marker.longitude) == (1.0, 1.0)


def test_malformed_events_leave_state_untouched() -> None:
    state = _state()
    state.replace_all([_snapshot_entry("T1", 1.0, 1.0), _snapshot_entry("T2", 2.0, 2.0)])
    before = [m.model_dump() for m in state.markers()]

    state.apply_event({"latitude": 9.0, "longitude": 9.0})
    state.apply_event({"truckId": "T3"})
    state.apply_event({"truckId": "T1", "lastUpdated": "not a date"})

    assert [m.model_dump() for m in state.markers()] == before


def test_replace_all_drops_previous_entries() -> None:
    state = _state()
    state.replace_all([_snapshot_entry("T1", 1.0, 1.0)])
    state.apply_event({"truckId": "T9", "latitude": 0.0, "longitude": 0.0})

    state.replace_all([_snapshot_entry("T2", 2.0, 2.0)])

    assert [m.truckId for m in state.markers()] == ["T2"]


def test_inactive_status_does_not_remove_marker() -> None:
    state = _state()
    state.replace_all([_snapshot_entry("T1", 1.0, 1.0)])
    state.apply_event({"truckId": "T1", "latitude": 1.1, "longitude": 1.1, "status": "inactive"})
    assert "T1" in state
    assert state.get("T1").status == "inactive"


def test_sequence_gap_is_reported() -> None:
    state = _state()
    state.apply_event({"truckId": "T1", "latitude": 1.0, "longitude": 1.0, "sequence": 1})

    assert state.apply_event({"truckId": "T1", "latitude": 1.0, "longitude": 1.1, "sequence": 2}) is False
    assert state.apply_event({"truckId": "T1", "latitude": 1.0, "longitude": 1.2, "sequence": 5}) is True
    assert state.get("T1").sequence == 5


def test_nearby_filter_keeps_only_trucks_in_radius() -> None:
    kathmandu = (27.7172, 85.3240)
    state = _state(center=kathmandu, radius_km=5.0)

    state.replace_all([_snapshot_entry("NEAR", 27.72, 85.33), _snapshot_entry("FAR", 27.0, 85.0)])
    assert [m.truckId for m in state.markers()] == ["NEAR"]

    state.apply_event({"truckId": "NEAR", "latitude": 28.5, "longitude": 84.0})
    assert len(state) == 0

    state.apply_event({"truckId": "FAR", "latitude": 27.718, "longitude": 85.325})
    assert [m.truckId for m in state.markers()] == ["FAR"]
