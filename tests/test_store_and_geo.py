from __future__ import annotations

import json
import math

import pytest

from wastetrack.core.geo import coordinates_from_payload, haversine_km, parse_coordinate
from wastetrack.data.truck_store import TruckStore
from wastetrack.exceptions import TruckConflictError, TruckNotFoundError, TruckValidationError
from wastetrack.models import Coordinates, TruckRecord, TruckStatus


def _record(truck_id: str, status: TruckStatus = TruckStatus.ACTIVE) -> TruckRecord:
    return TruckRecord(
        truckId=truck_id,
        driverName="Ram",
        currentLocation=Coordinates(latitude=27.7, longitude=85.3),
        status=status,
    )


def test_store_starts_empty_without_file(tmp_path) -> None:
    store = TruckStore(str(tmp_path / "missing" / "trucks.json"))
    assert store.list_records() == []
    assert store.get("T-1") is None


def test_store_create_get_and_filter(tmp_path) -> None:
    store = TruckStore(str(tmp_path / "trucks.json"))
    store.create(_record("T-1"))
    store.create(_record("T-2", TruckStatus.MAINTENANCE))

    assert store.get("T-2").status == TruckStatus.MAINTENANCE
    assert [r.truckId for r in store.list_records(status=TruckStatus.ACTIVE)] == ["T-1"]

    with pytest.raises(TruckConflictError):
        store.create(_record("T-1"))


def test_store_update_unknown_truck_writes_nothing(tmp_path) -> None:
    path = tmp_path / "trucks.json"
    store = TruckStore(str(path))

    with pytest.raises(TruckNotFoundError):
        store.update("T-404", lambda r: r)
    assert not path.exists()


def test_store_skips_invalid_entries(tmp_path) -> None:
    path = tmp_path / "trucks.json"
    path.write_text('[{"truckId": "bad"}, ' + _record("T-1").model_dump_json() + "]", encoding="utf-8")

    assert [r.truckId for r in TruckStore(str(path)).list_records()] == ["T-1"]


def test_truck_id_is_stripped_and_required() -> None:
    assert _record("  T-1 ").truckId == "T-1"
    with pytest.raises(ValueError):
        _record("   ")


@pytest.mark.parametrize("value", [None, "1.0", True, float("nan"), float("inf")])
def test_parse_coordinate_rejects_non_numbers(value) -> None:
    with pytest.raises(TruckValidationError):
        parse_coordinate("latitude", value)


def test_parse_coordinate_range_per_axis() -> None:
    assert parse_coordinate("longitude", 170) == 170.0
    with pytest.raises(TruckValidationError):
        parse_coordinate("latitude", 170)


def test_coordinates_from_payload_forms() -> None:
    assert coordinates_from_payload({"latitude": 1, "longitude": 2}) == (1.0, 2.0)
    assert coordinates_from_payload({"currentLocation": {"latitude": 3, "longitude": 4}}) == (3.0, 4.0)
    assert coordinates_from_payload({"latitude": 1}) is None


def test_haversine_known_distance() -> None:
    # One degree of latitude is about 111.2 km.
    assert math.isclose(haversine_km(0, 0, 1, 0), 111.19, rel_tol=1e-3)
    assert haversine_km(27.7, 85.3, 27.7, 85.3) == 0


def test_store_write_keeps_unreadable_entries(tmp_path) -> None:
    path = tmp_path / "trucks.json"
    broken = {"truckId": "T-2", "driverName": "Hari", "currentLocation": {"latitude": 200, "longitude": 0}}
    path.write_text(json.dumps([json.loads(_record("T-1").model_dump_json()), broken]), encoding="utf-8")
    store = TruckStore(str(path))

    store.update("T-1", lambda r: r)
    store.create(_record("T-3"))

    saved = json.loads(path.read_text(encoding="utf-8"))
    assert [item["truckId"] for item in saved] == ["T-1", "T-2", "T-3"]
    assert saved[1] == broken
    assert [r.truckId for r in store.list_records()] == ["T-1", "T-3"]


def test_store_create_conflicts_with_unreadable_entry_of_same_id(tmp_path) -> None:
    path = tmp_path / "trucks.json"
    path.write_text('[{"truckId": "T-2"}]', encoding="utf-8")

    with pytest.raises(TruckConflictError):
        TruckStore(str(path)).create(_record("T-2"))


def test_store_plate_numbers_are_unique(tmp_path) -> None:
    store = TruckStore(str(tmp_path / "trucks.json"))
    store.create(_record("T-1").model_copy(update={"plateNumber": "BA 1"}))
    store.create(_record("T-2"))

    with pytest.raises(TruckConflictError):
        store.create(_record("T-3").model_copy(update={"plateNumber": "BA 1"}))
    with pytest.raises(TruckConflictError):
        store.update("T-2", lambda r: r.model_copy(update={"plateNumber": "BA 1"}))
    assert store.get("T-2").plateNumber is None
