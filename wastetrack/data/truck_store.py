# wastetrack/data/truck_store.py

import json
import os
import logging
import threading
from typing import Callable, List, Dict, Any, Optional, Tuple

from pydantic import ValidationError

from wastetrack.exceptions import TruckConflictError, TruckNotFoundError, TruckStoreError
from wastetrack.models import TruckRecord, TruckStatus

logger = logging.getLogger(__name__)


class TruckStore:
    """
    Durable record of every registered truck, kept as a JSON list on disk.

    Each write is a read-modify-write of the whole file under one lock, so
    updates of different trucks never interleave and two updates of the same
    truck apply last-write-wins.
    """

    def __init__(self, path: str):
        self.path = path
        self._lock = threading.Lock()

    def _read_raw(self) -> List[Dict[str, Any]]:
        if not os.path.exists(self.path):
            logger.info(f"Truck data file {self.path} not found. Starting with an empty fleet.")
            return []
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            logger.error(f"Error decoding JSON from {self.path}: {e}")
            raise TruckStoreError("Truck data file is corrupt.") from e
        except OSError as e:
            logger.error(f"Error reading {self.path}: {e}")
            raise TruckStoreError("Truck data file could not be read.") from e

        if not isinstance(data, list):
            logger.error(f"{self.path} does not contain a list.")
            raise TruckStoreError("Truck data file has an unexpected format.")
        return data

    def _read_entries(self) -> List[Tuple[Any, Optional[TruckRecord]]]:
        """Raw entries paired with their parsed record, or None if the entry is unreadable."""
        entries = []
        for item in self._read_raw():
            try:
                entries.append((item, TruckRecord.model_validate(item)))
            except ValidationError as e:
                logger.warning(f"Skipping invalid truck entry {_raw_truck_id(item) or item}: {e}")
                entries.append((item, None))
        return entries

    def _read_all(self) -> List[TruckRecord]:
        return [record for _, record in self._read_entries() if record is not None]

    def _write_all(self, items: List[Any]):
        """Writes the whole fleet to a temp file and swaps it in place."""
        directory = os.path.dirname(os.path.abspath(self.path))
        tmp_path = f"{self.path}.tmp"
        try:
            os.makedirs(directory, exist_ok=True)
            with open(tmp_path, 'w', encoding='utf-8') as f:
                json.dump(items, f, indent=4, ensure_ascii=False)
            os.replace(tmp_path, self.path)
        except OSError as e:
            logger.error(f"Error saving trucks to {self.path}: {e}")
            raise TruckStoreError("Truck data could not be saved.") from e
        logger.debug(f"{len(items)} trucks saved to {self.path}")

    def list_records(self, status: Optional[TruckStatus] = None) -> List[TruckRecord]:
        with self._lock:
            records = self._read_all()
        if status is None:
            return records
        return [r for r in records if r.status == status]

    def get(self, truck_id: str) -> Optional[TruckRecord]:
        with self._lock:
            records = self._read_all()
        for record in records:
            if record.truckId == truck_id:
                return record
        return None

    def create(self, record: TruckRecord) -> TruckRecord:
        with self._lock:
            entries = self._read_entries()
            # Unreadable entries still hold their truckId.
            if any(_raw_truck_id(item) == record.truckId for item, _ in entries):
                raise TruckConflictError("Truck with this ID already exists.")
            _check_plate(entries, record)
            items = [item for item, _ in entries]
            items.append(record.model_dump(mode="json"))
            self._write_all(items)
        logger.info(f"Truck '{record.truckId}' registered.")
        return record

    def update(self, truck_id: str, mutate: Callable[[TruckRecord], TruckRecord]) -> TruckRecord:
        """
        Applies `mutate` to the stored record and persists the result.
        Raises TruckNotFoundError without writing anything if the truck is unknown.
        Only the target entry is rewritten; every other entry is written back as read.
        """
        with self._lock:
            entries = self._read_entries()
            for index, (_, record) in enumerate(entries):
                if record is not None and record.truckId == truck_id:
                    updated = mutate(record.model_copy(deep=True))
                    if updated.plateNumber != record.plateNumber:
                        _check_plate(entries, updated)
                    items = [item for item, _ in entries]
                    items[index] = updated.model_dump(mode="json")
                    self._write_all(items)
                    return updated
        raise TruckNotFoundError("Truck not found.")


def _raw_truck_id(item: Any) -> Optional[str]:
    if isinstance(item, dict) and isinstance(item.get("truckId"), str):
        return item["truckId"].strip()
    return None


def _check_plate(entries: List[Tuple[Any, Optional[TruckRecord]]], record: TruckRecord):
    """Plate numbers are unique across the fleet when set."""
    if not record.plateNumber:
        return
    for _, other in entries:
        if other is not None and other.truckId != record.truckId and other.plateNumber == record.plateNumber:
            raise TruckConflictError("Truck with this plate number already exists.")
