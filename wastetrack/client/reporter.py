import logging
import time
import threading
from typing import Any, Callable, Dict, Optional, Tuple

import requests

from wastetrack.config import settings
from wastetrack.exceptions import ChannelTransportError, TrackingApiError

logger = logging.getLogger(__name__)

PositionSource = Callable[[], Optional[Tuple[float, float]]]


class TruckLocationReporter:
    """
    Truck-side client that pushes the driver's position to the tracking API.

    The server persists each report and broadcasts it to the viewers; the
    reporter itself never talks to the realtime channel.
    """

    def __init__(
        self,
        truck_id: str,
        base_url: Optional[str] = None,
        session: Optional[requests.Session] = None,
        timeout: Optional[float] = None,
    ):
        self.truck_id = truck_id
        self.base_url = (base_url or settings.API_BASE_URL).rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout if timeout is not None else settings.REQUEST_TIMEOUT_SECONDS
        self._stop = threading.Event()

    @property
    def endpoint(self) -> str:
        return f"/api/trucks/{self.truck_id}/location"

    def report(self, latitude: float, longitude: float, status: Optional[str] = None) -> Dict[str, Any]:
        """Sends one position. Returns the updated truck as stored by the server."""
        body: Dict[str, Any] = {"latitude": latitude, "longitude": longitude}
        if status is not None:
            body["status"] = status

        try:
            response = self.session.put(self.base_url + self.endpoint, json=body, timeout=self.timeout)
        except requests.RequestException as e:
            raise ChannelTransportError(f"Could not reach tracking API: {e}", endpoint=self.endpoint) from e

        try:
            data = response.json()
        except ValueError:
            data = {}

        if response.status_code != 200:
            message = data.get("message") if isinstance(data, dict) else None
            raise TrackingApiError(
                message or f"Location update failed with HTTP {response.status_code}",
                status_code=response.status_code,
                endpoint=self.endpoint,
            )

        logger.debug(f"Location sent for {self.truck_id}: {latitude}, {longitude}")
        return data.get("truck", {})

    def stop(self):
        self._stop.set()

    def run(
        self,
        position_source: PositionSource,
        interval: Optional[float] = None,
        max_reports: Optional[int] = None,
        sleep: Callable[[float], Any] = time.sleep,
    ) -> int:
        """
        Reports a position every `interval` seconds until stop() is called.

        A failed report is logged and tracking carries on with the next
        position. Returns the number of reports the server accepted.
        """
        interval = settings.REPORT_INTERVAL_SECONDS if interval is None else interval
        self._stop.clear()
        accepted = 0
        attempts = 0
        logger.info(f"Location tracking started for truck {self.truck_id} (every {interval}s).")

        while not self._stop.is_set():
            if max_reports is not None and attempts >= max_reports:
                break
            position = position_source()
            if position is None:
                logger.warning("No position fix available; skipping this report.")
            else:
                attempts += 1
                try:
                    self.report(*position)
                    accepted += 1
                except (TrackingApiError, ChannelTransportError) as e:
                    logger.error(f"Failed to send location update for {self.truck_id}: {e.message}")
            if self._stop.is_set() or (max_reports is not None and attempts >= max_reports):
                break
            sleep(interval)

        logger.info(f"Location tracking stopped for truck {self.truck_id}.")
        return accepted
