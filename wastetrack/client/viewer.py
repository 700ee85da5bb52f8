"""Live truck map viewer: registry snapshot plus websocket deltas."""

import asyncio
import contextlib
import json
import logging
from enum import Enum
from typing import Callable, List, Optional, Tuple

import aiohttp

from wastetrack.client.map_state import TruckMapState
from wastetrack.config import Settings, settings
from wastetrack.exceptions import ChannelTransportError, TrackingApiError
from wastetrack.models import TRUCK_LOCATION_UPDATE

logger = logging.getLogger(__name__)

REGISTRY_PATH = "/api/trucks/locations/all"
CHANNEL_PATH = "/ws/trucks"


class ViewStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    EMPTY = "empty"
    ERROR = "error"


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    FAILED = "failed"


def _ws_url(base_url: str) -> str:
    if base_url.startswith("https://"):
        return "wss://" + base_url[len("https://"):] + CHANNEL_PATH
    if base_url.startswith("http://"):
        return "ws://" + base_url[len("http://"):] + CHANNEL_PATH
    return base_url + CHANNEL_PATH


class TruckMapViewer:
    """
    Keeps a TruckMapState in sync with the tracking API.

    mount() loads the registry snapshot and then opens one websocket;
    unmount() closes it. A registry response that lands after unmount is
    dropped. Connection attempts are bounded; once they are used up the
    viewer stays in ConnectionState.FAILED and does not refetch on its own.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        state: Optional[TruckMapState] = None,
        session: Optional[aiohttp.ClientSession] = None,
        config: Optional[Settings] = None,
        refetch_on_gap: bool = False,
    ):
        config = config or settings
        self.base_url = (base_url or config.API_BASE_URL).rstrip("/")
        self.state = state or TruckMapState()
        self.reconnect_attempts = config.WS_RECONNECT_ATTEMPTS
        self.connect_timeout = config.WS_CONNECT_TIMEOUT_SECONDS
        self.retry_delay = config.WS_RETRY_DELAY_SECONDS
        self.request_timeout = config.REQUEST_TIMEOUT_SECONDS
        self.refetch_on_gap = refetch_on_gap

        self.status = ViewStatus.IDLE
        self.error: Optional[str] = None
        self.connection_state = ConnectionState.DISCONNECTED
        self.connection_error: Optional[str] = None

        self._session = session
        self._owns_session = session is None
        self._mounted = False
        self._generation = 0
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._subscription: Optional[asyncio.Task] = None
        self._refetch: Optional[asyncio.Task] = None
        self._listeners: List[Callable[["TruckMapViewer"], None]] = []

    @property
    def mounted(self) -> bool:
        return self._mounted

    def add_listener(self, callback: Callable[["TruckMapViewer"], None]):
        self._listeners.append(callback)

    def _notify(self):
        for callback in list(self._listeners):
            try:
                callback(self)
            except Exception:
                logger.exception("Map listener failed")

    async def mount(self):
        if self._mounted:
            return
        if self._session is None:
            self._session = aiohttp.ClientSession()
        self._mounted = True
        await self.load_snapshot()
        if self._mounted:
            self._subscription = asyncio.create_task(self._subscribe())

    async def retry(self):
        """Manual retry of the registry query."""
        if self._mounted:
            await self.load_snapshot()

    async def unmount(self):
        self._mounted = False
        self._generation += 1
        for task in (self._subscription, self._refetch):
            if task is not None and not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
        self._subscription = None
        self._refetch = None
        if self._ws is not None:
            await self._ws.close()
            self._ws = None
        self.connection_state = ConnectionState.DISCONNECTED
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None
        logger.info("Truck map viewer unmounted.")

    async def fetch_snapshot(self) -> Optional[list]:
        """
        Calls the registry query.
        Returns None when the server reports no active trucks.
        """
        url = self.base_url + REGISTRY_PATH
        timeout = aiohttp.ClientTimeout(total=self.request_timeout)
        try:
            async with self._session.get(url, timeout=timeout) as response:
                if response.status == 404:
                    return None
                body = await response.json(content_type=None)
                if response.status != 200:
                    message = body.get("message") if isinstance(body, dict) else None
                    raise TrackingApiError(
                        message or f"Registry query failed with HTTP {response.status}",
                        status_code=response.status,
                        endpoint=REGISTRY_PATH,
                    )
        except (aiohttp.ClientError, asyncio.TimeoutError, json.JSONDecodeError) as e:
            raise ChannelTransportError(f"Failed to fetch trucks: {str(e) or type(e).__name__}", endpoint=REGISTRY_PATH) from e

        if not isinstance(body, list):
            raise TrackingApiError("Unexpected registry response format.", status_code=200, endpoint=REGISTRY_PATH)
        return body

    async def load_snapshot(self, refresh: bool = False):
        """
        Queries the registry and replaces the map with the result.

        With refresh=True (gap recovery) the view stays as it is while the
        query runs, and a failed query keeps the current markers.
        """
        generation = self._generation
        if not refresh:
            self.status = ViewStatus.LOADING
            self.error = None
            self._notify()
        try:
            snapshot = await self.fetch_snapshot()
        except (TrackingApiError, ChannelTransportError) as e:
            if generation != self._generation or not self._mounted:
                return
            logger.error(f"Registry query failed: {e.message}")
            if refresh:
                self.error = e.message
                self._notify()
                return
            self.state.clear()
            self.status = ViewStatus.ERROR
            self.error = e.message
            self._notify()
            return

        if generation != self._generation or not self._mounted:
            logger.debug("Discarding registry response that arrived after unmount.")
            return

        if not snapshot:
            self.state.clear()
            self.status = ViewStatus.EMPTY
            self.error = "No active trucks found."
        else:
            self.state.replace_all(snapshot)
            self.status = ViewStatus.READY
            self.error = None
        self._notify()

    async def _connect(self) -> aiohttp.ClientWebSocketResponse:
        return await asyncio.wait_for(self._session.ws_connect(_ws_url(self.base_url)), timeout=self.connect_timeout)

    def _give_up(self, failures: int, reason: str) -> bool:
        logger.warning(f"Realtime channel attempt {failures}/{self.reconnect_attempts} failed: {reason}")
        if failures < self.reconnect_attempts:
            return False
        self.connection_state = ConnectionState.FAILED
        self.connection_error = f"Realtime connection failed: {reason}"
        self._notify()
        return True

    async def _subscribe(self):
        # Consecutive failures. A connection only counts as healthy once it
        # has delivered a message, so accept-then-close servers use up attempts.
        failures = 0
        while self._mounted:
            self.connection_state = ConnectionState.CONNECTING
            try:
                self._ws = await self._connect()
            except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
                failures += 1
                if self._give_up(failures, str(e) or type(e).__name__):
                    return
                await asyncio.sleep(self.retry_delay)
                continue

            self.connection_state = ConnectionState.CONNECTED
            self.connection_error = None
            logger.info("Connected to realtime truck channel.")
            self._notify()
            received = False
            try:
                async for message in self._ws:
                    if message.type == aiohttp.WSMsgType.TEXT:
                        received = True
                        failures = 0
                        self.handle_message(message.data)
                    elif message.type == aiohttp.WSMsgType.ERROR:
                        logger.warning(f"Realtime channel error: {self._ws.exception()}")
                        break
            finally:
                await self._ws.close()
                self._ws = None

            if not self._mounted:
                return
            if not received:
                failures += 1
                if self._give_up(failures, "channel closed before delivering any message"):
                    return
            self.connection_state = ConnectionState.DISCONNECTED
            logger.info("Realtime channel closed; reconnecting.")
            self._notify()
            await asyncio.sleep(self.retry_delay)

    def handle_message(self, raw: str):
        try:
            message = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"Ignoring non-JSON channel message: {raw[:100]}")
            return
        if not isinstance(message, dict) or message.get("event") != TRUCK_LOCATION_UPDATE:
            return

        gap = self.state.apply_event(message.get("data") or {})
        self._notify()
        if gap and self.refetch_on_gap and self._mounted:
            if self._refetch is None or self._refetch.done():
                self._refetch = asyncio.create_task(self.load_snapshot(refresh=True))

    def marker_positions(self) -> List[Tuple[str, float, float]]:
        return [(m.truckId, m.latitude, m.longitude) for m in self.state.markers()]
