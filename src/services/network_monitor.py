"""Connectivity knowledge used to short-circuit backend calls.

The monitor only answers "is the network known to be down?". It learns from
explicit health checks and from the outcome of real requests; until either
happens the state is unknown and calls are attempted.
"""

import logging
from collections.abc import Callable

import httpx

logger = logging.getLogger(__name__)

HEALTH_PATH = "/api/v1/health"


class NetworkMonitor:
    """Tracks whether the content backend is reachable."""

    def __init__(self) -> None:
        self._connected: bool | None = None
        self._listeners: list[Callable[[bool], None]] = []

    @property
    def is_connected(self) -> bool | None:
        """True/False once known, None before the first observation."""
        return self._connected

    @property
    def known_offline(self) -> bool:
        return self._connected is False

    def add_listener(self, callback: Callable[[bool], None]) -> None:
        """Register a callback invoked with the new state on every change."""
        self._listeners.append(callback)

    def _set(self, connected: bool) -> None:
        if self._connected == connected:
            return
        self._connected = connected
        logger.info("Network status changed: %s", "online" if connected else "offline")
        for callback in list(self._listeners):
            callback(connected)

    def mark_online(self) -> None:
        self._set(True)

    def mark_offline(self) -> None:
        self._set(False)

    async def check(self, client: httpx.AsyncClient, timeout: float = 5.0) -> bool:
        """Probe the backend health endpoint and record the result.

        Any HTTP response means the network path works; only transport
        failures count as offline.
        """
        try:
            response = await client.get(HEALTH_PATH, timeout=timeout)
        except httpx.TransportError as e:
            logger.warning("Health check failed: %s", e)
            self.mark_offline()
            return False
        logger.debug("Health check answered %d", response.status_code)
        self.mark_online()
        return True
