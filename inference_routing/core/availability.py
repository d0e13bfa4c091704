"""
TTL-cached availability tracking for routing backends.
"""

import asyncio
import time
from typing import Awaitable, Callable, Dict, Mapping, Optional

from ..models import AvailabilityRecord, Backend
from ..utils import get_logger

ProbeFunc = Callable[[], Awaitable[bool]]


class AvailabilityOracle:
    """
    Per-backend health cache with a fixed time-to-live.

    Records are created lazily on first probe and refreshed once older than
    ``ttl_seconds``. Probe failures of any kind mean "down" and are never
    propagated. The cache is owned by one router instance; concurrent
    refreshes for the same backend may race, and the last write wins.
    """

    def __init__(self, probes: Mapping[Backend, ProbeFunc], ttl_seconds: float = 30.0,
                 clock: Callable[[], float] = time.monotonic):
        self.logger = get_logger(__name__)
        self._probes = dict(probes)
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._records: Dict[Backend, AvailabilityRecord] = {}

    async def is_up(self, backend: Backend) -> bool:
        """
        Return the cached availability, probing when the cache is missing or stale.

        Args:
            backend: Backend to check

        Returns:
            bool: True if the backend is believed to be reachable
        """
        if backend is Backend.OFFLINE:
            return True

        record = self._records.get(backend)
        if record is not None and self._clock() - record.last_probed_at < self.ttl_seconds:
            return record.last_known_up

        up = await self.probe(backend)
        self.record(backend, up)
        return up

    async def probe(self, backend: Backend) -> bool:
        """
        Run the backend's probe; every failure counts as "down".

        Args:
            backend: Backend to probe

        Returns:
            bool: probe outcome
        """
        probe = self._probes.get(backend)
        if probe is None:
            return backend is Backend.OFFLINE

        try:
            up = bool(await probe())
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.logger.debug(f"Probe for {backend.value} failed: {type(e).__name__}: {e}")
            up = False

        self.logger.debug(f"Probe for {backend.value}: {'up' if up else 'down'}")
        return up

    def record(self, backend: Backend, up: bool) -> None:
        """Store an observed availability outcome without probing."""
        self._records[backend] = AvailabilityRecord(last_known_up=up, last_probed_at=self._clock())

    def get_record(self, backend: Backend) -> Optional[AvailabilityRecord]:
        return self._records.get(backend)

    def snapshot(self) -> Dict[str, Dict[str, object]]:
        """Copy of the cache for diagnostics."""
        now = self._clock()
        return {
            backend.value: {
                "up": record.last_known_up,
                "age_seconds": round(now - record.last_probed_at, 3),
                "stale": now - record.last_probed_at >= self.ttl_seconds,
            }
            for backend, record in self._records.items()
        }

    def invalidate(self, backend: Optional[Backend] = None) -> None:
        """Drop cached records so the next check probes again."""
        if backend is None:
            self._records.clear()
        else:
            self._records.pop(backend, None)
