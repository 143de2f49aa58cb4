import asyncio
import logging
import time
from functools import lru_cache
from typing import Awaitable, Callable, Optional

from gamewatch.config import get_settings
from gamewatch.models.host import HostMetricsSnapshot
from gamewatch.services.node_exporter import fetch_metrics

logger = logging.getLogger(__name__)

Fetcher = Callable[[str], Awaitable[HostMetricsSnapshot]]


def compute_cpu_delta(
    previous: Optional[HostMetricsSnapshot], current: HostMetricsSnapshot
) -> Optional[float]:
    """
    CPU usage over the interval between two snapshots, or None.

    node-exporter counters are cumulative since boot, so the ratio inside a
    single snapshot is the long-run average. The delta between two samples
    reflects the current load. None is returned when no delta can be formed:
    first sample, invalid snapshots, or a counter reset.
    """
    if previous is None or not previous.is_valid or not current.is_valid:
        return None
    if previous.cpu_total_seconds_total <= 0:
        return None

    total_delta = current.cpu_total_seconds_total - previous.cpu_total_seconds_total
    idle_delta = current.cpu_idle_seconds_total - previous.cpu_idle_seconds_total
    if total_delta <= 0 or idle_delta < 0:
        return None

    usage = (1 - idle_delta / total_delta) * 100
    return min(100.0, max(0.0, usage))


class HostMetricsCache:
    """
    TTL-gated, single-flight cache in front of the node-exporter scraper.

    Callers within ``ttl_seconds`` of the last fetch get the cached snapshot.
    Callers arriving while a fetch is running wait for that fetch. The lock
    only guards the state; it is never held across the network call.
    """

    def __init__(
        self,
        url: str,
        ttl_seconds: float = 1.0,
        fetcher: Fetcher = fetch_metrics,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._url = url
        self._ttl = ttl_seconds
        self._fetcher = fetcher
        self._clock = clock
        self._lock = asyncio.Lock()
        self._snapshot: Optional[HostMetricsSnapshot] = None
        self._last_fetch: Optional[float] = None
        self._inflight: Optional["asyncio.Future[HostMetricsSnapshot]"] = None

    @property
    def url(self) -> str:
        return self._url

    def _is_fresh(self) -> bool:
        if self._snapshot is None or self._last_fetch is None:
            return False
        return self._clock() - self._last_fetch < self._ttl

    async def get_metrics(self) -> HostMetricsSnapshot:
        async with self._lock:
            snapshot = self._snapshot
            if snapshot is not None and self._is_fresh():
                return snapshot
            if self._inflight is None or self._inflight.cancelled():
                self._inflight = asyncio.ensure_future(self._refresh())
            inflight = self._inflight

        return await asyncio.shield(inflight)

    async def _refresh(self) -> HostMetricsSnapshot:
        try:
            snapshot = await self._fetcher(self._url)
        except Exception as exc:
            # fetchers should be total; a raising one still yields an invalid snapshot
            logger.exception("Metrics fetcher raised unexpectedly")
            snapshot = HostMetricsSnapshot.invalid(f"Fetch failed: {exc}")

        async with self._lock:
            usage = compute_cpu_delta(self._snapshot, snapshot)
            if usage is not None:
                snapshot = snapshot.model_copy(update={"cpu_usage_percent": usage})
            self._snapshot = snapshot
            self._last_fetch = self._clock()
            self._inflight = None

        return snapshot


@lru_cache(maxsize=1)
def get_metrics_cache() -> HostMetricsCache:
    settings = get_settings()
    return HostMetricsCache(
        url=settings.host_metrics_url,
        ttl_seconds=settings.metrics_cache_ttl,
    )
