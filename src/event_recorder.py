"""
Event Recorder - Best-effort emission of cluster events.

Repeated occurrences of the same event are folded into an event series:
the first occurrence creates an Event, later ones bump its series count
instead of creating a new object.
"""

import asyncio
import logging
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional, Tuple

from cluster import ClusterAPIError, ClusterClient
from config import Config, get_config
from events import ClusterEvent, format_event_time
from manifests import metadata

logger = logging.getLogger(__name__)


@dataclass
class EventSeries:
    """Bookkeeping for an event that has already been created."""

    namespace: str
    name: str
    count: int = 1


class EventRecorder:
    """
    Records cluster events through a ClusterClient.

    Emission never raises: failures are logged and reported through the
    return value of :meth:`emit`. One recorder may be shared between
    concurrent reconciliations.
    """

    def __init__(
        self,
        client: ClusterClient,
        reporting_instance: str = "local",
        max_series: int = 1024,
    ):
        self.client = client
        self.reporting_instance = reporting_instance
        self.max_series = max_series
        self._series: "OrderedDict[Tuple[Any, ...], EventSeries]" = OrderedDict()
        self._lock: Optional[asyncio.Lock] = None

    @classmethod
    def from_config(
        cls, client: ClusterClient, config: Optional[Config] = None
    ) -> "EventRecorder":
        config = config or get_config()
        return cls(client, reporting_instance=config.operator.instance)

    @property
    def lock(self) -> asyncio.Lock:
        # Created on first use so it binds to the running loop
        if self._lock is None:
            self._lock = asyncio.Lock()
        return self._lock

    async def emit(self, event: ClusterEvent, operator: Optional[str], conn) -> bool:
        """
        Record an event in the cluster.

        The series cache is only locked for bookkeeping; API calls for
        different events run concurrently.

        Args:
            event: The event to record.
            operator: Reporting controller name.
            conn: Cluster connection.

        Returns:
            True if the event was recorded, False if recording failed.
        """
        key = (operator,) + event.series_key()
        now = datetime.now(timezone.utc)

        try:
            async with self.lock:
                series = self._series.get(key)
                if series is not None:
                    series.count += 1
                    count = series.count
                    self._series.move_to_end(key)

            if series is not None:
                try:
                    await self._bump_series(series, count, now, conn)
                    return True
                except ClusterAPIError as e:
                    if e.status != 404:
                        raise
                    # The event expired in the cluster, start a new series
                    async with self.lock:
                        if self._series.get(key) is series:
                            del self._series[key]

            await self._create(key, event, operator, now, conn)
            return True
        except Exception as e:
            logger.warning(
                f"Failed to record event '{event.reason}' for "
                f"{metadata(event.regarding).get('name')}: {e}",
                exc_info=True,
            )
            return False

    async def _create(self, key, event, operator, now, conn) -> None:
        manifest = event.to_manifest(
            operator=operator,
            reporting_instance=self.reporting_instance,
            event_time=now,
        )
        created = await self.client.create_event(manifest, conn)

        created_meta = metadata(created)
        if created_meta.get("name"):
            async with self.lock:
                self._series[key] = EventSeries(
                    namespace=created_meta.get("namespace")
                    or manifest["metadata"]["namespace"],
                    name=created_meta["name"],
                )
                while len(self._series) > self.max_series:
                    self._series.popitem(last=False)

        logger.debug(f"Recorded event {event.reason} ({event.event_type.value})")

    async def _bump_series(
        self, series: EventSeries, count: int, now: datetime, conn
    ) -> None:
        patch = {
            "series": {
                "count": count,
                "lastObservedTime": format_event_time(now),
            }
        }
        await self.client.patch_event(series.namespace, series.name, patch, conn)
        logger.debug(f"Event {series.namespace}/{series.name} seen {count} times")
