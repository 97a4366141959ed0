# backend/modules/tables/services/table_event_notifier.py

"""
Post-commit side channels: floor broadcast and cached-list invalidation.

Both run only after the state change is durably committed. They are lossy:
a failed publish or cache delete is logged and dropped, never surfaced to
the caller and never rolled back.
"""

from typing import Any, Dict, Iterable, List, Optional
from dataclasses import dataclass, field
import logging

from core.time_utils import isoformat, utc_now
from ..interfaces import BroadcasterInterface, CacheInterface

logger = logging.getLogger(__name__)

TABLE_UPDATE_EVENT = "table:update"


def outlet_cache_key(outlet_id: int) -> str:
    return f"tables:outlet:{outlet_id}"


def floor_cache_key(floor_id: int) -> str:
    return f"tables:floor:{floor_id}"


@dataclass
class TableChange:
    """A committed change to one table, queued for broadcast"""

    table_id: int
    table_number: str
    outlet_id: int
    floor_id: int
    event: str
    data: Dict[str, Any] = field(default_factory=dict)
    actor_id: Optional[int] = None

    @classmethod
    def of(cls, table, event: str, actor_id: Optional[int] = None, **data) -> "TableChange":
        # Capture plain values while the row is still loaded in the transaction
        return cls(
            table_id=table.id,
            table_number=table.table_number,
            outlet_id=table.outlet_id,
            floor_id=table.floor_id,
            event=str(getattr(event, "value", event)),
            data=data,
            actor_id=actor_id,
        )

    def to_payload(self) -> Dict[str, Any]:
        payload = {
            "table_id": self.table_id,
            "table_number": self.table_number,
            "event": self.event,
        }
        payload.update(self.data)
        payload["actor_id"] = self.actor_id
        payload["timestamp"] = isoformat(utc_now())
        return payload


class TableEventNotifier:
    """Publishes committed table changes and drops stale cached lists"""

    def __init__(
        self,
        broadcaster: Optional[BroadcasterInterface],
        cache: Optional[CacheInterface],
    ):
        self.broadcaster = broadcaster
        self.cache = cache

    async def notify(self, changes: Iterable[TableChange]) -> None:
        changes: List[TableChange] = list(changes)
        if not changes:
            return

        for change in changes:
            await self._broadcast(change)

        keys = set()
        for change in changes:
            keys.add(outlet_cache_key(change.outlet_id))
            keys.add(floor_cache_key(change.floor_id))
        for key in sorted(keys):
            await self._invalidate(key)

    async def _broadcast(self, change: TableChange) -> None:
        if self.broadcaster is None:
            return
        try:
            await self.broadcaster.publish(
                change.outlet_id,
                change.floor_id,
                TABLE_UPDATE_EVENT,
                change.to_payload(),
            )
        except Exception as e:
            logger.error(
                f"Broadcast of {change.event} for table {change.table_id} failed: {e}"
            )

    async def _invalidate(self, key: str) -> None:
        if self.cache is None:
            return
        try:
            await self.cache.delete(key)
        except Exception as e:
            logger.error(f"Cache invalidation failed for {key}: {e}")
