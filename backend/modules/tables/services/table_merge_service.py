# backend/modules/tables/services/table_merge_service.py

"""
Merging adjacent tables into one billable unit.

Capacity bookkeeping is incremental: each merge record stores the capacity
it added to the primary, and unmerge subtracts exactly those recorded values
(never dropping the primary below 1). The secondary's capacity at unmerge
time is irrelevant.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple
from sqlalchemy.orm import Session
import logging

from core.database_utils import transaction
from core.exceptions import ConflictError, NotFoundError, ValidationError
from core.time_utils import utc_now
from ..models.table_models import Table, TableMerge, TableEvent, TableStatus
from .table_event_notifier import TableChange, TableEventNotifier
from .table_history_service import TableHistoryService
from .table_queries import (
    get_active_merge_as_secondary,
    get_active_merges,
    get_active_session,
    get_table_or_404,
    lock_table,
    lock_tables,
    merge_to_dict,
    table_to_dict,
)

logger = logging.getLogger(__name__)


def release_active_merges(
    db: Session,
    history: TableHistoryService,
    primary: Table,
    locked: Dict[int, Table],
    actor_id: Optional[int],
    now: datetime,
    reason: str,
) -> Tuple[List[Table], int]:
    """
    Close every active merge record of ``primary`` inside the caller's
    transaction: secondaries go back to available and the recorded capacity
    is removed from the primary.

    Returns the released secondaries and the capacity removed.
    """
    released: List[Table] = []
    removed = 0

    for merge in get_active_merges(db, primary.id):
        merge.unmerged_at = now
        merge.unmerged_by = actor_id
        removed += merge.capacity_added or 0

        secondary = locked.get(merge.merged_table_id)
        if secondary is None:
            secondary = lock_table(db, merge.merged_table_id)
        if secondary.status == TableStatus.MERGED:
            secondary.status = TableStatus.AVAILABLE
            history.record(
                secondary.id,
                TableEvent.STATUS_CHANGE,
                {
                    "from": TableStatus.MERGED.value,
                    "to": TableStatus.AVAILABLE.value,
                    "actor": actor_id,
                    "context": {"reason": reason, "primary_table_id": primary.id},
                },
                actor_id,
            )
        released.append(secondary)

    if removed:
        primary.capacity = max(1, primary.capacity - removed)
    return released, removed


class TableMergeService:
    """Combines and splits tables; the only path into and out of ``merged``"""

    def __init__(
        self,
        db: Session,
        notifier: TableEventNotifier,
        history: TableHistoryService,
    ):
        self.db = db
        self.notifier = notifier
        self.history = history

    async def merge_tables(
        self, primary_table_id: int, table_ids: List[int], actor_id: Optional[int]
    ) -> List[Dict[str, Any]]:
        """
        Merge ``table_ids`` into the primary. All-or-nothing: one invalid
        secondary rejects the whole batch and no table changes.
        """
        table_ids = list(table_ids)
        if not table_ids:
            raise ValidationError("At least one table is required to merge")
        if primary_table_id in table_ids:
            raise ConflictError("A table cannot be merged into itself")
        duplicates = sorted({tid for tid in table_ids if table_ids.count(tid) > 1})
        if duplicates:
            raise ConflictError(f"Tables listed more than once: {duplicates}")

        with transaction(self.db):
            # Lock first, then validate, so concurrent merges on overlapping
            # tables serialize and the loser sees the winner's result.
            locked = lock_tables(self.db, [primary_table_id, *table_ids])

            primary = locked.get(primary_table_id)
            if not primary:
                raise NotFoundError(f"Table {primary_table_id} not found")
            if not primary.is_mergeable:
                raise ConflictError(
                    f"Table {primary.table_number} cannot be merged",
                    error_code="INVALID_STATE",
                )
            if primary.status == TableStatus.MERGED:
                raise ConflictError(
                    f"Table {primary.table_number} is itself merged into another table",
                    error_code="INVALID_STATE",
                )

            secondaries = []
            for table_id in table_ids:
                table = locked.get(table_id)
                if not table:
                    raise NotFoundError(f"Table {table_id} not found")
                if not table.is_mergeable:
                    raise ConflictError(
                        f"Table {table.table_number} cannot be merged",
                        error_code="INVALID_STATE",
                    )
                if table.floor_id != primary.floor_id:
                    raise ConflictError(
                        f"Table {table.table_number} is on a different floor",
                        error_code="INVALID_STATE",
                    )
                if table.status != TableStatus.AVAILABLE:
                    raise ConflictError(
                        f"Table {table.table_number} is {table.status.value}; "
                        "only available tables can be merged",
                        error_code="INVALID_STATE",
                    )
                if get_active_merges(self.db, table.id):
                    raise ConflictError(
                        f"Table {table.table_number} already has tables merged into it",
                        error_code="INVALID_STATE",
                    )
                secondaries.append(table)

            session = get_active_session(self.db, primary.id)
            now = utc_now()
            changes = []
            added = 0

            for table in secondaries:
                self.db.add(
                    TableMerge(
                        primary_table_id=primary.id,
                        merged_table_id=table.id,
                        table_session_id=session.id if session else None,
                        capacity_added=table.capacity,
                        merged_by=actor_id,
                        merged_at=now,
                    )
                )
                added += table.capacity
                table.status = TableStatus.MERGED
                self.history.record(
                    table.id,
                    TableEvent.STATUS_CHANGE,
                    {
                        "from": TableStatus.AVAILABLE.value,
                        "to": TableStatus.MERGED.value,
                        "actor": actor_id,
                        "context": {"merged_into": primary.id},
                    },
                    actor_id,
                )
                changes.append(
                    TableChange.of(
                        table,
                        TableEvent.STATUS_CHANGE,
                        actor_id,
                        status=TableStatus.MERGED.value,
                        merged_into=primary.id,
                    )
                )

            original_capacity = primary.capacity
            primary.capacity = original_capacity + added
            self.history.record(
                primary.id,
                TableEvent.TABLES_MERGED,
                {
                    "merged_table_ids": [t.id for t in secondaries],
                    "capacity_added": added,
                    "original_capacity": original_capacity,
                    "capacity": primary.capacity,
                    "session_id": session.id if session else None,
                },
                actor_id,
            )
            changes.insert(
                0,
                TableChange.of(
                    primary,
                    TableEvent.TABLES_MERGED,
                    actor_id,
                    merged_table_ids=[t.id for t in secondaries],
                    capacity=primary.capacity,
                ),
            )
            self.db.flush()
            result = [merge_to_dict(m) for m in get_active_merges(self.db, primary.id)]

        logger.info(
            f"Merged tables {[c.table_number for c in changes[1:]]} into "
            f"{changes[0].table_number} (+{added} seats)"
        )
        await self.notifier.notify(changes)
        return result

    async def unmerge_tables(self, table_id: int, actor_id: Optional[int]) -> Dict[str, Any]:
        """
        Split a merge group. ``table_id`` may name the primary or any of its
        secondaries; either way the whole group is released.
        """
        # Resolve which primary the request refers to, then act on it.
        primary_id = self._resolve_primary(table_id)

        with transaction(self.db):
            secondary_ids = [m.merged_table_id for m in get_active_merges(self.db, primary_id)]
            locked = lock_tables(self.db, [primary_id, *secondary_ids])
            primary = locked.get(primary_id)
            if not primary:
                raise NotFoundError(f"Table {primary_id} not found")

            released, removed = release_active_merges(
                self.db, self.history, primary, locked, actor_id, utc_now(), reason="unmerge"
            )
            if not released:
                # Another request released the group between resolve and lock
                raise NotFoundError(f"No active merge found for table {table_id}")

            self.history.record(
                primary.id,
                TableEvent.TABLES_UNMERGED,
                {
                    "unmerged_table_ids": [t.id for t in released],
                    "capacity_removed": removed,
                    "capacity": primary.capacity,
                },
                actor_id,
            )

            changes = [
                TableChange.of(
                    primary,
                    TableEvent.TABLES_UNMERGED,
                    actor_id,
                    unmerged_table_ids=[t.id for t in released],
                    capacity=primary.capacity,
                )
            ]
            changes.extend(
                TableChange.of(
                    t, TableEvent.STATUS_CHANGE, actor_id, status=t.status.value
                )
                for t in released
            )
            self.db.flush()
            result = {
                "primary_table_id": primary.id,
                "unmerged_table_ids": [t.id for t in released],
                "capacity_removed": removed,
                "table": table_to_dict(primary),
            }

        await self.notifier.notify(changes)
        return result

    def get_merged_tables(self, primary_table_id: int) -> List[Dict[str, Any]]:
        get_table_or_404(self.db, primary_table_id)
        return [merge_to_dict(m) for m in get_active_merges(self.db, primary_table_id)]

    def check_capacity_consistency(self, table_id: int) -> Dict[str, Any]:
        """
        Diagnostic only: report capacity drift on a merge primary without
        repairing it.
        """
        table = get_table_or_404(self.db, table_id)
        merges = get_active_merges(self.db, table.id)
        merged_capacity = sum(m.capacity_added or 0 for m in merges)
        base_capacity = table.capacity - merged_capacity

        issues = []
        if base_capacity < 1:
            issues.append(
                f"capacity {table.capacity} is below the {merged_capacity} seats added by merges"
            )
        for m in merges:
            secondary = m.merged_table
            if secondary.capacity != m.capacity_added:
                issues.append(
                    f"table {secondary.table_number} has capacity {secondary.capacity} "
                    f"but added {m.capacity_added} when merged"
                )
            if secondary.status != TableStatus.MERGED:
                issues.append(
                    f"table {secondary.table_number} is {secondary.status.value} "
                    "while recorded as merged"
                )
        if merges and table.status == TableStatus.MERGED:
            issues.append(f"table {table.table_number} is both primary and merged")

        if issues:
            logger.warning(
                f"Capacity drift on table {table.table_number}: {'; '.join(issues)}"
            )

        return {
            "table_id": table.id,
            "capacity": table.capacity,
            "merged_capacity": merged_capacity,
            "base_capacity": base_capacity,
            "consistent": not issues,
            "issues": issues,
        }

    def _resolve_primary(self, table_id: int) -> int:
        table = get_table_or_404(self.db, table_id)
        if get_active_merges(self.db, table.id):
            return table.id
        merge = get_active_merge_as_secondary(self.db, table.id)
        if merge:
            return merge.primary_table_id
        raise NotFoundError(f"No active merge found for table {table.table_number}")
