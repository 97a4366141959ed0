# backend/modules/tables/services/table_state_service.py

"""
Table status state machine and dining session life-cycle.

    available/reserved --start_session--> occupied --(orders)--> running
        --(bill)--> billing --end_session--> available

``occupied``, ``running`` and ``billing`` only exist while the table has an
active session; ending the session is the only way back to ``available``.
``merged`` is owned by the merge service. ``blocked`` is an administrative
override that can be applied from any other state.
"""

from typing import Any, Dict, Optional, Union
from sqlalchemy.orm import Session
import logging

from core.database_utils import transaction
from core.exceptions import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from core.time_utils import minutes_between, utc_now
from ..interfaces import OrderLookupInterface, PermissionCheckerInterface
from ..models.table_models import (
    Table,
    TableSession,
    TableEvent,
    TableStatus,
    SessionStatus,
    SESSION_STATUSES,
)
from ..schemas.table_schemas import TableSessionCreate
from .shift_gate import ShiftGate
from .table_event_notifier import TableChange, TableEventNotifier
from .table_history_service import TableHistoryService
from .table_merge_service import release_active_merges
from .table_queries import (
    get_active_merges,
    get_active_session,
    get_table_or_404,
    lock_table,
    lock_tables,
    session_to_dict,
    table_to_dict,
)

logger = logging.getLogger(__name__)


def _invalid_state(message: str) -> ConflictError:
    return ConflictError(message, error_code="INVALID_STATE")


class TableStateService:
    """Service for managing table states and sessions"""

    def __init__(
        self,
        db: Session,
        notifier: TableEventNotifier,
        history: TableHistoryService,
        shift_gate: ShiftGate,
        permissions: PermissionCheckerInterface,
        order_lookup: Optional[OrderLookupInterface] = None,
    ):
        self.db = db
        self.notifier = notifier
        self.history = history
        self.shift_gate = shift_gate
        self.permissions = permissions
        self.order_lookup = order_lookup

    async def update_status(
        self,
        table_id: int,
        new_status: Union[str, TableStatus],
        actor_id: Optional[int],
        extra: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Apply a status transition requested by staff or an external system"""
        try:
            target = TableStatus(new_status)
        except ValueError:
            allowed = ", ".join(s.value for s in TableStatus)
            raise ValidationError(f"Invalid status '{new_status}'. Allowed: {allowed}")

        if target == TableStatus.MERGED:
            raise _invalid_state("Tables are marked merged only by merging them")

        with transaction(self.db):
            table = lock_table(self.db, table_id)
            current = table.status

            if current == TableStatus.MERGED:
                raise _invalid_state(
                    f"Table {table.table_number} is merged into another table; unmerge it first"
                )
            if current == target:
                raise _invalid_state(f"Table {table.table_number} is already {target.value}")

            session = get_active_session(self.db, table.id)
            if target in SESSION_STATUSES and not session:
                raise _invalid_state(
                    f"Table {table.table_number} has no active session; "
                    f"start a session before marking it {target.value}"
                )
            if target == TableStatus.AVAILABLE and session:
                raise _invalid_state(
                    f"Table {table.table_number} has an active session; end the session to free it"
                )
            if current == TableStatus.BLOCKED and not session and target != TableStatus.AVAILABLE:
                raise _invalid_state(
                    f"Table {table.table_number} is blocked; make it available first"
                )

            table.status = target
            self.history.record(
                table.id,
                TableEvent.STATUS_CHANGE,
                {
                    "from": current.value,
                    "to": target.value,
                    "actor": actor_id,
                    "context": extra or {},
                },
                actor_id,
            )
            self.db.flush()
            result = table_to_dict(table)
            change = TableChange.of(
                table,
                TableEvent.STATUS_CHANGE,
                actor_id,
                previous_status=current.value,
                status=target.value,
                extra=extra or {},
            )

        logger.info(f"Table {table_id} status {current.value} -> {target.value}")
        await self.notifier.notify([change])
        return result

    async def start_session(
        self, table_id: int, data: TableSessionCreate, actor_id: Optional[int]
    ) -> Dict[str, Any]:
        with transaction(self.db):
            table = lock_table(self.db, table_id)
            if table.status not in (TableStatus.AVAILABLE, TableStatus.RESERVED):
                raise _invalid_state(
                    f"Table {table.table_number} is currently {table.status.value}"
                )
            if get_active_session(self.db, table.id):
                raise _invalid_state(
                    f"Table {table.table_number} already has an active session"
                )

            self.shift_gate.ensure_open(table)

            if data.guest_count > table.capacity:
                logger.warning(
                    f"Seating {data.guest_count} guests at table {table.table_number} "
                    f"with capacity {table.capacity}"
                )

            session = TableSession(
                table_id=table.id,
                guest_count=data.guest_count or 1,
                guest_name=data.guest_name,
                guest_phone=data.guest_phone,
                notes=data.notes,
                status=SessionStatus.ACTIVE,
                started_by=actor_id,
                started_at=utc_now(),
            )
            self.db.add(session)

            previous = table.status
            table.status = TableStatus.OCCUPIED
            self.db.flush()

            self.history.record(
                table.id,
                TableEvent.SESSION_STARTED,
                {
                    "session_id": session.id,
                    "guest_count": session.guest_count,
                    "from": previous.value,
                    "to": TableStatus.OCCUPIED.value,
                },
                actor_id,
            )
            self.db.flush()
            result = {"session_id": session.id, "table": table_to_dict(table)}
            change = TableChange.of(
                table,
                TableEvent.SESSION_STARTED,
                actor_id,
                status=TableStatus.OCCUPIED.value,
                session_id=session.id,
                guest_count=session.guest_count,
            )

        logger.info(f"Session {result['session_id']} started on table {table_id}")
        await self.notifier.notify([change])
        return result

    async def end_session(self, table_id: int, actor_id: Optional[int]) -> Dict[str, Any]:
        """
        Close the active session and free the table.

        If the table is a merge primary, its secondaries are released first so
        no table is left ``merged`` without a session to belong to.
        """
        with transaction(self.db):
            secondary_ids = [m.merged_table_id for m in get_active_merges(self.db, table_id)]
            locked = lock_tables(self.db, [table_id, *secondary_ids])
            table = locked.get(table_id)
            if not table:
                raise NotFoundError(f"Table {table_id} not found")

            session = get_active_session(self.db, table.id)
            if not session:
                raise NotFoundError(f"No active session for table {table.table_number}")

            now = utc_now()
            session.status = SessionStatus.COMPLETED
            session.ended_at = now
            session.ended_by = actor_id

            released, removed = release_active_merges(
                self.db, self.history, table, locked, actor_id, now, reason="session_ended"
            )

            previous = table.status
            table.status = TableStatus.AVAILABLE
            duration = minutes_between(session.started_at, now)

            self.history.record(
                table.id,
                TableEvent.SESSION_ENDED,
                {
                    "session_id": session.id,
                    "duration_minutes": duration,
                    "from": previous.value,
                    "to": TableStatus.AVAILABLE.value,
                    "unmerged_table_ids": [t.id for t in released],
                    "capacity_removed": removed,
                },
                actor_id,
            )
            self.db.flush()

            result = {
                "session_id": session.id,
                "duration_minutes": duration,
                "unmerged_table_ids": [t.id for t in released],
                "table": table_to_dict(table),
            }
            changes = [
                TableChange.of(
                    table,
                    TableEvent.SESSION_ENDED,
                    actor_id,
                    status=TableStatus.AVAILABLE.value,
                    session_id=session.id,
                    duration_minutes=duration,
                )
            ]
            changes.extend(
                TableChange.of(t, TableEvent.STATUS_CHANGE, actor_id, status=t.status.value)
                for t in released
            )

        logger.info(
            f"Session {result['session_id']} ended on table {table_id} "
            f"after {result['duration_minutes']} min"
        )
        await self.notifier.notify(changes)
        return result

    async def transfer_session(
        self, table_id: int, new_actor_id: int, transferred_by: Optional[int]
    ) -> Dict[str, Any]:
        """Hand the table's session to another staff member"""
        if transferred_by is None or not self.permissions.is_elevated(transferred_by):
            raise AuthorizationError("Only managers can transfer table sessions")

        with transaction(self.db):
            table = lock_table(self.db, table_id)
            session = get_active_session(self.db, table.id)
            if not session:
                raise NotFoundError(f"No active session for table {table.table_number}")

            previous_owner = session.started_by
            session.started_by = new_actor_id
            self.history.record(
                table.id,
                TableEvent.SESSION_TRANSFERRED,
                {
                    "session_id": session.id,
                    "from_actor": previous_owner,
                    "to_actor": new_actor_id,
                },
                transferred_by,
            )
            self.db.flush()
            result = session_to_dict(session)
            change = TableChange.of(
                table,
                TableEvent.SESSION_TRANSFERRED,
                transferred_by,
                session_id=session.id,
                from_actor=previous_owner,
                to_actor=new_actor_id,
            )

        await self.notifier.notify([change])
        return result

    async def attach_order(
        self, table_id: int, order_id: int, actor_id: Optional[int]
    ) -> Dict[str, Any]:
        """Link an order from the ordering system to the active session"""
        with transaction(self.db):
            table = lock_table(self.db, table_id)
            session = get_active_session(self.db, table.id)
            if not session:
                raise NotFoundError(f"No active session for table {table.table_number}")
            if session.order_id == order_id:
                raise ConflictError(
                    f"Order {order_id} is already linked to table {table.table_number}"
                )
            if session.order_id is not None:
                raise ConflictError(
                    f"Table {table.table_number} already has order {session.order_id}"
                )

            session.order_id = order_id
            self.history.record(
                table.id,
                TableEvent.ORDER_LINKED,
                {"session_id": session.id, "order_id": order_id},
                actor_id,
            )
            self.db.flush()
            result = session_to_dict(session)
            change = TableChange.of(
                table,
                TableEvent.ORDER_LINKED,
                actor_id,
                session_id=session.id,
                order_id=order_id,
            )

        await self.notifier.notify([change])
        return result

    def get_active_session(self, table_id: int) -> Optional[TableSession]:
        get_table_or_404(self.db, table_id)
        return get_active_session(self.db, table_id)

    async def get_current_session(self, table_id: int) -> Optional[Dict[str, Any]]:
        """Active session with duration and the linked order's summary"""
        table: Table = get_table_or_404(self.db, table_id)
        session = get_active_session(self.db, table.id)
        if not session:
            return None

        data = session_to_dict(session)
        data["table_number"] = table.table_number
        data["order"] = None
        if session.order_id and self.order_lookup:
            order = await self.order_lookup.get_order(session.order_id)
            if order:
                data["order"] = order.to_summary()
        return data
