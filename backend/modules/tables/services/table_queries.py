# backend/modules/tables/services/table_queries.py

"""
Row locking, shared lookups and serializers used by the table services.

Mutations lock every involved table row with SELECT ... FOR UPDATE, always in
ascending id order, so two requests touching overlapping tables cannot
deadlock and the second one sees the first one's committed result.
"""

from typing import Any, Dict, Iterable, List, Optional
from sqlalchemy.orm import Session

from core.exceptions import NotFoundError
from core.time_utils import isoformat, minutes_between
from ..models.table_models import (
    Table,
    TableSession,
    TableMerge,
    TableHistory,
    SessionStatus,
)


def lock_table(db: Session, table_id: int) -> Table:
    """Lock one active table row or raise NotFoundError"""
    table = (
        db.query(Table)
        .filter(Table.id == table_id, Table.is_active.is_(True))
        .with_for_update()
        .populate_existing()
        .first()
    )
    if not table:
        raise NotFoundError(f"Table {table_id} not found")
    return table


def lock_tables(db: Session, table_ids: Iterable[int]) -> Dict[int, Table]:
    """
    Lock several active table rows in ascending id order.

    Missing or inactive ids are simply absent from the result; callers decide
    which error that is.
    """
    locked: Dict[int, Table] = {}
    for table_id in sorted(set(table_ids)):
        table = (
            db.query(Table)
            .filter(Table.id == table_id, Table.is_active.is_(True))
            .with_for_update()
            .populate_existing()
            .first()
        )
        if table:
            locked[table_id] = table
    return locked


def get_table_or_404(db: Session, table_id: int) -> Table:
    table = db.get(Table, table_id)
    if not table:
        raise NotFoundError(f"Table {table_id} not found")
    return table


def get_active_session(db: Session, table_id: int) -> Optional[TableSession]:
    return (
        db.query(TableSession)
        .filter(
            TableSession.table_id == table_id,
            TableSession.status == SessionStatus.ACTIVE,
        )
        .order_by(TableSession.started_at.desc())
        .first()
    )


def get_active_merges(db: Session, primary_table_id: int) -> List[TableMerge]:
    """Active merge records where the table is the primary"""
    return (
        db.query(TableMerge)
        .filter(
            TableMerge.primary_table_id == primary_table_id,
            TableMerge.unmerged_at.is_(None),
        )
        .order_by(TableMerge.merged_table_id)
        .all()
    )


def get_active_merge_as_secondary(db: Session, table_id: int) -> Optional[TableMerge]:
    return (
        db.query(TableMerge)
        .filter(
            TableMerge.merged_table_id == table_id,
            TableMerge.unmerged_at.is_(None),
        )
        .first()
    )


def _enum_value(value):
    return getattr(value, "value", value)


def table_to_dict(table: Table) -> Dict[str, Any]:
    """Denormalized table record with location names and layout position"""
    position = None
    if table.layout:
        position = {
            "position_x": table.layout.position_x,
            "position_y": table.layout.position_y,
            "width": table.layout.width,
            "height": table.layout.height,
            "rotation": table.layout.rotation,
        }

    return {
        "id": table.id,
        "outlet_id": table.outlet_id,
        "outlet_name": table.outlet.name if table.outlet else None,
        "floor_id": table.floor_id,
        "floor_name": table.floor.name if table.floor else None,
        "section_id": table.section_id,
        "section_name": table.section.name if table.section else None,
        "section_type": _enum_value(table.section.section_type) if table.section else None,
        "table_number": table.table_number,
        "name": table.name,
        "capacity": table.capacity,
        "min_capacity": table.min_capacity,
        "shape": _enum_value(table.shape),
        "is_mergeable": table.is_mergeable,
        "is_splittable": table.is_splittable,
        "display_order": table.display_order,
        "qr_code": table.qr_code,
        "status": _enum_value(table.status),
        "is_active": table.is_active,
        "position": position,
        "created_at": isoformat(table.created_at),
        "updated_at": isoformat(table.updated_at),
    }


def session_to_dict(session: TableSession, with_duration: bool = True) -> Dict[str, Any]:
    data = {
        "id": session.id,
        "table_id": session.table_id,
        "order_id": session.order_id,
        "guest_count": session.guest_count,
        "guest_name": session.guest_name,
        "guest_phone": session.guest_phone,
        "notes": session.notes,
        "status": _enum_value(session.status),
        "started_by": session.started_by,
        "started_at": isoformat(session.started_at),
        "ended_by": session.ended_by,
        "ended_at": isoformat(session.ended_at),
    }
    if with_duration:
        data["duration_minutes"] = minutes_between(session.started_at, session.ended_at)
    return data


def merge_to_dict(merge: TableMerge) -> Dict[str, Any]:
    secondary = merge.merged_table
    return {
        "id": merge.id,
        "primary_table_id": merge.primary_table_id,
        "merged_table_id": merge.merged_table_id,
        "table_session_id": merge.table_session_id,
        "capacity_added": merge.capacity_added,
        "merged_by": merge.merged_by,
        "merged_at": isoformat(merge.merged_at),
        "merged_table_number": secondary.table_number,
        "merged_table_name": secondary.name,
        "merged_table_capacity": secondary.capacity,
    }


def history_to_dict(entry: TableHistory) -> Dict[str, Any]:
    return {
        "id": entry.id,
        "table_id": entry.table_id,
        "event_type": entry.event_type,
        "event_data": entry.event_data or {},
        "performed_by": entry.performed_by,
        "created_at": isoformat(entry.created_at),
    }
