# backend/modules/tables/services/table_registry_service.py

from typing import Any, Dict, List, Optional
from collections import defaultdict
from sqlalchemy.orm import Session
import logging

from core.config import settings
from core.database_utils import transaction
from core.exceptions import ConflictError, NotFoundError, ValidationError
from modules.core.models import Floor, FloorSection, Section
from ..interfaces import CacheInterface, OrderLookupInterface
from ..models.table_models import (
    Table,
    TableLayout,
    TableMerge,
    TableSession,
    TableEvent,
    TableShape,
    TableStatus,
    SessionStatus,
)
from ..schemas.table_schemas import TableCreate, TableFilters, TableUpdate
from .shift_gate import ShiftGate
from .table_event_notifier import (
    TableChange,
    TableEventNotifier,
    floor_cache_key,
    outlet_cache_key,
)
from .table_history_service import TableHistoryService
from .table_queries import (
    get_active_merges,
    get_active_session,
    get_table_or_404,
    lock_table,
    session_to_dict,
    table_to_dict,
)

logger = logging.getLogger(__name__)


def _label(value: str) -> str:
    return value.replace("_", " ").title()


class TableRegistryService:
    """CRUD, layout metadata and floor views for physical tables"""

    def __init__(
        self,
        db: Session,
        notifier: TableEventNotifier,
        history: TableHistoryService,
        shift_gate: ShiftGate,
        cache: Optional[CacheInterface] = None,
        order_lookup: Optional[OrderLookupInterface] = None,
    ):
        self.db = db
        self.notifier = notifier
        self.history = history
        self.shift_gate = shift_gate
        self.cache = cache
        self.order_lookup = order_lookup

    async def create_table(
        self, data: TableCreate, actor_id: Optional[int] = None
    ) -> Dict[str, Any]:
        with transaction(self.db):
            floor = self.db.get(Floor, data.floor_id)
            if not floor or not floor.is_active:
                raise NotFoundError(f"Floor {data.floor_id} not found")
            if floor.outlet_id != data.outlet_id:
                raise ValidationError(
                    f"Floor {floor.name} does not belong to outlet {data.outlet_id}"
                )
            if data.section_id is not None:
                self._validate_section(data.section_id, floor)
            if data.min_capacity > data.capacity:
                raise ValidationError("Minimum capacity cannot exceed capacity")

            self._ensure_number_available(data.outlet_id, data.table_number)

            table = Table(
                outlet_id=data.outlet_id,
                floor_id=data.floor_id,
                section_id=data.section_id,
                table_number=data.table_number,
                name=data.name,
                capacity=data.capacity,
                min_capacity=data.min_capacity,
                shape=data.shape,
                is_mergeable=data.is_mergeable,
                is_splittable=data.is_splittable,
                display_order=data.display_order,
                qr_code=data.qr_code,
                status=TableStatus.AVAILABLE,
                is_active=True,
            )
            if data.position:
                table.layout = TableLayout(**data.position.model_dump())
            self.db.add(table)
            self.db.flush()

            self.history.record(
                table.id,
                TableEvent.TABLE_CREATED,
                {"table_number": table.table_number, "capacity": table.capacity},
                actor_id,
            )
            result = table_to_dict(table)
            change = TableChange.of(table, TableEvent.TABLE_CREATED, actor_id, status=table.status.value)

        logger.info(f"Created table {result['table_number']} on floor {result['floor_id']}")
        await self.notifier.notify([change])
        return result

    async def update_table(
        self, table_id: int, data: TableUpdate, actor_id: Optional[int] = None
    ) -> Dict[str, Any]:
        fields = data.model_dump(exclude_unset=True)
        position = fields.pop("position", None)

        with transaction(self.db):
            table = lock_table(self.db, table_id)

            if "capacity" in fields and fields["capacity"] != table.capacity:
                if table.status == TableStatus.MERGED:
                    raise ConflictError(
                        f"Table {table.table_number} is merged; unmerge it before changing capacity",
                        error_code="INVALID_STATE",
                    )
                if get_active_merges(self.db, table.id):
                    raise ConflictError(
                        f"Table {table.table_number} has tables merged into it; "
                        "unmerge them before changing capacity",
                        error_code="INVALID_STATE",
                    )

            new_number = fields.get("table_number")
            if new_number is not None:
                new_number = new_number.strip()
                fields["table_number"] = new_number
                if new_number != table.table_number:
                    self._ensure_number_available(table.outlet_id, new_number, exclude_id=table.id)

            if fields.get("section_id") is not None:
                self._validate_section(fields["section_id"], table.floor)

            capacity = fields.get("capacity", table.capacity)
            min_capacity = fields.get("min_capacity", table.min_capacity)
            if capacity is None or min_capacity is None:
                raise ValidationError("Capacity values cannot be cleared")
            if min_capacity > capacity:
                raise ValidationError("Minimum capacity cannot exceed capacity")

            for key, value in fields.items():
                setattr(table, key, value)

            if position is not None:
                if table.layout:
                    for key, value in position.items():
                        setattr(table.layout, key, value)
                else:
                    table.layout = TableLayout(**position)

            changed = sorted(fields.keys()) + (["position"] if position is not None else [])
            self.history.record(
                table.id, TableEvent.TABLE_UPDATED, {"fields": changed}, actor_id
            )
            self.db.flush()
            result = table_to_dict(table)
            change = TableChange.of(table, TableEvent.TABLE_UPDATED, actor_id, fields=changed)

        await self.notifier.notify([change])
        return result

    async def delete_table(self, table_id: int, actor_id: Optional[int] = None) -> None:
        """Soft delete. Referenced rows are never purged."""
        with transaction(self.db):
            table = lock_table(self.db, table_id)

            if get_active_session(self.db, table.id):
                raise ConflictError(
                    f"Table {table.table_number} has an active session; end it before deleting",
                    error_code="INVALID_STATE",
                )
            if table.status == TableStatus.MERGED or get_active_merges(self.db, table.id):
                raise ConflictError(
                    f"Table {table.table_number} is part of an active merge; unmerge it before deleting",
                    error_code="INVALID_STATE",
                )

            table.is_active = False
            self.history.record(table.id, TableEvent.TABLE_DELETED, {}, actor_id)
            change = TableChange.of(table, TableEvent.TABLE_DELETED, actor_id)

        logger.info(f"Deactivated table {table_id}")
        await self.notifier.notify([change])

    def get_table(self, table_id: int) -> Dict[str, Any]:
        return table_to_dict(get_table_or_404(self.db, table_id))

    async def list_tables(
        self, outlet_id: int, filters: Optional[TableFilters] = None
    ) -> List[Dict[str, Any]]:
        """
        Tables of an outlet ordered by display order then number.

        Only the unfiltered list is cached; it is what floor-plan clients poll.
        """
        filters = filters or TableFilters()
        cacheable = filters.is_empty() and self.cache is not None
        cache_key = outlet_cache_key(outlet_id)

        if cacheable:
            cached = await self.cache.get(cache_key)
            if cached is not None:
                return cached

        query = self.db.query(Table).filter(Table.outlet_id == outlet_id)

        if filters.floor_id:
            query = query.filter(Table.floor_id == filters.floor_id)
        elif filters.floor_ids:
            query = query.filter(Table.floor_id.in_(filters.floor_ids))

        if filters.section_id:
            query = query.filter(Table.section_id == filters.section_id)
        if filters.status:
            query = query.filter(Table.status == filters.status)

        is_active = True if filters.is_active is None else filters.is_active
        query = query.filter(Table.is_active.is_(is_active))

        tables = query.order_by(Table.display_order, Table.table_number).all()
        result = [table_to_dict(t) for t in tables]

        if cacheable:
            await self.cache.set(cache_key, result, ttl=settings.table_cache_ttl_seconds)
        return result

    async def get_tables_by_floor(self, floor_id: int) -> Dict[str, Any]:
        """
        Live floor view: shift status, sections and every active table with its
        session, order summary and merge relations.
        """
        floor = self.db.get(Floor, floor_id)
        if not floor:
            raise NotFoundError(f"Floor {floor_id} not found")

        cache_key = floor_cache_key(floor_id)
        view = await self.cache.get(cache_key) if self.cache is not None else None
        if view is None:
            view = await self._build_floor_view(floor)
            if self.cache is not None:
                await self.cache.set(cache_key, view, ttl=settings.table_cache_ttl_seconds)

        # Shifts are opened by cashiering, which never touches this cache
        return {**view, "shift": self.shift_gate.shift_status(floor.outlet, floor.id)}

    async def _build_floor_view(self, floor: Floor) -> Dict[str, Any]:
        floor_id = floor.id
        sections = (
            self.db.query(Section)
            .join(FloorSection, FloorSection.section_id == Section.id)
            .filter(
                FloorSection.floor_id == floor_id,
                FloorSection.is_active.is_(True),
                Section.is_active.is_(True),
            )
            .order_by(Section.display_order, Section.name)
            .all()
        )

        tables = (
            self.db.query(Table)
            .filter(Table.floor_id == floor_id, Table.is_active.is_(True))
            .order_by(Table.display_order, Table.table_number)
            .all()
        )
        table_ids = [t.id for t in tables]
        numbers = {t.id: t.table_number for t in tables}

        sessions = {}
        merges_by_primary = defaultdict(list)
        merge_by_secondary = {}
        if table_ids:
            for s in (
                self.db.query(TableSession)
                .filter(
                    TableSession.table_id.in_(table_ids),
                    TableSession.status == SessionStatus.ACTIVE,
                )
                .all()
            ):
                sessions[s.table_id] = s

            for m in (
                self.db.query(TableMerge)
                .filter(
                    TableMerge.unmerged_at.is_(None),
                    (TableMerge.primary_table_id.in_(table_ids))
                    | (TableMerge.merged_table_id.in_(table_ids)),
                )
                .all()
            ):
                merges_by_primary[m.primary_table_id].append(m)
                merge_by_secondary[m.merged_table_id] = m

        entries = []
        for table in tables:
            entry = table_to_dict(table)
            entry["session"] = None
            entry["order"] = None

            session = sessions.get(table.id)
            if session:
                entry["session"] = session_to_dict(session)
                if session.order_id and self.order_lookup:
                    order = await self.order_lookup.get_order(session.order_id)
                    if order:
                        entry["order"] = order.to_summary()

            merged = merges_by_primary.get(table.id, [])
            entry["is_merged_primary"] = bool(merged)
            entry["merged_tables"] = [
                {
                    "merge_id": m.id,
                    "table_id": m.merged_table_id,
                    "table_number": m.merged_table.table_number,
                    "table_name": m.merged_table.name,
                    "capacity": m.merged_table.capacity,
                }
                for m in merged
            ]

            entry["merged_into"] = None
            if table.status == TableStatus.MERGED and table.id in merge_by_secondary:
                m = merge_by_secondary[table.id]
                primary = m.primary_table
                entry["merged_into"] = {
                    "table_id": primary.id,
                    "table_number": numbers.get(primary.id, primary.table_number),
                    "table_name": primary.name,
                }
            entries.append(entry)

        by_section = defaultdict(list)
        for entry in entries:
            by_section[entry["section_id"]].append(entry["id"])
        section_groups = [
            {"section_id": s.id, "section_name": s.name, "table_ids": by_section.get(s.id, [])}
            for s in sections
        ]
        known = {s.id for s in sections}
        unassigned = [
            tid for sid, ids in by_section.items() if sid not in known for tid in ids
        ]
        if unassigned:
            section_groups.append(
                {"section_id": None, "section_name": None, "table_ids": unassigned}
            )

        return {
            "floor": {
                "id": floor.id,
                "name": floor.name,
                "outlet_id": floor.outlet_id,
                "floor_number": floor.floor_number,
            },
            "sections": [
                {
                    "id": s.id,
                    "name": s.name,
                    "section_type": s.section_type.value if s.section_type else None,
                    "display_order": s.display_order,
                }
                for s in sections
            ],
            "tables": entries,
            "tables_by_section": section_groups,
        }

    async def get_realtime_status(
        self, outlet_id: int, floor_id: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """
        Flat live snapshot of every active table in an outlet, optionally one
        floor only. Never cached; host stands poll it.
        """
        query = (
            self.db.query(Table)
            .join(Floor, Floor.id == Table.floor_id)
            .filter(Table.outlet_id == outlet_id, Table.is_active.is_(True))
        )
        if floor_id is not None:
            query = query.filter(Table.floor_id == floor_id)
        tables = query.order_by(
            Floor.display_order, Table.display_order, Table.table_number
        ).all()

        sessions = {}
        if tables:
            sessions = {
                s.table_id: s
                for s in self.db.query(TableSession).filter(
                    TableSession.table_id.in_([t.id for t in tables]),
                    TableSession.status == SessionStatus.ACTIVE,
                )
            }

        rows = []
        for table in tables:
            session = sessions.get(table.id)
            row = {
                "id": table.id,
                "table_number": table.table_number,
                "status": table.status.value,
                "capacity": table.capacity,
                "floor_id": table.floor_id,
                "floor_name": table.floor.name,
                "section_name": table.section.name if table.section else None,
                "guest_count": None,
                "started_at": None,
                "duration_minutes": None,
                "captain_id": None,
                "order_number": None,
                "total_amount": None,
                "active_kots": 0,
            }
            if session:
                started = session_to_dict(session)
                row.update(
                    guest_count=session.guest_count,
                    started_at=started["started_at"],
                    duration_minutes=started["duration_minutes"],
                    captain_id=session.started_by,
                )
                if session.order_id and self.order_lookup:
                    order = await self.order_lookup.get_order(session.order_id)
                    if order:
                        row.update(
                            order_number=order.order_number,
                            total_amount=order.total_amount,
                            active_kots=order.pending_ticket_count,
                        )
            rows.append(row)
        return rows

    @staticmethod
    def get_statuses() -> List[Dict[str, str]]:
        return [{"value": s.value, "label": _label(s.value)} for s in TableStatus]

    @staticmethod
    def get_shapes() -> List[Dict[str, str]]:
        return [{"value": s.value, "label": _label(s.value)} for s in TableShape]

    def _ensure_number_available(
        self, outlet_id: int, table_number: str, exclude_id: Optional[int] = None
    ) -> None:
        query = self.db.query(Table.id).filter(
            Table.outlet_id == outlet_id,
            Table.table_number == table_number,
            Table.is_active.is_(True),
        )
        if exclude_id is not None:
            query = query.filter(Table.id != exclude_id)
        if query.first():
            raise ConflictError(
                f"Table number {table_number} already exists in this outlet",
                error_code="DUPLICATE_TABLE_NUMBER",
            )

    def _validate_section(self, section_id: int, floor: Floor) -> Section:
        section = self.db.get(Section, section_id)
        if not section or not section.is_active:
            raise NotFoundError(f"Section {section_id} not found")

        link = (
            self.db.query(FloorSection)
            .filter(
                FloorSection.floor_id == floor.id,
                FloorSection.section_id == section_id,
                FloorSection.is_active.is_(True),
            )
            .first()
        )
        if not link:
            raise ValidationError(
                f"Section {section.name} is not available on floor {floor.name}"
            )
        return section
