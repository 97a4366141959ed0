# backend/modules/tables/services/table_report_service.py

from collections import defaultdict
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
from sqlalchemy.orm import Session
import logging

from core.config import settings
from core.exceptions import NotFoundError, ValidationError
from core.time_utils import ensure_utc, minutes_between
from modules.core.models import Floor
from ..interfaces import OrderLookupInterface, OrderSummary
from ..models.table_models import Table, TableSession, SessionStatus, TableStatus
from .table_queries import get_table_or_404, session_to_dict

logger = logging.getLogger(__name__)


class TableReportService:
    """Session history and usage reports for tables and floors"""

    def __init__(self, db: Session, order_lookup: Optional[OrderLookupInterface] = None):
        self.db = db
        self.order_lookup = order_lookup

    async def get_session_history(
        self,
        table_id: int,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Sessions of a table, newest first, with duration and order totals"""
        get_table_or_404(self.db, table_id)
        query = self._sessions_query([table_id], date_from, date_to)
        sessions = (
            query.order_by(TableSession.started_at.desc(), TableSession.id.desc())
            .limit(limit or settings.session_history_limit)
            .all()
        )

        history = []
        for session in sessions:
            entry = session_to_dict(session)
            order = await self._get_order(session.order_id)
            entry["order_number"] = order.order_number if order else None
            entry["order_total"] = order.total_amount if order else None
            history.append(entry)
        return history

    async def get_table_report(
        self,
        table_id: int,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        table = get_table_or_404(self.db, table_id)
        sessions = self._sessions_query([table_id], date_from, date_to, completed_only=True).all()
        tz = self._zone(table.outlet.timezone if table.outlet else None)

        total_guests = 0
        total_minutes = 0
        total_orders = 0
        total_sales = Decimal("0")
        by_captain = defaultdict(lambda: {"sessions": 0, "guests": 0, "sales": Decimal("0")})
        by_hour = defaultdict(int)

        for session in sessions:
            order = await self._get_order(session.order_id)
            sales = order.total_amount if order else Decimal("0")

            total_guests += session.guest_count
            total_minutes += minutes_between(session.started_at, session.ended_at)
            if session.order_id:
                total_orders += 1
            total_sales += sales

            captain = by_captain[session.started_by]
            captain["sessions"] += 1
            captain["guests"] += session.guest_count
            captain["sales"] += sales

            by_hour[ensure_utc(session.started_at).astimezone(tz).hour] += 1

        count = len(sessions)
        return {
            "table": {
                "id": table.id,
                "table_number": table.table_number,
                "name": table.name,
                "capacity": table.capacity,
            },
            "period": self._period(date_from, date_to),
            "summary": {
                "total_sessions": count,
                "total_guests": total_guests,
                "avg_guests": round(total_guests / count, 2) if count else 0,
                "avg_duration_minutes": round(total_minutes / count, 1) if count else 0,
                "total_orders": total_orders,
                "total_sales": total_sales,
                "unique_captains": len([c for c in by_captain if c is not None]),
            },
            "by_captain": sorted(
                (
                    {"actor_id": actor_id, **stats}
                    for actor_id, stats in by_captain.items()
                ),
                key=lambda c: c["sessions"],
                reverse=True,
            ),
            "hourly_distribution": [
                {"hour": hour, "sessions": by_hour[hour]} for hour in sorted(by_hour)
            ],
        }

    async def get_floor_report(
        self,
        floor_id: int,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        floor = self.db.get(Floor, floor_id)
        if not floor:
            raise NotFoundError(f"Floor {floor_id} not found")

        tables = (
            self.db.query(Table)
            .filter(Table.floor_id == floor_id, Table.is_active.is_(True))
            .order_by(Table.display_order, Table.table_number)
            .all()
        )
        sessions = []
        if tables:
            sessions = self._sessions_query(
                [t.id for t in tables], date_from, date_to, completed_only=True
            ).all()

        per_table = {
            t.id: {
                "table_id": t.id,
                "table_number": t.table_number,
                "capacity": t.capacity,
                "sessions": 0,
                "guests": 0,
                "orders": 0,
                "sales": Decimal("0"),
                "_minutes": 0,
            }
            for t in tables
        }
        for session in sessions:
            row = per_table[session.table_id]
            order = await self._get_order(session.order_id)
            row["sessions"] += 1
            row["guests"] += session.guest_count
            row["_minutes"] += minutes_between(session.started_at, session.ended_at)
            if session.order_id:
                row["orders"] += 1
            if order:
                row["sales"] += order.total_amount

        rows = []
        for row in per_table.values():
            minutes = row.pop("_minutes")
            row["avg_duration_minutes"] = (
                round(minutes / row["sessions"], 1) if row["sessions"] else 0
            )
            rows.append(row)
        rows.sort(key=lambda r: r["sales"], reverse=True)

        # A merge primary's capacity already includes its secondaries
        physical_capacity = sum(
            t.capacity for t in tables if t.status != TableStatus.MERGED
        )

        return {
            "floor": {"id": floor.id, "name": floor.name, "outlet_id": floor.outlet_id},
            "period": self._period(date_from, date_to),
            "tables": rows,
            "summary": {
                "total_tables": len(tables),
                "total_capacity": physical_capacity,
                "total_sessions": sum(r["sessions"] for r in rows),
                "total_guests": sum(r["guests"] for r in rows),
                "total_sales": sum((r["sales"] for r in rows), Decimal("0")),
            },
        }

    def _sessions_query(
        self,
        table_ids: List[int],
        date_from: Optional[datetime],
        date_to: Optional[datetime],
        completed_only: bool = False,
    ):
        date_from = ensure_utc(date_from)
        date_to = ensure_utc(date_to)
        if date_from and date_to and date_from > date_to:
            raise ValidationError("Report start must not be after its end")

        query = self.db.query(TableSession).filter(TableSession.table_id.in_(table_ids))
        if completed_only:
            query = query.filter(TableSession.status == SessionStatus.COMPLETED)
        if date_from:
            query = query.filter(TableSession.started_at >= date_from)
        if date_to:
            query = query.filter(TableSession.started_at <= date_to)
        return query

    async def _get_order(self, order_id: Optional[int]) -> Optional[OrderSummary]:
        if not order_id or not self.order_lookup:
            return None
        return await self.order_lookup.get_order(order_id)

    @staticmethod
    def _period(date_from: Optional[datetime], date_to: Optional[datetime]) -> Dict[str, Any]:
        return {
            "from": ensure_utc(date_from).isoformat() if date_from else None,
            "to": ensure_utc(date_to).isoformat() if date_to else None,
        }

    @staticmethod
    def _zone(name: Optional[str]) -> ZoneInfo:
        try:
            return ZoneInfo(name or settings.default_timezone)
        except (ZoneInfoNotFoundError, ValueError):
            return ZoneInfo(settings.default_timezone)
