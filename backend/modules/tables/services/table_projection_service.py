# backend/modules/tables/services/table_projection_service.py

"""
Read-side assembly of everything known about one table: base fields,
location, session, order lines, kitchen tickets, billing, merges, recent
history and a human readable status summary. Pure composition, no writes.
"""

from typing import Any, Dict, List, Optional
from sqlalchemy.orm import Session
import logging

from core.config import settings
from ..interfaces import BillingLookupInterface, OrderLookupInterface
from ..models.table_models import TableStatus
from .table_history_service import TableHistoryService
from .table_queries import (
    get_active_merge_as_secondary,
    get_active_merges,
    get_active_session,
    get_table_or_404,
    history_to_dict,
    merge_to_dict,
    session_to_dict,
    table_to_dict,
)

logger = logging.getLogger(__name__)

# Kitchen tickets still being worked on for a seated table
RUNNING_TICKET_STATUSES = ("pending", "accepted", "preparing")


def build_status_summary(details: Dict[str, Any]) -> Dict[str, Any]:
    """Human readable summary for a full-details projection"""
    status = details["status"]
    session = details.get("session")
    order = details.get("order")
    items = details.get("items") or []
    tickets = details.get("kitchen_tickets") or []

    if status == TableStatus.AVAILABLE.value:
        return {"message": "Table is available for seating", "can_seat": True}

    if status == TableStatus.RESERVED.value:
        guest = session.get("guest_name") if session else None
        return {
            "message": f"Reserved for {guest or 'guest'}" if session else "Table is reserved",
            "guest_name": guest,
            "reserved_since": session.get("started_at") if session else None,
        }

    if status in (TableStatus.OCCUPIED.value, TableStatus.RUNNING.value):
        active = [i for i in items if i.get("status") != "cancelled"]
        cancelled = len(items) - len(active)
        served = sum(1 for i in active if i.get("status") == "served")
        if status == TableStatus.RUNNING.value:
            message = f"Running - {served}/{len(active)} items served"
        else:
            message = f"Occupied - {len(active)} active items"
            if cancelled:
                message += f", {cancelled} cancelled"
        return {
            "message": message,
            "guest_count": session.get("guest_count") if session else None,
            "duration_minutes": session.get("duration_minutes") if session else None,
            "order_number": order.get("order_number") if order else None,
            "order_status": order.get("status") if order else None,
            "order_total": order.get("total_amount") if order else None,
            "total_items": len(items),
            "active_item_count": len(active),
            "cancelled_item_count": cancelled,
            "served_items": served,
            "pending_tickets": sum(
                1 for k in tickets if k.get("status") in ("pending", "preparing")
            ),
            "ready_tickets": sum(1 for k in tickets if k.get("status") == "ready"),
        }

    if status == TableStatus.BILLING.value:
        billing = details.get("billing") or {}
        return {
            "message": "Bill generated, awaiting payment",
            "order_number": order.get("order_number") if order else None,
            "invoice_number": billing.get("invoice_number"),
            "grand_total": billing.get("grand_total"),
        }

    if status == TableStatus.BLOCKED.value:
        return {"message": "Table is blocked/unavailable", "can_seat": False}

    if status == TableStatus.MERGED.value:
        merged_into = details.get("merged_into") or {}
        return {
            "message": f"Merged into table {merged_into.get('table_number', '?')}",
            "can_seat": False,
        }

    return {"message": f"Status: {status}"}


class TableProjectionService:
    def __init__(
        self,
        db: Session,
        history: TableHistoryService,
        order_lookup: Optional[OrderLookupInterface] = None,
        billing_lookup: Optional[BillingLookupInterface] = None,
    ):
        self.db = db
        self.history = history
        self.order_lookup = order_lookup
        self.billing_lookup = billing_lookup

    async def get_full_details(self, table_id: int) -> Dict[str, Any]:
        table = get_table_or_404(self.db, table_id)
        base = table_to_dict(table)

        details: Dict[str, Any] = {
            "id": base["id"],
            "table_number": base["table_number"],
            "name": base["name"],
            "status": base["status"],
            "capacity": base["capacity"],
            "min_capacity": base["min_capacity"],
            "shape": base["shape"],
            "is_mergeable": base["is_mergeable"],
            "is_splittable": base["is_splittable"],
            "qr_code": base["qr_code"],
            "is_active": base["is_active"],
            "location": {
                "outlet_id": base["outlet_id"],
                "outlet_name": base["outlet_name"],
                "floor_id": base["floor_id"],
                "floor_name": base["floor_name"],
                "section_id": base["section_id"],
                "section_name": base["section_name"],
                "section_type": base["section_type"],
            },
            "position": base["position"],
            "session": None,
            "captain": None,
            "order": None,
            "items": [],
            "kitchen_tickets": [],
            "billing": None,
            "merged_tables": [],
            "merged_into": None,
            "timeline": [],
        }

        session = get_active_session(self.db, table.id)
        if session:
            details["session"] = session_to_dict(session)
            if session.started_by is not None:
                details["captain"] = {"actor_id": session.started_by}
            if session.order_id:
                await self._add_order(details, session.order_id)

        details["merged_tables"] = [
            merge_to_dict(m) for m in get_active_merges(self.db, table.id)
        ]
        if details["status"] == TableStatus.MERGED.value:
            merge = get_active_merge_as_secondary(self.db, table.id)
            if merge:
                primary = merge.primary_table
                details["merged_into"] = {
                    "table_id": primary.id,
                    "table_number": primary.table_number,
                    "table_name": primary.name,
                    "merged_at": merge_to_dict(merge)["merged_at"],
                }

        details["timeline"] = [
            history_to_dict(h)
            for h in self.history.get_history(table.id, settings.projection_history_limit)
        ]
        details["status_summary"] = build_status_summary(details)
        return details

    async def get_running_kots(self, table_id: int) -> List[Dict[str, Any]]:
        """Open kitchen tickets of the order linked to the table's active session"""
        table = get_table_or_404(self.db, table_id)
        session = get_active_session(self.db, table.id)
        if not session or not session.order_id or not self.order_lookup:
            return []

        order = await self.order_lookup.get_order(session.order_id)
        if not order:
            logger.warning(f"Order {session.order_id} linked to table {table.id} was not found")
            return []

        return [
            {**k.model_dump(), "order_id": order.id, "order_number": order.order_number}
            for k in order.kitchen_tickets
            if k.status in RUNNING_TICKET_STATUSES
        ]

    async def _add_order(self, details: Dict[str, Any], order_id: int) -> None:
        if not self.order_lookup:
            details["order"] = {"order_id": order_id}
            return

        order = await self.order_lookup.get_order(order_id)
        if not order:
            logger.warning(f"Order {order_id} linked to table {details['id']} was not found")
            details["order"] = {"order_id": order_id}
            return

        summary = order.to_summary()
        summary["cancelled_item_count"] = order.cancelled_item_count
        details["order"] = summary
        details["items"] = [i.model_dump() for i in order.items]
        details["kitchen_tickets"] = [k.model_dump() for k in order.kitchen_tickets]

        if details["status"] == TableStatus.BILLING.value and self.billing_lookup:
            invoice = await self.billing_lookup.get_invoice(order.id)
            if invoice:
                details["billing"] = invoice.model_dump()
