"""
Tests for the full-details projection and its status summary.
"""

from decimal import Decimal

import pytest

from core.exceptions import NotFoundError
from modules.tables.interfaces import (
    InvoiceSummary,
    KitchenTicketSummary,
    OrderItemSummary,
    OrderSummary,
)
from modules.tables.models.table_models import TableStatus
from modules.tables.schemas.table_schemas import TableSessionCreate
from modules.tables.services.table_projection_service import build_status_summary

WAITER_ID = 200


def _order(order_id=900):
    return OrderSummary(
        id=order_id,
        order_number=f"ORD-{order_id}",
        status="in_progress",
        subtotal=Decimal("800.00"),
        total_amount=Decimal("944.00"),
        items=[
            OrderItemSummary(id=1, name="Butter Naan", quantity=4, status="served"),
            OrderItemSummary(id=2, name="Kadai Paneer", status="preparing"),
            OrderItemSummary(id=3, name="Jeera Rice", status="cancelled"),
        ],
        kitchen_tickets=[
            KitchenTicketSummary(id=11, ticket_number="KOT-11", status="ready", item_count=1),
            KitchenTicketSummary(id=12, ticket_number="KOT-12", status="preparing", item_count=1),
        ],
    )


class TestStatusSummary:
    def test_available(self):
        summary = build_status_summary({"status": "available"})
        assert summary == {"message": "Table is available for seating", "can_seat": True}

    def test_blocked(self):
        summary = build_status_summary({"status": "blocked"})
        assert summary["can_seat"] is False

    def test_reserved_uses_guest_name(self):
        summary = build_status_summary(
            {"status": "reserved", "session": {"guest_name": "Mehta", "started_at": "x"}}
        )
        assert summary["message"] == "Reserved for Mehta"

    def test_occupied_counts_cancelled_items(self):
        details = {
            "status": "occupied",
            "session": {"guest_count": 2, "duration_minutes": 15},
            "order": None,
            "items": [{"status": "pending"}, {"status": "cancelled"}],
        }
        summary = build_status_summary(details)
        assert summary["message"] == "Occupied - 1 active items, 1 cancelled"
        assert summary["cancelled_item_count"] == 1

    def test_running_reports_served_ratio(self):
        details = {
            "status": "running",
            "session": None,
            "items": [{"status": "served"}, {"status": "served"}, {"status": "pending"}],
            "kitchen_tickets": [{"status": "ready"}, {"status": "pending"}],
        }
        summary = build_status_summary(details)
        assert summary["message"] == "Running - 2/3 items served"
        assert summary["pending_tickets"] == 1
        assert summary["ready_tickets"] == 1

    def test_merged_names_primary(self):
        summary = build_status_summary(
            {"status": "merged", "merged_into": {"table_number": "T1"}}
        )
        assert summary["message"] == "Merged into table T1"


class TestFullDetails:
    @pytest.mark.asyncio
    async def test_running_table_with_order(
        self, service, order_lookup, section, make_table, open_shift
    ):
        table = make_table("T1", section_id=section.id)
        order_lookup.add(_order())
        await service.state.start_session(table.id, TableSessionCreate(guest_count=4), WAITER_ID)
        await service.state.attach_order(table.id, 900, WAITER_ID)
        await service.state.update_status(table.id, "running", WAITER_ID)

        details = await service.projection.get_full_details(table.id)

        assert details["location"]["section_name"] == "AC Hall"
        assert details["location"]["section_type"] == "ac"
        assert details["captain"] == {"actor_id": WAITER_ID}
        assert details["order"]["order_number"] == "ORD-900"
        assert details["order"]["item_count"] == 2
        assert details["order"]["cancelled_item_count"] == 1
        assert len(details["items"]) == 3
        assert details["billing"] is None
        assert details["status_summary"]["message"] == "Running - 1/2 items served"
        assert [e["event_type"] for e in details["timeline"]][0] == "status_change"

    @pytest.mark.asyncio
    async def test_billing_table_includes_invoice(
        self, service, order_lookup, billing_lookup, make_table, open_shift
    ):
        table = make_table("T1")
        order_lookup.add(_order())
        billing_lookup.invoices[900] = InvoiceSummary(
            id=3, invoice_number="INV-3", grand_total=Decimal("944.00")
        )
        await service.state.start_session(table.id, TableSessionCreate(), WAITER_ID)
        await service.state.attach_order(table.id, 900, WAITER_ID)
        await service.state.update_status(table.id, "billing", WAITER_ID)

        details = await service.projection.get_full_details(table.id)

        assert details["billing"]["invoice_number"] == "INV-3"
        assert details["status_summary"] == {
            "message": "Bill generated, awaiting payment",
            "order_number": "ORD-900",
            "invoice_number": "INV-3",
            "grand_total": Decimal("944.00"),
        }

    @pytest.mark.asyncio
    async def test_missing_order_degrades_to_reference(self, service, make_table, open_shift):
        table = make_table("T1")
        await service.state.start_session(table.id, TableSessionCreate(), WAITER_ID)
        await service.state.attach_order(table.id, 404, WAITER_ID)

        details = await service.projection.get_full_details(table.id)

        assert details["order"] == {"order_id": 404}
        assert details["items"] == []

    @pytest.mark.asyncio
    async def test_merged_secondary_points_to_primary(self, service, make_table):
        t1 = make_table("T1")
        t2 = make_table("T2")
        await service.merges.merge_tables(t1.id, [t2.id], WAITER_ID)

        primary = await service.projection.get_full_details(t1.id)
        secondary = await service.projection.get_full_details(t2.id)

        assert [m["merged_table_id"] for m in primary["merged_tables"]] == [t2.id]
        assert secondary["status"] == TableStatus.MERGED.value
        assert secondary["merged_into"]["table_number"] == "T1"
        assert secondary["status_summary"]["message"] == "Merged into table T1"

    @pytest.mark.asyncio
    async def test_missing_table(self, service):
        with pytest.raises(NotFoundError):
            await service.projection.get_full_details(31337)

    @pytest.mark.asyncio
    async def test_blocked_table_keeps_its_session_visible(
        self, service, order_lookup, make_table, open_shift
    ):
        table = make_table("T1")
        order_lookup.add(_order())
        await service.state.start_session(table.id, TableSessionCreate(guest_count=3), WAITER_ID)
        await service.state.attach_order(table.id, 900, WAITER_ID)
        await service.state.update_status(table.id, "blocked", WAITER_ID)

        details = await service.projection.get_full_details(table.id)

        assert details["status"] == "blocked"
        assert details["session"]["guest_count"] == 3
        assert details["captain"] == {"actor_id": WAITER_ID}
        assert details["order"]["order_number"] == "ORD-900"
        assert details["status_summary"]["can_seat"] is False


class TestRunningKots:
    @pytest.mark.asyncio
    async def test_only_open_tickets_of_active_order(
        self, service, order_lookup, make_table, open_shift
    ):
        table = make_table("T1")
        order = _order()
        order.kitchen_tickets.extend(
            [
                KitchenTicketSummary(id=13, ticket_number="KOT-13", status="accepted"),
                KitchenTicketSummary(id=14, ticket_number="KOT-14", status="served"),
            ]
        )
        order_lookup.add(order)
        await service.state.start_session(table.id, TableSessionCreate(), WAITER_ID)
        await service.state.attach_order(table.id, 900, WAITER_ID)

        kots = await service.projection.get_running_kots(table.id)

        assert [k["ticket_number"] for k in kots] == ["KOT-12", "KOT-13"]
        assert kots[0]["order_number"] == "ORD-900"

    @pytest.mark.asyncio
    async def test_no_session_or_no_order(self, service, make_table, open_shift):
        idle = make_table("T1")
        seated = make_table("T2")
        await service.state.start_session(seated.id, TableSessionCreate(), WAITER_ID)

        assert await service.projection.get_running_kots(idle.id) == []
        assert await service.projection.get_running_kots(seated.id) == []

    @pytest.mark.asyncio
    async def test_missing_table(self, service):
        with pytest.raises(NotFoundError):
            await service.projection.get_running_kots(31337)
