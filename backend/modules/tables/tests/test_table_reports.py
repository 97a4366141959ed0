"""
Tests for session history and the table / floor usage reports.
"""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from core.exceptions import NotFoundError, ValidationError
from modules.tables.interfaces import OrderSummary
from modules.tables.models.table_models import SessionStatus, TableSession, TableStatus

WAITER_ID = 200
OTHER_WAITER_ID = 201


def _utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


@pytest.fixture
def past_sessions(db_session, order_lookup, make_table):
    """
    Three completed sessions on T1 and one on T2, all on 1 March 2026.

    12:30 UTC is 18:00 in Asia/Kolkata, 15:00 UTC is 20:30.
    """
    t1 = make_table("T1", capacity=4)
    t2 = make_table("T2", capacity=2)
    order_lookup.add(OrderSummary(id=1, order_number="ORD-1", status="paid", total_amount=Decimal("1200.00")))
    order_lookup.add(OrderSummary(id=2, order_number="ORD-2", status="paid", total_amount=Decimal("300.00")))
    order_lookup.add(OrderSummary(id=3, order_number="ORD-3", status="paid", total_amount=Decimal("450.50")))

    rows = [
        (t1, 1, 2, WAITER_ID, _utc(2026, 3, 1, 12, 30), _utc(2026, 3, 1, 13, 30)),
        (t1, 2, 4, WAITER_ID, _utc(2026, 3, 1, 15, 0), _utc(2026, 3, 1, 15, 45)),
        (t1, None, 3, OTHER_WAITER_ID, _utc(2026, 3, 1, 15, 10), _utc(2026, 3, 1, 15, 25)),
        (t2, 3, 2, OTHER_WAITER_ID, _utc(2026, 3, 1, 12, 45), _utc(2026, 3, 1, 13, 15)),
    ]
    for table, order_id, guests, captain, started, ended in rows:
        db_session.add(
            TableSession(
                table_id=table.id,
                order_id=order_id,
                guest_count=guests,
                status=SessionStatus.COMPLETED,
                started_by=captain,
                started_at=started,
                ended_by=captain,
                ended_at=ended,
            )
        )
    db_session.commit()
    return t1, t2


class TestSessionHistory:
    @pytest.mark.asyncio
    async def test_newest_first_with_order_totals(self, service, past_sessions):
        t1, _ = past_sessions

        history = await service.reports.get_session_history(t1.id)

        assert [h["started_at"] for h in history] == [
            "2026-03-01T15:10:00+00:00",
            "2026-03-01T15:00:00+00:00",
            "2026-03-01T12:30:00+00:00",
        ]
        assert history[1]["order_number"] == "ORD-2"
        assert history[1]["order_total"] == Decimal("300.00")
        assert history[0]["order_number"] is None
        assert history[2]["duration_minutes"] == 60

    @pytest.mark.asyncio
    async def test_date_window_and_limit(self, service, past_sessions):
        t1, _ = past_sessions

        afternoon = await service.reports.get_session_history(
            t1.id, date_from=_utc(2026, 3, 1, 14, 0)
        )
        latest = await service.reports.get_session_history(t1.id, limit=1)

        assert len(afternoon) == 2
        assert len(latest) == 1

    @pytest.mark.asyncio
    async def test_inverted_window_rejected(self, service, past_sessions):
        t1, _ = past_sessions

        with pytest.raises(ValidationError):
            await service.reports.get_session_history(
                t1.id, date_from=_utc(2026, 3, 2), date_to=_utc(2026, 3, 1)
            )

    @pytest.mark.asyncio
    async def test_missing_table(self, service):
        with pytest.raises(NotFoundError):
            await service.reports.get_session_history(4040)


class TestTableReport:
    @pytest.mark.asyncio
    async def test_summary_captains_and_local_hours(self, service, past_sessions):
        t1, _ = past_sessions

        report = await service.reports.get_table_report(t1.id)
        summary = report["summary"]

        assert summary["total_sessions"] == 3
        assert summary["total_guests"] == 9
        assert summary["avg_guests"] == 3
        assert summary["avg_duration_minutes"] == 40.0
        assert summary["total_orders"] == 2
        assert summary["total_sales"] == Decimal("1500.00")
        assert summary["unique_captains"] == 2

        assert report["by_captain"][0]["actor_id"] == WAITER_ID
        assert report["by_captain"][0]["sessions"] == 2
        assert report["hourly_distribution"] == [
            {"hour": 18, "sessions": 1},
            {"hour": 20, "sessions": 2},
        ]

    @pytest.mark.asyncio
    async def test_active_sessions_are_excluded(self, service, db_session, make_table):
        table = make_table("T9")
        db_session.add(TableSession(table_id=table.id, guest_count=2, status=SessionStatus.ACTIVE))
        db_session.commit()

        report = await service.reports.get_table_report(table.id)

        assert report["summary"]["total_sessions"] == 0
        assert report["summary"]["avg_guests"] == 0


class TestFloorReport:
    @pytest.mark.asyncio
    async def test_rows_sorted_by_sales(self, service, floor, past_sessions):
        t1, t2 = past_sessions

        report = await service.reports.get_floor_report(floor.id)

        assert [r["table_number"] for r in report["tables"]] == ["T1", "T2"]
        assert report["tables"][1]["sales"] == Decimal("450.50")
        assert report["summary"]["total_sessions"] == 4
        assert report["summary"]["total_sales"] == Decimal("1950.50")
        assert report["summary"]["total_capacity"] == 6

    @pytest.mark.asyncio
    async def test_merged_tables_not_double_counted(self, service, floor, make_table):
        t1 = make_table("T1", capacity=4)
        t2 = make_table("T2", capacity=2)
        await service.merges.merge_tables(t1.id, [t2.id], WAITER_ID)

        report = await service.reports.get_floor_report(floor.id)

        statuses = {r["table_number"]: r for r in report["tables"]}
        assert statuses["T1"]["capacity"] == 6
        assert report["summary"]["total_capacity"] == 6

    @pytest.mark.asyncio
    async def test_unknown_floor(self, service):
        with pytest.raises(NotFoundError):
            await service.reports.get_floor_report(999)

    @pytest.mark.asyncio
    async def test_empty_floor(self, service, other_floor):
        report = await service.reports.get_floor_report(other_floor.id)

        assert report["tables"] == []
        assert report["summary"]["total_capacity"] == 0
        assert report["floor"]["name"] == "Rooftop"
