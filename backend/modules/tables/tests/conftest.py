# backend/modules/tables/tests/conftest.py

"""
Shared fixtures for the table engine tests.

Every test gets a fresh in-memory SQLite database. Outlet, floors, sections
and the ground floor shift are opt-in fixtures. Collaborators are recording
fakes so tests can assert on broadcasts and cache drops.
"""

from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional, Set

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from core.cache import CacheService
from core.database import Base
from core.time_utils import local_today, utc_now
from modules.core.models import (
    DaySession,
    Floor,
    FloorSection,
    Outlet,
    Section,
    SectionType,
    ShiftStatus,
)
from modules.tables.interfaces import (
    BillingLookupInterface,
    BroadcasterInterface,
    InvoiceSummary,
    OrderLookupInterface,
    OrderSummary,
    ShiftInfo,
    ShiftLookupInterface,
)
from modules.tables.models.table_models import Table, TableStatus
from modules.tables.services.collaborators import RoleSetPermissionChecker
from modules.tables.services.table_service import TableService

MANAGER_ID = 100
WAITER_ID = 200
OTHER_WAITER_ID = 201

ROLES = {MANAGER_ID: "Manager", WAITER_ID: "waiter", OTHER_WAITER_ID: "waiter"}


class RecordingBroadcaster(BroadcasterInterface):
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.published: List[Dict[str, Any]] = []

    async def publish(
        self, outlet_id: int, floor_id: int, event: str, payload: Dict[str, Any]
    ) -> None:
        if self.fail:
            raise ConnectionError("broadcast channel down")
        self.published.append(
            {"outlet_id": outlet_id, "floor_id": floor_id, "event": event, "payload": payload}
        )

    def events_for(self, table_id: int) -> List[str]:
        return [
            p["payload"]["event"]
            for p in self.published
            if p["payload"]["table_id"] == table_id
        ]


class RecordingCache(CacheService):
    def __init__(self, fail_deletes: bool = False):
        super().__init__()
        self.fail_deletes = fail_deletes
        self.deleted: List[str] = []

    async def delete(self, key: str) -> None:
        if self.fail_deletes:
            raise ConnectionError("cache unavailable")
        self.deleted.append(key)
        await super().delete(key)


class FakeOrderLookup(OrderLookupInterface):
    def __init__(self):
        self.orders: Dict[int, OrderSummary] = {}

    def add(self, order: OrderSummary) -> OrderSummary:
        self.orders[order.id] = order
        return order

    async def get_order(self, order_id: int) -> Optional[OrderSummary]:
        return self.orders.get(order_id)


class FakeBillingLookup(BillingLookupInterface):
    def __init__(self):
        self.invoices: Dict[int, InvoiceSummary] = {}

    async def get_invoice(self, order_id: int) -> Optional[InvoiceSummary]:
        return self.invoices.get(order_id)


class StaticShiftLookup(ShiftLookupInterface):
    """Open shifts keyed by floor id; records every date it was asked about"""

    def __init__(self, open_floors: Optional[Set[int]] = None):
        self.open_floors = set(open_floors or ())
        self.queried_dates: List[date] = []

    def get_open_shift(self, outlet_id, floor_id, local_date):
        self.queried_dates.append(local_date)
        if floor_id not in self.open_floors:
            return None
        return ShiftInfo(id=1, outlet_id=outlet_id, floor_id=floor_id, session_date=local_date)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def db_session(engine):
    Session = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    session = Session()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def outlet(db_session):
    outlet = Outlet(name="Spice Route Indiranagar", code="SRI", timezone="Asia/Kolkata")
    db_session.add(outlet)
    db_session.commit()
    return outlet


@pytest.fixture
def floor(db_session, outlet):
    floor = Floor(outlet_id=outlet.id, name="Ground Floor", floor_number=0)
    db_session.add(floor)
    db_session.commit()
    return floor


@pytest.fixture
def other_floor(db_session, outlet):
    floor = Floor(outlet_id=outlet.id, name="Rooftop", floor_number=1, display_order=1)
    db_session.add(floor)
    db_session.commit()
    return floor


@pytest.fixture
def section(db_session, outlet, floor):
    section = Section(outlet_id=outlet.id, name="AC Hall", section_type=SectionType.AC)
    db_session.add(section)
    db_session.flush()
    db_session.add(FloorSection(floor_id=floor.id, section_id=section.id))
    db_session.commit()
    return section


@pytest.fixture
def open_shift(db_session, outlet, floor):
    shift = DaySession(
        outlet_id=outlet.id,
        floor_id=floor.id,
        session_date=local_today(outlet.timezone),
        status=ShiftStatus.OPEN,
        cashier_id=7,
        opening_cash=Decimal("1000.00"),
        opened_at=utc_now(),
    )
    db_session.add(shift)
    db_session.commit()
    return shift


@pytest.fixture
def broadcaster():
    return RecordingBroadcaster()


@pytest.fixture
def cache():
    return RecordingCache()


@pytest.fixture
def failing_broadcaster():
    return RecordingBroadcaster(fail=True)


@pytest.fixture
def failing_cache():
    return RecordingCache(fail_deletes=True)


@pytest.fixture
def order_lookup():
    return FakeOrderLookup()


@pytest.fixture
def billing_lookup():
    return FakeBillingLookup()


@pytest.fixture
def static_shifts():
    return StaticShiftLookup()


@pytest.fixture
def permissions():
    return RoleSetPermissionChecker(ROLES.get)


@pytest.fixture
def service(db_session, broadcaster, cache, order_lookup, billing_lookup, permissions):
    return TableService(
        db_session,
        broadcaster=broadcaster,
        cache=cache,
        order_lookup=order_lookup,
        billing_lookup=billing_lookup,
        permissions=permissions,
    )


@pytest.fixture
def make_table(db_session, outlet, floor):
    """Insert a table row directly, bypassing the registry service"""

    def _make(table_number: str, capacity: int = 4, on_floor=None, **kwargs) -> Table:
        kwargs.setdefault("status", TableStatus.AVAILABLE)
        table = Table(
            outlet_id=outlet.id,
            floor_id=(on_floor or floor).id,
            table_number=table_number,
            capacity=capacity,
            min_capacity=1,
            **kwargs,
        )
        db_session.add(table)
        db_session.commit()
        return table

    return _make
