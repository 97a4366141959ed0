# backend/modules/tables/services/table_service.py

from typing import Optional
from sqlalchemy.orm import Session

from core.cache import cache_service
from ..interfaces import (
    BillingLookupInterface,
    BroadcasterInterface,
    CacheInterface,
    OrderLookupInterface,
    PermissionCheckerInterface,
    ShiftLookupInterface,
)
from .collaborators import (
    DaySessionShiftLookup,
    NullBillingLookup,
    NullOrderLookup,
    RoleSetPermissionChecker,
)
from .shift_gate import ShiftGate
from .table_event_notifier import TableEventNotifier
from .table_history_service import TableHistoryService
from .table_merge_service import TableMergeService
from .table_projection_service import TableProjectionService
from .table_registry_service import TableRegistryService
from .table_report_service import TableReportService
from .table_state_service import TableStateService


class TableService:
    """
    Wires the table services to one database session and one set of
    collaborators. Anything not supplied falls back to a default: the
    ``day_sessions`` shift lookup, the process-wide cache, no order or
    billing data, and nobody elevated.
    """

    def __init__(
        self,
        db: Session,
        broadcaster: Optional[BroadcasterInterface] = None,
        cache: Optional[CacheInterface] = None,
        shift_lookup: Optional[ShiftLookupInterface] = None,
        order_lookup: Optional[OrderLookupInterface] = None,
        billing_lookup: Optional[BillingLookupInterface] = None,
        permissions: Optional[PermissionCheckerInterface] = None,
    ):
        self.db = db
        cache = cache if cache is not None else cache_service
        order_lookup = order_lookup or NullOrderLookup()
        billing_lookup = billing_lookup or NullBillingLookup()
        permissions = permissions or RoleSetPermissionChecker(lambda actor_id: None)

        self.notifier = TableEventNotifier(broadcaster, cache)
        self.history = TableHistoryService(db)
        self.shift_gate = ShiftGate(shift_lookup or DaySessionShiftLookup(db))

        self.registry = TableRegistryService(
            db, self.notifier, self.history, self.shift_gate, cache, order_lookup
        )
        self.state = TableStateService(
            db, self.notifier, self.history, self.shift_gate, permissions, order_lookup
        )
        self.merges = TableMergeService(db, self.notifier, self.history)
        self.projection = TableProjectionService(
            db, self.history, order_lookup, billing_lookup
        )
        self.reports = TableReportService(db, order_lookup)
