# backend/modules/tables/services/collaborators.py

"""
Default implementations of the collaborator interfaces.

The shift lookup reads the ``day_sessions`` table directly. Order and billing
data belong to services that are not deployed alongside this one, so the
defaults report "no data" and the projections degrade to table and session
fields only.
"""

from datetime import date
from typing import Callable, Iterable, Optional
from sqlalchemy.orm import Session
import logging

from core.config import settings
from modules.core.models import DaySession, ShiftStatus
from ..interfaces import (
    ShiftLookupInterface,
    OrderLookupInterface,
    BillingLookupInterface,
    PermissionCheckerInterface,
    ShiftInfo,
    OrderSummary,
    InvoiceSummary,
)

logger = logging.getLogger(__name__)


class DaySessionShiftLookup(ShiftLookupInterface):
    """Shift gate backed by the cashiering ``day_sessions`` table"""

    def __init__(self, db: Session):
        self.db = db

    def get_open_shift(
        self, outlet_id: int, floor_id: int, local_date: date
    ) -> Optional[ShiftInfo]:
        day_session = (
            self.db.query(DaySession)
            .filter(
                DaySession.outlet_id == outlet_id,
                DaySession.floor_id == floor_id,
                DaySession.session_date == local_date,
                DaySession.status == ShiftStatus.OPEN,
            )
            .first()
        )
        if not day_session:
            return None

        return ShiftInfo(
            id=day_session.id,
            outlet_id=day_session.outlet_id,
            floor_id=day_session.floor_id,
            session_date=day_session.session_date,
            cashier_id=day_session.cashier_id,
            opening_cash=day_session.opening_cash,
            opened_at=day_session.opened_at,
        )


class NullOrderLookup(OrderLookupInterface):
    async def get_order(self, order_id: int) -> Optional[OrderSummary]:
        return None


class NullBillingLookup(BillingLookupInterface):
    async def get_invoice(self, order_id: int) -> Optional[InvoiceSummary]:
        return None


class RoleSetPermissionChecker(PermissionCheckerInterface):
    """
    Grants elevated rights to actors whose role is in a configured set.

    ``role_resolver`` maps an actor id to its role name (or None when the
    actor is unknown). Role names are compared case-insensitively.
    """

    def __init__(
        self,
        role_resolver: Callable[[int], Optional[str]],
        elevated_roles: Optional[Iterable[str]] = None,
    ):
        self.role_resolver = role_resolver
        roles = elevated_roles if elevated_roles is not None else settings.elevated_roles
        self.elevated_roles = {r.lower() for r in roles}

    def is_elevated(self, actor_id: int) -> bool:
        role = self.role_resolver(actor_id)
        if not role:
            return False
        return role.lower() in self.elevated_roles
