# backend/modules/tables/services/shift_gate.py

from datetime import date
from typing import Any, Dict, Optional
import logging

from core.exceptions import PreconditionFailedError
from core.time_utils import local_today
from modules.core.models import Outlet
from ..interfaces import ShiftLookupInterface

logger = logging.getLogger(__name__)

SHIFT_CLOSED_MESSAGE = (
    "Shift not opened for {floor_name}. "
    "Please ask the assigned cashier to open the shift first."
)


class ShiftGate:
    """
    Blocks seating on floors whose cashier has not opened today's shift.

    "Today" is the outlet's wall-clock date, never the UTC date.
    """

    def __init__(self, lookup: ShiftLookupInterface):
        self.lookup = lookup

    def business_date(self, outlet: Optional[Outlet]) -> date:
        return local_today(outlet.timezone if outlet else None)

    def ensure_open(self, table) -> None:
        if not table.floor_id:
            return

        local_date = self.business_date(table.outlet)
        if self.lookup.is_shift_open(table.outlet_id, table.floor_id, local_date):
            return

        floor_name = table.floor.name if table.floor else f"Floor {table.floor_id}"
        logger.info(
            f"Seating refused on table {table.table_number}: "
            f"no open shift for floor {table.floor_id} on {local_date}"
        )
        raise PreconditionFailedError(
            SHIFT_CLOSED_MESSAGE.format(floor_name=floor_name),
            error_code="SHIFT_CLOSED",
        )

    def shift_status(self, outlet: Optional[Outlet], floor_id: int) -> Dict[str, Any]:
        """Open-shift details for the floor view"""
        outlet_id = outlet.id if outlet else None
        shift = self.lookup.get_open_shift(outlet_id, floor_id, self.business_date(outlet))
        if not shift:
            return {
                "is_open": False,
                "shift_id": None,
                "cashier_id": None,
                "opening_cash": None,
            }
        return {
            "is_open": True,
            "shift_id": shift.id,
            "cashier_id": shift.cashier_id,
            "opening_cash": shift.opening_cash,
        }
