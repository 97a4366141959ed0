# backend/modules/tables/interfaces/collaborator_interfaces.py

"""
Boundaries to the systems the table engine consults but does not own.

Ordering, billing, cashiering (shifts) and staff authorization live in other
services. The engine talks to them only through these interfaces, which are
injected into the table services at construction so tests can swap in
recording fakes.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field


class ShiftInfo(BaseModel):
    """An open day session (shift) on a floor"""

    id: int
    outlet_id: int
    floor_id: Optional[int] = None
    session_date: date
    cashier_id: Optional[int] = None
    opening_cash: Optional[Decimal] = None
    opened_at: Optional[datetime] = None


class OrderItemSummary(BaseModel):
    id: int
    name: str
    quantity: int = 1
    unit_price: Decimal = Decimal("0")
    # pending, preparing, ready, served, cancelled
    status: str = "pending"


class KitchenTicketSummary(BaseModel):
    id: int
    ticket_number: Optional[str] = None
    station: Optional[str] = None
    # pending, accepted, preparing, ready, served, cancelled
    status: str = "pending"
    item_count: int = 0


class OrderSummary(BaseModel):
    """Read-only view of an order owned by the ordering system"""

    id: int
    order_number: str
    status: str
    subtotal: Decimal = Decimal("0")
    total_amount: Decimal = Decimal("0")
    items: List[OrderItemSummary] = Field(default_factory=list)
    kitchen_tickets: List[KitchenTicketSummary] = Field(default_factory=list)

    @property
    def active_items(self) -> List[OrderItemSummary]:
        return [i for i in self.items if i.status != "cancelled"]

    @property
    def cancelled_item_count(self) -> int:
        return len(self.items) - len(self.active_items)

    @property
    def served_item_count(self) -> int:
        return sum(1 for i in self.active_items if i.status == "served")

    @property
    def pending_ticket_count(self) -> int:
        return sum(
            1 for k in self.kitchen_tickets if k.status in ("pending", "preparing")
        )

    @property
    def ready_ticket_count(self) -> int:
        return sum(1 for k in self.kitchen_tickets if k.status == "ready")

    def to_summary(self) -> Dict[str, Any]:
        """Compact form used by floor views and session details"""
        return {
            "order_id": self.id,
            "order_number": self.order_number,
            "status": self.status,
            "subtotal": self.subtotal,
            "total_amount": self.total_amount,
            "item_count": len(self.active_items),
            "pending_kitchen_tickets": self.pending_ticket_count,
        }


class InvoiceSummary(BaseModel):
    """Read-only view of an invoice owned by the billing system"""

    id: int
    invoice_number: str
    grand_total: Decimal
    status: str = "pending"
    paid_amount: Decimal = Decimal("0")
    payment_mode: Optional[str] = None


class ShiftLookupInterface(ABC):
    """Floor shift gate, owned by cashiering"""

    @abstractmethod
    def get_open_shift(
        self, outlet_id: int, floor_id: int, local_date: date
    ) -> Optional[ShiftInfo]:
        """Return the open shift for the floor on the given business date"""
        pass

    def is_shift_open(self, outlet_id: int, floor_id: int, local_date: date) -> bool:
        return self.get_open_shift(outlet_id, floor_id, local_date) is not None


class OrderLookupInterface(ABC):
    @abstractmethod
    async def get_order(self, order_id: int) -> Optional[OrderSummary]:
        pass


class BillingLookupInterface(ABC):
    @abstractmethod
    async def get_invoice(self, order_id: int) -> Optional[InvoiceSummary]:
        pass


class PermissionCheckerInterface(ABC):
    @abstractmethod
    def is_elevated(self, actor_id: int) -> bool:
        """True if the actor may act on other staff's sessions"""
        pass


class BroadcasterInterface(ABC):
    """Floor-scoped fan-out of table events"""

    @abstractmethod
    async def publish(
        self, outlet_id: int, floor_id: int, event: str, payload: Dict[str, Any]
    ) -> None:
        pass


class CacheInterface(ABC):
    """Async key/value cache for table lists and floor views"""

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        pass

    @abstractmethod
    async def set(self, key: str, value: Any, ttl: int = 300) -> None:
        pass

    @abstractmethod
    async def delete(self, key: str) -> None:
        pass
