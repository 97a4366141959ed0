# backend/modules/tables/interfaces/__init__.py

from .collaborator_interfaces import (
    ShiftLookupInterface,
    OrderLookupInterface,
    BillingLookupInterface,
    PermissionCheckerInterface,
    BroadcasterInterface,
    CacheInterface,
    ShiftInfo,
    OrderItemSummary,
    KitchenTicketSummary,
    OrderSummary,
    InvoiceSummary,
)

__all__ = [
    "ShiftLookupInterface",
    "OrderLookupInterface",
    "BillingLookupInterface",
    "PermissionCheckerInterface",
    "BroadcasterInterface",
    "CacheInterface",
    "ShiftInfo",
    "OrderItemSummary",
    "KitchenTicketSummary",
    "OrderSummary",
    "InvoiceSummary",
]
