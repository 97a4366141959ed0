# backend/modules/core/models/__init__.py
"""Core models module"""

from .core_models import (
    Outlet, Floor, Section, FloorSection, DaySession,
    SectionType, ShiftStatus
)

__all__ = [
    "Outlet",
    "Floor",
    "Section",
    "FloorSection",
    "DaySession",
    "SectionType",
    "ShiftStatus",
]
