# backend/modules/core/__init__.py
"""Core module containing the outlet/floor/section reference models."""

from .models import (
    Outlet, Floor, Section, FloorSection, DaySession, SectionType, ShiftStatus
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
