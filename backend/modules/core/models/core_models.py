# backend/modules/core/models/core_models.py
"""
Core models for the floor: outlets, floors, sections and the day sessions
(shifts) that gate seating. Tables and sessions hang off these.
"""

from sqlalchemy import (
    Column,
    Integer,
    String,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    DECIMAL,
    Enum as SQLEnum,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from enum import Enum

from core.database import Base
from core.mixins import TimestampMixin


class SectionType(str, Enum):
    """Kind of seating area"""
    DINE_IN = "dine_in"
    TAKEAWAY = "takeaway"
    DELIVERY = "delivery"
    BAR = "bar"
    ROOFTOP = "rooftop"
    PRIVATE = "private"
    OUTDOOR = "outdoor"
    AC = "ac"
    NON_AC = "non_ac"


class ShiftStatus(str, Enum):
    """Day session (shift) status"""
    OPEN = "open"
    CLOSED = "closed"


class Outlet(Base, TimestampMixin):
    """
    A single restaurant outlet. Root entity for floors and tables.
    """
    __tablename__ = "outlets"

    id = Column(Integer, primary_key=True)
    name = Column(String(200), nullable=False)
    code = Column(String(20))

    # IANA name; shift dates are computed in this zone
    timezone = Column(String(50))
    is_active = Column(Boolean, default=True, nullable=False)

    floors = relationship("Floor", back_populates="outlet", cascade="all, delete-orphan")
    sections = relationship("Section", back_populates="outlet", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Outlet(id={self.id}, name='{self.name}')>"


class Floor(Base, TimestampMixin):
    """Physical floor of an outlet"""
    __tablename__ = "floors"

    id = Column(Integer, primary_key=True)
    outlet_id = Column(Integer, ForeignKey("outlets.id"), nullable=False, index=True)

    name = Column(String(50), nullable=False)
    code = Column(String(20))
    floor_number = Column(Integer, default=0)
    display_order = Column(Integer, default=0)
    is_active = Column(Boolean, default=True, nullable=False)

    outlet = relationship("Outlet", back_populates="floors")
    floor_sections = relationship("FloorSection", back_populates="floor")
    tables = relationship("Table", back_populates="floor")

    __table_args__ = (
        UniqueConstraint("outlet_id", "name", name="uix_floor_outlet_name"),
    )

    def __repr__(self):
        return f"<Floor(id={self.id}, name='{self.name}', outlet_id={self.outlet_id})>"


class Section(Base, TimestampMixin):
    """Seating area (AC, bar, outdoor...) that can span floors"""
    __tablename__ = "sections"

    id = Column(Integer, primary_key=True)
    outlet_id = Column(Integer, ForeignKey("outlets.id"), nullable=False, index=True)

    name = Column(String(50), nullable=False)
    section_type = Column(SQLEnum(SectionType), default=SectionType.DINE_IN)
    color_code = Column(String(7))
    display_order = Column(Integer, default=0)
    is_active = Column(Boolean, default=True, nullable=False)

    outlet = relationship("Outlet", back_populates="sections")
    floor_sections = relationship("FloorSection", back_populates="section")

    __table_args__ = (
        UniqueConstraint("outlet_id", "name", name="uix_section_outlet_name"),
    )


class FloorSection(Base):
    """Which sections are laid out on which floors"""
    __tablename__ = "floor_sections"

    id = Column(Integer, primary_key=True)
    floor_id = Column(Integer, ForeignKey("floors.id"), nullable=False)
    section_id = Column(Integer, ForeignKey("sections.id"), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    floor = relationship("Floor", back_populates="floor_sections")
    section = relationship("Section", back_populates="floor_sections")

    __table_args__ = (
        UniqueConstraint("floor_id", "section_id", name="uix_floor_section"),
    )


class DaySession(Base, TimestampMixin):
    """
    Floor shift opened by a cashier for one business date.

    Owned by the cashiering system; the table engine only reads it.
    """
    __tablename__ = "day_sessions"

    id = Column(Integer, primary_key=True)
    outlet_id = Column(Integer, ForeignKey("outlets.id"), nullable=False)
    floor_id = Column(Integer, ForeignKey("floors.id"), nullable=True, index=True)
    session_date = Column(Date, nullable=False)
    status = Column(SQLEnum(ShiftStatus), nullable=False, default=ShiftStatus.OPEN)

    cashier_id = Column(Integer)
    opened_by = Column(Integer)
    opening_cash = Column(DECIMAL(10, 2), default=0)
    opened_at = Column(DateTime(timezone=True))
    closed_at = Column(DateTime(timezone=True))

    __table_args__ = (
        UniqueConstraint(
            "outlet_id", "floor_id", "session_date", name="uix_day_session_floor"
        ),
    )
