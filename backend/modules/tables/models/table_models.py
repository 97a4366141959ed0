# backend/modules/tables/models/table_models.py

from sqlalchemy import (
    Column,
    Integer,
    String,
    Boolean,
    DateTime,
    ForeignKey,
    JSON,
    Text,
    Enum as SQLEnum,
    CheckConstraint,
    Index,
    text,
)
from sqlalchemy.orm import relationship
from enum import Enum

from core.database import Base
from core.mixins import TimestampMixin
from core.time_utils import utc_now

# Import core models so relationships resolve
from modules.core.models import Floor, Outlet, Section  # noqa: F401


class TableStatus(str, Enum):
    """Table status. Closed set; every table is always in exactly one."""

    AVAILABLE = "available"
    OCCUPIED = "occupied"  # Seated, no items served yet
    RUNNING = "running"  # Order in progress
    RESERVED = "reserved"
    BILLING = "billing"  # Bill generated, awaiting payment
    BLOCKED = "blocked"  # Administrative override
    MERGED = "merged"  # Secondary of an active merge


# Statuses that only exist while the table has an active session
SESSION_STATUSES = frozenset(
    {TableStatus.OCCUPIED, TableStatus.RUNNING, TableStatus.BILLING}
)


class TableShape(str, Enum):
    """Table shape for visual representation"""

    SQUARE = "square"
    RECTANGLE = "rectangle"
    ROUND = "round"
    OVAL = "oval"
    CUSTOM = "custom"


class SessionStatus(str, Enum):
    """Dining session status"""

    ACTIVE = "active"
    COMPLETED = "completed"


class TableEvent(str, Enum):
    """History / broadcast event types"""

    STATUS_CHANGE = "status_change"
    SESSION_STARTED = "session_started"
    SESSION_ENDED = "session_ended"
    SESSION_TRANSFERRED = "session_transferred"
    ORDER_LINKED = "order_linked"
    TABLES_MERGED = "tables_merged"
    TABLES_UNMERGED = "tables_unmerged"
    TABLE_CREATED = "table_created"
    TABLE_UPDATED = "table_updated"
    TABLE_DELETED = "table_deleted"


class Table(Base, TimestampMixin):
    """Physical seating unit and its live state"""

    __tablename__ = "tables"

    id = Column(Integer, primary_key=True)
    outlet_id = Column(Integer, ForeignKey("outlets.id"), nullable=False, index=True)
    floor_id = Column(Integer, ForeignKey("floors.id"), nullable=False, index=True)
    section_id = Column(Integer, ForeignKey("sections.id"), nullable=True, index=True)

    # Basic info
    table_number = Column(String(20), nullable=False)
    name = Column(String(50))

    # Capacity. While the table is a merge primary this includes the
    # capacity_added of every active TableMerge row.
    capacity = Column(Integer, nullable=False, default=4)
    min_capacity = Column(Integer, nullable=False, default=1)

    shape = Column(SQLEnum(TableShape), nullable=False, default=TableShape.SQUARE)
    is_mergeable = Column(Boolean, nullable=False, default=True)
    is_splittable = Column(Boolean, nullable=False, default=False)
    display_order = Column(Integer, nullable=False, default=0)
    qr_code = Column(String(255))

    status = Column(SQLEnum(TableStatus), nullable=False, default=TableStatus.AVAILABLE)
    is_active = Column(Boolean, nullable=False, default=True)

    # Relationships
    outlet = relationship("Outlet")
    floor = relationship("Floor", back_populates="tables")
    section = relationship("Section")
    layout = relationship(
        "TableLayout", uselist=False, back_populates="table", cascade="all, delete-orphan"
    )
    sessions = relationship("TableSession", back_populates="table")

    __table_args__ = (
        # Table numbers are unique among the outlet's active tables only;
        # soft-deleted rows keep their number.
        Index(
            "uix_tables_outlet_number_active",
            "outlet_id",
            "table_number",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active = 1"),
        ),
        CheckConstraint("capacity >= 1", name="chk_table_capacity"),
        CheckConstraint("min_capacity >= 1", name="chk_table_min_capacity"),
    )

    def __repr__(self):
        return f"<Table(id={self.id}, number='{self.table_number}', status={self.status})>"


class TableLayout(Base, TimestampMixin):
    """Layout designer position, one row per table"""

    __tablename__ = "table_layouts"

    id = Column(Integer, primary_key=True)
    table_id = Column(Integer, ForeignKey("tables.id"), nullable=False, unique=True)

    position_x = Column(Integer, nullable=False, default=0)
    position_y = Column(Integer, nullable=False, default=0)
    width = Column(Integer, nullable=False, default=100)
    height = Column(Integer, nullable=False, default=100)
    rotation = Column(Integer, nullable=False, default=0)

    table = relationship("Table", back_populates="layout")

    __table_args__ = (
        CheckConstraint("rotation >= 0 AND rotation < 360", name="chk_layout_rotation"),
    )


class TableSession(Base):
    """One dining engagement on a table"""

    __tablename__ = "table_sessions"

    id = Column(Integer, primary_key=True)
    table_id = Column(Integer, ForeignKey("tables.id"), nullable=False, index=True)

    # External order reference, set by the ordering system
    order_id = Column(Integer, index=True)

    guest_count = Column(Integer, nullable=False, default=1)
    guest_name = Column(String(100))
    guest_phone = Column(String(20))
    notes = Column(Text)

    status = Column(SQLEnum(SessionStatus), nullable=False, default=SessionStatus.ACTIVE)
    started_by = Column(Integer)
    started_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    ended_by = Column(Integer)
    ended_at = Column(DateTime(timezone=True))

    table = relationship("Table", back_populates="sessions")

    __table_args__ = (
        # At most one active session per table
        Index(
            "uix_table_sessions_one_active",
            "table_id",
            unique=True,
            postgresql_where=text("status = 'ACTIVE'"),
            sqlite_where=text("status = 'ACTIVE'"),
        ),
        Index("ix_table_sessions_started_at", "started_at"),
        CheckConstraint("guest_count >= 1", name="chk_session_guest_count"),
    )


class TableMerge(Base):
    """
    Directed merge edge primary -> secondary.

    Active while ``unmerged_at`` is null. ``capacity_added`` is the
    secondary's capacity at merge time and is exactly what unmerge removes
    from the primary.
    """

    __tablename__ = "table_merges"

    id = Column(Integer, primary_key=True)
    primary_table_id = Column(Integer, ForeignKey("tables.id"), nullable=False, index=True)
    merged_table_id = Column(Integer, ForeignKey("tables.id"), nullable=False, index=True)
    table_session_id = Column(Integer, ForeignKey("table_sessions.id"), index=True)

    capacity_added = Column(Integer, nullable=False, default=0)

    merged_by = Column(Integer)
    merged_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    unmerged_by = Column(Integer)
    unmerged_at = Column(DateTime(timezone=True))

    primary_table = relationship("Table", foreign_keys=[primary_table_id])
    merged_table = relationship("Table", foreign_keys=[merged_table_id])
    session = relationship("TableSession")

    __table_args__ = (
        # A secondary belongs to at most one active merge
        Index(
            "uix_table_merges_active_secondary",
            "merged_table_id",
            unique=True,
            postgresql_where=text("unmerged_at IS NULL"),
            sqlite_where=text("unmerged_at IS NULL"),
        ),
        CheckConstraint("primary_table_id <> merged_table_id", name="chk_merge_distinct"),
    )


class TableHistory(Base):
    """Append-only log of table state transitions"""

    __tablename__ = "table_history"

    id = Column(Integer, primary_key=True)
    table_id = Column(Integer, ForeignKey("tables.id"), nullable=False, index=True)
    event_type = Column(String(50), nullable=False, index=True)
    event_data = Column(JSON, default=dict)
    performed_by = Column(Integer)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now, index=True)

    table = relationship("Table")
