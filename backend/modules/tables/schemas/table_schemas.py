# backend/modules/tables/schemas/table_schemas.py

from typing import List, Optional, Dict, Any
from pydantic import BaseModel, Field, field_validator, ConfigDict

from core.time_utils import UTCDateTime
from ..models.table_models import TableShape, TableStatus, SessionStatus


# Layout Schemas
class TablePosition(BaseModel):
    """Table layout position data"""

    position_x: int = Field(0, ge=0)
    position_y: int = Field(0, ge=0)
    width: int = Field(100, gt=0)
    height: int = Field(100, gt=0)
    rotation: int = Field(0, ge=0, lt=360)
    model_config = ConfigDict(from_attributes=True)


# Table Schemas
class TableBase(BaseModel):
    """Base table schema"""

    table_number: str = Field(..., min_length=1, max_length=20)
    name: Optional[str] = Field(None, max_length=50)
    capacity: int = Field(4, ge=1)
    min_capacity: int = Field(1, ge=1)
    shape: TableShape = TableShape.SQUARE
    is_mergeable: bool = True
    is_splittable: bool = False
    display_order: int = 0
    qr_code: Optional[str] = Field(None, max_length=255)

    @field_validator("table_number")
    @classmethod
    def strip_table_number(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Table number cannot be blank")
        return v


class TableCreate(TableBase):
    """Table creation schema"""

    outlet_id: int
    floor_id: int
    section_id: Optional[int] = None
    position: Optional[TablePosition] = None


class TableUpdate(BaseModel):
    """Table update schema. Only supplied fields are applied."""

    table_number: Optional[str] = Field(None, min_length=1, max_length=20)
    name: Optional[str] = Field(None, max_length=50)
    section_id: Optional[int] = None
    capacity: Optional[int] = Field(None, ge=1)
    min_capacity: Optional[int] = Field(None, ge=1)
    shape: Optional[TableShape] = None
    is_mergeable: Optional[bool] = None
    is_splittable: Optional[bool] = None
    display_order: Optional[int] = None
    qr_code: Optional[str] = Field(None, max_length=255)
    position: Optional[TablePosition] = None


class TableResponse(BaseModel):
    """Denormalized table record"""

    id: int
    outlet_id: int
    outlet_name: Optional[str] = None
    floor_id: int
    floor_name: Optional[str] = None
    section_id: Optional[int] = None
    section_name: Optional[str] = None
    section_type: Optional[str] = None
    table_number: str
    name: Optional[str] = None
    capacity: int
    min_capacity: int
    shape: TableShape
    is_mergeable: bool
    is_splittable: bool
    display_order: int
    qr_code: Optional[str] = None
    status: TableStatus
    is_active: bool
    position: Optional[TablePosition] = None
    created_at: Optional[UTCDateTime] = None
    updated_at: Optional[UTCDateTime] = None
    model_config = ConfigDict(from_attributes=True)


class TableFilters(BaseModel):
    """Filters for listing an outlet's tables"""

    floor_id: Optional[int] = None
    floor_ids: Optional[List[int]] = None
    section_id: Optional[int] = None
    status: Optional[TableStatus] = None
    is_active: Optional[bool] = None

    def is_empty(self) -> bool:
        return not any(
            v is not None for v in self.model_dump().values()
        )


class TableStatusUpdate(BaseModel):
    """
    Status change request.

    ``status`` is kept as a plain string so an unknown value is reported as a
    business validation error rather than a request parsing error.
    """

    status: str
    extra: Optional[Dict[str, Any]] = None


# Session Schemas
class TableSessionCreate(BaseModel):
    """Start a dining session"""

    guest_count: int = Field(1, ge=1)
    guest_name: Optional[str] = Field(None, max_length=100)
    guest_phone: Optional[str] = Field(None, max_length=20)
    notes: Optional[str] = None


class TableSessionResponse(BaseModel):
    id: int
    table_id: int
    order_id: Optional[int] = None
    guest_count: int
    guest_name: Optional[str] = None
    guest_phone: Optional[str] = None
    notes: Optional[str] = None
    status: SessionStatus
    started_by: Optional[int] = None
    started_at: UTCDateTime
    ended_by: Optional[int] = None
    ended_at: Optional[UTCDateTime] = None
    model_config = ConfigDict(from_attributes=True)


class SessionStartResponse(BaseModel):
    session_id: int
    table: TableResponse


class SessionEndResponse(BaseModel):
    session_id: int
    duration_minutes: int
    unmerged_table_ids: List[int] = []
    table: TableResponse


class SessionTransferRequest(BaseModel):
    new_actor_id: int


class AttachOrderRequest(BaseModel):
    order_id: int


# Merge Schemas
class MergeRequest(BaseModel):
    table_ids: List[int] = Field(..., min_length=1)


class MergedTableResponse(BaseModel):
    """Active merge record with the secondary's details"""

    id: int
    primary_table_id: int
    merged_table_id: int
    table_session_id: Optional[int] = None
    capacity_added: int
    merged_by: Optional[int] = None
    merged_at: UTCDateTime
    merged_table_number: str
    merged_table_name: Optional[str] = None
    merged_table_capacity: int


class UnmergeResponse(BaseModel):
    primary_table_id: int
    unmerged_table_ids: List[int]
    capacity_removed: int
    table: TableResponse


# History Schemas
class TableHistoryResponse(BaseModel):
    id: int
    table_id: int
    event_type: str
    event_data: Dict[str, Any] = {}
    performed_by: Optional[int] = None
    created_at: UTCDateTime
    model_config = ConfigDict(from_attributes=True)


class EnumOption(BaseModel):
    value: str
    label: str
