# backend/modules/tables/services/table_history_service.py

from typing import Any, Dict, List, Optional
from sqlalchemy.orm import Session
import logging

from core.config import settings
from core.exceptions import NotFoundError
from core.time_utils import utc_now
from ..models.table_models import Table, TableHistory, TableEvent

logger = logging.getLogger(__name__)


class TableHistoryService:
    """Append-only audit trail of table transitions"""

    def __init__(self, db: Session):
        self.db = db

    def record(
        self,
        table_id: int,
        event_type: TableEvent,
        data: Optional[Dict[str, Any]] = None,
        actor_id: Optional[int] = None,
    ) -> TableHistory:
        """
        Append an entry. Must be called inside the caller's transaction so the
        entry commits or rolls back together with the change it describes.
        """
        entry = TableHistory(
            table_id=table_id,
            event_type=event_type.value,
            event_data=data or {},
            performed_by=actor_id,
            created_at=utc_now(),
        )
        self.db.add(entry)
        return entry

    def get_history(self, table_id: int, limit: Optional[int] = None) -> List[TableHistory]:
        """Most recent entries first"""
        if not self.db.get(Table, table_id):
            raise NotFoundError(f"Table {table_id} not found")

        limit = limit or settings.history_default_limit
        return (
            self.db.query(TableHistory)
            .filter(TableHistory.table_id == table_id)
            .order_by(TableHistory.created_at.desc(), TableHistory.id.desc())
            .limit(limit)
            .all()
        )
