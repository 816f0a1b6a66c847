from typing import List

import structlog
from pymongo.database import Database
from pymongo.errors import PyMongoError

from database import get_documents, now_utc
from schemas import AdminLog

logger = structlog.get_logger(__name__)


class AdminLogService:
    collection = "admin_log"

    def __init__(self, database: Database):
        self.db = database

    def log_action(self, admin_email: str, action_type: str, entity_type: str,
                   entity_id: str, details: dict = None) -> None:
        """Append an audit entry. Audit writes never fail the admin action."""
        entry = AdminLog(
            admin_email=admin_email,
            action_type=action_type,
            entity_type=entity_type,
            entity_id=entity_id,
            details=details or {},
        )
        doc = entry.model_dump(exclude={"id"}, mode="json")
        doc["timestamp"] = now_utc()
        try:
            self.db[self.collection].insert_one(doc)
        except PyMongoError as e:
            logger.warning("admin_log_failed", action_type=action_type, entity_id=entity_id, error=str(e))

    def get_recent_logs(self, limit: int = 50) -> List[AdminLog]:
        return [AdminLog(**d) for d in get_documents(self.db, self.collection, limit=limit, sort_field="timestamp")]
