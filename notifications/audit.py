"""
Audit trail on SQLite
"""
import asyncio
from datetime import datetime
from typing import Any, Dict, Optional

from database.models import AuditRecord
from database.repository import AuditRepository


class SqliteAuditLog:
    """Appends one row per recorded action"""

    async def record(self, actor_id: str, action: str, entity_type: str,
                     entity_id: Optional[str] = None,
                     old_values: Optional[Dict[str, Any]] = None,
                     new_values: Optional[Dict[str, Any]] = None) -> None:
        await asyncio.to_thread(AuditRepository.add, AuditRecord(
            id=None,
            actor_id=actor_id,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            old_values=old_values,
            new_values=new_values,
            created_at=datetime.now()
        ))
