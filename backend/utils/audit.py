import logging
from datetime import datetime

logger = logging.getLogger(__name__)


async def log_audit(
    db,
    actor_id: str,
    actor_role: str,
    action: str,
    metadata: dict | None = None
):
    await db.audit_logs.insert_one({
        "actor_id": actor_id,
        "actor_role": actor_role,
        "action": action,
        "metadata": metadata or {},
        "created_at": datetime.utcnow()
    })


class AuditTrail:
    """log_audit bound to a database, injected into services."""

    def __init__(self, db):
        self._db = db

    async def __call__(self, actor_id: str, actor_role: str, action: str, metadata: dict | None = None):
        logger.info("AUDIT action=%s actor=%s", action, actor_id)
        await log_audit(self._db, actor_id, actor_role, action, metadata)
