"""
Notification repository for database operations.

Professors are notified about their lead-authored publications that a
reviewer sent back for revision.
"""

import asyncpg
import structlog
from typing import List, Optional, Dict, Any

from pubportal.models.publication import AuthorRole, PublicationStatus

logger = structlog.get_logger(__name__)


class NotificationRepository:
    """Repository for professor notifications."""

    def __init__(self, pool: asyncpg.Pool):
        self.pool = pool

    async def revision_requests(self, user_id: int) -> List[Dict[str, Any]]:
        """
        Publications where the user's person is LEAD author and the status
        is needs_revision, most recently updated first.
        """
        try:
            async with self.pool.acquire() as conn:
                rows = await conn.fetch(
                    """
                    SELECT DISTINCT p.pub_id, p.pub_name, p.venue_name, p.year, p.status, p.updated_at
                    FROM publication p
                    JOIN publication_person pp ON pp.pub_id = p.pub_id
                    JOIN person pe ON pe.person_id = pp.person_id
                    WHERE pe.user_id = $1
                      AND upper(pp.role) = $2
                      AND p.status = $3
                    ORDER BY p.updated_at DESC
                    """,
                    user_id,
                    AuthorRole.LEAD.value,
                    PublicationStatus.NEEDS_REVISION.value
                )
                return [dict(row) for row in rows]

        except Exception as e:
            logger.error("notification_list_failed", error=str(e), user_id=user_id)
            raise

    async def count_unread(self, user_id: int) -> int:
        try:
            async with self.pool.acquire() as conn:
                count = await conn.fetchval(
                    "SELECT COUNT(*) FROM notification WHERE user_id = $1 AND NOT is_read",
                    user_id
                )
                return int(count or 0)

        except Exception as e:
            logger.error("notification_count_failed", error=str(e), user_id=user_id)
            raise

    async def mark_read(
        self,
        user_id: int,
        noti_id: Optional[int] = None,
        pub_id: Optional[int] = None
    ) -> int:
        """
        Mark the user's notifications read, by notification or by publication.

        Returns:
            Number of rows updated
        """
        if noti_id is None and pub_id is None:
            raise ValueError("require noti_id or pub_id")

        try:
            async with self.pool.acquire() as conn:
                if noti_id is not None:
                    result = await conn.execute(
                        """
                        UPDATE notification SET is_read = true, read_at = NOW()
                        WHERE user_id = $1 AND noti_id = $2
                        """,
                        user_id,
                        noti_id
                    )
                else:
                    result = await conn.execute(
                        """
                        UPDATE notification SET is_read = true, read_at = NOW()
                        WHERE user_id = $1 AND pub_id = $2 AND NOT is_read
                        """,
                        user_id,
                        pub_id
                    )

                updated = int(result.split()[-1])
                logger.debug("notifications_marked_read", user_id=user_id, count=updated)
                return updated

        except Exception as e:
            logger.error("notification_mark_read_failed", error=str(e), user_id=user_id)
            raise
