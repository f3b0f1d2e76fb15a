"""
History repository for database operations.

Read side of the publication edit log, status history and review actions
using asyncpg with PostgreSQL. Writes happen inside the publication
repository's transactions.
"""

import asyncpg
import structlog
from datetime import datetime
from typing import List, Optional, Dict, Any

logger = structlog.get_logger(__name__)

_USER_NAME_SQL = "NULLIF(TRIM(CONCAT_WS(' ', u.first_name, u.last_name)), '')"


class HistoryRepository:
    """Repository for publication history reads."""

    def __init__(self, pool: asyncpg.Pool):
        """
        Initialize history repository.

        Args:
            pool: asyncpg connection pool
        """
        self.pool = pool

    async def list_edit_logs(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: int = 200
    ) -> List[Dict[str, Any]]:
        """
        Newest edit-log rows across all publications.

        Args:
            start: Inclusive lower bound on edited_at
            end: Exclusive upper bound on edited_at
            limit: Maximum rows

        Returns:
            Rows with publication title and editor display name
        """
        try:
            async with self.pool.acquire() as conn:
                where_clauses = []
                params: List[Any] = []

                if start is not None:
                    params.append(start)
                    where_clauses.append(f"l.edited_at >= ${len(params)}")
                if end is not None:
                    params.append(end)
                    where_clauses.append(f"l.edited_at < ${len(params)}")

                where_sql = f"WHERE {' AND '.join(where_clauses)}" if where_clauses else ""
                params.append(limit)

                rows = await conn.fetch(
                    f"""
                    SELECT l.edit_id, l.pub_id, l.user_id, l.field_name, l.old_value,
                           l.new_value, l.edited_at, p.pub_name,
                           COALESCE({_USER_NAME_SQL}, u.username) AS user_name
                    FROM publication_edit_log l
                    LEFT JOIN publication p ON p.pub_id = l.pub_id
                    LEFT JOIN users u ON u.user_id = l.user_id
                    {where_sql}
                    ORDER BY l.edited_at DESC, l.edit_id DESC
                    LIMIT ${len(params)}
                    """,
                    *params
                )

                return [dict(row) for row in rows]

        except Exception as e:
            logger.error("edit_log_list_failed", error=str(e))
            raise

    async def edit_logs_for_publication(
        self,
        pub_id: int,
        newest_first: bool = False,
        limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """
        Edit log of one publication.

        Ascending order (ties broken by edit_id) is the replay order used to
        build versions.
        """
        try:
            async with self.pool.acquire() as conn:
                direction = "DESC" if newest_first else "ASC"
                params: List[Any] = [pub_id]
                limit_sql = ""
                if limit is not None:
                    params.append(limit)
                    limit_sql = "LIMIT $2"

                rows = await conn.fetch(
                    f"""
                    SELECT l.edit_id, l.pub_id, l.user_id, l.field_name, l.old_value,
                           l.new_value, l.edited_at,
                           COALESCE({_USER_NAME_SQL}, u.username) AS user_name
                    FROM publication_edit_log l
                    LEFT JOIN users u ON u.user_id = l.user_id
                    WHERE l.pub_id = $1
                    ORDER BY l.edited_at {direction}, l.edit_id {direction}
                    {limit_sql}
                    """,
                    *params
                )

                return [dict(row) for row in rows]

        except Exception as e:
            logger.error("edit_log_for_publication_failed", error=str(e), pub_id=pub_id)
            raise

    async def status_history(self, pub_id: int, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """
        Status changes of one publication, newest first, with the changer.

        Returns:
            Rows with changer_name, changer_role and changer_username
        """
        try:
            async with self.pool.acquire() as conn:
                params: List[Any] = [pub_id]
                limit_sql = ""
                if limit is not None:
                    params.append(limit)
                    limit_sql = "LIMIT $2"

                rows = await conn.fetch(
                    f"""
                    SELECT h.history_id, h.pub_id, h.status, h.note, h.changed_at,
                           COALESCE(h.changed_by, h.user_id) AS changed_by,
                           {_USER_NAME_SQL} AS changer_name,
                           u.username AS changer_username,
                           u.role AS changer_role
                    FROM publication_status_history h
                    LEFT JOIN users u ON u.user_id = COALESCE(h.changed_by, h.user_id)
                    WHERE h.pub_id = $1
                    ORDER BY h.changed_at DESC, h.history_id DESC
                    {limit_sql}
                    """,
                    *params
                )

                return [dict(row) for row in rows]

        except Exception as e:
            logger.error("status_history_failed", error=str(e), pub_id=pub_id)
            raise

    async def latest_review_comments(self, pub_ids: List[int]) -> Dict[int, str]:
        """
        Most recent non-empty reviewer comment per publication.

        Returns:
            pub_id -> comment, for publications that have one
        """
        if not pub_ids:
            return {}

        try:
            async with self.pool.acquire() as conn:
                rows = await conn.fetch(
                    """
                    SELECT DISTINCT ON (pub_id) pub_id, comment
                    FROM review_action
                    WHERE pub_id = ANY($1::bigint[])
                      AND comment IS NOT NULL AND TRIM(comment) <> ''
                    ORDER BY pub_id, created_at DESC, review_id DESC
                    """,
                    list(pub_ids)
                )

                return {row["pub_id"]: row["comment"] for row in rows}

        except Exception as e:
            logger.error("review_comment_lookup_failed", error=str(e), count=len(pub_ids))
            raise
