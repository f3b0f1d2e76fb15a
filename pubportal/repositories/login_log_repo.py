"""
Login log repository for database operations.

Records every login attempt and serves the admin login-log and audit
views using asyncpg with PostgreSQL.
"""

import asyncpg
import structlog
from typing import List, Optional, Any

from pubportal.models.audit import AuditFilter, LoginLogEntry

logger = structlog.get_logger(__name__)

_LOG_COLUMNS = "log_id, user_id, username, login_at, success, ip_address, fail_reason"


class LoginLogRepository:
    """Repository for login attempt records."""

    def __init__(self, pool: asyncpg.Pool):
        """
        Initialize login log repository.

        Args:
            pool: asyncpg connection pool
        """
        self.pool = pool

    async def create_login_log(
        self,
        user_id: Optional[int],
        username: Optional[str],
        success: bool,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        fail_reason: Optional[str] = None
    ) -> int:
        """
        Record a login attempt.

        Args:
            user_id: Matched user (None when the login name is unknown)
            username: Login name as typed
            success: Whether the attempt succeeded
            ip_address: Client IP address
            user_agent: Client user agent
            fail_reason: Reason for a rejected attempt

        Returns:
            ID of the new row
        """
        try:
            async with self.pool.acquire() as conn:
                log_id = await conn.fetchval(
                    """
                    INSERT INTO login_log (
                        user_id, username, login_at, success, ip_address, user_agent, fail_reason
                    )
                    VALUES ($1, $2, NOW(), $3, $4, $5, $6)
                    RETURNING log_id
                    """,
                    user_id,
                    username,
                    success,
                    ip_address,
                    user_agent,
                    fail_reason
                )

                logger.debug(
                    "login_log_created",
                    log_id=log_id,
                    user_id=user_id,
                    success=success,
                    fail_reason=fail_reason
                )
                return log_id

        except Exception as e:
            logger.error("login_log_create_failed", error=str(e), username=username)
            raise

    async def list_login_logs(self, q: Optional[str] = None, limit: int = 500) -> List[LoginLogEntry]:
        """
        Newest login attempts first.

        Args:
            q: Substring matched against username or IP address
            limit: Maximum rows
        """
        try:
            async with self.pool.acquire() as conn:
                params: List[Any] = []
                where = ""
                if q:
                    params.append(f"%{q}%")
                    where = "WHERE username ILIKE $1 OR ip_address ILIKE $1"
                params.append(limit)

                rows = await conn.fetch(
                    f"""
                    SELECT {_LOG_COLUMNS}
                    FROM login_log
                    {where}
                    ORDER BY login_at DESC
                    LIMIT ${len(params)}
                    """,
                    *params
                )

                return [LoginLogEntry(**dict(row)) for row in rows]

        except Exception as e:
            logger.error("login_log_list_failed", error=str(e))
            raise

    async def search_login_logs(self, filter: AuditFilter) -> List[LoginLogEntry]:
        """
        Login attempts matching the audit filter, newest first.

        Args:
            filter: Filter parameters

        Returns:
            Matching rows
        """
        try:
            async with self.pool.acquire() as conn:
                where_clauses = []
                params: List[Any] = []

                if filter.q:
                    params.append(f"%{filter.q}%")
                    where_clauses.append(f"username ILIKE ${len(params)}")

                if filter.start is not None:
                    params.append(filter.start)
                    where_clauses.append(f"login_at >= ${len(params)}")

                if filter.end is not None:
                    params.append(filter.end)
                    where_clauses.append(f"login_at < ${len(params)}")

                if filter.success is not None:
                    params.append(filter.success)
                    where_clauses.append(f"success = ${len(params)}")

                if filter.ip:
                    params.append(f"%{filter.ip}%")
                    where_clauses.append(f"ip_address ILIKE ${len(params)}")

                where_sql = f"WHERE {' AND '.join(where_clauses)}" if where_clauses else ""
                params.append(filter.limit)

                rows = await conn.fetch(
                    f"""
                    SELECT {_LOG_COLUMNS}
                    FROM login_log
                    {where_sql}
                    ORDER BY login_at DESC
                    LIMIT ${len(params)}
                    """,
                    *params
                )

                logger.debug("login_logs_searched", count=len(rows))
                return [LoginLogEntry(**dict(row)) for row in rows]

        except Exception as e:
            logger.error("login_log_search_failed", error=str(e))
            raise
