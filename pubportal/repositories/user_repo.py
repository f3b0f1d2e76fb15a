"""
User repository for database operations.

Provides async CRUD operations for portal accounts using asyncpg with
PostgreSQL. Includes transaction management and error handling.
"""

import asyncpg
import structlog
from typing import List, Optional, Dict, Any

from pubportal.models.auth import UserRecord, Role, UserStatus

logger = structlog.get_logger(__name__)

_USER_COLUMNS = """
    user_id, username, email, password_hash, first_name, last_name, phone,
    position, role, status, profile_image, created_at, updated_at
"""

# Columns a caller may write through update_user()
UPDATABLE_COLUMNS = (
    "username",
    "email",
    "password_hash",
    "first_name",
    "last_name",
    "phone",
    "position",
    "role",
    "status",
    "profile_image",
)


def _row_to_user(row: asyncpg.Record) -> UserRecord:
    return UserRecord(**dict(row))


class UserRepository:
    """Repository for user database operations."""

    def __init__(self, pool: asyncpg.Pool):
        """
        Initialize user repository.

        Args:
            pool: asyncpg connection pool
        """
        self.pool = pool

    async def create_user(
        self,
        username: str,
        password_hash: str,
        email: Optional[str] = None,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        phone: Optional[str] = None,
        position: Optional[str] = None,
        role: str = Role.PROFESSOR.value,
        status: str = UserStatus.ACTIVE.value,
        profile_image: Optional[str] = None,
    ) -> UserRecord:
        """
        Create a new user.

        Returns:
            Created user

        Raises:
            ValueError: If the username already exists
            asyncpg.PostgresError: On database error
        """
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    f"""
                    INSERT INTO users (
                        username, email, password_hash, first_name, last_name,
                        phone, position, role, status, profile_image, created_at, updated_at
                    )
                    VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, NOW(), NOW())
                    RETURNING {_USER_COLUMNS}
                    """,
                    username,
                    email,
                    password_hash,
                    first_name,
                    last_name,
                    phone,
                    position,
                    role,
                    status,
                    profile_image,
                )

                logger.info("user_created", user_id=row["user_id"], username=username, role=role)
                return _row_to_user(row)

        except asyncpg.UniqueViolationError:
            logger.warning("username_already_exists", username=username)
            raise ValueError(f"username '{username}' already exists")
        except Exception as e:
            logger.error("user_create_failed", error=str(e), username=username)
            raise

    async def get_user_by_id(self, user_id: int) -> Optional[UserRecord]:
        """
        Get user by ID.

        Args:
            user_id: User ID

        Returns:
            User or None if not found
        """
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    f"SELECT {_USER_COLUMNS} FROM users WHERE user_id = $1",
                    user_id
                )

                if not row:
                    logger.debug("user_not_found", user_id=user_id)
                    return None

                return _row_to_user(row)

        except Exception as e:
            logger.error("user_get_by_id_failed", error=str(e), user_id=user_id)
            raise

    async def get_user_by_login(self, identifier: str) -> Optional[UserRecord]:
        """
        Get user by username or email.

        An exact username match wins over an email match.

        Args:
            identifier: Username or email address

        Returns:
            User or None if not found
        """
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    f"""
                    SELECT {_USER_COLUMNS}
                    FROM users
                    WHERE username = $1 OR lower(email) = lower($1)
                    ORDER BY (username = $1) DESC, user_id
                    LIMIT 1
                    """,
                    identifier
                )

                if not row:
                    logger.debug("user_not_found", identifier=identifier)
                    return None

                return _row_to_user(row)

        except Exception as e:
            logger.error("user_get_by_login_failed", error=str(e), identifier=identifier)
            raise

    async def list_users(self, q: Optional[str] = None, limit: int = 500) -> List[UserRecord]:
        """
        List users ordered by ID.

        Args:
            q: Case-insensitive substring matched against username, names and email
            limit: Maximum rows

        Returns:
            Matching users
        """
        try:
            async with self.pool.acquire() as conn:
                where = ""
                params: List[Any] = []
                if q:
                    params.append(f"%{q}%")
                    where = """
                        WHERE username ILIKE $1 OR first_name ILIKE $1
                           OR last_name ILIKE $1 OR email ILIKE $1
                    """
                params.append(limit)

                rows = await conn.fetch(
                    f"""
                    SELECT {_USER_COLUMNS}
                    FROM users
                    {where}
                    ORDER BY user_id ASC
                    LIMIT ${len(params)}
                    """,
                    *params
                )

                return [_row_to_user(row) for row in rows]

        except Exception as e:
            logger.error("user_list_failed", error=str(e))
            raise

    async def list_users_by_role(
        self,
        role: str,
        q: Optional[str] = None,
        active_only: bool = False
    ) -> List[UserRecord]:
        """
        List users holding a role, ordered by first name.

        Args:
            role: Role to match
            q: Optional substring over username, names and email
            active_only: Only ACTIVE accounts

        Returns:
            Matching users
        """
        try:
            async with self.pool.acquire() as conn:
                where_clauses = ["role = $1"]
                params: List[Any] = [role]

                if active_only:
                    params.append(UserStatus.ACTIVE.value)
                    where_clauses.append(f"status = ${len(params)}")

                if q:
                    params.append(f"%{q}%")
                    n = len(params)
                    where_clauses.append(
                        f"(username ILIKE ${n} OR first_name ILIKE ${n} "
                        f"OR last_name ILIKE ${n} OR email ILIKE ${n})"
                    )

                rows = await conn.fetch(
                    f"""
                    SELECT {_USER_COLUMNS}
                    FROM users
                    WHERE {' AND '.join(where_clauses)}
                    ORDER BY first_name ASC NULLS LAST, user_id ASC
                    """,
                    *params
                )

                return [_row_to_user(row) for row in rows]

        except Exception as e:
            logger.error("user_list_by_role_failed", error=str(e), role=role)
            raise

    async def update_user(self, user_id: int, fields: Dict[str, Any]) -> Optional[UserRecord]:
        """
        Update user columns.

        Args:
            user_id: User ID
            fields: Column -> value; keys outside UPDATABLE_COLUMNS are ignored

        Returns:
            Updated user or None if not found

        Raises:
            ValueError: If no updatable column is given or the username is taken
        """
        updates = []
        params: List[Any] = []

        for column in UPDATABLE_COLUMNS:
            if column in fields:
                params.append(fields[column])
                updates.append(f"{column} = ${len(params)}")

        if not updates:
            raise ValueError("no fields to update")

        updates.append("updated_at = NOW()")
        params.append(user_id)

        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    f"""
                    UPDATE users
                    SET {', '.join(updates)}
                    WHERE user_id = ${len(params)}
                    RETURNING {_USER_COLUMNS}
                    """,
                    *params
                )

                if not row:
                    logger.debug("user_not_found_for_update", user_id=user_id)
                    return None

                logger.info("user_updated", user_id=user_id, fields=sorted(k for k in fields if k != "password_hash"))
                return _row_to_user(row)

        except asyncpg.UniqueViolationError:
            logger.warning("username_already_exists", username=fields.get("username"))
            raise ValueError(f"username '{fields.get('username')}' already exists")
        except Exception as e:
            logger.error("user_update_failed", error=str(e), user_id=user_id)
            raise

    async def update_password(self, user_id: int, password_hash: str) -> bool:
        """
        Replace a user's password hash.

        Returns:
            True if a row was updated
        """
        try:
            async with self.pool.acquire() as conn:
                result = await conn.execute(
                    "UPDATE users SET password_hash = $1, updated_at = NOW() WHERE user_id = $2",
                    password_hash,
                    user_id
                )

                updated = result.split()[-1] != "0"
                if updated:
                    logger.info("user_password_updated", user_id=user_id)
                return updated

        except Exception as e:
            logger.error("user_password_update_failed", error=str(e), user_id=user_id)
            raise

    async def count_users(self) -> Dict[str, Any]:
        """
        Account counters for the admin dashboard.

        Returns:
            Dict with total_users, active_users, suspended_users and by_role
        """
        try:
            async with self.pool.acquire() as conn:
                rows = await conn.fetch(
                    "SELECT role, status, COUNT(*) AS n FROM users GROUP BY role, status"
                )

                metrics: Dict[str, Any] = {
                    "total_users": 0,
                    "active_users": 0,
                    "suspended_users": 0,
                    "by_role": {role.value: 0 for role in Role},
                }
                for row in rows:
                    n = int(row["n"])
                    metrics["total_users"] += n
                    if row["status"] == UserStatus.ACTIVE.value:
                        metrics["active_users"] += n
                    elif row["status"] == UserStatus.SUSPENDED.value:
                        metrics["suspended_users"] += n
                    if row["role"] in metrics["by_role"]:
                        metrics["by_role"][row["role"]] += n

                return metrics

        except Exception as e:
            logger.error("user_count_failed", error=str(e))
            raise
