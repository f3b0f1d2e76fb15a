"""
Category repository for database operations.

Category catalogue maintained by staff and used to tag publications.
"""

import asyncpg
import structlog
from typing import List, Optional, Dict, Any

logger = structlog.get_logger(__name__)

_CATEGORY_COLUMNS = "category_id, category_name, status, created_at, updated_at"


class CategoryRepository:
    """Repository for category database operations."""

    def __init__(self, pool: asyncpg.Pool):
        self.pool = pool

    async def list_categories(
        self,
        q: Optional[str] = None,
        status: Optional[str] = None,
        order_by_name: bool = False
    ) -> List[Dict[str, Any]]:
        """
        List categories.

        Args:
            q: Name contains (case-insensitive)
            status: ACTIVE or INACTIVE
            order_by_name: Order by name instead of most recently updated

        Returns:
            Category rows
        """
        try:
            async with self.pool.acquire() as conn:
                where_clauses = []
                params: List[Any] = []

                if q:
                    params.append(f"%{q}%")
                    where_clauses.append(f"category_name ILIKE ${len(params)}")
                if status:
                    params.append(status.upper())
                    where_clauses.append(f"upper(status) = ${len(params)}")

                where_sql = f"WHERE {' AND '.join(where_clauses)}" if where_clauses else ""
                order_sql = "category_name ASC" if order_by_name else "updated_at DESC, category_id DESC"

                rows = await conn.fetch(
                    f"SELECT {_CATEGORY_COLUMNS} FROM category {where_sql} ORDER BY {order_sql}",
                    *params
                )

                return [dict(row) for row in rows]

        except Exception as e:
            logger.error("category_list_failed", error=str(e))
            raise

    async def create_category(self, name: str) -> Dict[str, Any]:
        """
        Create an ACTIVE category.

        Raises:
            ValueError: If the name is taken
        """
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    f"""
                    INSERT INTO category (category_name, status, created_at, updated_at)
                    VALUES ($1, 'ACTIVE', NOW(), NOW())
                    RETURNING {_CATEGORY_COLUMNS}
                    """,
                    name
                )

                logger.info("category_created", category_id=row["category_id"], name=name)
                return dict(row)

        except asyncpg.UniqueViolationError:
            logger.warning("category_already_exists", name=name)
            raise ValueError(f"category '{name}' already exists")
        except Exception as e:
            logger.error("category_create_failed", error=str(e), name=name)
            raise

    async def update_category(self, category_id: int, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        Update category name and/or status.

        Returns:
            Updated row or None if not found
        """
        updates = []
        params: List[Any] = []
        for column in ("category_name", "status"):
            if column in fields:
                params.append(fields[column])
                updates.append(f"{column} = ${len(params)}")
        if not updates:
            raise ValueError("nothing to update")

        updates.append("updated_at = NOW()")
        params.append(category_id)

        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    f"""
                    UPDATE category SET {', '.join(updates)}
                    WHERE category_id = ${len(params)}
                    RETURNING {_CATEGORY_COLUMNS}
                    """,
                    *params
                )

                if not row:
                    return None

                logger.info("category_updated", category_id=category_id, fields=sorted(fields))
                return dict(row)

        except asyncpg.UniqueViolationError:
            logger.warning("category_already_exists", name=fields.get("category_name"))
            raise ValueError(f"category '{fields.get('category_name')}' already exists")
        except Exception as e:
            logger.error("category_update_failed", error=str(e), category_id=category_id)
            raise

    async def delete_category(self, category_id: int) -> bool:
        """
        Unlink a category from every publication, then delete it.

        Returns:
            True if the category existed
        """
        try:
            async with self.pool.acquire() as conn:
                async with conn.transaction():
                    await conn.execute("DELETE FROM category_publication WHERE category_id = $1", category_id)
                    result = await conn.execute("DELETE FROM category WHERE category_id = $1", category_id)

                deleted = result.split()[-1] != "0"
                if deleted:
                    logger.info("category_deleted", category_id=category_id)
                return deleted

        except Exception as e:
            logger.error("category_delete_failed", error=str(e), category_id=category_id)
            raise

    async def ids_for_names(self, names: List[str]) -> List[int]:
        """IDs of existing categories matching the names (case-insensitive); unknown names are skipped."""
        if not names:
            return []

        try:
            async with self.pool.acquire() as conn:
                rows = await conn.fetch(
                    "SELECT category_id FROM category WHERE lower(category_name) = ANY($1::text[])",
                    [name.lower() for name in names]
                )
                return [row["category_id"] for row in rows]

        except Exception as e:
            logger.error("category_lookup_failed", error=str(e))
            raise
