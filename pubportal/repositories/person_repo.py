"""
Person and venue lookups for author and venue pickers.
"""

import asyncpg
import structlog
from typing import List, Optional, Dict, Any

logger = structlog.get_logger(__name__)


class PersonRepository:
    """Repository for author (person) and venue lookups."""

    def __init__(self, pool: asyncpg.Pool):
        self.pool = pool

    async def search_people(self, q: str, limit: int = 20) -> List[Dict[str, Any]]:
        """
        Persons whose name contains ``q``, ordered by name.

        Returns:
            Rows with person_id, full_name and email
        """
        try:
            async with self.pool.acquire() as conn:
                rows = await conn.fetch(
                    """
                    SELECT person_id, full_name, email
                    FROM person
                    WHERE full_name ILIKE $1
                    ORDER BY full_name ASC
                    LIMIT $2
                    """,
                    f"%{q}%",
                    limit
                )
                return [dict(row) for row in rows]

        except Exception as e:
            logger.error("person_search_failed", error=str(e), q=q)
            raise

    async def list_venues(self, q: Optional[str] = None, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """
        Venues ordered by type.

        Args:
            q: Type contains (case-insensitive)
            limit: Maximum rows
        """
        try:
            async with self.pool.acquire() as conn:
                params: List[Any] = []
                where = ""
                if q:
                    params.append(f"%{q}%")
                    where = "WHERE type ILIKE $1"
                limit_sql = ""
                if limit:
                    params.append(limit)
                    limit_sql = f"LIMIT ${len(params)}"

                rows = await conn.fetch(
                    f"SELECT venue_id, type, name FROM venue {where} ORDER BY type ASC, venue_id ASC {limit_sql}",
                    *params
                )
                return [dict(row) for row in rows]

        except Exception as e:
            logger.error("venue_list_failed", error=str(e))
            raise
