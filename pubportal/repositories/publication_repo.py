"""
Publication repository for database operations.

Provides async reads and transactional writes for publications, their
authors and category links using asyncpg with PostgreSQL. Every listing,
search and report goes through one filter-to-SQL builder.
"""

import asyncpg
import structlog
from typing import List, Optional, Dict, Any, Iterable, Tuple
from contextlib import asynccontextmanager

from pubportal.models.publication import (
    AuthorInput,
    AuthorRole,
    PublicationCreateRequest,
    PublicationFilter,
    PublicationStatus,
)
from pubportal.services.history_service import FieldChange

logger = structlog.get_logger(__name__)

PUBLICATION_COLUMNS = """
    p.pub_id, p.pub_name, p.abstract, p.venue_id, p.venue_name, p.level, p.year,
    p.status, p.has_pdf, p.file_path, p.link_url, p.created_at, p.updated_at,
    v.type AS venue_type
"""

_FROM = "FROM publication p LEFT JOIN venue v ON v.venue_id = p.venue_id"

# Columns a caller may write through update_publication()
UPDATABLE_COLUMNS = (
    "pub_name",
    "abstract",
    "venue_id",
    "venue_name",
    "level",
    "year",
    "status",
    "has_pdf",
    "file_path",
    "link_url",
)

# Child tables removed before a publication row is deleted
_CHILD_TABLES = (
    "publication_person",
    "category_publication",
    "publication_edit_log",
    "publication_status_history",
    "review_action",
    "notification",
)


def _author_exists(condition: str) -> str:
    return (
        "EXISTS (SELECT 1 FROM publication_person pp "
        "JOIN person pe ON pe.person_id = pp.person_id "
        f"WHERE pp.pub_id = p.pub_id AND {condition})"
    )


def _category_exists(condition: str) -> str:
    return (
        "EXISTS (SELECT 1 FROM category_publication cp "
        "JOIN category c ON c.category_id = cp.category_id "
        f"WHERE cp.pub_id = p.pub_id AND {condition})"
    )


def build_publication_where(f: PublicationFilter, params: List[Any]) -> List[str]:
    """
    Translate a filter into WHERE clauses, appending bind values to ``params``.

    Args:
        f: Filter parameters
        params: Positional bind values; extended in place

    Returns:
        Clauses to AND together
    """
    clauses: List[str] = []

    def bind(value: Any) -> str:
        params.append(value)
        return f"${len(params)}"

    if f.q:
        needle = bind(f"%{f.q}%")
        title = f"p.pub_name ILIKE {needle}"
        venue = f"(p.venue_name ILIKE {needle} OR p.link_url ILIKE {needle})"
        author = _author_exists(f"pe.full_name ILIKE {needle}")
        if f.scope == "title":
            clauses.append(title)
        elif f.scope == "author":
            clauses.append(author)
        elif f.scope == "venue":
            clauses.append(venue)
        elif f.scope == "text":
            clauses.append(f"({title} OR {venue})")
        else:
            clauses.append(f"({title} OR {venue} OR {author})")

    if f.statuses:
        clauses.append(f"p.status = ANY({bind(list(f.statuses))}::text[])")

    if f.levels:
        clauses.append(f"upper(p.level) = ANY({bind([lv.upper() for lv in f.levels])}::text[])")

    if f.year_from is not None:
        clauses.append(f"p.year >= {bind(f.year_from)}")

    if f.year_to is not None:
        clauses.append(f"p.year <= {bind(f.year_to)}")

    if f.has_pdf is not None:
        clauses.append(f"COALESCE(p.has_pdf, false) = {bind(f.has_pdf)}")

    if f.venue_type:
        clauses.append(f"upper(v.type) = {bind(f.venue_type.upper())}")

    for term in f.authors:
        clauses.append(_author_exists(f"pe.full_name ILIKE {bind(f'%{term}%')}"))

    if f.categories:
        names = [c.lower() for c in f.categories]
        if f.categories_match_all:
            for name in names:
                clauses.append(_category_exists(f"lower(c.category_name) = {bind(name)}"))
        else:
            clauses.append(_category_exists(f"lower(c.category_name) = ANY({bind(names)}::text[])"))

    if f.only_students:
        clauses.append(_author_exists("upper(pe.person_type) = 'STUDENT'"))

    if f.owner_user_id is not None:
        condition = f"pe.user_id = {bind(f.owner_user_id)}"
        if f.lead_only:
            condition += f" AND upper(pp.role) = '{AuthorRole.LEAD.value}'"
        clauses.append(_author_exists(condition))

    return clauses


def _order_sql(f: PublicationFilter) -> str:
    if f.order_by == "updated":
        return "p.updated_at DESC NULLS LAST, p.pub_id DESC"
    return "p.year DESC NULLS LAST, p.pub_id DESC"


class PublicationRepository:
    """Repository for publication database operations."""

    def __init__(self, pool: asyncpg.Pool):
        """
        Initialize publication repository.

        Args:
            pool: asyncpg connection pool
        """
        self.pool = pool

    @asynccontextmanager
    async def transaction(self):
        """
        Context manager for database transactions.

        Yields:
            asyncpg.Connection: Database connection
        """
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                yield conn

    # =========================================================================
    # Reads
    # =========================================================================

    async def get_publication(
        self,
        pub_id: int,
        statuses: Optional[Iterable[str]] = None
    ) -> Optional[Dict[str, Any]]:
        """
        Get one publication with its venue type.

        Args:
            pub_id: Publication ID
            statuses: When given, rows in other statuses are treated as missing

        Returns:
            Publication row or None
        """
        try:
            async with self.pool.acquire() as conn:
                params: List[Any] = [pub_id]
                where = "p.pub_id = $1"
                if statuses is not None:
                    params.append(list(statuses))
                    where += " AND p.status = ANY($2::text[])"

                row = await conn.fetchrow(
                    f"SELECT {PUBLICATION_COLUMNS} {_FROM} WHERE {where}",
                    *params
                )

                if not row:
                    logger.debug("publication_not_found", pub_id=pub_id)
                    return None

                return dict(row)

        except Exception as e:
            logger.error("publication_get_failed", error=str(e), pub_id=pub_id)
            raise

    async def authors_for(self, pub_ids: List[int]) -> Dict[int, List[Dict[str, Any]]]:
        """
        Authors of several publications in one query, ordered by author_order.

        Returns:
            pub_id -> author dicts
        """
        result: Dict[int, List[Dict[str, Any]]] = {pub_id: [] for pub_id in pub_ids}
        if not pub_ids:
            return result

        try:
            async with self.pool.acquire() as conn:
                rows = await conn.fetch(
                    """
                    SELECT pp.pub_id, pp.author_order, pp.role,
                           pe.person_id, pe.full_name, pe.email, pe.affiliation,
                           pe.person_type, pe.user_id
                    FROM publication_person pp
                    JOIN person pe ON pe.person_id = pp.person_id
                    WHERE pp.pub_id = ANY($1::bigint[])
                    ORDER BY pp.pub_id, pp.author_order ASC, pe.person_id ASC
                    """,
                    list(pub_ids)
                )

                for row in rows:
                    author = dict(row)
                    result.setdefault(author.pop("pub_id"), []).append(author)
                return result

        except Exception as e:
            logger.error("publication_authors_failed", error=str(e), count=len(pub_ids))
            raise

    async def categories_for(self, pub_ids: List[int]) -> Dict[int, List[Dict[str, Any]]]:
        """
        Category links of several publications, ordered by name.

        Returns:
            pub_id -> [{category_id, category_name}]
        """
        result: Dict[int, List[Dict[str, Any]]] = {pub_id: [] for pub_id in pub_ids}
        if not pub_ids:
            return result

        try:
            async with self.pool.acquire() as conn:
                rows = await conn.fetch(
                    """
                    SELECT cp.pub_id, c.category_id, c.category_name
                    FROM category_publication cp
                    JOIN category c ON c.category_id = cp.category_id
                    WHERE cp.pub_id = ANY($1::bigint[])
                    ORDER BY c.category_name ASC
                    """,
                    list(pub_ids)
                )

                for row in rows:
                    item = dict(row)
                    result.setdefault(item.pop("pub_id"), []).append(item)
                return result

        except Exception as e:
            logger.error("publication_categories_failed", error=str(e), count=len(pub_ids))
            raise

    async def search_publications(self, f: PublicationFilter) -> Tuple[List[Dict[str, Any]], int]:
        """
        Filtered, ordered and paged publication rows.

        Args:
            f: Filter parameters; page_size None returns every row

        Returns:
            Tuple of (rows, total matching rows)
        """
        try:
            async with self.pool.acquire() as conn:
                params: List[Any] = []
                clauses = build_publication_where(f, params)
                where_sql = f"WHERE {' AND '.join(clauses)}" if clauses else ""

                total = await conn.fetchval(f"SELECT COUNT(*) {_FROM} {where_sql}", *params)

                paging = ""
                if f.page_size is not None:
                    params.extend([f.page_size, f.offset])
                    paging = f"LIMIT ${len(params) - 1} OFFSET ${len(params)}"

                rows = await conn.fetch(
                    f"""
                    SELECT {PUBLICATION_COLUMNS}
                    {_FROM}
                    {where_sql}
                    ORDER BY {_order_sql(f)}
                    {paging}
                    """,
                    *params
                )

                return [dict(row) for row in rows], int(total or 0)

        except Exception as e:
            logger.error("publication_search_failed", error=str(e))
            raise

    async def list_with_relations(self, f: PublicationFilter) -> Tuple[List[Dict[str, Any]], int]:
        """
        Like search_publications(), with ``authors`` and ``categories``
        (names) attached to every row.
        """
        rows, total = await self.search_publications(f)
        pub_ids = [row["pub_id"] for row in rows]
        authors = await self.authors_for(pub_ids)
        categories = await self.categories_for(pub_ids)
        for row in rows:
            row["authors"] = authors.get(row["pub_id"], [])
            row["categories"] = [c["category_name"] for c in categories.get(row["pub_id"], [])]
        return rows, total

    async def count_by_status(self, f: PublicationFilter) -> Dict[str, int]:
        """
        Publication counts per status under a filter (its status list is ignored).

        Returns:
            status -> count, with a "total" entry
        """
        try:
            async with self.pool.acquire() as conn:
                params: List[Any] = []
                clauses = build_publication_where(f.model_copy(update={"statuses": []}), params)
                where_sql = f"WHERE {' AND '.join(clauses)}" if clauses else ""

                rows = await conn.fetch(
                    f"SELECT p.status, COUNT(*) AS n {_FROM} {where_sql} GROUP BY p.status",
                    *params
                )

                counters = {status.value: 0 for status in PublicationStatus}
                counters["total"] = 0
                for row in rows:
                    counters[row["status"]] = counters.get(row["status"], 0) + int(row["n"])
                    counters["total"] += int(row["n"])
                return counters

        except Exception as e:
            logger.error("publication_count_failed", error=str(e))
            raise

    # =========================================================================
    # Writes
    # =========================================================================

    async def _ensure_person(self, conn: asyncpg.Connection, author: AuthorInput) -> int:
        """Match a person by email, then by exact name; insert when missing."""
        person_id = None
        if author.email:
            person_id = await conn.fetchval(
                "SELECT person_id FROM person WHERE lower(email) = $1 ORDER BY person_id LIMIT 1",
                author.email
            )
        if person_id is None:
            person_id = await conn.fetchval(
                "SELECT person_id FROM person WHERE full_name = $1 ORDER BY person_id LIMIT 1",
                author.full_name
            )
        if person_id is None:
            person_id = await conn.fetchval(
                """
                INSERT INTO person (full_name, email, affiliation, person_type)
                VALUES ($1, $2, $3, $4)
                RETURNING person_id
                """,
                author.full_name,
                author.email,
                author.affiliation,
                (author.person_type or "").upper() or None
            )
            logger.debug("person_created", person_id=person_id)
        return person_id

    async def _ensure_category(self, conn: asyncpg.Connection, name: str) -> int:
        category_id = await conn.fetchval(
            "SELECT category_id FROM category WHERE lower(category_name) = lower($1)",
            name
        )
        if category_id is None:
            category_id = await conn.fetchval(
                """
                INSERT INTO category (category_name, status, created_at, updated_at)
                VALUES ($1, 'ACTIVE', NOW(), NOW())
                ON CONFLICT (category_name) DO UPDATE SET category_name = EXCLUDED.category_name
                RETURNING category_id
                """,
                name
            )
            logger.debug("category_created", category_id=category_id, name=name)
        return category_id

    async def _replace_authors(self, conn: asyncpg.Connection, pub_id: int, authors: List[AuthorInput]) -> None:
        await conn.execute("DELETE FROM publication_person WHERE pub_id = $1", pub_id)
        for index, author in enumerate(authors):
            person_id = await self._ensure_person(conn, author)
            role = (author.role or "").upper() or (
                AuthorRole.LEAD.value if index == 0 else AuthorRole.CO_AUTHOR.value
            )
            await conn.execute(
                """
                INSERT INTO publication_person (pub_id, person_id, author_order, role)
                VALUES ($1, $2, $3, $4)
                ON CONFLICT (pub_id, person_id) DO NOTHING
                """,
                pub_id,
                person_id,
                author.author_order or index + 1,
                role
            )

    async def _replace_category_links(self, conn: asyncpg.Connection, pub_id: int, category_ids: List[int]) -> None:
        await conn.execute("DELETE FROM category_publication WHERE pub_id = $1", pub_id)
        for category_id in dict.fromkeys(category_ids):
            await conn.execute(
                "INSERT INTO category_publication (pub_id, category_id) VALUES ($1, $2) ON CONFLICT DO NOTHING",
                pub_id,
                category_id
            )

    async def create_publication(self, data: PublicationCreateRequest, user_id: Optional[int]) -> int:
        """
        Create a publication with its authors and categories in one transaction.

        Authors are matched to existing persons (email first, then exact name);
        unknown categories are created ACTIVE. The initial status is recorded
        in the status history.

        Returns:
            New publication ID
        """
        try:
            async with self.transaction() as conn:
                pub_id = await conn.fetchval(
                    """
                    INSERT INTO publication (
                        pub_name, abstract, venue_id, venue_name, level, year, status,
                        has_pdf, link_url, created_at, updated_at
                    )
                    VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, NOW(), NOW())
                    RETURNING pub_id
                    """,
                    data.pub_name,
                    data.abstract,
                    data.venue_id,
                    data.venue_name,
                    data.level,
                    data.year,
                    data.status,
                    data.has_pdf,
                    data.link_url
                )

                await self._replace_authors(conn, pub_id, data.authors)

                category_ids = [await self._ensure_category(conn, name) for name in data.categories]
                await self._replace_category_links(conn, pub_id, category_ids)

                await conn.execute(
                    """
                    INSERT INTO publication_status_history (pub_id, status, note, user_id, changed_by, changed_at)
                    VALUES ($1, $2, $3, $4, $4, NOW())
                    """,
                    pub_id,
                    data.status,
                    "created",
                    user_id
                )

                logger.info(
                    "publication_created",
                    pub_id=pub_id,
                    user_id=user_id,
                    authors=len(data.authors),
                    categories=len(category_ids)
                )
                return pub_id

        except Exception as e:
            logger.error("publication_create_failed", error=str(e), user_id=user_id)
            raise

    async def update_publication(
        self,
        pub_id: int,
        fields: Dict[str, Any],
        user_id: Optional[int],
        changes: List[FieldChange],
        authors: Optional[List[AuthorInput]] = None,
        category_ids: Optional[List[int]] = None,
        status_note: Optional[str] = None
    ) -> Optional[Dict[str, Any]]:
        """
        Update publication columns and record the edit in one transaction.

        Args:
            pub_id: Publication ID
            fields: Column -> value; keys outside UPDATABLE_COLUMNS are ignored
            user_id: Editing user
            changes: Edit-log rows to write (already diffed by the caller)
            authors: Replacement author list, when given
            category_ids: Replacement category links, when given
            status_note: Note for the status-history row written on a status change

        Returns:
            Updated row (without venue type) or None if the publication is missing
        """
        updates = []
        params: List[Any] = []
        for column in UPDATABLE_COLUMNS:
            if column in fields:
                params.append(fields[column])
                updates.append(f"{column} = ${len(params)}")
        updates.append("updated_at = NOW()")
        params.append(pub_id)

        try:
            async with self.transaction() as conn:
                row = await conn.fetchrow(
                    f"""
                    UPDATE publication
                    SET {', '.join(updates)}
                    WHERE pub_id = ${len(params)}
                    RETURNING pub_id, pub_name, abstract, venue_id, venue_name, level, year,
                              status, has_pdf, file_path, link_url, created_at, updated_at
                    """,
                    *params
                )
                if not row:
                    return None

                if authors is not None:
                    await self._replace_authors(conn, pub_id, authors)
                if category_ids is not None:
                    await self._replace_category_links(conn, pub_id, category_ids)

                for change in changes:
                    await conn.execute(
                        """
                        INSERT INTO publication_edit_log (pub_id, user_id, field_name, old_value, new_value, edited_at)
                        VALUES ($1, $2, $3, $4, $5, NOW())
                        """,
                        pub_id,
                        user_id,
                        change.field,
                        change.old_value,
                        change.new_value
                    )

                if any(change.field == "status" for change in changes):
                    await conn.execute(
                        """
                        INSERT INTO publication_status_history (pub_id, status, note, user_id, changed_by, changed_at)
                        VALUES ($1, $2, $3, $4, $4, NOW())
                        """,
                        pub_id,
                        row["status"],
                        status_note,
                        user_id
                    )

                logger.info(
                    "publication_updated",
                    pub_id=pub_id,
                    user_id=user_id,
                    fields=[change.field for change in changes]
                )
                return dict(row)

        except Exception as e:
            logger.error("publication_update_failed", error=str(e), pub_id=pub_id)
            raise

    async def apply_review_decision(
        self,
        pub_id: int,
        status: str,
        action: str,
        note: Optional[str],
        reviewer_id: int
    ) -> Optional[Dict[str, Any]]:
        """
        Move a publication to a new status on a reviewer's decision.

        In one transaction: update the status, append the status history, record
        the review action and, for revision requests, notify the users behind
        the lead authors.

        Returns:
            {pub_id, pub_name, status} or None if the publication is missing
        """
        try:
            async with self.transaction() as conn:
                row = await conn.fetchrow(
                    """
                    UPDATE publication SET status = $1, updated_at = NOW()
                    WHERE pub_id = $2
                    RETURNING pub_id, pub_name, status
                    """,
                    status,
                    pub_id
                )
                if not row:
                    return None

                await conn.execute(
                    """
                    INSERT INTO publication_status_history (pub_id, status, note, user_id, changed_by, changed_at)
                    VALUES ($1, $2, $3, $4, $4, NOW())
                    """,
                    pub_id,
                    status,
                    note,
                    reviewer_id
                )
                await conn.execute(
                    """
                    INSERT INTO review_action (pub_id, user_id, reviewer_user_id, action, comment, created_at)
                    VALUES ($1, $2, $2, $3, $4, NOW())
                    """,
                    pub_id,
                    reviewer_id,
                    action,
                    note
                )

                if status == PublicationStatus.NEEDS_REVISION.value:
                    await conn.execute(
                        """
                        INSERT INTO notification (user_id, pub_id, message, is_read, created_at)
                        SELECT DISTINCT pe.user_id, $1, $2, false, NOW()
                        FROM publication_person pp
                        JOIN person pe ON pe.person_id = pp.person_id
                        WHERE pp.pub_id = $1 AND upper(pp.role) = 'LEAD' AND pe.user_id IS NOT NULL
                        """,
                        pub_id,
                        note or "revision requested"
                    )

                logger.info(
                    "publication_reviewed",
                    pub_id=pub_id,
                    reviewer_id=reviewer_id,
                    action=action,
                    status=status
                )
                return dict(row)

        except Exception as e:
            logger.error("publication_review_failed", error=str(e), pub_id=pub_id, action=action)
            raise

    async def delete_publication(self, pub_id: int) -> Optional[Dict[str, Any]]:
        """
        Delete a publication and every dependent row in one transaction.

        Returns:
            {pub_id, file_path} of the deleted row, or None if it was missing
        """
        try:
            async with self.transaction() as conn:
                row = await conn.fetchrow(
                    "SELECT pub_id, file_path FROM publication WHERE pub_id = $1 FOR UPDATE",
                    pub_id
                )
                if not row:
                    return None

                for table in _CHILD_TABLES:
                    await conn.execute(f"DELETE FROM {table} WHERE pub_id = $1", pub_id)
                await conn.execute("DELETE FROM publication WHERE pub_id = $1", pub_id)

                logger.info("publication_deleted", pub_id=pub_id)
                return dict(row)

        except Exception as e:
            logger.error("publication_delete_failed", error=str(e), pub_id=pub_id)
            raise
