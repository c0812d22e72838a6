"""
PostgreSQL page repository - Implements PageRepository protocol.

Creating a page and its first admin membership is one transaction; the
unique slug constraint turns a duplicate name into ``ConflictError``.
"""

from uuid import UUID

from psycopg import errors, sql
from psycopg.rows import dict_row

from src.domain.exceptions import ConflictError
from src.domain.models import Page, PageRole, PageStats

from .postgres import PooledRepository

_PAGE_COLUMNS = "id, name, slug, description, category, created_by, created_at"
_UPDATABLE_PAGE_COLUMNS = frozenset({"name", "description", "category"})


class PostgresPageRepository(PooledRepository):
    """Implements PageRepository protocol via psycopg3."""

    def insert_page(self, page: Page) -> None:
        try:
            with self._pool.connection() as conn, conn.transaction(), conn.cursor() as cursor:
                cursor.execute(
                    f"""
                    INSERT INTO pages ({_PAGE_COLUMNS})
                    VALUES (%s, %s, %s, %s, %s, %s, %s)
                    """,
                    (
                        page.id,
                        page.name,
                        page.slug,
                        page.description,
                        page.category,
                        page.created_by,
                        page.created_at,
                    ),
                )
                cursor.execute(
                    "INSERT INTO page_members (page_id, user_id, role) VALUES (%s, %s, %s)",
                    (page.id, page.created_by, PageRole.ADMIN.value),
                )
        except errors.UniqueViolation:
            raise ConflictError("a page with a similar name already exists") from None

    def update_page(self, page_id: UUID, **changes: object) -> Page | None:
        unknown = set(changes) - _UPDATABLE_PAGE_COLUMNS
        if unknown:
            raise ValueError(f"Cannot update page columns: {sorted(unknown)}")
        if not changes:
            return self.get_page(page_id)

        assignments = sql.SQL(", ").join(
            sql.SQL("{} = %s").format(sql.Identifier(column)) for column in changes
        )
        query = sql.SQL("UPDATE pages SET {} WHERE id = %s RETURNING " + _PAGE_COLUMNS).format(assignments)
        with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
            cursor.execute(query, (*changes.values(), page_id))
            row = cursor.fetchone()
        return Page(**row) if row else None

    def get_page(self, page_id: UUID) -> Page | None:
        rows = self._fetchall(f"SELECT {_PAGE_COLUMNS} FROM pages WHERE id = %s", (page_id,))
        return Page(**rows[0]) if rows else None

    def get_page_by_slug(self, slug: str) -> Page | None:
        rows = self._fetchall(f"SELECT {_PAGE_COLUMNS} FROM pages WHERE slug = %s", (slug,))
        return Page(**rows[0]) if rows else None

    def list_pages(self, category: str | None, search: str | None, limit: int) -> list[Page]:
        columns = ", ".join(f"p.{c.strip()}" for c in _PAGE_COLUMNS.split(","))
        rows = self._fetchall(
            f"""
            SELECT {columns}
            FROM pages p
            LEFT JOIN page_follows f ON f.page_id = p.id
            WHERE (%(category)s::text IS NULL OR p.category = %(category)s)
              AND (%(pattern)s::text IS NULL
                   OR p.name ILIKE %(pattern)s
                   OR p.description ILIKE %(pattern)s)
            GROUP BY p.id
            ORDER BY COUNT(f.user_id) DESC, p.created_at DESC
            LIMIT %(limit)s
            """,
            {"category": category, "pattern": _like_pattern(search), "limit": limit},
        )
        return [Page(**row) for row in rows]

    def page_stats(self, page_id: UUID) -> PageStats:
        rows = self._fetchall(
            """
            SELECT
                (SELECT COUNT(*) FROM page_follows WHERE page_id = %(id)s) AS followers,
                (SELECT COUNT(*) FROM page_members WHERE page_id = %(id)s) AS members,
                (SELECT COUNT(*) FROM posts WHERE page_id = %(id)s) AS posts
            """,
            {"id": page_id},
        )
        return PageStats(**rows[0])

    def member_role(self, page_id: UUID, user_id: UUID) -> PageRole | None:
        rows = self._fetchall(
            "SELECT role FROM page_members WHERE page_id = %s AND user_id = %s", (page_id, user_id)
        )
        return PageRole(rows[0]["role"]) if rows else None

    def add_member(self, page_id: UUID, user_id: UUID, role: PageRole) -> bool:
        inserted = self._rowcount(
            """
            INSERT INTO page_members (page_id, user_id, role)
            VALUES (%s, %s, %s)
            ON CONFLICT (page_id, user_id) DO NOTHING
            """,
            (page_id, user_id, role.value),
        )
        return inserted == 1

    def follow_page(self, user_id: UUID, page_id: UUID) -> bool:
        inserted = self._rowcount(
            """
            INSERT INTO page_follows (user_id, page_id)
            VALUES (%s, %s)
            ON CONFLICT (user_id, page_id) DO NOTHING
            """,
            (user_id, page_id),
        )
        return inserted == 1

    def unfollow_page(self, user_id: UUID, page_id: UUID) -> bool:
        deleted = self._rowcount(
            "DELETE FROM page_follows WHERE user_id = %s AND page_id = %s", (user_id, page_id)
        )
        return deleted == 1

    def is_following_page(self, user_id: UUID, page_id: UUID) -> bool:
        rows = self._fetchall(
            "SELECT 1 FROM page_follows WHERE user_id = %s AND page_id = %s", (user_id, page_id)
        )
        return bool(rows)


def _like_pattern(search: str | None) -> str | None:
    if not search:
        return None
    escaped = search.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"
