"""
PostgreSQL repository adapter - Implements CredentialStore and SocialRepository.

Pages and messages live in ``postgres_pages`` and ``postgres_messages`` on
the same ``PooledRepository`` base.

This module provides the PostgreSQL implementation of the domain's
repository ports using psycopg3 with raw SQL.

Atomicity Design:
----------------
Every ``CredentialStore.transaction()`` is one database transaction on one
pooled connection. The operations that must never let two live credentials
coexist are single statements whose row count decides the outcome:

1. **consume_code**: ``UPDATE ... SET used_at ... WHERE used_at IS NULL
   AND expires_at > now RETURNING id``. Two concurrent completions with the
   same code cannot both get a row back.

2. **take_refresh_token**: ``DELETE ... WHERE token_hash AND user_id AND
   expires_at > now RETURNING id``. Only one concurrent refresh with the same
   token wins the delete; the loser sees zero rows and is rejected.

3. **issue**: ``delete_codes`` + ``insert_code`` run in one transaction, and
   the partial unique index on live codes rejects a concurrent second insert.

Unique violations on users are translated to ``ConflictError`` so the
surrounding transaction rolls back with a domain error.
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from uuid import UUID

from psycopg import Connection, errors, sql
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from src.domain.exceptions import ConflictError
from src.domain.models import (
    CodePurpose,
    Comment,
    Cursor,
    Identity,
    IdentityStats,
    OneTimeCode,
    Post,
    PostStats,
    RefreshTokenRecord,
)

logger = logging.getLogger(__name__)

_IDENTITY_COLUMNS = (
    "id, email, password_hash, full_name, username, avatar_url, bio, branch, year, "
    "is_verified, is_active, last_seen_at, created_at"
)
_UPDATABLE_IDENTITY_COLUMNS = frozenset(
    {"full_name", "avatar_url", "bio", "branch", "year", "is_active", "last_seen_at", "password_hash"}
)
_POST_COLUMNS = "id, user_id, content, media_urls, created_at, page_id"
_COMMENT_COLUMNS = "id, post_id, user_id, content, parent_id, created_at"


def _identity(row: dict | None) -> Identity | None:
    return Identity(**row) if row is not None else None


def _post(row: dict) -> Post:
    return Post(
        id=row["id"],
        user_id=row["user_id"],
        content=row["content"],
        media_urls=tuple(row["media_urls"] or ()),
        created_at=row["created_at"],
        page_id=row["page_id"],
    )


class PostgresCredentialSession:
    """
    Implements CredentialSession protocol on one open transaction.

    Uses structural subtyping - no explicit inheritance from Protocol.
    All SQL uses parameterized queries for security.
    """

    def __init__(self, conn: Connection) -> None:
        self._conn = conn

    def _one(self, query: str | sql.Composed, params: tuple) -> dict | None:
        with self._conn.cursor(row_factory=dict_row) as cursor:
            cursor.execute(query, params)
            return cursor.fetchone()

    def _rowcount(self, query: str, params: tuple) -> int:
        with self._conn.cursor() as cursor:
            cursor.execute(query, params)
            return cursor.rowcount

    def get_identity_by_id(self, identity_id: UUID) -> Identity | None:
        return _identity(self._one(f"SELECT {_IDENTITY_COLUMNS} FROM users WHERE id = %s", (identity_id,)))

    def get_identity_by_email(self, email: str) -> Identity | None:
        return _identity(self._one(f"SELECT {_IDENTITY_COLUMNS} FROM users WHERE email = %s", (email,)))

    def get_identity_by_username(self, username: str) -> Identity | None:
        return _identity(
            self._one(f"SELECT {_IDENTITY_COLUMNS} FROM users WHERE username = %s", (username,))
        )

    def insert_identity(self, identity: Identity) -> None:
        query = f"""
            INSERT INTO users ({_IDENTITY_COLUMNS})
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
        """
        params = (
            identity.id,
            identity.email,
            identity.password_hash,
            identity.full_name,
            identity.username,
            identity.avatar_url,
            identity.bio,
            identity.branch,
            identity.year,
            identity.is_verified,
            identity.is_active,
            identity.last_seen_at,
            identity.created_at,
        )
        try:
            with self._conn.cursor() as cursor:
                cursor.execute(query, params)
        except errors.UniqueViolation as exc:
            if exc.diag.constraint_name == "users_username_key":
                raise ConflictError("username is already taken") from None
            raise ConflictError("user with this email already exists") from None

    def update_identity(self, identity_id: UUID, **changes: object) -> Identity | None:
        unknown = set(changes) - _UPDATABLE_IDENTITY_COLUMNS
        if unknown:
            raise ValueError(f"Cannot update user columns: {sorted(unknown)}")
        if not changes:
            return self.get_identity_by_id(identity_id)

        assignments = sql.SQL(", ").join(
            sql.SQL("{} = %s").format(sql.Identifier(column)) for column in changes
        )
        query = sql.SQL("UPDATE users SET {} WHERE id = %s RETURNING " + _IDENTITY_COLUMNS).format(
            assignments
        )
        return _identity(self._one(query, (*changes.values(), identity_id)))

    def delete_codes(self, email: str, purpose: CodePurpose) -> int:
        return self._rowcount(
            "DELETE FROM otp_codes WHERE email = %s AND purpose = %s",
            (email, purpose.value),
        )

    def insert_code(self, code: OneTimeCode) -> None:
        query = """
            INSERT INTO otp_codes (id, email, code, purpose, expires_at, used_at, created_at)
            VALUES (%s, %s, %s, %s, %s, %s, %s)
        """
        params = (
            code.id,
            code.email,
            code.code,
            code.purpose.value,
            code.expires_at,
            code.used_at,
            code.created_at,
        )
        try:
            with self._conn.cursor() as cursor:
                cursor.execute(query, params)
        except errors.UniqueViolation:
            # A concurrent issue() for the same (email, purpose) committed first
            raise ConflictError("a verification code was just sent, please retry") from None

    def consume_code(self, email: str, code: str, purpose: CodePurpose, now: datetime) -> bool:
        row = self._one(
            """
            UPDATE otp_codes
            SET used_at = %s
            WHERE email = %s
              AND code = %s
              AND purpose = %s
              AND used_at IS NULL
              AND expires_at > %s
            RETURNING id
            """,
            (now, email, code, purpose.value, now),
        )
        return row is not None

    def has_pending_code(self, email: str, purpose: CodePurpose, now: datetime) -> bool:
        row = self._one(
            """
            SELECT 1 FROM otp_codes
            WHERE email = %s AND purpose = %s AND used_at IS NULL AND expires_at > %s
            LIMIT 1
            """,
            (email, purpose.value, now),
        )
        return row is not None

    def insert_refresh_token(self, record: RefreshTokenRecord) -> None:
        with self._conn.cursor() as cursor:
            cursor.execute(
                """
                INSERT INTO refresh_tokens (id, token_hash, user_id, expires_at, created_at)
                VALUES (%s, %s, %s, %s, %s)
                """,
                (record.id, record.token_hash, record.user_id, record.expires_at, record.created_at),
            )

    def take_refresh_token(self, token_hash: str, user_id: UUID, now: datetime) -> bool:
        row = self._one(
            """
            DELETE FROM refresh_tokens
            WHERE token_hash = %s AND user_id = %s AND expires_at > %s
            RETURNING id
            """,
            (token_hash, user_id, now),
        )
        return row is not None

    def delete_refresh_tokens(self, token_hash: str) -> int:
        return self._rowcount("DELETE FROM refresh_tokens WHERE token_hash = %s", (token_hash,))


class PostgresCredentialStore:
    """
    Implements CredentialStore protocol via psycopg3.

    Uses structural subtyping - no explicit inheritance from Protocol.
    """

    def __init__(self, pool: ConnectionPool) -> None:
        """
        Initialize store with connection pool.

        Args:
            pool: psycopg3 ConnectionPool for database connections
        """
        self._pool = pool

    @contextmanager
    def transaction(self) -> Iterator[PostgresCredentialSession]:
        with self._pool.connection() as conn, conn.transaction():
            yield PostgresCredentialSession(conn)


class PooledRepository:
    """Base for repositories whose methods each run on their own pooled connection."""

    def __init__(self, pool: ConnectionPool) -> None:
        self._pool = pool

    def _fetchall(self, query: str, params: tuple | dict) -> list[dict]:
        with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
            cursor.execute(query, params)
            return cursor.fetchall()

    def _rowcount(self, query: str, params: tuple | dict) -> int:
        with self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute(query, params)
            return cursor.rowcount


class PostgresSocialRepository(PooledRepository):
    """
    Implements SocialRepository protocol via psycopg3.

    Each method is a single autocommitted statement.
    """

    def count_stats(self, user_id: UUID) -> IdentityStats:
        rows = self._fetchall(
            """
            SELECT
                (SELECT COUNT(*) FROM posts WHERE user_id = %(id)s) AS posts,
                (SELECT COUNT(*) FROM follows WHERE following_id = %(id)s) AS followers,
                (SELECT COUNT(*) FROM follows WHERE follower_id = %(id)s) AS following
            """,
            {"id": user_id},
        )
        row = rows[0]
        return IdentityStats(posts=row["posts"], followers=row["followers"], following=row["following"])

    def follow(self, follower_id: UUID, following_id: UUID) -> bool:
        inserted = self._rowcount(
            """
            INSERT INTO follows (follower_id, following_id)
            VALUES (%s, %s)
            ON CONFLICT (follower_id, following_id) DO NOTHING
            """,
            (follower_id, following_id),
        )
        return inserted == 1

    def unfollow(self, follower_id: UUID, following_id: UUID) -> bool:
        deleted = self._rowcount(
            "DELETE FROM follows WHERE follower_id = %s AND following_id = %s",
            (follower_id, following_id),
        )
        return deleted == 1

    def is_following(self, follower_id: UUID, following_id: UUID) -> bool:
        rows = self._fetchall(
            "SELECT 1 FROM follows WHERE follower_id = %s AND following_id = %s",
            (follower_id, following_id),
        )
        return bool(rows)

    def following_ids(self, user_id: UUID) -> list[UUID]:
        rows = self._fetchall("SELECT following_id FROM follows WHERE follower_id = %s", (user_id,))
        return [row["following_id"] for row in rows]

    def list_followers(self, user_id: UUID, limit: int) -> list[Identity]:
        columns = ", ".join(f"u.{c.strip()}" for c in _IDENTITY_COLUMNS.split(","))
        rows = self._fetchall(
            f"""
            SELECT {columns}
            FROM follows f JOIN users u ON u.id = f.follower_id
            WHERE f.following_id = %s AND u.is_active
            ORDER BY f.created_at DESC
            LIMIT %s
            """,
            (user_id, limit),
        )
        return [Identity(**row) for row in rows]

    def list_following(self, user_id: UUID, limit: int) -> list[Identity]:
        columns = ", ".join(f"u.{c.strip()}" for c in _IDENTITY_COLUMNS.split(","))
        rows = self._fetchall(
            f"""
            SELECT {columns}
            FROM follows f JOIN users u ON u.id = f.following_id
            WHERE f.follower_id = %s AND u.is_active
            ORDER BY f.created_at DESC
            LIMIT %s
            """,
            (user_id, limit),
        )
        return [Identity(**row) for row in rows]

    def insert_post(self, post: Post) -> None:
        self._rowcount(
            """
            INSERT INTO posts (id, user_id, content, media_urls, created_at, page_id)
            VALUES (%s, %s, %s, %s, %s, %s)
            """,
            (post.id, post.user_id, post.content, list(post.media_urls), post.created_at, post.page_id),
        )

    def get_post(self, post_id: UUID) -> Post | None:
        rows = self._fetchall(
            f"SELECT {_POST_COLUMNS} FROM posts WHERE id = %s",
            (post_id,),
        )
        return _post(rows[0]) if rows else None

    def delete_post(self, post_id: UUID) -> bool:
        return self._rowcount("DELETE FROM posts WHERE id = %s", (post_id,)) == 1

    def list_posts(self, author_ids: list[UUID], limit: int, cursor: Cursor | None) -> list[Post]:
        return self._keyset_posts("user_id = ANY(%(owner)s)", author_ids, limit, cursor)

    def list_page_posts(self, page_id: UUID, limit: int, cursor: Cursor | None) -> list[Post]:
        return self._keyset_posts("page_id = %(owner)s", page_id, limit, cursor)

    def _keyset_posts(self, owner_clause: str, owner: object, limit: int, cursor: Cursor | None) -> list[Post]:
        rows = self._fetchall(
            f"""
            SELECT {_POST_COLUMNS}
            FROM posts
            WHERE {owner_clause}
              AND (%(cursor_at)s::timestamptz IS NULL
                   OR (created_at, id) < (%(cursor_at)s::timestamptz, %(cursor_id)s::uuid))
            ORDER BY created_at DESC, id DESC
            LIMIT %(limit)s
            """,
            {
                "owner": owner,
                "cursor_at": cursor.created_at if cursor else None,
                "cursor_id": cursor.id if cursor else None,
                "limit": limit,
            },
        )
        return [_post(row) for row in rows]

    def post_stats(self, post_ids: list[UUID], viewer_id: UUID | None) -> dict[UUID, PostStats]:
        rows = self._fetchall(
            """
            SELECT
                p.id,
                (SELECT COUNT(*) FROM likes l WHERE l.post_id = p.id) AS likes,
                (SELECT COUNT(*) FROM comments c WHERE c.post_id = p.id) AS comments,
                EXISTS (
                    SELECT 1 FROM likes l WHERE l.post_id = p.id AND l.user_id = %(viewer)s
                ) AS is_liked
            FROM posts p
            WHERE p.id = ANY(%(ids)s)
            """,
            {"ids": post_ids, "viewer": viewer_id},
        )
        return {
            row["id"]: PostStats(likes=row["likes"], comments=row["comments"], is_liked=row["is_liked"])
            for row in rows
        }

    def like(self, user_id: UUID, post_id: UUID) -> bool:
        inserted = self._rowcount(
            """
            INSERT INTO likes (user_id, post_id)
            VALUES (%s, %s)
            ON CONFLICT (user_id, post_id) DO NOTHING
            """,
            (user_id, post_id),
        )
        return inserted == 1

    def unlike(self, user_id: UUID, post_id: UUID) -> bool:
        return self._rowcount("DELETE FROM likes WHERE user_id = %s AND post_id = %s", (user_id, post_id)) == 1

    def insert_comment(self, comment: Comment) -> None:
        self._rowcount(
            """
            INSERT INTO comments (id, post_id, user_id, parent_id, content, created_at)
            VALUES (%s, %s, %s, %s, %s, %s)
            """,
            (comment.id, comment.post_id, comment.user_id, comment.parent_id, comment.content, comment.created_at),
        )

    def get_comment(self, comment_id: UUID) -> Comment | None:
        rows = self._fetchall(f"SELECT {_COMMENT_COLUMNS} FROM comments WHERE id = %s", (comment_id,))
        return Comment(**rows[0]) if rows else None

    def list_comments(self, post_id: UUID, limit: int) -> list[Comment]:
        rows = self._fetchall(
            f"""
            SELECT {_COMMENT_COLUMNS}
            FROM comments
            WHERE post_id = %s AND parent_id IS NULL
            ORDER BY created_at DESC, id DESC
            LIMIT %s
            """,
            (post_id, limit),
        )
        return [Comment(**row) for row in rows]


def run_migrations(pool: ConnectionPool) -> None:
    """
    Execute all SQL migration files from the migrations directory.

    Migrations are executed in sorted order (alphabetically by filename).
    Each migration should be idempotent (use IF NOT EXISTS, etc.).

    Args:
        pool: psycopg3 ConnectionPool instance
    """
    # Structure: src/adapters/repository/postgres.py -> migrations/
    migrations_dir = Path(__file__).parent.parent.parent.parent / "migrations"

    if not migrations_dir.exists():
        logger.warning("Migrations directory not found: %s", migrations_dir)
        return

    sql_files = sorted(migrations_dir.glob("*.sql"))

    if not sql_files:
        logger.info("No migration files found")
        return

    logger.info("Running %d migration(s)", len(sql_files))

    for sql_file in sql_files:
        logger.info("Executing migration: %s", sql_file.name)
        try:
            sql_content = sql_file.read_text()

            with pool.connection() as conn:
                conn.execute(sql_content)

            logger.info("Migration complete: %s", sql_file.name)
        except Exception as e:
            logger.error("Migration failed: %s - %s", sql_file.name, e)
            raise RuntimeError(f"Database migration failed: {sql_file.name}") from e
