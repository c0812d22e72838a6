"""
In-memory repository adapter - Implements every repository port.

Used for local development without PostgreSQL and by the test suite.
A single re-entrant lock serializes transactions; a transaction works on
the live tables and restores a snapshot if it raises, which gives the
same all-or-nothing behaviour as the PostgreSQL adapter.
"""

import logging
import secrets
import threading
import uuid
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field, fields, replace
from datetime import datetime
from uuid import UUID

from src.domain.exceptions import ConflictError
from src.domain.models import (
    CodePurpose,
    Comment,
    Conversation,
    Cursor,
    Identity,
    IdentityStats,
    Message,
    OneTimeCode,
    Page,
    PageRole,
    PageStats,
    Post,
    PostStats,
    RefreshTokenRecord,
    utcnow,
)

logger = logging.getLogger(__name__)


@dataclass
class _Tables:
    identities: dict[UUID, Identity] = field(default_factory=dict)
    codes: dict[UUID, OneTimeCode] = field(default_factory=dict)
    refresh_tokens: dict[UUID, RefreshTokenRecord] = field(default_factory=dict)
    # (follower_id, following_id) -> created_at
    follows: dict[tuple[UUID, UUID], datetime] = field(default_factory=dict)
    posts: dict[UUID, Post] = field(default_factory=dict)
    # (user_id, post_id) -> created_at
    likes: dict[tuple[UUID, UUID], datetime] = field(default_factory=dict)
    comments: dict[UUID, Comment] = field(default_factory=dict)
    pages: dict[UUID, Page] = field(default_factory=dict)
    page_members: dict[tuple[UUID, UUID], PageRole] = field(default_factory=dict)
    # (user_id, page_id) -> created_at
    page_follows: dict[tuple[UUID, UUID], datetime] = field(default_factory=dict)
    conversations: dict[UUID, Conversation] = field(default_factory=dict)
    # (conversation_id, user_id) -> last_read_at
    participants: dict[tuple[UUID, UUID], datetime | None] = field(default_factory=dict)
    messages: dict[UUID, Message] = field(default_factory=dict)

    def copy(self) -> "_Tables":
        return _Tables(**{f.name: dict(getattr(self, f.name)) for f in fields(self)})


def _below(created_at: datetime, row_id: UUID, cursor: Cursor | None) -> bool:
    return cursor is None or (created_at, row_id) < (cursor.created_at, cursor.id)


class InMemoryCredentialSession:
    """
    Implements CredentialSession protocol over in-process tables.

    Only valid while the owning store's lock is held.
    """

    def __init__(self, tables: _Tables) -> None:
        self._t = tables

    def get_identity_by_id(self, identity_id: UUID) -> Identity | None:
        return self._t.identities.get(identity_id)

    def get_identity_by_email(self, email: str) -> Identity | None:
        return next((i for i in self._t.identities.values() if i.email == email), None)

    def get_identity_by_username(self, username: str) -> Identity | None:
        return next((i for i in self._t.identities.values() if i.username == username), None)

    def insert_identity(self, identity: Identity) -> None:
        for existing in self._t.identities.values():
            if existing.email == identity.email:
                raise ConflictError("user with this email already exists")
            if existing.username == identity.username:
                raise ConflictError("username is already taken")
        self._t.identities[identity.id] = identity

    def update_identity(self, identity_id: UUID, **changes: object) -> Identity | None:
        identity = self._t.identities.get(identity_id)
        if identity is None:
            return None
        updated = replace(identity, **changes)
        self._t.identities[identity_id] = updated
        return updated

    def delete_codes(self, email: str, purpose: CodePurpose) -> int:
        doomed = [k for k, c in self._t.codes.items() if c.email == email and c.purpose == purpose]
        for key in doomed:
            del self._t.codes[key]
        return len(doomed)

    def insert_code(self, code: OneTimeCode) -> None:
        self._t.codes[code.id] = code

    def consume_code(self, email: str, code: str, purpose: CodePurpose, now: datetime) -> bool:
        for key, row in self._t.codes.items():
            if (
                row.email == email
                and row.purpose == purpose
                and row.used_at is None
                and row.expires_at > now
                and secrets.compare_digest(row.code.encode(), code.encode())
            ):
                self._t.codes[key] = replace(row, used_at=now)
                return True
        return False

    def has_pending_code(self, email: str, purpose: CodePurpose, now: datetime) -> bool:
        return any(
            c.email == email and c.purpose == purpose and c.used_at is None and c.expires_at > now
            for c in self._t.codes.values()
        )

    def insert_refresh_token(self, record: RefreshTokenRecord) -> None:
        self._t.refresh_tokens[record.id] = record

    def take_refresh_token(self, token_hash: str, user_id: UUID, now: datetime) -> bool:
        for key, row in self._t.refresh_tokens.items():
            if row.token_hash == token_hash and row.user_id == user_id and row.expires_at > now:
                del self._t.refresh_tokens[key]
                return True
        return False

    def delete_refresh_tokens(self, token_hash: str) -> int:
        doomed = [k for k, r in self._t.refresh_tokens.items() if r.token_hash == token_hash]
        for key in doomed:
            del self._t.refresh_tokens[key]
        return len(doomed)


class InMemoryStore:
    """
    Implements CredentialStore, SocialRepository, PageRepository and
    MessageRepository protocols in process memory.

    Uses structural subtyping - no explicit inheritance from Protocol.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._tables = _Tables()

    @contextmanager
    def transaction(self) -> Iterator[InMemoryCredentialSession]:
        with self._lock:
            snapshot = self._tables.copy()
            try:
                yield InMemoryCredentialSession(self._tables)
            except BaseException:
                self._tables = snapshot
                logger.debug("In-memory transaction rolled back")
                raise

    def reset(self) -> None:
        """Drop all data (test helper)."""
        with self._lock:
            self._tables = _Tables()

    # Inspection helpers

    def count_codes(self, email: str) -> int:
        with self._lock:
            return sum(1 for c in self._tables.codes.values() if c.email == email)

    def count_refresh_tokens(self, user_id: UUID) -> int:
        with self._lock:
            return sum(1 for r in self._tables.refresh_tokens.values() if r.user_id == user_id)

    # SocialRepository

    def count_stats(self, user_id: UUID) -> IdentityStats:
        with self._lock:
            t = self._tables
            return IdentityStats(
                posts=sum(1 for p in t.posts.values() if p.user_id == user_id),
                followers=sum(1 for (_, followed) in t.follows if followed == user_id),
                following=sum(1 for (follower, _) in t.follows if follower == user_id),
            )

    def follow(self, follower_id: UUID, following_id: UUID) -> bool:
        with self._lock:
            key = (follower_id, following_id)
            if key in self._tables.follows:
                return False
            self._tables.follows[key] = utcnow()
            return True

    def unfollow(self, follower_id: UUID, following_id: UUID) -> bool:
        with self._lock:
            return self._tables.follows.pop((follower_id, following_id), None) is not None

    def is_following(self, follower_id: UUID, following_id: UUID) -> bool:
        with self._lock:
            return (follower_id, following_id) in self._tables.follows

    def following_ids(self, user_id: UUID) -> list[UUID]:
        with self._lock:
            return [followed for (follower, followed) in self._tables.follows if follower == user_id]

    def list_followers(self, user_id: UUID, limit: int) -> list[Identity]:
        with self._lock:
            edges = sorted(
                ((at, follower) for (follower, followed), at in self._tables.follows.items() if followed == user_id),
                reverse=True,
            )
            return self._identities([follower for _, follower in edges], limit)

    def list_following(self, user_id: UUID, limit: int) -> list[Identity]:
        with self._lock:
            edges = sorted(
                ((at, followed) for (follower, followed), at in self._tables.follows.items() if follower == user_id),
                reverse=True,
            )
            return self._identities([followed for _, followed in edges], limit)

    def insert_post(self, post: Post) -> None:
        with self._lock:
            self._tables.posts[post.id] = post

    def get_post(self, post_id: UUID) -> Post | None:
        with self._lock:
            return self._tables.posts.get(post_id)

    def delete_post(self, post_id: UUID) -> bool:
        with self._lock:
            t = self._tables
            if t.posts.pop(post_id, None) is None:
                return False
            t.likes = {k: v for k, v in t.likes.items() if k[1] != post_id}
            t.comments = {k: c for k, c in t.comments.items() if c.post_id != post_id}
            return True

    def list_posts(self, author_ids: list[UUID], limit: int, cursor: Cursor | None) -> list[Post]:
        authors = set(author_ids)
        return self._newest_posts(lambda p: p.user_id in authors, limit, cursor)

    def list_page_posts(self, page_id: UUID, limit: int, cursor: Cursor | None) -> list[Post]:
        return self._newest_posts(lambda p: p.page_id == page_id, limit, cursor)

    def post_stats(self, post_ids: list[UUID], viewer_id: UUID | None) -> dict[UUID, PostStats]:
        with self._lock:
            t = self._tables
            return {
                post_id: PostStats(
                    likes=sum(1 for (_, liked) in t.likes if liked == post_id),
                    comments=sum(1 for c in t.comments.values() if c.post_id == post_id),
                    is_liked=viewer_id is not None and (viewer_id, post_id) in t.likes,
                )
                for post_id in post_ids
            }

    def like(self, user_id: UUID, post_id: UUID) -> bool:
        with self._lock:
            key = (user_id, post_id)
            if key in self._tables.likes:
                return False
            self._tables.likes[key] = utcnow()
            return True

    def unlike(self, user_id: UUID, post_id: UUID) -> bool:
        with self._lock:
            return self._tables.likes.pop((user_id, post_id), None) is not None

    def insert_comment(self, comment: Comment) -> None:
        with self._lock:
            self._tables.comments[comment.id] = comment

    def get_comment(self, comment_id: UUID) -> Comment | None:
        with self._lock:
            return self._tables.comments.get(comment_id)

    def list_comments(self, post_id: UUID, limit: int) -> list[Comment]:
        with self._lock:
            comments = [
                c for c in self._tables.comments.values() if c.post_id == post_id and c.parent_id is None
            ]
        comments.sort(key=lambda c: (c.created_at, c.id), reverse=True)
        return comments[:limit]

    # PageRepository

    def insert_page(self, page: Page) -> None:
        with self._lock:
            if any(p.slug == page.slug for p in self._tables.pages.values()):
                raise ConflictError("a page with a similar name already exists")
            self._tables.pages[page.id] = page
            self._tables.page_members[(page.id, page.created_by)] = PageRole.ADMIN

    def update_page(self, page_id: UUID, **changes: object) -> Page | None:
        with self._lock:
            page = self._tables.pages.get(page_id)
            if page is None:
                return None
            updated = page.with_changes(**changes)
            self._tables.pages[page_id] = updated
            return updated

    def get_page(self, page_id: UUID) -> Page | None:
        with self._lock:
            return self._tables.pages.get(page_id)

    def get_page_by_slug(self, slug: str) -> Page | None:
        with self._lock:
            return next((p for p in self._tables.pages.values() if p.slug == slug), None)

    def list_pages(self, category: str | None, search: str | None, limit: int) -> list[Page]:
        needle = search.lower() if search else None
        with self._lock:
            t = self._tables
            pages = [
                p
                for p in t.pages.values()
                if (category is None or p.category == category)
                and (
                    needle is None
                    or needle in p.name.lower()
                    or needle in (p.description or "").lower()
                )
            ]
            followers = {p.id: sum(1 for (_, page_id) in t.page_follows if page_id == p.id) for p in pages}
        pages.sort(key=lambda p: (followers[p.id], p.created_at), reverse=True)
        return pages[:limit]

    def page_stats(self, page_id: UUID) -> PageStats:
        with self._lock:
            t = self._tables
            return PageStats(
                followers=sum(1 for (_, followed) in t.page_follows if followed == page_id),
                members=sum(1 for (page, _) in t.page_members if page == page_id),
                posts=sum(1 for p in t.posts.values() if p.page_id == page_id),
            )

    def member_role(self, page_id: UUID, user_id: UUID) -> PageRole | None:
        with self._lock:
            return self._tables.page_members.get((page_id, user_id))

    def add_member(self, page_id: UUID, user_id: UUID, role: PageRole) -> bool:
        with self._lock:
            key = (page_id, user_id)
            if key in self._tables.page_members:
                return False
            self._tables.page_members[key] = role
            return True

    def follow_page(self, user_id: UUID, page_id: UUID) -> bool:
        with self._lock:
            key = (user_id, page_id)
            if key in self._tables.page_follows:
                return False
            self._tables.page_follows[key] = utcnow()
            return True

    def unfollow_page(self, user_id: UUID, page_id: UUID) -> bool:
        with self._lock:
            return self._tables.page_follows.pop((user_id, page_id), None) is not None

    def is_following_page(self, user_id: UUID, page_id: UUID) -> bool:
        with self._lock:
            return (user_id, page_id) in self._tables.page_follows

    # MessageRepository

    def open_direct(self, user_a: UUID, user_b: UUID, now: datetime) -> tuple[Conversation, bool]:
        with self._lock:
            t = self._tables
            for conversation_id in {c for (c, user) in t.participants if user == user_a}:
                if set(self._participant_ids(conversation_id)) == {user_a, user_b}:
                    return t.conversations[conversation_id], False

            conversation = Conversation(id=uuid.uuid4(), created_at=now, updated_at=now)
            t.conversations[conversation.id] = conversation
            t.participants[(conversation.id, user_a)] = None
            t.participants[(conversation.id, user_b)] = None
            return conversation, True

    def get_conversation(self, conversation_id: UUID) -> Conversation | None:
        with self._lock:
            return self._tables.conversations.get(conversation_id)

    def is_participant(self, conversation_id: UUID, user_id: UUID) -> bool:
        with self._lock:
            return (conversation_id, user_id) in self._tables.participants

    def participant_ids(self, conversation_id: UUID) -> list[UUID]:
        with self._lock:
            return self._participant_ids(conversation_id)

    def list_conversations(self, user_id: UUID) -> list[Conversation]:
        with self._lock:
            t = self._tables
            conversations = [t.conversations[c] for (c, user) in t.participants if user == user_id]
        conversations.sort(key=lambda c: (c.updated_at, c.id), reverse=True)
        return conversations

    def last_message(self, conversation_id: UUID) -> Message | None:
        newest = self.list_messages(conversation_id, 1, None)
        return newest[0] if newest else None

    def last_read_at(self, conversation_id: UUID, user_id: UUID) -> datetime | None:
        with self._lock:
            return self._tables.participants.get((conversation_id, user_id))

    def insert_message(self, message: Message) -> None:
        with self._lock:
            t = self._tables
            t.messages[message.id] = message
            conversation = t.conversations[message.conversation_id]
            t.conversations[conversation.id] = replace(conversation, updated_at=message.created_at)

    def list_messages(self, conversation_id: UUID, limit: int, cursor: Cursor | None) -> list[Message]:
        with self._lock:
            messages = [
                m
                for m in self._tables.messages.values()
                if m.conversation_id == conversation_id and _below(m.created_at, m.id, cursor)
            ]
        messages.sort(key=lambda m: (m.created_at, m.id), reverse=True)
        return messages[:limit]

    def mark_read(self, conversation_id: UUID, user_id: UUID, at: datetime) -> None:
        with self._lock:
            key = (conversation_id, user_id)
            if key in self._tables.participants:
                current = self._tables.participants[key]
                self._tables.participants[key] = at if current is None else max(current, at)

    def count_unread(self, user_id: UUID) -> int:
        with self._lock:
            t = self._tables
            read_at = {c: at for (c, user), at in t.participants.items() if user == user_id}
            return sum(
                1
                for m in t.messages.values()
                if m.conversation_id in read_at
                and m.sender_id != user_id
                and (read_at[m.conversation_id] is None or m.created_at > read_at[m.conversation_id])
            )

    def _participant_ids(self, conversation_id: UUID) -> list[UUID]:
        return [user for (c, user) in self._tables.participants if c == conversation_id]

    def _newest_posts(self, keep: Callable[[Post], bool], limit: int, cursor: Cursor | None) -> list[Post]:
        with self._lock:
            posts = [
                p for p in self._tables.posts.values() if keep(p) and _below(p.created_at, p.id, cursor)
            ]
        posts.sort(key=lambda p: (p.created_at, p.id), reverse=True)
        return posts[:limit]

    def _identities(self, ids: list[UUID], limit: int) -> list[Identity]:
        found = (self._tables.identities.get(i) for i in ids)
        return [i for i in found if i is not None and i.is_active][:limit]
