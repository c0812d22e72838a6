"""
Port interfaces - Protocol definitions for infrastructure abstraction.

This module defines the interfaces (ports) that the domain requires
from infrastructure. Adapters implement these protocols.
"""

from contextlib import AbstractContextManager
from datetime import datetime
from typing import Protocol
from uuid import UUID

from .models import (
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
)


class CredentialSession(Protocol):
    """
    Operations on identities, one-time codes and refresh tokens.

    A session is only valid inside ``CredentialStore.transaction()``;
    everything done through it commits or rolls back together.
    """

    def get_identity_by_id(self, identity_id: UUID) -> Identity | None: ...

    def get_identity_by_email(self, email: str) -> Identity | None: ...

    def get_identity_by_username(self, username: str) -> Identity | None: ...

    def insert_identity(self, identity: Identity) -> None:
        """
        Insert a new identity.

        Raises:
            ConflictError: If the email or username is already taken
        """
        ...

    def update_identity(self, identity_id: UUID, **changes: object) -> Identity | None:
        """
        Apply field changes to an identity.

        Returns:
            The updated identity, or None if no identity has this id
        """
        ...

    def delete_codes(self, email: str, purpose: CodePurpose) -> int:
        """Delete every code for (email, purpose); returns rows removed."""
        ...

    def insert_code(self, code: OneTimeCode) -> None: ...

    def consume_code(self, email: str, code: str, purpose: CodePurpose, now: datetime) -> bool:
        """
        Atomically mark a matching unconsumed, unexpired code as used.

        Returns:
            True if exactly one code was consumed, False otherwise
        """
        ...

    def has_pending_code(self, email: str, purpose: CodePurpose, now: datetime) -> bool: ...

    def insert_refresh_token(self, record: RefreshTokenRecord) -> None: ...

    def take_refresh_token(self, token_hash: str, user_id: UUID, now: datetime) -> bool:
        """
        Atomically delete an unexpired refresh token owned by user_id.

        Returns:
            True if a row was deleted (the caller won the rotation)
        """
        ...

    def delete_refresh_tokens(self, token_hash: str) -> int:
        """Delete all rows with this digest; returns rows removed."""
        ...


class CredentialStore(Protocol):
    """Port interface for credential persistence."""

    def transaction(self) -> AbstractContextManager[CredentialSession]:
        """Open a unit of work that commits on exit and rolls back on error."""
        ...


class SocialRepository(Protocol):
    """Port interface for follows, posts, likes, comments and profile counts."""

    def count_stats(self, user_id: UUID) -> IdentityStats: ...

    def follow(self, follower_id: UUID, following_id: UUID) -> bool:
        """Create a follow edge; returns False if it already existed."""
        ...

    def unfollow(self, follower_id: UUID, following_id: UUID) -> bool:
        """Remove a follow edge; returns False if there was none."""
        ...

    def is_following(self, follower_id: UUID, following_id: UUID) -> bool: ...

    def following_ids(self, user_id: UUID) -> list[UUID]: ...

    def list_followers(self, user_id: UUID, limit: int) -> list[Identity]: ...

    def list_following(self, user_id: UUID, limit: int) -> list[Identity]: ...

    def insert_post(self, post: Post) -> None: ...

    def get_post(self, post_id: UUID) -> Post | None: ...

    def delete_post(self, post_id: UUID) -> bool: ...

    def list_posts(self, author_ids: list[UUID], limit: int, cursor: Cursor | None) -> list[Post]:
        """
        Posts by any of author_ids ordered by (created_at, id) descending.

        With a cursor, only rows strictly below (cursor.created_at, cursor.id)
        are returned.
        """
        ...

    def list_page_posts(self, page_id: UUID, limit: int, cursor: Cursor | None) -> list[Post]:
        """Posts published to a page, with the same ordering as list_posts."""
        ...

    def post_stats(self, post_ids: list[UUID], viewer_id: UUID | None) -> dict[UUID, PostStats]:
        """Like and comment counts per post; is_liked is relative to viewer_id."""
        ...

    def like(self, user_id: UUID, post_id: UUID) -> bool:
        """Record a like; returns False if the user already liked the post."""
        ...

    def unlike(self, user_id: UUID, post_id: UUID) -> bool:
        """Remove a like; returns False if there was none."""
        ...

    def insert_comment(self, comment: Comment) -> None: ...

    def get_comment(self, comment_id: UUID) -> Comment | None: ...

    def list_comments(self, post_id: UUID, limit: int) -> list[Comment]:
        """Top-level comments on a post, newest first."""
        ...


class PageRepository(Protocol):
    """Port interface for pages, their members and their followers."""

    def insert_page(self, page: Page) -> None:
        """
        Insert a page and make its creator an admin member.

        Raises:
            ConflictError: A page with the same slug exists
        """
        ...

    def update_page(self, page_id: UUID, **changes: object) -> Page | None: ...

    def get_page(self, page_id: UUID) -> Page | None: ...

    def get_page_by_slug(self, slug: str) -> Page | None: ...

    def list_pages(self, category: str | None, search: str | None, limit: int) -> list[Page]:
        """
        Pages ordered by follower count, most followed first.

        search matches a case-insensitive substring of name or description.
        """
        ...

    def page_stats(self, page_id: UUID) -> PageStats: ...

    def member_role(self, page_id: UUID, user_id: UUID) -> PageRole | None: ...

    def add_member(self, page_id: UUID, user_id: UUID, role: PageRole) -> bool:
        """Add a member; returns False if the user already belongs to the page."""
        ...

    def follow_page(self, user_id: UUID, page_id: UUID) -> bool: ...

    def unfollow_page(self, user_id: UUID, page_id: UUID) -> bool: ...

    def is_following_page(self, user_id: UUID, page_id: UUID) -> bool: ...


class MessageRepository(Protocol):
    """Port interface for conversations and messages."""

    def open_direct(self, user_a: UUID, user_b: UUID, now: datetime) -> tuple[Conversation, bool]:
        """
        Return the direct conversation between two users, creating it if needed.

        Returns:
            The conversation and True if this call created it
        """
        ...

    def get_conversation(self, conversation_id: UUID) -> Conversation | None: ...

    def is_participant(self, conversation_id: UUID, user_id: UUID) -> bool: ...

    def participant_ids(self, conversation_id: UUID) -> list[UUID]: ...

    def list_conversations(self, user_id: UUID) -> list[Conversation]:
        """Conversations user_id takes part in, most recently active first."""
        ...

    def last_message(self, conversation_id: UUID) -> Message | None: ...

    def last_read_at(self, conversation_id: UUID, user_id: UUID) -> datetime | None: ...

    def insert_message(self, message: Message) -> None:
        """Persist a message and move the conversation's updated_at to its time."""
        ...

    def list_messages(self, conversation_id: UUID, limit: int, cursor: Cursor | None) -> list[Message]:
        """Messages ordered by (created_at, id) descending, below cursor if given."""
        ...

    def mark_read(self, conversation_id: UUID, user_id: UUID, at: datetime) -> None: ...

    def count_unread(self, user_id: UUID) -> int:
        """
        Messages from other participants newer than user_id's last read time,
        across every conversation user_id takes part in.
        """
        ...


class MessagePublisher(Protocol):
    """Port interface for handing persisted messages to real-time delivery."""

    def publish(self, channel: str, event: str, payload: dict[str, object]) -> None:
        """
        Raises:
            DeliveryError: If the event could not be handed off
        """
        ...


class EmailSender(Protocol):
    """Port interface for email delivery."""

    def send_verification_code(self, email: str, code: str) -> None:
        """
        Send verification code to email address.

        Args:
            email: Recipient email address
            code: 6-digit verification code

        Raises:
            DeliveryError: If the message could not be sent
        """
        ...

    def send_welcome(self, email: str, name: str) -> None:
        """
        Send the welcome message after account creation.

        Raises:
            DeliveryError: If the message could not be sent
        """
        ...


class PasswordHasher(Protocol):
    """Port interface for slow one-way password hashing."""

    def hash(self, password: str) -> str: ...

    def verify(self, password: str, digest: str | None) -> bool:
        """
        Compare a password to a digest in constant time.

        A None digest must still cost one full hash comparison and
        return False, so callers cannot be timed on missing accounts.
        """
        ...
