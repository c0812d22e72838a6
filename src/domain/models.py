"""
Domain models - Plain dataclasses shared by services and adapters.

Adapters map their rows onto these types; services never see
database rows or HTTP payloads.
"""

from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import Enum
from uuid import UUID


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


class CodePurpose(str, Enum):
    """Purpose tag bound to a one-time code."""

    VERIFICATION = "verification"


class RegistrationState(str, Enum):
    """
    Registration lifecycle per email address.

    State Transitions (forward-only):
    - UNREGISTERED -> CODE_SENT (initiate)
    - CODE_SENT -> VERIFIED_PENDING_CREATE (code consumed inside complete)
    - VERIFIED_PENDING_CREATE -> ACTIVE (identity committed)

    VERIFIED_PENDING_CREATE only exists inside the completion transaction;
    a rollback returns the email to CODE_SENT.
    """

    UNREGISTERED = "UNREGISTERED"
    CODE_SENT = "CODE_SENT"
    VERIFIED_PENDING_CREATE = "VERIFIED_PENDING_CREATE"
    ACTIVE = "ACTIVE"


@dataclass(frozen=True)
class PublicIdentity:
    """Identity fields safe to return to clients."""

    id: UUID
    email: str
    full_name: str
    username: str
    avatar_url: str | None
    bio: str | None
    branch: str | None
    year: str | None
    is_verified: bool
    created_at: datetime


@dataclass(frozen=True)
class Identity:
    """A registered user account."""

    id: UUID
    email: str
    password_hash: str | None
    full_name: str
    username: str
    avatar_url: str | None = None
    bio: str | None = None
    branch: str | None = None
    year: str | None = None
    is_verified: bool = False
    is_active: bool = True
    last_seen_at: datetime | None = None
    created_at: datetime = field(default_factory=utcnow)

    def public(self) -> PublicIdentity:
        """Project onto client-visible fields (password hash excluded)."""
        return PublicIdentity(
            id=self.id,
            email=self.email,
            full_name=self.full_name,
            username=self.username,
            avatar_url=self.avatar_url,
            bio=self.bio,
            branch=self.branch,
            year=self.year,
            is_verified=self.is_verified,
            created_at=self.created_at,
        )

    def with_changes(self, **changes: object) -> "Identity":
        return replace(self, **changes)


@dataclass(frozen=True)
class OneTimeCode:
    """A short-lived proof of email ownership."""

    id: UUID
    email: str
    code: str
    purpose: CodePurpose
    expires_at: datetime
    used_at: datetime | None = None
    created_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class RefreshTokenRecord:
    """A persisted refresh token, stored by digest only."""

    id: UUID
    token_hash: str
    user_id: UUID
    expires_at: datetime
    created_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str


@dataclass(frozen=True)
class AccessClaims:
    identity_id: UUID
    email: str


@dataclass(frozen=True)
class AuthenticatedUser:
    """Identity attached to a request after authentication."""

    id: UUID
    email: str


@dataclass(frozen=True)
class AuthResult:
    user: PublicIdentity
    access_token: str
    refresh_token: str


@dataclass(frozen=True)
class IdentityStats:
    posts: int = 0
    followers: int = 0
    following: int = 0


@dataclass(frozen=True)
class Profile:
    """Public identity plus social counts, as seen by a viewer."""

    identity: PublicIdentity
    stats: IdentityStats
    is_following: bool = False
    is_own_profile: bool = False


@dataclass(frozen=True)
class Post:
    id: UUID
    user_id: UUID
    content: str
    media_urls: tuple[str, ...] = ()
    created_at: datetime = field(default_factory=utcnow)
    page_id: UUID | None = None


@dataclass(frozen=True)
class PostStats:
    likes: int = 0
    comments: int = 0
    is_liked: bool = False


@dataclass(frozen=True)
class PostView:
    """A post with its engagement counts as seen by one viewer."""

    post: Post
    stats: PostStats = field(default_factory=PostStats)


@dataclass(frozen=True)
class Cursor:
    """
    Keyset position in a newest-first listing.

    Rows are ordered by (created_at, id) descending; a page continues with
    rows strictly below this pair, so rows sharing a timestamp are never
    skipped.
    """

    created_at: datetime
    id: UUID


@dataclass(frozen=True)
class FeedPage:
    posts: list[PostView]
    has_more: bool
    next_cursor: str | None


@dataclass(frozen=True)
class Comment:
    id: UUID
    post_id: UUID
    user_id: UUID
    content: str
    parent_id: UUID | None = None
    created_at: datetime = field(default_factory=utcnow)


class PageRole(str, Enum):
    ADMIN = "admin"
    MEMBER = "member"


@dataclass(frozen=True)
class Page:
    """A club or society page that members can post to."""

    id: UUID
    name: str
    slug: str
    category: str
    created_by: UUID
    description: str | None = None
    created_at: datetime = field(default_factory=utcnow)

    def with_changes(self, **changes: object) -> "Page":
        return replace(self, **changes)


@dataclass(frozen=True)
class PageStats:
    followers: int = 0
    members: int = 0
    posts: int = 0


@dataclass(frozen=True)
class PageView:
    page: Page
    stats: PageStats
    is_following: bool = False
    role: PageRole | None = None


@dataclass(frozen=True)
class Conversation:
    id: UUID
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class Message:
    id: UUID
    conversation_id: UUID
    sender_id: UUID
    content: str
    media_url: str | None = None
    created_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class ConversationSummary:
    """A conversation as listed for one participant."""

    conversation: Conversation
    participants: list[PublicIdentity]
    last_message: Message | None = None
    last_read_at: datetime | None = None


@dataclass(frozen=True)
class MessagePage:
    """Messages in chronological order plus the cursor to older ones."""

    messages: list[Message]
    has_more: bool
    next_cursor: str | None
