"""
API request and response models.

Pydantic models for FastAPI endpoint validation and OpenAPI schema generation.
JSON fields are camelCase on the wire; Python attributes stay snake_case.
"""

import re
from datetime import datetime
from typing import Any, Generic, TypeVar
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel

from src.domain.models import (
    Comment,
    ConversationSummary,
    FeedPage,
    Message,
    MessagePage,
    PageView,
    Post,
    PostView,
    Profile,
    PublicIdentity,
)

DataT = TypeVar("DataT")

_PASSWORD_RULES = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)")


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Envelope(BaseModel, Generic[DataT]):
    """Success envelope shared by every endpoint."""

    success: bool = True
    data: DataT


class ErrorDetail(BaseModel):
    message: str
    code: str
    details: list[dict[str, Any]] | None = None


class ErrorResponse(BaseModel):
    """Standard error response model."""

    success: bool = False
    error: ErrorDetail


# Requests


class InitiateRegistrationRequest(CamelModel):
    """Request model for starting registration."""

    email: EmailStr


class CompleteRegistrationRequest(CamelModel):
    """Request model for verifying the code and creating the account."""

    email: EmailStr
    otp: str = Field(..., pattern=r"^[0-9]{6}$", description="6-digit verification code")
    password: str = Field(..., min_length=8, max_length=72, description="User password (min 8 characters)")
    full_name: str = Field(..., min_length=2, max_length=100)
    username: str = Field(..., min_length=3, max_length=30, pattern=r"^[a-zA-Z0-9_]+$")
    branch: str | None = Field(default=None, max_length=100)
    year: str | None = Field(default=None, max_length=20)

    @field_validator("password")
    @classmethod
    def _password_strength(cls, value: str) -> str:
        if not _PASSWORD_RULES.match(value):
            raise ValueError("Password must contain uppercase, lowercase, and number")
        return value

    @field_validator("full_name", "username")
    @classmethod
    def _strip(cls, value: str) -> str:
        return value.strip()


class LoginRequest(CamelModel):
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)


class RefreshTokenRequest(CamelModel):
    """Refresh token in the body, for clients that cannot use cookies."""

    refresh_token: str | None = None


class UpdateProfileRequest(CamelModel):
    full_name: str | None = Field(default=None, min_length=2, max_length=100)
    bio: str | None = Field(default=None, max_length=200)
    branch: str | None = Field(default=None, max_length=100)
    year: str | None = Field(default=None, max_length=20)
    avatar_url: str | None = Field(default=None, max_length=2048)


class CreatePostRequest(CamelModel):
    content: str = Field(..., min_length=1, max_length=5000)
    media_urls: list[str] = Field(default_factory=list, max_length=4)
    page_id: UUID | None = None


class CreateCommentRequest(CamelModel):
    content: str = Field(..., min_length=1, max_length=1000)
    parent_id: UUID | None = None


class CreatePageRequest(CamelModel):
    name: str = Field(..., min_length=2, max_length=100)
    category: str
    description: str | None = Field(default=None, max_length=500)


class UpdatePageRequest(CamelModel):
    name: str | None = Field(default=None, min_length=2, max_length=100)
    category: str | None = None
    description: str | None = Field(default=None, max_length=500)


class AddMemberRequest(CamelModel):
    user_id: UUID


class OpenConversationRequest(CamelModel):
    participant_id: UUID


class SendMessageRequest(CamelModel):
    content: str = Field(..., min_length=1, max_length=2000)
    media_url: str | None = Field(default=None, max_length=2048)


# Responses


class MessageData(CamelModel):
    message: str


class InitiateRegistrationData(CamelModel):
    """Response model for a sent verification code."""

    message: str
    email: str
    expires_in_minutes: int


class UserOut(CamelModel):
    id: UUID
    email: str
    full_name: str
    username: str
    avatar_url: str | None = None
    bio: str | None = None
    branch: str | None = None
    year: str | None = None
    is_verified: bool
    created_at: datetime

    @classmethod
    def from_identity(cls, identity: PublicIdentity) -> "UserOut":
        return cls.model_validate(identity, from_attributes=True)


class CountsOut(CamelModel):
    posts: int
    followers: int
    following: int


class CurrentUserOut(UserOut):
    counts: CountsOut


class ProfileOut(UserOut):
    counts: CountsOut
    is_following: bool
    is_own_profile: bool

    @classmethod
    def from_profile(cls, profile: Profile) -> "ProfileOut":
        return cls(
            **UserOut.from_identity(profile.identity).model_dump(),
            counts=CountsOut.model_validate(profile.stats, from_attributes=True),
            is_following=profile.is_following,
            is_own_profile=profile.is_own_profile,
        )


class AuthData(CamelModel):
    """Response model for login and registration completion."""

    user: UserOut
    access_token: str


class AccessTokenData(CamelModel):
    access_token: str


class UserListData(CamelModel):
    users: list[UserOut]


class PostOut(CamelModel):
    id: UUID
    user_id: UUID
    page_id: UUID | None = None
    content: str
    media_urls: list[str]
    likes_count: int = 0
    comments_count: int = 0
    is_liked: bool = False
    created_at: datetime

    @classmethod
    def from_post(cls, post: Post) -> "PostOut":
        return cls(
            id=post.id,
            user_id=post.user_id,
            page_id=post.page_id,
            content=post.content,
            media_urls=list(post.media_urls),
            created_at=post.created_at,
        )

    @classmethod
    def from_view(cls, view: PostView) -> "PostOut":
        return cls.from_post(view.post).model_copy(
            update={
                "likes_count": view.stats.likes,
                "comments_count": view.stats.comments,
                "is_liked": view.stats.is_liked,
            }
        )


class FeedData(CamelModel):
    posts: list[PostOut]
    has_more: bool
    next_cursor: str | None = Field(
        default=None, description="Opaque; pass back as `cursor` to fetch the next page"
    )

    @classmethod
    def from_page(cls, page: FeedPage) -> "FeedData":
        return cls(
            posts=[PostOut.from_view(v) for v in page.posts],
            has_more=page.has_more,
            next_cursor=page.next_cursor,
        )


class CommentOut(CamelModel):
    id: UUID
    post_id: UUID
    user_id: UUID
    parent_id: UUID | None = None
    content: str
    created_at: datetime

    @classmethod
    def from_comment(cls, comment: Comment) -> "CommentOut":
        return cls.model_validate(comment, from_attributes=True)


class CommentListData(CamelModel):
    comments: list[CommentOut]


class PageCountsOut(CamelModel):
    followers: int
    members: int
    posts: int


class PageOut(CamelModel):
    id: UUID
    name: str
    slug: str
    description: str | None = None
    category: str
    created_by: UUID
    created_at: datetime
    counts: PageCountsOut
    is_following: bool = False
    user_role: str | None = None

    @classmethod
    def from_view(cls, view: PageView) -> "PageOut":
        page = view.page
        return cls(
            id=page.id,
            name=page.name,
            slug=page.slug,
            description=page.description,
            category=page.category,
            created_by=page.created_by,
            created_at=page.created_at,
            counts=PageCountsOut.model_validate(view.stats, from_attributes=True),
            is_following=view.is_following,
            user_role=view.role.value if view.role else None,
        )


class PageListData(CamelModel):
    pages: list[PageOut]


class CategoryOut(CamelModel):
    id: str
    name: str


class CategoryListData(CamelModel):
    categories: list[CategoryOut]


class MessageOut(CamelModel):
    id: UUID
    conversation_id: UUID
    sender_id: UUID
    content: str
    media_url: str | None = None
    created_at: datetime

    @classmethod
    def from_message(cls, message: Message) -> "MessageOut":
        return cls.model_validate(message, from_attributes=True)


class ParticipantOut(CamelModel):
    id: UUID
    full_name: str
    username: str
    avatar_url: str | None = None


class ConversationOut(CamelModel):
    id: UUID
    type: str = "direct"
    participants: list[ParticipantOut]
    last_message: MessageOut | None = None
    last_read_at: datetime | None = None
    updated_at: datetime

    @classmethod
    def from_summary(cls, summary: ConversationSummary) -> "ConversationOut":
        return cls(
            id=summary.conversation.id,
            participants=[ParticipantOut.model_validate(p, from_attributes=True) for p in summary.participants],
            last_message=MessageOut.from_message(summary.last_message) if summary.last_message else None,
            last_read_at=summary.last_read_at,
            updated_at=summary.conversation.updated_at,
        )


class ConversationListData(CamelModel):
    conversations: list[ConversationOut]


class MessagePageData(CamelModel):
    messages: list[MessageOut]
    has_more: bool
    next_cursor: str | None = None

    @classmethod
    def from_page(cls, page: MessagePage) -> "MessagePageData":
        return cls(
            messages=[MessageOut.from_message(m) for m in page.messages],
            has_more=page.has_more,
            next_cursor=page.next_cursor,
        )


class UnreadCountData(CamelModel):
    unread_count: int
