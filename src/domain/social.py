"""
Profiles, follows, posts, likes and comments.

The feed is the reverse-chronological union of the caller's own posts and
posts by the accounts they follow; there is no ranking.
"""

import logging
import uuid
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID

from .exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from .models import Comment, FeedPage, Identity, Post, PostStats, PostView, Profile, PublicIdentity, utcnow
from .pagination import clamp_limit, decode_cursor, encode_cursor
from .ports import CredentialStore, PageRepository, SocialRepository

logger = logging.getLogger(__name__)

MAX_POST_LENGTH = 5000
MAX_MEDIA_URLS = 4
MAX_COMMENT_LENGTH = 1000

_PROFILE_FIELDS = ("full_name", "bio", "branch", "year", "avatar_url")


@dataclass
class ProfileService:
    store: CredentialStore
    social: SocialRepository

    def get_profile(self, username: str, viewer_id: UUID | None = None) -> Profile:
        """
        Look up a profile by username.

        Anonymous viewers get the same profile with both viewer flags False.

        Raises:
            NotFoundError: No active identity has this username
        """
        with self.store.transaction() as session:
            identity = session.get_identity_by_username(username)
        if identity is None or not identity.is_active:
            raise NotFoundError("user not found")
        return self._profile(identity, viewer_id)

    def update_profile(self, identity_id: UUID, **changes: str | None) -> Profile:
        """
        Update the caller's own profile fields.

        Only full_name, bio, branch, year and avatar_url may change; None
        leaves a field untouched.
        """
        unknown = set(changes) - set(_PROFILE_FIELDS)
        if unknown:
            raise ValidationError(f"cannot update fields: {', '.join(sorted(unknown))}")

        updates = {name: value for name, value in changes.items() if value is not None}
        if "full_name" in updates:
            updates["full_name"] = updates["full_name"].strip()
            if not 2 <= len(updates["full_name"]) <= 100:
                raise ValidationError("full name must be 2-100 characters")

        with self.store.transaction() as session:
            if updates:
                identity = session.update_identity(identity_id, **updates)
            else:
                identity = session.get_identity_by_id(identity_id)
        if identity is None:
            raise NotFoundError("user not found")
        return self._profile(identity, identity_id)

    def follow(self, follower_id: UUID, target_id: UUID) -> None:
        """
        Raises:
            ValidationError: Following yourself
            NotFoundError: Target does not exist or is deactivated
            ConflictError: Already following
        """
        if follower_id == target_id:
            raise ValidationError("cannot follow yourself")
        self._require_active(target_id)
        if not self.social.follow(follower_id, target_id):
            raise ConflictError("already following this user")
        logger.debug("%s followed %s", follower_id, target_id)

    def unfollow(self, follower_id: UUID, target_id: UUID) -> None:
        if not self.social.unfollow(follower_id, target_id):
            raise NotFoundError("not following this user")

    def list_followers(self, user_id: UUID, limit: int = 20) -> list[PublicIdentity]:
        self._require_active(user_id)
        return [i.public() for i in self.social.list_followers(user_id, clamp_limit(limit))]

    def list_following(self, user_id: UUID, limit: int = 20) -> list[PublicIdentity]:
        self._require_active(user_id)
        return [i.public() for i in self.social.list_following(user_id, clamp_limit(limit))]

    def _require_active(self, identity_id: UUID) -> Identity:
        with self.store.transaction() as session:
            identity = session.get_identity_by_id(identity_id)
        if identity is None or not identity.is_active:
            raise NotFoundError("user not found")
        return identity

    def _profile(self, identity: Identity, viewer_id: UUID | None) -> Profile:
        is_own = viewer_id is not None and viewer_id == identity.id
        is_following = (
            viewer_id is not None
            and not is_own
            and self.social.is_following(viewer_id, identity.id)
        )
        return Profile(
            identity=identity.public(),
            stats=self.social.count_stats(identity.id),
            is_following=is_following,
            is_own_profile=is_own,
        )


def build_feed_page(
    social: SocialRepository, posts: list[Post], limit: int, viewer_id: UUID | None
) -> FeedPage:
    """Turn limit + 1 fetched rows into a page of post views and a cursor."""
    has_more = len(posts) > limit
    posts = posts[:limit]
    stats = social.post_stats([p.id for p in posts], viewer_id) if posts else {}
    last = posts[-1] if has_more else None
    return FeedPage(
        posts=[PostView(post=p, stats=stats.get(p.id, PostStats())) for p in posts],
        has_more=has_more,
        next_cursor=encode_cursor(last.created_at, last.id) if last else None,
    )


@dataclass
class PostService:
    social: SocialRepository
    pages: PageRepository | None = None
    clock: Callable[[], datetime] = field(default=utcnow)

    def create_post(
        self,
        user_id: UUID,
        content: str,
        media_urls: Sequence[str] = (),
        page_id: UUID | None = None,
    ) -> Post:
        """
        Publish a post, optionally on a page.

        Raises:
            ValidationError: Content or media out of bounds
            NotFoundError: page_id does not name a page
            ForbiddenError: The author is not a member of the page
        """
        content = content.strip()
        if not 1 <= len(content) <= MAX_POST_LENGTH:
            raise ValidationError(f"content must be 1-{MAX_POST_LENGTH} characters")
        if len(media_urls) > MAX_MEDIA_URLS:
            raise ValidationError(f"at most {MAX_MEDIA_URLS} media URLs are allowed")
        if page_id is not None:
            self._require_page_member(page_id, user_id)

        post = Post(
            id=uuid.uuid4(),
            user_id=user_id,
            content=content,
            media_urls=tuple(media_urls),
            created_at=self.clock(),
            page_id=page_id,
        )
        self.social.insert_post(post)
        return post

    def get_post(self, post_id: UUID) -> Post:
        post = self.social.get_post(post_id)
        if post is None:
            raise NotFoundError("post not found")
        return post

    def view_post(self, post_id: UUID, viewer_id: UUID | None = None) -> PostView:
        post = self.get_post(post_id)
        stats = self.social.post_stats([post.id], viewer_id)
        return PostView(post=post, stats=stats.get(post.id, PostStats()))

    def delete_post(self, post_id: UUID, user_id: UUID) -> None:
        """
        Raises:
            NotFoundError: No such post
            ForbiddenError: The post belongs to someone else
        """
        post = self.get_post(post_id)
        if post.user_id != user_id:
            raise ForbiddenError("you can only delete your own posts")
        self.social.delete_post(post_id)

    def like_post(self, user_id: UUID, post_id: UUID) -> None:
        self.get_post(post_id)
        if not self.social.like(user_id, post_id):
            raise ConflictError("post already liked")

    def unlike_post(self, user_id: UUID, post_id: UUID) -> None:
        self.get_post(post_id)
        if not self.social.unlike(user_id, post_id):
            raise NotFoundError("post not liked")

    def add_comment(
        self, user_id: UUID, post_id: UUID, content: str, parent_id: UUID | None = None
    ) -> Comment:
        """
        Comment on a post, or reply to one of its comments.

        Raises:
            ValidationError: Content out of bounds, or the parent is on another post
            NotFoundError: No such post or parent comment
        """
        content = content.strip()
        if not 1 <= len(content) <= MAX_COMMENT_LENGTH:
            raise ValidationError(f"comment must be 1-{MAX_COMMENT_LENGTH} characters")
        self.get_post(post_id)
        if parent_id is not None:
            parent = self.social.get_comment(parent_id)
            if parent is None:
                raise NotFoundError("comment not found")
            if parent.post_id != post_id:
                raise ValidationError("parent comment belongs to another post")

        comment = Comment(
            id=uuid.uuid4(),
            post_id=post_id,
            user_id=user_id,
            content=content,
            parent_id=parent_id,
            created_at=self.clock(),
        )
        self.social.insert_comment(comment)
        return comment

    def list_comments(self, post_id: UUID, limit: int = 20) -> list[Comment]:
        self.get_post(post_id)
        return self.social.list_comments(post_id, clamp_limit(limit))

    def feed(self, user_id: UUID, limit: int = 20, cursor: str | None = None) -> FeedPage:
        """
        Own posts plus posts by followed accounts, newest first.

        Raises:
            ValidationError: cursor was not issued by a previous feed page
        """
        limit = clamp_limit(limit)
        after = decode_cursor(cursor)
        authors = self.social.following_ids(user_id)
        authors.append(user_id)

        posts = self.social.list_posts(authors, limit + 1, after)
        return build_feed_page(self.social, posts, limit, user_id)

    def _require_page_member(self, page_id: UUID, user_id: UUID) -> None:
        if self.pages is None or self.pages.get_page(page_id) is None:
            raise NotFoundError("page not found")
        if self.pages.member_role(page_id, user_id) is None:
            raise ForbiddenError("only page members can post to this page")
