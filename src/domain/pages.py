"""
Pages - Club and society pages with a flat admin/member permission model.

Page admins may edit the page and add members; any member may post to
it. There is no role hierarchy beyond that single admin check.
"""

import logging
import re
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID

from .exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from .models import FeedPage, Page, PageRole, PageView, utcnow
from .pagination import clamp_limit, decode_cursor
from .ports import CredentialStore, PageRepository, SocialRepository
from .social import build_feed_page

logger = logging.getLogger(__name__)

PAGE_CATEGORIES: dict[str, str] = {
    "dramatics": "Dramatics",
    "sports": "Sports",
    "tech": "Technology",
    "cultural": "Cultural",
    "academic": "Academic",
    "music": "Music",
    "art": "Art",
    "photography": "Photography",
    "social": "Social",
    "other": "Other",
}

MAX_DESCRIPTION_LENGTH = 500

_SLUG_SEPARATORS = re.compile(r"[^a-z0-9]+")


def slugify(name: str) -> str:
    """Lower-case a name and collapse every non-alphanumeric run to one dash."""
    return _SLUG_SEPARATORS.sub("-", name.lower()).strip("-")


def _check_name(name: str) -> str:
    name = name.strip()
    if not 2 <= len(name) <= 100:
        raise ValidationError("page name must be 2-100 characters")
    return name


def _check_category(category: str) -> str:
    if category not in PAGE_CATEGORIES:
        raise ValidationError(f"category must be one of: {', '.join(PAGE_CATEGORIES)}")
    return category


def _check_description(description: str | None) -> str | None:
    if description is None:
        return None
    description = description.strip()
    if len(description) > MAX_DESCRIPTION_LENGTH:
        raise ValidationError(f"description must be at most {MAX_DESCRIPTION_LENGTH} characters")
    return description or None


@dataclass
class PageService:
    store: CredentialStore
    pages: PageRepository
    social: SocialRepository
    clock: Callable[[], datetime] = field(default=utcnow)

    def create_page(
        self, user_id: UUID, name: str, category: str, description: str | None = None
    ) -> PageView:
        """
        Create a page; the creator becomes its first admin.

        Raises:
            ValidationError: Bad name, category or description
            ConflictError: Another page already has the same slug
        """
        name = _check_name(name)
        slug = slugify(name)
        if not slug:
            raise ValidationError("page name must contain letters or digits")

        page = Page(
            id=uuid.uuid4(),
            name=name,
            slug=slug,
            category=_check_category(category),
            created_by=user_id,
            description=_check_description(description),
            created_at=self.clock(),
        )
        self.pages.insert_page(page)
        logger.info("Page %s created by %s", slug, user_id)
        return self._view(page, user_id)

    def list_pages(
        self,
        viewer_id: UUID | None = None,
        category: str | None = None,
        search: str | None = None,
        limit: int = 20,
    ) -> list[PageView]:
        if category is not None:
            _check_category(category)
        search = search.strip() if search else None
        pages = self.pages.list_pages(category, search or None, clamp_limit(limit))
        return [self._view(page, viewer_id) for page in pages]

    def get_page(self, slug: str, viewer_id: UUID | None = None) -> PageView:
        page = self.pages.get_page_by_slug(slug)
        if page is None:
            raise NotFoundError("page not found")
        return self._view(page, viewer_id)

    def update_page(
        self,
        page_id: UUID,
        user_id: UUID,
        name: str | None = None,
        category: str | None = None,
        description: str | None = None,
    ) -> PageView:
        """
        Edit a page; the slug stays fixed so links keep working.

        Raises:
            NotFoundError: No such page
            ForbiddenError: The caller is not a page admin
        """
        self._require_admin(page_id, user_id)
        changes: dict[str, object] = {}
        if name is not None:
            changes["name"] = _check_name(name)
        if category is not None:
            changes["category"] = _check_category(category)
        if description is not None:
            changes["description"] = _check_description(description)

        page = self.pages.update_page(page_id, **changes) if changes else self.pages.get_page(page_id)
        if page is None:
            raise NotFoundError("page not found")
        return self._view(page, user_id)

    def add_member(self, page_id: UUID, admin_id: UUID, member_id: UUID) -> None:
        """
        Raises:
            ForbiddenError: The caller is not a page admin
            NotFoundError: No such page or user
            ConflictError: The user is already a member
        """
        self._require_admin(page_id, admin_id)
        with self.store.transaction() as session:
            member = session.get_identity_by_id(member_id)
        if member is None or not member.is_active:
            raise NotFoundError("user not found")
        if not self.pages.add_member(page_id, member_id, PageRole.MEMBER):
            raise ConflictError("user is already a member of this page")

    def follow_page(self, user_id: UUID, page_id: UUID) -> None:
        self._require_page(page_id)
        if not self.pages.follow_page(user_id, page_id):
            raise ConflictError("already following this page")

    def unfollow_page(self, user_id: UUID, page_id: UUID) -> None:
        self._require_page(page_id)
        if not self.pages.unfollow_page(user_id, page_id):
            raise NotFoundError("not following this page")

    def page_posts(
        self, page_id: UUID, viewer_id: UUID | None = None, limit: int = 20, cursor: str | None = None
    ) -> FeedPage:
        self._require_page(page_id)
        limit = clamp_limit(limit)
        posts = self.social.list_page_posts(page_id, limit + 1, decode_cursor(cursor))
        return build_feed_page(self.social, posts, limit, viewer_id)

    def _require_page(self, page_id: UUID) -> Page:
        page = self.pages.get_page(page_id)
        if page is None:
            raise NotFoundError("page not found")
        return page

    def _require_admin(self, page_id: UUID, user_id: UUID) -> Page:
        page = self._require_page(page_id)
        if self.pages.member_role(page_id, user_id) is not PageRole.ADMIN:
            raise ForbiddenError("only page admins can do this")
        return page

    def _view(self, page: Page, viewer_id: UUID | None) -> PageView:
        if viewer_id is None:
            return PageView(page=page, stats=self.pages.page_stats(page.id))
        return PageView(
            page=page,
            stats=self.pages.page_stats(page.id),
            is_following=self.pages.is_following_page(viewer_id, page.id),
            role=self.pages.member_role(page.id, viewer_id),
        )
