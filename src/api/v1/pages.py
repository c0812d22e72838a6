"""
API v1 page routes - Club and society pages, membership and page posts.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from src.api.dependencies import get_page_service, require_user
from src.api.models import (
    AddMemberRequest,
    CategoryListData,
    CategoryOut,
    CreatePageRequest,
    Envelope,
    ErrorResponse,
    FeedData,
    MessageData,
    PageListData,
    PageOut,
    UpdatePageRequest,
)
from src.domain.models import AuthenticatedUser
from src.domain.pages import PAGE_CATEGORIES, PageService
from src.domain.pagination import MAX_PAGE_SIZE

router = APIRouter(prefix="/pages", tags=["pages"], dependencies=[Depends(require_user)])

_NOT_FOUND = {404: {"model": ErrorResponse, "description": "Page not found"}}
_ADMIN_ONLY = {403: {"model": ErrorResponse, "description": "Only page admins can do this"}}


@router.get("", response_model=Envelope[PageListData], summary="Browse pages, most followed first")
def list_pages(
    category: str | None = Query(default=None),
    search: str | None = Query(default=None, max_length=100),
    limit: int = Query(default=20, ge=1, le=MAX_PAGE_SIZE),
    user: AuthenticatedUser = Depends(require_user),
    service: PageService = Depends(get_page_service),
) -> Envelope[PageListData]:
    views = service.list_pages(user.id, category=category, search=search, limit=limit)
    return Envelope(data=PageListData(pages=[PageOut.from_view(v) for v in views]))


@router.post(
    "",
    response_model=Envelope[PageOut],
    status_code=status.HTTP_201_CREATED,
    responses={409: {"model": ErrorResponse, "description": "A page with a similar name exists"}},
    summary="Create a page",
)
def create_page(
    request_data: CreatePageRequest,
    user: AuthenticatedUser = Depends(require_user),
    service: PageService = Depends(get_page_service),
) -> Envelope[PageOut]:
    view = service.create_page(
        user.id, request_data.name, request_data.category, description=request_data.description
    )
    return Envelope(data=PageOut.from_view(view))


@router.get("/meta/categories", response_model=Envelope[CategoryListData], summary="Page categories")
def list_categories() -> Envelope[CategoryListData]:
    categories = [CategoryOut(id=key, name=name) for key, name in PAGE_CATEGORIES.items()]
    return Envelope(data=CategoryListData(categories=categories))


@router.get("/{slug}", response_model=Envelope[PageOut], responses=_NOT_FOUND, summary="Get a page")
def get_page(
    slug: str,
    user: AuthenticatedUser = Depends(require_user),
    service: PageService = Depends(get_page_service),
) -> Envelope[PageOut]:
    return Envelope(data=PageOut.from_view(service.get_page(slug, user.id)))


@router.put(
    "/{page_id}",
    response_model=Envelope[PageOut],
    responses={**_ADMIN_ONLY, **_NOT_FOUND},
    summary="Edit a page",
)
def update_page(
    page_id: UUID,
    request_data: UpdatePageRequest,
    user: AuthenticatedUser = Depends(require_user),
    service: PageService = Depends(get_page_service),
) -> Envelope[PageOut]:
    view = service.update_page(page_id, user.id, **request_data.model_dump(exclude_unset=True))
    return Envelope(data=PageOut.from_view(view))


@router.post(
    "/{page_id}/members",
    response_model=Envelope[MessageData],
    status_code=status.HTTP_201_CREATED,
    responses={**_ADMIN_ONLY, **_NOT_FOUND, 409: {"model": ErrorResponse, "description": "Already a member"}},
    summary="Add a member to a page",
)
def add_member(
    page_id: UUID,
    request_data: AddMemberRequest,
    user: AuthenticatedUser = Depends(require_user),
    service: PageService = Depends(get_page_service),
) -> Envelope[MessageData]:
    service.add_member(page_id, user.id, request_data.user_id)
    return Envelope(data=MessageData(message="Member added"))


@router.post(
    "/{page_id}/follow",
    response_model=Envelope[MessageData],
    responses={**_NOT_FOUND, 409: {"model": ErrorResponse, "description": "Already following"}},
    summary="Follow a page",
)
def follow_page(
    page_id: UUID,
    user: AuthenticatedUser = Depends(require_user),
    service: PageService = Depends(get_page_service),
) -> Envelope[MessageData]:
    service.follow_page(user.id, page_id)
    return Envelope(data=MessageData(message="Page followed"))


@router.delete(
    "/{page_id}/follow",
    response_model=Envelope[MessageData],
    responses=_NOT_FOUND,
    summary="Unfollow a page",
)
def unfollow_page(
    page_id: UUID,
    user: AuthenticatedUser = Depends(require_user),
    service: PageService = Depends(get_page_service),
) -> Envelope[MessageData]:
    service.unfollow_page(user.id, page_id)
    return Envelope(data=MessageData(message="Page unfollowed"))


@router.get(
    "/{page_id}/posts",
    response_model=Envelope[FeedData],
    responses=_NOT_FOUND,
    summary="Posts published to a page, newest first",
)
def page_posts(
    page_id: UUID,
    limit: int = Query(default=20, ge=1, le=MAX_PAGE_SIZE),
    cursor: str | None = Query(default=None, max_length=200),
    user: AuthenticatedUser = Depends(require_user),
    service: PageService = Depends(get_page_service),
) -> Envelope[FeedData]:
    page = service.page_posts(page_id, user.id, limit=limit, cursor=cursor)
    return Envelope(data=FeedData.from_page(page))
