"""
API v1 post routes - Create, read, delete, likes, comments and the home feed.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from src.api.dependencies import get_post_service, require_user
from src.api.models import (
    CommentListData,
    CommentOut,
    CreateCommentRequest,
    CreatePostRequest,
    Envelope,
    ErrorResponse,
    FeedData,
    MessageData,
    PostOut,
)
from src.domain.models import AuthenticatedUser
from src.domain.pagination import MAX_PAGE_SIZE
from src.domain.social import PostService

router = APIRouter(prefix="/posts", tags=["posts"], dependencies=[Depends(require_user)])

_NOT_FOUND = {404: {"model": ErrorResponse, "description": "Post not found"}}


@router.post(
    "",
    response_model=Envelope[PostOut],
    status_code=status.HTTP_201_CREATED,
    responses={
        401: {"model": ErrorResponse, "description": "Not authenticated"},
        403: {"model": ErrorResponse, "description": "Not a member of the page"},
    },
    summary="Create a post",
)
def create_post(
    request_data: CreatePostRequest,
    user: AuthenticatedUser = Depends(require_user),
    service: PostService = Depends(get_post_service),
) -> Envelope[PostOut]:
    post = service.create_post(
        user.id, request_data.content, request_data.media_urls, page_id=request_data.page_id
    )
    return Envelope(data=PostOut.from_post(post))


@router.get(
    "/feed",
    response_model=Envelope[FeedData],
    responses={400: {"model": ErrorResponse, "description": "Invalid cursor"}},
    summary="Home feed",
    description="Your posts and posts by accounts you follow, newest first. "
    "Pass nextCursor back as `cursor` for the next page.",
)
def feed(
    limit: int = Query(default=20, ge=1, le=MAX_PAGE_SIZE),
    cursor: str | None = Query(default=None, max_length=200),
    user: AuthenticatedUser = Depends(require_user),
    service: PostService = Depends(get_post_service),
) -> Envelope[FeedData]:
    page = service.feed(user.id, limit=limit, cursor=cursor)
    return Envelope(data=FeedData.from_page(page))


@router.get(
    "/{post_id}",
    response_model=Envelope[PostOut],
    responses=_NOT_FOUND,
    summary="Get a post",
)
def get_post(
    post_id: UUID,
    user: AuthenticatedUser = Depends(require_user),
    service: PostService = Depends(get_post_service),
) -> Envelope[PostOut]:
    return Envelope(data=PostOut.from_view(service.view_post(post_id, user.id)))


@router.delete(
    "/{post_id}",
    response_model=Envelope[MessageData],
    responses={
        403: {"model": ErrorResponse, "description": "Not your post"},
        **_NOT_FOUND,
    },
    summary="Delete your post",
)
def delete_post(
    post_id: UUID,
    user: AuthenticatedUser = Depends(require_user),
    service: PostService = Depends(get_post_service),
) -> Envelope[MessageData]:
    service.delete_post(post_id, user.id)
    return Envelope(data=MessageData(message="Post deleted successfully"))


@router.post(
    "/{post_id}/like",
    response_model=Envelope[MessageData],
    responses={409: {"model": ErrorResponse, "description": "Already liked"}, **_NOT_FOUND},
    summary="Like a post",
)
def like_post(
    post_id: UUID,
    user: AuthenticatedUser = Depends(require_user),
    service: PostService = Depends(get_post_service),
) -> Envelope[MessageData]:
    service.like_post(user.id, post_id)
    return Envelope(data=MessageData(message="Post liked"))


@router.delete(
    "/{post_id}/like",
    response_model=Envelope[MessageData],
    responses=_NOT_FOUND,
    summary="Remove your like",
)
def unlike_post(
    post_id: UUID,
    user: AuthenticatedUser = Depends(require_user),
    service: PostService = Depends(get_post_service),
) -> Envelope[MessageData]:
    service.unlike_post(user.id, post_id)
    return Envelope(data=MessageData(message="Post unliked"))


@router.get(
    "/{post_id}/comments",
    response_model=Envelope[CommentListData],
    responses=_NOT_FOUND,
    summary="Top-level comments, newest first",
)
def list_comments(
    post_id: UUID,
    limit: int = Query(default=20, ge=1, le=MAX_PAGE_SIZE),
    service: PostService = Depends(get_post_service),
) -> Envelope[CommentListData]:
    comments = service.list_comments(post_id, limit=limit)
    return Envelope(data=CommentListData(comments=[CommentOut.from_comment(c) for c in comments]))


@router.post(
    "/{post_id}/comments",
    response_model=Envelope[CommentOut],
    status_code=status.HTTP_201_CREATED,
    responses=_NOT_FOUND,
    summary="Comment on a post or reply to a comment",
)
def add_comment(
    post_id: UUID,
    request_data: CreateCommentRequest,
    user: AuthenticatedUser = Depends(require_user),
    service: PostService = Depends(get_post_service),
) -> Envelope[CommentOut]:
    comment = service.add_comment(user.id, post_id, request_data.content, parent_id=request_data.parent_id)
    return Envelope(data=CommentOut.from_comment(comment))
