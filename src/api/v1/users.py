"""
API v1 user routes - Profiles and follows.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from src.api.dependencies import get_profile_service, optional_user, require_user
from src.api.models import (
    Envelope,
    ErrorResponse,
    MessageData,
    ProfileOut,
    UpdateProfileRequest,
    UserListData,
    UserOut,
)
from src.domain.models import AuthenticatedUser
from src.domain.pagination import MAX_PAGE_SIZE
from src.domain.social import ProfileService

router = APIRouter(prefix="/users", tags=["users"])


@router.put(
    "/profile",
    response_model=Envelope[ProfileOut],
    responses={401: {"model": ErrorResponse, "description": "Not authenticated"}},
    summary="Update your profile",
)
def update_profile(
    request_data: UpdateProfileRequest,
    user: AuthenticatedUser = Depends(require_user),
    service: ProfileService = Depends(get_profile_service),
) -> Envelope[ProfileOut]:
    profile = service.update_profile(user.id, **request_data.model_dump(exclude_unset=True))
    return Envelope(data=ProfileOut.from_profile(profile))


@router.get(
    "/{username}",
    response_model=Envelope[ProfileOut],
    responses={404: {"model": ErrorResponse, "description": "User not found"}},
    summary="Get a profile by username",
    description="Works anonymously; a signed-in viewer also gets isFollowing and isOwnProfile.",
)
def get_profile(
    username: str,
    viewer: AuthenticatedUser | None = Depends(optional_user),
    service: ProfileService = Depends(get_profile_service),
) -> Envelope[ProfileOut]:
    profile = service.get_profile(username, viewer.id if viewer is not None else None)
    return Envelope(data=ProfileOut.from_profile(profile))


@router.post(
    "/{user_id}/follow",
    response_model=Envelope[MessageData],
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse, "description": "Cannot follow yourself"},
        404: {"model": ErrorResponse, "description": "User not found"},
        409: {"model": ErrorResponse, "description": "Already following"},
    },
    summary="Follow a user",
)
def follow(
    user_id: UUID,
    user: AuthenticatedUser = Depends(require_user),
    service: ProfileService = Depends(get_profile_service),
) -> Envelope[MessageData]:
    service.follow(user.id, user_id)
    return Envelope(data=MessageData(message="Followed successfully"))


@router.delete(
    "/{user_id}/follow",
    response_model=Envelope[MessageData],
    responses={404: {"model": ErrorResponse, "description": "Not following this user"}},
    summary="Unfollow a user",
)
def unfollow(
    user_id: UUID,
    user: AuthenticatedUser = Depends(require_user),
    service: ProfileService = Depends(get_profile_service),
) -> Envelope[MessageData]:
    service.unfollow(user.id, user_id)
    return Envelope(data=MessageData(message="Unfollowed successfully"))


@router.get("/{user_id}/followers", response_model=Envelope[UserListData], summary="List followers")
def list_followers(
    user_id: UUID,
    limit: int = Query(default=20, ge=1, le=MAX_PAGE_SIZE),
    service: ProfileService = Depends(get_profile_service),
) -> Envelope[UserListData]:
    users = service.list_followers(user_id, limit)
    return Envelope(data=UserListData(users=[UserOut.from_identity(u) for u in users]))


@router.get("/{user_id}/following", response_model=Envelope[UserListData], summary="List followed users")
def list_following(
    user_id: UUID,
    limit: int = Query(default=20, ge=1, le=MAX_PAGE_SIZE),
    service: ProfileService = Depends(get_profile_service),
) -> Envelope[UserListData]:
    users = service.list_following(user_id, limit)
    return Envelope(data=UserListData(users=[UserOut.from_identity(u) for u in users]))
