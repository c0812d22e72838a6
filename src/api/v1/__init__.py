"""
API v1 package.

Combines the versioned auth, user, post, page and message routers.
"""

from fastapi import APIRouter

from src.api.v1.auth import router as auth_router
from src.api.v1.messages import router as messages_router
from src.api.v1.pages import router as pages_router
from src.api.v1.posts import router as posts_router
from src.api.v1.users import router as users_router

router = APIRouter()
router.include_router(auth_router)
router.include_router(users_router)
router.include_router(posts_router)
router.include_router(pages_router)
router.include_router(messages_router)

__all__ = ["router"]
