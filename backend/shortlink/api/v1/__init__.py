"""API v1 package."""
from fastapi import APIRouter

from shortlink.api.v1 import admin, deletion

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(deletion.router, tags=["deletion"])
api_router.include_router(admin.router, tags=["admin"])

__all__ = ["api_router"]
