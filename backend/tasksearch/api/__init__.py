"""API router package."""

from fastapi import APIRouter

from tasksearch.api.v1 import health, search

router = APIRouter()

router.include_router(health.router, tags=["Health"])
router.include_router(search.router, prefix="/ai", tags=["Search"])
