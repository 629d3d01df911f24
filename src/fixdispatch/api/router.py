"""Main API router combining all endpoints."""

from fastapi import APIRouter

from fixdispatch.api import dispatch, operations

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(operations.router)
api_router.include_router(dispatch.router)
