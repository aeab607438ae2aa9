"""
API v1 router initialization and setup.
"""
from fastapi import APIRouter
from .endpoints import clusters, realtime, reports, users, verifications, votes

api_router = APIRouter()

api_router.include_router(
    users.router,
    prefix="/users",
    tags=["users"]
)

# static /reports/* paths before /reports/{report_id}
api_router.include_router(
    clusters.router,
    prefix="/reports",
    tags=["clusters"]
)

api_router.include_router(
    reports.router,
    prefix="/reports",
    tags=["reports"]
)

api_router.include_router(
    votes.router,
    prefix="/reports",
    tags=["votes"]
)

api_router.include_router(
    verifications.router,
    tags=["verifications"]
)

api_router.include_router(
    realtime.router,
    tags=["realtime"]
)
