"""API route aggregation.

All sub-routers are collected into a single api_router that the
app factory mounts under the configured prefix.
"""

from fastapi import APIRouter

from caselaw.api.routes import cases, health, search, sources

api_router = APIRouter()
api_router.include_router(health.router)
api_router.include_router(search.router)
api_router.include_router(cases.router)
api_router.include_router(sources.router)
