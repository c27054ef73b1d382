"""Aggregate all v1 API routers."""

from fastapi import APIRouter
from app.api.v1.health import router as health_router
from app.api.v1.cities import router as cities_router
from app.api.v1.status import router as status_router

# Mounted at the root: POST /cities, GET /status/{cityId}, GET /health
v1_router = APIRouter()
v1_router.include_router(health_router, tags=["health"])
v1_router.include_router(cities_router, tags=["cities"])
v1_router.include_router(status_router, tags=["status"])
