"""Agregador de routers de la API."""
from fastapi import APIRouter
from schedsync.api.routers import health, schedules, sync

api_router = APIRouter()
api_router.include_router(health.router)
api_router.include_router(schedules.router)
api_router.include_router(sync.router)
