from fastapi import APIRouter

from app.api.routes import admin, analytics, health, leaders, officials, presence, stream, universal

api_router = APIRouter()
api_router.include_router(health.router)
api_router.include_router(analytics.router)
api_router.include_router(universal.router)
api_router.include_router(presence.router)
api_router.include_router(stream.router)
api_router.include_router(leaders.router)
api_router.include_router(officials.router)
api_router.include_router(admin.router)
