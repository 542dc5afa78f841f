"""
Main API router aggregator
"""
from fastapi import APIRouter

from app.api.v1.endpoints import (
    cases,
    conversations,
    health,
    messages,
    realtime,
    upload,
)

api_router = APIRouter()

# Include routers
api_router.include_router(messages.router, prefix="/messages", tags=["Messages"])
api_router.include_router(conversations.router, prefix="/conversations", tags=["Conversations"])
api_router.include_router(cases.router, prefix="/cases", tags=["Cases"])
api_router.include_router(upload.router, prefix="/uploads", tags=["Upload"])
api_router.include_router(realtime.router, prefix="/realtime", tags=["Real-time"])
api_router.include_router(health.router, prefix="/health", tags=["Health"])
