from fastapi import APIRouter

from app.api.dead_letters import router as dead_letters_router
from app.api.jobs import router as jobs_router
from app.api.users import router as users_router

api_router = APIRouter()

# API routes at /api/*
api_router.include_router(users_router, prefix="/api", tags=["users"])
api_router.include_router(jobs_router, prefix="/api", tags=["jobs"])
api_router.include_router(dead_letters_router, prefix="/api", tags=["dead-letters"])
