"""API v1 router aggregation."""

from fastapi import APIRouter

from app.api.v1 import auth, security, tokens

api_router = APIRouter()

# Include routers
api_router.include_router(tokens.router, prefix="/tokens", tags=["Tokens"])
api_router.include_router(auth.router, prefix="/auth", tags=["Auth"])
api_router.include_router(security.router, prefix="/security", tags=["Security"])
