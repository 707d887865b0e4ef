"""API route aggregation.

All routers registered here get mounted in main.py. Paths are served
at the root (/auth/login, /users/...), matching what the mobile and web
clients already call.
"""

from fastapi import APIRouter

from flowapi.api.auth import router as auth_router
from flowapi.api.health import router as health_router
from flowapi.api.users import router as users_router

api_router = APIRouter()

api_router.include_router(health_router, tags=["health"])
api_router.include_router(auth_router, tags=["auth"])
api_router.include_router(users_router, tags=["users"])
