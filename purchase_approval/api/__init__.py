"""API routes for the purchase approval service."""

from fastapi import APIRouter

from .auth import router as auth_router
from .family import router as family_router
from .invite import router as invite_router
from .purchases import router as purchases_router
from .push import router as push_router
from .vendor import router as vendor_router

# Authenticated API, mounted under settings.api_prefix
api_router = APIRouter()

# Auth routes (register, login, me, logout)
api_router.include_router(auth_router)
api_router.include_router(family_router)
api_router.include_router(invite_router)
api_router.include_router(vendor_router)
api_router.include_router(push_router)

# Public purchase endpoints, mounted at the root
public_router = APIRouter()
public_router.include_router(purchases_router)

__all__ = ["api_router", "public_router"]
