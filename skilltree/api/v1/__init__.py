"""
API v1 routes.
"""

from fastapi import APIRouter

from skilltree.api.v1 import progression

router = APIRouter()

router.include_router(progression.router, tags=["Progression"])
