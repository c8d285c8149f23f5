"""Version and health endpoints; served without a bearer"""
from fastapi import APIRouter

from filauth.config import VERSION

router = APIRouter(tags=["health"])

TRUSTED_PATHS = ("/version", "/healthcheck")


@router.get("/version")
def version():
    """Build version"""
    return {"version": VERSION}


@router.get("/healthcheck")
def health_check():
    """
    Basic health check endpoint

    Returns 200 if service is running
    """
    return {"status": "ok"}
