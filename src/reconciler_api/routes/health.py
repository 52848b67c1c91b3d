"""Liveness endpoints."""

import datetime as dt
from typing import Any

from fastapi import APIRouter

import reconciler

router = APIRouter(tags=["health"])


@router.get("/")
@router.get("/health")
async def health() -> dict[str, Any]:
    """Report that the service is up. Does not touch external systems."""
    return {
        "status": "ok",
        "timestamp": dt.datetime.now(dt.UTC).isoformat(),
        "service": "reconciler",
        "version": reconciler.__version__,
    }
