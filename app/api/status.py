"""Status, health and channel listing endpoints."""

from __future__ import annotations

import resource
import sys
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends

from app.api.deps import get_app_settings, get_relay
from app.config import Settings
from walkie.realtime import RelayService

router = APIRouter(tags=["system"])


def _memory_usage() -> dict[str, int]:
    usage = resource.getrusage(resource.RUSAGE_SELF)
    # ru_maxrss is reported in kilobytes on Linux and in bytes on macOS.
    scale = 1 if sys.platform == "darwin" else 1024
    return {"maxRss": usage.ru_maxrss * scale}


@router.get("/")
def read_root(
    relay: RelayService = Depends(get_relay),
    settings: Settings = Depends(get_app_settings),
) -> dict[str, Any]:
    counts = relay.counts()
    return {
        "status": "ok",
        "message": f"{settings.app_name} is running",
        "version": settings.app_version,
        "channels": counts["channels"],
        "users": counts["users"],
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/health")
def health_check(relay: RelayService = Depends(get_relay)) -> dict[str, Any]:
    """Liveness probe with process and relay counters."""

    counts = relay.counts()
    return {
        "status": "healthy",
        "uptime": round(relay.uptime(), 3),
        "memory": _memory_usage(),
        "channels": counts["channels"],
        "users": counts["users"],
        "state": relay.lifecycle.state.value,
    }


@router.get("/channels")
def list_channels(relay: RelayService = Depends(get_relay)) -> list[dict[str, Any]]:
    return relay.channels_snapshot()
