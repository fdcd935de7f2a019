"""FastAPI dependencies for the API layer."""

from fastapi import HTTPException, Request, status

from app.config import Settings
from walkie.realtime import RelayService


def get_relay(request: Request) -> RelayService:
    """Return the relay owned by the running application."""

    relay = getattr(request.app.state, "relay", None)
    if relay is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Relay is not running",
        )
    return relay


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings
