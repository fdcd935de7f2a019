"""Audio clip upload bridging into the channel broadcast path."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile, status

from app.api.deps import get_app_settings, get_relay
from app.config import Settings
from app.core.storage import build_public_url, store_audio_clip
from walkie.realtime import RelayService

router = APIRouter(tags=["media"])

logger = logging.getLogger(__name__)


@router.post("/upload-audio")
async def upload_audio(
    request: Request,
    audio: UploadFile | None = File(default=None),
    channel_id: str | None = Form(default=None, alias="channelId"),
    user_id: str | None = Form(default=None, alias="userId"),
    relay: RelayService = Depends(get_relay),
    settings: Settings = Depends(get_app_settings),
) -> dict[str, Any]:
    """Store an uploaded clip and announce it to the channel as ``audio-message``."""

    if audio is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No audio file provided")
    if not channel_id:
        await audio.close()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="channelId is required")

    try:
        stored = await store_audio_clip(
            audio,
            media_root=settings.media_root,
            max_size=settings.max_upload_size,
        )
    except HTTPException:
        raise
    except OSError:
        logger.exception("Failed to store uploaded audio", extra={"channel_id": channel_id})
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Upload failed"
        ) from None

    audio_url = build_public_url(str(request.base_url), settings.media_base_url, stored.file_name)
    relay.announce_audio(channel_id, user_id, audio_url)
    logger.info(
        "Stored audio clip %s (%d bytes)",
        stored.file_name,
        stored.file_size,
        extra={"channel_id": channel_id, "user_id": user_id},
    )
    return {"success": True, "audioUrl": audio_url, "filename": stored.file_name}
