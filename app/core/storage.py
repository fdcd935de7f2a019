"""Utilities for storing uploaded audio clips."""

from __future__ import annotations

import secrets
import time
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Final

from fastapi import HTTPException, UploadFile, status
from starlette.concurrency import run_in_threadpool

_CHUNK_SIZE: Final[int] = 1024 * 1024  # 1 MiB
_AUDIO_EXTENSION: Final[str] = ".m4a"


@dataclass(slots=True)
class StoredFile:
    """Represents a clip persisted under the media root."""

    file_name: str
    content_type: str | None
    file_size: int
    absolute_path: Path


def ensure_media_root(root: Path) -> Path:
    root.mkdir(parents=True, exist_ok=True)
    return root


def generate_file_name() -> str:
    """Return a unique clip name of the form ``<epoch-ms>-<random>.m4a``."""

    return f"{int(time.time() * 1000)}-{secrets.randbelow(10**9)}{_AUDIO_EXTENSION}"


def _open_for_write(path: Path) -> BinaryIO:
    return path.open("xb")


def _discard(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass


async def store_audio_clip(upload: UploadFile, *, media_root: Path, max_size: int) -> StoredFile:
    """Stream *upload* to disk in chunks, refusing anything above *max_size* bytes."""

    total_size = 0
    try:
        target_dir = await run_in_threadpool(ensure_media_root, media_root)
        while True:
            absolute_path = target_dir / generate_file_name()
            try:
                buffer = await run_in_threadpool(_open_for_write, absolute_path)
            except FileExistsError:
                continue
            break

        try:
            while True:
                chunk = await upload.read(_CHUNK_SIZE)
                if not chunk:
                    break
                total_size += len(chunk)
                if total_size > max_size:
                    raise HTTPException(
                        status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                        detail="Audio file exceeds allowed size",
                    )
                await run_in_threadpool(buffer.write, chunk)
        except BaseException:
            await run_in_threadpool(buffer.close)
            await run_in_threadpool(_discard, absolute_path)
            raise
        await run_in_threadpool(buffer.close)
    finally:
        await upload.close()

    return StoredFile(
        file_name=absolute_path.name,
        content_type=upload.content_type,
        file_size=total_size,
        absolute_path=absolute_path,
    )


def build_public_url(base_url: str, media_base_url: str, file_name: str) -> str:
    """Join the request base URL, the media mount path and a file name."""

    base = base_url.rstrip("/")
    prefix = "/" + media_base_url.strip("/") if media_base_url.strip("/") else ""
    return f"{base}{prefix}/{file_name}"
