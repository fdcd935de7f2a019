"""Core utilities for the relay application."""

from .storage import StoredFile, build_public_url, store_audio_clip

__all__ = ["StoredFile", "build_public_url", "store_audio_clip"]
