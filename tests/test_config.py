from __future__ import annotations

from pathlib import Path

from app.config import Settings


def test_defaults_match_relay_deployment(monkeypatch, tmp_path) -> None:
    monkeypatch.chdir(tmp_path)

    settings = Settings(_env_file=None)

    assert settings.port == 3000
    assert settings.cors_origins == ["*"]
    assert settings.max_upload_size == 10 * 1024 * 1024
    assert settings.media_retention_seconds == 3600
    assert settings.shutdown_grace_seconds == 10
    assert settings.signaling_allow_cross_channel is False
    assert settings.websocket_keepalive_ping_interval_seconds == 25
    assert settings.websocket_ping_interval_seconds == 25
    assert not hasattr(settings, "environment")
    assert settings.media_root == (tmp_path / "audio_temp").resolve()


def test_environment_overrides(monkeypatch, tmp_path) -> None:
    monkeypatch.setenv("CORS_ORIGINS", "http://a.example, http://b.example")
    monkeypatch.setenv("MEDIA_ROOT", str(tmp_path / "clips"))
    monkeypatch.setenv("SIGNALING_ALLOW_CROSS_CHANNEL", "true")
    monkeypatch.setenv("LOG_LEVEL", "debug")
    monkeypatch.setenv("WEBSOCKET_PING_INTERVAL_SECONDS", "5")

    settings = Settings(_env_file=None)

    assert settings.cors_origins == ["http://a.example", "http://b.example"]
    assert settings.media_root == Path(tmp_path / "clips").resolve()
    assert settings.signaling_allow_cross_channel is True
    assert settings.log_level == "DEBUG"
    assert settings.websocket_ping_interval_seconds == 5
    assert settings.websocket_keepalive_ping_interval_seconds == 25
