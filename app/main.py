import logging.config
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from app.api.routes import router as api_router
from app.api.ws import router as ws_router
from app.config import Settings, get_settings
from walkie.realtime import RelayService


def build_logging_config(level: str = "INFO") -> dict[str, Any]:
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {
                "format": "%(asctime)s %(levelname)s [%(name)s] %(message)s",
            }
        },
        "handlers": {
            "default": {
                "class": "logging.StreamHandler",
                "formatter": "standard",
            }
        },
        "root": {
            "handlers": ["default"],
            "level": level,
        },
        "loggers": {
            "walkie.realtime.transport": {
                "handlers": ["default"],
                "level": "INFO",
                "propagate": False,
            }
        },
    }


logger = logging.getLogger(__name__)


def create_app(
    settings: Settings | None = None,
    *,
    terminate: Callable[[int], Any] | None = None,
) -> FastAPI:
    """Build the relay application; *terminate* replaces the forced-exit hook."""

    settings = settings or get_settings()
    logging.config.dictConfig(build_logging_config(settings.log_level))

    overrides: dict[str, Any] = {}
    if terminate is not None:
        overrides["terminate"] = terminate
    relay = RelayService.from_settings(settings, **overrides)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        settings.media_root.mkdir(parents=True, exist_ok=True)
        await relay.startup()
        logger.info("%s listening on port %s", settings.app_name, settings.port)
        try:
            yield
        finally:
            await relay.shutdown()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        debug=settings.debug,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.relay = relay

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[str(origin) for origin in settings.cors_origins],
        allow_credentials="*" not in settings.cors_origins,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    app.include_router(api_router)
    app.include_router(ws_router)
    app.mount(
        "/" + settings.media_base_url.strip("/"),
        StaticFiles(directory=settings.media_root, check_dir=False),
        name="audio",
    )
    return app


# Serve through `walkie-relay`. Plain `uvicorn app.main:app` closes sockets
# before the lifespan drain runs, so clients never receive `server-shutdown`.
app = create_app()
