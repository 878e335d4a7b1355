import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles

from .config import Settings, settings
from .routers.chat import router as chat_router
from .routers.health import router as health_router
from .services.extractor import ImageFetcher
from .services.generator import Generator

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    config: Settings = app.state.settings

    missing = config.missing_model_paths()
    if missing:
        raise RuntimeError(f"All model component paths must be provided (missing: {', '.join(missing)}).")

    try:
        Path(config.output_dir).mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        logger.warning("Could not create output directory %s: %s", config.output_dir, exc)

    app.state.generator = Generator(config)
    app.state.image_fetcher = ImageFetcher(
        base_url=config.image_base_url,
        verify_tls=config.verify_image_tls,
        timeout=config.image_fetch_timeout,
    )
    logger.info(
        "Serving %s (extraction=%s, response=%s)",
        config.sd_bin,
        config.extraction_mode,
        config.response_format,
    )
    yield


def create_app(config: Optional[Settings] = None) -> FastAPI:
    config = config or settings

    app = FastAPI(title="SD Chat Bridge", lifespan=lifespan)
    app.state.settings = config

    app.include_router(health_router)
    app.include_router(chat_router)
    app.mount(
        config.output_url_prefix,
        StaticFiles(directory=config.output_dir, check_dir=False),
        name="generated",
    )
    return app


app = create_app()
