import logging
from typing import Mapping, Optional

from fastapi import FastAPI

from app.api.errors import register_error_handlers
from app.api.listing import build_listing_router
from app.core.config import settings
from app.core.http_logging import install_request_logging


def configure_logging() -> None:
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def create_app(resources: Optional[Mapping[str, type]] = None) -> FastAPI:
    """Build the HTTP app exposing read-only listings for ``resources`` (path -> mapped class)."""
    app = FastAPI(title=settings.APP_NAME, version="0.1.0")
    install_request_logging(app)
    register_error_handlers(app)

    for path, model in (resources or {}).items():
        app.include_router(build_listing_router(model, path), prefix="/api")

    @app.get("/health")
    def health():
        return {"status": "ok"}

    return app


configure_logging()
app = create_app()
