"""FastAPI application entry point."""

from fastapi import FastAPI

from .api.errors import register_error_handlers
from .config import AppConfig, load_config
from .dependencies import ServiceContainer, include_routers
from .logging import configure_logging


def create_app(config: AppConfig | None = None, services: ServiceContainer | None = None) -> FastAPI:
    """Build FastAPI instance with configured dependencies."""
    configure_logging()
    cfg = config or load_config()
    app = FastAPI(title="Media Optimizer")
    register_error_handlers(app)
    include_routers(app, cfg, services)
    return app
