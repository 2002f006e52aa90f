import logging

from fastapi import FastAPI

from app.api.routes import router
from app.config.settings import Settings, settings


def configure_logging(config: Settings) -> None:
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def create_app(config: Settings | None = None) -> FastAPI:
    config = config or settings
    configure_logging(config)
    application = FastAPI(
        title="Briefdesk Market API",
        description="Cached S&P 500, Bitcoin and VIX snapshots for the dashboard ticker",
        version="0.1.0",
    )
    application.include_router(router)
    return application


app = create_app()
