import logging

from dotenv import load_dotenv
from fastapi import FastAPI
from mangum import Mangum
from starlette.middleware.cors import CORSMiddleware

from pointsapi import containers
from pointsapi.config import settings
from pointsapi.core.exception_handlers import register_exception_handlers
from pointsapi.core.logging_middleware import LoggingMiddleware
from pointsapi.logging_config import setup_logging
from pointsapi.routers import health_router, points_router, shop_router

load_dotenv("pointsapi/.env")
logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    setup_logging(settings.LOG_LEVEL)

    app = FastAPI(title=settings.APP_NAME, debug=settings.DEBUG)
    app.container = containers.Container()  # type: ignore

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(LoggingMiddleware)
    register_exception_handlers(app)

    app.include_router(health_router.router, prefix=settings.API_V1_STR)
    app.include_router(points_router.router, prefix=settings.API_V1_STR)
    app.include_router(shop_router.router, prefix=settings.API_V1_STR)

    logger.info(f"{settings.APP_NAME} started ({settings.ENVIRONMENT})")
    return app


app = create_app()

handler = Mangum(app)
