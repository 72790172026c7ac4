"""Main file to start backend server."""

import typing
from contextlib import asynccontextmanager
from importlib.metadata import version

from asgi_correlation_id import CorrelationIdMiddleware
from fastapi import FastAPI

from .api.v1.router import router as api_router
from .core.environment import settings
from .core.log_config import logger, setup_logging
from .core.services import build_services
from .middlewares.logging_context import add_logging_middleware

# this needs to be called per uvicorn worker
setup_logging()


@asynccontextmanager
async def lifespan(app: FastAPI) -> typing.AsyncGenerator[None, None]:
    logger.info('Initializing app')
    # tests install their own wiring before startup
    if getattr(app.state, 'services', None) is None:
        app.state.services = build_services(settings)
        logger.info('Campaign store backend: %s', settings.CAMPAIGN_STORE_BACKEND)
    logger.info('App initialized')

    yield

    logger.info('Shutting down gracefully')
    logger.info('Graceful shutdown complete')


app = FastAPI(
    debug=not settings.PRODUCTION,
    title='Campaign Studio',
    description='Design, persist and simulate marketing campaign flows',
    version=version('campaign-studio'),
    redoc_url='/',
    docs_url='/docs',
    openapi_url='/openapi.json',
    lifespan=lifespan,
)

# Middlewares are executed in REVERSE order from when they are added

add_logging_middleware(app)
app.add_middleware(CorrelationIdMiddleware)

app.include_router(api_router)
