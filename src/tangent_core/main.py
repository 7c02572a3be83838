"""Tangent FastAPI application entry point."""
import logging
from contextlib import asynccontextmanager
from typing import Optional

import aiohttp
from fastapi import FastAPI
from redis.asyncio import Redis

from .api.routes import router as api_router
from .config import SDKSettings
from .exceptions import InvalidConfigurationError
from .sdk import TangentSDK


logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def _sdk_from_env(app: FastAPI):
    """Wire an SDK from the environment for the lifetime of the app."""
    try:
        settings = SDKSettings.from_env()
    except InvalidConfigurationError as exc:
        logger.warning("SDK not configured, API will return 503: %s", exc)
        yield
        return

    timeout = aiohttp.ClientTimeout(total=30, connect=10)
    redis = Redis.from_url(settings.redis_url) if settings.redis_url else None

    async with aiohttp.ClientSession(timeout=timeout) as session:
        try:
            sdk = TangentSDK.from_settings(settings, session, redis=redis)
            await sdk.start()
            app.state.sdk = sdk
            yield
        finally:
            app.state.sdk = None
            if redis is not None:
                await redis.aclose()


def create_app(sdk: Optional[TangentSDK] = None) -> FastAPI:
    """Create and configure FastAPI application.

    Args:
        sdk: Pre-wired SDK; when omitted one is built from the environment
            at startup
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if sdk is not None:
            yield
            return
        async with _sdk_from_env(app):
            yield

    app = FastAPI(
        title="Tangent API",
        version="0.1.0",
        description="Server-side ingest for analytics, entitlement and flag state",
        lifespan=lifespan,
    )
    app.state.sdk = sdk

    app.include_router(api_router)

    return app


app = create_app()
