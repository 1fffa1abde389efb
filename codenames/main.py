from __future__ import annotations

import logging

import redis
from fastapi import FastAPI

from codenames.api.routes import router
from codenames.assets.startup import init_words_for_app
from codenames.config import Settings
from codenames.runtime import ServerContext


logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None, redis_client: redis.Redis | None = None) -> FastAPI:
    settings = settings or Settings.from_env()
    logging.basicConfig(level=getattr(logging, settings.log_level, logging.INFO))

    app = FastAPI(title="codenames-server", version="0.1.0")
    app.state.server = ServerContext.build(settings, redis_client=redis_client)
    app.include_router(router)

    @app.on_event("startup")
    async def _startup() -> None:
        init_words_for_app()
        await app.state.server.start()

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        await app.state.server.stop()

    return app


app = create_app()
