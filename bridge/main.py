from __future__ import annotations

import logging

import redis
from fastapi import FastAPI

from bridge.api.routes import APP_NAME, APP_VERSION, router
from bridge.settings import BridgeSettings, load_dotenv_if_present
from bridge.startup import build_runtime
from bridge.transport import Connector

# Configure logging
logging.basicConfig(level=logging.DEBUG)
logger = logging.getLogger(__name__)


def create_app(
    *,
    settings: BridgeSettings | None = None,
    r: redis.Redis | None = None,
    connector: Connector | None = None,
) -> FastAPI:
    """Build the bridge app. Arguments override env config (tests pass fakes here)."""

    app = FastAPI(title=APP_NAME, version=APP_VERSION)
    app.include_router(router)

    @app.on_event("startup")
    async def _startup() -> None:
        if settings is None:
            load_dotenv_if_present()
        cfg = settings or BridgeSettings.from_env()
        logging.getLogger().setLevel(cfg.log_level)

        runtime = build_runtime(settings=cfg, r=r, connector=connector)
        app.state.runtime = runtime
        runtime.start()
        logger.info("Bridge started (hostname=%s, endpoint=%s)", cfg.hostname, runtime.endpoint)

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        runtime = getattr(app.state, "runtime", None)
        if runtime is not None:
            await runtime.stop()
            app.state.runtime = None

    return app


app = create_app()
