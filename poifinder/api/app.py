from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from fastapi import FastAPI

from ..core.config import Settings, settings as default_settings
from ..core.logging import configure_logging
from ..core.orchestrator import BulkSearchOrchestrator
from ..core.tasks import TaskRegistry, reap_periodically
from ..providers.amap import AmapConfig, AmapProvider
from ..regions import RegionDirectory
from ..storage.base import ResultStore
from ..storage.json_store import JsonFileStore
from .routes import router

logger = logging.getLogger(__name__)


@dataclass
class Services:
    settings: Settings
    orchestrator: BulkSearchOrchestrator
    registry: TaskRegistry
    store: ResultStore
    directory: RegionDirectory


def create_app(services: Optional[Services] = None, settings: Optional[Settings] = None) -> FastAPI:
    """
    Builds the API. Without `services`, the AMap provider, JSON store and
    region directory are created from `settings` when the app starts.
    """
    cfg = settings or (services.settings if services else default_settings)

    @contextlib.asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(cfg.log_level)
        async with contextlib.AsyncExitStack() as stack:
            svc = services
            if svc is None:
                provider = await stack.enter_async_context(
                    AmapProvider(AmapConfig(api_key=cfg.amap_key, base_url=cfg.amap_base_url))
                )
                registry = TaskRegistry(retention_seconds=cfg.task_retention_s)
                store = JsonFileStore(cfg.data_dir)
                directory = RegionDirectory.from_file(cfg.regions_file) if cfg.regions_file else RegionDirectory()
                svc = Services(
                    settings=cfg,
                    orchestrator=BulkSearchOrchestrator(provider, store, registry, cfg),
                    registry=registry,
                    store=store,
                    directory=directory,
                )
            app.state.services = svc
            logger.info("API ready: %s provinces known", len(svc.directory.provinces))
            reaper = asyncio.create_task(reap_periodically(svc.registry, cfg.reap_interval_s))
            try:
                yield
            finally:
                reaper.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await reaper
                await svc.orchestrator.wait_idle()

    app = FastAPI(title="poifinder API", version="0.1.0", lifespan=lifespan)

    @app.get("/health")
    async def health():
        return {"status": "ok", "timestamp": datetime.now().isoformat()}

    app.include_router(router, prefix="/v1")
    return app


app = create_app()
