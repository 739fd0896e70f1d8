"""
Main FastAPI application entry point.

- Initializes DB
- Wires the H2O client, simulator, dispatcher, orchestrator and gateway
- Registers routers for jobs, models, datasets and signed file downloads
- Stops running job tasks and the engine session on shutdown
"""

from fastapi import FastAPI

from automl_studio.api import datasets, files, jobs, models
from automl_studio.api.errors import register_error_handlers
from automl_studio.dispatcher import JobDispatcher
from automl_studio.services.gateway import ModelGateway
from automl_studio.services.h2o_client import H2OClient
from automl_studio.services.orchestrator import Orchestrator, OrchestratorConfig
from automl_studio.services.simulator import AutoMLSimulator
from automl_studio.services.storage import BlobStorage
from automl_studio.utils.config import Settings, settings
from automl_studio.utils.db import Base, SessionLocal, engine
from automl_studio.utils.logger import logger


def create_app(
    cfg: Settings = settings,
    session_factory=SessionLocal,
    h2o: H2OClient = None,
    simulator: AutoMLSimulator = None,
    dispatcher: JobDispatcher = None,
    storage: BlobStorage = None,
) -> FastAPI:
    app = FastAPI(title=cfg.PROJECT_NAME, version=cfg.VERSION)

    h2o = h2o or H2OClient(cfg.H2O_BASE_URL, cfg.H2O_PROBE_TIMEOUT, cfg.H2O_REQUEST_TIMEOUT)
    simulator = simulator or AutoMLSimulator(
        iterations=cfg.SIMULATOR_ITERATIONS,
        write_every=cfg.SIMULATOR_WRITE_EVERY,
        min_delay=cfg.SIMULATOR_MIN_DELAY,
        max_delay=cfg.SIMULATOR_MAX_DELAY,
        seed=cfg.SIMULATOR_SEED,
    )
    dispatcher = dispatcher or JobDispatcher(cfg.REDIS_URL, cfg.JOB_CLAIM_PREFIX, cfg.JOB_CLAIM_TTL)
    storage = storage or BlobStorage(cfg.STORAGE_DIR, cfg.SIGNING_SECRET, cfg.PUBLIC_BASE_URL)

    app.state.session_factory = session_factory
    app.state.storage = storage
    app.state.dispatcher = dispatcher
    app.state.h2o = h2o
    app.state.orchestrator = Orchestrator(
        session_factory, h2o, simulator, dispatcher, storage, OrchestratorConfig.from_settings(cfg)
    )
    app.state.gateway = ModelGateway(
        session_factory, h2o, storage, cfg.PUBLIC_BASE_URL, export_url_ttl=cfg.EXPORT_URL_TTL
    )

    app.include_router(jobs.router)
    app.include_router(models.router)
    app.include_router(datasets.router)
    app.include_router(files.router)
    register_error_handlers(app)

    @app.on_event("startup")
    async def startup_event():
        logger.info("🚀 Starting job dispatcher...")
        await dispatcher.init_redis()

    @app.on_event("shutdown")
    async def shutdown_event():
        logger.info("🛑 Shutting down dispatcher and H2O session...")
        await dispatcher.shutdown()
        await h2o.close()

    @app.get("/health")
    async def health():
        return {"status": "ok", "service": cfg.PROJECT_NAME}

    return app


def init_db():
    Base.metadata.create_all(bind=engine)
