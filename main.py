import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from adapters.entry.http.ticks_router import router as ticks_router
from config.settings import settings
from workers.ingestion_supervisor import IngestionSupervisor


def _setup_logging() -> None:
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def create_app(supervisor: IngestionSupervisor | None = None) -> FastAPI:
    """
    Build the FastAPI app around a supervisor (a default one if not given).
    """
    supervisor = supervisor or IngestionSupervisor()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        _setup_logging()
        logging.getLogger(__name__).info("Starting %s (lifespan startup)...", settings.APP_NAME)

        await supervisor.start()

        try:
            yield
        finally:
            logging.getLogger(__name__).info("Shutting down %s (lifespan shutdown)...", settings.APP_NAME)
            await supervisor.stop()

    app = FastAPI(title=settings.APP_NAME, version="0.1.0", lifespan=lifespan)
    app.state.supervisor = supervisor
    app.include_router(ticks_router)

    @app.get("/healthz")
    async def healthz():
        try:
            buffer = supervisor.ingest.stats()
        except RuntimeError:
            buffer = None
        return {"status": "ok", "buffer": buffer}

    return app


app = create_app()
