"""FastAPI application entrypoint."""

from __future__ import annotations

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from vidcards.api import router
from vidcards.core.logging import configure_logging
from vidcards.core.settings import APP_VERSION, PATHS
from vidcards.db.base import Base
from vidcards.db.session import SessionLocal, engine
from vidcards.models import Flashcard, Job, JobEvent, StudySession  # noqa: F401
from vidcards.services import repository
from vidcards.services.config_store import load_config, save_config
from vidcards.workers.queue import enqueue_job, job_is_running

logger = structlog.get_logger()


def create_app() -> FastAPI:
    configure_logging()

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        PATHS.runtime_root.mkdir(parents=True, exist_ok=True)
        PATHS.jobs_root.mkdir(parents=True, exist_ok=True)

        Base.metadata.create_all(bind=engine)

        # Ensure config file exists with defaults.
        if not PATHS.config_path.exists():
            save_config(load_config())

        with SessionLocal() as db:
            interrupted = list(repository.fail_interrupted_jobs(db, is_running=job_is_running))
            pending_ids = repository.list_pending_jobs(db)
            db.commit()

        if interrupted:
            logger.warning("interrupted_jobs_failed", job_ids=interrupted)
        for job_id in pending_ids:
            enqueue_job(job_id)

        yield

    app = FastAPI(title="vidcards", version=APP_VERSION, lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router)

    return app


app = create_app()
