"""Huey queue definitions and enqueue helpers."""

from __future__ import annotations

from typing import Optional

import structlog
from huey import SqliteHuey
from huey.api import Result
from huey.exceptions import TaskLockedException

from vidcards.core.logging import configure_logging
from vidcards.core.settings import PATHS
from vidcards.services.pipeline import execute_job

configure_logging()
logger = structlog.get_logger()

huey = SqliteHuey("vidcards", filename=str(PATHS.queue_path))


def pipeline_lock_name(job_id: str) -> str:
    return f"pipeline-{job_id}"


def job_is_running(job_id: str) -> bool:
    """True while a worker holds the pipeline lock for this job."""
    return huey.lock_task(pipeline_lock_name(job_id)).is_locked()


@huey.task(retries=0)
def run_job_task(job_id: str) -> Optional[str]:
    try:
        with huey.lock_task(pipeline_lock_name(job_id)):
            return execute_job(job_id)
    except TaskLockedException:
        logger.info("pipeline_already_running", job_id=job_id)
        return None


def enqueue_job(job_id: str) -> Result:
    logger.info("job_enqueued", job_id=job_id)
    return run_job_task(job_id)
