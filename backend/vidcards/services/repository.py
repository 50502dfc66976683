"""Persistence helpers for jobs, events, flashcards and study sessions."""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterable, Optional, Union

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from vidcards.core.constants import ALLOWED_TRANSITIONS, FailureCause, JobStatus, SourceKind
from vidcards.models.job import Job, JobEvent
from vidcards.models.study import Flashcard, StudySession
from vidcards.schemas.job import FlashcardOut, JobOut


class InvalidTransitionError(ValueError):
    pass


class TranscriptAlreadySetError(ValueError):
    pass


_locks_guard = threading.Lock()
# job id -> [lock, number of holders and waiters]
_job_locks: dict[str, list] = {}


@contextmanager
def job_lock(job_id: str) -> Iterator[None]:
    """Serialize in-process writers for one job id."""
    with _locks_guard:
        entry = _job_locks.setdefault(job_id, [threading.Lock(), 0])
        entry[1] += 1
    try:
        with entry[0]:
            yield
    finally:
        with _locks_guard:
            entry[1] -= 1
            if entry[1] == 0:
                _job_locks.pop(job_id, None)


def _status_value(status: Union[JobStatus, str]) -> str:
    return status.value if isinstance(status, JobStatus) else status


def to_job_out(job: Job) -> JobOut:
    return JobOut(
        id=job.id,
        owner_id=job.owner_id,
        source_kind=job.source_kind,
        original_name=job.original_name,
        source_url=job.source_url,
        file_size=job.file_size,
        mime_type=job.mime_type,
        status=job.status,
        progress=job.progress,
        has_transcript=job.transcript is not None,
        transcript=job.transcript,
        error_code=job.error_code,
        error_message=job.error_message,
        flashcard_count=len(job.flashcards),
        created_at=job.created_at,
        updated_at=job.updated_at,
    )


def to_flashcard_out(card: Flashcard) -> FlashcardOut:
    return FlashcardOut(
        id=card.id,
        job_id=card.job_id,
        question=card.question,
        answer=card.answer,
        position=card.position,
    )


def create_job(
    db: Session,
    *,
    job_id: str,
    source_kind: SourceKind,
    original_name: str,
    owner_id: Optional[str] = None,
    source_path: Optional[str] = None,
    source_url: Optional[str] = None,
    file_size: int = 0,
    mime_type: Optional[str] = None,
) -> Job:
    if source_kind == SourceKind.FILE and not source_path:
        raise ValueError("file jobs require source_path")
    if source_kind == SourceKind.URL and not source_url:
        raise ValueError("url jobs require source_url")
    if source_path and source_url:
        raise ValueError("a job has either a file source or a url source, not both")

    job = Job(
        id=job_id,
        owner_id=owner_id,
        source_kind=source_kind.value,
        original_name=original_name,
        source_path=source_path,
        source_url=source_url,
        file_size=file_size,
        mime_type=mime_type,
        status=JobStatus.UPLOADING.value,
        progress=0,
    )
    db.add(job)
    db.flush()
    append_event(db, job_id, JobStatus.UPLOADING.value, "Video received, waiting for processing")
    return job


def list_jobs(db: Session, owner_id: Optional[str] = None) -> list[Job]:
    stmt = select(Job).order_by(Job.created_at.desc())
    if owner_id is not None:
        stmt = stmt.where(Job.owner_id == owner_id)
    return list(db.scalars(stmt))


def get_job(db: Session, job_id: str, *, fresh: bool = False) -> Optional[Job]:
    """`fresh` rereads the row instead of trusting this session's cached copy."""
    return db.get(Job, job_id, populate_existing=fresh)


def _require_job(db: Session, job_id: str) -> Job:
    job = get_job(db, job_id, fresh=True)
    if not job:
        raise ValueError(f"job not found: {job_id}")
    return job


def delete_job(db: Session, job_id: str) -> bool:
    job = get_job(db, job_id)
    if not job:
        return False
    db.delete(job)
    db.flush()
    return True


def _swap_state(db: Session, job: Job, expected: JobStatus, **values: object) -> None:
    """Write `values` only if the stored status is still `expected`."""
    result = db.execute(
        update(Job)
        .where(Job.id == job.id, Job.status == expected.value)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise InvalidTransitionError(f"job {job.id}: status is no longer {expected.value}")
    db.refresh(job)


def set_job_status(
    db: Session,
    job_id: str,
    status: Union[JobStatus, str],
    progress: Optional[int] = None,
    message: Optional[str] = None,
) -> Job:
    job = _require_job(db, job_id)
    current = JobStatus(job.status)
    target = JobStatus(_status_value(status))
    if target not in ALLOWED_TRANSITIONS[current]:
        raise InvalidTransitionError(f"job {job_id}: {current.value} -> {target.value} is not allowed")

    if target == JobStatus.COMPLETED:
        progress = 100
    values: dict[str, object] = {"status": target.value}
    if progress is not None:
        progress = max(0, min(100, int(progress)))
        if current == JobStatus.PROCESSING and progress < job.progress:
            raise InvalidTransitionError(f"job {job_id}: progress cannot go back from {job.progress} to {progress}")
        values["progress"] = progress

    _swap_state(db, job, current, **values)
    if message:
        append_event(db, job_id, job.status, message)
    return job


def set_job_error(db: Session, job_id: str, cause: FailureCause, error_message: str) -> Job:
    job = _require_job(db, job_id)
    current = JobStatus(job.status)
    if JobStatus.FAILED not in ALLOWED_TRANSITIONS[current]:
        raise InvalidTransitionError(f"job {job_id}: {current.value} -> failed is not allowed")
    _swap_state(
        db,
        job,
        current,
        status=JobStatus.FAILED.value,
        progress=0,
        error_code=cause.value,
        error_message=error_message,
    )
    append_event(db, job_id, JobStatus.FAILED.value, error_message)
    return job


def set_transcript(db: Session, job_id: str, text: str) -> Job:
    job = _require_job(db, job_id)
    if job.status != JobStatus.PROCESSING.value:
        raise InvalidTransitionError(f"job {job_id}: transcript can only be stored while processing")
    if job.transcript is not None:
        raise TranscriptAlreadySetError(f"job {job_id} already has a transcript")
    job.transcript = text
    db.flush()
    return job


def add_flashcards(db: Session, job_id: str, pairs: Sequence[tuple[str, str]]) -> list[Flashcard]:
    """Insert one batch of cards with positions 0..N-1 in the given order."""
    job = _require_job(db, job_id)
    if job.status != JobStatus.PROCESSING.value:
        raise InvalidTransitionError(f"job {job_id}: flashcards can only be added while processing")
    if count_flashcards(db, job_id):
        raise ValueError(f"job {job_id} already has flashcards")
    if not pairs:
        raise ValueError("flashcard batch is empty")

    cards = [
        Flashcard(job_id=job_id, question=question, answer=answer, position=position)
        for position, (question, answer) in enumerate(pairs)
    ]
    db.add_all(cards)
    db.flush()
    return cards


def list_flashcards(db: Session, job_id: str) -> list[Flashcard]:
    stmt = select(Flashcard).where(Flashcard.job_id == job_id).order_by(Flashcard.position.asc())
    return list(db.scalars(stmt))


def count_flashcards(db: Session, job_id: str) -> int:
    stmt = select(func.count(Flashcard.id)).where(Flashcard.job_id == job_id)
    return int(db.scalar(stmt) or 0)


def append_event(db: Session, job_id: str, status: str, message: str) -> JobEvent:
    event = JobEvent(job_id=job_id, status=status, message=message)
    db.add(event)
    db.flush()
    return event


def list_events(db: Session, job_id: str, after_id: int = 0) -> list[JobEvent]:
    stmt = (
        select(JobEvent)
        .where(JobEvent.job_id == job_id, JobEvent.id > after_id)
        .order_by(JobEvent.id.asc())
    )
    return list(db.scalars(stmt))


def get_study_session(db: Session, session_id: int) -> Optional[StudySession]:
    return db.get(StudySession, session_id)


def get_study_session_by_job(db: Session, job_id: str) -> Optional[StudySession]:
    stmt = select(StudySession).where(StudySession.job_id == job_id)
    return db.scalars(stmt).first()


def create_study_session(db: Session, job_id: str) -> StudySession:
    session = StudySession(
        job_id=job_id,
        current_card_index=0,
        learned_cards=[],
        review_cards=[],
        started_at=datetime.now(timezone.utc),
        study_time_seconds=0,
    )
    db.add(session)
    db.flush()
    return session


def fail_interrupted_jobs(db: Session, is_running: Optional[Callable[[str], bool]] = None) -> Iterable[str]:
    """Fail `processing` jobs that no worker is still running."""
    stmt = select(Job).where(Job.status == JobStatus.PROCESSING.value)
    jobs = list(db.scalars(stmt))
    failed_ids: list[str] = []
    for job in jobs:
        if is_running is not None and is_running(job.id):
            continue
        set_job_error(db, job.id, FailureCause.INTERRUPTED, "Processing was interrupted by a restart; submit the video again")
        failed_ids.append(job.id)
    db.flush()
    return failed_ids


def list_pending_jobs(db: Session) -> list[str]:
    stmt = select(Job.id).where(Job.status == JobStatus.UPLOADING.value).order_by(Job.created_at.asc())
    return list(db.scalars(stmt))


def count_jobs_by_status(db: Session) -> dict[str, int]:
    stmt = select(Job.status, func.count(Job.id)).group_by(Job.status)
    return {status: int(count) for status, count in db.execute(stmt)}
