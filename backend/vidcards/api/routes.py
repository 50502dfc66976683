"""FastAPI route definitions."""

from __future__ import annotations

import asyncio
import json
import shutil
import uuid
from pathlib import Path
from typing import Annotated, Optional

import structlog
from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile
from sse_starlette.sse import EventSourceResponse
from sqlalchemy.orm import Session

from vidcards.api.deps import CurrentUser, get_optional_user, require_user
from vidcards.core.constants import ALLOWED_VIDEO_MIME_TYPES, TERMINAL_STATES, SourceKind
from vidcards.core.settings import APP_VERSION, PATHS
from vidcards.db.session import SessionLocal, get_db_session
from vidcards.schemas.config import AppConfig
from vidcards.schemas.job import (
    FlashcardListOut,
    JobCreateResponse,
    JobEventOut,
    JobOut,
    VideoUrlRequest,
)
from vidcards.schemas.study import StudySessionAction, StudySessionOut
from vidcards.services import repository
from vidcards.services.acquisition import url_filename
from vidcards.services.config_store import ConfigFileError, load_config, save_config
from vidcards.services.media import ffmpeg_available, ffprobe_available
from vidcards.services.study import StudySessionError, apply_action, get_or_create_session, to_study_session_out
from vidcards.workers.queue import enqueue_job

logger = structlog.get_logger()
router = APIRouter(prefix="/api", tags=["api"])

TERMINAL_VALUES = {state.value for state in TERMINAL_STATES}


def _job_dir(job_id: str) -> Path:
    return PATHS.jobs_root / job_id


async def _save_upload(upload: UploadFile, target: Path, max_bytes: int) -> int:
    target.parent.mkdir(parents=True, exist_ok=True)
    written = 0
    with target.open("wb") as f:
        while True:
            chunk = await upload.read(1024 * 1024)
            if not chunk:
                break
            written += len(chunk)
            if written > max_bytes:
                raise HTTPException(status_code=413, detail="Uploaded file exceeds max size")
            f.write(chunk)
    return written


def _get_job_or_404(db: Session, job_id: str):
    job = repository.get_job(db, job_id)
    if not job:
        raise HTTPException(status_code=404, detail="Video not found")
    return job


def _submitted(db: Session, job_id: str) -> JobCreateResponse:
    enqueue_job(job_id)
    db.expire_all()
    job = _get_job_or_404(db, job_id)
    return JobCreateResponse(job_id=job.id, status=job.status, job=repository.to_job_out(job))


@router.get("/health")
def health(db: Session = Depends(get_db_session)) -> dict[str, object]:
    return {
        "version": APP_VERSION,
        "ffmpeg_available": ffmpeg_available(),
        "ffprobe_available": ffprobe_available(),
        "queue_db": str(PATHS.queue_path),
        "jobs": repository.count_jobs_by_status(db),
    }


@router.get("/user")
def get_user(user: Annotated[Optional[CurrentUser], Depends(get_optional_user)]) -> dict[str, object]:
    return {"user": user.model_dump() if user else None}


@router.get("/config", response_model=AppConfig)
def get_config() -> AppConfig:
    try:
        return load_config()
    except ConfigFileError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc


@router.put("/config", response_model=AppConfig)
def put_config(config: AppConfig) -> AppConfig:
    return save_config(config)


@router.post("/videos/upload", response_model=JobCreateResponse)
async def upload_video(
    user: Annotated[CurrentUser, Depends(require_user)],
    video: UploadFile = File(...),
    db: Session = Depends(get_db_session),
) -> JobCreateResponse:
    if not video.filename:
        raise HTTPException(status_code=400, detail="No video file provided")
    if video.content_type not in ALLOWED_VIDEO_MIME_TYPES:
        raise HTTPException(
            status_code=415,
            detail="Invalid file type. Only MP4, MOV, and AVI files are allowed.",
        )

    config = load_config()
    max_bytes = int(config.pipeline.max_upload_mb) * 1024 * 1024

    job_id = uuid.uuid4().hex
    raw_name = Path(video.filename).name
    job_dir = _job_dir(job_id)
    source_path = job_dir / f"source_{raw_name}"

    try:
        file_size = await _save_upload(video, source_path, max_bytes)
    except HTTPException:
        shutil.rmtree(job_dir, ignore_errors=True)
        raise

    repository.create_job(
        db,
        job_id=job_id,
        source_kind=SourceKind.FILE,
        original_name=raw_name,
        owner_id=user.id,
        source_path=str(source_path),
        file_size=file_size,
        mime_type=video.content_type,
    )
    db.commit()
    logger.info("video_uploaded", job_id=job_id, owner_id=user.id, size=file_size)

    return _submitted(db, job_id)


@router.post("/videos/upload-url", response_model=JobCreateResponse)
def upload_video_url(
    payload: VideoUrlRequest,
    user: Annotated[CurrentUser, Depends(require_user)],
    db: Session = Depends(get_db_session),
) -> JobCreateResponse:
    video_url = str(payload.video_url)
    job_id = uuid.uuid4().hex
    repository.create_job(
        db,
        job_id=job_id,
        source_kind=SourceKind.URL,
        original_name=url_filename(video_url),
        owner_id=user.id,
        source_url=video_url,
    )
    db.commit()
    logger.info("video_url_submitted", job_id=job_id, owner_id=user.id, url=video_url)

    return _submitted(db, job_id)


@router.get("/videos", response_model=list[JobOut])
def list_videos(
    user: Annotated[Optional[CurrentUser], Depends(get_optional_user)],
    mine: bool = Query(False),
    db: Session = Depends(get_db_session),
) -> list[JobOut]:
    if mine and user is None:
        raise HTTPException(status_code=401, detail="Authentication required")
    owner_id = user.id if mine and user else None
    return [repository.to_job_out(job) for job in repository.list_jobs(db, owner_id=owner_id)]


@router.get("/videos/{job_id}", response_model=JobOut)
def get_video(job_id: str, db: Session = Depends(get_db_session)) -> JobOut:
    return repository.to_job_out(_get_job_or_404(db, job_id))


@router.delete("/videos/{job_id}")
def delete_video(job_id: str, force: bool = Query(False), db: Session = Depends(get_db_session)) -> dict[str, object]:
    job = _get_job_or_404(db, job_id)
    if not force and job.status not in TERMINAL_VALUES:
        raise HTTPException(
            status_code=409,
            detail="Video is still processing. Set force=true to delete it anyway.",
        )

    repository.delete_job(db, job_id)
    db.commit()

    target = _job_dir(job_id)
    if target.exists():
        shutil.rmtree(target, ignore_errors=True)

    return {"deleted": True, "job_id": job_id, "force": force}


@router.get("/videos/{job_id}/events")
async def stream_video_events(job_id: str, db: Session = Depends(get_db_session)) -> EventSourceResponse:
    _get_job_or_404(db, job_id)

    async def event_generator():
        last_id = 0
        while True:
            with SessionLocal() as session:
                events = repository.list_events(session, job_id, after_id=last_id)
                job = repository.get_job(session, job_id)
                progress = job.progress if job else 0

            for event in events:
                last_id = event.id
                payload = JobEventOut.model_validate(event, from_attributes=True).model_dump(mode="json")
                payload["progress"] = progress
                yield {
                    "event": "job_event",
                    "id": str(event.id),
                    "data": json.dumps(payload, ensure_ascii=False),
                }

            if (job is None or job.status in TERMINAL_VALUES) and not events:
                yield {"event": "end", "data": json.dumps({"job_id": job_id})}
                break

            await asyncio.sleep(1)

    return EventSourceResponse(event_generator())


@router.get("/videos/{job_id}/flashcards", response_model=FlashcardListOut)
def get_flashcards(job_id: str, db: Session = Depends(get_db_session)) -> FlashcardListOut:
    _get_job_or_404(db, job_id)
    cards = repository.list_flashcards(db, job_id)
    return FlashcardListOut(job_id=job_id, flashcards=[repository.to_flashcard_out(card) for card in cards])


@router.post("/videos/{job_id}/study-session", response_model=StudySessionOut)
def create_study_session(job_id: str, db: Session = Depends(get_db_session)) -> StudySessionOut:
    _get_job_or_404(db, job_id)
    session = get_or_create_session(db, job_id)
    return to_study_session_out(session, repository.count_flashcards(db, job_id))


@router.get("/study-sessions/{session_id}", response_model=StudySessionOut)
def get_study_session(session_id: int, db: Session = Depends(get_db_session)) -> StudySessionOut:
    session = repository.get_study_session(db, session_id)
    if not session:
        raise HTTPException(status_code=404, detail="Study session not found")
    return to_study_session_out(session, repository.count_flashcards(db, session.job_id))


@router.patch("/study-sessions/{session_id}", response_model=StudySessionOut)
def update_study_session(
    session_id: int,
    payload: StudySessionAction,
    db: Session = Depends(get_db_session),
) -> StudySessionOut:
    session = repository.get_study_session(db, session_id)
    if not session:
        raise HTTPException(status_code=404, detail="Study session not found")
    try:
        session = apply_action(db, session, payload.action, payload.card_index)
    except StudySessionError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return to_study_session_out(session, repository.count_flashcards(db, session.job_id))
