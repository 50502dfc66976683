"""End-to-end job execution pipeline."""

from __future__ import annotations

import shutil
from pathlib import Path
from typing import Callable, Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from vidcards.core.constants import FailureCause, JobStatus, Progress, SourceKind
from vidcards.core.errors import StageError
from vidcards.core.settings import PATHS
from vidcards.db.session import SessionLocal
from vidcards.models.job import Job
from vidcards.schemas.config import AppConfig
from vidcards.services import repository
from vidcards.services.acquisition import AcquisitionError, download_source
from vidcards.services.config_store import load_config
from vidcards.services.flashcard_schema import validate_flashcards
from vidcards.services.media import MediaError, extract_audio, ffmpeg_available, ffprobe_available
from vidcards.services.providers import Providers, get_providers
from vidcards.services.quality_gate import evaluate_transcript

logger = structlog.get_logger()


class PipelineError(StageError):
    pass


def job_dir_for(job_id: str) -> Path:
    return PATHS.jobs_root / job_id


def _set_stage(db: Session, job_id: str, progress: int, message: str) -> None:
    repository.set_job_status(db, job_id, JobStatus.PROCESSING, progress=progress, message=message)
    db.commit()
    logger.info("pipeline_stage", job_id=job_id, progress=progress, detail=message)


def _note(db: Session, job_id: str, message: str) -> None:
    repository.append_event(db, job_id, JobStatus.PROCESSING.value, message)
    db.commit()
    logger.warning("pipeline_note", job_id=job_id, detail=message)


def _acquire_source(job: Job, config: AppConfig, job_dir: Path) -> Path:
    if job.source_kind == SourceKind.FILE.value:
        source_path = Path(job.source_path or "")
        if not job.source_path or not source_path.is_file():
            raise AcquisitionError(f"Uploaded video is missing: {source_path}")
        return source_path

    if not job.source_url:
        raise AcquisitionError("URL job has no source URL")
    return download_source(
        job.source_url,
        job_dir,
        timeout_s=config.pipeline.download_timeout_s,
        max_bytes=config.pipeline.max_download_mb * 1024 * 1024,
    )


def _prepare_audio(db: Session, job_id: str, source: Path, config: AppConfig, job_dir: Path) -> Path:
    pipeline_cfg = config.pipeline
    if not (ffmpeg_available() and ffprobe_available()):
        if pipeline_cfg.extraction_fallback == "passthrough":
            _note(db, job_id, "ffmpeg is not installed; sending the original file to transcription unchanged")
            return source
        raise MediaError("ffmpeg/ffprobe are not installed, so audio cannot be extracted from the video")

    return extract_audio(
        source,
        job_dir / "audio.mp3",
        bitrate_kbps=pipeline_cfg.audio_bitrate_kbps,
        max_seconds=pipeline_cfg.max_audio_seconds,
        timeout_s=pipeline_cfg.extract_timeout_s,
    )


def _transcribe(providers: Providers, config: AppConfig, audio: Path) -> str:
    cfg = config.transcription
    text = providers.transcriber.transcribe(cfg, audio, language=cfg.language)
    text = (text or "").strip()
    if not text:
        raise PipelineError("Transcription returned no text", cause=FailureCause.TRANSCRIPTION_FAILED)
    return text


def _cleanup(job_id: str, job_dir: Path) -> None:
    if not job_dir.exists():
        return
    try:
        shutil.rmtree(job_dir)
    except OSError as exc:
        logger.warning("pipeline_cleanup_failed", job_id=job_id, path=str(job_dir), error=str(exc))


def _fail(db: Session, job_id: str, cause: FailureCause, message: str) -> None:
    db.rollback()
    try:
        repository.set_job_error(db, job_id, cause, message)
        db.commit()
    except Exception:  # noqa: BLE001
        db.rollback()
        logger.exception("pipeline_failure_not_recorded", job_id=job_id, cause=cause.value)


def execute_job(
    job_id: str,
    *,
    providers: Optional[Providers] = None,
    config: Optional[AppConfig] = None,
    session_factory: Callable[[], Session] = SessionLocal,
) -> Optional[str]:
    """Run one job from `uploading` to a terminal status and return that status.

    Stage errors never escape: they are written to the job as `failed` with a
    cause and a readable message. Only jobs still `uploading` are started, so a
    repeated call for the same id is a no-op.
    """
    db = session_factory()
    job_dir = job_dir_for(job_id)
    started = False

    try:
        job = repository.get_job(db, job_id)
        if not job:
            logger.warning("pipeline_job_missing", job_id=job_id)
            return None
        if job.status != JobStatus.UPLOADING.value:
            logger.info("pipeline_skipped", job_id=job_id, status=job.status)
            return job.status

        _set_stage(db, job_id, Progress.ACCEPTED, "Processing started")
        started = True
        config = config or load_config()
        providers = providers or get_providers()

        source_path = _acquire_source(job, config, job_dir)
        _set_stage(db, job_id, Progress.SOURCE_ACQUIRED, "Source video ready")

        audio_path = _prepare_audio(db, job_id, source_path, config, job_dir)
        _set_stage(db, job_id, Progress.AUDIO_READY, "Audio ready for transcription")

        transcript = _transcribe(providers, config, audio_path)
        repository.set_transcript(db, job_id, transcript)
        _set_stage(db, job_id, Progress.TRANSCRIBED, f"Transcript received ({len(transcript)} characters)")

        gate = evaluate_transcript(transcript, config.quality_gate)
        for warning in gate.warnings:
            _note(db, job_id, warning)
        if not gate.accepted:
            raise PipelineError(gate.reason or "Transcript rejected", cause=FailureCause.QUALITY_REJECTED)
        _set_stage(db, job_id, Progress.VALIDATED, "Transcript passed quality checks")

        items = providers.generator.generate(config.generation, transcript)
        validated = validate_flashcards(items)
        if validated.dropped:
            _note(db, job_id, f"Dropped {validated.dropped} malformed flashcard(s) from the generation response")
        _set_stage(db, job_id, Progress.GENERATED, f"Generated {len(validated.pairs)} flashcards")

        try:
            repository.add_flashcards(db, job_id, [(pair.question, pair.answer) for pair in validated.pairs])
            repository.set_job_status(
                db,
                job_id,
                JobStatus.COMPLETED,
                message=f"Completed with {len(validated.pairs)} flashcards",
            )
            db.commit()
        except SQLAlchemyError as exc:
            raise PipelineError(
                f"Could not save flashcards: {exc}", cause=FailureCause.PERSISTENCE_FAILED
            ) from exc

        logger.info("pipeline_completed", job_id=job_id, flashcards=len(validated.pairs))
        return JobStatus.COMPLETED.value

    except repository.InvalidTransitionError as exc:
        db.rollback()
        current = repository.get_job(db, job_id, fresh=True)
        if current is not None and current.status == JobStatus.PROCESSING.value:
            logger.exception("pipeline_crashed", job_id=job_id)
            _fail(db, job_id, FailureCause.INTERNAL, f"Unexpected error: {exc}")
            return JobStatus.FAILED.value
        status = current.status if current is not None else None
        logger.warning("pipeline_superseded", job_id=job_id, status=status, error=str(exc))
        return status
    except StageError as exc:
        logger.warning("pipeline_failed", job_id=job_id, cause=exc.cause.value, error=str(exc))
        _fail(db, job_id, exc.cause, str(exc))
        return JobStatus.FAILED.value
    except Exception as exc:  # noqa: BLE001
        logger.exception("pipeline_crashed", job_id=job_id)
        _fail(db, job_id, FailureCause.INTERNAL, f"Unexpected error: {exc}")
        return JobStatus.FAILED.value
    finally:
        if started:
            _cleanup(job_id, job_dir)
        db.close()
