"""
Shared fixtures for vidcards tests.
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Any, Callable, Generator, Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

# Point the runtime directory at a scratch location before any vidcards import.
os.environ["VIDCARDS_RUNTIME_ROOT"] = tempfile.mkdtemp(prefix="vidcards-tests-")

from vidcards.core.constants import JobStatus, SourceKind  # noqa: E402
from vidcards.core.settings import PATHS  # noqa: E402
from vidcards.db.base import Base  # noqa: E402
from vidcards.models import Flashcard, Job, JobEvent, StudySession  # noqa: E402,F401
from vidcards.services import repository  # noqa: E402
from vidcards.services.providers import Providers  # noqa: E402
from vidcards.workers.queue import huey  # noqa: E402

huey.immediate = True

LECTURE_SENTENCE = (
    "Today we explain the key concept of photosynthesis and walk through an example "
    "of how a leaf turns light into stored chemical energy. "
)


class FakeTranscriber:
    def __init__(self, text: str = "", error: Optional[Exception] = None) -> None:
        self.text = text
        self.error = error
        self.calls: list[tuple[Path, str]] = []

    def transcribe(self, cfg, audio_file: Path, *, language: str) -> str:
        self.calls.append((Path(audio_file), language))
        if self.error:
            raise self.error
        return self.text


class FakeGenerator:
    def __init__(self, items: Optional[list[Any]] = None, error: Optional[Exception] = None) -> None:
        self.items = items or []
        self.error = error
        self.calls: list[str] = []

    def generate(self, cfg, transcript: str) -> list[Any]:
        self.calls.append(transcript)
        if self.error:
            raise self.error
        return list(self.items)


def make_cards(count: int) -> list[dict[str, str]]:
    return [{"question": f"What is point {i}?", "answer": f"Point {i} from the lecture."} for i in range(count)]


def make_transcript(length: int) -> str:
    text = LECTURE_SENTENCE * (length // len(LECTURE_SENTENCE) + 1)
    return text[:length]


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture
def session_factory() -> Generator[sessionmaker, None, None]:
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield sessionmaker(bind=engine, class_=Session, autoflush=False, expire_on_commit=False)
    engine.dispose()


@pytest.fixture
def db(session_factory: sessionmaker) -> Generator[Session, None, None]:
    session = session_factory()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


# ============================================================================
# Job Fixtures
# ============================================================================


@pytest.fixture
def create_file_job(db: Session) -> Callable[..., Job]:
    def _create(job_id: str = "job_file", content: bytes = b"fake-video-bytes") -> Job:
        source_path = PATHS.jobs_root / job_id / "source_lecture.mp4"
        source_path.parent.mkdir(parents=True, exist_ok=True)
        source_path.write_bytes(content)
        job = repository.create_job(
            db,
            job_id=job_id,
            source_kind=SourceKind.FILE,
            original_name="lecture.mp4",
            owner_id="user-1",
            source_path=str(source_path),
            file_size=len(content),
            mime_type="video/mp4",
        )
        db.commit()
        return job

    return _create


@pytest.fixture
def completed_job(db: Session) -> Callable[..., Job]:
    def _create(job_id: str = "job_done", cards: int = 5) -> Job:
        job = repository.create_job(
            db,
            job_id=job_id,
            source_kind=SourceKind.URL,
            original_name="lecture.mp4",
            source_url="https://cdn.example.com/lecture.mp4",
        )
        repository.set_job_status(db, job_id, JobStatus.PROCESSING, progress=10)
        repository.add_flashcards(db, job_id, [(c["question"], c["answer"]) for c in make_cards(cards)])
        repository.set_job_status(db, job_id, JobStatus.COMPLETED)
        db.commit()
        return job

    return _create


# ============================================================================
# Provider / Media Fixtures
# ============================================================================


@pytest.fixture
def card_payloads() -> Callable[[int], list[dict[str, str]]]:
    return make_cards


@pytest.fixture
def transcript_of() -> Callable[[int], str]:
    return make_transcript


@pytest.fixture
def make_providers() -> Callable[..., Providers]:
    def _make(
        transcript: str = "",
        cards: Optional[list[Any]] = None,
        transcribe_error: Optional[Exception] = None,
        generate_error: Optional[Exception] = None,
    ) -> Providers:
        return Providers(
            transcriber=FakeTranscriber(transcript, transcribe_error),
            generator=FakeGenerator(cards, generate_error),
        )

    return _make


@pytest.fixture
def fake_media(monkeypatch: pytest.MonkeyPatch) -> list[Path]:
    """Replace ffmpeg with a stub that writes a tiny mp3 file."""
    extracted: list[Path] = []

    def _extract(source: Path, audio_output: Path, *, bitrate_kbps: int = 32, max_seconds: int = 0, timeout_s=None) -> Path:
        audio_output.parent.mkdir(parents=True, exist_ok=True)
        audio_output.write_bytes(b"ID3\x04\x00\x00\x00\x00\x00\x00")
        extracted.append(audio_output)
        return audio_output

    monkeypatch.setattr("vidcards.services.pipeline.ffmpeg_available", lambda: True)
    monkeypatch.setattr("vidcards.services.pipeline.ffprobe_available", lambda: True)
    monkeypatch.setattr("vidcards.services.pipeline.extract_audio", _extract)
    return extracted
