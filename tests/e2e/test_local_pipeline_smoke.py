import os
import shutil
from pathlib import Path

import pytest

from vidcards.core.constants import JobStatus, SourceKind
from vidcards.core.settings import PATHS
from vidcards.db.base import Base
from vidcards.db.session import SessionLocal, engine
from vidcards.services import repository
from vidcards.services.pipeline import execute_job

pytestmark = [
    pytest.mark.e2e,
    pytest.mark.skipif(
        os.environ.get("RUN_E2E") != "1" or not os.environ.get("E2E_VIDEO_PATH"),
        reason="Set RUN_E2E=1, E2E_VIDEO_PATH, OPENAI_API_KEY and install ffmpeg to run e2e.",
    ),
]


def test_real_video_produces_flashcards() -> None:
    Base.metadata.create_all(bind=engine)
    source = Path(os.environ["E2E_VIDEO_PATH"])
    target = PATHS.jobs_root / "e2e_smoke" / f"source_{source.name}"
    target.parent.mkdir(parents=True, exist_ok=True)
    shutil.copyfile(source, target)

    with SessionLocal() as db:
        if repository.get_job(db, "e2e_smoke"):
            repository.delete_job(db, "e2e_smoke")
        repository.create_job(
            db,
            job_id="e2e_smoke",
            source_kind=SourceKind.FILE,
            original_name=source.name,
            source_path=str(target),
            file_size=target.stat().st_size,
            mime_type="video/mp4",
        )
        db.commit()

    assert execute_job("e2e_smoke") == JobStatus.COMPLETED.value

    with SessionLocal() as db:
        cards = repository.list_flashcards(db, "e2e_smoke")
        assert cards
        assert all(card.question and card.answer for card in cards)
