"""Study session rules over a job's ordered flashcards."""

from __future__ import annotations

import random
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from vidcards.core.constants import SessionAction
from vidcards.models.study import StudySession
from vidcards.schemas.study import StudySessionOut
from vidcards.services import repository


class StudySessionError(ValueError):
    pass


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes.
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def get_or_create_session(db: Session, job_id: str) -> StudySession:
    with repository.job_lock(job_id):
        session = repository.get_study_session_by_job(db, job_id)
        if session:
            return session
        try:
            session = repository.create_study_session(db, job_id)
            db.commit()
        except IntegrityError:
            db.rollback()
            session = repository.get_study_session_by_job(db, job_id)
            if session is None:
                raise
        return session


def _complete(session: StudySession, now: datetime) -> None:
    if session.completed_at is not None:
        return
    session.completed_at = now
    elapsed = (now - _as_utc(session.started_at)).total_seconds()
    session.study_time_seconds = max(0, int(elapsed))


def _mark(session: StudySession, index: int, *, learned: bool) -> None:
    learned_cards = set(session.learned_cards or [])
    review_cards = set(session.review_cards or [])
    if learned:
        learned_cards.add(index)
        review_cards.discard(index)
    else:
        review_cards.add(index)
        learned_cards.discard(index)
    # Reassign so the JSON columns are flagged dirty.
    session.learned_cards = sorted(learned_cards)
    session.review_cards = sorted(review_cards)


def apply_action(
    db: Session,
    session: StudySession,
    action: SessionAction,
    card_index: Optional[int] = None,
    *,
    now: Optional[datetime] = None,
    rng: Optional[random.Random] = None,
) -> StudySession:
    with repository.job_lock(session.job_id):
        db.refresh(session)
        total = repository.count_flashcards(db, session.job_id)
        if total == 0:
            raise StudySessionError("This video has no flashcards to study yet")

        now = now or datetime.now(timezone.utc)
        index = min(max(session.current_card_index, 0), total - 1)

        if action == SessionAction.ADVANCE:
            if index < total - 1:
                index += 1
            else:
                _complete(session, now)
        elif action == SessionAction.RETREAT:
            index = max(0, index - 1)
        elif action in (SessionAction.MARK_LEARNED, SessionAction.MARK_REVIEW):
            target = index if card_index is None else card_index
            if not 0 <= target < total:
                raise StudySessionError(f"card_index {target} is out of range (0..{total - 1})")
            _mark(session, target, learned=action == SessionAction.MARK_LEARNED)
        elif action == SessionAction.SHUFFLE:
            choices = [i for i in range(total) if i != index] or [index]
            index = (rng or random).choice(choices)
        elif action == SessionAction.COMPLETE:
            _complete(session, now)
        else:
            raise StudySessionError(f"Unsupported action: {action}")

        session.current_card_index = index
        db.commit()
        return session


def to_study_session_out(session: StudySession, total_cards: int) -> StudySessionOut:
    return StudySessionOut(
        id=session.id,
        job_id=session.job_id,
        current_card_index=session.current_card_index,
        learned_cards=list(session.learned_cards or []),
        review_cards=list(session.review_cards or []),
        started_at=session.started_at,
        completed_at=session.completed_at,
        study_time_seconds=session.study_time_seconds,
        total_cards=total_cards,
        learned_count=len(session.learned_cards or []),
        review_count=len(session.review_cards or []),
        completed=session.completed_at is not None,
    )
