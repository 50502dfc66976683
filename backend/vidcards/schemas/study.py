"""Pydantic schemas for study session endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from vidcards.core.constants import SessionAction


class StudySessionAction(BaseModel):
    action: SessionAction
    card_index: Optional[int] = Field(default=None, ge=0)


class StudySessionOut(BaseModel):
    id: int
    job_id: str
    current_card_index: int
    learned_cards: list[int]
    review_cards: list[int]
    started_at: datetime
    completed_at: Optional[datetime]
    study_time_seconds: int
    total_cards: int
    learned_count: int
    review_count: int
    completed: bool
