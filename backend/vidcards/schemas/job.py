"""Pydantic schemas for job API requests and responses."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import AnyHttpUrl, BaseModel


class VideoUrlRequest(BaseModel):
    video_url: AnyHttpUrl


class JobEventOut(BaseModel):
    id: int
    job_id: str
    status: str
    message: str
    created_at: datetime


class JobOut(BaseModel):
    id: str
    owner_id: Optional[str]
    source_kind: str
    original_name: str
    source_url: Optional[str]
    file_size: int
    mime_type: Optional[str]
    status: str
    progress: int
    has_transcript: bool
    transcript: Optional[str]
    error_code: Optional[str]
    error_message: Optional[str]
    flashcard_count: int
    created_at: datetime
    updated_at: datetime


class JobCreateResponse(BaseModel):
    job_id: str
    status: str
    job: JobOut


class FlashcardOut(BaseModel):
    id: int
    job_id: str
    question: str
    answer: str
    position: int


class FlashcardListOut(BaseModel):
    job_id: str
    flashcards: list[FlashcardOut]
