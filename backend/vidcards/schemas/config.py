"""Pydantic schemas for persisted app configuration."""

from __future__ import annotations

import os
from typing import Literal

from pydantic import BaseModel, Field


def _env_api_key() -> str:
    return os.environ.get("OPENAI_API_KEY", "")


class TranscriptionConfig(BaseModel):
    base_url: str = "https://api.openai.com"
    api_key: str = Field(default_factory=_env_api_key)
    model: str = "whisper-1"
    language: str = "en"
    timeout_s: int = 300
    max_file_mb: int = 25


class GenerationConfig(BaseModel):
    base_url: str = "https://api.openai.com"
    api_key: str = Field(default_factory=_env_api_key)
    model: str = "gpt-4o"
    timeout_s: int = 120
    temperature: float = 0.4
    min_cards: int = 8
    max_cards: int = 10
    system_prompt: str = (
        "You are an expert educational content creator. Generate {min_cards}-{max_cards} "
        "high-quality flashcard question-answer pairs from the provided video transcription.\n\n"
        "Requirements:\n"
        "- Questions must be directly based on the specific content provided.\n"
        "- Do not create generic or unrelated questions.\n"
        "- Focus on key concepts, definitions and important facts from the transcription.\n"
        "- Answers must be clear, concise and factually accurate to the transcription.\n"
        "- Do not add external knowledge that is not mentioned in the transcription.\n"
        "- Vary question types (what, how, why, compare) but keep them relevant.\n\n"
        'Respond with JSON in this exact format: {{"flashcards": [{{"question": "...", "answer": "..."}}]}}'
    )


class QualityGateConfig(BaseModel):
    min_chars: int = 100
    max_chars: int = 50_000
    error_fingerprints: list[str] = Field(
        default_factory=lambda: [
            "quota exceeded",
            "insufficient_quota",
            "exceeded your current quota",
            "check your billing",
            "billing hard limit",
            "incorrect api key",
            "invalid api key",
            "rate limit exceeded",
            "processing failed",
            "failed to transcribe",
            "internal server error",
        ]
    )
    educational_keywords: list[str] = Field(
        default_factory=lambda: [
            "learn",
            "understand",
            "concept",
            "definition",
            "explain",
            "example",
            "important",
            "key",
            "topic",
            "subject",
        ]
    )
    keyword_policy: Literal["off", "warn", "reject"] = "warn"


class PipelineConfig(BaseModel):
    max_upload_mb: int = 500
    max_download_mb: int = 500
    download_timeout_s: int = 300
    extract_timeout_s: int = 600
    max_audio_seconds: int = 0
    audio_bitrate_kbps: int = 32
    extraction_fallback: Literal["fail", "passthrough"] = "fail"


class AppConfig(BaseModel):
    transcription: TranscriptionConfig = Field(default_factory=TranscriptionConfig)
    generation: GenerationConfig = Field(default_factory=GenerationConfig)
    quality_gate: QualityGateConfig = Field(default_factory=QualityGateConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
