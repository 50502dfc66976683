"""Validation for generated flashcard JSON."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from vidcards.core.constants import FailureCause
from vidcards.core.errors import StageError


class FlashcardSchemaError(StageError):
    cause = FailureCause.GENERATION_EMPTY


@dataclass(frozen=True)
class FlashcardPair:
    question: str
    answer: str


@dataclass(frozen=True)
class ValidatedFlashcards:
    pairs: list[FlashcardPair]
    dropped: int


def extract_flashcard_items(payload: dict[str, Any]) -> list[Any]:
    items = payload.get("flashcards")
    if not isinstance(items, list):
        raise FlashcardSchemaError(
            "Generation response is missing a `flashcards` array",
            cause=FailureCause.GENERATION_FAILED,
        )
    return items


def _clean_text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def validate_flashcards(items: list[Any]) -> ValidatedFlashcards:
    """Keep well-formed entries in order; fail only when none survive."""
    pairs: list[FlashcardPair] = []
    dropped = 0
    for item in items:
        if not isinstance(item, dict):
            dropped += 1
            continue
        question = _clean_text(item.get("question"))
        answer = _clean_text(item.get("answer"))
        if not question or not answer:
            dropped += 1
            continue
        pairs.append(FlashcardPair(question=question, answer=answer))

    if not pairs:
        raise FlashcardSchemaError(f"Generation returned no usable flashcards ({dropped} malformed entries)")
    return ValidatedFlashcards(pairs=pairs, dropped=dropped)
