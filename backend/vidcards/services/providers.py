"""HTTP clients for the speech-to-text and text-generation providers."""

from __future__ import annotations

import json
import mimetypes
import re
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional, Protocol

import httpx

from vidcards.core.constants import FailureCause
from vidcards.core.errors import StageError
from vidcards.schemas.config import GenerationConfig, TranscriptionConfig
from vidcards.services.flashcard_schema import extract_flashcard_items

_QUOTA_MARKERS = ("insufficient_quota", "quota", "billing")


class ProviderError(StageError):
    def __init__(self, provider: str, message: str, cause: FailureCause) -> None:
        super().__init__(f"{provider} provider: {message}", cause=cause)
        self.provider = provider


def _deep_find(data: Any, keys: set[str]) -> list[Any]:
    found: list[Any] = []
    if isinstance(data, dict):
        for k, v in data.items():
            if k in keys:
                found.append(v)
            found.extend(_deep_find(v, keys))
    elif isinstance(data, list):
        for item in data:
            found.extend(_deep_find(item, keys))
    return found


def _first_string(values: list[Any]) -> Optional[str]:
    for value in values:
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def _error_detail(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text[:300]
    error = payload.get("error") if isinstance(payload, dict) else None
    if isinstance(error, dict):
        parts = [str(error.get(key)) for key in ("code", "type", "message") if error.get(key)]
        if parts:
            return " ".join(parts)[:300]
    return response.text[:300]


def classify_http_error(provider: str, response: httpx.Response, default_cause: FailureCause) -> ProviderError:
    status = response.status_code
    detail = _error_detail(response)
    lowered = detail.lower()

    if status in (401, 403):
        return ProviderError(provider, f"authentication failed ({status}): {detail}", FailureCause.PROVIDER_AUTH)
    if status == 402 or (status == 429 and any(marker in lowered for marker in _QUOTA_MARKERS)):
        return ProviderError(provider, f"quota or billing problem ({status}): {detail}", FailureCause.PROVIDER_QUOTA)
    if status == 429:
        return ProviderError(provider, f"rate limit exceeded: {detail}", FailureCause.PROVIDER_RATE_LIMIT)
    if status >= 500:
        return ProviderError(provider, f"upstream unavailable ({status}): {detail}", FailureCause.PROVIDER_NETWORK)
    return ProviderError(provider, f"request failed ({status}): {detail}", default_cause)


def parse_transcription_text(payload: dict[str, Any]) -> str:
    direct = payload.get("text")
    if isinstance(direct, str) and direct.strip():
        return direct.strip()

    segments = payload.get("segments")
    if isinstance(segments, list):
        parts = [
            row["text"].strip()
            for row in segments
            if isinstance(row, dict) and isinstance(row.get("text"), str) and row["text"].strip()
        ]
        if parts:
            return " ".join(parts)

    return _first_string(_deep_find(payload, {"text"})) or ""


def parse_llm_text(payload: dict[str, Any]) -> str:
    choices = payload.get("choices")
    if isinstance(choices, list) and choices:
        first = choices[0]
        if isinstance(first, dict):
            message = first.get("message")
            if isinstance(message, dict):
                content = message.get("content")
                if isinstance(content, str):
                    return content.strip()
            content = first.get("content")
            if isinstance(content, str):
                return content.strip()

    output_text = payload.get("output_text")
    if isinstance(output_text, str):
        return output_text.strip()

    candidates = _deep_find(payload, {"text", "content"})
    content = _first_string(candidates)
    return content or ""


def extract_first_json_object(text: str) -> dict[str, Any]:
    text = text.strip()
    if not text:
        raise ValueError("empty llm output")

    if text.startswith("```"):
        text = re.sub(r"^```(?:json)?", "", text).strip()
        text = re.sub(r"```$", "", text).strip()

    try:
        parsed = json.loads(text)
        if isinstance(parsed, dict):
            return parsed
    except json.JSONDecodeError:
        pass

    match = re.search(r"\{.*\}", text, flags=re.DOTALL)
    if not match:
        raise ValueError("no json object found in llm output")

    parsed = json.loads(match.group(0))
    if not isinstance(parsed, dict):
        raise ValueError("llm output json must be object")
    return parsed


class Transcriber(Protocol):
    def transcribe(self, cfg: TranscriptionConfig, audio_file: Path, *, language: str) -> str: ...


class FlashcardGenerator(Protocol):
    def generate(self, cfg: GenerationConfig, transcript: str) -> list[Any]: ...


class WhisperTranscriber:
    provider_name = "transcription"

    def __init__(self, client: Optional[httpx.Client] = None) -> None:
        self._client = client or httpx.Client()

    def close(self) -> None:
        self._client.close()

    def transcribe(self, cfg: TranscriptionConfig, audio_file: Path, *, language: str) -> str:
        if not cfg.api_key:
            raise ProviderError(self.provider_name, "API key is not configured", FailureCause.PROVIDER_AUTH)

        size = audio_file.stat().st_size
        max_bytes = cfg.max_file_mb * 1024 * 1024
        if size > max_bytes:
            raise ProviderError(
                self.provider_name,
                f"audio is {size // (1024 * 1024)} MB, above the {cfg.max_file_mb} MB upload limit",
                FailureCause.UNSUPPORTED_FORMAT,
            )

        url = f"{cfg.base_url.rstrip('/')}/v1/audio/transcriptions"
        headers = {"Authorization": f"Bearer {cfg.api_key}"}
        data = {"model": cfg.model, "response_format": "json"}
        if language:
            data["language"] = language
        media_type = mimetypes.guess_type(audio_file.name)[0] or "application/octet-stream"

        try:
            with audio_file.open("rb") as f:
                resp = self._client.post(
                    url,
                    headers=headers,
                    data=data,
                    files={"file": (audio_file.name, f, media_type)},
                    timeout=cfg.timeout_s,
                )
        except httpx.TimeoutException as exc:
            raise ProviderError(
                self.provider_name, f"timed out after {cfg.timeout_s}s", FailureCause.PROVIDER_NETWORK
            ) from exc
        except httpx.TransportError as exc:
            raise ProviderError(self.provider_name, f"network error: {exc}", FailureCause.PROVIDER_NETWORK) from exc

        if resp.status_code in (400, 413, 415):
            raise ProviderError(
                self.provider_name,
                f"audio was rejected ({resp.status_code}): {_error_detail(resp)}",
                FailureCause.UNSUPPORTED_FORMAT,
            )
        if resp.status_code >= 400:
            raise classify_http_error(self.provider_name, resp, FailureCause.TRANSCRIPTION_FAILED)

        try:
            payload = resp.json()
        except ValueError as exc:
            raise ProviderError(
                self.provider_name, "response was not JSON", FailureCause.TRANSCRIPTION_FAILED
            ) from exc
        return parse_transcription_text(payload)


class ChatFlashcardGenerator:
    provider_name = "generation"

    def __init__(self, client: Optional[httpx.Client] = None) -> None:
        self._client = client or httpx.Client()

    def close(self) -> None:
        self._client.close()

    @staticmethod
    def build_messages(cfg: GenerationConfig, transcript: str) -> list[dict[str, str]]:
        try:
            system_prompt = cfg.system_prompt.format(min_cards=cfg.min_cards, max_cards=cfg.max_cards)
        except (KeyError, IndexError, ValueError):
            # Custom prompts with literal braces are sent unformatted.
            system_prompt = cfg.system_prompt
        return [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": f"Generate flashcards from this video transcription:\n\n{transcript}"},
        ]

    def generate(self, cfg: GenerationConfig, transcript: str) -> list[Any]:
        if not cfg.api_key:
            raise ProviderError(self.provider_name, "API key is not configured", FailureCause.PROVIDER_AUTH)

        url = f"{cfg.base_url.rstrip('/')}/v1/chat/completions"
        headers = {"Authorization": f"Bearer {cfg.api_key}", "Content-Type": "application/json"}
        payload = {
            "model": cfg.model,
            "messages": self.build_messages(cfg, transcript),
            "temperature": cfg.temperature,
            "response_format": {"type": "json_object"},
        }

        try:
            resp = self._client.post(url, headers=headers, json=payload, timeout=cfg.timeout_s)
        except httpx.TimeoutException as exc:
            raise ProviderError(
                self.provider_name, f"timed out after {cfg.timeout_s}s", FailureCause.PROVIDER_NETWORK
            ) from exc
        except httpx.TransportError as exc:
            raise ProviderError(self.provider_name, f"network error: {exc}", FailureCause.PROVIDER_NETWORK) from exc

        if resp.status_code >= 400:
            raise classify_http_error(self.provider_name, resp, FailureCause.GENERATION_FAILED)

        try:
            content = parse_llm_text(resp.json())
            parsed = extract_first_json_object(content)
        except ValueError as exc:
            raise ProviderError(
                self.provider_name, f"response was not a JSON object: {exc}", FailureCause.GENERATION_FAILED
            ) from exc

        return extract_flashcard_items(parsed)


@dataclass
class Providers:
    transcriber: Transcriber
    generator: FlashcardGenerator


@lru_cache(maxsize=1)
def get_providers() -> Providers:
    """Process-wide provider clients, built on first use."""
    return Providers(transcriber=WhisperTranscriber(), generator=ChatFlashcardGenerator())
