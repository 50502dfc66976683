"""Pre-generation checks on transcript substance."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from vidcards.schemas.config import QualityGateConfig


@dataclass(frozen=True)
class GateResult:
    accepted: bool
    reason: Optional[str] = None
    warnings: list[str] = field(default_factory=list)


def find_error_fingerprint(text: str, fingerprints: list[str]) -> Optional[str]:
    lowered = text.lower()
    for fingerprint in fingerprints:
        needle = fingerprint.strip().lower()
        if needle and needle in lowered:
            return fingerprint
    return None


def has_educational_signal(text: str, keywords: list[str]) -> bool:
    lowered = text.lower()
    return any(keyword.strip().lower() in lowered for keyword in keywords if keyword.strip())


def evaluate_transcript(text: Optional[str], cfg: Optional[QualityGateConfig] = None) -> GateResult:
    cfg = cfg or QualityGateConfig()
    content = (text or "").strip()

    if len(content) < cfg.min_chars:
        return GateResult(
            accepted=False,
            reason=f"Transcript is too short ({len(content)} chars, minimum {cfg.min_chars})",
        )
    if len(content) > cfg.max_chars:
        return GateResult(
            accepted=False,
            reason=f"Transcript is too long ({len(content)} chars, maximum {cfg.max_chars})",
        )

    fingerprint = find_error_fingerprint(content, cfg.error_fingerprints)
    if fingerprint:
        return GateResult(
            accepted=False,
            reason=f"Transcript looks like a provider error message (matched `{fingerprint}`)",
        )

    warnings: list[str] = []
    if cfg.keyword_policy != "off" and not has_educational_signal(content, cfg.educational_keywords):
        message = "Transcript has no recognizable educational keywords"
        if cfg.keyword_policy == "reject":
            return GateResult(accepted=False, reason=message)
        warnings.append(message)

    return GateResult(accepted=True, warnings=warnings)
