"""Media processing helpers powered by ffmpeg/ffprobe."""

from __future__ import annotations

import json
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from vidcards.core.constants import FailureCause
from vidcards.core.errors import StageError

AUDIO_SAMPLE_RATE = 16000
DEFAULT_AUDIO_BITRATE_KBPS = 32


class MediaError(StageError):
    cause = FailureCause.EXTRACTION_FAILED


@dataclass
class MediaMeta:
    duration: float
    has_video: bool
    has_audio: bool


def _run(cmd: list[str], timeout_s: Optional[int] = None) -> subprocess.CompletedProcess[str]:
    try:
        proc = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout_s)
    except subprocess.TimeoutExpired as exc:
        raise MediaError(f"{cmd[0]} timed out after {timeout_s}s") from exc
    except OSError as exc:
        raise MediaError(f"{cmd[0]} could not be started: {exc}") from exc
    if proc.returncode != 0:
        stderr = proc.stderr.strip().splitlines()
        detail = stderr[-1] if stderr else f"exit code {proc.returncode}"
        raise MediaError(f"{cmd[0]} failed: {detail}")
    return proc


def ffmpeg_available() -> bool:
    return shutil.which("ffmpeg") is not None


def ffprobe_available() -> bool:
    return shutil.which("ffprobe") is not None


def probe_media(path: Path, timeout_s: Optional[int] = 60) -> MediaMeta:
    proc = _run(
        [
            "ffprobe",
            "-v",
            "error",
            "-show_streams",
            "-show_format",
            "-of",
            "json",
            str(path),
        ],
        timeout_s=timeout_s,
    )
    try:
        payload = json.loads(proc.stdout or "{}")
    except json.JSONDecodeError as exc:
        raise MediaError("ffprobe returned unreadable output") from exc

    streams = payload.get("streams", [])
    duration = payload.get("format", {}).get("duration") or 0
    try:
        duration_value = float(duration)
    except (TypeError, ValueError):
        duration_value = 0.0
    return MediaMeta(
        duration=duration_value,
        has_video=any(s.get("codec_type") == "video" for s in streams),
        has_audio=any(s.get("codec_type") == "audio" for s in streams),
    )


def extract_audio(
    source: Path,
    audio_output: Path,
    *,
    bitrate_kbps: int = DEFAULT_AUDIO_BITRATE_KBPS,
    max_seconds: int = 0,
    timeout_s: Optional[int] = None,
) -> Path:
    """Write a mono 16 kHz MP3 track of `source` to `audio_output`.

    At 32 kbps an hour of audio is about 14 MB.
    """
    meta = probe_media(source)
    if not meta.has_audio:
        raise MediaError("The video has no audio track to transcribe")

    audio_output.parent.mkdir(parents=True, exist_ok=True)
    cmd = ["ffmpeg", "-y", "-i", str(source)]
    if max_seconds > 0:
        cmd += ["-t", str(int(max_seconds))]
    cmd += [
        "-vn",
        "-ac",
        "1",
        "-ar",
        str(AUDIO_SAMPLE_RATE),
        "-c:a",
        "libmp3lame",
        "-b:a",
        f"{int(bitrate_kbps)}k",
        str(audio_output),
    ]
    _run(cmd, timeout_s=timeout_s)

    if not audio_output.exists() or audio_output.stat().st_size == 0:
        raise MediaError("Audio extraction produced an empty file")
    return audio_output
