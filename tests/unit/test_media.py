import json
import subprocess
from pathlib import Path

import pytest

from vidcards.core.constants import FailureCause
from vidcards.schemas.config import AppConfig
from vidcards.services import media


def _completed(cmd, stdout: str = "", stderr: str = "", returncode: int = 0):
    return subprocess.CompletedProcess(cmd, returncode, stdout=stdout, stderr=stderr)


def _probe_output(*codec_types: str) -> str:
    return json.dumps(
        {
            "streams": [{"codec_type": codec} for codec in codec_types],
            "format": {"duration": "12.5"},
        }
    )


def test_probe_media_reads_streams(monkeypatch) -> None:
    monkeypatch.setattr(media.subprocess, "run", lambda cmd, **kwargs: _completed(cmd, _probe_output("video", "audio")))

    meta = media.probe_media(Path("lecture.mp4"))
    assert meta.duration == 12.5
    assert meta.has_video and meta.has_audio


def test_extract_audio_builds_compressed_mono_16k_command(monkeypatch, tmp_path: Path) -> None:
    commands: list[list[str]] = []

    def fake_run(cmd, **kwargs):
        commands.append(cmd)
        if cmd[0] == "ffprobe":
            return _completed(cmd, _probe_output("video", "audio"))
        Path(cmd[-1]).write_bytes(b"ID3")
        return _completed(cmd)

    monkeypatch.setattr(media.subprocess, "run", fake_run)
    out = media.extract_audio(Path("lecture.mp4"), tmp_path / "audio.mp3", max_seconds=60, timeout_s=30)

    assert out.read_bytes() == b"ID3"
    ffmpeg_cmd = commands[-1]
    assert ffmpeg_cmd[:4] == ["ffmpeg", "-y", "-i", "lecture.mp4"]
    assert ["-t", "60"] == ffmpeg_cmd[4:6]
    assert ffmpeg_cmd[ffmpeg_cmd.index("-c:a") + 1] == "libmp3lame"
    assert ffmpeg_cmd[ffmpeg_cmd.index("-b:a") + 1] == "32k"
    assert ffmpeg_cmd[ffmpeg_cmd.index("-ac") + 1] == "1"
    assert ffmpeg_cmd[ffmpeg_cmd.index("-ar") + 1] == "16000"
    assert ffmpeg_cmd[-1].endswith("audio.mp3")


def test_default_bitrate_fits_long_lectures_under_upload_cap() -> None:
    config = AppConfig()
    bytes_per_second = config.pipeline.audio_bitrate_kbps * 1000 / 8
    seconds_under_cap = config.transcription.max_file_mb * 1024 * 1024 / bytes_per_second
    assert seconds_under_cap > 90 * 60


def test_extract_audio_requires_audio_track(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setattr(media.subprocess, "run", lambda cmd, **kwargs: _completed(cmd, _probe_output("video")))

    with pytest.raises(media.MediaError, match="no audio track") as excinfo:
        media.extract_audio(Path("silent.mp4"), tmp_path / "audio.mp3")
    assert excinfo.value.cause == FailureCause.EXTRACTION_FAILED


def test_run_reports_last_stderr_line(monkeypatch) -> None:
    stderr = "ffmpeg version 6\nlecture.mp4: Invalid data found when processing input\n"
    monkeypatch.setattr(media.subprocess, "run", lambda cmd, **kwargs: _completed(cmd, stderr=stderr, returncode=1))

    with pytest.raises(media.MediaError, match="Invalid data found"):
        media.probe_media(Path("lecture.mp4"))


def test_run_maps_timeout(monkeypatch) -> None:
    def slow(cmd, **kwargs):
        raise subprocess.TimeoutExpired(cmd, kwargs.get("timeout"))

    monkeypatch.setattr(media.subprocess, "run", slow)
    with pytest.raises(media.MediaError, match="timed out after 5s"):
        media.probe_media(Path("lecture.mp4"), timeout_s=5)
