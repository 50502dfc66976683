"""Project-wide constants and state definitions."""

from __future__ import annotations

from enum import Enum


class JobStatus(str, Enum):
    UPLOADING = "uploading"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATES = {JobStatus.COMPLETED, JobStatus.FAILED}

# Self-edge on PROCESSING carries progress updates only.
ALLOWED_TRANSITIONS = {
    JobStatus.UPLOADING: {JobStatus.PROCESSING},
    JobStatus.PROCESSING: {JobStatus.PROCESSING, JobStatus.COMPLETED, JobStatus.FAILED},
    JobStatus.COMPLETED: set(),
    JobStatus.FAILED: set(),
}


class SourceKind(str, Enum):
    FILE = "file"
    URL = "url"


class FailureCause(str, Enum):
    UNSUPPORTED_SOURCE = "unsupported_source"
    ACQUISITION_FAILED = "acquisition_failed"
    EXTRACTION_FAILED = "extraction_failed"
    PROVIDER_AUTH = "provider_auth"
    PROVIDER_QUOTA = "provider_quota"
    PROVIDER_RATE_LIMIT = "provider_rate_limit"
    PROVIDER_NETWORK = "provider_network"
    UNSUPPORTED_FORMAT = "unsupported_format"
    TRANSCRIPTION_FAILED = "transcription_failed"
    QUALITY_REJECTED = "quality_rejected"
    GENERATION_FAILED = "generation_failed"
    GENERATION_EMPTY = "generation_empty"
    PERSISTENCE_FAILED = "persistence_failed"
    INTERRUPTED = "interrupted"
    INTERNAL = "internal_error"


class Progress:
    ACCEPTED = 10
    SOURCE_ACQUIRED = 30
    AUDIO_READY = 45
    TRANSCRIBED = 60
    VALIDATED = 70
    GENERATED = 80
    COMPLETED = 100


class SessionAction(str, Enum):
    ADVANCE = "advance"
    RETREAT = "retreat"
    MARK_LEARNED = "mark_learned"
    MARK_REVIEW = "mark_review"
    SHUFFLE = "shuffle"
    COMPLETE = "complete"


ALLOWED_VIDEO_MIME_TYPES = {"video/mp4", "video/quicktime", "video/x-msvideo"}

MEDIA_URL_SUFFIXES = {
    ".mp4",
    ".mov",
    ".avi",
    ".m4v",
    ".mkv",
    ".webm",
    ".mp3",
    ".m4a",
    ".wav",
}

STREAMING_PLATFORM_HOSTS = {
    "youtube.com",
    "youtu.be",
    "vimeo.com",
    "tiktok.com",
    "instagram.com",
    "facebook.com",
    "fb.watch",
    "twitch.tv",
    "dailymotion.com",
    "bilibili.com",
}
