"""Resolve a job's source into a local media file."""

from __future__ import annotations

from pathlib import Path, PurePosixPath
from typing import Optional
from urllib.parse import unquote, urlparse

import httpx

from vidcards.core.constants import MEDIA_URL_SUFFIXES, STREAMING_PLATFORM_HOSTS, FailureCause
from vidcards.core.errors import StageError


class AcquisitionError(StageError):
    cause = FailureCause.ACQUISITION_FAILED


class UnsupportedSourceError(AcquisitionError):
    cause = FailureCause.UNSUPPORTED_SOURCE


def _host_matches(host: str, domains: set[str]) -> bool:
    host = host.lower().rstrip(".")
    if host.startswith("www."):
        host = host[4:]
    return any(host == domain or host.endswith(f".{domain}") for domain in domains)


def url_filename(url: str, default: str = "video.mp4") -> str:
    name = PurePosixPath(unquote(urlparse(url).path)).name
    return name or default


def check_source_url(url: str) -> str:
    """Return the media suffix for a downloadable URL or raise UnsupportedSourceError."""
    parsed = urlparse(url)
    if parsed.scheme not in {"http", "https"} or not parsed.hostname:
        raise UnsupportedSourceError(f"Unsupported video source: {url}")

    if _host_matches(parsed.hostname, STREAMING_PLATFORM_HOSTS):
        raise UnsupportedSourceError(
            f"Unsupported video source: {parsed.hostname} pages cannot be downloaded directly; "
            "upload the video file or use a direct media link"
        )

    suffix = PurePosixPath(unquote(parsed.path)).suffix.lower()
    if suffix not in MEDIA_URL_SUFFIXES:
        raise UnsupportedSourceError(
            f"Unsupported video source: {url} is not a direct link to a media file "
            f"(expected one of {', '.join(sorted(MEDIA_URL_SUFFIXES))})"
        )
    return suffix


def download_source(
    url: str,
    output_dir: Path,
    *,
    timeout_s: int,
    max_bytes: int,
    client: Optional[httpx.Client] = None,
) -> Path:
    suffix = check_source_url(url)
    output_dir.mkdir(parents=True, exist_ok=True)
    output_path = output_dir / f"download{suffix}"

    owns_client = client is None
    http = client or httpx.Client(timeout=timeout_s, follow_redirects=True)
    written = 0
    try:
        with http.stream("GET", url, timeout=timeout_s) as resp:
            if resp.status_code >= 400:
                raise AcquisitionError(f"Video download failed: HTTP {resp.status_code} from {url}")
            content_type = resp.headers.get("content-type", "").split(";")[0].strip().lower()
            if content_type.startswith("text/"):
                raise UnsupportedSourceError(
                    f"Unsupported video source: {url} returned {content_type} instead of media"
                )
            with output_path.open("wb") as f:
                for chunk in resp.iter_bytes():
                    written += len(chunk)
                    if written > max_bytes:
                        raise AcquisitionError(
                            f"Video download exceeds the {max_bytes // (1024 * 1024)} MB limit"
                        )
                    f.write(chunk)
    except httpx.TimeoutException as exc:
        raise AcquisitionError(f"Video download timed out after {timeout_s}s") from exc
    except httpx.HTTPError as exc:
        raise AcquisitionError(f"Video download failed: {exc}") from exc
    finally:
        if owns_client:
            http.close()

    if written == 0:
        raise AcquisitionError(f"Video download from {url} was empty")
    return output_path
