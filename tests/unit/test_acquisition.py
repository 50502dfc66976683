from pathlib import Path

import httpx
import pytest

from vidcards.core.constants import FailureCause
from vidcards.services.acquisition import (
    AcquisitionError,
    UnsupportedSourceError,
    check_source_url,
    download_source,
    url_filename,
)


def _client(handler) -> httpx.Client:
    return httpx.Client(transport=httpx.MockTransport(handler))


@pytest.mark.parametrize(
    "url",
    [
        "https://www.youtube.com/watch?v=abc123",
        "https://youtu.be/abc123",
        "https://player.vimeo.com/video/42.mp4",
        "https://example.com/lectures/intro",
        "ftp://example.com/lecture.mp4",
    ],
)
def test_check_source_url_rejects_pages_and_platforms(url: str) -> None:
    with pytest.raises(UnsupportedSourceError) as excinfo:
        check_source_url(url)
    assert excinfo.value.cause == FailureCause.UNSUPPORTED_SOURCE


def test_check_source_url_accepts_direct_media_link() -> None:
    assert check_source_url("https://cdn.example.com/course/Week%201.MP4?sig=x") == ".mp4"
    assert url_filename("https://cdn.example.com/course/Week%201.MP4?sig=x") == "Week 1.MP4"


def test_download_source_streams_media(tmp_path: Path) -> None:
    body = b"\x00\x00\x00\x18ftypmp42" * 64

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, headers={"content-type": "video/mp4"}, content=body)

    path = download_source(
        "https://cdn.example.com/lecture.mp4",
        tmp_path / "job",
        timeout_s=10,
        max_bytes=1024 * 1024,
        client=_client(handler),
    )
    assert path.name == "download.mp4"
    assert path.read_bytes() == body


def test_download_source_rejects_html_response(tmp_path: Path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, headers={"content-type": "text/html; charset=utf-8"}, content=b"<html></html>")

    with pytest.raises(UnsupportedSourceError):
        download_source(
            "https://cdn.example.com/lecture.mp4",
            tmp_path,
            timeout_s=10,
            max_bytes=1024,
            client=_client(handler),
        )


def test_download_source_reports_http_status(tmp_path: Path) -> None:
    with pytest.raises(AcquisitionError) as excinfo:
        download_source(
            "https://cdn.example.com/missing.mp4",
            tmp_path,
            timeout_s=10,
            max_bytes=1024,
            client=_client(lambda request: httpx.Response(404)),
        )
    assert excinfo.value.cause == FailureCause.ACQUISITION_FAILED
    assert "HTTP 404" in str(excinfo.value)


def test_download_source_enforces_size_cap(tmp_path: Path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, headers={"content-type": "video/mp4"}, content=b"x" * 4096)

    with pytest.raises(AcquisitionError) as excinfo:
        download_source(
            "https://cdn.example.com/lecture.mp4",
            tmp_path,
            timeout_s=10,
            max_bytes=1024,
            client=_client(handler),
        )
    assert "limit" in str(excinfo.value)


def test_download_source_maps_timeout(tmp_path: Path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("no route", request=request)

    with pytest.raises(AcquisitionError) as excinfo:
        download_source(
            "https://cdn.example.com/lecture.mp4",
            tmp_path,
            timeout_s=3,
            max_bytes=1024,
            client=_client(handler),
        )
    assert "timed out after 3s" in str(excinfo.value)
