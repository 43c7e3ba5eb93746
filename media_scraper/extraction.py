"""HTML media extraction for fetched pages."""

from __future__ import annotations

import logging
from typing import Iterator
from urllib.parse import urljoin, urlsplit

from bs4 import BeautifulSoup, Tag

from .records import MediaRecord, MediaType

LOGGER = logging.getLogger(__name__)

DEFAULT_IMAGE_NAME = "image"
DEFAULT_VIDEO_NAME = "unknown.mp4"


class MalformedURLError(ValueError):
    """Raised when a media reference cannot be resolved to an absolute URL."""


def resolve_media_url(src: str, source_url: str) -> str:
    """Resolve ``src`` against ``source_url`` and return an absolute URL."""

    base = urlsplit(source_url)
    if not base.scheme or not base.netloc:
        raise MalformedURLError(f"Source URL {source_url!r} is not absolute")

    try:
        resolved = urljoin(source_url, src.strip())
        parts = urlsplit(resolved)
        # Accessing the port validates it; out of range or non-numeric ports raise.
        parts.port
    except ValueError as exc:
        raise MalformedURLError(f"Cannot resolve {src!r} against {source_url!r}: {exc}") from exc

    if not parts.scheme:
        raise MalformedURLError(f"Resolved media URL {resolved!r} has no scheme")
    if parts.scheme in {"http", "https"} and not parts.hostname:
        raise MalformedURLError(f"Resolved media URL {resolved!r} has no host")
    return resolved


def _last_segment(src: str) -> str:
    return src.split("/")[-1]


def image_file_name(src: str) -> str:
    return _last_segment(src) or DEFAULT_IMAGE_NAME


def video_file_name(src: str) -> str:
    return _last_segment(src).split("?")[0] or DEFAULT_VIDEO_NAME


def _src(element: Tag) -> str | None:
    value = element.get("src")
    if not value or not value.strip():
        return None
    return value


def _iter_video_sources(soup: BeautifulSoup) -> Iterator[Tag]:
    """Yield ``video`` elements and ``source`` elements nested in a video, in document order."""

    for element in soup.find_all(["video", "source"]):
        if element.name == "video" or element.find_parent("video") is not None:
            yield element


def _extract_images(soup: BeautifulSoup, source_url: str) -> list[MediaRecord]:
    records: list[MediaRecord] = []
    for element in soup.find_all("img"):
        src = _src(element)
        if src is None:
            continue
        try:
            media_url = resolve_media_url(src, source_url)
        except MalformedURLError as exc:
            LOGGER.debug("Dropping image on %s: %s", source_url, exc)
            continue
        alt = element.get("alt") or ""
        records.append(
            MediaRecord(
                source_url=source_url,
                media_url=media_url,
                media_type=MediaType.IMAGE,
                file_name=image_file_name(src),
                alt_text=alt if isinstance(alt, str) else " ".join(alt),
            )
        )
    return records


def _extract_videos(soup: BeautifulSoup, source_url: str) -> list[MediaRecord]:
    records: list[MediaRecord] = []
    for element in _iter_video_sources(soup):
        src = _src(element)
        if src is None:
            continue
        try:
            media_url = resolve_media_url(src, source_url)
        except MalformedURLError as exc:
            LOGGER.debug("Dropping video on %s: %s", source_url, exc)
            continue
        records.append(
            MediaRecord(
                source_url=source_url,
                media_url=media_url,
                media_type=MediaType.VIDEO,
                file_name=video_file_name(src),
                alt_text="",
            )
        )
    return records


def extract_media(source_url: str, html: str) -> list[MediaRecord]:
    """Return the image then video records referenced by ``html``.

    Elements whose ``src`` cannot be resolved against ``source_url`` are
    dropped individually; a page without media yields an empty list.
    """

    soup = BeautifulSoup(html, "html.parser")
    return _extract_images(soup, source_url) + _extract_videos(soup, source_url)


__all__ = [
    "MalformedURLError",
    "extract_media",
    "image_file_name",
    "resolve_media_url",
    "video_file_name",
]
