"""Data models exchanged between the queue, the workers and the result sink."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Mapping


class MediaType(str, Enum):
    IMAGE = "image"
    VIDEO = "video"


@dataclass(frozen=True, slots=True)
class Task:
    url: str

    def to_payload(self) -> dict[str, str]:
        return {"url": self.url}

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "Task":
        url = payload.get("url") if isinstance(payload, Mapping) else None
        if not isinstance(url, str) or not url.strip():
            raise ValueError(f"Task payload is missing a non-empty string 'url': {payload!r}")
        return cls(url=url)


@dataclass(frozen=True, slots=True)
class MediaRecord:
    source_url: str
    media_url: str
    media_type: MediaType
    file_name: str
    alt_text: str = ""

    def to_dict(self) -> dict[str, str]:
        data = asdict(self)
        data["media_type"] = self.media_type.value
        return data


@dataclass(frozen=True, slots=True)
class FailureRecord:
    source_url: str
    error_message: str
    error_kind: str = "processing"

    def __post_init__(self) -> None:
        if not self.source_url:
            raise ValueError("FailureRecord requires a source_url")


__all__ = ["FailureRecord", "MediaRecord", "MediaType", "Task"]
