"""Database persistence for extracted media and scrape failures."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, Optional, Sequence, TypeVar

from sqlalchemy import create_engine, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from models import Base, Media, ScrapeFailure

from .config import ScraperConfig
from .records import FailureRecord, MediaRecord, MediaType

T = TypeVar("T")

MAX_PAGE_SIZE = 100


class PersistenceError(RuntimeError):
    """Raised when the result sink fails to store a record."""


class ResultSink:
    """Persistence boundary receiving the outcome of each scrape task."""

    def write_media_records(self, batch: Sequence[MediaRecord]) -> None:  # pragma: no cover - interface only
        raise NotImplementedError

    def write_failure(self, record: FailureRecord) -> None:  # pragma: no cover - interface only
        raise NotImplementedError


@dataclass(slots=True)
class Page(Generic[T]):
    items: list[T]
    total: int
    page: int
    page_size: int


@dataclass(slots=True)
class StoredMedia:
    id: str
    source_url: str
    media_url: str
    media_type: str
    file_name: Optional[str]
    alt_text: Optional[str]
    created_at: Optional[str]


@dataclass(slots=True)
class StoredFailure:
    id: str
    source_url: str
    error_kind: str
    error_message: str
    created_at: Optional[str]


def build_engine(config: ScraperConfig) -> Engine:
    options = dict(config.engine_options())
    if config.database_url.startswith("sqlite"):
        options["connect_args"] = {"check_same_thread": False}
    return create_engine(config.database_url, **options)


def init_db(engine: Engine) -> None:
    Base.metadata.create_all(engine)


def _isoformat(value) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _clamp_page(page: int, page_size: int) -> tuple[int, int]:
    return max(1, page), max(1, min(page_size, MAX_PAGE_SIZE))


class SqlAlchemyResultSink(ResultSink):
    """Stores scrape outcomes through short-lived sessions, one per write."""

    def __init__(self, session_factory) -> None:
        self._session_factory = session_factory

    @classmethod
    def from_engine(cls, engine: Engine) -> "SqlAlchemyResultSink":
        return cls(sessionmaker(bind=engine))

    def write_media_records(self, batch: Sequence[MediaRecord]) -> None:
        if not batch:
            return
        try:
            with self._session_factory() as session:
                session.add_all(
                    Media(
                        source_url=record.source_url,
                        media_url=record.media_url,
                        media_type=record.media_type.value,
                        file_name=record.file_name,
                        alt_text=record.alt_text,
                    )
                    for record in batch
                )
                session.commit()
        except Exception as exc:
            raise PersistenceError(str(exc)) from exc

    def write_failure(self, record: FailureRecord) -> None:
        try:
            with self._session_factory() as session:
                session.add(
                    ScrapeFailure(
                        source_url=record.source_url,
                        error_kind=record.error_kind,
                        error_message=record.error_message,
                    )
                )
                session.commit()
        except Exception as exc:
            raise PersistenceError(str(exc)) from exc

    def list_media(
        self,
        *,
        media_type: MediaType | None = None,
        search: str | None = None,
        source_url: str | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> Page[StoredMedia]:
        page, page_size = _clamp_page(page, page_size)
        query = select(Media)
        if media_type is not None:
            query = query.where(Media.media_type == media_type.value)
        if search:
            query = query.where(Media.alt_text.icontains(search, autoescape=True))
        if source_url:
            query = query.where(Media.source_url == source_url)

        try:
            with self._session_factory() as session:
                total = session.scalar(select(func.count()).select_from(query.subquery())) or 0
                rows = session.scalars(
                    query.order_by(Media.created_at.desc(), Media.id.desc())
                    .offset((page - 1) * page_size)
                    .limit(page_size)
                ).all()
                items = [
                    StoredMedia(
                        id=str(row.id),
                        source_url=row.source_url,
                        media_url=row.media_url,
                        media_type=row.media_type,
                        file_name=row.file_name,
                        alt_text=row.alt_text,
                        created_at=_isoformat(row.created_at),
                    )
                    for row in rows
                ]
        except Exception as exc:
            raise PersistenceError(str(exc)) from exc
        return Page(items=items, total=total, page=page, page_size=page_size)

    def list_failures(
        self,
        *,
        source_url: str | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> Page[StoredFailure]:
        page, page_size = _clamp_page(page, page_size)
        query = select(ScrapeFailure)
        if source_url:
            query = query.where(ScrapeFailure.source_url == source_url)

        try:
            with self._session_factory() as session:
                total = session.scalar(select(func.count()).select_from(query.subquery())) or 0
                rows = session.scalars(
                    query.order_by(ScrapeFailure.created_at.desc(), ScrapeFailure.id.desc())
                    .offset((page - 1) * page_size)
                    .limit(page_size)
                ).all()
                items = [
                    StoredFailure(
                        id=str(row.id),
                        source_url=row.source_url,
                        error_kind=row.error_kind,
                        error_message=row.error_message,
                        created_at=_isoformat(row.created_at),
                    )
                    for row in rows
                ]
        except Exception as exc:
            raise PersistenceError(str(exc)) from exc
        return Page(items=items, total=total, page=page, page_size=page_size)


__all__ = [
    "Page",
    "PersistenceError",
    "ResultSink",
    "SqlAlchemyResultSink",
    "StoredFailure",
    "StoredMedia",
    "build_engine",
    "init_db",
]
