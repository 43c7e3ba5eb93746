"""HTTP boundary: bulk submission plus read-only listings of stored results."""

from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from .gateway import SubmissionGateway, SubmissionValidationError
from .persistence import MAX_PAGE_SIZE, PersistenceError, SqlAlchemyResultSink
from .records import MediaType
from .task_queue import QueueError

LOGGER = logging.getLogger(__name__)


class ScrapeRequest(BaseModel):
    urls: List[str] = Field(..., description="Page URLs to scan for images and videos")


class ScrapeResponse(BaseModel):
    message: str
    accepted: int


class MediaItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    source_url: str
    media_url: str
    media_type: MediaType
    file_name: Optional[str] = None
    alt_text: Optional[str] = None
    created_at: Optional[str] = None


class MediaPage(BaseModel):
    items: List[MediaItem]
    total: int
    page: int
    page_size: int


class FailureItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    source_url: str
    error_kind: str
    error_message: str
    created_at: Optional[str] = None


class FailurePage(BaseModel):
    items: List[FailureItem]
    total: int
    page: int
    page_size: int


def create_app(gateway: SubmissionGateway, sink: SqlAlchemyResultSink) -> FastAPI:
    app = FastAPI(
        title="Media Scraper API",
        description="Queue pages for media extraction and browse the extracted media",
        version="1.0.0",
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.gateway = gateway
    app.state.sink = sink

    @app.exception_handler(PersistenceError)
    async def _persistence_error_handler(request: Request, exc: PersistenceError) -> JSONResponse:
        LOGGER.error("Storage error while serving %s: %s", request.url.path, exc)
        return JSONResponse(status_code=503, content={"detail": "Storage is unavailable"})

    @app.get("/api/health")
    def health_check():
        return {"status": "ok"}

    @app.post("/api/scrape", status_code=202, response_model=ScrapeResponse)
    def submit_urls(payload: ScrapeRequest):
        """Enqueue one scrape task per URL; processing happens asynchronously."""
        try:
            accepted = app.state.gateway.submit(payload.urls)
        except SubmissionValidationError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        except QueueError as exc:
            LOGGER.error("Queue rejected submission of %d URLs: %s", len(payload.urls), exc)
            raise HTTPException(status_code=503, detail="Task queue is unavailable") from exc
        return ScrapeResponse(message=f"{accepted} tasks queued.", accepted=accepted)

    @app.get("/api/media", response_model=MediaPage)
    def list_media(
        media_type: Optional[MediaType] = Query(None, description="Only return images or videos"),
        search: Optional[str] = Query(None, description="Case-insensitive match on alt text"),
        source_url: Optional[str] = Query(None, description="Only return media found on this page"),
        page: int = Query(1, ge=1),
        page_size: int = Query(20, ge=1, le=MAX_PAGE_SIZE),
    ):
        result = app.state.sink.list_media(
            media_type=media_type,
            search=search,
            source_url=source_url,
            page=page,
            page_size=page_size,
        )
        return MediaPage(
            items=[MediaItem.model_validate(item) for item in result.items],
            total=result.total,
            page=result.page,
            page_size=result.page_size,
        )

    @app.get("/api/failures", response_model=FailurePage)
    def list_failures(
        source_url: Optional[str] = Query(None),
        page: int = Query(1, ge=1),
        page_size: int = Query(20, ge=1, le=MAX_PAGE_SIZE),
    ):
        result = app.state.sink.list_failures(source_url=source_url, page=page, page_size=page_size)
        return FailurePage(
            items=[FailureItem.model_validate(item) for item in result.items],
            total=result.total,
            page=result.page,
            page_size=result.page_size,
        )

    return app


__all__ = ["create_app"]
