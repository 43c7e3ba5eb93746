"""HTTP utilities for fetching pages to scan for media."""

from __future__ import annotations

import logging
import socket
from dataclasses import dataclass
from enum import Enum

import httpx

from .config import DEFAULT_USER_AGENT, TimeoutConfig

LOGGER = logging.getLogger(__name__)

_DNS_FAILURE_MARKERS = (
    "name or service not known",
    "nodename nor servname",
    "temporary failure in name resolution",
    "getaddrinfo failed",
    "no address associated with hostname",
    "name resolution",
)
_CONNECTION_REFUSED_MARKERS = (
    "connection refused",
    "errno 111",
    "actively refused",
)


class FetchErrorKind(str, Enum):
    TIMEOUT = "timeout"
    CONNECTION_REFUSED = "connection_refused"
    DNS_FAILURE = "dns_failure"
    HTTP_ERROR = "http_error"
    MALFORMED_URL = "malformed_url"
    TRANSPORT = "transport"


class FetchError(RuntimeError):
    """Raised when a page cannot be fetched; never retried."""

    def __init__(
        self,
        url: str,
        kind: FetchErrorKind,
        message: str,
        *,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.url = url
        self.kind = kind
        self.status_code = status_code


@dataclass(slots=True)
class FetchedDocument:
    url: str
    final_url: str
    status_code: int
    content_type: str
    text: str


def _iter_causes(exc: BaseException):
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        current = current.__cause__ or current.__context__


def classify_connect_error(exc: httpx.ConnectError) -> FetchErrorKind:
    """Tell DNS failures apart from refused connections for a connect error."""

    for cause in _iter_causes(exc):
        if isinstance(cause, socket.gaierror):
            return FetchErrorKind.DNS_FAILURE
        if isinstance(cause, ConnectionRefusedError):
            return FetchErrorKind.CONNECTION_REFUSED

    message = str(exc).lower()
    if any(marker in message for marker in _DNS_FAILURE_MARKERS):
        return FetchErrorKind.DNS_FAILURE
    if any(marker in message for marker in _CONNECTION_REFUSED_MARKERS):
        return FetchErrorKind.CONNECTION_REFUSED
    return FetchErrorKind.TRANSPORT


class HttpFetcher:
    """Single-attempt HTTP client with a fixed timeout."""

    def __init__(
        self,
        *,
        timeout: TimeoutConfig | None = None,
        user_agent: str = DEFAULT_USER_AGENT,
        client: httpx.Client | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._timeout = timeout or TimeoutConfig()
        self._user_agent = user_agent
        self._transport = transport
        self._client = client or self._build_client()
        self._owns_client = client is None

    def _build_client(self) -> httpx.Client:
        kwargs: dict[str, object] = {
            "timeout": self._timeout.fetch_timeout,
            "headers": {"User-Agent": self._user_agent},
            "follow_redirects": True,
        }
        if self._transport:
            kwargs["transport"] = self._transport
        return httpx.Client(**kwargs)

    def fetch(self, url: str) -> FetchedDocument:
        try:
            response = self._client.get(url)
        except (httpx.InvalidURL, httpx.UnsupportedProtocol) as exc:
            raise FetchError(url, FetchErrorKind.MALFORMED_URL, f"Malformed URL {url!r}: {exc}") from exc
        except httpx.TimeoutException as exc:
            raise FetchError(
                url,
                FetchErrorKind.TIMEOUT,
                f"Timed out after {self._timeout.fetch_timeout:g}s fetching {url}",
            ) from exc
        except httpx.ConnectError as exc:
            kind = classify_connect_error(exc)
            raise FetchError(url, kind, f"Could not connect to {url}: {exc}") from exc
        except httpx.HTTPError as exc:
            raise FetchError(url, FetchErrorKind.TRANSPORT, f"Request to {url} failed: {exc}") from exc

        if not response.is_success:
            raise FetchError(
                url,
                FetchErrorKind.HTTP_ERROR,
                f"Unexpected status {response.status_code} for {url}",
                status_code=response.status_code,
            )

        return FetchedDocument(
            url=url,
            final_url=str(response.url),
            status_code=response.status_code,
            content_type=response.headers.get("content-type", ""),
            text=response.text,
        )

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "HttpFetcher":
        return self

    def __exit__(self, *_exc_info) -> None:
        self.close()


__all__ = [
    "FetchError",
    "FetchErrorKind",
    "FetchedDocument",
    "HttpFetcher",
    "classify_connect_error",
]
