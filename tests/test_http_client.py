import socket
import unittest
from collections import deque

import httpx

from media_scraper.config import TimeoutConfig
from media_scraper.http_client import (
    FetchError,
    FetchErrorKind,
    HttpFetcher,
    classify_connect_error,
)


def _fetcher_for(handler) -> HttpFetcher:
    return HttpFetcher(transport=httpx.MockTransport(handler), user_agent="test-agent")


class HttpFetcherTestCase(unittest.TestCase):
    def test_fetch_returns_document(self) -> None:
        seen = deque()

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, text="<html>ok</html>", headers={"content-type": "text/html"})

        with _fetcher_for(handler) as fetcher:
            document = fetcher.fetch("https://news.example.com/article")

        self.assertEqual(document.text, "<html>ok</html>")
        self.assertEqual(document.status_code, 200)
        self.assertEqual(document.url, "https://news.example.com/article")
        self.assertEqual(document.content_type, "text/html")
        self.assertEqual(len(seen), 1)
        self.assertEqual(seen[0].headers["user-agent"], "test-agent")

    def test_redirects_are_followed(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/old":
                return httpx.Response(301, headers={"location": "https://news.example.com/new"})
            return httpx.Response(200, text="<html>moved</html>")

        with _fetcher_for(handler) as fetcher:
            document = fetcher.fetch("https://news.example.com/old")

        self.assertEqual(document.final_url, "https://news.example.com/new")
        self.assertEqual(document.text, "<html>moved</html>")

    def test_non_success_status_is_http_error(self) -> None:
        calls = deque()

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(503, headers={"content-type": "text/html"})

        with _fetcher_for(handler) as fetcher:
            with self.assertRaises(FetchError) as ctx:
                fetcher.fetch("https://news.example.com/article")

        self.assertEqual(ctx.exception.kind, FetchErrorKind.HTTP_ERROR)
        self.assertEqual(ctx.exception.status_code, 503)
        self.assertEqual(ctx.exception.url, "https://news.example.com/article")
        self.assertEqual(len(calls), 1)

    def test_timeout_is_not_retried(self) -> None:
        calls = deque()

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            raise httpx.ReadTimeout("timed out", request=request)

        fetcher = HttpFetcher(
            timeout=TimeoutConfig(fetch_timeout=5.0),
            transport=httpx.MockTransport(handler),
        )
        try:
            with self.assertRaises(FetchError) as ctx:
                fetcher.fetch("https://slow.example.com/")
        finally:
            fetcher.close()

        self.assertEqual(ctx.exception.kind, FetchErrorKind.TIMEOUT)
        self.assertIn("5s", str(ctx.exception))
        self.assertEqual(len(calls), 1)

    def test_connection_refused(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("[Errno 111] Connection refused", request=request)

        with _fetcher_for(handler) as fetcher:
            with self.assertRaises(FetchError) as ctx:
                fetcher.fetch("https://down.example.com/")

        self.assertEqual(ctx.exception.kind, FetchErrorKind.CONNECTION_REFUSED)

    def test_dns_failure(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("[Errno -2] Name or service not known", request=request)

        with _fetcher_for(handler) as fetcher:
            with self.assertRaises(FetchError) as ctx:
                fetcher.fetch("https://missing.invalid/")

        self.assertEqual(ctx.exception.kind, FetchErrorKind.DNS_FAILURE)

    def test_malformed_url(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:  # pragma: no cover - never reached
            return httpx.Response(200)

        with _fetcher_for(handler) as fetcher:
            with self.assertRaises(FetchError) as ctx:
                fetcher.fetch("http://[::1")

        self.assertEqual(ctx.exception.kind, FetchErrorKind.MALFORMED_URL)

    def test_other_transport_errors(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.RemoteProtocolError("peer closed connection", request=request)

        with _fetcher_for(handler) as fetcher:
            with self.assertRaises(FetchError) as ctx:
                fetcher.fetch("https://flaky.example.com/")

        self.assertEqual(ctx.exception.kind, FetchErrorKind.TRANSPORT)


class ClassifyConnectErrorTestCase(unittest.TestCase):
    def test_socket_cause_takes_precedence(self) -> None:
        try:
            try:
                raise socket.gaierror(-3, "unexpected")
            except socket.gaierror as exc:
                raise httpx.ConnectError("connect failed") from exc
        except httpx.ConnectError as error:
            self.assertEqual(classify_connect_error(error), FetchErrorKind.DNS_FAILURE)

        try:
            try:
                raise ConnectionRefusedError(111, "nope")
            except ConnectionRefusedError as exc:
                raise httpx.ConnectError("connect failed") from exc
        except httpx.ConnectError as error:
            self.assertEqual(classify_connect_error(error), FetchErrorKind.CONNECTION_REFUSED)

    def test_unknown_connect_error_is_transport(self) -> None:
        error = httpx.ConnectError("[Errno 101] Network is unreachable")
        self.assertEqual(classify_connect_error(error), FetchErrorKind.TRANSPORT)


if __name__ == "__main__":
    unittest.main()
