import unittest
from pathlib import Path
from tempfile import TemporaryDirectory
from unittest.mock import MagicMock

from fastapi.testclient import TestClient

from media_scraper.api import create_app
from media_scraper.config import ScraperConfig
from media_scraper.gateway import SubmissionGateway
from media_scraper.persistence import PersistenceError, SqlAlchemyResultSink, build_engine, init_db
from media_scraper.records import FailureRecord, MediaRecord, MediaType
from media_scraper.task_queue import InMemoryTaskQueue, QueueError


class ApiTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self._tmpdir = TemporaryDirectory()
        db_path = Path(self._tmpdir.name) / "api.db"
        self.engine = build_engine(ScraperConfig(database_url=f"sqlite:///{db_path}"))
        init_db(self.engine)
        self.sink = SqlAlchemyResultSink.from_engine(self.engine)
        self.queue = InMemoryTaskQueue()
        self.gateway = SubmissionGateway(self.queue, max_batch=5)
        self.client = TestClient(create_app(self.gateway, self.sink))

    def tearDown(self) -> None:
        self.client.close()
        self.engine.dispose()
        self._tmpdir.cleanup()

    def test_scrape_accepts_batch(self) -> None:
        response = self.client.post("/api/scrape", json={"urls": ["https://a.test/", "https://b.test/"]})

        self.assertEqual(response.status_code, 202)
        self.assertEqual(response.json(), {"message": "2 tasks queued.", "accepted": 2})
        self.assertEqual(self.queue.ready_count, 2)

    def test_scrape_rejects_empty_batch(self) -> None:
        response = self.client.post("/api/scrape", json={"urls": []})

        self.assertEqual(response.status_code, 400)
        self.assertEqual(self.queue.ready_count, 0)

    def test_scrape_rejects_oversize_batch(self) -> None:
        response = self.client.post("/api/scrape", json={"urls": [f"https://x.test/{i}" for i in range(6)]})

        self.assertEqual(response.status_code, 400)
        self.assertIn("at most 5", response.json()["detail"])
        self.assertEqual(self.queue.ready_count, 0)

    def test_scrape_rejects_blank_url(self) -> None:
        response = self.client.post("/api/scrape", json={"urls": ["https://a.test/", ""]})

        self.assertEqual(response.status_code, 400)
        self.assertEqual(self.queue.ready_count, 0)

    def test_scrape_rejects_malformed_body(self) -> None:
        response = self.client.post("/api/scrape", json={"links": ["https://a.test/"]})

        self.assertEqual(response.status_code, 422)

    def test_scrape_reports_unavailable_queue(self) -> None:
        queue = MagicMock()
        queue.enqueue_batch.side_effect = QueueError("broker down")
        client = TestClient(create_app(SubmissionGateway(queue), self.sink))

        response = client.post("/api/scrape", json={"urls": ["https://a.test/"]})

        self.assertEqual(response.status_code, 503)

    def test_list_media_with_filters(self) -> None:
        self.sink.write_media_records(
            [
                MediaRecord("https://a.test/", "https://a.test/cat.jpg", MediaType.IMAGE, "cat.jpg", "Grey cat"),
                MediaRecord("https://a.test/", "https://a.test/dog.jpg", MediaType.IMAGE, "dog.jpg", "Dog"),
                MediaRecord("https://a.test/", "https://a.test/clip.mp4", MediaType.VIDEO, "clip.mp4"),
            ]
        )

        response = self.client.get("/api/media", params={"media_type": "image", "search": "cat"})

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["total"], 1)
        self.assertEqual(body["page"], 1)
        self.assertEqual(body["items"][0]["file_name"], "cat.jpg")
        self.assertEqual(body["items"][0]["media_type"], "image")

    def test_list_media_rejects_unknown_type_and_page_size(self) -> None:
        self.assertEqual(self.client.get("/api/media", params={"media_type": "audio"}).status_code, 422)
        self.assertEqual(self.client.get("/api/media", params={"page_size": 500}).status_code, 422)

    def test_list_failures(self) -> None:
        self.sink.write_failure(FailureRecord("https://down.test/", "Timed out after 5s", "timeout"))

        response = self.client.get("/api/failures")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["items"][0]["error_kind"], "timeout")

    def test_storage_errors_become_503(self) -> None:
        sink = MagicMock()
        sink.list_media.side_effect = PersistenceError("connection lost")
        client = TestClient(create_app(self.gateway, sink))

        response = client.get("/api/media")

        self.assertEqual(response.status_code, 503)

    def test_health(self) -> None:
        self.assertEqual(self.client.get("/api/health").json(), {"status": "ok"})


if __name__ == "__main__":
    unittest.main()
