import unittest
from unittest.mock import MagicMock

from media_scraper.gateway import SubmissionGateway, SubmissionValidationError, read_url_lines
from media_scraper.task_queue import InMemoryTaskQueue


class SubmissionGatewayTestCase(unittest.TestCase):
    def test_one_task_per_url(self) -> None:
        queue = InMemoryTaskQueue()
        gateway = SubmissionGateway(queue)
        urls = ["https://a.test/", "https://b.test/", "https://a.test/"]

        accepted = gateway.submit(urls)

        self.assertEqual(accepted, 3)
        self.assertEqual(queue.ready_count, 3)

    def test_maximum_batch_is_accepted(self) -> None:
        queue = InMemoryTaskQueue()
        gateway = SubmissionGateway(queue, max_batch=5000)

        self.assertEqual(gateway.submit(f"https://x.test/{index}" for index in range(5000)), 5000)

    def test_empty_submission_rejected_before_enqueue(self) -> None:
        queue = MagicMock()
        gateway = SubmissionGateway(queue)

        with self.assertRaises(SubmissionValidationError):
            gateway.submit([])

        queue.enqueue_batch.assert_not_called()

    def test_oversize_submission_rejected_without_partial_enqueue(self) -> None:
        queue = InMemoryTaskQueue()
        gateway = SubmissionGateway(queue, max_batch=10)

        with self.assertRaises(SubmissionValidationError) as ctx:
            gateway.submit(f"https://x.test/{index}" for index in range(11))

        self.assertIn("at most 10", str(ctx.exception))
        self.assertEqual(queue.ready_count, 0)

    def test_non_string_entries_rejected(self) -> None:
        queue = InMemoryTaskQueue()
        gateway = SubmissionGateway(queue)

        with self.assertRaises(SubmissionValidationError):
            gateway.submit(["https://x.test/", 42])

        self.assertEqual(queue.ready_count, 0)

    def test_blank_entries_rejected(self) -> None:
        queue = InMemoryTaskQueue()
        gateway = SubmissionGateway(queue)

        for blank in ("", "   "):
            with self.subTest(url=blank):
                with self.assertRaises(SubmissionValidationError) as ctx:
                    gateway.submit([blank, "https://x.test/ok"])
                self.assertIn("position 0 is empty", str(ctx.exception))

        self.assertEqual(queue.ready_count, 0)

    def test_invalid_max_batch(self) -> None:
        with self.assertRaises(ValueError):
            SubmissionGateway(InMemoryTaskQueue(), max_batch=0)


class ReadUrlLinesTestCase(unittest.TestCase):
    def test_skips_blank_lines_and_comments(self) -> None:
        lines = ["https://a.test/\n", "\n", "  # staging hosts\n", "  https://b.test/page  \n"]

        self.assertEqual(read_url_lines(lines), ["https://a.test/", "https://b.test/page"])


if __name__ == "__main__":
    unittest.main()
