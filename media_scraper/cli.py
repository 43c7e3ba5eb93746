"""Command-line entrypoints for the media scraper."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Sequence

from .celery_app import create_celery_app
from .config import ScraperConfig
from .gateway import SubmissionGateway, SubmissionValidationError, read_url_lines
from .http_client import HttpFetcher
from .persistence import SqlAlchemyResultSink, build_engine, init_db
from .task_queue import BrokerTaskQueue, QueueError
from .worker import WorkerPool

LOGGER = logging.getLogger(__name__)


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    # One request log line per fetched page drowns out task outcomes.
    logging.getLogger("httpx").setLevel(logging.WARNING)


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Extract image and video references from web pages")
    parser.add_argument("--db-url", type=str, default=None, help="SQLAlchemy database URL for results")
    parser.add_argument("--broker-url", type=str, default=None, help="Broker URL for the task queue")
    parser.add_argument("--queue-name", type=str, default=None, help="Task queue name")
    parser.add_argument("--log-level", type=str, default=None, help="Logging level (default: INFO)")
    sub = parser.add_subparsers(dest="command", required=True)

    worker = sub.add_parser("worker", help="Process queued scrape tasks")
    worker.add_argument("--concurrency", type=int, default=None, help="Number of concurrent worker lanes")
    worker.add_argument("--fetch-timeout", type=float, default=None, help="Seconds before a page fetch times out")
    worker.add_argument("--burst", action="store_true", help="Exit once the queue is empty")
    worker.add_argument("--init-db", action="store_true", help="Create database tables before starting")

    submit = sub.add_parser("submit", help="Enqueue URLs from a file (one per line, '-' for stdin)")
    submit.add_argument("file", type=str, help="Path to a file of URLs")

    serve = sub.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", type=str, default="127.0.0.1", help="Bind address")
    serve.add_argument("--port", type=int, default=3001, help="Bind port")
    serve.add_argument("--init-db", action="store_true", help="Create database tables before starting")

    sub.add_parser("init-db", help="Create database tables and exit")
    return parser


def build_config(args: argparse.Namespace) -> ScraperConfig:
    config = ScraperConfig.from_env()
    if args.db_url:
        config.database_url = args.db_url
    if args.broker_url:
        config.broker_url = args.broker_url
    if args.queue_name:
        config.queue_name = args.queue_name
    if args.log_level:
        config.log_level = args.log_level.upper()
    if getattr(args, "concurrency", None) is not None:
        if args.concurrency < 1:
            raise ValueError("--concurrency must be at least 1")
        config.concurrency = args.concurrency
    if getattr(args, "fetch_timeout", None) is not None:
        if args.fetch_timeout <= 0:
            raise ValueError("--fetch-timeout must be positive")
        config.timeout.fetch_timeout = args.fetch_timeout
    if getattr(args, "init_db", False):
        config.init_db = True
    return config


def _build_queue(config: ScraperConfig) -> BrokerTaskQueue:
    return BrokerTaskQueue(create_celery_app(config), config.queue_name)


def _run_worker(config: ScraperConfig, *, burst: bool) -> int:
    engine = build_engine(config)
    if config.init_db:
        init_db(engine)
    sink = SqlAlchemyResultSink.from_engine(engine)
    queue = _build_queue(config)
    queue.check_connection()

    pool = WorkerPool(
        queue,
        sink,
        concurrency=config.concurrency,
        fetcher_factory=lambda: HttpFetcher(timeout=config.timeout, user_agent=config.user_agent),
        dequeue_timeout=config.timeout.dequeue_timeout,
    )
    LOGGER.info(
        "Consuming %s with %d lanes (fetch timeout %.1fs)",
        config.queue_name,
        config.concurrency,
        config.timeout.fetch_timeout,
    )
    try:
        pool.run(until_idle=burst)
    finally:
        queue.close()
        engine.dispose()
    return 0


def _run_submit(config: ScraperConfig, source: str) -> int:
    if source == "-":
        urls = read_url_lines(sys.stdin)
    else:
        with Path(source).open(encoding="utf-8") as handle:
            urls = read_url_lines(handle)

    gateway = SubmissionGateway(_build_queue(config), max_batch=config.max_batch)
    accepted = gateway.submit(urls)
    print(f"{accepted} tasks queued.")
    return 0


def _run_serve(config: ScraperConfig, host: str, port: int) -> int:
    import uvicorn

    from .api import create_app

    engine = build_engine(config)
    if config.init_db:
        init_db(engine)
    gateway = SubmissionGateway(_build_queue(config), max_batch=config.max_batch)
    app = create_app(gateway, SqlAlchemyResultSink.from_engine(engine))
    uvicorn.run(app, host=host, port=port)
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_arg_parser()
    args = parser.parse_args(argv)

    try:
        config = build_config(args)
    except ValueError as exc:
        parser.error(str(exc))

    configure_logging(config.log_level)

    try:
        if args.command == "worker":
            return _run_worker(config, burst=args.burst)
        if args.command == "submit":
            return _run_submit(config, args.file)
        if args.command == "serve":
            return _run_serve(config, args.host, args.port)
        if args.command == "init-db":
            init_db(build_engine(config))
            LOGGER.info("Database schema ready")
            return 0
    except SubmissionValidationError as exc:
        LOGGER.error("Submission rejected: %s", exc)
        return 2
    except QueueError as exc:
        LOGGER.error("%s", exc)
        return 1
    except OSError as exc:
        LOGGER.error("Failed to read input: %s", exc)
        return 1

    parser.error(f"Unknown command {args.command}")  # pragma: no cover - defensive guard
    return 2  # pragma: no cover


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    raise SystemExit(main())
