"""Celery application setup for the scrape task broker."""

from __future__ import annotations

from celery import Celery

from .config import ScraperConfig


def create_celery_app(config: ScraperConfig | None = None) -> Celery:
    """Instantiate a Celery app whose broker carries the scrape task queue."""

    config = config or ScraperConfig.from_env()
    broker_url = config.resolved_broker_url()

    app = Celery("media_scraper", broker=broker_url)
    conf_updates = {
        "task_serializer": "json",
        "accept_content": ["json"],
        "broker_connection_retry_on_startup": True,
    }
    if broker_url.startswith("sqla+") and not broker_url.startswith("sqla+sqlite"):
        # The SQLAlchemy transport hands these straight to create_engine.
        conf_updates["broker_transport_options"] = config.db_pool.engine_options(config.concurrency)
    app.conf.update(**conf_updates)
    return app


__all__ = ["create_celery_app"]
