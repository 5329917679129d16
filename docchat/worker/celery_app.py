"""Celery app configuration."""

from celery import Celery
from celery.signals import setup_logging as celery_setup_logging

from docchat.core.config import settings
from docchat.core.logging import setup_logging

celery_app = Celery(
    "docchat.worker",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
    include=[
        "docchat.worker.tasks.pipeline_tasks",
    ],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    worker_hijack_root_logger=False,
)


@celery_setup_logging.connect
def configure_worker_logging(**kwargs) -> None:
    setup_logging()
