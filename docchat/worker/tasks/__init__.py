"""Tasks package."""

# Import all tasks so they're registered with Celery
from docchat.worker.tasks import pipeline_tasks

__all__ = ["pipeline_tasks"]
