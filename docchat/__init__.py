"""Document chat backend package."""

# Import worker tasks to ensure they're registered
from docchat.worker import celery_app

# Import task modules to ensure they're registered with Celery
import docchat.worker.tasks
