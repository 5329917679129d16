#!/usr/bin/env python3
"""Check that the pipeline tasks are registered with Celery.

Pass a job id to also send an OCR task for it.
"""

import sys
import logging

# Set up logging
logging.basicConfig(level=logging.INFO,
                   format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

PIPELINE_TASKS = (
    "docchat.worker.tasks.pipeline_tasks.run_ocr_job",
    "docchat.worker.tasks.pipeline_tasks.run_embed_job",
)


def main():
    """Run the check."""
    from docchat.worker.celery_app import celery_app
    import docchat.worker.tasks  # registers the tasks

    logger.info("Registered Celery tasks:")
    for task_name in sorted(celery_app.tasks.keys()):
        logger.info(f"- {task_name}")

    missing = [name for name in PIPELINE_TASKS if name not in celery_app.tasks]
    if missing:
        logger.error(f"Tasks not registered: {missing}")
        return 1
    logger.info("Pipeline tasks are registered")

    if len(sys.argv) > 1:
        result = celery_app.send_task(PIPELINE_TASKS[0], args=[sys.argv[1]])
        logger.info(f"OCR task scheduled with ID: {result.id}")
        logger.info("Check the worker logs to see if the task is processed")

    return 0


if __name__ == "__main__":
    sys.exit(main())
