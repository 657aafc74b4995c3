import logging

import httpx
from celery import shared_task

from .config import PipelineConfig
from .models import Job
from .notify import Notifier
from .pipeline import build_pipeline
from .records import JobSpec
from .store import DjangoJobStore

logger = logging.getLogger(__name__)


@shared_task(bind=True, acks_late=False, max_retries=0)
def process_job(self, job_id: str):
    """
    Run one queued job inside a Celery worker. The worker writes the job
    record directly, so only the submitter's external callback is notified.
    A failed job is never retried here; the caller resubmits.
    """
    store = DjangoJobStore()
    job = store.get(job_id)
    if job is None:
        logger.error("job %s: no such job, dropping task", job_id)
        return None
    if job.status != Job.Status.QUEUED:
        logger.warning("job %s: already %s, not running it again", job_id, job.status)
        return str(job.status)

    config = PipelineConfig.from_settings()
    with httpx.Client() as http:
        notifier = Notifier(http, timeout=config.callback_timeout)
        outcome = build_pipeline(JobSpec.from_job(job), config, store, notifier, http).run()
    return str(outcome.status)
