"""
Hands a queued job to whatever will run it.

``celery``: a long-lived worker picks it up from the broker.
``task_runner``: a container task is started for this one job; everything the
task needs travels in its environment and command line, and it reports back
through the internal callback.
"""

import logging

import httpx
from django.conf import settings
from kombu.exceptions import KombuError

from .errors import LaunchError
from .models import Job

logger = logging.getLogger(__name__)


class CeleryLauncher:
    def launch(self, job: Job):
        from .tasks import process_job

        try:
            process_job.delay(str(job.id))
        except KombuError as exc:
            raise LaunchError(f"broker unavailable: {exc}") from exc
        logger.info("job %s queued on celery", job.id)


class TaskRunnerLauncher:
    def __init__(self, http_client: httpx.Client | None = None):
        self.http = http_client

    def command(self, job: Job) -> list[str]:
        cmd = ["python", "manage.py", "run_task", f"--width={job.width}", f"--height={job.height}"]
        if job.preset:
            cmd.append(f"--preset={job.preset}")
        if job.custom_css:
            cmd.append(f"--custom-css={job.custom_css}")
        if job.begin_offset is not None:
            cmd.append(f"--begin-offset={job.begin_offset}")
        if job.end_offset is not None:
            cmd.append(f"--end-offset={job.end_offset}")
        return cmd

    def environment(self, job: Job) -> dict:
        env = {
            "TASK_ID": str(job.id),
            "ARCHIVE_URL": job.archive_url,
            "CALLBACK_URL": job.callback_url,
            "INTERNAL_CALLBACK_URL": settings.INTERNAL_CALLBACK_URL,
            "INTERNAL_CALLBACK_TOKEN": settings.INTERNAL_CALLBACK_TOKEN,
            "S3_ACCESS_KEY": settings.S3_ACCESS_KEY or "",
            "S3_SECRET_KEY": settings.S3_SECRET_KEY or "",
            "S3_BUCKET": settings.S3_BUCKET,
            "S3_PREFIX": settings.S3_PREFIX,
            "S3_REGION": settings.S3_REGION,
            "CLEAN_ARTIFACTS": "1",
        }
        if settings.S3_ENDPOINT_URL:
            env["S3_ENDPOINT_URL"] = settings.S3_ENDPOINT_URL
        return env

    def task_body(self, job: Job) -> dict:
        return {
            "task": settings.TASK_RUNNER_TASK,
            "container": settings.TASK_RUNNER_CONTAINER,
            "command": self.command(job),
            "environment": self.environment(job),
        }

    def launch(self, job: Job):
        url = f"{settings.TASK_RUNNER_BASE_URL.rstrip('/')}/task"
        client = self.http or httpx.Client()
        try:
            response = client.post(url, json=self.task_body(job), timeout=settings.CALLBACK_TIMEOUT)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise LaunchError(f"task runner answered {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            raise LaunchError(f"task runner unreachable: {exc}") from exc
        finally:
            if self.http is None:
                client.close()
        logger.info("job %s started on task runner %s", job.id, url)


def get_launcher():
    if settings.JOB_DISPATCH_MODE == "task_runner":
        return TaskRunnerLauncher()
    return CeleryLauncher()
