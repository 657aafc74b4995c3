import dataclasses
import logging
import os
import uuid

import httpx
from django.core.management.base import BaseCommand, CommandError

from api.config import PipelineConfig
from api.errors import JobValidationError
from api.models import Job
from api.notify import Notifier
from api.pipeline import build_pipeline
from api.records import JobOutcome
from api.serializers import TaskSpecSerializer
from api.store import RelayJobStore

logger = logging.getLogger("api.run_task")


def _first_error(errors) -> str:
    for field, messages in errors.items():
        return f"{field}: {messages[0]}"
    return "invalid job"


class Command(BaseCommand):
    help = (
        "Run exactly one render job in this process and exit. Job id, archive URL, "
        "callbacks and storage settings come from the environment (TASK_ID, ARCHIVE_URL, "
        "CALLBACK_URL, INTERNAL_CALLBACK_URL, S3_*); render parameters from the options."
    )
    requires_system_checks = []

    def add_arguments(self, parser):
        parser.add_argument("--width")
        parser.add_argument("--height")
        parser.add_argument("--preset")
        parser.add_argument("--custom-css", dest="custom_css")
        parser.add_argument("--begin-offset", dest="begin_offset", type=int)
        parser.add_argument("--end-offset", dest="end_offset", type=int)

    def _report_rejection(self, notifier: Notifier, task_id: str, error: JobValidationError, callback_url: str):
        """
        A task the service launched has a job record waiting on it; fail that
        record through the internal callback, which relays to the submitter.
        Without a usable task id only the submitter can be told.
        """
        outcome = JobOutcome(status=Job.Status.FAILED, error=error.describe())
        try:
            uuid.UUID(task_id)
        except ValueError:
            notifier.relay(task_id, outcome.result, callback_url)
            return
        notifier.dispatch(task_id, outcome, callback_url)

    def handle(self, *args, **options):
        task_id = os.environ.get("TASK_ID", "")
        callback_url = os.environ.get("CALLBACK_URL", "")
        config = PipelineConfig.from_settings()
        logger.info("task %s: archive %s, callback %s", task_id, os.environ.get("ARCHIVE_URL"), callback_url)

        serializer = TaskSpecSerializer(data={
            "taskId": task_id,
            "archiveURL": os.environ.get("ARCHIVE_URL", ""),
            "width": options["width"],
            "height": options["height"],
            "preset": options["preset"],
            "customCSS": options["custom_css"],
            "beginOffset": options["begin_offset"],
            "endOffset": options["end_offset"],
        })

        with httpx.Client() as http:
            notifier = Notifier(
                http,
                internal_url=config.internal_callback_url,
                internal_token=config.internal_callback_token,
                timeout=config.callback_timeout,
            )
            if not serializer.is_valid():
                error = JobValidationError(_first_error(serializer.errors))
                logger.error("task %s: rejected: %s", task_id, error.describe())
                self._report_rejection(notifier, task_id, error, callback_url)
                raise CommandError(error.describe())

            # The callback is only ever used for postbacks, where a bad URL is skipped, not fatal
            spec = dataclasses.replace(serializer.validated_data, callback_url=callback_url)
            store = RelayJobStore(spec.job_id, notifier)
            outcome: JobOutcome = build_pipeline(spec, config, store, notifier, http).run()

        self.stdout.write(f"task {spec.job_id}: {outcome.result}")
