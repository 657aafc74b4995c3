"""
Job record store.

Every write is one conditional UPDATE on the fields it owns. The filters carry
the state machine: progress only moves up and only while the job is active,
status only moves forward. A progress write that lands after the terminal
write therefore matches no row and is dropped.
"""

import logging
import threading

from django.db.models import F, Value
from django.db.models.functions import Greatest
from django.utils import timezone

from .models import Job
from .records import JobOutcome

logger = logging.getLogger(__name__)

ACTIVE = (Job.Status.QUEUED, Job.Status.RUNNING)


class DjangoJobStore:
    def get(self, job_id) -> Job | None:
        return Job.objects.filter(pk=job_id).first()

    def _update(self, job_id, filters: dict, **fields) -> bool:
        fields["updated_at"] = timezone.now()
        return Job.objects.filter(pk=job_id, **filters).update(**fields) == 1

    def mark_running(self, job_id) -> bool:
        return self._update(job_id, {"status": Job.Status.QUEUED},
                            status=Job.Status.RUNNING, started_at=timezone.now())

    def set_progress(self, job_id, value: float) -> bool:
        return self._update(job_id, {"status__in": ACTIVE, "progress__lt": value}, progress=value)

    def set_phase(self, job_id, phase: str) -> bool:
        return self._update(job_id, {"status__in": ACTIVE}, phase=phase)

    def finish(self, job_id, outcome: JobOutcome) -> bool:
        """Record the terminal state once. Returns False if the job was already terminal."""
        common = dict(
            status=outcome.status,
            progress=Greatest(F("progress"), Value(float(outcome.progress))),
            logs_key=outcome.logs_key or "",
            logs_bucket=outcome.logs_bucket or "",
            stopped_at=timezone.now(),
        )
        if outcome.succeeded:
            return self._update(
                job_id, {"status": Job.Status.RUNNING},
                archive_key=outcome.archive_key or "",
                archive_bucket=outcome.archive_bucket or "",
                error="",
                exit_code=None,
                **common,
            )
        return self._update(
            job_id, {"status__in": ACTIVE},
            archive_key="",
            archive_bucket="",
            error=outcome.error or "unknown error",
            exit_code=outcome.exit_code,
            **common,
        )

    def apply_message(self, job_id, message: dict) -> bool:
        """
        Upsert an internal callback message. Returns True only when this call
        moved the job into a terminal state.
        """
        status = message.get("status")
        if status == Job.Status.RUNNING or status in Job.TERMINAL:
            self.mark_running(job_id)
        if message.get("phase") in Job.Phase.values:
            self.set_phase(job_id, message["phase"])
        if message.get("progress") is not None:
            self.set_progress(job_id, float(message["progress"]))
        if status not in Job.TERMINAL:
            return False
        outcome = JobOutcome(
            status=status,
            progress=float(message.get("progress") or 0.0),
            archive_key=message.get("output_key"),
            archive_bucket=message.get("output_bucket"),
            logs_key=message.get("logs_key"),
            logs_bucket=message.get("logs_bucket"),
            error=message.get("error"),
            exit_code=message.get("exit_code"),
        )
        if outcome.succeeded and not outcome.archive_key:
            logger.warning("job %s reported success without an output key; recording failure", job_id)
            outcome.status = Job.Status.FAILED
            outcome.error = outcome.error or "upload error: no output key reported"
        return self.finish(job_id, outcome)


class RelayJobStore:
    """
    Process-local record for an ephemeral task.

    Applies the same rules as the ORM store and forwards the running
    transition and progress to the central store through the internal
    callback. The terminal state travels with the outcome notification.
    """

    def __init__(self, job_id: str, notifier):
        self.job_id = job_id
        self.notifier = notifier
        self.status = Job.Status.QUEUED
        self.progress = 0.0
        self.phase = ""
        self.outcome: JobOutcome | None = None
        self._lock = threading.Lock()

    def _relay(self, progress: float | None = None):
        self.notifier.post_internal(self.job_id, {
            "status": str(self.status),
            "progress": self.progress if progress is None else progress,
            "phase": str(self.phase),
        })

    def mark_running(self, job_id) -> bool:
        if self.status != Job.Status.QUEUED:
            return False
        self.status = Job.Status.RUNNING
        self._relay()
        return True

    def set_progress(self, job_id, value: float) -> bool:
        # Called from boto3 transfer threads as well; the relay runs unlocked
        with self._lock:
            if self.status not in ACTIVE or value <= self.progress:
                return False
            self.progress = value
        self._relay(value)
        return True

    def set_phase(self, job_id, phase: str) -> bool:
        if self.status not in ACTIVE:
            return False
        self.phase = phase
        self._relay()
        return True

    def finish(self, job_id, outcome: JobOutcome) -> bool:
        if self.status not in ACTIVE:
            return False
        if outcome.succeeded and self.status != Job.Status.RUNNING:
            return False
        self.status = outcome.status
        self.progress = max(self.progress, outcome.progress)
        self.outcome = outcome
        return True
