"""
Job pipeline: download -> render -> upload -> notify.

Phases run strictly in order and raise typed errors; the first failure skips
the remaining phases. Whatever happens, the run ends with one terminal write
to the job store and one notification. Local artifacts are cleaned up on the
way out when ``clean_artifacts`` is set.
"""

import logging
from pathlib import Path

import httpx

from .config import PipelineConfig
from .errors import DownloadError, PipelineError, TransformError, UploadError
from .models import Job
from .notify import Notifier
from .progress import ProgressTracker
from .records import JobOutcome, JobSpec
from .renderer import Renderer
from .s3 import get_s3_client, transfer_config
from .transfer import ArtifactTransfer
from .utils import remove_file

logger = logging.getLogger(__name__)

# Wraps unexpected exceptions so a bug inside a phase still fails the job cleanly
PHASE_ERRORS = {
    Job.Phase.DOWNLOADING: DownloadError,
    Job.Phase.TRANSFORMING: TransformError,
    Job.Phase.UPLOADING: UploadError,
}


class Pipeline:
    def __init__(self, spec: JobSpec, *, config: PipelineConfig, store, transfer: ArtifactTransfer,
                 renderer: Renderer, notifier: Notifier):
        self.spec = spec
        self.config = config
        self.store = store
        self.transfer = transfer
        self.renderer = renderer
        self.notifier = notifier
        self.tracker = ProgressTracker(
            self._write_progress,
            config.progress_bands,
            min_step=config.progress_min_step,
            job_id=spec.job_id,
        )
        self.phase: str | None = None
        self._artifacts: list[Path] = []

    @property
    def job_id(self) -> str:
        return self.spec.job_id

    def _write_progress(self, value: float):
        self.store.set_progress(self.job_id, value)

    def _enter(self, phase: str):
        self.phase = phase
        logger.info("job %s: %s", self.job_id, phase)
        self.store.set_phase(self.job_id, phase)

    def run(self) -> JobOutcome:
        logger.info("job %s: starting (%s)", self.job_id, self.spec.archive_url)
        self.store.mark_running(self.job_id)
        outcome = JobOutcome(status=Job.Status.RUNNING)

        try:
            input_path = self._download()
            output_path = self._render(input_path, outcome)
            self._upload(output_path, outcome)
        except PipelineError as exc:
            self._fail(outcome, exc)
        except Exception as exc:
            logger.exception("job %s: unexpected error while %s", self.job_id, self.phase)
            error_cls = PHASE_ERRORS.get(self.phase, PipelineError)
            self._fail(outcome, error_cls(f"unexpected {exc.__class__.__name__}: {exc}"))
        else:
            outcome.status = Job.Status.SUCCEEDED
            outcome.progress = 100.0
            logger.info("job %s: succeeded, output at s3://%s/%s",
                        self.job_id, outcome.archive_bucket, outcome.archive_key)
        finally:
            self._cleanup()

        try:
            if not self.store.finish(self.job_id, outcome):
                logger.warning("job %s: record was already terminal, outcome not stored", self.job_id)
        finally:
            self.notifier.dispatch(self.job_id, outcome, self.spec.callback_url)
        return outcome

    def _fail(self, outcome: JobOutcome, exc: PipelineError):
        outcome.status = Job.Status.FAILED
        outcome.error = exc.describe()
        outcome.exit_code = getattr(exc, "exit_code", None)
        outcome.archive_key = outcome.archive_bucket = None
        outcome.progress = self.tracker.value
        logger.error("job %s: failed while %s: %s", self.job_id, self.phase, outcome.error)

    def _download(self) -> Path:
        self._enter(Job.Phase.DOWNLOADING)
        dest = Path(self.config.workdir) / f"{self.job_id}.archive.input"
        self._artifacts.append(dest)
        path = self.transfer.download(self.spec.archive_url, dest, self.tracker.reporter("download"))
        self.tracker.finish("download")
        return path

    def _render(self, input_path: Path, outcome: JobOutcome) -> Path:
        self._enter(Job.Phase.TRANSFORMING)
        result = self.renderer.run(self.spec, input_path, self.tracker.reporter("transform"))
        self._artifacts.append(result.output_path)
        if result.log_path is not None:
            self._artifacts.append(result.log_path)
            self._upload_logs(result.log_path, outcome)
        output_path = result.check()
        self.tracker.finish("transform")
        return output_path

    def _upload_logs(self, log_path: Path, outcome: JobOutcome):
        """Logs are kept even for failed renders; losing them is not a job failure."""
        try:
            outcome.logs_bucket, outcome.logs_key = self.transfer.upload(log_path, self.job_id)
        except UploadError as exc:
            logger.warning("job %s: log upload failed: %s", self.job_id, exc.describe())

    def _upload(self, output_path: Path, outcome: JobOutcome):
        self._enter(Job.Phase.UPLOADING)
        outcome.archive_bucket, outcome.archive_key = self.transfer.upload(
            output_path, self.job_id, acl="private", report=self.tracker.reporter("upload")
        )
        self.tracker.finish("upload")

    def _cleanup(self):
        if not self.config.clean_artifacts:
            return
        for path in self._artifacts:
            remove_file(path)


def build_pipeline(spec: JobSpec, config: PipelineConfig, store, notifier: Notifier,
                   http_client: httpx.Client) -> Pipeline:
    """Wire a pipeline with real S3 and renderer collaborators."""
    transfer = ArtifactTransfer(config, get_s3_client(config), http_client, transfer_config(config))
    return Pipeline(spec, config=config, store=store, transfer=transfer,
                    renderer=Renderer(config), notifier=notifier)
