"""Plain value types passed between the boundary, the pipeline and the store."""

from dataclasses import dataclass

from .models import Job


@dataclass(frozen=True)
class JobSpec:
    """Validated render request. Built once at the boundary (see serializers)."""

    job_id: str
    archive_url: str
    width: int
    height: int
    preset: str = ""
    custom_css: str = ""
    begin_offset: int | None = None
    end_offset: int | None = None
    callback_url: str = ""

    @classmethod
    def from_job(cls, job: Job) -> "JobSpec":
        return cls(
            job_id=str(job.id),
            archive_url=job.archive_url,
            width=job.width,
            height=job.height,
            preset=job.preset,
            custom_css=job.custom_css,
            begin_offset=job.begin_offset,
            end_offset=job.end_offset,
            callback_url=job.callback_url,
        )


@dataclass
class JobOutcome:
    status: str
    progress: float = 0.0
    archive_key: str | None = None
    archive_bucket: str | None = None
    logs_key: str | None = None
    logs_bucket: str | None = None
    error: str | None = None
    exit_code: int | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == Job.Status.SUCCEEDED

    @property
    def result(self) -> str:
        return "success" if self.succeeded else (self.error or "unknown error")

    def to_external_payload(self, job_id: str) -> dict:
        return {"job": job_id, "result": self.result}

    def to_internal_payload(self, job_id: str) -> dict:
        message = {
            "output_key": self.archive_key,
            "output_bucket": self.archive_bucket,
            "logs_key": self.logs_key,
            "logs_bucket": self.logs_bucket,
            "error": self.error,
            "exit_code": self.exit_code,
            "status": str(self.status),
            "progress": self.progress,
        }
        return {"taskId": job_id, "message": {k: v for k, v in message.items() if v is not None}}
