"""Frozen configuration for one pipeline run."""

from dataclasses import dataclass
from pathlib import Path

from django.conf import settings


@dataclass(frozen=True)
class PipelineConfig:
    renderer_path: str = "barc"
    workdir: Path = Path(".")
    use_shell: bool = False
    clean_artifacts: bool = False

    s3_bucket: str = ""
    s3_prefix: str = ""
    s3_region: str = "us-east-1"
    s3_endpoint_url: str | None = None
    s3_access_key: str | None = None
    s3_secret_key: str | None = None
    multipart_threshold: int = 20 * 1024 * 1024
    multipart_chunksize: int = 15 * 1024 * 1024
    max_concurrency: int = 20
    max_attempts: int = 3

    progress_bands: tuple = (33.0, 33.0, 34.0)
    progress_min_step: float = 1.0
    download_timeout: float = 60.0
    callback_timeout: float = 10.0

    internal_callback_url: str = ""
    internal_callback_token: str = ""

    @classmethod
    def from_settings(cls, **overrides) -> "PipelineConfig":
        values = dict(
            renderer_path=settings.RENDERER_PATH,
            workdir=Path(settings.RENDERER_WORKDIR),
            use_shell=settings.RENDERER_USE_SHELL,
            clean_artifacts=settings.CLEAN_ARTIFACTS,
            s3_bucket=settings.S3_BUCKET,
            s3_prefix=settings.S3_PREFIX,
            s3_region=settings.S3_REGION,
            s3_endpoint_url=settings.S3_ENDPOINT_URL,
            s3_access_key=settings.S3_ACCESS_KEY,
            s3_secret_key=settings.S3_SECRET_KEY,
            multipart_threshold=settings.S3_MULTIPART_THRESHOLD,
            multipart_chunksize=settings.S3_MULTIPART_CHUNKSIZE,
            max_concurrency=settings.S3_MAX_CONCURRENCY,
            max_attempts=settings.S3_MAX_ATTEMPTS,
            progress_bands=tuple(settings.PROGRESS_BANDS),
            progress_min_step=settings.PROGRESS_MIN_STEP,
            download_timeout=settings.DOWNLOAD_TIMEOUT,
            callback_timeout=settings.CALLBACK_TIMEOUT,
            internal_callback_url=settings.INTERNAL_CALLBACK_URL,
            internal_callback_token=settings.INTERNAL_CALLBACK_TOKEN,
        )
        values.update(overrides)
        return cls(**values)
