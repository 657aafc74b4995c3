"""
Moving bytes in and out of a job: the input archive comes over HTTP, the
rendered output and the compressed log go to object storage.
"""

import logging
import threading
from pathlib import Path
from typing import Callable

import httpx
from boto3.exceptions import Boto3Error
from botocore.exceptions import BotoCoreError, ClientError

from .config import PipelineConfig
from .errors import DownloadError, UploadError
from .utils import remove_file

logger = logging.getLogger(__name__)

CONTENT_TYPES = {
    ".mp4": "video/mp4",
    ".gz": "application/gzip",
}


def _noop(complete, total):
    return None


def object_key(prefix: str, job_id: str, local_path: Path) -> str:
    return f"{prefix.rstrip('/')}/{job_id}/{Path(local_path).name}"


class _UploadProgress:
    """boto3 calls back with byte increments, possibly from its transfer threads."""

    def __init__(self, total: int, report: Callable):
        self._total = total
        self._report = report
        self._sent = 0
        self._lock = threading.Lock()

    def __call__(self, bytes_amount: int):
        with self._lock:
            self._sent += bytes_amount
            sent = self._sent
        self._report(sent, self._total)


class ArtifactTransfer:
    def __init__(self, config: PipelineConfig, s3_client, http_client: httpx.Client, transfer_config=None):
        self.config = config
        self.s3 = s3_client
        self.http = http_client
        self.transfer_config = transfer_config

    def download(self, url: str, dest: Path, report: Callable = _noop) -> Path:
        """
        Stream url into dest. Progress is reported against Content-Length
        when the server sends one; a partial file never survives a failure.
        """
        dest = Path(dest)
        logger.info("downloading %s -> %s", url, dest)
        try:
            with self.http.stream("GET", url, timeout=self.config.download_timeout, follow_redirects=True) as response:
                if not response.is_success:
                    raise DownloadError(f"{url} answered {response.status_code}")
                length = response.headers.get("content-length", "")
                total = int(length) if length.isdigit() else None
                received = 0
                with open(dest, "wb") as fh:
                    for chunk in response.iter_bytes():
                        fh.write(chunk)
                        received += len(chunk)
                        if total:
                            report(received, total)
        except DownloadError:
            remove_file(dest)
            raise
        except httpx.HTTPError as exc:
            remove_file(dest)
            raise DownloadError(str(exc) or exc.__class__.__name__) from exc
        except OSError as exc:
            remove_file(dest)
            raise DownloadError(f"cannot write {dest}: {exc}") from exc

        report(received, received)
        logger.info("downloaded %d bytes from %s", received, url)
        return dest

    def upload(self, local_path: Path, job_id: str, *, acl: str | None = None,
               report: Callable = _noop) -> tuple[str, str]:
        """Upload local_path to {prefix}/{job_id}/{name}. Returns (bucket, key)."""
        local_path = Path(local_path)
        bucket, prefix = self.config.s3_bucket, self.config.s3_prefix
        if not bucket or not prefix:
            raise UploadError("missing S3 bucket/prefix configuration")

        key = object_key(prefix, job_id, local_path)
        extra = {}
        if acl:
            extra["ACL"] = acl
        content_type = CONTENT_TYPES.get(local_path.suffix.lower())
        if content_type:
            extra["ContentType"] = content_type

        try:
            total = local_path.stat().st_size
        except OSError as exc:
            raise UploadError(f"cannot read {local_path}: {exc}") from exc

        logger.info("uploading %s to s3://%s/%s (%d bytes)", local_path, bucket, key, total)
        kwargs = {"ExtraArgs": extra or None, "Callback": _UploadProgress(total, report)}
        if self.transfer_config is not None:
            kwargs["Config"] = self.transfer_config
        try:
            self.s3.upload_file(str(local_path), bucket, key, **kwargs)
        except (Boto3Error, BotoCoreError, ClientError, OSError) as exc:
            raise UploadError(f"s3://{bucket}/{key}: {exc}") from exc

        report(total, total)
        logger.info("uploaded s3://%s/%s", bucket, key)
        if self.config.clean_artifacts:
            remove_file(local_path)
        return bucket, key
