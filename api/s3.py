import boto3
from boto3.s3.transfer import TransferConfig
from botocore.config import Config as BotoConfig
from django.conf import settings

from .config import PipelineConfig


def _session(access_key: str | None, secret_key: str | None, region: str):
    return boto3.session.Session(
        aws_access_key_id=access_key,
        aws_secret_access_key=secret_key,
        region_name=region,
    )


def _boto_config(endpoint_url: str | None, max_attempts: int = 3) -> BotoConfig:
    s3_opts = {"addressing_style": "path"} if endpoint_url else {}
    return BotoConfig(
        s3=s3_opts,
        signature_version="s3v4",
        retries={"max_attempts": max_attempts, "mode": "standard"},
    )


def get_s3_client(config: PipelineConfig):
    """
    SDK client for server-side uploads. Built per run from explicit config so
    an ephemeral task never depends on process-wide state.
    """
    session = _session(config.s3_access_key, config.s3_secret_key, config.s3_region)
    return session.client(
        "s3",
        endpoint_url=config.s3_endpoint_url,  # None means AWS; e.g. http://127.0.0.1:9000 for MinIO
        config=_boto_config(config.s3_endpoint_url, config.max_attempts),
    )


def transfer_config(config: PipelineConfig) -> TransferConfig:
    """
    Multipart knobs for upload_file. boto3 splits, retries and aborts
    incomplete multipart uploads itself.
    """
    return TransferConfig(
        multipart_threshold=config.multipart_threshold,
        multipart_chunksize=config.multipart_chunksize,
        max_concurrency=config.max_concurrency,
    )


def get_presign_client():
    """
    Separate client for generating presigned URLs that the browser/curl will call.
    Uses S3_PUBLIC_ENDPOINT so the URL host matches what the client reaches.
    """
    session = _session(settings.S3_ACCESS_KEY, settings.S3_SECRET_KEY, settings.S3_REGION)
    return session.client(
        "s3",
        endpoint_url=settings.S3_PUBLIC_ENDPOINT,
        config=_boto_config(settings.S3_PUBLIC_ENDPOINT),
    )


def create_presigned_get(bucket: str, key: str, expires: int | None = None) -> str:
    """
    Create a presigned GET URL to download an object.
    """
    s3 = get_presign_client()
    return s3.generate_presigned_url(
        ClientMethod="get_object",
        Params={"Bucket": bucket, "Key": key},
        ExpiresIn=expires or settings.S3_PRESIGN_EXPIRE_SECONDS,
        HttpMethod="GET",
    )
