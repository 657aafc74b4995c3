import dataclasses

import httpx
import pytest
from botocore.exceptions import ClientError

from api.errors import DownloadError, UploadError
from api.transfer import ArtifactTransfer, object_key


def make_transfer(config, s3_client, handler):
    return ArtifactTransfer(config, s3_client, httpx.Client(transport=httpx.MockTransport(handler)))


def test_download_streams_to_disk_with_progress(config, s3_client, workdir):
    body = b"a" * 10_000
    reports = []
    transfer = make_transfer(config, s3_client, lambda request: httpx.Response(200, content=body))

    dest = transfer.download("http://archives.test/a.tar", workdir / "in", lambda c, t: reports.append((c, t)))

    assert dest.read_bytes() == body
    assert reports[-1] == (10_000, 10_000)
    assert all(total == 10_000 for _, total in reports)


def test_download_counts_bytes_written(config, s3_client, workdir):
    def handler(request):
        return httpx.Response(200, headers={"Content-Length": "6"}, content=iter([b"abc", b"def"]))

    reports = []
    make_transfer(config, s3_client, handler).download(
        "http://archives.test/a.tar", workdir / "in", lambda c, t: reports.append((c, t))
    )
    assert reports[0] in [(3, 6), (6, 6)]
    assert reports[-2:] == [(6, 6), (6, 6)]
    assert (workdir / "in").read_bytes() == b"abcdef"


def test_download_without_content_length_completes_at_the_end(config, s3_client, workdir):
    def handler(request):
        return httpx.Response(200, content=iter([b"abc", b"def"]))

    reports = []
    make_transfer(config, s3_client, handler).download(
        "http://archives.test/a.tar", workdir / "in", lambda c, t: reports.append((c, t))
    )
    assert reports == [(6, 6)]


def test_download_http_error_leaves_no_partial_file(config, s3_client, workdir):
    transfer = make_transfer(config, s3_client, lambda request: httpx.Response(404))
    with pytest.raises(DownloadError, match="404"):
        transfer.download("http://archives.test/a.tar", workdir / "in")
    assert not (workdir / "in").exists()


def test_download_unreachable(config, s3_client, workdir):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(DownloadError) as exc:
        make_transfer(config, s3_client, handler).download("http://archives.test/a.tar", workdir / "in")
    assert exc.value.describe() == "download error: connection refused"


def test_object_key():
    assert object_key("videos/", "job-1", "/w/job-1.mp4") == "videos/job-1/job-1.mp4"


def test_upload_key_acl_and_content_type(config, s3_client, workdir):
    video = workdir / "job-1.mp4"
    video.write_bytes(b"video")
    reports = []

    bucket, key = make_transfer(config, s3_client, None).upload(
        video, "job-1", acl="private", report=lambda c, t: reports.append((c, t))
    )

    assert (bucket, key) == ("renders", "videos/job-1/job-1.mp4")
    args, kwargs = s3_client.upload_file.call_args
    assert args == (str(video), "renders", "videos/job-1/job-1.mp4")
    assert kwargs["ExtraArgs"] == {"ACL": "private", "ContentType": "video/mp4"}
    assert reports[-1] == (5, 5)
    assert video.exists()


def test_upload_reports_boto_callbacks(config, s3_client, workdir):
    video = workdir / "job-1.mp4"
    video.write_bytes(b"0123456789")

    def fake_upload(filename, bucket, key, ExtraArgs=None, Callback=None, Config=None):
        Callback(4)
        Callback(6)

    s3_client.upload_file.side_effect = fake_upload
    reports = []
    make_transfer(config, s3_client, None).upload(video, "job-1", report=lambda c, t: reports.append((c, t)))
    assert reports == [(4, 10), (10, 10), (10, 10)]


def test_upload_failure_is_wrapped(config, s3_client, workdir):
    video = workdir / "job-1.mp4"
    video.write_bytes(b"video")
    s3_client.upload_file.side_effect = ClientError({"Error": {"Code": "AccessDenied", "Message": "no"}}, "PutObject")

    with pytest.raises(UploadError, match="s3://renders/videos/job-1/job-1.mp4"):
        make_transfer(config, s3_client, None).upload(video, "job-1")


def test_upload_requires_bucket_and_prefix(config, s3_client, workdir):
    config = dataclasses.replace(config, s3_prefix="")
    with pytest.raises(UploadError, match="missing S3"):
        make_transfer(config, s3_client, None).upload(workdir / "job-1.mp4", "job-1")
    s3_client.upload_file.assert_not_called()


def test_upload_removes_local_file_when_cleaning(config, s3_client, workdir):
    config = dataclasses.replace(config, clean_artifacts=True)
    log = workdir / "job-1.log.gz"
    log.write_bytes(b"log")
    make_transfer(config, s3_client, None).upload(log, "job-1")
    assert s3_client.upload_file.call_args.kwargs["ExtraArgs"] == {"ContentType": "application/gzip"}
    assert not log.exists()
