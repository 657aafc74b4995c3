import json

import httpx
import pytest
from kombu.exceptions import OperationalError

from api.errors import LaunchError
from api.launcher import CeleryLauncher, TaskRunnerLauncher, get_launcher
from api.models import Job
from api.records import JobOutcome
from api.tasks import process_job

pytestmark = pytest.mark.django_db


@pytest.fixture
def job():
    return Job.objects.create(
        archive_url="http://archives.test/talk.tar",
        width=640,
        height=480,
        preset="custom",
        custom_css="body {}",
        end_offset=30,
        secret_hash="x",
        callback_url="http://callback.test/hook",
    )


@pytest.fixture
def runner_settings(settings):
    settings.JOB_DISPATCH_MODE = "task_runner"
    settings.TASK_RUNNER_BASE_URL = "http://runner.test/"
    settings.INTERNAL_CALLBACK_URL = "http://service.test/api/internal/callback/"
    settings.INTERNAL_CALLBACK_TOKEN = "tok"
    settings.S3_BUCKET = "renders"
    settings.S3_PREFIX = "videos"
    settings.S3_ENDPOINT_URL = None
    return settings


def test_get_launcher_follows_dispatch_mode(settings, runner_settings):
    assert isinstance(get_launcher(), TaskRunnerLauncher)
    settings.JOB_DISPATCH_MODE = "celery"
    assert isinstance(get_launcher(), CeleryLauncher)


def test_task_runner_launch_posts_the_task(job, runner_settings):
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(201, json={"id": "t-1"})

    with httpx.Client(transport=httpx.MockTransport(handler)) as http:
        TaskRunnerLauncher(http).launch(job)

    [request] = seen
    assert str(request.url) == "http://runner.test/task"
    body = json.loads(request.content)
    assert body["command"] == [
        "python", "manage.py", "run_task", "--width=640", "--height=480", "--preset=custom",
        "--custom-css=body {}", "--end-offset=30",
    ]
    env = body["environment"]
    assert env["TASK_ID"] == str(job.id)
    assert env["CALLBACK_URL"] == "http://callback.test/hook"
    assert env["INTERNAL_CALLBACK_TOKEN"] == "tok"
    assert env["S3_PREFIX"] == "videos"
    assert "S3_ENDPOINT_URL" not in env


def refused(request):
    raise httpx.ConnectError("refused", request=request)


@pytest.mark.parametrize("handler, message", [
    (lambda request: httpx.Response(500), "task runner answered 500"),
    (refused, "task runner unreachable"),
])
def test_task_runner_failures_raise_launch_error(job, runner_settings, handler, message):
    with httpx.Client(transport=httpx.MockTransport(handler)) as http:
        with pytest.raises(LaunchError, match=message):
            TaskRunnerLauncher(http).launch(job)


def test_celery_launch_wraps_broker_errors(job, monkeypatch):
    def refuse(*args, **kwargs):
        raise OperationalError("connection refused")

    monkeypatch.setattr(process_job, "delay", refuse)
    with pytest.raises(LaunchError, match="broker unavailable"):
        CeleryLauncher().launch(job)


def test_process_job_runs_queued_jobs_only(job, monkeypatch):
    runs = []

    class FakePipeline:
        def __init__(self, spec, store):
            self.spec, self.store = spec, store

        def run(self):
            runs.append(self.spec.job_id)
            self.store.mark_running(self.spec.job_id)
            outcome = JobOutcome(status=Job.Status.SUCCEEDED, progress=100.0, archive_key="videos/k.mp4")
            self.store.finish(self.spec.job_id, outcome)
            return outcome

    monkeypatch.setattr("api.tasks.build_pipeline", lambda spec, config, store, *args: FakePipeline(spec, store))

    assert process_job(str(job.id)) == "succeeded"
    assert process_job(str(job.id)) == "succeeded"
    assert runs == [str(job.id)]
    assert process_job("00000000-0000-0000-0000-000000000000") is None
