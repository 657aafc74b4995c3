import json

import httpx
import pytest
from django.core.management import call_command
from django.core.management.base import CommandError

from api.models import Job
from api.records import JobOutcome
from api.store import RelayJobStore

TASK_ID = "5b0e8d6c-3f4e-4f0a-9d43-3c1d2a6f9e10"


class FakeNotifier:
    instances = []

    def __init__(self, http_client, **kwargs):
        self.kwargs = kwargs
        self.relayed = []
        self.dispatched = []
        self.instances.append(self)

    def relay(self, job_id, result, external_url):
        self.relayed.append((job_id, result, external_url))
        return True

    def dispatch(self, job_id, outcome, external_url):
        self.dispatched.append((job_id, outcome, external_url))
        return True


@pytest.fixture
def task_vars(monkeypatch, settings):
    settings.INTERNAL_CALLBACK_URL = "http://service.test/api/internal/callback/"
    settings.INTERNAL_CALLBACK_TOKEN = "tok"
    monkeypatch.setenv("TASK_ID", TASK_ID)
    monkeypatch.setenv("ARCHIVE_URL", "http://archives.test/talk.tar")
    monkeypatch.setenv("CALLBACK_URL", "http://callback.test/hook")


@pytest.fixture
def task_env(task_vars, monkeypatch):
    FakeNotifier.instances = []
    monkeypatch.setattr("api.management.commands.run_task.Notifier", FakeNotifier)


def test_runs_one_job_with_relay_store(task_env, monkeypatch):
    built = {}

    class FakePipeline:
        def run(self):
            return JobOutcome(status=Job.Status.SUCCEEDED, archive_key="videos/k.mp4")

    def fake_build(spec, config, store, notifier, http_client):
        built.update(spec=spec, config=config, store=store, notifier=notifier)
        return FakePipeline()

    monkeypatch.setattr("api.management.commands.run_task.build_pipeline", fake_build)

    call_command("run_task", "--width=800", "--height=600", "--preset=custom", "--custom-css=body {}",
                 "--begin-offset=5")

    spec = built["spec"]
    assert spec.job_id == TASK_ID
    assert (spec.width, spec.height, spec.preset, spec.custom_css) == (800, 600, "custom", "body {}")
    assert spec.begin_offset == 5 and spec.end_offset is None
    assert spec.callback_url == "http://callback.test/hook"
    assert isinstance(built["store"], RelayJobStore)
    assert built["notifier"].kwargs["internal_url"] == "http://service.test/api/internal/callback/"
    assert built["notifier"].kwargs["internal_token"] == "tok"


def test_bad_callback_url_does_not_block_the_job(task_env, monkeypatch):
    monkeypatch.setenv("CALLBACK_URL", "not-a-url")
    seen = []

    class FakePipeline:
        def run(self):
            return JobOutcome(status=Job.Status.FAILED, error="download error: boom")

    monkeypatch.setattr(
        "api.management.commands.run_task.build_pipeline",
        lambda spec, *args: seen.append(spec) or FakePipeline(),
    )
    call_command("run_task")
    assert seen[0].callback_url == "not-a-url"


def test_missing_archive_url_fails_the_job_through_the_service(task_env, monkeypatch):
    monkeypatch.setenv("ARCHIVE_URL", "")
    monkeypatch.setattr(
        "api.management.commands.run_task.build_pipeline",
        lambda *args: pytest.fail("pipeline must not run"),
    )

    with pytest.raises(CommandError, match="validation error: archiveURL"):
        call_command("run_task")

    [notifier] = FakeNotifier.instances
    assert notifier.relayed == []
    [(job_id, outcome, url)] = notifier.dispatched
    assert job_id == TASK_ID
    assert outcome.status == Job.Status.FAILED
    assert outcome.error.startswith("validation error: archiveURL")
    assert url == "http://callback.test/hook"


def test_unusable_task_id_only_tells_the_submitter(task_env, monkeypatch):
    monkeypatch.setenv("TASK_ID", "a/b")

    with pytest.raises(CommandError, match="validation error: taskId"):
        call_command("run_task")

    [notifier] = FakeNotifier.instances
    assert notifier.dispatched == []
    [(job_id, result, url)] = notifier.relayed
    assert (job_id, url) == ("a/b", "http://callback.test/hook")
    assert result.startswith("validation error: taskId")


def test_rejected_task_posts_failure_to_internal_callback(task_vars, monkeypatch):
    monkeypatch.setenv("ARCHIVE_URL", "not-a-url")

    posts = []

    def handler(request):
        posts.append(request)
        return httpx.Response(204)

    client_cls = httpx.Client
    monkeypatch.setattr(
        "api.management.commands.run_task.httpx.Client",
        lambda: client_cls(transport=httpx.MockTransport(handler)),
    )

    with pytest.raises(CommandError):
        call_command("run_task")

    assert [r.url.host for r in posts] == ["service.test"]
    assert posts[0].headers["Authorization"] == "Bearer tok"
    body = json.loads(posts[0].content)
    assert body["taskId"] == TASK_ID
    assert body["message"]["status"] == "failed"
    assert body["message"]["error"].startswith("validation error: archiveURL")
