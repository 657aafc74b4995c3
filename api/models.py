import uuid
from django.db import models


class Job(models.Model):
    class Status(models.TextChoices):
        QUEUED = "queued"
        RUNNING = "running"
        SUCCEEDED = "succeeded"
        FAILED = "failed"

    class Phase(models.TextChoices):
        DOWNLOADING = "downloading"
        TRANSFORMING = "transforming"
        UPLOADING = "uploading"

    TERMINAL = (Status.SUCCEEDED, Status.FAILED)

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.QUEUED)
    progress = models.FloatField(default=0.0)  # 0..100, never decreases
    # Last phase the pipeline entered; on a failed job, where it stopped
    phase = models.CharField(max_length=16, choices=Phase.choices, blank=True, default="")

    archive_url = models.URLField(max_length=2048)
    width = models.PositiveIntegerField()
    height = models.PositiveIntegerField()
    preset = models.CharField(max_length=64, blank=True, default="")
    custom_css = models.TextField(blank=True, default="")
    begin_offset = models.IntegerField(null=True, blank=True)
    end_offset = models.IntegerField(null=True, blank=True)

    # Salted HMAC of the access token handed to the submitter; the token itself is never stored
    secret_hash = models.CharField(max_length=128)
    callback_url = models.URLField(max_length=2048, blank=True, default="")

    archive_key = models.CharField(max_length=1024, blank=True, default="")
    archive_bucket = models.CharField(max_length=255, blank=True, default="")
    logs_key = models.CharField(max_length=1024, blank=True, default="")
    logs_bucket = models.CharField(max_length=255, blank=True, default="")
    error = models.TextField(blank=True, default="")
    exit_code = models.IntegerField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    started_at = models.DateTimeField(null=True, blank=True)
    stopped_at = models.DateTimeField(null=True, blank=True)

    @property
    def is_terminal(self) -> bool:
        return self.status in self.TERMINAL
