from django.conf import settings
from rest_framework import serializers

from .models import Job
from .records import JobSpec
from .utils import is_valid_url


def _strip_low(value: str) -> str:
    """Drop ASCII control characters."""
    return "".join(ch for ch in value if ord(ch) >= 32 and ord(ch) != 127)


def _bounded_int(raw, low: int, high: int, default: int) -> int:
    try:
        value = int(str(raw).strip())
    except (TypeError, ValueError):
        return default
    return value if low <= value <= high else default


class JobSerializer(serializers.ModelSerializer):
    """Status view of a job. The secret hash never leaves the database."""

    class Meta:
        model = Job
        fields = [
            "id",
            "status",
            "progress",
            "phase",
            "archive_url",
            "width",
            "height",
            "preset",
            "begin_offset",
            "end_offset",
            "archive_key",
            "archive_bucket",
            "logs_key",
            "logs_bucket",
            "error",
            "exit_code",
            "created_at",
            "updated_at",
            "started_at",
            "stopped_at",
        ]


class JobRequestSerializer(serializers.Serializer):
    """
    Render parameters as submitted by a client.

    Only archiveURL is strictly required. Out-of-range sizes fall back to the
    configured defaults and unknown presets are dropped, so the renderer
    always receives something it accepts.
    """

    archiveURL = serializers.CharField()
    width = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    height = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    preset = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    customCSS = serializers.CharField(required=False, allow_blank=True, allow_null=True, trim_whitespace=False)
    beginOffset = serializers.IntegerField(required=False, allow_null=True)
    endOffset = serializers.IntegerField(required=False, allow_null=True)
    callbackURL = serializers.CharField(required=False, allow_blank=True, allow_null=True)

    def validate_archiveURL(self, value):
        value = _strip_low(value)
        if not is_valid_url(value):
            raise serializers.ValidationError("Missing required parameter: archiveURL (http/https URL)")
        return value

    def validate_callbackURL(self, value):
        if value and not is_valid_url(value):
            raise serializers.ValidationError("callbackURL must be an http/https URL")
        return value or ""

    def validate(self, attrs):
        limits, defaults = settings.JOB_LIMITS, settings.JOB_DEFAULTS
        preset = attrs.get("preset") or ""
        if preset not in settings.CSS_PRESETS:
            preset = ""
        return {
            "archive_url": attrs["archiveURL"],
            "width": _bounded_int(attrs.get("width"), limits["min_width"], limits["max_width"], defaults["width"]),
            "height": _bounded_int(attrs.get("height"), limits["min_height"], limits["max_height"], defaults["height"]),
            "preset": preset,
            "custom_css": (attrs.get("customCSS") or "") if preset == "custom" else "",
            "begin_offset": attrs.get("beginOffset"),
            "end_offset": attrs.get("endOffset"),
            "callback_url": attrs.get("callbackURL") or "",
        }


class TaskSpecSerializer(JobRequestSerializer):
    """Same rules, plus the task id an ephemeral task is started with."""

    taskId = serializers.CharField()

    def validate_taskId(self, value):
        if not value.isascii() or not value.isprintable() or "/" in value:
            raise serializers.ValidationError(f"invalid task id {value!r}")
        return value

    def validate(self, attrs):
        fields = super().validate(attrs)
        return JobSpec(job_id=attrs["taskId"], **fields)


class InternalMessageSerializer(serializers.Serializer):
    output_key = serializers.CharField(required=False, allow_blank=True)
    output_bucket = serializers.CharField(required=False, allow_blank=True)
    logs_key = serializers.CharField(required=False, allow_blank=True)
    logs_bucket = serializers.CharField(required=False, allow_blank=True)
    error = serializers.CharField(required=False, allow_blank=True)
    exit_code = serializers.IntegerField(required=False, allow_null=True)
    status = serializers.ChoiceField(choices=Job.Status.choices, required=False)
    progress = serializers.FloatField(required=False, min_value=0.0, max_value=100.0)
    phase = serializers.ChoiceField(choices=Job.Phase.choices, required=False, allow_blank=True)


class InternalCallbackSerializer(serializers.Serializer):
    taskId = serializers.UUIDField()
    message = InternalMessageSerializer()
