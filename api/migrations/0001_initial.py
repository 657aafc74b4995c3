import uuid

from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Job",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("queued", "Queued"),
                            ("running", "Running"),
                            ("succeeded", "Succeeded"),
                            ("failed", "Failed"),
                        ],
                        default="queued",
                        max_length=16,
                    ),
                ),
                ("progress", models.FloatField(default=0.0)),
                (
                    "phase",
                    models.CharField(
                        blank=True,
                        choices=[
                            ("downloading", "Downloading"),
                            ("transforming", "Transforming"),
                            ("uploading", "Uploading"),
                        ],
                        default="",
                        max_length=16,
                    ),
                ),
                ("archive_url", models.URLField(max_length=2048)),
                ("width", models.PositiveIntegerField()),
                ("height", models.PositiveIntegerField()),
                ("preset", models.CharField(blank=True, default="", max_length=64)),
                ("custom_css", models.TextField(blank=True, default="")),
                ("begin_offset", models.IntegerField(blank=True, null=True)),
                ("end_offset", models.IntegerField(blank=True, null=True)),
                ("secret_hash", models.CharField(max_length=128)),
                ("callback_url", models.URLField(blank=True, default="", max_length=2048)),
                ("archive_key", models.CharField(blank=True, default="", max_length=1024)),
                ("archive_bucket", models.CharField(blank=True, default="", max_length=255)),
                ("logs_key", models.CharField(blank=True, default="", max_length=1024)),
                ("logs_bucket", models.CharField(blank=True, default="", max_length=255)),
                ("error", models.TextField(blank=True, default="")),
                ("exit_code", models.IntegerField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("started_at", models.DateTimeField(blank=True, null=True)),
                ("stopped_at", models.DateTimeField(blank=True, null=True)),
            ],
        ),
    ]
