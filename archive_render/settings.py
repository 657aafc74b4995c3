from pathlib import Path
import os
from dotenv import load_dotenv
from django.core.exceptions import ImproperlyConfigured

# -----------------------------------------------------
# Helpers
# -----------------------------------------------------
def env(name: str, default=None, *, required: bool = False):
    val = os.getenv(name, default)
    if required and (val is None or (isinstance(val, str) and val.strip() == "")):
        raise ImproperlyConfigured(f"Missing required environment variable: {name}")
    return val

def env_bool(name: str, default: bool = False) -> bool:
    return str(os.getenv(name, str(default))).lower() in {"1", "true", "yes", "on"}

def env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ImproperlyConfigured(f"Environment variable {name} must be an integer, got {raw!r}")

def env_list(name: str, default: str = "") -> list[str]:
    return [v.strip() for v in os.getenv(name, default).split(",") if v.strip()]

# -----------------------------------------------------
# Paths & basics
# -----------------------------------------------------
BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(BASE_DIR / ".env")

DEBUG = env_bool("DEBUG", False)

# In production (DEBUG=False) you must set a strong secret in .env
SECRET_KEY = env("DJANGO_SECRET_KEY", "dev-only-secret-key-change-me", required=not DEBUG)

# Keep hosts explicit by default
ALLOWED_HOSTS = env_list("ALLOWED_HOSTS", "127.0.0.1,localhost")

# -----------------------------------------------------
# Applications
# -----------------------------------------------------
INSTALLED_APPS = [
    "django.contrib.contenttypes",
    "django.contrib.auth",

    # Third-party
    "rest_framework",

    # Local
    "api",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.middleware.common.CommonMiddleware",
]

ROOT_URLCONF = "archive_render.urls"

WSGI_APPLICATION = "archive_render.wsgi.application"

# -----------------------------------------------------
# Database (Postgres if DB_* env vars set, else SQLite)
# -----------------------------------------------------
if os.getenv("DB_HOST"):
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.postgresql",
            "NAME": env("DB_NAME", "archive_render"),
            "USER": env("DB_USER", "archive_render"),
            "PASSWORD": env("DB_PASSWORD", ""),
            "HOST": env("DB_HOST", "127.0.0.1"),
            "PORT": env("DB_PORT", "5432"),
            "CONN_MAX_AGE": int(env("DB_CONN_MAX_AGE", "60")),  # keep-alive
            "OPTIONS": {
                **({"sslmode": os.getenv("DB_SSLMODE")} if os.getenv("DB_SSLMODE") else {})
            },
        }
    }
else:
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.sqlite3",
            "NAME": BASE_DIR / "db.sqlite3",
        }
    }

# -----------------------------------------------------
# Internationalization
# -----------------------------------------------------
LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

# -----------------------------------------------------
# Django REST Framework
# -----------------------------------------------------
REST_FRAMEWORK = {
    "DEFAULT_RENDERER_CLASSES": [
        "rest_framework.renderers.JSONRenderer",
    ],
    "DEFAULT_PARSER_CLASSES": [
        "rest_framework.parsers.JSONParser",
        "rest_framework.parsers.FormParser",
    ],
    "UNAUTHENTICATED_USER": None,
}

# -----------------------------------------------------
# Logging
# -----------------------------------------------------
LOG_LEVEL = env("LOG_LEVEL", "DEBUG" if DEBUG else "INFO").upper()

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "plain": {"format": "%(asctime)s %(levelname)s %(name)s: %(message)s"},
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "plain"},
    },
    "root": {"handlers": ["console"], "level": "WARNING"},
    "loggers": {
        "api": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
        "celery": {"handlers": ["console"], "level": "INFO", "propagate": False},
    },
}

# -----------------------------------------------------
# Celery / Redis
# -----------------------------------------------------
CELERY_BROKER_URL = env("CELERY_BROKER_URL", "redis://127.0.0.1:6379/0")
CELERY_RESULT_BACKEND = env("CELERY_RESULT_BACKEND", "redis://127.0.0.1:6379/0")
CELERY_TASK_TRACK_STARTED = True
CELERY_TASK_TIME_LIMIT = env_int("CELERY_TASK_TIME_LIMIT", 60 * 60)  # seconds
# One render per worker child; the pipeline owns its own progress reporting
CELERY_WORKER_PREFETCH_MULTIPLIER = 1
# SIGTERM gives an in-flight job a short window to finish before cold shutdown
CELERY_WORKER_SOFT_SHUTDOWN_TIMEOUT = float(env("CELERY_WORKER_SOFT_SHUTDOWN_TIMEOUT", "5.0"))

# -----------------------------------------------------
# Default PK type
# -----------------------------------------------------
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# -----------------------------------------------------
# S3 / MinIO (env-driven; no hardcoded secrets)
# -----------------------------------------------------
S3_ENDPOINT_URL = os.getenv("S3_ENDPOINT_URL") or None  # None means AWS
S3_PUBLIC_ENDPOINT = os.getenv("S3_PUBLIC_ENDPOINT", S3_ENDPOINT_URL)
S3_REGION = os.getenv("S3_REGION", "us-east-1")
S3_BUCKET = os.getenv("S3_BUCKET", "")
S3_PREFIX = os.getenv("S3_PREFIX", "")
S3_ACCESS_KEY = os.getenv("S3_ACCESS_KEY")          # set in .env for local
S3_SECRET_KEY = os.getenv("S3_SECRET_KEY")          # set in .env for local
S3_PRESIGN_EXPIRE_SECONDS = env_int("S3_PRESIGN_EXPIRE_SECONDS", 900)

# Transfer knobs handed to boto3; multipart is the client's job, not ours
S3_MULTIPART_THRESHOLD = env_int("S3_MULTIPART_THRESHOLD", 20 * 1024 * 1024)
S3_MULTIPART_CHUNKSIZE = env_int("S3_MULTIPART_CHUNKSIZE", 15 * 1024 * 1024)
S3_MAX_CONCURRENCY = env_int("S3_MAX_CONCURRENCY", 20)
S3_MAX_ATTEMPTS = env_int("S3_MAX_ATTEMPTS", 3)

# -----------------------------------------------------
# Renderer
# -----------------------------------------------------
RENDERER_PATH = env("RENDERER_PATH", "barc")
RENDERER_WORKDIR = env("RENDERER_WORKDIR", "") or os.getcwd()
RENDERER_USE_SHELL = env_bool("RENDERER_USE_SHELL", False)
CLEAN_ARTIFACTS = env_bool("CLEAN_ARTIFACTS", False)

# -----------------------------------------------------
# Job pipeline
# -----------------------------------------------------
# Share of the 0..100 progress range owned by download / render / upload
PROGRESS_BANDS = tuple(float(v) for v in env_list("PROGRESS_BANDS", "33,33,34"))
if len(PROGRESS_BANDS) != 3 or abs(sum(PROGRESS_BANDS) - 100.0) > 1e-6:
    raise ImproperlyConfigured("PROGRESS_BANDS must be three values summing to 100")
PROGRESS_MIN_STEP = float(env("PROGRESS_MIN_STEP", "1.0"))

DOWNLOAD_TIMEOUT = float(env("DOWNLOAD_TIMEOUT", "60"))
CALLBACK_TIMEOUT = float(env("CALLBACK_TIMEOUT", "10"))

JOB_LIMITS = {
    "min_width": env_int("JOB_MIN_WIDTH", 16),
    "max_width": env_int("JOB_MAX_WIDTH", 1920),
    "min_height": env_int("JOB_MIN_HEIGHT", 16),
    "max_height": env_int("JOB_MAX_HEIGHT", 1080),
}
JOB_DEFAULTS = {
    "width": env_int("JOB_DEFAULT_WIDTH", 640),
    "height": env_int("JOB_DEFAULT_HEIGHT", 480),
}
CSS_PRESETS = env_list("CSS_PRESETS", "default,auto,custom")

SECRET_TOKEN_SALT = env("SECRET_TOKEN_SALT", "archive-render.job-secret")

# -----------------------------------------------------
# Dispatch (Celery worker vs. one ephemeral task per job)
# -----------------------------------------------------
JOB_DISPATCH_MODE = env("JOB_DISPATCH_MODE", "celery")
if JOB_DISPATCH_MODE not in {"celery", "task_runner"}:
    raise ImproperlyConfigured(f"Unknown JOB_DISPATCH_MODE: {JOB_DISPATCH_MODE}")

TASK_RUNNER_BASE_URL = env("TASK_RUNNER_BASE_URL", "", required=JOB_DISPATCH_MODE == "task_runner")
TASK_RUNNER_TASK = env("TASK_RUNNER_TASK", "archive-render")
TASK_RUNNER_CONTAINER = env("TASK_RUNNER_CONTAINER", "archive-render-task")

# Where an isolated task reports back to this service
INTERNAL_CALLBACK_URL = env("INTERNAL_CALLBACK_URL", "")
INTERNAL_CALLBACK_TOKEN = env("INTERNAL_CALLBACK_TOKEN", "")
