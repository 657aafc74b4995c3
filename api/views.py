import logging

import httpx
from botocore.exceptions import BotoCoreError, ClientError
from django.conf import settings
from django.utils.crypto import constant_time_compare
from rest_framework import status, views
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

from .errors import LaunchError
from .launcher import get_launcher
from .models import Job
from .notify import Notifier
from .records import JobOutcome
from .s3 import create_presigned_get
from .serializers import InternalCallbackSerializer, JobRequestSerializer, JobSerializer
from .store import DjangoJobStore
from .utils import check_secret, generate_secret, hash_secret

logger = logging.getLogger(__name__)


def _job_for_secret(request, job_id):
    """
    Look up a job and check the caller holds its secret.
    Returns (job, None) or (None, error response).
    """
    job = Job.objects.filter(pk=job_id).first()
    if job is None:
        return None, Response({"detail": "Not found"}, status=status.HTTP_404_NOT_FOUND)
    token = request.headers.get("X-Job-Secret") or request.query_params.get("secret", "")
    if not check_secret(token, job.secret_hash):
        return None, Response({"detail": "Invalid job secret"}, status=status.HTTP_403_FORBIDDEN)
    return job, None


class CreateJobView(views.APIView):
    """
    Accepts render parameters, creates a queued Job and hands it to the
    configured launcher. The secret is shown exactly once, in this response.
    """
    permission_classes = [AllowAny]
    authentication_classes = []

    def post(self, request):
        ser = JobRequestSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        secret = generate_secret()
        job = Job.objects.create(secret_hash=hash_secret(secret), **ser.validated_data)

        try:
            get_launcher().launch(job)
        except LaunchError as exc:
            logger.error("job %s: %s", job.id, exc.describe())
            DjangoJobStore().finish(job.id, JobOutcome(status=Job.Status.FAILED, error=exc.describe()))
            return Response({"job_id": str(job.id), "detail": exc.describe()},
                            status=status.HTTP_503_SERVICE_UNAVAILABLE)

        return Response({"job_id": str(job.id), "secret": secret}, status=status.HTTP_202_ACCEPTED)


class JobDetailView(views.APIView):
    permission_classes = [AllowAny]
    authentication_classes = []

    def get(self, request, job_id):
        job, denied = _job_for_secret(request, job_id)
        if denied is not None:
            return denied
        return Response(JobSerializer(job).data)


class JobDownloadView(views.APIView):
    """Time-limited GET URL for the rendered video of a succeeded job."""
    permission_classes = [AllowAny]
    authentication_classes = []

    def get(self, request, job_id):
        job, denied = _job_for_secret(request, job_id)
        if denied is not None:
            return denied
        if job.status != Job.Status.SUCCEEDED or not job.archive_key:
            return Response({"detail": f"Job is {job.status}, no output available"},
                            status=status.HTTP_409_CONFLICT)
        try:
            url = create_presigned_get(job.archive_bucket or settings.S3_BUCKET, job.archive_key)
        except (BotoCoreError, ClientError) as exc:
            logger.error("job %s: presign failed: %s", job.id, exc)
            return Response({"detail": "Storage unavailable"}, status=status.HTTP_503_SERVICE_UNAVAILABLE)
        return Response({"url": url, "expires_in": settings.S3_PRESIGN_EXPIRE_SECONDS})


class InternalCallbackView(views.APIView):
    """
    Progress and outcome reports from ephemeral tasks. The record is upserted
    and, when this report is the one that finished the job, the result is
    relayed to the submitter's callback.
    """
    permission_classes = [AllowAny]
    authentication_classes = []

    def post(self, request):
        expected = settings.INTERNAL_CALLBACK_TOKEN
        header = request.headers.get("Authorization", "")
        if not expected or not constant_time_compare(header, f"Bearer {expected}"):
            return Response({"detail": "Invalid token"}, status=status.HTTP_401_UNAUTHORIZED)

        ser = InternalCallbackSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        job_id = ser.validated_data["taskId"]
        message = ser.validated_data["message"]

        store = DjangoJobStore()
        if store.get(job_id) is None:
            return Response({"detail": "Not found"}, status=status.HTTP_404_NOT_FOUND)

        if store.apply_message(job_id, message):
            job = store.get(job_id)
            result = "success" if job.status == Job.Status.SUCCEEDED else job.error
            logger.info("job %s finished: %s", job_id, result)
            with httpx.Client() as http:
                Notifier(http, timeout=settings.CALLBACK_TIMEOUT).relay(str(job_id), result, job.callback_url)

        return Response(status=status.HTTP_204_NO_CONTENT)
