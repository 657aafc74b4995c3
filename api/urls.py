from django.urls import path
from .views import CreateJobView, JobDetailView, JobDownloadView, InternalCallbackView

urlpatterns = [
    path("jobs/", CreateJobView.as_view(), name="job_create"),
    path("jobs/<uuid:job_id>/", JobDetailView.as_view(), name="job_detail"),
    path("jobs/<uuid:job_id>/download/", JobDownloadView.as_view(), name="job_download"),
    path("internal/callback/", InternalCallbackView.as_view(), name="internal_callback"),
]
