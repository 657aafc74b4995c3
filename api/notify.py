"""
Outbound postbacks.

Two destinations: the submitter's external callback, which gets
``{job, result}``, and the service's own internal callback, which gets
``{taskId, message}`` so it can upsert the job record and relay the result
outward. A postback is fire-once: no retries, and neither a bad URL nor a
failed request ever changes the job outcome.
"""

import logging

import httpx

from .errors import NotifyError
from .records import JobOutcome
from .utils import is_valid_url

logger = logging.getLogger(__name__)


class Notifier:
    def __init__(self, http_client: httpx.Client, *, internal_url: str = "", internal_token: str = "",
                 timeout: float = 10.0):
        self.http = http_client
        self.internal_url = internal_url
        self.internal_token = internal_token
        self.timeout = timeout

    def _internal_headers(self) -> dict:
        if not self.internal_token:
            return {}
        return {"Authorization": f"Bearer {self.internal_token}"}

    def post(self, url: str | None, payload: dict, headers: dict | None = None) -> bool:
        """POST payload as JSON. Returns True on a 2xx answer; never raises."""
        if not url:
            logger.info("no callback URL, skipping postback")
            return False
        if not is_valid_url(url):
            logger.warning("invalid callback URL %r, skipping postback", url)
            return False
        try:
            response = self.http.post(url, json=payload, headers=headers, timeout=self.timeout)
        except httpx.HTTPError as exc:
            logger.warning("%s", NotifyError(f"postback to {url} failed: {exc}").describe())
            return False
        logger.info("postback to %s returned %s", url, response.status_code)
        return response.is_success

    def post_internal(self, job_id: str, message: dict) -> bool:
        if not self.internal_url:
            return False
        return self.post(self.internal_url, {"taskId": job_id, "message": message},
                         headers=self._internal_headers())

    def relay(self, job_id: str, result: str, external_url: str | None) -> bool:
        return self.post(external_url, {"job": job_id, "result": result})

    def dispatch(self, job_id: str, outcome: JobOutcome, external_url: str | None) -> bool:
        """
        The one terminal notification of a run. With an internal callback
        configured the service relays to the submitter; otherwise the
        submitter is told directly.
        """
        if self.internal_url:
            return self.post(self.internal_url, outcome.to_internal_payload(job_id),
                             headers=self._internal_headers())
        return self.post(external_url, outcome.to_external_payload(job_id))
