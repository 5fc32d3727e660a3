from __future__ import annotations

import json
import logging
import threading
from urllib.parse import urlsplit

import requests

from domain.errors import SigningError, SubmissionError
from domain.models import Record, SubmissionResult
from infrastructure.signing import SigV4RequestSigner

logger = logging.getLogger(__name__)


class IndexSink:
    """Posts one record per request to ``/{index}/{doc_type}`` on the search domain.

    Every call to :meth:`submit` performs exactly one signed request. Nothing is
    batched, deduplicated or retried, and no exception escapes: the outcome is
    always returned as a :class:`SubmissionResult`.

    ``submit`` runs on several worker threads at once. Without an injected
    session each thread gets its own ``requests.Session``; an injected session
    is shared by all of them and must tolerate concurrent use.
    """

    def __init__(
        self,
        endpoint: str,
        index: str,
        doc_type: str,
        signer: SigV4RequestSigner,
        session: requests.Session | None = None,
        scheme: str = "https",
        timeout: float = 10.0,
    ) -> None:
        host, scheme = _split_endpoint(endpoint, scheme)
        self.host = host
        self.scheme = scheme
        self.index = index
        self.doc_type = doc_type
        self.signer = signer
        self._session = session
        self._local = threading.local()
        self.timeout = timeout

    @property
    def session(self) -> requests.Session:
        if self._session is not None:
            return self._session
        session = getattr(self._local, "session", None)
        if session is None:
            session = self._local.session = requests.Session()
        return session

    @property
    def path(self) -> str:
        return f"/{self.index}/{self.doc_type}"

    @property
    def url(self) -> str:
        return f"{self.scheme}://{self.host}{self.path}"

    def submit(self, record: Record) -> SubmissionResult:
        try:
            body = json.dumps(record.to_document(), ensure_ascii=False).encode("utf-8")
        except (TypeError, ValueError) as exc:
            return SubmissionResult(ok=False, error=SubmissionError(f"Could not serialize record: {exc}"))
        headers = {"Host": self.host, "Content-Type": "application/json"}
        try:
            signed_headers = self.signer.sign("POST", self.url, body, headers)
        except SigningError as exc:
            logger.warning("signing_failed", extra={"error": str(exc)})
            return SubmissionResult(ok=False, error=exc)

        try:
            response = self.session.post(
                self.url, data=body, headers=signed_headers, timeout=self.timeout
            )
        except requests.RequestException as exc:
            logger.warning("submission_transport_error", extra={"error": str(exc)})
            return SubmissionResult(ok=False, error=SubmissionError(f"Transport error: {exc}"))

        status = response.status_code
        if 200 <= status < 300:
            logger.debug("document_added", extra={"status": status})
            return SubmissionResult(ok=True, status_code=status, response_body=response.text)
        logger.warning("submission_rejected", extra={"status": status, "body": response.text[:500]})
        return SubmissionResult(
            ok=False,
            status_code=status,
            response_body=response.text,
            error=SubmissionError(f"Index returned HTTP {status}", status_code=status),
        )


def _split_endpoint(endpoint: str, default_scheme: str) -> tuple[str, str]:
    if "://" not in endpoint:
        return endpoint.rstrip("/"), default_scheme
    parts = urlsplit(endpoint)
    return parts.netloc, parts.scheme
