from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote, urlsplit

import requests

from ..models.export_job import (
    DownloadAttempt,
    DownloadCandidate,
    DownloadOutcome,
    ExportRun,
    JobState,
    PollObservation,
    PollResult,
)
from ..models.export_request import ExportRequest
from .progress import PollProgress

"""Export job client for the MISA export service.

Workflow (each stage aborts the whole run on failure, no stage is retried):

1. queue    POST save_param_worker_queue           -> export_id
2. poll     GET  get_notify_export_by_pull/{id}    -> file url and/or token
3. resolve  up to three download candidates in fixed priority
4. download try candidates strictly in order, first 2xx wins

The notify endpoint is loosely typed: the same value shows up under different
key spellings depending on the job type and server build. Each logical field
is read through an ordered FieldRule.
"""

__all__ = [
    "ExportError",
    "ExportQueueError",
    "ExportNotReadyError",
    "ExportDownloadError",
    "FieldRule",
    "STATUS_RULE",
    "FILE_URL_RULE",
    "FILE_TOKEN_RULE",
    "DONE_STATUS",
    "ExportJobClient",
    "build_request_headers",
    "observe",
]

logger = logging.getLogger(__name__)

QUEUE_PATH = "/g2/api/export/v1/export/save_param_worker_queue"
POLL_PATH = "/g2/api/export/v1/export/get_notify_export_by_pull/{export_id}"
TEMP_DOWNLOAD_PATH = "/g2/api/file/v1/file/download"
EXPORT_DOWNLOAD_PATH = "/g2/api/export/v1/export/download_file/{token}"

# Terminal status observed on the notify endpoint. Other values are treated as pending.
DONE_STATUS = 3

DEFAULT_TIMEOUT = 30


class ExportError(Exception):
    """Base class for export workflow failures. diagnostics() feeds the snapshot log."""

    stage = "export"

    def diagnostics(self) -> dict[str, Any]:
        return {}


class ExportQueueError(ExportError):
    stage = "queue"

    def __init__(self, message: str, response_body: Any = None) -> None:
        super().__init__(message)
        self.response_body = response_body

    def diagnostics(self) -> dict[str, Any]:
        return {"response_body": self.response_body}


class ExportNotReadyError(ExportError):
    stage = "poll"

    def __init__(
        self,
        message: str,
        last_snapshot: Any = None,
        attempts: int = 0,
        state: JobState = JobState.TIMED_OUT,
    ) -> None:
        super().__init__(message)
        self.last_snapshot = last_snapshot
        self.attempts = attempts
        self.state = state

    def diagnostics(self) -> dict[str, Any]:
        return {
            "last_snapshot": self.last_snapshot,
            "attempts": self.attempts,
            "state": self.state.value,
        }


class ExportDownloadError(ExportError):
    stage = "download"

    def __init__(
        self,
        message: str,
        attempts: Sequence[DownloadAttempt] = (),
        last_snapshot: Any = None,
    ) -> None:
        super().__init__(message)
        self.attempts = tuple(attempts)
        self.last_snapshot = last_snapshot

    def diagnostics(self) -> dict[str, Any]:
        return {
            "attempted": [a.to_dict() for a in self.attempts],
            "last_snapshot": self.last_snapshot,
        }


@dataclass(frozen=True)
class FieldRule:
    """Ordered alias list for one logical field of a poll snapshot."""
    name: str
    keys: tuple[str, ...]
    allow_empty_string: bool = False

    def extract(self, data: Mapping[str, Any]) -> Any:
        for key in self.keys:
            value = data.get(key)
            if value is None:
                continue
            if value == "" and not self.allow_empty_string:
                continue
            return value
        return None


STATUS_RULE = FieldRule("status", ("Status", "status", "ExportStatus", "export_status"), allow_empty_string=True)
FILE_URL_RULE = FieldRule(
    "file_url",
    ("FileUrl", "fileUrl", "DownloadUrl", "file_url", "file_download_url", "DownloadPath"),
)
FILE_TOKEN_RULE = FieldRule(
    "file_token",
    ("file_name_download", "FileNameDownload", "fileNameDownload", "file_name", "FileName"),
)


def observe(body: Any) -> PollObservation:
    """Resolve one notify response body into a PollObservation."""
    data = body.get("Data") if isinstance(body, Mapping) else None
    if not isinstance(data, Mapping):
        data = {}
    file_url = FILE_URL_RULE.extract(data)
    file_token = FILE_TOKEN_RULE.extract(data)
    return PollObservation(
        status=STATUS_RULE.extract(data),
        file_url=str(file_url) if file_url is not None else None,
        file_token=str(file_token) if file_token is not None else None,
        raw=body,
    )


def is_done(status: Any) -> bool:
    if isinstance(status, bool):
        return False
    if isinstance(status, int):
        return status == DONE_STATUS
    if isinstance(status, str):
        return status.strip() == str(DONE_STATUS)
    return False


def build_request_headers(token: str, device: str, context: str, cookie: str | None = None) -> dict[str, str]:
    headers = {
        "Authorization": token,
        "X-Device": device,
        "X-MISA-Context": context,
        "Content-Type": "application/json",
        "Accept": "application/json",
    }
    if cookie:
        headers["Cookie"] = cookie
    return headers


def _binary_headers(headers: Mapping[str, str]) -> dict[str, str]:
    return {k: v for k, v in headers.items() if k.lower() != "content-type"}


def _response_body(response: requests.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


class ExportJobClient:
    """Drives queue -> poll -> download against one export service base URL."""

    def __init__(
        self,
        base_url: str,
        headers: Mapping[str, str],
        session: requests.Session | None = None,
        sleep: Callable[[float], None] = time.sleep,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.headers = dict(headers)
        self.session = session or requests.Session()
        self.sleep = sleep
        self.timeout = timeout

    def queue(self, request: ExportRequest) -> str:
        url = f"{self.base_url}{QUEUE_PATH}"
        response = self.session.post(url, json=request.to_payload(), headers=self.headers, timeout=self.timeout)
        response.raise_for_status()
        body = _response_body(response)
        data = body.get("Data") if isinstance(body, Mapping) else None
        export_id = data.get("export_id") if isinstance(data, Mapping) else None
        if not export_id:
            raise ExportQueueError("Export service did not return export_id", response_body=body)
        logger.info(f"queued export_id={export_id} state={JobState.QUEUED.value}")
        return str(export_id)

    def poll(self, export_id: str, max_attempts: int, interval_ms: int) -> PollResult:
        """Poll the notify endpoint until a file URL or the done status shows up.

        Raises:
            ValueError: export_id is empty (nothing was queued)
            ExportNotReadyError: loop ended without a file URL or download token
            requests.HTTPError: notify endpoint answered non-2xx
        """
        if not export_id:
            raise ValueError("export_id is required before polling")
        url = f"{self.base_url}{POLL_PATH.format(export_id=export_id)}"

        file_url: str | None = None
        file_token: str | None = None
        last_snapshot: Any = None
        attempts = 0
        state = JobState.QUEUED

        with PollProgress(max_attempts, description=f"export {export_id}") as progress:
            for attempt in range(1, max_attempts + 1):
                self.sleep(interval_ms / 1000.0)
                response = self.session.get(url, headers=self.headers, timeout=self.timeout)
                response.raise_for_status()
                attempts = attempt
                observation = observe(_response_body(response))
                last_snapshot = observation.raw
                if state is JobState.QUEUED:
                    state = JobState.PENDING
                    logger.debug(f"export_id={export_id} state={state.value}")

                # last non-null value wins across snapshots
                if observation.file_token is not None:
                    file_token = observation.file_token
                if observation.file_url is not None:
                    file_url = observation.file_url

                logger.debug(
                    f"poll#{attempt} status={observation.status if observation.status is not None else 'unknown'} "
                    f"url={file_url or ''} token={file_token or ''}"
                )
                progress.update(observation.status)

                if file_url:
                    state = JobState.READY
                    break
                if is_done(observation.status):
                    state = JobState.READY if file_token else JobState.FAILED
                    break
            else:
                state = JobState.READY if file_token else JobState.TIMED_OUT

        result = PollResult(
            file_url=file_url,
            file_token=file_token,
            last_snapshot=last_snapshot,
            attempts=attempts,
            state=state,
        )
        if not result.has_signal:
            raise ExportNotReadyError(
                "Export finished without providing a download URL.",
                last_snapshot=last_snapshot,
                attempts=attempts,
                state=state,
            )
        return result

    def resolve_download_candidates(
        self,
        file_url: str | None,
        file_token: str | None,
        db_id: str | None,
        out_file_name: str,
    ) -> list[DownloadCandidate]:
        headers = _binary_headers(self.headers)
        candidates: list[DownloadCandidate] = []
        if file_url:
            parts = urlsplit(file_url)
            if parts.scheme and parts.netloc:
                resolved = file_url
            else:
                resolved = f"{self.base_url}/{file_url[1:] if file_url.startswith('/') else file_url}"
            candidates.append(DownloadCandidate("GET", resolved, headers))
        if file_token:
            token = file_token[1:] if file_token.startswith("/") else file_token
            query = (
                f"type=Temp&file={quote(token, safe='')}"
                f"&dbid={quote(str(db_id or ''), safe='')}"
                f"&name={quote(out_file_name, safe='')}"
            )
            candidates.append(DownloadCandidate("GET", f"{self.base_url}{TEMP_DOWNLOAD_PATH}?{query}", headers))
            candidates.append(
                DownloadCandidate("GET", f"{self.base_url}{EXPORT_DOWNLOAD_PATH.format(token=token)}", headers)
            )
        return candidates

    def attempt_downloads(self, candidates: Iterable[DownloadCandidate]) -> DownloadOutcome:
        """Try each candidate in order; never raises for a failed candidate."""
        attempts: list[DownloadAttempt] = []
        for candidate in candidates:
            try:
                response = self.session.request(
                    candidate.method,
                    candidate.url,
                    headers=candidate.headers,
                    timeout=self.timeout,
                )
            except requests.RequestException as e:
                logger.warning(f"download failed url={candidate.url} error={e}")
                attempts.append(DownloadAttempt(url=candidate.url, status=None, error=str(e)))
                continue
            if not response.ok:
                logger.warning(f"download failed url={candidate.url} status={response.status_code}")
                attempts.append(DownloadAttempt(url=candidate.url, status=response.status_code))
                continue
            return DownloadOutcome(buffer=response.content, source_url=candidate.url, attempts=tuple(attempts))
        return DownloadOutcome(buffer=None, source_url=None, attempts=tuple(attempts))

    def download(self, candidates: Sequence[DownloadCandidate], last_snapshot: Any = None) -> DownloadOutcome:
        outcome = self.attempt_downloads(candidates)
        if not outcome.succeeded:
            raise ExportDownloadError(
                "Unable to download exported file from remote service.",
                attempts=outcome.attempts,
                last_snapshot=last_snapshot,
            )
        logger.info(f"downloaded {len(outcome.buffer or b'')} bytes from {outcome.source_url}")
        return outcome

    def run(
        self,
        request: ExportRequest,
        *,
        db_id: str | None,
        out_file_name: str,
        max_attempts: int,
        interval_ms: int,
    ) -> ExportRun:
        export_id = self.queue(request)
        poll = self.poll(export_id, max_attempts, interval_ms)
        candidates = self.resolve_download_candidates(poll.file_url, poll.file_token, db_id, out_file_name)
        outcome = self.download(candidates, last_snapshot=poll.last_snapshot)
        return ExportRun(export_id=export_id, poll=poll, outcome=outcome)
