# [파일 설명]
# - 목적: 외부 현대화 작업의 제출/폴링/결과 조회 생명주기를 관리한다.
# - 제공 기능: multipart 제출, 고정 주기 상태 폴링, 결과 조회, 실패 분류, 취소/대체를 제공한다.
# - 입력/출력: 입력 파일을 받아 JobHandle/Job/DashboardModel을 반환한다.
# - 주의 사항: 종료 상태(completed/failed) 이후에는 어떤 폴링 요청도 보내지 않는다.
# - 연관 모듈: settings, models, assembler 및 app API(/dashboard/modernize)와 연동된다.
from __future__ import annotations

import asyncio
import logging
import mimetypes
from collections.abc import Sequence
from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path
from typing import Any
from uuid import uuid4

import httpx

from modernization_dashboard.services.assembler import assemble
from modernization_dashboard.services.models import (
    ClientState,
    DashboardModel,
    Job,
    JobHandle,
    JobStatus,
    ResultPayload,
)
from modernization_dashboard.services.settings import Settings

logger = logging.getLogger(__name__)

GENERIC_FAILURE_MESSAGE = "Processing failed. Please try again."
CONNECTION_ERROR_MESSAGE = "Connection error. Please check if the server is running."
SUBMISSION_FAILURE_MESSAGE = "Modernization failed"

PART_NAMES = {".cpy": "copybook", ".dat": "datafile"}
DEFAULT_PART_NAME = "file"


class ErrorCategory(str, Enum):
    SUBMISSION = "submission"
    JOB_FAILED = "job_failed"
    CONNECTION = "connection"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"


class JobClientError(Exception):
    category = ErrorCategory.SUBMISSION

    def __init__(self, message: str, *, job: Job | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.job = job


class SubmissionError(JobClientError):
    category = ErrorCategory.SUBMISSION


class JobFailedError(JobClientError):
    category = ErrorCategory.JOB_FAILED


class ConnectionLostError(JobClientError):
    category = ErrorCategory.CONNECTION


class PollTimeoutError(JobClientError):
    category = ErrorCategory.TIMEOUT


class JobCancelledError(JobClientError):
    category = ErrorCategory.CANCELLED


class CancelToken:
    """Caller-owned cancellation flag for one polling loop."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    async def sleep(self, delay: float) -> bool:
        """Wait ``delay`` seconds; return True if cancelled meanwhile."""
        if self.cancelled:
            return True
        if delay <= 0:
            await asyncio.sleep(0)
            return self.cancelled
        try:
            await asyncio.wait_for(self._event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return False
        return True


@dataclass(frozen=True)
class InputFile:
    filename: str
    content: bytes
    content_type: str = "application/octet-stream"

    @classmethod
    def from_path(cls, path: str | Path) -> InputFile:
        path = Path(path)
        content_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
        return cls(filename=path.name, content=path.read_bytes(), content_type=content_type)


def part_name_for(filename: str) -> str:
    return PART_NAMES.get(Path(filename.lower()).suffix, DEFAULT_PART_NAME)


class JobLifecycleClient:
    """Drives one modernization job from submission to a terminal state.

    Lifecycle: ``idle -> submitted -> queued/running -> completed | failed``.
    A client tracks at most one job; submitting or watching again stops the
    previous polling loop on the client side only (the upstream exposes no
    cancel endpoint, so nothing is sent to it).
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.settings = settings or Settings.from_env()
        self._transport = transport
        self._http = http_client
        self._owns_http = http_client is None
        self._state = ClientState.IDLE
        self._job: Job | None = None
        self._active_job_id: str | None = None
        self._active_token: CancelToken | None = None
        self._active_task: asyncio.Task[Job] | None = None

    async def __aenter__(self) -> JobLifecycleClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    @property
    def state(self) -> ClientState:
        return self._state

    @property
    def job(self) -> Job | None:
        return self._job

    async def aclose(self) -> None:
        self.cancel()
        task, self._active_task = self._active_task, None
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)
        if self._owns_http and self._http is not None:
            await self._http.aclose()
            self._http = None

    def cancel(self) -> None:
        if self._active_token is not None:
            logger.info("cancel: job=%s", self._active_job_id)
            self._active_token.cancel()

    async def submit(self, files: Sequence[InputFile]) -> JobHandle:
        if not files:
            raise SubmissionError("No input files to submit.")
        self._supersede()

        parts = [
            (part_name_for(item.filename), (item.filename, item.content, item.content_type))
            for item in files
        ]
        logger.info("submit: files=%s parts=%s", len(parts), [name for name, _ in parts])
        try:
            response = await self._client().post(self.settings.submit_url, files=parts)
        except httpx.HTTPError as exc:
            raise SubmissionError(f"Upload failed: {exc}") from exc
        if response.is_error:
            raise SubmissionError(f"Server error: {response.status_code} - {response.text}")

        body = _json_object(response)
        if body is None:
            raise SubmissionError("Upload failed: response was not a JSON object")
        if body.get("success") is False:
            raise SubmissionError(str(body.get("error") or SUBMISSION_FAILURE_MESSAGE))

        job_id = body.get("jobId") or body.get("job_id")
        if isinstance(body.get("modernizationAssets"), dict):
            result = ResultPayload.from_response(body)
            handle = JobHandle(job_id=str(job_id or uuid4().hex), result=result)
            self._active_job_id = handle.job_id
            job = Job(id=handle.job_id, status=JobStatus.COMPLETED, progress=100, result=result)
            self._record(job, ClientState.COMPLETED)
            logger.info("submit: job=%s completed synchronously", handle.job_id)
            return handle
        if not job_id:
            raise SubmissionError("Upload failed: response carried neither a job id nor results")

        handle = JobHandle(job_id=str(job_id))
        self._active_job_id = handle.job_id
        self._record(Job(id=handle.job_id), ClientState.SUBMITTED)
        logger.info("submit: job=%s accepted", handle.job_id)
        return handle

    def watch(self, handle: JobHandle, cancel_token: CancelToken | None = None) -> asyncio.Task[Job]:
        token = cancel_token or CancelToken()
        self._activate(token)
        self._active_job_id = handle.job_id
        task = asyncio.create_task(self.poll(handle, token))
        task.add_done_callback(_collect_cancellation)
        self._active_task = task
        return task

    async def poll(self, handle: JobHandle, cancel_token: CancelToken | None = None) -> Job:
        token = cancel_token or CancelToken()
        self._activate(token)
        self._active_job_id = handle.job_id
        try:
            return await self._poll_until_terminal(handle, token)
        finally:
            if self._active_token is token:
                self._active_token = None

    async def run(self, files: Sequence[InputFile], cancel_token: CancelToken | None = None) -> DashboardModel:
        handle = await self.submit(files)
        job = await self.poll(handle, cancel_token)
        return assemble(job.result, self.settings.sql_dialect)

    async def _poll_until_terminal(self, handle: JobHandle, token: CancelToken) -> Job:
        job = self._job if self._job is not None and self._job.id == handle.job_id else Job(id=handle.job_id)
        if handle.result is not None and job.result is None:
            job = Job(id=handle.job_id, status=JobStatus.COMPLETED, progress=100, result=handle.result)
            self._record(job, ClientState.COMPLETED)
        if job.status is JobStatus.COMPLETED and job.result is not None:
            return job
        if job.status is JobStatus.FAILED:
            raise JobFailedError(job.error or GENERIC_FAILURE_MESSAGE, job=job)

        loop = asyncio.get_running_loop()
        max_wait = self.settings.poll_max_wait
        deadline = loop.time() + max_wait if max_wait else None
        max_ticks = self.settings.poll_max_ticks
        ticks = 0

        while True:
            if await token.sleep(self.settings.poll_interval):
                raise self._cancelled(job)
            if (deadline is not None and loop.time() >= deadline) or (
                max_ticks is not None and ticks >= max_ticks
            ):
                logger.warning("poll: job=%s gave up after ticks=%s", job.id, ticks)
                raise PollTimeoutError(
                    f"Job {job.id} did not finish within the polling limit.",
                    job=job,
                )

            ticks += 1
            body = await self._get_json(
                self.settings.status_url(job.id), token, job, self.settings.transport_retries
            )
            job = _apply_status(job, body)
            logger.info(
                "poll: job=%s tick=%s status=%s progress=%s",
                job.id,
                ticks,
                job.status.value,
                job.progress,
            )

            # completed is recorded only once the single result fetch has succeeded.
            if job.status is JobStatus.COMPLETED:
                result_body = await self._get_json(self.settings.result_url(job.id), token, job, 0)
                job = replace(job, result=ResultPayload.from_response(result_body))
                self._record(job, ClientState.COMPLETED)
                return job

            self._record(job, ClientState(job.status.value))
            if job.status is JobStatus.FAILED:
                raise JobFailedError(job.error or GENERIC_FAILURE_MESSAGE, job=job)
            if token.cancelled:
                raise self._cancelled(job)

    async def _get_json(self, url: str, token: CancelToken, job: Job, retries: int) -> dict[str, Any]:
        attempt = 0
        while True:
            try:
                response = await self._client().get(url)
                response.raise_for_status()
                body = response.json()
                if not isinstance(body, dict):
                    raise ValueError("expected a JSON object")
                return body
            except (httpx.HTTPError, ValueError) as exc:
                if attempt >= retries:
                    logger.warning("poll: job=%s connection error after attempts=%s: %s", job.id, attempt + 1, exc)
                    raise ConnectionLostError(CONNECTION_ERROR_MESSAGE, job=job) from exc
                delay = min(self.settings.backoff_base * (2**attempt), self.settings.backoff_max)
                attempt += 1
                logger.warning("poll: job=%s transport error, retry=%s in %.1fs: %s", job.id, attempt, delay, exc)
                if await token.sleep(delay):
                    raise self._cancelled(job) from exc

    def _client(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(
                transport=self._transport,
                timeout=self.settings.request_timeout,
            )
        return self._http

    def _activate(self, token: CancelToken) -> None:
        if self._active_token is not None and self._active_token is not token:
            self._active_token.cancel()
        self._active_token = token

    def _supersede(self) -> None:
        if self._active_token is not None:
            logger.info("supersede: stopping watcher for job=%s", self._active_job_id)
            self._active_token.cancel()
        self._active_token = None
        self._active_task = None
        self._active_job_id = None
        self._job = None
        self._state = ClientState.IDLE

    def _record(self, job: Job, state: ClientState) -> None:
        # A superseded loop may still hold a response; it must not overwrite the new job.
        if job.id != self._active_job_id:
            return
        self._job = job
        self._state = state

    def _cancelled(self, job: Job) -> JobCancelledError:
        logger.info("poll: job=%s cancelled", job.id)
        return JobCancelledError(f"Polling for job {job.id} was cancelled.", job=job)


def _apply_status(job: Job, body: dict[str, Any]) -> Job:
    raw_status = str(body.get("status") or "").lower()
    try:
        status = JobStatus(raw_status)
    except ValueError:
        logger.warning("poll: job=%s unknown status=%r, keeping %s", job.id, raw_status, job.status.value)
        status = job.status

    progress = job.progress
    raw_progress = body.get("progress")
    if isinstance(raw_progress, (int, float)) and not isinstance(raw_progress, bool):
        progress = max(0, min(100, int(raw_progress)))

    logs = job.logs
    if isinstance(body.get("logs"), list):
        logs = tuple(str(line) for line in body["logs"])

    error = body.get("error") if isinstance(body.get("error"), str) and body.get("error") else None
    if status is JobStatus.FAILED and not error:
        error = GENERIC_FAILURE_MESSAGE
    return replace(job, status=status, progress=progress, logs=logs, error=error)


def _json_object(response: httpx.Response) -> dict[str, Any] | None:
    try:
        body = response.json()
    except ValueError:
        return None
    if not isinstance(body, dict):
        return None
    return body


def _collect_cancellation(task: asyncio.Task[Job]) -> None:
    # A superseded watcher ends with JobCancelledError that nobody awaits.
    if task.cancelled():
        return
    if isinstance(task.exception(), JobCancelledError):
        logger.debug("watch: superseded watcher finished")
