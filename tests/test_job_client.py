# [파일 설명]
# - 목적: 작업 제출/폴링/결과 조회 생명주기와 실패 분류를 검증한다.
# - 제공 기능: httpx.MockTransport로 업스트림 응답 시퀀스를 재현한다.
# - 입력/출력: 고정 응답 시퀀스를 사용하며 요청 횟수와 예외 분류를 단언한다.
# - 주의 사항: 폴링 간격을 0으로 두어 실제 대기 없이 실행한다.
# - 연관 모듈: modernization_dashboard.services.job_client와 연동된다.
from __future__ import annotations

import asyncio
from collections import Counter
from dataclasses import replace

import httpx
import pytest

from modernization_dashboard.services.job_client import (
    CONNECTION_ERROR_MESSAGE,
    GENERIC_FAILURE_MESSAGE,
    CancelToken,
    ConnectionLostError,
    ErrorCategory,
    InputFile,
    JobCancelledError,
    JobFailedError,
    JobLifecycleClient,
    PollTimeoutError,
    SubmissionError,
    part_name_for,
)
from modernization_dashboard.services.models import ClientState, JobStatus
from modernization_dashboard.services.settings import Settings

SETTINGS = Settings(
    submit_url="http://upstream.test/api/v1/modernize-demo",
    jobs_url="http://jobs.test",
    poll_interval=0,
    poll_max_wait=None,
    transport_retries=0,
    backoff_base=0,
)

ASSETS = {
    "modernizationAssets": {
        "dbSchema": "CREATE TABLE t (a INT PRIMARY KEY);",
        "restApi": "router.get('/api/t', list);",
    },
    "parsedSchema": {"recordName": "T-RECORD", "fields": [{}]},
}

FILES = [InputFile(filename="CUSTOMER.cpy", content=b"01 CUSTOMER-RECORD.")]


class FakeUpstream:
    """Serves a scripted status sequence and counts every request path."""

    def __init__(self, statuses, *, submit=None, result=None) -> None:
        self.statuses = list(statuses)
        self.submit = submit or {"success": True, "jobId": "job-1"}
        self.result = result if result is not None else {"success": True, "result": ASSETS}
        self.calls: Counter[str] = Counter()
        self.order: list[str] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        kind = path.split("/")[1] if request.url.host == "jobs.test" else "submit"
        self.calls[kind] += 1
        self.order.append(kind)
        if kind == "submit":
            return httpx.Response(200, json=self.submit)
        if kind == "status":
            item = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
            if isinstance(item, httpx.Response):
                return item
            if isinstance(item, Exception):
                raise item
            return httpx.Response(200, json=item)
        if isinstance(self.result, httpx.Response):
            return self.result
        return httpx.Response(200, json=self.result)


def _client(upstream, settings: Settings = SETTINGS) -> JobLifecycleClient:
    return JobLifecycleClient(settings, transport=httpx.MockTransport(upstream))


async def _submit_and_poll(client: JobLifecycleClient, token: CancelToken | None = None):
    try:
        handle = await client.submit(FILES)
        return await client.poll(handle, token)
    finally:
        await client.aclose()


def test_part_name_for_extensions() -> None:
    assert part_name_for("CUSTOMER.cpy") == "copybook"
    assert part_name_for("customer.DAT") == "datafile"
    assert part_name_for("notes.txt") == "file"


def test_poll_completes_with_exactly_one_result_fetch() -> None:
    upstream = FakeUpstream(
        [
            {"status": "queued", "progress": 0},
            {"status": "running", "progress": 40, "logs": ["parsing copybook"]},
            {"status": "completed", "progress": 100},
        ]
    )
    client = _client(upstream)

    job = asyncio.run(_submit_and_poll(client))

    assert job.status is JobStatus.COMPLETED
    assert job.result.record_name == "T-RECORD"
    assert job.logs == ("parsing copybook",)
    assert upstream.calls["status"] == 3
    assert upstream.calls["result"] == 1
    assert upstream.order[-1] == "result"
    assert client.state is ClientState.COMPLETED


def test_submit_sends_named_multipart_parts() -> None:
    seen: list[bytes] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.content)
        return httpx.Response(200, json={"success": True, **ASSETS})

    files = [
        InputFile(filename="CUSTOMER.cpy", content=b"01 CUSTOMER-RECORD."),
        InputFile(filename="CUSTOMER.dat", content=b"0001JANE"),
    ]

    async def scenario():
        async with JobLifecycleClient(SETTINGS, transport=httpx.MockTransport(handler)) as client:
            return await client.submit(files), client.job

    handle, job = asyncio.run(scenario())

    assert b'name="copybook"; filename="CUSTOMER.cpy"' in seen[0]
    assert b'name="datafile"; filename="CUSTOMER.dat"' in seen[0]
    assert handle.result is not None
    assert job.status is JobStatus.COMPLETED


def test_run_with_synchronous_submission_skips_polling() -> None:
    upstream = FakeUpstream([{"status": "running"}], submit={"success": True, **ASSETS})

    async def scenario():
        async with _client(upstream) as client:
            return await client.run(FILES)

    model = asyncio.run(scenario())

    assert [table.name for table in model.schema.tables] == ["t"]
    assert model.endpoints[0].path == "/api/t"
    assert upstream.calls["status"] == 0
    assert upstream.calls["result"] == 0


def test_poll_failed_uses_server_error_message() -> None:
    upstream = FakeUpstream([{"status": "running"}, {"status": "failed", "error": "disk full"}])

    with pytest.raises(JobFailedError) as exc_info:
        asyncio.run(_submit_and_poll(_client(upstream)))

    assert exc_info.value.message == "disk full"
    assert exc_info.value.category is ErrorCategory.JOB_FAILED
    assert exc_info.value.job.status is JobStatus.FAILED
    assert upstream.calls["status"] == 2
    assert upstream.calls["result"] == 0


def test_poll_failed_without_error_uses_generic_message() -> None:
    upstream = FakeUpstream([{"status": "failed"}])

    with pytest.raises(JobFailedError) as exc_info:
        asyncio.run(_submit_and_poll(_client(upstream)))

    assert exc_info.value.message == GENERIC_FAILURE_MESSAGE


def test_submit_failures_raise_submission_error() -> None:
    rejected = FakeUpstream([{"status": "queued"}], submit={"success": False, "error": "bad copybook"})
    with pytest.raises(SubmissionError, match="bad copybook"):
        asyncio.run(_submit_and_poll(_client(rejected)))

    def server_error(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text="boom")

    client = JobLifecycleClient(SETTINGS, transport=httpx.MockTransport(server_error))
    with pytest.raises(SubmissionError, match="Server error: 500"):
        asyncio.run(_submit_and_poll(client))

    with pytest.raises(SubmissionError, match="No input files"):
        asyncio.run(_client(FakeUpstream([{"status": "queued"}])).submit([]))


def test_poll_connection_error_after_retries() -> None:
    settings = replace(SETTINGS, transport_retries=2)
    upstream = FakeUpstream([httpx.ConnectError("refused")])

    with pytest.raises(ConnectionLostError) as exc_info:
        asyncio.run(_submit_and_poll(_client(upstream, settings)))

    assert exc_info.value.message == CONNECTION_ERROR_MESSAGE
    assert upstream.calls["status"] == 3
    assert upstream.calls["result"] == 0


def test_poll_recovers_from_transient_status_error() -> None:
    settings = replace(SETTINGS, transport_retries=1)
    upstream = FakeUpstream([httpx.Response(502, text="bad gateway"), {"status": "completed"}])

    job = asyncio.run(_submit_and_poll(_client(upstream, settings)))

    assert job.status is JobStatus.COMPLETED
    assert upstream.calls["status"] == 2
    assert upstream.calls["result"] == 1


def test_poll_gives_up_after_max_ticks() -> None:
    settings = replace(SETTINGS, poll_max_ticks=3)
    upstream = FakeUpstream([{"status": "running", "progress": 10}])

    with pytest.raises(PollTimeoutError) as exc_info:
        asyncio.run(_submit_and_poll(_client(upstream, settings)))

    assert exc_info.value.category is ErrorCategory.TIMEOUT
    assert upstream.calls["status"] == 3


def test_poll_cancelled_before_first_tick_sends_no_status_request() -> None:
    upstream = FakeUpstream([{"status": "completed"}])

    async def scenario():
        token = CancelToken()
        token.cancel()
        return await _submit_and_poll(_client(upstream), token)

    with pytest.raises(JobCancelledError):
        asyncio.run(scenario())

    assert upstream.calls["status"] == 0
    assert upstream.calls["result"] == 0


def test_poll_clamps_progress_and_tolerates_unknown_status() -> None:
    upstream = FakeUpstream([{"status": "paused", "progress": 150}, {"status": "completed"}])

    job = asyncio.run(_submit_and_poll(_client(upstream)))

    assert job.progress == 100
    assert job.status is JobStatus.COMPLETED
    assert upstream.calls["status"] == 2


def test_new_submission_supersedes_previous_watcher() -> None:
    submissions = iter(["job-1", "job-2"])
    status_calls: Counter[str] = Counter()

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host != "jobs.test":
            return httpx.Response(200, json={"success": True, "jobId": next(submissions)})
        kind, job_id = request.url.path.strip("/").split("/")
        if kind == "status":
            status_calls[job_id] += 1
            state = "running" if job_id == "job-1" else "completed"
            return httpx.Response(200, json={"status": state})
        return httpx.Response(200, json={"result": ASSETS})

    settings = replace(SETTINGS, poll_interval=0.01)

    async def scenario():
        async with JobLifecycleClient(settings, transport=httpx.MockTransport(handler)) as client:
            first = await client.submit(FILES)
            watcher = client.watch(first)
            await asyncio.sleep(0.05)
            second = await client.submit(FILES)
            job = await client.poll(second)
            with pytest.raises(JobCancelledError):
                await watcher
            return job, client.job

    job, current = asyncio.run(scenario())

    assert job.id == "job-2"
    assert current.id == "job-2"
    assert current.status is JobStatus.COMPLETED
    assert status_calls["job-1"] >= 1
    assert status_calls["job-2"] == 1


def test_result_fetch_is_sent_once_and_not_recorded_on_failure() -> None:
    settings = Settings(
        submit_url="http://upstream.test/api/v1/modernize-demo",
        jobs_url="http://jobs.test",
        poll_interval=0,
        backoff_base=0,
    )
    upstream = FakeUpstream(
        [{"status": "running"}, {"status": "completed"}],
        result=httpx.Response(503, text="unavailable"),
    )
    client = _client(upstream, settings)

    with pytest.raises(ConnectionLostError):
        asyncio.run(_submit_and_poll(client))

    assert settings.transport_retries == 0
    assert upstream.calls["result"] == 1
    assert client.state is ClientState.RUNNING
    assert client.job.result is None


def test_result_fetch_is_not_retried_even_with_status_retries() -> None:
    upstream = FakeUpstream([{"status": "completed"}], result=httpx.Response(503, text="unavailable"))

    with pytest.raises(ConnectionLostError):
        asyncio.run(_submit_and_poll(_client(upstream, replace(SETTINGS, transport_retries=2))))

    assert upstream.calls["result"] == 1


def test_cancel_while_completed_status_in_flight_still_fetches_result() -> None:
    upstream = FakeUpstream([{"status": "completed"}])
    tokens: list[CancelToken] = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.startswith("/status/"):
            tokens[0].cancel()
        return upstream(request)

    async def scenario():
        tokens.append(CancelToken())
        async with JobLifecycleClient(SETTINGS, transport=httpx.MockTransport(handler)) as client:
            handle = await client.submit(FILES)
            first = await client.poll(handle, tokens[0])
            again = await client.poll(handle)
            return first, again, client.state

    first, again, state = asyncio.run(scenario())

    assert first.status is JobStatus.COMPLETED
    assert first.result is not None
    assert again == first
    assert state is ClientState.COMPLETED
    assert upstream.calls["status"] == 1
    assert upstream.calls["result"] == 1


def test_aclose_collects_cancelled_watcher() -> None:
    upstream = FakeUpstream([{"status": "running"}])

    async def scenario():
        client = _client(upstream, replace(SETTINGS, poll_interval=0.01))
        handle = await client.submit(FILES)
        watcher = client.watch(handle)
        await asyncio.sleep(0.03)
        await client.aclose()
        return watcher

    watcher = asyncio.run(scenario())

    assert watcher.done()
    assert isinstance(watcher.exception(), JobCancelledError)
