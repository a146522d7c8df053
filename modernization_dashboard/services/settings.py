# [파일 설명]
# - 목적: 업스트림 현대화 서비스 주소와 폴링 정책을 환경 변수에서 읽는다.
# - 제공 기능: Settings 불변 구성 객체와 from_env 로더를 제공한다.
# - 입력/출력: os.environ을 읽어 Settings를 반환한다.
# - 주의 사항: 잘못된 숫자 값은 경고 후 기본값으로 대체한다.
# - 연관 모듈: job_client, app API, mcp_streamable_http에서 사용된다.
from __future__ import annotations

import logging
import os
from dataclasses import dataclass

logger = logging.getLogger(__name__)

DEFAULT_SUBMIT_URL = "http://localhost:5000/api/v1/modernize-demo"
DEFAULT_JOBS_URL = "http://localhost:3001"
DEFAULT_POLL_INTERVAL = 2.0
DEFAULT_POLL_MAX_WAIT = 900.0
DEFAULT_TRANSPORT_RETRIES = 0
DEFAULT_BACKOFF_BASE = 1.0
DEFAULT_BACKOFF_MAX = 30.0
DEFAULT_REQUEST_TIMEOUT = 30.0
DEFAULT_SQL_DIALECT = "postgres"


@dataclass(frozen=True)
class Settings:
    submit_url: str = DEFAULT_SUBMIT_URL
    jobs_url: str = DEFAULT_JOBS_URL
    poll_interval: float = DEFAULT_POLL_INTERVAL
    poll_max_wait: float | None = DEFAULT_POLL_MAX_WAIT
    poll_max_ticks: int | None = None
    transport_retries: int = DEFAULT_TRANSPORT_RETRIES
    backoff_base: float = DEFAULT_BACKOFF_BASE
    backoff_max: float = DEFAULT_BACKOFF_MAX
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    sql_dialect: str = DEFAULT_SQL_DIALECT

    def status_url(self, job_id: str) -> str:
        return f"{self.jobs_url.rstrip('/')}/status/{job_id}"

    def result_url(self, job_id: str) -> str:
        return f"{self.jobs_url.rstrip('/')}/result/{job_id}"

    @classmethod
    def from_env(cls) -> Settings:
        max_wait = _float_env("MODERNIZE_POLL_MAX_WAIT", DEFAULT_POLL_MAX_WAIT)
        max_ticks = _int_env("MODERNIZE_POLL_MAX_TICKS", 0)
        return cls(
            submit_url=os.getenv("MODERNIZE_SUBMIT_URL", "").strip() or DEFAULT_SUBMIT_URL,
            jobs_url=os.getenv("MODERNIZE_JOBS_URL", "").strip() or DEFAULT_JOBS_URL,
            poll_interval=_float_env("MODERNIZE_POLL_INTERVAL", DEFAULT_POLL_INTERVAL),
            poll_max_wait=max_wait if max_wait > 0 else None,
            poll_max_ticks=max_ticks if max_ticks > 0 else None,
            transport_retries=max(_int_env("MODERNIZE_TRANSPORT_RETRIES", DEFAULT_TRANSPORT_RETRIES), 0),
            backoff_base=_float_env("MODERNIZE_BACKOFF_BASE", DEFAULT_BACKOFF_BASE),
            backoff_max=_float_env("MODERNIZE_BACKOFF_MAX", DEFAULT_BACKOFF_MAX),
            request_timeout=_float_env("MODERNIZE_REQUEST_TIMEOUT", DEFAULT_REQUEST_TIMEOUT),
            sql_dialect=os.getenv("MODERNIZE_SQL_DIALECT", "").strip() or DEFAULT_SQL_DIALECT,
        )


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("settings: invalid %s=%r, using default %s", name, raw, default)
        return default


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("settings: invalid %s=%r, using default %s", name, raw, default)
        return default
