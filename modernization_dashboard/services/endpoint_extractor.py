# [파일 설명]
# - 목적: 생성된 라우트 등록 소스에서 HTTP 엔드포인트 목록을 추출한다.
# - 제공 기능: 고정 호출 패턴 인식, 기본 엔드포인트 대체, 필터/서비스 그룹화를 제공한다.
# - 입력/출력: 라우트 소스 문자열을 받아 Endpoint 목록을 반환한다.
# - 주의 사항: 인식 결과가 없으면 오류 대신 고정 대체 목록을 반환한다.
# - 연관 모듈: assembler 및 app API(/dashboard/endpoints)에서 사용된다.
from __future__ import annotations

import logging
import re
from collections.abc import Iterable

from modernization_dashboard.services.models import Endpoint, ServiceGroup
from modernization_dashboard.services.safe_text import summarize_text

logger = logging.getLogger(__name__)

HTTP_METHODS = ("GET", "POST", "PUT", "DELETE", "PATCH")
DEFAULT_RESPONSE = "JSON response"
GENERAL_SERVICE = "general"

ROUTE_PATTERN = re.compile(
    r"(?<![\w$])[A-Za-z_$][\w$]*\s*\.\s*(?P<method>get|post|put|delete|patch)\s*\(\s*"
    r"(?P<quote>['\"`])(?P<path>[^'\"`]+)(?P=quote)",
    re.IGNORECASE,
)

FALLBACK_ENDPOINTS: tuple[Endpoint, ...] = (
    Endpoint(
        method="GET",
        path="/api/data",
        description="Get all records",
        response="Array of records",
    ),
    Endpoint(
        method="GET",
        path="/api/data/:id",
        description="Get record by ID",
        parameters=("id",),
        response="Single record",
    ),
    Endpoint(
        method="POST",
        path="/api/data",
        description="Create new record",
        response="Created record",
    ),
)


def extract_endpoints(route_text: str | None) -> list[Endpoint]:
    route_text = route_text or ""
    summary = summarize_text(route_text)
    logger.info(
        "extract_endpoints: source_len=%s source_hash=%s",
        summary["len"],
        summary["sha256_8"],
    )

    endpoints: list[Endpoint] = []
    for match in ROUTE_PATTERN.finditer(route_text):
        method = match.group("method").upper()
        path = match.group("path")
        endpoints.append(
            Endpoint(
                method=method,
                path=path,
                description=f"{method} endpoint for {path}",
                parameters=(),
                response=DEFAULT_RESPONSE,
            )
        )

    if not endpoints:
        logger.info("extract_endpoints: no routes recognized, using fallback set")
        return list(FALLBACK_ENDPOINTS)

    logger.info("extract_endpoints: endpoints=%s", len(endpoints))
    return endpoints


def filter_endpoints(
    endpoints: Iterable[Endpoint],
    method: str | None = None,
    search: str | None = None,
) -> list[Endpoint]:
    wanted_method = method.upper() if method and method.lower() != "all" else None
    term = (search or "").lower()
    filtered: list[Endpoint] = []
    for endpoint in endpoints:
        if wanted_method and endpoint.method != wanted_method:
            continue
        if term and term not in endpoint.path.lower() and term not in endpoint.description.lower():
            continue
        filtered.append(endpoint)
    return filtered


def group_endpoints_by_service(endpoints: Iterable[Endpoint]) -> list[ServiceGroup]:
    # "/api/customers/{id}" belongs to the "customers" service.
    groups: dict[str, list[Endpoint]] = {}
    for endpoint in endpoints:
        segments = [segment for segment in endpoint.path.split("/") if segment]
        name = segments[1] if len(segments) > 1 else GENERAL_SERVICE
        groups.setdefault(name, []).append(endpoint)
    return [ServiceGroup(name=name, endpoints=tuple(items)) for name, items in groups.items()]
