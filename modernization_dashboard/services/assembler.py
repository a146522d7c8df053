# [파일 설명]
# - 목적: 작업 결과 페이로드를 대시보드가 소비하는 단일 모델로 조립한다.
# - 제공 기능: 스키마/엔드포인트 추출 실행, 기본 메타데이터 채우기, 파생 지표 계산을 제공한다.
# - 입력/출력: ResultPayload를 받아 DashboardModel을 반환한다.
# - 주의 사항: 텍스트 필드가 없어도 실패하지 않고 빈 스키마/대체 엔드포인트를 사용한다.
# - 연관 모듈: schema_parser, endpoint_extractor, job_client, app API와 연동된다.
from __future__ import annotations

import logging
from typing import Any

from modernization_dashboard.services.endpoint_extractor import (
    extract_endpoints,
    group_endpoints_by_service,
)
from modernization_dashboard.services.models import DashboardModel, ResultPayload, Schema
from modernization_dashboard.services.schema_parser import DEFAULT_DIALECT, parse_schema

logger = logging.getLogger(__name__)

DEFAULT_SECURITY: dict[str, Any] = {
    "authentication": "JWT",
    "authorization": "RBAC",
    "rateLimiting": "100 requests per minute",
}
DEFAULT_ARCHITECTURE: dict[str, Any] = {
    "pattern": "Microservices",
    "framework": "Node.js/Express",
    "database": "PostgreSQL",
}
DEFAULT_SUMMARY = "Legacy system modernization completed successfully."
DEFAULT_RECORD_NAME = "COBOL"
DEFAULT_MANUAL_TIMELINE = "3-4 months"
DEFAULT_AUTOMATED_TIMELINE = "2-3 weeks"
DEFAULT_RISKS = (
    "Data migration complexity",
    "Integration challenges",
    "Performance optimization",
)
LINES_PER_FIELD = 10
DEFAULT_LINES_OF_CODE = 100
DEFAULT_DEPENDENCIES = 5


def assemble(payload: ResultPayload | None, dialect: str | None = DEFAULT_DIALECT) -> DashboardModel:
    payload = payload or ResultPayload()

    schema = parse_schema(payload.sql_text, dialect) if payload.sql_text else Schema()
    endpoints = tuple(extract_endpoints(payload.route_text))

    metrics = {
        "table_count": len(schema.tables),
        "column_count": schema.column_count,
        "relationship_count": schema.relationship_count,
        "dangling_relationship_count": len(schema.dangling_relationships()),
        "endpoint_count": len(endpoints),
        "field_count": payload.field_count or 0,
        "lines_of_code": _lines_of_code(payload.field_count),
        "dependencies": payload.field_count or DEFAULT_DEPENDENCIES,
    }
    logger.info(
        "assemble: tables=%s endpoints=%s relationships=%s",
        metrics["table_count"],
        metrics["endpoint_count"],
        metrics["relationship_count"],
    )

    return DashboardModel(
        schema=schema,
        endpoints=endpoints,
        security=_with_defaults(payload.security, DEFAULT_SECURITY),
        architecture=_with_defaults(payload.architecture, DEFAULT_ARCHITECTURE),
        metrics=metrics,
        service_groups=tuple(group_endpoints_by_service(endpoints)),
        documentation=_documentation(payload),
        models=payload.microservices,
        raw_data=payload.json_data,
        microservice_diagram=payload.microservice_diagram,
    )


def _with_defaults(values: dict[str, Any] | None, defaults: dict[str, Any]) -> dict[str, Any]:
    merged = dict(defaults)
    merged.update(values or {})
    return merged


def _lines_of_code(field_count: int | None) -> int:
    if field_count:
        return field_count * LINES_PER_FIELD
    return DEFAULT_LINES_OF_CODE


def _documentation(payload: ResultPayload) -> dict[str, Any]:
    insight = payload.insight_engine or {}
    manual = insight.get("manualEffort") if isinstance(insight.get("manualEffort"), dict) else {}
    automated = insight.get("automatedTool") if isinstance(insight.get("automatedTool"), dict) else {}
    summary = insight.get("summary") if isinstance(insight.get("summary"), str) else None
    record_name = payload.record_name or DEFAULT_RECORD_NAME
    return {
        "summary": summary or DEFAULT_SUMMARY,
        "technical_details": f"Transformed {record_name} structure into modern architecture.",
        "migration_plan": (
            f"Estimated effort: {manual.get('timeline') or DEFAULT_MANUAL_TIMELINE} manual vs "
            f"{automated.get('time') or DEFAULT_AUTOMATED_TIMELINE} automated."
        ),
        "risks": list(DEFAULT_RISKS),
    }
