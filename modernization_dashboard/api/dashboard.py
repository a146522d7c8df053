# [파일 설명]
# - 목적: 대시보드 API 라우트를 정의하고 요청/응답 모델을 제공한다.
# - 제공 기능: 스키마 추출, 엔드포인트 추출, 대시보드 조립/내보내기, 현대화 작업 실행을 제공한다.
# - 입력/출력: Pydantic 모델로 요청을 수신하고 표준화된 응답 구조를 반환한다.
# - 주의 사항: 원문 DDL/라우트 텍스트는 로깅에 직접 노출하지 않는다.
# - 연관 모듈: modernization_dashboard.services.* 서비스들과 연결된다.
from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from typing import Any

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from fastapi.responses import Response
from pydantic import BaseModel, ConfigDict, Field, field_validator

from modernization_dashboard.services.assembler import assemble
from modernization_dashboard.services.endpoint_extractor import (
    HTTP_METHODS,
    extract_endpoints,
    filter_endpoints,
    group_endpoints_by_service,
)
from modernization_dashboard.services.export import dashboard_to_document, dashboard_to_json
from modernization_dashboard.services.job_client import (
    ErrorCategory,
    InputFile,
    JobClientError,
    JobLifecycleClient,
)
from modernization_dashboard.services.models import Endpoint, ResultPayload, Schema, Table
from modernization_dashboard.services.schema_parser import DEFAULT_DIALECT, analyze_schema
from modernization_dashboard.services.settings import Settings

logger = logging.getLogger(__name__)

router = APIRouter()

EXPORT_FILENAME = "modernization-dashboard.json"

ERROR_STATUS = {
    ErrorCategory.SUBMISSION: 502,
    ErrorCategory.JOB_FAILED: 422,
    ErrorCategory.CONNECTION: 503,
    ErrorCategory.TIMEOUT: 504,
    ErrorCategory.CANCELLED: 409,
}


# [클래스 설명]
# - 역할: DDL 스키마 추출 요청 모델을 정의한다.
# - 사용 위치: POST /dashboard/schema 요청 본문에서 사용된다.
# - 핵심 동작: 빈 문자열도 허용하며 빈 스키마로 처리된다.
# - 제약/주의: dialect는 sqlglot 토크나이저 이름을 따른다.
class SchemaRequest(BaseModel):
    sql: str = ""
    dialect: str = DEFAULT_DIALECT


class ColumnModel(BaseModel):
    name: str
    type: str
    is_primary: bool
    is_not_null: bool
    is_unique: bool
    has_default: bool


class RelationshipModel(BaseModel):
    from_column: str
    to_table: str
    to_column: str


class TableModel(BaseModel):
    name: str
    columns: list[ColumnModel]
    relationships: list[RelationshipModel]


class DanglingRelationship(BaseModel):
    table: str
    from_column: str
    to_table: str
    to_column: str


# [클래스 설명]
# - 역할: 스키마 추출 결과 응답 모델을 정의한다.
# - 사용 위치: POST /dashboard/schema 응답에서 사용된다.
# - 핵심 동작: 테이블 목록과 대상이 없는 관계, 추출 경고를 함께 반환한다.
# - 제약/주의: errors는 실패가 아니라 대체 경로 사용 기록이다.
class SchemaResponse(BaseModel):
    tables: list[TableModel]
    dangling_relationships: list[DanglingRelationship]
    errors: list[str]


class EndpointsRequest(BaseModel):
    source: str = ""
    method: str | None = None
    search: str | None = None

    @field_validator("method")
    @classmethod
    def _check_method(cls, value: str | None) -> str | None:
        if value is None or value.lower() == "all":
            return value
        if value.upper() not in HTTP_METHODS:
            raise ValueError(f"method must be one of {', '.join(HTTP_METHODS)} or 'all'")
        return value.upper()


class EndpointModel(BaseModel):
    method: str
    path: str
    description: str
    parameters: list[str]
    response: str
    body: str | None = None


class ServiceGroupModel(BaseModel):
    name: str
    endpoints: list[EndpointModel]


class EndpointsResponse(BaseModel):
    total: int
    endpoints: list[EndpointModel]
    service_groups: list[ServiceGroupModel]


# [클래스 설명]
# - 역할: 현대화 결과 본문(modernizationAssets + parsedSchema)을 표현한다.
# - 사용 위치: POST /dashboard/assemble, /dashboard/export 요청 본문에서 사용된다.
# - 핵심 동작: 업스트림 결과 응답 형태를 그대로 받아 ResultPayload로 변환한다.
# - 제약/주의: 알 수 없는 추가 키는 거부하지 않고 무시한다.
class AssembleRequest(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    modernization_assets: dict[str, Any] = Field(default_factory=dict, alias="modernizationAssets")
    parsed_schema: dict[str, Any] | None = Field(default=None, alias="parsedSchema")
    dialect: str = DEFAULT_DIALECT

    def to_payload(self) -> ResultPayload:
        return ResultPayload.from_response(
            {
                "modernizationAssets": self.modernization_assets,
                "parsedSchema": self.parsed_schema or {},
            }
        )


def get_job_client() -> JobLifecycleClient:
    return JobLifecycleClient(Settings.from_env())


async def job_client_dependency(
    client: JobLifecycleClient = Depends(get_job_client),
) -> AsyncIterator[JobLifecycleClient]:
    try:
        yield client
    finally:
        await client.aclose()


@router.post("/schema", response_model=SchemaResponse)
def extract_schema(request: SchemaRequest) -> SchemaResponse:
    analysis = analyze_schema(request.sql, request.dialect)
    schema: Schema = analysis["schema"]
    return SchemaResponse(
        tables=[_table_model(table) for table in schema.tables],
        dangling_relationships=[
            DanglingRelationship(
                table=table_name,
                from_column=relationship.from_column,
                to_table=relationship.to_table,
                to_column=relationship.to_column,
            )
            for table_name, relationship in schema.dangling_relationships()
        ],
        errors=list(analysis["errors"]),
    )


@router.post("/endpoints", response_model=EndpointsResponse)
def extract_routes(request: EndpointsRequest) -> EndpointsResponse:
    endpoints = filter_endpoints(extract_endpoints(request.source), request.method, request.search)
    return EndpointsResponse(
        total=len(endpoints),
        endpoints=[_endpoint_model(endpoint) for endpoint in endpoints],
        service_groups=[
            ServiceGroupModel(
                name=group.name,
                endpoints=[_endpoint_model(endpoint) for endpoint in group.endpoints],
            )
            for group in group_endpoints_by_service(endpoints)
        ],
    )


@router.post("/assemble")
def assemble_dashboard(request: AssembleRequest) -> dict[str, Any]:
    return dashboard_to_document(assemble(request.to_payload(), request.dialect))


@router.post("/export")
def export_dashboard_document(request: AssembleRequest) -> Response:
    model = assemble(request.to_payload(), request.dialect)
    return Response(
        content=dashboard_to_json(model),
        media_type="application/json",
        headers={"Content-Disposition": f'attachment; filename="{EXPORT_FILENAME}"'},
    )


# [함수 설명]
# - 목적: 업로드 파일을 업스트림 현대화 서비스에 제출하고 결과 대시보드를 반환한다.
# - 입력: multipart 파일 목록 (.cpy → copybook, .dat → datafile, 그 외 file)
# - 출력: 조립된 대시보드 문서
# - 에러 처리: JobClientError 분류에 따라 502/422/503/504/409로 응답한다.
# - 결정론: 업스트림 결과가 같으면 동일 문서를 반환한다.
# - 보안: 파일 내용은 로그에 남기지 않고 파일 수만 기록한다.
@router.post("/modernize")
async def modernize(
    files: list[UploadFile] = File(...),
    client: JobLifecycleClient = Depends(job_client_dependency),
) -> dict[str, Any]:
    inputs = [
        InputFile(
            filename=upload.filename or "upload",
            content=await upload.read(),
            content_type=upload.content_type or "application/octet-stream",
        )
        for upload in files
    ]
    logger.info("modernize: files=%s", len(inputs))
    try:
        model = await client.run(inputs)
    except JobClientError as exc:
        logger.warning("modernize: category=%s message=%s", exc.category.value, exc.message)
        raise HTTPException(
            status_code=ERROR_STATUS[exc.category],
            detail={"category": exc.category.value, "message": exc.message},
        ) from exc
    return dashboard_to_document(model)


def _table_model(table: Table) -> TableModel:
    return TableModel(
        name=table.name,
        columns=[
            ColumnModel(
                name=column.name,
                type=column.type,
                is_primary=column.is_primary,
                is_not_null=column.is_not_null,
                is_unique=column.is_unique,
                has_default=column.has_default,
            )
            for column in table.columns
        ],
        relationships=[
            RelationshipModel(
                from_column=relationship.from_column,
                to_table=relationship.to_table,
                to_column=relationship.to_column,
            )
            for relationship in table.relationships
        ],
    )


def _endpoint_model(endpoint: Endpoint) -> EndpointModel:
    return EndpointModel(
        method=endpoint.method,
        path=endpoint.path,
        description=endpoint.description,
        parameters=list(endpoint.parameters),
        response=endpoint.response,
        body=endpoint.body,
    )
