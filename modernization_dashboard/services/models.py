# [파일 설명]
# - 목적: 스키마/엔드포인트/작업/대시보드 도메인 값을 정의한다.
# - 제공 기능: 불변 dataclass와 상태 enum, 결과 페이로드 파싱을 제공한다.
# - 입력/출력: 파서와 클라이언트가 생성하고 조립기/API가 소비한다.
# - 주의 사항: 모든 값은 생성 후 변경하지 않으며, 변경이 필요하면 새 값으로 교체한다.
# - 연관 모듈: schema_parser, endpoint_extractor, assembler, job_client와 연동된다.
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


@dataclass(frozen=True)
class Column:
    name: str
    type: str
    is_primary: bool = False
    is_not_null: bool = False
    is_unique: bool = False
    has_default: bool = False


@dataclass(frozen=True)
class Relationship:
    from_column: str
    to_table: str
    to_column: str


@dataclass(frozen=True)
class Table:
    name: str
    columns: tuple[Column, ...] = ()
    relationships: tuple[Relationship, ...] = ()

    def column(self, name: str) -> Column | None:
        for column in self.columns:
            if column.name.lower() == name.lower():
                return column
        return None


@dataclass(frozen=True)
class Schema:
    tables: tuple[Table, ...] = ()

    # Duplicate names are all kept; lookup by name is last-wins.
    def table(self, name: str) -> Table | None:
        found = None
        for table in self.tables:
            if table.name.lower() == name.lower():
                found = table
        return found

    def dangling_relationships(self) -> list[tuple[str, Relationship]]:
        names = {table.name.lower() for table in self.tables}
        dangling: list[tuple[str, Relationship]] = []
        for table in self.tables:
            for relationship in table.relationships:
                if relationship.to_table.lower() not in names:
                    dangling.append((table.name, relationship))
        return dangling

    @property
    def column_count(self) -> int:
        return sum(len(table.columns) for table in self.tables)

    @property
    def relationship_count(self) -> int:
        return sum(len(table.relationships) for table in self.tables)


@dataclass(frozen=True)
class Endpoint:
    method: str
    path: str
    description: str
    parameters: tuple[str, ...] = ()
    response: str = "JSON response"
    body: str | None = None


@dataclass(frozen=True)
class ServiceGroup:
    name: str
    endpoints: tuple[Endpoint, ...] = ()


class JobStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


class ClientState(str, Enum):
    IDLE = "idle"
    SUBMITTED = "submitted"
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class ResultPayload:
    sql_text: str | None = None
    route_text: str | None = None
    record_name: str | None = None
    field_count: int | None = None
    microservices: tuple[Any, ...] = ()
    security: dict[str, Any] | None = None
    architecture: dict[str, Any] | None = None
    insight_engine: dict[str, Any] | None = None
    json_data: Any = None
    microservice_diagram: Any = None

    @classmethod
    def from_response(cls, body: dict[str, Any]) -> ResultPayload:
        """Build a payload from a submission or result response body.

        Accepts the result endpoint wrapper (``{"result": {...}}``), a bare
        ``{"modernizationAssets": ..., "parsedSchema": ...}`` object, or the
        assets object itself.
        """
        if isinstance(body.get("result"), dict):
            body = body["result"]
        assets = body.get("modernizationAssets")
        if not isinstance(assets, dict):
            assets = body
        parsed_schema = body.get("parsedSchema")
        if not isinstance(parsed_schema, dict):
            parsed_schema = {}

        fields = parsed_schema.get("fields")
        field_count: int | None = None
        if isinstance(fields, list):
            field_count = len(fields)
        elif isinstance(parsed_schema.get("fieldCount"), int):
            field_count = parsed_schema["fieldCount"]

        microservices = assets.get("microservices")
        return cls(
            sql_text=_text_or_none(assets.get("dbSchema")),
            route_text=_text_or_none(assets.get("restApi")),
            record_name=_text_or_none(parsed_schema.get("recordName")),
            field_count=field_count,
            microservices=tuple(microservices) if isinstance(microservices, list) else (),
            security=_dict_or_none(assets.get("security")),
            architecture=_dict_or_none(assets.get("architecture")),
            insight_engine=_dict_or_none(assets.get("insightEngine")),
            json_data=assets.get("jsonData"),
            microservice_diagram=assets.get("microserviceDiagram"),
        )


@dataclass(frozen=True)
class Job:
    id: str
    status: JobStatus = JobStatus.QUEUED
    progress: int | None = None
    logs: tuple[str, ...] = ()
    error: str | None = None
    result: ResultPayload | None = None


@dataclass(frozen=True)
class JobHandle:
    job_id: str
    result: ResultPayload | None = None


@dataclass(frozen=True)
class DashboardModel:
    schema: Schema
    endpoints: tuple[Endpoint, ...]
    security: dict[str, Any] = field(default_factory=dict)
    architecture: dict[str, Any] = field(default_factory=dict)
    metrics: dict[str, int] = field(default_factory=dict)
    service_groups: tuple[ServiceGroup, ...] = ()
    documentation: dict[str, Any] = field(default_factory=dict)
    models: tuple[Any, ...] = ()
    raw_data: Any = None
    microservice_diagram: Any = None


def _text_or_none(value: Any) -> str | None:
    if isinstance(value, str):
        return value
    return None


def _dict_or_none(value: Any) -> dict[str, Any] | None:
    if isinstance(value, dict):
        return dict(value)
    return None
