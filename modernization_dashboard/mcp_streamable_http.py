# [파일 설명]
# - 목적: Streamable HTTP MCP(JSON-RPC) 엔드포인트를 제공한다.
# - 제공 기능: initialize/tools/list/tools/call/ping 처리 및 프로토콜 버전 검증을 수행한다.
# - 입력/출력: JSON-RPC 요청을 받아 표준 응답 또는 202/405를 반환한다.
# - 주의 사항: 알림 메시지는 202로 응답하며, 도구 실행 실패는 isError로 표시한다.
# - 연관 모듈: modernization_dashboard.api.dashboard 요청 모델과 서비스 레이어를 재사용한다.
from __future__ import annotations

import logging
import os
from collections.abc import Callable
from typing import Any

from fastapi import APIRouter, HTTPException, Request, Response, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from modernization_dashboard.api.dashboard import (
    AssembleRequest,
    EndpointsRequest,
    SchemaRequest,
    assemble_dashboard,
    extract_routes,
    extract_schema,
)

logger = logging.getLogger(__name__)

router = APIRouter()

DEFAULT_SUPPORTED_PROTOCOL_VERSIONS = ("2025-03-26", "2025-11-25")
DEFAULT_PROTOCOL_VERSION = "2025-03-26"
SERVER_PROTOCOL_VERSION = "2025-11-25"


# [함수 설명]
# - 목적: 환경 변수 기반 지원 프로토콜 버전 목록을 구성한다.
# - 입력: MCP_SUPPORTED_PROTOCOL_VERSIONS 환경 변수 (콤마 구분)
# - 출력: 지원 버전 문자열 집합
# - 에러 처리: 빈 값은 기본 목록으로 대체한다.
def _load_supported_protocol_versions() -> set[str]:
    env_value = os.getenv("MCP_SUPPORTED_PROTOCOL_VERSIONS", "").strip()
    if not env_value:
        return set(DEFAULT_SUPPORTED_PROTOCOL_VERSIONS)
    return {item.strip() for item in env_value.split(",") if item.strip()}


def _resolve_protocol_version(headers: Any) -> str:
    header_value = headers.get("MCP-Protocol-Version")
    if not header_value:
        return DEFAULT_PROTOCOL_VERSION
    if header_value not in _load_supported_protocol_versions():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Unsupported MCP-Protocol-Version",
        )
    return header_value


def _jsonrpc_response(
    request_id: Any, *, result: Any | None = None, error: Any | None = None
) -> JSONResponse:
    payload: dict[str, Any] = {"jsonrpc": "2.0", "id": request_id}
    if error is not None:
        payload["error"] = error
    else:
        payload["result"] = result
    return JSONResponse(status_code=status.HTTP_200_OK, content=payload)


def _handle_initialize(_: dict[str, Any]) -> dict[str, Any]:
    return {
        "protocolVersion": SERVER_PROTOCOL_VERSION,
        "capabilities": {"tools": {"listChanged": False}},
        "serverInfo": {
            "name": "modernization-dashboard",
            "version": "0.1.0",
            "description": "Schema/endpoint extraction and dashboard assembly for modernization results",
        },
        "instructions": "Call tools/list then tools/call with generated DDL or route source text.",
    }


def _handle_tools_list() -> dict[str, Any]:
    return {
        "tools": [
            {
                "name": "ddl.parse",
                "description": "Extract tables, columns and foreign-key relationships from CREATE TABLE text.",
                "inputSchema": {
                    "type": "object",
                    "properties": {
                        "sql": {"type": "string", "description": "Generated DDL text."},
                        "dialect": {
                            "type": "string",
                            "description": "sqlglot dialect used for tokenizing (default: postgres).",
                            "default": "postgres",
                        },
                    },
                    "required": ["sql"],
                },
                "outputSchema": {
                    "type": "object",
                    "properties": {
                        "tables": {"type": "array", "items": {"type": "object"}},
                        "dangling_relationships": {"type": "array", "items": {"type": "object"}},
                        "errors": {"type": "array", "items": {"type": "string"}},
                    },
                },
            },
            {
                "name": "routes.extract",
                "description": "List HTTP endpoints registered as <router>.<method>('<path>') calls.",
                "inputSchema": {
                    "type": "object",
                    "properties": {
                        "source": {"type": "string", "description": "Generated route source text."},
                        "method": {"type": "string", "description": "Optional method filter or 'all'."},
                        "search": {"type": "string", "description": "Optional path/description filter."},
                    },
                    "required": ["source"],
                },
                "outputSchema": {
                    "type": "object",
                    "properties": {
                        "total": {"type": "integer"},
                        "endpoints": {"type": "array", "items": {"type": "object"}},
                        "service_groups": {"type": "array", "items": {"type": "object"}},
                    },
                },
            },
            {
                "name": "dashboard.assemble",
                "description": "Assemble the dashboard model from a modernization result body.",
                "inputSchema": {
                    "type": "object",
                    "properties": {
                        "modernizationAssets": {"type": "object"},
                        "parsedSchema": {"type": "object"},
                    },
                    "required": ["modernizationAssets"],
                },
                "outputSchema": {
                    "type": "object",
                    "properties": {
                        "schema": {"type": "object"},
                        "endpoints": {"type": "array", "items": {"type": "object"}},
                        "metrics": {"type": "object"},
                        "documentation": {"type": "object"},
                        "version": {"type": "string"},
                    },
                },
            },
        ]
    }


def _build_tool_result(
    summary: str,
    structured_content: dict[str, Any] | None,
    *,
    is_error: bool = False,
) -> dict[str, Any]:
    return {
        "content": [{"type": "text", "text": summary}],
        "structuredContent": structured_content or {},
        "isError": is_error,
    }


def _call_ddl_parse(arguments: dict[str, Any]) -> tuple[str, dict[str, Any]]:
    payload = extract_schema(SchemaRequest(**arguments)).model_dump()
    summary = (
        "Schema extracted. "
        f"tables={len(payload['tables'])}, "
        f"dangling={len(payload['dangling_relationships'])}, errors={len(payload['errors'])}."
    )
    return summary, payload


def _call_routes_extract(arguments: dict[str, Any]) -> tuple[str, dict[str, Any]]:
    payload = extract_routes(EndpointsRequest(**arguments)).model_dump()
    summary = f"Endpoints extracted. total={payload['total']}, services={len(payload['service_groups'])}."
    return summary, payload


def _call_dashboard_assemble(arguments: dict[str, Any]) -> tuple[str, dict[str, Any]]:
    payload = assemble_dashboard(AssembleRequest(**arguments))
    metrics = payload.get("metrics", {})
    summary = (
        "Dashboard assembled. "
        f"tables={metrics.get('table_count', 0)}, endpoints={metrics.get('endpoint_count', 0)}."
    )
    return summary, payload


TOOLS: dict[str, Callable[[dict[str, Any]], tuple[str, dict[str, Any]]]] = {
    "ddl.parse": _call_ddl_parse,
    "routes.extract": _call_routes_extract,
    "dashboard.assemble": _call_dashboard_assemble,
}


# [함수 설명]
# - 목적: tools/call 요청을 처리한다.
# - 입력: params 딕셔너리
# - 출력: CallToolResult 딕셔너리
# - 에러 처리: 입력 검증 오류는 isError로 반환한다.
def _handle_tools_call(params: dict[str, Any]) -> dict[str, Any]:
    name = params.get("name")
    arguments = params.get("arguments")
    if not name:
        return _build_tool_result("Tool name is required.", None, is_error=True)
    tool = TOOLS.get(name)
    if tool is None:
        return _build_tool_result(f"Unknown tool: {name}.", None, is_error=True)
    if not isinstance(arguments, dict):
        return _build_tool_result("Tool arguments must be an object.", None, is_error=True)
    try:
        summary, payload = tool(arguments)
    except ValidationError as exc:
        logger.warning("tools/call: name=%s invalid arguments errors=%s", name, exc.error_count())
        return _build_tool_result(f"Invalid arguments: {exc.error_count()} error(s).", None, is_error=True)
    logger.info("tools/call: name=%s ok", name)
    return _build_tool_result(summary, payload, is_error=False)


# [함수 설명]
# - 목적: Streamable HTTP MCP POST 요청을 처리한다.
# - 입력: JSON-RPC 메시지 객체
# - 출력: JSON-RPC 응답 또는 202 상태
# - 에러 처리: 잘못된 요청은 400으로 응답한다.
# - 결정론: 동일 입력에 대해 동일 응답을 반환한다.
@router.post("/mcp")
async def mcp_post(request: Request) -> Response:
    _resolve_protocol_version(request.headers)

    try:
        payload = await request.json()
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid JSON payload",
        ) from exc

    if not isinstance(payload, dict):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid JSON-RPC payload",
        )

    method = payload.get("method")
    request_id = payload.get("id")
    if method is None or request_id is None or str(method).startswith("notifications/"):
        return Response(status_code=status.HTTP_202_ACCEPTED)

    params = payload.get("params") or {}
    if not isinstance(params, dict):
        return _jsonrpc_response(
            request_id,
            error={"code": -32602, "message": "Invalid params"},
        )

    if method == "initialize":
        return _jsonrpc_response(request_id, result=_handle_initialize(params))
    if method == "tools/list":
        return _jsonrpc_response(request_id, result=_handle_tools_list())
    if method == "tools/call":
        return _jsonrpc_response(request_id, result=_handle_tools_call(params))
    if method == "ping":
        return _jsonrpc_response(request_id, result={})

    return _jsonrpc_response(
        request_id,
        error={"code": -32601, "message": f"Method not found: {method}"},
    )


@router.get("/mcp")
def mcp_get() -> Response:
    return Response(status_code=status.HTTP_405_METHOD_NOT_ALLOWED)
