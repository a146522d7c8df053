# [파일 설명]
# - 목적: FastAPI 애플리케이션을 생성하고 라우터를 조립한다.
# - 제공 기능: /health 엔드포인트, /dashboard 라우터, /mcp JSON-RPC 엔드포인트 등록을 제공한다.
# - 입력/출력: HTTP 요청에 대해 상태 정보를 반환한다.
# - 주의 사항: 동작 변경 없이 라우팅만 담당한다.
# - 연관 모듈: modernization_dashboard.api.dashboard, mcp_streamable_http와 연동된다.
from fastapi import FastAPI

from modernization_dashboard.api.dashboard import router as dashboard_router
from modernization_dashboard.mcp_streamable_http import router as mcp_router

app = FastAPI(title="modernization-dashboard")


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


app.include_router(dashboard_router, prefix="/dashboard")
app.include_router(mcp_router)
