# [파일 설명]
# - 목적: 조립된 대시보드 모델을 단일 JSON 문서로 직렬화/저장한다.
# - 제공 기능: 문서 dict 변환, JSON 문자열 변환, 원자적 파일 쓰기를 제공한다.
# - 입력/출력: DashboardModel을 받아 dict/str 또는 파일을 생성한다.
# - 주의 사항: 부분 쓰기 없이 임시 파일 후 교체 방식으로 한 번에 저장한다.
# - 연관 모듈: app API(/dashboard/export)에서 사용된다.
from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import asdict
from pathlib import Path
from typing import Any

from modernization_dashboard.services.models import DashboardModel

logger = logging.getLogger(__name__)

EXPORT_VERSION = "1.0"


def dashboard_to_document(model: DashboardModel) -> dict[str, Any]:
    document = asdict(model)
    document["version"] = EXPORT_VERSION
    return document


def dashboard_to_json(model: DashboardModel) -> str:
    return json.dumps(dashboard_to_document(model), indent=2, ensure_ascii=False, default=str)


def export_dashboard(model: DashboardModel, path: str | Path) -> Path:
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    content = dashboard_to_json(model)

    fd, temp_name = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".tmp", dir=target.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(content)
        os.replace(temp_name, target)
    except BaseException:
        Path(temp_name).unlink(missing_ok=True)
        raise

    logger.info("export_dashboard: path=%s bytes=%s", target, len(content.encode("utf-8")))
    return target
