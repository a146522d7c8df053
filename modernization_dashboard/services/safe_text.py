# [파일 설명]
# - 목적: 생성된 DDL/라우트 원문을 로그에 남기지 않도록 요약 정보를 계산한다.
# - 제공 기능: 길이/해시 요약과 공백 정규화를 제공한다.
# - 입력/출력: 원문 텍스트를 입력으로 받아 요약 dict 또는 정규화 문자열을 반환한다.
# - 주의 사항: 원문 텍스트 자체는 반환하거나 로그에 남기지 않는다.
# - 연관 모듈: schema_parser, endpoint_extractor, job_client 로그 요약에 사용된다.
from __future__ import annotations

import hashlib
import re

WHITESPACE_PATTERN = re.compile(r"\s+")


# [함수 설명]
# - 목적: 텍스트의 길이와 sha256 앞 8자리를 계산한다.
# - 입력: text: str | None
# - 출력: {"len": int, "sha256_8": str}
# - 에러 처리: None은 빈 문자열로 취급한다.
# - 결정론: 동일 입력에 대해 항상 동일 결과를 반환한다.
# - 보안: 원문 대신 요약만 로그에 남기도록 한다.
def summarize_text(text: str | None) -> dict[str, int | str]:
    text = text or ""
    text_hash = hashlib.sha256(text.encode("utf-8")).hexdigest()[:8]
    return {"len": len(text), "sha256_8": text_hash}


def normalize_words(text: str) -> str:
    return WHITESPACE_PATTERN.sub(" ", text).strip().upper()
