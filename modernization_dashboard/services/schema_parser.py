# [파일 설명]
# - 목적: 생성된 SQL DDL 텍스트에서 테이블/컬럼/외래키 관계를 복원한다.
# - 제공 기능: sqlglot 토크나이저 기반 재귀 하강 인식기와 정규식 폴백을 제공한다.
# - 입력/출력: DDL 문자열을 받아 Schema와 errors 목록을 반환한다.
# - 주의 사항: 잘못된 입력에도 예외를 던지지 않으며 인식된 만큼만 반환한다.
# - 연관 모듈: assembler 및 app API(/dashboard/schema)에서 사용된다.
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, replace

from sqlglot import tokenize
from sqlglot.errors import TokenError
from sqlglot.tokens import TokenType

from modernization_dashboard.services.models import Column, Relationship, Schema, Table
from modernization_dashboard.services.safe_text import normalize_words, summarize_text

logger = logging.getLogger(__name__)

DEFAULT_DIALECT = "postgres"
DEFAULT_REFERENCED_COLUMN = "id"

TABLE_MODIFIERS = {"GLOBAL", "LOCAL", "TEMP", "TEMPORARY", "UNLOGGED"}
SKIPPED_TABLE_CONSTRAINTS = {"CHECK", "INDEX", "KEY", "EXCLUDE", "FULLTEXT", "SPATIAL"}

_PUNCTUATION = {
    TokenType.L_PAREN: "lparen",
    TokenType.R_PAREN: "rparen",
    TokenType.COMMA: "comma",
    TokenType.SEMICOLON: "semicolon",
    TokenType.DOT: "dot",
}

# Fallback patterns, used only when the tokenizer rejects the text.
CREATE_TABLE_PATTERN = re.compile(
    r"\bCREATE\s+(?:OR\s+REPLACE\s+)?(?:(?:GLOBAL|LOCAL)\s+)?(?:(?:TEMP|TEMPORARY|UNLOGGED)\s+)?"
    r"TABLE\s+(?:IF\s+NOT\s+EXISTS\s+)?(?P<name>[\w\"`\[\]]+(?:\s*\.\s*[\w\"`\[\]]+)*)\s*\(",
    re.IGNORECASE,
)
FOREIGN_KEY_PATTERN = re.compile(
    r"\bFOREIGN\s+KEY\s*\((?P<from>[^)]+)\)\s*REFERENCES\s+"
    r"(?P<table>[\w\"`\[\]]+(?:\s*\.\s*[\w\"`\[\]]+)*)\s*(?:\((?P<to>[^)]+)\))?",
    re.IGNORECASE,
)
INLINE_REFERENCE_PATTERN = re.compile(
    r"\bREFERENCES\s+(?P<table>[\w\"`\[\]]+(?:\s*\.\s*[\w\"`\[\]]+)*)\s*(?:\((?P<to>[^)]+)\))?",
    re.IGNORECASE,
)
CONSTRAINT_LINE_PATTERN = re.compile(r"^CONSTRAINT\b|\bFOREIGN\s+KEY\b", re.IGNORECASE)
INDEX_LINE_PATTERN = re.compile(
    r"^(?:CHECK|INDEX|KEY|EXCLUDE|FULLTEXT|SPATIAL)\b(?:\s+\w+)?\s*\((?![\d\s,]*\))",
    re.IGNORECASE,
)
TABLE_KEY_PATTERN = re.compile(
    r"^(?:CONSTRAINT\s+\S+\s+)?(?P<kind>PRIMARY\s+KEY|UNIQUE)(?:\s+(?:KEY|INDEX))?\s*(?:\w+\s*)?\((?P<cols>[^)]*)\)",
    re.IGNORECASE,
)
COLUMN_TYPE_PATTERN = re.compile(r"^\S+\s+(?P<type>[^\s(]+(?:\s*\([^)]*\))?)")
FLAG_PATTERNS = {
    "is_primary": re.compile(r"\bPRIMARY\s+KEY\b", re.IGNORECASE),
    "is_not_null": re.compile(r"\bNOT\s+NULL\b", re.IGNORECASE),
    "is_unique": re.compile(r"\bUNIQUE\b", re.IGNORECASE),
    "has_default": re.compile(r"\bDEFAULT\b", re.IGNORECASE),
}
FLAG_PHRASES = {
    "is_primary": "PRIMARY KEY",
    "is_not_null": "NOT NULL",
    "is_unique": "UNIQUE",
    "has_default": "DEFAULT",
}


@dataclass(frozen=True)
class _Tok:
    kind: str
    text: str
    words: tuple[str, ...]


def parse_schema(ddl_text: str | None, dialect: str | None = DEFAULT_DIALECT) -> Schema:
    return analyze_schema(ddl_text, dialect)["schema"]


def analyze_schema(ddl_text: str | None, dialect: str | None = DEFAULT_DIALECT) -> dict[str, object]:
    ddl_text = ddl_text or ""
    summary = summarize_text(ddl_text)
    logger.info(
        "analyze_schema: ddl_len=%s ddl_hash=%s dialect=%s",
        summary["len"],
        summary["sha256_8"],
        dialect,
    )

    errors: list[str] = []
    if not ddl_text.strip():
        return {"schema": Schema(), "errors": errors}

    try:
        tokens = _lex(ddl_text, dialect)
        tables = _recognize_tables(tokens)
    except (TokenError, ValueError) as exc:
        logger.warning("analyze_schema: tokenizer rejected input, using fallback: %s", exc)
        errors.append(f"tokenize_error: {exc}")
        tables = _fallback_tables(ddl_text)

    logger.info(
        "analyze_schema: tables=%s relationships=%s",
        len(tables),
        sum(len(table.relationships) for table in tables),
    )
    return {"schema": Schema(tables=tuple(tables)), "errors": errors}


def _lex(ddl_text: str, dialect: str | None) -> list[_Tok]:
    tokens: list[_Tok] = []
    for token in tokenize(ddl_text, read=dialect):
        # e.g. backtick identifiers under a dialect that does not quote with them
        if token.token_type == TokenType.UNKNOWN and not token.text.isidentifier():
            raise ValueError(f"unrecognized token {token.text!r} for dialect {dialect}")
        kind = _PUNCTUATION.get(token.token_type)
        if kind is None:
            kind = "string" if token.token_type.name.endswith("STRING") else "word"
        words: tuple[str, ...] = ()
        # Quoted identifiers never spell keywords.
        if kind == "word" and token.token_type != TokenType.IDENTIFIER:
            words = tuple(normalize_words(token.text).split())
        tokens.append(_Tok(kind=kind, text=token.text, words=words))
    return tokens


def _match_phrase(tokens: list[_Tok], pos: int, phrase: str) -> int:
    """Return how many tokens starting at ``pos`` spell ``phrase``, or 0.

    Multi-word keywords may arrive as one token ("PRIMARY KEY") or as
    several, so words are compared rather than tokens.
    """
    target = phrase.split()
    seen: list[str] = []
    index = pos
    while index < len(tokens) and len(seen) < len(target):
        token = tokens[index]
        if token.kind != "word" or not token.words:
            return 0
        seen.extend(token.words)
        if seen != target[: len(seen)]:
            return 0
        index += 1
    if seen == target:
        return index - pos
    return 0


def _find_phrase(tokens: list[_Tok], phrase: str, start: int = 0) -> int:
    for index in range(start, len(tokens)):
        if _match_phrase(tokens, index, phrase):
            return index
    return -1


def _recognize_tables(tokens: list[_Tok]) -> list[Table]:
    tables: list[Table] = []
    pos = 0
    while pos < len(tokens):
        if _match_phrase(tokens, pos, "CREATE"):
            table, next_pos = _parse_create_table(tokens, pos)
            if table is not None:
                tables.append(table)
                pos = next_pos
                continue
        pos += 1
    return tables


def _parse_create_table(tokens: list[_Tok], pos: int) -> tuple[Table | None, int]:
    pos += _match_phrase(tokens, pos, "CREATE")
    pos += _match_phrase(tokens, pos, "OR REPLACE")
    while pos < len(tokens) and tokens[pos].words[:1] and tokens[pos].words[0] in TABLE_MODIFIERS:
        pos += 1
    consumed = _match_phrase(tokens, pos, "TABLE")
    if not consumed:
        return None, pos
    pos += consumed
    pos += _match_phrase(tokens, pos, "IF NOT EXISTS")

    name, pos = _parse_qualified_name(tokens, pos)
    if not name or pos >= len(tokens) or tokens[pos].kind != "lparen":
        return None, pos

    body, pos = _take_group(tokens, pos)
    if body is None:
        return None, pos
    if pos < len(tokens) and tokens[pos].kind == "semicolon":
        pos += 1
    return _build_table(name, body), pos


def _parse_qualified_name(tokens: list[_Tok], pos: int) -> tuple[str, int]:
    parts: list[str] = []
    while pos < len(tokens) and tokens[pos].kind == "word":
        parts.append(tokens[pos].text)
        pos += 1
        if pos < len(tokens) and tokens[pos].kind == "dot":
            pos += 1
            continue
        break
    return ".".join(parts), pos


def _take_group(tokens: list[_Tok], pos: int) -> tuple[list[_Tok] | None, int]:
    """Consume a balanced ``( ... )`` group starting at ``pos``."""
    depth = 0
    start = pos + 1
    while pos < len(tokens):
        kind = tokens[pos].kind
        if kind == "lparen":
            depth += 1
        elif kind == "rparen":
            depth -= 1
            if depth == 0:
                return tokens[start:pos], pos + 1
        pos += 1
    return None, pos


def _split_top_level(body: list[_Tok]) -> list[tuple[int, list[_Tok]]]:
    fragments: list[tuple[int, list[_Tok]]] = []
    depth = 0
    start = 0
    for index, token in enumerate(body):
        if token.kind == "lparen":
            depth += 1
        elif token.kind == "rparen":
            depth = max(depth - 1, 0)
        elif token.kind == "comma" and depth == 0:
            fragments.append((start, body[start:index]))
            start = index + 1
    fragments.append((start, body[start:]))
    return [(offset, fragment) for offset, fragment in fragments if fragment]


def _build_table(name: str, body: list[_Tok]) -> Table:
    columns: list[Column] = []
    key_columns: dict[str, set[str]] = {"is_primary": set(), "is_unique": set()}
    relationships: list[tuple[int, Relationship]] = []

    for offset, fragment in _split_top_level(body):
        if _is_constraint(fragment):
            _collect_table_keys(fragment, key_columns)
            continue
        column = _parse_column(fragment)
        if column is None:
            continue
        columns.append(column)
        relationships.extend(
            (offset + index, relationship)
            for index, relationship in _inline_references(column.name, fragment)
        )

    relationships.extend(_foreign_keys(body))
    relationships.sort(key=lambda item: item[0])

    for flag, names in key_columns.items():
        if not names:
            continue
        columns = [
            replace(column, **{flag: True}) if column.name.lower() in names else column
            for column in columns
        ]

    return Table(
        name=name,
        columns=tuple(columns),
        relationships=tuple(relationship for _, relationship in relationships),
    )


def _is_constraint(fragment: list[_Tok]) -> bool:
    if _match_phrase(fragment, 0, "CONSTRAINT"):
        return True
    if _find_phrase(fragment, "FOREIGN KEY") >= 0:
        return True
    if _match_phrase(fragment, 0, "PRIMARY KEY"):
        return True
    first_word = fragment[0].words[0] if fragment[0].words else ""
    if first_word in ("UNIQUE", "CHECK"):
        return True
    if first_word not in SKIPPED_TABLE_CONSTRAINTS:
        return False
    # "key VARCHAR(20)" is a column; "KEY idx (a, b)" is an index.
    for index in (1, 2):
        if index < len(fragment) and fragment[index].kind == "lparen":
            group, _ = _take_group(fragment, index)
            return not any(token.text.isdigit() for token in group or [])
    return False


def _collect_table_keys(fragment: list[_Tok], key_columns: dict[str, set[str]]) -> None:
    pos = 0
    if _match_phrase(fragment, 0, "CONSTRAINT"):
        pos = 2
    for flag, phrase in (("is_primary", "PRIMARY KEY"), ("is_unique", "UNIQUE")):
        consumed = _match_phrase(fragment, pos, phrase)
        if not consumed:
            continue
        lparen = next(
            (index for index in range(pos + consumed, len(fragment)) if fragment[index].kind == "lparen"),
            -1,
        )
        if lparen < 0:
            return
        group, _ = _take_group(fragment, lparen)
        key_columns[flag].update(name.lower() for name in _name_list(group or []))
        return


def _parse_column(fragment: list[_Tok]) -> Column | None:
    if len(fragment) < 2 or fragment[0].kind != "word" or fragment[1].kind != "word":
        return None
    column_type = fragment[1].text
    if len(fragment) > 2 and fragment[2].kind == "lparen":
        group, _ = _take_group(fragment, 2)
        if group is not None:
            column_type += "(" + _render_group(group) + ")"

    flags = {flag: _find_phrase(fragment, phrase, 2) >= 0 for flag, phrase in FLAG_PHRASES.items()}
    return Column(name=fragment[0].text, type=column_type, **flags)


def _render_group(group: list[_Tok]) -> str:
    parts: list[str] = []
    previous = ""
    for token in group:
        if token.kind == "string":
            text = f"'{token.text}'"
        elif token.kind == "comma":
            text = ","
        elif token.kind == "lparen":
            text = "("
        elif token.kind == "rparen":
            text = ")"
        elif token.kind == "dot":
            text = "."
        else:
            text = token.text
        if token.kind in ("word", "string") and previous in ("word", "string"):
            parts.append(" ")
        parts.append(text)
        previous = token.kind
    return "".join(parts)


def _name_list(tokens: list[_Tok]) -> list[str]:
    return [token.text for token in tokens if token.kind == "word"]


def _inline_references(column_name: str, fragment: list[_Tok]) -> list[tuple[int, Relationship]]:
    index = _find_phrase(fragment, "REFERENCES", 2)
    if index < 0:
        return []
    target, pos = _parse_qualified_name(fragment, index + 1)
    if not target:
        return []
    to_column = DEFAULT_REFERENCED_COLUMN
    if pos < len(fragment) and fragment[pos].kind == "lparen":
        group, _ = _take_group(fragment, pos)
        names = _name_list(group or [])
        if names:
            to_column = names[0]
    return [(index, Relationship(from_column=column_name, to_table=target, to_column=to_column))]


def _foreign_keys(body: list[_Tok]) -> list[tuple[int, Relationship]]:
    relationships: list[tuple[int, Relationship]] = []
    index = _find_phrase(body, "FOREIGN KEY")
    while index >= 0:
        position = index
        pos = index + _match_phrase(body, index, "FOREIGN KEY")
        relationship_list = _parse_foreign_key(body, pos)
        relationships.extend((position, relationship) for relationship in relationship_list)
        index = _find_phrase(body, "FOREIGN KEY", pos)
    return relationships


def _parse_foreign_key(body: list[_Tok], pos: int) -> list[Relationship]:
    if pos >= len(body) or body[pos].kind != "lparen":
        return []
    group, pos = _take_group(body, pos)
    from_columns = _name_list(group or [])
    consumed = _match_phrase(body, pos, "REFERENCES")
    if not from_columns or not consumed:
        return []
    target, pos = _parse_qualified_name(body, pos + consumed)
    if not target:
        return []
    to_columns: list[str] = []
    if pos < len(body) and body[pos].kind == "lparen":
        group, pos = _take_group(body, pos)
        to_columns = _name_list(group or [])
    if not to_columns:
        to_columns = [DEFAULT_REFERENCED_COLUMN] * len(from_columns)
    return [
        Relationship(from_column=from_column, to_table=target, to_column=to_column)
        for from_column, to_column in zip(from_columns, to_columns)
    ]


def _fallback_tables(ddl_text: str) -> list[Table]:
    tables: list[Table] = []
    pos = 0
    while True:
        match = CREATE_TABLE_PATTERN.search(ddl_text, pos)
        if match is None:
            break
        body_end = _raw_group_end(ddl_text, match.end())
        if body_end < 0:
            break
        body = ddl_text[match.end() : body_end]
        tables.append(_fallback_table(_unquote_name(match.group("name")), body))
        pos = body_end + 1
    return tables


def _raw_group_end(text: str, start: int) -> int:
    depth = 1
    for index in range(start, len(text)):
        char = text[index]
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
            if depth == 0:
                return index
    return -1


def _raw_split_top_level(body: str) -> list[str]:
    fragments: list[str] = []
    depth = 0
    current: list[str] = []
    for char in body:
        if char == "(":
            depth += 1
        elif char == ")":
            depth = max(depth - 1, 0)
        elif char == "," and depth == 0:
            fragments.append("".join(current).strip())
            current = []
            continue
        current.append(char)
    fragments.append("".join(current).strip())
    return [fragment for fragment in fragments if fragment]


def _fallback_table(name: str, body: str) -> Table:
    columns: list[Column] = []
    relationships: list[tuple[int, Relationship]] = []
    key_columns: dict[str, set[str]] = {"is_primary": set(), "is_unique": set()}

    for fragment in _raw_split_top_level(body):
        key_match = TABLE_KEY_PATTERN.match(fragment)
        if key_match:
            flag = "is_primary" if key_match.group("kind").upper().startswith("PRIMARY") else "is_unique"
            key_columns[flag].update(_split_names(key_match.group("cols")))
            continue
        if CONSTRAINT_LINE_PATTERN.search(fragment) or INDEX_LINE_PATTERN.match(fragment):
            continue
        type_match = COLUMN_TYPE_PATTERN.match(fragment)
        if type_match is None:
            continue
        column_name = _unquote_name(fragment.split()[0])
        flags = {flag: bool(pattern.search(fragment)) for flag, pattern in FLAG_PATTERNS.items()}
        columns.append(Column(name=column_name, type=re.sub(r"\s+", "", type_match.group("type")), **flags))
        reference = INLINE_REFERENCE_PATTERN.search(fragment)
        if reference:
            to_columns = _split_names(reference.group("to") or "") or [DEFAULT_REFERENCED_COLUMN]
            relationships.append(
                (
                    body.find(fragment) + reference.start(),
                    Relationship(
                        from_column=column_name,
                        to_table=_unquote_name(reference.group("table")),
                        to_column=to_columns[0],
                    ),
                )
            )

    for match in FOREIGN_KEY_PATTERN.finditer(body):
        from_columns = _split_names(match.group("from"))
        to_columns = _split_names(match.group("to") or "") or [DEFAULT_REFERENCED_COLUMN] * len(from_columns)
        target = _unquote_name(match.group("table"))
        for from_column, to_column in zip(from_columns, to_columns):
            relationships.append(
                (match.start(), Relationship(from_column=from_column, to_table=target, to_column=to_column))
            )
    relationships.sort(key=lambda item: item[0])

    for flag, names in key_columns.items():
        lowered = {name.lower() for name in names}
        columns = [
            replace(column, **{flag: True}) if column.name.lower() in lowered else column
            for column in columns
        ]

    return Table(
        name=name,
        columns=tuple(columns),
        relationships=tuple(relationship for _, relationship in relationships),
    )


def _split_names(text: str) -> list[str]:
    return [_unquote_name(part) for part in text.split(",") if part.strip()]


def _unquote_name(name: str) -> str:
    parts = [part.strip().strip('"`[]') for part in name.split(".")]
    return ".".join(part for part in parts if part)
