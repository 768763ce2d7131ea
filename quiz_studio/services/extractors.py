"""업로드 문서 형식별 추출기

각 추출기는 bytes를 받아 kind로 구분되는 raw_extract dict를 반환합니다.
표 형식(csv, xlsx)은 헤더를 정규화하여 후보 문제 목록으로, 나머지는 텍스트로 변환합니다.
"""
import asyncio
import csv
import io
import json
import logging
import re
from pathlib import PurePosixPath
from typing import Any

import pandas as pd
from docx import Document
from pypdf import PdfReader

from quiz_studio.exceptions import UnsupportedFormatError, ValidationFailedError

logger = logging.getLogger(__name__)

# 정규화된 헤더 → 후보 문제 필드
HEADER_ALIASES: dict[str, str] = {
    "pergunta": "prompt",
    "question": "prompt",
    "question_text": "prompt",
    "prompt": "prompt",
    "alt_a": "option_a",
    "alt_b": "option_b",
    "alt_c": "option_c",
    "alt_d": "option_d",
    "alt_e": "option_e",
    "a": "option_a",
    "b": "option_b",
    "c": "option_c",
    "d": "option_d",
    "e": "option_e",
    "option_a": "option_a",
    "option_b": "option_b",
    "option_c": "option_c",
    "option_d": "option_d",
    "option_e": "option_e",
    "correta": "correct",
    "correct": "correct",
    "answer": "correct",
    "explicacao": "explanation",
    "explicao": "explanation",
    "explanation": "explanation",
}

CANDIDATE_FIELDS = ("prompt", "option_a", "option_b", "option_c", "option_d", "option_e", "correct", "explanation")

_EXTENSION_KINDS = {
    "csv": "csv",
    "xlsx": "xlsx",
    "xls": "xlsx",
    "pdf": "pdf",
    "txt": "txt",
    "md": "txt",
    "docx": "docx",
    "json": "json",
}


def normalize_header(header: Any) -> str:
    text = str(header if header is not None else "").strip().lower()
    text = re.sub(r"\s+", "_", text)
    return re.sub(r"[^a-z0-9_]", "", text)


def detect_kind(source_path: str, source_mime: str | None) -> str | None:
    """파일 확장자 우선, 없으면 선언된 MIME으로 형식 판별"""
    suffix = PurePosixPath(source_path or "").suffix.lower().lstrip(".")
    if suffix in _EXTENSION_KINDS:
        return _EXTENSION_KINDS[suffix]

    mime = (source_mime or "").lower()
    if not mime:
        return None
    if "csv" in mime:
        return "csv"
    if "spreadsheet" in mime or "excel" in mime:
        return "xlsx"
    if "pdf" in mime:
        return "pdf"
    if "wordprocessingml" in mime:
        return "docx"
    if "json" in mime:
        return "json"
    if mime.startswith("text/plain") or mime.startswith("text/markdown"):
        return "txt"
    return None


def rows_to_questions(rows: list[list[Any]]) -> list[dict[str, str]]:
    """첫 행을 헤더로 사용해 후보 문제 목록 생성 (prompt가 빈 행은 제외)"""
    if not rows:
        return []
    columns: dict[str, int] = {}
    for i, header in enumerate(rows[0]):
        field = HEADER_ALIASES.get(normalize_header(header))
        if field and field not in columns:
            columns[field] = i

    def cell(row: list[Any], field: str) -> str:
        i = columns.get(field)
        if i is None or i >= len(row) or row[i] is None:
            return ""
        return str(row[i]).strip()

    questions = []
    for row in rows[1:]:
        prompt = cell(row, "prompt")
        if not prompt:
            continue
        item = {name: cell(row, name) for name in CANDIDATE_FIELDS}
        item["correct"] = item["correct"].upper()
        questions.append(item)
    return questions


def extract_csv(data: bytes) -> dict[str, Any]:
    text = data.decode("utf-8-sig")
    rows = list(csv.reader(io.StringIO(text)))
    return {
        "kind": "csv",
        "headers": rows[0] if rows else [],
        "questions": rows_to_questions(rows),
    }


def extract_xlsx(data: bytes) -> dict[str, Any]:
    """첫 번째 시트만 사용"""
    with pd.ExcelFile(io.BytesIO(data)) as workbook:
        if not workbook.sheet_names:
            return {"kind": "xlsx", "sheet": None, "questions": []}
        sheet = workbook.sheet_names[0]
        df = workbook.parse(sheet, header=None, dtype=str).fillna("")
    return {
        "kind": "xlsx",
        "sheet": str(sheet),
        "questions": rows_to_questions(df.values.tolist()),
    }


def extract_pdf(data: bytes) -> dict[str, Any]:
    reader = PdfReader(io.BytesIO(data))
    pages = [page.extract_text() or "" for page in reader.pages]
    return {"kind": "pdf", "text": "\n".join(pages).strip()}


def extract_txt(data: bytes) -> dict[str, Any]:
    return {"kind": "txt", "text": data.decode("utf-8", errors="replace").strip()}


def extract_docx(data: bytes) -> dict[str, Any]:
    document = Document(io.BytesIO(data))
    lines = [p.text for p in document.paragraphs if p.text.strip()]
    # 표 안의 텍스트도 포함
    for table in document.tables:
        for row in table.rows:
            cells = [c.text.strip() for c in row.cells if c.text.strip()]
            if cells:
                lines.append(" | ".join(cells))
    return {"kind": "docx", "text": "\n".join(lines).strip()}


def extract_json(data: bytes) -> dict[str, Any]:
    """questions 목록이 있으면 그대로, 없으면 텍스트로 보관"""
    text = data.decode("utf-8-sig")
    parsed = json.loads(text)
    questions = None
    if isinstance(parsed, list):
        questions = parsed
    elif isinstance(parsed, dict) and isinstance(parsed.get("questions"), list):
        questions = parsed["questions"]

    if questions is not None and all(isinstance(q, dict) for q in questions):
        return {"kind": "json", "questions": questions}
    return {"kind": "json", "text": text.strip()}


EXTRACTORS = {
    "csv": extract_csv,
    "xlsx": extract_xlsx,
    "pdf": extract_pdf,
    "txt": extract_txt,
    "docx": extract_docx,
    "json": extract_json,
}


def require_kind(source_path: str, source_mime: str | None) -> str:
    """지원 형식 판별, 없으면 UnsupportedFormatError (내용을 받기 전에 호출)"""
    kind = detect_kind(source_path, source_mime)
    if kind is None:
        detected = PurePosixPath(source_path or "").suffix.lstrip(".") or (source_mime or "")
        raise UnsupportedFormatError(detected)
    return kind


async def extract_document(
    data: bytes,
    source_path: str,
    source_mime: str | None,
    purpose: str | None = None,
    kind: str | None = None,
) -> dict[str, Any]:
    """형식을 판별해 raw_extract 생성

    Raises:
        UnsupportedFormatError: 지원하지 않는 형식
        ValidationFailedError: 형식은 맞지만 내용을 해석할 수 없음
    """
    if kind is None:
        kind = require_kind(source_path, source_mime)

    extractor = EXTRACTORS[kind]
    # 파서는 동기 CPU 작업이므로 executor에서 실행
    loop = asyncio.get_running_loop()
    try:
        raw_extract = await loop.run_in_executor(None, extractor, data)
    except (ValueError, UnicodeDecodeError, KeyError) as e:
        logger.warning(f"문서 해석 실패: kind={kind}, path={source_path}, error={type(e).__name__}: {str(e)[:200]}")
        raise ValidationFailedError(f"문서를 해석하지 못했습니다 ({kind}): {str(e)[:200]}") from e
    except Exception as e:
        # pypdf / python-docx / openpyxl 고유 예외
        logger.warning(f"문서 해석 실패: kind={kind}, path={source_path}, error={type(e).__name__}")
        raise ValidationFailedError(f"문서를 해석하지 못했습니다 ({kind})") from e

    if purpose:
        raw_extract["purpose"] = purpose
    logger.info(
        f"문서 추출 완료: kind={kind}, path={source_path}, "
        f"questions={len(raw_extract.get('questions') or [])}, text_len={len(raw_extract.get('text') or '')}"
    )
    return raw_extract
