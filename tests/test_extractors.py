"""형식별 추출기 테스트 (메모리 상의 bytes 사용)"""
import io
import json

import pandas as pd
import pytest
from docx import Document
from pypdf import PdfWriter

from quiz_studio.exceptions import UnsupportedFormatError, ValidationFailedError
from quiz_studio.services import extractors

CSV_BYTES = "\n".join(
    [
        "Pergunta,Alt A,alt_b,alt_c,alt_d,correta,explicacao",
        '"O que é RLS?","Row Level Security","Random","Foo","Bar",a,"Controle por linha"',
        ',sem,pergunta,aqui,nada,B,',
        '"Qual EPI protege as mãos?","Capacete","Luva isolante","Botina","Óculos",b,',
    ]
).encode("utf-8")


@pytest.mark.parametrize(
    "path,mime,expected",
    [
        ("lote.csv", None, "csv"),
        ("lote.XLSX", None, "xlsx"),
        ("antigo.xls", None, "xlsx"),
        ("manual.pdf", None, "pdf"),
        ("notas.txt", None, "txt"),
        ("notas.md", None, "txt"),
        ("apostila.docx", None, "docx"),
        ("banco.json", None, "json"),
        ("upload", "text/csv", "csv"),
        ("upload", "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet", "xlsx"),
        ("upload", "application/pdf", "pdf"),
        ("upload", "text/plain; charset=utf-8", "txt"),
        ("upload", "application/vnd.openxmlformats-officedocument.wordprocessingml.document", "docx"),
        ("upload", "application/json", "json"),
        ("foto.png", "image/png", None),
        ("upload", None, None),
    ],
)
def test_detect_kind(path, mime, expected):
    assert extractors.detect_kind(path, mime) == expected


def test_extension_wins_over_mime():
    assert extractors.detect_kind("lote.csv", "application/pdf") == "csv"


def test_normalize_header():
    assert extractors.normalize_header("  Alt A ") == "alt_a"
    assert extractors.normalize_header("Explicação") == "explicao"
    assert extractors.normalize_header(None) == ""


def test_extract_csv_drops_rows_without_prompt():
    result = extractors.extract_csv(CSV_BYTES)

    assert result["kind"] == "csv"
    assert result["headers"][0] == "Pergunta"
    assert len(result["questions"]) == 2
    first = result["questions"][0]
    assert first["prompt"] == "O que é RLS?"
    assert first["option_a"] == "Row Level Security"
    assert first["correct"] == "A"
    assert first["explanation"] == "Controle por linha"
    assert first["option_e"] == ""
    assert result["questions"][1]["correct"] == "B"


def test_extract_xlsx_reads_first_sheet():
    buffer = io.BytesIO()
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        pd.DataFrame(
            [["Qual a tensão nominal?", "127 V", "220 V", "380 V", "13,8 kV", "d"]],
            columns=["question", "a", "b", "c", "d", "answer"],
        ).to_excel(writer, sheet_name="Banco", index=False)
        pd.DataFrame([["ignorada"]], columns=["pergunta"]).to_excel(writer, sheet_name="Outra", index=False)

    result = extractors.extract_xlsx(buffer.getvalue())

    assert result["kind"] == "xlsx"
    assert result["sheet"] == "Banco"
    assert len(result["questions"]) == 1
    assert result["questions"][0]["prompt"] == "Qual a tensão nominal?"
    assert result["questions"][0]["option_d"] == "13,8 kV"
    assert result["questions"][0]["correct"] == "D"


def test_extract_docx_text():
    document = Document()
    document.add_paragraph("Procedimento de bloqueio")
    document.add_paragraph("")
    document.add_paragraph("Etapa 1: desligar o disjuntor")
    buffer = io.BytesIO()
    document.save(buffer)

    result = extractors.extract_docx(buffer.getvalue())

    assert result == {"kind": "docx", "text": "Procedimento de bloqueio\nEtapa 1: desligar o disjuntor"}


def test_extract_pdf_blank_page_gives_empty_text():
    writer = PdfWriter()
    writer.add_blank_page(width=200, height=200)
    buffer = io.BytesIO()
    writer.write(buffer)

    result = extractors.extract_pdf(buffer.getvalue())

    assert result == {"kind": "pdf", "text": ""}


def test_extract_txt_trims():
    assert extractors.extract_txt("  texto livre \n".encode("utf-8")) == {"kind": "txt", "text": "texto livre"}


def test_extract_json_questions_or_text():
    with_questions = json.dumps({"questions": [{"prompt": "P1"}, {"prompt": "P2"}]}).encode()
    assert extractors.extract_json(with_questions) == {"kind": "json", "questions": [{"prompt": "P1"}, {"prompt": "P2"}]}

    as_list = json.dumps([{"prompt": "P1"}]).encode()
    assert extractors.extract_json(as_list)["questions"] == [{"prompt": "P1"}]

    other = json.dumps({"title": "apostila"}).encode()
    result = extractors.extract_json(other)
    assert result["kind"] == "json"
    assert "questions" not in result
    assert "apostila" in result["text"]


@pytest.mark.asyncio
async def test_extract_document_copies_purpose():
    result = await extractors.extract_document(CSV_BYTES, "lote.csv", None, purpose="quiz")

    assert result["kind"] == "csv"
    assert result["purpose"] == "quiz"


@pytest.mark.asyncio
async def test_extract_document_unsupported_format():
    with pytest.raises(UnsupportedFormatError) as exc_info:
        await extractors.extract_document(b"\x89PNG", "foto.png", "image/png")
    assert exc_info.value.status_code == 415


@pytest.mark.asyncio
async def test_extract_document_unreadable_content():
    with pytest.raises(ValidationFailedError):
        await extractors.extract_document(b"{not json", "banco.json", None)
