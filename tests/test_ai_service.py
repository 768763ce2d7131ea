"""AI Service 테스트 (Gemini 호출은 모킹)"""
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from quiz_studio.core.config import settings
from quiz_studio.exceptions import CollaboratorFailureError, GeminiAPIKeyError
from quiz_studio.schemas.ai import AIStructuringRequest
from quiz_studio.services import ai_service


@pytest.mark.parametrize(
    "original,corrected",
    [
        ("Equipamento de protecao individual", "Equipamento de proteção individual"),
        ("O trabalhdor deve usar luvas isolantes", "O trabalhador deve usar luvas isolantes"),
        ("Conforme a NR-10, desligue o circuito", "Conforme a NR-10 desligue o circuito."),
        ("", ""),
        ("igual", "igual"),
    ],
)
def test_is_safe_correction_accepts_small_fixes(original, corrected):
    assert ai_service.is_safe_correction(original, corrected) is True


@pytest.mark.parametrize(
    "original,corrected",
    [
        # 약어 삭제
        ("Conforme a NR-10, desligue o circuito", "Conforme a norma, desligue o circuito"),
        # 숫자 변경
        ("A tensão da linha é 13.8 kV", "A tensão da linha é 13.9 kV"),
        # 문장 재작성
        (
            "Qual é a função do disjuntor no painel?",
            "Explique detalhadamente por que o painel precisa de proteção.",
        ),
        # 내용 삭제
        ("Texto original", "   "),
    ],
)
def test_is_safe_correction_rejects_rewrites(original, corrected):
    assert ai_service.is_safe_correction(original, corrected) is False


def test_strip_code_fence():
    assert ai_service._strip_code_fence('```json\n{"a": 1}\n```') == '{"a": 1}'
    assert ai_service._strip_code_fence('  {"a": 1} ') == '{"a": 1}'


@pytest.mark.asyncio
async def test_proofread_skipped_without_api_key(monkeypatch):
    """API 키가 없으면 호출 없이 원문 반환"""
    monkeypatch.setattr(settings, "gemini_api_key", "")
    with patch.object(ai_service, "_generate_json", new_callable=AsyncMock) as mock_generate:
        result = await ai_service.proofread_strings(["protecao", None])

    assert result.output == ["protecao", ""]
    assert result.used_model is None
    mock_generate.assert_not_called()


@pytest.mark.asyncio
async def test_proofread_skipped_for_oversized_batch(monkeypatch):
    monkeypatch.setattr(settings, "gemini_api_key", "test-key")
    monkeypatch.setattr(settings, "proofread_max_strings", 2)
    with patch.object(ai_service, "_generate_json", new_callable=AsyncMock) as mock_generate:
        result = await ai_service.proofread_strings(["um", "dois", "tres"])

    assert result.output == ["um", "dois", "tres"]
    mock_generate.assert_not_called()


@pytest.mark.asyncio
async def test_proofread_keeps_only_safe_corrections(monkeypatch):
    monkeypatch.setattr(settings, "gemini_api_key", "test-key")
    inputs = ["Equipamento de protecao", "Conforme a NR-10"]
    with patch.object(
        ai_service,
        "_generate_json",
        new=AsyncMock(return_value={"strings": ["Equipamento de proteção", "Conforme a NR-11"]}),
    ):
        result = await ai_service.proofread_strings(inputs)

    assert result.output == ["Equipamento de proteção", "Conforme a NR-10"]
    assert result.used_model == settings.gemini_model


@pytest.mark.asyncio
async def test_proofread_count_mismatch_keeps_original(monkeypatch):
    monkeypatch.setattr(settings, "gemini_api_key", "test-key")
    with patch.object(ai_service, "_generate_json", new=AsyncMock(return_value={"strings": ["só um"]})):
        result = await ai_service.proofread_strings(["um", "dois"])

    assert result.output == ["um", "dois"]


@pytest.mark.asyncio
async def test_structure_questions_success():
    questions = [{"prompt": "Qual EPI?", "option_a": "Luva", "correct": "A"}]
    with patch.object(ai_service, "_generate_json", new=AsyncMock(return_value={"questions": questions})) as mock_generate:
        result = await ai_service.structure_questions(AIStructuringRequest(source_text="Apostila NR-10"))

    assert result.model == settings.gemini_model
    assert result.questions == questions
    prompt = mock_generate.call_args.args[0]
    assert "Apostila NR-10" in prompt


@pytest.mark.asyncio
async def test_structure_questions_invalid_response():
    with patch.object(ai_service, "_generate_json", new=AsyncMock(return_value={"questions": "nenhuma"})):
        with pytest.raises(CollaboratorFailureError):
            await ai_service.structure_questions(AIStructuringRequest(source_text="texto"))


@pytest.mark.asyncio
async def test_generate_json_parses_fenced_response():
    mock_client = MagicMock()
    mock_client.models.generate_content.return_value = MagicMock(text='```json\n{"questions": []}\n```')

    with patch.object(ai_service, "get_gemini_client", return_value=mock_client):
        data = await ai_service._generate_json("prompt", temperature=0.0)

    assert data == {"questions": []}
    mock_client.models.generate_content.assert_called_once()


@pytest.mark.asyncio
async def test_generate_json_empty_response():
    mock_client = MagicMock()
    mock_client.models.generate_content.return_value = MagicMock(text="")

    with patch.object(ai_service, "get_gemini_client", return_value=mock_client):
        with pytest.raises(CollaboratorFailureError):
            await ai_service._generate_json("prompt", temperature=0.0)


@pytest.mark.asyncio
async def test_generate_json_without_api_key(monkeypatch):
    monkeypatch.setattr(settings, "gemini_api_key", "")
    monkeypatch.setattr(ai_service, "_gemini_client", None)

    with pytest.raises(GeminiAPIKeyError):
        await ai_service._generate_json("prompt", temperature=0.0)


@pytest.mark.asyncio
async def test_generate_json_wraps_transport_error():
    mock_client = MagicMock()
    mock_client.models.generate_content.side_effect = httpx.ConnectError("dns failure")

    with patch.object(ai_service, "get_gemini_client", return_value=mock_client):
        with pytest.raises(CollaboratorFailureError) as exc_info:
            await ai_service._generate_json("prompt", temperature=0.0)
    assert exc_info.value.status_code == 502
    assert "ConnectError" in exc_info.value.message
