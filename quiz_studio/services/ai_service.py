import asyncio
import json
import logging
import math
import random
import re
import unicodedata
from typing import Any

from google import genai
from google.genai import types
from google.genai.errors import ClientError, ServerError
from pydantic import ValidationError

from quiz_studio.core.config import settings
from quiz_studio.exceptions import (
    CollaboratorFailureError,
    GeminiAPIKeyError,
    GeminiServiceUnavailableError,
)
from quiz_studio.schemas.ai import (
    AIProofreadResponse,
    AIProofreadResult,
    AIStructuringRequest,
    AIStructuringResponse,
    AIStructuringResult,
)

logger = logging.getLogger(__name__)

_gemini_client: genai.Client | None = None
# 동시 Gemini API 요청 수 제한 (과부하 방지)
_gemini_semaphore: asyncio.Semaphore | None = None

MAX_SOURCE_CHARS = 60_000


def get_gemini_client() -> genai.Client:
    """Gemini 클라이언트 싱글톤"""
    global _gemini_client
    if _gemini_client is None:
        if not settings.gemini_api_key:
            raise GeminiAPIKeyError("GEMINI_API_KEY가 설정되지 않았습니다")
        _gemini_client = genai.Client(api_key=settings.gemini_api_key)
    return _gemini_client


def get_gemini_semaphore() -> asyncio.Semaphore:
    """Gemini API 동시 요청 제한 Semaphore 싱글톤"""
    global _gemini_semaphore
    if _gemini_semaphore is None:
        max_concurrent = settings.gemini_max_concurrent
        _gemini_semaphore = asyncio.Semaphore(max_concurrent)
        logger.info(f"Gemini API 동시 요청 제한 설정: 최대 {max_concurrent}개")
    return _gemini_semaphore


def _strip_code_fence(text: str) -> str:
    """마크다운 코드 블록 제거"""
    text = text.strip()
    if text.startswith("```json"):
        text = text[7:]
    if text.startswith("```"):
        text = text[3:]
    if text.endswith("```"):
        text = text[:-3]
    return text.strip()


async def _generate_json(prompt: str, temperature: float) -> dict[str, Any]:
    """Gemini JSON 응답 호출 (재시도 로직 포함, 동시 요청 제한)

    Raises:
        GeminiAPIKeyError: API 키 문제 (403)
        GeminiServiceUnavailableError: 503 재시도 소진
        CollaboratorFailureError: 타임아웃, 빈 응답, JSON 파싱 실패, 전송 오류 등 기타 실패
    """
    client = get_gemini_client()
    semaphore = get_gemini_semaphore()

    # 재시도 설정 (503 에러 대응)
    max_retries = 5
    base_delay = 2.0
    max_delay = 16.0

    async with semaphore:
        for attempt in range(max_retries):
            try:
                # Gemini는 동기 API이므로 executor로 래핑
                loop = asyncio.get_running_loop()
                response = await asyncio.wait_for(
                    loop.run_in_executor(
                        None,
                        lambda: client.models.generate_content(
                            model=settings.gemini_model,
                            contents=prompt,
                            config=types.GenerateContentConfig(
                                temperature=temperature,
                                response_mime_type="application/json",
                            ),
                        ),
                    ),
                    timeout=settings.structuring_timeout_seconds,
                )

                result = response.text
                if not result:
                    raise CollaboratorFailureError("AI 응답이 비어있습니다")

                data = json.loads(_strip_code_fence(result))

                if attempt > 0:
                    logger.info(f"Gemini API 호출 성공 (시도 {attempt + 1}/{max_retries})")
                return data

            except asyncio.TimeoutError as e:
                logger.error(f"Gemini API 타임아웃: {settings.structuring_timeout_seconds}초 초과")
                raise CollaboratorFailureError("AI 응답 시간이 초과되었습니다") from e
            except json.JSONDecodeError as e:
                logger.error(f"Gemini 응답 JSON 파싱 실패: {str(e)[:200]}")
                raise CollaboratorFailureError("AI 응답 형식이 올바르지 않습니다") from e
            except ClientError as e:
                error_message = str(e).lower()
                if "403" in str(e) or "permission_denied" in error_message or "leaked" in error_message:
                    logger.error(
                        f"Gemini API 키 문제 감지: status_code=403, "
                        f"error_type={type(e).__name__}"
                    )
                    raise GeminiAPIKeyError() from e
                logger.error(
                    f"Gemini API ClientError: status_code={getattr(e, 'code', 'unknown')}, "
                    f"error_type={type(e).__name__}"
                )
                raise CollaboratorFailureError(f"AI 요청이 거부되었습니다: {str(e)[:200]}") from e
            except ServerError as e:
                error_message = str(e)
                if "503" in error_message or "UNAVAILABLE" in error_message or "overloaded" in error_message.lower():
                    if attempt < max_retries - 1:
                        # 지수 백오프 + jitter: 2초, 4초, 8초, 16초 (최대 16초)
                        delay = min(base_delay * (2 ** attempt), max_delay)
                        jitter = delay * 0.2 * (random.random() * 2 - 1)
                        delay_with_jitter = max(0.5, delay + jitter)

                        logger.warning(
                            f"Gemini API 503 에러 발생 (시도 {attempt + 1}/{max_retries}). "
                            f"{delay_with_jitter:.1f}초 후 재시도합니다. (에러: {error_message[:100]})"
                        )
                        await asyncio.sleep(delay_with_jitter)
                        continue
                    logger.error(
                        f"Gemini API 503 에러: 최대 재시도 횟수({max_retries}) 도달. "
                        f"에러 메시지: {error_message}"
                    )
                    raise GeminiServiceUnavailableError() from e
                logger.error(f"Gemini API ServerError (503 아님): {error_message}")
                raise CollaboratorFailureError(f"AI 서버 오류: {error_message[:200]}") from e
            except CollaboratorFailureError:
                raise
            except Exception as e:
                # httpx 전송 오류 등 SDK 예외 계층 밖의 실패
                logger.error(f"Gemini API 호출 실패: error_type={type(e).__name__}, error={str(e)[:200]}")
                raise CollaboratorFailureError(f"AI 호출에 실패했습니다: {type(e).__name__}") from e

    # 503 재시도 루프가 continue로만 끝나는 경우는 없음
    raise GeminiServiceUnavailableError()


async def structure_questions(request: AIStructuringRequest) -> AIStructuringResult:
    """원본 텍스트를 후보 문제 목록으로 구조화"""
    source_text = request.source_text[:MAX_SOURCE_CHARS]
    prompt = f"""당신은 교육 콘텐츠 편집 전문가입니다.

아래 문서에서 객관식 문제를 찾아 구조화하세요. 문서에 문제가 없으면 핵심 내용으로 문제를 만드세요.
문서의 언어를 그대로 유지하세요.

문서:
{source_text}

다음 JSON 형식으로 응답하세요:
{{
  "questions": [
    {{
      "prompt": "문제 내용",
      "option_a": "선택지 A",
      "option_b": "선택지 B",
      "option_c": "선택지 C",
      "option_d": "선택지 D",
      "option_e": "선택지 E (없으면 빈 문자열)",
      "correct": "A",
      "explanation": "해설"
    }}
  ]
}}

요구사항:
- 선택지는 4~5개
- correct는 정답 선택지의 문자 (A~E) 1개
- 간결한 해설"""

    data = await _generate_json(prompt, temperature=0.3)
    try:
        parsed = AIStructuringResponse(**data) if isinstance(data, dict) else None
    except ValidationError as e:
        logger.error(f"구조화 응답 검증 실패: {str(e)[:200]}")
        raise CollaboratorFailureError("AI 구조화 응답 형식이 올바르지 않습니다") from e
    if parsed is None:
        raise CollaboratorFailureError("AI 구조화 응답 형식이 올바르지 않습니다")

    logger.info(f"AI 구조화 완료: model={settings.gemini_model}, questions={len(parsed.questions)}")
    return AIStructuringResult(model=settings.gemini_model, questions=parsed.questions)


# 교정 결과 안전성 검사
def _base_normalize(text: str) -> str:
    decomposed = unicodedata.normalize("NFD", text)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    stripped = re.sub(r"[^\w]+|_", " ", stripped)
    return re.sub(r"\s+", " ", stripped).strip().lower()


def _levenshtein(a: str, b: str) -> int:
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)
    prev = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        curr = [i]
        for j, cb in enumerate(b, start=1):
            cost = 0 if ca == cb else 1
            curr.append(min(prev[j] + 1, curr[j - 1] + 1, prev[j - 1] + cost))
        prev = curr
    return prev[-1]


_ACRONYM_RE = re.compile(r"\b[A-Z]{2,}(?:-[A-Z0-9]+)*\b")
_NUMBER_RE = re.compile(r"\b\d+(?:[.,]\d+)?\b")


def preserves_critical_tokens(original: str, corrected: str) -> bool:
    """약어(NR-10 등)와 숫자가 모두 남아 있는지"""
    tokens = set(_ACRONYM_RE.findall(original)) | set(_NUMBER_RE.findall(original))
    return all(token in corrected for token in tokens)


def is_safe_correction(original: str, corrected: str) -> bool:
    """맞춤법 수준의 작은 변경만 허용"""
    if not original.strip() and not corrected.strip():
        return True
    if original.strip() and not corrected.strip():
        return False
    if original == corrected:
        return True

    if not preserves_critical_tokens(original, corrected):
        return False

    norm_in = _base_normalize(original)
    norm_out = _base_normalize(corrected)
    if norm_in == norm_out:
        return True

    distance = _levenshtein(norm_in, norm_out)
    max_len = max(len(norm_in), len(norm_out))
    allowed = min(8, max(2, math.ceil(max_len * 0.08)))
    length_ok = abs(len(original) - len(corrected)) <= math.ceil(len(original) * 0.25) + 4
    return distance <= allowed and length_ok


async def proofread_strings(strings: list[str]) -> AIProofreadResult:
    """문자열 목록 맞춤법 교정 (실패하거나 건너뛰면 입력 그대로 반환)"""
    inputs = [str(s or "") for s in strings]
    if not settings.gemini_api_key or not inputs:
        return AIProofreadResult(output=inputs)

    total_chars = sum(len(s) for s in inputs)
    if len(inputs) > settings.proofread_max_strings or total_chars > settings.proofread_max_chars:
        logger.info(f"교정 생략 (크기 초과): strings={len(inputs)}, chars={total_chars}")
        return AIProofreadResult(output=inputs)

    prompt = f"""당신은 맞춤법 교정자입니다.
맞춤법, 악센트, 기본 문장부호만 고치세요. 원문의 언어를 유지하세요.
- 문장을 다시 쓰거나 의미를 바꾸지 마세요.
- 전문 용어, 약어(예: NR-10), 코드, 숫자, 단위, 고유명사는 바꾸지 마세요.
- 확실하지 않으면 원문 그대로 반환하세요.

입력:
{json.dumps({"strings": inputs}, ensure_ascii=False)}

같은 개수의 항목을 {{"strings": ["...", "..."]}} JSON 형식으로만 응답하세요."""

    data = await _generate_json(prompt, temperature=0.0)
    try:
        parsed = AIProofreadResponse(**data)
    except (ValidationError, TypeError) as e:
        logger.warning(f"교정 응답 형식 오류, 원문 유지: {str(e)[:200]}")
        return AIProofreadResult(output=inputs, used_model=settings.gemini_model)

    if len(parsed.strings) != len(inputs):
        logger.warning(f"교정 응답 개수 불일치 ({len(parsed.strings)} != {len(inputs)}), 원문 유지")
        return AIProofreadResult(output=inputs, used_model=settings.gemini_model)

    output = [
        candidate if is_safe_correction(original, candidate) else original
        for original, candidate in zip(inputs, parsed.strings)
    ]
    changed = sum(1 for a, b in zip(inputs, output) if a != b)
    logger.info(f"교정 완료: strings={len(inputs)}, changed={changed}")
    return AIProofreadResult(output=output, used_model=settings.gemini_model)
