"""커스텀 예외 클래스 정의"""


class BaseAppError(Exception):
    """애플리케이션 기본 예외 클래스"""

    def __init__(self, message: str, status_code: int = 500):
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class NotFoundError(BaseAppError):
    """리소스를 찾을 수 없을 때 발생하는 예외 (404)"""

    def __init__(self, message: str):
        super().__init__(message, status_code=404)


class ImportNotFoundError(NotFoundError):
    def __init__(self, import_id: int):
        super().__init__(f"임포트를 찾을 수 없습니다: {import_id}")


class QuizNotFoundError(NotFoundError):
    def __init__(self, quiz_id: int):
        super().__init__(f"퀴즈를 찾을 수 없습니다: {quiz_id}")


class QuestionNotFoundError(NotFoundError):
    def __init__(self, question_id: int):
        super().__init__(f"문제를 찾을 수 없습니다: {question_id}")


class QuizVersionNotFoundError(NotFoundError):
    def __init__(self, quiz_id: int, version_number: int):
        super().__init__(f"퀴즈 버전을 찾을 수 없습니다: quiz_id={quiz_id}, version={version_number}")


class AuthenticationError(BaseAppError):
    """인증 정보가 없거나 유효하지 않을 때 (401)"""

    def __init__(self, message: str = "인증이 필요합니다"):
        super().__init__(message, status_code=401)


class ForbiddenError(BaseAppError):
    """역할/소유권 검사 실패 (403)"""

    def __init__(self, message: str = "권한이 없습니다"):
        super().__init__(message, status_code=403)


class InvalidStateError(BaseAppError):
    """현재 워크플로 상태에서 허용되지 않는 전이 (409)"""

    def __init__(self, message: str):
        super().__init__(message, status_code=409)


class NoQuestionsError(InvalidStateError):
    """문제가 없는 퀴즈를 게시하려 할 때 (409)"""

    def __init__(self, quiz_id: int):
        super().__init__(f"게시하기 전에 문제를 1개 이상 추가하세요: quiz_id={quiz_id}")


class UnsupportedFormatError(BaseAppError):
    """지원하지 않는 파일 형식 (415)"""

    def __init__(self, detected: str):
        super().__init__(f"지원하지 않는 형식입니다: {detected or 'unknown'}", status_code=415)


class ValidationFailedError(BaseAppError):
    """입력 데이터 검증 실패 (422)"""

    def __init__(self, message: str):
        super().__init__(message, status_code=422)


class CollaboratorFailureError(BaseAppError):
    """외부 협력자(blob store, 구조화/교정 서비스) 호출 실패 (502)"""

    def __init__(self, message: str, status_code: int = 502):
        super().__init__(message, status_code=status_code)


class BlobDownloadError(CollaboratorFailureError):
    """원본 문서 다운로드 실패"""

    def __init__(self, bucket: str, path: str, reason: str):
        super().__init__(f"원본 문서를 내려받지 못했습니다: {bucket}/{path} ({reason})")


class GeminiServiceUnavailableError(CollaboratorFailureError):
    """Gemini API 서비스 일시적 과부하 에러 (503)"""

    def __init__(self, message: str = "Gemini API가 일시적으로 과부하 상태입니다. 잠시 후 다시 시도해주세요."):
        super().__init__(message, status_code=503)


class GeminiAPIKeyError(CollaboratorFailureError):
    """Gemini API 키 관련 에러"""

    def __init__(self, message: str = "Gemini API 키 문제로 구조화에 실패했습니다. 관리자에게 문의하세요."):
        super().__init__(message)
