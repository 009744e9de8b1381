"""
Import Pipeline Exception Classes

임포트 파이프라인 구조화된 에러 처리를 위한 예외 클래스 정의.
오케스트레이터는 ImportPipelineError 계열을 잡 종료 상태(FAILED + 메시지)로 변환함.
"""
from typing import Optional, Dict, Any


class ImportPipelineError(Exception):
    """
    Base exception for all import pipeline errors

    Attributes:
        message: 에러 메시지
        error_code: 에러 코드
        context: 추가 컨텍스트 정보
        recoverable: 복구 가능 여부
    """

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        recoverable: bool = False
    ):
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.context = context or {}
        self.recoverable = recoverable
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """에러 정보를 딕셔너리로 변환"""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "context": self.context,
            "recoverable": self.recoverable
        }


# ============================================================================
# Text extraction
# ============================================================================

class ExtractionError(ImportPipelineError):
    """문서 텍스트 추출 실패"""

    def __init__(self, message: str, path: Optional[str] = None, **kwargs):
        context = {"path": path}
        context.update(kwargs)
        super().__init__(message=message, context=context)
        self.path = path


class UnsupportedKindError(ExtractionError):
    """확장자로 문서 종류를 판별할 수 없음"""


class CorruptContainerError(ExtractionError):
    """ZIP 컨테이너가 손상됨"""


class MissingPartError(ExtractionError):
    """컨테이너 안에 필요한 파트(word/document.xml)가 없음"""


class DecodeError(ExtractionError):
    """XML/PDF 본문 디코딩 실패"""


class EmptyDocumentError(DecodeError):
    """추출된 텍스트가 없음"""


# ============================================================================
# Model extraction
# ============================================================================

class ModelError(ImportPipelineError):
    """
    LLM 추출 실패

    Attributes:
        model: 사용된 모델
    """

    def __init__(self, message: str, model: Optional[str] = None, recoverable: bool = False, **kwargs):
        context = {"model": model}
        context.update(kwargs)
        super().__init__(message=message, context=context, recoverable=recoverable)
        self.model = model


class TransportError(ModelError):
    """모델 서버 호출 실패 (네트워크/HTTP 오류)"""

    def __init__(self, message: str, model: Optional[str] = None, status_code: Optional[int] = None, **kwargs):
        super().__init__(message, model=model, recoverable=True, status_code=status_code, **kwargs)
        self.status_code = status_code


class EmptyResponseError(ModelError):
    """모델 응답이 비어 있음"""


class SchemaViolationError(ModelError):
    """
    모델 응답이 견적 스키마를 위반함

    Attributes:
        field: 처음으로 위반한 필드명 (예: quotes[0].price)
    """

    def __init__(self, field: str, reason: str, **kwargs):
        super().__init__(f"schema violation at '{field}': {reason}", field=field, reason=reason, **kwargs)
        self.field = field
        self.reason = reason


# ============================================================================
# Orchestration / job store
# ============================================================================

class InvalidDepartureDateError(ImportPipelineError):
    def __init__(self, value: str):
        super().__init__(f"invalid departure date: {value}", context={"departure_date": value})
        self.value = value


class SailingUnresolvedError(ImportPipelineError):
    def __init__(self, sailing_code: str, ship_name: str, issues: Optional[list] = None):
        super().__init__(
            f"sailing not resolved in catalog (code={sailing_code}, ship={ship_name})",
            context={"sailing_code": sailing_code, "ship_name": ship_name, "issues": issues or []},
        )
        self.issues = issues or []


class JobNotFoundError(ImportPipelineError):
    def __init__(self, job_id: int):
        super().__init__(f"import job {job_id} not found", context={"job_id": job_id})
        self.job_id = job_id


class JobStateConflictError(ImportPipelineError):
    """조건부 상태 전이가 0건 적용됨 (이미 다른 워커가 처리 중이거나 종료됨)"""

    def __init__(self, job_id: int, expected: str, target: str):
        super().__init__(
            f"import job {job_id} is not {expected}; cannot move to {target}",
            context={"job_id": job_id, "expected": expected, "target": target},
        )
        self.job_id = job_id


# ============================================================================
# Quote writer
# ============================================================================

class QuoteValidationError(ImportPipelineError):
    """견적 INSERT 전 검증 실패"""

    def __init__(self, message: str, **kwargs):
        super().__init__(message=message, context=dict(kwargs))


class InvalidPriceError(QuoteValidationError):
    pass


class UnknownSailingError(QuoteValidationError):
    pass


class UnknownCabinTypeError(QuoteValidationError):
    pass


class UnknownSupplierError(QuoteValidationError):
    pass


class InvalidCurrencyError(QuoteValidationError):
    pass


class InvalidPricingUnitError(QuoteValidationError):
    pass


class QuoteNotFoundError(ImportPipelineError):
    def __init__(self, quote_id: int):
        super().__init__(f"price quote {quote_id} not found", context={"quote_id": quote_id})


class NotActiveError(ImportPipelineError):
    """ACTIVE 가 아닌 견적에 대한 무효화 시도"""

    def __init__(self, quote_id: int):
        super().__init__(f"price quote {quote_id} is not active", context={"quote_id": quote_id})
        self.quote_id = quote_id


# ============================================================================
# Submission / staging
# ============================================================================

class SubmissionError(ImportPipelineError):
    pass


class UnsupportedFileTypeError(SubmissionError):
    def __init__(self, file_name: str):
        super().__init__(
            f"unsupported file type: {file_name} (allowed: .pdf, .docx, .doc)",
            context={"file_name": file_name},
        )


class FileTooLargeError(SubmissionError):
    def __init__(self, size: int, limit: int):
        super().__init__(
            f"file too large: {size} bytes (limit {limit})",
            context={"size": size, "limit": limit},
        )


class StagingError(ImportPipelineError):
    """업로드 파일 저장 실패"""

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message, context={"path": path}, recoverable=True)
        self.path = path
