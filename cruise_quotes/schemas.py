"""
Import pipeline type definitions

잡/견적 상태 열거형과 파이프라인 단계 간 주고받는 Pydantic 모델
"""
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class ImportJobKind(str, Enum):
    """임포트 잡 종류"""
    FILE_UPLOAD = "FILE_UPLOAD"
    TEXT_INPUT = "TEXT_INPUT"
    TEMPLATE_IMPORT = "TEMPLATE_IMPORT"
    ADMIN_LLM_GENERATE = "ADMIN_LLM_GENERATE"


class ImportJobStatus(str, Enum):
    """임포트 잡 상태"""
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    NEEDS_CONFIRMATION = "NEEDS_CONFIRMATION"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"


TERMINAL_JOB_STATUSES = (ImportJobStatus.SUCCEEDED, ImportJobStatus.FAILED)


class QuoteSource(str, Enum):
    MANUAL = "MANUAL"
    FILE_IMPORT = "FILE_IMPORT"
    TEXT_IMPORT = "TEXT_IMPORT"
    TEMPLATE_IMPORT = "TEMPLATE_IMPORT"


class QuoteStatus(str, Enum):
    ACTIVE = "ACTIVE"
    VOIDED = "VOIDED"
    CORRECTED = "CORRECTED"


class PricingUnit(str, Enum):
    """가격 기준 (1인당 / 객실당 / 총액)"""
    PER_PERSON = "PER_PERSON"
    PER_CABIN = "PER_CABIN"
    TOTAL = "TOTAL"


class EntityStatus(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class AuditAction(str, Enum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    IMPORT = "IMPORT"
    VOID = "VOID"


# 모델이 돌려주는 선실 카테고리 (내부/오션뷰/발코니/스위트)
CABIN_CATEGORIES = ("内舱", "海景", "阳台", "套房")


# ============================================================================
# Model extraction types
# ============================================================================

class ParsedQuote(BaseModel):
    """모델이 추출한 견적 한 줄"""
    cabin_type_name: str = Field(..., description="선실 타입명")
    cabin_category: Optional[str] = Field("", description="선실 카테고리 (内舱/海景/阳台/套房)")
    price: float = Field(..., description="가격")
    currency: str = Field(..., description="ISO 4217 통화 코드")
    pricing_unit: str = Field(..., description="PER_PERSON / PER_CABIN / TOTAL")
    conditions: Optional[str] = None
    promotion: Optional[str] = None
    notes: Optional[str] = None


class QuoteParseResult(BaseModel):
    """문서 1건에 대한 추출 결과"""
    sailing_code: str = Field(..., description="항차 코드")
    ship_name: str = Field(..., description="선박명")
    nights: int = Field(..., description="박 수")
    departure_date: Optional[str] = Field("", description="출항일 (YYYY-MM-DD)")
    route: Optional[str] = ""
    quotes: List[ParsedQuote] = Field(default_factory=list)


# ============================================================================
# Result summary
# ============================================================================

class ImportResultSummary(BaseModel):
    """
    잡 종료 시 한 번만 기록되는 처리 결과 요약.

    total_rows = success_rows + failed_rows + skipped_rows
    """
    total_rows: int = 0
    success_rows: int = 0
    failed_rows: int = 0
    skipped_rows: int = 0
    created_quotes: int = 0
    warnings: List[str] = Field(default_factory=list)

    def add_warning(self, message: str) -> None:
        self.warnings.append(message)
