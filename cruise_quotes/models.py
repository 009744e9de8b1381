from datetime import date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Integer, Numeric, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql import func


class Base(DeclarativeBase):
    pass


# ============================================================================
# Catalog (CRUD는 외부 백오피스가 담당, 임포트 파이프라인은 읽기만 함)
# ============================================================================

class CruiseLine(Base):
    __tablename__ = "cruise_line"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    name_en: Mapped[str | None] = mapped_column(Text, nullable=True)
    aliases: Mapped[list[str]] = mapped_column(JSONB, nullable=False, default=list)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="ACTIVE")  # ACTIVE, INACTIVE
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class Ship(Base):
    __tablename__ = "ship"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    cruise_line_id: Mapped[int] = mapped_column(ForeignKey("cruise_line.id"), nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    aliases: Mapped[list[str]] = mapped_column(JSONB, nullable=False, default=list)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="ACTIVE")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class CabinCategory(Base):
    __tablename__ = "cabin_category"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(Text, nullable=False, unique=True)  # 内舱, 海景, 阳台, 套房
    name_en: Mapped[str | None] = mapped_column(Text, nullable=True)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class CabinType(Base):
    __tablename__ = "cabin_type"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    ship_id: Mapped[int] = mapped_column(ForeignKey("ship.id"), nullable=False)
    category_id: Mapped[int] = mapped_column(ForeignKey("cabin_category.id"), nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    code: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class Sailing(Base):
    __tablename__ = "sailing"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    ship_id: Mapped[int] = mapped_column(ForeignKey("ship.id"), nullable=False)
    sailing_code: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    departure_date: Mapped[date] = mapped_column(Date, nullable=False)
    return_date: Mapped[date] = mapped_column(Date, nullable=False)
    nights: Mapped[int] = mapped_column(Integer, nullable=False)
    route: Mapped[str] = mapped_column(Text, nullable=False, default="")
    status: Mapped[str] = mapped_column(Text, nullable=False, default="ACTIVE")  # ACTIVE, CANCELLED
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class Supplier(Base):
    __tablename__ = "supplier"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    aliases: Mapped[list[str]] = mapped_column(JSONB, nullable=False, default=list)
    visibility: Mapped[str] = mapped_column(Text, nullable=False, default="PRIVATE")
    status: Mapped[str] = mapped_column(Text, nullable=False, default="ACTIVE")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


# ============================================================================
# Import pipeline
# ============================================================================

class ImportJob(Base):
    """
    업로드 문서 1건에 대한 비동기 임포트 잡.

    상태 전이: PENDING -> RUNNING -> {SUCCEEDED | FAILED | NEEDS_CONFIRMATION},
    NEEDS_CONFIRMATION -> {SUCCEEDED | FAILED}. 역방향 전이는 없음.
    """
    __tablename__ = "import_job"
    __table_args__ = (UniqueConstraint("idempotency_key", name="uq_import_job_idempotency_key"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    type: Mapped[str] = mapped_column(Text, nullable=False)  # FILE_UPLOAD, TEXT_INPUT, TEMPLATE_IMPORT, ADMIN_LLM_GENERATE
    status: Mapped[str] = mapped_column(Text, nullable=False, default="PENDING")

    file_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    file_hash: Mapped[str | None] = mapped_column(Text, nullable=True)  # sha-256 hex
    file_size: Mapped[int | None] = mapped_column(Integer, nullable=True)
    file_path: Mapped[str | None] = mapped_column(Text, nullable=True)
    raw_text: Mapped[str | None] = mapped_column(Text, nullable=True)

    idempotency_key: Mapped[str | None] = mapped_column(Text, nullable=True)
    model_version: Mapped[str | None] = mapped_column(Text, nullable=True)
    prompt_version: Mapped[str | None] = mapped_column(Text, nullable=True)

    result_summary: Mapped[dict[str, Any] | None] = mapped_column(JSONB, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    supplier_id: Mapped[int | None] = mapped_column(ForeignKey("supplier.id"), nullable=True)
    created_by: Mapped[int] = mapped_column(Integer, nullable=False)

    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    @property
    def duration_ms(self) -> int | None:
        if self.started_at is None or self.completed_at is None:
            return None
        return int((self.completed_at - self.started_at).total_seconds() * 1000)


class PriceQuote(Base):
    """
    가격 견적 (append-only).

    INSERT 이후 변경 가능한 필드는 status 뿐이며 ACTIVE -> VOIDED 만 허용.
    정정은 corrects_quote_id 로 원본을 가리키는 새 행을 추가함.
    """
    __tablename__ = "price_quote"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    sailing_id: Mapped[int] = mapped_column(ForeignKey("sailing.id"), nullable=False)
    cabin_type_id: Mapped[int] = mapped_column(ForeignKey("cabin_type.id"), nullable=False)
    supplier_id: Mapped[int] = mapped_column(ForeignKey("supplier.id"), nullable=False)

    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(Text, nullable=False, default="CNY")
    pricing_unit: Mapped[str] = mapped_column(Text, nullable=False)  # PER_PERSON, PER_CABIN, TOTAL
    guest_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    cabin_quantity: Mapped[int | None] = mapped_column(Integer, nullable=True)
    valid_until: Mapped[date | None] = mapped_column(Date, nullable=True)

    conditions: Mapped[str | None] = mapped_column(Text, nullable=True)
    promotion: Mapped[str | None] = mapped_column(Text, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    source: Mapped[str] = mapped_column(Text, nullable=False)  # MANUAL, FILE_IMPORT, TEXT_IMPORT, TEMPLATE_IMPORT
    source_ref: Mapped[str | None] = mapped_column(Text, nullable=True)
    import_job_id: Mapped[int | None] = mapped_column(ForeignKey("import_job.id"), nullable=True)
    corrects_quote_id: Mapped[int | None] = mapped_column(ForeignKey("price_quote.id"), nullable=True)

    status: Mapped[str] = mapped_column(Text, nullable=False, default="ACTIVE")  # ACTIVE, VOIDED, CORRECTED
    created_by: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class AuditLog(Base):
    __tablename__ = "audit_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    supplier_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    action: Mapped[str] = mapped_column(Text, nullable=False)  # CREATE, UPDATE, DELETE, IMPORT, VOID
    entity_type: Mapped[str] = mapped_column(Text, nullable=False)
    entity_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    old_value: Mapped[dict[str, Any] | None] = mapped_column(JSONB, nullable=True)
    new_value: Mapped[dict[str, Any] | None] = mapped_column(JSONB, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
