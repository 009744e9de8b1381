import logging
import re
from dataclasses import asdict, dataclass, replace
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Callable, Optional, Union

from sqlalchemy import update
from sqlalchemy.orm import Session

from cruise_quotes.models import CabinType, PriceQuote, Sailing, Supplier
from cruise_quotes.schemas import PricingUnit, QuoteSource, QuoteStatus
from cruise_quotes.services.audit import AuditService
from cruise_quotes.services.exceptions import (
    InvalidCurrencyError,
    InvalidPriceError,
    InvalidPricingUnitError,
    NotActiveError,
    QuoteNotFoundError,
    QuoteValidationError,
    UnknownCabinTypeError,
    UnknownSailingError,
    UnknownSupplierError,
)
from cruise_quotes.settings import settings

logger = logging.getLogger(__name__)

PRICE_QUANTUM = Decimal("0.01")
# price_quote.price 는 Numeric(12, 2)
PRICE_LIMIT = Decimal("1e10")
_CURRENCY_CODE = re.compile(r"[A-Z]{3}")


@dataclass
class CreateQuoteInput:
    sailing_id: int
    cabin_type_id: int
    supplier_id: int
    price: str  # 고정소수점 문자열 (예: "4200.00")
    pricing_unit: Union[PricingUnit, str]
    created_by: int
    currency: str = ""
    source: QuoteSource = QuoteSource.MANUAL
    source_ref: Optional[str] = None
    import_job_id: Optional[int] = None
    guest_count: Optional[int] = None
    cabin_quantity: Optional[int] = None
    valid_until: Optional[date] = None
    conditions: Optional[str] = None
    promotion: Optional[str] = None
    notes: Optional[str] = None
    corrects_quote_id: Optional[int] = None


def format_price(value: float) -> str:
    """소수 둘째 자리까지 고정소수점 문자열"""
    return f"{value:.2f}"


class QuoteService:
    """
    가격 견적 작성기.

    price_quote 는 append-only 테이블입니다. 이 서비스가 제공하는 변경은
    INSERT(create/correct) 와 ACTIVE -> VOIDED 조건부 UPDATE(void) 뿐입니다.
    """

    def __init__(self, session_factory: Callable[[], Session], audit: Optional[AuditService] = None):
        self.session_factory = session_factory
        self.audit = audit or AuditService(session_factory)

    def _parse_price(self, raw: str) -> Decimal:
        try:
            price = Decimal(str(raw).strip())
        except (InvalidOperation, ValueError) as e:
            raise InvalidPriceError(f"invalid price: {raw!r}", price=str(raw)) from e
        if not price.is_finite() or price <= 0:
            raise InvalidPriceError(f"price must be greater than 0: {raw!r}", price=str(raw))
        try:
            price = price.quantize(PRICE_QUANTUM)
        except InvalidOperation as e:
            raise InvalidPriceError(f"price out of range: {raw!r}", price=str(raw)) from e
        if price >= PRICE_LIMIT:
            raise InvalidPriceError(f"price must be less than {PRICE_LIMIT:f}: {raw!r}", price=str(raw))
        return price

    def _normalize_currency(self, raw: Optional[str]) -> str:
        currency = (raw or "").strip().upper()
        if not currency:
            return settings.default_currency
        if not _CURRENCY_CODE.fullmatch(currency):
            raise InvalidCurrencyError(f"currency must be a 3-letter code: {raw!r}", currency=raw)
        return currency

    def _normalize_pricing_unit(self, raw: Union[PricingUnit, str, None]) -> PricingUnit:
        if not raw:
            raise InvalidPricingUnitError("pricing unit is required")
        try:
            return PricingUnit(raw)
        except ValueError as e:
            raise InvalidPricingUnitError(f"invalid pricing unit: {raw!r}", pricing_unit=str(raw)) from e

    def create(self, data: CreateQuoteInput) -> PriceQuote:
        # 모든 검증은 INSERT 이전에 수행
        price = self._parse_price(data.price)
        pricing_unit = self._normalize_pricing_unit(data.pricing_unit)
        currency = self._normalize_currency(data.currency)
        for field_name in ("guest_count", "cabin_quantity"):
            value = getattr(data, field_name)
            if value is not None and value <= 0:
                raise QuoteValidationError(f"{field_name} must be a positive integer", **{field_name: value})

        with self.session_factory() as session:
            if session.get(Sailing, data.sailing_id) is None:
                raise UnknownSailingError(f"sailing {data.sailing_id} not found", sailing_id=data.sailing_id)
            if session.get(CabinType, data.cabin_type_id) is None:
                raise UnknownCabinTypeError(
                    f"cabin type {data.cabin_type_id} not found", cabin_type_id=data.cabin_type_id
                )
            if session.get(Supplier, data.supplier_id) is None:
                raise UnknownSupplierError(f"supplier {data.supplier_id} not found", supplier_id=data.supplier_id)

            quote = PriceQuote(
                sailing_id=data.sailing_id,
                cabin_type_id=data.cabin_type_id,
                supplier_id=data.supplier_id,
                price=price,
                currency=currency,
                pricing_unit=pricing_unit.value,
                guest_count=data.guest_count,
                cabin_quantity=data.cabin_quantity,
                valid_until=data.valid_until,
                conditions=data.conditions,
                promotion=data.promotion,
                notes=data.notes,
                source=QuoteSource(data.source).value,
                source_ref=data.source_ref,
                import_job_id=data.import_job_id,
                corrects_quote_id=data.corrects_quote_id,
                status=QuoteStatus.ACTIVE.value,
                created_by=data.created_by,
            )
            session.add(quote)
            session.commit()
            session.refresh(quote)

        logger.info(
            f"[QUOTE] Created quote {quote.id} (sailing={quote.sailing_id}, cabin_type={quote.cabin_type_id}, "
            f"price={quote.price} {quote.currency}, source={quote.source})"
        )
        payload = asdict(data)
        payload.update(price=str(price), currency=currency, pricing_unit=pricing_unit.value,
                       source=quote.source, valid_until=data.valid_until.isoformat() if data.valid_until else None)
        self.audit.log_create(data.created_by, data.supplier_id, "price_quote", quote.id, payload)
        return quote

    def correct(self, original_id: int, data: CreateQuoteInput) -> PriceQuote:
        """원본은 그대로 두고 원본을 참조하는 새 견적을 추가"""
        with self.session_factory() as session:
            if session.get(PriceQuote, original_id) is None:
                raise QuoteNotFoundError(original_id)
        return self.create(replace(data, corrects_quote_id=original_id))

    def void(self, quote_id: int, user_id: Optional[int] = None) -> None:
        """
        ACTIVE -> VOIDED 조건부 UPDATE.

        동시에 여러 번 호출되어도 하나만 성공하고 나머지는 NotActiveError.
        """
        with self.session_factory() as session:
            result = session.execute(
                update(PriceQuote)
                .where(PriceQuote.id == quote_id, PriceQuote.status == QuoteStatus.ACTIVE.value)
                .values(status=QuoteStatus.VOIDED.value)
            )
            session.commit()
            if result.rowcount == 0:
                if session.get(PriceQuote, quote_id) is None:
                    raise QuoteNotFoundError(quote_id)
                raise NotActiveError(quote_id)
            supplier_id = session.get(PriceQuote, quote_id).supplier_id

        logger.info(f"[QUOTE] Voided quote {quote_id}")
        self.audit.log_void(user_id, supplier_id, "price_quote", quote_id)
