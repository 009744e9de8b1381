"""
LLM 응답 파서

모델 응답은 신뢰할 수 없는 입력으로 취급합니다.
코드 펜스/잡음 제거 -> JSON 디코딩 -> (실패 시) 후행 콤마 복구 -> 스키마 재검증 순으로 처리하며,
스키마 위반은 처음 위반한 필드명을 담은 SchemaViolationError 로 올립니다.
"""
import json
import logging
import math
import re
from datetime import datetime
from typing import Any, Optional

from pydantic import ValidationError

from cruise_quotes.schemas import CABIN_CATEGORIES, PricingUnit, QuoteParseResult
from cruise_quotes.services.exceptions import EmptyResponseError, SchemaViolationError

logger = logging.getLogger(__name__)

_FENCE_OPEN = re.compile(r"^```[A-Za-z0-9_-]*[ \t]*\n?")
_FENCE_CLOSE = re.compile(r"\n?```\s*$")
_TRAILING_COMMA = re.compile(r",\s*([}\]])")
_CURRENCY_CODE = re.compile(r"[A-Za-z]{3}")

DATE_FORMAT = "%Y-%m-%d"


def clean_response(raw: str) -> str:
    """공백 제거 -> 코드 펜스 제거 -> 첫 '{' 부터 마지막 '}' 까지 자르기"""
    text = raw.strip()
    if text.startswith("```"):
        text = _FENCE_OPEN.sub("", text, count=1)
        text = _FENCE_CLOSE.sub("", text, count=1)
        text = text.strip()

    start = text.find("{")
    end = text.rfind("}")
    if start != -1 and end > start:
        text = text[start:end + 1]
    return text


def repair_json(text: str) -> str:
    """후행 콤마(',}' / ',]') 제거"""
    return _TRAILING_COMMA.sub(r"\1", text)


def decode_response(raw: str) -> Any:
    """
    응답 문자열을 JSON 으로 디코딩.

    각 정리 단계 후 디코딩을 시도하고 성공하면 바로 반환합니다.
    """
    if raw is None or not raw.strip():
        raise EmptyResponseError("model returned an empty response")

    text = raw.strip()
    candidates = [text]
    cleaned = clean_response(text)
    if cleaned != text:
        candidates.append(cleaned)

    for candidate in candidates:
        try:
            return json.loads(candidate)
        except json.JSONDecodeError:
            continue

    repaired = repair_json(cleaned)
    try:
        data = json.loads(repaired)
    except json.JSONDecodeError as e:
        logger.warning(f"[PARSER] JSON recovery failed: {e}")
        raise SchemaViolationError("$", f"response is not valid JSON: {e.msg}") from e

    logger.info("[PARSER] JSON decoded after trailing-comma recovery")
    return data


def _field_path(loc: tuple) -> str:
    """pydantic loc ('quotes', 0, 'price') -> 'quotes[0].price'"""
    path = ""
    for part in loc:
        if isinstance(part, int):
            path += f"[{part}]"
        else:
            path = f"{path}.{part}" if path else str(part)
    return path or "$"


def _is_valid_date(value: str) -> bool:
    try:
        datetime.strptime(value, DATE_FORMAT)
    except ValueError:
        return False
    return True


def validate_parse_result(data: Any) -> QuoteParseResult:
    """디코딩된 JSON 을 QuoteParseResult 로 변환하고 필수 규칙을 검사"""
    if not isinstance(data, dict):
        raise SchemaViolationError("$", "top-level value must be a JSON object")

    try:
        result = QuoteParseResult.model_validate(data)
    except ValidationError as e:
        first = e.errors()[0]
        raise SchemaViolationError(_field_path(first["loc"]), first["msg"]) from e

    if not result.sailing_code.strip():
        raise SchemaViolationError("sailing_code", "must not be empty")
    if not result.ship_name.strip():
        raise SchemaViolationError("ship_name", "must not be empty")
    if result.nights <= 0:
        raise SchemaViolationError("nights", "must be greater than 0")

    result.departure_date = (result.departure_date or "").strip()
    if result.departure_date and not _is_valid_date(result.departure_date):
        raise SchemaViolationError("departure_date", f"must be YYYY-MM-DD, got {result.departure_date!r}")

    if not result.quotes:
        raise SchemaViolationError("quotes", "must contain at least one quote")

    allowed_units = {unit.value for unit in PricingUnit}
    for i, quote in enumerate(result.quotes):
        prefix = f"quotes[{i}]"
        if not quote.cabin_type_name.strip():
            raise SchemaViolationError(f"{prefix}.cabin_type_name", "must not be empty")
        if not math.isfinite(quote.price) or quote.price <= 0:
            raise SchemaViolationError(f"{prefix}.price", "must be a finite number greater than 0")
        if not _CURRENCY_CODE.fullmatch(quote.currency):
            raise SchemaViolationError(f"{prefix}.currency", f"must be a 3-letter ISO 4217 code, got {quote.currency!r}")
        if quote.pricing_unit not in allowed_units:
            raise SchemaViolationError(f"{prefix}.pricing_unit", f"must be one of {sorted(allowed_units)}")
        category = quote.cabin_category or ""
        if category and category not in CABIN_CATEGORIES:
            raise SchemaViolationError(f"{prefix}.cabin_category", f"must be one of {list(CABIN_CATEGORIES)}")

    return result


def parse_quote_response(raw: str) -> QuoteParseResult:
    return validate_parse_result(decode_response(raw))


def to_pricing_unit(value: Optional[str]) -> PricingUnit:
    """알 수 없는 값은 PER_PERSON 으로 처리"""
    try:
        return PricingUnit((value or "").strip().upper())
    except ValueError:
        return PricingUnit.PER_PERSON
