"""
임포트 오케스트레이터

잡 1건을 PENDING 에서 종료 상태까지 진행시키는 상태 머신입니다.

    로드 -> RUNNING 전환 -> 텍스트 추출 -> LLM 추출 -> 출항일 파싱
         -> 항차 매칭 -> 선실 타입 매칭 + 견적 행별 생성 -> 종료 기록

DB/파일 작업은 asyncio.to_thread 로 실행하며 각 await 가 취소 지점입니다.
취소(CancelledError)는 잡지 않으므로 취소된 잡은 RUNNING 으로 남습니다.
"""
import asyncio
import logging
from datetime import date, datetime
from typing import Callable, Optional

from sqlalchemy.orm import Session

from cruise_quotes.models import ImportJob
from cruise_quotes.schemas import ImportJobKind, ImportJobStatus, ImportResultSummary, QuoteParseResult, QuoteSource
from cruise_quotes.services.audit import AuditService
from cruise_quotes.services.catalog import CatalogRepository
from cruise_quotes.services.catalog_matcher import CatalogMatcher, MatchResult
from cruise_quotes.services.exceptions import (
    ImportPipelineError,
    InvalidDepartureDateError,
    JobNotFoundError,
    JobStateConflictError,
    SailingUnresolvedError,
    SchemaViolationError,
    UnsupportedKindError,
)
from cruise_quotes.services.import_job_repository import ImportJobRepository
from cruise_quotes.services.llm.ollama import OllamaClient
from cruise_quotes.services.llm.response_parser import to_pricing_unit
from cruise_quotes.services.quote_service import CreateQuoteInput, QuoteService, format_price
from cruise_quotes.services.text_extraction import detect_kind, extract_text

logger = logging.getLogger(__name__)

_QUOTE_SOURCE_BY_KIND = {
    ImportJobKind.FILE_UPLOAD.value: QuoteSource.FILE_IMPORT,
    ImportJobKind.TEXT_INPUT.value: QuoteSource.TEXT_IMPORT,
}


class ImportOrchestrator:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        llm_client=None,
        matcher: Optional[CatalogMatcher] = None,
        quote_service: Optional[QuoteService] = None,
        audit: Optional[AuditService] = None,
    ):
        self.jobs = ImportJobRepository(session_factory)
        self.audit = audit or AuditService(session_factory)
        self.llm = llm_client or OllamaClient()
        self.matcher = matcher or CatalogMatcher(CatalogRepository(session_factory))
        self.quotes = quote_service or QuoteService(session_factory, audit=self.audit)

    async def _load_text(self, job: ImportJob) -> str:
        if job.type == ImportJobKind.TEXT_INPUT.value:
            return job.raw_text or ""
        if job.type != ImportJobKind.FILE_UPLOAD.value:
            raise UnsupportedKindError(f"job type {job.type} is not handled by the import pipeline")

        kind = detect_kind(job.file_name or job.file_path or "")
        text = await asyncio.to_thread(extract_text, job.file_path, kind)
        logger.info(f"[IMPORT] Job {job.id}: extracted {len(text)} chars from {job.file_name} ({kind.value})")
        return text

    async def _extract(self, job: ImportJob, text: str, summary: ImportResultSummary) -> QuoteParseResult:
        try:
            return await self.llm.extract_quotes(text)
        except SchemaViolationError as e:
            summary.add_warning(f"schema violation: {e.field}")
            raise

    def _parse_departure(self, value: Optional[str], summary: ImportResultSummary) -> date:
        try:
            return datetime.strptime(value or "", "%Y-%m-%d").date()
        except ValueError as e:
            summary.add_warning(f"invalid departure date: {value or ''}")
            raise InvalidDepartureDateError(value or "") from e

    async def _match_sailing(self, parsed: QuoteParseResult, departure: date, summary: ImportResultSummary) -> MatchResult:
        match = await asyncio.to_thread(
            self.matcher.match_sailing, parsed.sailing_code, parsed.ship_name, departure, parsed.nights
        )
        if match.sailing is None:
            summary.add_warning("sailing not found in catalog")
            for issue in match.issues:
                summary.add_warning(issue)
            raise SailingUnresolvedError(parsed.sailing_code, parsed.ship_name, match.issues)

        if match.confidence < 1.0:
            for issue in match.issues:
                summary.add_warning(issue)
        return match

    async def _write_quotes(
        self,
        job: ImportJob,
        parsed: QuoteParseResult,
        match: MatchResult,
        summary: ImportResultSummary,
    ) -> None:
        items = [(quote.cabin_type_name, quote.cabin_category or "") for quote in parsed.quotes]
        cabin_matches = await asyncio.to_thread(
            self.matcher.match_cabin_types, match.sailing.ship_id, items
        )
        source = _QUOTE_SOURCE_BY_KIND[job.type]

        for item in parsed.quotes:
            name = item.cabin_type_name
            cabin = cabin_matches[(name, item.cabin_category or "")]
            if cabin.cabin_type_id is None:
                summary.skipped_rows += 1
                summary.add_warning(f"cabin type {name} not matched (confidence: {cabin.score:.2f})")
                continue
            match.cabin_types[name] = cabin.cabin_type_id

            data = CreateQuoteInput(
                sailing_id=match.sailing.id,
                cabin_type_id=cabin.cabin_type_id,
                supplier_id=job.supplier_id,
                price=format_price(item.price),
                currency=item.currency,
                pricing_unit=to_pricing_unit(item.pricing_unit),
                created_by=job.created_by,
                source=source,
                source_ref=job.file_name,
                import_job_id=job.id,
                conditions=item.conditions,
                promotion=item.promotion,
                notes=item.notes,
            )
            try:
                await asyncio.to_thread(self.quotes.create, data)
            except Exception as e:
                summary.skipped_rows += 1
                summary.add_warning(f"failed to create quote for cabin {name}: {e}")
                logger.warning(f"[IMPORT] Job {job.id}: quote for cabin {name} skipped: {e}")
                continue
            summary.success_rows += 1
            summary.created_quotes += 1

        summary.total_rows = len(parsed.quotes)

    async def process(self, job_id: int) -> Optional[ImportJobStatus]:
        """
        잡 1건 처리.

        Returns:
            기록한 종료 상태. 잡이 없거나 다른 워커가 이미 가져간 경우 None.
        """
        job = await asyncio.to_thread(self.jobs.get, job_id)
        if job is None:
            logger.error(f"[IMPORT] {JobNotFoundError(job_id)}")
            return None

        try:
            await asyncio.to_thread(
                self.jobs.mark_started,
                job_id,
                getattr(self.llm, "model_version", None),
                getattr(self.llm, "prompt_version", None),
            )
        except JobStateConflictError:
            logger.info(f"[IMPORT] Job {job_id} already claimed; skipping")
            return None

        logger.info(f"[IMPORT] Job {job_id} started ({job.type}, file={job.file_name})")
        summary = ImportResultSummary()
        status = ImportJobStatus.SUCCEEDED
        error: Optional[str] = None

        try:
            text = await self._load_text(job)
            parsed = await self._extract(job, text, summary)
            departure = self._parse_departure(parsed.departure_date, summary)
            match = await self._match_sailing(parsed, departure, summary)
            await self._write_quotes(job, parsed, match, summary)
        except ImportPipelineError as e:
            status, error = ImportJobStatus.FAILED, e.message
            logger.warning(f"[IMPORT] Job {job_id} failed: {e.error_code}: {e.message}")
        except Exception as e:
            status, error = ImportJobStatus.FAILED, str(e) or e.__class__.__name__
            logger.exception(f"[IMPORT] Job {job_id} failed with unexpected error")

        summary_data = summary.model_dump()
        try:
            await asyncio.to_thread(self.jobs.mark_completed, job_id, status, summary_data, error)
        except JobStateConflictError as e:
            logger.error(f"[IMPORT] Job {job_id} could not be completed: {e}")
            return None

        logger.info(
            f"[IMPORT] Job {job_id} completed. Status: {status.value}, "
            f"Created: {summary.created_quotes}/{summary.total_rows}, Skipped: {summary.skipped_rows}, "
            f"Warnings: {len(summary.warnings)}"
        )
        await asyncio.to_thread(
            self.audit.log_import,
            job.created_by,
            job.supplier_id,
            job_id,
            {"status": status.value, **summary_data},
        )
        return status
