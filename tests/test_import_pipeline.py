"""
Integration tests for the import pipeline.

제출(ImportJobService) -> 처리(ImportOrchestrator) -> 견적/잡/감사 기록까지
SQLite 파일 DB 위에서 실제 추출기/매처/견적 서비스를 그대로 사용합니다.
LLM 만 고정 응답을 돌려주는 스크립트 클라이언트로 대체합니다.
"""

import asyncio
import json

import pytest
from sqlalchemy import select

from cruise_quotes.models import AuditLog, ImportJob, PriceQuote
from cruise_quotes.schemas import ImportJobKind, ImportJobStatus, QuoteSource
from cruise_quotes.services.exceptions import NotActiveError
from cruise_quotes.services.file_storage import FileStorage
from cruise_quotes.services.import_job_repository import ImportJobRepository
from cruise_quotes.services.import_job_service import ImportJobService
from cruise_quotes.services.import_orchestrator import ImportOrchestrator
from cruise_quotes.services.llm.response_parser import parse_quote_response
from cruise_quotes.services.quote_service import QuoteService

PARAGRAPH = "QN20260515 海洋量子号 5晚 阳台 4200元/人"


def _reply(**overrides):
    data = {
        "sailing_code": "QN20260515",
        "ship_name": "Quantum of the Seas",
        "departure_date": "2026-05-15",
        "nights": 5,
        "route": "Tokyo–Osaka",
        "quotes": [
            {"cabin_type_name": "Balcony", "cabin_category": "阳台", "price": 4200,
             "currency": "CNY", "pricing_unit": "PER_PERSON"},
        ],
    }
    data.update(overrides)
    return json.dumps(data, ensure_ascii=False)


class ScriptedLLMClient:
    """고정 응답을 실제 응답 파서에 통과시키는 LLM 대역"""

    model_version = "scripted:test"
    prompt_version = "quote_parse.test"

    def __init__(self, reply: str, delay: float = 0.0):
        self.reply = reply
        self.delay = delay
        self.texts = []
        self.started = asyncio.Event()

    async def extract_quotes(self, text: str):
        self.texts.append(text)
        self.started.set()
        if self.delay:
            await asyncio.sleep(self.delay)
        return parse_quote_response(self.reply)


@pytest.fixture
def submissions(session_factory, tmp_path):
    return ImportJobService(session_factory, storage=FileStorage(upload_dir=str(tmp_path / "uploads")))


def _orchestrator(session_factory, reply, **kwargs):
    llm = ScriptedLLMClient(reply, **kwargs)
    return ImportOrchestrator(session_factory, llm_client=llm), llm


def _job(session_factory, job_id) -> ImportJob:
    with session_factory() as session:
        return session.get(ImportJob, job_id)


def _quotes(session_factory, job_id):
    with session_factory() as session:
        return list(session.scalars(select(PriceQuote).where(PriceQuote.import_job_id == job_id)))


def _submit_docx(submissions, docx_factory, catalog, paragraphs=(PARAGRAPH,), **kwargs):
    path = docx_factory(list(paragraphs))
    with open(path, "rb") as f:
        return submissions.submit(
            path.name, f, creator_id=7, supplier_id=kwargs.pop("supplier_id", catalog.supplier_id), **kwargs
        )


@pytest.mark.integration
class TestImportPipeline:

    @pytest.mark.asyncio
    async def test_happy_path(self, session_factory, submissions, docx_factory, catalog):
        job = _submit_docx(submissions, docx_factory, catalog)
        orchestrator, llm = _orchestrator(session_factory, _reply())

        status = await orchestrator.process(job.id)

        assert status == ImportJobStatus.SUCCEEDED
        assert llm.texts == [PARAGRAPH]

        saved = _job(session_factory, job.id)
        assert saved.status == ImportJobStatus.SUCCEEDED.value
        assert saved.result_summary == {
            "total_rows": 1,
            "success_rows": 1,
            "failed_rows": 0,
            "skipped_rows": 0,
            "created_quotes": 1,
            "warnings": [],
        }
        assert saved.error_message is None
        assert saved.model_version == "scripted:test"
        assert saved.prompt_version == "quote_parse.test"
        assert saved.started_at is not None
        assert saved.completed_at is not None

        quotes = _quotes(session_factory, job.id)
        assert len(quotes) == 1
        quote = quotes[0]
        assert quote.sailing_id == catalog.sailing_id
        assert quote.cabin_type_id == catalog.balcony_id
        assert quote.supplier_id == catalog.supplier_id
        assert str(quote.price) == "4200.00"
        assert quote.currency == "CNY"
        assert quote.pricing_unit == "PER_PERSON"
        assert quote.source == QuoteSource.FILE_IMPORT.value
        assert quote.source_ref == "quote.docx"
        assert quote.status == "ACTIVE"
        assert quote.created_by == 7

    @pytest.mark.asyncio
    async def test_unmatched_cabin_type_is_skipped(self, session_factory, submissions, docx_factory, catalog):
        job = _submit_docx(submissions, docx_factory, catalog)
        reply = _reply(quotes=[
            {"cabin_type_name": "Balcony", "cabin_category": "阳台", "price": 4200,
             "currency": "CNY", "pricing_unit": "PER_PERSON"},
            {"cabin_type_name": "Zephyr Suite", "cabin_category": "", "price": 9800,
             "currency": "CNY", "pricing_unit": "PER_CABIN"},
        ])
        orchestrator, _ = _orchestrator(session_factory, reply)

        assert await orchestrator.process(job.id) == ImportJobStatus.SUCCEEDED

        summary = _job(session_factory, job.id).result_summary
        assert summary["total_rows"] == 2
        assert summary["success_rows"] == 1
        assert summary["skipped_rows"] == 1
        assert summary["created_quotes"] == 1
        assert len(summary["warnings"]) == 1
        assert summary["warnings"][0].startswith("cabin type Zephyr Suite not matched (confidence: ")
        assert len(_quotes(session_factory, job.id)) == 1

    @pytest.mark.asyncio
    async def test_same_cabin_name_matched_with_its_own_category(
        self, session_factory, submissions, docx_factory, catalog
    ):
        job = _submit_docx(submissions, docx_factory, catalog)
        # "balcony room" vs "balcony" = 7/12 ≈ 0.58, 阳台 카테고리 보너스가 있어야 임계값 통과
        reply = _reply(quotes=[
            {"cabin_type_name": "Balcony Room", "cabin_category": "阳台", "price": 4200,
             "currency": "CNY", "pricing_unit": "PER_PERSON"},
            {"cabin_type_name": "Balcony Room", "cabin_category": "套房", "price": 8800,
             "currency": "CNY", "pricing_unit": "PER_PERSON"},
        ])
        orchestrator, _ = _orchestrator(session_factory, reply)

        assert await orchestrator.process(job.id) == ImportJobStatus.SUCCEEDED

        summary = _job(session_factory, job.id).result_summary
        assert summary["created_quotes"] == 1
        assert summary["skipped_rows"] == 1
        assert summary["warnings"] == ["cabin type Balcony Room not matched (confidence: 0.58)"]
        quotes = _quotes(session_factory, job.id)
        assert [(q.cabin_type_id, str(q.price)) for q in quotes] == [(catalog.balcony_id, "4200.00")]

    @pytest.mark.asyncio
    async def test_unresolved_sailing_fails(self, session_factory, submissions, docx_factory, catalog):
        job = _submit_docx(submissions, docx_factory, catalog)
        reply = _reply(sailing_code="XX999", ship_name="Nonexistent Ship")
        orchestrator, _ = _orchestrator(session_factory, reply)

        assert await orchestrator.process(job.id) == ImportJobStatus.FAILED

        saved = _job(session_factory, job.id)
        assert saved.status == ImportJobStatus.FAILED.value
        assert "sailing not resolved" in saved.error_message
        assert "sailing not found in catalog" in saved.result_summary["warnings"]
        assert saved.result_summary["created_quotes"] == 0
        assert _quotes(session_factory, job.id) == []

    @pytest.mark.asyncio
    async def test_schema_violation_fails(self, session_factory, submissions, docx_factory, catalog):
        job = _submit_docx(submissions, docx_factory, catalog)
        orchestrator, _ = _orchestrator(session_factory, _reply(sailing_code=""))

        assert await orchestrator.process(job.id) == ImportJobStatus.FAILED

        saved = _job(session_factory, job.id)
        assert "sailing_code" in saved.error_message
        assert saved.result_summary["warnings"] == ["schema violation: sailing_code"]
        assert _quotes(session_factory, job.id) == []

    @pytest.mark.asyncio
    async def test_non_finite_price_fails(self, session_factory, submissions, docx_factory, catalog):
        job = _submit_docx(submissions, docx_factory, catalog)
        reply = _reply(quotes=[
            {"cabin_type_name": "Balcony", "cabin_category": "阳台", "price": float("nan"),
             "currency": "CNY", "pricing_unit": "PER_PERSON"},
        ])
        assert "NaN" in reply
        orchestrator, _ = _orchestrator(session_factory, reply)

        assert await orchestrator.process(job.id) == ImportJobStatus.FAILED

        saved = _job(session_factory, job.id)
        assert "quotes[0].price" in saved.error_message
        assert saved.result_summary["warnings"] == ["schema violation: quotes[0].price"]
        assert _quotes(session_factory, job.id) == []

    @pytest.mark.asyncio
    async def test_invalid_departure_date_fails(self, session_factory, submissions, docx_factory, catalog):
        job = _submit_docx(submissions, docx_factory, catalog)
        orchestrator, _ = _orchestrator(session_factory, _reply(departure_date=""))

        assert await orchestrator.process(job.id) == ImportJobStatus.FAILED

        saved = _job(session_factory, job.id)
        assert saved.error_message == "invalid departure date: "
        assert saved.result_summary["warnings"] == ["invalid departure date: "]

    @pytest.mark.asyncio
    async def test_idempotent_resubmission(self, session_factory, submissions, docx_factory, catalog):
        first = _submit_docx(submissions, docx_factory, catalog, idempotency_key="upload-42")
        second = _submit_docx(submissions, docx_factory, catalog, idempotency_key="upload-42")

        assert second.id == first.id
        with session_factory() as session:
            assert len(list(session.scalars(select(ImportJob)))) == 1

    @pytest.mark.asyncio
    async def test_concurrent_void_of_imported_quote(self, session_factory, submissions, docx_factory, catalog):
        job = _submit_docx(submissions, docx_factory, catalog)
        orchestrator, _ = _orchestrator(session_factory, _reply())
        await orchestrator.process(job.id)
        quote_id = _quotes(session_factory, job.id)[0].id

        service = QuoteService(session_factory)
        results = await asyncio.gather(
            asyncio.to_thread(service.void, quote_id, 7),
            asyncio.to_thread(service.void, quote_id, 8),
            return_exceptions=True,
        )

        assert sum(1 for r in results if r is None) == 1
        assert sum(1 for r in results if isinstance(r, NotActiveError)) == 1
        assert _quotes(session_factory, job.id)[0].status == "VOIDED"

    @pytest.mark.asyncio
    async def test_fenced_reply_with_trailing_comma(self, session_factory, submissions, docx_factory, catalog):
        job = _submit_docx(submissions, docx_factory, catalog)
        reply = (
            "```json\n"
            '{"sailing_code": "QN20260515", "ship_name": "Quantum of the Seas", "departure_date": "2026-05-15",'
            ' "nights": 5, "route": "Tokyo–Osaka", "quotes": [{"cabin_type_name": "Balcony",'
            ' "cabin_category": "阳台", "price": 4200, "currency": "CNY", "pricing_unit": "PER_PERSON",},],}\n'
            "```"
        )
        orchestrator, _ = _orchestrator(session_factory, reply)

        assert await orchestrator.process(job.id) == ImportJobStatus.SUCCEEDED
        saved = _job(session_factory, job.id)
        assert saved.result_summary["created_quotes"] == 1
        assert saved.result_summary["warnings"] == []
        assert len(_quotes(session_factory, job.id)) == 1

    @pytest.mark.asyncio
    async def test_ship_alias_and_near_departure(self, session_factory, submissions, docx_factory, catalog):
        job = _submit_docx(submissions, docx_factory, catalog)
        reply = _reply(sailing_code="QN0516", ship_name="海洋量子号", departure_date="2026-05-16")
        orchestrator, _ = _orchestrator(session_factory, reply)

        assert await orchestrator.process(job.id) == ImportJobStatus.SUCCEEDED

        saved = _job(session_factory, job.id)
        assert saved.result_summary["created_quotes"] == 1
        assert saved.result_summary["warnings"]
        assert _quotes(session_factory, job.id)[0].sailing_id == catalog.sailing_id

    @pytest.mark.asyncio
    async def test_text_input_job(self, session_factory, submissions, catalog):
        job = submissions.submit_text(PARAGRAPH, creator_id=7, supplier_id=catalog.supplier_id)
        orchestrator, llm = _orchestrator(session_factory, _reply())

        assert await orchestrator.process(job.id) == ImportJobStatus.SUCCEEDED
        assert llm.texts == [PARAGRAPH]

        quote = _quotes(session_factory, job.id)[0]
        assert quote.source == QuoteSource.TEXT_IMPORT.value
        assert quote.source_ref is None

    @pytest.mark.asyncio
    async def test_quote_write_failure_skips_row(self, session_factory, submissions, docx_factory, catalog):
        job = _submit_docx(submissions, docx_factory, catalog, supplier_id=9999)
        orchestrator, _ = _orchestrator(session_factory, _reply())

        assert await orchestrator.process(job.id) == ImportJobStatus.SUCCEEDED

        summary = _job(session_factory, job.id).result_summary
        assert summary["total_rows"] == 1
        assert summary["skipped_rows"] == 1
        assert summary["created_quotes"] == 0
        assert summary["warnings"][0].startswith("failed to create quote for cabin Balcony: ")

    @pytest.mark.asyncio
    async def test_corrupt_document_fails(self, session_factory, submissions, catalog):
        job = submissions.submit("broken.docx", b"this is not a zip archive", creator_id=7,
                                 supplier_id=catalog.supplier_id)
        orchestrator, llm = _orchestrator(session_factory, _reply())

        assert await orchestrator.process(job.id) == ImportJobStatus.FAILED
        assert llm.texts == []
        saved = _job(session_factory, job.id)
        assert saved.error_message
        assert saved.result_summary["created_quotes"] == 0

    @pytest.mark.asyncio
    async def test_unsupported_job_kind_fails(self, session_factory, catalog):
        job = _create_job(session_factory, ImportJobKind.TEMPLATE_IMPORT, catalog)
        orchestrator, _ = _orchestrator(session_factory, _reply())

        assert await orchestrator.process(job.id) == ImportJobStatus.FAILED
        assert "TEMPLATE_IMPORT" in _job(session_factory, job.id).error_message

    @pytest.mark.asyncio
    async def test_second_process_is_noop(self, session_factory, submissions, docx_factory, catalog):
        job = _submit_docx(submissions, docx_factory, catalog)
        orchestrator, _ = _orchestrator(session_factory, _reply())

        assert await orchestrator.process(job.id) == ImportJobStatus.SUCCEEDED
        assert await orchestrator.process(job.id) is None
        assert len(_quotes(session_factory, job.id)) == 1

    @pytest.mark.asyncio
    async def test_missing_job(self, session_factory):
        orchestrator, _ = _orchestrator(session_factory, _reply())
        assert await orchestrator.process(424242) is None

    @pytest.mark.asyncio
    async def test_cancelled_job_stays_running(self, session_factory, submissions, catalog):
        job = submissions.submit_text(PARAGRAPH, creator_id=7, supplier_id=catalog.supplier_id)
        orchestrator, _ = _orchestrator(session_factory, _reply(), delay=30)

        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(orchestrator.process(job.id), timeout=0.5)

        saved = _job(session_factory, job.id)
        assert saved.status == ImportJobStatus.RUNNING.value
        assert saved.completed_at is None
        assert _quotes(session_factory, job.id) == []

    @pytest.mark.asyncio
    async def test_import_is_audited(self, session_factory, submissions, docx_factory, catalog):
        job = _submit_docx(submissions, docx_factory, catalog)
        orchestrator, _ = _orchestrator(session_factory, _reply())
        await orchestrator.process(job.id)

        with session_factory() as session:
            entries = list(session.scalars(select(AuditLog).order_by(AuditLog.id)))
        actions = [(e.action, e.entity_type) for e in entries]
        assert actions == [
            ("CREATE", "import_job"),
            ("CREATE", "price_quote"),
            ("IMPORT", "import_job"),
        ]
        assert entries[-1].entity_id == job.id
        assert entries[-1].new_value["status"] == "SUCCEEDED"
        assert entries[-1].new_value["created_quotes"] == 1


def _create_job(session_factory, kind, catalog) -> ImportJob:
    return ImportJobRepository(session_factory).create(
        ImportJob(type=kind.value, raw_text="x", supplier_id=catalog.supplier_id, created_by=1)
    )
