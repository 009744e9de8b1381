"""
임포트 잡 저장소

모든 상태 전이는 현재 상태를 조건으로 하는 단일 UPDATE 로 수행합니다.
조건이 맞지 않아 0건이 갱신되면 JobStateConflictError 를 올리며,
이는 다른 워커가 이미 잡을 가져갔거나 잡이 종료되었음을 뜻합니다.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from cruise_quotes.models import ImportJob
from cruise_quotes.schemas import ImportJobKind, ImportJobStatus, TERMINAL_JOB_STATUSES
from cruise_quotes.services.exceptions import JobNotFoundError, JobStateConflictError

logger = logging.getLogger(__name__)

ABANDONED_ERROR_MESSAGE = "abandoned: worker stopped while the job was running"


class ImportJobRepository:
    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def get(self, job_id: int) -> Optional[ImportJob]:
        with self.session_factory() as session:
            return session.get(ImportJob, job_id)

    def find_by_idempotency_key(self, key: str) -> Optional[ImportJob]:
        if not key:
            return None
        with self.session_factory() as session:
            return session.scalars(
                select(ImportJob).where(ImportJob.idempotency_key == key)
            ).first()

    def create(self, job: ImportJob) -> ImportJob:
        """
        PENDING 잡 생성.

        멱등 키가 동시에 충돌하면(UNIQUE 위반) 기존 잡을 그대로 반환합니다.
        반환된 잡의 id 가 전달한 잡과 다른지로 충돌 여부를 판단할 수 있습니다.
        """
        job.status = ImportJobStatus.PENDING.value
        with self.session_factory() as session:
            session.add(job)
            try:
                session.commit()
                session.refresh(job)
            except IntegrityError:
                session.rollback()
                if job.idempotency_key:
                    existing = self.find_by_idempotency_key(job.idempotency_key)
                    if existing is not None:
                        logger.info(
                            f"[JOBS] Idempotency key collision ({job.idempotency_key}); returning job {existing.id}"
                        )
                        return existing
                raise
        logger.info(f"[JOBS] Created import job {job.id} ({job.type})")
        return job

    def claim_next_pending(self, exclude_ids: Sequence[int] = ()) -> Optional[ImportJob]:
        """가장 오래된 PENDING 잡 조회 (실제 점유는 mark_started 의 조건부 UPDATE 가 담당)"""
        stmt = select(ImportJob).where(ImportJob.status == ImportJobStatus.PENDING.value)
        if exclude_ids:
            stmt = stmt.where(ImportJob.id.not_in(list(exclude_ids)))
        stmt = stmt.order_by(ImportJob.created_at, ImportJob.id).limit(1)
        with self.session_factory() as session:
            return session.scalars(stmt).first()

    def _transition(
        self,
        job_id: int,
        expected: Sequence[ImportJobStatus],
        target: ImportJobStatus,
        values: Dict[str, Any],
    ) -> None:
        with self.session_factory() as session:
            result = session.execute(
                update(ImportJob)
                .where(ImportJob.id == job_id, ImportJob.status.in_([s.value for s in expected]))
                .values(status=target.value, **values)
            )
            session.commit()
            if result.rowcount == 0:
                if session.get(ImportJob, job_id) is None:
                    raise JobNotFoundError(job_id)
                raise JobStateConflictError(job_id, "/".join(s.value for s in expected), target.value)

    def mark_started(
        self,
        job_id: int,
        model_version: Optional[str] = None,
        prompt_version: Optional[str] = None,
    ) -> None:
        """PENDING -> RUNNING, started_at 기록 (이후 변경 불가)"""
        values: Dict[str, Any] = {"started_at": datetime.now(timezone.utc)}
        if model_version:
            values["model_version"] = model_version
        if prompt_version:
            values["prompt_version"] = prompt_version
        self._transition(job_id, [ImportJobStatus.PENDING], ImportJobStatus.RUNNING, values)

    def mark_needs_confirmation(self, job_id: int, summary: Optional[Dict[str, Any]] = None) -> None:
        values: Dict[str, Any] = {}
        if summary is not None:
            values["result_summary"] = summary
        self._transition(job_id, [ImportJobStatus.RUNNING], ImportJobStatus.NEEDS_CONFIRMATION, values)

    def mark_completed(
        self,
        job_id: int,
        status: ImportJobStatus,
        summary: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None,
    ) -> None:
        """
        종료 전이. status/result_summary/error_message/completed_at 을 한 문장으로 기록.

        RUNNING 또는 NEEDS_CONFIRMATION 에서만 허용됩니다.
        """
        if status not in TERMINAL_JOB_STATUSES:
            raise ValueError(f"{status} is not a terminal status")
        self._transition(
            job_id,
            [ImportJobStatus.RUNNING, ImportJobStatus.NEEDS_CONFIRMATION],
            status,
            {
                "result_summary": summary,
                "error_message": error if status == ImportJobStatus.FAILED else None,
                "completed_at": datetime.now(timezone.utc),
            },
        )

    def fail_abandoned(self, older_than: timedelta) -> int:
        """
        started_at 이 older_than 보다 오래된 RUNNING 잡을 FAILED 로 정리.

        PENDING 으로 되돌리지 않습니다 (역방향 전이 금지).
        """
        now = datetime.now(timezone.utc)
        with self.session_factory() as session:
            result = session.execute(
                update(ImportJob)
                .where(
                    ImportJob.status == ImportJobStatus.RUNNING.value,
                    ImportJob.started_at < now - older_than,
                )
                .values(
                    status=ImportJobStatus.FAILED.value,
                    error_message=ABANDONED_ERROR_MESSAGE,
                    completed_at=now,
                )
            )
            session.commit()
        if result.rowcount:
            logger.warning(f"[JOBS] Marked {result.rowcount} abandoned running job(s) as failed")
        return result.rowcount

    def list_jobs(
        self,
        page: int = 1,
        page_size: int = 20,
        status: Optional[ImportJobStatus] = None,
        kind: Optional[ImportJobKind] = None,
        created_by: Optional[int] = None,
    ) -> List[ImportJob]:
        stmt = select(ImportJob)
        if status is not None:
            stmt = stmt.where(ImportJob.status == ImportJobStatus(status).value)
        if kind is not None:
            stmt = stmt.where(ImportJob.type == ImportJobKind(kind).value)
        if created_by is not None:
            stmt = stmt.where(ImportJob.created_by == created_by)
        stmt = stmt.order_by(ImportJob.created_at.desc(), ImportJob.id.desc())
        stmt = stmt.offset(max(page - 1, 0) * page_size).limit(page_size)
        with self.session_factory() as session:
            return list(session.scalars(stmt))
