import io
import logging
import os
from typing import BinaryIO, Callable, Optional, Union

from sqlalchemy.orm import Session

from cruise_quotes.models import ImportJob
from cruise_quotes.schemas import ImportJobKind, ImportJobStatus
from cruise_quotes.services.audit import AuditService
from cruise_quotes.services.exceptions import FileTooLargeError, SubmissionError, UnsupportedFileTypeError
from cruise_quotes.services.file_storage import FileStorage
from cruise_quotes.services.import_job_repository import ImportJobRepository
from cruise_quotes.services.text_extraction import SUPPORTED_SUFFIXES
from cruise_quotes.settings import settings

logger = logging.getLogger(__name__)


class ImportJobService:
    """
    임포트 잡 제출 경계 (HTTP 업로드 핸들러/CLI 가 호출).

    같은 멱등 키로 다시 제출하면 파일 저장/잡 생성 없이 기존 잡을 반환합니다.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        storage: Optional[FileStorage] = None,
        audit: Optional[AuditService] = None,
        max_upload_bytes: Optional[int] = None,
    ):
        self.jobs = ImportJobRepository(session_factory)
        self.storage = storage or FileStorage()
        self.audit = audit or AuditService(session_factory)
        self.max_upload_bytes = max_upload_bytes or settings.max_upload_bytes

    def _existing(self, idempotency_key: Optional[str]) -> Optional[ImportJob]:
        if not idempotency_key:
            return None
        existing = self.jobs.find_by_idempotency_key(idempotency_key)
        if existing is not None:
            logger.info(f"[SUBMIT] Idempotent resubmission ({idempotency_key}); returning job {existing.id}")
        return existing

    def _persist(self, job: ImportJob, staged_path: Optional[str] = None) -> ImportJob:
        saved = self.jobs.create(job)
        if saved is not job:
            # 멱등 키 경합에서 진 경우: 방금 저장한 파일은 버림
            if staged_path:
                self.storage.remove(staged_path)
            return saved
        self.audit.log_create(
            job.created_by,
            job.supplier_id,
            "import_job",
            job.id,
            {"type": job.type, "file_name": job.file_name, "file_hash": job.file_hash, "file_size": job.file_size},
        )
        return saved

    def submit(
        self,
        file_name: str,
        data: Union[bytes, BinaryIO],
        creator_id: int,
        supplier_id: int,
        idempotency_key: Optional[str] = None,
    ) -> ImportJob:
        existing = self._existing(idempotency_key)
        if existing is not None:
            return existing

        if os.path.splitext(file_name)[1].lower() not in SUPPORTED_SUFFIXES:
            raise UnsupportedFileTypeError(file_name)

        if isinstance(data, (bytes, bytearray)):
            size = len(data)
            stream: BinaryIO = io.BytesIO(data)
        else:
            stream = data
            stream.seek(0, os.SEEK_END)
            size = stream.tell()
            stream.seek(0)
        if size > self.max_upload_bytes:
            raise FileTooLargeError(size, self.max_upload_bytes)

        staged = self.storage.stage(file_name, stream)
        job = ImportJob(
            type=ImportJobKind.FILE_UPLOAD.value,
            status=ImportJobStatus.PENDING.value,
            file_name=file_name,
            file_hash=staged.digest,
            file_size=staged.size,
            file_path=staged.path,
            idempotency_key=idempotency_key or None,
            supplier_id=supplier_id,
            created_by=creator_id,
        )
        return self._persist(job, staged.path)

    def submit_text(
        self,
        raw_text: str,
        creator_id: int,
        supplier_id: int,
        idempotency_key: Optional[str] = None,
    ) -> ImportJob:
        existing = self._existing(idempotency_key)
        if existing is not None:
            return existing

        if not raw_text or not raw_text.strip():
            raise SubmissionError("text input is empty")
        if len(raw_text.encode("utf-8")) > self.max_upload_bytes:
            raise FileTooLargeError(len(raw_text.encode("utf-8")), self.max_upload_bytes)

        job = ImportJob(
            type=ImportJobKind.TEXT_INPUT.value,
            status=ImportJobStatus.PENDING.value,
            raw_text=raw_text,
            idempotency_key=idempotency_key or None,
            supplier_id=supplier_id,
            created_by=creator_id,
        )
        return self._persist(job)
