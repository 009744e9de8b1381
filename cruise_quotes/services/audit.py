import logging
from typing import Any, Callable, Dict, Optional

from sqlalchemy.orm import Session

from cruise_quotes.models import AuditLog
from cruise_quotes.schemas import AuditAction

logger = logging.getLogger(__name__)


class AuditService:
    """
    감사 로그 기록 (fire-and-forget).

    기록 실패는 로그만 남기고 호출자에게 전파하지 않습니다.
    호출자의 트랜잭션과 분리하기 위해 매번 별도 세션을 사용합니다.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def _record(
        self,
        action: AuditAction,
        user_id: Optional[int],
        supplier_id: Optional[int],
        entity_type: str,
        entity_id: Optional[int],
        old_value: Optional[Dict[str, Any]] = None,
        new_value: Optional[Dict[str, Any]] = None,
    ) -> None:
        session = self.session_factory()
        try:
            session.add(AuditLog(
                user_id=user_id,
                supplier_id=supplier_id,
                action=action.value,
                entity_type=entity_type,
                entity_id=entity_id,
                old_value=old_value,
                new_value=new_value,
            ))
            session.commit()
            logger.debug(f"Audit recorded: {action.value} {entity_type}#{entity_id}")
        except Exception as e:
            logger.error(f"Failed to record audit log ({action.value} {entity_type}#{entity_id}): {e}")
            session.rollback()
        finally:
            session.close()

    def log_create(
        self,
        user_id: Optional[int],
        supplier_id: Optional[int],
        entity_type: str,
        entity_id: Optional[int],
        payload: Optional[Dict[str, Any]] = None,
    ) -> None:
        self._record(AuditAction.CREATE, user_id, supplier_id, entity_type, entity_id, new_value=payload)

    def log_void(self, user_id: Optional[int], supplier_id: Optional[int], entity_type: str, entity_id: int) -> None:
        self._record(
            AuditAction.VOID, user_id, supplier_id, entity_type, entity_id,
            old_value={"status": "ACTIVE"}, new_value={"status": "VOIDED"},
        )

    def log_import(
        self,
        user_id: Optional[int],
        supplier_id: Optional[int],
        job_id: int,
        summary: Optional[Dict[str, Any]] = None,
    ) -> None:
        self._record(AuditAction.IMPORT, user_id, supplier_id, "import_job", job_id, new_value=summary)
