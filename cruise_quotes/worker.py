"""
임포트 워커

폴러 1개 + 프로세서 W개로 구성된 단일 프로세스 워커입니다.
폴러는 poll_interval 마다 가장 오래된 PENDING 잡을 조회하여 크기 W 의 큐에 넣고,
큐가 가득 차면 다음 틱으로 미룹니다 (잡은 DB 에 PENDING 으로 남음).
"""
import asyncio
import logging
from datetime import timedelta
from typing import Callable, Optional, Set

from sqlalchemy.orm import Session

from cruise_quotes.services.import_job_repository import ImportJobRepository
from cruise_quotes.services.import_orchestrator import ImportOrchestrator
from cruise_quotes.settings import settings

logger = logging.getLogger(__name__)


class ImportWorker:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        orchestrator: Optional[ImportOrchestrator] = None,
        poll_interval: Optional[float] = None,
        concurrency: Optional[int] = None,
        abandoned_after_seconds: Optional[int] = None,
    ):
        self.jobs = ImportJobRepository(session_factory)
        self.orchestrator = orchestrator or ImportOrchestrator(session_factory)
        self.poll_interval = poll_interval or settings.worker_poll_interval
        self.concurrency = concurrency or settings.worker_concurrency
        self.abandoned_after_seconds = (
            settings.worker_abandoned_after_seconds if abandoned_after_seconds is None else abandoned_after_seconds
        )
        self.in_flight: Set[int] = set()
        self.processed_count = 0

    async def recover_abandoned(self) -> int:
        if self.abandoned_after_seconds <= 0:
            return 0
        return await asyncio.to_thread(
            self.jobs.fail_abandoned, timedelta(seconds=self.abandoned_after_seconds)
        )

    async def tick(self, queue: "asyncio.Queue[int]") -> Optional[int]:
        """PENDING 잡 1건을 큐에 전달. 전달한 잡 id 를 반환"""
        job = await asyncio.to_thread(self.jobs.claim_next_pending, list(self.in_flight))
        if job is None:
            return None
        try:
            queue.put_nowait(job.id)
        except asyncio.QueueFull:
            logger.warning(f"[WORKER] Job channel full, will retry job {job.id} later")
            return None
        self.in_flight.add(job.id)
        logger.debug(f"[WORKER] Dispatched job {job.id}")
        return job.id

    async def _poll(self, queue: "asyncio.Queue[int]", stop_event: asyncio.Event) -> None:
        while not stop_event.is_set():
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.poll_interval)
                break
            except asyncio.TimeoutError:
                pass
            try:
                await self.tick(queue)
            except Exception as e:
                logger.error(f"[WORKER] Poll failed: {e}")

    async def _process_loop(self, index: int, queue: "asyncio.Queue[int]") -> None:
        while True:
            job_id = await queue.get()
            try:
                await self.orchestrator.process(job_id)
                self.processed_count += 1
            except Exception:
                logger.exception(f"[WORKER] Processor {index} crashed on job {job_id}")
            finally:
                self.in_flight.discard(job_id)
                queue.task_done()

    async def run(self, stop_event: asyncio.Event) -> None:
        """
        stop_event 가 설정될 때까지 실행.

        종료 시 폴러를 멈추고 프로세서를 취소합니다. 처리 중이던 잡은 RUNNING 으로 남고
        큐에만 들어 있던 잡은 PENDING 그대로 남습니다.
        """
        recovered = await self.recover_abandoned()
        logger.info(
            f"[WORKER] Starting (concurrency={self.concurrency}, poll_interval={self.poll_interval}s, "
            f"recovered={recovered})"
        )

        queue: "asyncio.Queue[int]" = asyncio.Queue(maxsize=self.concurrency)
        processors = [
            asyncio.create_task(self._process_loop(i, queue), name=f"import-processor-{i}")
            for i in range(self.concurrency)
        ]
        try:
            await self._poll(queue, stop_event)
        finally:
            for task in processors:
                task.cancel()
            await asyncio.gather(*processors, return_exceptions=True)
            logger.info(f"[WORKER] Stopped (processed={self.processed_count}, undelivered={queue.qsize()})")
