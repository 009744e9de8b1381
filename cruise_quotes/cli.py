import argparse
import asyncio
import logging
import signal
import sys

from cruise_quotes.settings import settings

# 로그 설정
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format='%(asctime)s [%(levelname)s] %(name)s: %(message)s'
)
logger = logging.getLogger("cruise_quotes.cli")


def run_worker_command(args):
    """워커 실행 (SIGINT/SIGTERM 으로 종료)"""
    from cruise_quotes.session_factory import session_factory
    from cruise_quotes.worker import ImportWorker

    worker = ImportWorker(
        session_factory,
        poll_interval=args.poll_interval,
        concurrency=args.concurrency,
    )

    async def _run():
        stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, stop_event.set)
            except NotImplementedError:
                # Windows: add_signal_handler 미지원
                signal.signal(sig, lambda *_: loop.call_soon_threadsafe(stop_event.set))
        await worker.run(stop_event)

    logger.info("[CLI] Starting import worker")
    asyncio.run(_run())


def run_submit_command(args):
    from cruise_quotes.session_factory import session_factory
    from cruise_quotes.services.import_job_service import ImportJobService

    service = ImportJobService(session_factory)
    with open(args.file, "rb") as f:
        job = service.submit(
            file_name=args.file_name or args.file,
            data=f,
            creator_id=args.creator,
            supplier_id=args.supplier,
            idempotency_key=args.idempotency_key,
        )
    print(f"import job {job.id}: {job.status} (sha256={job.file_hash}, size={job.file_size})")


def run_submit_text_command(args):
    from cruise_quotes.session_factory import session_factory
    from cruise_quotes.services.import_job_service import ImportJobService

    if args.text_file:
        with open(args.text_file, encoding="utf-8") as f:
            text = f.read()
    else:
        text = args.text

    job = ImportJobService(session_factory).submit_text(
        raw_text=text,
        creator_id=args.creator,
        supplier_id=args.supplier,
        idempotency_key=args.idempotency_key,
    )
    print(f"import job {job.id}: {job.status}")


def run_jobs_command(args):
    from cruise_quotes.session_factory import session_factory
    from cruise_quotes.services.import_job_repository import ImportJobRepository

    jobs = ImportJobRepository(session_factory).list_jobs(
        page=args.page, page_size=args.page_size, status=args.status
    )
    for job in jobs:
        summary = job.result_summary or {}
        print(
            f"{job.id}\t{job.type}\t{job.status}\t{job.file_name or '-'}\t"
            f"created={summary.get('created_quotes', '-')}\t{job.error_message or ''}"
        )


def run_void_quote_command(args):
    from cruise_quotes.session_factory import session_factory
    from cruise_quotes.services.quote_service import QuoteService

    QuoteService(session_factory).void(args.quote_id, user_id=args.user)
    print(f"price quote {args.quote_id} voided")


def run_init_db_command(args):
    from cruise_quotes.db import init_db

    init_db()
    logger.info("[CLI] Tables created")


def main(argv=None):
    parser = argparse.ArgumentParser(description="Cruise quote import CLI")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("init-db", help="Create all tables")

    worker_parser = subparsers.add_parser("worker", help="Run the import worker")
    worker_parser.add_argument("--poll-interval", type=float, default=None)
    worker_parser.add_argument("--concurrency", type=int, default=None)

    submit_parser = subparsers.add_parser("submit", help="Submit a PDF/Word quote document")
    submit_parser.add_argument("file")
    submit_parser.add_argument("--file-name", help="Original file name (defaults to the path)")
    submit_parser.add_argument("--creator", type=int, required=True)
    submit_parser.add_argument("--supplier", type=int, required=True)
    submit_parser.add_argument("--idempotency-key")

    text_parser = subparsers.add_parser("submit-text", help="Submit raw quote text")
    text_source = text_parser.add_mutually_exclusive_group(required=True)
    text_source.add_argument("--text")
    text_source.add_argument("--text-file")
    text_parser.add_argument("--creator", type=int, required=True)
    text_parser.add_argument("--supplier", type=int, required=True)
    text_parser.add_argument("--idempotency-key")

    jobs_parser = subparsers.add_parser("jobs", help="List import jobs")
    jobs_parser.add_argument("--status", choices=["PENDING", "RUNNING", "NEEDS_CONFIRMATION", "SUCCEEDED", "FAILED"])
    jobs_parser.add_argument("--page", type=int, default=1)
    jobs_parser.add_argument("--page-size", type=int, default=20)

    void_parser = subparsers.add_parser("void-quote", help="Void an active price quote")
    void_parser.add_argument("quote_id", type=int)
    void_parser.add_argument("--user", type=int)

    args = parser.parse_args(argv)

    commands = {
        "init-db": run_init_db_command,
        "worker": run_worker_command,
        "submit": run_submit_command,
        "submit-text": run_submit_text_command,
        "jobs": run_jobs_command,
        "void-quote": run_void_quote_command,
    }
    handler = commands.get(args.command)
    if handler is None:
        parser.print_help()
        return

    try:
        handler(args)
    except Exception as e:
        logger.exception(f"[CLI] Critical error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
