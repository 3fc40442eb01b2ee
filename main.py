"""피드 수집 실행기(Feed ingestion command-line entrypoint)."""
from __future__ import annotations

import argparse
import asyncio
import json
import signal
from typing import Iterable, Optional

from dotenv import load_dotenv

# Load .env file at startup
load_dotenv()

from common_lib.config import get_settings  # noqa: E402
from common_lib.db import dispose_engine, get_engine  # noqa: E402
from common_lib.errors import IngestionError  # noqa: E402
from common_lib.logger import get_logger  # noqa: E402
from feed_ingestor.app.change_detector import FileWatermarkStore  # noqa: E402
from feed_ingestor.app.scheduler import FeedScheduler  # noqa: E402
from feed_ingestor.app.schema import create_schema  # noqa: E402
from feed_ingestor.app.service import FeedIngestionService  # noqa: E402

logger = get_logger(__name__)


def parse_args(argv: Optional[Iterable[str]] = None) -> argparse.Namespace:
    """커맨드라인 인자 파싱(Parse CLI arguments)."""

    parser = argparse.ArgumentParser(description="CVE 피드 스냅샷 동기화기(CVE feed snapshot sync)")
    parser.add_argument(
        "--create-schema",
        action="store_true",
        help="실행 전 테이블 생성(Create tables before running)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    ingest = sub.add_parser("ingest", help="피드 문서 하나 수집(Ingest one feed document)")
    ingest.add_argument("url", help="gzip JSON 피드 URL(Feed document URL)")

    bootstrap = sub.add_parser("bootstrap", help="과거 피드 수집(Ingest the historical range)")
    bootstrap.add_argument("--start-year", type=int, default=None, help="시작 연도(First year)")
    bootstrap.add_argument("--end-year", type=int, default=None, help="종료 연도(Last year, inclusive)")

    sub.add_parser("check", help="변경 확인 1회 실행(Run one change check)")

    run = sub.add_parser("run", help="부트스트랩 후 주기 실행(Bootstrap then check periodically)")
    run.add_argument(
        "--skip-bootstrap",
        action="store_true",
        help="과거 수집 건너뜀(Skip the historical bootstrap)",
    )
    run.add_argument("--interval", type=float, default=None, help="확인 주기 초(Check period in seconds)")
    return parser.parse_args(argv)


def _build_scheduler(args: argparse.Namespace) -> FeedScheduler:
    settings = get_settings()
    overrides = {}
    if getattr(args, "start_year", None) is not None:
        overrides["historical_start_year"] = args.start_year
    if getattr(args, "end_year", None) is not None:
        overrides["historical_end_year"] = args.end_year
    if overrides:
        settings = get_settings({**settings.model_dump(), **overrides})
    service = FeedIngestionService(settings=settings)
    return FeedScheduler(
        service,
        FileWatermarkStore(settings.watermark_path),
        interval_seconds=getattr(args, "interval", None),
    )


async def _run_until_signalled(scheduler: FeedScheduler, skip_bootstrap: bool) -> None:
    loop = asyncio.get_running_loop()
    stop_event = asyncio.Event()

    def signal_handler() -> None:
        logger.info("Shutdown signal received")
        stop_event.set()

    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, signal_handler)
        except NotImplementedError:
            # Windows does not support add_signal_handler
            pass

    if not skip_bootstrap and get_settings().initial_download:
        await scheduler.bootstrap()
    if stop_event.is_set():
        return

    scheduler.start()
    await stop_event.wait()
    await scheduler.stop()


async def main_async(args: argparse.Namespace) -> int:
    """비동기 메인 루틴(Async main routine). Returns the process exit code."""

    try:
        if args.create_schema:
            await create_schema(get_engine())

        if args.command == "ingest":
            result = await FeedIngestionService(settings=get_settings()).ingest(args.url)
            print(json.dumps(result.model_dump(), indent=2))
        elif args.command == "bootstrap":
            results = await _build_scheduler(args).bootstrap()
            print(json.dumps([r.model_dump() for r in results], indent=2))
        elif args.command == "check":
            refreshed = await FeedIngestionService(settings=get_settings()).check_and_update(
                FileWatermarkStore(get_settings().watermark_path)
            )
            print(json.dumps({"refreshed": refreshed}))
        elif args.command == "run":
            await _run_until_signalled(_build_scheduler(args), args.skip_bootstrap)
    except IngestionError as exc:
        logger.error("%s failed: %s", args.command, exc.message)
        print(json.dumps(exc.to_dict(), indent=2))
        return 1
    finally:
        await dispose_engine()
    return 0


def main() -> None:
    """동기 진입점(Synchronous entrypoint)."""

    args = parse_args()
    raise SystemExit(asyncio.run(main_async(args)))


if __name__ == "__main__":
    main()
