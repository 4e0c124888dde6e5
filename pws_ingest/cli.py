from __future__ import annotations

import argparse
import asyncio
import datetime as dt
import sys
from typing import List, Optional, Sequence

import pandas as pd
import structlog

from pws_ingest.config import Settings
from pws_ingest.errors import ConfigurationError, StorageOpenError
from pws_ingest.ingestion.completeness import completeness_report, count_days
from pws_ingest.ingestion.storage import ObservationStore
from pws_ingest.logging import init_logging
from pws_ingest.services.engine import IngestionEngine

logger = structlog.get_logger()

# Longest range `fetch` will walk through in one invocation
MAX_BACKFILL_DAYS = 366


def _parse_day(value: str) -> dt.date:
    for fmt in ("%Y%m%d", "%Y-%m-%d"):
        try:
            return dt.datetime.strptime(value, fmt).date()
        except ValueError:
            continue
    raise argparse.ArgumentTypeError(f"expected YYYYMMDD or YYYY-MM-DD, got {value!r}")


def _date_range(start: dt.date, end: dt.date) -> List[dt.date]:
    if end < start:
        raise ConfigurationError(f"--end {end} is before --start {start}")
    days = [d.date() for d in pd.date_range(start, end, freq="D")]
    if len(days) > MAX_BACKFILL_DAYS:
        raise ConfigurationError(f"Backfill range of {len(days)} days exceeds {MAX_BACKFILL_DAYS}")
    return days


def _settings(args: argparse.Namespace) -> Settings:
    overrides = {
        "station_id": getattr(args, "station_id", None),
        "database": getattr(args, "database", None),
        "log_level": getattr(args, "log_level", None),
    }
    return Settings(**{k: v for k, v in overrides.items() if v is not None})


def _print_status(event) -> None:
    text = getattr(event, "text", None)
    if text is not None:
        print(f"[{event.at:%d %b %Y %H:%M:%S}] {text}")


def cmd_run(args: argparse.Namespace) -> int:
    settings = _settings(args)
    init_logging(settings.log_level, settings.station_id)
    engine = IngestionEngine.from_settings(settings)

    async def _main() -> None:
        try:
            await engine.run_forever()
        finally:
            await engine.shutdown()

    try:
        asyncio.run(_main())
    except KeyboardInterrupt:
        logger.info("interrupted")
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    from pws_ingest.api.main import create_app

    settings = _settings(args)
    if args.no_scheduler:
        settings.scheduler_enabled = False
    uvicorn.run(create_app(settings), host=args.host or settings.host, port=args.port or settings.port)
    return 0


def cmd_fetch(args: argparse.Namespace) -> int:
    settings = _settings(args)
    init_logging(settings.log_level, settings.station_id)
    if args.date:
        days = sorted(set(args.date))
    elif args.start:
        days = _date_range(args.start, args.end or args.start)
    else:
        raise ConfigurationError("Give --date (repeatable) or --start/--end")

    engine = IngestionEngine.from_settings(settings)
    engine.events.subscribe(_print_status)

    async def _main() -> int:
        failed = 0
        try:
            for day in days:
                summary = await engine.request_date(day)
                failed += 0 if summary.ok else 1
        finally:
            await engine.shutdown()
        return failed

    failed = asyncio.run(_main())
    return 1 if failed else 0


def cmd_report(args: argparse.Namespace) -> int:
    settings = _settings(args)
    init_logging(settings.log_level)
    store = ObservationStore.open(settings.database)
    try:
        total, stats = store.stats(args.station_id)
        print(f"Total observations: {total}")
        if stats.empty:
            print("No observations found.")
            return 0
        with pd.option_context("display.max_rows", None, "display.width", 120):
            print(stats.to_string(index=False))
        days = (r.day for r in store.scan() if args.station_id is None or r.station_id == args.station_id)
        print(completeness_report(count_days(days)).message())
    finally:
        store.close()
    return 0


def _parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="pws-ingest", description="Weather Underground PWS history ingestion")
    p.add_argument("--database", default=None, help="SQLite file or SQLAlchemy URL (env PWS_DATABASE)")
    p.add_argument("--log-level", default=None, help="Log level (env PWS_LOG_LEVEL)")
    sub = p.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Poll on the configured schedule until interrupted")
    run.add_argument("--station-id", default=None, help="Station identifier (env PWS_STATION_ID)")
    run.set_defaults(func=cmd_run)

    serve = sub.add_parser("serve", help="Run the HTTP surface, with the poll loop in the background")
    serve.add_argument("--station-id", default=None, help="Station identifier (env PWS_STATION_ID)")
    serve.add_argument("--host", default=None)
    serve.add_argument("--port", type=int, default=None)
    serve.add_argument("--no-scheduler", action="store_true", help="Serve manual fetches only")
    serve.set_defaults(func=cmd_serve)

    fetch = sub.add_parser("fetch", help="Fetch specific dates now, ignoring the active window")
    fetch.add_argument("--station-id", default=None, help="Station identifier (env PWS_STATION_ID)")
    fetch.add_argument("--date", type=_parse_day, action="append", help="Date to fetch (repeatable)")
    fetch.add_argument("--start", type=_parse_day, default=None, help="First date of a backfill range")
    fetch.add_argument("--end", type=_parse_day, default=None, help="Last date of a backfill range (inclusive)")
    fetch.set_defaults(func=cmd_fetch)

    report = sub.add_parser("report", help="Row counts, date range and data gaps in the store")
    report.add_argument("--station-id", default=None, help="Only report this station")
    report.set_defaults(func=cmd_report)

    return p.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _parse_args(argv)
    try:
        return args.func(args)
    except (ConfigurationError, StorageOpenError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
