"""Command line entry point for crawl and delivery sweeps.

Usage:
  pressreview crawl --all --save --upload
  pressreview crawl --test --url https://example.com --pattern "h2 a" --display
  pressreview deliver --email reader@example.com
"""

from __future__ import annotations

import argparse
import sys
from typing import List

from pydantic import ValidationError

from crawler.settings import SweepOptions, get_settings
from crawler.tasks.collect import CrawlConfigurationError, format_newspaper, run_sweep
from crawler.utils.logging import configure_logging
from publish.digest import dispatch_digests


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="pressreview", description="Headline crawler and digest sender")
    commands = parser.add_subparsers(dest="command", required=True)

    crawl = commands.add_parser("crawl", help="Harvest due channels or a single test section")
    crawl.add_argument("--log", action="store_true", help="Verbose (DEBUG) logging")
    crawl.add_argument("--test", action="store_true", help="Harvest only --url using --pattern")
    crawl.add_argument("--all", action="store_true", help="Harvest every due channel")
    crawl.add_argument("--save", action="store_true", help="Persist harvested headlines")
    crawl.add_argument("--display", action="store_true", help="Print harvested headlines")
    crawl.add_argument("--upload", action="store_true", help="Derive image variants and upload them")
    crawl.add_argument("--limit", type=int, default=None, help="Max headlines per section")
    crawl.add_argument("--clusters", type=int, default=None, help="Upload worker count")
    crawl.add_argument("--url", default="", help="Section URL for --test")
    crawl.add_argument("--pattern", default="", help="CSS selector for --test")
    crawl.add_argument("--channels", default="", help="Comma separated channel codes")
    crawl.add_argument("--sections", default="", help="Comma separated section codes")

    deliver = commands.add_parser("deliver", help="Send digests to due readers")
    deliver.add_argument("--log", action="store_true", help="Verbose (DEBUG) logging")
    target = deliver.add_mutually_exclusive_group(required=True)
    target.add_argument("--email", default=None, help="Only this reader")
    target.add_argument("--all", action="store_true", help="Every due reader")
    return parser


def _crawl(args: argparse.Namespace) -> int:
    settings = get_settings()
    try:
        options = SweepOptions(
            log=args.log,
            test=args.test,
            all=args.all,
            save=args.save,
            display=args.display,
            upload=args.upload,
            limit=args.limit if args.limit is not None else settings.harvest_limit,
            clusters=args.clusters if args.clusters is not None else settings.upload_workers,
            url=args.url,
            pattern=args.pattern,
            channels=args.channels,
            sections=args.sections,
        )
    except ValidationError as exc:
        print(f"Invalid options: {exc}")
        return 2

    try:
        report = run_sweep(options, settings)
    except CrawlConfigurationError as exc:
        print(str(exc))
        return 1

    if options.display:
        print(format_newspaper(report.items))
    print(f"Harvested {len(report.items)} headlines from {report.sections} sections.")
    if options.save:
        print(f"Created {report.created}, updated {report.updated}, failed {report.failed}.")
    if report.upload is not None:
        print(f"Uploaded {len(report.upload.uploaded)} files, {len(report.upload.failed)} failed.")
    return 0


def _deliver(args: argparse.Namespace) -> int:
    report = dispatch_digests(get_settings(), email=None if args.all else args.email)
    print(
        f"Readers {report.readers}: sent {report.sent}, empty {report.empty}, failed {report.failed}."
    )
    return 0 if not report.failed else 3


def main(argv: List[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    if args.command == "crawl":
        if args.test and (not args.url or not args.pattern):
            print("Missing flags. --url and --pattern are required.")
            return 1
        if not args.test and not args.all:
            print("Tip: use --all or --test. Use -h to display available options.")
            return 0
    settings = get_settings()
    configure_logging(settings.structlog_level, json_enabled=settings.log_json, debug=args.log)
    if args.command == "crawl":
        return _crawl(args)
    return _deliver(args)


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
