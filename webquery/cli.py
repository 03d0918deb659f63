"""CLI entrypoint: fetch a URL or crawl a site."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, TextIO
from urllib.parse import urlsplit

import requests
from tqdm import tqdm

from .config import HttpConfig, load_config
from .crawler import CrawlStats, crawl
from .errors import ConfigurationError, WebQueryError
from .logging_utils import setup_logging
from .query import HttpQuery, get
from .url import is_http_url

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="webquery",
        description="Fetch web resources and crawl sites with webquery pipelines.",
    )

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to JSON/YAML HTTP config.",
    )
    common.add_argument("--timeout", type=float, default=None, help="Request timeout in seconds.")
    common.add_argument("--user_agent", type=str, default=None)
    common.add_argument(
        "--header",
        action="append",
        default=[],
        help="Extra request header NAME:VALUE (repeatable).",
    )
    common.add_argument("--proxy", type=str, default=None, help="Proxy URL.")
    common.add_argument(
        "--insecure",
        action="store_true",
        help="Do not validate server certificates.",
    )
    common.add_argument("--log_file", type=Path, default=None, help="Also write logs to this file.")
    common.add_argument("--verbose", action="store_true", help="Enable verbose logging.")

    commands = parser.add_subparsers(dest="command", required=True)

    get_parser = commands.add_parser("get", parents=[common], help="Fetch one URL.")
    get_parser.add_argument("url")
    output = get_parser.add_mutually_exclusive_group()
    output.add_argument("--text", dest="output", action="store_const", const="text", help="Print the body as text (default).")
    output.add_argument("--lines", dest="output", action="store_const", const="lines", help="Print the body line by line.")
    output.add_argument("--links", dest="output", action="store_const", const="links", help="Print absolute links of an HTML body.")
    output.add_argument("--json", dest="output", action="store_const", const="json", help="Parse and pretty-print a JSON body.")
    output.add_argument("--info", dest="output", action="store_const", const="info", help="Print response metadata only.")
    output.add_argument("--download", type=Path, default=None, help="Write the body to this path.")
    get_parser.add_argument(
        "--accept",
        action="append",
        default=[],
        help="Acceptable media type (repeatable).",
    )
    get_parser.add_argument(
        "--return_erroneous",
        action="store_true",
        help="Print non-2xx responses instead of failing.",
    )
    get_parser.set_defaults(output="text")

    crawl_parser = commands.add_parser("crawl", parents=[common], help="Crawl same-host links breadth-first.")
    crawl_parser.add_argument("url")
    crawl_parser.add_argument("--max_depth", type=int, default=None, help="Unbounded when omitted.")
    crawl_parser.add_argument(
        "--path_prefix",
        action="append",
        default=[],
        help="Only follow links whose path starts with this prefix (repeatable).",
    )
    crawl_parser.add_argument(
        "--print_stats_json",
        action="store_true",
        help="Print crawl counters as JSON after the run.",
    )
    crawl_parser.add_argument("--progress", action="store_true", help="Show a progress bar on stderr.")

    return parser.parse_args(argv)


def _parse_header(raw: str) -> tuple[str, str]:
    name, sep, value = raw.partition(":")
    if not sep or not name.strip():
        raise ConfigurationError(f"Invalid --header '{raw}'. Use NAME:VALUE.")
    return name.strip(), value.strip()


def build_config(args: argparse.Namespace) -> HttpConfig:
    config = load_config(args.config) if args.config is not None else HttpConfig()

    if args.timeout is not None:
        config = config.with_timeout(args.timeout)
    if args.user_agent is not None:
        config = config.with_user_agent(args.user_agent)
    if args.proxy is not None:
        config = config.with_proxy(args.proxy)
    if args.insecure:
        config = config.with_ignore_invalid_server_certificate(True)
    for raw in args.header:
        config = config.with_added_header(*_parse_header(raw))

    return config


def _print_info(fetch_info: Any, out: TextIO) -> None:
    print(f"HTTP/{fetch_info.http_version} {fetch_info.status_code} {fetch_info.reason}", file=out)
    for name, value in list(fetch_info.headers) + list(fetch_info.content_headers):
        print(f"{name}: {value}", file=out)


def run_get(args: argparse.Namespace, config: HttpConfig, out: TextIO) -> None:
    query: HttpQuery = get(args.url)
    if args.return_erroneous:
        query = query.return_erroneous_fetch()
    query = query.accept(*args.accept)

    if args.download is not None:
        for fetch in query.download(args.download).run(config):
            logger.info("Saved %s to %s", fetch.url, fetch.content)
        return

    if args.output == "info":
        for info in query.run(config):
            _print_info(info, out)
        return

    if args.output == "json":
        for fetch in query.json().run(config):
            print(json.dumps(fetch.content, indent=2, ensure_ascii=False), file=out)
        return

    reader = {"text": query.text, "lines": query.lines, "links": query.links}[args.output]
    for fetch in reader().run(config):
        print(fetch.content, file=out)


def run_crawl(args: argparse.Namespace, config: HttpConfig, out: TextIO) -> CrawlStats:
    if not is_http_url(args.url):
        raise ConfigurationError(f"Not an absolute http(s) URL: {args.url}")

    prefixes = tuple(args.path_prefix)

    def under_prefix(url: str) -> bool:
        return (urlsplit(url).path or "/").startswith(prefixes)

    stats = CrawlStats()
    query = crawl(args.url, args.max_depth, under_prefix if prefixes else None, stats=stats)

    progress = tqdm(desc="Crawling", unit="page", disable=not args.progress)
    try:
        for fetch in query.run(config):
            print(f"{fetch.status_code}\t{fetch.media_type or '-'}\t{fetch.url}", file=out)
            progress.update(1)
            progress.set_postfix(dropped=stats.dropped_status + stats.dropped_error, refresh=False)
    finally:
        progress.close()
    return stats


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    setup_logging(verbose=args.verbose, log_file=args.log_file)

    try:
        config = build_config(args)
    except (ConfigurationError, OSError) as exc:
        logging.error("Failed to build config: %s", exc)
        return 2

    try:
        if args.command == "crawl":
            stats = run_crawl(args, config, sys.stdout)
            if args.print_stats_json:
                print(json.dumps(stats.to_dict(), indent=2, sort_keys=True))
        else:
            run_get(args, config, sys.stdout)
    except ConfigurationError as exc:
        logging.error("Configuration error: %s", exc)
        return 2
    except KeyboardInterrupt:
        logging.error("Interrupted by user")
        return 130
    except (WebQueryError, requests.RequestException) as exc:
        logging.error("%s: %s", exc.__class__.__name__, exc)
        return 1

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
