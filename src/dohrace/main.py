from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional

import requests

from .config.config_parser import build_client, load_settings, parse_config_file
from .config.logging_config import init_logging
from .errors import DoHRaceError

logger = logging.getLogger("dohrace.main")


def _parse_header(text: str) -> tuple[str, str]:
    name, sep, value = text.partition(":")
    if not sep or not name.strip():
        raise argparse.ArgumentTypeError(f"header must look like 'Name: value', got {text!r}")
    return name.strip(), value.strip()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dohrace",
        description="Resolve names and fetch URLs by racing DNS-over-HTTPS providers",
    )
    parser.add_argument("--config", help="Path to YAML config (defaults built in)")
    parser.add_argument(
        "-v",
        "--var",
        action="append",
        default=[],
        metavar="KEY=YAML",
        help="Set a config variable (repeatable; overrides DOHRACE_<KEY> env vars)",
    )
    parser.add_argument("--log-level", help="Override logging.level from the config")
    sub = parser.add_subparsers(dest="command", required=True)

    p_lookup = sub.add_parser("lookup", help="Resolve names to IP addresses")
    p_lookup.add_argument("names", nargs="+")

    p_fetch = sub.add_parser("fetch", help="Fetch a URL over racing connections")
    p_fetch.add_argument("url")
    p_fetch.add_argument("-X", "--method", default="GET")
    p_fetch.add_argument(
        "-H", "--header", action="append", default=[], type=_parse_header, dest="headers"
    )
    p_fetch.add_argument("-d", "--data", help="Request body")
    p_fetch.add_argument("-o", "--output", help="Write the body to this file instead of stdout")
    return parser


def main(argv: List[str] | None = None) -> int:
    """
    Entry point for the ``dohrace`` command.

    Args:
        argv: Command-line arguments (defaults to sys.argv[1:]).

    Returns:
        0 on success, 1 when resolution or fetching failed, 2 on configuration
        errors.

    Example use:
        dohrace lookup example.com
        dohrace --config dohrace.yaml fetch https://example.com/ -o page.html
    """
    args = build_parser().parse_args(argv)

    try:
        if args.config:
            settings = parse_config_file(args.config, cli_vars=args.var)
        else:
            settings = load_settings({})
    except (OSError, ValueError) as exc:
        print(str(exc), file=sys.stderr)
        return 2

    log_cfg = settings.logging.model_dump()
    if args.log_level:
        log_cfg["level"] = args.log_level
    init_logging(log_cfg)
    if args.config:
        logger.info("Loaded config from %s", args.config)

    client = build_client(settings)

    if args.command == "lookup":
        return _run_lookup(client, args.names)
    return _run_fetch(client, args)


def _run_lookup(client, names: List[str]) -> int:
    rc = 0
    for name in names:
        try:
            addrs = client.lookup(name)
        except (DoHRaceError, ValueError) as exc:
            logger.error("lookup %s failed: %s", name, exc)
            rc = 1
            continue
        for addr in addrs:
            print(f"{name} {addr}")
    return rc


def _run_fetch(client, args: argparse.Namespace) -> int:
    request = requests.Request(
        method=args.method.upper(),
        url=args.url,
        headers=dict(args.headers),
        data=args.data,
    )
    try:
        body = client.fetch(request)
    except (DoHRaceError, requests.RequestException) as exc:
        logger.error("fetch %s failed: %s", args.url, exc)
        return 1

    if args.output:
        with open(args.output, "wb") as f:
            f.write(body)
    else:
        sys.stdout.buffer.write(body)
        sys.stdout.flush()
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
