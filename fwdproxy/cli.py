"""Fetch URLs through the forward proxy from the command line."""

from __future__ import annotations

import argparse
import asyncio
import hashlib
import logging
import sys
from pathlib import Path
from typing import Callable

from pydantic import ValidationError

from .config import load_config
from .errors import ProxyClientError
from .manager import ForwardProxyManager


def _bounded_int(minimum: int) -> Callable[[str], int]:
    def _parse(raw: str) -> int:
        try:
            value = int(raw)
        except ValueError:
            raise argparse.ArgumentTypeError(f"invalid int value: {raw!r}") from None
        if value < minimum:
            raise argparse.ArgumentTypeError(f"must be at least {minimum}, got {value}")
        return value

    return _parse


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="fwdproxy", description=__doc__)
    parser.add_argument("urls", nargs="+", metavar="URL", help="URL to fetch through the proxy")
    parser.add_argument("--config", type=Path, default=None, help="Path to a config.toml")
    parser.add_argument("--target", default=None, help="Proxy address as host:port")
    parser.add_argument("--max-retries", type=_bounded_int(0), default=None, help="Retries on connection failures")
    parser.add_argument("--concurrency", type=_bounded_int(1), default=None, help="Maximum in-flight requests")
    parser.add_argument("--timeout", type=_bounded_int(1), default=None, help="Connect timeout in milliseconds")
    parser.add_argument("--priority", type=int, default=None, help="Priority hint passed to the proxy")
    parser.add_argument(
        "--retry-on",
        type=int,
        action="append",
        default=None,
        metavar="CODE",
        help="HTTP status the proxy should retry on (repeatable)",
    )
    parser.add_argument("--output", type=Path, default=None, help="Directory to write response bodies to")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


def output_name(url: str) -> str:
    """Stable file name for a fetched URL."""

    return hashlib.sha256(url.encode("utf-8")).hexdigest()[:16] + ".body"


async def _fetch_one(manager: ForwardProxyManager, url: str, args: argparse.Namespace) -> bool:
    try:
        response = await manager.request(url, priority=args.priority, retry_on_codes=args.retry_on)
    except ProxyClientError as exc:
        print(f"ERR {url}: {exc}", file=sys.stderr)
        return False
    if args.output is not None:
        (args.output / output_name(url)).write_bytes(response.body)
    print(f"{response.status_code} {url} {len(response.body)}")
    return response.status_code == 200


async def run(args: argparse.Namespace) -> int:
    config = load_config(args.config).with_overrides(
        target=args.target,
        max_retries=args.max_retries,
        semaphore=args.concurrency,
        client_timeout_ms=args.timeout,
    )
    if args.output is not None:
        args.output.mkdir(parents=True, exist_ok=True)
    async with ForwardProxyManager.from_config(config) as manager:
        outcomes = await asyncio.gather(*(_fetch_one(manager, url, args) for url in args.urls))
    return 0 if all(outcomes) else 1


def main(argv: list[str] | None = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        return asyncio.run(run(args))
    except ValidationError as exc:
        print(f"Invalid configuration: {exc}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
