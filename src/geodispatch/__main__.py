"""Command line entry point: ``python -m geodispatch``."""

from __future__ import annotations

import argparse
import dataclasses
import json
import sys

from geodispatch import geohash
from geodispatch._constants import DEFAULT_PRECISION
from geodispatch._logging import configure_logging
from geodispatch.config import DispatchConfig, SearchConfig
from geodispatch.exceptions import ConfigError, ValidationError
from geodispatch.neighbors import expand
from geodispatch.server import run


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="geodispatch", description="Nearby-provider push dispatch service.")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP endpoint (configured from environment).")
    serve.add_argument("--host", default=None)
    serve.add_argument("--port", type=int, default=None)
    serve.add_argument("--log-level", default="INFO")
    serve.add_argument("--plain-logs", action="store_true", help="Human-readable logs instead of JSON.")

    gh = sub.add_parser("geohash", help="Encode a position or print a key's neighborhood.")
    gh.add_argument("--precision", type=int, default=DEFAULT_PRECISION)
    group = gh.add_mutually_exclusive_group(required=True)
    group.add_argument("--point", nargs=2, type=float, metavar=("LAT", "LON"))
    group.add_argument("--neighbors", metavar="KEY")
    return parser


def _cmd_serve(args: argparse.Namespace) -> int:
    configure_logging(args.log_level, json_output=not args.plain_logs)
    try:
        config = DispatchConfig.from_env()
    except ConfigError as exc:
        print(f"configuration error: {exc}", file=sys.stderr)
        return 2
    server = config.server
    if args.host is not None:
        server = dataclasses.replace(server, host=args.host)
    if args.port is not None:
        server = dataclasses.replace(server, port=args.port)
    run(dataclasses.replace(config, server=server))
    return 0


def _cmd_geohash(args: argparse.Namespace) -> int:
    try:
        if args.point is not None:
            lat, lon = args.point
            key = geohash.encode(lat, lon, args.precision)
            bounds, center = geohash.decode(key)
            result = {
                "geohash": key,
                "center": dataclasses.asdict(center),
                "bounds": dataclasses.asdict(bounds),
            }
        else:
            result = {"geohash": args.neighbors, "neighbors": list(expand(args.neighbors, SearchConfig()))}
    except ValidationError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    print(json.dumps(result, indent=2))
    return 0


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    if args.command == "serve":
        return _cmd_serve(args)
    return _cmd_geohash(args)


if __name__ == "__main__":
    raise SystemExit(main())
