from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

import uvicorn

from ouiwatch import __version__
from ouiwatch.config import apply_config, load_config, load_settings
from ouiwatch.downloader import ScheduledDownloader
from ouiwatch.errors import InitError, OuiWatchError
from ouiwatch.log import setup_logging
from ouiwatch.service import OuiService


def _build_service(args: argparse.Namespace, auto_update: bool = True) -> OuiService:
    settings = load_settings(
        args.config,
        url=args.url,
        manuf_path=args.manuf_path,
        cron=args.cron,
        auto_update=auto_update and not getattr(args, "offline", False),
    )
    return OuiService(settings)


def _start(service: OuiService) -> None:
    try:
        service.ensure_started()
    except OuiWatchError as exc:
        raise SystemExit(f"failed to load OUI database ({exc.stage}): {exc}") from exc


def _read_macs(args: argparse.Namespace) -> list[str]:
    macs = list(args.mac or [])
    if args.file:
        path = Path(args.file)
        if not path.exists():
            raise SystemExit(f"MAC file not found: {path}")
        for line in path.read_text(encoding="utf-8").splitlines():
            line = line.strip()
            if line and not line.startswith("#"):
                macs.append(line)
    if not macs:
        raise SystemExit("at least one MAC address or --file is required")
    return macs


def cmd_lookup(args: argparse.Namespace) -> None:
    macs = _read_macs(args)
    service = _build_service(args)
    _start(service)
    try:
        responses = service.lookup_many(macs)
    finally:
        service.shutdown()
    if args.json:
        print(json.dumps([r.model_dump() for r in responses], indent=2))
        return
    for response in responses:
        if response.result is None:
            print(f"{response.mac:>17} vendor=unknown")
            continue
        result = response.result
        comment = f" ({result.annotation})" if result.annotation else ""
        print(f"{response.mac:>17} vendor={result.organization}{comment} prefix={result.prefix}")


def cmd_update(args: argparse.Namespace) -> None:
    service = _build_service(args, auto_update=False)
    try:
        report = service.refresh()
    except OuiWatchError as exc:
        raise SystemExit(f"update failed ({exc.stage}): {exc}") from exc
    print(f"[+] {report.path} updated from {report.url} ({report.entries} entries)")


def cmd_status(args: argparse.Namespace) -> None:
    service = _build_service(args, auto_update=False)
    settings = service.settings
    downloader = ScheduledDownloader(
        url=settings.url, file_path=settings.manuf_path, cron=settings.cron, timezone=settings.timezone,
    )
    try:
        stale = downloader.is_stale()
    except InitError as exc:
        raise SystemExit(str(exc)) from exc
    _start(service)
    status = service.status().model_dump(mode="json")
    status["stale"] = stale
    if args.json:
        print(json.dumps(status, indent=2))
        return
    print(f"manuf file : {status['manuf_path']}{' (stale)' if stale else ''}")
    print(f"source     : {status['url']}")
    print(f"schedule   : {status['cron']}")
    print(f"entries    : {status['entries']}")
    print(f"prefixes   : {', '.join(str(bits) for bits in status['prefix_lengths'])}")


def cmd_serve(args: argparse.Namespace) -> None:
    print(f"[*] Starting ouiwatch API on {args.host}:{args.port}")
    uvicorn.run("ouiwatch.web.api:app", host=args.host, port=args.port, reload=False)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ouiwatch",
        description="Resolve MAC addresses to vendors using a self-updating Wireshark manuf database.",
    )
    parser.add_argument("--manuf-path", help="Local manuf.gz location")
    parser.add_argument("--url", help="Remote manuf.gz URL")
    parser.add_argument("--cron", help="Refresh schedule (five-field cron)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    parser.add_argument("--version", action="version", version=f"ouiwatch {__version__}")
    subparsers = parser.add_subparsers(dest="command", required=True)

    lookup_parser = subparsers.add_parser("lookup", help="Resolve MAC addresses to vendors")
    lookup_parser.add_argument("mac", nargs="*", help="MAC address or prefix (6-12 hex digits)")
    lookup_parser.add_argument("--file", help="File with MAC addresses, one per line")
    lookup_parser.add_argument("--json", action="store_true", help="Print results as JSON")
    lookup_parser.add_argument("--offline", action="store_true", help="Use the local file without refreshing")
    lookup_parser.set_defaults(func=cmd_lookup)

    update_parser = subparsers.add_parser("update", help="Download the manuf file now")
    update_parser.set_defaults(func=cmd_update)

    status_parser = subparsers.add_parser("status", help="Show local database status")
    status_parser.add_argument("--json", action="store_true", help="Print status as JSON")
    status_parser.set_defaults(func=cmd_status)

    serve_parser = subparsers.add_parser("serve", help="Start the lookup API")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Bind host")
    serve_parser.add_argument("--port", type=int, default=8000, help="Bind port")
    serve_parser.set_defaults(func=cmd_serve)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    config = load_config()
    apply_config(parser, config)
    args = parser.parse_args(argv)
    args.config = config
    setup_logging(logging.DEBUG if args.verbose else logging.WARNING)
    args.func(args)
    return 0


if __name__ == "__main__":
    sys.exit(main())
