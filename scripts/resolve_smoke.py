#!/usr/bin/env python3
from __future__ import annotations

import argparse
import logging
import sys

from config.settings import load_settings
from engine.errors import ResolutionError
from engine.json_utils import safe_json_dumps
from engine.redirect import resolve_destination
from engine.resolver import TrackResolver


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Resolve one track reference into a smart link and print it.")
    parser.add_argument("input", nargs="+", help="Platform URL, ISRC, or 'Artist - Title' text.")
    parser.add_argument("--artist", help="Artist hint for free-text input.")
    parser.add_argument("--title", help="Title hint for free-text input.")
    parser.add_argument("--config", help="Optional JSON settings file.")
    parser.add_argument("--force-refresh", action="store_true", help="Skip the stored-link cache.")
    parser.add_argument("--verbose", action="store_true", help="Log provider calls to stderr.")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING, stream=sys.stderr)
    settings = load_settings(args.config)
    resolver = TrackResolver(settings)
    raw = " ".join(args.input).strip()
    try:
        result = resolver.resolve_track(raw, args.artist, args.title, force_refresh=args.force_refresh)
    except ResolutionError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2

    payload = result.to_dict()
    if result.record is not None:
        payload["destination_url"] = resolve_destination(result.record, settings.public_base_url)
    print(safe_json_dumps(payload, indent=2, sort_keys=True))
    return 0 if result.ok else 1


if __name__ == "__main__":
    raise SystemExit(main())
