# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""PopGuard CLI: run a guarded browser and manage the domain lists.

Usage:
    popguard run [--config FILE] [--db-path PATH] [--url URL] [--headless] [--no-classifier]
    popguard block DOMAIN
    popguard allow DOMAIN
    popguard lists [--json]
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import json
import logging
import sys

from . import __version__
from .config import GuardConfig, load_config
from .errors import PopGuardError
from .logging_config import configure as configure_logging
from .repository_sqlite import SqliteSettingsRepository
from .signals import DomainLists


def _resolve_config(args: argparse.Namespace) -> GuardConfig:
    config = load_config(args.config)
    overrides = {}
    if getattr(args, "db_path", None):
        overrides["db_path"] = args.db_path
    if getattr(args, "url", None):
        overrides["start_url"] = args.url
    if getattr(args, "headless", False):
        overrides["headless"] = True
    if args.json_logs:
        overrides["json_logs"] = True
    if args.verbose:
        overrides["log_level"] = "DEBUG"
    return dataclasses.replace(config, **overrides) if overrides else config


async def _run_guard(config: GuardConfig, *, use_classifier: bool) -> None:
    from .backend import ClassifierClient, NullClassifier, SpamReporter
    from .engine import ClassificationEngine
    from .playwright_host import GuardedBrowser

    repository = await SqliteSettingsRepository.create(config.db_path)
    try:
        classifier = (
            ClassifierClient(config.classifier_url, timeout=config.classifier_timeout_s)
            if use_classifier
            else NullClassifier()
        )
        reporter = SpamReporter(config.report_url, timeout=config.report_timeout_s)
        async with GuardedBrowser(config) as browser:
            engine = ClassificationEngine(
                browser.host,
                config=config,
                classifier=classifier,
                reporter=reporter,
                repository=repository,
            )
            await engine.load_settings()
            await engine.run(browser.host)
    finally:
        await repository.close()


def cmd_run(args: argparse.Namespace) -> None:
    """Launch Chromium with the guard attached until the browser is closed."""
    config = _resolve_config(args)
    configure_logging(json_output=config.json_logs, level=config.log_level)
    asyncio.run(_run_guard(config, use_classifier=not args.no_classifier))


async def _update_lists(db_path: str, domain: str, *, block: bool) -> str:
    repository = await SqliteSettingsRepository.create(db_path)
    try:
        settings = await repository.load()
        lists = DomainLists(settings.blocked_domains, settings.safe_domains)
        normalized = lists.block(domain) if block else lists.allow(domain)
        await repository.save_domain_lists(sorted(lists.blocked), sorted(lists.safe))
        return normalized
    finally:
        await repository.close()


def cmd_block(args: argparse.Namespace) -> None:
    """Add a domain to the block list (removes it from the safe list)."""
    config = _resolve_config(args)
    domain = asyncio.run(_update_lists(config.db_path, args.domain, block=True))
    print(f"Blocked {domain}")


def cmd_allow(args: argparse.Namespace) -> None:
    """Add a domain to the safe list (removes it from the block list)."""
    config = _resolve_config(args)
    domain = asyncio.run(_update_lists(config.db_path, args.domain, block=False))
    print(f"Marked {domain} as safe")


async def _load_lists(db_path: str) -> dict:
    repository = await SqliteSettingsRepository.create(db_path)
    try:
        settings = await repository.load()
    finally:
        await repository.close()
    return {
        "enabled": settings.enabled,
        "blocked": sorted(settings.blocked_domains),
        "safe": sorted(settings.safe_domains),
    }


def cmd_lists(args: argparse.Namespace) -> None:
    """Print the enabled flag and both domain lists."""
    config = _resolve_config(args)
    data = asyncio.run(_load_lists(config.db_path))
    if args.json:
        print(json.dumps(data, indent=2))
        return
    print(f"enabled: {'yes' if data['enabled'] else 'no'}")
    for name in ("blocked", "safe"):
        print(f"{name} ({len(data[name])}):")
        for domain in data[name]:
            print(f"  {domain}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="popguard", description="Close deceptive popup and redirect tabs.")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    parser.add_argument("--json-logs", action="store_true", help="Emit logs as JSON lines")
    parser.add_argument("--config", type=str, default=None, help="YAML config file (default: $POPGUARD_CONFIG)")
    parser.add_argument("--db-path", type=str, default=None, help="Settings database path")

    subparsers = parser.add_subparsers(dest="command", required=True)

    p_run = subparsers.add_parser("run", help="Launch a guarded Chromium window")
    p_run.add_argument("--url", type=str, help="Page to open on start")
    p_run.add_argument("--headless", action="store_true", help="Run without a window (testing)")
    p_run.add_argument("--no-classifier", action="store_true", help="Skip the external content classifier")

    p_block = subparsers.add_parser("block", help="Block-list a domain")
    p_block.add_argument("domain")

    p_allow = subparsers.add_parser("allow", help="Safe-list a domain")
    p_allow.add_argument("domain")

    p_lists = subparsers.add_parser("lists", help="Show the domain lists")
    p_lists.add_argument("--json", action="store_true", help="Machine-readable output")

    return parser


COMMANDS = {"run": cmd_run, "block": cmd_block, "allow": cmd_allow, "lists": cmd_lists}


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command != "run":
        level = logging.DEBUG if args.verbose else logging.WARNING
        logging.basicConfig(level=level, format="%(levelname)s: %(message)s")

    try:
        COMMANDS[args.command](args)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(130)
    except PopGuardError as e:
        print(f"error: {e}", file=sys.stderr)
        if args.verbose:
            import traceback

            traceback.print_exc(file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
