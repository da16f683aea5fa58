"""Command-line entry point for the case filer."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any

from case_filer.core import AppSettings, configure_logging, load_app_settings
from case_filer.core.datetime_utils import serialize_datetime
from case_filer.core.models import HistoryStats, SuggestionRequest
from case_filer.filing import coerce_policy, decide
from case_filer.suggest import adapt_cases
from case_filer.web.app import result_to_dict
from case_filer.wiring import build_container


def build_parser() -> argparse.ArgumentParser:
    """Create and configure the CLI argument parser."""
    parser = argparse.ArgumentParser(description="Case suggestion and filing status tools")
    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Path to a .env file containing configuration overrides.",
    )
    parser.add_argument(
        "command",
        nargs="?",
        default="info",
        choices=["info", "suggest", "history", "decide"],
        help="Operation to execute.",
    )
    parser.add_argument(
        "--input",
        dest="input_path",
        default="-",
        help="JSON file with the email and candidate cases for 'suggest' ('-' reads stdin).",
    )
    parser.add_argument(
        "--content-only",
        action="store_true",
        help="Score subject and body only, ignoring filing history.",
    )
    parser.add_argument(
        "--existing",
        action=argparse.BooleanOptionalAction,
        default=False,
        help="For 'decide': whether a matching document already exists.",
    )
    parser.add_argument(
        "--policy",
        choices=["off", "warn", "block", "ask"],
        default=None,
        help="For 'decide': duplicate policy (defaults to the configured one).",
    )
    return parser


def execute(args: argparse.Namespace, settings: AppSettings) -> int:
    """Execute the requested CLI command and return an exit code."""
    command = args.command
    if command == "info":
        print("Case filer is ready.")
        print(f"Storage order: {', '.join(settings.storage.backend_order)}")
        print(f"Runtime store: {settings.storage.db_path}")
        print(f"Remote API: {settings.remote.base_url or 'not configured'}")
        print(f"Duplicate policy: {settings.filing.duplicate_policy}")
        return 0
    if command == "suggest":
        return asyncio.run(_run_suggest(settings, args.input_path, content_only=args.content_only))
    if command == "history":
        return asyncio.run(_run_history(settings))
    if command == "decide":
        policy = coerce_policy(args.policy or settings.filing.duplicate_policy)
        print(f"{decide(args.existing, policy).value} (policy={policy.value})")
        return 0
    return 2


def main() -> None:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args()

    settings = load_app_settings(env_file=args.env_file)
    configure_logging(settings.logging, profile=settings.storage.profile)
    sys.exit(execute(args, settings))


def _load_input(path: str) -> dict[str, Any]:
    raw = sys.stdin.read() if path == "-" else Path(path).read_text(encoding="utf-8")
    payload = json.loads(raw)
    if not isinstance(payload, dict):
        raise ValueError("Input must be a JSON object")
    return payload


async def _run_suggest(settings: AppSettings, input_path: str, *, content_only: bool) -> int:
    try:
        payload = _load_input(input_path)
        top_k = int(payload["top_k"]) if payload.get("top_k") is not None else None
    except (OSError, ValueError) as exc:
        print(f"Could not read input: {exc}")
        return 1

    request = SuggestionRequest(
        cases=adapt_cases(payload.get("cases") or []),
        conversation_key=str(payload.get("conversation_key") or ""),
        subject=str(payload.get("subject") or ""),
        body_excerpt=str(payload.get("body_excerpt") or ""),
        attachment_names=tuple(str(name) for name in payload.get("attachment_names") or ()),
        sender_address=str(payload.get("sender_address") or ""),
        top_k=top_k,
        recipient_addresses=tuple(str(email) for email in payload.get("recipients") or ()),
    )
    container = build_container(settings)
    try:
        service = container.resolve("suggestions")
        if content_only:
            result = service.suggest_by_content(request)
        else:
            result = await service.suggest(request)
    finally:
        await container.aclose()
    print(json.dumps(result_to_dict(result), indent=2))
    return 0


async def _run_history(settings: AppSettings) -> int:
    container = build_container(settings)
    try:
        stats: HistoryStats = await container.resolve("history").get_stats()
    finally:
        await container.aclose()

    print(f"Mapped conversations: {len(stats.thread_to_case)}")
    print(f"Known senders: {len(stats.sender_to_case)}")
    print(f"Known domains: {len(stats.domain_to_case)}")
    if not stats.recent_cases:
        print("No recently used cases.")
        return 0
    print("Recently used cases:")
    for recent in stats.recent_cases:
        print(
            f"- {recent.case_id} used {recent.use_count} time(s), "
            f"last {serialize_datetime(recent.last_used_at) or 'unknown'}"
        )
    return 0


__all__ = ["build_parser", "execute", "main"]
