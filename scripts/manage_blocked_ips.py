#!/usr/bin/env python3
"""Manage temporarily blocked IP addresses.

RUN:
  python -m scripts.manage_blocked_ips list
  python -m scripts.manage_blocked_ips status 203.0.113.7
  python -m scripts.manage_blocked_ips block 203.0.113.7 --duration 7200 --reason "scraping"
  python -m scripts.manage_blocked_ips unblock 203.0.113.7 --yes

Talks to the same Redis the API uses (REDIS_URL).  Without REDIS_URL
the stores are in-memory and vanish when this process exits, so the
command only makes sense against a configured Redis.
"""

from __future__ import annotations

import argparse
import asyncio
import datetime
import sys
from collections.abc import Callable

from lms.core.errors import StoreUnavailable, ValidationError
from lms.db.redis import redis_pool
from lms.models.security import BlockEntry
from lms.services.access_guard import AccessGuard, access_guard

ACTOR = "cli"


def _ts(epoch: int) -> str:
    return datetime.datetime.fromtimestamp(epoch, datetime.UTC).isoformat()


def _print_entries(entries: list[BlockEntry]) -> None:
    if not entries:
        print("No IP addresses are currently blocked.")
        return
    print(f"{'IP Address':<40} {'Blocked At':<26} {'Expires At':<26} Reason")
    for e in entries:
        print(f"{e.ip:<40} {_ts(e.blocked_at):<26} {_ts(e.expires_at):<26} {e.reason}")


def _confirm(prompt: str, assume_yes: bool, input_fn: Callable[[str], str]) -> bool:
    if assume_yes:
        return True
    return input_fn(f"{prompt} [y/N] ").strip().lower() in ("y", "yes")


async def _run(
    args: argparse.Namespace, guard: AccessGuard, input_fn: Callable[[str], str]
) -> int:
    if args.action == "list":
        _print_entries(await guard.list_blocked())
        return 0

    if not args.ip:
        print(f"error: an IP address is required for '{args.action}'", file=sys.stderr)
        return 1

    if args.action == "status":
        st = await guard.get_block_status(args.ip)
        print(f"IP:               {st.ip}")
        print(f"Whitelisted:      {'yes' if st.whitelisted else 'no'}")
        print(f"Permanent block:  {'yes' if st.permanent else 'no'}")
        if st.entry:
            print(f"Temporary block:  until {_ts(st.entry.expires_at)} ({st.entry.reason})")
        else:
            print("Temporary block:  no")
        print(f"Violations (24h): {st.suspicious_count}")
        for limit_class, count in st.attempts.items():
            print(f"Attempts {limit_class}: {count}")
        return 0

    status = await guard.get_block_status(args.ip)

    if args.action == "block":
        if status.entry is not None:
            print(f"IP {status.ip} is already blocked.")
            return 0
        prompt = f"Block IP {status.ip} for {args.duration} seconds?"
        if not _confirm(prompt, args.yes, input_fn):
            print("Operation cancelled.")
            return 0
        entry = await guard.block_ip(status.ip, args.duration, args.reason, actor=ACTOR)
        print(f"Blocked IP {entry.ip} until {_ts(entry.expires_at)}.")
        return 0

    # unblock
    if status.entry is None:
        print(f"IP {status.ip} is not currently blocked.")
        return 0
    if not _confirm(f"Unblock IP {status.ip}?", args.yes, input_fn):
        print("Operation cancelled.")
        return 0
    await guard.unblock_ip(status.ip, "Manual unblock via console", actor=ACTOR)
    print(f"Unblocked IP {status.ip}.")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="manage_blocked_ips",
        description="Manage blocked IP addresses",
    )
    parser.add_argument("action", choices=["list", "block", "unblock", "status"])
    parser.add_argument("ip", nargs="?")
    parser.add_argument(
        "--duration", type=int, default=3600, help="block duration in seconds"
    )
    parser.add_argument("--reason", default="Manual block")
    parser.add_argument("--yes", action="store_true", help="skip confirmation")
    return parser


def main(
    argv: list[str] | None = None,
    *,
    guard: AccessGuard | None = None,
    input_fn: Callable[[str], str] = input,
) -> int:
    args = build_parser().parse_args(argv)
    if guard is None:
        guard = access_guard
        if redis_pool is None:
            print(
                "warning: REDIS_URL is not set; changes only affect this process",
                file=sys.stderr,
            )
    try:
        return asyncio.run(_run(args, guard, input_fn))
    except ValidationError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    except StoreUnavailable as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
