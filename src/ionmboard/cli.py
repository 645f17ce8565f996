"""Command line entry point: run the board server or inspect a running one."""
from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import List, Optional

from .board import AssignmentBoard
from .client import HttpStaffStore
from .config import CONFIG
from .errors import BoardError
from .logging_setup import get_logger
from .models import StaffRecord
from .store.base import StaffStore, register_staff
from .store.memory import MemoryStaffStore
from .store.sqlite import SqliteStaffStore

logger = get_logger(__name__)


def _load_seed(path: Path) -> List[StaffRecord]:
    data = json.loads(path.read_text(encoding="utf-8"))
    items = data.get("items", []) if isinstance(data, dict) else data
    return [StaffRecord.from_dict(item) for item in items]


def open_store(kind: str, db_path: Optional[Path] = None, seed: Optional[Path] = None) -> StaffStore:
    records = _load_seed(seed) if seed else []
    if kind == "memory":
        return MemoryStaffStore(records)
    store = SqliteStaffStore(db_path)
    existing = {rec.id for rec in store.fetch_all()}
    for record in records:
        if record.id not in existing:
            store.insert(record)
    return store


def format_board(board: AssignmentBoard) -> str:
    lines = ["Assignment Board"]
    for slot in board.get_slots():
        name = slot.assigned_name or "-"
        duty = f"  [{slot.duty}]" if slot.duty else ""
        lines.append(f"  {slot.label:>3}  {name}{duty}")
    roster = board.get_roster()
    lines.append(f"Roster ({len(roster)})")
    for record in roster:
        lines.append(f"       {record.name}")
    conflicts = board.view().conflicts
    for label, ids in conflicts.items():
        lines.append(f"  ! slot {label} claimed by {', '.join(ids)}")
    return "\n".join(lines)


def _cmd_serve(args: argparse.Namespace) -> int:
    from .server import run_server

    store = open_store(args.store, Path(args.db) if args.db else None, Path(args.seed) if args.seed else None)
    try:
        run_server(store, host=args.host, port=args.port)
    finally:
        store.close()
    return 0


def _remote_board(args: argparse.Namespace) -> AssignmentBoard:
    board = AssignmentBoard(HttpStaffStore(args.url))
    if not board.refresh():
        raise BoardError(board.banner or "store unavailable")
    return board


def _cmd_show(args: argparse.Namespace) -> int:
    print(format_board(_remote_board(args)))
    return 0


def _cmd_reset(args: argparse.Namespace) -> int:
    board = _remote_board(args)
    confirmed = args.yes
    if not confirmed:
        answer = input("Clear ALL assignments and move everyone back to the roster? [y/N] ")
        confirmed = answer.strip().lower() in ("y", "yes")
    if not confirmed:
        print("Reset cancelled.")
        return 1
    changed = board.reset_board(confirmed=True)
    print(f"Board reset: {changed} staff moved to the roster.")
    return 0


def _cmd_register(args: argparse.Namespace) -> int:
    record = register_staff(HttpStaffStore(args.url), args.name, pin=args.pin, role=args.role)
    print(f"Registered {record.name} ({record.id}) as {record.role}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="ionmboard", description="IONM staff assignment board")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="run the board API server")
    serve.add_argument("--store", choices=("sqlite", "memory"), default=CONFIG.store_kind)
    serve.add_argument("--db", help=f"SQLite file (default {CONFIG.db_path})")
    serve.add_argument("--seed", help="JSON file of staff records to load at start")
    serve.add_argument("--host", default=CONFIG.api_host)
    serve.add_argument("--port", type=int, default=CONFIG.api_port)
    serve.set_defaults(func=_cmd_serve)

    for name, func, help_text in (
        ("show", _cmd_show, "print the board of a running server"),
        ("reset", _cmd_reset, "clear every slot of a running server"),
        ("register", _cmd_register, "add a staff member to the roster"),
    ):
        cmd = sub.add_parser(name, help=help_text)
        cmd.add_argument("--url", default=CONFIG.client_base_url)
        cmd.set_defaults(func=func)
        if name == "reset":
            cmd.add_argument("--yes", action="store_true", help="skip the confirmation prompt")
        if name == "register":
            cmd.add_argument("name")
            cmd.add_argument("--pin", default="")
            cmd.add_argument("--role", choices=("admin", "user"))
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        return args.func(args)
    except BoardError as exc:
        logger.error("%s: %s", type(exc).__name__, exc)
        print(f"error: {exc}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
