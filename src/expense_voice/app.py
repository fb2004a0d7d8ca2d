"""CLI entrypoint for the voice expense tool."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Awaitable, Callable, Sequence

import anyio

from expense_voice import get_logger, set_log_level
from expense_voice.capture import (
    ExpenseCapture,
    ExpenseCaptureError,
    PromptTranscriber,
    RecordingSession,
    TranscriptionError,
    apply_confirmation_decision,
    format_preview,
)
from expense_voice.config import Settings, get_settings
from expense_voice.export import export_csv
from expense_voice.models import (
    CATEGORIES_KEY,
    MAPPINGS_KEY,
    PAYMENT_METHODS_KEY,
    format_amount,
)
from expense_voice.preferences import add_entry, add_mapping, remove_entry, remove_mapping
from expense_voice.storage import ExpenseStore, ExpenseStoreError

LOGGER = get_logger("app")

CommandHandler = Callable[[argparse.Namespace, ExpenseStore, Settings], Awaitable[int]]

MAX_CONFIRMATION_ATTEMPTS = 3

_ENTRY_EDITS = {
    "add-method": (PAYMENT_METHODS_KEY, add_entry),
    "remove-method": (PAYMENT_METHODS_KEY, remove_entry),
    "add-category": (CATEGORIES_KEY, add_entry),
    "remove-category": (CATEGORIES_KEY, remove_entry),
}


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="cuenta-voz",
        description="Capture spoken expenses and keep them in a local store.",
    )
    parser.add_argument(
        "--db",
        type=Path,
        help="SQLite database path (default: EXPENSE_DB or var/expenses.sqlite).",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    parse_cmd = commands.add_parser("parse", help="Show how an utterance is interpreted.")
    parse_cmd.add_argument("text", help="Transcribed utterance, e.g. 'Carne 5000 con 50 efectivo'.")

    add_cmd = commands.add_parser("add", help="Capture, confirm and save an expense.")
    add_cmd.add_argument(
        "text",
        nargs="?",
        help="Transcribed utterance; when omitted a recording session reads it from stdin.",
    )
    add_cmd.add_argument(
        "-y",
        "--yes",
        action="store_true",
        help="Save without asking for confirmation.",
    )

    commands.add_parser("list", help="List saved expenses, newest first.")

    export_cmd = commands.add_parser("export", help="Export expenses to a CSV file.")
    export_cmd.add_argument("path", type=Path, help="Destination CSV file.")

    settings_cmd = commands.add_parser("settings", help="Show or edit payment methods, categories and keywords.")
    settings_actions = settings_cmd.add_subparsers(dest="settings_command", required=True)
    settings_actions.add_parser("show", help="Print the current settings.")
    for action, help_text in (
        ("add-method", "Add a payment method (lowest priority)."),
        ("remove-method", "Remove a payment method."),
        ("add-category", "Add a category."),
        ("remove-category", "Remove a category."),
    ):
        entry_cmd = settings_actions.add_parser(action, help=help_text)
        entry_cmd.add_argument("name")
    map_cmd = settings_actions.add_parser("map", help="Map a keyword to a category.")
    map_cmd.add_argument("keyword")
    map_cmd.add_argument("category")
    unmap_cmd = settings_actions.add_parser("unmap", help="Remove a keyword mapping.")
    unmap_cmd.add_argument("keyword")

    return parser.parse_args(argv)


async def _cmd_parse(args: argparse.Namespace, store: ExpenseStore, settings: Settings) -> int:
    parsed = await ExpenseCapture(store).preview(args.text)
    print(format_preview(parsed))
    return 0


async def _cmd_add(args: argparse.Namespace, store: ExpenseStore, settings: Settings) -> int:
    text = args.text
    if text is None:
        session = RecordingSession(PromptTranscriber(), timeout=settings.session_timeout)
        text = await session.listen()

    capture = ExpenseCapture(store)
    parsed = await capture.preview(text)
    print(format_preview(parsed))
    if not parsed.has_amount:
        return 1

    decision = "approved" if args.yes else await _ask_confirmation()
    if decision != "approved":
        print("Gasto descartado.")
        return 0
    expense_id = await capture.confirm(parsed, decision=decision)
    print(f"Gasto guardado (id {expense_id}).")
    return 0


async def _ask_confirmation() -> str:
    for _ in range(MAX_CONFIRMATION_ATTEMPTS):
        print("> ", end="", flush=True)
        reply = await anyio.to_thread.run_sync(sys.stdin.readline)
        if not reply:
            break
        decision = apply_confirmation_decision(reply)
        if decision != "invalid":
            return decision
        print("Respuesta no reconocida; responda si o no.")
    return "rejected"


async def _cmd_list(args: argparse.Namespace, store: ExpenseStore, settings: Settings) -> int:
    expenses = await store.list_expenses()
    if not expenses:
        print("No hay gastos registrados.")
        return 0
    for expense in expenses:
        print(
            f"{expense.id:>5}  {expense.date:%Y-%m-%d %H:%M}  "
            f"{format_amount(expense.amount):>12}  {expense.category:<14} "
            f"{expense.payment_method:<14} {expense.raw_text}"
        )
    return 0


async def _cmd_export(args: argparse.Namespace, store: ExpenseStore, settings: Settings) -> int:
    count = await export_csv(
        store,
        args.path,
        encoding=settings.export_encoding,
        delimiter=settings.export_delimiter,
    )
    print(f"Exportados {count} gasto(s) a {args.path}")
    return 0


async def _cmd_settings(args: argparse.Namespace, store: ExpenseStore, settings: Settings) -> int:
    action = args.settings_command
    if action in _ENTRY_EDITS:
        key, edit = _ENTRY_EDITS[action]
        current = await store.get_settings(key)
        await store.put_settings(key, edit(current, args.name))
    elif action == "map":
        categories = await store.get_settings(CATEGORIES_KEY)
        if args.category.strip().lower() not in {name.lower() for name in categories}:
            LOGGER.warning("Category %r is not in the configured categories.", args.category)
        current = await store.get_settings(MAPPINGS_KEY)
        await store.put_settings(MAPPINGS_KEY, add_mapping(current, args.keyword, args.category))
    elif action == "unmap":
        current = await store.get_settings(MAPPINGS_KEY)
        await store.put_settings(MAPPINGS_KEY, remove_mapping(current, args.keyword))

    snapshot = await store.settings_snapshot()
    print("Medios de pago: " + ", ".join(snapshot.payment_methods))
    print("Categorias: " + ", ".join(snapshot.categories))
    print("Palabras clave:")
    for keyword, category in sorted(snapshot.mappings.items()):
        print(f"  {keyword} -> {category}")
    return 0


_COMMANDS: dict[str, CommandHandler] = {
    "parse": _cmd_parse,
    "add": _cmd_add,
    "list": _cmd_list,
    "export": _cmd_export,
    "settings": _cmd_settings,
}


async def _dispatch(args: argparse.Namespace, store: ExpenseStore, settings: Settings) -> int:
    async with store:
        return await _COMMANDS[args.command](args, store, settings)


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)
    try:
        settings = get_settings()
        set_log_level(settings.log_level)
        store = ExpenseStore(args.db or settings.expense_db, timeout=settings.store_timeout)
        return anyio.run(_dispatch, args, store, settings)
    except (ExpenseStoreError, ExpenseCaptureError, TranscriptionError, ValueError) as exc:
        LOGGER.debug("Command %s failed", args.command, exc_info=exc)
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
