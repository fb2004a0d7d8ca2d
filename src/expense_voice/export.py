"""Delimited-text export of stored expenses."""

from __future__ import annotations

import csv
import io
from pathlib import Path
from typing import Iterable, TextIO

import anyio

from expense_voice import get_logger
from expense_voice.models import Expense, format_amount
from expense_voice.storage import ExpenseStore

LOGGER = get_logger("export")

EXPORT_COLUMNS = ("Fecha", "Monto", "Categoria", "Medio de pago", "Texto")


def expense_row(expense: Expense) -> tuple[str, str, str, str, str]:
    """Return the export columns for one expense: date, amount, category, payment, text."""

    return (
        expense.date.isoformat(timespec="seconds"),
        format_amount(expense.amount),
        expense.category,
        expense.payment_method,
        expense.raw_text,
    )


def write_expenses_csv(
    expenses: Iterable[Expense], stream: TextIO, *, delimiter: str = ","
) -> int:
    """Write a header plus one row per expense and return the row count."""

    writer = csv.writer(stream, delimiter=delimiter)
    writer.writerow(EXPORT_COLUMNS)
    count = 0
    for expense in expenses:
        writer.writerow(expense_row(expense))
        count += 1
    return count


async def export_csv(
    store: ExpenseStore,
    path: str | Path,
    *,
    encoding: str = "utf-8-sig",
    delimiter: str = ",",
) -> int:
    """Export the store snapshot to ``path`` and return the number of rows."""

    expenses = await store.export_snapshot()
    buffer = io.StringIO(newline="")
    count = write_expenses_csv(expenses, buffer, delimiter=delimiter)

    target = anyio.Path(path)
    await target.parent.mkdir(parents=True, exist_ok=True)
    await target.write_text(buffer.getvalue(), encoding=encoding, newline="")
    LOGGER.info("Exported %d expense(s) to %s", count, path)
    return count


__all__ = ["EXPORT_COLUMNS", "export_csv", "expense_row", "write_expenses_csv"]
