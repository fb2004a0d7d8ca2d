"""Preview and confirmation flow between a transcription and the store."""

from __future__ import annotations

from typing import Literal

from expense_voice import get_logger
from expense_voice.models import format_amount
from expense_voice.parsing import ParsedExpense, parse_expense_text
from expense_voice.storage import ExpenseStore

LOGGER = get_logger("capture.flow")

Decision = Literal["approved", "rejected", "invalid"]

CONFIRM_COMMANDS = {"si", "sí", "s", "confirmar", "confirmo", "guardar", "ok", "dale"}
CANCEL_COMMANDS = {"no", "n", "cancelar", "cancelo", "descartar"}

CONFIRMATION_PROMPT = "Responda si para guardar o no para descartar."
MISSING_AMOUNT_NOTICE = "No se detecto un monto; repita el gasto indicando el importe."


class ExpenseCaptureError(RuntimeError):
    """Raised when a draft is not in a state that allows saving it."""


def apply_confirmation_decision(user_input: str) -> Decision:
    """Classify the user's reply to a preview."""

    normalized = (user_input or "").strip().lower().rstrip(".!")
    if normalized in CONFIRM_COMMANDS:
        return "approved"
    if normalized in CANCEL_COMMANDS:
        return "rejected"
    return "invalid"


def format_preview(parsed: ParsedExpense) -> str:
    """Render the summary a user reviews before confirming."""

    amount = format_amount(parsed.amount) if parsed.amount is not None else "no detectado"
    category = parsed.category
    if parsed.original_category and parsed.original_category.lower() != category.lower():
        category = f"{category} (por '{parsed.original_category}')"
    lines = [
        "Gasto detectado:",
        f"- Monto: {amount}",
        f"- Medio de pago: {parsed.payment_method}",
        f"- Categoria: {category}",
        f"- Detalle: {parsed.residual_text or '-'}",
        "",
        CONFIRMATION_PROMPT if parsed.has_amount else MISSING_AMOUNT_NOTICE,
    ]
    return "\n".join(lines)


class ExpenseCapture:
    """Parses utterances against the stored settings and saves approved drafts."""

    def __init__(self, store: ExpenseStore) -> None:
        self._store = store

    async def preview(self, text: str) -> ParsedExpense:
        snapshot = await self._store.settings_snapshot()
        parsed = parse_expense_text(text, snapshot)
        if parsed.missing_fields:
            LOGGER.debug("Preview missing fields: %s", sorted(parsed.missing_fields))
        return parsed

    async def confirm(self, parsed: ParsedExpense, *, decision: Decision = "approved") -> int:
        """Save an approved draft and return the new expense id.

        Raises:
            ExpenseCaptureError: The draft was not approved or has no amount.
            ExpenseSaveError: Bubbled up from the store.
        """

        if decision != "approved":
            raise ExpenseCaptureError("Expense cannot be saved before the user approves it.")
        if not parsed.has_amount:
            raise ExpenseCaptureError("Expense cannot be saved without an amount.")
        expense_id = await self._store.save_expense(parsed.to_new_expense())
        LOGGER.info(
            "Captured expense id=%s amount=%s payment=%s category=%s",
            expense_id,
            parsed.amount,
            parsed.payment_method,
            parsed.category,
        )
        return expense_id


__all__ = [
    "CANCEL_COMMANDS",
    "CONFIRM_COMMANDS",
    "ExpenseCapture",
    "ExpenseCaptureError",
    "apply_confirmation_decision",
    "format_preview",
]
