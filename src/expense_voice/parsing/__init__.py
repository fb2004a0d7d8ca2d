"""Parsing helpers for spoken expenses."""

from .expense import ParsedExpense, normalize_amount_token, parse_expense_text

__all__ = ["ParsedExpense", "normalize_amount_token", "parse_expense_text"]
