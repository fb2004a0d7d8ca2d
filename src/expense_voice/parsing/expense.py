"""Spoken expense parsing: amount, payment method and category detection."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
import re
import unicodedata
from typing import Mapping, Sequence

from expense_voice.models import (
    DEFAULT_CATEGORY,
    DEFAULT_PAYMENT_METHOD,
    NewExpense,
    SettingsSnapshot,
    quantize_amount,
)

# "5000 con 50" -> 5000.50; the connector is how amounts with cents are dictated.
_FRACTIONAL_PATTERN = re.compile(
    r"""
    (?P<whole>\d[\d.,]*)      # integer part, separators are ignored
    \s*con\s*                 # spoken connector
    (?P<fraction>\d+)         # hundredths
    [.,]*                     # trailing punctuation from the transcript
    """,
    re.IGNORECASE | re.VERBOSE,
)
_NUMBER_PATTERN = re.compile(r"\d[\d.,]*")
_NON_DIGITS = re.compile(r"\D")
_EDGE_PUNCTUATION = "\"'.,;:!?¡¿()[]{}"


@dataclass(frozen=True, slots=True)
class ParsedExpense:
    """Structured representation of a transcribed expense utterance."""

    amount: Decimal | None
    payment_method: str
    category: str
    original_category: str
    residual_text: str
    raw_text: str
    missing_fields: frozenset[str] = frozenset()

    @property
    def has_amount(self) -> bool:
        return self.amount is not None

    def to_new_expense(self) -> NewExpense:
        """Build the record handed to the store; requires a detected amount."""

        if self.amount is None:
            raise ValueError("Cannot build an expense without a detected amount.")
        return NewExpense(
            amount=self.amount,
            payment_method=self.payment_method,
            category=self.category,
            original_category=self.original_category,
            raw_text=self.raw_text,
        )


def parse_expense_text(message: str, settings: SettingsSnapshot) -> ParsedExpense:
    """Extract amount, payment method and category from a transcribed utterance.

    The function is pure: it reads ``settings`` but never mutates it, performs no
    I/O and always returns a result. Anything it cannot detect falls back to
    ``None`` (amount), ``DEFAULT_PAYMENT_METHOD`` or ``DEFAULT_CATEGORY``.
    """

    raw_text = message or ""
    amount, amount_span = _extract_amount(raw_text)
    words = raw_text.split()
    payment_method = _match_payment_method(words, settings.payment_methods)

    remaining_words = _remove_span(raw_text, amount_span).split()
    category, original_category = _detect_category(
        remaining_words, settings.categories, settings.mappings
    )

    missing_fields: set[str] = set()
    if amount is None:
        missing_fields.add("amount")

    return ParsedExpense(
        amount=amount,
        payment_method=payment_method,
        category=category,
        original_category=original_category,
        residual_text=" ".join(remaining_words),
        raw_text=raw_text,
        missing_fields=frozenset(missing_fields),
    )


def normalize_amount_token(token: str) -> Decimal | None:
    """Convert a numeric token such as ``5.000,50`` or ``12,5`` to a Decimal.

    The rightmost separator is the decimal separator; every other separator is
    a thousands separator. A lone comma is always decimal.
    """

    cleaned = token.strip(".,")
    if not cleaned:
        return None

    last_comma = cleaned.rfind(",")
    last_period = cleaned.rfind(".")
    if last_comma == -1 and last_period == -1:
        literal = cleaned
    else:
        split_at = max(last_comma, last_period)
        whole = _NON_DIGITS.sub("", cleaned[:split_at])
        fraction = _NON_DIGITS.sub("", cleaned[split_at + 1 :])
        literal = f"{whole or '0'}.{fraction or '0'}"
    return _to_amount(literal)


def _extract_amount(text: str) -> tuple[Decimal | None, tuple[int, int] | None]:
    match = _FRACTIONAL_PATTERN.search(text)
    if match:
        whole = _NON_DIGITS.sub("", match.group("whole"))
        cents = (match.group("fraction") + "0")[:2]
        amount = _to_amount(f"{whole}.{cents}")
        if amount is not None:
            return amount, match.span()

    match = _NUMBER_PATTERN.search(text)
    if not match:
        return None, None
    amount = normalize_amount_token(match.group(0))
    if amount is None:
        return None, None
    return amount, match.span()


def _to_amount(literal: str) -> Decimal | None:
    try:
        return quantize_amount(Decimal(literal))
    except (InvalidOperation, ValueError):
        return None


def _remove_span(text: str, span: tuple[int, int] | None) -> str:
    if span is None:
        return text
    start, end = span
    return f"{text[:start]} {text[end:]}"


def _normalize_word(word: str) -> str:
    decomposed = unicodedata.normalize("NFKD", word)
    folded = "".join(char for char in decomposed if not unicodedata.combining(char))
    return "".join(folded.lower().split()).strip(_EDGE_PUNCTUATION)


def _match_payment_method(words: Sequence[str], methods: Sequence[str]) -> str:
    spoken = {_normalize_word(word) for word in words}
    spoken.discard("")
    for method in methods:
        if _normalize_word(method) in spoken:
            return method
    return DEFAULT_PAYMENT_METHOD


def _detect_category(
    words: Sequence[str],
    categories: Sequence[str],
    mappings: Mapping[str, str],
) -> tuple[str, str]:
    direct: dict[str, str] = {}
    for name in categories:
        key = _normalize_word(name)
        if key:
            direct.setdefault(key, name)
    for word in words:
        name = direct.get(_normalize_word(word))
        if name is not None:
            return name, word.strip(_EDGE_PUNCTUATION)

    keywords: dict[str, str] = {}
    for keyword, name in mappings.items():
        key = _normalize_word(keyword)
        if key:
            keywords.setdefault(key, name)
    for word in words:
        name = keywords.get(_normalize_word(word))
        if name is not None:
            return name, word.strip(_EDGE_PUNCTUATION)

    return DEFAULT_CATEGORY, ""


__all__ = ["ParsedExpense", "normalize_amount_token", "parse_expense_text"]
