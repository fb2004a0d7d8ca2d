"""Expense records and the settings snapshot shared by the parser and the store."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Mapping

DEFAULT_PAYMENT_METHOD = "Efectivo"
DEFAULT_CATEGORY = "Varios"

PAYMENT_METHODS_KEY = "paymentMethods"
CATEGORIES_KEY = "categories"
MAPPINGS_KEY = "mappings"
SETTINGS_KEYS = (PAYMENT_METHODS_KEY, CATEGORIES_KEY, MAPPINGS_KEY)

DEFAULT_PAYMENT_METHODS: tuple[str, ...] = (
    "Transferencia",
    "VisaBBVA",
    "MasterBBVA",
    "Debito",
    "Efectivo",
)
DEFAULT_CATEGORIES: tuple[str, ...] = (
    "Comida",
    "Extra",
    "Mascotas",
    "Salud",
    "Servicios",
    "Supermercado",
    "Transporte",
    "Varios",
)

_FOOD_KEYWORDS = (
    "carne",
    "pan",
    "leche",
    "verdura",
    "verduras",
    "fruta",
    "frutas",
    "pollo",
    "queso",
    "huevos",
    "fiambre",
    "almacen",
)
_TRANSPORT_KEYWORDS = (
    "colectivo",
    "bondi",
    "taxi",
    "uber",
    "remis",
    "subte",
    "tren",
    "nafta",
    "combustible",
    "peaje",
    "estacionamiento",
)
_UTILITY_KEYWORDS = (
    "luz",
    "gas",
    "agua",
    "internet",
    "telefono",
    "celular",
    "cable",
    "expensas",
)

DEFAULT_MAPPINGS: dict[str, str] = {
    **{keyword: "Supermercado" for keyword in _FOOD_KEYWORDS},
    **{keyword: "Transporte" for keyword in _TRANSPORT_KEYWORDS},
    **{keyword: "Servicios" for keyword in _UTILITY_KEYWORDS},
}

CENT = Decimal("0.01")


def quantize_amount(value: Decimal) -> Decimal:
    """Round an amount to the two decimal places used for display and storage."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def format_amount(value: Decimal) -> str:
    """Render the canonical display form, e.g. ``5000.50``."""
    return f"{quantize_amount(value):.2f}"


def default_settings_value(key: str) -> list[str] | dict[str, str]:
    """Return a fresh copy of the built-in default for a settings key."""
    if key == PAYMENT_METHODS_KEY:
        return list(DEFAULT_PAYMENT_METHODS)
    if key == CATEGORIES_KEY:
        return list(DEFAULT_CATEGORIES)
    if key == MAPPINGS_KEY:
        return dict(DEFAULT_MAPPINGS)
    raise KeyError(key)


@dataclass(frozen=True, slots=True)
class SettingsSnapshot:
    """Read-only copy of the user's payment methods, categories and keyword map."""

    payment_methods: tuple[str, ...] = ()
    categories: tuple[str, ...] = ()
    mappings: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "payment_methods", tuple(self.payment_methods))
        object.__setattr__(self, "categories", tuple(self.categories))
        object.__setattr__(self, "mappings", dict(self.mappings))

    @classmethod
    def defaults(cls) -> "SettingsSnapshot":
        """Snapshot equal to what a freshly initialized store is seeded with."""
        return cls(
            payment_methods=DEFAULT_PAYMENT_METHODS,
            categories=DEFAULT_CATEGORIES,
            mappings=DEFAULT_MAPPINGS,
        )


@dataclass(frozen=True, slots=True)
class NewExpense:
    """An expense ready to be persisted; the store assigns ``id`` and ``date``."""

    amount: Decimal
    payment_method: str
    category: str
    raw_text: str
    original_category: str = ""

    def __post_init__(self) -> None:
        amount = Decimal(self.amount)
        if not amount.is_finite():
            raise ValueError("Expense amount must be a finite number.")
        if amount < 0:
            raise ValueError("Expense amount cannot be negative.")
        object.__setattr__(self, "amount", quantize_amount(amount))
        if not self.payment_method:
            raise ValueError("Expense payment method is required.")
        if not self.category:
            raise ValueError("Expense category is required.")


@dataclass(frozen=True, slots=True)
class Expense:
    """Persisted expense as returned by the store."""

    id: int
    amount: Decimal
    payment_method: str
    category: str
    original_category: str
    raw_text: str
    date: datetime

    @property
    def display_amount(self) -> str:
        return format_amount(self.amount)


__all__ = [
    "CATEGORIES_KEY",
    "DEFAULT_CATEGORIES",
    "DEFAULT_CATEGORY",
    "DEFAULT_MAPPINGS",
    "DEFAULT_PAYMENT_METHOD",
    "DEFAULT_PAYMENT_METHODS",
    "Expense",
    "MAPPINGS_KEY",
    "NewExpense",
    "PAYMENT_METHODS_KEY",
    "SETTINGS_KEYS",
    "SettingsSnapshot",
    "default_settings_value",
    "format_amount",
    "quantize_amount",
]
