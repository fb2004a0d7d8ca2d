"""Local persistence for expenses and settings."""

from .sqlite_store import (
    ExpenseSaveError,
    ExpenseStore,
    ExpenseStoreError,
    StoreInitializationError,
    StoreNotReadyError,
    StoreOperationError,
    UnknownSettingsKeyError,
)

__all__ = [
    "ExpenseSaveError",
    "ExpenseStore",
    "ExpenseStoreError",
    "StoreInitializationError",
    "StoreNotReadyError",
    "StoreOperationError",
    "UnknownSettingsKeyError",
]
