"""SQLite-backed store for expenses and user-configurable settings."""

from __future__ import annotations

import json
import sqlite3
from collections.abc import Mapping, Sequence
from datetime import UTC, datetime
from decimal import Decimal
from functools import partial
from pathlib import Path
from typing import Any, Callable, TypeVar

import anyio

from expense_voice import get_logger
from expense_voice.models import (
    CATEGORIES_KEY,
    MAPPINGS_KEY,
    PAYMENT_METHODS_KEY,
    SETTINGS_KEYS,
    Expense,
    NewExpense,
    SettingsSnapshot,
    default_settings_value,
)

LOGGER = get_logger("storage.sqlite_store")

SettingsValue = list[str] | dict[str, str]
_T = TypeVar("_T")


class ExpenseStoreError(RuntimeError):
    """Base class for expense store failures."""


class StoreInitializationError(ExpenseStoreError):
    """Raised when the underlying database cannot be opened or prepared."""


class StoreNotReadyError(ExpenseStoreError):
    """Raised when an operation runs before a successful initialize()."""


class StoreOperationError(ExpenseStoreError):
    """Raised when a read or settings write fails inside SQLite."""


class ExpenseSaveError(StoreOperationError):
    """Raised when an expense cannot be written."""


class UnknownSettingsKeyError(KeyError):
    """Raised for settings keys other than paymentMethods, categories or mappings."""


def _utcnow() -> datetime:
    return datetime.now(UTC)


class ExpenseStore:
    """Asynchronous persistence layer for expenses and settings inside SQLite.

    Every operation runs the blocking sqlite3 call in a worker thread while
    holding a single lock, so calls issued by one caller are applied in program
    order and concurrent saves never share an identifier.
    """

    def __init__(
        self,
        db_path: str | Path,
        *,
        timeout: float = 5.0,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._db_path = Path(db_path)
        self._timeout = timeout
        self._clock = clock or _utcnow
        self._conn: sqlite3.Connection | None = None
        self._init_error: BaseException | None = None
        self._lock = anyio.Lock()

    @property
    def is_ready(self) -> bool:
        return self._conn is not None

    async def __aenter__(self) -> "ExpenseStore":
        await self.initialize()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def initialize(self) -> None:
        """Open the database, create tables and seed default settings once."""

        async with self._lock:
            if self._conn is not None:
                return
            try:
                self._conn = await anyio.to_thread.run_sync(self._open)
            except (sqlite3.Error, OSError) as exc:
                self._init_error = exc
                LOGGER.error("Expense store failed to open %s: %s", self._db_path, exc)
                raise StoreInitializationError(
                    f"Unable to open expense store at {self._db_path}: {exc}"
                ) from exc
            self._init_error = None
        LOGGER.info("Expense store ready at %s", self._db_path)

    async def close(self) -> None:
        """Close the underlying SQLite connection."""

        async with self._lock:
            if self._conn is None:
                return
            conn, self._conn = self._conn, None
            await anyio.to_thread.run_sync(conn.close)

    async def get_settings(self, key: str) -> SettingsValue:
        """Return the stored value for a settings key or its built-in default."""

        _require_known_key(key)
        stored = await self._run(self._fetch_setting, key)
        if stored is None:
            return default_settings_value(key)
        return stored

    async def put_settings(self, key: str, value: Sequence[str] | Mapping[str, str]) -> None:
        """Replace the full value of a settings key (last write wins)."""

        _require_known_key(key)
        payload = _coerce_settings_value(key, value)
        await self._run(self._store_setting, key, payload)
        LOGGER.debug("Settings key %s replaced (%d entries)", key, len(payload))

    async def settings_snapshot(self) -> SettingsSnapshot:
        """Read all three settings keys under one lock acquisition."""

        values = await self._run(self._fetch_all_settings)
        return SettingsSnapshot(
            payment_methods=values[PAYMENT_METHODS_KEY],
            categories=values[CATEGORIES_KEY],
            mappings=values[MAPPINGS_KEY],
        )

    async def save_expense(self, expense: NewExpense) -> int:
        """Persist a new expense and return its generated ID."""

        expense_id = await self._run(
            self._insert_expense, expense, error_type=ExpenseSaveError
        )
        LOGGER.debug(
            "Saved expense id=%s amount=%s category=%s",
            expense_id,
            expense.amount,
            expense.category,
        )
        return expense_id

    async def list_expenses(self) -> list[Expense]:
        """Return every expense, newest first."""

        return await self._run(
            self._fetch_expenses, "ORDER BY created_at DESC, id DESC"
        )

    async def export_snapshot(self) -> list[Expense]:
        """Return every expense in the order it was recorded."""

        return await self._run(self._fetch_expenses, "ORDER BY id ASC")

    async def _run(
        self,
        func: Callable[..., _T],
        *args: Any,
        error_type: type[StoreOperationError] = StoreOperationError,
    ) -> _T:
        self._require_connection()
        async with self._lock:
            conn = self._require_connection()
            try:
                return await anyio.to_thread.run_sync(partial(func, conn, *args))
            except sqlite3.Error as exc:
                LOGGER.error("Expense store %s failed: %s", func.__name__.lstrip("_"), exc)
                raise error_type(f"Expense store operation failed: {exc}") from exc

    def _require_connection(self) -> sqlite3.Connection:
        if self._conn is not None:
            return self._conn
        if self._init_error is not None:
            raise StoreNotReadyError(
                f"Expense store is not ready; initialization failed: {self._init_error}"
            )
        raise StoreNotReadyError("Expense store is not ready; call initialize() first.")

    def _open(self) -> sqlite3.Connection:
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(
            self._db_path,
            timeout=self._timeout,
            check_same_thread=False,
        )
        conn.row_factory = sqlite3.Row
        try:
            self._initialize_schema(conn)
            self._seed_settings(conn)
        except sqlite3.Error:
            conn.close()
            raise
        return conn

    @staticmethod
    def _initialize_schema(conn: sqlite3.Connection) -> None:
        with conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS expenses (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    amount TEXT NOT NULL,
                    payment_method TEXT NOT NULL,
                    category TEXT NOT NULL,
                    original_category TEXT NOT NULL DEFAULT '',
                    raw_text TEXT NOT NULL,
                    created_at TEXT NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_expenses_created_at
                ON expenses(created_at)
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS settings (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
                """
            )

    @staticmethod
    def _seed_settings(conn: sqlite3.Connection) -> None:
        with conn:
            count = conn.execute("SELECT COUNT(*) FROM settings").fetchone()[0]
            if count:
                return
            conn.executemany(
                "INSERT OR IGNORE INTO settings (key, value) VALUES (?, ?)",
                [
                    (key, _serialize_setting(default_settings_value(key)))
                    for key in SETTINGS_KEYS
                ],
            )
        LOGGER.info("Seeded default settings for %s", ", ".join(SETTINGS_KEYS))

    @staticmethod
    def _fetch_setting(conn: sqlite3.Connection, key: str) -> SettingsValue | None:
        row = conn.execute("SELECT value FROM settings WHERE key = ?", (key,)).fetchone()
        if not row:
            return None
        return json.loads(row["value"])

    @classmethod
    def _fetch_all_settings(cls, conn: sqlite3.Connection) -> dict[str, SettingsValue]:
        values: dict[str, SettingsValue] = {}
        for key in SETTINGS_KEYS:
            stored = cls._fetch_setting(conn, key)
            values[key] = default_settings_value(key) if stored is None else stored
        return values

    @staticmethod
    def _store_setting(conn: sqlite3.Connection, key: str, value: SettingsValue) -> None:
        with conn:
            conn.execute(
                """
                INSERT INTO settings (key, value) VALUES (?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value
                """,
                (key, _serialize_setting(value)),
            )

    def _insert_expense(self, conn: sqlite3.Connection, expense: NewExpense) -> int:
        created_at = _serialize_datetime(self._clock())
        with conn:
            cursor = conn.execute(
                """
                INSERT INTO expenses (
                    amount, payment_method, category, original_category, raw_text, created_at
                )
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    str(expense.amount),
                    expense.payment_method,
                    expense.category,
                    expense.original_category,
                    expense.raw_text,
                    created_at,
                ),
            )
            return int(cursor.lastrowid)

    @classmethod
    def _fetch_expenses(cls, conn: sqlite3.Connection, order_clause: str) -> list[Expense]:
        rows = conn.execute(f"SELECT * FROM expenses {order_clause}").fetchall()
        return [cls._row_to_expense(row) for row in rows]

    @staticmethod
    def _row_to_expense(row: sqlite3.Row) -> Expense:
        return Expense(
            id=int(row["id"]),
            amount=Decimal(row["amount"]),
            payment_method=row["payment_method"],
            category=row["category"],
            original_category=row["original_category"],
            raw_text=row["raw_text"],
            date=datetime.fromisoformat(row["created_at"]),
        )


def _require_known_key(key: str) -> None:
    if key not in SETTINGS_KEYS:
        raise UnknownSettingsKeyError(
            f"Unknown settings key {key!r}; expected one of {', '.join(SETTINGS_KEYS)}."
        )


def _coerce_settings_value(
    key: str, value: Sequence[str] | Mapping[str, str]
) -> SettingsValue:
    if key == MAPPINGS_KEY:
        if not isinstance(value, Mapping):
            raise TypeError("mappings must be a keyword -> category mapping.")
        if not all(isinstance(k, str) and isinstance(v, str) for k, v in value.items()):
            raise TypeError("mappings keys and values must be strings.")
        return dict(value)
    if isinstance(value, (str, bytes)) or not isinstance(value, Sequence):
        raise TypeError(f"{key} must be a list of strings.")
    if not all(isinstance(item, str) for item in value):
        raise TypeError(f"{key} entries must be strings.")
    return list(value)


def _serialize_setting(value: SettingsValue) -> str:
    return json.dumps(value, ensure_ascii=False)


def _serialize_datetime(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat(timespec="microseconds")


__all__ = [
    "ExpenseSaveError",
    "ExpenseStore",
    "ExpenseStoreError",
    "StoreInitializationError",
    "StoreNotReadyError",
    "StoreOperationError",
    "UnknownSettingsKeyError",
]
