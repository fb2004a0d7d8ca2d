"""Unit tests for the SQLite expense store."""

from __future__ import annotations

import sqlite3
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from itertools import count

import anyio
import pytest

from expense_voice.models import (
    CATEGORIES_KEY,
    DEFAULT_CATEGORIES,
    DEFAULT_MAPPINGS,
    DEFAULT_PAYMENT_METHODS,
    MAPPINGS_KEY,
    PAYMENT_METHODS_KEY,
    NewExpense,
    SettingsSnapshot,
)
from expense_voice.storage import (
    ExpenseSaveError,
    ExpenseStore,
    StoreInitializationError,
    StoreNotReadyError,
    StoreOperationError,
    UnknownSettingsKeyError,
)

BASE_TIME = datetime(2025, 3, 1, 12, 0, tzinfo=UTC)


@pytest.fixture(name="anyio_backend")
def _anyio_backend() -> str:
    return "asyncio"


def make_clock(step_seconds: int = 60):
    """Clock returning strictly increasing timestamps."""

    ticks = count()
    return lambda: BASE_TIME + timedelta(seconds=step_seconds * next(ticks))


def make_expense(raw_text: str = "Carne 5000 con 50 efectivo", amount: str = "5000.50") -> NewExpense:
    return NewExpense(
        amount=Decimal(amount),
        payment_method="Efectivo",
        category="Supermercado",
        original_category="Carne",
        raw_text=raw_text,
    )


@pytest.fixture
async def store(tmp_path):
    """Provide an initialized store backed by a temporary SQLite file."""

    repository = ExpenseStore(tmp_path / "expenses.sqlite", clock=make_clock())
    await repository.initialize()
    yield repository
    await repository.close()


@pytest.mark.anyio()
async def test_initialize_seeds_default_settings(store: ExpenseStore) -> None:
    assert store.is_ready
    assert await store.get_settings(PAYMENT_METHODS_KEY) == list(DEFAULT_PAYMENT_METHODS)
    assert await store.get_settings(CATEGORIES_KEY) == list(DEFAULT_CATEGORIES)
    assert await store.get_settings(MAPPINGS_KEY) == DEFAULT_MAPPINGS
    assert await store.settings_snapshot() == SettingsSnapshot.defaults()


@pytest.mark.anyio()
async def test_initialize_is_idempotent_and_never_reseeds(tmp_path) -> None:
    database = tmp_path / "expenses.sqlite"
    async with ExpenseStore(database) as first:
        await first.initialize()
        await first.put_settings(CATEGORIES_KEY, ["Regalos"])

    async with ExpenseStore(database) as reopened:
        assert await reopened.get_settings(CATEGORIES_KEY) == ["Regalos"]
        assert await reopened.get_settings(PAYMENT_METHODS_KEY) == list(DEFAULT_PAYMENT_METHODS)


@pytest.mark.anyio()
async def test_put_settings_replaces_without_merge_or_dedup(store: ExpenseStore) -> None:
    await store.put_settings(CATEGORIES_KEY, ["Viajes", "Comida", "Comida"])
    await store.put_settings(MAPPINGS_KEY, {"pizza": "Comida"})

    assert await store.get_settings(CATEGORIES_KEY) == ["Viajes", "Comida", "Comida"]
    assert await store.get_settings(MAPPINGS_KEY) == {"pizza": "Comida"}


@pytest.mark.anyio()
async def test_get_settings_returns_default_when_key_is_absent(tmp_path) -> None:
    database = tmp_path / "expenses.sqlite"
    async with ExpenseStore(database) as repository:
        connection = sqlite3.connect(database)
        with connection:
            connection.execute("DELETE FROM settings WHERE key = ?", (MAPPINGS_KEY,))
        connection.close()

        assert await repository.get_settings(MAPPINGS_KEY) == DEFAULT_MAPPINGS


@pytest.mark.anyio()
async def test_settings_keys_and_values_are_validated(store: ExpenseStore) -> None:
    with pytest.raises(UnknownSettingsKeyError):
        await store.get_settings("currencies")
    with pytest.raises(TypeError):
        await store.put_settings(CATEGORIES_KEY, "Comida")
    with pytest.raises(TypeError):
        await store.put_settings(MAPPINGS_KEY, ["pizza"])


@pytest.mark.anyio()
async def test_save_and_list_roundtrip(store: ExpenseStore) -> None:
    expense = make_expense()

    expense_id = await store.save_expense(expense)
    listed = await store.list_expenses()

    assert len(listed) == 1
    stored = listed[0]
    assert stored.id == expense_id
    assert stored.amount == expense.amount
    assert stored.display_amount == "5000.50"
    assert stored.payment_method == expense.payment_method
    assert stored.category == expense.category
    assert stored.original_category == expense.original_category
    assert stored.raw_text == expense.raw_text
    assert stored.date == BASE_TIME


@pytest.mark.anyio()
async def test_list_is_newest_first_and_export_is_chronological(store: ExpenseStore) -> None:
    ids = [
        await store.save_expense(make_expense(raw_text=f"Pan {value}", amount=str(value)))
        for value in (100, 200, 300)
    ]

    newest_first = await store.list_expenses()
    chronological = await store.export_snapshot()

    assert [expense.id for expense in newest_first] == list(reversed(ids))
    assert [expense.id for expense in chronological] == ids
    assert ids == sorted(ids)


@pytest.mark.anyio()
async def test_concurrent_saves_never_share_an_id(store: ExpenseStore) -> None:
    ids: list[int] = []

    async def save(index: int) -> None:
        ids.append(await store.save_expense(make_expense(raw_text=f"Pan {index}", amount="1")))

    async with anyio.create_task_group() as tg:
        for index in range(20):
            tg.start_soon(save, index)

    assert len(ids) == 20
    assert len(set(ids)) == 20
    assert len(await store.list_expenses()) == 20


@pytest.mark.anyio()
async def test_operations_fail_fast_before_initialize(tmp_path) -> None:
    repository = ExpenseStore(tmp_path / "expenses.sqlite")

    with pytest.raises(StoreNotReadyError):
        await repository.save_expense(make_expense())
    with pytest.raises(StoreNotReadyError):
        await repository.list_expenses()
    with pytest.raises(StoreNotReadyError):
        await repository.get_settings(CATEGORIES_KEY)


@pytest.mark.anyio()
async def test_failed_initialize_is_reported_and_blocks_later_calls(tmp_path) -> None:
    repository = ExpenseStore(tmp_path)  # a directory cannot be opened as a database

    with pytest.raises(StoreInitializationError):
        await repository.initialize()

    assert not repository.is_ready
    with pytest.raises(StoreNotReadyError, match="initialization failed"):
        await repository.list_expenses()


@pytest.mark.anyio()
async def test_failed_save_raises_and_leaves_no_partial_record(tmp_path) -> None:
    database = tmp_path / "expenses.sqlite"
    async with ExpenseStore(database) as repository:
        connection = sqlite3.connect(database)
        with connection:
            connection.execute(
                """
                CREATE TRIGGER reject_expenses BEFORE INSERT ON expenses
                BEGIN
                    SELECT RAISE(ABORT, 'disk quota exceeded');
                END
                """
            )

        with pytest.raises(ExpenseSaveError, match="disk quota exceeded"):
            await repository.save_expense(make_expense())
        assert await repository.list_expenses() == []

        with connection:
            connection.execute("DROP TRIGGER reject_expenses")
        connection.close()

        assert await repository.save_expense(make_expense()) >= 1


@pytest.mark.anyio()
async def test_closed_store_is_not_ready(tmp_path) -> None:
    repository = ExpenseStore(tmp_path / "expenses.sqlite")
    await repository.initialize()
    await repository.close()

    with pytest.raises(StoreNotReadyError):
        await repository.list_expenses()


def test_new_expense_rejects_negative_amounts() -> None:
    with pytest.raises(ValueError):
        make_expense(amount="-1")
    assert make_expense(amount="0").amount == Decimal("0.00")


@pytest.mark.anyio()
async def test_failed_settings_write_raises_store_error(tmp_path) -> None:
    database = tmp_path / "expenses.sqlite"
    async with ExpenseStore(database) as repository:
        connection = sqlite3.connect(database)
        with connection:
            connection.execute(
                """
                CREATE TRIGGER reject_settings BEFORE UPDATE ON settings
                BEGIN
                    SELECT RAISE(ABORT, 'disk quota exceeded');
                END
                """
            )
        connection.close()

        with pytest.raises(StoreOperationError, match="disk quota exceeded") as excinfo:
            await repository.put_settings(CATEGORIES_KEY, ["Regalos"])

        assert isinstance(excinfo.value.__cause__, sqlite3.Error)
        assert await repository.get_settings(CATEGORIES_KEY) == list(DEFAULT_CATEGORIES)


@pytest.mark.anyio()
async def test_failed_reads_raise_store_error(tmp_path) -> None:
    database = tmp_path / "expenses.sqlite"
    async with ExpenseStore(database) as repository:
        connection = sqlite3.connect(database)
        with connection:
            connection.execute("DROP TABLE expenses")
            connection.execute("DROP TABLE settings")
        connection.close()

        with pytest.raises(StoreOperationError):
            await repository.list_expenses()
        with pytest.raises(StoreOperationError):
            await repository.export_snapshot()
        with pytest.raises(StoreOperationError):
            await repository.get_settings(MAPPINGS_KEY)
        with pytest.raises(StoreOperationError):
            await repository.settings_snapshot()
