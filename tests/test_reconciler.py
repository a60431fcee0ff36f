from datetime import date

import pytest

from envelopes import BalanceLimitError, EnvelopeStore
from schemas import Transaction, TransactionIn
from services import TransactionReconciler, TransactionService
from storage import CATEGORIES, TRANSACTIONS, MemoryStore


def _store():
    return MemoryStore(
        {CATEGORIES: [{"id": 1, "allocated": 100}, {"id": 2, "allocated": 20}]}
    )


def _category(store, category_id):
    return EnvelopeStore.load(store).get(category_id)


def test_expense_reduces_available() -> None:
    store = _store()

    TransactionReconciler(store).handle_transaction_for_category(
        Transaction(id=1, category_id=1, amount=-50)
    )

    category = _category(store, 1)
    assert category.spent == 50
    assert category.available == 50
    assert category.allocated == 100


def test_edit_reverses_previous_effect() -> None:
    store = _store()
    reconciler = TransactionReconciler(store)
    original = Transaction(id=1, category_id=1, amount=-50)
    reconciler.handle_transaction_for_category(original)

    edited = original.model_copy(update={"amount": -30})
    reconciler.handle_transaction_for_category(edited, original)

    category = _category(store, 1)
    assert category.available == 70
    assert category.spent == 30


def test_inflow_adds_to_allocated() -> None:
    store = _store()

    TransactionReconciler(store).handle_transaction_for_category(
        Transaction(id=1, category_id=1, amount=25, is_inflow=True)
    )

    category = _category(store, 1)
    assert category.allocated == 125
    assert category.available == 125


def test_ignored_transactions_leave_balances_alone() -> None:
    store = _store()
    reconciler = TransactionReconciler(store)
    before = EnvelopeStore.load(store).list()

    reconciler.handle_transaction_for_category(Transaction(id=1, category_id=None, amount=-10))
    reconciler.handle_transaction_for_category(Transaction(id=2, category_id=1, amount=0))
    reconciler.handle_transaction_for_category(
        Transaction(id=3, category_id=1, amount=float("nan"))
    )
    reconciler.handle_transaction_for_category(Transaction(id=4, category_id=1, amount=15))

    assert EnvelopeStore.load(store).list() == before


def test_overspending_is_flagged() -> None:
    store = _store()

    TransactionReconciler(store).handle_transaction_for_category(
        Transaction(id=1, category_id=2, amount=-45)
    )

    category = _category(store, 2)
    assert category.available == -25
    assert category.overspent
    assert category.is_balanced


def test_recompute_matches_incremental_updates() -> None:
    store = _store()
    transactions = [
        Transaction(id=1, category_id=1, amount=-20, date=date(2025, 3, 1)),
        Transaction(id=2, category_id=2, amount=-45, date=date(2025, 3, 2)),
    ]
    reconciler = TransactionReconciler(store)
    for txn in transactions:
        reconciler.handle_transaction_for_category(txn)
    incremental = store.get(CATEGORIES)
    store.set(TRANSACTIONS, [txn.model_dump(mode="json") for txn in transactions])

    first = reconciler.recompute_balances()
    second = reconciler.recompute_balances()

    assert first == second
    assert store.get(CATEGORIES) == incremental


def test_transaction_service_keeps_categories_in_step() -> None:
    store = _store()
    service = TransactionService(store)

    txn = service.create(TransactionIn(category_id=1, amount=-50, payee="Market"))
    assert _category(store, 1).available == 50

    service.update(txn.id, TransactionIn(category_id=1, amount=-30, payee="Market"))
    assert _category(store, 1).available == 70

    service.update(txn.id, TransactionIn(category_id=2, amount=-30, payee="Market"))
    assert _category(store, 1).available == 100
    assert _category(store, 2).available == -10

    service.delete(txn.id)
    assert _category(store, 2).available == 20
    assert service.list_all() == []


def test_uncategorizing_a_transaction_restores_the_envelope() -> None:
    store = _store()
    service = TransactionService(store)
    txn = service.create(TransactionIn(category_id=1, amount=-40))

    service.update(txn.id, TransactionIn(category_id=None, amount=-40))

    assert _category(store, 1).available == 100
    service.delete(txn.id)
    assert _category(store, 1).available == 100


def test_transaction_past_the_amount_limit_is_rejected() -> None:
    store = MemoryStore({CATEGORIES: [{"id": 1, "allocated": 0, "spent": 99_990}]})
    service = TransactionService(store)

    assert not TransactionReconciler(store).handle_transaction_for_category(
        Transaction(id=1, category_id=1, amount=-20)
    )
    with pytest.raises(BalanceLimitError):
        service.create(TransactionIn(category_id=1, amount=-20))

    category = _category(store, 1)
    assert category.spent == 99_990
    assert category.is_balanced
    assert service.list_all() == []
