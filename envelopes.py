"""Category envelope balances.

A category holds ``allocated`` (everything ever assigned to it), ``spent``
(outflows posted against it) and ``available`` (``allocated - spent``). The
store below is the only place those three numbers change; the funding engine
and the transaction reconciler call it with deltas.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Iterable, Optional

from money import AMOUNT_LIMIT, sum_amounts, validate_amount
from schemas import Account, Category, Transaction
from storage import CATEGORIES, KeyValueStore

logger = logging.getLogger(__name__)


class BalanceLimitError(ValueError):
    """A change would push a category balance past the amount limit."""


def spending_by_category(transactions: Iterable[Transaction]) -> dict[int, float]:
    spending: dict[int, float] = defaultdict(float)
    for txn in transactions:
        if txn.category_id is None:
            continue
        amount = validate_amount(txn.amount)
        if amount < 0:
            spending[txn.category_id] = validate_amount(
                spending[txn.category_id] + abs(amount)
            )
    return dict(spending)


def recompute_balances(
    categories: Iterable[Category], transactions: Iterable[Transaction]
) -> list[Category]:
    """Rebuild ``spent`` and ``available`` of every category from the posted
    transactions. ``allocated`` is left as is, which keeps the result
    idempotent."""
    spending = spending_by_category(transactions)
    result = []
    for category in categories:
        spent = spending.get(category.id, 0.0)
        result.append(
            category.with_balances(
                allocated=category.allocated,
                available=category.allocated - spent,
                spent=spent,
            )
        )
    return result


def calculate_to_be_allocated(
    accounts: Iterable[Account], categories: Iterable[Category]
) -> float:
    total_accounts = sum_amounts(account.balance for account in accounts)
    total_envelopes = sum_amounts(category.available for category in categories)
    return validate_amount(total_accounts - total_envelopes)


class EnvelopeStore:
    def __init__(self, categories: Iterable[Category] = ()) -> None:
        self._categories: dict[int, Category] = {c.id: c for c in categories}

    @classmethod
    def load(cls, store: KeyValueStore) -> "EnvelopeStore":
        rows = store.get(CATEGORIES, []) or []
        return cls(Category.model_validate(row) for row in rows)

    def save(self, store: KeyValueStore) -> None:
        store.set(CATEGORIES, [c.model_dump(mode="json") for c in self.list()])

    def list(self) -> list[Category]:
        return list(self._categories.values())

    def get(self, category_id: Optional[int]) -> Optional[Category]:
        if category_id is None:
            return None
        return self._categories.get(category_id)

    def __contains__(self, category_id: object) -> bool:
        return category_id in self._categories

    def add(self, category: Category) -> None:
        self._categories[category.id] = category

    def remove(self, category_id: int) -> None:
        self._categories.pop(category_id, None)

    def adjust(
        self,
        category_id: int,
        *,
        allocated: float = 0.0,
        spent: float = 0.0,
        **changes: object,
    ) -> Category:
        """Apply deltas to one category and return the new record.

        ``available`` follows from the two deltas, so the balance invariant
        holds after every call. Raises ``BalanceLimitError`` and leaves the
        category untouched when a balance would leave the amount limit.
        """
        category = self._categories[category_id]
        allocated = validate_amount(allocated)
        spent = validate_amount(spent)
        new_allocated = category.allocated + allocated
        new_available = category.available + allocated - spent
        new_spent = category.spent + spent
        if any(abs(v) > AMOUNT_LIMIT for v in (new_allocated, new_available, new_spent)):
            logger.warning(
                f"envelope_limit_exceeded: category={category_id} "
                f"allocated={new_allocated} spent={new_spent} available={new_available}"
            )
            raise BalanceLimitError("Category balance would exceed the amount limit")
        updated = category.with_balances(
            allocated=new_allocated,
            available=new_available,
            spent=new_spent,
        )
        if changes:
            updated = updated.model_copy(update=changes)
        if not updated.is_balanced:
            logger.warning(
                f"envelope_unbalanced: category={category_id} "
                f"allocated={updated.allocated} spent={updated.spent} "
                f"available={updated.available}"
            )
        self._categories[category_id] = updated
        return updated

    def recompute(self, transactions: Iterable[Transaction]) -> list[Category]:
        categories = recompute_balances(self.list(), transactions)
        self._categories = {c.id: c for c in categories}
        return categories
