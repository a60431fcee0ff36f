from __future__ import annotations

import functools
import logging
import threading
from collections import defaultdict
from datetime import date, datetime
from itertools import islice, takewhile
from typing import Callable, Iterable, Optional, Sequence, TypeVar, Union

from pydantic import BaseModel

from config import get_settings
from envelopes import BalanceLimitError, EnvelopeStore, calculate_to_be_allocated
from money import sum_amounts, validate_amount
from schedule import (
    PAYCHECKS_PER_MONTH,
    add_months,
    iter_paycheck_dates,
    local_now,
    local_today,
    paycheck_dates,
    paychecks_per_year,
)
from schemas import (
    Account,
    AccountDistribution,
    AccountIn,
    AutoFundResult,
    Category,
    CategoryIn,
    CategoryReport,
    CategoryTransfer,
    FundingHistoryEntry,
    FundingResult,
    FundingSuggestion,
    Paycheck,
    PaycheckHistoryEntry,
    PaycheckIn,
    PaycheckReceivedIn,
    PlanningItem,
    PlanningItemIn,
    Transaction,
    TransactionIn,
    UpcomingPaycheck,
)
from storage import (
    ACCOUNTS,
    CATEGORY_FUNDING_HISTORY,
    CATEGORY_TRANSFERS,
    KeyValueStore,
    MONTHLY_BUDGET,
    PAYCHECKS,
    PLANNING_ITEMS,
    TRANSACTIONS,
)

logger = logging.getLogger(__name__)

# Endpoint name of the unallocated pool ("ready to assign") in transfers.
UNALLOCATED = "toBeAllocated"

MAX_UPCOMING_SCAN = 1040

RecordT = TypeVar("RecordT", bound=BaseModel)
Endpoint = Union[int, str, None]

# Every mutation is a load-modify-write of whole keys; API requests run on a
# thread pool, so mutations are serialised process-wide.
_LEDGER_LOCK = threading.RLock()


def _serialized(method):
    @functools.wraps(method)
    def wrapper(*args, **kwargs):
        with _LEDGER_LOCK:
            return method(*args, **kwargs)

    return wrapper


def _load(store: KeyValueStore, key: str, model: type[RecordT]) -> list[RecordT]:
    return [model.model_validate(row) for row in store.get(key, []) or []]


def _dump(records: Iterable[BaseModel]) -> list[dict]:
    return [record.model_dump(mode="json") for record in records]


def _next_id(records: Iterable[BaseModel]) -> int:
    return max((getattr(r, "id", 0) or 0 for r in records), default=0) + 1


def _is_category_id(endpoint: Endpoint) -> bool:
    return isinstance(endpoint, int) and not isinstance(endpoint, bool)


def _credit_items(
    items: Sequence[PlanningItem], shares: dict[int, float]
) -> list[PlanningItem]:
    credited = []
    for item in items:
        if item.id in shares:
            item = item.model_copy(
                update={
                    "needs_allocation": False,
                    "allocated": validate_amount(item.allocated + shares[item.id]),
                }
            )
        credited.append(item)
    return credited


class FundingService:
    def __init__(
        self, store: KeyValueStore, clock: Callable[[], datetime] = local_now
    ) -> None:
        self.store = store
        self.clock = clock

    def planning_items(self) -> list[PlanningItem]:
        return _load(self.store, PLANNING_ITEMS, PlanningItem)

    def accounts(self) -> list[Account]:
        return _load(self.store, ACCOUNTS, Account)

    def categories(self) -> list[Category]:
        return EnvelopeStore.load(self.store).list()

    def funding_history(self) -> list[FundingHistoryEntry]:
        return _load(self.store, CATEGORY_FUNDING_HISTORY, FundingHistoryEntry)

    def transfers(self) -> list[CategoryTransfer]:
        return _load(self.store, CATEGORY_TRANSFERS, CategoryTransfer)

    def monthly_budget(self) -> dict[int, float]:
        raw = self.store.get(MONTHLY_BUDGET, {}) or {}
        return {int(key): validate_amount(value) for key, value in raw.items()}

    def calculate_to_be_allocated(self) -> float:
        return calculate_to_be_allocated(self.accounts(), self.categories())

    @_serialized
    def fund_category(
        self,
        category_id: Optional[int],
        amount: float,
        paycheck_id: Optional[int] = None,
        date: Optional[datetime] = None,
    ) -> bool:
        return self._fund(category_id, amount, paycheck_id, date, guided=False)

    def _fund(
        self,
        category_id: Optional[int],
        amount: float,
        paycheck_id: Optional[int],
        when: Optional[datetime],
        *,
        guided: bool,
        item_shares: Optional[dict[int, float]] = None,
    ) -> bool:
        if category_id is None:
            return False
        validated = validate_amount(amount)
        if validated == 0:
            return False

        envelopes = EnvelopeStore.load(self.store)
        category = envelopes.get(category_id)
        if category is None:
            logger.info(f"fund_category_failed: category={category_id} reason=not_found")
            return False
        if validated < 0 and abs(validated) > category.available:
            logger.info(
                f"fund_category_failed: category={category_id} "
                f"reason=insufficient_available requested={abs(validated)} "
                f"available={category.available}"
            )
            return False

        items = self.planning_items()
        waiting = [
            item
            for item in items
            if item.category_id == category_id and item.needs_allocation
        ]
        # Manual top-ups wait until the guided paycheck allocation has run for
        # items added since the last pass.
        if validated > 0 and paycheck_id is None and waiting and not guided:
            logger.info(
                f"fund_category_blocked: category={category_id} "
                f"items_awaiting_allocation={len(waiting)}"
            )
            return False

        when = when or self.clock()
        try:
            envelopes.adjust(category_id, allocated=validated, last_funded=when)
        except BalanceLimitError:
            logger.info(f"fund_category_failed: category={category_id} reason=limit")
            return False

        if validated > 0 and (paycheck_id is not None or guided):
            if item_shares is None and waiting:
                per_item = validated / len(waiting)
                item_shares = {item.id: per_item for item in waiting}
            if item_shares:
                self.store.set(PLANNING_ITEMS, _dump(_credit_items(items, item_shares)))

        if paycheck_id is not None:
            note = "Funded from paycheck"
        elif guided:
            note = "Auto-funded"
        else:
            note = "Manual funding"
        history = self.funding_history()
        history.append(
            FundingHistoryEntry(
                id=_next_id(history),
                category_id=category_id,
                amount=validated,
                paycheck_id=paycheck_id,
                date=when,
                note=note,
            )
        )
        envelopes.save(self.store)
        self.store.set(CATEGORY_FUNDING_HISTORY, _dump(history))
        self.store.commit()
        return True

    @_serialized
    def move_money(
        self,
        from_category_id: Optional[int],
        to_category_id: Optional[int],
        amount: float,
        note: str = "",
    ) -> bool:
        if from_category_id is None or to_category_id is None:
            return False
        validated = validate_amount(amount)
        if validated <= 0 or from_category_id == to_category_id:
            return False

        envelopes = EnvelopeStore.load(self.store)
        source = envelopes.get(from_category_id)
        if source is None or to_category_id not in envelopes:
            return False
        if source.available < validated:
            logger.info(
                f"move_money_failed: from={from_category_id} to={to_category_id} "
                f"requested={validated} available={source.available}"
            )
            return False

        try:
            envelopes.adjust(from_category_id, allocated=-validated)
            envelopes.adjust(to_category_id, allocated=validated)
        except BalanceLimitError:
            logger.info(
                f"move_money_failed: from={from_category_id} to={to_category_id} "
                f"reason=limit"
            )
            return False

        transfers = self.transfers()
        transfers.append(
            CategoryTransfer(
                id=_next_id(transfers),
                from_category_id=from_category_id,
                to_category_id=to_category_id,
                amount=validated,
                date=self.clock(),
                note=note,
            )
        )
        envelopes.save(self.store)
        self.store.set(CATEGORY_TRANSFERS, _dump(transfers))
        self.store.commit()
        return True

    @_serialized
    def transfer_funds(
        self,
        source: Endpoint,
        destination: Endpoint,
        amount: float,
        note: str = "",
        paycheck_id: Optional[int] = None,
    ) -> bool:
        if source is None or destination is None or source == destination:
            return False
        validated = validate_amount(amount)
        if validated <= 0:
            return False

        if source == UNALLOCATED and _is_category_id(destination):
            return self.fund_category(destination, validated, paycheck_id)
        if _is_category_id(source) and destination == UNALLOCATED:
            return self.fund_category(source, -validated, paycheck_id)
        if _is_category_id(source) and _is_category_id(destination):
            return self.move_money(source, destination, validated, note)
        return False

    @_serialized
    def auto_fund_categories(
        self, total_amount: float, paycheck_id: Optional[int] = None
    ) -> AutoFundResult:
        """Spread a lump sum over categories whose items await allocation.

        A sum smaller than the combined need is scaled down proportionally;
        a category never receives more than it asked for.
        """
        validated_total = validate_amount(total_amount)
        if validated_total <= 0:
            return AutoFundResult()

        by_category: dict[int, list[PlanningItem]] = defaultdict(list)
        for item in self.planning_items():
            if item.is_active and item.needs_allocation and item.category_id is not None:
                by_category[item.category_id].append(item)

        requested = {
            category_id: sum_amounts(item.funding_amount for item in items)
            for category_id, items in by_category.items()
        }
        requested = {cid: amount for cid, amount in requested.items() if amount > 0}
        total_needed = sum_amounts(requested.values())
        scale = validated_total / total_needed if validated_total < total_needed else 1.0

        total_funded = 0.0
        results = []
        for category_id, amount in requested.items():
            scaled = validate_amount(min(amount * scale, amount))
            if scaled <= 0:
                continue
            shares = {
                item.id: min(item.funding_amount * scale, item.funding_amount)
                for item in by_category[category_id]
            }
            success = self._fund(
                category_id, scaled, paycheck_id, None, guided=True, item_shares=shares
            )
            results.append(
                FundingResult(category_id=category_id, amount=scaled, success=success)
            )
            if success:
                total_funded = validate_amount(total_funded + scaled)

        remaining = validate_amount(validated_total - total_funded)
        logger.info(
            f"auto_fund: paycheck={paycheck_id} total={validated_total} "
            f"needed={total_needed} funded={total_funded} remaining={remaining}"
        )
        return AutoFundResult(
            total_funded=total_funded,
            funding_results=results,
            remaining_to_allocate=remaining,
        )

    def calculate_needed_funding(self) -> dict[int, float]:
        needed: dict[int, float] = defaultdict(float)
        for item in self.planning_items():
            if item.category_id is None or not item.counts_toward_need:
                continue
            needed[item.category_id] = validate_amount(
                needed[item.category_id] + item.funding_amount
            )
        return dict(needed)

    def get_funding_suggestions(self) -> list[FundingSuggestion]:
        needed = self.calculate_needed_funding()
        suggestions = []
        for category in self.categories():
            needed_amount = needed.get(category.id, 0.0)
            if needed_amount <= 0:
                continue
            suggestions.append(
                FundingSuggestion(
                    category_id=category.id,
                    category_name=category.name,
                    current_available=category.available,
                    needed_amount=needed_amount,
                    suggested_funding=max(0.0, needed_amount - category.available),
                )
            )
        suggestions.sort(key=lambda s: s.suggested_funding, reverse=True)
        return suggestions

    def get_category_report(
        self, category_id: int, start_date: date, end_date: date
    ) -> CategoryReport:
        transactions = [
            txn
            for txn in _load(self.store, TRANSACTIONS, Transaction)
            if txn.category_id == category_id
            and txn.date is not None
            and start_date <= txn.date <= end_date
        ]
        funding = [
            entry
            for entry in self.funding_history()
            if entry.category_id == category_id
            and start_date <= entry.date.date() <= end_date
        ]
        total_spent = sum_amounts(
            abs(validate_amount(txn.amount))
            for txn in transactions
            if validate_amount(txn.amount) < 0
        )
        total_funded = sum_amounts(entry.amount for entry in funding)
        return CategoryReport(
            category_id=category_id,
            start_date=start_date,
            end_date=end_date,
            transactions=transactions,
            funding=funding,
            total_spent=total_spent,
            total_funded=total_funded,
            net_change=validate_amount(total_funded - total_spent),
        )

    @_serialized
    def set_monthly_budget_for_category(self, category_id: int, amount: float) -> None:
        if category_id not in EnvelopeStore.load(self.store):
            raise ValueError("Category not found")
        budget = self.store.get(MONTHLY_BUDGET, {}) or {}
        budget[str(category_id)] = validate_amount(amount)
        self.store.set(MONTHLY_BUDGET, budget)
        self.store.commit()


class TransactionReconciler:
    """Keeps category balances in step with posted transactions.

    An edited transaction must be handed over together with its previous
    state so the old effect is reversed before the new one is applied.
    """

    def __init__(self, store: KeyValueStore) -> None:
        self.store = store

    @_serialized
    def handle_transaction_for_category(
        self, transaction: Transaction, old_transaction: Optional[Transaction] = None
    ) -> bool:
        """Apply one transaction; False when it would break the amount limit,
        in which case nothing is written."""
        if transaction.category_id is None:
            return True
        if validate_amount(transaction.amount) == 0:
            return True
        envelopes = EnvelopeStore.load(self.store)
        try:
            if old_transaction is not None:
                self._reverse(envelopes, old_transaction)
            self._apply(envelopes, transaction)
        except BalanceLimitError:
            logger.warning(
                f"transaction_not_applied: transaction={transaction.id} "
                f"category={transaction.category_id} reason=limit"
            )
            return False
        envelopes.save(self.store)
        self.store.commit()
        return True

    @_serialized
    def reverse_transaction(self, transaction: Transaction) -> bool:
        envelopes = EnvelopeStore.load(self.store)
        try:
            changed = self._reverse(envelopes, transaction)
        except BalanceLimitError:
            logger.warning(
                f"transaction_not_reversed: transaction={transaction.id} reason=limit"
            )
            return False
        if changed:
            envelopes.save(self.store)
            self.store.commit()
        return True

    @_serialized
    def recompute_balances(self) -> list[Category]:
        envelopes = EnvelopeStore.load(self.store)
        categories = envelopes.recompute(_load(self.store, TRANSACTIONS, Transaction))
        envelopes.save(self.store)
        self.store.commit()
        return categories

    @staticmethod
    def _reverse(envelopes: EnvelopeStore, transaction: Transaction) -> bool:
        if transaction.category_id not in envelopes:
            return False
        amount = validate_amount(transaction.amount)
        if amount < 0:
            envelopes.adjust(transaction.category_id, spent=-abs(amount))
            return True
        if amount > 0 and transaction.is_inflow:
            envelopes.adjust(transaction.category_id, allocated=-amount)
            return True
        return False

    @staticmethod
    def _apply(envelopes: EnvelopeStore, transaction: Transaction) -> None:
        if transaction.category_id not in envelopes:
            return
        amount = validate_amount(transaction.amount)
        if amount < 0:
            envelopes.adjust(transaction.category_id, spent=abs(amount))
        elif transaction.is_inflow:
            envelopes.adjust(transaction.category_id, allocated=amount)


class PaycheckService:
    def __init__(self, store: KeyValueStore) -> None:
        self.store = store

    def list_all(self) -> list[Paycheck]:
        return _load(self.store, PAYCHECKS, Paycheck)

    def get(self, paycheck_id: int) -> Paycheck:
        for paycheck in self.list_all():
            if paycheck.id == paycheck_id:
                return paycheck
        raise ValueError("Paycheck not found")

    def _save(self, paychecks: list[Paycheck]) -> None:
        self.store.set(PAYCHECKS, _dump(paychecks))
        self.store.commit()

    def _replace(self, updated: Paycheck) -> Paycheck:
        paychecks = [updated if p.id == updated.id else p for p in self.list_all()]
        self._save(paychecks)
        return updated

    @_serialized
    def create(self, data: PaycheckIn) -> Paycheck:
        paychecks = self.list_all()
        new_id = _next_id(paychecks)
        base_amount = validate_amount(data.base_amount)
        distribution = data.account_distribution
        if distribution is None:
            accounts = _load(self.store, ACCOUNTS, Account)
            distribution = (
                [AccountDistribution(account_id=accounts[0].id, amount=base_amount)]
                if accounts
                else []
            )
        paycheck = Paycheck(
            id=new_id,
            name=data.name or f"Paycheck {new_id}",
            frequency=data.frequency,
            start_date=data.start_date or local_today().isoformat(),
            base_amount=base_amount,
            variable_amount=data.variable_amount,
            account_distribution=distribution,
        )
        paychecks.append(paycheck)
        self._save(paychecks)
        return paycheck

    @_serialized
    def update(self, paycheck_id: int, data: PaycheckIn) -> Paycheck:
        current = self.get(paycheck_id)
        changes = data.model_dump(exclude_unset=True)
        merged = Paycheck.model_validate({**current.model_dump(), **changes})
        return self._replace(merged)

    @_serialized
    def delete(self, paycheck_id: int) -> bool:
        paychecks = self.list_all()
        if not any(p.id == paycheck_id for p in paychecks):
            raise ValueError("Paycheck not found")
        if len(paychecks) <= 1:
            logger.warning(f"paycheck_delete_refused: paycheck={paycheck_id} reason=last")
            return False
        self._save([p for p in paychecks if p.id != paycheck_id])
        return True

    @_serialized
    def toggle_active(self, paycheck_id: int) -> Paycheck:
        current = self.get(paycheck_id)
        return self._replace(current.model_copy(update={"is_active": not current.is_active}))

    @_serialized
    def record_paycheck_received(
        self, paycheck_id: int, data: PaycheckReceivedIn
    ) -> Paycheck:
        current = self.get(paycheck_id)
        entry = PaycheckHistoryEntry(
            date=data.date,
            actual_amount=validate_amount(data.actual_amount),
            notes=data.notes,
        )
        return self._replace(
            current.model_copy(
                update={"history_entries": [entry, *current.history_entries]}
            )
        )

    def generate_paycheck_dates(
        self, paycheck_id: int, number_of_dates: Optional[int] = None
    ) -> list[date]:
        try:
            paycheck = self.get(paycheck_id)
        except ValueError:
            return []
        if number_of_dates is None:
            number_of_dates = get_settings().paycheck_dates
        return paycheck_dates(paycheck.start_date, paycheck.frequency, number_of_dates)

    def paychecks_per_year(self, paycheck_id: int) -> int:
        return paychecks_per_year(self.get(paycheck_id).frequency)

    def calculate_total_monthly_income(self) -> float:
        return sum_amounts(
            validate_amount(p.base_amount) * PAYCHECKS_PER_MONTH[p.frequency]
            for p in self.list_all()
            if p.is_active
        )

    def get_all_upcoming_paycheck_dates(
        self, number_of_months: int = 3, today: Optional[date] = None
    ) -> list[UpcomingPaycheck]:
        today = today or local_today()
        end_date = add_months(today, number_of_months, desired_day=today.day)
        upcoming = []
        for paycheck in self.list_all():
            if not paycheck.is_active:
                continue
            dates = islice(
                iter_paycheck_dates(paycheck.start_date, paycheck.frequency, today=today),
                MAX_UPCOMING_SCAN,
            )
            for paycheck_date in takewhile(lambda d: d <= end_date, dates):
                if paycheck_date < today:
                    continue
                upcoming.append(
                    UpcomingPaycheck(
                        date=paycheck_date,
                        paycheck_id=paycheck.id,
                        paycheck_name=paycheck.name,
                        amount=validate_amount(paycheck.base_amount),
                    )
                )
        upcoming.sort(key=lambda u: (u.date, u.paycheck_id))
        return upcoming


class CategoryService:
    def __init__(self, store: KeyValueStore) -> None:
        self.store = store

    def list_all(self) -> list[Category]:
        return EnvelopeStore.load(self.store).list()

    @_serialized
    def create(self, data: CategoryIn) -> Category:
        envelopes = EnvelopeStore.load(self.store)
        name = data.name.strip()
        if any(c.name.lower() == name.lower() for c in envelopes.list()):
            raise ValueError("Category with this name already exists")
        category = Category(id=_next_id(envelopes.list()), name=name)
        envelopes.add(category)
        envelopes.save(self.store)
        self.store.commit()
        return category

    @_serialized
    def rename(self, category_id: int, name: str) -> Category:
        envelopes = EnvelopeStore.load(self.store)
        category = envelopes.get(category_id)
        if category is None:
            raise ValueError("Category not found")
        renamed = category.model_copy(update={"name": name.strip()})
        envelopes.add(renamed)
        envelopes.save(self.store)
        self.store.commit()
        return renamed

    @_serialized
    def delete(self, category_id: int) -> None:
        envelopes = EnvelopeStore.load(self.store)
        category = envelopes.get(category_id)
        if category is None:
            raise ValueError("Category not found")
        if category.available != 0:
            raise ValueError("Move the category's available funds before deleting it")
        envelopes.remove(category_id)
        envelopes.save(self.store)
        self.store.commit()


class AccountService:
    def __init__(self, store: KeyValueStore) -> None:
        self.store = store

    def list_all(self) -> list[Account]:
        return _load(self.store, ACCOUNTS, Account)

    @_serialized
    def create(self, data: AccountIn) -> Account:
        accounts = self.list_all()
        account = Account(
            id=_next_id(accounts),
            name=data.name.strip(),
            balance=validate_amount(data.balance),
        )
        accounts.append(account)
        self.store.set(ACCOUNTS, _dump(accounts))
        self.store.commit()
        return account

    @_serialized
    def set_balance(self, account_id: int, balance: float) -> Account:
        accounts = self.list_all()
        for index, account in enumerate(accounts):
            if account.id == account_id:
                accounts[index] = account.model_copy(
                    update={"balance": validate_amount(balance)}
                )
                self.store.set(ACCOUNTS, _dump(accounts))
                self.store.commit()
                return accounts[index]
        raise ValueError("Account not found")

    @_serialized
    def delete(self, account_id: int) -> None:
        accounts = self.list_all()
        remaining = [a for a in accounts if a.id != account_id]
        if len(remaining) == len(accounts):
            raise ValueError("Account not found")
        self.store.set(ACCOUNTS, _dump(remaining))
        self.store.commit()


class PlanningItemService:
    def __init__(self, store: KeyValueStore) -> None:
        self.store = store

    def list_all(self) -> list[PlanningItem]:
        return _load(self.store, PLANNING_ITEMS, PlanningItem)

    def _check_category(self, category_id: int) -> None:
        if category_id not in EnvelopeStore.load(self.store):
            raise ValueError("Category not found")

    @_serialized
    def create(self, data: PlanningItemIn) -> PlanningItem:
        self._check_category(data.category_id)
        items = self.list_all()
        item = PlanningItem(
            id=_next_id(items), needs_allocation=True, **data.model_dump()
        )
        items.append(item)
        self.store.set(PLANNING_ITEMS, _dump(items))
        self.store.commit()
        return item

    @_serialized
    def update(self, item_id: int, data: PlanningItemIn) -> PlanningItem:
        self._check_category(data.category_id)
        items = self.list_all()
        for index, item in enumerate(items):
            if item.id == item_id:
                items[index] = item.model_copy(update=data.model_dump())
                self.store.set(PLANNING_ITEMS, _dump(items))
                self.store.commit()
                return items[index]
        raise ValueError("Planning item not found")

    @_serialized
    def delete(self, item_id: int) -> None:
        items = self.list_all()
        remaining = [i for i in items if i.id != item_id]
        if len(remaining) == len(items):
            raise ValueError("Planning item not found")
        self.store.set(PLANNING_ITEMS, _dump(remaining))
        self.store.commit()


class TransactionService:
    """Transaction bookkeeping; every change is reconciled against its
    category in the same call."""

    def __init__(self, store: KeyValueStore) -> None:
        self.store = store
        self.reconciler = TransactionReconciler(store)

    def list_all(self) -> list[Transaction]:
        return _load(self.store, TRANSACTIONS, Transaction)

    def get(self, transaction_id: int) -> Transaction:
        for txn in self.list_all():
            if txn.id == transaction_id:
                return txn
        raise ValueError("Transaction not found")

    @_serialized
    def create(self, data: TransactionIn) -> Transaction:
        transactions = self.list_all()
        txn = Transaction(
            id=_next_id(transactions),
            date=data.date or local_today(),
            **data.model_dump(exclude={"date"}),
        )
        if not self.reconciler.handle_transaction_for_category(txn):
            raise BalanceLimitError("Transaction would exceed the category amount limit")
        transactions.append(txn)
        self.store.set(TRANSACTIONS, _dump(transactions))
        self.store.commit()
        return txn

    @_serialized
    def update(self, transaction_id: int, data: TransactionIn) -> Transaction:
        old = self.get(transaction_id)
        new = old.model_copy(
            update={**data.model_dump(exclude={"date"}), "date": data.date or old.date}
        )
        if new.category_id is None or validate_amount(new.amount) == 0:
            reconciled = self.reconciler.reverse_transaction(old)
        else:
            reconciled = self.reconciler.handle_transaction_for_category(new, old)
        if not reconciled:
            raise BalanceLimitError("Transaction would exceed the category amount limit")
        transactions = [new if t.id == transaction_id else t for t in self.list_all()]
        self.store.set(TRANSACTIONS, _dump(transactions))
        self.store.commit()
        return new

    @_serialized
    def delete(self, transaction_id: int) -> None:
        old = self.get(transaction_id)
        if not self.reconciler.reverse_transaction(old):
            raise BalanceLimitError("Transaction would exceed the category amount limit")
        remaining = [t for t in self.list_all() if t.id != transaction_id]
        self.store.set(TRANSACTIONS, _dump(remaining))
        self.store.commit()
