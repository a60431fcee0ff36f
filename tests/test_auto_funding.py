from datetime import datetime

from services import FundingService
from storage import CATEGORIES, CATEGORY_FUNDING_HISTORY, PLANNING_ITEMS, MemoryStore


def _service(items):
    store = MemoryStore(
        {
            CATEGORIES: [{"id": 1, "name": "Bills"}, {"id": 2, "name": "Savings"}],
            PLANNING_ITEMS: items,
        }
    )
    return FundingService(store, clock=lambda: datetime(2025, 3, 1, 9, 0)), store


def _waiting_items():
    return [
        {"id": 1, "category_id": 1, "amount": 200, "needs_allocation": True},
        {
            "id": 2,
            "category_id": 2,
            "type": "goal",
            "target_amount": 1200,
            "monthly_contribution": 100,
            "needs_allocation": True,
        },
    ]


def test_auto_fund_scales_down_when_short() -> None:
    service, _ = _service(_waiting_items())

    result = service.auto_fund_categories(150)

    amounts = {r.category_id: r.amount for r in result.funding_results}
    assert amounts == {1: 100, 2: 50}
    assert all(r.success for r in result.funding_results)
    assert result.total_funded == 150
    assert result.remaining_to_allocate == 0

    categories = {c.id: c for c in service.categories()}
    assert categories[1].available == 100
    assert categories[2].available == 50
    items = {i.id: i for i in service.planning_items()}
    assert items[1].allocated == 100
    assert items[2].allocated == 50
    assert not items[1].needs_allocation
    assert not items[2].needs_allocation


def test_auto_fund_never_exceeds_what_was_asked() -> None:
    service, _ = _service(_waiting_items())

    result = service.auto_fund_categories(500)

    amounts = {r.category_id: r.amount for r in result.funding_results}
    assert amounts == {1: 200, 2: 100}
    assert result.total_funded == 300
    assert result.remaining_to_allocate == 200


def test_auto_fund_splits_inside_a_category_by_item_need() -> None:
    items = [
        {"id": 1, "category_id": 1, "amount": 60, "needs_allocation": True},
        {"id": 2, "category_id": 1, "amount": 40, "needs_allocation": True},
    ]
    service, _ = _service(items)

    result = service.auto_fund_categories(50)

    assert result.total_funded == 50
    allocated = {i.id: i.allocated for i in service.planning_items()}
    assert allocated == {1: 30, 2: 20}


def test_auto_fund_records_paycheck_in_history() -> None:
    service, store = _service(_waiting_items())

    service.auto_fund_categories(300, paycheck_id=3)

    history = store.get(CATEGORY_FUNDING_HISTORY)
    assert {entry["paycheck_id"] for entry in history} == {3}
    assert {entry["note"] for entry in history} == {"Funded from paycheck"}


def test_auto_fund_without_paycheck_is_marked_auto() -> None:
    service, store = _service(_waiting_items())

    service.auto_fund_categories(300)

    history = store.get(CATEGORY_FUNDING_HISTORY)
    assert len(history) == 2
    assert {entry["note"] for entry in history} == {"Auto-funded"}


def test_auto_fund_ignores_inactive_and_settled_items() -> None:
    items = [
        {"id": 1, "category_id": 1, "amount": 80, "needs_allocation": True, "is_active": False},
        {"id": 2, "category_id": 2, "amount": 40, "needs_allocation": False},
    ]
    service, _ = _service(items)

    result = service.auto_fund_categories(100)

    assert result.funding_results == []
    assert result.total_funded == 0
    assert result.remaining_to_allocate == 100


def test_auto_fund_rejects_non_positive_totals() -> None:
    service, store = _service(_waiting_items())

    for total in (0, -50, float("nan")):
        result = service.auto_fund_categories(total)
        assert result.total_funded == 0
        assert result.funding_results == []
        assert result.remaining_to_allocate == 0
    assert store.get(CATEGORY_FUNDING_HISTORY) is None


def test_second_pass_finds_nothing_left_to_fund() -> None:
    service, _ = _service(_waiting_items())
    service.auto_fund_categories(300)

    result = service.auto_fund_categories(300)

    assert result.total_funded == 0
    assert result.remaining_to_allocate == 300
