from datetime import date

import pytest

from schemas import AccountDistribution, PaycheckIn, PaycheckReceivedIn
from services import PaycheckService
from storage import ACCOUNTS, MemoryStore


def _service(accounts=None) -> PaycheckService:
    return PaycheckService(MemoryStore({ACCOUNTS: accounts or []}))


def test_create_distributes_to_first_account_by_default() -> None:
    service = _service([{"id": 4, "name": "Checking"}, {"id": 5, "name": "Savings"}])

    paycheck = service.create(
        PaycheckIn(frequency="weekly", start_date="2025-01-06", base_amount=500)
    )

    assert paycheck.id == 1
    assert paycheck.name == "Paycheck 1"
    assert [(d.account_id, d.amount) for d in paycheck.account_distribution] == [(4, 500)]
    assert service.get(1) == paycheck


def test_distribution_must_match_base_amount() -> None:
    service = _service([{"id": 1}, {"id": 2}])

    with pytest.raises(ValueError):
        service.create(
            PaycheckIn(
                base_amount=1000,
                account_distribution=[AccountDistribution(account_id=1, amount=600)],
            )
        )

    paycheck = service.create(
        PaycheckIn(
            base_amount=1000,
            account_distribution=[
                AccountDistribution(account_id=1, amount=600),
                AccountDistribution(account_id=2, amount=400),
            ],
        )
    )
    assert paycheck.amount_for_account(2) == 400
    assert paycheck.amount_for_account(3) is None


def test_update_merges_changes() -> None:
    service = _service([{"id": 1}])
    service.create(PaycheckIn(name="Main", start_date="2025-01-03", base_amount=2000))

    with pytest.raises(ValueError):
        service.update(1, PaycheckIn(base_amount=2500))

    updated = service.update(
        1,
        PaycheckIn(
            base_amount=2500,
            account_distribution=[AccountDistribution(account_id=1, amount=2500)],
        ),
    )
    assert updated.name == "Main"
    assert updated.start_date == "2025-01-03"
    assert service.get(1).base_amount == 2500


def test_last_paycheck_cannot_be_deleted() -> None:
    service = _service()
    service.create(PaycheckIn(name="Main", base_amount=1000))

    assert service.delete(1) is False
    assert len(service.list_all()) == 1

    service.create(PaycheckIn(name="Side", base_amount=300))
    assert service.delete(1) is True
    assert [p.name for p in service.list_all()] == ["Side"]

    with pytest.raises(ValueError):
        service.delete(99)


def test_toggle_and_record_received() -> None:
    service = _service()
    service.create(PaycheckIn(name="Main", base_amount=1000, variable_amount=True))

    assert service.toggle_active(1).is_active is False

    service.record_paycheck_received(
        1, PaycheckReceivedIn(date=date(2025, 1, 3), actual_amount=980)
    )
    paycheck = service.record_paycheck_received(
        1, PaycheckReceivedIn(date=date(2025, 1, 17), actual_amount=1040, notes="bonus")
    )

    assert [e.actual_amount for e in paycheck.history_entries] == [1040, 980]
    assert service.get(1).history_entries[0].notes == "bonus"


def test_generate_dates_for_unknown_paycheck_is_empty() -> None:
    service = _service()
    service.create(PaycheckIn(frequency="biweekly", start_date="2025-01-03", base_amount=100))

    assert service.generate_paycheck_dates(1, 2) == [date(2025, 1, 3), date(2025, 1, 17)]
    assert service.generate_paycheck_dates(9, 2) == []
    assert service.paychecks_per_year(1) == 26


def test_upcoming_dates_and_monthly_income() -> None:
    service = _service()
    service.create(
        PaycheckIn(name="Weekly", frequency="weekly", start_date="2025-01-06", base_amount=500)
    )
    service.create(
        PaycheckIn(name="Rent", frequency="monthly", start_date="2025-01-15", base_amount=3000)
    )
    service.create(
        PaycheckIn(name="Old", frequency="monthly", start_date="2025-01-20", base_amount=900)
    )
    service.toggle_active(3)

    upcoming = service.get_all_upcoming_paycheck_dates(1, today=date(2025, 2, 1))

    assert [(u.date, u.paycheck_name) for u in upcoming] == [
        (date(2025, 2, 3), "Weekly"),
        (date(2025, 2, 10), "Weekly"),
        (date(2025, 2, 15), "Rent"),
        (date(2025, 2, 17), "Weekly"),
        (date(2025, 2, 24), "Weekly"),
    ]
    assert service.calculate_total_monthly_income() == pytest.approx(5165)
