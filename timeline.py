"""Funding timelines: will a planning item be funded by its deadline?

All functions here are read-only projections over planning items and a pay
schedule; they never touch the envelope store.
"""

from __future__ import annotations

import logging
import math
from datetime import date
from itertools import islice, takewhile
from typing import Iterable, Optional, Sequence

from models import PaycheckFrequency, PriorityState, TimelineStatus
from money import BALANCE_TOLERANCE, format_money, validate_amount
from schedule import iter_paycheck_dates, local_today
from schemas import (
    Account,
    Paycheck,
    PlanningItem,
    RelevantPaycheck,
    Timeline,
    TimelineEntry,
)

logger = logging.getLogger(__name__)

# Twenty years of weekly paychecks.
MAX_PROJECTED_PAYCHECKS = 1040

# 100 is reserved for items that are behind schedule.
ON_TRACK_URGENCY_CAP = 99.0

CRITICAL_URGENCY = 80.0
UPCOMING_URGENCY = 50.0


def _period_label(frequency: PaycheckFrequency) -> str:
    if frequency == PaycheckFrequency.semimonthly:
        return "pay period"
    if frequency == PaycheckFrequency.monthly:
        return "payment"
    return "paycheck"


def get_relevant_paychecks(
    deadline: date,
    account_id: Optional[int],
    pay_schedule: Paycheck,
    *,
    as_of: Optional[date] = None,
) -> list[RelevantPaycheck]:
    """Projected paychecks landing in ``account_id`` on or before ``deadline``.

    With ``as_of`` set, paychecks dated before it are left out.
    """
    amount = pay_schedule.amount_for_account(account_id)
    if amount is None:
        return []
    dates = list(
        takewhile(
            lambda d: d <= deadline,
            islice(
                iter_paycheck_dates(pay_schedule.start_date, pay_schedule.frequency),
                MAX_PROJECTED_PAYCHECKS,
            ),
        )
    )
    if len(dates) == MAX_PROJECTED_PAYCHECKS:
        logger.warning(
            f"paycheck_projection_capped: paycheck={pay_schedule.id} "
            f"deadline={deadline} last_projected={dates[-1]}"
        )
    relevant = []
    for index, paycheck_date in enumerate(dates):
        if as_of is not None and paycheck_date < as_of:
            continue
        relevant.append(RelevantPaycheck(date=paycheck_date, amount=amount, index=index))
    return relevant


def _funding_account(item: PlanningItem, accounts: Iterable[Account]) -> Optional[int]:
    if item.account_id is None:
        return None
    if any(account.id == item.account_id for account in accounts):
        return item.account_id
    return None


def _timeline_message(
    *,
    is_on_track: bool,
    paychecks_needed: Optional[int],
    funding_date: Optional[date],
    last_paycheck_date: Optional[date],
    required_allocation: float,
    current_allocation: float,
    frequency: PaycheckFrequency,
) -> str:
    label = _period_label(frequency)
    if is_on_track and funding_date and paychecks_needed:
        plural = "" if paychecks_needed == 1 else "s"
        return f"Ready in {paychecks_needed} {label}{plural} ({funding_date.isoformat()})"
    if not is_on_track and last_paycheck_date:
        shortfall = required_allocation - current_allocation
        return (
            f"Behind schedule - need {format_money(required_allocation)}/{label} "
            f"(currently {format_money(current_allocation)}) - "
            f"shortfall: {format_money(shortfall)}/{label}"
        )
    return "Unable to calculate timeline"


def calculate_urgency_score(timeline: Timeline) -> float:
    if not timeline.has_deadline or timeline.is_fully_funded:
        return 0.0
    if not timeline.is_on_track or timeline.paychecks_needed is None:
        return 100.0
    ratio = timeline.paychecks_needed / max(timeline.available_paychecks, 1)
    return min(ON_TRACK_URGENCY_CAP, ratio * 100)


def calculate_funding_timeline(
    item: PlanningItem,
    pay_schedule: Paycheck,
    accounts: Iterable[Account],
    per_paycheck_allocation: float,
    *,
    as_of: Optional[date] = None,
) -> Timeline:
    deadline = item.deadline
    if deadline is None:
        return Timeline(
            has_deadline=False,
            status=TimelineStatus.ongoing,
            message="No deadline set",
        )

    total_needed = item.target
    already_saved = validate_amount(item.already_saved)
    remaining_needed = max(0.0, total_needed - already_saved)
    if remaining_needed <= 0:
        return Timeline(
            has_deadline=True,
            status=TimelineStatus.complete,
            message="Fully funded!",
            is_fully_funded=True,
            total_needed=total_needed,
            already_saved=already_saved,
            overfunded=already_saved - total_needed,
            is_on_track=True,
        )

    relevant = get_relevant_paychecks(
        deadline, _funding_account(item, accounts), pay_schedule, as_of=as_of
    )
    available_paychecks = len(relevant)
    allocation = validate_amount(per_paycheck_allocation)

    paychecks_needed: Optional[int] = None
    funding_date: Optional[date] = None
    if allocation > 0:
        paychecks_needed = math.ceil(remaining_needed / allocation)
        running_total = already_saved
        for paycheck in relevant[:paychecks_needed]:
            running_total += allocation
            if running_total >= total_needed - BALANCE_TOLERANCE:
                funding_date = paycheck.date
                break

    is_on_track = (
        paychecks_needed is not None and paychecks_needed <= available_paychecks
    )
    last_paycheck_date = relevant[-1].date if relevant else None
    required_allocation = (
        remaining_needed / available_paychecks if available_paychecks else 0.0
    )

    timeline = Timeline(
        has_deadline=True,
        status=TimelineStatus.on_track if is_on_track else TimelineStatus.behind,
        message=_timeline_message(
            is_on_track=is_on_track,
            paychecks_needed=paychecks_needed,
            funding_date=funding_date,
            last_paycheck_date=last_paycheck_date,
            required_allocation=required_allocation,
            current_allocation=allocation,
            frequency=pay_schedule.frequency,
        ),
        total_needed=total_needed,
        already_saved=already_saved,
        remaining_needed=remaining_needed,
        paychecks_needed=paychecks_needed,
        available_paychecks=available_paychecks,
        funding_date=funding_date,
        last_paycheck_date=last_paycheck_date,
        is_on_track=is_on_track,
        required_allocation=required_allocation,
        current_allocation=allocation,
    )
    return timeline.model_copy(
        update={"urgency_score": calculate_urgency_score(timeline)}
    )


def urgency_label(score: float) -> str:
    if score >= 80:
        return "Critical"
    if score >= 60:
        return "High"
    if score >= 30:
        return "Medium"
    return "Low"


def item_timelines(
    items: Iterable[PlanningItem],
    pay_schedule: Paycheck,
    accounts: Sequence[Account],
    allocations: dict[int, float],
    *,
    as_of: Optional[date] = None,
) -> list[TimelineEntry]:
    """Timelines for every item still being funded.

    Paused and completed items are skipped. Items without a per-paycheck
    allocation get an entry without a timeline. Paychecks before ``as_of``
    (today by default) are already spent and do not count.
    """
    as_of = as_of or local_today()
    entries = []
    for item in items:
        if item.priority_state in (PriorityState.paused, PriorityState.complete):
            continue
        timeline = None
        message = "No allocation found"
        if item.id in allocations:
            timeline = calculate_funding_timeline(
                item, pay_schedule, accounts, allocations[item.id], as_of=as_of
            )
            message = timeline.message
        score = timeline.urgency_score if timeline else 0.0
        entries.append(
            TimelineEntry(
                item_id=item.id,
                name=item.name,
                category_id=item.category_id,
                type=item.type,
                deadline=item.deadline,
                timeline=timeline,
                urgency_score=score,
                urgency_label=urgency_label(score) if timeline else "None",
                message=message,
            )
        )
    return entries


class UrgencyBoard:
    """Timeline entries bucketed by urgency, most urgent first."""

    def __init__(self, entries: Iterable[TimelineEntry]) -> None:
        self.critical: list[TimelineEntry] = []
        self.upcoming: list[TimelineEntry] = []
        self.on_track: list[TimelineEntry] = []
        self.no_deadline: list[TimelineEntry] = []
        for entry in entries:
            if entry.timeline is None or not entry.timeline.has_deadline:
                self.no_deadline.append(entry)
            elif entry.urgency_score >= CRITICAL_URGENCY:
                self.critical.append(entry)
            elif entry.urgency_score >= UPCOMING_URGENCY:
                self.upcoming.append(entry)
            else:
                self.on_track.append(entry)
        for bucket in self._buckets():
            bucket.sort(key=lambda e: e.urgency_score, reverse=True)

    def _buckets(self) -> tuple[list[TimelineEntry], ...]:
        return (self.critical, self.upcoming, self.on_track, self.no_deadline)

    def timeline_for_item(self, item_id: int) -> Optional[TimelineEntry]:
        for bucket in self._buckets():
            for entry in bucket:
                if entry.item_id == item_id:
                    return entry
        return None

    def next_critical_deadline(self) -> Optional[date]:
        deadlines = [e.deadline for e in self.critical if e.deadline is not None]
        return min(deadlines, default=None)

    def allocation_suggestions(self, limit: int = 5) -> list[TimelineEntry]:
        ranked = sorted(
            self.critical + self.upcoming, key=lambda e: e.urgency_score, reverse=True
        )
        return ranked[:limit]

    def category_urgency(self, category_id: int) -> tuple[float, str]:
        scores = [
            entry.urgency_score
            for bucket in self._buckets()
            for entry in bucket
            if entry.category_id == category_id
        ]
        if not scores:
            return 0.0, "None"
        average = sum(scores) / len(scores)
        return average, urgency_label(average)

    def as_dict(self) -> dict[str, list[dict]]:
        return {
            "critical": [e.model_dump(mode="json") for e in self.critical],
            "upcoming": [e.model_dump(mode="json") for e in self.upcoming],
            "on_track": [e.model_dump(mode="json") for e in self.on_track],
            "no_deadline": [e.model_dump(mode="json") for e in self.no_deadline],
        }
