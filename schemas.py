import datetime as dt
from datetime import date, datetime
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from models import PaycheckFrequency, PlanningItemType, PriorityState, TimelineStatus
from money import amounts_equal, validate_amount


class Account(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    name: str = ""
    balance: float = 0.0


class Category(BaseModel):
    """An envelope. Numeric fields are only changed through the funding engine
    and the transaction reconciler."""

    model_config = ConfigDict(frozen=True)

    id: int
    name: str = ""
    allocated: float = 0.0
    available: float = 0.0
    spent: float = 0.0
    overspent: bool = False
    last_funded: Optional[datetime] = None

    @model_validator(mode="before")
    @classmethod
    def _derive_balances(cls, data: Any) -> Any:
        # A record given only one of allocated/available is completed so that
        # available == allocated - spent holds from the start.
        if not isinstance(data, dict):
            return data
        data = dict(data)
        spent = validate_amount(data.get("spent", 0.0))
        if "allocated" not in data and "available" in data:
            data["allocated"] = validate_amount(data["available"]) + spent
        allocated = validate_amount(data.get("allocated", 0.0))
        available = validate_amount(data.get("available", allocated - spent))
        data.update(
            spent=spent,
            allocated=allocated,
            available=available,
            overspent=available < 0,
        )
        return data

    def with_balances(
        self, *, allocated: float, available: float, spent: float
    ) -> "Category":
        available = validate_amount(available)
        return self.model_copy(
            update={
                "allocated": validate_amount(allocated),
                "available": available,
                "spent": validate_amount(spent),
                "overspent": available < 0,
            }
        )

    @property
    def is_balanced(self) -> bool:
        return amounts_equal(self.available, self.allocated - self.spent)


class PlanningItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    name: str = ""
    category_id: Optional[int] = None
    account_id: Optional[int] = None
    type: PlanningItemType = PlanningItemType.expense
    amount: float = 0.0
    frequency: Optional[str] = None
    due_date: Optional[date] = None
    target_amount: Optional[float] = None
    target_date: Optional[date] = None
    monthly_contribution: float = 0.0
    is_active: bool = True
    allocation_paused: bool = False
    priority_state: PriorityState = PriorityState.active
    allocated: float = 0.0
    needs_allocation: bool = False
    already_saved: float = 0.0

    @property
    def funding_amount(self) -> float:
        if self.type == PlanningItemType.goal:
            return validate_amount(self.monthly_contribution)
        return validate_amount(self.amount)

    @property
    def counts_toward_need(self) -> bool:
        return self.is_active or (
            not self.allocation_paused
            and self.priority_state == PriorityState.active
        )

    @property
    def deadline(self) -> Optional[date]:
        return self.due_date or self.target_date

    @property
    def target(self) -> float:
        return validate_amount(self.target_amount or self.amount)


class Transaction(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: Optional[int] = None
    category_id: Optional[int] = None
    account_id: Optional[int] = None
    amount: float = 0.0
    is_inflow: bool = False
    date: Optional[dt.date] = None
    payee: str = ""
    note: str = ""


class AccountDistribution(BaseModel):
    account_id: int
    amount: float = Field(..., ge=0)


class PaycheckHistoryEntry(BaseModel):
    date: dt.date
    actual_amount: float
    notes: str = ""


class Paycheck(BaseModel):
    id: int
    name: str
    frequency: PaycheckFrequency = PaycheckFrequency.biweekly
    # Kept as text: an unparseable start date falls back to today when
    # projecting dates instead of rejecting the record.
    start_date: str
    base_amount: float = 0.0
    variable_amount: bool = False
    account_distribution: list[AccountDistribution] = Field(default_factory=list)
    history_entries: list[PaycheckHistoryEntry] = Field(default_factory=list)
    is_active: bool = True

    @model_validator(mode="after")
    def _distribution_matches_base(self) -> "Paycheck":
        if self.account_distribution:
            distributed = sum(d.amount for d in self.account_distribution)
            if not amounts_equal(distributed, self.base_amount):
                raise ValueError(
                    "Account distribution must add up to the paycheck base amount"
                )
        return self

    def amount_for_account(self, account_id: Optional[int]) -> Optional[float]:
        """Amount deposited to ``account_id``; None if it receives nothing."""
        if account_id is None or not self.account_distribution:
            return validate_amount(self.base_amount)
        for share in self.account_distribution:
            if share.account_id == account_id:
                return validate_amount(share.amount)
        return None


class FundingHistoryEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    category_id: int
    amount: float
    paycheck_id: Optional[int] = None
    date: datetime
    note: str = ""


class CategoryTransfer(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    from_category_id: int
    to_category_id: int
    amount: float
    date: datetime
    note: str = ""


class CategoryIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)


class AccountIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    balance: float = 0.0


class PlanningItemIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    category_id: int
    account_id: Optional[int] = None
    type: PlanningItemType = PlanningItemType.expense
    amount: float = Field(default=0.0, ge=0)
    frequency: Optional[str] = None
    due_date: Optional[date] = None
    target_amount: Optional[float] = Field(default=None, ge=0)
    target_date: Optional[date] = None
    monthly_contribution: float = Field(default=0.0, ge=0)
    is_active: bool = True
    allocation_paused: bool = False
    priority_state: PriorityState = PriorityState.active
    already_saved: float = Field(default=0.0, ge=0)


class TransactionIn(BaseModel):
    category_id: Optional[int] = None
    account_id: Optional[int] = None
    amount: float
    is_inflow: bool = False
    date: Optional[dt.date] = None
    payee: str = Field(default="", max_length=200)
    note: str = Field(default="", max_length=200)


class PaycheckIn(BaseModel):
    name: Optional[str] = Field(default=None, max_length=120)
    frequency: PaycheckFrequency = PaycheckFrequency.biweekly
    start_date: Optional[str] = None
    base_amount: float = Field(default=0.0, ge=0)
    variable_amount: bool = False
    account_distribution: Optional[list[AccountDistribution]] = None


class PaycheckReceivedIn(BaseModel):
    date: dt.date
    actual_amount: float
    notes: str = Field(default="", max_length=200)


class FundCategoryIn(BaseModel):
    category_id: int
    amount: float
    paycheck_id: Optional[int] = None
    date: Optional[datetime] = None


class MoveMoneyIn(BaseModel):
    from_category_id: int
    to_category_id: int
    amount: float
    note: str = Field(default="", max_length=200)


class TransferFundsIn(BaseModel):
    source: Union[int, str]
    destination: Union[int, str]
    amount: float
    note: str = Field(default="", max_length=200)
    paycheck_id: Optional[int] = None


class AutoFundIn(BaseModel):
    total_amount: float
    paycheck_id: Optional[int] = None


class MonthlyBudgetIn(BaseModel):
    amount: float = Field(..., ge=0)


class TimelineRequest(BaseModel):
    paycheck_id: int
    allocations: dict[int, float] = Field(default_factory=dict)
    as_of: Optional[date] = None


class FundingResult(BaseModel):
    category_id: int
    amount: float
    success: bool


class AutoFundResult(BaseModel):
    total_funded: float = 0.0
    funding_results: list[FundingResult] = Field(default_factory=list)
    remaining_to_allocate: float = 0.0


class FundingSuggestion(BaseModel):
    category_id: int
    category_name: str
    current_available: float
    needed_amount: float
    suggested_funding: float


class CategoryReport(BaseModel):
    category_id: int
    start_date: date
    end_date: date
    transactions: list[Transaction]
    funding: list[FundingHistoryEntry]
    total_spent: float
    total_funded: float
    net_change: float


class UpcomingPaycheck(BaseModel):
    date: dt.date
    paycheck_id: int
    paycheck_name: str
    amount: float


class RelevantPaycheck(BaseModel):
    date: dt.date
    amount: float
    index: int


class Timeline(BaseModel):
    has_deadline: bool
    status: TimelineStatus
    message: str
    is_fully_funded: bool = False
    total_needed: float = 0.0
    already_saved: float = 0.0
    remaining_needed: float = 0.0
    overfunded: float = 0.0
    paychecks_needed: Optional[int] = None
    available_paychecks: int = 0
    funding_date: Optional[date] = None
    last_paycheck_date: Optional[date] = None
    is_on_track: bool = False
    required_allocation: float = 0.0
    current_allocation: float = 0.0
    urgency_score: float = 0.0


class TimelineEntry(BaseModel):
    item_id: int
    name: str
    category_id: Optional[int]
    type: PlanningItemType
    deadline: Optional[date]
    timeline: Optional[Timeline]
    urgency_score: float
    urgency_label: str
    message: str
