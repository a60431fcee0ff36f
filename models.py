from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from database import Base


class PlanningItemType(str, Enum):
    expense = "expense"
    goal = "goal"


class PriorityState(str, Enum):
    active = "active"
    paused = "paused"
    complete = "complete"


class PaycheckFrequency(str, Enum):
    weekly = "weekly"
    biweekly = "biweekly"
    semimonthly = "semimonthly"
    monthly = "monthly"


class TimelineStatus(str, Enum):
    complete = "complete"
    on_track = "on-track"
    behind = "behind"
    ongoing = "ongoing"


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class KeyValueEntry(Base, TimestampMixin):
    __tablename__ = "kv_entries"

    key: Mapped[str] = mapped_column(String(100), primary_key=True)
    value_json: Mapped[str] = mapped_column(Text, nullable=False)
