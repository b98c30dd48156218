"""
Value types shared by the anomaly engine.

Expenses come from the expense-storage layer and are treated as read-only.
Baselines and metrics are immutable snapshots: they are replaced, never
mutated, so readers always see a complete value.
"""
from dataclasses import dataclass, field, asdict
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional

class AnomalyType(str, Enum):
    UNUSUAL_AMOUNT = "UNUSUAL_AMOUNT"
    UNUSUAL_TIME = "UNUSUAL_TIME"
    HIGH_FREQUENCY = "HIGH_FREQUENCY"
    UNUSUAL_CATEGORY = "UNUSUAL_CATEGORY"
    NEW_MERCHANT = "NEW_MERCHANT"
    UNUSUAL_PATTERN = "UNUSUAL_PATTERN"

    @property
    def description(self) -> str:
        return _DESCRIPTIONS[self]

_DESCRIPTIONS = {
    AnomalyType.UNUSUAL_AMOUNT: "Unusual amount for this type of expense",
    AnomalyType.UNUSUAL_TIME: "Expense submitted at unusual time",
    AnomalyType.HIGH_FREQUENCY: "High frequency of similar expenses",
    AnomalyType.UNUSUAL_CATEGORY: "Rarely used or new expense category",
    AnomalyType.NEW_MERCHANT: "New or unknown merchant",
    AnomalyType.UNUSUAL_PATTERN: "Unusual expense pattern detected",
}

def _parse_date(value) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])

def _parse_datetime(value) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))

def _blank_to_none(value) -> Optional[str]:
    if value is None:
        return None
    value = str(value)
    return value if value.strip() else None

@dataclass(frozen=True)
class Expense:
    id: Any
    user_id: Any
    amount: Decimal
    expense_date: date
    created_at: datetime
    category: Optional[str] = None
    merchant_name: Optional[str] = None
    description: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Expense":
        """Build an expense from a plain record.

        Dates and timestamps may be ISO strings. Amounts go through ``str`` so
        floats like 19.99 stay exact. Blank optional fields become ``None``.
        """
        missing = [k for k in ("id", "user_id", "amount", "expense_date", "created_at") if data.get(k) is None]
        if missing:
            raise ValueError(f"Expense record missing required fields: {', '.join(missing)}")
        try:
            amount = Decimal(str(data["amount"]))
            expense_date = _parse_date(data["expense_date"])
            created_at = _parse_datetime(data["created_at"])
        except (InvalidOperation, ValueError) as e:
            raise ValueError(f"Malformed expense record {data.get('id')}: {e}") from e
        return cls(
            id=data["id"],
            user_id=data["user_id"],
            amount=amount,
            expense_date=expense_date,
            created_at=created_at,
            category=_blank_to_none(data.get("category")),
            merchant_name=_blank_to_none(data.get("merchant_name")),
            description=_blank_to_none(data.get("description")),
        )

@dataclass(frozen=True)
class UserBaselineModel:
    user_id: Any
    expense_count: int
    average_amount: float
    amount_std_dev: float
    category_frequency: Dict[str, int]
    known_merchants: FrozenSet[str]
    hour_frequency: Dict[int, int]
    last_updated: datetime

    def to_dict(self):
        d = asdict(self)
        d["known_merchants"] = sorted(self.known_merchants)
        return d

@dataclass(frozen=True)
class PerformanceMetrics:
    total_training_expenses: int
    user_baselines_count: int
    last_training_time: datetime
    average_expenses_per_user: float
    unique_users: int
    trained_users: int = 0
    failed_users: List[Any] = field(default_factory=list)

    def to_dict(self):
        return asdict(self)

@dataclass
class TrainingOutcome:
    """Per-user result of a batch training run."""
    user_id: Any
    expense_count: int
    trained: bool
    error: Optional[str] = None

    def to_dict(self):
        return asdict(self)

@dataclass
class AnomalyAssessment:
    expense_id: Any
    anomalies: List[AnomalyType]
    score: float
    is_anomalous: bool

    @property
    def descriptions(self) -> List[str]:
        return [a.description for a in self.anomalies]

    def to_dict(self):
        return {
            "expense_id": self.expense_id,
            "anomalies": [a.value for a in self.anomalies],
            "descriptions": self.descriptions,
            "score": self.score,
            "is_anomalous": self.is_anomalous,
        }
