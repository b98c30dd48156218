"""
Baseline training for the anomaly engine.

Builds per-user UserBaselineModel snapshots from historical expenses and keeps
process-wide PerformanceMetrics. Every train replaces the user's baseline
wholesale; nothing is merged into an existing model.
"""
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import pandas as pd

from trackify.anomaly.baseline import BaselineStore
from trackify.core.config import settings
from trackify.core.utils import setup_logging
from trackify.domain.models import Expense, PerformanceMetrics, TrainingOutcome, UserBaselineModel

logger = setup_logging("anomaly")

def _frame(expenses: List[Expense]) -> pd.DataFrame:
    return pd.DataFrame({
        "amount": [float(e.amount) for e in expenses],
        "category": [e.category for e in expenses],
        "merchant": [e.merchant_name for e in expenses],
        "hour": [e.created_at.hour for e in expenses],
    })

def build_baseline(user_id: Any, expenses: List[Expense]) -> UserBaselineModel:
    df = _frame(expenses)
    std = df["amount"].std(ddof=1) if len(df) > 1 else 0.0
    categories = df["category"].dropna().value_counts()
    merchants = df["merchant"].dropna().astype(str).str.lower()
    hours = df["hour"].value_counts()
    return UserBaselineModel(
        user_id=user_id,
        expense_count=len(df),
        average_amount=round(float(df["amount"].mean()), 4),
        amount_std_dev=round(float(std), 4),
        category_frequency={str(k): int(v) for k, v in categories.items()},
        known_merchants=frozenset(merchants),
        hour_frequency={int(k): int(v) for k, v in hours.items()},
        last_updated=datetime.now(timezone.utc),
    )

class ModelTrainer:
    def __init__(self, store: BaselineStore, *, min_historical_data: Optional[int] = None):
        self.store = store
        self.min_historical_data = min_historical_data if min_historical_data is not None else settings.MIN_HISTORICAL_DATA
        self._metrics: Optional[PerformanceMetrics] = None

    def train_user_model(self, user_id: Any, expenses: List[Expense]) -> Optional[UserBaselineModel]:
        """Rebuild one user's baseline. Returns None when there is not enough history."""
        if len(expenses) < self.min_historical_data:
            logger.debug("Skipping baseline for user %s (need %d, have %d)",
                         user_id, self.min_historical_data, len(expenses))
            return None
        baseline = build_baseline(user_id, expenses)
        self.store.replace(user_id, baseline)
        return baseline

    def update_user_model(self, user_id: Any, expenses: List[Expense]) -> None:
        try:
            if self.train_user_model(user_id, expenses) is not None:
                logger.debug("Updated user baseline model for user %s", user_id)
        except Exception:
            logger.exception("Error updating user model for user %s", user_id)

    def _train_isolated(self, user_id: Any, expenses: List[Expense]) -> TrainingOutcome:
        if len(expenses) < self.min_historical_data:
            return TrainingOutcome(user_id=user_id, expense_count=len(expenses), trained=False)
        try:
            self.train_user_model(user_id, expenses)
            return TrainingOutcome(user_id=user_id, expense_count=len(expenses), trained=True)
        except Exception as e:
            logger.exception("Error training user baseline model for user %s", user_id)
            return TrainingOutcome(user_id=user_id, expense_count=len(expenses), trained=False, error=str(e))

    def train_model(self, expenses: List[Expense]) -> List[TrainingOutcome]:
        """Train every user in the batch; one user's failure does not stop the rest."""
        logger.info("Training anomaly detection model with %d expenses", len(expenses))
        by_user: Dict[Any, List[Expense]] = defaultdict(list)
        for e in expenses:
            by_user[e.user_id].append(e)

        outcomes = [self._train_isolated(uid, group) for uid, group in by_user.items()]
        self._update_metrics(expenses, outcomes)

        failed = [o.user_id for o in outcomes if o.error is not None]
        if failed:
            logger.warning("Baseline training failed for %d user(s): %s", len(failed), failed)
        return outcomes

    def _update_metrics(self, expenses: List[Expense], outcomes: List[TrainingOutcome]):
        sizes = pd.Series([o.expense_count for o in outcomes], dtype="float64")
        self._metrics = PerformanceMetrics(
            total_training_expenses=len(expenses),
            user_baselines_count=len(self.store),
            last_training_time=datetime.now(timezone.utc),
            average_expenses_per_user=float(sizes.mean()) if not sizes.empty else 0.0,
            unique_users=len(outcomes),
            trained_users=sum(1 for o in outcomes if o.trained),
            failed_users=[o.user_id for o in outcomes if o.error is not None],
        )

    def get_performance_metrics(self) -> Dict[str, Any]:
        metrics = self._metrics
        return metrics.to_dict() if metrics is not None else {}
