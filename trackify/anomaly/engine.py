"""
Anomaly Detection Engine.

Entry point for the expense-submission path and for batch jobs:

  is_anomalous / detect_anomalies / calculate_anomaly_score / assess
      score a candidate expense against the user's history (plain lists)
  train_model / train_user_model / update_user_model
      refresh per-user baselines in the injected BaselineStore
  get_user_anomaly_statistics / get_performance_metrics
      reporting

Detection never raises: each scorer downgrades its own failures, and the
aggregation here is guarded as well.
"""
from datetime import date, timedelta
from typing import Any, Dict, List, Mapping, Optional

from trackify.anomaly.baseline import BaselineStore, InMemoryBaselineStore
from trackify.anomaly.scorers import FEATURE_SCORERS, PATTERN_SCORER
from trackify.anomaly.trainer import ModelTrainer
from trackify.core.config import Settings, settings as default_settings
from trackify.core.utils import setup_logging
from trackify.domain.models import AnomalyAssessment, AnomalyType, Expense, TrainingOutcome, UserBaselineModel

logger = setup_logging("anomaly")

def composite_score(scores: Mapping[str, float], weights: Optional[Mapping[str, float]] = None) -> float:
    """Weighted sum of per-feature scores, clamped to [0, 1]. Missing features count as 0."""
    weights = weights or default_settings.ANOMALY_SCORE_WEIGHTS
    total = sum(weight * scores.get(feature, 0.0) for feature, weight in weights.items())
    return min(1.0, max(0.0, total))

def recent_history(history: List[Expense], as_of: date, days: Optional[int] = None) -> List[Expense]:
    """Expenses dated in [as_of - days, as_of)."""
    days = days if days is not None else default_settings.ANALYSIS_WINDOW_DAYS
    start = as_of - timedelta(days=days)
    return [e for e in history if start <= e.expense_date < as_of]

class AnomalyDetectionEngine:
    def __init__(self, store: Optional[BaselineStore] = None, config: Optional[Settings] = None):
        self.config = config or default_settings
        self.store = store if store is not None else InMemoryBaselineStore()
        self.min_historical_data = self.config.MIN_HISTORICAL_DATA
        self.trainer = ModelTrainer(self.store, min_historical_data=self.min_historical_data)

    def _has_enough_history(self, expense: Expense, history: List[Expense]) -> bool:
        if len(history) < self.min_historical_data:
            logger.debug("Insufficient historical data for anomaly detection on expense %s (need %d, have %d)",
                         getattr(expense, "id", None), self.min_historical_data, len(history))
            return False
        return True

    # ---------------- detection ----------------

    def detect_anomalies(self, expense: Expense, history: List[Expense]) -> List[AnomalyType]:
        anomalies = []
        try:
            for _, anomaly_type, score in (*FEATURE_SCORERS, PATTERN_SCORER):
                if score(expense, history).triggered:
                    anomalies.append(anomaly_type)
        except Exception:
            logger.exception("Error detecting anomalies for expense %s", getattr(expense, "id", None))
        return anomalies

    def is_anomalous(self, expense: Expense, history: List[Expense]) -> bool:
        try:
            if not self._has_enough_history(expense, history):
                return False
            return bool(self.detect_anomalies(expense, history))
        except Exception:
            logger.exception("Error detecting anomaly for expense %s", getattr(expense, "id", None))
            return False

    def feature_scores(self, expense: Expense, history: List[Expense]) -> Dict[str, float]:
        return {feature: score(expense, history).score for feature, _, score in FEATURE_SCORERS}

    def calculate_anomaly_score(self, expense: Expense, history: List[Expense]) -> float:
        """Composite score in [0, 1]. The pattern check does not contribute."""
        try:
            if not self._has_enough_history(expense, history):
                return 0.0
            return composite_score(self.feature_scores(expense, history), self.config.ANOMALY_SCORE_WEIGHTS)
        except Exception:
            logger.exception("Error calculating anomaly score for expense %s", getattr(expense, "id", None))
            return 0.0

    def assess(self, expense: Expense, history: List[Expense]) -> AnomalyAssessment:
        expense_id = getattr(expense, "id", None)
        clean = AnomalyAssessment(expense_id=expense_id, anomalies=[], score=0.0, is_anomalous=False)
        try:
            if not self._has_enough_history(expense, history):
                return clean
            anomalies = self.detect_anomalies(expense, history)
            return AnomalyAssessment(
                expense_id=expense_id,
                anomalies=anomalies,
                score=self.calculate_anomaly_score(expense, history),
                is_anomalous=bool(anomalies),
            )
        except Exception:
            logger.exception("Error assessing expense %s", expense_id)
            return clean

    # ---------------- training ----------------

    def train_model(self, expenses: List[Expense]) -> List[TrainingOutcome]:
        return self.trainer.train_model(expenses)

    def train_user_model(self, user_id: Any, expenses: List[Expense]) -> Optional[UserBaselineModel]:
        return self.trainer.train_user_model(user_id, expenses)

    def update_user_model(self, user_id: Any, expenses: List[Expense]) -> None:
        self.trainer.update_user_model(user_id, expenses)

    def get_user_baseline(self, user_id: Any) -> Optional[UserBaselineModel]:
        return self.store.get(user_id)

    def get_performance_metrics(self) -> Dict[str, Any]:
        return self.trainer.get_performance_metrics()

    # ---------------- statistics ----------------

    def get_user_anomaly_statistics(self, user_id: Any, expenses: List[Expense]) -> Dict[str, Any]:
        """Replay a user's expenses in date order and count which ones would have been flagged."""
        total = len(expenses)
        anomalous = 0
        breakdown: Dict[AnomalyType, int] = {}

        for expense in expenses:
            context = [e for e in expenses if e.expense_date < expense.expense_date]
            if len(context) < self.min_historical_data:
                continue
            anomalies = self.detect_anomalies(expense, context)
            if anomalies:
                anomalous += 1
                for a in anomalies:
                    breakdown[a] = breakdown.get(a, 0) + 1

        logger.debug("User %s: %d of %d expenses anomalous", user_id, anomalous, total)
        return {
            "total_expenses": total,
            "anomalous_expenses": anomalous,
            "anomaly_rate": anomalous / total if total else 0.0,
            "anomaly_breakdown": breakdown,
        }
