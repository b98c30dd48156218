"""
Batch expense screening.

Runs each expense of a batch through the engine and hands anomalous ones to a
notifier. Notification delivery itself belongs to the caller; anything with a
``notify_anomaly_detected`` method works.
"""
from collections import defaultdict
from typing import Any, Callable, Dict, List, Optional, Protocol

from trackify.anomaly.engine import AnomalyDetectionEngine, recent_history
from trackify.core.utils import setup_logging
from trackify.domain.models import AnomalyAssessment, Expense

logger = setup_logging("anomaly")

HistoryProvider = Callable[[Expense], List[Expense]]

class AnomalyNotifier(Protocol):
    def notify_anomaly_detected(self, user_id: Any, anomaly: str, entity_type: str, entity_id: Any) -> None:
        ...

def history_from_pool(pool: List[Expense], window_days: Optional[int] = None) -> HistoryProvider:
    """Provider returning the same user's other expenses inside the analysis window."""
    by_user: Dict[Any, List[Expense]] = defaultdict(list)
    for e in pool:
        by_user[e.user_id].append(e)

    def provider(expense: Expense) -> List[Expense]:
        others = [e for e in by_user.get(expense.user_id, []) if e.id != expense.id]
        return recent_history(others, expense.expense_date, window_days)
    return provider

def process_batch_expenses(
    engine: AnomalyDetectionEngine,
    expenses: List[Expense],
    history_provider: HistoryProvider,
    notifier: Optional[AnomalyNotifier] = None,
) -> List[AnomalyAssessment]:
    """Assess every expense; notify for the anomalous ones. Returns the anomalous assessments."""
    flagged = []
    for expense in expenses:
        try:
            history = history_provider(expense)
        except Exception:
            logger.exception("Could not load history for expense %s", expense.id)
            continue

        assessment = engine.assess(expense, history)
        if not assessment.is_anomalous:
            continue
        flagged.append(assessment)

        if notifier is None:
            continue
        message = "Anomalous expense detected: " + "; ".join(assessment.descriptions)
        try:
            notifier.notify_anomaly_detected(expense.user_id, message, "EXPENSE", expense.id)
        except Exception:
            logger.exception("Failed to send anomaly notification for expense %s", expense.id)

    logger.info("Processed %d expenses, %d flagged", len(expenses), len(flagged))
    return flagged
