"""
Feature scorers for expense anomaly detection.

Each scorer takes (candidate expense, historical expenses) and returns a
ScoreResult: whether the feature looks anomalous plus a score in [0, 1].
Scorers are pure; statistics are recomputed from the history passed in.

  amount     — deviation from the (same-category) mean, in standard deviations
  time       — how rarely the user submits at this hour of day
  frequency  — burst of similar expenses in the last 7 days vs the weekly norm
  category   — new or rarely used category
  merchant   — merchant never seen, and no similar merchant name either
  pattern    — round amounts / copy-pasted descriptions (flag only, no weight)
"""
from collections import Counter
from datetime import timedelta
from decimal import Decimal
from functools import wraps
from typing import List, NamedTuple

import numpy as np

from trackify.anomaly.similarity import jaccard
from trackify.core.config import settings
from trackify.core.utils import setup_logging
from trackify.domain.models import AnomalyType, Expense

logger = setup_logging("anomaly")

MIN_CATEGORY_SAMPLE = 5      # same-category expenses needed to narrow the amount baseline
MIN_AMOUNT_SAMPLE = 3
RARE_HOUR_RATE = 0.02
BUSINESS_HOURS = (6, 22)
RECENT_WINDOW_DAYS = 7
RARE_CATEGORY_RATE = 0.05
MERCHANT_SIMILARITY = 0.7
DESCRIPTION_SIMILARITY = 0.9
MAX_SIMILAR_DESCRIPTIONS = 5
RARE_ROUND_RATE = 0.10
ROUND_DIVISORS = (Decimal(100), Decimal(50), Decimal(25), Decimal(10))

class ScoreResult(NamedTuple):
    triggered: bool
    score: float

NOT_ANOMALOUS = ScoreResult(False, 0.0)

def scorer(func):
    """Scorer boundary: a failure inside one feature downgrades to not-anomalous."""
    @wraps(func)
    def wrapper(expense: Expense, history: List[Expense]) -> ScoreResult:
        try:
            return func(expense, history)
        except Exception:
            logger.exception("Error in %s for expense %s", func.__name__, getattr(expense, "id", None))
            return NOT_ANOMALOUS
    return wrapper

def _present(text) -> bool:
    return text is not None and bool(text.strip())

def _decimal(value) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))

def is_similar_expense(a: Expense, b: Expense) -> bool:
    """Two expenses are similar when at least 2 of category, merchant and amount match."""
    category_match = a.category is not None and b.category is not None and a.category == b.category
    merchant_match = (_present(a.merchant_name) and _present(b.merchant_name)
                      and jaccard(a.merchant_name, b.merchant_name) > MERCHANT_SIMILARITY)
    amount_match = False
    if a.amount is not None and b.amount is not None:
        base = _decimal(a.amount)
        amount_match = abs(base - _decimal(b.amount)) <= base * Decimal("0.2")
    return (category_match + merchant_match + amount_match) >= 2

def is_round_amount(amount) -> bool:
    if amount is None:
        return False
    amount = _decimal(amount)
    return any(amount % d == 0 for d in ROUND_DIVISORS) or str(amount).endswith(".50")

@scorer
def score_amount(expense: Expense, history: List[Expense]) -> ScoreResult:
    same_category = [e for e in history if expense.category is not None and e.category == expense.category]
    relevant = same_category if len(same_category) >= MIN_CATEGORY_SAMPLE else history
    if len(relevant) < MIN_AMOUNT_SAMPLE:
        return NOT_ANOMALOUS

    amounts = np.array([float(e.amount) for e in relevant])
    mean = amounts.mean()
    std = amounts.std(ddof=1)
    if np.isclose(std, 0.0):
        # No variation in history
        return NOT_ANOMALOUS

    deviation = abs(float(expense.amount) - mean)
    threshold = std * settings.AMOUNT_ANOMALY_THRESHOLD
    score = min(1.0, deviation / std / settings.AMOUNT_ANOMALY_THRESHOLD)
    return ScoreResult(bool(deviation > threshold), float(score))

@scorer
def score_time(expense: Expense, history: List[Expense]) -> ScoreResult:
    hour = expense.created_at.hour
    hours = Counter(e.created_at.hour for e in history)
    count = hours.get(hour, 0)
    if count == 0:
        off_hours = hour < BUSINESS_HOURS[0] or hour > BUSINESS_HOURS[1]
        return ScoreResult(off_hours, 1.0 if off_hours else 0.5)
    rate = count / len(history)
    # 2% frequency maps to score 0
    return ScoreResult(rate < RARE_HOUR_RATE, max(0.0, 1.0 - rate * 50))

def expected_weekly_count(similar_count: int, history: List[Expense], as_of) -> float:
    """Weekly rate of similar expenses over the history span, never spread over less than a week."""
    earliest = min((e.expense_date for e in history), default=as_of)
    history_days = max((as_of - earliest).days, RECENT_WINDOW_DAYS)
    return similar_count * 7 / history_days

@scorer
def score_frequency(expense: Expense, history: List[Expense]) -> ScoreResult:
    similar = [e for e in history if is_similar_expense(expense, e)]
    if not similar:
        return NOT_ANOMALOUS

    cutoff = expense.expense_date - timedelta(days=RECENT_WINDOW_DAYS)
    recent = sum(1 for e in similar if e.expense_date > cutoff)

    expected_weekly = expected_weekly_count(len(similar), history, expense.expense_date)

    limit = settings.FREQUENCY_ANOMALY_THRESHOLD
    score = min(1.0, max(0.0, (recent / expected_weekly - 1.0) / limit))
    return ScoreResult(recent > expected_weekly * limit, score)

@scorer
def score_category(expense: Expense, history: List[Expense]) -> ScoreResult:
    if expense.category is None:
        return NOT_ANOMALOUS
    count = sum(1 for e in history if e.category == expense.category)
    if count == 0:
        return ScoreResult(True, 1.0)
    freq = count / len(history)
    # 5% frequency maps to score 0
    return ScoreResult(freq < RARE_CATEGORY_RATE, max(0.0, 1.0 - freq * 20))

@scorer
def score_merchant(expense: Expense, history: List[Expense]) -> ScoreResult:
    name = expense.merchant_name
    if not _present(name):
        return NOT_ANOMALOUS
    name = name.lower()
    known = [e.merchant_name.lower() for e in history if _present(e.merchant_name)]
    if name in known:
        return NOT_ANOMALOUS
    max_sim = max((jaccard(name, m) for m in known), default=0.0)
    return ScoreResult(max_sim <= MERCHANT_SIMILARITY, max(0.0, 1.0 - max_sim))

@scorer
def score_pattern(expense: Expense, history: List[Expense]) -> ScoreResult:
    """Round-number and near-duplicate description checks. Flag only; the score is 0/1."""
    if not history:
        return NOT_ANOMALOUS

    if is_round_amount(expense.amount):
        round_rate = sum(1 for e in history if is_round_amount(e.amount)) / len(history)
        if round_rate < RARE_ROUND_RATE:
            return ScoreResult(True, 1.0)

    if _present(expense.description):
        near_duplicates = sum(
            1 for e in history
            if _present(e.description) and jaccard(expense.description, e.description) > DESCRIPTION_SIMILARITY
        )
        if near_duplicates > MAX_SIMILAR_DESCRIPTIONS:
            return ScoreResult(True, 1.0)

    return NOT_ANOMALOUS

# Evaluation order is fixed; the feature name keys the composite weight.
FEATURE_SCORERS = (
    ("amount", AnomalyType.UNUSUAL_AMOUNT, score_amount),
    ("time", AnomalyType.UNUSUAL_TIME, score_time),
    ("frequency", AnomalyType.HIGH_FREQUENCY, score_frequency),
    ("category", AnomalyType.UNUSUAL_CATEGORY, score_category),
    ("merchant", AnomalyType.NEW_MERCHANT, score_merchant),
)
PATTERN_SCORER = ("pattern", AnomalyType.UNUSUAL_PATTERN, score_pattern)
