from datetime import timedelta
from decimal import Decimal

import pytest

from trackify.anomaly.scorers import (
    NOT_ANOMALOUS, expected_weekly_count, is_round_amount, is_similar_expense,
    score_amount, score_category, score_frequency, score_merchant, score_pattern, score_time,
)

# ---- amount ----

def test_amount_zero_stddev_is_not_anomalous(make_expense):
    history = [make_expense(100, day=i) for i in range(5)]
    assert score_amount(make_expense(1_000_000, day=10), history) == NOT_ANOMALOUS

def test_amount_needs_three_relevant(make_expense):
    history = [make_expense(10, day=0), make_expense(30, day=1)]
    assert score_amount(make_expense(5000), history) == NOT_ANOMALOUS

def test_amount_uses_category_baseline(make_expense):
    meals = [make_expense(a, day=i, category="Meals") for i, a in enumerate([18, 20, 22, 19, 21, 20])]
    travel = [make_expense(a, day=i, category="Travel") for i, a in enumerate([300, 500, 700, 450, 550, 600])]
    res = score_amount(make_expense(400, category="Meals"), meals + travel)
    assert res.triggered and res.score == 1.0

def test_amount_falls_back_to_full_history(make_expense):
    # only 4 Meals -> whole history is the baseline, where 400 is ordinary
    meals = [make_expense(a, day=i, category="Meals") for i, a in enumerate([18, 20, 22, 19])]
    travel = [make_expense(a, day=i, category="Travel") for i, a in enumerate([300, 500, 700, 450, 550, 600])]
    res = score_amount(make_expense(400, category="Meals"), meals + travel)
    assert not res.triggered
    assert 0.0 < res.score < 1.0

def test_amount_within_band(meals_history, make_expense):
    res = score_amount(make_expense(22, category="Meals"), meals_history)
    assert not res.triggered
    # mean 20, sample stddev sqrt(316/11)
    assert res.score == pytest.approx(2 / (316 / 11) ** 0.5 / 2.5)

# ---- time ----

def test_time_unseen_night_hour(meals_history, make_expense):
    assert score_time(make_expense(hour=3), meals_history) == (True, 1.0)

def test_time_unseen_business_hour(meals_history, make_expense):
    assert score_time(make_expense(hour=20), meals_history) == (False, 0.5)

def test_time_rare_seen_hour(make_expense):
    history = [make_expense(day=i, hour=10) for i in range(60)] + [make_expense(day=61, hour=20)]
    res = score_time(make_expense(hour=20), history)
    assert res.triggered
    assert res.score == pytest.approx(1 - (1 / 61) * 50)

def test_time_common_hour(make_expense):
    history = [make_expense(day=i, hour=10) for i in range(10)]
    assert score_time(make_expense(hour=10), history) == (False, 0.0)

# ---- frequency ----

def _coffee(make_expense, day):
    return make_expense(5, day=day, category="Coffee", merchant="Blue Bottle")

def test_frequency_burst(make_expense):
    weekly = [_coffee(make_expense, d) for d in range(0, 70, 7)]
    burst = [_coffee(make_expense, d) for d in range(84, 90)]
    res = score_frequency(_coffee(make_expense, 90), weekly + burst)
    assert res.triggered and res.score == 1.0

def test_frequency_normal_rhythm(make_expense):
    weekly = [_coffee(make_expense, d) for d in range(0, 70, 7)]
    assert score_frequency(_coffee(make_expense, 70), weekly) == (False, 0.0)

def test_frequency_no_similar(meals_history, make_expense):
    candidate = make_expense(900, category="Electronics", merchant="Gadget Hub", day=40)
    assert score_frequency(candidate, meals_history) == NOT_ANOMALOUS

def test_expected_weekly_count_spreads_over_history(make_expense):
    history = [make_expense(day=d) for d in range(0, 70, 7)]
    assert expected_weekly_count(10, history, history[0].expense_date + timedelta(days=70)) == pytest.approx(1.0)

def test_expected_weekly_count_short_history_counts_as_a_week(make_expense):
    history = [make_expense(day=0), make_expense(day=2)]
    as_of = history[1].expense_date
    assert expected_weekly_count(3, history, as_of) == pytest.approx(3.0)
    # history dated after the candidate
    assert expected_weekly_count(3, history, history[0].expense_date - timedelta(days=5)) == pytest.approx(3.0)
    assert expected_weekly_count(3, [], as_of) == pytest.approx(3.0)

def test_frequency_same_day_history(make_expense):
    history = [_coffee(make_expense, 10) for _ in range(4)]
    assert score_frequency(_coffee(make_expense, 10), history) == (False, 0.0)

def test_similar_expense_rules(make_expense):
    base = make_expense(100, category="Meals", merchant="Cafe Roma")
    assert is_similar_expense(base, make_expense(110, category="Meals", merchant="Other"))
    assert is_similar_expense(base, make_expense(900, category="Meals", merchant="cafe roma"))
    assert not is_similar_expense(base, make_expense(900, category="Meals", merchant="Other"))
    assert not is_similar_expense(base, make_expense(100, category=None, merchant=None))

def test_blank_merchants_do_not_count_as_a_match(make_expense):
    a = make_expense(100, category="Meals", merchant="")
    assert not is_similar_expense(a, make_expense(900, category="Meals", merchant=""))
    assert not is_similar_expense(a, make_expense(900, category="Meals", merchant="  "))

# ---- category ----

def test_category_missing(meals_history, make_expense):
    assert score_category(make_expense(category=None), meals_history) == NOT_ANOMALOUS

def test_category_unseen(meals_history, make_expense):
    assert score_category(make_expense(category="Travel"), meals_history) == (True, 1.0)

def test_category_rare(make_expense):
    history = [make_expense(day=i) for i in range(29)] + [make_expense(day=30, category="Travel")]
    res = score_category(make_expense(category="Travel"), history)
    assert res.triggered
    assert res.score == pytest.approx(1 - (1 / 30) * 20)

def test_category_common(meals_history, make_expense):
    assert score_category(make_expense(category="Meals"), meals_history) == (False, 0.0)

# ---- merchant ----

def test_merchant_blank(meals_history, make_expense):
    assert score_merchant(make_expense(merchant="   "), meals_history) == NOT_ANOMALOUS
    assert score_merchant(make_expense(merchant=None), meals_history) == NOT_ANOMALOUS

def test_merchant_exact_match_ignores_case(meals_history, make_expense):
    assert score_merchant(make_expense(merchant="CAFE ROMA"), meals_history) == (False, 0.0)

def test_merchant_similar_name(make_expense):
    history = [make_expense(day=i, merchant="Blue Bottle Coffee") for i in range(3)]
    res = score_merchant(make_expense(merchant="Blue Bottle Coffee Co"), history)
    assert not res.triggered
    assert res.score == pytest.approx(0.25)

def test_merchant_new(meals_history, make_expense):
    assert score_merchant(make_expense(merchant="Brand New Place"), meals_history) == (True, 1.0)

def test_merchant_partial_overlap_still_new(make_expense):
    history = [make_expense(merchant="Cafe Roma")]
    res = score_merchant(make_expense(merchant="Cafe Milano"), history)
    assert res.triggered
    assert res.score == pytest.approx(1 - 1 / 3)

# ---- pattern ----

@pytest.mark.parametrize("amount,expected", [
    ("500", True), ("20.00", True), ("75", True), ("12.50", True),
    ("12.34", False), ("19.99", False), ("7", False),
])
def test_round_amounts(amount, expected):
    assert is_round_amount(Decimal(amount)) is expected

def test_pattern_rare_round_amount(make_expense):
    history = [make_expense(f"1{i}.37", day=i) for i in range(10)]
    assert score_pattern(make_expense(500), history).triggered

def test_pattern_round_amounts_usual(make_expense):
    history = [make_expense(100, day=i) for i in range(10)]
    assert score_pattern(make_expense(500), history) == NOT_ANOMALOUS

def test_pattern_copied_descriptions(make_expense):
    history = [make_expense("13.37", day=i, description="Team lunch with client") for i in range(6)]
    assert score_pattern(make_expense("14.21", description="team lunch with client"), history).triggered
    assert not score_pattern(make_expense("14.21", description="team lunch with client"), history[:5]).triggered

def test_pattern_empty_history(make_expense):
    assert score_pattern(make_expense(500), []) == NOT_ANOMALOUS

def test_pattern_ignores_blank_descriptions(make_expense):
    history = [make_expense("13.37", day=i, description="") for i in range(6)]
    assert score_pattern(make_expense("14.21", description=""), history) == NOT_ANOMALOUS
    assert score_pattern(make_expense("14.21", description=" "), history) == NOT_ANOMALOUS

# ---- failure boundary ----

def test_scorer_failure_is_downgraded(meals_history, make_expense):
    broken = make_expense()
    object.__setattr__(broken, "created_at", None)
    assert score_time(broken, meals_history) == NOT_ANOMALOUS
    object.__setattr__(broken, "amount", "not-a-number")
    assert score_amount(broken, meals_history) == NOT_ANOMALOUS
