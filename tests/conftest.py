import itertools
from datetime import date, datetime, time, timedelta
from decimal import Decimal

import pytest

from trackify.domain.models import Expense

START = date(2026, 1, 1)
_ids = itertools.count(1)

def expense(amount="20.00", *, user_id=1, day=0, hour=12, category="Meals",
            merchant=None, description=None, id=None):
    d = START + timedelta(days=day)
    return Expense(
        id=id if id is not None else next(_ids),
        user_id=user_id,
        amount=Decimal(str(amount)),
        expense_date=d,
        created_at=datetime.combine(d, time(hour, 15)),
        category=category,
        merchant_name=merchant,
        description=description,
    )

MEALS_AMOUNTS = [12, 20, 28, 16, 24, 13, 27, 20, 18, 22, 15, 25]
MERCHANTS = ["Cafe Roma", "Noodle Bar", "Deli Corner"]

@pytest.fixture
def make_expense():
    return expense

@pytest.fixture
def meals_history():
    """12 Meals expenses around 20 (sample stddev ~5.4), daytime hours, three known merchants."""
    return [
        expense(amt, day=i * 3, hour=9 + i % 8, merchant=MERCHANTS[i % 3], description="lunch")
        for i, amt in enumerate(MEALS_AMOUNTS)
    ]

@pytest.fixture
def outlier():
    return expense(500, day=40, hour=3, category="Meals", merchant="Brand New Place")
