from datetime import date
from decimal import Decimal

from payments.installments import add_months, build_schedule


def test_default_forty_thirty_thirty_split():
    schedule = build_schedule(Decimal("3000"), Decimal("1200"), [Decimal("30"), Decimal("30")], date(2025, 1, 15))

    assert schedule.installment_count == 3
    assert schedule.monthly_amount == Decimal("900.00")
    assert [i.amount for i in schedule.installments] == [Decimal("1200.00"), Decimal("900.00"), Decimal("900.00")]
    assert [i.due_date for i in schedule.installments] == [date(2025, 1, 15), date(2025, 2, 15), date(2025, 3, 15)]
    assert schedule.end_date == date(2025, 3, 15)


def test_longer_schedule():
    schedule = build_schedule(Decimal("1000"), Decimal("250"), [25, 25, 25], date(2025, 3, 1))
    assert schedule.installment_count == 4
    assert schedule.monthly_amount == Decimal("250.00")
    assert schedule.installments[-1].number == 4


def test_add_months_clamps_to_month_end():
    assert add_months(date(2025, 1, 31), 1) == date(2025, 2, 28)
    assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)
    assert add_months(date(2025, 11, 30), 3) == date(2026, 2, 28)
