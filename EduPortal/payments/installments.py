# payments/installments.py
from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Sequence

CENT = Decimal("0.01")


@dataclass(frozen=True)
class ScheduledInstallment:
    number: int
    amount: Decimal
    due_date: date


@dataclass(frozen=True)
class InstallmentSchedule:
    installment_count: int
    monthly_amount: Decimal
    installments: List[ScheduledInstallment]

    @property
    def end_date(self) -> date:
        return self.installments[-1].due_date


def add_months(d: date, months: int) -> date:
    """Same day ``months`` later, clamped to the end of shorter months."""
    index = d.month - 1 + months
    year, month = d.year + index // 12, index % 12 + 1
    return date(year, month, min(d.day, calendar.monthrange(year, month)[1]))


def _money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def build_schedule(price: Decimal, upfront: Decimal, splits: Sequence[Decimal], start: date) -> InstallmentSchedule:
    """Upfront installment on ``start``, then one installment per split percentage
    of ``price``, each a month after the previous one."""
    price, upfront = Decimal(price), Decimal(upfront)
    count = 1 + len(splits)
    monthly = _money((price - upfront) / (count - 1)) if count > 1 else Decimal("0.00")

    rows = [ScheduledInstallment(1, _money(upfront), start)]
    for number, pct in enumerate(splits, start=2):
        rows.append(ScheduledInstallment(number, _money(price * Decimal(pct) / 100), add_months(start, number - 1)))
    return InstallmentSchedule(installment_count=count, monthly_amount=monthly, installments=rows)
