from __future__ import annotations

from calendar import monthrange
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Protocol

from hris_billing.models.enums import BillingCycle

YEARLY_MONTHS_CHARGED = 10
GRACE_PERIOD_DAYS = 7
TRIAL_DURATION_DAYS = 14
TRIAL_PLAN_NAME = "Free Trial"
DEFAULT_TRIAL_SEATS = 5

CENT = Decimal("0.01")
RATIO_PLACES = Decimal("0.000001")


class InvoiceSnapshot(Protocol):
    is_prorated: bool
    price_per_seat_snapshot: Decimal
    seat_count_snapshot: int
    billing_cycle_snapshot: BillingCycle
    seat_delta_snapshot: int | None
    proration_ratio_snapshot: Decimal | None


def _money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def cycle_multiplier(cycle: BillingCycle | str) -> int:
    return YEARLY_MONTHS_CHARGED if BillingCycle(cycle) is BillingCycle.YEARLY else 1


def calculate_amount(price_per_seat: Decimal, seats: int, cycle: BillingCycle | str) -> Decimal:
    """Full-period price. Yearly is ten monthly charges, not a percentage discount."""
    return _money(Decimal(price_per_seat) * seats * cycle_multiplier(cycle))


def add_months(start: datetime, months: int) -> datetime:
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, monthrange(year, month)[1])
    return start.replace(year=year, month=month, day=day)


def calculate_period_end(start: datetime, cycle: BillingCycle | str) -> datetime:
    if BillingCycle(cycle) is BillingCycle.YEARLY:
        return add_months(start, 12)
    return add_months(start, 1)


def proration_ratio(period_start: datetime, period_end: datetime, now: datetime) -> Decimal:
    total = (period_end - period_start).total_seconds()
    if total <= 0:
        return Decimal("0")
    remaining = (period_end - now).total_seconds()
    ratio = Decimal(str(remaining)) / Decimal(str(total))
    ratio = min(max(ratio, Decimal("0")), Decimal("1"))
    return ratio.quantize(RATIO_PLACES, rounding=ROUND_HALF_UP)


def calculate_prorated_amount(
    price_per_seat: Decimal,
    seat_delta: int,
    cycle: BillingCycle | str,
    ratio: Decimal,
) -> Decimal:
    full = Decimal(price_per_seat) * seat_delta * cycle_multiplier(cycle)
    return max(_money(full * ratio), CENT)


def amount_from_snapshot(invoice: InvoiceSnapshot) -> Decimal:
    if invoice.is_prorated:
        return calculate_prorated_amount(
            invoice.price_per_seat_snapshot,
            invoice.seat_delta_snapshot or 0,
            invoice.billing_cycle_snapshot,
            invoice.proration_ratio_snapshot or Decimal("0"),
        )
    return calculate_amount(
        invoice.price_per_seat_snapshot,
        invoice.seat_count_snapshot,
        invoice.billing_cycle_snapshot,
    )


def format_invoice_description(plan_name: str, seats: int, cycle: BillingCycle | str) -> str:
    return f"HRIS {plan_name} Plan - {seats} seats ({BillingCycle(cycle).value})"


def format_seat_increase_description(plan_name: str, current_seats: int, new_seats: int) -> str:
    return f"Additional Seats (Prorated) - {plan_name} Plan: {current_seats} -> {new_seats} seats"
