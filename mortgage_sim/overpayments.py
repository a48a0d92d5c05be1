"""Overpayment resolution and allowance policies.

Overpayment configurations are expanded into per-month amounts here. The
engine decides what an overpayment *does* (reduce the term or the payment);
this module only answers how much is paid in a month, how much of it the
lender allows penalty-free, and how to plan the largest fee-free overpayments
for a fixed rate period.
"""

from __future__ import annotations

import math
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple

from .data_models import (
    AppliedOverpayment,
    OverpaymentConfig,
    OverpaymentPolicy,
    ResolvedRatePeriod,
    YearlyOverpaymentPlan,
)
from .utils import (
    annuity_payment,
    date_for_month,
    floor_cents,
    format_cents,
    interest_for_month,
    percent_of,
    round_cents,
)

FREQUENCY_STEPS = {"monthly": 1, "quarterly": 3, "yearly": 12}


def step_months(frequency: Optional[str]) -> int:
    return FREQUENCY_STEPS[frequency or "monthly"]


def overpayment_applies(config: OverpaymentConfig, month: int, term_months: int) -> bool:
    """Whether ``config`` pays something in ``month``."""
    if not config.enabled:
        return False
    if config.type == "one_time":
        return month == config.start_month
    end_month = config.end_month if config.end_month is not None else term_months
    if month < config.start_month or month > end_month:
        return False
    return (month - config.start_month) % step_months(config.frequency) == 0


def configs_for_month(
    month: int,
    configs: Iterable[OverpaymentConfig],
    term_months: int,
    rate_period_id: Optional[str] = None,
) -> List[OverpaymentConfig]:
    return [
        c
        for c in configs
        if (rate_period_id is None or c.rate_period_id == rate_period_id)
        and overpayment_applies(c, month, term_months)
    ]


def amount_for_month(
    month: int,
    configs: Iterable[OverpaymentConfig],
    term_months: int,
    rate_period_id: Optional[str] = None,
) -> int:
    """Total overpayment scheduled for ``month`` in cents.

    Configs stack: every enabled config paying in the month contributes its
    full amount. With ``rate_period_id`` only configs linked to that period
    are counted.
    """
    return sum(c.amount for c in configs_for_month(month, configs, term_months, rate_period_id))


def overpayment_label(config: Optional[OverpaymentConfig]) -> str:
    if config is None:
        return "Overpayment"
    if config.label:
        return config.label
    return "One-time" if config.type == "one_time" else "Recurring"


# ---------------------------------------------------------------------------
# Allowances
# ---------------------------------------------------------------------------


def calculate_allowance(
    policy: Optional[OverpaymentPolicy],
    basis_balance: int,
    monthly_payment: int,
    original_amount: int,
    already_used: int,
) -> int:
    """Fee-free overpayment still available in the current allowance window.

    ``basis_balance`` is the balance at the start of the window; it is only
    used by ``"balance"`` policies. Monthly-payment policies are per month, so
    ``already_used`` should then only count the current month.
    """
    if policy is None:
        return 0
    if policy.allowance_type == "flat":
        return max(0, round_cents(policy.allowance_value) - already_used)
    if policy.allowance_basis == "balance":
        allowance = round_cents(percent_of(basis_balance, policy.allowance_value))
    elif policy.allowance_basis == "original":
        allowance = round_cents(percent_of(original_amount, policy.allowance_value))
    else:
        allowance = round_cents(percent_of(monthly_payment, policy.allowance_value))
        if policy.min_amount:
            allowance = max(allowance, policy.min_amount)
    return max(0, allowance - already_used)


def _year_key(month: int, start_date: Optional[date]) -> int:
    when = date_for_month(start_date, month)
    if when is not None:
        return when.year
    return math.ceil(month / 12)


def allowance_window_key(
    period: ResolvedRatePeriod,
    policy: OverpaymentPolicy,
    month: int,
    start_date: Optional[date],
) -> Tuple:
    """Key of the allowance window ``month`` falls in.

    Windows are calendar years when a start date is known and mortgage years
    otherwise, one set per rate period. Monthly-payment policies use a window
    per month and ``fixed_period`` policies one window for the whole period.
    """
    if policy.allowance_type == "percentage" and policy.allowance_basis == "monthly":
        return (period.id, "m", month)
    if policy.basis_period == "fixed_period":
        return (period.id,)
    return (period.id, "y", _year_key(month, start_date))


def transaction_period_key(
    period_id: str,
    month: int,
    start_date: Optional[date],
    limit_period: str,
) -> Tuple:
    """Key of the window a ``max_transactions`` limit is counted over."""
    if limit_period == "fixed_period":
        return (period_id,)
    when = date_for_month(start_date, month)
    if when is None:
        if limit_period == "month":
            return (period_id, "m", month)
        if limit_period == "quarter":
            return (period_id, "q", math.ceil(month / 3))
        return (period_id, "y", math.ceil(month / 12))
    if limit_period == "month":
        return (period_id, when.year, when.month)
    if limit_period == "quarter":
        return (period_id, when.year, "Q", (when.month - 1) // 3)
    return (period_id, when.year)


class AllowanceTracker:
    """Running allowance usage and transaction counts for one simulation run."""

    def __init__(self, original_amount: int, start_date: Optional[date]) -> None:
        self.original_amount = original_amount
        self.start_date = start_date
        self._used: Dict[Tuple, int] = {}
        self._window_balance: Dict[Tuple, int] = {}
        self._transactions: Dict[Tuple, int] = {}

    def open_window(
        self,
        period: ResolvedRatePeriod,
        policy: OverpaymentPolicy,
        month: int,
        balance: int,
    ) -> Tuple:
        key = allowance_window_key(period, policy, month, self.start_date)
        if key not in self._used:
            self._used[key] = 0
            self._window_balance[key] = balance
        return key

    def remaining(self, key: Tuple, policy: OverpaymentPolicy, monthly_payment: int) -> int:
        return calculate_allowance(
            policy,
            self._window_balance[key],
            monthly_payment,
            self.original_amount,
            self._used[key],
        )

    def record(self, key: Tuple, amount: int) -> None:
        self._used[key] += amount

    def count_transaction(
        self, period: ResolvedRatePeriod, policy: OverpaymentPolicy, month: int
    ) -> int:
        """Count one overpayment against the policy's limit; return the new count."""
        key = transaction_period_key(
            period.id, month, self.start_date, policy.max_transactions_period or "year"
        )
        self._transactions[key] = self._transactions.get(key, 0) + 1
        return self._transactions[key]


def allowance_warning_message(policy: Optional[OverpaymentPolicy], excess: int) -> str:
    policy_label = policy.label if policy is not None else "free allowance"
    return f"Exceeds {policy_label} allowance by {format_cents(excess)}"


def format_policy_description(policy: Optional[OverpaymentPolicy]) -> str:
    if policy is None:
        return "No allowance"
    if policy.allowance_type == "flat":
        return f"{format_cents(round_cents(policy.allowance_value))} per year"
    if policy.allowance_basis == "balance":
        return f"{policy.allowance_value}% of balance per year"
    if policy.allowance_basis == "original":
        return f"{policy.allowance_value}% of original loan per year"
    return f"{policy.allowance_value}% of monthly payment"


# ---------------------------------------------------------------------------
# Planning
# ---------------------------------------------------------------------------


def is_constant_allowance_policy(policy: OverpaymentPolicy) -> bool:
    """Whether the allowance does not move with the outstanding balance."""
    if policy.allowance_type == "flat":
        return True
    return policy.allowance_basis in ("monthly", "original")


def max_window_allowance(
    policy: OverpaymentPolicy,
    balance: int,
    monthly_payment: int,
    original_amount: int,
) -> int:
    """Largest single overpayment a fresh allowance window permits."""
    return calculate_allowance(policy, balance, monthly_payment, original_amount, 0)


def max_monthly_overpayment(
    policy: OverpaymentPolicy,
    balance: int,
    monthly_payment: int,
    original_amount: int,
    window_months: int = 12,
) -> int:
    """Largest equal monthly overpayment that stays inside one window."""
    allowance = max_window_allowance(policy, balance, monthly_payment, original_amount)
    if policy.allowance_type == "percentage" and policy.allowance_basis == "monthly":
        return allowance
    return floor_cents(Decimal(allowance) / max(window_months, 1))


def year_boundaries(
    start_date: Optional[date], first_month: int, last_month: int
) -> List[Tuple[int, int]]:
    """Split ``first_month..last_month`` into (start, end) year windows.

    Windows follow calendar years when ``start_date`` is given and run in
    12-month steps from ``first_month`` otherwise.
    """
    boundaries: List[Tuple[int, int]] = []
    current = first_month
    while current <= last_month:
        when = date_for_month(start_date, current)
        months_left_in_year = 12 - when.month if when is not None else 11
        end = min(current + months_left_in_year, last_month)
        boundaries.append((current, end))
        current = end + 1
    return boundaries


def calculate_yearly_overpayment_plans(
    policy: OverpaymentPolicy,
    period: ResolvedRatePeriod,
    mortgage_amount: int,
    term_months: int,
    start_date: Optional[date] = None,
    construction_end_month: Optional[int] = None,
) -> List[YearlyOverpaymentPlan]:
    """Plan the maximum fee-free overpayments for a fixed rate period.

    Constant-allowance policies give a single plan for the whole period.
    Balance-based policies give one plan per year window, estimating the
    balance forward with the planned overpayments applied. On a self-build
    mortgage no window starts before the final drawdown has been made.
    """
    plans: List[YearlyOverpaymentPlan] = []
    period_end = period.end_month if period.duration_months else term_months
    first_month = period.start_month
    if construction_end_month and first_month <= construction_end_month:
        first_month = construction_end_month + 1
    if first_month > period_end:
        return plans

    payment = annuity_payment(mortgage_amount, period.rate, term_months - period.start_month + 1)

    if policy.basis_period == "fixed_period" or is_constant_allowance_policy(policy):
        window_months = period_end - first_month + 1
        if policy.basis_period == "fixed_period" or (
            policy.allowance_type == "percentage" and policy.allowance_basis == "monthly"
        ):
            monthly = max_monthly_overpayment(
                policy, mortgage_amount, payment, mortgage_amount, window_months
            )
        else:
            monthly = max_monthly_overpayment(policy, mortgage_amount, payment, mortgage_amount)
        if monthly > 0:
            plans.append(
                YearlyOverpaymentPlan(
                    year=1,
                    start_month=first_month,
                    end_month=period_end,
                    monthly_amount=monthly,
                    estimated_balance=mortgage_amount,
                )
            )
        return plans

    balance = mortgage_amount
    for index, (window_start, window_end) in enumerate(
        year_boundaries(start_date, first_month, period_end)
    ):
        monthly = max_monthly_overpayment(policy, balance, payment, mortgage_amount)
        if monthly > 0:
            plans.append(
                YearlyOverpaymentPlan(
                    year=index + 1,
                    start_month=window_start,
                    end_month=window_end,
                    monthly_amount=monthly,
                    estimated_balance=balance,
                )
            )
        for _ in range(window_end - window_start + 1):
            principal = payment - interest_for_month(balance, period.rate)
            balance = max(0, balance - principal - monthly)
        if balance <= 0:
            break
    return plans


def create_overpayment_maps(
    applied: Iterable[AppliedOverpayment],
) -> Tuple[Dict[int, int], Dict[int, int]]:
    """Per-month totals of one-time and recurring overpayments."""
    one_time: Dict[int, int] = {}
    recurring: Dict[int, int] = {}
    for item in applied:
        target = recurring if item.is_recurring else one_time
        target[item.month] = target.get(item.month, 0) + item.amount
    return one_time, recurring
