"""Core calculation engine for the mortgage simulator.

This module builds the month-by-month amortization schedule for a stack of
rate periods. It supports overpayments (one-time and recurring, reducing
either the term or the payment), lender allowance policies on fixed rates and
self-build mortgages drawn down in stages. The engine is a pure function of
its inputs: it never fetches or caches anything, and it never raises for
degenerate input.
"""

from __future__ import annotations

import logging
import math
from typing import List, Optional

from .data_models import (
    AppliedOverpayment,
    MonthlyBreakdown,
    OverpaymentConfig,
    RateCatalog,
    RatePeriod,
    SelfBuildConfig,
    SimulationInput,
    SimulationResult,
    SimulationWarning,
)
from .overpayments import (
    AllowanceTracker,
    allowance_warning_message,
    configs_for_month,
    overpayment_label,
)
from .rates import find_rate_period_for_month, resolve_rate_periods
from .self_build import (
    determine_phase,
    drawdown_for_month,
    initial_self_build_balance,
    is_interest_only_month,
    is_self_build_active,
    total_drawdowns,
)
from .utils import annuity_payment, date_for_month, interest_for_month

logger = logging.getLogger(__name__)


def simulate(
    sim_input: SimulationInput,
    rate_periods: List[RatePeriod],
    overpayment_configs: List[OverpaymentConfig],
    catalog: RateCatalog,
    self_build: Optional[SelfBuildConfig] = None,
) -> SimulationResult:
    """Compute the amortization schedule for a mortgage.

    Parameters
    ----------
    sim_input: SimulationInput
        Amount, term and property details. Amounts are in cents.
    rate_periods: List[RatePeriod]
        The ordered rate stack. Each period starts the month after the
        previous one ends.
    overpayment_configs: List[OverpaymentConfig]
        Extra payments; configs paying in the same month stack.
    catalog: RateCatalog
        Rates, custom rates, lenders and overpayment policies the periods
        refer to.
    self_build: Optional[SelfBuildConfig]
        Staged drawdown configuration. Ignored unless enabled with stages.

    Returns
    -------
    SimulationResult
        ``months`` holds one entry per elapsed month. The result is empty for
        a zero amount, a zero term or an empty rate stack, and
        ``resolved_periods`` is ``None`` when the stack cannot be resolved
        against the catalog.
    """
    amount = sim_input.mortgage_amount
    term = sim_input.mortgage_term_months
    if amount <= 0 or term <= 0 or not rate_periods:
        return SimulationResult()

    self_build_active = is_self_build_active(self_build)
    resolved = resolve_rate_periods(
        rate_periods, sim_input, catalog, self_build_active=self_build_active
    )
    if resolved is None:
        logger.debug("Rate periods could not be resolved; simulation unavailable")
        return SimulationResult(resolved_periods=None)

    months: List[MonthlyBreakdown] = []
    warnings: List[SimulationWarning] = []
    applied_overpayments: List[AppliedOverpayment] = []

    if self_build_active:
        balance = initial_self_build_balance(self_build)
        drawn = balance
        drawdown_target = total_drawdowns(self_build)
    else:
        balance = amount
        drawn = amount
        drawdown_target = amount

    tracker = AllowanceTracker(amount, sim_input.start_date)
    scheduled: Optional[int] = None
    last_period_id: Optional[str] = None
    previous_phase: Optional[str] = None
    recalc_pending = False
    reduce_term_total = 0
    cumulative_interest = 0
    cumulative_principal = 0
    cumulative_overpayments = 0

    for month in range(1, term + 1):
        period = find_rate_period_for_month(resolved, month)
        if period is None:
            logger.debug("No rate period covers month %d; schedule is incomplete", month)
            break

        opening_balance = balance
        drawdown = 0
        phase = "repayment"
        interest_only = False
        entering_repayment = False

        if self_build_active:
            # the month 1 stage is already in the opening balance
            if month > 1:
                drawdown = drawdown_for_month(month, self_build.drawdown_stages)
                balance += drawdown
                drawn += drawdown
            phase = determine_phase(month, self_build)
            interest_only = is_interest_only_month(month, self_build)
            if phase != previous_phase:
                logger.debug("Month %d: entering %s phase", month, phase)
                entering_repayment = previous_phase is not None and phase == "repayment"
            previous_phase = phase

        needs_recalc = not interest_only and (
            scheduled is None
            or period.id != last_period_id
            or drawdown > 0
            or entering_repayment
            or recalc_pending
        )
        if needs_recalc:
            remaining_months = term - month + 1
            # reduce_term overpayments must not lower the payment
            scheduled = annuity_payment(balance + reduce_term_total, period.rate, remaining_months)
            last_period_id = period.id
            recalc_pending = False
            logger.debug(
                "Month %d: payment recalculated to %d over %d months at %s%%",
                month,
                scheduled,
                remaining_months,
                period.rate,
            )

        interest = interest_for_month(balance, period.rate)
        if interest_only:
            principal = 0
        elif month == term:
            principal = balance
        else:
            principal = max(0, min(scheduled - interest, balance))
        payment = interest + principal
        # the final month may pay more than the annuity to clear the balance
        scheduled_payment = interest if interest_only else scheduled

        policy = catalog.find_policy(period.overpayment_policy_id) if period.is_fixed else None
        window = tracker.open_window(period, policy, month, balance) if policy else None

        overpayment = 0
        reduce_payment_amount = 0
        available = balance - principal
        for config in configs_for_month(month, overpayment_configs, term):
            op_amount = min(config.amount, available - overpayment)
            if op_amount <= 0:
                continue
            within_allowance = True
            excess = 0
            if policy is not None:
                allowance = tracker.remaining(window, policy, payment)
                if op_amount > allowance:
                    within_allowance = False
                    excess = op_amount - allowance
                tracker.record(window, op_amount)
                if policy.max_transactions and policy.max_transactions_period:
                    count = tracker.count_transaction(period, policy, month)
                    if count > policy.max_transactions:
                        period_label = policy.max_transactions_period.replace("_", " ")
                        warnings.append(
                            SimulationWarning(
                                type="transaction_limit_exceeded",
                                month=month,
                                message=(
                                    f"Exceeds {policy.max_transactions} overpayments "
                                    f"per {period_label} limit"
                                ),
                                config_id=config.id,
                                overpayment_label=overpayment_label(config),
                            )
                        )
            if not within_allowance:
                warnings.append(
                    SimulationWarning(
                        type="overpayment_exceeds_allowance",
                        month=month,
                        message=allowance_warning_message(policy, excess),
                        config_id=config.id,
                        overpayment_label=overpayment_label(config),
                    )
                )
            applied_overpayments.append(
                AppliedOverpayment(
                    month=month,
                    amount=op_amount,
                    config_id=config.id,
                    effect=config.effect,
                    is_recurring=config.type == "recurring",
                    within_allowance=within_allowance,
                    excess_amount=excess,
                )
            )
            overpayment += op_amount
            if config.effect == "reduce_payment":
                reduce_payment_amount += op_amount
            else:
                reduce_term_total += op_amount

        closing_balance = balance - principal - overpayment
        drawdowns_pending = drawn < drawdown_target

        if (
            closing_balance == 0
            and overpayment > 0
            and not drawdowns_pending
            and period.is_fixed
            and period.duration_months > 0
            and month < period.end_month
        ):
            warnings.append(
                SimulationWarning(
                    type="early_redemption",
                    month=month,
                    message=(
                        f"Mortgage paid off {period.end_month - month} months before "
                        "fixed period ends. Early redemption fees may apply."
                    ),
                    severity="error",
                )
            )

        cumulative_interest += interest
        cumulative_principal += principal + overpayment
        cumulative_overpayments += overpayment

        months.append(
            MonthlyBreakdown(
                month=month,
                year=math.ceil(month / 12),
                month_of_year=(month - 1) % 12 + 1,
                date=date_for_month(sim_input.start_date, month),
                rate=period.rate,
                rate_period_id=period.id,
                opening_balance=opening_balance,
                drawdown_this_month=drawdown,
                cumulative_drawn=drawn,
                phase=phase,
                is_interest_only=interest_only,
                scheduled_payment=scheduled_payment,
                interest_portion=interest,
                principal_portion=principal,
                overpayment=overpayment,
                total_payment=payment + overpayment,
                closing_balance=closing_balance,
                cumulative_interest=cumulative_interest,
                cumulative_principal=cumulative_principal,
                cumulative_overpayments=cumulative_overpayments,
                cumulative_total=cumulative_interest + cumulative_principal,
            )
        )

        if reduce_payment_amount > 0:
            recalc_pending = True
        balance = closing_balance
        if balance <= 0 and not drawdowns_pending:
            logger.debug("Mortgage paid off in month %d", month)
            break

    return SimulationResult(
        months=months,
        warnings=warnings,
        applied_overpayments=applied_overpayments,
        resolved_periods=resolved,
    )
