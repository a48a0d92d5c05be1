"""Roll-ups computed from a finished schedule.

Everything here is derived from the engine's monthly breakdown: the yearly
schedule, the summary against a no-overpayment baseline, milestones and the
completeness check. ``build_report`` runs the engine (and its baselines) and
bundles the lot.
"""

from __future__ import annotations

import dataclasses
from decimal import Decimal
from typing import Dict, List, Optional

from .data_models import (
    MILESTONE_TYPES,
    Milestone,
    MonthlyBreakdown,
    RateCatalog,
    Scenario,
    SelfBuildConfig,
    SimulationCompleteness,
    SimulationInput,
    SimulationReport,
    SimulationSummary,
    SimulationWarning,
    YearlyBreakdown,
)
from .engine import simulate
from .self_build import (
    construction_end_month,
    initial_self_build_balance,
    interest_only_end_month,
    is_self_build_active,
    is_self_build_complete,
)
from .utils import date_for_month

MILESTONE_LABELS = {
    "mortgage_start": "Mortgage Starts",
    "ltv_80_percent": "LTV Below 80%",
    "construction_complete": "Construction Complete",
    "full_payments_start": "Full Payments Start",
    "principal_25_percent": "25% Paid Off",
    "principal_50_percent": "50% Paid Off",
    "principal_75_percent": "75% Paid Off",
    "mortgage_complete": "Mortgage Complete",
}

PRINCIPAL_THRESHOLDS = (
    ("principal_25_percent", Decimal("0.25")),
    ("principal_50_percent", Decimal("0.50")),
    ("principal_75_percent", Decimal("0.75")),
)

# differences below one euro are rounding noise
SELF_BUILD_INTEREST_THRESHOLD = 100


def aggregate_by_year(
    months: List[MonthlyBreakdown],
    warnings: Optional[List[SimulationWarning]] = None,
) -> List[YearlyBreakdown]:
    """Group the schedule into years.

    Years are calendar years when the months carry dates and 12-month
    mortgage years otherwise. ``rate_changes`` lists the rate period ids
    touched in each year, in order of first appearance.
    """
    if not months:
        return []

    use_calendar = months[0].date is not None
    grouped: Dict[int, List[MonthlyBreakdown]] = {}
    for entry in months:
        key = entry.date.year if use_calendar else entry.year
        grouped.setdefault(key, []).append(entry)

    warning_months = {w.month for w in warnings or []}
    years: List[YearlyBreakdown] = []
    for year in sorted(grouped):
        entries = grouped[year]
        first, last = entries[0], entries[-1]
        rate_changes: List[str] = []
        for entry in entries:
            if entry.rate_period_id not in rate_changes:
                rate_changes.append(entry.rate_period_id)
        years.append(
            YearlyBreakdown(
                year=year,
                opening_balance=first.opening_balance,
                closing_balance=last.closing_balance,
                total_interest=sum(e.interest_portion for e in entries),
                total_principal=sum(e.principal_portion for e in entries),
                total_overpayments=sum(e.overpayment for e in entries),
                total_payments=sum(e.total_payment for e in entries),
                cumulative_interest=last.cumulative_interest,
                cumulative_principal=last.cumulative_principal,
                cumulative_total=last.cumulative_total,
                months=entries,
                rate_changes=rate_changes,
                has_warnings=any(e.month in warning_months for e in entries),
            )
        )
    return years


def total_interest(months: List[MonthlyBreakdown]) -> int:
    return months[-1].cumulative_interest if months else 0


def calculate_summary(
    months: List[MonthlyBreakdown],
    baseline_months: List[MonthlyBreakdown],
    interest_and_capital_baseline: Optional[int] = None,
) -> SimulationSummary:
    """Summarize a schedule against its no-overpayment baseline.

    Parameters
    ----------
    months: List[MonthlyBreakdown]
        The schedule with overpayments applied.
    baseline_months: List[MonthlyBreakdown]
        The same mortgage simulated without overpayments. ``months_saved``
        counts the months it runs beyond ``months``.
    interest_and_capital_baseline: Optional[int]
        Baseline interest of a self-build mortgage that repays capital during
        construction. When given, ``extra_interest_from_self_build`` reports
        what paying interest only costs on top, if that is more than a euro
        either way.

    Returns
    -------
    SimulationSummary
        ``months_saved`` is only non-zero when the mortgage was paid off, so
        an incomplete schedule never reports savings it did not make.
    """
    if not months:
        return SimulationSummary(
            total_interest=0,
            total_paid=0,
            actual_term_months=0,
            interest_saved=0,
            months_saved=0,
        )

    last = months[-1]
    actual_term = len(months)
    baseline_interest = total_interest(baseline_months)
    interest_saved = max(0, baseline_interest - last.cumulative_interest)
    months_saved = len(baseline_months) - actual_term if last.closing_balance <= 0 else 0

    extra_interest = None
    if interest_and_capital_baseline is not None:
        diff = baseline_interest - interest_and_capital_baseline
        if abs(diff) > SELF_BUILD_INTEREST_THRESHOLD:
            extra_interest = diff

    return SimulationSummary(
        total_interest=last.cumulative_interest,
        total_paid=last.cumulative_total,
        actual_term_months=actual_term,
        interest_saved=interest_saved,
        months_saved=months_saved,
        extra_interest_from_self_build=extra_interest,
    )


def _milestone(kind: str, entry_month: int, sim_input: SimulationInput, value: int) -> Milestone:
    return Milestone(
        type=kind,
        month=entry_month,
        date=date_for_month(sim_input.start_date, entry_month),
        label=MILESTONE_LABELS[kind],
        value=value,
    )


def calculate_milestones(
    months: List[MonthlyBreakdown],
    sim_input: SimulationInput,
    self_build: Optional[SelfBuildConfig] = None,
) -> List[Milestone]:
    """Find the milestones a schedule reaches.

    On a self-build mortgage whose stages do not add up to the mortgage
    amount, only ``mortgage_start`` is reported. Principal and LTV milestones
    on a self-build mortgage are not checked before full repayments begin.
    The result is ordered by month, same-month milestones in the order of
    ``MILESTONE_TYPES``.
    """
    if not months:
        return []

    amount = sim_input.mortgage_amount
    self_build_on = is_self_build_active(self_build)
    drawdowns_complete = not self_build_on or is_self_build_complete(self_build, amount)
    construction_end = construction_end_month(self_build) if self_build_on else 0
    io_end = interest_only_end_month(self_build) if self_build_on else 0

    start_value = initial_self_build_balance(self_build) if self_build_on else months[0].opening_balance
    milestones = [_milestone("mortgage_start", 1, sim_input, start_value)]
    if not drawdowns_complete:
        return milestones

    ltv_threshold = Decimal(sim_input.property_value) * Decimal("0.8")
    check_ltv = sim_input.property_value > 0 and amount > ltv_threshold
    thresholds = [
        (kind, Decimal(amount) * (1 - share)) for kind, share in PRINCIPAL_THRESHOLDS
    ]
    reached = set()

    for entry in months:
        if self_build_on and entry.month == construction_end:
            milestones.append(
                _milestone("construction_complete", entry.month, sim_input, entry.closing_balance)
            )
        if self_build_on and io_end > construction_end and entry.month == io_end + 1:
            milestones.append(
                _milestone("full_payments_start", entry.month, sim_input, entry.opening_balance)
            )

        if not self_build_on or entry.month > io_end:
            for kind, balance_threshold in thresholds:
                if kind not in reached and entry.closing_balance <= balance_threshold:
                    milestones.append(
                        _milestone(kind, entry.month, sim_input, entry.closing_balance)
                    )
                    reached.add(kind)
            if (
                check_ltv
                and "ltv_80_percent" not in reached
                and entry.closing_balance <= ltv_threshold
            ):
                milestones.append(
                    _milestone("ltv_80_percent", entry.month, sim_input, entry.closing_balance)
                )
                reached.add("ltv_80_percent")

        if entry.closing_balance <= 0 and entry.cumulative_drawn >= amount:
            milestones.append(_milestone("mortgage_complete", entry.month, sim_input, 0))
            break

    order = {kind: index for index, kind in enumerate(MILESTONE_TYPES)}
    return sorted(milestones, key=lambda m: (m.month, order[m.type]))


def calculate_simulation_completeness(
    months: List[MonthlyBreakdown], mortgage_amount: int, term_months: int
) -> SimulationCompleteness:
    if not months:
        return SimulationCompleteness(
            is_complete=False,
            remaining_balance=mortgage_amount,
            covered_months=0,
            total_months=term_months,
            missing_months=term_months,
        )
    remaining = months[-1].closing_balance
    return SimulationCompleteness(
        is_complete=remaining <= 0,
        remaining_balance=remaining,
        covered_months=len(months),
        total_months=term_months,
        missing_months=max(0, term_months - len(months)),
    )


def build_report(scenario: Scenario, catalog: RateCatalog) -> SimulationReport:
    """Simulate a scenario together with its baselines and derive everything else."""
    sim_input = scenario.input
    result = simulate(
        sim_input,
        scenario.rate_periods,
        scenario.overpayment_configs,
        catalog,
        scenario.self_build,
    )
    baseline = simulate(sim_input, scenario.rate_periods, [], catalog, scenario.self_build)

    interest_and_capital_baseline = None
    if is_self_build_active(scenario.self_build):
        capital_config = dataclasses.replace(
            scenario.self_build, construction_repayment_type="interest_and_capital"
        )
        capital_run = simulate(sim_input, scenario.rate_periods, [], catalog, capital_config)
        interest_and_capital_baseline = total_interest(capital_run.months)

    return SimulationReport(
        result=result,
        baseline_months=baseline.months,
        yearly_schedule=aggregate_by_year(result.months, result.warnings),
        summary=calculate_summary(
            result.months,
            baseline.months,
            interest_and_capital_baseline,
        ),
        milestones=calculate_milestones(result.months, sim_input, scenario.self_build),
        completeness=calculate_simulation_completeness(
            result.months, sim_input.mortgage_amount, sim_input.mortgage_term_months
        ),
    )
