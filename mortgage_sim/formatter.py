"""Output helpers for the mortgage simulator.

This module renders schedules, summaries, milestones and comparisons in a
tabular text format using built-in printing and string formatting. Amounts
arrive in cents and are shown in euros.
"""

from __future__ import annotations

from typing import Dict, Iterable, List

from .data_models import (
    AprcQuote,
    ComparisonMetric,
    Milestone,
    MonthlyBreakdown,
    SimulationCompleteness,
    SimulationSummary,
    SimulationWarning,
    YearlyBreakdown,
    YearlyOverpaymentPlan,
)
from .utils import format_cents


def format_term(months: int) -> str:
    years, rest = divmod(months, 12)
    if rest == 0:
        return f"{years} years"
    return f"{years}y {rest}m"


def _euros(cents: int) -> str:
    return f"{cents / 100:.2f}"


def print_summary(summary: SimulationSummary, completeness: SimulationCompleteness) -> None:
    """Print the headline figures of a simulation."""
    print("Summary")
    print("-" * 72)
    print(f"Total interest     : {format_cents(summary.total_interest)}")
    print(f"Total paid         : {format_cents(summary.total_paid)}")
    print(f"Actual term        : {format_term(summary.actual_term_months)}")
    if summary.interest_saved:
        print(f"Interest saved     : {format_cents(summary.interest_saved)}")
    if summary.months_saved:
        print(f"Term reduction     : {summary.months_saved} months")
    if summary.extra_interest_from_self_build is not None:
        print(f"Self-build extra   : {format_cents(summary.extra_interest_from_self_build)}")
    if not completeness.is_complete:
        print(
            f"Incomplete         : {completeness.missing_months} months without a rate, "
            f"{format_cents(completeness.remaining_balance)} outstanding"
        )
    print("-" * 72)


def print_milestones(milestones: Iterable[Milestone]) -> None:
    print("Milestones")
    for milestone in milestones:
        when = milestone.date.strftime("%Y-%m") if milestone.date else f"month {milestone.month}"
        print(f"  {when:>10s}  {milestone.label:24s} {format_cents(milestone.value)}")


def print_warnings(warnings: List[SimulationWarning]) -> None:
    if not warnings:
        return
    print("Warnings")
    for warning in warnings:
        label = f" [{warning.overpayment_label}]" if warning.overpayment_label else ""
        print(f"  month {warning.month:>3d} {warning.severity:7s}{label} {warning.message}")


def print_schedule(months: Iterable[MonthlyBreakdown], show_drawdown: bool = False) -> None:
    """Print the monthly schedule as a simple table.

    Parameters
    ----------
    months: Iterable[MonthlyBreakdown]
        The schedule entries to print.
    show_drawdown: bool
        Whether to include the ``Drawdown`` and ``Phase`` columns used by
        self-build mortgages.
    """
    headers = [
        "Month",
        "Date",
        "Rate",
        "StartBal",
        "Payment",
        "Principal",
        "Interest",
        "Overpay",
        "EndBal",
    ]
    if show_drawdown:
        headers.extend(["Drawdown", "Phase"])
    print("\t".join(headers))
    for entry in months:
        row = [
            str(entry.month),
            entry.date.strftime("%Y-%m") if entry.date else "",
            f"{entry.rate}",
            _euros(entry.opening_balance),
            _euros(entry.scheduled_payment),
            _euros(entry.principal_portion),
            _euros(entry.interest_portion),
            _euros(entry.overpayment),
            _euros(entry.closing_balance),
        ]
        if show_drawdown:
            row.extend([_euros(entry.drawdown_this_month), entry.phase])
        print("\t".join(row))


def print_yearly(years: Iterable[YearlyBreakdown]) -> None:
    headers = ["Year", "StartBal", "Interest", "Principal", "Overpay", "Paid", "EndBal", "Periods"]
    print("\t".join(headers))
    for year in years:
        flag = " !" if year.has_warnings else ""
        print(
            "\t".join(
                [
                    f"{year.year}{flag}",
                    _euros(year.opening_balance),
                    _euros(year.total_interest),
                    _euros(year.total_principal),
                    _euros(year.total_overpayments),
                    _euros(year.total_payments),
                    _euros(year.closing_balance),
                    ",".join(year.rate_changes),
                ]
            )
        )


def _format_metric_value(metric: ComparisonMetric, value: int) -> str:
    if metric.key == "actual_term":
        return format_term(value)
    if metric.key == "months_saved":
        return f"{value} months"
    return format_cents(value)


def print_comparison(metrics: List[ComparisonMetric]) -> None:
    """Print comparison metrics side by side.

    The best value in each row is marked with ``*`` and the worst with ``-``;
    rows where every scenario ties carry no marks.
    """
    if not metrics:
        return
    names = [v.scenario for v in metrics[0].values]
    print("Comparison")
    print("=" * 72)
    print(f"{'Metric':30s}" + "".join(f"{name[:18]:>20s}" for name in names))
    for metric in metrics:
        cells: List[str] = []
        for value in metric.values:
            mark = "*" if value.is_best else "-" if value.is_worst else " "
            cells.append(f"{_format_metric_value(metric, value.value) + mark:>20s}")
        print(f"{metric.label:30s}" + "".join(cells))


def print_overpayment_plans(plans: List[YearlyOverpaymentPlan], policy_description: str) -> None:
    print(f"Overpayment plan ({policy_description})")
    print("-" * 72)
    if not plans:
        print("No penalty-free overpayments available for this period.")
        return
    print("\t".join(["Year", "Months", "Monthly", "EstBalance"]))
    for plan in plans:
        print(
            "\t".join(
                [
                    str(plan.year),
                    f"{plan.start_month}-{plan.end_month}",
                    _euros(plan.monthly_amount),
                    _euros(plan.estimated_balance),
                ]
            )
        )


def print_aprc_quotes(quotes: List[AprcQuote]) -> None:
    """Print APRC per fixed rate, marking published figures with ``*``.

    A follow-on rate worked back from a published APRC is marked with ``~``.
    """
    print("APRC")
    print("-" * 72)
    if not quotes:
        print("No fixed rates match this loan.")
        return
    print("\t".join(["Product", "Rate", "FollowOn", "APRC"]))
    for quote in quotes:
        follow_on = f"{quote.follow_on_rate}%" + ("~" if quote.follow_on_inferred else "")
        aprc = f"{quote.aprc}%" + ("*" if quote.is_published else "")
        print("\t".join([quote.label, f"{quote.rate.rate}%", follow_on, aprc]))


def summary_to_dict(summary: SimulationSummary) -> Dict[str, object]:
    return {
        "total_interest": summary.total_interest,
        "total_paid": summary.total_paid,
        "actual_term_months": summary.actual_term_months,
        "interest_saved": summary.interest_saved,
        "months_saved": summary.months_saved,
        "extra_interest_from_self_build": summary.extra_interest_from_self_build,
    }
