"""Command-line interface for the mortgage simulator.

This module uses the ``click`` library to implement a multi-command
interface. Users can simulate a scenario file against a rate catalog, view
its summary, compare several scenarios, quote APRCs for a catalog or plan the
largest penalty-free overpayments for a fixed rate period. Results can be
printed to the terminal or exported to JSON/CSV files.
"""

from __future__ import annotations

import csv
import json
import logging
from decimal import Decimal
from pathlib import Path
from typing import List, Optional, Tuple

import click

from .aggregation import build_report
from .aprc import quote_aprcs
from .comparison import compare_summary_metrics, summarize_scenarios
from .data_models import (
    MonthlyBreakdown,
    OverpaymentConfig,
    RateCatalog,
    Scenario,
    SimulationReport,
)
from .formatter import (
    print_aprc_quotes,
    print_comparison,
    print_milestones,
    print_overpayment_plans,
    print_schedule,
    print_summary,
    print_warnings,
    print_yearly,
    summary_to_dict,
)
from .loader import load_catalog, load_scenario
from .overpayments import calculate_yearly_overpayment_plans, format_policy_description
from .rates import resolve_rate_periods
from .result_cache import ResultCache
from .self_build import construction_end_month, is_self_build_active
from .utils import parse_amount

MAX_ROWS = 120


def load_inputs(scenario_path: str, catalog_path: str) -> Tuple[Scenario, RateCatalog]:
    try:
        return load_scenario(scenario_path), load_catalog(catalog_path)
    except ValueError as exc:
        raise click.ClickException(str(exc))


def parse_monthly_overpayment(value: str, scenario: Scenario) -> OverpaymentConfig:
    """Parse ``AMOUNT:EFFECT`` into a monthly overpayment for the whole term.

    ``EFFECT`` is ``term`` or ``payment``. The overpayment is linked to the
    first rate period of the scenario.
    """
    parts = value.split(":")
    if len(parts) != 2:
        raise click.BadParameter(
            "Monthly overpayment must be in AMOUNT:EFFECT format, e.g., '500:term'"
        )
    amount_str, effect = parts
    try:
        amount = parse_amount(amount_str)
    except ValueError as exc:
        raise click.BadParameter(str(exc))
    effects = {"term": "reduce_term", "payment": "reduce_payment"}
    if effect.lower() not in effects:
        raise click.BadParameter("Monthly overpayment effect must be 'term' or 'payment'")
    if not scenario.rate_periods:
        raise click.BadParameter("Scenario has no rate periods to attach the overpayment to")
    return OverpaymentConfig(
        id="cli-monthly",
        rate_period_id=scenario.rate_periods[0].id,
        type="recurring",
        amount=amount,
        start_month=1,
        effect=effects[effect.lower()],
        frequency="monthly",
        label="Monthly (command line)",
    )


def run_report(scenario: Scenario, catalog: RateCatalog) -> SimulationReport:
    report = build_report(scenario, catalog)
    if not report.result.is_available:
        raise click.ClickException(
            "Rate periods could not be resolved against the catalog "
            "(unknown rate, or the lender does not offer it for this mortgage)"
        )
    return report


def _month_to_dict(entry: MonthlyBreakdown) -> dict:
    return {
        "month": entry.month,
        "date": entry.date.isoformat() if entry.date else None,
        "rate": str(entry.rate),
        "rate_period_id": entry.rate_period_id,
        "opening_balance": entry.opening_balance,
        "drawdown": entry.drawdown_this_month,
        "phase": entry.phase,
        "scheduled_payment": entry.scheduled_payment,
        "interest": entry.interest_portion,
        "principal": entry.principal_portion,
        "overpayment": entry.overpayment,
        "total_payment": entry.total_payment,
        "closing_balance": entry.closing_balance,
    }


def export_to_json(path: Path, report: SimulationReport) -> None:
    """Export summary, milestones, warnings and schedule to a JSON file."""
    data = {
        "summary": summary_to_dict(report.summary),
        "milestones": [
            {"type": m.type, "month": m.month, "label": m.label, "value": m.value}
            for m in report.milestones
        ],
        "warnings": [
            {"type": w.type, "month": w.month, "severity": w.severity, "message": w.message}
            for w in report.result.warnings
        ],
        "schedule": [_month_to_dict(e) for e in report.result.months],
    }
    with path.open("w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)


def export_to_csv(path: Path, months: List[MonthlyBreakdown]) -> None:
    """Export the monthly schedule to a CSV file; amounts are cents."""
    header = [
        "Month",
        "Date",
        "Rate",
        "Rate_Period",
        "Opening_Balance",
        "Drawdown",
        "Phase",
        "Payment",
        "Interest",
        "Principal",
        "Overpayment",
        "Closing_Balance",
    ]
    with path.open("w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(header)
        for e in months:
            writer.writerow(
                [
                    e.month,
                    e.date.isoformat() if e.date else "",
                    e.rate,
                    e.rate_period_id,
                    e.opening_balance,
                    e.drawdown_this_month,
                    e.phase,
                    e.scheduled_payment,
                    e.interest_portion,
                    e.principal_portion,
                    e.overpayment,
                    e.closing_balance,
                ]
            )


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Log engine decisions to stderr")
def cli(verbose: bool) -> None:
    """A command-line mortgage simulator for rate stacks, overpayments and self-build."""
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(name)s: %(message)s")


@cli.command()
@click.argument("scenario_path", metavar="SCENARIO", type=click.Path(exists=True, dir_okay=False))
@click.option("--catalog", "-c", "catalog_path", required=True, type=click.Path(exists=True, dir_okay=False), help="Rate catalog JSON")
@click.option("--yearly", is_flag=True, help="Show the yearly schedule instead of monthly rows")
@click.option(
    "--monthly-overpayment",
    "monthly_overpayment",
    help="Add the same overpayment every month in AMOUNT:EFFECT format. Example: --monthly-overpayment 500:term",
)
@click.option("--output", "output", type=str, help="Output file path (.json or .csv)")
def simulate(
    scenario_path: str,
    catalog_path: str,
    yearly: bool,
    monthly_overpayment: Optional[str],
    output: Optional[str],
) -> None:
    """Simulate a scenario and print the schedule."""
    scenario, catalog = load_inputs(scenario_path, catalog_path)
    if monthly_overpayment:
        scenario.overpayment_configs.append(parse_monthly_overpayment(monthly_overpayment, scenario))
    report = run_report(scenario, catalog)
    months = report.result.months
    if output:
        path = Path(output)
        if path.suffix.lower() == ".json":
            export_to_json(path, report)
            click.echo(f"Schedule exported to {path}")
        elif path.suffix.lower() == ".csv":
            export_to_csv(path, months)
            click.echo(f"Schedule exported to {path}")
        else:
            raise click.BadParameter("Unsupported output format; use .json or .csv")
        return

    print_summary(report.summary, report.completeness)
    print_milestones(report.milestones)
    print_warnings(report.result.warnings)
    if yearly:
        print_yearly(report.yearly_schedule)
        return
    show_drawdown = is_self_build_active(scenario.self_build)
    # Limit schedule length printed to avoid flooding the terminal
    if len(months) > MAX_ROWS:
        click.echo(f"Schedule has {len(months)} rows; showing first {MAX_ROWS} rows.")
        print_schedule(months[:MAX_ROWS], show_drawdown=show_drawdown)
    else:
        print_schedule(months, show_drawdown=show_drawdown)


@cli.command()
@click.argument("scenario_path", metavar="SCENARIO", type=click.Path(exists=True, dir_okay=False))
@click.option("--catalog", "-c", "catalog_path", required=True, type=click.Path(exists=True, dir_okay=False), help="Rate catalog JSON")
@click.option("--output", "output", type=str, help="Output file path (.json)")
def summary(scenario_path: str, catalog_path: str, output: Optional[str]) -> None:
    """Compute and print only the summary metrics for a scenario."""
    scenario, catalog = load_inputs(scenario_path, catalog_path)
    report = run_report(scenario, catalog)
    if output:
        path = Path(output)
        if path.suffix.lower() != ".json":
            raise click.BadParameter("Summary export must use .json extension")
        with path.open("w", encoding="utf-8") as f:
            json.dump({"summary": summary_to_dict(report.summary)}, f, indent=2)
        click.echo(f"Summary exported to {path}")
    else:
        print_summary(report.summary, report.completeness)


@cli.command()
@click.argument("scenario_paths", metavar="SCENARIO...", nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False))
@click.option("--catalog", "-c", "catalog_path", required=True, type=click.Path(exists=True, dir_okay=False), help="Rate catalog JSON")
@click.option(
    "--cache-url",
    "cache_url",
    envvar="MORTGAGE_SIM_CACHE_URL",
    help="SQLAlchemy URL of a result cache, e.g. sqlite:///cache.sqlite3",
)
def compare(scenario_paths: Tuple[str, ...], catalog_path: str, cache_url: Optional[str]) -> None:
    """Compare scenarios side by side.

    Example:

        mortgage-sim compare fixed.json tracker.json --catalog rates.json
    """
    if len(scenario_paths) < 2:
        raise click.BadParameter("Provide at least two scenarios to compare")
    try:
        catalog = load_catalog(catalog_path)
        scenarios = [load_scenario(p) for p in scenario_paths]
    except ValueError as exc:
        raise click.ClickException(str(exc))
    cache = ResultCache(cache_url) if cache_url else None
    summaries = summarize_scenarios(scenarios, catalog, cache=cache)
    print_comparison(compare_summary_metrics(summaries))


@cli.command("plan-overpayments")
@click.argument("scenario_path", metavar="SCENARIO", type=click.Path(exists=True, dir_okay=False))
@click.option("--catalog", "-c", "catalog_path", required=True, type=click.Path(exists=True, dir_okay=False), help="Rate catalog JSON")
@click.option("--period", "period_id", required=True, help="Id of the fixed rate period to plan for")
def plan_overpayments(scenario_path: str, catalog_path: str, period_id: str) -> None:
    """Show the largest penalty-free monthly overpayments for a fixed period."""
    scenario, catalog = load_inputs(scenario_path, catalog_path)
    self_build_on = is_self_build_active(scenario.self_build)
    resolved = resolve_rate_periods(
        scenario.rate_periods, scenario.input, catalog, self_build_active=self_build_on
    )
    if resolved is None:
        raise click.ClickException("Rate periods could not be resolved against the catalog")
    period = next((p for p in resolved if p.id == period_id), None)
    if period is None:
        raise click.BadParameter(f"No rate period with id {period_id}")
    policy = catalog.find_policy(period.overpayment_policy_id)
    if not period.is_fixed or policy is None:
        raise click.ClickException(f"Period {period_id} has no overpayment allowance to plan against")
    plans = calculate_yearly_overpayment_plans(
        policy,
        period,
        scenario.input.mortgage_amount,
        scenario.input.mortgage_term_months,
        start_date=scenario.input.start_date,
        construction_end_month=construction_end_month(scenario.self_build) if self_build_on else None,
    )
    print_overpayment_plans(plans, format_policy_description(policy))


@cli.command()
@click.option("--catalog", "-c", "catalog_path", required=True, type=click.Path(exists=True, dir_okay=False), help="Rate catalog JSON")
@click.option("--amount", required=True, help="Loan amount in euros; supports k/m suffixes, e.g. 250k")
@click.option("--term", "term_months", type=int, default=240, show_default=True, help="Term in months")
@click.option("--property-value", "property_value", help="Property value in euros; limits rates to the loan's LTV")
@click.option("--ber", help="BER rating used to pick follow-on rates")
def aprc(
    catalog_path: str,
    amount: str,
    term_months: int,
    property_value: Optional[str],
    ber: Optional[str],
) -> None:
    """Show the APRC of every fixed rate in the catalog for a loan."""
    try:
        catalog = load_catalog(catalog_path)
        loan_amount = parse_amount(amount)
        value = parse_amount(property_value) if property_value else None
    except ValueError as exc:
        raise click.ClickException(str(exc))
    if loan_amount <= 0 or term_months <= 0:
        raise click.BadParameter("Loan amount and term must be positive")
    ltv = Decimal(loan_amount) * 100 / Decimal(value) if value else None
    print_aprc_quotes(quote_aprcs(catalog, loan_amount, term_months, ltv=ltv, ber=ber))


if __name__ == "__main__":
    cli()
