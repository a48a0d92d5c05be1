from datetime import date

from mortgage_sim.aggregation import (
    aggregate_by_year,
    build_report,
    calculate_milestones,
    calculate_simulation_completeness,
    calculate_summary,
)
from mortgage_sim.data_models import MILESTONE_TYPES
from mortgage_sim.engine import simulate

from helpers import (
    make_catalog,
    make_fixed_rate,
    make_input,
    make_overpayment,
    make_period,
    make_rate,
    make_scenario,
    make_self_build,
)


def months_for(sim_input, overpayments=None, self_build=None, catalog=None):
    return simulate(
        sim_input, [make_period()], overpayments or [], catalog or make_catalog(), self_build
    ).months


def test_yearly_rollup_by_mortgage_year():
    months = months_for(make_input(amount=12_000_000, term=30))
    years = aggregate_by_year(months)
    assert [y.year for y in years] == [1, 2, 3]
    assert [len(y.months) for y in years] == [12, 12, 6]
    assert years[0].opening_balance == 12_000_000
    assert years[0].closing_balance == years[1].opening_balance
    assert years[-1].closing_balance == 0
    assert sum(y.total_interest for y in years) == months[-1].cumulative_interest
    assert years[1].rate_changes == ["p1"]


def test_yearly_rollup_by_calendar_year():
    months = months_for(make_input(amount=12_000_000, term=30, start_date=date(2025, 11, 1)))
    years = aggregate_by_year(months)
    assert [y.year for y in years] == [2025, 2026, 2027, 2028]
    assert [len(y.months) for y in years] == [2, 12, 12, 4]


def test_yearly_rollup_flags_warning_years():
    catalog = make_catalog(rates=[make_fixed_rate(), make_rate(id="var")])
    periods = [make_period("p1", rate_id="fixed-5", duration=60), make_period("p2", rate_id="var")]
    result = simulate(
        make_input(amount=5_000_000, term=300, property_value=10_000_000),
        periods,
        [make_overpayment(5_000_000, 14)],
        catalog,
    )
    years = aggregate_by_year(result.months, result.warnings)
    assert [y.has_warnings for y in years] == [False, True]
    assert aggregate_by_year([]) == []


def test_summary_against_baseline():
    sim_input = make_input(amount=20_000_000, term=300)
    baseline = months_for(sim_input)
    actual = months_for(sim_input, [make_overpayment(20_000, 1, type="recurring")])
    summary = calculate_summary(actual, baseline)
    assert summary.actual_term_months == len(actual)
    assert summary.months_saved == len(baseline) - len(actual)
    assert summary.months_saved > 0
    assert summary.interest_saved == baseline[-1].cumulative_interest - actual[-1].cumulative_interest
    assert summary.total_paid == actual[-1].cumulative_total
    assert summary.extra_interest_from_self_build is None


def test_summary_without_payoff_reports_no_months_saved():
    sim_input = make_input(amount=20_000_000, term=300)
    result = simulate(
        sim_input,
        [make_period(rate_id="fixed-5", duration=36)],
        [],
        make_catalog(rates=[make_fixed_rate()]),
    )
    summary = calculate_summary(result.months, result.months)
    assert summary.months_saved == 0
    assert summary.interest_saved == 0


def test_months_saved_counts_against_a_short_baseline():
    scenario = make_scenario(
        make_input(amount=4_000_000, term=300),
        periods=[make_period(rate_id="fixed-5", duration=36)],
        overpayments=[make_overpayment(5_000_000, 10)],
    )
    report = build_report(scenario, make_catalog(rates=[make_fixed_rate()]))
    assert len(report.baseline_months) == 36
    assert report.summary.actual_term_months == 10
    assert report.summary.months_saved == 26


def test_empty_summary():
    summary = calculate_summary([], [])
    assert summary.total_interest == 0
    assert summary.actual_term_months == 0


def test_completeness():
    sim_input = make_input(amount=20_000_000, term=300)
    complete = calculate_simulation_completeness(months_for(sim_input), 20_000_000, 300)
    assert complete.is_complete
    assert complete.missing_months == 0

    partial = simulate(
        sim_input,
        [make_period(rate_id="fixed-5", duration=36)],
        [],
        make_catalog(rates=[make_fixed_rate()]),
    )
    incomplete = calculate_simulation_completeness(partial.months, 20_000_000, 300)
    assert not incomplete.is_complete
    assert incomplete.covered_months == 36
    assert incomplete.missing_months == 264
    assert incomplete.remaining_balance == partial.months[-1].closing_balance

    empty = calculate_simulation_completeness([], 20_000_000, 300)
    assert empty.remaining_balance == 20_000_000
    assert empty.missing_months == 300


def test_milestones_for_standard_mortgage():
    sim_input = make_input(amount=36_000_000, term=300, property_value=40_000_000)
    months = months_for(sim_input)
    milestones = calculate_milestones(months, sim_input)
    types = [m.type for m in milestones]
    assert types[0] == "mortgage_start"
    assert milestones[0].value == 36_000_000
    assert types[-1] == "mortgage_complete"
    assert milestones[-1].month == 300
    assert milestones[-1].value == 0
    for kind in ("ltv_80_percent", "principal_25_percent", "principal_50_percent", "principal_75_percent"):
        assert kind in types
    ltv = next(m for m in milestones if m.type == "ltv_80_percent")
    assert ltv.value <= 32_000_000
    assert "construction_complete" not in types
    assert [m.month for m in milestones] == sorted(m.month for m in milestones)


def test_no_ltv_milestone_when_starting_below_80_percent():
    sim_input = make_input(amount=20_000_000, property_value=40_000_000)
    types = [m.type for m in calculate_milestones(months_for(sim_input), sim_input)]
    assert "ltv_80_percent" not in types


def test_same_month_milestones_keep_fixed_order():
    sim_input = make_input(amount=20_000_000, term=300)
    months = months_for(sim_input, [make_overpayment(99_000_000, 1)])
    types = [m.type for m in calculate_milestones(months, sim_input)]
    expected = [
        "mortgage_start",
        "principal_25_percent",
        "principal_50_percent",
        "principal_75_percent",
        "mortgage_complete",
    ]
    assert types == expected
    assert types == sorted(types, key=MILESTONE_TYPES.index)


def test_self_build_milestones():
    amount = 30_000_000
    sim_input = make_input(amount=amount, term=360, property_value=40_000_000)
    config = make_self_build(amount, interest_only_months=6)
    milestones = calculate_milestones(months_for(sim_input, self_build=config), sim_input, config)
    by_type = {m.type: m for m in milestones}
    assert by_type["mortgage_start"].value == 7_500_000
    assert by_type["construction_complete"].month == 8
    assert by_type["construction_complete"].value == amount
    assert by_type["full_payments_start"].month == 15
    assert by_type["principal_25_percent"].month > 14


def test_self_build_milestones_need_matching_drawdowns():
    amount = 30_000_000
    sim_input = make_input(amount=amount, term=360)
    config = make_self_build(amount, stages=((1, "0.25"), (4, "0.35")), interest_only_months=6)
    milestones = calculate_milestones(months_for(sim_input, self_build=config), sim_input, config)
    assert [m.type for m in milestones] == ["mortgage_start"]


def test_build_report_with_self_build_baseline():
    amount = 30_000_000
    scenario = make_scenario(
        make_input(amount=amount, term=360),
        self_build=make_self_build(amount, interest_only_months=6),
    )
    report = build_report(scenario, make_catalog())
    assert report.result.is_available
    assert report.baseline_months
    assert report.completeness.is_complete
    assert report.summary.extra_interest_from_self_build > 0
    assert report.yearly_schedule[0].opening_balance == 7_500_000


def test_build_report_for_unavailable_scenario():
    scenario = make_scenario(periods=[make_period(rate_id="missing")])
    report = build_report(scenario, make_catalog())
    assert not report.result.is_available
    assert report.milestones == []
    assert report.summary.actual_term_months == 0
