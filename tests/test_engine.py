from datetime import date

from mortgage_sim.data_models import SelfBuildConfig, DrawdownStage
from mortgage_sim.engine import simulate

from helpers import (
    make_catalog,
    make_fixed_rate,
    make_input,
    make_lender,
    make_overpayment,
    make_period,
    make_policy,
    make_rate,
    make_self_build,
)


def run(sim_input=None, periods=None, overpayments=None, catalog=None, self_build=None):
    return simulate(
        sim_input or make_input(),
        periods if periods is not None else [make_period()],
        overpayments or [],
        catalog or make_catalog(),
        self_build,
    )


def fixed_then_variable_catalog(policies=None, policy_id=None):
    return make_catalog(
        rates=[make_fixed_rate("3.5", years=5), make_rate("4.5", id="var")],
        lenders=[make_lender(overpayment_policy_id=policy_id)],
        policies=policies,
    )


FIXED_THEN_VARIABLE = [
    make_period("p1", rate_id="fixed-5", duration=60),
    make_period("p2", rate_id="var"),
]


def test_zero_rate_splits_principal_evenly():
    catalog = make_catalog(rates=[make_rate("0")])
    result = run(make_input(amount=12_000_000, term=120), catalog=catalog)
    assert len(result.months) == 120
    assert result.months[0].scheduled_payment == 100_000
    assert all(m.interest_portion == 0 for m in result.months)
    assert result.months[-1].closing_balance == 0


def test_fifteen_percent_payment_and_exact_payoff():
    catalog = make_catalog(rates=[make_rate("15")])
    result = run(make_input(amount=20_000_000, term=300), catalog=catalog)
    assert abs(result.months[0].scheduled_payment - 256_166) <= 1
    assert len(result.months) == 300
    assert result.months[-1].closing_balance == 0
    assert result.months[-1].cumulative_principal == 20_000_000


def test_month_components_and_balance_chain():
    overpayments = [
        make_overpayment(25_000, 3, id="monthly", type="recurring", end_month=40),
        make_overpayment(500_000, 24, id="lump", effect="reduce_payment"),
    ]
    result = run(
        make_input(amount=25_000_000, term=240),
        periods=FIXED_THEN_VARIABLE,
        overpayments=overpayments,
        catalog=fixed_then_variable_catalog(),
    )
    months = result.months
    for entry in months:
        assert entry.total_payment == entry.interest_portion + entry.principal_portion + entry.overpayment
        assert entry.closing_balance == (
            entry.opening_balance + entry.drawdown_this_month - entry.principal_portion - entry.overpayment
        )
        assert entry.closing_balance >= 0
    for previous, current in zip(months, months[1:]):
        assert previous.closing_balance == current.opening_balance
    assert months[-1].closing_balance == 0
    assert months[-1].cumulative_principal == 25_000_000


def test_degenerate_inputs_give_empty_schedule():
    assert run(make_input(amount=0)).months == []
    assert run(make_input(term=0)).months == []
    empty = run(periods=[])
    assert empty.months == []
    assert empty.is_available


def test_unknown_rate_makes_simulation_unavailable():
    result = run(periods=[make_period(rate_id="missing")])
    assert result.resolved_periods is None
    assert not result.is_available
    assert result.months == []


def test_final_month_keeps_the_annuity_as_scheduled_payment():
    catalog = make_catalog(rates=[make_rate("3.7")])
    months = run(make_input(amount=10_000_033, term=37), catalog=catalog).months
    final = months[-1]
    assert final.scheduled_payment == months[0].scheduled_payment
    assert final.principal_portion == final.opening_balance
    assert final.total_payment == final.interest_portion + final.principal_portion
    assert final.closing_balance == 0


def test_rate_change_recalculates_payment():
    result = run(
        make_input(amount=20_000_000, term=300),
        periods=FIXED_THEN_VARIABLE,
        catalog=fixed_then_variable_catalog(),
    )
    months = result.months
    assert months[59].rate_period_id == "p1"
    assert months[60].rate_period_id == "p2"
    assert str(months[60].rate) == "4.5"
    assert months[60].scheduled_payment > months[59].scheduled_payment
    assert months[-1].closing_balance == 0


def test_reduce_term_overpayments_shorten_the_mortgage():
    baseline = run(make_input(amount=20_000_000, term=300))
    overpaid = run(
        make_input(amount=20_000_000, term=300),
        overpayments=[make_overpayment(50_000, 1, type="recurring")],
    )
    assert len(overpaid.months) < len(baseline.months)
    # the scheduled payment is unchanged by reduce_term overpayments
    assert overpaid.months[10].scheduled_payment == baseline.months[10].scheduled_payment
    assert overpaid.months[-1].closing_balance == 0


def test_reduce_payment_lowers_following_payments():
    result = run(
        make_input(amount=20_000_000, term=300),
        overpayments=[make_overpayment(2_000_000, 12, effect="reduce_payment")],
    )
    months = result.months
    assert months[12].scheduled_payment < months[10].scheduled_payment
    assert len(months) == 300
    assert months[-1].closing_balance == 0


def test_stacked_overpayments_in_the_same_month():
    result = run(
        overpayments=[
            make_overpayment(100_000, 5, id="a"),
            make_overpayment(50_000, 5, id="b", type="recurring", frequency="quarterly"),
        ]
    )
    assert result.months[4].overpayment == 150_000
    assert result.months[7].overpayment == 50_000
    assert result.months[5].overpayment == 0


def test_overpayment_is_capped_at_remaining_balance():
    result = run(overpayments=[make_overpayment(99_000_000, 1)])
    first = result.months[0]
    assert len(result.months) == 1
    assert first.closing_balance == 0
    assert first.overpayment == first.opening_balance - first.principal_portion
    assert result.applied_overpayments[0].amount == first.overpayment


def test_disabled_overpayments_are_ignored():
    result = run(overpayments=[make_overpayment(1_000_000, 2, enabled=False)])
    assert result.months[1].overpayment == 0
    assert result.applied_overpayments == []


def test_early_redemption_inside_fixed_period():
    result = run(
        make_input(amount=5_000_000, term=300, property_value=10_000_000),
        periods=FIXED_THEN_VARIABLE,
        overpayments=[make_overpayment(5_000_000, 12)],
        catalog=fixed_then_variable_catalog(),
    )
    assert len(result.months) == 12
    assert result.months[-1].closing_balance == 0
    redemptions = [w for w in result.warnings if w.type == "early_redemption"]
    assert len(redemptions) == 1
    assert redemptions[0].month == 12
    assert redemptions[0].severity == "error"
    assert "48 months" in redemptions[0].message


def test_no_early_redemption_on_variable_rate():
    result = run(overpayments=[make_overpayment(99_000_000, 12)])
    assert not [w for w in result.warnings if w.type == "early_redemption"]


def test_overpayment_above_allowance_warns():
    catalog = fixed_then_variable_catalog(policies=[make_policy()], policy_id="ten-percent")
    result = run(
        make_input(amount=20_000_000, term=300),
        periods=FIXED_THEN_VARIABLE,
        overpayments=[make_overpayment(3_000_000, 1)],
        catalog=catalog,
    )
    applied = result.applied_overpayments[0]
    assert not applied.within_allowance
    assert applied.excess_amount == 1_000_000
    warning = [w for w in result.warnings if w.type == "overpayment_exceeds_allowance"][0]
    assert warning.month == 1
    assert warning.config_id == "op-1"
    assert "€10,000.00" in warning.message
    # the overpayment is still made in full
    assert result.months[0].overpayment == 3_000_000


def test_allowance_is_used_up_across_the_year():
    catalog = fixed_then_variable_catalog(policies=[make_policy()], policy_id="ten-percent")
    result = run(
        make_input(amount=20_000_000, term=300),
        periods=FIXED_THEN_VARIABLE,
        overpayments=[
            make_overpayment(1_500_000, 2, id="first"),
            make_overpayment(1_000_000, 6, id="second"),
        ],
        catalog=catalog,
    )
    first, second = result.applied_overpayments
    assert first.within_allowance
    assert not second.within_allowance
    assert second.excess_amount == 500_000


def test_allowance_not_checked_outside_fixed_periods():
    catalog = fixed_then_variable_catalog(policies=[make_policy()], policy_id="ten-percent")
    result = run(
        make_input(amount=20_000_000, term=300),
        periods=FIXED_THEN_VARIABLE,
        overpayments=[make_overpayment(5_000_000, 70)],
        catalog=catalog,
    )
    assert result.applied_overpayments[0].within_allowance
    assert not [w for w in result.warnings if w.type == "overpayment_exceeds_allowance"]


def test_transaction_limit_exceeded():
    policy = make_policy(max_transactions=2, max_transactions_period="year")
    catalog = fixed_then_variable_catalog(policies=[policy], policy_id="ten-percent")
    result = run(
        make_input(amount=20_000_000, term=300),
        periods=FIXED_THEN_VARIABLE,
        overpayments=[make_overpayment(10_000, 1, type="recurring", end_month=3)],
        catalog=catalog,
    )
    limits = [w for w in result.warnings if w.type == "transaction_limit_exceeded"]
    assert [w.month for w in limits] == [3]
    assert "2 overpayments per year" in limits[0].message


def test_dates_follow_start_date():
    result = run(make_input(start_date=date(2025, 11, 1)))
    assert result.months[0].date == date(2025, 11, 1)
    assert result.months[2].date == date(2026, 1, 1)
    assert result.months[2].year == 1
    assert result.months[12].month_of_year == 1


def test_self_build_staged_drawdowns():
    amount = 30_000_000
    result = run(
        make_input(amount=amount, term=360),
        self_build=make_self_build(amount),
    )
    months = result.months
    assert months[0].opening_balance == 7_500_000
    assert months[0].drawdown_this_month == 0
    assert months[3].drawdown_this_month == 10_500_000
    assert months[3].cumulative_drawn == 18_000_000
    assert months[7].cumulative_drawn == amount
    for entry in months[:8]:
        assert entry.phase == "construction"
        assert entry.is_interest_only
        assert entry.principal_portion == 0
        assert entry.scheduled_payment == entry.interest_portion
    assert months[8].phase == "repayment"
    assert months[8].principal_portion > 0
    assert months[-1].closing_balance == 0
    assert months[-1].cumulative_principal == amount


def test_self_build_interest_only_months_after_construction():
    amount = 30_000_000
    config = make_self_build(amount, interest_only_months=6)
    months = run(make_input(amount=amount, term=360), self_build=config).months
    assert [m.phase for m in months[8:14]] == ["interest_only"] * 6
    assert all(m.principal_portion == 0 for m in months[8:14])
    assert months[14].phase == "repayment"
    assert months[14].principal_portion > 0
    assert len(months) == 360


def test_self_build_interest_and_capital_repays_during_construction():
    amount = 30_000_000
    config = make_self_build(amount, construction_repayment_type="interest_and_capital")
    months = run(make_input(amount=amount, term=360), self_build=config).months
    assert months[0].phase == "construction"
    assert not months[0].is_interest_only
    assert months[0].principal_portion > 0
    # the payment grows with each drawdown
    assert months[3].scheduled_payment > months[2].scheduled_payment


def test_single_full_drawdown_starts_with_full_balance():
    amount = 25_000_000
    config = SelfBuildConfig(
        enabled=True, drawdown_stages=[DrawdownStage(month=1, amount=amount)]
    )
    months = run(make_input(amount=amount, term=300), self_build=config).months
    assert months[0].opening_balance == amount
    assert months[1].drawdown_this_month == 0
    assert months[-1].closing_balance == 0


def test_disabled_self_build_is_a_normal_mortgage():
    config = make_self_build(30_000_000)
    config.enabled = False
    months = run(make_input(amount=30_000_000), self_build=config).months
    assert months[0].opening_balance == 30_000_000
    assert months[0].phase == "repayment"


def test_lender_without_self_build_is_unavailable():
    catalog = make_catalog(lenders=[make_lender(allows_self_build=False)])
    result = run(make_input(amount=30_000_000), catalog=catalog, self_build=make_self_build(30_000_000))
    assert result.resolved_periods is None


def test_uncovered_months_end_the_schedule():
    result = run(
        make_input(amount=20_000_000, term=300),
        periods=[make_period("p1", rate_id="fixed-5", duration=36)],
        catalog=make_catalog(rates=[make_fixed_rate()]),
    )
    assert len(result.months) == 36
    assert result.months[-1].closing_balance > 0
