"""Builders for test inputs with sensible defaults."""

from decimal import Decimal

from mortgage_sim.data_models import (
    DrawdownStage,
    Lender,
    MortgageRate,
    OverpaymentConfig,
    OverpaymentPolicy,
    RateCatalog,
    RatePeriod,
    Scenario,
    SelfBuildConfig,
    SimulationInput,
)


def make_input(amount=30_000_000, term=300, property_value=40_000_000, ber="B2", **kwargs):
    return SimulationInput(
        mortgage_amount=amount,
        mortgage_term_months=term,
        property_value=property_value,
        ber_rating=ber,
        **kwargs,
    )


def make_rate(rate="3.5", id="rate-1", lender_id="lender-1", type="variable", **kwargs):
    return MortgageRate(id=id, lender_id=lender_id, type=type, rate=Decimal(rate), **kwargs)


def make_fixed_rate(rate="3.5", years=5, id="fixed-5", **kwargs):
    return make_rate(rate=rate, id=id, type="fixed", fixed_term=years, **kwargs)


def make_lender(id="lender-1", name="Test Bank", **kwargs):
    return Lender(id=id, name=name, **kwargs)


def make_policy(id="ten-percent", value="10", **kwargs):
    kwargs.setdefault("label", "10% of balance")
    kwargs.setdefault("allowance_type", "percentage")
    return OverpaymentPolicy(id=id, allowance_value=Decimal(value), **kwargs)


def make_catalog(rates=None, lenders=None, policies=None, custom_rates=None):
    return RateCatalog(
        rates=rates if rates is not None else [make_rate()],
        custom_rates=custom_rates or [],
        lenders=lenders if lenders is not None else [make_lender()],
        policies=policies or [],
    )


def make_period(id="p1", rate_id="rate-1", duration=0, lender_id="lender-1", **kwargs):
    return RatePeriod(id=id, lender_id=lender_id, rate_id=rate_id, duration_months=duration, **kwargs)


def make_overpayment(amount, start_month, id="op-1", period_id="p1", type="one_time", **kwargs):
    return OverpaymentConfig(
        id=id,
        rate_period_id=period_id,
        type=type,
        amount=amount,
        start_month=start_month,
        **kwargs,
    )


def make_self_build(amount, stages=((1, "0.25"), (4, "0.35"), (8, "0.40")), **kwargs):
    """Stages are (month, share of amount) pairs."""
    drawdowns = [
        DrawdownStage(month=month, amount=int(Decimal(amount) * Decimal(share)))
        for month, share in stages
    ]
    return SelfBuildConfig(enabled=True, drawdown_stages=drawdowns, **kwargs)


def make_scenario(sim_input=None, periods=None, overpayments=None, self_build=None, name=""):
    return Scenario(
        input=sim_input or make_input(),
        rate_periods=periods if periods is not None else [make_period()],
        overpayment_configs=overpayments or [],
        self_build=self_build,
        name=name,
    )
