"""APRC (annual percentage rate of charge) calculations.

The APRC makes offers from different lenders comparable by folding the fees
and the rate the loan reverts to into one effective annual rate. It is the
rate at which the amount advanced (net of fees deducted at drawdown) equals
the present value of every repayment, following the EU consumer credit
convention:

    advanced = sum(repayment_t / (1 + i)^t)

Cash flows are whole cents; the solver works in ``Decimal``.
"""

from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, List, Optional

from .data_models import AprcConfig, AprcFees, AprcQuote, RateCatalog
from .rates import find_follow_on_rate, rate_label
from .utils import Number, annuity_payment, monthly_rate

logger = logging.getLogger(__name__)

DEFAULT_APRC_FEES = AprcFees()

NEWTON_TOLERANCE = Decimal("1e-10")  # cents
NEWTON_MAX_ITERATIONS = 200

FOLLOW_ON_LOW = Decimal("0.01")
FOLLOW_ON_HIGH = Decimal("15")
FOLLOW_ON_TOLERANCE = Decimal("0.001")
FOLLOW_ON_MAX_ITERATIONS = 100

TWO_PLACES = Decimal("0.01")


def _two_places(value: Decimal) -> Decimal:
    return value.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def remaining_balance(
    principal: Number, annual_rate: Decimal, total_months: int, paid_months: int
) -> Decimal:
    """Balance left after ``paid_months`` of an annuity over ``total_months``.

    Uses the closed form with the unrounded installment, so the result is not
    rounded to cents.
    """
    if paid_months >= total_months:
        return Decimal(0)
    principal = Decimal(principal)
    rate = monthly_rate(annual_rate)
    if rate == 0:
        return principal * (1 - Decimal(paid_months) / Decimal(total_months))
    payment = principal * rate / (1 - (1 + rate) ** -total_months)
    growth = (1 + rate) ** paid_months
    return principal * growth - payment * (growth - 1) / rate


def aprc_cash_flows(
    fixed_rate: Decimal,
    fixed_term_months: int,
    follow_on_rate: Decimal,
    config: AprcConfig,
) -> List[int]:
    """Cash flows of the loan in cents: the net advance (negative) first, then
    one installment per month with the release fee added to the last one.
    """
    total_months = config.term_months
    variable_months = total_months - fixed_term_months
    fixed_payment = annuity_payment(config.loan_amount, fixed_rate, total_months)

    flows = [-(config.loan_amount - config.valuation_fee)]
    if variable_months <= 0:
        flows.extend([fixed_payment] * total_months)
    else:
        balance = remaining_balance(config.loan_amount, fixed_rate, total_months, fixed_term_months)
        variable_payment = annuity_payment(balance, follow_on_rate, variable_months)
        flows.extend([fixed_payment] * fixed_term_months)
        flows.extend([variable_payment] * variable_months)
    flows[-1] += config.security_release_fee
    return flows


def _solve_monthly_rate(flows: List[int], guess: Decimal) -> Decimal:
    """Newton-Raphson for the monthly rate at which the flows' NPV is zero."""
    rate = guess
    for _ in range(NEWTON_MAX_ITERATIONS):
        npv = Decimal(0)
        derivative = Decimal(0)
        step = 1 / (1 + rate)
        discount = Decimal(1)
        for t, flow in enumerate(flows):
            npv += flow * discount
            if t:
                derivative -= t * flow * discount * step
            discount *= step
        if abs(npv) < NEWTON_TOLERANCE or abs(derivative) < NEWTON_TOLERANCE:
            break
        rate -= npv / derivative
    return rate


def calculate_aprc(
    fixed_rate: Decimal,
    fixed_term_months: int,
    follow_on_rate: Decimal,
    config: AprcConfig,
) -> Decimal:
    """APRC of a fixed rate that reverts to ``follow_on_rate``.

    Parameters
    ----------
    fixed_rate: Decimal
        Rate for the first ``fixed_term_months``, in percent. A fixed term
        covering the whole loan makes ``follow_on_rate`` irrelevant.
    fixed_term_months: int
        Length of the fixed period.
    follow_on_rate: Decimal
        Variable rate for the rest of the term, in percent.
    config: AprcConfig
        Loan amount, term and fees the figure is quoted for.

    Returns
    -------
    Decimal
        Effective annual rate in percent, rounded to two places.
    """
    if config.loan_amount <= 0 or config.term_months <= 0:
        raise ValueError("APRC needs a positive loan amount and term")
    flows = aprc_cash_flows(
        Decimal(fixed_rate), fixed_term_months, Decimal(follow_on_rate), config
    )
    rate = _solve_monthly_rate(flows, monthly_rate(Decimal(fixed_rate)))
    effective = (1 + rate) ** 12 - 1
    return _two_places(effective * 100)


def infer_follow_on_rate(
    fixed_rate: Decimal,
    fixed_term_months: int,
    observed_aprc: Decimal,
    config: AprcConfig,
) -> Decimal:
    """Variable rate implied by a published APRC, found by bisection.

    Lenders do not always publish the rate a fixed term reverts to, but the
    APRC they must publish pins it down.
    """
    observed_aprc = Decimal(observed_aprc)
    low, high = FOLLOW_ON_LOW, FOLLOW_ON_HIGH
    for _ in range(FOLLOW_ON_MAX_ITERATIONS):
        mid = (low + high) / 2
        aprc = calculate_aprc(fixed_rate, fixed_term_months, mid, config)
        if abs(aprc - observed_aprc) < FOLLOW_ON_TOLERANCE:
            return _two_places(mid)
        if aprc < observed_aprc:
            low = mid
        else:
            high = mid
    return _two_places((low + high) / 2)


def quote_aprcs(
    catalog: RateCatalog,
    loan_amount: int,
    term_months: int,
    ltv: Optional[Decimal] = None,
    ber: Optional[str] = None,
) -> List[AprcQuote]:
    """APRC for every fixed rate in the catalog, for the given loan.

    A published ``apr`` is reported as is, with the follow-on rate inferred
    from it when the catalog lists none. Otherwise the APRC is indicative:
    computed with the lender's follow-on variable rate (or the fixed rate
    itself when there is none) and the lender's APRC fees.
    """
    configs: Dict[str, AprcConfig] = {}
    quotes: List[AprcQuote] = []
    for rate in catalog.rates:
        if rate.type != "fixed" or not rate.fixed_term:
            continue
        if ltv is not None and not rate.min_ltv <= ltv <= rate.max_ltv:
            continue
        lender = catalog.find_lender(rate.lender_id)
        if rate.lender_id not in configs:
            fees = (lender.aprc_fees if lender else None) or DEFAULT_APRC_FEES
            configs[rate.lender_id] = AprcConfig(
                loan_amount=loan_amount,
                term_months=term_months,
                valuation_fee=fees.valuation_fee,
                security_release_fee=fees.security_release_fee,
            )
        config = configs[rate.lender_id]
        fixed_months = rate.fixed_term * 12
        follow_on = find_follow_on_rate(rate, catalog.rates, ltv, ber)
        label = rate_label(lender.name if lender else "Unknown", rate)

        if rate.apr is not None:
            inferred = follow_on is None
            follow_on_rate = (
                infer_follow_on_rate(rate.rate, fixed_months, rate.apr, config)
                if inferred
                else follow_on.rate
            )
            quotes.append(
                AprcQuote(
                    rate=rate,
                    label=label,
                    follow_on_rate=follow_on_rate,
                    aprc=rate.apr,
                    is_published=True,
                    follow_on_inferred=inferred,
                )
            )
            continue

        follow_on_rate = follow_on.rate if follow_on else rate.rate
        if follow_on is None:
            logger.debug("No follow-on rate for %s; assuming the fixed rate continues", rate.id)
        quotes.append(
            AprcQuote(
                rate=rate,
                label=label,
                follow_on_rate=follow_on_rate,
                aprc=calculate_aprc(rate.rate, fixed_months, follow_on_rate, config),
            )
        )
    return quotes
