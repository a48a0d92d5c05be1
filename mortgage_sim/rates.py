"""Rate period resolution.

Rate periods are declared as an ordered stack: each period starts the month
after the previous one ends, and a period with ``duration_months == 0`` runs
until the end of the term. Resolving a period looks its rate up in the
catalog (or the user's custom rates), checks the lender will actually offer
it for this mortgage and attaches absolute start/end months.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import List, Optional

from .data_models import (
    BufferSuggestion,
    MonthlyBreakdown,
    MortgageRate,
    RateCatalog,
    RatePeriod,
    ResolvedRatePeriod,
    SimulationInput,
)

logger = logging.getLogger(__name__)

BTL_BUYER_TYPES = ("btl", "ssbtl")


def rate_label(lender_name: str, rate: MortgageRate) -> str:
    if rate.type == "fixed" and rate.fixed_term:
        return f"{lender_name} {rate.fixed_term}-Year Fixed @ {rate.rate}%"
    return f"{lender_name} Variable @ {rate.rate}%"


def is_rate_eligible(
    rate: MortgageRate,
    sim_input: SimulationInput,
    check_ltv: bool = True,
) -> bool:
    """Check the rate's LTV band, minimum loan, BER and buyer-type rules."""
    if check_ltv and sim_input.property_value > 0:
        ltv = sim_input.ltv
        if ltv < rate.min_ltv or ltv > rate.max_ltv:
            return False
    if rate.min_loan is not None and sim_input.mortgage_amount < rate.min_loan:
        return False
    if rate.ber_eligible is not None and sim_input.ber_rating not in rate.ber_eligible:
        return False
    if sim_input.buyer_type and rate.buyer_types and sim_input.buyer_type not in rate.buyer_types:
        return False
    return True


def resolve_rate_period(
    period: RatePeriod,
    start_month: int,
    sim_input: SimulationInput,
    catalog: RateCatalog,
    self_build_active: bool = False,
    is_first: bool = True,
) -> Optional[ResolvedRatePeriod]:
    """Resolve one period, or return None when it cannot be offered.

    Custom rates are trusted as entered. Catalog rates must exist for the
    period's lender and pass eligibility; the starting LTV is only checked for
    the first period since the balance will have moved by the time a later
    period begins.
    """
    lender = catalog.find_lender(period.lender_id)
    if period.is_custom:
        rate = catalog.find_custom_rate(period.rate_id)
        if rate is None:
            logger.debug("Custom rate %s not found", period.rate_id)
            return None
        lender_name = rate.custom_lender_name or (lender.name if lender else "Custom")
    else:
        rate = catalog.find_rate(period.rate_id, period.lender_id)
        if rate is None:
            logger.debug("Rate %s/%s not found", period.lender_id, period.rate_id)
            return None
        if not is_rate_eligible(rate, sim_input, check_ltv=is_first):
            logger.debug("Rate %s is not eligible for this mortgage", rate.id)
            return None
        lender_name = lender.name if lender else "Unknown"

    if self_build_active and lender is not None and not lender.allows_self_build:
        logger.debug("Lender %s does not offer self-build mortgages", lender.id)
        return None

    if period.duration_months == 0:
        end_month = sim_input.mortgage_term_months
    else:
        end_month = start_month + period.duration_months - 1

    policy_id = None
    if rate.type == "fixed" and lender is not None:
        policy_id = lender.overpayment_policy_id

    return ResolvedRatePeriod(
        id=period.id,
        lender_id=period.lender_id,
        lender_name=lender_name,
        rate_id=period.rate_id,
        rate_name=rate.name,
        rate=Decimal(rate.rate),
        rate_type=rate.type,
        start_month=start_month,
        end_month=end_month,
        duration_months=period.duration_months,
        label=period.label or rate_label(lender_name, rate),
        is_custom=period.is_custom,
        fixed_term_years=rate.fixed_term if rate.type == "fixed" else None,
        overpayment_policy_id=policy_id,
    )


def resolve_rate_periods(
    periods: List[RatePeriod],
    sim_input: SimulationInput,
    catalog: RateCatalog,
    self_build_active: bool = False,
    start_month: int = 1,
) -> Optional[List[ResolvedRatePeriod]]:
    """Resolve the whole stack in order.

    Returns None if any period fails to resolve, or if an open-ended period
    (``duration_months == 0``) is followed by another period.
    """
    resolved: List[ResolvedRatePeriod] = []
    current_start = start_month
    for index, period in enumerate(periods):
        if period.duration_months == 0 and index != len(periods) - 1:
            logger.debug("Open-ended period %s is not the last period", period.id)
            return None
        item = resolve_rate_period(
            period,
            current_start,
            sim_input,
            catalog,
            self_build_active=self_build_active,
            is_first=index == 0,
        )
        if item is None:
            return None
        resolved.append(item)
        current_start = item.end_month + 1
    return resolved


def find_rate_period_for_month(
    periods: List[ResolvedRatePeriod], month: int
) -> Optional[ResolvedRatePeriod]:
    for period in periods:
        if period.covers(month):
            return period
    return None


def _is_btl(rate: MortgageRate) -> bool:
    return any(bt in BTL_BUYER_TYPES for bt in rate.buyer_types)


def is_valid_follow_on_rate(
    fixed_rate: MortgageRate,
    variable_rate: MortgageRate,
    ltv: Optional[Decimal] = None,
) -> bool:
    """Whether ``variable_rate`` can follow ``fixed_rate`` when it expires.

    With an exact ``ltv`` the variable rate's band must contain it; without
    one the two LTV bands must overlap.
    """
    if variable_rate.type != "variable" or variable_rate.lender_id != fixed_rate.lender_id:
        return False
    if _is_btl(fixed_rate) != _is_btl(variable_rate):
        return False
    if ltv is not None:
        return variable_rate.min_ltv <= ltv <= variable_rate.max_ltv
    return not (
        fixed_rate.max_ltv <= variable_rate.min_ltv
        or fixed_rate.min_ltv >= variable_rate.max_ltv
    )


def find_follow_on_rate(
    fixed_rate: MortgageRate,
    rates: List[MortgageRate],
    ltv: Optional[Decimal] = None,
    ber: Optional[str] = None,
) -> Optional[MortgageRate]:
    """Find the variable rate a fixed rate rolls onto, preferring existing-customer rates."""
    matches = [
        r
        for r in rates
        if is_valid_follow_on_rate(fixed_rate, r, ltv)
        and (ber is None or r.ber_eligible is None or ber in r.ber_eligible)
    ]
    if not matches:
        return None
    for rate in matches:
        if rate.new_business is False:
            return rate
    return matches[0]


def _balance_at_month(months: List[MonthlyBreakdown], month: int, default: int) -> int:
    for entry in months:
        if entry.month == month:
            return entry.closing_balance
    return default


def calculate_buffer_suggestions(
    sim_input: SimulationInput,
    periods: List[RatePeriod],
    resolved: List[ResolvedRatePeriod],
    catalog: RateCatalog,
    months: List[MonthlyBreakdown],
) -> List[BufferSuggestion]:
    """Suggest the natural follow-on variable rate after fixed periods.

    A suggestion is made when a fixed period is followed by anything other
    than the lender's follow-on variable rate, and when the last period is a
    fixed period that does not run to the end of the term.
    """
    suggestions: List[BufferSuggestion] = []
    if not resolved or sim_input.property_value <= 0:
        return suggestions

    def lookup(period: ResolvedRatePeriod) -> Optional[MortgageRate]:
        if period.is_custom:
            return catalog.find_custom_rate(period.rate_id)
        return catalog.find_rate(period.rate_id, period.lender_id)

    def ltv_after(period: ResolvedRatePeriod) -> Decimal:
        balance = _balance_at_month(months, period.end_month, sim_input.mortgage_amount)
        return Decimal(balance) * 100 / Decimal(sim_input.property_value)

    for index, current in enumerate(resolved[:-1]):
        if not current.is_fixed:
            continue
        fixed_rate = lookup(current)
        if fixed_rate is None:
            continue
        ltv_at_end = ltv_after(current)
        follow_on = find_follow_on_rate(fixed_rate, catalog.rates, ltv_at_end, sim_input.ber_rating)
        if follow_on is None:
            continue
        following = resolved[index + 1]
        if (
            following.rate_id == follow_on.id
            and following.lender_id == follow_on.lender_id
            and not following.is_custom
        ):
            continue
        suggestions.append(
            BufferSuggestion(
                after_index=index,
                fixed_rate=fixed_rate,
                suggested_rate=follow_on,
                ltv_at_end=ltv_at_end,
                lender_name=current.lender_name,
            )
        )

    last = resolved[-1]
    if last.is_fixed and periods and periods[-1].duration_months > 0:
        fixed_rate = lookup(last)
        if fixed_rate is not None:
            ltv_at_end = ltv_after(last)
            follow_on = find_follow_on_rate(
                fixed_rate, catalog.rates, ltv_at_end, sim_input.ber_rating
            )
            if follow_on is not None:
                suggestions.append(
                    BufferSuggestion(
                        after_index=len(resolved) - 1,
                        fixed_rate=fixed_rate,
                        suggested_rate=follow_on,
                        ltv_at_end=ltv_at_end,
                        lender_name=last.lender_name,
                        is_trailing=True,
                    )
                )
    return suggestions
