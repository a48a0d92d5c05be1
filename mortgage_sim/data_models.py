"""Data models for the mortgage simulator.

This module defines dataclasses representing the entities used by the
simulator: the user inputs (simulation input, rate periods, overpayments and
self-build drawdowns), the lender catalog the inputs refer to, and the
computed schedule, warnings, milestones and summaries. All monetary values are
integer cents and all rates are ``Decimal`` percentages (``Decimal("3.5")``
means 3.5 % per year). Months are 1-indexed relative to the mortgage start.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import List, Optional


RATE_TYPES = ("fixed", "variable")
OVERPAYMENT_TYPES = ("one_time", "recurring")
OVERPAYMENT_FREQUENCIES = ("monthly", "quarterly", "yearly")
OVERPAYMENT_EFFECTS = ("reduce_term", "reduce_payment")
CONSTRUCTION_REPAYMENT_TYPES = ("interest_only", "interest_and_capital")
SELF_BUILD_PHASES = ("construction", "interest_only", "repayment")
ALLOWANCE_TYPES = ("percentage", "flat")
ALLOWANCE_BASES = ("balance", "original", "monthly")
BASIS_PERIODS = ("annual", "fixed_period")
TRANSACTION_PERIODS = ("month", "quarter", "year", "fixed_period")
WARNING_TYPES = (
    "early_redemption",
    "overpayment_exceeds_allowance",
    "transaction_limit_exceeded",
)
MILESTONE_TYPES = (
    "mortgage_start",
    "ltv_80_percent",
    "construction_complete",
    "full_payments_start",
    "principal_25_percent",
    "principal_50_percent",
    "principal_75_percent",
    "mortgage_complete",
)


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


@dataclass
class MortgageRate:
    """A rate offered by a lender (or entered by the user as a custom rate).

    Attributes
    ----------
    rate: Decimal
        Annual rate in percent.
    fixed_term: Optional[int]
        Length of the fixed term in years, fixed rates only.
    min_ltv, max_ltv: Decimal
        Loan-to-value band (in percent) the rate is offered for.
    buyer_types: List[str]
        Buyer types the rate is offered to (``"ftb"``, ``"mover"``,
        ``"btl"`` ...). An empty list accepts every buyer.
    ber_eligible: Optional[List[str]]
        BER ratings that qualify; ``None`` means every rating qualifies.
    new_business: Optional[bool]
        ``True`` = new customers only, ``False`` = existing customers only,
        ``None`` = both.
    custom_lender_name: Optional[str]
        Display name for user-entered rates.
    apr: Optional[Decimal]
        APRC published by the lender, in percent, when known.
    """

    id: str
    lender_id: str
    type: str  # "fixed" or "variable"
    rate: Decimal
    name: str = ""
    fixed_term: Optional[int] = None
    min_ltv: Decimal = Decimal("0")
    max_ltv: Decimal = Decimal("100")
    min_loan: Optional[int] = None
    buyer_types: List[str] = field(default_factory=list)
    ber_eligible: Optional[List[str]] = None
    new_business: Optional[bool] = None
    custom_lender_name: Optional[str] = None
    apr: Optional[Decimal] = None


@dataclass
class AprcFees:
    """Fees a lender includes in its APRC figures, in cents."""

    valuation_fee: int = 15_000
    security_release_fee: int = 5_000


@dataclass
class Lender:
    id: str
    name: str
    allows_self_build: bool = True
    overpayment_policy_id: Optional[str] = None
    aprc_fees: Optional[AprcFees] = None


@dataclass
class OverpaymentPolicy:
    """A lender rule capping penalty-free overpayments on fixed rates.

    ``allowance_value`` is a percentage for ``"percentage"`` policies and an
    amount in cents for ``"flat"`` policies. ``min_amount`` (cents) is a floor
    for monthly-payment based allowances.
    """

    id: str
    label: str
    allowance_type: str  # "percentage" or "flat"
    allowance_value: Decimal
    allowance_basis: str = "balance"  # "balance", "original" or "monthly"
    basis_period: str = "annual"  # "annual" or "fixed_period"
    min_amount: Optional[int] = None
    max_transactions: Optional[int] = None
    max_transactions_period: Optional[str] = None


@dataclass
class RateCatalog:
    """Lookup tables supplied by the caller; the simulator never fetches them."""

    rates: List[MortgageRate] = field(default_factory=list)
    custom_rates: List[MortgageRate] = field(default_factory=list)
    lenders: List[Lender] = field(default_factory=list)
    policies: List[OverpaymentPolicy] = field(default_factory=list)

    def find_rate(self, rate_id: str, lender_id: str) -> Optional[MortgageRate]:
        for rate in self.rates:
            if rate.id == rate_id and rate.lender_id == lender_id:
                return rate
        return None

    def find_custom_rate(self, rate_id: str) -> Optional[MortgageRate]:
        for rate in self.custom_rates:
            if rate.id == rate_id:
                return rate
        return None

    def find_lender(self, lender_id: str) -> Optional[Lender]:
        for lender in self.lenders:
            if lender.id == lender_id:
                return lender
        return None

    def find_policy(self, policy_id: Optional[str]) -> Optional[OverpaymentPolicy]:
        if policy_id is None:
            return None
        for policy in self.policies:
            if policy.id == policy_id:
                return policy
        return None


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------


@dataclass
class SimulationInput:
    """Amounts, term and property details of the mortgage being simulated.

    ``start_date`` only affects the dates attached to months and the calendar
    alignment of allowance years; it never changes the numeric schedule.
    """

    mortgage_amount: int
    mortgage_term_months: int
    property_value: int
    ber_rating: str
    start_date: Optional[date] = None
    buyer_type: Optional[str] = None

    @property
    def ltv(self) -> Decimal:
        """Starting loan-to-value in percent."""
        if self.property_value <= 0:
            return Decimal("0")
        return Decimal(self.mortgage_amount) * 100 / Decimal(self.property_value)


@dataclass
class RatePeriod:
    """A user-declared rate period; periods follow each other in list order.

    ``duration_months`` of 0 means "until the end of the term" and is only
    valid for the last period.
    """

    id: str
    lender_id: str
    rate_id: str
    is_custom: bool = False
    duration_months: int = 0
    label: Optional[str] = None


@dataclass
class ResolvedRatePeriod:
    id: str
    lender_id: str
    lender_name: str
    rate_id: str
    rate_name: str
    rate: Decimal
    rate_type: str
    start_month: int
    end_month: int
    duration_months: int
    label: str
    is_custom: bool = False
    fixed_term_years: Optional[int] = None
    overpayment_policy_id: Optional[str] = None

    @property
    def is_fixed(self) -> bool:
        return self.rate_type == "fixed"

    def covers(self, month: int) -> bool:
        return self.start_month <= month <= self.end_month


@dataclass
class OverpaymentConfig:
    """An extra payment, once or recurring, linked to a rate period by id.

    ``effect`` decides what happens after the payment: ``"reduce_term"``
    keeps the scheduled payment and shortens the mortgage, ``"reduce_payment"``
    re-amortizes the lower balance over the remaining term.
    """

    id: str
    rate_period_id: str
    type: str  # "one_time" or "recurring"
    amount: int
    start_month: int
    effect: str = "reduce_term"
    frequency: str = "monthly"
    end_month: Optional[int] = None
    label: Optional[str] = None
    enabled: bool = True


@dataclass
class DrawdownStage:
    month: int
    amount: int
    label: Optional[str] = None


@dataclass
class SelfBuildConfig:
    """Staged drawdown configuration of a self-build mortgage.

    Attributes
    ----------
    construction_repayment_type: str
        ``"interest_only"`` pays interest only while drawing down;
        ``"interest_and_capital"`` amortizes the drawn balance as it grows.
    interest_only_months: int
        Extra interest-only months after the final drawdown.
    drawdown_stages: List[DrawdownStage]
        Stages sorted by month.
    """

    enabled: bool
    drawdown_stages: List[DrawdownStage] = field(default_factory=list)
    construction_repayment_type: str = "interest_only"
    interest_only_months: int = 0


# ---------------------------------------------------------------------------
# Outputs
# ---------------------------------------------------------------------------


@dataclass
class MonthlyBreakdown:
    """One elapsed month of the schedule.

    ``total_payment == interest_portion + principal_portion + overpayment`` and
    ``closing_balance == opening_balance + drawdown_this_month -
    principal_portion - overpayment`` hold exactly for every entry.

    ``scheduled_payment`` is the contractual installment in force that month:
    the annuity payment, or the interest alone in interest-only months. The
    final month of the term clears whatever balance is left, so its
    ``total_payment`` can differ from it.
    """

    month: int
    year: int
    month_of_year: int
    date: Optional[date]
    rate: Decimal
    rate_period_id: str
    opening_balance: int
    drawdown_this_month: int
    cumulative_drawn: int
    phase: str
    is_interest_only: bool
    scheduled_payment: int
    interest_portion: int
    principal_portion: int
    overpayment: int
    total_payment: int
    closing_balance: int
    cumulative_interest: int
    cumulative_principal: int
    cumulative_overpayments: int
    cumulative_total: int


@dataclass
class YearlyBreakdown:
    year: int
    opening_balance: int
    closing_balance: int
    total_interest: int
    total_principal: int
    total_overpayments: int
    total_payments: int
    cumulative_interest: int
    cumulative_principal: int
    cumulative_total: int
    months: List[MonthlyBreakdown]
    rate_changes: List[str]
    has_warnings: bool = False


@dataclass
class AppliedOverpayment:
    month: int
    amount: int
    config_id: str
    effect: str
    is_recurring: bool
    within_allowance: bool = True
    excess_amount: int = 0


@dataclass
class SimulationWarning:
    type: str
    month: int
    message: str
    severity: str = "warning"  # "warning", "error" or "info"
    config_id: Optional[str] = None
    overpayment_label: Optional[str] = None


@dataclass
class Milestone:
    type: str
    month: int
    date: Optional[date]
    label: str
    value: int


@dataclass
class SimulationSummary:
    total_interest: int
    total_paid: int
    actual_term_months: int
    interest_saved: int
    months_saved: int
    extra_interest_from_self_build: Optional[int] = None


@dataclass
class SimulationCompleteness:
    is_complete: bool
    remaining_balance: int
    covered_months: int
    total_months: int
    missing_months: int


@dataclass
class SimulationResult:
    """Engine output.

    ``resolved_periods`` is ``None`` when the rate periods could not be
    resolved against the catalog; the simulation is then unavailable and
    ``months`` is empty.
    """

    months: List[MonthlyBreakdown] = field(default_factory=list)
    warnings: List[SimulationWarning] = field(default_factory=list)
    applied_overpayments: List[AppliedOverpayment] = field(default_factory=list)
    resolved_periods: Optional[List[ResolvedRatePeriod]] = field(default_factory=list)

    @property
    def is_available(self) -> bool:
        return self.resolved_periods is not None


@dataclass
class SimulationReport:
    result: SimulationResult
    baseline_months: List[MonthlyBreakdown]
    yearly_schedule: List[YearlyBreakdown]
    summary: SimulationSummary
    milestones: List[Milestone]
    completeness: SimulationCompleteness


@dataclass
class Scenario:
    """A complete set of simulation inputs, as supplied by the caller."""

    input: SimulationInput
    rate_periods: List[RatePeriod]
    overpayment_configs: List[OverpaymentConfig] = field(default_factory=list)
    self_build: Optional[SelfBuildConfig] = None
    name: str = ""


@dataclass
class BufferSuggestion:
    after_index: int
    fixed_rate: MortgageRate
    suggested_rate: MortgageRate
    ltv_at_end: Decimal
    lender_name: str
    is_trailing: bool = False


@dataclass
class YearlyOverpaymentPlan:
    year: int
    start_month: int
    end_month: int
    monthly_amount: int
    estimated_balance: int


@dataclass
class ComparisonValue:
    scenario: str
    value: int
    is_best: bool = False
    is_worst: bool = False


@dataclass
class ComparisonMetric:
    key: str
    label: str
    values: List[ComparisonValue]
    lower_is_better: bool = True




@dataclass
class AprcConfig:
    """Loan assumptions an APRC is quoted for.

    ``valuation_fee`` is deducted from the amount advanced and
    ``security_release_fee`` is paid with the last installment. Amounts are
    cents.
    """

    loan_amount: int
    term_months: int
    valuation_fee: int = 15_000
    security_release_fee: int = 5_000


@dataclass
class AprcQuote:
    rate: MortgageRate
    label: str
    follow_on_rate: Decimal
    aprc: Decimal
    is_published: bool = False
    follow_on_inferred: bool = False
