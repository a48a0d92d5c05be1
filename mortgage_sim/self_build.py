"""Self-build mortgage helpers.

Self-build mortgages release funds in stages during construction. Each month
of such a mortgage falls into one of three phases:

* ``construction`` -- month 1 through the final drawdown month; the balance
  grows as stages are drawn;
* ``interest_only`` -- the configured number of months after the final
  drawdown, during which no principal is repaid;
* ``repayment`` -- full amortization of the drawn balance over what is left
  of the term.
"""

from __future__ import annotations

from typing import List, Optional

from .data_models import DrawdownStage, SelfBuildConfig


def is_self_build_active(config: Optional[SelfBuildConfig]) -> bool:
    """Return True when self-build is enabled and has drawdown stages."""
    return config is not None and config.enabled and len(config.drawdown_stages) > 0


def sorted_stages(stages: List[DrawdownStage]) -> List[DrawdownStage]:
    return sorted(stages, key=lambda s: s.month)


def drawdown_for_month(month: int, stages: List[DrawdownStage]) -> int:
    """Amount drawn in ``month``; 0 when no stage falls in it."""
    return sum(s.amount for s in stages if s.month == month)


def cumulative_drawn(month: int, stages: List[DrawdownStage]) -> int:
    """Total drawn up to and including ``month``."""
    return sum(s.amount for s in stages if s.month <= month)


def total_drawdowns(config: SelfBuildConfig) -> int:
    return sum(s.amount for s in config.drawdown_stages)


def construction_end_month(config: SelfBuildConfig) -> int:
    """Month of the final drawdown (0 without stages)."""
    if not config.drawdown_stages:
        return 0
    return max(s.month for s in config.drawdown_stages)


def interest_only_end_month(config: SelfBuildConfig) -> int:
    return construction_end_month(config) + config.interest_only_months


def repayment_start_month(config: SelfBuildConfig) -> int:
    return interest_only_end_month(config) + 1


def remaining_term_from_repayment(term_months: int, config: SelfBuildConfig) -> int:
    """Months left for full amortization once the repayment phase begins."""
    return term_months - (repayment_start_month(config) - 1)


def determine_phase(month: int, config: SelfBuildConfig) -> str:
    if month <= construction_end_month(config):
        return "construction"
    if month <= interest_only_end_month(config):
        return "interest_only"
    return "repayment"


def is_interest_only_month(month: int, config: SelfBuildConfig) -> bool:
    """Whether no principal is repaid in ``month``.

    The interest-only phase never repays principal. Construction months only
    repay principal when the construction repayment type is
    ``interest_and_capital``.
    """
    phase = determine_phase(month, config)
    if config.construction_repayment_type == "interest_and_capital":
        return phase == "interest_only"
    return phase in ("construction", "interest_only")


def drawdowns_match_principal(config: SelfBuildConfig, mortgage_amount: int) -> bool:
    """Whether the stages draw exactly the mortgage amount."""
    return total_drawdowns(config) == mortgage_amount


def is_self_build_complete(config: Optional[SelfBuildConfig], mortgage_amount: int) -> bool:
    """Self-build is active and fully allocated, so its milestones are meaningful."""
    return is_self_build_active(config) and drawdowns_match_principal(config, mortgage_amount)


def initial_self_build_balance(config: SelfBuildConfig) -> int:
    """Balance at the start of month 1: whatever is drawn in month 1."""
    return drawdown_for_month(1, config.drawdown_stages)


def stages_with_cumulative(stages: List[DrawdownStage]) -> List[dict]:
    """Stages in month order with running drawn/remaining totals."""
    ordered = sorted_stages(stages)
    total = sum(s.amount for s in ordered)
    rows = []
    running = 0
    for stage in ordered:
        running += stage.amount
        rows.append(
            {
                "month": stage.month,
                "amount": stage.amount,
                "label": stage.label,
                "cumulative_drawn": running,
                "remaining_to_draw": total - running,
                "total_approved": total,
            }
        )
    return rows
