"""Decode scenario and catalog JSON documents into data models.

Keys follow the dataclass field names. Amounts are integer cents, rates and
LTV bounds are percentages given as strings or numbers. Optional fields that
are missing take their defaults; malformed documents raise ``ValueError``.
"""

from __future__ import annotations

import json
from datetime import date
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from .data_models import (
    ALLOWANCE_BASES,
    ALLOWANCE_TYPES,
    BASIS_PERIODS,
    CONSTRUCTION_REPAYMENT_TYPES,
    OVERPAYMENT_EFFECTS,
    OVERPAYMENT_FREQUENCIES,
    OVERPAYMENT_TYPES,
    RATE_TYPES,
    TRANSACTION_PERIODS,
    AprcFees,
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
from .utils import decimal_from_str, parse_year_month


def load_json(path) -> Any:
    """Read a JSON document, reporting decode errors as ``ValueError``."""
    try:
        with open(path, "r", encoding="utf-8") as fh:
            return json.load(fh)
    except json.JSONDecodeError as exc:
        raise ValueError(f"{path}: invalid JSON ({exc.msg} at line {exc.lineno})") from exc


def _require(data: Dict[str, Any], key: str, context: str) -> Any:
    if not isinstance(data, dict):
        raise ValueError(f"{context} must be an object")
    if key not in data or data[key] is None:
        raise ValueError(f"{context}: missing required field '{key}'")
    return data[key]


def _choice(value: str, choices: Iterable[str], field: str) -> str:
    if value not in choices:
        raise ValueError(f"Invalid {field} '{value}'; expected one of {', '.join(choices)}")
    return value


def _int(value: Any, field: str) -> int:
    if isinstance(value, bool):
        raise ValueError(f"Invalid integer for {field}: {value}")
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid integer for {field}: {value}") from exc


def _optional_int(value: Any, field: str) -> Optional[int]:
    return None if value is None else _int(value, field)


def parse_start_date(value: Optional[str]) -> Optional[date]:
    """Accept ``YYYY-MM`` or ``YYYY-MM-DD``; empty means no calendar dates."""
    if not value:
        return None
    if len(value) == 10:
        try:
            return date.fromisoformat(value)
        except ValueError as exc:
            raise ValueError(f"Invalid start date: {value}") from exc
    return parse_year_month(value)


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


def rate_from_dict(data: Dict[str, Any]) -> MortgageRate:
    context = "rate"
    return MortgageRate(
        id=str(_require(data, "id", context)),
        lender_id=str(data.get("lender_id", "")),
        type=_choice(_require(data, "type", context), RATE_TYPES, "rate type"),
        rate=decimal_from_str(_require(data, "rate", context)),
        name=data.get("name", ""),
        fixed_term=_optional_int(data.get("fixed_term"), "fixed_term"),
        min_ltv=decimal_from_str(data.get("min_ltv", 0)),
        max_ltv=decimal_from_str(data.get("max_ltv", 100)),
        min_loan=_optional_int(data.get("min_loan"), "min_loan"),
        buyer_types=list(data.get("buyer_types") or []),
        ber_eligible=data.get("ber_eligible"),
        new_business=data.get("new_business"),
        custom_lender_name=data.get("custom_lender_name"),
        apr=decimal_from_str(data["apr"]) if data.get("apr") is not None else None,
    )


def aprc_fees_from_dict(data: Dict[str, Any]) -> AprcFees:
    defaults = AprcFees()
    return AprcFees(
        valuation_fee=_int(data.get("valuation_fee", defaults.valuation_fee), "valuation_fee"),
        security_release_fee=_int(
            data.get("security_release_fee", defaults.security_release_fee),
            "security_release_fee",
        ),
    )


def lender_from_dict(data: Dict[str, Any]) -> Lender:
    fees = data.get("aprc_fees")
    return Lender(
        id=str(_require(data, "id", "lender")),
        name=_require(data, "name", "lender"),
        allows_self_build=bool(data.get("allows_self_build", True)),
        overpayment_policy_id=data.get("overpayment_policy_id"),
        aprc_fees=aprc_fees_from_dict(fees) if fees is not None else None,
    )


def policy_from_dict(data: Dict[str, Any]) -> OverpaymentPolicy:
    context = "overpayment policy"
    limit_period = data.get("max_transactions_period")
    if limit_period is not None:
        _choice(limit_period, TRANSACTION_PERIODS, "max_transactions_period")
    return OverpaymentPolicy(
        id=str(_require(data, "id", context)),
        label=data.get("label", ""),
        allowance_type=_choice(
            _require(data, "allowance_type", context), ALLOWANCE_TYPES, "allowance_type"
        ),
        allowance_value=decimal_from_str(_require(data, "allowance_value", context)),
        allowance_basis=_choice(
            data.get("allowance_basis", "balance"), ALLOWANCE_BASES, "allowance_basis"
        ),
        basis_period=_choice(data.get("basis_period", "annual"), BASIS_PERIODS, "basis_period"),
        min_amount=_optional_int(data.get("min_amount"), "min_amount"),
        max_transactions=_optional_int(data.get("max_transactions"), "max_transactions"),
        max_transactions_period=limit_period,
    )


def catalog_from_dict(data: Dict[str, Any]) -> RateCatalog:
    if not isinstance(data, dict):
        raise ValueError("catalog must be an object")
    return RateCatalog(
        rates=[rate_from_dict(r) for r in data.get("rates", [])],
        custom_rates=[rate_from_dict(r) for r in data.get("custom_rates", [])],
        lenders=[lender_from_dict(lender) for lender in data.get("lenders", [])],
        policies=[policy_from_dict(p) for p in data.get("policies", [])],
    )


def load_catalog(path) -> RateCatalog:
    return catalog_from_dict(load_json(path))


# ---------------------------------------------------------------------------
# Scenario
# ---------------------------------------------------------------------------


def input_from_dict(data: Dict[str, Any]) -> SimulationInput:
    context = "input"
    return SimulationInput(
        mortgage_amount=_int(_require(data, "mortgage_amount", context), "mortgage_amount"),
        mortgage_term_months=_int(
            _require(data, "mortgage_term_months", context), "mortgage_term_months"
        ),
        property_value=_int(data.get("property_value", 0), "property_value"),
        ber_rating=data.get("ber_rating", ""),
        start_date=parse_start_date(data.get("start_date")),
        buyer_type=data.get("buyer_type"),
    )


def rate_period_from_dict(data: Dict[str, Any]) -> RatePeriod:
    context = "rate period"
    return RatePeriod(
        id=str(_require(data, "id", context)),
        lender_id=str(_require(data, "lender_id", context)),
        rate_id=str(_require(data, "rate_id", context)),
        is_custom=bool(data.get("is_custom", False)),
        duration_months=_int(data.get("duration_months", 0), "duration_months"),
        label=data.get("label"),
    )


def overpayment_from_dict(data: Dict[str, Any]) -> OverpaymentConfig:
    context = "overpayment"
    return OverpaymentConfig(
        id=str(_require(data, "id", context)),
        rate_period_id=str(_require(data, "rate_period_id", context)),
        type=_choice(_require(data, "type", context), OVERPAYMENT_TYPES, "overpayment type"),
        amount=_int(_require(data, "amount", context), "amount"),
        start_month=_int(_require(data, "start_month", context), "start_month"),
        effect=_choice(data.get("effect", "reduce_term"), OVERPAYMENT_EFFECTS, "effect"),
        frequency=_choice(
            data.get("frequency") or "monthly", OVERPAYMENT_FREQUENCIES, "frequency"
        ),
        end_month=_optional_int(data.get("end_month"), "end_month"),
        label=data.get("label"),
        enabled=bool(data.get("enabled", True)),
    )


def self_build_from_dict(data: Optional[Dict[str, Any]]) -> Optional[SelfBuildConfig]:
    if not data:
        return None
    stages: List[DrawdownStage] = []
    for stage in data.get("drawdown_stages", []):
        stages.append(
            DrawdownStage(
                month=_int(_require(stage, "month", "drawdown stage"), "month"),
                amount=_int(_require(stage, "amount", "drawdown stage"), "amount"),
                label=stage.get("label"),
            )
        )
    return SelfBuildConfig(
        enabled=bool(data.get("enabled", False)),
        drawdown_stages=sorted(stages, key=lambda s: s.month),
        construction_repayment_type=_choice(
            data.get("construction_repayment_type", "interest_only"),
            CONSTRUCTION_REPAYMENT_TYPES,
            "construction_repayment_type",
        ),
        interest_only_months=_int(data.get("interest_only_months", 0), "interest_only_months"),
    )


def scenario_from_dict(data: Dict[str, Any], default_name: str = "") -> Scenario:
    return Scenario(
        input=input_from_dict(_require(data, "input", "scenario")),
        rate_periods=[rate_period_from_dict(p) for p in data.get("rate_periods", [])],
        overpayment_configs=[overpayment_from_dict(o) for o in data.get("overpayment_configs", [])],
        self_build=self_build_from_dict(data.get("self_build")),
        name=data.get("name") or default_name,
    )


def load_scenario(path) -> Scenario:
    """Load a scenario file; the file name doubles as the default scenario name."""
    return scenario_from_dict(load_json(path), default_name=Path(path).stem)
