"""Side-by-side comparison of simulated scenarios."""

from __future__ import annotations

import dataclasses
import hashlib
import json
import logging
from datetime import date
from decimal import Decimal
from typing import Callable, Dict, List, Optional

from .aggregation import build_report
from .data_models import (
    ComparisonMetric,
    ComparisonValue,
    RateCatalog,
    Scenario,
    SimulationReport,
    SimulationSummary,
)

logger = logging.getLogger(__name__)


def _json_default(value):
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, date):
        return value.isoformat()
    raise TypeError(f"Cannot serialize {type(value).__name__}")


def normalize_scenario(scenario: Scenario, catalog: Optional[RateCatalog] = None) -> dict:
    """Plain-data form of the inputs that determine a simulation result.

    The scenario name is display-only and is left out.
    """
    data = dataclasses.asdict(scenario)
    data.pop("name", None)
    if catalog is not None:
        data["catalog"] = dataclasses.asdict(catalog)
    return data


def fingerprint(scenario: Scenario, catalog: Optional[RateCatalog] = None) -> str:
    """SHA-256 of the normalized inputs, as sorted-key JSON."""
    payload = json.dumps(
        normalize_scenario(scenario, catalog),
        sort_keys=True,
        default=_json_default,
        separators=(",", ":"),
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def scenario_label(scenario: Scenario, index: int) -> str:
    return scenario.name or f"Scenario {index + 1}"


def scenario_labels(scenarios: List[Scenario]) -> List[str]:
    """Display labels for ``scenarios``, made unique in order.

    A repeated name gets a counter suffix (``"Plan"``, ``"Plan (2)"``) so no
    scenario hides another in a comparison.
    """
    labels: List[str] = []
    seen = set()
    for index, scenario in enumerate(scenarios):
        base = scenario_label(scenario, index)
        label = base
        count = 1
        while label in seen:
            count += 1
            label = f"{base} ({count})"
        seen.add(label)
        labels.append(label)
    return labels


def compare_scenarios(
    scenarios: List[Scenario], catalog: RateCatalog
) -> Dict[str, SimulationReport]:
    """Build one report per scenario, keyed by its unique label.

    Each scenario is simulated independently of the others.
    """
    reports: Dict[str, SimulationReport] = {}
    for label, scenario in zip(scenario_labels(scenarios), scenarios):
        reports[label] = build_report(scenario, catalog)
    return reports


def summarize_scenarios(
    scenarios: List[Scenario], catalog: RateCatalog, cache=None
) -> Dict[str, SimulationSummary]:
    """Summaries for each scenario, served from ``cache`` where possible.

    ``cache`` is anything with ``get(key)`` and ``put(key, summary)``, such as
    :class:`mortgage_sim.result_cache.ResultCache`.
    """
    summaries: Dict[str, SimulationSummary] = {}
    for name, scenario in zip(scenario_labels(scenarios), scenarios):
        key = fingerprint(scenario, catalog) if cache is not None else None
        summary = cache.get(key) if cache is not None else None
        if summary is None:
            summary = build_report(scenario, catalog).summary
            if cache is not None:
                cache.put(key, summary)
        else:
            logger.debug("Using cached result for %s", name)
        summaries[name] = summary
    return summaries


def _metric(
    key: str,
    label: str,
    summaries: Dict[str, SimulationSummary],
    getter: Callable[[SimulationSummary], int],
    lower_is_better: bool = True,
) -> ComparisonMetric:
    values = [ComparisonValue(scenario=name, value=getter(s)) for name, s in summaries.items()]
    numbers = [v.value for v in values]
    best = min(numbers) if lower_is_better else max(numbers)
    worst = max(numbers) if lower_is_better else min(numbers)
    # flag only when there is something to choose between
    if best != worst:
        for value in values:
            value.is_best = value.value == best
            value.is_worst = value.value == worst
    return ComparisonMetric(key=key, label=label, values=values, lower_is_better=lower_is_better)


def compare_summary_metrics(summaries: Dict[str, SimulationSummary]) -> List[ComparisonMetric]:
    """Headline metrics per scenario with best and worst values flagged."""
    if not summaries:
        return []
    return [
        _metric("total_interest", "Total Interest", summaries, lambda s: s.total_interest),
        _metric("total_paid", "Total Paid", summaries, lambda s: s.total_paid),
        _metric("actual_term", "Actual Term", summaries, lambda s: s.actual_term_months),
        _metric(
            "interest_saved",
            "Interest Saved (Overpayments)",
            summaries,
            lambda s: s.interest_saved,
            lower_is_better=False,
        ),
        _metric(
            "months_saved",
            "Term Reduced (Overpayments)",
            summaries,
            lambda s: s.months_saved,
            lower_is_better=False,
        ),
    ]
