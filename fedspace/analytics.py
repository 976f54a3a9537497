"""
Analytics over batches of match results and neighborhood scores.

Frames are plain pandas DataFrames (one row per result) so callers can
slice them further; the ``summarize_*`` functions reduce them to the
dashboard numbers: qualification and competitiveness rates, how much work
early termination saved, observed per-constraint disqualification rates,
grade mix.
"""

import logging
from typing import Dict, Iterable, Mapping, Optional, Tuple, Union

import numpy as np
import pandas as pd

from fedspace.matcher import CONSTRAINT_PIPELINE, WEIGHTS as MATCH_WEIGHTS
from fedspace.models import FederalNeighborhoodScore, MatchingResult
from fedspace.neighborhood import WEIGHTS as NEIGHBORHOOD_WEIGHTS

log = logging.getLogger(__name__)

MATCH_COLUMNS = [
    "key", "score", "qualified", "competitive", "grade",
    "failed_constraint", "stopped_at_stage", "computation_saved", "computation_time_ms",
] + [f"{name}_score" for name in MATCH_WEIGHTS]

NEIGHBORHOOD_COLUMNS = [
    "key", "latitude", "longitude", "score", "grade", "percentile",
    "total_properties", "total_rsf", "expiring_leases_count", "vacancy_percentage",
] + [f"{name}_score" for name in NEIGHBORHOOD_WEIGHTS]


def _items(results) -> Iterable[Tuple[str, object]]:
    """Accept a {key: result} mapping or a plain iterable of results."""
    if isinstance(results, Mapping):
        return results.items()
    return ((str(i), r) for i, r in enumerate(results))


# ═══════════════════════════════════════════════════════════════════════════
# MATCH RESULTS
# ═══════════════════════════════════════════════════════════════════════════
def match_results_frame(
    results: Union[Mapping[str, Optional[MatchingResult]], Iterable[MatchingResult]],
) -> pd.DataFrame:
    """One row per match result; None entries (failed computations) are skipped."""
    rows = []
    for key, result in _items(results):
        if result is None:
            continue
        et = result.early_termination
        row = {
            "key": key,
            "score": result.score,
            "qualified": result.qualified,
            "competitive": result.competitive,
            "grade": result.grade,
            "failed_constraint": et.failed_constraint.value if et else None,
            "stopped_at_stage": et.stopped_at_stage if et else np.nan,
            "computation_saved": et.computation_saved if et else 0,
            "computation_time_ms": result.computation_time_ms,
        }
        for name in MATCH_WEIGHTS:
            row[f"{name}_score"] = result.factors[name].score
        rows.append(row)
    return pd.DataFrame(rows, columns=MATCH_COLUMNS)


def _pct(part: float, whole: float) -> float:
    return round(float(part) / whole * 100, 1) if whole else 0.0


def summarize_match_results(
    results: Union[Mapping[str, Optional[MatchingResult]], Iterable[MatchingResult]],
) -> Dict:
    """
    Aggregate match analytics.

    ``observed_disqualification_rates`` is, per constraint, the share of
    candidates that reached that stage and failed it, comparable with
    ``fedspace.matcher.DISQUALIFICATION_RATES``.
    """
    df = match_results_frame(results)
    total = len(df)
    if total == 0:
        return {
            "total": 0,
            "qualified": 0,
            "qualified_rate": 0.0,
            "competitive": 0,
            "competitive_rate": 0.0,
            "early_termination_rate": 0.0,
            "average_computation_time_ms": 0.0,
            "average_computation_saved": 0.0,
            "average_qualified_score": 0.0,
            "grade_breakdown": {},
            "observed_disqualification_rates": {c.value: 0.0 for c, _ in CONSTRAINT_PIPELINE},
        }

    qualified = int(df["qualified"].sum())
    competitive = int(df["competitive"].sum())
    terminated = df[~df["qualified"]]

    observed = {}
    reached = total
    for stage, (constraint, _) in enumerate(CONSTRAINT_PIPELINE):
        failed_here = int((terminated["stopped_at_stage"] == stage).sum())
        observed[constraint.value] = _pct(failed_here, reached)
        reached -= failed_here

    qualified_scores = df.loc[df["qualified"], "score"].to_numpy(dtype=float)

    summary = {
        "total": total,
        "qualified": qualified,
        "qualified_rate": _pct(qualified, total),
        "competitive": competitive,
        "competitive_rate": _pct(competitive, total),
        "early_termination_rate": _pct(len(terminated), total),
        "average_computation_time_ms": float(np.mean(df["computation_time_ms"].to_numpy(dtype=float))),
        "average_computation_saved": (
            round(float(np.mean(terminated["computation_saved"].to_numpy(dtype=float))), 1)
            if len(terminated) else 0.0
        ),
        "average_qualified_score": (
            round(float(np.mean(qualified_scores)), 1) if qualified_scores.size else 0.0
        ),
        "grade_breakdown": {str(g): int(n) for g, n in df["grade"].value_counts().items()},
        "observed_disqualification_rates": observed,
    }
    log.debug(f"Match summary over {total} results: {summary['qualified_rate']}% qualified")
    return summary


# ═══════════════════════════════════════════════════════════════════════════
# NEIGHBORHOOD SCORES
# ═══════════════════════════════════════════════════════════════════════════
def neighborhood_scores_frame(
    scores: Union[Mapping[str, Optional[FederalNeighborhoodScore]], Iterable[FederalNeighborhoodScore]],
) -> pd.DataFrame:
    rows = []
    for key, score in _items(scores):
        if score is None:
            continue
        row = {
            "key": key,
            "latitude": score.location.latitude,
            "longitude": score.location.longitude,
            "score": score.score,
            "grade": score.grade,
            "percentile": score.percentile,
            "total_properties": score.metrics.total_properties,
            "total_rsf": score.metrics.total_rsf,
            "expiring_leases_count": score.metrics.expiring_leases_count,
            "vacancy_percentage": score.metrics.vacancy_percentage,
        }
        for name in NEIGHBORHOOD_WEIGHTS:
            row[f"{name}_score"] = score.factors[name].score
        rows.append(row)
    return pd.DataFrame(rows, columns=NEIGHBORHOOD_COLUMNS)


def summarize_neighborhood_scores(
    scores: Union[Mapping[str, Optional[FederalNeighborhoodScore]], Iterable[FederalNeighborhoodScore]],
) -> Dict:
    df = neighborhood_scores_frame(scores)
    if df.empty:
        return {
            "count": 0,
            "average_score": 0.0,
            "median_score": 0.0,
            "average_properties": 0.0,
            "total_rsf": 0.0,
            "total_expiring_leases": 0,
            "grade_breakdown": {},
        }

    values = df["score"].to_numpy(dtype=float)
    return {
        "count": len(df),
        "average_score": round(float(np.mean(values)), 1),
        "median_score": round(float(np.median(values)), 1),
        "average_properties": round(float(df["total_properties"].mean()), 1),
        "total_rsf": float(df["total_rsf"].sum()),
        "total_expiring_leases": int(df["expiring_leases_count"].sum()),
        "grade_breakdown": {str(g): int(n) for g, n in df["grade"].value_counts().items()},
    }
