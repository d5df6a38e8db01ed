"""Statistical analysis for the Pipeline Oracle: confidence grading and intervals."""

from typing import List, Sequence, Tuple

import numpy as np
from scipy import stats as stats_module

from pipeline_oracle.config import (
    CONTROLLABLE_STAGES, FORECAST_CONFIDENCE_THRESHOLDS, MAX_STAGES_ON_FALLBACK
)
from pipeline_oracle.models import ConfidenceReason, StageDurationInfo, StageRateInfo

FORECAST_LEVELS = ["LOW", "MEDIUM", "HIGH"]


def calculate_confidence_interval(successes: int, trials: int,
                                  confidence: float = 0.95) -> Tuple[float, float]:
    """Calculate Wilson score confidence interval for a proportion."""
    if trials == 0:
        return (0.0, 1.0)

    p = successes / trials
    z = stats_module.norm.ppf((1 + confidence) / 2)

    denominator = 1 + z**2 / trials
    center = (p + z**2 / (2 * trials)) / denominator
    margin = z * np.sqrt((p * (1 - p) + z**2 / (4 * trials)) / trials) / denominator

    return (float(max(0, center - margin)), float(min(1, center + margin)))


def percentile_days(samples: Sequence[float]) -> Tuple[float, float, float]:
    """p10/p50/p90 with linear interpolation between order statistics."""
    p10, p50, p90 = np.percentile(np.asarray(samples, dtype=float), [10, 50, 90])
    return float(p10), float(p50), float(p90)


def assess_forecast_confidence(stage_rates: List[StageRateInfo],
                               stage_durations: List[StageDurationInfo]
                               ) -> Tuple[str, List[ConfidenceReason]]:
    """Grade how far a forecast can be trusted from the data behind it.

    The grade starts from the smallest per-stage sample size and drops one
    level when more than two stages lean on priors or on fallback durations.
    Simulation variance plays no part.
    """
    reasons = []
    if not stage_rates:
        reasons.append(ConfidenceReason(
            type="sample_size", message="No stage rates available", impact="negative"
        ))
        return "LOW", reasons

    min_n = min(info.n for info in stage_rates)
    if min_n >= FORECAST_CONFIDENCE_THRESHOLDS["HIGH"]:
        level = "HIGH"
        reasons.append(ConfidenceReason(
            type="sample_size",
            message=f"Good sample sizes (min {min_n} per stage)",
            impact="positive",
        ))
    elif min_n >= FORECAST_CONFIDENCE_THRESHOLDS["MEDIUM"]:
        level = "MEDIUM"
        reasons.append(ConfidenceReason(
            type="sample_size", message=f"Moderate sample sizes (min {min_n})", impact="neutral"
        ))
    else:
        level = "LOW"
        reasons.append(ConfidenceReason(
            type="sample_size", message=f"Limited data (min {min_n} samples)", impact="negative"
        ))

    shrinkage_reliance = sum(1 for info in stage_rates if info.relies_on_shrinkage)
    if shrinkage_reliance > 0:
        reasons.append(ConfidenceReason(
            type="shrinkage",
            message=f"{shrinkage_reliance} stage(s) rely on prior assumptions",
            impact="negative" if shrinkage_reliance > MAX_STAGES_ON_FALLBACK else "neutral",
        ))

    fallback_durations = len(CONTROLLABLE_STAGES) - sum(
        1 for info in stage_durations if info.is_fitted
    )
    if fallback_durations == 0:
        reasons.append(ConfidenceReason(
            type="duration_model", message="Using fitted duration distributions", impact="positive"
        ))
    else:
        reasons.append(ConfidenceReason(
            type="duration_model",
            message=f"{fallback_durations} stage(s) use fallback durations",
            impact="negative" if fallback_durations > MAX_STAGES_ON_FALLBACK else "neutral",
        ))

    if shrinkage_reliance > MAX_STAGES_ON_FALLBACK or fallback_durations > MAX_STAGES_ON_FALLBACK:
        level = FORECAST_LEVELS[max(0, FORECAST_LEVELS.index(level) - 1)]

    return level, reasons
