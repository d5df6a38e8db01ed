"""Forecast orchestration: pipeline-only and capacity-aware runs, plus explain data."""

import logging
from datetime import date
from typing import Dict, Optional, Sequence

from pipeline_oracle.analysis import assess_forecast_confidence
from pipeline_oracle.capacity import apply_queue_delays, penalize, penalize_v11
from pipeline_oracle.config import (
    CAPACITY_CONSTRAINED_P50_DELTA_DAYS, CAPACITY_CONSTRAINED_TOTAL_DELAY_DAYS,
    CONTROLLABLE_STAGES, DEFAULT_HORIZON_WEEKS
)
from pipeline_oracle.durations import build_stage_durations, durations_by_stage
from pipeline_oracle.knobs import (
    DEFAULT_KNOB_SETTINGS, OracleKnobSettings, generate_cache_key, hash_pipeline_counts,
    pipeline_counts_by_stage
)
from pipeline_oracle.models import (
    CapacityAwareForecastResult, CapacityExplainData, CapacityProfile, DurationSpec,
    ForecastResult, GlobalDemand, OracleExplainData, PipelineCandidate, SimulationInputs,
    SimulationParameters
)
from pipeline_oracle.rates import build_stage_rates, rates_by_stage
from pipeline_oracle.recommendations import recommend
from pipeline_oracle.simulation import simulate

logger = logging.getLogger(__name__)


def build_simulation_inputs(params: SimulationParameters,
                            knobs: OracleKnobSettings = DEFAULT_KNOB_SETTINGS,
                            observed_rates: Optional[Dict[str, float]] = None,
                            prior_rates: Optional[Dict[str, float]] = None,
                            global_durations: Optional[Dict[str, DurationSpec]] = None
                            ) -> SimulationInputs:
    """Shrunk rates, selected duration models and the confidence grade they imply."""
    stage_rates = build_stage_rates(params, knobs.m, observed_rates, prior_rates)
    stage_durations = build_stage_durations(params, knobs.min_n, global_durations)
    level, reasons = assess_forecast_confidence(stage_rates, stage_durations)

    return SimulationInputs(
        stage_rates=stage_rates,
        stage_durations=stage_durations,
        rates=rates_by_stage(stage_rates),
        durations=durations_by_stage(stage_durations),
        confidence_level=level,
        confidence_reasons=reasons,
    )


def forecast_cache_key(req_id: str, candidates: Sequence[PipelineCandidate], seed: str,
                       knobs: OracleKnobSettings = DEFAULT_KNOB_SETTINGS) -> str:
    counts = pipeline_counts_by_stage(c.current_stage for c in candidates)
    return generate_cache_key(req_id, hash_pipeline_counts(counts), seed, knobs)


def run_pipeline_forecast(candidates: Sequence[PipelineCandidate], inputs: SimulationInputs,
                          seed: str, as_of: date,
                          iterations: int = DEFAULT_KNOB_SETTINGS.iterations
                          ) -> Optional[ForecastResult]:
    if not candidates:
        logger.info("Empty pipeline; no forecast")
        return None

    return simulate(
        candidates, inputs.rates, inputs.durations, iterations, seed, as_of,
        confidence_level=inputs.confidence_level,
    )


def run_capacity_aware_forecast(candidates: Sequence[PipelineCandidate],
                                inputs: SimulationInputs, seed: str, as_of: date,
                                capacity_profile: Optional[CapacityProfile],
                                global_demand: Optional[GlobalDemand] = None,
                                iterations: int = DEFAULT_KNOB_SETTINGS.iterations,
                                horizon_weeks: float = DEFAULT_HORIZON_WEEKS,
                                pipeline_only: Optional[ForecastResult] = None
                                ) -> Optional[CapacityAwareForecastResult]:
    """Pipeline-only forecast next to one re-simulated with capacity queue delays.

    Both runs share the seed, so each simulated fill in the capacity-aware
    run is at least as late as its pipeline-only counterpart. Without a
    capacity profile, or without a pipeline forecast to compare against,
    there is nothing to report and None is returned.
    """
    if capacity_profile is None or capacity_profile.is_empty:
        logger.info("No capacity profile; capacity-aware forecast skipped")
        return None

    if pipeline_only is None:
        pipeline_only = run_pipeline_forecast(candidates, inputs, seed, as_of, iterations)
    if pipeline_only is None:
        return None

    if global_demand is not None:
        penalty = penalize_v11(inputs.durations, global_demand, capacity_profile, horizon_weeks)
    else:
        demand = pipeline_counts_by_stage(c.current_stage for c in candidates)
        penalty = penalize(inputs.durations, demand, capacity_profile, horizon_weeks)

    capacity_aware = simulate(
        candidates, inputs.rates, apply_queue_delays(inputs.durations, penalty),
        iterations, seed, as_of, confidence_level=inputs.confidence_level,
    )
    if capacity_aware is None:
        return None

    p50_delta = (capacity_aware.p50_date - pipeline_only.p50_date).days
    constrained = (
        p50_delta >= CAPACITY_CONSTRAINED_P50_DELTA_DAYS
        or penalty.total_queue_delay_days >= CAPACITY_CONSTRAINED_TOTAL_DELAY_DAYS
    )
    if constrained:
        logger.info("Capacity constrained: p50 +%d days, total queue delay %.1f days",
                    p50_delta, penalty.total_queue_delay_days)

    reasons = list(capacity_profile.confidence_reasons)
    if global_demand is not None:
        reasons.extend(global_demand.confidence_reasons)

    return CapacityAwareForecastResult(
        pipeline_only=pipeline_only,
        capacity_aware=capacity_aware,
        capacity_constrained=constrained,
        p50_delta_days=p50_delta,
        penalty=penalty,
        capacity_confidence=penalty.confidence,
        capacity_reasons=reasons,
        debug={
            'iterations': iterations,
            'seed': seed,
            'queue_model_version': penalty.version,
            'total_queue_delay_days': penalty.total_queue_delay_days,
        },
    )


def _capacity_explain(candidates: Sequence[PipelineCandidate], inputs: SimulationInputs,
                      capacity_profile: Optional[CapacityProfile],
                      global_demand: Optional[GlobalDemand],
                      horizon_weeks: float) -> CapacityExplainData:
    if capacity_profile is None:
        return CapacityExplainData(is_available=False, unavailable_reason="No capacity profile")
    if capacity_profile.is_empty:
        return CapacityExplainData(
            is_available=False,
            profile=capacity_profile,
            unavailable_reason="Capacity profile has no recruiter or HM throughput",
        )

    demand = pipeline_counts_by_stage(c.current_stage for c in candidates)
    penalty_v1 = penalize(inputs.durations, demand, capacity_profile, horizon_weeks)
    penalty_v11 = None
    if global_demand is not None:
        penalty_v11 = penalize_v11(inputs.durations, global_demand, capacity_profile, horizon_weeks)

    current = penalty_v11 or penalty_v1
    if penalty_v11 is not None:
        recommendations = penalty_v11.recommendations
    else:
        recommendations = recommend(
            penalty_v1, penalty_v1.confidence, cohort_defaults=capacity_profile.cohort_defaults
        )

    return CapacityExplainData(
        is_available=True,
        profile=capacity_profile,
        penalty_result=penalty_v1,
        penalty_result_v11=penalty_v11,
        total_queue_delay_days=current.total_queue_delay_days,
        global_demand=global_demand,
        recommendations=recommendations,
    )


def build_explain_data(candidates: Sequence[PipelineCandidate], inputs: SimulationInputs,
                       seed: str, iterations: int = DEFAULT_KNOB_SETTINGS.iterations,
                       capacity_profile: Optional[CapacityProfile] = None,
                       global_demand: Optional[GlobalDemand] = None,
                       horizon_weeks: float = DEFAULT_HORIZON_WEEKS) -> OracleExplainData:
    """Everything the explain panel shows about how a forecast was produced."""
    counts = pipeline_counts_by_stage(c.current_stage for c in candidates)

    return OracleExplainData(
        pipeline_counts={stage: counts.get(stage, 0) for stage in CONTROLLABLE_STAGES},
        stage_rates=inputs.stage_rates,
        stage_durations=inputs.stage_durations,
        iterations=iterations,
        seed=seed,
        confidence_level=inputs.confidence_level,
        confidence_reasons=inputs.confidence_reasons,
        capacity=_capacity_explain(
            candidates, inputs, capacity_profile, global_demand, horizon_weeks
        ),
    )
