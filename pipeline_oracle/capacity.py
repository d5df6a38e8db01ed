"""Capacity penalty engine: queue delays, bottlenecks and owner attribution."""

import logging
from typing import Dict, List, Optional

from pipeline_oracle.config import (
    CONTROLLABLE_STAGES, DEFAULT_HORIZON_WEEKS, STAGE_LABELS, STAGE_OWNER_MAP,
    TOP_BOTTLENECK_COUNT
)
from pipeline_oracle.demand import effective_demand
from pipeline_oracle.durations import distribution_median, shift_duration
from pipeline_oracle.models import (
    AdjustedDuration, CapacityPenaltyResult, CapacityPenaltyResultV11, CapacityProfile,
    DurationSpec, GlobalDemand, StageDiagnostic, min_confidence
)
from pipeline_oracle.queueing import calculate_queue_delay, resolve_service_rate
from pipeline_oracle.recommendations import recommend

logger = logging.getLogger(__name__)


def _diagnose(stage: str, demand: float, profile: CapacityProfile,
              horizon_weeks: float) -> StageDiagnostic:
    service_rate, confidence, used_fallback = resolve_service_rate(stage, profile)
    delay = calculate_queue_delay(demand, service_rate, horizon_weeks)
    logger.debug("Stage %s: demand=%s service_rate=%.2f delay=%.2f",
                 stage, demand, service_rate, delay)

    return StageDiagnostic(
        stage=stage,
        stage_name=STAGE_LABELS.get(stage, stage),
        demand=demand,
        service_rate=service_rate,
        queue_delay_days=delay,
        is_bottleneck=delay > 0,
        bottleneck_owner_type=STAGE_OWNER_MAP.get(stage, "both") if delay > 0 else "none",
        confidence=confidence,
        used_cohort_fallback=used_fallback,
    )


def _adjusted_duration(stage: str, spec: Optional[DurationSpec], delay: float) -> AdjustedDuration:
    original_median = distribution_median(spec)
    return AdjustedDuration(
        stage=stage,
        original_median_days=original_median,
        queue_delay_days=delay,
        adjusted_median_days=original_median + delay,
        adjusted=shift_duration(spec, delay),
    )


def rank_bottlenecks(diagnostics: List[StageDiagnostic]) -> List[StageDiagnostic]:
    """Delayed stages, longest delay first, funnel order breaking ties."""
    delayed = [d for d in diagnostics if d.queue_delay_days > 0]
    return sorted(delayed, key=lambda d: -d.queue_delay_days)[:TOP_BOTTLENECK_COUNT]


def overall_confidence(diagnostics: List[StageDiagnostic], profile: CapacityProfile) -> str:
    """Weakest grade among the stages that add delay (all stages when none do)."""
    contributing = [d for d in diagnostics if d.queue_delay_days > 0]
    considered = contributing or diagnostics
    if profile.used_cohort_fallback and considered and all(
            d.used_cohort_fallback for d in considered):
        return "LOW"
    return min_confidence([d.confidence for d in considered])


def _has_capacity_data(profile: Optional[CapacityProfile]) -> bool:
    if profile is None or profile.is_empty:
        logger.info("No capacity profile; penalty skipped")
        return False
    return True


def _penalty_parts(durations: Dict[str, DurationSpec], demand_by_stage: Dict[str, float],
                   profile: CapacityProfile, horizon_weeks: float):
    diagnostics = []
    adjusted = {}
    for stage in CONTROLLABLE_STAGES:
        diagnostic = _diagnose(stage, demand_by_stage.get(stage, 0), profile, horizon_weeks)
        diagnostics.append(diagnostic)
        adjusted[stage] = _adjusted_duration(
            stage, durations.get(stage), diagnostic.queue_delay_days
        )
    return diagnostics, adjusted


def penalize(durations: Dict[str, DurationSpec], demand_by_stage: Dict[str, float],
             capacity_profile: Optional[CapacityProfile],
             horizon_weeks: float = DEFAULT_HORIZON_WEEKS) -> Optional[CapacityPenaltyResult]:
    """Queue delays for one requisition's own pipeline counts (v1).

    Returns None without a usable capacity profile, so "no data" is never
    reported as "no constraint".
    """
    if not _has_capacity_data(capacity_profile):
        return None
    diagnostics, adjusted = _penalty_parts(
        durations, demand_by_stage, capacity_profile, horizon_weeks
    )
    return CapacityPenaltyResult(
        stage_diagnostics=diagnostics,
        top_bottlenecks=rank_bottlenecks(diagnostics),
        total_queue_delay_days=sum(d.queue_delay_days for d in diagnostics),
        confidence=overall_confidence(diagnostics, capacity_profile),
        adjusted_durations=adjusted,
        used_cohort_fallback=capacity_profile.used_cohort_fallback or any(
            d.used_cohort_fallback for d in diagnostics
        ),
        horizon_weeks=horizon_weeks,
    )


def penalize_v11(durations: Dict[str, DurationSpec], global_demand: GlobalDemand,
                 capacity_profile: Optional[CapacityProfile],
                 horizon_weeks: float = DEFAULT_HORIZON_WEEKS
                 ) -> Optional[CapacityPenaltyResultV11]:
    """Queue delays against each owner's full portfolio (v1.1).

    Stage demand is what the owner carries across all their open reqs, so
    the bottleneck can differ from the v1 single-req view. Returns None
    without a usable capacity profile.
    """
    if not _has_capacity_data(capacity_profile):
        return None

    demand_by_stage = {
        stage: effective_demand(stage, global_demand) for stage in CONTROLLABLE_STAGES
    }
    diagnostics, adjusted = _penalty_parts(
        durations, demand_by_stage, capacity_profile, horizon_weeks
    )

    for diagnostic in diagnostics:
        owner = STAGE_OWNER_MAP.get(diagnostic.stage)
        missing_recruiter = owner in ("recruiter", "both") and not global_demand.recruiter_context.owner_id
        missing_hm = owner == "hm" and not global_demand.hm_context.owner_id
        if missing_recruiter or missing_hm:
            diagnostic.confidence = "LOW"

    confidence = min_confidence([
        overall_confidence(diagnostics, capacity_profile), global_demand.confidence
    ])

    result = CapacityPenaltyResultV11(
        stage_diagnostics=diagnostics,
        top_bottlenecks=rank_bottlenecks(diagnostics),
        total_queue_delay_days=sum(d.queue_delay_days for d in diagnostics),
        confidence=confidence,
        adjusted_durations=adjusted,
        used_cohort_fallback=capacity_profile.used_cohort_fallback or any(
            d.used_cohort_fallback for d in diagnostics
        ),
        global_demand=global_demand,
        horizon_weeks=horizon_weeks,
    )
    result.recommendations = recommend(
        result, confidence, cohort_defaults=capacity_profile.cohort_defaults
    )
    return result


def apply_queue_delays(durations: Dict[str, DurationSpec],
                       penalty: CapacityPenaltyResult) -> Dict[str, DurationSpec]:
    """Simulation durations with each stage's queue delay folded in."""
    adjusted = dict(durations)
    for stage, adjustment in penalty.adjusted_durations.items():
        if adjustment.queue_delay_days > 0:
            adjusted[stage] = adjustment.adjusted
    return adjusted
