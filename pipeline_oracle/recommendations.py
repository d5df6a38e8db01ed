"""Recommendation generation for capacity bottlenecks."""

import math
from typing import Dict, List, Optional

from pipeline_oracle.config import (
    COHORT_CAPACITY_DEFAULTS, CONFIDENCE_HEDGES, HEAVY_FALLBACK_STAGE_COUNT,
    REASSIGN_FALLBACK_SHARE, RECOMMENDATIONS_SURFACED, REDUCE_DEMAND_FACTOR
)
from pipeline_oracle.models import (
    CapacityPenaltyResult, OwnerWorkload, Recommendation, StageDiagnostic
)
from pipeline_oracle.queueing import calculate_queue_delay


def _impact(days: float) -> float:
    return round(max(0.0, days), 1)


def _increase_throughput(diag: StageDiagnostic, hedge: str, horizon_weeks: float) -> Recommendation:
    owner = "hiring manager" if diag.bottleneck_owner_type == "hm" else "recruiter"
    new_delay = calculate_queue_delay(diag.demand, diag.service_rate + 1, horizon_weeks)
    return Recommendation(
        type="increase_throughput",
        description=f"{hedge}: one more {diag.stage_name} slot per week for the {owner} "
                    f"would cut the queue from {diag.queue_delay_days:.1f} days",
        estimated_impact_days=_impact(diag.queue_delay_days - new_delay),
        details={
            'stage': diag.stage,
            'owner_type': diag.bottleneck_owner_type,
            'current_throughput': diag.service_rate,
            'suggested_throughput': diag.service_rate + 1,
        }
    )


def _reassign_workload(diag: StageDiagnostic, hedge: str, horizon_weeks: float,
                       context: Optional[OwnerWorkload]) -> Recommendation:
    if context is not None and context.open_req_count > 1 and diag.demand > 0:
        per_req = diag.demand / context.open_req_count
        excess = diag.demand - diag.service_rate * horizon_weeks
        reqs_to_move = min(max(1, math.ceil(excess / per_req)), context.open_req_count - 1)
        new_delay = calculate_queue_delay(
            diag.demand - reqs_to_move * per_req, diag.service_rate, horizon_weeks
        )
        return Recommendation(
            type="reassign_workload",
            description=f"{hedge}: moving {reqs_to_move} of {context.open_req_count} open reqs "
                        f"to another owner would relieve the {diag.stage_name} queue",
            estimated_impact_days=_impact(diag.queue_delay_days - new_delay),
            details={
                'stage': diag.stage,
                'owner_id': context.owner_id,
                'open_req_count': context.open_req_count,
                'reqs_to_move': reqs_to_move,
            }
        )

    return Recommendation(
        type="reassign_workload",
        description=f"{hedge}: share {diag.stage_name} load between recruiter and hiring "
                    f"manager, or bring in another interviewer",
        estimated_impact_days=_impact(diag.queue_delay_days * REASSIGN_FALLBACK_SHARE),
        details={'stage': diag.stage, 'owner_type': diag.bottleneck_owner_type}
    )


def _reduce_demand(diag: StageDiagnostic, typical: float, hedge: str,
                   horizon_weeks: float) -> Recommendation:
    target = typical * horizon_weeks
    new_delay = calculate_queue_delay(min(diag.demand, target), diag.service_rate, horizon_weeks)
    return Recommendation(
        type="reduce_demand",
        description=f"{hedge}: {diag.stage_name} holds {diag.demand:.0f} candidates against a "
                    f"typical {target:.0f}; tighten the top of the funnel",
        estimated_impact_days=_impact(diag.queue_delay_days - new_delay),
        details={'stage': diag.stage, 'demand': diag.demand, 'typical_demand': target}
    )


def _improve_data(fallback_stages: List[str], hedge: str) -> Recommendation:
    if fallback_stages:
        description = (f"{hedge}: capacity for {', '.join(fallback_stages)} comes from cohort "
                       f"defaults; log more stage transitions to sharpen the estimate")
    else:
        description = f"{hedge}: capacity data is thin; log more stage transitions"
    return Recommendation(
        type="improve_data",
        description=description,
        estimated_impact_days=0.0,
        details={'fallback_stages': fallback_stages}
    )


def recommend(penalty_result: CapacityPenaltyResult, confidence: str,
              cohort_defaults: Optional[Dict[str, float]] = None,
              limit: Optional[int] = None) -> List[Recommendation]:
    """Generate actionable recommendations from a capacity penalty result.

    Ordered by estimated impact (days saved), largest first. `limit` caps the
    list; the full list is returned by default.
    """
    hedge = CONFIDENCE_HEDGES.get(confidence, CONFIDENCE_HEDGES["LOW"])
    cohort_defaults = cohort_defaults or COHORT_CAPACITY_DEFAULTS
    horizon_weeks = penalty_result.horizon_weeks
    global_demand = getattr(penalty_result, 'global_demand', None)
    context = global_demand.recruiter_context if global_demand is not None else None

    recommendations = []
    for diag in penalty_result.stage_diagnostics:
        if diag.queue_delay_days <= 0:
            continue

        if diag.bottleneck_owner_type in ("recruiter", "hm"):
            recommendations.append(_increase_throughput(diag, hedge, horizon_weeks))
        else:
            recommendations.append(_reassign_workload(diag, hedge, horizon_weeks, context))

        typical = cohort_defaults.get(diag.stage, COHORT_CAPACITY_DEFAULTS.get(diag.stage))
        if typical and diag.demand > REDUCE_DEMAND_FACTOR * typical * horizon_weeks:
            recommendations.append(_reduce_demand(diag, typical, hedge, horizon_weeks))

    fallback_stages = [d.stage_name for d in penalty_result.stage_diagnostics if d.used_cohort_fallback]
    if confidence == "LOW" or len(fallback_stages) >= HEAVY_FALLBACK_STAGE_COUNT:
        recommendations.append(_improve_data(fallback_stages, hedge))

    recommendations.sort(key=lambda r: -r.estimated_impact_days)
    if limit is not None:
        recommendations = recommendations[:limit]
    return recommendations


def surfaced(recommendations: List[Recommendation]) -> List[Recommendation]:
    """The few recommendations worth showing up front."""
    return recommendations[:RECOMMENDATIONS_SURFACED]
