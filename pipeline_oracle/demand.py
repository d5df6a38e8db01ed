"""Portfolio-wide demand aggregation for recruiters and hiring managers."""

import logging
from typing import Dict, List, Optional, Sequence

from pipeline_oracle.config import STAGE_OWNER_MAP
from pipeline_oracle.models import (
    Candidate, ConfidenceReason, GlobalDemand, OwnerWorkload, Requisition
)

logger = logging.getLogger(__name__)


def _count_by_stage(candidates: Sequence[Candidate]) -> Dict[str, int]:
    counts: Dict[str, int] = {}
    for cand in candidates:
        counts[cand.current_stage] = counts.get(cand.current_stage, 0) + 1
    return counts


def _owner_workload(owner_id: Optional[str], reqs: List[Requisition],
                    candidates: Sequence[Candidate]) -> OwnerWorkload:
    return OwnerWorkload(
        owner_id=owner_id,
        open_req_count=len(reqs),
        total_candidates_in_flight=len(candidates),
        req_ids=[r.req_id for r in reqs],
    )


def resolve_demand_scope(recruiter_id: Optional[str], hm_id: Optional[str]) -> str:
    if recruiter_id:
        return "global_by_recruiter"
    if hm_id:
        return "global_by_hm"
    return "single_req"


def aggregate(selected_req_id: str, recruiter_id: Optional[str], hm_id: Optional[str],
              candidates: Sequence[Candidate],
              requisitions: Sequence[Requisition]) -> GlobalDemand:
    """Count in-flight candidates per stage for the selected req and each owner's portfolio.

    Recruiter scope wins when both owners are known. Without either id the
    demand falls back to the selected requisition alone, which understates
    the real workload and is graded LOW.
    """
    reasons = []
    open_reqs = [r for r in requisitions if r.is_open]
    active = [c for c in candidates if c.is_active]

    recruiter_reqs = [r for r in open_reqs if recruiter_id and r.recruiter_id == recruiter_id]
    hm_reqs = [r for r in open_reqs if hm_id and r.hm_id == hm_id]
    recruiter_req_ids = {r.req_id for r in recruiter_reqs}
    hm_req_ids = {r.req_id for r in hm_reqs}

    recruiter_candidates = [c for c in active if c.req_id in recruiter_req_ids]
    hm_candidates = [c for c in active if c.req_id in hm_req_ids]
    selected_candidates = [c for c in active if c.req_id == selected_req_id]

    demand_scope = resolve_demand_scope(recruiter_id, hm_id)
    if demand_scope == "single_req":
        confidence = "LOW"
        reasons.append(ConfidenceReason(
            type="missing_data",
            message="Both recruiter_id and hm_id missing - demand limited to the selected "
                    "req, which understates true workload",
            impact="negative",
        ))
    elif recruiter_id and hm_id:
        confidence = "HIGH"
        if len(recruiter_reqs) > 1:
            reasons.append(ConfidenceReason(
                type="sample_size",
                message=f"Using global workload: Recruiter has {len(recruiter_reqs)} open reqs",
                impact="positive",
            ))
    elif recruiter_id:
        confidence = "MED"
        reasons.append(ConfidenceReason(
            type="missing_data",
            message="hm_id missing - HM demand limited to the selected req",
            impact="neutral",
        ))
    else:
        confidence = "MED"
        reasons.append(ConfidenceReason(
            type="missing_data",
            message="recruiter_id missing - Recruiter demand limited to the selected req",
            impact="neutral",
        ))

    if not selected_candidates:
        confidence = "LOW"
        reasons.append(ConfidenceReason(
            type="sample_size",
            message="Selected req has 0 active candidates in pipeline",
            impact="negative",
        ))

    logger.info(
        "Demand scope for %s: %s (recruiter reqs=%d, hm reqs=%d)",
        selected_req_id, demand_scope, len(recruiter_reqs), len(hm_reqs)
    )

    return GlobalDemand(
        demand_scope=demand_scope,
        recruiter_demand=_count_by_stage(recruiter_candidates),
        hm_demand=_count_by_stage(hm_candidates),
        selected_req_pipeline=_count_by_stage(selected_candidates),
        recruiter_context=_owner_workload(recruiter_id, recruiter_reqs, recruiter_candidates),
        hm_context=_owner_workload(hm_id, hm_reqs, hm_candidates),
        confidence=confidence,
        confidence_reasons=reasons,
    )


def effective_demand(stage: str, demand: GlobalDemand) -> int:
    """Demand the stage owner actually faces.

    Recruiter-owned and shared stages read the recruiter portfolio, HM-owned
    stages the HM portfolio. An owner without an id only sees the selected req.
    """
    owner = STAGE_OWNER_MAP.get(stage)
    if owner in ("recruiter", "both") and demand.recruiter_context.owner_id:
        return demand.recruiter_demand.get(stage, 0)
    if owner == "hm" and demand.hm_context.owner_id:
        return demand.hm_demand.get(stage, 0)
    return demand.selected_req_pipeline.get(stage, 0)
