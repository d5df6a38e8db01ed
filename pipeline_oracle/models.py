"""Data models for the Pipeline Oracle forecasting engine."""

from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Optional, Tuple

from pipeline_oracle.config import (
    ACTIVE_DISPOSITION, CONFIDENCE_ORDER, DEFAULT_HORIZON_WEEKS, QUEUE_MODEL_VERSION,
    SHRINKAGE_SAMPLE_THRESHOLD, TERMINAL_STAGES
)


@dataclass
class DurationSpec:
    kind: str
    mu: Optional[float] = None
    sigma: Optional[float] = None
    days: Optional[float] = None
    buckets: List[Tuple[float, float]] = field(default_factory=list)


@dataclass
class SimulationParameters:
    stage_conversion_rates: Dict[str, float]
    stage_durations: Dict[str, DurationSpec]
    sample_sizes: Dict[str, int] = field(default_factory=dict)

    def rate_sample_size(self, stage: str) -> int:
        return int(self.sample_sizes.get(f"{stage}_rate", 0))

    def duration_sample_size(self, stage: str) -> Optional[int]:
        value = self.sample_sizes.get(f"{stage}_duration")
        return None if value is None else int(value)


@dataclass
class StageRateInfo:
    stage: str
    stage_name: str
    observed: float
    prior: float
    m: float
    shrunk: float
    n: int

    @property
    def relies_on_shrinkage(self) -> bool:
        return self.n < SHRINKAGE_SAMPLE_THRESHOLD


@dataclass
class StageDurationInfo:
    stage: str
    stage_name: str
    model: str
    median_days: float
    n: int
    n_source: str
    distribution: Optional[DurationSpec] = None

    @property
    def is_fitted(self) -> bool:
        return self.model == "lognormal"


@dataclass
class DurationExclusion:
    index: int
    value: float
    reason: str


@dataclass
class DurationFit:
    spec: Optional[DurationSpec]
    n: int
    exclusions: List[DurationExclusion] = field(default_factory=list)


@dataclass(frozen=True)
class PipelineCandidate:
    candidate_id: str
    current_stage: str


@dataclass
class Candidate:
    candidate_id: str
    req_id: str
    current_stage: str
    disposition: Optional[str] = ACTIVE_DISPOSITION

    @property
    def is_active(self) -> bool:
        if self.current_stage in TERMINAL_STAGES:
            return False
        return (self.disposition or ACTIVE_DISPOSITION).lower() == ACTIVE_DISPOSITION


@dataclass
class Requisition:
    req_id: str
    recruiter_id: Optional[str] = None
    hm_id: Optional[str] = None
    status: str = "open"
    closed_at: Optional[date] = None

    @property
    def is_open(self) -> bool:
        return self.status == "open" and self.closed_at is None


@dataclass
class ConfidenceReason:
    type: str
    message: str
    impact: str


@dataclass
class CapacityThroughput:
    stage: str
    throughput_per_week: float
    weeks_analyzed: int
    transitions_observed: int
    confidence: str


@dataclass
class OwnerCapacity:
    owner_id: str
    throughputs: Dict[str, CapacityThroughput]
    overall_confidence: str = "MED"


@dataclass
class CapacityProfile:
    recruiter: Optional[OwnerCapacity]
    hm: Optional[OwnerCapacity]
    cohort_defaults: Dict[str, float]
    overall_confidence: str = "MED"
    used_cohort_fallback: bool = False
    confidence_reasons: List[ConfidenceReason] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return self.recruiter is None and self.hm is None


@dataclass
class OwnerWorkload:
    owner_id: Optional[str]
    open_req_count: int
    total_candidates_in_flight: int
    req_ids: List[str] = field(default_factory=list)


@dataclass
class GlobalDemand:
    demand_scope: str
    recruiter_demand: Dict[str, int]
    hm_demand: Dict[str, int]
    selected_req_pipeline: Dict[str, int]
    recruiter_context: OwnerWorkload
    hm_context: OwnerWorkload
    confidence: str
    confidence_reasons: List[ConfidenceReason] = field(default_factory=list)


@dataclass
class StageDiagnostic:
    stage: str
    stage_name: str
    demand: float
    service_rate: float
    queue_delay_days: float
    is_bottleneck: bool
    bottleneck_owner_type: str
    confidence: str
    used_cohort_fallback: bool = False


@dataclass
class AdjustedDuration:
    stage: str
    original_median_days: float
    queue_delay_days: float
    adjusted_median_days: float
    adjusted: Optional[DurationSpec] = None


@dataclass
class Recommendation:
    type: str
    description: str
    estimated_impact_days: float
    details: Dict = field(default_factory=dict)


@dataclass
class CapacityPenaltyResult:
    stage_diagnostics: List[StageDiagnostic]
    top_bottlenecks: List[StageDiagnostic]
    total_queue_delay_days: float
    confidence: str
    adjusted_durations: Dict[str, AdjustedDuration] = field(default_factory=dict)
    used_cohort_fallback: bool = False
    horizon_weeks: float = DEFAULT_HORIZON_WEEKS
    version: str = "v1"


@dataclass
class CapacityPenaltyResultV11(CapacityPenaltyResult):
    global_demand: Optional[GlobalDemand] = None
    recommendations: List[Recommendation] = field(default_factory=list)
    version: str = QUEUE_MODEL_VERSION


@dataclass
class SimulationInputs:
    stage_rates: List[StageRateInfo]
    stage_durations: List[StageDurationInfo]
    rates: Dict[str, float]
    durations: Dict[str, DurationSpec]
    confidence_level: str
    confidence_reasons: List[ConfidenceReason] = field(default_factory=list)


@dataclass
class ForecastResult:
    p10_date: date
    p50_date: date
    p90_date: date
    p10_days: float
    p50_days: float
    p90_days: float
    simulated_days: List[float]
    confidence_level: str
    success_probability: float
    success_ci_lower: float
    success_ci_upper: float
    debug: Dict = field(default_factory=dict)


@dataclass
class CapacityAwareForecastResult:
    pipeline_only: ForecastResult
    capacity_aware: ForecastResult
    capacity_constrained: bool
    p50_delta_days: int
    penalty: CapacityPenaltyResult
    capacity_confidence: str
    capacity_reasons: List[ConfidenceReason] = field(default_factory=list)
    debug: Dict = field(default_factory=dict)

    @property
    def capacity_bottlenecks(self) -> List[StageDiagnostic]:
        return self.penalty.top_bottlenecks


@dataclass
class CapacityExplainData:
    is_available: bool
    profile: Optional[CapacityProfile] = None
    penalty_result: Optional[CapacityPenaltyResult] = None
    penalty_result_v11: Optional[CapacityPenaltyResultV11] = None
    total_queue_delay_days: float = 0.0
    global_demand: Optional[GlobalDemand] = None
    recommendations: List[Recommendation] = field(default_factory=list)
    unavailable_reason: Optional[str] = None


@dataclass
class OracleExplainData:
    pipeline_counts: Dict[str, int]
    stage_rates: List[StageRateInfo]
    stage_durations: List[StageDurationInfo]
    iterations: int
    seed: str
    confidence_level: str
    confidence_reasons: List[ConfidenceReason]
    capacity: CapacityExplainData


def min_confidence(levels: List[str]) -> str:
    """Lowest capacity grade in `levels` (LOW when empty)."""
    if not levels:
        return "LOW"
    return CONFIDENCE_ORDER[min(CONFIDENCE_ORDER.index(level) for level in levels)]
