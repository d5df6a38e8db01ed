"""Data loading and validation for the Pipeline Oracle."""

import json
import logging
from datetime import datetime
from typing import Dict, List, Optional, Tuple

import pandas as pd

from pipeline_oracle.config import COHORT_CAPACITY_DEFAULTS, CONTROLLABLE_STAGES
from pipeline_oracle.durations import fit_lognormal, validate_spec
from pipeline_oracle.models import (
    Candidate, CapacityProfile, CapacityThroughput, DurationExclusion, DurationFit,
    DurationSpec, OwnerCapacity, PipelineCandidate, Requisition, SimulationParameters
)

logger = logging.getLogger(__name__)

TRANSITION_COLUMNS = ["candidate_id", "stage", "entered_at", "exited_at"]


def _pick(record: Dict, camel: str, snake: str, default=None):
    return record.get(camel, record.get(snake, default))


def _require(record: Dict, key: str, what: str):
    if key not in record:
        raise ValueError(f"{what} record is missing '{key}': {record}")
    return record[key]


def _parse_date(value: Optional[str]):
    if not value:
        return None
    return datetime.strptime(value[:10], '%Y-%m-%d').date()


def parse_duration_spec(raw: Dict) -> DurationSpec:
    spec = DurationSpec(
        kind=_require(raw, 'kind', 'Duration'),
        mu=raw.get('mu'),
        sigma=raw.get('sigma'),
        days=raw.get('days'),
        buckets=[(float(d), float(p)) for d, p in raw.get('buckets', [])],
    )
    return validate_spec(spec)


def parse_simulation_parameters(raw: Dict) -> SimulationParameters:
    rates = _pick(raw, 'stageConversionRates', 'stage_conversion_rates')
    if rates is None:
        raise ValueError("Simulation parameters are missing 'stageConversionRates'")
    durations = _pick(raw, 'stageDurations', 'stage_durations', {})

    return SimulationParameters(
        stage_conversion_rates={stage: float(rate) for stage, rate in rates.items()},
        stage_durations={stage: parse_duration_spec(spec) for stage, spec in durations.items()},
        sample_sizes={k: int(v) for k, v in _pick(raw, 'sampleSizes', 'sample_sizes', {}).items()},
    )


def parse_candidates(records: List[Dict]) -> List[Candidate]:
    return [
        Candidate(
            candidate_id=_require(r, 'candidate_id', 'Candidate'),
            req_id=_require(r, 'req_id', 'Candidate'),
            current_stage=_require(r, 'current_stage', 'Candidate'),
            disposition=r.get('disposition', 'active'),
        )
        for r in records
    ]


def parse_requisitions(records: List[Dict]) -> List[Requisition]:
    return [
        Requisition(
            req_id=_require(r, 'req_id', 'Requisition'),
            recruiter_id=r.get('recruiter_id'),
            hm_id=r.get('hm_id'),
            status=r.get('status', 'open'),
            closed_at=_parse_date(r.get('closed_at')),
        )
        for r in records
    ]


def _parse_owner(raw: Optional[Dict]) -> Optional[OwnerCapacity]:
    if not raw:
        return None
    throughputs = {}
    for stage, t in raw.get('throughputs', {}).items():
        throughputs[stage] = CapacityThroughput(
            stage=stage,
            throughput_per_week=float(_require(t, 'throughput_per_week', 'Throughput')),
            weeks_analyzed=int(t.get('weeks_analyzed', 0)),
            transitions_observed=int(t.get('transitions_observed', 0)),
            confidence=t.get('confidence', 'MED'),
        )
    return OwnerCapacity(
        owner_id=_require(raw, 'owner_id', 'Owner capacity'),
        throughputs=throughputs,
        overall_confidence=raw.get('overall_confidence', 'MED'),
    )


def parse_capacity_profile(raw: Optional[Dict]) -> Optional[CapacityProfile]:
    """Capacity profile from JSON; None when the payload carries none."""
    if not raw:
        return None
    return CapacityProfile(
        recruiter=_parse_owner(raw.get('recruiter')),
        hm=_parse_owner(raw.get('hm')),
        cohort_defaults={**COHORT_CAPACITY_DEFAULTS, **raw.get('cohort_defaults', {})},
        overall_confidence=raw.get('overall_confidence', 'MED'),
        used_cohort_fallback=bool(raw.get('used_cohort_fallback', False)),
    )


def parse_snapshot(snapshot_json: str) -> Tuple[SimulationParameters, List[Candidate],
                                                 List[Requisition], Optional[CapacityProfile]]:
    """Parse a full oracle snapshot (parameters, pipeline, reqs, capacity)."""
    data = json.loads(snapshot_json)
    params = parse_simulation_parameters(_require(data, 'parameters', 'Snapshot'))
    candidates = parse_candidates(data.get('candidates', []))
    requisitions = parse_requisitions(data.get('requisitions', []))
    profile = parse_capacity_profile(data.get('capacity_profile'))
    return params, candidates, requisitions, profile


def pipeline_for_req(candidates: List[Candidate], req_id: str) -> List[PipelineCandidate]:
    """Immutable simulation snapshot of one requisition's active candidates."""
    return [
        PipelineCandidate(candidate_id=c.candidate_id, current_stage=c.current_stage)
        for c in candidates
        if c.req_id == req_id and c.is_active
    ]


def validate_snapshot(params: SimulationParameters, candidates: List[Candidate],
                      requisitions: List[Requisition]) -> Tuple[bool, str]:
    """Validate parsed data for consistency."""
    errors = []
    req_ids = {r.req_id for r in requisitions}

    for cand in candidates:
        if req_ids and cand.req_id not in req_ids:
            errors.append(f"Candidate {cand.candidate_id} belongs to unknown req {cand.req_id}")

    for stage, rate in params.stage_conversion_rates.items():
        if not 0.0 <= rate <= 1.0:
            errors.append(f"Conversion rate for {stage} is outside [0, 1]: {rate}")
    for key, n in params.sample_sizes.items():
        if n < 0:
            errors.append(f"Sample size {key} is negative: {n}")

    if not requisitions:
        errors.append("No requisitions found in snapshot")

    if errors:
        return False, "\n".join(errors)
    return True, f"Loaded {len(requisitions)} requisitions and {len(candidates)} candidates"


def transition_durations(transitions: pd.DataFrame
                         ) -> Tuple[Dict[str, List[float]], List[DurationExclusion]]:
    """Per-stage durations in days from a stage-transition table.

    Rows still in progress (no `exited_at`) are skipped. Rows whose exit
    precedes their entry, or with no entry time, are excluded and recorded.
    """
    missing = [c for c in TRANSITION_COLUMNS if c not in transitions.columns]
    if missing:
        raise ValueError(f"Transition table is missing columns: {missing}")

    df = transitions.copy()
    df['entered_at'] = pd.to_datetime(df['entered_at'], errors='coerce')
    df['exited_at'] = pd.to_datetime(df['exited_at'], errors='coerce')
    df = df[df['exited_at'].notna()].copy()
    df['days'] = (df['exited_at'] - df['entered_at']).dt.total_seconds() / 86400.0

    exclusions = []
    for idx, row in df[df['entered_at'].isna() | (df['days'] < 0)].iterrows():
        reason = "missing_timestamp" if pd.isna(row['entered_at']) else "out_of_order"
        value = float('nan') if pd.isna(row['days']) else float(row['days'])
        exclusions.append(DurationExclusion(index=int(idx), value=value, reason=reason))
    if exclusions:
        logger.warning("Excluded %d stage transitions with bad timestamps", len(exclusions))

    valid = df[df['entered_at'].notna() & (df['days'] >= 0)]
    samples = {
        stage: group['days'].tolist()
        for stage, group in valid.groupby('stage', sort=False)
        if stage in CONTROLLABLE_STAGES
    }
    return samples, exclusions


def fit_transition_durations(transitions: pd.DataFrame) -> Dict[str, DurationFit]:
    """Log-normal fit per controllable stage from a stage-transition table."""
    samples, exclusions = transition_durations(transitions)
    fits = {}
    for stage in CONTROLLABLE_STAGES:
        fit = fit_lognormal(samples.get(stage, []))
        stage_exclusions = [
            e for e in exclusions if transitions.loc[e.index, 'stage'] == stage
        ]
        fit.exclusions = stage_exclusions + fit.exclusions
        fits[stage] = fit
    return fits
