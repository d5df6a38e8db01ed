"""Shared fixtures for the Pipeline Oracle tests."""

import math
from datetime import date

import pytest

from pipeline_oracle.config import (
    COHORT_CAPACITY_DEFAULTS, CONTROLLABLE_STAGES, HM_SCREEN, OFFER, ONSITE, SCREEN
)
from pipeline_oracle.models import (
    CapacityProfile, CapacityThroughput, DurationSpec, OwnerCapacity, PipelineCandidate,
    SimulationParameters
)


def throughput(stage, per_week, confidence="HIGH"):
    return CapacityThroughput(
        stage=stage,
        throughput_per_week=per_week,
        weeks_analyzed=12,
        transitions_observed=int(per_week * 12),
        confidence=confidence,
    )


def make_profile(recruiter_rates=None, hm_rates=None, confidence="HIGH",
                 used_cohort_fallback=False):
    """Capacity profile from {stage: weekly throughput} maps."""
    recruiter = None
    if recruiter_rates is not None:
        recruiter = OwnerCapacity(
            owner_id="rec-1",
            throughputs={s: throughput(s, r, confidence) for s, r in recruiter_rates.items()},
        )
    hm = None
    if hm_rates is not None:
        hm = OwnerCapacity(
            owner_id="hm-1",
            throughputs={s: throughput(s, r, confidence) for s, r in hm_rates.items()},
        )
    return CapacityProfile(
        recruiter=recruiter,
        hm=hm,
        cohort_defaults=dict(COHORT_CAPACITY_DEFAULTS),
        used_cohort_fallback=used_cohort_fallback,
    )


def candidates_at(counts):
    """Pipeline snapshot with `count` candidates at each stage."""
    pipeline = []
    for stage, count in counts.items():
        for i in range(count):
            pipeline.append(PipelineCandidate(candidate_id=f"{stage}-{i}", current_stage=stage))
    return pipeline


@pytest.fixture
def as_of():
    return date(2024, 3, 1)


@pytest.fixture
def rich_params():
    """Well-observed parameters: every stage fitted, 30 rate samples, 20 duration samples."""
    sample_sizes = {}
    for stage in CONTROLLABLE_STAGES:
        sample_sizes[f"{stage}_rate"] = 30
        sample_sizes[f"{stage}_duration"] = 20
    return SimulationParameters(
        stage_conversion_rates={SCREEN: 0.5, HM_SCREEN: 0.6, ONSITE: 0.5, OFFER: 0.9},
        stage_durations={
            stage: DurationSpec(kind="lognormal", mu=math.log(5.0), sigma=0.4)
            for stage in CONTROLLABLE_STAGES
        },
        sample_sizes=sample_sizes,
    )


@pytest.fixture
def sparse_params():
    """No observations at all."""
    return SimulationParameters(stage_conversion_rates={}, stage_durations={}, sample_sizes={})


@pytest.fixture
def constant_durations():
    return {
        SCREEN: DurationSpec(kind="constant", days=2.0),
        HM_SCREEN: DurationSpec(kind="constant", days=3.0),
        ONSITE: DurationSpec(kind="constant", days=4.0),
        OFFER: DurationSpec(kind="constant", days=5.0),
    }


@pytest.fixture
def certain_rates():
    return {stage: 1.0 for stage in CONTROLLABLE_STAGES}


@pytest.fixture
def pipeline():
    return candidates_at({SCREEN: 6, HM_SCREEN: 3, ONSITE: 2, OFFER: 1})


@pytest.fixture
def balanced_profile():
    return make_profile(
        recruiter_rates={SCREEN: 5.0, ONSITE: 3.0, OFFER: 2.0},
        hm_rates={HM_SCREEN: 4.0},
    )


@pytest.fixture
def profile_factory():
    return make_profile
