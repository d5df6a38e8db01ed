"""Queue delay maths and service-rate resolution for capacity-limited stages.

An owner who receives more candidates than they can process in the horizon
builds a backlog. The delay is the time to clear the excess at the owner's
service rate, the fluid limit of an overloaded M/M/1 queue:

    delay_days = (demand - mu * H) / mu * 7 * queue_factor    if demand > mu * H
    delay_days = 0                                             otherwise

with mu in candidates per week and H the horizon in weeks. The result is
capped at MAX_QUEUE_DELAY_DAYS; mu = 0 with any demand hits the cap.
"""

import logging
from typing import Tuple

from pipeline_oracle.config import (
    COHORT_CAPACITY_DEFAULTS, DEFAULT_HORIZON_WEEKS, DEFAULT_QUEUE_FACTOR, HM_SCREEN,
    MAX_QUEUE_DELAY_DAYS
)
from pipeline_oracle.models import CapacityProfile

logger = logging.getLogger(__name__)


def calculate_queue_delay(demand: float, service_rate: float,
                          horizon_weeks: float = DEFAULT_HORIZON_WEEKS,
                          queue_factor: float = DEFAULT_QUEUE_FACTOR) -> float:
    """Days of extra wait when demand exceeds what the owner clears over the horizon, capped."""
    service_rate = max(service_rate, 0.0)
    capacity = service_rate * horizon_weeks
    if demand <= capacity:
        return 0.0
    if service_rate == 0:
        return MAX_QUEUE_DELAY_DAYS

    raw_delay = (demand - capacity) / service_rate * 7 * queue_factor
    return min(raw_delay, MAX_QUEUE_DELAY_DAYS)


def resolve_service_rate(stage: str, profile: CapacityProfile) -> Tuple[float, str, bool]:
    """Weekly throughput for a stage as (rate, confidence, used_cohort_fallback).

    HM-screen capacity comes from the HM first, then from the recruiter's
    view of HM screens. Missing or LOW-confidence owner data falls back to
    the cohort default.
    """
    owners = [profile.hm, profile.recruiter] if stage == HM_SCREEN else [profile.recruiter]

    for owner in owners:
        if owner is None:
            continue
        throughput = owner.throughputs.get(stage)
        if throughput is None or throughput.confidence == "LOW":
            continue
        return throughput.throughput_per_week, throughput.confidence, False

    rate = profile.cohort_defaults.get(stage, COHORT_CAPACITY_DEFAULTS.get(stage, 0.0))
    logger.warning("No reliable owner throughput for %s; using cohort default %.1f/week",
                   stage, rate)
    return rate, "LOW", True
