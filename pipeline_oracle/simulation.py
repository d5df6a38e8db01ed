"""Monte Carlo simulation engine for the Pipeline Oracle."""

import logging
import math
from datetime import date, timedelta
from typing import Dict, Optional, Sequence

import numpy as np
from scipy import stats as stats_module

from pipeline_oracle.analysis import calculate_confidence_interval, percentile_days
from pipeline_oracle.config import (
    CONTROLLABLE_STAGES, DEFAULT_DURATION_DAYS, DEFAULT_PASS_RATE, ITERATIONS_RANGE,
    SIMULATION_BLOCK_SIZE, TERMINAL_STAGES
)
from pipeline_oracle.knobs import stable_hash, validate_iterations
from pipeline_oracle.models import DurationSpec, ForecastResult, PipelineCandidate

logger = logging.getLogger(__name__)

_UNIFORM_EPS = 1e-12


def seed_sequence(seed: str) -> np.random.SeedSequence:
    return np.random.SeedSequence(stable_hash(seed))


def add_days(as_of: date, days: float) -> date:
    """Calendar date `days` after `as_of`, rounding half days up."""
    return as_of + timedelta(days=int(math.floor(days + 0.5)))


def sample_stage_durations(spec: Optional[DurationSpec], u: np.ndarray) -> np.ndarray:
    """Inverse-CDF draw of stage durations from uniforms `u`.

    A larger uniform always maps to a longer (or equal) duration, so shifted
    distributions fed the same uniforms never produce earlier finishes.
    """
    u = np.clip(u, _UNIFORM_EPS, 1 - _UNIFORM_EPS)
    if spec is None:
        return np.full(u.shape, DEFAULT_DURATION_DAYS)
    if spec.kind == "constant":
        return np.full(u.shape, float(spec.days))
    if spec.kind == "lognormal":
        return np.exp(spec.mu + spec.sigma * stats_module.norm.ppf(u))

    days = np.array([d for d, _ in spec.buckets], dtype=float)
    cumulative = np.cumsum([p for _, p in spec.buckets])
    idx = np.searchsorted(cumulative, u, side="left")
    return days[np.minimum(idx, len(days) - 1)]


def active_start_indices(candidates: Sequence[PipelineCandidate]) -> np.ndarray:
    """Funnel position of every candidate still able to convert."""
    starts = []
    for cand in candidates:
        if cand.current_stage in TERMINAL_STAGES:
            continue
        if cand.current_stage not in CONTROLLABLE_STAGES:
            logger.warning(
                "Candidate %s at stage %s is outside the funnel; skipped",
                cand.candidate_id, cand.current_stage
            )
            continue
        starts.append(CONTROLLABLE_STAGES.index(cand.current_stage))
    return np.array(starts, dtype=int)


def simulate_fill_days(candidates: Sequence[PipelineCandidate], rates: Dict[str, float],
                       durations: Dict[str, DurationSpec], iterations: int,
                       seed: str) -> np.ndarray:
    """Days until the first hire in each iteration (inf when nobody converts).

    Iterations run in fixed-size blocks; block k draws from the k-th child of
    the seed's SeedSequence, so each block is reproducible on its own.
    """
    starts = active_start_indices(candidates)
    if len(starts) == 0:
        return np.full(iterations, np.inf)

    n_stages = len(CONTROLLABLE_STAGES)
    pass_rates = np.array([rates.get(s, DEFAULT_PASS_RATE) for s in CONTROLLABLE_STAGES])
    in_path = np.arange(n_stages)[None, :] >= starts[:, None]

    n_blocks = math.ceil(iterations / SIMULATION_BLOCK_SIZE)
    children = seed_sequence(seed).spawn(n_blocks)
    fill_days = np.empty(iterations)

    for block, child in enumerate(children):
        lo = block * SIMULATION_BLOCK_SIZE
        hi = min(iterations, lo + SIMULATION_BLOCK_SIZE)
        rng = np.random.default_rng(child)

        # [iteration, candidate, stage, (outcome draw, duration draw)]
        u = rng.random((hi - lo, len(starts), n_stages, 2))
        passed = u[..., 0] < pass_rates

        days = np.empty(u.shape[:-1])
        for j, stage in enumerate(CONTROLLABLE_STAGES):
            days[..., j] = sample_stage_durations(durations.get(stage), u[..., j, 1])

        hired = np.all(passed | ~in_path, axis=2)
        total = np.where(in_path, days, 0.0).sum(axis=2)
        fill_days[lo:hi] = np.where(hired, total, np.inf).min(axis=1)

    return fill_days


def simulate(candidates: Sequence[PipelineCandidate], rates: Dict[str, float],
             durations: Dict[str, DurationSpec], iterations: int, seed: str,
             as_of: date, confidence_level: str = "LOW") -> Optional[ForecastResult]:
    """Run the pipeline forecast; None when no iteration fills the requisition."""
    validate_iterations(iterations)
    if iterations >= ITERATIONS_RANGE["performance_warning_threshold"]:
        logger.info("Running %d iterations; expect slower recomputation", iterations)
    logger.debug("Simulating %d candidates, seed=%s, rates=%s", len(candidates), seed, rates)

    fill_days = simulate_fill_days(candidates, rates, durations, iterations, seed)
    samples = np.sort(fill_days[np.isfinite(fill_days)])

    if len(samples) == 0:
        logger.warning("No iteration produced a hire (seed=%s); forecast unavailable", seed)
        return None

    p10, p50, p90 = percentile_days(samples)
    ci_lower, ci_upper = calculate_confidence_interval(len(samples), iterations)

    return ForecastResult(
        p10_date=add_days(as_of, p10),
        p50_date=add_days(as_of, p50),
        p90_date=add_days(as_of, p90),
        p10_days=p10,
        p50_days=p50,
        p90_days=p90,
        simulated_days=samples.tolist(),
        confidence_level=confidence_level,
        success_probability=len(samples) / iterations,
        success_ci_lower=ci_lower,
        success_ci_upper=ci_upper,
        debug={"iterations": iterations, "seed": seed},
    )


def probability_by_target(result: ForecastResult, as_of: date, target_date: date) -> float:
    """Share of simulated fills landing on or before `target_date`."""
    if not result.simulated_days:
        return 0.0
    target_days = (target_date - as_of).days
    samples = np.asarray(result.simulated_days)
    return float(np.mean(samples <= target_days))
