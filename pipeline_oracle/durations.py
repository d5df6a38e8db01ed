"""Stage duration models: fitting, selection and queue-delay shifting."""

import logging
import math
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
from scipy import stats as stats_module

from pipeline_oracle.config import (
    CONTROLLABLE_STAGES, DEFAULT_DURATION_DAYS, GLOBAL_DURATION_SIGMA,
    GLOBAL_STAGE_MEDIAN_DAYS, STAGE_LABELS
)
from pipeline_oracle.models import (
    DurationExclusion, DurationFit, DurationSpec, SimulationParameters, StageDurationInfo
)

logger = logging.getLogger(__name__)

DURATION_KINDS = ("empirical", "lognormal", "constant")


def validate_spec(spec: DurationSpec) -> DurationSpec:
    """Check a duration spec, sorting empirical buckets by days; raises ValueError."""
    if spec.kind not in DURATION_KINDS:
        raise ValueError(f"Unknown duration kind '{spec.kind}'")
    if spec.kind == "lognormal":
        if spec.mu is None or spec.sigma is None or spec.sigma < 0:
            raise ValueError("lognormal duration needs mu and a non-negative sigma")
    elif spec.kind == "constant":
        if spec.days is None or spec.days < 0:
            raise ValueError("constant duration needs non-negative days")
    else:
        if not spec.buckets:
            raise ValueError("empirical duration needs at least one bucket")
        total = sum(p for _, p in spec.buckets)
        if any(d < 0 or p < 0 for d, p in spec.buckets) or not math.isclose(total, 1.0, abs_tol=1e-6):
            raise ValueError("empirical buckets need non-negative days and probabilities summing to 1")
        spec.buckets = sorted(spec.buckets, key=lambda bucket: bucket[0])
    return spec


def distribution_median(spec: Optional[DurationSpec]) -> float:
    if spec is None:
        return DEFAULT_DURATION_DAYS
    if spec.kind == "lognormal" and spec.mu is not None:
        return math.exp(spec.mu)
    if spec.kind == "constant":
        return spec.days if spec.days is not None else DEFAULT_DURATION_DAYS
    if spec.kind == "empirical" and spec.buckets:
        cumulative = 0.0
        for days, probability in spec.buckets:
            cumulative += probability
            if cumulative >= 0.5:
                return days
        return spec.buckets[-1][0]
    return DEFAULT_DURATION_DAYS


def global_duration_spec(stage: str) -> DurationSpec:
    """Log-normal fallback centred on the global median for the stage."""
    median = GLOBAL_STAGE_MEDIAN_DAYS.get(stage, DEFAULT_DURATION_DAYS)
    return DurationSpec(kind="lognormal", mu=math.log(median), sigma=GLOBAL_DURATION_SIGMA)


def resolve_sample_size(params: SimulationParameters, stage: str) -> Tuple[int, str]:
    """Sample size backing a stage's duration model, and where it came from.

    Stages without a duration-specific count borrow the pass-rate sample size.
    """
    duration_n = params.duration_sample_size(stage)
    if duration_n is not None:
        return duration_n, "duration"

    rate_n = params.rate_sample_size(stage)
    if f"{stage}_rate" in params.sample_sizes:
        logger.warning("No duration sample size for %s; using rate sample size %d", stage, rate_n)
        return rate_n, "rate"
    return 0, "none"


def select_duration_model(spec: Optional[DurationSpec], n: int, min_n: int,
                          global_spec: DurationSpec) -> Tuple[str, DurationSpec]:
    """Pick the model kind and the distribution the simulator should sample."""
    if spec is None:
        return "global", global_spec

    validate_spec(spec)
    if spec.kind == "lognormal":
        if n >= min_n:
            return "lognormal", spec
        return "global", global_spec
    if spec.kind == "constant":
        return "constant", spec
    return "empirical", spec


def build_stage_durations(params: SimulationParameters, min_n: int,
                          global_durations: Optional[Dict[str, DurationSpec]] = None
                          ) -> List[StageDurationInfo]:
    global_durations = global_durations or {}

    infos = []
    for stage in CONTROLLABLE_STAGES:
        n, n_source = resolve_sample_size(params, stage)
        global_spec = global_durations.get(stage) or global_duration_spec(stage)
        model, chosen = select_duration_model(
            params.stage_durations.get(stage), n, min_n, global_spec
        )
        if model == "global":
            logger.warning(
                "Stage %s uses global duration fallback (n=%d, min_n=%d)", stage, n, min_n
            )

        infos.append(StageDurationInfo(
            stage=stage,
            stage_name=STAGE_LABELS.get(stage, stage),
            model=model,
            median_days=distribution_median(chosen),
            n=n,
            n_source=n_source,
            distribution=chosen,
        ))
    return infos


def durations_by_stage(infos: List[StageDurationInfo]) -> Dict[str, DurationSpec]:
    """Stage to selected duration model, as the simulator takes it."""
    return {info.stage: info.distribution for info in infos}


def clean_samples(samples: Sequence[float], allow_zero: bool = True
                  ) -> Tuple[np.ndarray, List[DurationExclusion]]:
    """Split raw durations into usable values and recorded exclusions."""
    values = np.asarray(samples, dtype=float)
    exclusions = []
    keep = np.ones(len(values), dtype=bool)

    for idx, value in enumerate(values):
        if not np.isfinite(value):
            reason = "non_finite"
        elif value < 0:
            reason = "negative_duration"
        elif value == 0 and not allow_zero:
            reason = "zero_duration"
        else:
            continue
        keep[idx] = False
        exclusions.append(DurationExclusion(index=idx, value=float(value), reason=reason))

    if exclusions:
        logger.warning("Excluded %d of %d duration samples", len(exclusions), len(values))
    return values[keep], exclusions


def fit_lognormal(samples: Sequence[float]) -> DurationFit:
    """Log-normal fit (location fixed at 0) to the strictly positive samples."""
    values, exclusions = clean_samples(samples, allow_zero=False)
    if len(values) == 0:
        return DurationFit(spec=None, n=0, exclusions=exclusions)

    sigma, _, scale = stats_module.lognorm.fit(values, floc=0)
    spec = DurationSpec(kind="lognormal", mu=float(np.log(scale)), sigma=float(sigma))
    return DurationFit(spec=spec, n=len(values), exclusions=exclusions)


def empirical_from_samples(samples: Sequence[float]) -> DurationFit:
    """Discrete PMF over whole days."""
    values, exclusions = clean_samples(samples)
    if len(values) == 0:
        return DurationFit(spec=None, n=0, exclusions=exclusions)

    days, counts = np.unique(np.round(values), return_counts=True)
    probabilities = counts / counts.sum()
    buckets = [(float(d), float(p)) for d, p in zip(days, probabilities)]
    return DurationFit(
        spec=DurationSpec(kind="empirical", buckets=buckets),
        n=len(values),
        exclusions=exclusions,
    )


def shift_duration(spec: Optional[DurationSpec], delay_days: float) -> DurationSpec:
    """Add a queue delay so that every draw moves later, never earlier."""
    if spec is None:
        return DurationSpec(kind="constant", days=DEFAULT_DURATION_DAYS + delay_days)
    if delay_days <= 0:
        return spec
    if spec.kind == "lognormal":
        return DurationSpec(
            kind="lognormal",
            mu=math.log(math.exp(spec.mu) + delay_days),
            sigma=spec.sigma,
        )
    if spec.kind == "constant":
        return DurationSpec(kind="constant", days=spec.days + delay_days)
    return DurationSpec(
        kind="empirical",
        buckets=[(days + delay_days, probability) for days, probability in spec.buckets],
    )
