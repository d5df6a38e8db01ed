"""Bayesian shrinkage of per-stage pass rates."""

import logging
from typing import Dict, List, Optional

from pipeline_oracle.config import (
    CONTROLLABLE_STAGES, DEFAULT_PASS_RATE, DEFAULT_PRIOR_RATES, STAGE_LABELS
)
from pipeline_oracle.models import SimulationParameters, StageRateInfo

logger = logging.getLogger(__name__)


def shrink(observed: float, prior: float, n: int, m: float) -> float:
    """Blend an observed rate with its prior: (n*observed + m*prior) / (n + m).

    `m` is the prior's pseudo-count. With n=0 the prior is returned as-is.
    """
    if not 0.0 <= observed <= 1.0:
        raise ValueError(f"observed rate must be in [0, 1], got {observed}")
    if not 0.0 <= prior <= 1.0:
        raise ValueError(f"prior rate must be in [0, 1], got {prior}")
    if n < 0:
        raise ValueError(f"sample size must be >= 0, got {n}")
    if m <= 0:
        raise ValueError(f"prior weight must be > 0, got {m}")

    if n == 0:
        return prior
    shrunk = (n * observed + m * prior) / (n + m)
    return min(1.0, max(0.0, shrunk))


def build_stage_rates(params: SimulationParameters, m: float,
                      observed_rates: Optional[Dict[str, float]] = None,
                      prior_rates: Optional[Dict[str, float]] = None) -> List[StageRateInfo]:
    """Shrunk pass rate for every controllable stage."""
    observed_rates = observed_rates or {}
    prior_rates = prior_rates or {}

    infos = []
    for stage in CONTROLLABLE_STAGES:
        observed = observed_rates.get(
            stage, params.stage_conversion_rates.get(stage, DEFAULT_PASS_RATE)
        )
        prior = prior_rates.get(stage, DEFAULT_PRIOR_RATES.get(stage, DEFAULT_PASS_RATE))
        n = params.rate_sample_size(stage)
        shrunk = shrink(observed, prior, n, m)
        if n == 0:
            logger.warning("No rate samples for %s; using prior %.2f", stage, prior)

        infos.append(StageRateInfo(
            stage=stage,
            stage_name=STAGE_LABELS.get(stage, stage),
            observed=observed,
            prior=prior,
            m=m,
            shrunk=shrunk,
            n=n,
        ))
    return infos


def rates_by_stage(infos: List[StageRateInfo]) -> Dict[str, float]:
    """Stage to shrunk conversion rate, as the simulator takes it."""
    return {info.stage: info.shrunk for info in infos}
