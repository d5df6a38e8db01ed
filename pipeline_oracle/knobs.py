"""What-if knob presets, seed hashing and cache keys for the Pipeline Oracle.

Seeds and pipeline fingerprints go through `stable_hash`, a 32-bit
polynomial rolling hash (h = h * 31 + ord(ch), mod 2**32). It is part of
the external contract: cached forecasts are only comparable across
implementations when they hash seeds the same way.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, Mapping, Tuple, Union

from pipeline_oracle.config import (
    DEFAULT_MIN_N_THRESHOLD, DEFAULT_PRIOR_WEIGHT, ITERATIONS_RANGE,
    MIN_N_VALUES, PRIOR_WEIGHT_VALUES
)


class InvalidKnobError(ValueError):
    """Raised when a knob preset or iteration count is outside the allowed set."""


@dataclass(frozen=True)
class OracleKnobSettings:
    prior_weight: str = DEFAULT_PRIOR_WEIGHT
    min_n_threshold: str = DEFAULT_MIN_N_THRESHOLD
    iterations: int = ITERATIONS_RANGE["default"]

    def __post_init__(self):
        if self.prior_weight not in PRIOR_WEIGHT_VALUES:
            raise InvalidKnobError(
                f"Unknown prior weight preset '{self.prior_weight}' "
                f"(expected one of {sorted(PRIOR_WEIGHT_VALUES)})"
            )
        if self.min_n_threshold not in MIN_N_VALUES:
            raise InvalidKnobError(
                f"Unknown min-N preset '{self.min_n_threshold}' "
                f"(expected one of {sorted(MIN_N_VALUES)})"
            )
        validate_iterations(self.iterations)

    @property
    def m(self) -> float:
        return PRIOR_WEIGHT_VALUES[self.prior_weight]

    @property
    def min_n(self) -> int:
        return MIN_N_VALUES[self.min_n_threshold]

    @property
    def is_default(self) -> bool:
        return self == DEFAULT_KNOB_SETTINGS

    @property
    def exceeds_performance_threshold(self) -> bool:
        return self.iterations >= ITERATIONS_RANGE["performance_warning_threshold"]


def validate_iterations(iterations: int) -> int:
    if isinstance(iterations, bool) or not isinstance(iterations, int):
        raise InvalidKnobError(f"Iterations must be an integer, got {iterations!r}")
    if not ITERATIONS_RANGE["min"] <= iterations <= ITERATIONS_RANGE["max"]:
        raise InvalidKnobError(
            f"Iterations must be between {ITERATIONS_RANGE['min']} and "
            f"{ITERATIONS_RANGE['max']}, got {iterations}"
        )
    return iterations


DEFAULT_KNOB_SETTINGS = OracleKnobSettings()


def knobs_from_dict(raw: Mapping) -> OracleKnobSettings:
    """Build knob settings from a UI payload (camelCase or snake_case keys)."""
    return OracleKnobSettings(
        prior_weight=raw.get("priorWeight", raw.get("prior_weight", DEFAULT_PRIOR_WEIGHT)),
        min_n_threshold=raw.get(
            "minNThreshold", raw.get("min_n_threshold", DEFAULT_MIN_N_THRESHOLD)
        ),
        iterations=raw.get("iterations", ITERATIONS_RANGE["default"]),
    )


def stable_hash(text: str) -> int:
    """Deterministic 32-bit string hash (h * 31 + ch), stable across processes."""
    h = 0
    for ch in text:
        h = (h * 31 + ord(ch)) & 0xFFFFFFFF
    return h


def hash_pipeline_counts(
    counts: Union[Mapping[str, int], Iterable[Tuple[str, int]]]
) -> str:
    """Order-independent fingerprint of a pipeline snapshot's (stage, count) pairs."""
    pairs = counts.items() if isinstance(counts, Mapping) else counts
    canonical = "|".join(f"{stage}:{int(count)}" for stage, count in sorted(pairs))
    return format(stable_hash(canonical), "08x")


def generate_cache_key(
    req_id: str,
    pipeline_hash: str,
    seed: str,
    knobs: OracleKnobSettings = DEFAULT_KNOB_SETTINGS,
) -> str:
    """Cache key covering the requisition, pipeline shape, seed and knobs."""
    return (
        f"oracle-{req_id}-{pipeline_hash}-{seed}-"
        f"{knobs.prior_weight}-{knobs.min_n_threshold}-{knobs.iterations}"
    )


def pipeline_counts_by_stage(stages: Iterable[str]) -> Dict[str, int]:
    counts: Dict[str, int] = {}
    for stage in stages:
        counts[stage] = counts.get(stage, 0) + 1
    return counts
