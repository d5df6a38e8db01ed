"""Tests for knob presets, seed hashing and cache keys."""

import pytest

from pipeline_oracle.knobs import (
    DEFAULT_KNOB_SETTINGS, InvalidKnobError, OracleKnobSettings, generate_cache_key,
    hash_pipeline_counts, knobs_from_dict, pipeline_counts_by_stage, stable_hash,
    validate_iterations
)


class TestKnobSettings:
    def test_defaults(self):
        assert DEFAULT_KNOB_SETTINGS.prior_weight == "medium"
        assert DEFAULT_KNOB_SETTINGS.min_n_threshold == "standard"
        assert DEFAULT_KNOB_SETTINGS.iterations == 1000
        assert DEFAULT_KNOB_SETTINGS.m == 5
        assert DEFAULT_KNOB_SETTINGS.min_n == 5
        assert DEFAULT_KNOB_SETTINGS.is_default

    def test_preset_lookup(self):
        knobs = OracleKnobSettings(prior_weight="high", min_n_threshold="relaxed", iterations=5000)
        assert knobs.m == 10
        assert knobs.min_n == 3
        assert knobs.exceeds_performance_threshold
        assert not knobs.is_default

    @pytest.mark.parametrize("kwargs", [
        {"prior_weight": "extreme"},
        {"min_n_threshold": "loose"},
        {"iterations": 999},
        {"iterations": 10001},
        {"iterations": 2500.0},
        {"iterations": True},
    ])
    def test_rejects_values_outside_presets(self, kwargs):
        with pytest.raises(InvalidKnobError):
            OracleKnobSettings(**kwargs)

    def test_invalid_knob_is_value_error(self):
        with pytest.raises(ValueError):
            validate_iterations(50)

    def test_from_camel_case_payload(self):
        knobs = knobs_from_dict({"priorWeight": "low", "minNThreshold": "strict", "iterations": 2000})
        assert knobs == OracleKnobSettings("low", "strict", 2000)

    def test_from_snake_case_payload(self):
        knobs = knobs_from_dict({"prior_weight": "high"})
        assert knobs == OracleKnobSettings("high", "standard", 1000)


class TestHashing:
    def test_stable_hash_values(self):
        assert stable_hash("") == 0
        assert stable_hash("a") == 97
        assert stable_hash("ab") == 97 * 31 + 98

    def test_stable_hash_stays_32_bit(self):
        assert 0 <= stable_hash("req-123-2024-03-01" * 20) < 2 ** 32

    def test_pipeline_hash_ignores_order(self):
        assert hash_pipeline_counts({"SCREEN": 3, "OFFER": 1}) == hash_pipeline_counts(
            [("OFFER", 1), ("SCREEN", 3)]
        )

    def test_pipeline_hash_changes_with_counts(self):
        assert hash_pipeline_counts({"SCREEN": 3}) != hash_pipeline_counts({"SCREEN": 4})

    def test_pipeline_hash_is_hex(self):
        digest = hash_pipeline_counts({"SCREEN": 3})
        assert len(digest) == 8
        int(digest, 16)

    def test_counts_by_stage(self):
        assert pipeline_counts_by_stage(["SCREEN", "OFFER", "SCREEN"]) == {"SCREEN": 2, "OFFER": 1}


class TestCacheKey:
    def test_format(self):
        key = generate_cache_key("REQ-1", "abc123", "seed-x", DEFAULT_KNOB_SETTINGS)
        assert key == "oracle-REQ-1-abc123-seed-x-medium-standard-1000"

    def test_identical_inputs_identical_key(self):
        a = generate_cache_key("REQ-1", "h", "s", OracleKnobSettings("low", "strict", 2000))
        b = generate_cache_key("REQ-1", "h", "s", OracleKnobSettings("low", "strict", 2000))
        assert a == b

    @pytest.mark.parametrize("changed", [
        OracleKnobSettings(prior_weight="high"),
        OracleKnobSettings(min_n_threshold="strict"),
        OracleKnobSettings(iterations=2000),
    ])
    def test_any_knob_change_changes_key(self, changed):
        base = generate_cache_key("REQ-1", "h", "s", DEFAULT_KNOB_SETTINGS)
        assert generate_cache_key("REQ-1", "h", "s", changed) != base
