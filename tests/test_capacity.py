"""Tests for queue delays, bottleneck attribution and the capacity penalty."""

import math

import pytest

from pipeline_oracle.capacity import apply_queue_delays, penalize, penalize_v11, rank_bottlenecks
from pipeline_oracle.config import (
    COHORT_CAPACITY_DEFAULTS, HM_SCREEN, MAX_QUEUE_DELAY_DAYS, OFFER, ONSITE, SCREEN
)
from pipeline_oracle.demand import aggregate
from pipeline_oracle.models import Candidate, DurationSpec, Requisition
from pipeline_oracle.queueing import calculate_queue_delay, resolve_service_rate


def _durations():
    return {
        SCREEN: DurationSpec(kind="lognormal", mu=math.log(5), sigma=0.4),
        HM_SCREEN: DurationSpec(kind="constant", days=3.0),
        ONSITE: DurationSpec(kind="empirical", buckets=[(4.0, 0.5), (6.0, 0.5)]),
        OFFER: DurationSpec(kind="lognormal", mu=math.log(2), sigma=0.2),
    }


class TestQueueDelay:
    """Fluid M/M/1 backlog delay."""

    def test_zero_at_or_below_capacity(self):
        assert calculate_queue_delay(3, 3) == 0.0
        assert calculate_queue_delay(3, 5) == 0.0
        assert calculate_queue_delay(0, 0) == 0.0

    def test_excess_demand(self):
        assert calculate_queue_delay(10, 5) == pytest.approx(7.0)

    def test_horizon_and_queue_factor(self):
        assert calculate_queue_delay(15, 5, horizon_weeks=2) == pytest.approx(7.0)
        assert calculate_queue_delay(10, 5, queue_factor=0.5) == pytest.approx(3.5)

    def test_monotone_in_demand_and_service_rate(self):
        delays = [calculate_queue_delay(d, 4) for d in range(0, 12)]
        assert delays == sorted(delays)
        by_rate = [calculate_queue_delay(10, r) for r in (2, 3, 4, 5, 6)]
        assert by_rate == sorted(by_rate, reverse=True)

    def test_zero_service_rate_hits_cap(self):
        assert calculate_queue_delay(2, 0) == MAX_QUEUE_DELAY_DAYS

    def test_capped(self):
        assert calculate_queue_delay(1000, 1) == MAX_QUEUE_DELAY_DAYS


class TestServiceRate:
    """Owner throughput with cohort fallback."""

    def test_owner_rate(self, balanced_profile):
        assert resolve_service_rate(SCREEN, balanced_profile) == (5.0, "HIGH", False)
        assert resolve_service_rate(HM_SCREEN, balanced_profile) == (4.0, "HIGH", False)

    def test_missing_owner_uses_cohort(self, profile_factory):
        profile = profile_factory(hm_rates={HM_SCREEN: 4.0})
        assert resolve_service_rate(SCREEN, profile) == (
            COHORT_CAPACITY_DEFAULTS[SCREEN], "LOW", True
        )

    def test_low_confidence_owner_uses_cohort(self, profile_factory):
        profile = profile_factory(recruiter_rates={SCREEN: 50.0}, confidence="LOW")
        rate, confidence, used_fallback = resolve_service_rate(SCREEN, profile)
        assert rate == COHORT_CAPACITY_DEFAULTS[SCREEN]
        assert used_fallback

    def test_hm_screen_falls_back_to_recruiter_view(self, profile_factory):
        profile = profile_factory(recruiter_rates={HM_SCREEN: 6.0})
        assert resolve_service_rate(HM_SCREEN, profile) == (6.0, "HIGH", False)


class TestPenalize:
    def test_demand_within_capacity(self, balanced_profile):
        result = penalize(_durations(), {SCREEN: 3}, balanced_profile)

        assert result.total_queue_delay_days == 0.0
        assert result.top_bottlenecks == []
        assert not any(d.is_bottleneck for d in result.stage_diagnostics)
        assert all(d.bottleneck_owner_type == "none" for d in result.stage_diagnostics)
        assert result.version == "v1"

    def test_recruiter_bottleneck(self, profile_factory):
        profile = profile_factory(recruiter_rates={SCREEN: 5.0}, hm_rates={HM_SCREEN: 4.0})
        result = penalize(_durations(), {SCREEN: 20}, profile)

        screen = result.stage_diagnostics[0]
        assert screen.queue_delay_days > 0
        assert screen.is_bottleneck
        assert result.top_bottlenecks[0].stage == SCREEN
        assert result.top_bottlenecks[0].bottleneck_owner_type == "recruiter"

    def test_hm_bottleneck(self, balanced_profile):
        result = penalize(_durations(), {HM_SCREEN: 15}, balanced_profile)

        assert [d.stage for d in result.top_bottlenecks] == [HM_SCREEN]
        assert result.top_bottlenecks[0].bottleneck_owner_type == "hm"

    def test_shared_stage_attributed_to_both(self, balanced_profile):
        result = penalize(_durations(), {ONSITE: 9}, balanced_profile)
        assert result.top_bottlenecks[0].bottleneck_owner_type == "both"

    def test_bottlenecks_sorted_and_total_sums_all(self, balanced_profile):
        demand = {SCREEN: 8, HM_SCREEN: 6, ONSITE: 9, OFFER: 3}
        result = penalize(_durations(), demand, balanced_profile)

        delays = [d.queue_delay_days for d in result.top_bottlenecks]
        assert delays == sorted(delays, reverse=True)
        assert [d.stage for d in result.top_bottlenecks] == [ONSITE, SCREEN, HM_SCREEN, OFFER]
        assert result.total_queue_delay_days == pytest.approx(4.2 + 3.5 + 14.0 + 3.5)

    def test_top_bottlenecks_truncated(self, balanced_profile):
        result = penalize(_durations(), {SCREEN: 8, HM_SCREEN: 6, ONSITE: 9, OFFER: 3},
                          balanced_profile)
        assert len(rank_bottlenecks(result.stage_diagnostics * 2)) == 4

    def test_zero_throughput_is_maximal_delay(self, profile_factory):
        profile = profile_factory(recruiter_rates={SCREEN: 0.0}, hm_rates={HM_SCREEN: 4.0})
        result = penalize(_durations(), {SCREEN: 2}, profile)

        screen = result.stage_diagnostics[0]
        assert screen.queue_delay_days == MAX_QUEUE_DELAY_DAYS
        assert screen.is_bottleneck
        assert not math.isnan(result.total_queue_delay_days)

    def test_confidence_is_weakest_contributing_stage(self, profile_factory):
        profile = profile_factory(recruiter_rates={SCREEN: 5.0, ONSITE: 3.0, OFFER: 2.0},
                                  hm_rates={HM_SCREEN: 4.0})
        profile.recruiter.throughputs[ONSITE].confidence = "MED"

        assert penalize(_durations(), {SCREEN: 8}, profile).confidence == "HIGH"
        assert penalize(_durations(), {SCREEN: 8, ONSITE: 9}, profile).confidence == "MED"

    def test_fallback_only_data_is_low(self, profile_factory):
        profile = profile_factory(hm_rates={HM_SCREEN: 4.0}, used_cohort_fallback=True)
        result = penalize(_durations(), {SCREEN: 30}, profile)

        assert result.confidence == "LOW"
        assert result.used_cohort_fallback
        assert result.stage_diagnostics[0].used_cohort_fallback

    def test_adjusted_durations(self, balanced_profile):
        result = penalize(_durations(), {SCREEN: 10, ONSITE: 6}, balanced_profile)

        screen = result.adjusted_durations[SCREEN]
        assert screen.queue_delay_days == pytest.approx(7.0)
        assert screen.original_median_days == pytest.approx(5.0)
        assert screen.adjusted_median_days == pytest.approx(12.0)
        assert math.exp(screen.adjusted.mu) == pytest.approx(12.0)
        assert result.adjusted_durations[ONSITE].adjusted.buckets == [(11.0, 0.5), (13.0, 0.5)]

    def test_apply_queue_delays_only_touches_delayed_stages(self, balanced_profile):
        durations = _durations()
        result = penalize(durations, {SCREEN: 10}, balanced_profile)
        adjusted = apply_queue_delays(durations, result)

        assert adjusted[HM_SCREEN] is durations[HM_SCREEN]
        assert math.exp(adjusted[SCREEN].mu) == pytest.approx(12.0)
        assert math.exp(durations[SCREEN].mu) == pytest.approx(5.0)


class TestPenalizeV11:
    """Demand from each owner's whole portfolio."""

    @pytest.fixture
    def portfolio(self):
        requisitions = [
            Requisition("R1", recruiter_id="rec-1", hm_id="hm-1"),
            Requisition("R2", recruiter_id="rec-1", hm_id="hm-2"),
            Requisition("R3", recruiter_id="rec-1", hm_id="hm-3"),
        ]
        candidates = [Candidate(f"a{i}", "R1", SCREEN) for i in range(2)]
        candidates += [Candidate(f"b{i}", "R2", SCREEN) for i in range(5)]
        candidates += [Candidate(f"c{i}", "R3", SCREEN) for i in range(5)]
        return candidates, requisitions

    def test_portfolio_demand_changes_bottleneck(self, balanced_profile, portfolio):
        candidates, requisitions = portfolio
        demand = aggregate("R1", "rec-1", "hm-1", candidates, requisitions)

        v1 = penalize(_durations(), demand.selected_req_pipeline, balanced_profile)
        v11 = penalize_v11(_durations(), demand, balanced_profile)

        assert v1.top_bottlenecks == []
        assert [d.stage for d in v11.top_bottlenecks] == [SCREEN]
        assert v11.stage_diagnostics[0].demand == 12
        assert v11.version == "v1.1"
        assert v11.global_demand is demand

    def test_recommendations_attached(self, balanced_profile, portfolio):
        candidates, requisitions = portfolio
        demand = aggregate("R1", "rec-1", "hm-1", candidates, requisitions)
        v11 = penalize_v11(_durations(), demand, balanced_profile)

        assert v11.recommendations
        assert v11.recommendations[0].type == "increase_throughput"

    def test_missing_owner_id_lowers_confidence(self, balanced_profile, portfolio):
        candidates, requisitions = portfolio
        demand = aggregate("R1", None, "hm-1", candidates, requisitions)
        v11 = penalize_v11(_durations(), demand, balanced_profile)

        screen = v11.stage_diagnostics[0]
        assert screen.demand == 2
        assert screen.confidence == "LOW"
        assert v11.confidence == "LOW"

    def test_confidence_capped_by_demand_confidence(self, balanced_profile, portfolio):
        candidates, requisitions = portfolio
        demand = aggregate("R1", "rec-1", None, candidates, requisitions)
        v11 = penalize_v11(_durations(), demand, balanced_profile)
        assert v11.confidence == "MED"


class TestMissingCapacityData:
    """Without a profile the penalty is skipped, not reported as zero delay."""

    def test_penalize_without_profile(self):
        assert penalize(_durations(), {SCREEN: 20}, None) is None

    def test_penalize_with_empty_profile(self, profile_factory):
        assert penalize(_durations(), {SCREEN: 20}, profile_factory()) is None

    def test_penalize_v11_without_profile(self, profile_factory):
        requisitions = [Requisition("R1", recruiter_id="rec-1", hm_id="hm-1")]
        candidates = [Candidate(f"c{i}", "R1", SCREEN) for i in range(20)]
        demand = aggregate("R1", "rec-1", "hm-1", candidates, requisitions)

        assert penalize_v11(_durations(), demand, None) is None
        assert penalize_v11(_durations(), demand, profile_factory()) is None
