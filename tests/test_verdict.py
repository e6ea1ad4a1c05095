"""Tests for verdict composition."""

from __future__ import annotations

import math

import pytest

from trialverdict.core.names import (
    BudgetExhaustedBehavior,
    BudgetKind,
    ScopeLevel,
    TerminationReason,
)
from trialverdict.reporting.verdict import compose_verdict, decide, summarize_runs
from trialverdict.runtime.budget import BudgetExhaustion
from trialverdict.runtime.controller import RunSnapshot
from trialverdict.stats.thresholds import (
    BaselineReference,
    DerivedFromBaseline,
    Explicit,
    ThresholdFirst,
    resolve_threshold,
)


def snapshot(
    executed: int,
    successes: int,
    reason: TerminationReason,
    planned: int = 100,
    required: int = 90,
    exhaustion: BudgetExhaustion | None = None,
    abort_error: str | None = None,
) -> RunSnapshot:
    return RunSnapshot(
        planned_samples=planned,
        required_successes=required,
        samples_executed=executed,
        successes=successes,
        failures=executed - successes,
        errors=0,
        resource_used=0.0,
        elapsed_time=0.0,
        termination_reason=reason,
        budget_exhaustion=exhaustion,
        abort_error=abort_error,
    )


def exhaustion(policy: BudgetExhaustedBehavior) -> BudgetExhaustion:
    return BudgetExhaustion("suite", ScopeLevel.SUITE, BudgetKind.RESOURCE, 1500, 1000, policy)


def codes(verdict) -> set[str]:
    return {c.code for c in verdict.caveats}


@pytest.fixture
def explicit_90():
    return resolve_threshold(Explicit(samples=100, threshold=0.9))


class TestDecision:
    """Test the pass/fail rule per termination reason."""

    def test_completed_compares_observed_rate(self, explicit_90) -> None:
        assert decide(snapshot(100, 90, TerminationReason.COMPLETED), explicit_90)
        assert not decide(snapshot(100, 89, TerminationReason.COMPLETED), explicit_90)

    def test_completed_uses_guarded_required_successes(self) -> None:
        spec = resolve_threshold(Explicit(samples=10, threshold=0.70000000001))
        assert decide(snapshot(10, 7, TerminationReason.COMPLETED, 10, 7), spec)

    def test_early_exits_are_fixed(self, explicit_90) -> None:
        assert decide(snapshot(90, 90, TerminationReason.SUCCESS_GUARANTEED), explicit_90)
        assert not decide(snapshot(11, 0, TerminationReason.IMPOSSIBLE), explicit_90)

    def test_aborted_fails(self, explicit_90) -> None:
        assert not decide(snapshot(5, 5, TerminationReason.ABORTED), explicit_90)

    def test_budget_fail_policy_always_fails(self, explicit_90) -> None:
        snap = snapshot(
            2, 2, TerminationReason.BUDGET_EXHAUSTED,
            exhaustion=exhaustion(BudgetExhaustedBehavior.FAIL),
        )
        assert not decide(snap, explicit_90)

    def test_budget_partial_policy_compares_partial_rate(self, explicit_90) -> None:
        passing = snapshot(
            2, 2, TerminationReason.BUDGET_EXHAUSTED,
            exhaustion=exhaustion(BudgetExhaustedBehavior.EVALUATE_PARTIAL),
        )
        failing = snapshot(
            2, 1, TerminationReason.BUDGET_EXHAUSTED,
            exhaustion=exhaustion(BudgetExhaustedBehavior.EVALUATE_PARTIAL),
        )
        assert decide(passing, explicit_90)
        assert not decide(failing, explicit_90)

    def test_budget_partial_with_nothing_executed_fails(self, explicit_90) -> None:
        snap = snapshot(
            0, 0, TerminationReason.BUDGET_EXHAUSTED,
            exhaustion=exhaustion(BudgetExhaustedBehavior.EVALUATE_PARTIAL),
        )
        assert not decide(snap, explicit_90)


class TestStatistics:
    """Test the reported interval and test statistics."""

    def test_rate_uses_executed_samples(self, explicit_90) -> None:
        verdict = compose_verdict(
            snapshot(90, 90, TerminationReason.SUCCESS_GUARANTEED), explicit_90
        )
        assert verdict.observed_rate == 1.0
        assert verdict.samples_executed == 90
        assert verdict.planned_samples == 100

    def test_interval_and_z_score(self, explicit_90) -> None:
        verdict = compose_verdict(snapshot(100, 85, TerminationReason.COMPLETED), explicit_90)
        assert verdict.confidence_interval.contains(0.85)
        assert verdict.confidence_interval.confidence == 0.95
        assert verdict.z_score == pytest.approx(-0.05 / 0.03)
        assert verdict.p_value == pytest.approx(0.0478, abs=1e-3)

    def test_reporting_confidence_is_configurable(self, explicit_90) -> None:
        snap = snapshot(100, 85, TerminationReason.COMPLETED)
        narrow = compose_verdict(snap, explicit_90, reporting_confidence=0.80)
        wide = compose_verdict(snap, explicit_90, reporting_confidence=0.99)
        assert narrow.confidence_interval.lower > wide.confidence_interval.lower

    def test_nothing_executed_has_no_statistics(self, explicit_90) -> None:
        verdict = compose_verdict(
            snapshot(
                0, 0, TerminationReason.BUDGET_EXHAUSTED,
                exhaustion=exhaustion(BudgetExhaustedBehavior.FAIL),
            ),
            explicit_90,
        )
        assert verdict.observed_rate == 0.0
        assert verdict.confidence_interval is None
        assert verdict.z_score is None and verdict.p_value is None

    def test_perfect_threshold_gives_infinite_z(self) -> None:
        spec = resolve_threshold(Explicit(samples=10, threshold=1.0))
        verdict = compose_verdict(snapshot(3, 2, TerminationReason.IMPOSSIBLE, 10, 10), spec)
        assert verdict.z_score == -math.inf
        assert verdict.p_value == 0.0
        assert verdict.to_payload()["z_score"] == "-inf"


class TestCaveats:
    """Test independently triggered caveats."""

    def test_small_sample_and_zero_variance(self, explicit_90) -> None:
        verdict = compose_verdict(snapshot(10, 10, TerminationReason.COMPLETED), explicit_90)
        assert {"small_sample", "zero_variance"} <= codes(verdict)

    def test_large_mixed_sample_has_no_caveats(self, explicit_90) -> None:
        verdict = compose_verdict(snapshot(100, 95, TerminationReason.COMPLETED), explicit_90)
        assert verdict.caveats == ()

    def test_external_caveats_appended_verbatim(self, explicit_90) -> None:
        verdict = compose_verdict(
            snapshot(100, 95, TerminationReason.COMPLETED),
            explicit_90,
            external_caveats=["Baseline measured on model v1", "Covariates differ"],
        )
        assert verdict.caveat_messages[-2:] == [
            "Baseline measured on model v1",
            "Covariates differ",
        ]

    def test_baseline_provenance(self) -> None:
        spec = resolve_threshold(DerivedFromBaseline(BaselineReference(951, 1000), 100))
        verdict = compose_verdict(snapshot(100, 95, TerminationReason.COMPLETED, 100, 90), spec)
        assert "baseline_provenance" in codes(verdict)
        assert verdict.false_positive_probability is None

    def test_false_positive_probability_on_failure(self) -> None:
        spec = resolve_threshold(DerivedFromBaseline(BaselineReference(951, 1000), 100))
        verdict = compose_verdict(snapshot(100, 80, TerminationReason.COMPLETED, 100, 90), spec)
        assert not verdict.passed
        assert verdict.false_positive_probability == pytest.approx(0.05)
        assert "shortfall" in verdict.interpretation

    def test_implied_confidence_and_unsound(self) -> None:
        spec = resolve_threshold(
            ThresholdFirst(50, 0.94, baseline=BaselineReference(95, 100))
        )
        verdict = compose_verdict(snapshot(50, 48, TerminationReason.COMPLETED, 50, 47), spec)
        assert {"implied_confidence", "statistically_unsound"} <= codes(verdict)

    def test_undersized_for_target(self) -> None:
        spec = resolve_threshold(ThresholdFirst(test_samples=20, threshold=0.99))
        verdict = compose_verdict(snapshot(20, 20, TerminationReason.COMPLETED, 20, 20), spec)
        assert "undersized" in codes(verdict)

    def test_budget_and_abort_notes(self, explicit_90) -> None:
        budget = compose_verdict(
            snapshot(
                2, 2, TerminationReason.BUDGET_EXHAUSTED,
                exhaustion=exhaustion(BudgetExhaustedBehavior.FAIL),
            ),
            explicit_90,
        )
        aborted = compose_verdict(
            snapshot(3, 2, TerminationReason.ABORTED, abort_error="KeyError: 'x'"),
            explicit_90,
        )
        assert "budget_exhausted" in codes(budget)
        assert "suite" in next(c.message for c in budget.caveats if c.code == "budget_exhausted")
        assert "aborted" in codes(aborted)


class TestSummarizeRuns:
    """Test the repeated-runs summary."""

    def test_all_passed(self, explicit_90) -> None:
        v = compose_verdict(snapshot(100, 95, TerminationReason.COMPLETED), explicit_90)
        assert summarize_runs([v, v]).startswith("All 2 runs passed")

    def test_repeated_failures_multiply(self) -> None:
        spec = resolve_threshold(DerivedFromBaseline(BaselineReference(951, 1000), 100))
        failed = compose_verdict(snapshot(100, 80, TerminationReason.COMPLETED, 100, 90), spec)
        summary = summarize_runs([failed, failed])
        assert "2 of 2 runs failed" in summary
        assert "0.2500%" in summary

    def test_empty(self) -> None:
        assert summarize_runs([]) == "No test runs to summarize."
