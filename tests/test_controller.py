"""Tests for the sequential sample controller."""

from __future__ import annotations

import logging
import random

import pytest

from trialverdict.core.names import (
    BudgetExhaustedBehavior,
    BudgetKind,
    ChargeMode,
    ExceptionPolicy,
    TerminationReason,
)
from trialverdict.runtime.budget import BudgetScope
from trialverdict.runtime.controller import SequentialSampleController, TrialOutcome
from trialverdict.stats.thresholds import Explicit, resolve_threshold


def make_controller(samples: int, threshold: float, executor, **kwargs):
    spec = resolve_threshold(Explicit(samples=samples, threshold=threshold))
    return SequentialSampleController(spec, executor, **kwargs)


class TestEarlyTermination:
    """Test impossibility, success-guaranteed and completion."""

    def test_impossible_after_three_failures(self, scripted) -> None:
        executor = scripted([False] * 10)
        snap = make_controller(10, 0.8, executor).execute()
        assert snap.termination_reason is TerminationReason.IMPOSSIBLE
        assert snap.samples_executed == 3
        assert snap.skipped_samples == 7
        assert executor.calls == [0, 1, 2]
        assert "less than required (8)" in snap.explanation

    def test_success_guaranteed_after_required_successes(self, scripted) -> None:
        executor = scripted([True] * 10)
        snap = make_controller(10, 0.8, executor).execute()
        assert snap.termination_reason is TerminationReason.SUCCESS_GUARANTEED
        assert snap.samples_executed == 8
        assert snap.skipped_samples == 2
        assert snap.observed_rate == 1.0
        assert "Skipping 2 remaining samples" in snap.explanation

    def test_completed_when_decided_on_last_trial(self, scripted) -> None:
        executor = scripted([True, False, True, True, True])
        snap = make_controller(5, 0.8, executor).execute()
        assert snap.termination_reason is TerminationReason.COMPLETED
        assert (snap.samples_executed, snap.successes, snap.failures) == (5, 4, 1)

    def test_threshold_of_one_never_guarantees_early(self, scripted) -> None:
        snap = make_controller(4, 1.0, scripted([True] * 4)).execute()
        assert snap.termination_reason is TerminationReason.COMPLETED

    def test_failures_until_impossibility(self, scripted) -> None:
        controller = make_controller(10, 0.8, scripted([False] * 10))
        assert controller.failures_until_impossibility() == 2

    @pytest.mark.parametrize("seed", range(20))
    def test_early_exits_are_consistent(self, seed: int) -> None:
        rng = random.Random(seed)
        controller = make_controller(30, 0.7, lambda i: rng.random() < 0.7)
        snap = controller.execute()
        remaining = snap.planned_samples - snap.samples_executed
        required = snap.required_successes
        if snap.termination_reason is TerminationReason.IMPOSSIBLE:
            assert snap.successes + remaining < required
        elif snap.termination_reason is TerminationReason.SUCCESS_GUARANTEED:
            assert snap.successes >= required and remaining > 0
        else:
            assert snap.termination_reason is TerminationReason.COMPLETED
            assert remaining == 0

    def test_cannot_execute_twice(self, scripted) -> None:
        controller = make_controller(2, 0.5, scripted([True, True]))
        controller.execute()
        with pytest.raises(RuntimeError):
            controller.execute()


class TestExceptionPolicy:
    """Test handling of executor errors."""

    def test_fail_sample_counts_error_as_failure(self, scripted, caplog) -> None:
        executor = scripted([True, RuntimeError("boom"), True, True, True])
        with caplog.at_level(logging.WARNING, logger="trialverdict.runtime.controller"):
            snap = make_controller(5, 0.6, executor).execute()
        assert snap.errors == 1
        assert snap.failures == 1
        assert snap.successes == 3
        assert snap.termination_reason is TerminationReason.SUCCESS_GUARANTEED
        assert "RuntimeError" in caplog.text

    def test_abort_test_stops_immediately(self, scripted) -> None:
        executor = scripted([True, ValueError("bad input"), True, True])
        snap = make_controller(
            4, 0.5, executor, exception_policy=ExceptionPolicy.ABORT_TEST
        ).execute()
        assert snap.termination_reason is TerminationReason.ABORTED
        assert snap.samples_executed == 2
        assert snap.abort_error == "ValueError: bad input"
        assert executor.calls == [0, 1]

    @pytest.mark.parametrize("charge", [-1.0, float("nan"), float("inf")])
    def test_invalid_dynamic_charge_is_a_trial_error(self, scripted, charge: float) -> None:
        scope = BudgetScope("m", resource_limit=100)
        executor = scripted([TrialOutcome.success(charge)] + [TrialOutcome.success(1.0)] * 3)
        snap = make_controller(
            4, 0.5, executor, budget=scope, charge_mode=ChargeMode.DYNAMIC
        ).execute()
        assert snap.errors == 1
        assert snap.failures == 1
        assert snap.termination_reason is TerminationReason.SUCCESS_GUARANTEED
        assert snap.resource_used == 2.0
        assert scope.consumed(BudgetKind.RESOURCE) == 2.0

    def test_invalid_dynamic_charge_aborts_under_abort_policy(self, scripted) -> None:
        snap = make_controller(
            4,
            0.5,
            scripted([TrialOutcome.success(-5.0)]),
            charge_mode=ChargeMode.DYNAMIC,
            exception_policy=ExceptionPolicy.ABORT_TEST,
        ).execute()
        assert snap.termination_reason is TerminationReason.ABORTED
        assert "invalid resource charge" in snap.abort_error

    def test_outcome_with_error_is_treated_as_raised(self, scripted) -> None:
        executor = scripted(
            [TrialOutcome(True, error=TimeoutError("slow")), True, True, True]
        )
        snap = make_controller(
            4, 0.5, executor, exception_policy=ExceptionPolicy.ABORT_TEST
        ).execute()
        assert snap.termination_reason is TerminationReason.ABORTED
        assert snap.successes == 0
        assert snap.errors == 1


class TestBudgets:
    """Test budget enforcement between trials."""

    def test_static_charge_exhausts_after_two_trials(self, scripted) -> None:
        scope = BudgetScope("m", resource_limit=1000)
        executor = scripted([True] * 10)
        snap = make_controller(
            10,
            0.8,
            executor,
            budget=scope,
            charge_mode=ChargeMode.STATIC,
            static_charge=500,
        ).execute()
        assert snap.termination_reason is TerminationReason.BUDGET_EXHAUSTED
        assert snap.samples_executed == 2
        assert snap.resource_used == 1000
        assert snap.budget_exhaustion is not None
        assert snap.budget_exhaustion.scope_name == "m"
        assert snap.budget_exhaustion.policy is BudgetExhaustedBehavior.FAIL
        assert len(executor.calls) == 2

    def test_outer_scope_exhaustion_leaves_inner_accounting_exact(self, scripted) -> None:
        suite = BudgetScope("suite", resource_limit=1000)
        method = BudgetScope("m", resource_limit=5000, parent=suite)
        snap = make_controller(
            10,
            0.8,
            scripted([True] * 10),
            budget=method,
            charge_mode=ChargeMode.STATIC,
            static_charge=500,
        ).execute()
        assert snap.samples_executed == 2
        assert snap.resource_used == 1000
        assert method.consumed(BudgetKind.RESOURCE) == snap.resource_used
        assert snap.budget_exhaustion.scope_name == "suite"

    def test_dynamic_charge_detected_on_next_check(self, scripted) -> None:
        scope = BudgetScope("m", resource_limit=10)
        executor = scripted([TrialOutcome.success(4.0)] * 10)
        snap = make_controller(
            10, 0.5, executor, budget=scope, charge_mode=ChargeMode.DYNAMIC
        ).execute()
        assert snap.termination_reason is TerminationReason.BUDGET_EXHAUSTED
        assert snap.samples_executed == 3
        assert snap.resource_used == 12.0
        assert scope.consumed(BudgetKind.RESOURCE) == 12.0

    def test_shared_parent_scope_stops_second_run(self, scripted) -> None:
        suite = BudgetScope("suite", resource_limit=3)
        first = make_controller(
            3,
            1.0,
            scripted([True] * 3),
            budget=BudgetScope("a", parent=suite),
            charge_mode=ChargeMode.STATIC,
            static_charge=1,
        ).execute()
        second = make_controller(
            3,
            1.0,
            scripted([True] * 3),
            budget=BudgetScope("b", parent=suite),
            charge_mode=ChargeMode.STATIC,
            static_charge=1,
        ).execute()
        assert first.termination_reason is TerminationReason.COMPLETED
        assert second.termination_reason is TerminationReason.BUDGET_EXHAUSTED
        assert second.samples_executed == 0
        assert second.budget_exhaustion.scope_name == "suite"

    def test_trial_duration_charged_to_time_budget(self, fake_clock) -> None:
        scope = BudgetScope("m", time_limit=2.5)

        def executor(index: int) -> bool:
            fake_clock.advance(1.0)
            return True

        snap = make_controller(
            10, 0.5, executor, budget=scope, clock=fake_clock, sleep=fake_clock.sleep
        ).execute()
        assert snap.termination_reason is TerminationReason.BUDGET_EXHAUSTED
        assert snap.samples_executed == 3
        assert snap.elapsed_time == pytest.approx(3.0)
        assert snap.budget_exhaustion.kind is BudgetKind.TIME


class TestPacingAndListeners:
    """Test inter-trial delays and progress events."""

    def test_delay_between_trials_only(self, fake_clock) -> None:
        snap = make_controller(
            3,
            1.0,
            lambda i: True,
            inter_trial_delay=0.5,
            clock=fake_clock,
            sleep=fake_clock.sleep,
        ).execute()
        assert fake_clock.sleeps == [0.5, 0.5]
        assert snap.elapsed_time == pytest.approx(1.0)

    def test_callable_delay_receives_index(self, fake_clock) -> None:
        make_controller(
            3,
            1.0,
            lambda i: True,
            inter_trial_delay=lambda index: index * 0.1,
            clock=fake_clock,
            sleep=fake_clock.sleep,
        ).execute()
        assert fake_clock.sleeps == pytest.approx([0.1, 0.2])

    def test_waiting_counts_against_time_budget(self, fake_clock) -> None:
        scope = BudgetScope("m", time_limit=0.8)
        snap = make_controller(
            3,
            1.0,
            lambda i: True,
            budget=scope,
            inter_trial_delay=0.5,
            clock=fake_clock,
            sleep=fake_clock.sleep,
        ).execute()
        assert snap.termination_reason is TerminationReason.BUDGET_EXHAUSTED
        assert snap.samples_executed == 2

    def test_listeners_receive_every_outcome(self, scripted) -> None:
        events: list[tuple[int, bool]] = []
        make_controller(
            5,
            0.6,
            scripted([True, False, RuntimeError("x"), True, True]),
            listeners=[lambda i, o: events.append((i, o.succeeded))],
        ).execute()
        assert events == [(0, True), (1, False), (2, False), (3, True), (4, True)]
