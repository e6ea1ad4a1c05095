"""
trialverdict.runtime.controller
===============================

The sequential sample controller: drives the trial loop one trial at a time.

State machine::

    READY -> RUNNING -> {IMPOSSIBLE, SUCCESS_GUARANTEED, BUDGET_EXHAUSTED,
                         COMPLETED, ABORTED}

After each trial the controller re-evaluates, in this order:

1. **Impossibility**: ``successes + remaining < required``. No continuation
   can reach the threshold.
2. **Success guaranteed**: ``successes >= required`` with trials remaining.
   The threshold is already met; the remaining trials are skipped.
3. **Completion**: every planned trial has run.

where ``required = ceil(threshold × planned)``. The two early exits are
mutually exclusive: ``successes >= required`` implies
``successes + remaining >= required``.

Trials never overlap within a run. Trial *i + 1* starts only after trial *i*'s
outcome and charges are fully recorded, which is what makes skipping the
remaining trials sound. Budgets are checked between trials only; an in-flight
trial is never preempted.

Examples
--------
>>> from trialverdict.stats.thresholds import Explicit, resolve_threshold
>>> from trialverdict.runtime.controller import SequentialSampleController
>>> spec = resolve_threshold(Explicit(samples=10, threshold=0.8))
>>> controller = SequentialSampleController(spec, lambda i: False)
>>> snap = controller.execute()
>>> snap.termination_reason.value, snap.samples_executed
('impossible', 3)
"""

from __future__ import annotations
import logging
import math
import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Union

from trialverdict.core.errors import ConfigurationError
from trialverdict.core.names import (
    BudgetKind,
    ChargeMode,
    ExceptionPolicy,
    RunStatus,
    TerminationReason,
)
from trialverdict.runtime.budget import (
    BudgetExhaustion,
    BudgetScope,
    charge_chain,
    reserve_next_trial,
)
from trialverdict.stats.thresholds import ThresholdSpecification

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TrialOutcome:
    """The result of one trial, as returned by the executor.

    Attributes:
        succeeded: Whether the trial passed
        resource_charge: Units consumed by this trial (dynamic charging)
        error: Unexpected error raised or reported by the trial
    """

    succeeded: bool
    resource_charge: Optional[float] = None
    error: Optional[BaseException] = None

    @classmethod
    def success(cls, resource_charge: Optional[float] = None) -> "TrialOutcome":
        return cls(True, resource_charge)

    @classmethod
    def failure(cls, resource_charge: Optional[float] = None) -> "TrialOutcome":
        return cls(False, resource_charge)

    @classmethod
    def from_error(cls, error: BaseException) -> "TrialOutcome":
        return cls(False, None, error)


TrialResult = Union[TrialOutcome, bool]
TrialExecutor = Callable[[int], TrialResult]
ProgressListener = Callable[[int, TrialOutcome], None]
InterTrialDelay = Union[float, Callable[[int], float], None]


@dataclass
class RunState:
    """Mutable counts owned by one controller."""

    samples_executed: int = 0
    successes: int = 0
    failures: int = 0
    errors: int = 0
    resource_used: float = 0.0
    elapsed_time: float = 0.0
    termination_reason: Optional[TerminationReason] = None
    budget_exhaustion: Optional[BudgetExhaustion] = None
    abort_error: Optional[BaseException] = None


@dataclass(frozen=True)
class RunSnapshot:
    """Frozen run state, produced once the controller reaches a terminal state."""

    planned_samples: int
    required_successes: int
    samples_executed: int
    successes: int
    failures: int
    errors: int
    resource_used: float
    elapsed_time: float
    termination_reason: TerminationReason
    budget_exhaustion: Optional[BudgetExhaustion] = None
    abort_error: Optional[str] = None
    explanation: str = ""

    @property
    def skipped_samples(self) -> int:
        return self.planned_samples - self.samples_executed

    @property
    def observed_rate(self) -> float:
        if self.samples_executed == 0:
            return 0.0
        return self.successes / self.samples_executed


class SequentialSampleController:
    """Runs trials one at a time until the outcome is decided.

    Parameters
    ----------
    spec : ThresholdSpecification
        Resolved threshold; fixes the planned sample count
    executor : callable
        ``executor(index) -> TrialOutcome | bool``
    budget : BudgetScope, optional
        Innermost budget scope; its ancestors are checked too
    charge_mode : ChargeMode
        How resource units are charged per trial
    static_charge : float
        Units charged per trial in static mode
    exception_policy : ExceptionPolicy
        What an executor error does to the run
    inter_trial_delay : float or callable, optional
        Seconds to wait before trial ``index`` (index > 0), supplied by an
        external pacer
    listeners : sequence of callables
        ``listener(index, outcome)``, called synchronously after each trial
    """

    def __init__(
        self,
        spec: ThresholdSpecification,
        executor: TrialExecutor,
        *,
        budget: Optional[BudgetScope] = None,
        charge_mode: ChargeMode = ChargeMode.NONE,
        static_charge: float = 0.0,
        exception_policy: ExceptionPolicy = ExceptionPolicy.FAIL_SAMPLE,
        inter_trial_delay: InterTrialDelay = None,
        listeners: Sequence[ProgressListener] = (),
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if charge_mode is ChargeMode.STATIC and static_charge < 0:
            raise ConfigurationError(
                f"static_charge must be non-negative, got {static_charge}"
            )
        self.spec = spec
        self.executor = executor
        self.budget = budget
        self.charge_mode = charge_mode
        self.static_charge = float(static_charge)
        self.exception_policy = exception_policy
        self.inter_trial_delay = inter_trial_delay
        self.listeners: List[ProgressListener] = list(listeners)
        self._clock = clock
        self._sleep = sleep

        self.planned = spec.samples
        self.required = spec.required_successes()
        self.state = RunState()
        self.status = RunStatus.READY

    # ---- termination rules ----

    def evaluate(self) -> Optional[TerminationReason]:
        """Decide whether the current counts end the run."""
        s = self.state
        remaining = self.planned - s.samples_executed
        if s.successes + remaining < self.required:
            return TerminationReason.IMPOSSIBLE
        if s.successes >= self.required and remaining > 0:
            return TerminationReason.SUCCESS_GUARANTEED
        if remaining == 0:
            return TerminationReason.COMPLETED
        return None

    def failures_until_impossibility(self) -> int:
        """How many more failures the run can absorb before it cannot pass."""
        remaining = self.planned - self.state.samples_executed
        return self.state.successes + remaining - self.required

    def explain(self) -> str:
        s = self.state
        reason = s.termination_reason
        remaining = self.planned - s.samples_executed
        if reason is TerminationReason.IMPOSSIBLE:
            return (
                f"After {s.samples_executed} samples with {s.successes} successes, "
                f"maximum possible successes ({s.successes} + {remaining} = "
                f"{s.successes + remaining}) is less than required ({self.required})"
            )
        if reason is TerminationReason.SUCCESS_GUARANTEED:
            rate = s.successes / s.samples_executed
            return (
                f"After {s.samples_executed} samples with {s.successes} successes "
                f"({rate:.1%}), required successes ({self.required}) already met. "
                f"Skipping {remaining} remaining samples."
            )
        if reason is TerminationReason.BUDGET_EXHAUSTED and s.budget_exhaustion:
            return (
                f"{s.budget_exhaustion.describe()} after {s.samples_executed} of "
                f"{self.planned} samples"
            )
        if reason is TerminationReason.ABORTED:
            return (
                f"Aborted at sample {s.samples_executed} by "
                f"{type(s.abort_error).__name__}: {s.abort_error}"
            )
        return reason.description if reason is not None else ""

    # ---- trial loop ----

    def _delay_for(self, index: int) -> float:
        if index == 0 or self.inter_trial_delay is None:
            return 0.0
        if callable(self.inter_trial_delay):
            return max(0.0, float(self.inter_trial_delay(index)))
        return max(0.0, float(self.inter_trial_delay))

    def _invoke(self, index: int) -> TrialOutcome:
        try:
            result = self.executor(index)
        except Exception as exc:
            return TrialOutcome.from_error(exc)
        if not isinstance(result, TrialOutcome):
            return TrialOutcome(bool(result))
        charge = result.resource_charge
        valid = isinstance(charge, (int, float)) and 0 <= charge < math.inf
        if charge is not None and not valid:
            return TrialOutcome.from_error(
                ValueError(f"Trial {index} reported an invalid resource charge: {charge!r}")
            )
        return result

    def _terminate(self, reason: TerminationReason) -> None:
        self.state.termination_reason = reason
        self.status = RunStatus.TERMINATED
        logger.info(
            "Run terminated: %s after %d/%d samples (%d successes, %d required)",
            reason.value,
            self.state.samples_executed,
            self.planned,
            self.state.successes,
            self.required,
        )

    def execute(self) -> RunSnapshot:
        """Run trials until a terminal state is reached and return the frozen state."""
        if self.status is not RunStatus.READY:
            raise RuntimeError("Controller already executed. Create a new one per run.")
        self.status = RunStatus.RUNNING
        logger.info(
            "Run started: %d samples planned, threshold %.4f (%d successes required)",
            self.planned,
            self.spec.threshold,
            self.required,
        )

        static = self.static_charge if self.charge_mode is ChargeMode.STATIC else None
        s = self.state

        for index in range(self.planned):
            mark = self._clock()
            delay = self._delay_for(index)
            if delay > 0:
                self._sleep(delay)
                waited = self._clock() - mark
                s.elapsed_time += waited
                charge_chain(self.budget, BudgetKind.TIME, waited)
                mark = self._clock()

            exhaustion = reserve_next_trial(self.budget, static)
            if exhaustion is not None:
                s.budget_exhaustion = exhaustion
                self._terminate(TerminationReason.BUDGET_EXHAUSTED)
                break

            outcome = self._invoke(index)
            duration = self._clock() - mark

            s.samples_executed += 1
            s.elapsed_time += duration
            charge_chain(self.budget, BudgetKind.TIME, duration)
            if static is not None:
                s.resource_used += static
            elif self.charge_mode is ChargeMode.DYNAMIC and outcome.resource_charge:
                s.resource_used += outcome.resource_charge
                charge_chain(self.budget, BudgetKind.RESOURCE, outcome.resource_charge)

            if outcome.error is not None:
                s.errors += 1
                s.failures += 1
                if outcome.succeeded:
                    outcome = TrialOutcome(False, outcome.resource_charge, outcome.error)
            elif outcome.succeeded:
                s.successes += 1
            else:
                s.failures += 1

            logger.debug(
                "Trial %d: %s (%d/%d successes)",
                index,
                "pass" if outcome.succeeded else "fail",
                s.successes,
                s.samples_executed,
            )
            for listener in self.listeners:
                listener(index, outcome)

            if outcome.error is not None:
                if self.exception_policy is ExceptionPolicy.ABORT_TEST:
                    logger.error(
                        "Trial %d raised %s; aborting run",
                        index,
                        type(outcome.error).__name__,
                        exc_info=outcome.error,
                    )
                    s.abort_error = outcome.error
                    self._terminate(TerminationReason.ABORTED)
                    break
                logger.warning(
                    "Trial %d raised %s; counted as a failed sample",
                    index,
                    type(outcome.error).__name__,
                    exc_info=outcome.error,
                )

            reason = self.evaluate()
            if reason is not None:
                self._terminate(reason)
                break

        return self.snapshot()

    def snapshot(self) -> RunSnapshot:
        s = self.state
        if s.termination_reason is None:
            raise RuntimeError("Run has not reached a terminal state")
        return RunSnapshot(
            planned_samples=self.planned,
            required_successes=self.required,
            samples_executed=s.samples_executed,
            successes=s.successes,
            failures=s.failures,
            errors=s.errors,
            resource_used=s.resource_used,
            elapsed_time=s.elapsed_time,
            termination_reason=s.termination_reason,
            budget_exhaustion=s.budget_exhaustion,
            abort_error=(
                f"{type(s.abort_error).__name__}: {s.abort_error}"
                if s.abort_error is not None
                else None
            ),
            explanation=self.explain(),
        )
