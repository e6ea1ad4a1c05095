"""
trialverdict.runtime.run
========================

The entry point: resolve a threshold, drive the controller, compose the verdict.

A `Run` is an explicit, single-use object. The threshold is resolved in the
constructor, so an invalid configuration raises `ConfigurationError` before any
trial executes. Calling `Run.run` a second time raises `RuntimeError`.

Examples
--------
>>> from trialverdict.stats.thresholds import Explicit
>>> from trialverdict.runtime.run import Run
>>> outcomes = iter([True, True, False, True, True, True, True, True, True, True])
>>> r = Run(Explicit(samples=10, threshold=0.8), lambda i: next(outcomes))
>>> verdict = r.run()
>>> verdict.passed, verdict.termination_reason.value, verdict.samples_executed
(True, 'success_guaranteed', 9)
"""

from __future__ import annotations
import logging
import time
import uuid
from typing import Callable, Iterable, List, Optional, Sequence, Union

from trialverdict.core.ledger import Ledger
from trialverdict.core.names import ChargeMode, ExceptionPolicy
from trialverdict.runtime.budget import BudgetScope
from trialverdict.runtime.controller import (
    InterTrialDelay,
    ProgressListener,
    RunSnapshot,
    SequentialSampleController,
    TrialExecutor,
)
from trialverdict.runtime.recorder import LedgerRecorder
from trialverdict.reporting.verdict import Verdict, compose_verdict
from trialverdict.stats.binomial import z_for_confidence
from trialverdict.stats.thresholds import (
    ThresholdConfig,
    ThresholdSpecification,
    resolve_threshold,
)

logger = logging.getLogger(__name__)

ThresholdLike = Union[ThresholdConfig, ThresholdSpecification]


class Run:
    """One statistical test run.

    Parameters
    ----------
    threshold : ThresholdConfig or ThresholdSpecification
        Configuration mode (resolved eagerly) or an already resolved threshold
    executor : callable
        ``executor(index) -> TrialOutcome | bool``; invoked once per trial
    budget : BudgetScope, optional
        Innermost budget scope (its ancestors are enforced too)
    charge_mode : ChargeMode
        NONE, STATIC (``static_charge`` per trial) or DYNAMIC (charge reported
        on each `TrialOutcome`)
    static_charge : float
        Resource units per trial in static mode
    exception_policy : ExceptionPolicy
        FAIL_SAMPLE (default) or ABORT_TEST
    inter_trial_delay : float or callable, optional
        Seconds to wait between trials, or ``index -> seconds``
    listeners : sequence of callables
        Synchronous progress listeners ``(index, outcome)``
    ledger : Ledger, optional
        When given, the run lifecycle is recorded there
    caveats : iterable of str
        External caveats appended verbatim to the verdict
    reporting_confidence : float
        Confidence of the two-sided interval on the verdict
    run_id : str, optional
        Identity used for ledger events; generated when omitted
    """

    def __init__(
        self,
        threshold: ThresholdLike,
        executor: TrialExecutor,
        *,
        budget: Optional[BudgetScope] = None,
        charge_mode: ChargeMode = ChargeMode.NONE,
        static_charge: float = 0.0,
        exception_policy: ExceptionPolicy = ExceptionPolicy.FAIL_SAMPLE,
        inter_trial_delay: InterTrialDelay = None,
        listeners: Sequence[ProgressListener] = (),
        ledger: Optional[Ledger] = None,
        caveats: Iterable[str] = (),
        reporting_confidence: float = 0.95,
        run_id: Optional[str] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.spec = (
            threshold
            if isinstance(threshold, ThresholdSpecification)
            else resolve_threshold(threshold)
        )
        # fail fast on a bad reporting level too
        z_for_confidence(reporting_confidence)
        self.reporting_confidence = reporting_confidence
        self.caveats: List[str] = list(caveats)
        self.run_id = run_id or f"run#{uuid.uuid4().hex[:12]}"
        self.charge_mode = charge_mode
        self.exception_policy = exception_policy

        self.recorder = LedgerRecorder(ledger, self.run_id) if ledger is not None else None
        all_listeners: List[ProgressListener] = list(listeners)
        if self.recorder is not None:
            all_listeners.append(self.recorder)

        self.controller = SequentialSampleController(
            self.spec,
            executor,
            budget=budget,
            charge_mode=charge_mode,
            static_charge=static_charge,
            exception_policy=exception_policy,
            inter_trial_delay=inter_trial_delay,
            listeners=all_listeners,
            clock=clock,
            sleep=sleep,
        )
        self.snapshot: Optional[RunSnapshot] = None
        self.verdict: Optional[Verdict] = None

    def run(self) -> Verdict:
        """Execute trials until decided and return the verdict."""
        if self.verdict is not None or self.snapshot is not None:
            raise RuntimeError(f"Run {self.run_id} already executed")
        if self.recorder is not None:
            self.recorder.record_start(
                self.spec,
                {
                    "run_id": self.run_id,
                    "charge_mode": self.charge_mode.value,
                    "exception_policy": self.exception_policy.value,
                },
            )

        self.snapshot = self.controller.execute()
        if self.recorder is not None:
            self.recorder.record_termination(self.snapshot)

        self.verdict = compose_verdict(
            self.snapshot,
            self.spec,
            external_caveats=self.caveats,
            reporting_confidence=self.reporting_confidence,
        )
        if self.recorder is not None:
            self.recorder.record_verdict(self.verdict)
        logger.info(
            "Run %s verdict: %s (%.2f%% observed, %.2f%% threshold)",
            self.run_id,
            "PASS" if self.verdict.passed else "FAIL",
            self.verdict.observed_rate * 100,
            self.verdict.effective_threshold * 100,
        )
        return self.verdict


def run(threshold: ThresholdLike, executor: TrialExecutor, **kwargs) -> Verdict:
    """Build a `Run` and drive it to a verdict; keyword options as for `Run`."""
    return Run(threshold, executor, **kwargs).run()
