"""
trialverdict.runtime.recorder
=============================

Writes a run's lifecycle to a `Ledger`.

Event layout (namespace / kind):

- ``run / started``: planned samples and run options
- ``criteria / threshold``: the resolved `ThresholdSpecification`
- ``obs / trial``: one per executed trial, via the progress-listener hook
- ``signals / terminated``: termination reason and final counts
- ``signals / verdict``: the composed verdict

Examples
--------
>>> from trialverdict.core.ledger import Ledger
>>> from trialverdict.runtime.controller import TrialOutcome
>>> from trialverdict.runtime.recorder import LedgerRecorder
>>> rec = LedgerRecorder(Ledger(), "run#1")
>>> rec(0, TrialOutcome.success())
>>> [e["payload"]["successes"] for e in rec.ledger.events(kind="trial")]
[1]
"""

from __future__ import annotations
from typing import TYPE_CHECKING, Any, Dict

from trialverdict.core.ledger import Ledger
from trialverdict.core.names import Namespace
from trialverdict.runtime.controller import RunSnapshot, TrialOutcome
from trialverdict.stats.thresholds import ThresholdSpecification

if TYPE_CHECKING:
    from trialverdict.reporting.verdict import Verdict


class LedgerRecorder:
    """Progress listener that appends one ``obs/trial`` event per trial."""

    def __init__(self, ledger: Ledger, run_id: str):
        self.ledger = ledger
        self.run_id = run_id
        self._executed = 0
        self._successes = 0

    def _write(
        self,
        time_index: str,
        namespace: Namespace,
        kind: str,
        payload_type: str,
        payload: Dict[str, Any],
        tag: str,
    ) -> None:
        self.ledger.write_event(
            time_index=time_index,
            namespace=namespace,
            kind=kind,
            run_id=self.run_id,
            step_key=time_index,
            payload_type=payload_type,
            payload=payload,
            tag=tag,
        )

    def record_start(self, spec: ThresholdSpecification, options: Dict[str, Any]) -> None:
        self._write(
            "start", Namespace.RUN, "started", "RunStarted",
            {"planned_samples": spec.samples, **options}, "run:started",
        )
        self._write(
            "start", Namespace.CRITERIA, "threshold", "ThresholdSpecification",
            spec.to_payload(), "crit:threshold",
        )

    def __call__(self, index: int, outcome: TrialOutcome) -> None:
        self._executed += 1
        if outcome.succeeded:
            self._successes += 1
        self._write(
            str(index), Namespace.OBS, "trial", "TrialOutcome",
            {
                "run_id": self.run_id,
                "index": index,
                "succeeded": outcome.succeeded,
                "resource_charge": outcome.resource_charge,
                "error": (
                    f"{type(outcome.error).__name__}: {outcome.error}"
                    if outcome.error is not None
                    else None
                ),
                "successes": self._successes,
                "executed": self._executed,
            },
            "obs:trial",
        )

    def record_termination(self, snapshot: RunSnapshot) -> None:
        self._write(
            "end", Namespace.SIGNALS, "terminated", "RunTerminated",
            {
                "reason": snapshot.termination_reason.value,
                "planned_samples": snapshot.planned_samples,
                "required_successes": snapshot.required_successes,
                "samples_executed": snapshot.samples_executed,
                "successes": snapshot.successes,
                "failures": snapshot.failures,
                "errors": snapshot.errors,
                "resource_used": snapshot.resource_used,
                "elapsed_time": snapshot.elapsed_time,
                "budget_exhaustion": (
                    snapshot.budget_exhaustion.to_payload()
                    if snapshot.budget_exhaustion
                    else None
                ),
                "explanation": snapshot.explanation,
            },
            "run:terminated",
        )

    def record_verdict(self, verdict: "Verdict") -> None:
        self._write(
            "end", Namespace.SIGNALS, "verdict", "Verdict",
            verdict.to_payload(), "run:verdict",
        )
