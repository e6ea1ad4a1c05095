"""
trialverdict.reporting.verdict
==============================

Verdict composition: turn a frozen run and its threshold into the final,
qualified pass/fail decision.

The composer is pure and runs exactly once per terminal run. It never produces
an unqualified pass/fail: every verdict carries its termination reason, a
two-sided Wilson confidence interval, a one-sided test against the threshold,
and zero or more caveats.

Decision rule
-------------
- COMPLETED, and BUDGET_EXHAUSTED under EVALUATE_PARTIAL:
  ``successes >= ceil(effective_threshold × samples_executed)``
- SUCCESS_GUARANTEED: pass (fixed by the controller)
- IMPOSSIBLE: fail (fixed by the controller)
- BUDGET_EXHAUSTED under FAIL, and ABORTED: fail

``observed_rate`` is computed over the samples actually executed, never over
the planned count, so early-terminated runs are judged on what they observed.

Examples
--------
>>> from trialverdict.core.names import TerminationReason
>>> from trialverdict.runtime.controller import RunSnapshot
>>> from trialverdict.stats.thresholds import Explicit, resolve_threshold
>>> from trialverdict.reporting.verdict import compose_verdict
>>> spec = resolve_threshold(Explicit(samples=10, threshold=0.8))
>>> snap = RunSnapshot(planned_samples=10, required_successes=8, samples_executed=8,
...     successes=8, failures=0, errors=0, resource_used=0.0, elapsed_time=0.0,
...     termination_reason=TerminationReason.SUCCESS_GUARANTEED)
>>> v = compose_verdict(snap, spec)
>>> v.passed, v.observed_rate
(True, 1.0)
>>> sorted(c.code for c in v.caveats)
['small_sample', 'zero_variance']
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence

from trialverdict.core.names import BudgetExhaustedBehavior, TerminationReason
from trialverdict.runtime.budget import BudgetExhaustion
from trialverdict.runtime.controller import RunSnapshot
from trialverdict.stats.binomial import (
    ConfidenceInterval,
    is_undersized_for_target,
    p_value,
    wilson_interval,
    z_score,
)
from trialverdict.stats.thresholds import ThresholdMode, ThresholdSpecification

SMALL_SAMPLE_LIMIT = 30


@dataclass(frozen=True)
class Caveat:
    """A warning attached to a verdict.

    ``code`` is stable and machine-readable; ``message`` is for people.
    Externally supplied caveats use the code ``"external"``.
    """

    code: str
    message: str

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True)
class Verdict:
    """The sole externally visible output of a run."""

    passed: bool
    observed_rate: float
    effective_threshold: float
    confidence_interval: Optional[ConfidenceInterval]
    z_score: Optional[float]
    p_value: Optional[float]
    termination_reason: TerminationReason
    caveats: Sequence[Caveat] = field(default_factory=tuple)

    samples_executed: int = 0
    successes: int = 0
    planned_samples: int = 0
    budget_exhaustion: Optional[BudgetExhaustion] = None
    false_positive_probability: Optional[float] = None
    interpretation: str = ""
    explanation: str = ""

    @property
    def caveat_messages(self) -> List[str]:
        return [c.message for c in self.caveats]

    def to_payload(self) -> Dict[str, Any]:
        ci = self.confidence_interval
        return {
            "passed": self.passed,
            "observed_rate": self.observed_rate,
            "effective_threshold": self.effective_threshold,
            "confidence_interval": (
                {"lower": ci.lower, "upper": ci.upper, "confidence": ci.confidence}
                if ci is not None
                else None
            ),
            # inf is not valid JSON
            "z_score": _finite_or_str(self.z_score),
            "p_value": self.p_value,
            "termination_reason": self.termination_reason.value,
            "caveats": [{"code": c.code, "message": c.message} for c in self.caveats],
            "samples_executed": self.samples_executed,
            "successes": self.successes,
            "planned_samples": self.planned_samples,
            "budget_exhaustion": (
                self.budget_exhaustion.to_payload() if self.budget_exhaustion else None
            ),
            "false_positive_probability": self.false_positive_probability,
            "interpretation": self.interpretation,
            "explanation": self.explanation,
        }


def _finite_or_str(value: Optional[float]) -> Any:
    if value is None or value == value and abs(value) != float("inf"):
        return value
    return str(value)


def decide(snapshot: RunSnapshot, spec: ThresholdSpecification) -> bool:
    """Pass/fail for a terminal run."""
    reason = snapshot.termination_reason
    if reason is TerminationReason.SUCCESS_GUARANTEED:
        return True
    if reason in (TerminationReason.IMPOSSIBLE, TerminationReason.ABORTED):
        return False
    if reason is TerminationReason.BUDGET_EXHAUSTED:
        exhaustion = snapshot.budget_exhaustion
        if exhaustion is None or exhaustion.policy is BudgetExhaustedBehavior.FAIL:
            return False
        if snapshot.samples_executed == 0:
            return False
    # same rounding guard as the controller's early exits
    return snapshot.successes >= spec.required_successes(snapshot.samples_executed)


def collect_caveats(
    snapshot: RunSnapshot,
    spec: ThresholdSpecification,
    external: Iterable[str] = (),
) -> List[Caveat]:
    """Union of independently triggered warnings, external caveats last."""
    caveats: List[Caveat] = []
    n = snapshot.samples_executed
    rate = snapshot.observed_rate

    if n < SMALL_SAMPLE_LIMIT:
        caveats.append(
            Caveat(
                "small_sample",
                f"Small sample: {n} samples executed (< {SMALL_SAMPLE_LIMIT}); "
                "the confidence interval is wide.",
            )
        )
    if n > 0 and rate in (0.0, 1.0):
        caveats.append(
            Caveat(
                "zero_variance",
                f"Observed rate is {rate:.0%}; the sample shows no variance, so "
                "Wilson bounds are used instead of the normal approximation.",
            )
        )
    if spec.mode is ThresholdMode.THRESHOLD_FIRST and spec.implied_confidence is not None:
        caveats.append(
            Caveat(
                "implied_confidence",
                f"Threshold {spec.threshold:.2%} against baseline rate "
                f"{spec.reference_rate:.2%} implies {spec.implied_confidence:.1%} "
                "confidence (diagnostic only; not used for pass/fail).",
            )
        )
        if not spec.is_statistically_sound:
            caveats.append(
                Caveat(
                    "statistically_unsound",
                    "Implied confidence is below 80%: failures are likely to be "
                    "sampling noise rather than real degradation.",
                )
            )
    if spec.is_baseline_derived and spec.baseline is not None:
        caveats.append(
            Caveat(
                "baseline_provenance",
                f"Threshold derived from a baseline of {spec.baseline.successes}/"
                f"{spec.baseline.samples}; it is only as representative as the "
                "conditions under which that baseline was measured.",
            )
        )
    if spec.mode is not ThresholdMode.EXPLICIT and spec.threshold < 1.0:
        if is_undersized_for_target(spec.samples, spec.threshold):
            caveats.append(
                Caveat(
                    "undersized",
                    f"{spec.samples} samples cannot demonstrate a "
                    f"{spec.threshold:.2%} rate even with zero failures.",
                )
            )
    if snapshot.termination_reason is TerminationReason.BUDGET_EXHAUSTED:
        exhaustion = snapshot.budget_exhaustion
        detail = exhaustion.describe() if exhaustion else "Budget exhausted"
        caveats.append(
            Caveat(
                "budget_exhausted",
                f"{detail}; only {n} of {snapshot.planned_samples} samples ran.",
            )
        )
    if snapshot.termination_reason is TerminationReason.ABORTED:
        caveats.append(
            Caveat("aborted", f"Run aborted by an unexpected error: {snapshot.abort_error}")
        )
    for message in external:
        caveats.append(Caveat("external", message))
    return caveats


def _interpret(passed: bool, rate: float, spec: ThresholdSpecification) -> str:
    if passed:
        return (
            f"Observed {rate:.2%} >= {spec.threshold:.2%} threshold. "
            "No evidence of degradation."
        )
    shortfall = spec.threshold - rate
    text = (
        f"Observed {rate:.2%} < {spec.threshold:.2%} threshold "
        f"(shortfall: {shortfall:.2%})."
    )
    if spec.confidence is not None:
        text += (
            f" There is a {1.0 - spec.confidence:.1%} probability this failure is "
            "due to sampling variance rather than actual degradation."
        )
    return text


def compose_verdict(
    snapshot: RunSnapshot,
    spec: ThresholdSpecification,
    *,
    external_caveats: Iterable[str] = (),
    reporting_confidence: float = 0.95,
) -> Verdict:
    """Build the final verdict from a frozen run and its threshold."""
    n = snapshot.samples_executed
    rate = snapshot.observed_rate
    passed = decide(snapshot, spec)

    ci = None
    z = None
    p = None
    if n > 0:
        ci = wilson_interval(snapshot.successes, n, reporting_confidence)
        z = z_score(rate, spec.threshold, n)
        p = p_value(z)

    fpp = None
    if not passed and spec.confidence is not None:
        fpp = 1.0 - spec.confidence

    return Verdict(
        passed=passed,
        observed_rate=rate,
        effective_threshold=spec.threshold,
        confidence_interval=ci,
        z_score=z,
        p_value=p,
        termination_reason=snapshot.termination_reason,
        caveats=tuple(collect_caveats(snapshot, spec, external_caveats)),
        samples_executed=n,
        successes=snapshot.successes,
        planned_samples=snapshot.planned_samples,
        budget_exhaustion=snapshot.budget_exhaustion,
        false_positive_probability=fpp,
        interpretation=_interpret(passed, rate, spec),
        explanation=snapshot.explanation,
    )


def summarize_runs(verdicts: Sequence[Verdict]) -> str:
    """Summarize repeated runs of the same test.

    A single failure may be a false positive; repeated failures multiply their
    false-positive probabilities and quickly become strong evidence.
    """
    if not verdicts:
        return "No test runs to summarize."
    failed = [v for v in verdicts if not v.passed]
    if not failed:
        return f"All {len(verdicts)} runs passed. No evidence of degradation."
    probabilities = [v.false_positive_probability for v in failed]
    if len(failed) == 1:
        if probabilities[0] is None:
            return f"1 of {len(verdicts)} runs failed."
        return (
            f"1 of {len(verdicts)} runs failed. Single failure may be a false "
            f"positive ({probabilities[0]:.1%} probability)."
        )
    if any(p is None for p in probabilities):
        return f"{len(failed)} of {len(verdicts)} runs failed."
    joint = 1.0
    for p in probabilities:
        joint *= p
    return (
        f"{len(failed)} of {len(verdicts)} runs failed. Probability of ALL being "
        f"false positives: {joint:.4%}. Strong evidence of actual degradation."
    )
