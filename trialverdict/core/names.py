"""
trialverdict.core.names
=======================

Typed names shared across the package.

- `Namespace`: an Enum for well-known ledger namespaces.
- `RunId`, `StepKey`, `TimeIndex`: NewType wrappers for clarity.
- Policy enums (`BudgetExhaustedBehavior`, `ExceptionPolicy`, `ChargeMode`).
- `TerminationReason` and the budget scope vocabulary (`ScopeLevel`, `BudgetKind`).

Examples
--------
>>> from trialverdict.core.names import Namespace, RunId, TerminationReason
>>> Namespace.OBS.value
'obs'
>>> rid = RunId("run#1"); isinstance(rid, str)
True
>>> TerminationReason.SUCCESS_GUARANTEED.is_early_termination
True
"""

from __future__ import annotations
from enum import Enum
from typing import Literal, NewType


class Namespace(str, Enum):
    """Well-known ledger namespaces.

    - RUN: run lifecycle (started)
    - OBS: raw trial outcomes
    - STATS: statistics (derived)
    - CRITERIA: resolved thresholds
    - SIGNALS: terminations and verdicts
    """

    RUN = "run"
    OBS = "obs"
    STATS = "stats"
    CRITERIA = "criteria"
    SIGNALS = "signals"


# Typed aliases for logical identifiers (thin wrappers over str).
RunId = NewType("RunId", str)
StepKey = NewType("StepKey", str)
TimeIndex = NewType("TimeIndex", str)

# Common tags (extend as needed).
TrialTag = Literal["obs:trial"]
ThresholdTag = Literal["crit:threshold"]
TerminationTag = Literal["run:terminated"]
VerdictTag = Literal["run:verdict"]


class TerminationReason(str, Enum):
    """Why a run stopped executing trials."""

    COMPLETED = "completed"
    IMPOSSIBLE = "impossible"
    SUCCESS_GUARANTEED = "success_guaranteed"
    BUDGET_EXHAUSTED = "budget_exhausted"
    ABORTED = "aborted"

    @property
    def description(self) -> str:
        return _DESCRIPTIONS[self]

    @property
    def is_early_termination(self) -> bool:
        return self is not TerminationReason.COMPLETED


_DESCRIPTIONS = {
    TerminationReason.COMPLETED: "All samples completed",
    TerminationReason.IMPOSSIBLE: "Cannot reach required pass rate",
    TerminationReason.SUCCESS_GUARANTEED: "Required pass rate already achieved",
    TerminationReason.BUDGET_EXHAUSTED: "Budget exhausted",
    TerminationReason.ABORTED: "Aborted by an unexpected trial error",
}


class RunStatus(str, Enum):
    """Controller lifecycle: READY -> RUNNING -> terminal."""

    READY = "ready"
    RUNNING = "running"
    TERMINATED = "terminated"


class BudgetExhaustedBehavior(str, Enum):
    """Effect of budget exhaustion on the final verdict.

    - FAIL: the verdict always fails
    - EVALUATE_PARTIAL: the partial counts are judged as if the run had completed
    """

    FAIL = "fail"
    EVALUATE_PARTIAL = "evaluate_partial"


class ExceptionPolicy(str, Enum):
    """What an unexpected executor error does to the run.

    - FAIL_SAMPLE: the trial counts as a failure and the run continues
    - ABORT_TEST: the run terminates immediately
    """

    FAIL_SAMPLE = "fail_sample"
    ABORT_TEST = "abort_test"


class ChargeMode(str, Enum):
    """How resource units are charged per trial.

    - NONE: no resource tracking
    - STATIC: a fixed charge per trial, known before the trial runs
    - DYNAMIC: the charge reported by the executor after the trial
    """

    NONE = "none"
    STATIC = "static"
    DYNAMIC = "dynamic"


class ScopeLevel(str, Enum):
    """Nesting level of a budget scope (method within class within suite)."""

    METHOD = "method"
    CLASS = "class"
    SUITE = "suite"


class BudgetKind(str, Enum):
    """The two independently tracked budget kinds."""

    TIME = "time"
    RESOURCE = "resource"
