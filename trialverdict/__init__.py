"""
trialverdict: a package for deciding whether a non-deterministic component passes.

A single run of a flaky, sampled or model-backed component proves little. What
can be decided is whether its *success rate* is consistent with a required
threshold. trialverdict treats every execution as an independent Bernoulli
trial and turns the running counts into a justified verdict.

The engine is built from a few small pieces:

- `stats`: Wilson bounds, z/p-values, power-based sample sizing, and the
  threshold resolver that turns one of several configuration styles into a
  concrete `(samples, threshold)` pair before any trial runs.
- `runtime`: hierarchical budget scopes shared across runs, and the sequential
  controller that stops as soon as the outcome is decided (impossible to pass,
  or already guaranteed to pass).
- `reporting`: the verdict composer, which qualifies every pass/fail with a
  confidence interval, test statistics and caveats.
- `core`: shared names, errors and an optional append-only event ledger that
  records every run for later inspection.

Example
-------
>>> import trialverdict
>>> assert hasattr(trialverdict, "stats")
>>> assert hasattr(trialverdict, "runtime")
>>> verdict = trialverdict.run(
...     trialverdict.Explicit(samples=10, threshold=0.8), lambda i: True
... )
>>> verdict.passed, verdict.samples_executed
(True, 8)
"""

from trialverdict.__version__ import __version__
from trialverdict import core, stats, runtime, reporting
from trialverdict.core.names import (
    TerminationReason,
    BudgetExhaustedBehavior,
    ExceptionPolicy,
    ChargeMode,
)
from trialverdict.core.errors import TrialVerdictError, ConfigurationError
from trialverdict.stats.thresholds import (
    BaselineReference,
    Explicit,
    DerivedFromBaseline,
    PowerDerived,
    ThresholdFirst,
    ThresholdSpecification,
    resolve_threshold,
)
from trialverdict.runtime.budget import BudgetScope
from trialverdict.runtime.controller import TrialOutcome
from trialverdict.runtime.run import Run, run
from trialverdict.reporting.verdict import Verdict

__all__ = [
    "__version__",
    "TerminationReason",
    "BudgetExhaustedBehavior",
    "ExceptionPolicy",
    "ChargeMode",
    "TrialVerdictError",
    "ConfigurationError",
    "BaselineReference",
    "Explicit",
    "DerivedFromBaseline",
    "PowerDerived",
    "ThresholdFirst",
    "ThresholdSpecification",
    "resolve_threshold",
    "BudgetScope",
    "TrialOutcome",
    "Run",
    "run",
    "Verdict",
]
