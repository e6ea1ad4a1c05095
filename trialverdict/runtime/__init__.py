"""
trialverdict.runtime
====================

Execution infrastructure for statistical test runs.

Key Components
--------------
- `BudgetScope`: hierarchical time/resource budgets shared across runs
- `SequentialSampleController`: the trial loop with early termination
- `LedgerRecorder`: writes a run's lifecycle to a ledger
- `Run` / `run`: the entry point that produces a `Verdict`

Examples
--------
>>> from trialverdict.runtime.run import run
>>> from trialverdict.stats.thresholds import Explicit
>>> run(Explicit(samples=5, threshold=1.0), lambda i: i != 2).termination_reason.value
'impossible'
"""
