"""
trialverdict.reporting
======================

Turning runs into decisions and views.

- `trialverdict.reporting.verdict`: the verdict composer (pass/fail with
  confidence interval, test statistics and caveats)
- `trialverdict.reporting.progress`: per-trial progress tables from a ledger (polars)
- `trialverdict.reporting.generic`: namespace/kind overviews of a ledger (ibis)
"""
