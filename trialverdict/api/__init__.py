"""
trialverdict.api - User-Friendly Facade
=======================================

Off-the-shelf constructors organized by how people state test requirements,
rather than by the threshold mode behind them.

Examples
--------
>>> from trialverdict.api.probabilistic_test import threshold_first_test
>>> test = threshold_first_test(lambda i: True, samples=50, min_pass_rate=0.9,
...                             baseline=(95, 100))
>>> test.spec.implied_confidence > 0.5
True

Unified Interface
-----------------
All constructors live in `trialverdict.api.probabilistic_test`:
- `explicit_test()`: hand-picked samples and pass rate
- `baseline_test()`: threshold derived from a baseline measurement
- `power_test()`: sample count derived by power analysis
- `threshold_first_test()`: fixed pass rate with implied-confidence diagnostics
"""
