"""
Statistical methods for deciding pass/fail from Bernoulli trials.

1. **Binomial** (trialverdict.stats.binomial):
   Pure functions for a single binomial proportion: Wilson bounds, standard
   error, z/p-values and power analysis.

2. **Thresholds** (trialverdict.stats.thresholds):
   Resolution of the supported configuration modes into a concrete
   `ThresholdSpecification`, using the binomial functions.

Example:
--------
>>> from trialverdict.stats.binomial import wilson_interval
>>> ci = wilson_interval(8, 10, 0.95)
>>> ci.lower < 0.8 < ci.upper
True

>>> from trialverdict.stats.thresholds import Explicit, resolve_threshold
>>> resolve_threshold(Explicit(samples=20, threshold=0.9)).required_successes()
18
"""
