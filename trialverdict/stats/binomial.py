"""
trialverdict.stats.binomial
===========================

Core mathematics for a single binomial proportion.

Provides the building blocks used by threshold resolution and verdict
composition:

- Wilson score bounds (one-sided lower bound, two-sided interval)
- Standard error, z-statistic and one-sided p-value
- Power analysis (required sample size, achieved power)

These functions are pure and stateless. They never use the normal (Wald)
approximation for confidence bounds, so they stay well-defined when the
observed rate is exactly 0 or 1.

Examples
--------
>>> from trialverdict.stats.binomial import wilson_lower_bound, z_for_confidence
>>> z = z_for_confidence(0.95)
>>> round(z, 3)
1.645
>>> wilson_lower_bound(100, 100, z) == 100 / (100 + z * z)
True
"""

from __future__ import annotations
import math
from dataclasses import dataclass
from typing import Tuple

from scipy.stats import norm


@dataclass(frozen=True)
class ConfidenceInterval:
    """Two-sided confidence interval for a proportion."""

    lower: float
    upper: float
    confidence: float

    def as_tuple(self) -> Tuple[float, float]:
        return (self.lower, self.upper)

    def contains(self, p: float) -> bool:
        return self.lower <= p <= self.upper


def _validate_counts(successes: int, samples: int) -> None:
    if samples <= 0:
        raise ValueError(f"samples must be positive, got {samples}")
    if successes < 0 or successes > samples:
        raise ValueError(f"successes must be in [0, {samples}], got {successes}")


def _validate_level(name: str, value: float) -> None:
    if not 0.0 < value < 1.0:
        raise ValueError(f"{name} must be in (0, 1), got {value}")


def z_for_confidence(confidence: float, two_sided: bool = False) -> float:
    """Standard normal quantile for a confidence level.

    One-sided: z = Φ⁻¹(confidence). Two-sided: z = Φ⁻¹(1 − (1 − confidence)/2).
    """
    _validate_level("confidence", confidence)
    alpha = 1.0 - confidence
    q = 1.0 - alpha / 2.0 if two_sided else 1.0 - alpha
    return float(norm.ppf(q))


def _wilson_center_margin(successes: int, samples: int, z: float) -> Tuple[float, float]:
    p_hat = successes / samples
    z2 = z * z
    denominator = 1.0 + z2 / samples
    center = (p_hat + z2 / (2.0 * samples)) / denominator
    margin = (
        z
        * math.sqrt(p_hat * (1.0 - p_hat) / samples + z2 / (4.0 * samples * samples))
        / denominator
    )
    return center, margin


def wilson_lower_bound(successes: int, samples: int, z_alpha: float) -> float:
    """One-sided Wilson score lower bound for a binomial proportion.

    Answers: what is the lowest true rate consistent with ``successes`` out of
    ``samples`` at the confidence encoded by ``z_alpha``?

    At ``successes == samples`` the bound reduces exactly to
    ``samples / (samples + z_alpha**2)``, so a perfect observation never yields
    a bound of 1.0.

    Args:
        successes: Observed successes k (0 ≤ k ≤ n)
        samples: Number of trials n (> 0)
        z_alpha: One-sided normal quantile, e.g. 1.645 for 95%

    Returns:
        Lower bound in [0, k/n]
    """
    _validate_counts(successes, samples)
    if successes == samples:
        # closed form of center - margin at p_hat == 1
        return samples / (samples + z_alpha * z_alpha)
    center, margin = _wilson_center_margin(successes, samples, z_alpha)
    return min(max(0.0, center - margin), successes / samples)


def wilson_interval(successes: int, samples: int, confidence: float) -> ConfidenceInterval:
    """Two-sided Wilson score interval, for reporting.

    center = (p̂ + z²/2n) / (1 + z²/n)
    margin = z × √(p̂(1-p̂)/n + z²/4n²) / (1 + z²/n)
    """
    _validate_counts(successes, samples)
    z = z_for_confidence(confidence, two_sided=True)
    center, margin = _wilson_center_margin(successes, samples, z)
    return ConfidenceInterval(
        lower=max(0.0, center - margin),
        upper=min(1.0, center + margin),
        confidence=confidence,
    )


def standard_error(p_hat: float, n: int) -> float:
    """SE(p̂) = √(p̂(1-p̂)/n). Collapses to 0 at p̂ ∈ {0, 1}."""
    if n <= 0:
        raise ValueError(f"n must be positive, got {n}")
    return math.sqrt(p_hat * (1.0 - p_hat) / n)


def z_score(p_hat: float, p0: float, n: int) -> float:
    """One-sided z-statistic of p̂ against the hypothesized rate p0.

    Uses the null variance: z = (p̂ − p0) / √(p0(1−p0)/n).

    At p0 ∈ {0, 1} the null has zero variance; any deviation is infinitely
    significant, so the result is ±inf (or 0.0 when p̂ == p0).
    """
    if n <= 0:
        raise ValueError(f"n must be positive, got {n}")
    se = math.sqrt(p0 * (1.0 - p0) / n)
    diff = p_hat - p0
    if se == 0.0:
        if diff == 0.0:
            return 0.0
        return math.copysign(math.inf, diff)
    return diff / se


def p_value(z: float) -> float:
    """One-sided lower-tail p-value P(Z ≤ z), testing H₁: rate below threshold.

    z = −inf maps to 0.0 and z = +inf maps to 1.0.
    """
    if math.isinf(z):
        return 0.0 if z < 0 else 1.0
    return float(norm.cdf(z))


def required_sample_size_for_power(
    p0: float, p1: float, alpha: float, power: float
) -> int:
    """Sample size for a one-sided test of H₀: p = p0 against H₁: p = p1.

    n = ((z_α·σ₀ + z_β·σ₁) / |p0 − p1|)², rounded up,
    where σ₀ = √(p0(1−p0)) and σ₁ = √(p1(1−p1)).

    Args:
        p0: Rate under the null hypothesis (no degradation)
        p1: Rate under the alternative (degraded)
        alpha: Type I error rate (1 − confidence)
        power: Desired power (1 − β)

    Raises:
        ValueError: if p0 == p1, a parameter is out of range, or the result
            is not finite.
    """
    for name, value in (("p0", p0), ("p1", p1)):
        if not 0.0 <= value <= 1.0:
            raise ValueError(f"{name} must be in [0, 1], got {value}")
    _validate_level("alpha", alpha)
    _validate_level("power", power)
    if p0 == p1:
        raise ValueError("p0 and p1 must differ to size a test")

    sigma0 = math.sqrt(p0 * (1.0 - p0))
    sigma1 = math.sqrt(p1 * (1.0 - p1))
    z_alpha = float(norm.ppf(1.0 - alpha))
    z_beta = float(norm.ppf(power))

    n = ((z_alpha * sigma0 + z_beta * sigma1) / abs(p0 - p1)) ** 2
    if not math.isfinite(n):
        raise ValueError(f"sample size is not finite (p0={p0}, p1={p1})")
    return max(1, math.ceil(n))


def achieved_power(samples: int, p0: float, p1: float, alpha: float) -> float:
    """Power of a one-sided test with ``samples`` trials.

    Inverse of `required_sample_size_for_power`:
    z_β = (|p0 − p1|·√n − z_α·σ₀) / σ₁, power = Φ(z_β).
    """
    if samples <= 0:
        raise ValueError(f"samples must be positive, got {samples}")
    _validate_level("alpha", alpha)
    sigma0 = math.sqrt(p0 * (1.0 - p0))
    sigma1 = math.sqrt(p1 * (1.0 - p1))
    z_alpha = float(norm.ppf(1.0 - alpha))
    numerator = abs(p0 - p1) * math.sqrt(samples) - z_alpha * sigma0
    if sigma1 == 0.0:
        return 1.0 if numerator > 0 else 0.0
    return float(norm.cdf(numerator / sigma1))


def is_undersized_for_target(samples: int, target: float, alpha: float = 0.001) -> bool:
    """True if even a perfect run of ``samples`` cannot demonstrate ``target``.

    Assumes zero failures (k = n) and checks whether the Wilson lower bound at
    confidence 1 − alpha still falls short of the target rate.
    """
    if samples <= 0 or not 0.0 < target < 1.0:
        return False
    z = z_for_confidence(1.0 - alpha)
    return wilson_lower_bound(samples, samples, z) < target
