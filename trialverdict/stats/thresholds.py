"""
trialverdict.stats.thresholds
=============================

Threshold resolution: turn one configuration mode into a concrete
`ThresholdSpecification` before any trial runs.

Supported modes (exactly one per run):

- `Explicit`: samples and threshold given directly, no baseline needed.
- `DerivedFromBaseline` (sample-size-first): samples and confidence given,
  threshold derived from a baseline measurement.
- `PowerDerived` (confidence-first): confidence, power and minimum detectable
  effect given, sample count derived by power analysis.
- `ThresholdFirst`: samples and threshold given; when a baseline is available
  the *implied* confidence is reported as a diagnostic only.

Mathematical Background
-----------------------
A baseline observed at p̂ = 951/1000 is an estimate, not the true rate. Using
95.1% as the threshold for a 100-sample test would fail about half of the
time on a system that has not changed. The sample-size-first derivation
therefore discounts twice: once for the uncertainty of the baseline (Wilson
lower bound p_lb over the baseline samples), and once for the sampling
variance of the smaller test:

    threshold = p_lb − z_α · √(p_lb(1 − p_lb) / n_test)

Because p_lb < 1 for any finite baseline, the perfect-baseline case needs no
special treatment.

Examples
--------
>>> from trialverdict.stats.thresholds import (
...     BaselineReference, DerivedFromBaseline, Explicit, resolve_threshold)
>>> spec = resolve_threshold(Explicit(samples=10, threshold=0.8))
>>> spec.required_successes()
8
>>> spec.successes_still_required(executed=5, successes=3)
5
>>> derived = resolve_threshold(DerivedFromBaseline(
...     baseline=BaselineReference(successes=1000, samples=1000),
...     test_samples=100, confidence=0.95))
>>> round(derived.threshold, 3)
0.989
"""

from __future__ import annotations
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Union

from scipy.stats import norm

from trialverdict.core.errors import ConfigurationError
from trialverdict.stats.binomial import (
    required_sample_size_for_power,
    wilson_lower_bound,
    z_for_confidence,
)

# Implied confidence below this level makes a threshold-first test unsound.
SOUNDNESS_CONFIDENCE = 0.80


class ThresholdMode(str, Enum):
    """Which configuration style produced a threshold."""

    EXPLICIT = "explicit"
    DERIVED_FROM_BASELINE = "derived_from_baseline"
    POWER_DERIVED = "power_derived"
    THRESHOLD_FIRST = "threshold_first"


@dataclass(frozen=True)
class BaselineReference:
    """A prior measurement used as numeric input to threshold derivation.

    ``metadata`` is carried along untouched; the engine never interprets it.
    """

    successes: int
    samples: int
    metadata: Mapping[str, Any] = field(default_factory=dict, compare=False)

    def __post_init__(self) -> None:
        if self.samples <= 0:
            raise ConfigurationError(
                f"Baseline samples must be positive, got {self.samples}"
            )
        if not 0 <= self.successes <= self.samples:
            raise ConfigurationError(
                f"Baseline successes must be in [0, {self.samples}], got {self.successes}"
            )

    @property
    def rate(self) -> float:
        return self.successes / self.samples


# --- Configuration modes ---


@dataclass(frozen=True)
class Explicit:
    """Threshold and sample count given directly."""

    samples: int
    threshold: float


@dataclass(frozen=True)
class DerivedFromBaseline:
    """Sample-size-first: derive the threshold from a baseline."""

    baseline: BaselineReference
    test_samples: int
    confidence: float = 0.95


@dataclass(frozen=True)
class PowerDerived:
    """Confidence-first: derive the sample count by power analysis.

    The reference rate is taken from ``reference_rate`` or, when omitted,
    from ``baseline``.
    """

    confidence: float = 0.95
    power: float = 0.80
    min_detectable_effect: Optional[float] = None
    reference_rate: Optional[float] = None
    baseline: Optional[BaselineReference] = None


@dataclass(frozen=True)
class ThresholdFirst:
    """Samples and threshold given; implied confidence computed as a diagnostic."""

    test_samples: int
    threshold: float
    baseline: Optional[BaselineReference] = None


ThresholdConfig = Union[Explicit, DerivedFromBaseline, PowerDerived, ThresholdFirst]


@dataclass(frozen=True)
class ThresholdSpecification:
    """A resolved, immutable `(samples, threshold)` pair with its provenance.

    Attributes:
        mode: Configuration style that produced this specification
        samples: Planned number of trials
        threshold: Minimum observed success rate for a pass
        confidence: Confidence behind the threshold (configured or implied);
            None for explicit thresholds
        baseline: Baseline used for derivation, if any
        reference_rate: Rate the threshold was derived against, if any
        power: Configured power (power-derived mode only)
        min_detectable_effect: Configured effect (power-derived mode only)
        implied_confidence: Diagnostic confidence (threshold-first mode only)
    """

    mode: ThresholdMode
    samples: int
    threshold: float
    confidence: Optional[float] = None
    baseline: Optional[BaselineReference] = None
    reference_rate: Optional[float] = None
    power: Optional[float] = None
    min_detectable_effect: Optional[float] = None
    implied_confidence: Optional[float] = None

    def __post_init__(self) -> None:
        _check_samples("samples", self.samples)
        _check_threshold(self.threshold)

    @property
    def is_baseline_derived(self) -> bool:
        return self.baseline is not None and self.mode in (
            ThresholdMode.DERIVED_FROM_BASELINE,
            ThresholdMode.POWER_DERIVED,
        )

    @property
    def is_statistically_sound(self) -> bool:
        if self.implied_confidence is None:
            return True
        return self.implied_confidence >= SOUNDNESS_CONFIDENCE

    def required_successes(self, planned: Optional[int] = None) -> int:
        """Successes needed out of ``planned`` trials: ceil(threshold × planned)."""
        n = self.samples if planned is None else planned
        # round first so 0.7 * 10 == 7.000000000000001 does not become 8
        return math.ceil(round(self.threshold * n, 9))

    def successes_still_required(self, executed: int, successes: int) -> int:
        """Additional successes needed after ``executed`` trials (never negative)."""
        if executed < 0 or executed > self.samples:
            raise ValueError(f"executed must be in [0, {self.samples}], got {executed}")
        return max(0, self.required_successes() - successes)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "mode": self.mode.value,
            "samples": self.samples,
            "threshold": self.threshold,
            "confidence": self.confidence,
            "reference_rate": self.reference_rate,
            "power": self.power,
            "min_detectable_effect": self.min_detectable_effect,
            "implied_confidence": self.implied_confidence,
            "baseline": (
                {"successes": self.baseline.successes, "samples": self.baseline.samples}
                if self.baseline is not None
                else None
            ),
        }


# --- Validation helpers ---


def _check_samples(name: str, samples: int) -> None:
    if isinstance(samples, bool) or not isinstance(samples, int) or samples < 1:
        raise ConfigurationError(f"{name} must be a positive integer, got {samples!r}")


def _check_threshold(threshold: float) -> None:
    if not isinstance(threshold, (int, float)) or math.isnan(threshold):
        raise ConfigurationError(f"Threshold must be a number, got {threshold!r}")
    if not 0.0 < threshold <= 1.0:
        raise ConfigurationError(f"Threshold must be in (0, 1], got {threshold}")


def _check_level(name: str, value: Optional[float]) -> float:
    if value is None or math.isnan(value) or not 0.0 < value < 1.0:
        raise ConfigurationError(f"{name} must be in (0, 1), got {value}")
    return float(value)


# --- Resolvers ---


def _resolve_explicit(cfg: Explicit) -> ThresholdSpecification:
    _check_samples("samples", cfg.samples)
    _check_threshold(cfg.threshold)
    return ThresholdSpecification(
        mode=ThresholdMode.EXPLICIT, samples=cfg.samples, threshold=float(cfg.threshold)
    )


def _resolve_derived(cfg: DerivedFromBaseline) -> ThresholdSpecification:
    _check_samples("test_samples", cfg.test_samples)
    confidence = _check_level("confidence", cfg.confidence)
    z = z_for_confidence(confidence)
    baseline = cfg.baseline

    p_lb = wilson_lower_bound(baseline.successes, baseline.samples, z)
    threshold = p_lb - z * math.sqrt(p_lb * (1.0 - p_lb) / cfg.test_samples)
    threshold = min(max(threshold, 0.0), 1.0)
    if threshold <= 0.0:
        raise ConfigurationError(
            f"Baseline {baseline.successes}/{baseline.samples} yields no usable "
            f"threshold for {cfg.test_samples} samples at {confidence:.0%} confidence"
        )

    return ThresholdSpecification(
        mode=ThresholdMode.DERIVED_FROM_BASELINE,
        samples=cfg.test_samples,
        threshold=threshold,
        confidence=confidence,
        baseline=baseline,
        reference_rate=baseline.rate,
    )


def _resolve_power(cfg: PowerDerived) -> ThresholdSpecification:
    confidence = _check_level("confidence", cfg.confidence)
    power = _check_level("power", cfg.power)

    mde = cfg.min_detectable_effect
    if mde is None or math.isnan(mde) or mde <= 0.0:
        raise ConfigurationError(
            f"min_detectable_effect must be set and positive for power-derived "
            f"sizing, got {mde}"
        )

    p0 = cfg.reference_rate
    if p0 is None and cfg.baseline is not None:
        p0 = cfg.baseline.rate
    if p0 is None:
        raise ConfigurationError(
            "Power-derived sizing needs a reference_rate or a baseline"
        )
    if not 0.0 < p0 <= 1.0:
        raise ConfigurationError(f"reference_rate must be in (0, 1], got {p0}")

    p1 = p0 - mde
    if p1 < 0.0:
        raise ConfigurationError(
            f"min_detectable_effect {mde} exceeds reference rate {p0}"
        )

    try:
        samples = required_sample_size_for_power(p0, p1, 1.0 - confidence, power)
    except ValueError as exc:
        raise ConfigurationError(f"Cannot size power-derived test: {exc}") from exc

    z_alpha = float(norm.ppf(confidence))
    threshold = p0 - z_alpha * math.sqrt(p0 * (1.0 - p0) / samples)
    if not 0.0 < threshold <= 1.0:
        raise ConfigurationError(
            f"Power-derived threshold {threshold} is outside (0, 1]"
        )

    return ThresholdSpecification(
        mode=ThresholdMode.POWER_DERIVED,
        samples=samples,
        threshold=threshold,
        confidence=confidence,
        baseline=cfg.baseline,
        reference_rate=p0,
        power=power,
        min_detectable_effect=float(mde),
    )


def implied_confidence(reference_rate: float, threshold: float, samples: int) -> float:
    """Confidence implied by choosing ``threshold`` against ``reference_rate``.

    Solves z = (reference_rate − threshold) / SE for z, with SE taken from the
    threshold's own variance √(t(1−t)/n), and returns Φ(z). A threshold at or
    above the reference rate implies 50% confidence or less.
    """
    se = math.sqrt(threshold * (1.0 - threshold) / samples)
    diff = reference_rate - threshold
    if se == 0.0:
        return 1.0 if diff > 0 else (0.5 if diff == 0 else 0.0)
    return float(norm.cdf(diff / se))


def _resolve_threshold_first(cfg: ThresholdFirst) -> ThresholdSpecification:
    _check_samples("test_samples", cfg.test_samples)
    _check_threshold(cfg.threshold)

    implied = None
    reference = None
    if cfg.baseline is not None:
        reference = cfg.baseline.rate
        implied = implied_confidence(reference, cfg.threshold, cfg.test_samples)

    return ThresholdSpecification(
        mode=ThresholdMode.THRESHOLD_FIRST,
        samples=cfg.test_samples,
        threshold=float(cfg.threshold),
        confidence=implied,
        baseline=cfg.baseline,
        reference_rate=reference,
        implied_confidence=implied,
    )


_RESOLVERS = {
    Explicit: _resolve_explicit,
    DerivedFromBaseline: _resolve_derived,
    PowerDerived: _resolve_power,
    ThresholdFirst: _resolve_threshold_first,
}


def resolve_threshold(mode: ThresholdConfig) -> ThresholdSpecification:
    """Resolve exactly one configuration mode into a `ThresholdSpecification`.

    Resolution is pure: equal inputs always produce equal specifications.

    Raises:
        ConfigurationError: for any invalid or incomplete configuration.
    """
    resolver = _RESOLVERS.get(type(mode))
    if resolver is None:
        raise ConfigurationError(
            f"Unknown threshold configuration: {type(mode).__name__}"
        )
    return resolver(mode)
