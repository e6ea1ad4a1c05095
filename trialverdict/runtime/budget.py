"""
trialverdict.runtime.budget
===========================

Hierarchical budget scopes shared across runs.

Scopes form a simple parent chain (method ⊂ class ⊂ suite). A missing scope, or
a missing limit on a scope, means "no limit there". Each scope tracks two
budget kinds with the same mechanism:

- `BudgetKind.TIME`: elapsed wall-clock seconds
- `BudgetKind.RESOURCE`: abstract units reported by the caller (tokens, calls, ...)

Charges are compare-and-update under a per-counter lock, so concurrent runs
sharing a class or suite scope see a linearizable sequence of charges: two
charges can never both succeed when only one had room.

A charge may push ``consumed`` past ``limit``. The overflow is recorded, the
counter is marked exhausted, and the next check reports it; nothing is ever
rolled back.

Examples
--------
>>> from trialverdict.core.names import BudgetKind, ScopeLevel
>>> from trialverdict.runtime.budget import BudgetScope
>>> suite = BudgetScope("suite", ScopeLevel.SUITE, resource_limit=1000)
>>> method = BudgetScope("test_checkout", ScopeLevel.METHOD, parent=suite)
>>> [s.name for s in method.chain()]
['test_checkout', 'suite']
>>> suite.try_charge(BudgetKind.RESOURCE, 600)
True
>>> suite.try_charge(BudgetKind.RESOURCE, 600)
False
>>> suite.consumed(BudgetKind.RESOURCE), suite.is_exhausted(BudgetKind.RESOURCE)
(1200.0, True)
"""

from __future__ import annotations
import logging
import threading
from dataclasses import dataclass
from typing import Dict, Iterator, Optional

from trialverdict.core.errors import ConfigurationError
from trialverdict.core.names import BudgetExhaustedBehavior, BudgetKind, ScopeLevel

logger = logging.getLogger(__name__)


class BudgetCounter:
    """A single lock-protected ``{limit, consumed, exhausted}`` counter."""

    def __init__(self, limit: Optional[float] = None):
        if limit is not None and limit < 0:
            raise ConfigurationError(f"Budget limit must be non-negative, got {limit}")
        self.limit = None if limit is None else float(limit)
        self._consumed = 0.0
        self._exhausted = False
        self._lock = threading.Lock()

    @property
    def consumed(self) -> float:
        with self._lock:
            return self._consumed

    @property
    def exhausted(self) -> bool:
        with self._lock:
            return self._exhausted

    @property
    def remaining(self) -> Optional[float]:
        if self.limit is None:
            return None
        with self._lock:
            return max(0.0, self.limit - self._consumed)

    def try_charge(self, amount: float) -> bool:
        """Record ``amount``; return False (and mark exhausted) if it overflows."""
        if amount < 0:
            raise ValueError(f"Charge must be non-negative, got {amount}")
        with self._lock:
            fits = self.limit is None or self._consumed + amount <= self.limit
            self._consumed += amount
            if not fits:
                self._exhausted = True
            return fits

    def would_exceed(self, amount: float = 0.0) -> bool:
        """Pre-trial check: is the counter exhausted, or would ``amount`` overflow it?

        With ``amount == 0`` (charge unknown until the trial runs) a counter
        that is already at its limit counts as exhausted, since any further
        charge would overflow it.
        """
        if self.limit is None:
            return False
        with self._lock:
            if self._exhausted:
                return True
            if amount > 0:
                return self._consumed + amount > self.limit
            return self._consumed >= self.limit


@dataclass(frozen=True)
class BudgetExhaustion:
    """Identity of the scope that stopped a run."""

    scope_name: str
    level: ScopeLevel
    kind: BudgetKind
    consumed: float
    limit: float
    policy: BudgetExhaustedBehavior

    def describe(self) -> str:
        unit = "s" if self.kind is BudgetKind.TIME else " units"
        return (
            f"{self.level.value.capitalize()} {self.kind.value} budget "
            f"'{self.scope_name}' exhausted ({self.consumed:g}{unit} of {self.limit:g}{unit})"
        )

    def to_payload(self) -> Dict[str, object]:
        return {
            "scope": self.scope_name,
            "level": self.level.value,
            "kind": self.kind.value,
            "consumed": self.consumed,
            "limit": self.limit,
            "policy": self.policy.value,
        }


class BudgetScope:
    """A node in the method → class → suite budget chain.

    Parameters
    ----------
    name : str
        Identity reported when this scope stops a run
    level : ScopeLevel
        Nesting level, for reporting
    time_limit : float, optional
        Wall-clock seconds allowed (None = unlimited)
    resource_limit : float, optional
        Resource units allowed (None = unlimited)
    exhaustion_policy : BudgetExhaustedBehavior
        Effect on the verdict when this scope stops a run
    parent : BudgetScope, optional
        Enclosing scope
    """

    def __init__(
        self,
        name: str,
        level: ScopeLevel = ScopeLevel.METHOD,
        *,
        time_limit: Optional[float] = None,
        resource_limit: Optional[float] = None,
        exhaustion_policy: BudgetExhaustedBehavior = BudgetExhaustedBehavior.FAIL,
        parent: Optional["BudgetScope"] = None,
    ):
        self.name = name
        self.level = level
        self.exhaustion_policy = exhaustion_policy
        self.parent = parent
        self._counters = {
            BudgetKind.TIME: BudgetCounter(time_limit),
            BudgetKind.RESOURCE: BudgetCounter(resource_limit),
        }

    def __repr__(self) -> str:
        return (
            f"BudgetScope(name={self.name!r}, level={self.level.value}, "
            f"time={self.consumed(BudgetKind.TIME):g}/{self.limit(BudgetKind.TIME)}, "
            f"resource={self.consumed(BudgetKind.RESOURCE):g}/{self.limit(BudgetKind.RESOURCE)})"
        )

    def counter(self, kind: BudgetKind) -> BudgetCounter:
        return self._counters[kind]

    def limit(self, kind: BudgetKind) -> Optional[float]:
        return self._counters[kind].limit

    def consumed(self, kind: BudgetKind) -> float:
        return self._counters[kind].consumed

    def remaining(self, kind: BudgetKind) -> Optional[float]:
        return self._counters[kind].remaining

    def is_exhausted(self, kind: BudgetKind) -> bool:
        return self._counters[kind].exhausted

    def has_budget(self) -> bool:
        return any(c.limit is not None for c in self._counters.values())

    def try_charge(self, kind: BudgetKind, amount: float) -> bool:
        """Atomically charge this scope; False if the charge overflowed the limit."""
        fits = self._counters[kind].try_charge(amount)
        if not fits:
            logger.info(
                "Budget scope %r exhausted: %s %g of %g",
                self.name,
                kind.value,
                self.consumed(kind),
                self.limit(kind),
            )
        return fits

    def would_exceed(self, kind: BudgetKind, amount: float = 0.0) -> bool:
        return self._counters[kind].would_exceed(amount)

    def chain(self) -> Iterator["BudgetScope"]:
        """This scope followed by its ancestors, innermost first."""
        scope: Optional[BudgetScope] = self
        while scope is not None:
            yield scope
            scope = scope.parent

    def exhaustion(self, kind: BudgetKind) -> BudgetExhaustion:
        counter = self._counters[kind]
        return BudgetExhaustion(
            scope_name=self.name,
            level=self.level,
            kind=kind,
            consumed=counter.consumed,
            limit=counter.limit if counter.limit is not None else float("inf"),
            policy=self.exhaustion_policy,
        )


def reserve_next_trial(
    scope: Optional[BudgetScope], static_charge: Optional[float] = None
) -> Optional[BudgetExhaustion]:
    """Walk the chain innermost first before a trial runs.

    Returns the first scope that cannot afford the next trial, or None when
    every scope has room. Time is checked before resources within a scope.

    The whole chain is checked first, so a refused trial charges nothing.
    With a ``static_charge`` the resource units are then charged up front via
    `BudgetScope.try_charge`, so concurrent runs cannot both claim the last
    slot of a shared scope; a scope that loses such a race keeps the
    overflowing charge and is reported. Without one (dynamic charging) the
    resource counter is only checked; the real charge is applied after the
    trial.
    """
    if scope is None:
        return None
    amount = static_charge or 0.0
    for node in scope.chain():
        if node.would_exceed(BudgetKind.TIME):
            return node.exhaustion(BudgetKind.TIME)
        if node.would_exceed(BudgetKind.RESOURCE, amount):
            return node.exhaustion(BudgetKind.RESOURCE)
    if static_charge is None:
        return None
    refused: Optional[BudgetScope] = None
    for node in scope.chain():
        if not node.try_charge(BudgetKind.RESOURCE, static_charge) and refused is None:
            refused = node
    return refused.exhaustion(BudgetKind.RESOURCE) if refused is not None else None


def charge_chain(scope: Optional[BudgetScope], kind: BudgetKind, amount: float) -> bool:
    """Charge every scope in the chain; True only if all charges fit."""
    if scope is None or amount == 0:
        return True
    fits = True
    for node in scope.chain():
        fits = node.try_charge(kind, amount) and fits
    return fits
