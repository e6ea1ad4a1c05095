"""
trialverdict.reporting.generic
==============================

A run-agnostic reporter over raw ledger events: unique runs, namespaces and
kinds, and namespace x kind counts.

Examples
--------
>>> from trialverdict.core.ledger import Ledger
>>> from trialverdict.runtime.run import run
>>> from trialverdict.stats.thresholds import Explicit
>>> from trialverdict.reporting.generic import LedgerReporter
>>> ledger = Ledger()
>>> _ = run(Explicit(samples=3, threshold=1.0), lambda i: True,
...         ledger=ledger, run_id="run#a")
>>> rep = LedgerReporter(ledger)
>>> rep.unique_runs()
['run#a']
>>> rep.unique_namespaces()
['criteria', 'obs', 'run', 'signals']
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, List
from dataclasses import dataclass

import ibis

if TYPE_CHECKING:
    from trialverdict.core.ledger import Ledger


@dataclass
class LedgerReporter:
    """Generic reporter for any trialverdict ledger."""

    ledger: "Ledger"

    def ledger_table(self) -> Any:
        """Return the underlying ledger table as ibis expression."""
        return self.ledger.table

    def _distinct(self, column: str) -> List[str]:
        table = self.ledger.table
        values = table.select(table[column]).distinct().execute()[column]
        return sorted(v for v in values if v is not None)

    def unique_entities(self) -> List[str]:
        """List all unique ``run_id#step`` entities."""
        return self._distinct("entity")

    def unique_runs(self) -> List[str]:
        """List all run identifiers that recorded a start event."""
        table = self.ledger.table
        started = table.filter((table.namespace == "run") & (table.kind == "started"))
        entities = started.select(started.entity).execute()["entity"]
        return sorted(e[: -len("#start")] for e in entities)

    def unique_namespaces(self) -> List[str]:
        """List all unique event namespaces."""
        return self._distinct("namespace")

    def unique_kinds(self) -> List[str]:
        """List all unique event kinds."""
        return self._distinct("kind")

    def namespace_kind_counts(self) -> Any:
        """
        Counts of events grouped by namespace and kind.

        Returns
        -------
        ibis.Table
            Table with namespace, kind, and count columns
        """
        table = self.ledger.table
        return (
            table.group_by([table.namespace, table.kind])
            .aggregate(count=ibis._.count())
            .order_by([ibis._.namespace, ibis._.kind])
        )
