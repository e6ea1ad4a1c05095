"""
trialverdict.reporting.progress
===============================

Per-trial progress view built from ``obs/trial`` ledger events.

Examples
--------
>>> from trialverdict.core.ledger import Ledger
>>> from trialverdict.runtime.run import run
>>> from trialverdict.stats.thresholds import Explicit
>>> from trialverdict.reporting.progress import RunProgressReporter
>>> ledger = Ledger()
>>> _ = run(Explicit(samples=4, threshold=0.5), lambda i: i % 2 == 0,
...         ledger=ledger, run_id="run#demo")
>>> rep = RunProgressReporter.from_ledger(ledger)
>>> rep.progress_table()["successes"].to_list()
[1, 1, 2]
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Optional

import polars as pl

if TYPE_CHECKING:
    from trialverdict.core.ledger import Ledger


@dataclass
class RunProgressReporter:
    """Trial-by-trial progress of one or more runs."""

    df: Any  # pl.DataFrame of raw ledger rows

    @classmethod
    def from_ledger(cls, ledger: "Ledger") -> "RunProgressReporter":
        """Materialize the ledger's rows as a polars DataFrame."""
        return cls(ledger.table.order_by("seq").to_polars())

    def progress_table(self, run_id: Optional[str] = None) -> pl.DataFrame:
        """
        One row per executed trial, in execution order:
        - run_id, index, succeeded, charge, successes, executed, observed_rate
        """
        trials = (
            self.df.filter(
                (pl.col("namespace") == "obs")
                & (pl.col("kind") == "trial")
                & (pl.col("payload_type") == "TrialOutcome")
            )
            .with_columns(
                pl.col("payload").str.json_path_match("$.run_id").alias("run_id"),
                pl.col("payload")
                .str.json_path_match("$.index")
                .cast(pl.Int64)
                .alias("index"),
                (pl.col("payload").str.json_path_match("$.succeeded") == "true").alias(
                    "succeeded"
                ),
                pl.col("payload")
                .str.json_path_match("$.resource_charge")
                .cast(pl.Float64)
                .alias("charge"),
            )
            .select("seq", "run_id", "index", "succeeded", "charge")
        )
        if run_id is not None:
            trials = trials.filter(pl.col("run_id") == run_id)

        out = (
            trials.sort("seq")
            .with_columns(
                pl.col("succeeded")
                .cast(pl.Int64)
                .cum_sum()
                .over("run_id")
                .alias("successes"),
                (pl.col("index") + 1).alias("executed"),
            )
            .with_columns(
                (pl.col("successes") / pl.col("executed")).alias("observed_rate")
            )
            .drop("seq")
        )
        return out

    def run_summary(self) -> pl.DataFrame:
        """One row per run: executed, successes, observed_rate, total charge."""
        return (
            self.progress_table()
            .group_by("run_id", maintain_order=True)
            .agg(
                pl.len().alias("executed"),
                pl.col("succeeded").sum().alias("successes"),
                pl.col("charge").sum().alias("charge"),
            )
            .with_columns(
                (pl.col("successes") / pl.col("executed")).alias("observed_rate")
            )
        )
