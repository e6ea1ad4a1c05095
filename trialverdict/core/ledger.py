"""
trialverdict.core.ledger
========================

Append-only, ibis-framework based event ledger.

Every run can be recorded as a sequence of events for later inspection:

- Backend-agnostic via ibis-framework (duckdb in-memory by default)
- JSON payloads with type-based wrap/unwrap
- Automatic trialverdict_version tracking
- Monotonic ``seq`` column so events read back in write order

Examples:
---------
>>> from trialverdict.core.ledger import Ledger, create_test_connection
>>> from trialverdict.core.names import Namespace
>>>
>>> ledger = Ledger(create_test_connection("duckdb"))
>>> ledger.write_event(
...     time_index="0", namespace=Namespace.OBS, kind="trial",
...     run_id="run#1", step_key="0", payload_type="TrialOutcome",
...     payload={"succeeded": True, "index": 0}
... )
>>>
>>> # Query data (raw JSON)
>>> results = ledger.table.filter(ledger.table.payload_type == "TrialOutcome").execute()
>>> len(results)
1
>>>
>>> # Query data (unwrapped)
>>> rows = ledger.unwrap_results(results)
>>> rows[0]["payload"]["succeeded"]
True
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union
import itertools
import json
import threading
import uuid as uuid_module

import ibis
import pandas as pd
from ibis import BaseBackend
from ibis.expr.types import Table

from trialverdict.core.names import Namespace, RunId, StepKey, TimeIndex
from trialverdict.__version__ import __version__

NamespaceLike = Union[Namespace, str]


def get_ledger_schema() -> ibis.Schema:
    """Get the standardized ledger schema using ibis.Schema."""
    return ibis.schema(
        [
            ("uuid", "string"),
            ("ledger_name", "string"),
            ("seq", "int64"),
            ("time_index", "string"),
            ("ts", "timestamp"),
            ("namespace", "string"),
            ("kind", "string"),
            ("entity", "string"),
            ("snapshot_id", "string"),
            ("tag", "string"),
            ("payload_type", "string"),
            ("payload", "string"),  # JSON text
            ("trialverdict_version", "string"),
        ]
    )


class PayloadType(ABC):
    """Abstract base class for payload type handlers."""

    @abstractmethod
    def wrap(self, data: Any) -> str:
        """Convert data to JSON string for storage."""

    @abstractmethod
    def unwrap(self, json_str: str) -> Any:
        """Convert JSON string back to data."""


class JSONPayloadType(PayloadType):
    """Default JSON payload type handler."""

    def wrap(self, data: Any) -> str:
        return json.dumps(data, separators=(",", ":"))

    def unwrap(self, json_str: str) -> Any:
        return json.loads(json_str)


class PayloadTypeRegistry:
    """Registry for payload type handlers."""

    _handlers: Dict[str, PayloadType] = {}
    _default_handler = JSONPayloadType()

    @classmethod
    def register(cls, payload_type: str, handler: PayloadType) -> None:
        cls._handlers[payload_type] = handler

    @classmethod
    def get_handler(cls, payload_type: str) -> PayloadType:
        """Get handler for payload type, fallback to default JSON handler."""
        return cls._handlers.get(payload_type, cls._default_handler)

    @classmethod
    def wrap(cls, payload_type: str, data: Any) -> str:
        return cls.get_handler(payload_type).wrap(data)

    @classmethod
    def unwrap(cls, payload_type: str, json_str: str) -> Any:
        return cls.get_handler(payload_type).unwrap(json_str)


class Ledger:
    """
    Append-only event ledger on top of an ibis backend.

    Responsibilities:
    - Schema guarantee and table lifecycle
    - Automatic ledger_name, seq and trialverdict_version injection
    - Payload wrapping/unwrapping via PayloadTypeRegistry

    Query construction and aggregation are left to callers using ibis table
    expressions. Writes are serialized with a lock, so one ledger can be
    shared by runs on several threads.
    """

    def __init__(
        self,
        connection: Optional[BaseBackend] = None,
        ledger_name: str = "default",
        table_name: str = "ledger",
    ):
        """Initialize ledger with connection and names.

        Parameters
        ----------
        connection : BaseBackend, optional
            Ibis backend connection; an in-memory duckdb one when omitted
        ledger_name : str
            Name of this ledger instance (for multi-ledger support)
        table_name : str
            Name of the table in the backend
        """
        self.connection = (
            connection if connection is not None else create_test_connection()
        )
        self.ledger_name = ledger_name
        self.table_name = table_name
        self._lock = threading.Lock()
        self._seq = itertools.count()
        self._ensure_table_exists()

    def _ensure_table_exists(self) -> None:
        if self.table_name not in self.connection.list_tables():
            self.connection.create_table(self.table_name, schema=get_ledger_schema())

    @property
    def table(self) -> Table:
        """
        Ibis table filtered to this ledger's name.

        Examples
        --------
        >>> ledger = Ledger(create_test_connection("duckdb"), "test_ledger")
        >>> int(ledger.table.filter(ledger.table.namespace == "obs").count().execute())
        0
        """
        table = self.connection.table(self.table_name)
        return table.filter(table.ledger_name == self.ledger_name)

    @property
    def raw_table(self) -> Table:
        """Raw ibis table without ledger filtering, for cross-ledger analysis."""
        return self.connection.table(self.table_name)

    def write_event(
        self,
        *,
        time_index: Union[TimeIndex, str],
        namespace: NamespaceLike,
        kind: str,
        run_id: Union[RunId, str],
        step_key: Union[StepKey, str],
        payload_type: str,
        payload: Any,
        tag: Optional[str] = None,
        ts: Optional[datetime] = None,
    ) -> None:
        """Append a typed event to the ledger.

        Parameters
        ----------
        time_index : TimeIndex or str
            Position of the event within its run (trial index, "start", ...)
        namespace : NamespaceLike
            Event namespace
        kind : str
            Event kind/type
        run_id : RunId or str
            Run identifier
        step_key : StepKey or str
            Step key within the run
        payload_type : str
            Type of payload for wrap/unwrap handling
        payload : Any
            Payload data to be wrapped
        tag : str, optional
            Optional tag for filtering
        ts : datetime, optional
            Timestamp, defaults to now (stored as naive UTC)
        """
        if ts is None:
            ts = datetime.now(timezone.utc)
        if ts.tzinfo is not None:
            ts = ts.astimezone(timezone.utc).replace(tzinfo=None)

        with self._lock:
            record = {
                "uuid": str(uuid_module.uuid4()),
                "ledger_name": self.ledger_name,
                "seq": next(self._seq),
                "time_index": str(time_index),
                "ts": ts,
                "namespace": (
                    namespace.value if isinstance(namespace, Namespace) else str(namespace)
                ),
                "kind": kind,
                "entity": f"{run_id}#{step_key}",
                "snapshot_id": str(step_key),
                "tag": tag or "",
                "payload_type": payload_type,
                "payload": PayloadTypeRegistry.wrap(payload_type, payload),
                "trialverdict_version": __version__,
            }
            self.connection.insert(self.table_name, pd.DataFrame([record]))

    def events(
        self,
        namespace: Optional[NamespaceLike] = None,
        kind: Optional[str] = None,
        run_id: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Unwrapped events in write order, optionally filtered."""
        t = self.table
        if namespace is not None:
            ns = namespace.value if isinstance(namespace, Namespace) else str(namespace)
            t = t.filter(t.namespace == ns)
        if kind is not None:
            t = t.filter(t.kind == kind)
        if run_id is not None:
            t = t.filter(t.entity.startswith(f"{run_id}#"))
        return self.unwrap_results(t.order_by("seq").execute())

    def unwrap_payload(self, payload_type: str, payload_json: str) -> Any:
        return PayloadTypeRegistry.unwrap(payload_type, payload_json)

    def unwrap_results(self, df: Any) -> List[Dict[str, Any]]:
        """
        Unwrap the payload column of executed query results.

        Parameters
        ----------
        df : pandas.DataFrame
            Query results with payload and payload_type columns

        Returns
        -------
        List[Dict[str, Any]]
            Records with unwrapped payloads
        """
        records: List[Dict[str, Any]] = df.to_dict("records")
        for record in records:
            if "payload" in record and "payload_type" in record:
                record["payload"] = self.unwrap_payload(
                    record["payload_type"], record["payload"]
                )
        return records


def create_test_connection(backend: str = "duckdb") -> BaseBackend:
    """Create an in-memory connection.

    Parameters
    ----------
    backend : str
        Backend type; only "duckdb" supports appends

    Examples
    --------
    >>> conn = create_test_connection("duckdb")
    >>> ledger = Ledger(conn, "test")
    >>> ledger.write_event(
    ...     time_index="start", namespace=Namespace.RUN, kind="started",
    ...     run_id="run#1", step_key="start", payload_type="TestData",
    ...     payload={"value": 42}
    ... )
    >>> records = ledger.events()
    >>> len(records), records[0]["payload"]["value"]
    (1, 42)
    """
    if backend == "duckdb":
        return ibis.duckdb.connect()
    raise ValueError(f"Unsupported backend: {backend}. Use 'duckdb'.")
