"""
trialverdict.core.errors
========================

Exceptions raised by the engine.

A failing verdict is never an exception. Exceptions are reserved for
configurations that cannot be run at all; they are raised eagerly, before the
first trial executes.

Examples
--------
>>> from trialverdict.core.errors import ConfigurationError
>>> issubclass(ConfigurationError, ValueError)
True
"""

from __future__ import annotations


class TrialVerdictError(Exception):
    """Base class for all trialverdict errors."""


class ConfigurationError(TrialVerdictError, ValueError):
    """Raised when a threshold or run configuration is invalid or incomplete."""
