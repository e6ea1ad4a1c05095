"""
trialverdict.core
=================

Shared infrastructure: typed names, errors and the event ledger.

This namespace has no statistical content. Everything in `stats`, `runtime`
and `reporting` builds on the vocabulary defined here.
"""
