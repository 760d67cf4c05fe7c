"""
Plan state module.

Immutable plan snapshots, the embedded transaction ledger and the
ACTIVE / STOPPED lifecycle transitions.
"""
