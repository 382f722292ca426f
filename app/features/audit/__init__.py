"""
Immutable audit log feature module.

Append-only, hash-chained record of every access decision and mutation.
"""
