"""
ledgerdb Core Package

Client-side reconstruction of a relational store kept entirely in ledger
transactions: deterministic addresses, signature scanning, instruction
decoding, row assembly and chunked blob reconstruction.

Architecture Invariants:
- Address derivation is pure (no I/O)
- Rows are inferred from events, never read from mutable state
- Per-instruction decode failures are counted, never raised
- Chunks are ordered by index, never by arrival
"""

__version__ = "1.0.0"
