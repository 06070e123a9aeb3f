"""
ledgerdb error taxonomy.

Terminal errors (raised to the caller):
  NotFoundError       descriptor/account absent
  MalformedError      account shorter than its fixed layout
  NoChunksFoundError  full scan found zero qualifying deposit instructions
  InvalidKeyError     owner identity cannot be parsed

Absorbed errors (never raised):
  DecodeSkipped       per-instruction decode failure, counted in DecodeStats
"""

from dataclasses import dataclass
from typing import Optional


class LedgerDbError(Exception):
    """Base class for all ledgerdb errors"""
    pass


class InvalidKeyError(LedgerDbError, ValueError):
    """Owner identity or address is not a valid 32-byte public key"""
    pass


class NotFoundError(LedgerDbError):
    """Account does not exist on the ledger"""

    def __init__(self, message: str, address: Optional[str] = None):
        super().__init__(message)
        self.address = address


class MalformedError(LedgerDbError):
    """Account data is shorter than its fixed layout"""

    def __init__(self, message: str, actualSize: int = 0, expectedSize: int = 0):
        super().__init__(message)
        self.actualSize = actualSize
        self.expectedSize = expectedSize


class NoChunksFoundError(LedgerDbError):
    """
    No chunk-deposit instruction found after a full scan.

    Carries enough counts to tell "wrong address" (no transactions) from
    "right address, no data yet" (transactions but nothing matched).
    """

    def __init__(self, message: str, totalInstructions: int = 0,
                 matchingDiscriminators: int = 0, transactionsScanned: int = 0):
        super().__init__(message)
        self.totalInstructions = totalInstructions
        self.matchingDiscriminators = matchingDiscriminators
        self.transactionsScanned = transactionsScanned

    def debugInfo(self) -> dict:
        return {
            'totalInstructions': self.totalInstructions,
            'matchingDiscriminators': self.matchingDiscriminators,
            'transactionsScanned': self.transactionsScanned
        }


class LedgerRpcError(LedgerDbError):
    """Ledger endpoint returned an error or an unusable response"""

    def __init__(self, message: str, code: Optional[int] = None):
        super().__init__(message)
        self.code = code


class SchemaError(LedgerDbError):
    """Instruction/account schema (IDL) is missing or invalid"""
    pass


class ConfigError(LedgerDbError):
    """Configuration file is invalid"""
    pass


@dataclass(frozen=True)
class DecodeSkipped:
    """One instruction that could not be decoded; recorded, never raised"""
    signature: Optional[str]
    reason: str
