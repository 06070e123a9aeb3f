"""
Seed hashing for table and extension-table names.

A seed is always 32 bytes:
- a name that is exactly 64 hex characters (after trimming) is decoded as-is,
  so a caller can compute a seed once and pass the hex on later calls;
- any other name is hashed with Keccak-256 over its trimmed UTF-8 bytes.

Composite names ("table/rowId/extName") are not special-cased: the whole
string is one opaque name, so write and read must compose it identically.
"""

import re

from eth_utils import keccak

from .contract import COMPOSITE_NAME_SEPARATOR

_HEX64 = re.compile(r'^[0-9a-fA-F]{64}$')


def isSeedHex(text: str) -> bool:
    """True if text (trimmed) is a 64-character hex seed"""
    return bool(_HEX64.match(text.strip()))


def deriveSeedBytes(name: str) -> bytes:
    """Return the 32-byte seed for a table name"""
    trimmed = name.strip()
    if _HEX64.match(trimmed):
        return bytes.fromhex(trimmed)
    return keccak(trimmed.encode('utf-8'))


def deriveSeedHex(name: str) -> str:
    """Return the seed as lower-case hex"""
    trimmed = name.strip()
    if _HEX64.match(trimmed):
        return trimmed.lower()
    return deriveSeedBytes(trimmed).hex()


def compositeName(tableName: str, rowId, extName: str) -> str:
    """Extension-table name: table/rowId/extName, joined exactly as given"""
    return COMPOSITE_NAME_SEPARATOR.join([tableName, str(rowId), extName])
