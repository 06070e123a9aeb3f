"""
ledgerdb - read a relational database kept in ledger transactions.

Quick start:
    from ledgerdb import LedgerConfig, JsonRpcLedgerClient, LedgerDbReader

    config = LedgerConfig.defaults()
    async with JsonRpcLedgerClient(config.rpcEndpoint) as client:
        result = await LedgerDbReader(config, client).readSession(sessionAddress)
"""

from ledgerdb.config import LedgerConfig, loadConfig
from ledgerdb.core.errors import (
    LedgerDbError, NotFoundError, MalformedError, NoChunksFoundError, InvalidKeyError,
    LedgerRpcError, SchemaError, ConfigError,
)
from ledgerdb.core.reader import LedgerDbReader, loadIdl
from ledgerdb.core.rpc import LedgerClient, JsonRpcLedgerClient

__version__ = "1.0.0"

__all__ = [
    'LedgerConfig',
    'loadConfig',
    'LedgerDbReader',
    'loadIdl',
    'LedgerClient',
    'JsonRpcLedgerClient',
    'LedgerDbError',
    'NotFoundError',
    'MalformedError',
    'NoChunksFoundError',
    'InvalidKeyError',
    'LedgerRpcError',
    'SchemaError',
    'ConfigError'
]
