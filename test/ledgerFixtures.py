"""
Shared test helpers: in-memory ledger, Borsh encoders, test IDLs and
transaction builders.
"""

import asyncio
import os
import struct
import sys
from typing import Dict, List, Optional

import base58
from solders.pubkey import Pubkey

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from ledgerdb.config import LedgerConfig
from ledgerdb.core.borsh import anchorDiscriminator
from ledgerdb.core.contract import DEFAULT_PROGRAM_ID, CHUNK_DEPOSIT_DISCRIMINATOR
from ledgerdb.core.rpc import LedgerClient, SignatureInfo

PROGRAM_ID = DEFAULT_PROGRAM_ID
OTHER_PROGRAM_ID = str(Pubkey(bytes([9] * 32)))
OWNER = str(Pubkey(bytes([7] * 32)))
FEE_PAYER = str(Pubkey(bytes([3] * 32)))


# ============================================================================
# In-memory ledger
# ============================================================================

class FakeLedgerClient(LedgerClient):
    """
    Ledger held in dicts.

    signatures[address] is newest first, like the real endpoint. Signatures
    listed in `failing` raise on getTransaction; `fetchDelay` slows every
    getTransaction so cancellation can interrupt a group.
    """

    def __init__(self):
        self.accounts: Dict[str, bytes] = {}
        self.signatures: Dict[str, List[SignatureInfo]] = {}
        self.transactions: Dict[str, dict] = {}
        self.failing = set()
        self.fetchDelay = 0.0
        self.signatureCalls = []
        self.fetched = []
        self.inFlight = 0
        self.maxInFlight = 0

    def addTransaction(self, address: str, signature: str, tx: Optional[dict], blockTime: int = 0):
        """Append a transaction as the newest touching address"""
        self.signatures.setdefault(str(address), []).insert(0, SignatureInfo(signature, blockTime=blockTime))
        if tx is not None:
            self.transactions[signature] = tx

    async def getAccountInfo(self, address: str) -> Optional[bytes]:
        return self.accounts.get(str(address))

    async def getSignaturesForAddress(self, address: str, limit: int,
                                      before: Optional[str] = None) -> List[SignatureInfo]:
        self.signatureCalls.append((str(address), limit, before))
        infos = self.signatures.get(str(address), [])
        start = 0
        if before is not None:
            start = next((i + 1 for i, info in enumerate(infos) if info.signature == before), len(infos))
        return infos[start:start + limit]

    async def getTransaction(self, signature: str) -> Optional[dict]:
        self.inFlight += 1
        self.maxInFlight = max(self.maxInFlight, self.inFlight)
        try:
            if self.fetchDelay:
                await asyncio.sleep(self.fetchDelay)
            if signature in self.failing:
                raise ConnectionError(f"fetch failed for {signature}")
            self.fetched.append(signature)
            return self.transactions.get(signature)
        finally:
            self.inFlight -= 1


def makeConfig(**overrides) -> LedgerConfig:
    config = LedgerConfig.defaults()
    return config.withOverrides(**overrides)


# ============================================================================
# Borsh encoding
# ============================================================================

def u8(value: int) -> bytes:
    return struct.pack('<B', value)


def u32(value: int) -> bytes:
    return struct.pack('<I', value)


def borshBytes(data) -> bytes:
    if isinstance(data, str):
        data = data.encode('utf-8')
    return u32(len(data)) + data


def borshString(text: str) -> bytes:
    return borshBytes(text.encode('utf-8'))


def borshVec(items: List[bytes]) -> bytes:
    return u32(len(items)) + b''.join(items)


# ============================================================================
# IDLs
# ============================================================================

def _disc(namespace: str, name: str) -> list:
    return list(anchorDiscriminator(namespace, name))


# Anchor 0.30 layout: snake_case, explicit discriminators, account types under `types`
TEST_IDL = {
    'address': PROGRAM_ID,
    'metadata': {'name': 'iqdb', 'version': '0.1.0', 'spec': '0.1.0'},
    'instructions': [
        {
            'name': 'write_data',
            'discriminator': _disc('global', 'write_data'),
            'accounts': [],
            'args': [
                {'name': 'table_seed', 'type': {'array': ['u8', 32]}},
                {'name': 'row_json_tx', 'type': 'bytes'}
            ]
        },
        {
            'name': 'database_instruction',
            'discriminator': _disc('global', 'database_instruction'),
            'accounts': [],
            'args': [
                {'name': 'table_seed', 'type': {'array': ['u8', 32]}},
                {'name': 'target_tx', 'type': 'bytes'},
                {'name': 'mode', 'type': 'u8'},
                {'name': 'content_json_tx', 'type': 'bytes'}
            ]
        },
        {
            'name': 'create_table',
            'discriminator': _disc('global', 'create_table'),
            'accounts': [],
            'args': [{'name': 'table_name', 'type': 'string'}]
        }
    ],
    'accounts': [
        {'name': 'Root', 'discriminator': _disc('account', 'Root')},
        {'name': 'Table', 'discriminator': _disc('account', 'Table')}
    ],
    'types': [
        {
            'name': 'Root',
            'type': {'kind': 'struct', 'fields': [
                {'name': 'creator', 'type': 'pubkey'},
                {'name': 'table_seeds', 'type': {'vec': {'array': ['u8', 32]}}},
                {'name': 'global_table_seeds', 'type': {'vec': {'array': ['u8', 32]}}}
            ]}
        },
        {
            'name': 'Table',
            'type': {'kind': 'struct', 'fields': [
                {'name': 'name', 'type': 'bytes'},
                {'name': 'column_names', 'type': {'vec': 'bytes'}},
                {'name': 'id_col', 'type': 'bytes'},
                {'name': 'ext_table_name', 'type': 'bytes'},
                {'name': 'ext_keys', 'type': {'vec': 'bytes'}}
            ]}
        }
    ]
}

# Legacy layout: camelCase, derived discriminators, inline account types
LEGACY_IDL = {
    'version': '0.1.0',
    'name': 'iqdb',
    'instructions': [
        {
            'name': 'writeData',
            'accounts': [],
            'args': [
                {'name': 'tableName', 'type': 'bytes'},
                {'name': 'rowJsonTx', 'type': 'bytes'}
            ]
        },
        {
            'name': 'databaseInstruction',
            'accounts': [],
            'args': [
                {'name': 'tableName', 'type': 'bytes'},
                {'name': 'targetTx', 'type': 'bytes'},
                {'name': 'mode', 'type': 'u8'},
                {'name': 'contentJsonTx', 'type': 'bytes'}
            ]
        }
    ],
    'accounts': [
        {
            'name': 'Root',
            'type': {'kind': 'struct', 'fields': [
                {'name': 'creator', 'type': 'publicKey'},
                {'name': 'tableNames', 'type': {'vec': 'bytes'}}
            ]}
        }
    ],
    'metadata': {'address': PROGRAM_ID}
}


def writeDataArgs(tableSeed: bytes, payload: str) -> bytes:
    return bytes(_disc('global', 'write_data')) + tableSeed + borshBytes(payload)


def editArgs(tableSeed: bytes, targetTx: str, content: str, mode: int = 1) -> bytes:
    return (bytes(_disc('global', 'database_instruction')) + tableSeed + borshBytes(targetTx)
            + u8(mode) + borshBytes(content))


def rootAccount(creator: str, tableSeeds: List[bytes], globalSeeds: List[bytes] = ()) -> bytes:
    return (bytes(_disc('account', 'Root')) + bytes(Pubkey.from_string(creator))
            + borshVec(list(tableSeeds)) + borshVec(list(globalSeeds)))


def tableAccount(name: str, columns: List[str], idCol: str = '', extName: str = '',
                 extKeys: List[str] = ()) -> bytes:
    return (bytes(_disc('account', 'Table')) + borshBytes(name)
            + borshVec([borshBytes(c) for c in columns]) + borshBytes(idCol)
            + borshBytes(extName) + borshVec([borshBytes(k) for k in extKeys]))


# ============================================================================
# Transactions
# ============================================================================

def makeTx(programId: str, instructions: List[bytes], inner: List[bytes] = (),
           innerProgramId: Optional[str] = None) -> dict:
    """getTransaction body (json encoding) with top-level and inner instructions"""
    keys = [FEE_PAYER, programId]
    innerProgram = innerProgramId or programId
    if innerProgram not in keys:
        keys.append(innerProgram)
    outer = [{'programIdIndex': 1, 'accounts': [0], 'data': base58.b58encode(data).decode('ascii')}
             for data in instructions]
    innerIxs = [{'programIdIndex': keys.index(innerProgram), 'accounts': [0],
                 'data': base58.b58encode(data).decode('ascii')} for data in inner]
    return {
        'slot': 1,
        'blockTime': 1700000000,
        'transaction': {
            'signatures': ['x'],
            'message': {'accountKeys': keys, 'instructions': outer}
        },
        'meta': {
            'err': None,
            'innerInstructions': [{'index': 0, 'instructions': innerIxs}] if innerIxs else [],
            'loadedAddresses': {'writable': [], 'readonly': []}
        }
    }


def chunkDeposit(index: int, payload: bytes, sessionId: bytes = b'\x11' * 16, method: int = 0) -> bytes:
    return u8(CHUNK_DEPOSIT_DISCRIMINATOR) + sessionId + u32(index) + u8(method) + payload


def sessionAccount(owner: str, totalChunks: int, status: int = 1, sessionId: bytes = b'\x11' * 16) -> bytes:
    return bytes(Pubkey.from_string(owner)) + sessionId + u32(totalChunks) + b'\x22' * 32 + u8(status)
