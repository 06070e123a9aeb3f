"""
ledgerdb reader facade.

Ties address derivation, scanning, decoding and assembly into the read
operations callers use: table list, table metadata, recent rows, rows of one
table (optionally folded with their edits), extension-table rows and chunked
session reconstruction.

Row reads need the table program's IDL; without one they return empty
results and only addresses are reported.
"""

import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import orjson

from ..logging import getLogger, setScanContext
from .addresses import (
    KeyLike, rootAddress, txRefAddress, tableAddress, instructionTableAddress, getAddresses,
)
from .borsh import IdlSchema
from .chunkAssembler import SessionReadResult, readSession
from .editFold import foldEdits as foldTableEdits
from .errors import SchemaError
from .fields import (
    resolveField, ROOT_CREATOR_FIELD, ROOT_TABLES_FIELD, ROOT_GLOBAL_TABLES_FIELD, TABLE_NAME_FIELD,
    TABLE_COLUMNS_FIELD, TABLE_ID_COLUMN_FIELD, TABLE_EXT_NAME_FIELD, TABLE_EXT_KEYS_FIELD,
)
from .instructions import InstructionDecoder, bytesToHex, bytesToText
from .rows import RowAssembler, RowRecord
from .rpc import LedgerClient, fetchJson
from .scanner import LedgerScanner
from .seed import compositeName, deriveSeedHex

ROOT_ACCOUNT = 'Root'
TABLE_ACCOUNT = 'Table'


async def loadIdl(source: Union[str, Path], config) -> IdlSchema:
    """
    Load an Anchor IDL from a file path or an http(s) URL.

    Raises:
        SchemaError: unreadable file or invalid IDL document
    """
    source = str(source)
    if source.startswith(('http://', 'https://')):
        data = await fetchJson(source, config.requestTimeoutSeconds, config.retryAttempts,
                               config.retryDelaySeconds)
    else:
        try:
            data = orjson.loads(Path(source).read_bytes())
        except (OSError, orjson.JSONDecodeError) as e:
            raise SchemaError(f"Cannot read IDL {source}: {e}") from e
    return IdlSchema.fromDict(data)


@dataclass
class TableMeta:
    name: str
    columns: List[str] = field(default_factory=list)
    idColumn: Union[str, int, None] = None
    extTableName: Optional[str] = None
    extKeys: List[str] = field(default_factory=list)
    tableAddress: str = ''
    instructionAddress: str = ''

    @property
    def idColumnName(self) -> Optional[str]:
        """Id column as a name (numeric ids index into columns)"""
        if isinstance(self.idColumn, str) and self.idColumn:
            return self.idColumn
        if isinstance(self.idColumn, int) and 0 <= self.idColumn < len(self.columns):
            return self.columns[self.idColumn]
        return self.columns[0] if self.columns else None

    def toDict(self) -> dict:
        return {
            'name': self.name,
            'columns': self.columns,
            'idColumn': self.idColumn,
            'extTableName': self.extTableName,
            'extKeys': self.extKeys,
            'tableAddress': self.tableAddress,
            'instructionAddress': self.instructionAddress
        }


def _idColumnOf(raw: Any) -> Union[str, int, None]:
    if isinstance(raw, bool):
        return None
    if isinstance(raw, (str, int)):
        return raw
    if raw is not None:
        return bytesToText(raw) or None
    return None


class LedgerDbReader:
    """
    Read-side entry point.

    Usage:
        async with JsonRpcLedgerClient(config.rpcEndpoint) as client:
            reader = LedgerDbReader(config, client, schema)
            rows = await reader.readRowsByTable(owner, "fish")
    """

    def __init__(self, config, client: LedgerClient, schema: Optional[IdlSchema] = None):
        self.config = config
        self.client = client
        self.schema = schema
        self.scanner = LedgerScanner(client, batchSize=config.batchSize, pageLimit=config.signaturePageLimit)
        self.log = getLogger()

    # ------------------------------------------------------------------
    # Addresses and accounts
    # ------------------------------------------------------------------

    def getAddresses(self, owner: KeyLike) -> Dict[str, str]:
        addresses = getAddresses(owner, self.config.programId)
        addresses['programId'] = self.config.programId
        addresses['endpoint'] = self.config.rpcEndpoint
        return addresses

    async def _fetchAccount(self, address, accountName: str) -> Optional[Dict[str, Any]]:
        data = await self.client.getAccountInfo(str(address))
        if data is None:
            return None
        return self.schema.decodeAccount(accountName, data)

    async def readTableList(self, owner: KeyLike) -> Dict[str, Any]:
        """
        Table seeds registered on the owner's root account.

        Raises:
            SchemaError: root account does not match the IDL
        """
        root = rootAddress(owner, self.config.programId)
        setScanContext(self.config.rpcEndpoint, str(root))
        out = {'rootAddress': str(root), 'creator': None, 'tableSeeds': [], 'globalTableSeeds': []}
        if self.schema is None:
            return out

        account = await self._fetchAccount(root, ROOT_ACCOUNT)
        if account is None:
            self.log.info("[Reader] Root account not found", root=str(root))
            return out

        out['creator'] = resolveField(account, ROOT_CREATOR_FIELD)
        out['tableSeeds'] = [bytesToHex(v) for v in resolveField(account, ROOT_TABLES_FIELD, [])]
        out['globalTableSeeds'] = [bytesToHex(v) for v in resolveField(account, ROOT_GLOBAL_TABLES_FIELD, [])]
        self.log.info("[Reader] Table list", root=str(root), tables=len(out['tableSeeds']))
        return out

    async def readTableMeta(self, owner: KeyLike, tableName: str) -> TableMeta:
        """Table metadata, best effort: any failure yields bare metadata"""
        root = rootAddress(owner, self.config.programId)
        meta = TableMeta(
            name=tableName,
            tableAddress=str(tableAddress(root, tableName, self.config.programId)),
            instructionAddress=str(instructionTableAddress(root, tableName, self.config.programId)))
        if self.schema is None:
            return meta

        try:
            account = await self._fetchAccount(meta.tableAddress, TABLE_ACCOUNT)
        except SchemaError as e:
            self.log.warning("[Reader] Table account not decodable", table=tableName, error=str(e))
            return meta
        if account is None:
            return meta

        meta.name = bytesToText(resolveField(account, TABLE_NAME_FIELD, tableName))
        meta.columns = [bytesToText(v) for v in resolveField(account, TABLE_COLUMNS_FIELD, [])]
        meta.idColumn = _idColumnOf(resolveField(account, TABLE_ID_COLUMN_FIELD))
        extName = resolveField(account, TABLE_EXT_NAME_FIELD)
        meta.extTableName = bytesToText(extName) if extName is not None else None
        meta.extKeys = [k for k in (bytesToText(v) for v in resolveField(account, TABLE_EXT_KEYS_FIELD, [])) if k]
        if meta.idColumn in (None, '') and meta.columns:
            meta.idColumn = meta.columns[0]
        return meta

    # ------------------------------------------------------------------
    # Rows
    # ------------------------------------------------------------------

    def _assembleRows(self, scanResult) -> RowAssembler:
        decoder = InstructionDecoder(self.schema, self.config.programId)
        assembler = RowAssembler().assemble(
            (signature, decoder.decodeTransaction(tx, signature)) for signature, tx in scanResult.transactions)
        self.log.info("[Reader] Rows assembled", records=len(assembler), **decoder.stats.toDict())
        return assembler

    async def readRecentRows(self, owner: KeyLike, maxTx: Optional[int] = None,
                             cancelEvent: Optional[asyncio.Event] = None) -> Dict[str, Any]:
        """
        Rows from the owner's most recent transactions, grouped by table key.

        Returns:
            {'meta', 'tableNames', 'tableDisplayNames', 'tables', 'rowsByTable'}
        """
        maxTx = maxTx or self.config.maxTx
        root = rootAddress(owner, self.config.programId)
        txRef = txRefAddress(owner, self.config.programId)
        setScanContext(self.config.rpcEndpoint, str(txRef))

        result = {
            'meta': {
                'rootAddress': str(root),
                'txRefAddress': str(txRef),
                'programId': self.config.programId,
                'endpoint': self.config.rpcEndpoint
            },
            'tableNames': [],
            'tableDisplayNames': {},
            'tables': {},
            'rowsByTable': {}
        }
        if self.schema is None:
            return result

        tableList = await self.readTableList(owner)
        for seedHex in tableList['tableSeeds']:
            meta = await self.readTableMeta(owner, seedHex)
            result['tableNames'].append(seedHex)
            result['tableDisplayNames'][seedHex] = meta.name
            result['tables'][seedHex] = meta.toDict()

        scan = await self.scanner.scan(str(txRef), maxTx, cancelEvent)
        assembler = self._assembleRows(scan)
        result['rowsByTable'] = assembler.rowsByTable()
        return result

    @staticmethod
    def _matchesTable(record: RowRecord, seedHex: str) -> bool:
        return record.tableKey == seedHex or deriveSeedHex(record.tableKey) == seedHex

    async def readRowsByTable(self, owner: KeyLike, tableName: str, maxTx: Optional[int] = None,
                              perTableLimit: Optional[int] = None, foldEdits: bool = False,
                              cancelEvent: Optional[asyncio.Event] = None) -> List[Dict[str, Any]]:
        """
        Rows of one table from the table and instruction-table histories.

        Without folding every write and edit is returned newest first with
        __txSignature / __kind (and __targetTx for edits). With foldEdits,
        edits are applied to the writes they target (see editFold).
        """
        if self.schema is None:
            return []
        maxTx = maxTx or self.config.maxTx

        meta = await self.readTableMeta(owner, tableName)
        setScanContext(self.config.rpcEndpoint, meta.tableAddress)
        seedHex = deriveSeedHex(tableName)

        scan = await self.scanner.scanMany([meta.tableAddress, meta.instructionAddress], maxTx, cancelEvent)
        assembler = self._assembleRows(scan)
        records = [r for r in assembler.records() if self._matchesTable(r, seedHex)]

        if foldEdits:
            rows = foldTableEdits([r for r in records if r.kind == 'write'],
                                  [r for r in records if r.kind == 'edit'],
                                  idColumn=meta.idColumnName, tableSeedHex=seedHex)
        else:
            rows = []
            for record in records:
                row = {**record.values, '__txSignature': record.signature, '__kind': record.kind}
                if record.kind == 'edit':
                    row['__targetTx'] = record.targetSignature
                rows.append(row)

        self.log.info("[Reader] Table rows", table=tableName, rows=len(rows), folded=foldEdits)
        return rows[:perTableLimit] if perTableLimit else rows

    async def readExtRows(self, owner: KeyLike, tableName: str, rowId, extName: str,
                          **kwargs) -> List[Dict[str, Any]]:
        """Rows of the extension table 'tableName/rowId/extName'"""
        return await self.readRowsByTable(owner, compositeName(tableName, rowId, extName), **kwargs)

    # ------------------------------------------------------------------
    # Chunked sessions
    # ------------------------------------------------------------------

    async def readSession(self, sessionAddress: str,
                          cancelEvent: Optional[asyncio.Event] = None) -> SessionReadResult:
        setScanContext(self.config.rpcEndpoint, str(sessionAddress))
        return await readSession(self.client, sessionAddress, self.config, cancelEvent)
