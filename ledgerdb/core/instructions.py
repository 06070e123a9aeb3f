"""
Instruction decoding.

Turns transaction bodies (getTransaction results, `json` or `jsonParsed`
encoding) into a closed set of typed instruction records:

  WriteInstruction         write_data(table, row payload)
  EditInstruction          database_instruction(table, target tx, mode, content)
  ChunkDepositInstruction  raw chunk-program deposit (discriminator 0x04)
  UnknownInstruction       anything else the IDL decodes

Undecodable instructions are counted as DecodeSkipped in DecodeStats and
logged at debug level. One bad instruction never aborts a transaction.
"""

import re
import struct
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

import base58

from ..logging import getLogger
from .borsh import IdlSchema
from .contract import (
    WRITE_DATA_INSTRUCTION, DATABASE_INSTRUCTION,
    CHUNK_DEPOSIT_DISCRIMINATOR, CHUNK_DEPOSIT_MIN_SIZE,
    CHUNK_INDEX_OFFSET, CHUNK_METHOD_OFFSET, CHUNK_DATA_OFFSET, SESSION_ID_SIZE,
)
from .errors import DecodeSkipped, SchemaError
from .fields import (
    resolveField, TABLE_FIELD, ROW_PAYLOAD_FIELD, TARGET_TX_FIELD, EDIT_MODE_FIELD, EDIT_CONTENT_FIELD,
)

_PRINTABLE_ASCII = re.compile(r'^[\x20-\x7E]+$')


# ============================================================================
# Byte helpers
# ============================================================================

def toBytes(value: Any) -> bytes:
    """Decoded Borsh bytes come as bytes, int lists or {'data': [...]}"""
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, list):
        return bytes(value)
    if isinstance(value, dict) and isinstance(value.get('data'), list):
        return bytes(value['data'])
    return b''


def bytesToText(value: Any) -> str:
    """
    Identifier text: UTF-8 with trailing NULs stripped when the result is
    printable ASCII, otherwise lower-case hex of the raw bytes.
    """
    if value is None:
        return ''
    if isinstance(value, str):
        return value
    raw = toBytes(value)
    if not raw:
        return ''
    try:
        decoded = raw.decode('utf-8').rstrip('\x00')
    except UnicodeDecodeError:
        decoded = ''
    if decoded and _PRINTABLE_ASCII.match(decoded):
        return decoded
    return raw.hex()


def bytesToHex(value: Any) -> str:
    if isinstance(value, str):
        return value.lower()
    return toBytes(value).hex()


def bytesToUtf8(value: Any) -> str:
    """Payload text: lossy UTF-8, trailing NULs stripped"""
    if value is None:
        return ''
    if isinstance(value, str):
        return value
    return toBytes(value).decode('utf-8', errors='replace').rstrip('\x00')


def tableKeyOf(value: Any) -> str:
    """32-byte seeds are keyed by hex, names by their text"""
    if isinstance(value, str):
        return value
    raw = toBytes(value)
    if len(raw) == 32:
        return raw.hex()
    return bytesToText(raw)


# ============================================================================
# Instruction enumeration
# ============================================================================

def _messageOf(tx: Any) -> Optional[dict]:
    """The `transaction.message` object, or None when the body is not json-encoded"""
    if not isinstance(tx, dict):
        return None
    transaction = tx.get('transaction')
    if not isinstance(transaction, dict):
        return None
    message = transaction.get('message')
    return message if isinstance(message, dict) else None


def _metaOf(tx: dict) -> dict:
    meta = tx.get('meta')
    return meta if isinstance(meta, dict) else {}


def _listOf(value: Any) -> list:
    return value if isinstance(value, list) else []


def _accountKeys(tx: dict, message: dict) -> List[str]:
    keys = []
    for key in _listOf(message.get('accountKeys')):
        keys.append(key.get('pubkey') if isinstance(key, dict) else key)
    # v0 transactions resolve lookup-table keys after the static keys
    loaded = _metaOf(tx).get('loadedAddresses')
    if isinstance(loaded, dict):
        keys.extend(_listOf(loaded.get('writable')))
        keys.extend(_listOf(loaded.get('readonly')))
    return keys


def _programIdOf(ix: dict, keys: List[str]) -> Optional[str]:
    index = ix.get('programIdIndex')
    if isinstance(index, int):
        return keys[index] if 0 <= index < len(keys) else None
    programId = ix.get('programId')
    return str(programId) if programId is not None else None


def iterInstructions(tx: dict, includeInner: bool = True) -> Iterator[Tuple[Optional[str], bytes]]:
    """
    Yield (programId, data) for top-level then inner instructions.

    Instructions without raw data (already parsed by the endpoint) are
    skipped. Data that is not valid base58 is yielded as empty bytes.
    A malformed body yields nothing.
    """
    message = _messageOf(tx)
    if message is None:
        return
    keys = _accountKeys(tx, message)
    instructions = list(_listOf(message.get('instructions')))
    if includeInner:
        for group in _listOf(_metaOf(tx).get('innerInstructions')):
            if isinstance(group, dict):
                instructions.extend(_listOf(group.get('instructions')))

    for ix in instructions:
        if not isinstance(ix, dict):
            continue
        data = ix.get('data')
        if not isinstance(data, str):
            continue
        try:
            raw = base58.b58decode(data)
        except ValueError:
            raw = b''
        yield _programIdOf(ix, keys), raw


# ============================================================================
# Typed instruction records
# ============================================================================

@dataclass
class WriteInstruction:
    tableKey: str
    payload: str
    kind: str = 'write'


@dataclass
class EditInstruction:
    tableKey: str
    targetSignature: str
    mode: Any
    content: str
    kind: str = 'edit'


@dataclass
class ChunkDepositInstruction:
    sessionId: bytes
    chunkIndex: int
    method: int
    data: bytes
    kind: str = 'chunkDeposit'


@dataclass
class UnknownInstruction:
    name: str
    fields: Dict[str, Any]
    kind: str = 'unknown'


DecodedInstruction = Union[WriteInstruction, EditInstruction, ChunkDepositInstruction, UnknownInstruction]


def parseChunkDeposit(data: bytes) -> Optional[ChunkDepositInstruction]:
    """
    Parse a chunk-deposit instruction.

    Layout: discriminator(1) + session_id(16) + chunk_index(u32 LE) + method(1) + chunk bytes.
    Returns None unless the discriminator matches and the minimum size is met.
    """
    if len(data) < CHUNK_DEPOSIT_MIN_SIZE or data[0] != CHUNK_DEPOSIT_DISCRIMINATOR:
        return None
    sessionId = bytes(data[1:1 + SESSION_ID_SIZE])
    chunkIndex = struct.unpack_from('<I', data, CHUNK_INDEX_OFFSET)[0]
    method = data[CHUNK_METHOD_OFFSET]
    return ChunkDepositInstruction(sessionId, chunkIndex, method, bytes(data[CHUNK_DATA_OFFSET:]))


# ============================================================================
# Decoder
# ============================================================================

@dataclass
class DecodeStats:
    """Counters for one decode run"""
    scanned: int = 0      # instructions enumerated
    matched: int = 0      # executed by the target program
    decoded: int = 0
    skips: List[DecodeSkipped] = field(default_factory=list)

    @property
    def skipped(self) -> int:
        return len(self.skips)

    def toDict(self) -> dict:
        return {
            'scanned': self.scanned,
            'matched': self.matched,
            'decoded': self.decoded,
            'skipped': self.skipped
        }


class InstructionDecoder:
    """
    Decodes a program's instructions out of transaction bodies.

    Field names are resolved through fields.FieldSpec candidate lists so IDLs
    from different Anchor versions decode to the same records.
    """

    def __init__(self, schema: IdlSchema, programId: str):
        self.schema = schema
        self.programId = str(programId)
        self.stats = DecodeStats()
        self.log = getLogger()

    def decodeTransaction(self, tx: dict, signature: Optional[str] = None) -> List[DecodedInstruction]:
        out: List[DecodedInstruction] = []
        for programId, data in iterInstructions(tx):
            self.stats.scanned += 1
            if programId != self.programId:
                continue
            self.stats.matched += 1

            try:
                decoded = self.schema.decodeInstruction(data)
            except SchemaError as e:
                self._skip(signature, f"schema mismatch: {e}")
                continue
            if decoded is None:
                self._skip(signature, "unknown discriminator")
                continue

            try:
                record = self._classify(decoded.name, decoded.fields)
            except (TypeError, ValueError) as e:
                # IDL drifted from the layout the field helpers expect
                self._skip(signature, f"field mismatch in {decoded.name}: {e}")
                continue
            out.append(record)
            self.stats.decoded += 1
        return out

    def _skip(self, signature: Optional[str], reason: str):
        self.stats.skips.append(DecodeSkipped(signature, reason))
        self.log.debug("[Decoder] Instruction skipped", signature=signature, reason=reason)

    @staticmethod
    def _classify(name: str, fields: Dict[str, Any]) -> DecodedInstruction:
        if name == WRITE_DATA_INSTRUCTION:
            return WriteInstruction(
                tableKey=tableKeyOf(resolveField(fields, TABLE_FIELD)),
                payload=bytesToUtf8(resolveField(fields, ROW_PAYLOAD_FIELD))
            )
        if name == DATABASE_INSTRUCTION:
            mode = resolveField(fields, EDIT_MODE_FIELD)
            if isinstance(mode, dict) and 'variant' in mode:
                mode = mode['variant']
            elif isinstance(mode, (bytes, bytearray, list)):
                mode = bytesToText(mode)
            return EditInstruction(
                tableKey=tableKeyOf(resolveField(fields, TABLE_FIELD)),
                targetSignature=bytesToText(resolveField(fields, TARGET_TX_FIELD)),
                mode=mode,
                content=bytesToUtf8(resolveField(fields, EDIT_CONTENT_FIELD))
            )
        return UnknownInstruction(name, {k: v for k, v in fields.items() if k != '__values__'})
