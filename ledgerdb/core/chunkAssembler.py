"""
Chunked blob reconstruction.

A file uploaded through the chunk program is a session descriptor account
plus one deposit instruction per chunk in the transactions that touch it.
Reading it back is a single linear pass:

  1. locate + parse the descriptor     NotFoundError / MalformedError
  2. page session signatures (up to sessionSignatureLimit)
  3. extract deposits from top-level instructions
  4. last write wins per chunk index
  5. order by index + concatenate     NoChunksFoundError if none
  6. base64 unwrap (heuristic)
  7. compression marker strip (0x01, no real decompression)
  8. file-type sniff on the final buffer
  9. text preview for small, fully printable payloads

Steps 6-9 are independent pure functions; there is no backtracking between
them.
"""

import asyncio
import base64
import binascii
import re
import struct
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from solders.pubkey import Pubkey

from ..logging import getLogger
from .addresses import storageAddress, toPubkey
from .contract import (
    SessionStatus, SESSION_ACCOUNT_SIZE, SESSION_OWNER_SIZE, SESSION_ID_SIZE, SESSION_MERKLE_ROOT_SIZE,
    SESSION_STATUS_FINALIZED, BASE64_SAMPLE_SIZE, COMPRESSION_MARKER, COMPRESSION_MIN_SIZE,
    PREVIEW_MAX_BYTES, PREVIEW_MAX_CHARS,
)
from .errors import MalformedError, NoChunksFoundError, NotFoundError
from .instructions import iterInstructions, parseChunkDeposit
from .rpc import LedgerClient
from .scanner import LedgerScanner
from .sniffer import detectFileType, isPrintableByte, mimeTypeFor

_BASE64_FIRST = frozenset(b'ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz/+')
_BASE64_SAMPLE = re.compile(r'^[A-Za-z0-9+/=]+$')
_WHITESPACE_TEXT = re.compile(r'\s')
_WHITESPACE_BYTES = re.compile(rb'\s')


# ============================================================================
# Session descriptor
# ============================================================================

@dataclass
class SessionDescriptor:
    owner: Pubkey
    sessionId: bytes
    totalChunks: int
    merkleRoot: bytes
    status: SessionStatus

    @classmethod
    def parse(cls, data: bytes) -> 'SessionDescriptor':
        """
        Parse the fixed 85-byte layout:
          owner(32) session_id(16) total_chunks(u32 LE) merkle_root(32) status(u8)

        Raises:
            MalformedError: data shorter than the layout
        """
        if len(data) < SESSION_ACCOUNT_SIZE:
            raise MalformedError(
                f"Session account too small: {len(data)} bytes (expected {SESSION_ACCOUNT_SIZE})",
                actualSize=len(data), expectedSize=SESSION_ACCOUNT_SIZE)

        offset = 0
        owner = Pubkey(bytes(data[offset:offset + SESSION_OWNER_SIZE]))
        offset += SESSION_OWNER_SIZE
        sessionId = bytes(data[offset:offset + SESSION_ID_SIZE])
        offset += SESSION_ID_SIZE
        totalChunks = struct.unpack_from('<I', data, offset)[0]
        offset += 4
        merkleRoot = bytes(data[offset:offset + SESSION_MERKLE_ROOT_SIZE])
        offset += SESSION_MERKLE_ROOT_SIZE
        status = SessionStatus.FINALIZED if data[offset] == SESSION_STATUS_FINALIZED else SessionStatus.ACTIVE
        return cls(owner, sessionId, totalChunks, merkleRoot, status)

    def toDict(self, chunkProgramId: Optional[str] = None) -> dict:
        out = {
            'owner': str(self.owner),
            'sessionId': self.sessionId.hex(),
            'totalChunks': self.totalChunks,
            'merkleRoot': self.merkleRoot.hex(),
            'status': self.status.value,
        }
        if chunkProgramId:
            out['storageAccount'] = str(storageAddress(self.owner, chunkProgramId))
        return out


# ============================================================================
# Pipeline stages
# ============================================================================

def extractChunkDeposit(data: bytes) -> Optional[Tuple[int, bytes]]:
    """(chunkIndex, chunkBytes) for a qualifying deposit instruction, else None"""
    deposit = parseChunkDeposit(data)
    if deposit is None:
        return None
    return deposit.chunkIndex, deposit.data


class ChunkAssembler:
    """Chunks keyed by index; a later add for the same index replaces the earlier one"""

    def __init__(self):
        self.chunks: Dict[int, bytes] = {}
        self.deposits = 0

    def add(self, index: int, data: bytes):
        self.chunks[index] = bytes(data)
        self.deposits += 1

    def assemble(self) -> bytes:
        return b''.join(self.chunks[i] for i in sorted(self.chunks))

    def missingIndices(self, totalChunks: int) -> List[int]:
        return [i for i in range(totalChunks) if i not in self.chunks]

    def __len__(self) -> int:
        return len(self.chunks)


def looksBase64(buf: bytes) -> bool:
    """First byte in the base64 alphabet (letters, '/', '+') and the sample is all base64 chars"""
    if not buf or buf[0] not in _BASE64_FIRST:
        return False
    sample = buf[:BASE64_SAMPLE_SIZE].decode('ascii', errors='replace')
    return bool(_BASE64_SAMPLE.match(_WHITESPACE_TEXT.sub('', sample)))


def decodeBase64Wrapper(buf: bytes) -> Tuple[bytes, bool]:
    """
    Unwrap a base64-encoded buffer.

    Returns:
        (buffer, wasDecoded); the input is returned unchanged when it does
        not look like base64 or fails to decode
    """
    if not looksBase64(buf):
        return buf, False
    text = _WHITESPACE_BYTES.sub(b'', buf)
    text += b'=' * (-len(text) % 4)
    try:
        return base64.b64decode(text, validate=False), True
    except binascii.Error:
        return buf, False


def stripCompressionMarker(buf: bytes) -> Tuple[bytes, bool]:
    """Drop a leading 0x01 marker byte (buffers of at least 6 bytes)"""
    if len(buf) >= COMPRESSION_MIN_SIZE and buf[0] == COMPRESSION_MARKER:
        return buf[1:], True
    return buf, False


def isPrintablePayload(buf: bytes) -> bool:
    return all(isPrintableByte(b) for b in buf)


def buildPreview(buf: bytes) -> Optional[str]:
    """First 500 characters of a small, fully printable payload"""
    if len(buf) >= PREVIEW_MAX_BYTES or not isPrintablePayload(buf):
        return None
    return buf.decode('utf-8', errors='replace')[:PREVIEW_MAX_CHARS]


# ============================================================================
# Read
# ============================================================================

@dataclass
class SessionReadResult:
    descriptor: SessionDescriptor
    reconstructed: bytes               # index-ordered concatenation
    decoded: bytes                     # after base64 unwrap + marker strip
    chunksFound: int
    fileType: str
    preview: Optional[str] = None
    base64Wrapped: bool = False
    compressed: bool = False
    missingChunks: List[int] = field(default_factory=list)
    transactionsScanned: int = 0
    instructionsScanned: int = 0
    matchingDeposits: int = 0
    cancelled: bool = False
    chunkProgramId: Optional[str] = None

    @property
    def mimeType(self) -> str:
        return mimeTypeFor(self.fileType)

    def toDict(self) -> dict:
        """
        Reconstruction endpoint data contract.

        reconstructedData is the index-ordered concatenation before any base64
        unwrap; decompressedData is the unwrapped, marker-stripped payload.
        """
        return {
            'metadata': self.descriptor.toDict(self.chunkProgramId),
            'reconstructedData': base64.b64encode(self.reconstructed).decode('ascii'),
            'decompressedData': base64.b64encode(self.decoded).decode('ascii'),
            'chunksFound': self.chunksFound,
            'totalChunks': self.descriptor.totalChunks,
            'fileType': self.fileType,
            'mimeType': self.mimeType,
            'preview': self.preview,
            'base64Wrapped': self.base64Wrapped,
            'compressed': self.compressed,
            'missingChunks': self.missingChunks,
        }


async def readSession(client: LedgerClient, sessionAddress: str, config,
                      cancelEvent: Optional[asyncio.Event] = None) -> SessionReadResult:
    """
    Reconstruct the blob of one upload session.

    Args:
        client: ledger query capability
        sessionAddress: base58 descriptor address
        config: LedgerConfig (batch size, signature limit, chunk program)
        cancelEvent: set to stop scanning; chunks found so far are kept

    Raises:
        InvalidKeyError: sessionAddress is not a valid key
        NotFoundError: descriptor account absent
        MalformedError: descriptor shorter than 85 bytes
        NoChunksFoundError: full scan found no deposit instruction
    """
    log = getLogger()
    address = str(toPubkey(sessionAddress))

    data = await client.getAccountInfo(address)
    if data is None:
        raise NotFoundError(f"Session account not found: {address}", address=address)
    descriptor = SessionDescriptor.parse(data)
    log.info("[Chunks] Session descriptor", session=address, totalChunks=descriptor.totalChunks,
             status=descriptor.status.value)

    scanner = LedgerScanner(client, batchSize=config.batchSize, pageLimit=config.signaturePageLimit)
    scan = await scanner.scan(address, config.sessionSignatureLimit, cancelEvent)

    assembler = ChunkAssembler()
    instructionsScanned = 0
    # later-scanned deposits overwrite earlier ones for the same index
    for signature, tx in scan.transactions:
        # deposits are top-level instructions of any program
        for _programId, data in iterInstructions(tx, includeInner=False):
            instructionsScanned += 1
            deposit = extractChunkDeposit(data)
            if deposit is None:
                continue
            index, chunk = deposit
            assembler.add(index, chunk)
            log.debug("[Chunks] Chunk found", signature=signature, index=index, size=len(chunk))

    log.info("[Chunks] Deposits scanned", instructions=instructionsScanned, matched=assembler.deposits,
             transactions=scan.signaturesScanned)

    if not assembler and not scan.cancelled:
        raise NoChunksFoundError(
            "No chunk data found in session transactions",
            totalInstructions=instructionsScanned,
            matchingDiscriminators=assembler.deposits,
            transactionsScanned=scan.signaturesScanned)

    reconstructed = assembler.assemble()
    unwrapped, base64Wrapped = decodeBase64Wrapper(reconstructed)
    decoded, compressed = stripCompressionMarker(unwrapped)
    fileType = detectFileType(decoded)

    result = SessionReadResult(
        descriptor=descriptor,
        reconstructed=reconstructed,
        decoded=decoded,
        chunksFound=len(assembler),
        fileType=fileType,
        preview=buildPreview(decoded),
        base64Wrapped=base64Wrapped,
        compressed=compressed,
        missingChunks=assembler.missingIndices(descriptor.totalChunks),
        transactionsScanned=scan.signaturesScanned,
        instructionsScanned=instructionsScanned,
        matchingDeposits=assembler.deposits,
        cancelled=scan.cancelled,
        chunkProgramId=config.chunkProgramId)

    log.info("[Chunks] Reconstructed", size=len(reconstructed), decodedSize=len(decoded),
             fileType=fileType, base64=base64Wrapped, compressed=compressed,
             missing=len(result.missingChunks))
    return result
