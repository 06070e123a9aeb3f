"""
ledgerdb Protocol Contract Definitions

Single source of truth for every fixed constant of the on-chain protocol:
namespace tags, instruction sentinels, account layouts and scan limits.
Import from this module instead of repeating literals.

Address roles (each role has its own seed tuple so addresses never collide):
  root              [iqdb-root,  programId, owner]
  txRef             [iqdb-txref, programId, owner]
  targetTxRef       [iqdb-txref, programId, owner, target]
  table             [iqdb-table, programId, root, seed(tableName)]
  instructionTable  [iqdb-table, programId, root, seed(tableName), instruction]
  storage           [hybrid_storage, owner]            (chunk program)
"""

from enum import Enum
from typing import Dict, Tuple


class AddressRole(str, Enum):
    """Semantic role of a derived address"""
    ROOT = "root"
    TX_REF = "txRef"
    TARGET_TX_REF = "targetTxRef"
    TABLE = "table"
    INSTRUCTION_TABLE = "instructionTable"
    STORAGE = "storage"


class SessionStatus(str, Enum):
    """Chunk-upload session status byte"""
    ACTIVE = "active"
    FINALIZED = "finalized"


# ============================================================================
# Default endpoints and program identities
# ============================================================================

DEFAULT_RPC_ENDPOINT = "https://api.devnet.solana.com"
DEFAULT_PROGRAM_ID = "7Vk5JJDxUBAaaAkpYQpWYCZNz4SVPm3mJFSxrBzTQuAX"
DEFAULT_CHUNK_PROGRAM_ID = "4jB7tZybufNfgs8HRj9DiSCMYfEqb8jWkxKcnZnA1vBt"


# ============================================================================
# Namespace tags
# ============================================================================

ROOT_SEED = b"iqdb-root"
TABLE_SEED = b"iqdb-table"
TX_REF_SEED = b"iqdb-txref"
INSTRUCTION_SEED = b"instruction"
TARGET_SEED = b"target"
STORAGE_SEED = b"hybrid_storage"

# role -> (namespace tag, suffix seeds appended after the role's own seeds)
ROLE_SEEDS: Dict[AddressRole, Tuple[bytes, Tuple[bytes, ...]]] = {
    AddressRole.ROOT: (ROOT_SEED, ()),
    AddressRole.TX_REF: (TX_REF_SEED, ()),
    AddressRole.TARGET_TX_REF: (TX_REF_SEED, (TARGET_SEED,)),
    AddressRole.TABLE: (TABLE_SEED, ()),
    AddressRole.INSTRUCTION_TABLE: (TABLE_SEED, (INSTRUCTION_SEED,)),
}

# Separator for extension-table composite names: table/rowId/extName
COMPOSITE_NAME_SEPARATOR = "/"

# Seeds given as exactly 64 hex characters are used as raw bytes
SEED_HEX_LENGTH = 64
SEED_BYTE_LENGTH = 32


# ============================================================================
# Instruction names (snake_case, as Anchor names them on-chain)
# ============================================================================

WRITE_DATA_INSTRUCTION = "write_data"
DATABASE_INSTRUCTION = "database_instruction"

# Anchor discriminator namespaces: sha256("<namespace>:<name>")[:8]
ANCHOR_DISCRIMINATOR_SIZE = 8
ANCHOR_INSTRUCTION_NAMESPACE = "global"
ANCHOR_ACCOUNT_NAMESPACE = "account"


# ============================================================================
# Chunk-upload session layout (fixed, no version tag)
# ============================================================================
#   owner(32) + session_id(16) + total_chunks(u32 LE) + merkle_root(32) + status(u8)

SESSION_OWNER_SIZE = 32
SESSION_ID_SIZE = 16
SESSION_TOTAL_CHUNKS_SIZE = 4
SESSION_MERKLE_ROOT_SIZE = 32
SESSION_STATUS_SIZE = 1
SESSION_ACCOUNT_SIZE = (SESSION_OWNER_SIZE + SESSION_ID_SIZE + SESSION_TOTAL_CHUNKS_SIZE
                        + SESSION_MERKLE_ROOT_SIZE + SESSION_STATUS_SIZE)  # 85

SESSION_STATUS_FINALIZED = 1


# ============================================================================
# Chunk-deposit instruction layout
# ============================================================================
#   discriminator(1) + session_id(16) + chunk_index(u32 LE) + method(1) + raw chunk bytes

CHUNK_DEPOSIT_DISCRIMINATOR = 0x04
CHUNK_INDEX_OFFSET = 1 + SESSION_ID_SIZE
CHUNK_METHOD_OFFSET = CHUNK_INDEX_OFFSET + 4
CHUNK_DATA_OFFSET = CHUNK_METHOD_OFFSET + 1
CHUNK_DEPOSIT_MIN_SIZE = CHUNK_DATA_OFFSET  # 22


# ============================================================================
# Payload post-processing
# ============================================================================

COMPRESSION_MARKER = 0x01
COMPRESSION_MIN_SIZE = 6
BASE64_SAMPLE_SIZE = 100
PREVIEW_MAX_BYTES = 10_000
PREVIEW_MAX_CHARS = 500
TEXT_SAMPLE_SIZE = 1024
TEXT_PRINTABLE_RATIO = 0.9
ZIP_PATH_SAMPLE_SIZE = 100


# ============================================================================
# Scan limits
# ============================================================================

FETCH_BATCH_SIZE = 50
SIGNATURE_PAGE_LIMIT = 1000
SESSION_SIGNATURE_LIMIT = 1000
DEFAULT_MAX_TX = 100
