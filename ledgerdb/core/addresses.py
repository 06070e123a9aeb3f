"""
Deterministic address derivation.

All addresses are program-derived addresses (PDAs): pure functions of a
namespace tag, the program identity, an owner key and optional extra seeds.
No I/O; the only failure is a malformed key (InvalidKeyError).
"""

from typing import Dict, Union

from solders.pubkey import Pubkey

from .contract import AddressRole, ROLE_SEEDS, STORAGE_SEED
from .errors import InvalidKeyError
from .seed import deriveSeedBytes, compositeName

KeyLike = Union[Pubkey, str, bytes, bytearray]


def toPubkey(value: KeyLike) -> Pubkey:
    """
    Parse a public key from a Pubkey, base58 string or 32 raw bytes.

    Raises:
        InvalidKeyError: if the value is not a valid 32-byte key
    """
    if isinstance(value, Pubkey):
        return value
    try:
        if isinstance(value, str):
            return Pubkey.from_string(value.strip())
        if isinstance(value, (bytes, bytearray)):
            if len(value) != 32:
                raise ValueError(f"expected 32 bytes, got {len(value)}")
            return Pubkey(bytes(value))
    except Exception as e:  # solders raises its own parse errors
        raise InvalidKeyError(f"Invalid public key {value!r}: {e}") from e
    raise InvalidKeyError(f"Unsupported key type: {type(value).__name__}")


def deriveAddress(programId: KeyLike, *seeds: bytes) -> Pubkey:
    """Program-derived address for the given raw seeds"""
    address, _bump = Pubkey.find_program_address(list(seeds), toPubkey(programId))
    return address


def deriveNamespaced(namespaceTag: bytes, ownerKey: KeyLike, *extraSeeds: bytes,
                     programId: KeyLike) -> Pubkey:
    """
    Derive an address in a namespace.

    Seeds: [namespaceTag, programId, ownerKey, *extraSeeds]
    """
    program = toPubkey(programId)
    owner = toPubkey(ownerKey)
    return deriveAddress(program, namespaceTag, bytes(program), bytes(owner), *extraSeeds)


def deriveForRole(role: AddressRole, ownerKey: KeyLike, *nameSeeds: bytes, programId: KeyLike) -> Pubkey:
    """Derive an address for one of the roles in ROLE_SEEDS"""
    if role not in ROLE_SEEDS:
        raise ValueError(f"Role {role.value} is not owner-namespaced")
    tag, suffix = ROLE_SEEDS[role]
    return deriveNamespaced(tag, ownerKey, *nameSeeds, *suffix, programId=programId)


def rootAddress(owner: KeyLike, programId: KeyLike) -> Pubkey:
    return deriveForRole(AddressRole.ROOT, owner, programId=programId)


def txRefAddress(owner: KeyLike, programId: KeyLike) -> Pubkey:
    return deriveForRole(AddressRole.TX_REF, owner, programId=programId)


def targetTxRefAddress(owner: KeyLike, programId: KeyLike) -> Pubkey:
    return deriveForRole(AddressRole.TARGET_TX_REF, owner, programId=programId)


def tableAddress(root: KeyLike, tableName: str, programId: KeyLike) -> Pubkey:
    """Table account under a root; tableName may be a name or a 64-hex seed"""
    return deriveForRole(AddressRole.TABLE, root, deriveSeedBytes(tableName), programId=programId)


def instructionTableAddress(root: KeyLike, tableName: str, programId: KeyLike) -> Pubkey:
    """Edit-log account paired with a table"""
    return deriveForRole(AddressRole.INSTRUCTION_TABLE, root, deriveSeedBytes(tableName), programId=programId)


def extTableAddress(root: KeyLike, tableName: str, rowId, extName: str, programId: KeyLike) -> Pubkey:
    """Extension table for one row: the table address of 'table/rowId/extName'"""
    return tableAddress(root, compositeName(tableName, rowId, extName), programId)


def storageAddress(owner: KeyLike, chunkProgramId: KeyLike) -> Pubkey:
    """Chunk program storage account for an owner"""
    return deriveAddress(chunkProgramId, STORAGE_SEED, bytes(toPubkey(owner)))


def getAddresses(owner: KeyLike, programId: KeyLike) -> Dict[str, str]:
    """Common base58 addresses for an owner (debugging and tooling)"""
    return {
        'root': str(rootAddress(owner, programId)),
        'txRef': str(txRefAddress(owner, programId)),
        'targetTxRef': str(targetTxRefAddress(owner, programId)),
    }
