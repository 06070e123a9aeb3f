"""
Anchor IDL schema and Borsh decoding.

Decodes instruction data and account data against an Anchor IDL. Supports
both the legacy IDL format (camelCase names, `publicKey`, inline account
types) and the 0.30+ format (snake_case names, explicit `discriminator`
arrays, account types under `types`).

Discriminators when the IDL does not carry them:
  instruction: sha256("global:<snake_case_name>")[:8]
  account:     sha256("account:<AccountName>")[:8]
"""

import hashlib
import re
import struct
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from solders.pubkey import Pubkey

from .contract import ANCHOR_DISCRIMINATOR_SIZE, ANCHOR_INSTRUCTION_NAMESPACE, ANCHOR_ACCOUNT_NAMESPACE
from .errors import SchemaError


# Fixed-size Borsh primitives: type -> (struct format, size)
_PRIMITIVES = {
    'bool': ('<?', 1),
    'u8':   ('<B', 1),
    'i8':   ('<b', 1),
    'u16':  ('<H', 2),
    'i16':  ('<h', 2),
    'u32':  ('<I', 4),
    'i32':  ('<i', 4),
    'u64':  ('<Q', 8),
    'i64':  ('<q', 8),
    'f32':  ('<f', 4),
    'f64':  ('<d', 8),
}

_CAMEL_BOUNDARY = re.compile(r'(?<=[a-z0-9])([A-Z])')


def snakeCase(name: str) -> str:
    """writeData -> write_data (Anchor's instruction naming)"""
    return _CAMEL_BOUNDARY.sub(r'_\1', name).lower()


def anchorDiscriminator(namespace: str, name: str) -> bytes:
    return hashlib.sha256(f"{namespace}:{name}".encode('utf-8')).digest()[:ANCHOR_DISCRIMINATOR_SIZE]


class BorshReader:
    """Sequential little-endian reader over one buffer"""

    def __init__(self, data: bytes, offset: int = 0):
        self.data = data
        self.offset = offset

    def read(self, size: int) -> bytes:
        end = self.offset + size
        if size < 0 or end > len(self.data):
            raise SchemaError(f"Read past end: need {size} bytes at offset {self.offset}, have {len(self.data)}")
        chunk = self.data[self.offset:end]
        self.offset = end
        return chunk

    def readLength(self) -> int:
        return struct.unpack('<I', self.read(4))[0]

    def readType(self, typ: Any, types: Dict[str, dict]) -> Any:
        """Decode one value of an IDL type"""
        if isinstance(typ, str):
            if typ in _PRIMITIVES:
                fmt, size = _PRIMITIVES[typ]
                return struct.unpack(fmt, self.read(size))[0]
            if typ in ('u128', 'i128'):
                return int.from_bytes(self.read(16), 'little', signed=(typ == 'i128'))
            if typ == 'string':
                return self.read(self.readLength()).decode('utf-8', errors='replace')
            if typ == 'bytes':
                return self.read(self.readLength())
            if typ in ('publicKey', 'pubkey'):
                return str(Pubkey(self.read(32)))
            if typ in types:
                return self._readDefined(typ, types)
            raise SchemaError(f"Unsupported IDL type: {typ}")

        if isinstance(typ, dict):
            if 'vec' in typ:
                count = self.readLength()
                return [self.readType(typ['vec'], types) for _ in range(count)]
            if 'option' in typ:
                present = self.read(1)[0]
                return self.readType(typ['option'], types) if present else None
            if 'array' in typ:
                inner, count = typ['array']
                if inner == 'u8':
                    return self.read(count)
                return [self.readType(inner, types) for _ in range(count)]
            if 'defined' in typ:
                defined = typ['defined']
                definedName = defined['name'] if isinstance(defined, dict) else defined
                return self._readDefined(definedName, types)

        raise SchemaError(f"Unsupported IDL type: {typ!r}")

    def readFields(self, fields: List[dict], types: Dict[str, dict]) -> Dict[str, Any]:
        """Decode a struct; '__values__' keeps the declaration order for positional access"""
        out: Dict[str, Any] = {}
        values = []
        for fieldDef in fields:
            value = self.readType(fieldDef['type'], types)
            out[fieldDef['name']] = value
            values.append(value)
        out['__values__'] = values
        return out

    def _readDefined(self, name: str, types: Dict[str, dict]) -> Any:
        if name not in types:
            raise SchemaError(f"Undefined IDL type: {name}")
        typeDef = types[name]
        kind = typeDef.get('kind')
        if kind == 'struct':
            fields = typeDef.get('fields', [])
            if fields and not isinstance(fields[0], dict):
                return [self.readType(t, types) for t in fields]  # tuple struct
            return self.readFields(fields, types)
        if kind == 'enum':
            variants = typeDef.get('variants', [])
            index = self.read(1)[0]
            if index >= len(variants):
                raise SchemaError(f"Enum {name} has no variant {index}")
            variant = variants[index]
            variantFields = variant.get('fields')
            if not variantFields:
                return {'variant': variant['name']}
            if isinstance(variantFields[0], dict):
                return {'variant': variant['name'], **self.readFields(variantFields, types)}
            return {'variant': variant['name'], 'values': [self.readType(t, types) for t in variantFields]}
        raise SchemaError(f"Unsupported kind '{kind}' for type {name}")


@dataclass
class IdlInstruction:
    name: str                    # snake_case
    discriminator: bytes
    args: List[dict] = field(default_factory=list)


@dataclass
class IdlAccount:
    name: str
    discriminator: bytes
    fields: List[dict] = field(default_factory=list)


@dataclass
class DecodedArgs:
    """Instruction name + args ('__values__' holds them in declaration order)"""
    name: str
    fields: Dict[str, Any]


class IdlSchema:
    """Instruction and account coder built from an Anchor IDL document"""

    def __init__(self, address: Optional[str], instructions: List[IdlInstruction],
                 accounts: List[IdlAccount], types: Dict[str, dict]):
        self.address = address
        self.types = types
        self._byDiscriminator: Dict[bytes, IdlInstruction] = {ix.discriminator: ix for ix in instructions}
        self._accounts: Dict[str, IdlAccount] = {acc.name: acc for acc in accounts}

    @classmethod
    def fromDict(cls, idl: dict) -> 'IdlSchema':
        """
        Build a schema from a parsed IDL.

        Raises:
            SchemaError: if the document has no instruction list
        """
        if not isinstance(idl, dict) or not isinstance(idl.get('instructions'), list):
            raise SchemaError("IDL must be an object with an 'instructions' list")

        types: Dict[str, dict] = {}
        for typeDef in idl.get('types', []) or []:
            types[typeDef['name']] = typeDef.get('type', {})

        instructions = []
        for ix in idl['instructions']:
            name = snakeCase(ix['name'])
            disc = ix.get('discriminator')
            discriminator = bytes(disc) if disc else anchorDiscriminator(ANCHOR_INSTRUCTION_NAMESPACE, name)
            instructions.append(IdlInstruction(name, discriminator, ix.get('args', [])))

        accounts = []
        for acc in idl.get('accounts', []) or []:
            accName = acc['name']
            disc = acc.get('discriminator')
            discriminator = bytes(disc) if disc else anchorDiscriminator(ANCHOR_ACCOUNT_NAMESPACE, accName)
            accType = acc.get('type') or types.get(accName, {})
            accounts.append(IdlAccount(accName, discriminator, accType.get('fields', [])))

        address = idl.get('address') or (idl.get('metadata') or {}).get('address')
        return cls(address, instructions, accounts, types)

    @property
    def instructionNames(self) -> List[str]:
        return sorted(ix.name for ix in self._byDiscriminator.values())

    def decodeInstruction(self, data: bytes) -> Optional[DecodedArgs]:
        """
        Decode instruction data.

        Returns:
            DecodedArgs, or None when the discriminator is not in this IDL

        Raises:
            SchemaError: known discriminator but args do not match the schema
        """
        if len(data) < ANCHOR_DISCRIMINATOR_SIZE:
            return None
        ix = self._byDiscriminator.get(bytes(data[:ANCHOR_DISCRIMINATOR_SIZE]))
        if ix is None:
            return None
        reader = BorshReader(data, ANCHOR_DISCRIMINATOR_SIZE)
        return DecodedArgs(ix.name, reader.readFields(ix.args, self.types))

    def decodeAccount(self, accountName: str, data: bytes) -> Dict[str, Any]:
        """
        Decode account data for a named account type.

        Raises:
            SchemaError: unknown account, discriminator mismatch or truncated data
        """
        acc = self._accounts.get(accountName)
        if acc is None:
            raise SchemaError(f"Account '{accountName}' not in IDL")
        if bytes(data[:ANCHOR_DISCRIMINATOR_SIZE]) != acc.discriminator:
            raise SchemaError(f"Account discriminator mismatch for '{accountName}'")
        reader = BorshReader(data, ANCHOR_DISCRIMINATOR_SIZE)
        return reader.readFields(acc.fields, self.types)
