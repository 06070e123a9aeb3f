"""
IDL schema, Borsh decoding and instruction decoding.

Covers:
- discriminators (explicit and derived) for both IDL layouts
- Borsh primitives, vec/option/array/defined types
- field resolution across naming conventions with positional fallback
- top-level + inner enumeration, program filter, skipped-instruction counting
"""

import os
import struct
import sys
import hashlib
import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from solders.pubkey import Pubkey

from ledgerdb.core.borsh import BorshReader, IdlSchema, anchorDiscriminator, snakeCase
from ledgerdb.core.errors import SchemaError
from ledgerdb.core.fields import FieldSpec, resolveField, TABLE_FIELD, EDIT_CONTENT_FIELD
from ledgerdb.core.instructions import (
    InstructionDecoder, WriteInstruction, EditInstruction, UnknownInstruction, ChunkDepositInstruction,
    iterInstructions, bytesToText, bytesToUtf8, tableKeyOf, parseChunkDeposit,
)
from ledgerdb.core.seed import deriveSeedBytes, deriveSeedHex
from ledgerFixtures import (
    TEST_IDL, LEGACY_IDL, PROGRAM_ID, OTHER_PROGRAM_ID, OWNER,
    writeDataArgs, editArgs, makeTx, borshBytes, borshString, chunkDeposit, u8, u32,
)


@pytest.fixture
def schema():
    return IdlSchema.fromDict(TEST_IDL)


@pytest.fixture
def decoder(schema):
    return InstructionDecoder(schema, PROGRAM_ID)


# ============================================================================
# Schema and Borsh
# ============================================================================

class TestIdlSchema:

    def test_snake_case(self):
        assert snakeCase('writeData') == 'write_data'
        assert snakeCase('databaseInstruction') == 'database_instruction'
        assert snakeCase('write_data') == 'write_data'

    def test_derived_discriminator(self):
        assert anchorDiscriminator('global', 'write_data') == hashlib.sha256(b'global:write_data').digest()[:8]

    def test_instruction_names(self, schema):
        assert schema.instructionNames == ['create_table', 'database_instruction', 'write_data']
        assert schema.address == PROGRAM_ID

    def test_legacy_idl(self):
        legacy = IdlSchema.fromDict(LEGACY_IDL)
        assert 'write_data' in legacy.instructionNames
        assert legacy.address == PROGRAM_ID
        data = anchorDiscriminator('global', 'write_data') + borshBytes('fish') + borshBytes('{"a":1}')
        decoded = legacy.decodeInstruction(data)
        assert decoded.name == 'write_data'
        assert decoded.fields['tableName'] == b'fish'
        assert decoded.fields['rowJsonTx'] == b'{"a":1}'

    def test_invalid_idl(self):
        with pytest.raises(SchemaError):
            IdlSchema.fromDict({'name': 'x'})

    def test_unknown_discriminator(self, schema):
        assert schema.decodeInstruction(b'\x00' * 16) is None
        assert schema.decodeInstruction(b'\x01\x02') is None

    def test_truncated_args_raise(self, schema):
        data = writeDataArgs(deriveSeedBytes('fish'), '{"a":1}')
        with pytest.raises(SchemaError):
            schema.decodeInstruction(data[:-3])

    def test_values_in_declaration_order(self, schema):
        seed = deriveSeedBytes('fish')
        decoded = schema.decodeInstruction(editArgs(seed, 'sigA', 'content', mode=2))
        assert decoded.fields['__values__'] == [seed, b'sigA', 2, b'content']

    def test_decode_account_mismatch(self, schema):
        with pytest.raises(SchemaError):
            schema.decodeAccount('Root', b'\x00' * 64)
        with pytest.raises(SchemaError):
            schema.decodeAccount('Nope', b'\x00' * 64)


class TestBorshReader:

    def test_primitives(self):
        data = (struct.pack('<?', True) + struct.pack('<h', -2) + struct.pack('<Q', 2 ** 40)
                + (2 ** 100).to_bytes(16, 'little') + struct.pack('<d', 1.5))
        reader = BorshReader(data)
        assert reader.readType('bool', {}) is True
        assert reader.readType('i16', {}) == -2
        assert reader.readType('u64', {}) == 2 ** 40
        assert reader.readType('u128', {}) == 2 ** 100
        assert reader.readType('f64', {}) == 1.5

    def test_string_pubkey_option_vec(self):
        key = Pubkey.from_string(OWNER)
        data = borshString('héllo') + bytes(key) + u8(1) + u32(7) + u8(0) + u32(2) + u8(5) + u8(6)
        reader = BorshReader(data)
        assert reader.readType('string', {}) == 'héllo'
        assert reader.readType('publicKey', {}) == OWNER
        assert reader.readType({'option': 'u32'}, {}) == 7
        assert reader.readType({'option': 'u32'}, {}) is None
        assert reader.readType({'vec': 'u8'}, {}) == [5, 6]

    def test_defined_struct_and_enum(self):
        types = {
            'Pair': {'kind': 'struct', 'fields': [{'name': 'a', 'type': 'u8'}, {'name': 'b', 'type': 'u8'}]},
            'Mode': {'kind': 'enum', 'variants': [{'name': 'Update'}, {'name': 'Delete'}]},
        }
        reader = BorshReader(u8(1) + u8(2) + u8(1))
        pair = reader.readType({'defined': {'name': 'Pair'}}, types)
        assert pair['a'] == 1 and pair['b'] == 2
        assert reader.readType({'defined': 'Mode'}, types) == {'variant': 'Delete'}

    def test_read_past_end(self):
        with pytest.raises(SchemaError):
            BorshReader(u32(10) + b'abc').readType('bytes', {})

    def test_unsupported_type(self):
        with pytest.raises(SchemaError):
            BorshReader(b'\x00' * 8).readType('u256', {})


# ============================================================================
# Field resolution
# ============================================================================

class TestFieldResolution:

    def test_first_named_match_wins(self):
        spec = FieldSpec(('a', 'b'), 0)
        assert resolveField({'a': 1, 'b': 2}, spec) == 1
        assert resolveField({'b': 2}, spec) == 2

    def test_none_values_skipped(self):
        assert resolveField({'table_seed': None, 'tableName': b'x'}, TABLE_FIELD) == b'x'

    def test_positional_fallback(self):
        assert resolveField({'__values__': ['s', 't', 'm', 'c']}, EDIT_CONTENT_FIELD) == 'c'
        assert resolveField(['s', 't', 'm', 'c'], EDIT_CONTENT_FIELD) == 'c'

    def test_default(self):
        assert resolveField({}, FieldSpec(('x',)), default=[]) == []
        assert resolveField({'__values__': []}, TABLE_FIELD) is None


# ============================================================================
# Byte helpers
# ============================================================================

class TestByteHelpers:

    def test_bytes_to_text(self):
        assert bytesToText(b'fish\x00\x00') == 'fish'
        assert bytesToText([102, 105, 115, 104]) == 'fish'
        assert bytesToText(b'\x01\x02') == '0102'
        assert bytesToText('already') == 'already'
        assert bytesToText(None) == ''

    def test_bytes_to_utf8_keeps_whitespace(self):
        assert bytesToUtf8(b'{"a":\n"\xc3\xbc"}') == '{"a":\n"ü"}'

    def test_table_key(self):
        seed = deriveSeedBytes('fish')
        assert tableKeyOf(seed) == deriveSeedHex('fish')
        assert tableKeyOf(b'fish') == 'fish'


# ============================================================================
# Decoder
# ============================================================================

class TestInstructionDecoder:

    def test_write_instruction(self, decoder):
        seed = deriveSeedBytes('fish')
        tx = makeTx(PROGRAM_ID, [writeDataArgs(seed, "{name:'salmon'}")])
        decoded = decoder.decodeTransaction(tx, 'sig1')
        assert decoded == [WriteInstruction(tableKey=seed.hex(), payload="{name:'salmon'}")]
        assert decoder.stats.decoded == 1

    def test_edit_instruction(self, decoder):
        seed = deriveSeedBytes('fish')
        tx = makeTx(PROGRAM_ID, [editArgs(seed, 'sigTarget', '{"price": 5}', mode=1)])
        [edit] = decoder.decodeTransaction(tx, 'sig2')
        assert isinstance(edit, EditInstruction)
        assert edit.tableKey == seed.hex()
        assert edit.targetSignature == 'sigTarget'
        assert edit.mode == 1
        assert edit.content == '{"price": 5}'

    def test_unknown_instruction_variant(self, decoder):
        data = anchorDiscriminator('global', 'create_table') + borshString('fish')
        [ix] = decoder.decodeTransaction(makeTx(PROGRAM_ID, [data]))
        assert ix == UnknownInstruction('create_table', {'table_name': 'fish'})

    def test_inner_instructions_decoded(self, decoder):
        seed = deriveSeedBytes('fish')
        tx = makeTx(OTHER_PROGRAM_ID, [b'\x09\x09'], inner=[writeDataArgs(seed, '{"a":1}')],
                    innerProgramId=PROGRAM_ID)
        decoded = decoder.decodeTransaction(tx)
        assert [d.payload for d in decoded] == ['{"a":1}']
        assert decoder.stats.scanned == 2
        assert decoder.stats.matched == 1

    def test_other_programs_ignored(self, decoder):
        seed = deriveSeedBytes('fish')
        tx = makeTx(OTHER_PROGRAM_ID, [writeDataArgs(seed, '{"a":1}')])
        assert decoder.decodeTransaction(tx) == []
        assert decoder.stats.matched == 0
        assert decoder.stats.skipped == 0

    def test_bad_instruction_skipped_not_raised(self, decoder):
        seed = deriveSeedBytes('fish')
        good = writeDataArgs(seed, '{"a":1}')
        tx = makeTx(PROGRAM_ID, [b'\xde\xad\xbe\xef' * 4, good[:-2], good])
        decoded = decoder.decodeTransaction(tx, 'sigBad')
        assert len(decoded) == 1
        assert decoder.stats.skipped == 2
        reasons = [s.reason for s in decoder.stats.skips]
        assert reasons[0] == 'unknown discriminator'
        assert reasons[1].startswith('schema mismatch')
        assert all(s.signature == 'sigBad' for s in decoder.stats.skips)

    def test_legacy_names_decode_the_same(self):
        legacy = InstructionDecoder(IdlSchema.fromDict(LEGACY_IDL), PROGRAM_ID)
        data = anchorDiscriminator('global', 'write_data') + borshBytes('fish') + borshBytes('{"a":1}')
        [ix] = legacy.decodeTransaction(makeTx(PROGRAM_ID, [data]))
        assert ix == WriteInstruction(tableKey='fish', payload='{"a":1}')

    def test_empty_or_missing_tx(self, decoder):
        assert decoder.decodeTransaction({}) == []
        assert decoder.decodeTransaction(None) == []

    @pytest.mark.parametrize("body", [
        {'transaction': ['AAAA', 'base64']},
        'garbage',
        {'transaction': {'message': 'x'}, 'meta': []},
        [1, 2, 3],
    ])
    def test_malformed_body_has_no_instructions(self, decoder, body):
        assert decoder.decodeTransaction(body, 'sigMalformed') == []
        assert decoder.stats.scanned == 0

    def test_malformed_entries_skipped(self, decoder):
        seed = deriveSeedBytes('fish')
        tx = makeTx(PROGRAM_ID, [writeDataArgs(seed, '{"a":1}')])
        tx['transaction']['message']['instructions'].insert(0, 'junk')
        tx['meta']['innerInstructions'] = [None, {'index': 0, 'instructions': 7}]
        tx['meta']['loadedAddresses'] = ['not', 'a', 'mapping']
        [ix] = decoder.decodeTransaction(tx)
        assert ix.payload == '{"a":1}'

    def test_drifted_field_type_skipped(self):
        driftedIdl = {'instructions': [{
            'name': 'write_data',
            'accounts': [],
            'args': [
                {'name': 'table_seed', 'type': {'vec': 'u16'}},
                {'name': 'row_json_tx', 'type': 'bytes'}
            ]
        }]}
        decoder = InstructionDecoder(IdlSchema.fromDict(driftedIdl), PROGRAM_ID)
        drifted = (anchorDiscriminator('global', 'write_data') + u32(1) + struct.pack('<H', 300)
                   + borshBytes('{"a":1}'))
        fits = (anchorDiscriminator('global', 'write_data') + u32(2) + struct.pack('<HH', 102, 105)
                + borshBytes('{"b":2}'))
        decoded = decoder.decodeTransaction(makeTx(PROGRAM_ID, [drifted, fits]), 'sigDrift')
        assert decoded == [WriteInstruction(tableKey='fi', payload='{"b":2}')]
        [skip] = decoder.stats.skips
        assert skip.signature == 'sigDrift'
        assert skip.reason.startswith('field mismatch in write_data')


class TestIterInstructions:

    def test_order_top_level_then_inner(self):
        tx = makeTx(PROGRAM_ID, [b'\x01'], inner=[b'\x02'], innerProgramId=OTHER_PROGRAM_ID)
        assert list(iterInstructions(tx)) == [(PROGRAM_ID, b'\x01'), (OTHER_PROGRAM_ID, b'\x02')]
        assert list(iterInstructions(tx, includeInner=False)) == [(PROGRAM_ID, b'\x01')]

    def test_json_parsed_and_object_keys(self):
        tx = makeTx(PROGRAM_ID, [b'\x01'])
        tx['transaction']['message']['accountKeys'] = [{'pubkey': k, 'signer': False}
                                                       for k in tx['transaction']['message']['accountKeys']]
        tx['transaction']['message']['instructions'].append(
            {'programId': OTHER_PROGRAM_ID, 'parsed': {'type': 'transfer'}})
        assert list(iterInstructions(tx)) == [(PROGRAM_ID, b'\x01')]

    def test_loaded_addresses_extend_keys(self):
        tx = makeTx(OTHER_PROGRAM_ID, [])
        tx['meta']['loadedAddresses'] = {'writable': [], 'readonly': [PROGRAM_ID]}
        tx['transaction']['message']['instructions'] = [{'programIdIndex': 2, 'accounts': [], 'data': '2'}]
        assert list(iterInstructions(tx)) == [(PROGRAM_ID, b'\x01')]


class TestChunkDepositParsing:

    def test_parse(self):
        deposit = parseChunkDeposit(chunkDeposit(3, b'hello', method=2))
        assert deposit == ChunkDepositInstruction(b'\x11' * 16, 3, 2, b'hello')

    def test_minimum_size_and_discriminator(self):
        assert parseChunkDeposit(chunkDeposit(0, b'')).data == b''
        assert parseChunkDeposit(chunkDeposit(0, b'')[:21]) is None
        assert parseChunkDeposit(b'\x05' + chunkDeposit(0, b'x')[1:]) is None

