"""
Row assembly and the read-side edit fold.
"""

import os
import sys
import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from ledgerdb.core.editFold import (
    DELETE_FLAG, META_SIGNATURE, META_TABLE_SEED, META_ROW_ID,
    entriesToRow, contentToRow, isDeleteMarker, applyOverride, foldEdits,
)
from ledgerdb.core.instructions import WriteInstruction, EditInstruction, UnknownInstruction
from ledgerdb.core.rows import RowAssembler


def assemblerFor(*events) -> RowAssembler:
    """events: (signature, instruction), newest first"""
    return RowAssembler().assemble((sig, [ix]) for sig, ix in events)


# ============================================================================
# RowAssembler
# ============================================================================

class TestRowAssembler:

    def test_groups_by_table_in_scan_order(self):
        rows = assemblerFor(
            ('s3', WriteInstruction('fish', "{name:'trout'}")),
            ('s2', WriteInstruction('birds', '{"name": "crow"}')),
            ('s1', WriteInstruction('fish', '{"name": "salmon"}')),
        )
        assert rows.rowsByTable() == {
            'fish': [{'name': 'trout'}, {'name': 'salmon'}],
            'birds': [{'name': 'crow'}],
        }
        assert len(rows) == 3

    def test_unrepairable_payload_never_dropped(self):
        rows = assemblerFor(
            ('s2', WriteInstruction('fish', 'just a note')),
            ('s1', WriteInstruction('fish', '{broken')),
        )
        assert rows.rowsByTable()['fish'] == [{'value': 'just a note'}, {'raw': '{broken'}]

    def test_edits_recorded_separately(self):
        rows = assemblerFor(
            ('s2', EditInstruction('fish', 's1', 1, '{"price": 5}')),
            ('s1', WriteInstruction('fish', '{"name": "salmon", "price": 3}')),
        )
        [edit] = rows.records('fish', 'edit')
        assert edit.targetSignature == 's1'
        assert edit.values == {'price': 5}
        assert edit.rawContent == '{"price": 5}'
        assert [r.signature for r in rows.records(kind='write')] == ['s1']

    def test_non_row_instructions_ignored(self):
        rows = RowAssembler()
        assert rows.add('s1', UnknownInstruction('create_table', {})) is None
        assert len(rows) == 0

    def test_no_dedupe(self):
        rows = assemblerFor(
            ('s2', WriteInstruction('fish', '{"id": 1}')),
            ('s1', WriteInstruction('fish', '{"id": 1}')),
        )
        assert rows.rowsByTable()['fish'] == [{'id': 1}, {'id': 1}]


# ============================================================================
# Edit fold
# ============================================================================

class TestEditContent:

    def test_blank_is_delete(self):
        assert contentToRow('') == {DELETE_FLAG: True}
        assert contentToRow('   ') == {DELETE_FLAG: True}
        assert contentToRow(None) == {DELETE_FLAG: True}

    def test_entry_list(self):
        content = '[{"column": "price", "data": 5}, {"col": "name", "value": "trout"}, 7]'
        assert contentToRow(content) == {'price': 5, 'name': 'trout'}

    def test_wrapped_entry_list(self):
        assert contentToRow('{updates: [{column: "price", data: 9}]}') == {'price': 9}

    def test_plain_object(self):
        assert contentToRow("{price: 5}") == {'price': 5}

    def test_entries_without_column_skipped(self):
        assert entriesToRow([{'data': 1}, {'column': 'a', 'data': 2}]) == {'a': 2}

    @pytest.mark.parametrize("override, expected", [
        ({DELETE_FLAG: True}, True),
        ({'deleted': True}, True),
        ({'action': 'DELETE'}, True),
        ({'status': 'deleted'}, True),
        ({'deleted': 'yes'}, False),
        ({'price': 5}, False),
        (None, False),
    ])
    def test_delete_markers(self, override, expected):
        assert isDeleteMarker(override) is expected


class TestApplyOverride:

    def test_per_field_override(self):
        base = {'id': 1, 'name': 'salmon', 'price': 3}
        assert applyOverride(base, {'price': 5}, 'id') == {'id': 1, 'name': 'salmon', 'price': 5}
        assert base['price'] == 3

    def test_id_column_preserved(self):
        base = {'id': 1, 'name': 'salmon'}
        assert applyOverride(base, {'id': None, 'name': 'trout'}, 'id') == {'id': 1, 'name': 'trout'}

    def test_delete(self):
        assert applyOverride({'id': 1}, {'op': 'delete'}) is None

    def test_no_override(self):
        assert applyOverride({'id': 1}, None) == {'id': 1}


class TestFoldEdits:

    def _records(self):
        rows = assemblerFor(
            ('e3', EditInstruction('fish', 'w1', 1, '{"price": 9}')),
            ('e2', EditInstruction('fish', 'w2', 1, '')),
            ('e1', EditInstruction('fish', 'w1', 1, '{"price": 5, "name": "trout"}')),
            ('w2', WriteInstruction('fish', '{"id": 2, "name": "cod", "price": 1}')),
            ('w1', WriteInstruction('fish', '{"id": 1, "name": "salmon", "price": 3}')),
        )
        return rows.records('fish', 'write'), rows.records('fish', 'edit')

    def test_newest_edit_wins_and_blank_deletes(self):
        writes, edits = self._records()
        folded = foldEdits(writes, edits, idColumn='id', tableSeedHex='ab' * 32)
        assert folded == [{
            'id': 1, 'name': 'salmon', 'price': 9,
            META_SIGNATURE: 'w1', META_TABLE_SEED: 'ab' * 32, META_ROW_ID: 1,
        }]

    def test_without_edits_rows_pass_through(self):
        writes, _ = self._records()
        folded = foldEdits(writes, [])
        assert [r[META_SIGNATURE] for r in folded] == ['w2', 'w1']
        assert all(META_ROW_ID not in r and META_TABLE_SEED not in r for r in folded)

    def test_edit_for_unknown_target_ignored(self):
        writes, _ = self._records()
        stray = assemblerFor(('e9', EditInstruction('fish', 'nope', 1, '{"price": 0}'))).records()
        folded = foldEdits(writes, stray, idColumn='id')
        assert [r['price'] for r in folded] == [1, 3]
