"""
Field resolution across naming conventions.

Decoded instructions and accounts come from IDLs generated by different
Anchor versions, so the same logical field may be named `table_seed`,
`tableSeed` or `table_name`. Every such field is declared once here as an
ordered candidate list; the first name present wins, then the positional
index when the record is a sequence.
"""

from dataclasses import dataclass
from typing import Any, Mapping, Optional, Sequence, Tuple

_MISSING = object()


@dataclass(frozen=True)
class FieldSpec:
    """One logical field: candidate names in priority order + positional fallback"""
    names: Tuple[str, ...]
    position: Optional[int] = None


def resolveField(record: Any, spec: FieldSpec, default: Any = None) -> Any:
    """
    Resolve a logical field from a mapping or sequence.

    Named lookup skips candidates whose value is None. Positional lookup
    applies to sequences, and to mappings that carry a '__values__' list
    (decoded instruction args in declaration order).
    """
    if isinstance(record, Mapping):
        for name in spec.names:
            value = record.get(name, _MISSING)
            if value is not _MISSING and value is not None:
                return value
        positional = record.get('__values__')
    else:
        positional = record

    if spec.position is not None and isinstance(positional, Sequence) and not isinstance(positional, (str, bytes)):
        if 0 <= spec.position < len(positional) and positional[spec.position] is not None:
            return positional[spec.position]
    return default


# ============================================================================
# Instruction fields
# ============================================================================

TABLE_FIELD = FieldSpec(('table_seed', 'tableSeed', 'table_name', 'tableName'), 0)
ROW_PAYLOAD_FIELD = FieldSpec(('row_json_tx', 'rowJsonTx'), 1)
TARGET_TX_FIELD = FieldSpec(('target_tx', 'targetTx'), 1)
EDIT_MODE_FIELD = FieldSpec(('mode',), 2)
EDIT_CONTENT_FIELD = FieldSpec(('content_json_tx', 'contentJsonTx'), 3)


# ============================================================================
# Account fields
# ============================================================================

ROOT_CREATOR_FIELD = FieldSpec(('creator',))
ROOT_TABLES_FIELD = FieldSpec(('table_seeds', 'tableSeeds', 'table_names', 'tableNames'))
ROOT_GLOBAL_TABLES_FIELD = FieldSpec(('global_table_seeds', 'globalTableSeeds', 'global_table_names'))
TABLE_NAME_FIELD = FieldSpec(('name', 'table_name', 'tableName'))
TABLE_COLUMNS_FIELD = FieldSpec(('column_names', 'columnNames', 'columns'))
TABLE_ID_COLUMN_FIELD = FieldSpec(('id_column', 'idColumn', 'id_col', 'idCol', 'id_index', 'idIndex'))
TABLE_EXT_NAME_FIELD = FieldSpec(('ext_table_name', 'extTableName'))
TABLE_EXT_KEYS_FIELD = FieldSpec(('ext_keys', 'extKeys'))


# ============================================================================
# Edit-content entry fields ({column, data} pairs)
# ============================================================================

ENTRY_COLUMN_FIELD = FieldSpec(('column', 'col', 'key', 'name'))
ENTRY_VALUE_FIELD = FieldSpec(('data', 'value', 'val', 'dataJson', 'data_json'))
