"""
Edit/delete fold for one table.

Rows are never mutated on the ledger: an edit is a new database_instruction
event naming the signature of the write it replaces. Folding is a read-side
policy applied on request:

- the newest edit per target signature wins;
- an edit whose content is blank, or that carries a delete marker, removes
  the row;
- otherwise the edit's columns replace the write's columns one by one and
  the id column is preserved.

Folded rows carry __txSignature, __tableSeed and __rowId.
"""

from typing import Any, Dict, List, Optional

import orjson

from .fields import resolveField, ENTRY_COLUMN_FIELD, ENTRY_VALUE_FIELD
from .looseJson import parsePayload
from .rows import RowRecord

DELETE_FLAG = '__delete'
META_SIGNATURE = '__txSignature'
META_TABLE_SEED = '__tableSeed'
META_ROW_ID = '__rowId'

_DELETE_FLAGS = ('delete', 'deleted', DELETE_FLAG)
_DELETE_VERBS = ('action', 'mode', 'op', 'type')
_ENTRY_LISTS = ('updates', 'rows', 'data')


def entriesToRow(entries: List[Any]) -> Dict[str, Any]:
    """[{column, data}, ...] -> {column: data}"""
    out = {}
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        column = resolveField(entry, ENTRY_COLUMN_FIELD)
        if not column:
            continue
        out[str(column)] = resolveField(entry, ENTRY_VALUE_FIELD)
    return out


def contentToRow(raw: Optional[str]) -> Dict[str, Any]:
    """Edit content to a column map; blank content is a delete"""
    trimmed = (raw or '').strip()
    if not trimmed:
        return {DELETE_FLAG: True}

    if trimmed.startswith('['):
        try:
            parsed = orjson.loads(trimmed)
        except orjson.JSONDecodeError:
            parsed = None
        if isinstance(parsed, list):
            return entriesToRow(parsed)

    loose = parsePayload(raw)
    for key in _ENTRY_LISTS:
        if isinstance(loose.get(key), list):
            return entriesToRow(loose[key])
    return loose


def isDeleteMarker(override: Optional[Dict[str, Any]]) -> bool:
    if not isinstance(override, dict):
        return False
    if any(override.get(flag) is True for flag in _DELETE_FLAGS):
        return True
    for verb in _DELETE_VERBS:
        value = override.get(verb)
        if isinstance(value, str) and value.lower() == 'delete':
            return True
    status = override.get('status')
    return isinstance(status, str) and status.lower() == 'deleted'


def applyOverride(base: Dict[str, Any], override: Optional[Dict[str, Any]],
                  idColumn: Optional[str] = None) -> Optional[Dict[str, Any]]:
    """Per-field last-writer-wins; None when the override deletes the row"""
    merged = dict(base)
    if override is None:
        return merged
    if isDeleteMarker(override):
        return None

    merged.update(override)
    if idColumn:
        if override.get(idColumn) is None and base.get(idColumn) is not None:
            merged[idColumn] = base[idColumn]
    return merged


def foldEdits(writeRecords: List[RowRecord], editRecords: List[RowRecord],
              idColumn: Optional[str] = None, tableSeedHex: Optional[str] = None) -> List[Dict[str, Any]]:
    """
    Fold edits into writes.

    Args:
        writeRecords: write rows, newest first
        editRecords: edit rows, newest first
        idColumn: column preserved across edits and copied to __rowId
        tableSeedHex: copied to __tableSeed

    Returns:
        Surviving rows in write order
    """
    overrides: Dict[str, Dict[str, Any]] = {}
    for edit in editRecords:
        if edit.targetSignature and edit.targetSignature not in overrides:
            overrides[edit.targetSignature] = contentToRow(edit.rawContent)

    rows = []
    for write in writeRecords:
        row = applyOverride(write.values, overrides.get(write.signature), idColumn)
        if row is None:
            continue
        row[META_SIGNATURE] = write.signature
        if tableSeedHex is not None:
            row[META_TABLE_SEED] = tableSeedHex
        if idColumn and row.get(idColumn) is not None:
            row[META_ROW_ID] = row[idColumn]
        rows.append(row)
    return rows
