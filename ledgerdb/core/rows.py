"""
Row assembly.

Groups decoded write/edit instructions by table key in scan order (newest
first). Every payload goes through parsePayload, so a payload that cannot be
repaired still shows up as {'raw': ...} or {'value': ...}.

No dedupe and no fold of edits into their target rows; see editFold.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .instructions import DecodedInstruction, EditInstruction, WriteInstruction
from .looseJson import parsePayload


@dataclass
class RowRecord:
    signature: str
    tableKey: str
    kind: str                      # 'write' | 'edit'
    values: Dict[str, Any]
    targetSignature: Optional[str] = None
    mode: Any = None
    rawContent: str = ''


class RowAssembler:
    def __init__(self):
        self._records: List[RowRecord] = []

    def add(self, signature: str, instruction: DecodedInstruction) -> Optional[RowRecord]:
        """Record one instruction; non-row instructions are ignored"""
        if isinstance(instruction, WriteInstruction):
            record = RowRecord(signature, instruction.tableKey, 'write',
                               parsePayload(instruction.payload), rawContent=instruction.payload)
        elif isinstance(instruction, EditInstruction):
            record = RowRecord(signature, instruction.tableKey, 'edit',
                               parsePayload(instruction.content),
                               targetSignature=instruction.targetSignature,
                               mode=instruction.mode, rawContent=instruction.content)
        else:
            return None
        self._records.append(record)
        return record

    def assemble(self, decoded: Iterable[Tuple[str, Iterable[DecodedInstruction]]]) -> 'RowAssembler':
        """Add (signature, instructions) pairs in scan order"""
        for signature, instructions in decoded:
            for instruction in instructions:
                self.add(signature, instruction)
        return self

    def records(self, tableKey: Optional[str] = None, kind: Optional[str] = None) -> List[RowRecord]:
        return [r for r in self._records
                if (tableKey is None or r.tableKey == tableKey) and (kind is None or r.kind == kind)]

    def rowsByTable(self) -> Dict[str, List[Dict[str, Any]]]:
        """table key -> row values, newest first"""
        out: Dict[str, List[Dict[str, Any]]] = {}
        for record in self._records:
            out.setdefault(record.tableKey, []).append(record.values)
        return out

    def __len__(self) -> int:
        return len(self._records)
