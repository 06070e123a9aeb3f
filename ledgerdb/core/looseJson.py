"""
Loose JSON repair.

Row payloads are free-typed by users and stored as-is, so they may use single
quotes, bare keys, trailing commas or an extra layer of string encoding. The
repair is an ordered pipeline of pure text stages; a strict parse is tried
before the first stage and after each one, and the first object wins:

  1. unwrapQuotes          "{...}"  ->  {...}
  2. unescapeQuotes        {\\"a\\":1} ->  {"a":1}
     (text that is not an object literal at this point yields None)
  3. singleToDoubleQuotes  'x'      ->  "x"
  4. quoteBareKeys         {a: 1}   ->  {"a": 1}
  5. stripTrailingCommas   [1,2,]   ->  [1,2]
  6. quoteBareKeys again, strict parse
  7. extractPairs          single `key: value`, then greedy tokenizer
  8. None

Writers on other clients apply the same stages, so their order is part of
the data format.
"""

import re
from typing import Any, Callable, Dict, Optional, Tuple

import canonicaljson
import orjson

_SINGLE_QUOTED = re.compile(r"'([^']*)'")
_BARE_KEY = re.compile(r'([{,]\s*)([A-Za-z0-9_$]+)\s*:')
_TRAILING_COMMA = re.compile(r',\s*([}\]])')

_KEY = r'["\']?([A-Za-z0-9_$]+)["\']?\s*:\s*'
_VALUE = r'("(?:[^"\\]|\\.)*"|\'[^\']*\'|[^,}]*)'
_SINGLE_PAIR = re.compile(r'^\{\s*' + _KEY + _VALUE + r'\s*\}$', re.DOTALL)
_PAIR = re.compile(_KEY + _VALUE, re.DOTALL)


def strictParse(text: str) -> Optional[Dict[str, Any]]:
    """orjson parse; only objects count as structured output"""
    try:
        value = orjson.loads(text)
    except orjson.JSONDecodeError:
        return None
    return value if isinstance(value, dict) else None


# ============================================================================
# Text stages (str -> str, pure)
# ============================================================================

def unwrapQuotes(text: str) -> str:
    text = text.strip()
    if len(text) >= 2 and text[0] == text[-1] and text[0] in ('"', "'"):
        return text[1:-1].strip()
    return text


def unescapeQuotes(text: str) -> str:
    return text.replace('\\"', '"').replace("\\'", "'")


def singleToDoubleQuotes(text: str) -> str:
    return _SINGLE_QUOTED.sub(lambda m: '"' + m.group(1).replace('"', '\\"') + '"', text)


def quoteBareKeys(text: str) -> str:
    return _BARE_KEY.sub(r'\1"\2":', text)


def stripTrailingCommas(text: str) -> str:
    return _TRAILING_COMMA.sub(r'\1', text)


REPAIR_STAGES: Tuple[Callable[[str], str], ...] = (
    unwrapQuotes,
    unescapeQuotes,
    singleToDoubleQuotes,
    quoteBareKeys,
    stripTrailingCommas,
)


# ============================================================================
# Pair extraction (last resort)
# ============================================================================

def coerceValue(raw: str) -> Any:
    """JSON scalar when it parses, otherwise the unquoted text"""
    value = raw.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ('"', "'"):
        if value[0] == '"':
            try:
                return orjson.loads(value)
            except orjson.JSONDecodeError:
                pass
        return value[1:-1]
    try:
        return orjson.loads(value)
    except orjson.JSONDecodeError:
        return value


def extractPairs(text: str) -> Optional[Dict[str, Any]]:
    """
    Recover key/value pairs from text no parser accepts.

    First an anchored match of a whole single-pair object, then a greedy
    `key: value, key: value` scan. None when nothing is found.
    """
    match = _SINGLE_PAIR.match(text.strip())
    if match:
        return {match.group(1): coerceValue(match.group(2))}

    pairs = {}
    for key, value in _PAIR.findall(text):
        pairs[key] = coerceValue(value)
    return pairs or None


# ============================================================================
# Public API
# ============================================================================

def repairLooseJson(text: Optional[str]) -> Optional[Dict[str, Any]]:
    """
    Best-effort parse of object-like text.

    Returns:
        dict on success, {} for empty input, None when nothing structured
        can be recovered (callers wrap the text instead of dropping it)
    """
    if not text:
        return {}

    working = text.strip()
    if not working:
        return None
    parsed = strictParse(working)
    if parsed is not None:
        return parsed

    for stage in REPAIR_STAGES:
        working = stage(working)
        parsed = strictParse(working)
        if parsed is not None:
            return parsed
        if stage is unescapeQuotes and not working.startswith('{'):
            return None

    parsed = strictParse(quoteBareKeys(working))
    if parsed is not None:
        return parsed

    return extractPairs(working)


def parsePayload(text: Optional[str]) -> Dict[str, Any]:
    """
    Row payload to record; never drops data.

    Object-like text that cannot be repaired becomes {'raw': text}; any
    other unrecoverable text becomes {'value': text.strip()}.
    """
    repaired = repairLooseJson(text)
    if repaired is not None:
        return repaired
    if unescapeQuotes(unwrapQuotes(text)).startswith('{'):
        return {'raw': text}
    return {'value': text.strip()}


def stringifyRecord(record: Dict[str, Any]) -> str:
    """
    Canonical JSON for a record (sorted keys, minimal whitespace).

    repairLooseJson(stringifyRecord(r)) == r for any repaired record r.
    """
    return canonicaljson.encode_canonical_json(record).decode('utf-8')
