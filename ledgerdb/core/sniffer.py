"""
File-type sniffing for reconstructed blobs.

Magic bytes are checked in a fixed priority order; the first match wins.
ZIP containers are told apart by the member paths visible in the first
bytes of the archive. Anything unmatched is `txt` when more than 90% of the
first 1024 bytes are printable, otherwise `bin`.
"""

from typing import Callable, List, Tuple

from .contract import TEXT_SAMPLE_SIZE, TEXT_PRINTABLE_RATIO, ZIP_PATH_SAMPLE_SIZE

_WHITESPACE = (0x09, 0x0A, 0x0D)

MP4_BRANDS = (b'isom', b'mp41', b'mp42', b'avc1', b'M4V ', b'M4A ')
MOV_BRANDS = (b'qt  ', b'moov')

MIME_TYPES = {
    'jpg': 'image/jpeg',
    'png': 'image/png',
    'gif': 'image/gif',
    'bmp': 'image/bmp',
    'webp': 'image/webp',
    'mp4': 'video/mp4',
    'mov': 'video/quicktime',
    'avi': 'video/x-msvideo',
    'webm': 'video/webm',
    'pdf': 'application/pdf',
    'docx': 'application/vnd.openxmlformats-officedocument.wordprocessingml.document',
    'xlsx': 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet',
    'pptx': 'application/vnd.openxmlformats-officedocument.presentationml.presentation',
    'zip': 'application/zip',
    'wav': 'audio/wav',
    'mp3': 'audio/mpeg',
    'flac': 'audio/flac',
    'flv': 'video/x-flv',
    'xml': 'application/xml',
    'json': 'application/json',
    'txt': 'text/plain',
    'bin': 'application/octet-stream',
}


def isPrintableByte(b: int) -> bool:
    return 0x20 <= b <= 0x7E or b in _WHITESPACE


def _ftypBrand(buf: bytes) -> str:
    if buf[4:8] != b'ftyp':
        return ''
    brand = buf[8:12]
    if brand in MP4_BRANDS:
        return 'mp4'
    if brand in MOV_BRANDS:
        return 'mov'
    return ''


def _zipFamily(buf: bytes) -> str:
    if buf[:4] != b'PK\x03\x04':
        return ''
    sample = buf[:ZIP_PATH_SAMPLE_SIZE].decode('ascii', errors='ignore')
    if 'word/' in sample:
        return 'docx'
    if 'xl/' in sample:
        return 'xlsx'
    if 'ppt/' in sample:
        return 'pptx'
    return 'zip'


def _textual(buf: bytes) -> str:
    head = buf.lstrip()[:1]
    if head == b'<' and buf.lstrip().startswith(b'<?xml'):
        return 'xml'
    if head in (b'{', b'['):
        stripped = buf.rstrip()
        if stripped[-1:] in (b'}', b']'):
            return 'json'
    return ''


# (label, predicate) in priority order
SIGNATURES: List[Tuple[str, Callable[[bytes], bool]]] = [
    ('jpg', lambda b: b[:3] == b'\xff\xd8\xff'),
    ('png', lambda b: b[:4] == b'\x89PNG'),
    ('gif', lambda b: b[:3] == b'GIF'),
    ('bmp', lambda b: b[:2] == b'BM'),
    ('webp', lambda b: b[:4] == b'RIFF' and b[8:12] == b'WEBP'),
    ('mp4', lambda b: _ftypBrand(b) == 'mp4'),
    ('mov', lambda b: _ftypBrand(b) == 'mov'),
    ('avi', lambda b: b[:4] == b'RIFF' and b[8:12] == b'AVI '),
    ('webm', lambda b: b[:4] == b'\x1a\x45\xdf\xa3'),
    ('pdf', lambda b: b[:4] == b'%PDF'),
]

EXTRA_SIGNATURES: List[Tuple[str, Callable[[bytes], bool]]] = [
    ('wav', lambda b: b[:4] == b'RIFF' and b[8:12] == b'WAVE'),
    ('mp3', lambda b: b[:3] == b'ID3' or (b[0] == 0xFF and (b[1] & 0xE0) == 0xE0)),
    ('flac', lambda b: b[:4] == b'fLaC'),
    ('flv', lambda b: b[:3] == b'FLV'),
]


def printableRatio(buf: bytes, sampleSize: int = TEXT_SAMPLE_SIZE) -> float:
    sample = buf[:sampleSize]
    if not sample:
        return 0.0
    return sum(1 for b in sample if isPrintableByte(b)) / len(sample)


def detectFileType(buf: bytes) -> str:
    """Short label for a blob: jpg, png, ..., txt, or bin"""
    if len(buf) < 4:
        return 'bin'

    for label, matches in SIGNATURES:
        if matches(buf):
            return label

    family = _zipFamily(buf)
    if family:
        return family

    for label, matches in EXTRA_SIGNATURES:
        if matches(buf):
            return label

    if printableRatio(buf) > TEXT_PRINTABLE_RATIO:
        return _textual(buf) or 'txt'
    return 'bin'


def mimeTypeFor(fileType: str) -> str:
    return MIME_TYPES.get(fileType, MIME_TYPES['bin'])
