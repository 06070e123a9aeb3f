"""
ledgerdb.logging - hierarchical logger with automatic name detection.

API:
    from ledgerdb.logging import getLogger

    class ChunkAssembler:
        def __init__(self):
            self.log = getLogger()  # Auto: 'ledgerdb.core.chunkAssembler.ChunkAssembler'

        def add(self, index, data):
            self.log.debug("Chunk", chunkIndex=index, size=len(data))

    # Global configuration (optional, once at startup)
    from ledgerdb.logging import configureLogging
    configureLogging(logDir='./logs', level='DEBUG')
"""

from .logger import getLogger, configureLogging
from .context import (
    setScanContext,
    getScanContext,
    clearScanContext,
    ScanContextFilter
)

__all__ = [
    'getLogger',
    'configureLogging',
    'setScanContext',
    'getScanContext',
    'clearScanContext',
    'ScanContextFilter'
]
