"""
Scan context for log records.

Every top-level read (rows, table meta, session reconstruction) sets the RPC
endpoint, target address and a short request id once; the filter stamps them
onto each record emitted while that read runs, including records from
concurrently fetched transaction bodies in the same asyncio task tree.
"""

import logging
import uuid
from typing import Optional
from contextvars import ContextVar

_endpoint: ContextVar[Optional[str]] = ContextVar('endpoint', default=None)
_address: ContextVar[Optional[str]] = ContextVar('address', default=None)
_requestId: ContextVar[Optional[str]] = ContextVar('request_id', default=None)


class ScanContextFilter(logging.Filter):
    """Adds endpoint/address/requestId to records when a scan context is set"""

    def filter(self, record):
        endpoint = _endpoint.get()
        address = _address.get()
        requestId = _requestId.get()

        if endpoint and not hasattr(record, 'endpoint'):
            record.endpoint = endpoint
        if address and not hasattr(record, 'address'):
            record.address = address
        if requestId:
            record.requestId = requestId

        return True


def setScanContext(endpoint: str, address: Optional[str] = None, requestId: Optional[str] = None) -> str:
    """
    Set the scan context for the current task.

    Returns:
        The request id in effect (generated when not supplied)
    """
    requestId = requestId or uuid.uuid4().hex[:8]
    _endpoint.set(endpoint)
    _address.set(address)
    _requestId.set(requestId)
    return requestId


def getScanContext() -> dict:
    return {
        'endpoint': _endpoint.get(),
        'address': _address.get(),
        'requestId': _requestId.get()
    }


def clearScanContext():
    _endpoint.set(None)
    _address.set(None)
    _requestId.set(None)
