"""
Ledger scanner.

Pages signatures backward from the ledger tip with a `before` cursor, then
fetches transaction bodies in fixed-size groups: concurrent within a group,
sequential between groups. That bounds load on the endpoint without a
semaphore.

A missing body or a failed fetch counts as "no events" for that signature.
One asyncio.Event per top-level scan cancels everything: pagination stops,
outstanding fetches of the current group are cancelled, and bodies fetched
so far are returned.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Iterable, List, Optional, Tuple

from ..logging import getLogger
from .contract import FETCH_BATCH_SIZE, SIGNATURE_PAGE_LIMIT
from .rpc import LedgerClient, SignatureInfo

_CANCELLED = object()


def isCancelled(cancelEvent: Optional[asyncio.Event]) -> bool:
    return cancelEvent is not None and cancelEvent.is_set()


async def awaitCancellable(awaitable: Awaitable, cancelEvent: Optional[asyncio.Event]):
    """Await unless cancelEvent fires first; returns _CANCELLED in that case"""
    if cancelEvent is None:
        return await awaitable
    task = asyncio.ensure_future(awaitable)
    waiter = asyncio.ensure_future(cancelEvent.wait())
    try:
        await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        waiter.cancel()
    if task.done():
        return task.result()
    task.cancel()
    await asyncio.gather(task, return_exceptions=True)
    return _CANCELLED


@dataclass
class ScanResult:
    """Transactions touching one or more addresses, newest first"""
    transactions: List[Tuple[str, dict]] = field(default_factory=list)
    signaturesScanned: int = 0
    missingBodies: int = 0
    cancelled: bool = False


class LedgerScanner:
    """Signature pagination + grouped transaction fetching"""

    def __init__(self, client: LedgerClient, batchSize: int = FETCH_BATCH_SIZE,
                 pageLimit: int = SIGNATURE_PAGE_LIMIT):
        self.client = client
        self.batchSize = max(1, batchSize)
        self.pageLimit = max(1, pageLimit)
        self.log = getLogger()

    async def scanSignatures(self, address: str, maxCount: int,
                             cancelEvent: Optional[asyncio.Event] = None) -> List[SignatureInfo]:
        """
        Page signatures for address, newest first.

        Stops at maxCount, an empty or short page, or cancellation.
        """
        out: List[SignatureInfo] = []
        before = None
        while len(out) < maxCount and not isCancelled(cancelEvent):
            limit = min(self.pageLimit, maxCount - len(out))
            page = await awaitCancellable(
                self.client.getSignaturesForAddress(str(address), limit, before), cancelEvent)
            if page is _CANCELLED or not page:
                break
            out.extend(page)
            before = page[-1].signature
            if len(page) < limit:
                break

        self.log.debug("[Scanner] Signatures paged", address=str(address), count=len(out))
        return out[:maxCount]

    async def scanSignaturesMany(self, addresses: Iterable[str], maxCount: int,
                                 cancelEvent: Optional[asyncio.Event] = None) -> List[SignatureInfo]:
        """Merge several addresses' signatures: dedupe, blockTime descending, truncate"""
        lists = await asyncio.gather(*(self.scanSignatures(a, maxCount, cancelEvent) for a in addresses))
        bySignature = {}
        for infos in lists:
            for info in infos:
                bySignature.setdefault(info.signature, info)
        merged = sorted(bySignature.values(), key=lambda i: i.blockTime or 0, reverse=True)
        return merged[:maxCount]

    async def _fetchOne(self, signature: str) -> Optional[dict]:
        try:
            return await self.client.getTransaction(signature)
        except Exception as e:  # one bad body never aborts the scan
            self.log.warning("[Scanner] Transaction fetch failed", signature=signature, error=str(e))
            return None

    async def fetchTransactions(self, signatures: List[str],
                                cancelEvent: Optional[asyncio.Event] = None) -> List[Tuple[str, Optional[dict]]]:
        """
        Fetch bodies in groups of batchSize.

        Returns (signature, body-or-None) for every fetch that completed, in
        input order. Cancelled fetches are left out.
        """
        results: List[Tuple[str, Optional[dict]]] = []
        for start in range(0, len(signatures), self.batchSize):
            if isCancelled(cancelEvent):
                break
            group = signatures[start:start + self.batchSize]
            tasks = [asyncio.ensure_future(self._fetchOne(sig)) for sig in group]
            outcome = await awaitCancellable(asyncio.gather(*tasks, return_exceptions=True), cancelEvent)

            if outcome is _CANCELLED:
                for task in tasks:
                    if not task.done():
                        task.cancel()
                await asyncio.gather(*tasks, return_exceptions=True)

            for sig, task in zip(group, tasks):
                if task.done() and not task.cancelled() and task.exception() is None:
                    results.append((sig, task.result()))
        return results

    async def scan(self, address: str, maxCount: int,
                   cancelEvent: Optional[asyncio.Event] = None) -> ScanResult:
        signatures = await self.scanSignatures(address, maxCount, cancelEvent)
        return await self._collect(signatures, cancelEvent)

    async def scanMany(self, addresses: Iterable[str], maxCount: int,
                       cancelEvent: Optional[asyncio.Event] = None) -> ScanResult:
        signatures = await self.scanSignaturesMany(addresses, maxCount, cancelEvent)
        return await self._collect(signatures, cancelEvent)

    async def _collect(self, signatures: List[SignatureInfo],
                       cancelEvent: Optional[asyncio.Event]) -> ScanResult:
        fetched = await self.fetchTransactions([s.signature for s in signatures], cancelEvent)
        result = ScanResult(signaturesScanned=len(signatures), cancelled=isCancelled(cancelEvent))
        for sig, body in fetched:
            # a body that is not a json object carries no events
            if not isinstance(body, dict):
                result.missingBodies += 1
            else:
                result.transactions.append((sig, body))

        self.log.info("[Scanner] Scan complete", signatures=result.signaturesScanned,
                      transactions=len(result.transactions), missing=result.missingBodies,
                      cancelled=result.cancelled)
        return result
