"""
Ledger query capability.

LedgerClient is the abstract interface every reader depends on; any ledger
exposing equivalent calls can back it. JsonRpcLedgerClient implements it over
JSON-RPC 2.0 with aiohttp.

Retry policy (retryAsync): fixed attempt count, fixed delay, no backoff
growth, no jitter. Failures here are timeouts on a non-adversarial endpoint.
"""

import asyncio
import base64
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Optional, TypeVar

import aiohttp
import orjson

from ..logging import getLogger
from .errors import LedgerRpcError

T = TypeVar('T')


@dataclass
class SignatureInfo:
    """One entry of getSignaturesForAddress"""
    signature: str
    slot: Optional[int] = None
    blockTime: Optional[int] = None
    err: Any = None
    memo: Optional[str] = None

    @classmethod
    def fromDict(cls, data: dict) -> 'SignatureInfo':
        return cls(
            signature=data['signature'],
            slot=data.get('slot'),
            blockTime=data.get('blockTime'),
            err=data.get('err'),
            memo=data.get('memo')
        )


class LedgerClient(ABC):
    """Abstract ledger query capability"""

    @abstractmethod
    async def getAccountInfo(self, address: str) -> Optional[bytes]:
        """Raw account data, or None if the account does not exist"""

    @abstractmethod
    async def getSignaturesForAddress(self, address: str, limit: int,
                                      before: Optional[str] = None) -> List[SignatureInfo]:
        """Signatures touching address, newest first, older than `before`"""

    @abstractmethod
    async def getTransaction(self, signature: str) -> Optional[dict]:
        """Transaction body, or None when the ledger no longer has it"""

    async def close(self):
        pass


async def retryAsync(factory: Callable[[], Awaitable[T]], attempts: int, delaySeconds: float,
                     description: str = "request") -> T:
    """
    Await factory() up to `attempts` times with a fixed delay in between.

    Raises:
        The last exception once attempts are exhausted
    """
    log = getLogger()
    attempts = max(1, attempts)
    for attempt in range(1, attempts + 1):
        try:
            return await factory()
        except (aiohttp.ClientError, asyncio.TimeoutError, LedgerRpcError) as e:
            if attempt == attempts:
                raise
            log.warning(f"[RPC] {description} failed, retrying", attempt=attempt, attempts=attempts, error=str(e))
            await asyncio.sleep(delaySeconds)


class JsonRpcLedgerClient(LedgerClient):
    """
    aiohttp JSON-RPC client.

    Usage:
        async with JsonRpcLedgerClient(endpoint) as client:
            data = await client.getAccountInfo(address)
    """

    def __init__(self, endpoint: str, commitment: str = "confirmed", timeoutSeconds: float = 30.0,
                 retryAttempts: int = 3, retryDelaySeconds: float = 1.0,
                 session: Optional[aiohttp.ClientSession] = None):
        self.endpoint = endpoint
        self.commitment = commitment
        self.timeout = aiohttp.ClientTimeout(total=timeoutSeconds)
        self.retryAttempts = retryAttempts
        self.retryDelaySeconds = retryDelaySeconds
        self._session = session
        self._ownsSession = session is None
        self._requestId = 0
        self.log = getLogger()

    async def __aenter__(self) -> 'JsonRpcLedgerClient':
        return self

    async def __aexit__(self, excType, exc, tb):
        await self.close()

    def _getSession(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
            self._ownsSession = True
        return self._session

    async def close(self):
        if self._ownsSession and self._session is not None and not self._session.closed:
            await self._session.close()

    async def call(self, method: str, params: list) -> Any:
        """
        One JSON-RPC call.

        Raises:
            LedgerRpcError: HTTP error status, error object, or non-JSON body
        """
        self._requestId += 1
        body = orjson.dumps({'jsonrpc': '2.0', 'id': self._requestId, 'method': method, 'params': params})
        session = self._getSession()
        async with session.post(self.endpoint, data=body, headers={'Content-Type': 'application/json'}) as resp:
            raw = await resp.read()
            if resp.status != 200:
                raise LedgerRpcError(f"{method}: HTTP {resp.status}", code=resp.status)
        try:
            payload = orjson.loads(raw)
        except orjson.JSONDecodeError as e:
            raise LedgerRpcError(f"{method}: invalid JSON response") from e

        error = payload.get('error')
        if error:
            self.log.debug("[RPC] Error response", method=method, error=str(error))
            raise LedgerRpcError(f"{method}: {error.get('message', error)}", code=error.get('code'))
        return payload.get('result')

    async def getAccountInfo(self, address: str) -> Optional[bytes]:
        params = [str(address), {'encoding': 'base64', 'commitment': self.commitment}]
        result = await retryAsync(lambda: self.call('getAccountInfo', params),
                                  self.retryAttempts, self.retryDelaySeconds, "getAccountInfo")
        value = (result or {}).get('value')
        if not value:
            return None
        data = value.get('data')
        if isinstance(data, list) and data:
            return base64.b64decode(data[0])
        return b''

    async def getSignaturesForAddress(self, address: str, limit: int,
                                      before: Optional[str] = None) -> List[SignatureInfo]:
        options = {'limit': limit, 'commitment': self.commitment}
        if before:
            options['before'] = before
        result = await self.call('getSignaturesForAddress', [str(address), options])
        return [SignatureInfo.fromDict(item) for item in result or []]

    async def getTransaction(self, signature: str) -> Optional[dict]:
        options = {'encoding': 'json', 'maxSupportedTransactionVersion': 0, 'commitment': self.commitment}
        return await self.call('getTransaction', [signature, options])


async def fetchJson(url: str, timeoutSeconds: float = 30.0, retryAttempts: int = 3,
                    retryDelaySeconds: float = 1.0) -> Any:
    """GET a JSON document (IDL) with the fixed retry"""
    async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=timeoutSeconds)) as session:
        async def fetch():
            async with session.get(url) as resp:
                if resp.status != 200:
                    raise LedgerRpcError(f"GET {url}: HTTP {resp.status}", code=resp.status)
                return orjson.loads(await resp.read())
        return await retryAsync(fetch, retryAttempts, retryDelaySeconds, f"GET {url}")
