"""Solana RPC endpoint rotation with failover."""
import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar
import httpx
from loguru import logger
from solana.exceptions import SolanaRpcException
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Commitment, Confirmed

from exchange.errors import AllEndpointsFailed, ConfigurationError

T = TypeVar("T")

DEFAULT_FAILOVER_DELAY = 0.5

RetryPredicate = Callable[[BaseException], bool]


def retry_all(exc: BaseException) -> bool:
    """Treat every error as an endpoint failure."""
    return True


def transport_only(exc: BaseException) -> bool:
    """Retry only network-level failures; node rejections surface at once."""
    return isinstance(
        exc,
        (httpx.TransportError, SolanaRpcException, asyncio.TimeoutError, OSError),
    )


RETRY_POLICIES: Dict[str, RetryPredicate] = {
    "all": retry_all,
    "transport": transport_only,
}


def parse_rpc_urls(value: Any) -> List[str]:
    """Parse a comma-separated URL string (or list) into a clean list."""
    if not value:
        return []
    if isinstance(value, str):
        items = value.split(",")
    else:
        items = list(value)
    return [str(item).strip() for item in items if item and str(item).strip()]


class EndpointRotator:
    """Ordered pool of RPC URLs with a cursor that advances on failure."""

    def __init__(
        self,
        urls: List[str],
        commitment: Commitment = Confirmed,
        delay: float = DEFAULT_FAILOVER_DELAY,
        connect: Optional[Callable[[str], Any]] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.urls = tuple(urls)
        self.index = 0
        self.delay = delay
        self.commitment = commitment
        self._connect = connect or self._default_connect
        self._sleep = sleep
        self._connections: Dict[str, Any] = {}

    def __len__(self) -> int:
        return len(self.urls)

    def _default_connect(self, url: str) -> AsyncClient:
        return AsyncClient(url, commitment=self.commitment)

    def current_endpoint(self) -> str:
        if not self.urls:
            raise ConfigurationError("No Solana RPC endpoints configured (SOLANA_RPC_URLS)")
        return self.urls[self.index % len(self.urls)]

    def advance(self) -> str:
        """Move the cursor to the next endpoint and return it."""
        if not self.urls:
            raise ConfigurationError("No Solana RPC endpoints configured (SOLANA_RPC_URLS)")
        self.index = (self.index + 1) % len(self.urls)
        return self.urls[self.index]

    def connection(self, url: str) -> Any:
        """Return the cached connection for a URL, creating it on first use."""
        conn = self._connections.get(url)
        if conn is None:
            conn = self._connect(url)
            self._connections[url] = conn
        return conn

    async def run_with_failover(
        self,
        operation: Callable[[Any], Awaitable[T]],
        should_retry: Optional[RetryPredicate] = None,
    ) -> T:
        """
        Run an RPC operation, rotating through endpoints on failure.

        Each endpoint is tried at most once, in cursor order. On success the
        cursor stays on the endpoint that answered. Between attempts there is
        a fixed delay; the last failure is re-raised without waiting.

        Args:
            operation: Coroutine function receiving a connection
            should_retry: Predicate deciding whether an error rotates to the
                next endpoint (default: every error does)

        Returns:
            Whatever the operation returns
        """
        total = len(self.urls)
        if total == 0:
            raise ConfigurationError("No Solana RPC endpoints configured (SOLANA_RPC_URLS)")

        should_retry = should_retry or retry_all

        for attempt in range(total):
            url = self.current_endpoint()
            try:
                return await operation(self.connection(url))
            except Exception as exc:
                if not should_retry(exc):
                    logger.warning("RPC call failed on {} with non-retryable error: {}", url, exc)
                    raise

                logger.warning(
                    "RPC call failed on {}. Switching to next RPC. Error: {} (RPC {}/{})",
                    url,
                    exc,
                    attempt + 1,
                    total,
                )
                self.advance()

                if attempt == total - 1:
                    raise
                await self._sleep(self.delay)

        raise AllEndpointsFailed("All RPC endpoints failed after multiple retries.")

    async def close(self) -> None:
        """Close every connection opened so far."""
        for url, conn in list(self._connections.items()):
            close = getattr(conn, "close", None)
            if close is None:
                continue
            try:
                await close()
            except Exception as exc:
                logger.warning("Failed to close RPC connection {}: {}", url, exc)
        self._connections.clear()
