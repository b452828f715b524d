"""Token display metadata, refreshed whenever balances change."""
import asyncio
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Tuple
from loguru import logger

from exchange.jupiter_client import JupiterClient
from models.schemas import NATIVE_KEY, TokenMeta
from utils.wallet import short_mint


WSOL_MINT = "So11111111111111111111111111111111111111112"
SOL_LOGO = "https://statics.solscan.io/solscan-img/solana_icon.svg"
NATIVE_META = TokenMeta(symbol="SOL", logo_uri=SOL_LOGO, decimals=9)


class TokenMetadataService:
    """
    Caches verified token metadata keyed by mint.

    Only one refresh is live at a time: starting a new one cancels the
    previous task, and a superseded refresh never writes to the cache.
    """

    def __init__(
        self,
        jupiter: JupiterClient,
        delay: float = 0.1,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.jupiter = jupiter
        self.delay = delay
        self._sleep = sleep
        self.tokens: Dict[str, TokenMeta] = {}
        self._generation = 0
        self._task: Optional[asyncio.Task] = None

    def name_of(self, mint: str) -> str:
        meta = self.tokens.get(mint)
        if meta:
            return meta.symbol
        if mint in (NATIVE_KEY, WSOL_MINT):
            return "SOL"
        return short_mint(mint)

    def refresh(self, mints: Iterable[str]) -> asyncio.Task:
        """Start loading metadata for mints, superseding any running refresh."""
        self._generation += 1
        if self._task and not self._task.done():
            self._task.cancel()
        self._task = asyncio.create_task(self._load(self._generation, list(mints)))
        return self._task

    def clear(self) -> None:
        """Forget cached metadata and stop any running refresh."""
        self._generation += 1
        if self._task and not self._task.done():
            self._task.cancel()
        self.tokens = {}

    async def close(self) -> None:
        task = self._task
        self.clear()
        if task:
            try:
                await task
            except asyncio.CancelledError:
                pass

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation

    @staticmethod
    def _verified(mint: str, data: Any) -> Optional[TokenMeta]:
        if not isinstance(data, dict):
            return None

        tags = data.get("tags")
        if not isinstance(tags, list) or "verified" not in tags:
            return None

        return TokenMeta(
            symbol=data.get("symbol") or short_mint(mint),
            logo_uri=data.get("logoURI"),
            decimals=data.get("decimals"),
            price=data.get("price"),
        )

    async def _load(self, generation: int, mints: List[str]) -> None:
        found: List[Tuple[str, TokenMeta]] = []

        for mint in mints:
            if not self._is_current(generation):
                return

            if mint in (NATIVE_KEY, WSOL_MINT):
                found.append((mint, NATIVE_META))
                continue

            # Stay under the token API rate limit
            await self._sleep(self.delay)
            try:
                meta = self._verified(mint, await self.jupiter.get_token_metadata(mint))
            except Exception as e:
                logger.warning("Skipping metadata for {}: {}", mint, e)
                continue
            if meta:
                found.append((mint, meta))

        if not self._is_current(generation):
            logger.debug("Discarding superseded token metadata refresh")
            return

        self.tokens = {**self.tokens, **dict(found)}
        logger.debug("Loaded metadata for {} tokens", len(found))
