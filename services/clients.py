"""Builds the network clients from configuration."""
from typing import Any, Dict, Tuple
from loguru import logger
from solana.rpc.commitment import Commitment

from exchange.jupiter_client import DEFAULT_API_URL, DEFAULT_TOKENS_URL, JupiterClient
from exchange.rpc_rotation import DEFAULT_FAILOVER_DELAY, RETRY_POLICIES, EndpointRotator
from exchange.solana_client import SolanaClient


def build_clients(config: Dict[str, Any]) -> Tuple[SolanaClient, JupiterClient]:
    """Create the Solana (with its own endpoint rotator) and Jupiter clients."""
    solana_config = config.get("solana", {})
    urls = solana_config.get("rpc_urls") or []
    if not urls:
        logger.warning("No Solana RPC endpoints configured; node calls will fail")

    policy = solana_config.get("retry_policy", "all")
    if policy not in RETRY_POLICIES:
        raise ValueError(f"Unknown retry_policy '{policy}', expected one of {sorted(RETRY_POLICIES)}")

    rotator = EndpointRotator(
        urls,
        commitment=Commitment(solana_config.get("commitment", "confirmed")),
        delay=float(solana_config.get("failover_delay", DEFAULT_FAILOVER_DELAY)),
    )
    solana = SolanaClient(rotator, should_retry=RETRY_POLICIES[policy])
    logger.info("Solana RPC client initialized with {} endpoints", len(rotator))

    jupiter_config = config.get("jupiter", {})
    jupiter = JupiterClient(
        api_url=jupiter_config.get("api_url") or DEFAULT_API_URL,
        tokens_url=jupiter_config.get("tokens_url") or DEFAULT_TOKENS_URL,
        api_key=jupiter_config.get("api_key") or None,
    )
    logger.info("Jupiter client initialized")

    return solana, jupiter
