"""Jupiter Ultra API client: orders, execution, balances and token metadata."""
from typing import Optional, Dict, Any
import httpx
from loguru import logger

from exchange.errors import ExecutionError, QuoteError, ReconciliationAmbiguity, TransportError
from models.schemas import OrderResponse


DEFAULT_API_URL = "https://lite-api.jup.ag/ultra/v1"
DEFAULT_TOKENS_URL = "https://lite-api.jup.ag/tokens/v1"

# Errors raised before any byte of the request left this process.
_NOT_SENT_ERRORS = (httpx.ConnectError, httpx.ConnectTimeout, httpx.UnsupportedProtocol)


def _response_text(response: httpx.Response) -> str:
    try:
        return response.text or response.reason_phrase
    except Exception:
        return response.reason_phrase


def _json_object(response: httpx.Response) -> Dict[str, Any]:
    """Decode a JSON object body; anything else raises ValueError."""
    data = response.json()
    if not isinstance(data, dict):
        raise ValueError(f"expected a JSON object, got {type(data).__name__}")
    return data


class JupiterClient:
    """Client for the Jupiter Ultra swap API."""

    def __init__(
        self,
        api_url: str = DEFAULT_API_URL,
        tokens_url: str = DEFAULT_TOKENS_URL,
        api_key: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_url = api_url.rstrip("/")
        self.tokens_url = tokens_url.rstrip("/")
        self.api_key = api_key

        # Set up headers with API key if provided
        headers = {}
        if api_key:
            headers["x-api-key"] = api_key

        self.client = httpx.AsyncClient(timeout=30.0, headers=headers, transport=transport)

    async def close(self):
        """Close the HTTP client."""
        await self.client.aclose()

    async def fetch_taker_balances(self, taker: str) -> Dict[str, Any]:
        """
        Fetch all balances Jupiter sees for a wallet.

        Args:
            taker: Wallet address

        Returns:
            Mapping of mint to {"amount": ...}
        """
        try:
            response = await self.client.get(f"{self.api_url}/balances/{taker}")
        except httpx.TransportError as e:
            raise TransportError(f"fetchBalances failed: {e}") from e

        if response.is_error:
            raise QuoteError(f"fetchBalances failed: {_response_text(response)}", code=response.status_code)
        try:
            return _json_object(response)
        except ValueError as e:
            raise QuoteError(f"fetchBalances returned an unreadable body: {e}") from e

    async def create_order(
        self,
        taker: str,
        input_mint: str,
        output_mint: str,
        amount: str,
    ) -> OrderResponse:
        """
        Create an unsigned swap order.

        Args:
            taker: Wallet address that will sign
            input_mint: Mint being sold
            output_mint: Mint being bought
            amount: Raw amount in base units, sent exactly as given

        Returns:
            OrderResponse with the unsigned transaction and its request id
        """
        params = {
            "inputMint": input_mint,
            "outputMint": output_mint,
            "amount": str(amount),
            "taker": taker,
        }
        try:
            response = await self.client.get(f"{self.api_url}/order", params=params)
        except httpx.TransportError as e:
            raise TransportError(f"createOrder failed: {e}") from e

        if response.is_error:
            body = _response_text(response)
            logger.warning("Jupiter order failed for {}: {}", input_mint[:8], body)
            raise QuoteError(body, code=response.status_code)

        try:
            data = _json_object(response)
        except ValueError as e:
            logger.warning("Jupiter order for {} returned an unreadable body: {}", input_mint[:8], e)
            raise QuoteError(f"Order response is not readable: {e}") from e

        if not data.get("transaction") or not data.get("requestId"):
            raise QuoteError(data.get("error") or "Order response has no transaction")

        logger.info("Jupiter order: {} {} -> {}", amount, input_mint[:8], output_mint[:8])
        return OrderResponse(transaction=data["transaction"], request_id=data["requestId"])

    async def execute_order(self, signed_transaction: str, request_id: str) -> str:
        """
        Execute a signed order.

        Never retried: once the request is on the wire the order may
        already be consumed.

        Args:
            signed_transaction: Base64-encoded signed transaction
            request_id: Request id returned with the order

        Returns:
            On-chain transaction signature
        """
        payload = {"signedTransaction": signed_transaction, "requestId": request_id}
        try:
            response = await self.client.post(f"{self.api_url}/execute", json=payload)
        except _NOT_SENT_ERRORS as e:
            raise TransportError(f"executeOrder could not connect: {e}") from e
        except httpx.TransportError as e:
            logger.error("Execute request {} failed after sending, outcome unknown: {}", request_id, e)
            raise ReconciliationAmbiguity(f"Swap outcome unknown: {e}") from e

        if response.is_error:
            raise ExecutionError(_response_text(response), code=response.status_code)

        try:
            data = _json_object(response)
        except ValueError as e:
            # The order was accepted for execution; a garbled reply says nothing about the result
            logger.error("Execute request {} returned an unreadable body, outcome unknown: {}", request_id, e)
            raise ReconciliationAmbiguity(f"Swap outcome unknown: {e}") from e

        if data.get("status") != "Success" or not data.get("signature"):
            code = data.get("code")
            message = data.get("error") or "Swap failed"
            raise ExecutionError(f"Swap failed: {code} {message}", code=code)

        logger.info("Jupiter execute {} landed: {}", request_id, data["signature"])
        return data["signature"]

    async def get_token_metadata(self, mint: str) -> Optional[Dict[str, Any]]:
        """
        Get token metadata (symbol, logo, decimals, tags).

        Returns:
            Metadata dictionary or None if failed
        """
        try:
            response = await self.client.get(
                f"{self.tokens_url}/token/{mint}",
                headers={"accept": "application/json"},
            )
            response.raise_for_status()
            return _json_object(response)

        except httpx.HTTPStatusError as e:
            logger.error("Meta fetch failed for {}: HTTP {}", mint, e.response.status_code)
            return None
        except httpx.HTTPError as e:
            logger.error("Error fetching metadata for mint {}: {}", mint, e)
            return None
        except ValueError as e:
            logger.error("Unreadable metadata for mint {}: {}", mint, e)
            return None
