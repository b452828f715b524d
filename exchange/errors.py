"""Error types shared by the RPC, Jupiter and batch layers."""
import json
from typing import Optional


GENERIC_ERROR_MESSAGE = "Something went wrong, please try again."


class SweeperError(Exception):
    """Base class for all sweeper errors."""


class ConfigurationError(SweeperError):
    """No RPC endpoints are configured."""


class AllEndpointsFailed(SweeperError):
    """Every endpoint in the pool was tried without success."""


class TransportError(SweeperError):
    """Network or timeout failure; the request never reached the service."""


class ProviderError(SweeperError):
    """Well-formed error response from the quoting or execution service."""

    def __init__(self, message: str, code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.code = code


class QuoteError(ProviderError):
    """Order creation was refused (e.g. no route found)."""


class ExecutionError(ProviderError):
    """Execution endpoint reported a failed swap."""


class BroadcastError(SweeperError):
    """A node rejected a raw signed transaction."""


class WalletCapabilityError(SweeperError):
    """The signer cannot sign a batch of transactions in one prompt."""


UnsupportedWalletCapability = WalletCapabilityError


class ReconciliationAmbiguity(SweeperError):
    """Execution request failed after it was sent; outcome is unknown."""


def _message_from_body(text: str) -> Optional[str]:
    try:
        data = json.loads(text)
    except (TypeError, ValueError):
        return None
    if isinstance(data, dict):
        for key in ("error", "message", "detail"):
            value = data.get(key)
            if isinstance(value, str) and value:
                return value
    return None


def user_message(exc: BaseException) -> str:
    """
    Build a plain-text message for an error.

    Provider bodies are usually JSON such as {"error": "No route found"};
    the inner text is preferred when present.
    """
    text = exc.message if isinstance(exc, ProviderError) else str(exc)
    if not text:
        return GENERIC_ERROR_MESSAGE
    return _message_from_body(text) or text
