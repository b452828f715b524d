"""
Shared fixtures.

Every test runs without network access: node connections and Jupiter
calls are replaced with in-memory fakes.
"""
import base64
from typing import Dict, List, Optional

import pytest
from solders.hash import Hash
from solders.keypair import Keypair
from solders.message import MessageV0
from solders.signature import Signature
from solders.system_program import transfer, TransferParams
from solders.transaction import VersionedTransaction

from exchange.errors import BroadcastError, QuoteError
from models.schemas import NATIVE_KEY, BalanceEntry, OrderResponse
from services.batch_orchestrator import BatchOrchestrator
from services.token_metadata import TokenMetadataService
from utils.wallet import KeypairSigner


TARGET_MINT = "JUPyiwrYJFskUPiHa7hkeR8VUtAeFoSYbKedZNsDvCN"


def make_unsigned_tx(payer: Keypair, lamports: int = 1) -> str:
    """Base64 unsigned v0 transfer paid by `payer`."""
    ix = transfer(TransferParams(from_pubkey=payer.pubkey(), to_pubkey=Keypair().pubkey(), lamports=lamports))
    message = MessageV0.try_compile(payer.pubkey(), [ix], [], Hash.default())
    tx = VersionedTransaction.populate(message, [Signature.default()])
    return base64.b64encode(bytes(tx)).decode("ascii")


def message_key(signed_transaction: str) -> bytes:
    return bytes(VersionedTransaction.from_bytes(base64.b64decode(signed_transaction)).message)


async def no_sleep(_delay: float) -> None:
    return None


class FakeSolana:
    """In-memory stand-in for SolanaClient."""

    def __init__(self, payer: Keypair, balances: Dict[str, BalanceEntry]):
        self.payer = payer
        self.balances = balances
        self.read_calls = 0
        self.close_requests: List[str] = []
        self.broadcasts: List[str] = []
        self.fail_close: set = set()
        self.fail_broadcast: set = set()
        self._built: Dict[bytes, str] = {}

    async def read_balances(self, owner: str):
        self.read_calls += 1
        return dict(self.balances)

    async def build_close_account_transaction(self, owner: str, token_account: str) -> str:
        self.close_requests.append(token_account)
        if token_account in self.fail_close:
            raise RuntimeError(f"blockhash unavailable for {token_account}")
        transaction = make_unsigned_tx(self.payer, lamports=len(self.close_requests))
        self._built[message_key(transaction)] = token_account
        return transaction

    async def broadcast_signed_transaction(self, signed_transaction: str) -> str:
        token_account = self._built[message_key(signed_transaction)]
        self.broadcasts.append(token_account)
        if token_account in self.fail_broadcast:
            raise BroadcastError("Blockhash not found")
        return f"close-sig-{token_account}"


class FakeJupiter:
    """In-memory stand-in for JupiterClient."""

    def __init__(self, payer: Keypair):
        self.payer = payer
        self.orders: List[dict] = []
        self.executions: List[str] = []
        self.fail_quote: set = set()
        self.execute_errors: Dict[str, Exception] = {}
        self.metadata: Dict[str, dict] = {}

    async def create_order(self, taker, input_mint, output_mint, amount) -> OrderResponse:
        self.orders.append({
            "taker": taker,
            "inputMint": input_mint,
            "outputMint": output_mint,
            "amount": amount,
        })
        if input_mint in self.fail_quote:
            raise QuoteError('{"error":"No routes found"}', code=400)
        return OrderResponse(transaction=make_unsigned_tx(self.payer), request_id=f"req-{input_mint}")

    async def execute_order(self, signed_transaction: str, request_id: str) -> str:
        self.executions.append(request_id)
        VersionedTransaction.from_bytes(base64.b64decode(signed_transaction))
        error = self.execute_errors.get(request_id)
        if error:
            raise error
        return f"sig-{request_id}"

    async def get_token_metadata(self, mint: str) -> Optional[dict]:
        return self.metadata.get(mint)


class NoBatchSigner:
    """Wallet that can only sign one transaction at a time."""

    async def sign_transaction(self, transaction):
        return transaction


class RejectingSigner:
    def __init__(self):
        self.calls = 0

    async def sign_all_transactions(self, transactions):
        self.calls += 1
        raise RuntimeError("User rejected the request.")


class CountingSigner(KeypairSigner):
    def __init__(self, keypair: Keypair):
        super().__init__(keypair)
        self.calls: List[int] = []

    async def sign_all_transactions(self, transactions):
        self.calls.append(len(transactions))
        return await super().sign_all_transactions(transactions)


def entry(raw: str, ui: float = 0.0, account: Optional[str] = None) -> BalanceEntry:
    return BalanceEntry(amount=ui, raw_amount=raw, token_account=account)


@pytest.fixture
def payer() -> Keypair:
    return Keypair()


@pytest.fixture
def owner(payer) -> str:
    return str(payer.pubkey())


@pytest.fixture
def signer(payer) -> CountingSigner:
    return CountingSigner(payer)


@pytest.fixture
def make_orchestrator(payer):
    """Build an orchestrator over fake clients for a given balance map."""

    def _make(balances: Dict[str, BalanceEntry]):
        balances = {NATIVE_KEY: entry("2000000000", 2.0), **balances}
        solana = FakeSolana(payer, balances)
        jupiter = FakeJupiter(payer)
        metadata = TokenMetadataService(jupiter, delay=0, sleep=no_sleep)
        orchestrator = BatchOrchestrator(solana, jupiter, metadata, target_mint=TARGET_MINT)
        return orchestrator, solana, jupiter

    return _make
