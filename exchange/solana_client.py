"""Solana RPC client wrapper running every call through endpoint rotation."""
from typing import Any, Dict, Optional
import base64
from solana.rpc.models import TokenAccountOpts
from solders.hash import Hash
from solders.message import MessageV0
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import VersionedTransaction
from spl.token.constants import TOKEN_PROGRAM_ID
from spl.token.instructions import close_account
from spl.token.models import CloseAccountParams
from loguru import logger

from exchange.errors import BroadcastError, ConfigurationError
from exchange.rpc_rotation import EndpointRotator, RetryPredicate
from models.schemas import NATIVE_KEY, BalanceEntry, Balances
from utils.wallet import format_lamports, pubkey_from_string


def _require_pubkey(address: str, field: str) -> Pubkey:
    pubkey = pubkey_from_string(address)
    if pubkey is None:
        raise ValueError(f"Invalid {field} address: {address}")
    return pubkey


def _parsed_info(account: Any) -> Dict[str, Any]:
    """Extract the `parsed.info` dict from a jsonParsed token account."""
    data = account.data
    parsed = getattr(data, "parsed", None)
    if parsed is None and isinstance(data, dict):
        parsed = data.get("parsed")
    return (parsed or {}).get("info", {})


class SolanaClient:
    """Balance reads, raw broadcasts and close-account transactions."""

    def __init__(self, rotator: EndpointRotator, should_retry: Optional[RetryPredicate] = None):
        self.rotator = rotator
        self.should_retry = should_retry

    async def close(self):
        """Close all RPC connections."""
        await self.rotator.close()

    async def read_balances(self, owner: str) -> Balances:
        """
        Read native SOL and every SPL token account balance for a wallet.

        Both reads go through one endpoint. Zero-balance token accounts are
        kept so they can be closed for rent.

        Args:
            owner: Wallet address (base58)

        Returns:
            Mapping of mint (or "SOL") to BalanceEntry
        """
        owner_pubkey = _require_pubkey(owner, "owner")

        async def _read(conn) -> Balances:
            lamports_resp = await conn.get_balance(owner_pubkey)
            lamports = lamports_resp.value or 0

            accounts_resp = await conn.get_token_accounts_by_owner_json_parsed(
                owner_pubkey,
                TokenAccountOpts(program_id=TOKEN_PROGRAM_ID),
            )

            balances: Balances = {
                NATIVE_KEY: BalanceEntry(amount=format_lamports(lamports), raw_amount=str(lamports)),
            }
            for keyed in accounts_resp.value or []:
                info = _parsed_info(keyed.account)
                mint = info.get("mint")
                if not mint:
                    continue
                token_amount = info.get("tokenAmount", {})
                balances[mint] = BalanceEntry(
                    amount=token_amount.get("uiAmount") or 0,
                    raw_amount=str(token_amount.get("amount", "0")),
                    token_account=str(keyed.pubkey),
                )
            return balances

        balances = await self.rotator.run_with_failover(_read, self.should_retry)
        logger.debug("Read {} balances for {}", len(balances), owner)
        return balances

    async def get_latest_blockhash(self) -> Hash:
        async def _blockhash(conn) -> Hash:
            resp = await conn.get_latest_blockhash()
            return resp.value.blockhash

        return await self.rotator.run_with_failover(_blockhash, self.should_retry)

    async def build_close_account_transaction(self, owner: str, token_account: str) -> str:
        """
        Build an unsigned transaction closing an empty token account.

        Rent goes back to the owner, who is also payer and close authority.

        Returns:
            Base64-encoded unsigned VersionedTransaction
        """
        owner_pubkey = _require_pubkey(owner, "owner")
        account_pubkey = _require_pubkey(token_account, "token account")

        instruction = close_account(
            CloseAccountParams(
                program_id=TOKEN_PROGRAM_ID,
                account=account_pubkey,
                dest=owner_pubkey,
                owner=owner_pubkey,
                signers=[],
            )
        )
        blockhash = await self.get_latest_blockhash()
        message = MessageV0.try_compile(owner_pubkey, [instruction], [], blockhash)
        transaction = VersionedTransaction.populate(
            message,
            [Signature.default()] * message.header.num_required_signatures,
        )

        logger.info("Created close account transaction for token account {}", token_account)
        return base64.b64encode(bytes(transaction)).decode("ascii")

    async def broadcast_signed_transaction(self, signed_transaction: str) -> str:
        """
        Send a signed transaction straight to a node.

        Args:
            signed_transaction: Base64-encoded signed transaction

        Returns:
            Transaction signature
        """
        try:
            raw = base64.b64decode(signed_transaction, validate=True)
        except ValueError as e:
            raise ValueError(f"signedTransaction is not valid base64: {e}") from e

        async def _send(conn) -> str:
            resp = await conn.send_raw_transaction(raw)
            return str(resp.value)

        try:
            signature = await self.rotator.run_with_failover(_send, self.should_retry)
        except ConfigurationError:
            raise
        except Exception as e:
            raise BroadcastError(str(e) or repr(e)) from e

        logger.info("Transaction sent: {}", signature)
        return signature
