"""Wallet utilities for Solana."""
import base64
from typing import List, Optional
import base58
from solders.keypair import Keypair
from solders.message import to_bytes_versioned
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import VersionedTransaction


LAMPORTS_DECIMALS = 9


def load_keypair_from_base58(private_key: str) -> Optional[Keypair]:
    """
    Load a Keypair from a base58-encoded private key string.

    Args:
        private_key: Base58-encoded private key (58-88 characters)

    Returns:
        Keypair object or None if invalid
    """
    try:
        decoded = base58.b58decode(private_key)
        # Solana private keys are 64 bytes (32 secret + 32 public)
        if len(decoded) == 64:
            return Keypair.from_bytes(decoded)
        # Some wallets export just the 32-byte seed
        elif len(decoded) == 32:
            return Keypair.from_seed(decoded)
        else:
            return None
    except Exception:
        return None


def pubkey_from_string(address: str) -> Optional[Pubkey]:
    """
    Parse a public key from a base58 address string.

    Returns:
        Pubkey object or None if invalid
    """
    try:
        return Pubkey.from_string(address)
    except Exception:
        return None


def format_lamports(lamports: int, decimals: int = LAMPORTS_DECIMALS) -> float:
    """Convert base units to a human-readable decimal amount."""
    return lamports / (10 ** decimals)


def short_mint(mint: str) -> str:
    """Abbreviated mint used when no symbol is known."""
    return f"{mint[:4]}…{mint[-4:]}"


def decode_transaction(transaction_base64: str) -> VersionedTransaction:
    return VersionedTransaction.from_bytes(base64.b64decode(transaction_base64))


def encode_transaction(transaction: VersionedTransaction) -> str:
    return base64.b64encode(bytes(transaction)).decode("ascii")


class KeypairSigner:
    """Signs a whole batch of transactions with one local keypair."""

    def __init__(self, keypair: Keypair):
        self.keypair = keypair

    def public_key(self) -> str:
        return str(self.keypair.pubkey())

    def sign_transaction(self, transaction: VersionedTransaction) -> VersionedTransaction:
        """
        Add this keypair's signature to its own slot.

        Signatures already present for other signers (e.g. a provider acting
        as fee payer) are left untouched.
        """
        message = transaction.message
        required = message.header.num_required_signatures
        signers = list(message.account_keys[:required])
        try:
            slot = signers.index(self.keypair.pubkey())
        except ValueError:
            raise ValueError(f"{self.public_key()} is not a required signer of this transaction") from None

        signatures = list(transaction.signatures)
        signatures += [Signature.default()] * (required - len(signatures))
        signatures[slot] = self.keypair.sign_message(to_bytes_versioned(message))
        return VersionedTransaction.populate(message, signatures)

    async def sign_all_transactions(
        self, transactions: List[VersionedTransaction]
    ) -> List[VersionedTransaction]:
        return [self.sign_transaction(tx) for tx in transactions]
