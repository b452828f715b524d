"""Wallet helpers, batch signer and error message extraction."""
import base58
import pytest
from solders.hash import Hash
from solders.keypair import Keypair
from solders.message import MessageV0, to_bytes_versioned
from solders.signature import Signature
from solders.system_program import TransferParams, transfer
from solders.transaction import VersionedTransaction

from conftest import make_unsigned_tx
from exchange.errors import GENERIC_ERROR_MESSAGE, ExecutionError, QuoteError, user_message
from utils.wallet import (
    KeypairSigner,
    decode_transaction,
    encode_transaction,
    format_lamports,
    load_keypair_from_base58,
    pubkey_from_string,
)


def test_load_keypair_from_full_secret():
    keypair = Keypair()
    loaded = load_keypair_from_base58(base58.b58encode(bytes(keypair)).decode())
    assert loaded.pubkey() == keypair.pubkey()


def test_load_keypair_rejects_garbage():
    assert load_keypair_from_base58("not-base58-0OIl") is None
    assert load_keypair_from_base58(base58.b58encode(b"short").decode()) is None


def test_pubkey_from_string():
    keypair = Keypair()
    assert pubkey_from_string(str(keypair.pubkey())) == keypair.pubkey()
    assert pubkey_from_string("nope") is None


def test_format_lamports():
    assert format_lamports(1_500_000_000) == 1.5
    assert format_lamports(2_500_000, decimals=6) == 2.5


@pytest.mark.asyncio
async def test_keypair_signer_signs_every_transaction():
    keypair = Keypair()
    unsigned = [decode_transaction(make_unsigned_tx(keypair, lamports=n)) for n in (1, 2, 3)]

    signed = await KeypairSigner(keypair).sign_all_transactions(unsigned)

    assert len(signed) == 3
    for original, tx in zip(unsigned, signed):
        assert tx.message == original.message
        assert tx.signatures[0].verify(keypair.pubkey(), to_bytes_versioned(tx.message))
        assert decode_transaction(encode_transaction(tx)) == tx


def provider_paid_transaction(provider: Keypair, taker: Keypair) -> VersionedTransaction:
    """Provider is fee payer and has already signed; taker still has to sign."""
    ix = transfer(TransferParams(from_pubkey=taker.pubkey(), to_pubkey=Keypair().pubkey(), lamports=5))
    message = MessageV0.try_compile(provider.pubkey(), [ix], [], Hash.default())
    provider_signature = provider.sign_message(to_bytes_versioned(message))
    return VersionedTransaction.populate(message, [provider_signature, Signature.default()])


@pytest.mark.asyncio
async def test_keypair_signer_keeps_co_signer_signatures():
    provider, taker = Keypair(), Keypair()
    unsigned = provider_paid_transaction(provider, taker)
    assert unsigned.message.header.num_required_signatures == 2

    [signed] = await KeypairSigner(taker).sign_all_transactions([unsigned])

    message_bytes = to_bytes_versioned(signed.message)
    assert signed.signatures[0] == unsigned.signatures[0]
    assert signed.signatures[0].verify(provider.pubkey(), message_bytes)
    assert signed.signatures[1].verify(taker.pubkey(), message_bytes)


def test_keypair_signer_refuses_foreign_transaction():
    unsigned = provider_paid_transaction(Keypair(), Keypair())

    with pytest.raises(ValueError, match="not a required signer"):
        KeypairSigner(Keypair()).sign_transaction(unsigned)


class TestUserMessage:

    def test_json_error_body(self):
        assert user_message(QuoteError('{"error":"No routes found"}')) == "No routes found"

    def test_json_message_key(self):
        assert user_message(QuoteError('{"message":"Rate limited"}')) == "Rate limited"

    def test_plain_text(self):
        assert user_message(ExecutionError("Swap failed: 1 Bad")) == "Swap failed: 1 Bad"

    def test_empty_falls_back(self):
        assert user_message(RuntimeError()) == GENERIC_ERROR_MESSAGE
