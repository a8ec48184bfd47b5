"""
Tests for the pluggable signers.
"""
from unittest.mock import MagicMock

import base58
import pytest
from eth_account import Account
from eth_account.messages import encode_defunct
from eth_utils import keccak, to_checksum_address

from multisig_sdk.cosigner import sign
from multisig_sdk.exceptions import EncodingError, InvalidPrivateKey
from multisig_sdk.signer import LocalSigner, Signer, as_signer, decode_extended_key

from conftest import COSIGNER_ADDRESS, COSIGNER_KEY

XPRV_VERSION = bytes.fromhex("0488ade4")
XPUB_VERSION = bytes.fromhex("0488b21e")


def _extended_key(key_hex=COSIGNER_KEY[2:], version=XPRV_VERSION, key_prefix=b"\x00"):
    payload = (
        version
        + b"\x00"              # depth
        + b"\x00" * 4          # parent fingerprint
        + b"\x00" * 4          # child number
        + b"\x11" * 32         # chain code
        + key_prefix
        + bytes.fromhex(key_hex)
    )
    return base58.b58encode_check(payload).decode()


def test_local_signer_address():
    signer = LocalSigner(COSIGNER_KEY)
    assert signer.address == COSIGNER_ADDRESS
    assert isinstance(signer, Signer)


def test_repr_hides_key():
    signer = LocalSigner(COSIGNER_KEY)
    assert COSIGNER_KEY[2:] not in repr(signer)
    assert COSIGNER_ADDRESS in repr(signer)


def test_sign_message_is_eip191_recoverable():
    signer = LocalSigner(COSIGNER_KEY)
    message = "Sign this challenge: 42"
    signature = signer.sign_message(message)

    assert signature.startswith("0x")
    assert len(signature) == 2 + 65 * 2
    assert Account.recover_message(encode_defunct(text=message), signature=signature) == COSIGNER_ADDRESS


def test_sign_digest_matches_cosigner():
    digest = keccak(text="operation")
    assert LocalSigner(COSIGNER_KEY).sign_digest(digest) == sign(digest, COSIGNER_KEY)


@pytest.mark.parametrize("digest", [b"short", b"\x01" * 33, "0x" + "11" * 32, None])
def test_sign_digest_rejects_malformed_digest(digest):
    with pytest.raises(EncodingError, match="32 bytes"):
        LocalSigner(COSIGNER_KEY).sign_digest(digest)


def test_sign_transaction_returns_raw_transaction():
    signer = LocalSigner(COSIGNER_KEY)
    signed = signer.sign_transaction({
        "to": to_checksum_address("0x" + "aa" * 20),
        "value": 0,
        "gas": 21000,
        "gasPrice": 10 ** 9,
        "nonce": 0,
        "chainId": 137,
    })
    assert isinstance(signed.raw_transaction, bytes)
    assert len(signed.raw_transaction) > 0


def test_from_extended_key():
    signer = LocalSigner.from_extended_key(_extended_key())
    assert signer.address == COSIGNER_ADDRESS


def test_testnet_extended_key():
    xkey = _extended_key(version=bytes.fromhex("04358394"))
    assert decode_extended_key(xkey) == bytes.fromhex(COSIGNER_KEY[2:])


def test_extended_key_bad_checksum():
    xkey = _extended_key()
    corrupted = xkey[:-1] + ("1" if xkey[-1] != "1" else "2")
    with pytest.raises(InvalidPrivateKey):
        decode_extended_key(corrupted)


def test_extended_public_key_rejected():
    with pytest.raises(InvalidPrivateKey, match="not a private key"):
        decode_extended_key(_extended_key(version=XPUB_VERSION))


def test_extended_key_without_private_marker_rejected():
    with pytest.raises(InvalidPrivateKey):
        decode_extended_key(_extended_key(key_prefix=b"\x02"))


def test_extended_key_wrong_length():
    short = base58.b58encode_check(XPRV_VERSION + b"\x00" * 10).decode()
    with pytest.raises(InvalidPrivateKey, match="78 bytes"):
        decode_extended_key(short)


def test_as_signer_wraps_raw_key():
    signer = as_signer(COSIGNER_KEY)
    assert isinstance(signer, LocalSigner)
    assert signer.address == COSIGNER_ADDRESS


def test_as_signer_passes_through_custom_signer():
    custom = MagicMock()
    custom.address = "0x" + "12" * 20
    assert as_signer(custom) is custom


def test_as_signer_rejects_other_types():
    with pytest.raises(TypeError):
        as_signer(12345)


def test_as_signer_rejects_bad_key():
    with pytest.raises(InvalidPrivateKey):
        as_signer("0x1234")
