"""
Private key parsing for secp256k1 co-signing keys.
"""
from typing import Union

import base58

from ..exceptions import InvalidPrivateKey

# SECP256K1 constants
# Order of the SECP256K1 elliptic curve (N value)
SECP256K1_N = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141

# Valid private keys are in [1, N-1]
SECP256K1_MIN = 1
SECP256K1_MAX = SECP256K1_N - 1

PRIVATE_KEY_LENGTH = 32

# BIP32 version bytes for extended private keys
EXTENDED_KEY_VERSIONS = {
    bytes.fromhex("0488ade4"): "xprv",
    bytes.fromhex("04358394"): "tprv",
}
EXTENDED_KEY_LENGTH = 78


def _check_range(key_bytes: bytes) -> bytes:
    value = int.from_bytes(key_bytes, "big")
    if not SECP256K1_MIN <= value <= SECP256K1_MAX:
        raise InvalidPrivateKey("Private key is outside the secp256k1 range [1, n-1]")
    return key_bytes


def parse_private_key(private_key: Union[str, bytes, bytearray]) -> bytes:
    """
    Normalize raw private key material to 32 bytes.

    Args:
        private_key: 32 raw bytes or 64 hex characters, with or without 0x

    Returns:
        The 32-byte private key

    Raises:
        InvalidPrivateKey: If the key is malformed or out of range
    """
    if isinstance(private_key, (bytes, bytearray)):
        key_bytes = bytes(private_key)
    elif isinstance(private_key, str):
        hex_value = private_key.strip()
        if hex_value[:2].lower() == "0x":
            hex_value = hex_value[2:]
        try:
            key_bytes = bytes.fromhex(hex_value)
        except ValueError:
            # Do not echo the key material back in the error
            raise InvalidPrivateKey("Private key is not valid hex") from None
    else:
        raise InvalidPrivateKey(
            f"Private key must be bytes or a hex string, got {type(private_key).__name__}"
        )

    if len(key_bytes) != PRIVATE_KEY_LENGTH:
        raise InvalidPrivateKey(
            f"Private key must be {PRIVATE_KEY_LENGTH} bytes, got {len(key_bytes)}"
        )
    return _check_range(key_bytes)


def decode_extended_key(extended_key: str) -> bytes:
    """
    Extract the private key from a base58check BIP32 extended private key.

    Only the key itself is used; the chain code and derivation metadata are
    ignored, so the key is treated as the signing key directly.

    Args:
        extended_key: An ``xprv...`` (or ``tprv...``) string

    Returns:
        The 32-byte private key

    Raises:
        InvalidPrivateKey: If the string is not a valid extended private key
    """
    if not isinstance(extended_key, str):
        raise InvalidPrivateKey("Extended key must be a string")
    try:
        payload = base58.b58decode_check(extended_key.strip())
    except ValueError:
        raise InvalidPrivateKey("Extended key failed base58 checksum validation") from None

    if len(payload) != EXTENDED_KEY_LENGTH:
        raise InvalidPrivateKey(
            f"Extended key payload must be {EXTENDED_KEY_LENGTH} bytes, got {len(payload)}"
        )
    if payload[:4] not in EXTENDED_KEY_VERSIONS:
        raise InvalidPrivateKey("Extended key is not a private key (expected xprv or tprv)")
    # Private keys are serialized as 0x00 || k
    if payload[45] != 0:
        raise InvalidPrivateKey("Extended key does not carry a private key")
    return _check_range(payload[46:])
