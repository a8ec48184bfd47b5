"""
Co-signing of operation hashes.

The executor calls ``ecrecover`` on the operation hash as-is, so signatures
are produced over the raw digest with no EIP-191 prefix.
"""
import logging
from typing import Union

from eth_keys import keys
from eth_keys.exceptions import BadSignature, ValidationError

from .digest import check_digest
from .exceptions import EncodingError
from .models import SIGNATURE_LENGTH, Signature
from .signer.keys import parse_private_key

logger = logging.getLogger(__name__)


def sign(digest: bytes, private_key: Union[str, bytes]) -> Signature:
    """
    Sign an operation hash with a raw secp256k1 private key.

    Args:
        digest: 32-byte operation hash
        private_key: 32 raw bytes or a hex string

    Returns:
        Deterministic low-s signature with recovery id 0 or 1

    Raises:
        InvalidPrivateKey: If the key is malformed or out of range
        EncodingError: If the digest is not 32 bytes
    """
    key = keys.PrivateKey(parse_private_key(private_key))
    raw = key.sign_msg_hash(check_digest(digest))
    return Signature(r=raw.r, s=raw.s, recovery_id=raw.v)


def serialize_signature(signature: Signature) -> bytes:
    """Serialize as r (32 bytes) || s (32 bytes) || recovery id (1 byte)."""
    if signature.recovery_id not in (0, 1):
        raise EncodingError(f"Recovery id must be 0 or 1, got {signature.recovery_id}")
    return (
        signature.r.to_bytes(32, "big")
        + signature.s.to_bytes(32, "big")
        + bytes([signature.recovery_id])
    )


def deserialize_signature(data: Union[bytes, str]) -> Signature:
    """
    Parse a 65-byte signature.

    The trailing byte may be a raw recovery id (0/1) or a legacy v (27/28).

    Raises:
        EncodingError: If the input is not 65 bytes or the v byte is unknown
    """
    if isinstance(data, str):
        hex_value = data[2:] if data[:2].lower() == "0x" else data
        try:
            data = bytes.fromhex(hex_value)
        except ValueError as e:
            raise EncodingError(f"Signature is not valid hex: {e}")
    if len(data) != SIGNATURE_LENGTH:
        raise EncodingError(f"Signature must be {SIGNATURE_LENGTH} bytes, got {len(data)}")

    v = data[64]
    if v in (27, 28):
        v -= 27
    if v not in (0, 1):
        raise EncodingError(f"Unsupported signature v byte: {data[64]}")
    return Signature(
        r=int.from_bytes(data[:32], "big"),
        s=int.from_bytes(data[32:64], "big"),
        recovery_id=v,
    )


def recover_signer(digest: bytes, signature: Union[Signature, bytes, str]) -> str:
    """
    Recover the checksum address that produced a signature over a digest.

    Raises:
        EncodingError: If the signature cannot be parsed or recovered
    """
    if not isinstance(signature, Signature):
        signature = deserialize_signature(signature)
    try:
        raw = keys.Signature(vrs=(signature.recovery_id, signature.r, signature.s))
        public_key = raw.recover_public_key_from_msg_hash(check_digest(digest))
    except (BadSignature, ValidationError) as e:
        raise EncodingError(f"Could not recover signer: {e}") from e
    return public_key.to_checksum_address()
