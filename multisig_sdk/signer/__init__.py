"""
Signers for co-signing operation hashes and submitting transactions.
"""
from typing import Any, Dict, Protocol, Union, runtime_checkable

from ..models import Signature
from .keys import (
    SECP256K1_MAX,
    SECP256K1_MIN,
    SECP256K1_N,
    decode_extended_key,
    parse_private_key,
)
from .local import LocalSigner

__all__ = [
    "Signer",
    "LocalSigner",
    "as_signer",
    "parse_private_key",
    "decode_extended_key",
    "SECP256K1_N",
    "SECP256K1_MIN",
    "SECP256K1_MAX",
]


@runtime_checkable
class Signer(Protocol):
    """Protocol for custom signers (HSM, remote KMS, hardware wallet)."""
    address: str

    def sign_digest(self, digest: bytes) -> Signature:
        """Sign a raw 32-byte digest"""
        ...

    def sign_message(self, message: str) -> str:
        """Sign an EIP-191 text message and return the 0x-prefixed signature"""
        ...

    def sign_transaction(self, transaction_dict: Dict[str, Any]) -> Any:
        """Sign transaction and return signed tx object"""
        ...


def as_signer(key_or_signer: Union[Signer, str, bytes]) -> Signer:
    """
    Return the argument if it already is a signer, else wrap raw key material.

    Raises:
        InvalidPrivateKey: If raw key material is malformed
    """
    if isinstance(key_or_signer, (str, bytes, bytearray)):
        return LocalSigner(key_or_signer)
    if isinstance(key_or_signer, Signer):
        return key_or_signer
    raise TypeError(f"Expected a Signer or private key, got {type(key_or_signer).__name__}")
