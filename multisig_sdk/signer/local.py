"""
Raw-key signer backed by eth_keys and eth_account.
"""
import logging
from typing import Any, Dict, Optional, Union

from eth_account import Account
from eth_account.messages import encode_defunct
from eth_keys import keys
from eth_utils import to_hex

from ..digest import check_digest
from ..models import Signature
from .keys import decode_extended_key, parse_private_key

logger = logging.getLogger(__name__)


class LocalSigner:
    """
    Signer that holds a secp256k1 private key in memory.

    The key is never logged or included in ``repr``.
    """

    def __init__(self, private_key: Union[str, bytes], logger: Optional[logging.Logger] = None):
        """
        Args:
            private_key: 32 raw bytes or a hex string

        Raises:
            InvalidPrivateKey: If the key is malformed
        """
        key_bytes = parse_private_key(private_key)
        self._key = keys.PrivateKey(key_bytes)
        self._account = Account.from_key(key_bytes)
        self.logger = logger or logging.getLogger(__name__)

    @classmethod
    def from_extended_key(cls, extended_key: str, logger: Optional[logging.Logger] = None) -> "LocalSigner":
        """Create a signer from a base58 ``xprv...`` extended private key."""
        return cls(decode_extended_key(extended_key), logger=logger)

    @property
    def address(self) -> str:
        return self._account.address

    def sign_digest(self, digest: bytes) -> Signature:
        """
        Sign a 32-byte digest directly, without any message prefix.

        eth_keys derives the nonce per RFC 6979 and normalizes s to the lower
        half of the curve order, so the result is reproducible.

        Raises:
            EncodingError: If the digest is not exactly 32 bytes
        """
        raw = self._key.sign_msg_hash(check_digest(digest))
        return Signature(r=raw.r, s=raw.s, recovery_id=raw.v)

    def sign_message(self, message: str) -> str:
        """Sign a text message with the EIP-191 personal_sign prefix."""
        signed = self._account.sign_message(encode_defunct(text=message))
        self.logger.debug("Signed %d-char message with %s", len(message), self.address)
        return to_hex(signed.signature)

    def sign_transaction(self, transaction_dict: Dict[str, Any]) -> Any:
        """Sign a transaction dict and return the eth_account signed transaction."""
        return self._account.sign_transaction(transaction_dict)

    def __repr__(self) -> str:
        return f"LocalSigner(address={self.address})"
