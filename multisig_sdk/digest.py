"""
Operation hash construction for WalletSimple-style multisig executors.

The executor recomputes the hash on-chain as

    keccak256(abi.encodePacked(networkId, toAddress, value, data, expireTime, sequenceId))

and recovers the co-signer from the supplied signature. Any difference in
field order or width yields a hash the contract will never accept.
"""
import logging
from enum import Enum
from typing import Any, List, Sequence, Union

from eth_abi import encode as abi_encode
from eth_abi.exceptions import EncodingError as AbiEncodingError
from eth_abi.packed import encode_packed
from eth_utils import is_hex_address, keccak, to_canonical_address

from .chains import ChainProfile
from .exceptions import EncodingError
from .models import TokenTransferProposal, TransactionProposal

logger = logging.getLogger(__name__)

UINT256_MAX = 2 ** 256 - 1
DIGEST_LENGTH = 32

OPERATION_TYPES = ["string", "address", "uint256", "bytes", "uint256", "uint256"]
TOKEN_OPERATION_TYPES = ["string", "address", "uint256", "address", "uint256", "uint256"]


class OperationEncoding(str, Enum):
    """How the operation tuple is serialized before hashing."""
    PACKED = "packed"  # abi.encodePacked
    ABI = "abi"        # abi.encode


def check_uint256(name: str, value: Any) -> int:
    """
    Validate that a value fits an unsigned 256-bit word.

    Raises:
        EncodingError: If the value is not an int or is out of range
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise EncodingError(f"{name} must be an integer, got {type(value).__name__}")
    if value < 0 or value > UINT256_MAX:
        raise EncodingError(f"{name} does not fit in uint256: {value}")
    return value


def check_digest(digest: Any) -> bytes:
    """Return the digest as bytes, raising EncodingError unless it is exactly 32 bytes."""
    if not isinstance(digest, (bytes, bytearray)) or len(digest) != DIGEST_LENGTH:
        raise EncodingError(f"Digest must be {DIGEST_LENGTH} bytes")
    return bytes(digest)


def normalize_address(name: str, address: Any) -> bytes:
    """
    Convert an address to its 20 canonical bytes.

    Checksums are not enforced; the hash only depends on the raw bytes.

    Raises:
        EncodingError: If the address is not 20 bytes or 40 hex characters
    """
    if isinstance(address, (bytes, bytearray)):
        if len(address) != 20:
            raise EncodingError(f"{name} must be 20 bytes, got {len(address)}")
        return bytes(address)
    if not isinstance(address, str) or not is_hex_address(address):
        raise EncodingError(f"{name} is not a valid address: {address!r}")
    return to_canonical_address(address)


def hex_address(name: str, address: Any) -> str:
    """Return the address as lowercase 0x-hex, validated like normalize_address."""
    return "0x" + normalize_address(name, address).hex()


def normalize_call_data(call_data: Union[bytes, bytearray, str, None]) -> bytes:
    """
    Convert call data given as bytes or a hex string to bytes.

    Raises:
        EncodingError: If the value is neither bytes nor valid hex
    """
    if call_data is None:
        return b""
    if isinstance(call_data, (bytes, bytearray)):
        return bytes(call_data)
    if isinstance(call_data, str):
        hex_value = call_data[2:] if call_data[:2].lower() == "0x" else call_data
        try:
            return bytes.fromhex(hex_value)
        except ValueError as e:
            raise EncodingError(f"Call data is not valid hex: {e}")
    raise EncodingError(f"Call data must be bytes or a hex string, got {type(call_data).__name__}")


def _check_prefix(prefix: Any) -> str:
    if not isinstance(prefix, str) or not prefix:
        raise EncodingError("Domain prefix must be a non-empty string")
    return prefix


def _encode(types: Sequence[str], values: List[Any], encoding: OperationEncoding) -> bytes:
    try:
        if OperationEncoding(encoding) is OperationEncoding.PACKED:
            return encode_packed(types, values)
        return abi_encode(types, values)
    except AbiEncodingError as e:
        raise EncodingError(f"Failed to encode operation: {e}") from e


def encode_operation(
    domain_prefix: str,
    target_address: Any,
    value: int,
    call_data: Union[bytes, str],
    expiry: int,
    sequence_number: int,
    encoding: OperationEncoding = OperationEncoding.PACKED,
) -> bytes:
    """
    Build the canonical pre-image of a sendMultiSig operation hash.

    Args:
        domain_prefix: Network id string of the executor (e.g. "POLYGON")
        target_address: Address the executor will call
        value: Native asset amount forwarded with the call
        call_data: Encoded inner call
        expiry: Unix timestamp after which the executor refuses the call
        sequence_number: Executor replay-protection id
        encoding: PACKED (WalletSimple) or ABI

    Returns:
        The byte string that is hashed

    Raises:
        EncodingError: If any input violates its width constraint
    """
    values = [
        _check_prefix(domain_prefix),
        hex_address("target_address", target_address),
        check_uint256("value", value),
        normalize_call_data(call_data),
        check_uint256("expiry", expiry),
        check_uint256("sequence_number", sequence_number),
    ]
    return _encode(OPERATION_TYPES, values, encoding)


def encode_token_operation(
    token_prefix: str,
    target_address: Any,
    value: int,
    token_address: Any,
    expiry: int,
    sequence_number: int,
    encoding: OperationEncoding = OperationEncoding.PACKED,
) -> bytes:
    """Build the canonical pre-image of a sendMultiSigToken operation hash."""
    values = [
        _check_prefix(token_prefix),
        hex_address("target_address", target_address),
        check_uint256("value", value),
        hex_address("token_address", token_address),
        check_uint256("expiry", expiry),
        check_uint256("sequence_number", sequence_number),
    ]
    return _encode(TOKEN_OPERATION_TYPES, values, encoding)


def compute_digest(
    profile: ChainProfile,
    proposal: TransactionProposal,
    encoding: OperationEncoding = OperationEncoding.PACKED,
) -> bytes:
    """
    Compute the 32-byte operation hash for a proposal.

    Pure function of its inputs; identical inputs always give the same digest.

    Args:
        profile: Chain profile supplying the domain prefix
        proposal: Proposal to hash
        encoding: Tuple serialization, PACKED unless the executor uses abi.encode

    Returns:
        Keccak-256 digest (32 bytes)

    Raises:
        EncodingError: If the proposal cannot be encoded
    """
    preimage = encode_operation(
        profile.domain_prefix,
        proposal.target_address,
        proposal.value,
        proposal.call_data,
        proposal.expiry,
        proposal.sequence_number,
        encoding=encoding,
    )
    digest = keccak(preimage)
    logger.debug("Operation hash for sequence %d: 0x%s", proposal.sequence_number, digest.hex())
    return digest


def compute_token_digest(
    profile: ChainProfile,
    proposal: TokenTransferProposal,
    encoding: OperationEncoding = OperationEncoding.PACKED,
) -> bytes:
    """Compute the 32-byte operation hash for a token transfer proposal."""
    preimage = encode_token_operation(
        profile.token_prefix,
        proposal.target_address,
        proposal.value,
        proposal.token_address,
        proposal.expiry,
        proposal.sequence_number,
        encoding=encoding,
    )
    digest = keccak(preimage)
    logger.debug("Token operation hash for sequence %d: 0x%s", proposal.sequence_number, digest.hex())
    return digest
