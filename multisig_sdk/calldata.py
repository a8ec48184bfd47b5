"""
Inner call data for calls routed through the multisig executor.
"""
from typing import Any, Mapping

from eth_abi import encode as abi_encode
from eth_utils import function_signature_to_4byte_selector

from .digest import UINT256_MAX, hex_address, check_uint256
from .exceptions import EncodingError

APPROVE_SIGNATURE = "approve(address,uint256)"
TRANSFER_SIGNATURE = "transfer(address,uint256)"
WRAPPED_WITHDRAW_SIGNATURE = "wrappedWithdraw(address,uint256,uint256,uint256,bytes,bytes)"

WRAPPED_WITHDRAW_TYPES = ["address", "uint256", "uint256", "uint256", "bytes", "bytes"]
WRAPPED_WITHDRAW_FIELDS = (
    "tokenContract",
    "amount",
    "expiryBlockNum",
    "withdrawCounter",
    "fleetKeySignature",
    "fleetKeyProof",
)


def encode_call(signature: str, types, values) -> bytes:
    """Return the 4-byte selector of ``signature`` followed by the ABI-encoded arguments."""
    return function_signature_to_4byte_selector(signature) + abi_encode(types, values)


def encode_approve_call(spender: str, amount: int = UINT256_MAX) -> bytes:
    """
    Encode ``approve(spender, amount)`` for an ERC-20 token.

    The default amount is an unlimited allowance.
    """
    return encode_call(
        APPROVE_SIGNATURE,
        ["address", "uint256"],
        [hex_address("spender", spender), check_uint256("amount", amount)],
    )


def encode_transfer_call(recipient: str, amount: int) -> bytes:
    """Encode ``transfer(recipient, amount)`` for an ERC-20 token."""
    return encode_call(
        TRANSFER_SIGNATURE,
        ["address", "uint256"],
        [hex_address("recipient", recipient), check_uint256("amount", amount)],
    )


def _uint_field(name: str, value: Any) -> int:
    # The service returns quantities as ints, decimal strings or 0x-hex strings
    if isinstance(value, str):
        text = value.strip()
        try:
            value = int(text, 16) if text[:2].lower() == "0x" else int(text, 10)
        except ValueError:
            raise EncodingError(f"{name} is not a valid integer: {value!r}") from None
    return check_uint256(name, value)


def _bytes_field(name: str, value: Any) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, str):
        hex_value = value[2:] if value[:2].lower() == "0x" else value
        try:
            return bytes.fromhex(hex_value)
        except ValueError:
            raise EncodingError(f"{name} is not valid hex") from None
    raise EncodingError(f"{name} must be bytes or a hex string, got {type(value).__name__}")


def encode_wrapped_withdraw(params: Mapping[str, Any]) -> bytes:
    """
    Encode the recovery vault's ``wrappedWithdraw`` call.

    ``params`` is the object returned by
    ``AuthServiceClient.prepare_vault_withdrawal``; its fields are passed
    through unchanged, in this order:

        tokenContract, amount, expiryBlockNum, withdrawCounter,
        fleetKeySignature, fleetKeyProof

    The result is the call data of a ``sendMultiSig`` whose target is the
    recovery vault and whose value is 0.

    Raises:
        EncodingError: If a field is missing or cannot be encoded
    """
    if not isinstance(params, Mapping):
        raise EncodingError(f"Withdrawal parameters must be a mapping, got {type(params).__name__}")
    missing = [name for name in WRAPPED_WITHDRAW_FIELDS if params.get(name) in (None, "")]
    if missing:
        raise EncodingError(f"Withdrawal parameters are missing: {', '.join(missing)}")

    return encode_call(
        WRAPPED_WITHDRAW_SIGNATURE,
        WRAPPED_WITHDRAW_TYPES,
        [
            hex_address("tokenContract", params["tokenContract"]),
            _uint_field("amount", params["amount"]),
            _uint_field("expiryBlockNum", params["expiryBlockNum"]),
            _uint_field("withdrawCounter", params["withdrawCounter"]),
            _bytes_field("fleetKeySignature", params["fleetKeySignature"]),
            _bytes_field("fleetKeyProof", params["fleetKeyProof"]),
        ],
    )
