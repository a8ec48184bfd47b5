"""
Data models for the multisig SDK.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Any, Optional, List, Union

from pydantic import BaseModel, Field

from .exceptions import ExecutorRejected

SIGNATURE_LENGTH = 65


@dataclass(frozen=True)
class Signature:
    """Recoverable secp256k1 signature over an operation hash."""
    r: int
    s: int
    recovery_id: int

    @property
    def v(self) -> int:
        """Legacy Ethereum v value (27/28)."""
        return 27 + self.recovery_id


@dataclass(frozen=True)
class TransactionProposal:
    """A single sendMultiSig call awaiting authorization."""
    target_address: str
    value: int
    call_data: bytes
    expiry: int
    sequence_number: int


@dataclass(frozen=True)
class TokenTransferProposal:
    """A single sendMultiSigToken call awaiting authorization."""
    target_address: str
    value: int
    token_address: str
    expiry: int
    sequence_number: int


@dataclass(frozen=True)
class MultiSigCallParams:
    """Arguments passed to the executor's sendMultiSig function."""
    target_address: str
    value: int
    call_data: bytes
    expiry: int
    sequence_number: int
    signature: bytes

    def as_args(self) -> tuple:
        return (
            self.target_address,
            self.value,
            self.call_data,
            self.expiry,
            self.sequence_number,
            self.signature,
        )


@dataclass(frozen=True)
class TokenCallParams:
    """Arguments passed to the executor's sendMultiSigToken function."""
    target_address: str
    value: int
    token_address: str
    expiry: int
    sequence_number: int
    signature: bytes

    def as_args(self) -> tuple:
        return (
            self.target_address,
            self.value,
            self.token_address,
            self.expiry,
            self.sequence_number,
            self.signature,
        )


@dataclass(frozen=True)
class ProposalInputs:
    """
    Caller-supplied inputs for one authorization flow.

    The sequence number is not part of the inputs; it is fetched from the
    executor when the flow starts. Either ``expiry`` (absolute unix seconds)
    or ``ttl_seconds`` must be given. With ``ttl_seconds`` a fresh expiry is
    computed every time the proposal is rebuilt.

    ``value`` has no default: approvals pass 0 explicitly.
    """
    executor_address: str
    target_address: str
    value: int
    call_data: Union[bytes, str] = b""
    expiry: Optional[int] = None
    ttl_seconds: Optional[int] = None
    token_address: Optional[str] = None


class FlowState(str, Enum):
    """States of a single authorization flow."""
    PENDING = "PENDING"
    SEQUENCED = "SEQUENCED"
    DIGESTED = "DIGESTED"
    SIGNED = "SIGNED"
    SUBMITTED = "SUBMITTED"
    CONFIRMED = "CONFIRMED"
    REJECTED = "REJECTED"


class TxReceipt(BaseModel):
    """Transaction receipt from the blockchain"""
    tx_hash: str = Field(..., alias="transactionHash")
    block_number: int = Field(..., alias="blockNumber")
    block_hash: str = Field(..., alias="blockHash")
    status: int
    gas_used: int = Field(..., alias="gasUsed")
    effective_gas_price: Optional[int] = Field(None, alias="effectiveGasPrice")
    from_address: str = Field(..., alias="from")
    to_address: Optional[str] = Field(None, alias="to")
    logs: List[Dict[str, Any]] = Field(default_factory=list)

    class Config:
        populate_by_name = True

    @property
    def succeeded(self) -> bool:
        return self.status == 1


@dataclass
class SubmissionResult:
    """
    Terminal outcome of an authorization flow.

    ``state`` is CONFIRMED or REJECTED. A REJECTED result carries the
    executor's revert reason when one could be recovered; ``submitted`` is
    False when the rejection came from the pre-flight simulation and no
    transaction was broadcast.
    """
    state: FlowState
    params: Any
    digest: bytes
    tx_hash: Optional[str] = None
    receipt: Optional[TxReceipt] = None
    revert_reason: Optional[str] = None
    submitted: bool = False
    attempts: int = 1
    history: List[FlowState] = field(default_factory=list)

    @property
    def confirmed(self) -> bool:
        return self.state == FlowState.CONFIRMED

    @property
    def sequence_number(self) -> int:
        return self.params.sequence_number

    def raise_for_status(self) -> None:
        """
        Raise ExecutorRejected if the flow ended in REJECTED.
        """
        if self.state == FlowState.REJECTED:
            reason = self.revert_reason or "no revert reason available"
            raise ExecutorRejected(
                f"Executor rejected sequence {self.sequence_number}: {reason}",
                revert_reason=self.revert_reason,
                tx_hash=self.tx_hash,
            )
