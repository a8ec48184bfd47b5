"""
Transaction Assembler - drives one multisig authorization from sequence
reservation to a mined (or rejected) executor call.

    SEQUENCED -> DIGESTED -> SIGNED -> SUBMITTED -> CONFIRMED | REJECTED

Everything that can be checked locally is checked before the first network
call. A stale-sequence rejection restarts the flow with a fresh sequence id,
a new digest and a new signature; no proposal is ever sent twice.
"""
import logging
import time
from typing import Callable, List, Optional, Union

from .chains import ChainProfile, profile_for
from .config import DEFAULT_GAS_CAP
from .cosigner import recover_signer, serialize_signature
from .digest import (
    OperationEncoding,
    check_uint256,
    compute_digest,
    compute_token_digest,
    normalize_address,
    normalize_call_data,
)
from .exceptions import SequenceReplayError, SubmissionError
from .fees import FeeEstimator
from .models import (
    FlowState,
    MultiSigCallParams,
    ProposalInputs,
    SubmissionResult,
    TokenCallParams,
    TokenTransferProposal,
    TransactionProposal,
)
from .sequence import SequenceGuard, SequenceReservation
from .signer import Signer, as_signer

logger = logging.getLogger(__name__)

DEFAULT_MAX_SEQUENCE_RETRIES = 2

# WalletSimple reverts mention "Sequence ID" for every replay-window failure
STALE_SEQUENCE_MARKER = "sequence id"


def is_stale_sequence(revert_reason: Optional[str]) -> bool:
    return bool(revert_reason) and STALE_SEQUENCE_MARKER in revert_reason.lower()


def _short(address: str) -> str:
    return f"{address[:6]}...{address[-4:]}"


class TransactionAssembler:
    """
    Orchestrates digest, co-signature, sequence and fee into one submission.

    Args:
        chain_client: ChainClient (or compatible) for the target chain
        sequence_guard: Shared SequenceGuard; one is created if omitted.
            Flows that must not race need to share the same guard.
        fee_estimator: FeeEstimator; one is created if omitted
        gas_cap: Upper bound on the gas limit of each submission
        markup_percent: Gas price markup (None uses the estimator default)
        max_sequence_retries: Re-sequencing attempts after a stale-sequence rejection
        encoding: Operation hash serialization expected by the executor
        clock: Returns the current unix time in seconds
        logger: Optional logger instance
    """

    def __init__(
        self,
        chain_client,
        sequence_guard: Optional[SequenceGuard] = None,
        fee_estimator: Optional[FeeEstimator] = None,
        gas_cap: int = DEFAULT_GAS_CAP,
        markup_percent: Optional[int] = None,
        max_sequence_retries: int = DEFAULT_MAX_SEQUENCE_RETRIES,
        encoding: OperationEncoding = OperationEncoding.PACKED,
        clock: Callable[[], float] = time.time,
        logger: Optional[logging.Logger] = None,
    ):
        if isinstance(gas_cap, bool) or not isinstance(gas_cap, int) or gas_cap <= 0:
            raise ValueError(f"gas_cap must be a positive integer, got {gas_cap!r}")
        if max_sequence_retries < 0:
            raise ValueError("max_sequence_retries must not be negative")
        self.chain_client = chain_client
        self.logger = logger or logging.getLogger(__name__)
        self.sequence_guard = sequence_guard or SequenceGuard(chain_client, logger=self.logger)
        self.fee_estimator = fee_estimator or FeeEstimator(chain_client, logger=self.logger)
        self.gas_cap = gas_cap
        self.markup_percent = markup_percent
        self.max_sequence_retries = max_sequence_retries
        self.encoding = OperationEncoding(encoding)
        self.clock = clock
        self._verified_chains = set()

    def authorize_and_submit(
        self,
        profile: Union[ChainProfile, int],
        inputs: ProposalInputs,
        signer_key: Union[Signer, str, bytes],
        submitter: Union[Signer, str, bytes],
    ) -> SubmissionResult:
        """
        Authorize and submit a ``sendMultiSig`` call.

        Args:
            profile: Chain profile (or chain id) of the executor's chain
            inputs: Executor, target, value, call data and expiry or TTL
            signer_key: Co-signing key or Signer
            submitter: Signer (or key) that sends the transaction

        Returns:
            SubmissionResult in state CONFIRMED or REJECTED

        Raises:
            UnsupportedChain: If the chain is not supported
            EncodingError: If an input does not fit the operation hash
            InvalidPrivateKey: If key material is malformed
            ValueError: If co-signer and submitter are the same account
            ChainReadError: If chain state could not be read
            SubmissionError: If the transaction could not be broadcast
            SubmissionTimeout: If the outcome of a broadcast is unknown
        """
        return self._run(profile, inputs, signer_key, submitter, token=False)

    def authorize_token_transfer(
        self,
        profile: Union[ChainProfile, int],
        inputs: ProposalInputs,
        signer_key: Union[Signer, str, bytes],
        submitter: Union[Signer, str, bytes],
    ) -> SubmissionResult:
        """
        Authorize and submit a ``sendMultiSigToken`` call.

        ``inputs.token_address`` is required; ``inputs.value`` is the token amount
        and ``inputs.call_data`` is ignored.
        """
        return self._run(profile, inputs, signer_key, submitter, token=True)

    def _validate(self, profile, inputs: ProposalInputs, signer_key, submitter, token: bool):
        if not isinstance(profile, ChainProfile):
            profile = profile_for(profile)
        else:
            profile_for(profile.chain_id)

        if not isinstance(inputs, ProposalInputs):
            raise TypeError(f"inputs must be ProposalInputs, got {type(inputs).__name__}")
        normalize_address("executor_address", inputs.executor_address)
        normalize_address("target_address", inputs.target_address)
        check_uint256("value", inputs.value)
        if token:
            if inputs.token_address is None:
                raise ValueError("token_address is required for a token transfer")
            normalize_address("token_address", inputs.token_address)
        else:
            normalize_call_data(inputs.call_data)

        if (inputs.expiry is None) == (inputs.ttl_seconds is None):
            raise ValueError("Exactly one of expiry or ttl_seconds must be given")
        if inputs.ttl_seconds is not None and (
            isinstance(inputs.ttl_seconds, bool) or not isinstance(inputs.ttl_seconds, int) or inputs.ttl_seconds <= 0
        ):
            raise ValueError(f"ttl_seconds must be a positive integer, got {inputs.ttl_seconds!r}")
        if inputs.expiry is not None:
            check_uint256("expiry", inputs.expiry)
            if inputs.expiry <= int(self.clock()):
                raise ValueError(f"expiry {inputs.expiry} is not in the future")

        cosigner = as_signer(signer_key)
        sender = as_signer(submitter)
        if cosigner.address.lower() == sender.address.lower():
            raise ValueError("Co-signer and submitter must be different accounts")
        return profile, cosigner, sender

    def _expiry(self, inputs: ProposalInputs) -> int:
        if inputs.expiry is not None:
            return inputs.expiry
        return int(self.clock()) + inputs.ttl_seconds

    def _ensure_chain(self, profile: ChainProfile) -> None:
        if profile.chain_id in self._verified_chains:
            return
        self.chain_client.assert_chain_id(profile.chain_id)
        self._verified_chains.add(profile.chain_id)

    def _build(self, profile: ChainProfile, inputs: ProposalInputs, sequence: int, token: bool):
        expiry = self._expiry(inputs)
        if token:
            proposal = TokenTransferProposal(
                target_address=inputs.target_address,
                value=inputs.value,
                token_address=inputs.token_address,
                expiry=expiry,
                sequence_number=sequence,
            )
            return proposal, compute_token_digest(profile, proposal, self.encoding)
        proposal = TransactionProposal(
            target_address=inputs.target_address,
            value=inputs.value,
            call_data=normalize_call_data(inputs.call_data),
            expiry=expiry,
            sequence_number=sequence,
        )
        return proposal, compute_digest(profile, proposal, self.encoding)

    @staticmethod
    def _call_params(proposal, signature: bytes):
        if isinstance(proposal, TokenTransferProposal):
            return TokenCallParams(
                target_address=proposal.target_address,
                value=proposal.value,
                token_address=proposal.token_address,
                expiry=proposal.expiry,
                sequence_number=proposal.sequence_number,
                signature=signature,
            )
        return MultiSigCallParams(
            target_address=proposal.target_address,
            value=proposal.value,
            call_data=proposal.call_data,
            expiry=proposal.expiry,
            sequence_number=proposal.sequence_number,
            signature=signature,
        )

    def _transition(self, history: List[FlowState], state: FlowState, sequence: int) -> None:
        history.append(state)
        self.logger.debug(f"Sequence {sequence}: {state.value}")

    def _run(self, profile, inputs: ProposalInputs, signer_key, submitter, token: bool) -> SubmissionResult:
        profile, cosigner, sender = self._validate(profile, inputs, signer_key, submitter, token)
        executor = inputs.executor_address
        self._ensure_chain(profile)

        history: List[FlowState] = [FlowState.PENDING]
        max_attempts = self.max_sequence_retries + 1

        with self.sequence_guard.reserve(profile.chain_id, executor) as reservation:
            attempt = 0
            while True:
                attempt += 1
                sequence = reservation.sequence
                if self.sequence_guard.is_consumed(profile.chain_id, executor, sequence):
                    raise SequenceReplayError(f"Sequence {sequence} for {executor} was already submitted")
                self._transition(history, FlowState.SEQUENCED, sequence)

                proposal, digest = self._build(profile, inputs, sequence, token)
                self._transition(history, FlowState.DIGESTED, sequence)

                signature = cosigner.sign_digest(digest)
                if recover_signer(digest, signature).lower() != cosigner.address.lower():
                    raise SubmissionError(f"Signature from {_short(cosigner.address)} does not recover to its address")
                params = self._call_params(proposal, serialize_signature(signature))
                self._transition(history, FlowState.SIGNED, sequence)

                revert_reason = self.chain_client.simulate_call(executor, params, sender.address)
                if revert_reason is not None:
                    if self._should_resequence(revert_reason, attempt, max_attempts, reservation):
                        continue
                    return self._rejected(params, digest, history, attempt, revert_reason, submitted=False)

                gas_price = self.fee_estimator.estimate_gas_price(profile.chain_id, self.markup_percent)

                reservation.consume()
                self._transition(history, FlowState.SUBMITTED, sequence)
                self.logger.info(
                    f"Submitting sequence {sequence} to executor {_short(executor)} "
                    f"from {_short(sender.address)} (gas price {gas_price}, cap {self.gas_cap})"
                )
                receipt = self.chain_client.submit_call(executor, params, sender, self.gas_cap, gas_price)

                if receipt.succeeded:
                    self._transition(history, FlowState.CONFIRMED, sequence)
                    self.logger.info(f"Sequence {sequence} confirmed in block {receipt.block_number}: {receipt.tx_hash}")
                    return SubmissionResult(
                        state=FlowState.CONFIRMED,
                        params=params,
                        digest=digest,
                        tx_hash=receipt.tx_hash,
                        receipt=receipt,
                        submitted=True,
                        attempts=attempt,
                        history=history,
                    )

                revert_reason = self.chain_client.simulate_call(
                    executor, params, sender.address, block_identifier=receipt.block_number
                )
                if self._should_resequence(revert_reason, attempt, max_attempts, reservation):
                    continue
                return self._rejected(
                    params, digest, history, attempt, revert_reason,
                    submitted=True, tx_hash=receipt.tx_hash, receipt=receipt,
                )

    def _should_resequence(
        self,
        revert_reason: Optional[str],
        attempt: int,
        max_attempts: int,
        reservation: SequenceReservation,
    ) -> bool:
        if not is_stale_sequence(revert_reason) or attempt >= max_attempts:
            return False
        self.logger.warning(
            f"Sequence {reservation.sequence} rejected as stale ({revert_reason}), "
            f"re-sequencing (attempt {attempt + 1}/{max_attempts})"
        )
        reservation.refresh()
        return True

    def _rejected(self, params, digest, history, attempt, revert_reason, submitted, tx_hash=None, receipt=None):
        self._transition(history, FlowState.REJECTED, params.sequence_number)
        self.logger.error(
            f"Executor rejected sequence {params.sequence_number}: {revert_reason or 'no revert reason available'}"
        )
        return SubmissionResult(
            state=FlowState.REJECTED,
            params=params,
            digest=digest,
            tx_hash=tx_hash,
            receipt=receipt,
            revert_reason=revert_reason,
            submitted=submitted,
            attempts=attempt,
            history=history,
        )
