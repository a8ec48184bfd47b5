"""
multisig-sdk - co-signing and submission of WalletSimple multisig operations.
"""
from .version import __version__
from .chains import (
    CHAIN_PROFILES,
    ChainProfile,
    SupportedChain,
    profile_for,
    supported_chain_ids,
    validate_registry,
)
from .digest import (
    OperationEncoding,
    compute_digest,
    compute_token_digest,
    encode_operation,
    encode_token_operation,
)
from .cosigner import deserialize_signature, recover_signer, serialize_signature, sign
from .signer import LocalSigner, Signer, as_signer
from .sequence import SequenceGuard, SequenceReservation
from .fees import FeeEstimator, apply_markup
from .chain import ChainClient, get_chain_client
from .assembler import TransactionAssembler
from .calldata import encode_approve_call, encode_transfer_call, encode_wrapped_withdraw
from .config import AuthorizerSettings, NetworkConfig
from .models import (
    FlowState,
    MultiSigCallParams,
    ProposalInputs,
    Signature,
    SubmissionResult,
    TokenCallParams,
    TokenTransferProposal,
    TransactionProposal,
    TxReceipt,
)
from .exceptions import (
    AuthChallengeExpired,
    AuthServiceError,
    AuthServiceUnavailable,
    ChainReadError,
    EncodingError,
    ExecutorRejected,
    InvalidPrivateKey,
    MultisigError,
    NetworkError,
    SequenceReplayError,
    SubmissionError,
    SubmissionTimeout,
    UnsupportedChain,
)
from .auth import AuthServiceClient, LoginChallenge, WalletIdentity, get_auth_client

__all__ = [
    "__version__",
    "CHAIN_PROFILES", "ChainProfile", "SupportedChain", "profile_for",
    "supported_chain_ids", "validate_registry",
    "OperationEncoding", "compute_digest", "compute_token_digest",
    "encode_operation", "encode_token_operation",
    "sign", "serialize_signature", "deserialize_signature", "recover_signer",
    "Signer", "LocalSigner", "as_signer",
    "SequenceGuard", "SequenceReservation",
    "FeeEstimator", "apply_markup",
    "ChainClient", "get_chain_client",
    "TransactionAssembler",
    "encode_approve_call", "encode_transfer_call", "encode_wrapped_withdraw",
    "AuthorizerSettings", "NetworkConfig",
    "FlowState", "MultiSigCallParams", "ProposalInputs", "Signature",
    "SubmissionResult", "TokenCallParams", "TokenTransferProposal",
    "TransactionProposal", "TxReceipt",
    "MultisigError", "UnsupportedChain", "EncodingError", "InvalidPrivateKey",
    "ChainReadError", "NetworkError", "SubmissionError", "SubmissionTimeout",
    "ExecutorRejected", "SequenceReplayError",
    "AuthServiceError", "AuthServiceUnavailable", "AuthChallengeExpired",
    "AuthServiceClient", "LoginChallenge", "WalletIdentity", "get_auth_client",
]
