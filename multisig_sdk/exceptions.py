"""
Exceptions for the multisig SDK.
"""
from typing import Optional


class MultisigError(Exception):
    """Base exception for all SDK errors."""
    pass


class UnsupportedChain(MultisigError, ValueError):
    """Raised when a chain id is not in the supported chain table."""

    def __init__(self, chain_id, supported=None):
        self.chain_id = chain_id
        self.supported = list(supported or [])
        message = f"Chain id {chain_id} not supported"
        if self.supported:
            message += f". Supported chain ids are: {', '.join(str(c) for c in self.supported)}"
        super().__init__(message)


class EncodingError(MultisigError, ValueError):
    """Raised when a proposal input cannot be encoded into the operation hash."""
    pass


class InvalidPrivateKey(MultisigError, ValueError):
    """Raised when private key material is malformed."""
    pass


class ChainReadError(MultisigError):
    """Raised when reading chain state fails. Transient; callers may retry."""
    pass


class NetworkError(MultisigError):
    """Raised when the connected chain does not match the expected one."""
    pass


class SubmissionError(MultisigError):
    """Raised when a transaction could not be signed or broadcast."""
    pass


class SubmissionTimeout(SubmissionError):
    """
    Raised when a broadcast transaction was not mined within the wait window.

    The outcome is unknown; reconcile against chain state before building
    a new proposal.
    """

    def __init__(self, message: str, tx_hash: Optional[str] = None):
        self.tx_hash = tx_hash
        super().__init__(message)


class ExecutorRejected(MultisigError):
    """Raised when the multisig executor reverts a proposal."""

    def __init__(
        self,
        message: str,
        revert_reason: Optional[str] = None,
        tx_hash: Optional[str] = None,
    ):
        self.revert_reason = revert_reason
        self.tx_hash = tx_hash
        super().__init__(message)


class SequenceReplayError(MultisigError):
    """Raised when a sequence number that was already submitted is reused."""
    pass


class AuthServiceError(MultisigError):
    """Raised when the authorization service returns an unusable response."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class AuthServiceUnavailable(AuthServiceError):
    """Raised when the authorization service cannot be reached."""
    pass


class AuthChallengeExpired(AuthServiceError):
    """Raised when a login challenge session is no longer accepted."""
    pass
