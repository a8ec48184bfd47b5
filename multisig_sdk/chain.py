"""
ChainClient - read/write boundary to the multisig executor over JSON-RPC.
"""
import logging
import random
import threading
import time
from typing import Any, Callable, Dict, Optional, TypeVar, Union

import requests
from eth_utils import to_hex
from web3 import Web3
from web3.exceptions import ContractLogicError, TimeExhausted, Web3Exception
from web3.types import TxReceipt as Web3TxReceipt

from ._rate_limited_log import rate_limited_log
from .config import validate_url
from .exceptions import ChainReadError, NetworkError, SubmissionError, SubmissionTimeout
from .models import MultiSigCallParams, TokenCallParams, TxReceipt

logger = logging.getLogger(__name__)

T = TypeVar("T")

CallParams = Union[MultiSigCallParams, TokenCallParams]

# Errors worth another attempt; contract reverts are not among them
TRANSIENT_ERRORS = (requests.RequestException, OSError, Web3Exception, ValueError)

REVERT_PREFIX = "execution reverted:"

# Minimal WalletSimple ABI
WALLET_SIMPLE_ABI = [
    {
        "inputs": [],
        "name": "getNextSequenceId",
        "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function"
    },
    {
        "inputs": [
            {"internalType": "address", "name": "toAddress", "type": "address"},
            {"internalType": "uint256", "name": "value", "type": "uint256"},
            {"internalType": "bytes", "name": "data", "type": "bytes"},
            {"internalType": "uint256", "name": "expireTime", "type": "uint256"},
            {"internalType": "uint256", "name": "sequenceId", "type": "uint256"},
            {"internalType": "bytes", "name": "signature", "type": "bytes"}
        ],
        "name": "sendMultiSig",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function"
    },
    {
        "inputs": [
            {"internalType": "address", "name": "toAddress", "type": "address"},
            {"internalType": "uint256", "name": "value", "type": "uint256"},
            {"internalType": "address", "name": "tokenContractAddress", "type": "address"},
            {"internalType": "uint256", "name": "expireTime", "type": "uint256"},
            {"internalType": "uint256", "name": "sequenceId", "type": "uint256"},
            {"internalType": "bytes", "name": "signature", "type": "bytes"}
        ],
        "name": "sendMultiSigToken",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function"
    }
]


def revert_reason_from_error(error: Exception) -> str:
    """Extract the human-readable revert string from a web3 contract error."""
    message = getattr(error, "message", None) or str(error)
    if message.startswith(REVERT_PREFIX):
        message = message[len(REVERT_PREFIX):]
    return message.strip()


def call_with_retry(
    fn: Callable[[], T],
    description: str,
    max_retries: int = 3,
    backoff_base: float = 0.5,
    logger_instance: Optional[logging.Logger] = None,
) -> T:
    """
    Run a chain read, retrying transient failures with exponential backoff.

    Args:
        fn: Zero-argument callable performing the read
        description: What is being read, for log and error messages
        max_retries: Retries after the first attempt
        backoff_base: Base delay for exponential backoff in seconds

    Returns:
        Whatever ``fn`` returns

    Raises:
        ChainReadError: If every attempt failed
    """
    log = logger_instance or logger
    last_error: Optional[Exception] = None
    retry_count = 0

    while retry_count <= max_retries:
        if retry_count > 0:
            delay = backoff_base * (2 ** (retry_count - 1))
            # Add up to 10% jitter to avoid thundering herd
            jitter = delay * random.uniform(0, 0.1)
            actual_delay = delay + jitter
            rate_limited_log(
                f"Retrying {description} (attempt {retry_count + 1}/{max_retries + 1})",
                level="warning",
                logger_instance=log,
            )
            time.sleep(actual_delay)

        try:
            return fn()
        except ContractLogicError:
            raise
        except TRANSIENT_ERRORS as e:
            last_error = e
            log.debug(f"{description} failed: {e}")
            retry_count += 1

    log.error(f"{description} failed after {max_retries + 1} attempts: {last_error}")
    raise ChainReadError(f"Failed to read {description}: {last_error}") from last_error


class ChainClient:
    """
    Client for one JSON-RPC endpoint.

    Reads (sequence counter, gas price, chain id) are retried with backoff.
    Broadcasts are never retried; a transaction is sent at most once.
    """

    def __init__(
        self,
        rpc_url: str,
        expected_chain_id: Optional[int] = None,
        timeout: int = 30,
        receipt_timeout: int = 120,
        poll_interval: float = 0.5,
        max_retries: int = 3,
        backoff_base: float = 0.5,
        w3: Optional[Web3] = None,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Initialize the ChainClient

        Args:
            rpc_url: JSON-RPC endpoint URL
            expected_chain_id: Chain id the endpoint must report (optional)
            timeout: HTTP timeout for RPC requests in seconds
            receipt_timeout: How long to wait for a receipt in seconds
            poll_interval: How often to poll for a receipt in seconds
            max_retries: Retries for transient read failures
            backoff_base: Base delay for exponential backoff in seconds
            w3: Preconfigured Web3 instance (optional, mainly for tests)
            logger: Optional logger instance

        Raises:
            ValueError: If the URL doesn't use https (unless it's a loopback host)
        """
        validate_url("rpc_url", rpc_url)
        self.rpc_url = rpc_url
        self.expected_chain_id = expected_chain_id
        self.timeout = timeout
        self.receipt_timeout = receipt_timeout
        self.poll_interval = poll_interval
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self.logger = logger or logging.getLogger(__name__)
        self.w3 = w3 or Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": timeout}))
        self._contracts: Dict[str, Any] = {}
        self._contracts_lock = threading.RLock()

    def _retry(self, fn: Callable[[], T], description: str) -> T:
        return call_with_retry(
            fn,
            description,
            max_retries=self.max_retries,
            backoff_base=self.backoff_base,
            logger_instance=self.logger,
        )

    def executor(self, address: str):
        """Return the WalletSimple contract bound to ``address``."""
        checksum = Web3.to_checksum_address(address)
        with self._contracts_lock:
            if checksum not in self._contracts:
                self._contracts[checksum] = self.w3.eth.contract(address=checksum, abi=WALLET_SIMPLE_ABI)
            return self._contracts[checksum]

    def _function_for(self, executor_address: str, params: CallParams):
        functions = self.executor(executor_address).functions
        if isinstance(params, TokenCallParams):
            return functions.sendMultiSigToken(
                Web3.to_checksum_address(params.target_address),
                params.value,
                Web3.to_checksum_address(params.token_address),
                params.expiry,
                params.sequence_number,
                params.signature,
            )
        return functions.sendMultiSig(
            Web3.to_checksum_address(params.target_address),
            params.value,
            params.call_data,
            params.expiry,
            params.sequence_number,
            params.signature,
        )

    def get_chain_id(self) -> int:
        return self._retry(lambda: int(self.w3.eth.chain_id), "chain id")

    def assert_chain_id(self, expected: Optional[int] = None) -> None:
        """
        Verify the endpoint serves the expected chain.

        Raises:
            NetworkError: If the chain id differs or cannot be read
        """
        expected = expected if expected is not None else self.expected_chain_id
        if expected is None:
            self.logger.warning("No expected chain ID set, skipping validation")
            return
        try:
            actual = int(self.w3.eth.chain_id)
        except Exception as e:
            raise NetworkError(f"Failed to validate chain ID: {e}") from e
        if actual != int(expected):
            raise NetworkError(f"Chain ID mismatch: expected {expected}, got {actual}")

    def get_counter_value(self, executor_address: str) -> int:
        """Read the executor's next usable sequence id."""
        contract = self.executor(executor_address)
        return self._retry(
            lambda: int(contract.functions.getNextSequenceId().call()),
            f"sequence id of {executor_address}",
        )

    def get_baseline_gas_price(self) -> int:
        return self._retry(lambda: int(self.w3.eth.gas_price), "gas price")

    def simulate_call(
        self,
        executor_address: str,
        params: CallParams,
        from_address: str,
        block_identifier: Union[str, int] = "latest",
    ) -> Optional[str]:
        """
        Dry-run the executor call with eth_call.

        Args:
            executor_address: Multisig executor address
            params: Fully signed call parameters
            from_address: Address that would send the transaction
            block_identifier: Block to run against; a mined block number
                replays a failed transaction to recover its revert reason

        Returns:
            None if the call would succeed, else the revert reason

        Raises:
            ChainReadError: If the node could not be reached
        """
        fn = self._function_for(executor_address, params)
        try:
            self._retry(
                lambda: fn.call({"from": Web3.to_checksum_address(from_address)}, block_identifier=block_identifier),
                "call simulation",
            )
        except ContractLogicError as e:
            reason = revert_reason_from_error(e)
            self.logger.debug(f"Simulation of sequence {params.sequence_number} reverted: {reason}")
            return reason
        return None

    def submit_call(
        self,
        executor_address: str,
        params: CallParams,
        submitter,
        gas_cap: int,
        gas_price: int,
    ) -> TxReceipt:
        """
        Sign, broadcast and wait for the executor call.

        Args:
            executor_address: Multisig executor address
            params: Fully signed call parameters
            submitter: Signer whose account pays for and sends the transaction
            gas_cap: Upper bound on the gas limit
            gas_price: Gas price in wei

        Returns:
            Receipt of the mined transaction (status 0 means reverted)

        Raises:
            SubmissionError: If signing or broadcasting fails
            SubmissionTimeout: If no receipt arrived within the wait window
        """
        fn = self._function_for(executor_address, params)
        from_address = Web3.to_checksum_address(submitter.address)
        nonce = self._retry(
            lambda: self.w3.eth.get_transaction_count(from_address, "pending"),
            f"nonce of {from_address}",
        )

        try:
            estimate = fn.estimate_gas({"from": from_address})
            # Add 10% buffer to gas estimate
            gas = min(int(estimate * 1.1), gas_cap)
        except Exception as e:
            gas = gas_cap
            self.logger.warning(f"Gas estimation failed, using cap: {gas}. Error: {e}")

        tx_params = {
            "from": from_address,
            "nonce": nonce,
            "gas": gas,
            "gasPrice": gas_price,
        }
        if self.expected_chain_id is not None:
            tx_params["chainId"] = int(self.expected_chain_id)

        try:
            tx = fn.build_transaction(tx_params)
            signed_tx = submitter.sign_transaction(tx)
        except Exception as e:
            self.logger.error(f"Transaction signing failed: {e}")
            raise SubmissionError(f"Failed to sign transaction: {e}") from e

        try:
            tx_hash = to_hex(self.w3.eth.send_raw_transaction(signed_tx.raw_transaction))
        except Exception as e:
            self.logger.error(f"Failed to send transaction: {e}")
            raise SubmissionError(f"Failed to send transaction: {e}") from e
        self.logger.info(f"Transaction sent: {tx_hash} (sequence {params.sequence_number})")

        try:
            receipt = self.w3.eth.wait_for_transaction_receipt(
                tx_hash,
                timeout=self.receipt_timeout,
                poll_latency=self.poll_interval,
            )
        except TimeExhausted as e:
            self.logger.error(f"No receipt for {tx_hash} after {self.receipt_timeout}s")
            raise SubmissionTimeout(
                f"Transaction {tx_hash} not mined within {self.receipt_timeout}s",
                tx_hash=tx_hash,
            ) from e
        return self._convert_receipt(receipt)

    def _convert_receipt(self, web3_receipt: Web3TxReceipt) -> TxReceipt:
        """
        Convert Web3 receipt to our TxReceipt model
        """
        receipt_dict = dict(web3_receipt)

        # Convert bytes to hex strings
        for key, value in list(receipt_dict.items()):
            if isinstance(value, bytes):
                receipt_dict[key] = to_hex(value)
        receipt_dict["logs"] = [dict(log) for log in receipt_dict.get("logs") or []]

        return TxReceipt.model_validate(receipt_dict)


# Module-level chain client cache with thread safety
_chain_client_cache: Dict[Any, ChainClient] = {}
_cache_lock = threading.RLock()


def get_chain_client(rpc_url: str, expected_chain_id: Optional[int] = None, **kwargs) -> ChainClient:
    """
    Get or create a chain client from the module-level cache.

    Args:
        rpc_url: JSON-RPC endpoint URL
        expected_chain_id: Chain id the endpoint must report (optional)
        **kwargs: Passed to ChainClient when a new client is created

    Returns:
        ChainClient instance
    """
    cache_key = (rpc_url, expected_chain_id)
    with _cache_lock:
        if cache_key not in _chain_client_cache:
            _chain_client_cache[cache_key] = ChainClient(rpc_url, expected_chain_id=expected_chain_id, **kwargs)
        return _chain_client_cache[cache_key]


def clear_chain_client_cache() -> None:
    with _cache_lock:
        _chain_client_cache.clear()
