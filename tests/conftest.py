"""
Pytest fixtures for the multisig SDK tests.
"""
import time

import pytest
from eth_account import Account
from web3.providers.rpc import HTTPProvider

from multisig_sdk import auth, chain
from multisig_sdk._rate_limited_log import reset_rate_limits
from multisig_sdk.config import NetworkConfig
from multisig_sdk.exceptions import NetworkError, SubmissionTimeout
from multisig_sdk.models import TxReceipt

# Constants for testing
TEST_RPC_URL = "https://rpc.example.com"
TEST_AUTH_URL = "https://auth.example.com/"
TEST_API_KEY = "test-api-key"

# Well-known test key pair
COSIGNER_KEY = "0x4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"
COSIGNER_ADDRESS = "0x2c7536E3605D9C16a7a3D7b1898e529396a65c23"

SUBMITTER_KEY = "0x0123456789abcdef0123456789abcdef0123456789abcdef0123456789abcdef"
SUBMITTER_ADDRESS = Account.from_key(SUBMITTER_KEY).address

EXECUTOR = "0x1234567890123456789012345678901234567890"
TARGET = "0x" + "aa" * 20
TOKEN = "0x" + "bb" * 20
SPENDER = "0x" + "cc" * 20

FIXED_NOW = 1_700_000_000

STALE_REASON = "Sequence ID already used"


# 1) Make time.sleep instantaneous so retries don't slow the suite down
@pytest.fixture(autouse=True)
def _fast_sleep(monkeypatch):
    monkeypatch.setattr(time, "sleep", lambda *_a, **_kw: None)


@pytest.fixture(autouse=True)
def _patch_http_provider(monkeypatch):
    """
    Stub every Web3 HTTP call so no DNS / network traffic is triggered.
    """
    def _dummy(self, method, params=None, _=None):
        if method == "eth_chainId":
            return {"jsonrpc": "2.0", "id": 1, "result": "0x89"}        # polygon
        if method == "eth_gasPrice":
            return {"jsonrpc": "2.0", "id": 1, "result": "0x3b9aca00"}  # 1 gwei
        return {"jsonrpc": "2.0", "id": 1, "result": "0x0"}

    monkeypatch.setattr(HTTPProvider, "make_request", _dummy, raising=True)


@pytest.fixture(autouse=True)
def _reset_module_state():
    """Clear module-level caches between tests."""
    reset_rate_limits()
    NetworkConfig._networks_cache = None
    chain.clear_chain_client_cache()
    auth.clear_auth_client_cache()
    yield
    NetworkConfig._networks_cache = None


class FakeChainClient:
    """
    In-memory stand-in for ChainClient modelling a WalletSimple executor.

    ``simulation_results`` and ``receipt_statuses`` are consumed in order;
    when empty, simulations pass and receipts succeed. A stale-sequence
    simulation result advances the on-chain counter, as if another party
    had just used the id, unless ``advance_on_stale`` is False.
    """

    def __init__(self, next_sequence=5, gas_price=100, chain_id=137, advance_on_stale=True):
        self.next_sequence = next_sequence
        self.advance_on_stale = advance_on_stale
        self.gas_price = gas_price
        self.chain_id = chain_id
        self.simulation_results = []
        self.receipt_statuses = []
        self.replay_reasons = []
        self.timeout = False
        self.counter_reads = 0
        self.chain_checks = 0
        self.simulated = []
        self.submitted = []

    def assert_chain_id(self, expected=None):
        self.chain_checks += 1
        if expected is not None and expected != self.chain_id:
            raise NetworkError(f"Chain ID mismatch: expected {expected}, got {self.chain_id}")

    def get_counter_value(self, executor_address):
        self.counter_reads += 1
        return self.next_sequence

    def get_baseline_gas_price(self):
        return self.gas_price

    def simulate_call(self, executor_address, params, from_address, block_identifier="latest"):
        self.simulated.append((params, block_identifier))
        if block_identifier != "latest":
            return self.replay_reasons.pop(0) if self.replay_reasons else None
        reason = self.simulation_results.pop(0) if self.simulation_results else None
        if self.advance_on_stale and reason is not None and "sequence id" in reason.lower():
            self.next_sequence = max(self.next_sequence, params.sequence_number + 1)
        return reason

    def submit_call(self, executor_address, params, submitter, gas_cap, gas_price):
        self.submitted.append({
            "params": params,
            "from": submitter.address,
            "gas_cap": gas_cap,
            "gas_price": gas_price,
        })
        tx_hash = "0x%064x" % len(self.submitted)
        if self.timeout:
            raise SubmissionTimeout(f"Transaction {tx_hash} not mined", tx_hash=tx_hash)
        status = self.receipt_statuses.pop(0) if self.receipt_statuses else 1
        if status == 1:
            self.next_sequence = max(self.next_sequence, params.sequence_number + 1)
        return TxReceipt.model_validate({
            "transactionHash": tx_hash,
            "blockNumber": 1000 + len(self.submitted),
            "blockHash": "0x" + "11" * 32,
            "status": status,
            "gasUsed": 85000,
            "from": submitter.address,
            "to": executor_address,
        })


@pytest.fixture
def fake_chain():
    return FakeChainClient()


@pytest.fixture
def fixed_clock():
    return lambda: FIXED_NOW
