"""
Tests for the authorization service client.
"""
import urllib.parse
from unittest.mock import MagicMock

import pytest
import requests
from eth_account import Account
from eth_account.messages import encode_defunct

from multisig_sdk.auth import AuthServiceClient, WalletIdentity, get_auth_client, protection_message
from multisig_sdk.auth.client import LOGIN_PATH, _sanitize
from multisig_sdk.exceptions import AuthChallengeExpired, AuthServiceError, AuthServiceUnavailable
from multisig_sdk.signer import LocalSigner

from conftest import COSIGNER_ADDRESS, COSIGNER_KEY, EXECUTOR, TEST_API_KEY, TEST_AUTH_URL, TOKEN

LOGIN_URL = TEST_AUTH_URL + LOGIN_PATH
CHALLENGE_MESSAGE = "Sign in to the authorization service\nNonce: 8f2c"


@pytest.fixture
def identity():
    return WalletIdentity(
        wallet_address=EXECUTOR,
        wallet_owner=COSIGNER_ADDRESS,
        chain_id=137,
        wallet_type="multisig",
    )


@pytest.fixture
def signer():
    return LocalSigner(COSIGNER_KEY)


@pytest.fixture
def client():
    return AuthServiceClient(TEST_AUTH_URL, TEST_API_KEY)


@pytest.fixture
def logged_in():
    return AuthServiceClient(TEST_AUTH_URL, TEST_API_KEY, access_token="token-123")


def _query(request):
    return dict(urllib.parse.parse_qsl(urllib.parse.urlparse(request.url).query))


def _mock_login(requests_mock, token="token-abc"):
    requests_mock.post(LOGIN_URL, [
        {"json": {"Session": "session-1", "ChallengeParameters": {"message": CHALLENGE_MESSAGE}}},
        {"json": {"AuthenticationResult": {"AccessToken": token}}},
    ])


class TestInitialization:

    def test_requires_https(self):
        with pytest.raises(ValueError, match="https"):
            AuthServiceClient("http://auth.example.com", TEST_API_KEY)

    def test_allows_localhost(self):
        client = AuthServiceClient("http://localhost:8080", TEST_API_KEY)
        assert client.base_url == "http://localhost:8080/"

    def test_requires_api_key(self):
        with pytest.raises(ValueError, match="api_key"):
            AuthServiceClient(TEST_AUTH_URL, "")

    def test_base_url_normalized(self):
        client = AuthServiceClient("https://auth.example.com", TEST_API_KEY)
        assert client.base_url == TEST_AUTH_URL

    def test_get_auth_client_cache(self):
        first = get_auth_client(TEST_AUTH_URL, TEST_API_KEY)
        assert get_auth_client(TEST_AUTH_URL, TEST_API_KEY) is first
        assert get_auth_client(TEST_AUTH_URL, "other-key") is not first

    def test_get_auth_client_timeout(self):
        assert get_auth_client(TEST_AUTH_URL, TEST_API_KEY, timeout=5).timeout == 5

    def test_post_is_not_retried(self, client):
        retries = client.session.get_adapter(TEST_AUTH_URL).max_retries
        assert "POST" not in retries.allowed_methods
        assert not retries.is_retry("POST", 503)
        assert retries.is_retry("GET", 503)
        assert retries.is_retry("PUT", 502)


class TestLogin:

    def test_login_flow(self, requests_mock, client, identity, signer):
        _mock_login(requests_mock)

        token = client.login(identity, signer)

        assert token == "token-abc"
        assert client.access_token == "token-abc"
        assert requests_mock.call_count == 2

        first, second = requests_mock.request_history
        assert first.headers["x-api-key"] == TEST_API_KEY
        assert "Authorization" not in first.headers
        assert first.json() == {
            "wallet_address": EXECUTOR,
            "wallet_owner": COSIGNER_ADDRESS,
            "chain_id": 137,
            "wallet_type": "multisig",
        }

        body = second.json()
        assert body["sessionToken"] == "session-1"
        assert body["wallet_address"] == EXECUTOR
        assert body["challengeResponse"]["network_id"] == 137

        # The challenge is signed by the wallet owner with EIP-191
        recovered = Account.recover_message(
            encode_defunct(text=CHALLENGE_MESSAGE),
            signature=body["challengeResponse"]["signature"],
        )
        assert recovered == COSIGNER_ADDRESS

    def test_token_sent_after_login(self, requests_mock, client, identity, signer):
        _mock_login(requests_mock)
        requests_mock.get(TEST_AUTH_URL + "auth/get-nonce", json={"nonce": "42"})

        client.login(identity, signer)
        client.get_nonce(EXECUTOR)

        assert requests_mock.last_request.headers["Authorization"] == "Bearer token-abc"

    def test_signer_mismatch_warns(self, requests_mock, identity):
        _mock_login(requests_mock)
        client = AuthServiceClient(TEST_AUTH_URL, TEST_API_KEY, logger=MagicMock())
        other = LocalSigner("0x" + "11" * 32)

        client.login(identity, other)

        assert "differs from wallet owner" in client.logger.warning.call_args[0][0]

    def test_malformed_challenge(self, requests_mock, client, identity):
        requests_mock.post(LOGIN_URL, json={"Session": "session-1"})
        with pytest.raises(AuthServiceError, match="Malformed login challenge"):
            client.begin_challenge(identity)

    @pytest.mark.parametrize("status", [400, 401, 403])
    def test_expired_challenge(self, requests_mock, client, identity, status):
        requests_mock.post(LOGIN_URL, status_code=status, json={"message": "Invalid session"})
        challenge = MagicMock(session_token="stale-session")
        with pytest.raises(AuthChallengeExpired) as exc_info:
            client.complete_challenge(identity, challenge, "0xsig")
        assert exc_info.value.status_code == status
        assert client.access_token is None

    def test_other_client_error_is_not_expiry(self, requests_mock, client, identity):
        requests_mock.post(LOGIN_URL, status_code=422, json={"message": "bad"})
        with pytest.raises(AuthServiceError) as exc_info:
            client.complete_challenge(identity, MagicMock(session_token="s"), "0xsig")
        assert not isinstance(exc_info.value, AuthChallengeExpired)
        assert exc_info.value.status_code == 422

    def test_missing_access_token(self, requests_mock, client, identity):
        requests_mock.post(LOGIN_URL, json={"AuthenticationResult": {}})
        with pytest.raises(AuthServiceError, match="Missing access token"):
            client.complete_challenge(identity, MagicMock(session_token="s"), "0xsig")

    def test_empty_access_token(self, requests_mock, client, identity):
        requests_mock.post(LOGIN_URL, json={"AuthenticationResult": {"AccessToken": ""}})
        with pytest.raises(AuthServiceError, match="Empty access token"):
            client.complete_challenge(identity, MagicMock(session_token="s"), "0xsig")


class TestTransportErrors:

    def test_not_logged_in(self, client):
        with pytest.raises(AuthServiceError, match="Not logged in"):
            client.get_nonce(EXECUTOR)

    def test_server_error(self, requests_mock, logged_in):
        requests_mock.get(TEST_AUTH_URL + "auth/get-nonce", status_code=503)
        with pytest.raises(AuthServiceUnavailable) as exc_info:
            logged_in.get_nonce(EXECUTOR)
        assert exc_info.value.status_code == 503

    def test_connection_error(self, requests_mock, logged_in):
        requests_mock.get(TEST_AUTH_URL + "auth/get-nonce", exc=requests.ConnectionError("refused"))
        with pytest.raises(AuthServiceUnavailable, match="unreachable"):
            logged_in.get_nonce(EXECUTOR)

    def test_invalid_json(self, requests_mock, logged_in):
        requests_mock.get(TEST_AUTH_URL + "auth/get-nonce", text="<html>oops</html>")
        with pytest.raises(AuthServiceError, match="Invalid JSON"):
            logged_in.get_nonce(EXECUTOR)


class TestWalletEndpoints:

    def test_get_app_configuration(self, requests_mock, logged_in):
        requests_mock.get(TEST_AUTH_URL + "failsafe/app-configuration", json={"value": TOKEN})

        assert logged_in.get_app_configuration(137, "FailSafeWalletAddress") == TOKEN
        assert _query(requests_mock.last_request) == {"chain_id": "137", "name": "FailSafeWalletAddress"}

    def test_get_app_configuration_missing_value(self, requests_mock, logged_in):
        requests_mock.get(TEST_AUTH_URL + "failsafe/app-configuration", json={})
        with pytest.raises(AuthServiceError, match="Missing value"):
            logged_in.get_app_configuration(137, "FailSafeWalletAddress")

    def test_get_wallet_balances(self, requests_mock, logged_in):
        balances = [{"token_address": TOKEN, "balance": "1000"}]
        requests_mock.get(TEST_AUTH_URL + "wallets/balance", json=balances)

        assert logged_in.get_wallet_balances(137, EXECUTOR) == balances
        assert _query(requests_mock.last_request) == {"chain_id": "137", "wallet_address": EXECUTOR}

    def test_get_recovery_vault(self, requests_mock, logged_in):
        requests_mock.get(TEST_AUTH_URL + "wallets/failsafewallet", json={"failsafeWallet": TOKEN})
        assert logged_in.get_recovery_vault(137, EXECUTOR) == TOKEN

    def test_get_recovery_vault_missing(self, requests_mock, logged_in):
        requests_mock.get(TEST_AUTH_URL + "wallets/failsafewallet", json={"failsafeWallet": None})
        with pytest.raises(AuthServiceError, match="No recovery vault"):
            logged_in.get_recovery_vault(137, EXECUTOR)

    def test_get_recovery_vault_balances(self, requests_mock, logged_in):
        requests_mock.get(TEST_AUTH_URL + "failsafe/recovery-vault/balances", json={"tokens": []})
        assert logged_in.get_recovery_vault_balances(137) == {"tokens": []}

    def test_prepare_vault_withdrawal(self, requests_mock, logged_in):
        requests_mock.post(TEST_AUTH_URL + "failsafe/recovery-vault/withdraw-token", json={"signature": "0xabc"})

        result = logged_in.prepare_vault_withdrawal(137, EXECUTOR, TOKEN, "0xde0b6b3a7640000")

        assert result == {"signature": "0xabc"}
        body = requests_mock.last_request.json()
        assert body["token_contract"] == TOKEN
        assert body["withdraw_amount"] == "0xde0b6b3a7640000"
        assert body["auth_code"] == "000000"
        assert body["token_interface"] == "erc20"


class TestProtection:

    def test_get_nonce_is_string(self, requests_mock, logged_in):
        requests_mock.get(TEST_AUTH_URL + "auth/get-nonce", json={"nonce": 123456})
        assert logged_in.get_nonce(EXECUTOR) == "123456"

    def test_get_nonce_missing(self, requests_mock, logged_in):
        requests_mock.get(TEST_AUTH_URL + "auth/get-nonce", json={})
        with pytest.raises(AuthServiceError, match="Missing nonce"):
            logged_in.get_nonce(EXECUTOR)

    def test_set_protection(self, requests_mock, logged_in, signer):
        requests_mock.get(TEST_AUTH_URL + "auth/get-nonce", json={"nonce": "777"})
        requests_mock.put(TEST_AUTH_URL + "wallets/protected", json={"status": "ok"})

        result = logged_in.set_protection(137, EXECUTOR, TOKEN, "1000", signer, protected_state="p")

        assert result == {"status": "ok"}
        body = requests_mock.last_request.json()
        assert requests_mock.last_request.method == "PUT"
        assert body["switch_value"] is True
        assert body["protected_state"] == "p"
        assert body["easy_protect_token"] is False
        recovered = Account.recover_message(
            encode_defunct(text=protection_message("777")),
            signature=body["signing_hash"],
        )
        assert recovered == COSIGNER_ADDRESS

    def test_set_protection_rejects_unknown_state(self, requests_mock, logged_in, signer):
        with pytest.raises(ValueError, match="protected_state"):
            logged_in.set_protection(137, EXECUTOR, TOKEN, "1000", signer, protected_state="x")
        assert not requests_mock.called

    def test_remove_protection(self, requests_mock, logged_in, signer):
        requests_mock.get(TEST_AUTH_URL + "auth/get-nonce", json={"nonce": "778"})
        requests_mock.post(TEST_AUTH_URL + "wallets/protected/remove", json={"status": "removed"})

        assert logged_in.remove_protection(137, EXECUTOR, TOKEN, signer) == {"status": "removed"}
        body = requests_mock.last_request.json()
        assert set(body) == {"wallet_address", "token_address", "chain_id", "signing_hash"}

    def test_protection_message(self):
        assert protection_message("42") == "FailSafe verification\nOTP: 42\nNever share your OTP with anyone."


def test_sanitize_redacts_secrets():
    payload = {
        "sessionToken": "abcdef",
        "challengeResponse": {"signature": "0x" + "ab" * 65, "network_id": 137},
        "wallet_address": EXECUTOR,
    }
    sanitized = _sanitize(payload)
    assert sanitized["sessionToken"] == "[REDACTED - 6 chars]"
    assert sanitized["challengeResponse"]["signature"].startswith("[REDACTED")
    assert sanitized["challengeResponse"]["network_id"] == 137
    assert sanitized["wallet_address"] == EXECUTOR
