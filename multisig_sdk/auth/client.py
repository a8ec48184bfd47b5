"""
AuthServiceClient - challenge/response login and wallet protection endpoints
of the authorization service.
"""
import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional

import requests
from pydantic import BaseModel, Field, ValidationError
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ..config import validate_url
from ..exceptions import AuthChallengeExpired, AuthServiceError, AuthServiceUnavailable

logger = logging.getLogger(__name__)

LOGIN_PATH = "auth/login"
NONCE_PATH = "auth/get-nonce"
APP_CONFIGURATION_PATH = "failsafe/app-configuration"
WALLET_BALANCE_PATH = "wallets/balance"
RECOVERY_VAULT_PATH = "wallets/failsafewallet"
RECOVERY_VAULT_BALANCES_PATH = "failsafe/recovery-vault/balances"
VAULT_WITHDRAWAL_PATH = "failsafe/recovery-vault/withdraw-token"
PROTECTION_PATH = "wallets/protected"
REMOVE_PROTECTION_PATH = "wallets/protected/remove"

PROTECTION_MESSAGE_TEMPLATE = "FailSafe verification\nOTP: {nonce}\nNever share your OTP with anyone."

SAFE_MODE = "f"
PARTIAL_MODE = "p"

EXPIRED_CHALLENGE_STATUSES = (400, 401, 403)
REDACTED_FIELDS = ("signature", "signing_hash", "sessionToken", "Session", "AccessToken", "auth_code")


@dataclass(frozen=True)
class WalletIdentity:
    """The multisig wallet and the key holder that logs in for it."""
    wallet_address: str
    wallet_owner: str
    chain_id: int
    wallet_type: str


class LoginChallenge(BaseModel):
    """First-step response of the login handshake."""
    session_token: str = Field(..., alias="Session")
    message: str

    class Config:
        populate_by_name = True


def protection_message(nonce: str) -> str:
    """Text signed to prove wallet ownership when changing protection."""
    return PROTECTION_MESSAGE_TEMPLATE.format(nonce=nonce)


def _sanitize(payload: Any) -> Any:
    """
    Redact signatures and tokens for logging
    """
    if isinstance(payload, dict):
        result = {}
        for key, value in payload.items():
            if key in REDACTED_FIELDS:
                result[key] = f"[REDACTED - {len(str(value))} chars]"
            else:
                result[key] = _sanitize(value)
        return result
    if isinstance(payload, list):
        return [_sanitize(item) for item in payload]
    return payload


class AuthServiceClient:
    """
    Client for the authorization service REST API.

    Login is a 2 step process: request a challenge for the wallet identity,
    sign its message with the wallet owner's key (EIP-191), then redeem the
    signature for a bearer token. The token is kept on the client and sent
    with every authenticated call.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        access_token: Optional[str] = None,
        retry_count: int = 3,
        timeout: int = 30,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize the AuthServiceClient

        Args:
            base_url: Service base URL (e.g., "https://api.example.com/")
            api_key: API key sent as the x-api-key header
            access_token: Bearer token from an earlier login (optional)
            retry_count: Number of retries for HTTP requests
            timeout: Timeout for HTTP requests in seconds
            logger: Optional logger instance to use for debug/info logging

        Raises:
            ValueError: If the URL doesn't use https (unless it's a loopback host)
            ValueError: If no API key is given
        """
        validate_url("base_url", base_url)
        if not api_key:
            raise ValueError("api_key is required")

        self.base_url = base_url.rstrip("/") + "/"
        self.api_key = api_key
        self.access_token = access_token
        self.timeout = timeout
        self.logger = logger or logging.getLogger(__name__)

        # Setup HTTP session with retries; POST is never retried once it reaches the server
        self.session = requests.Session()
        retries = Retry(
            total=retry_count,
            backoff_factor=0.5,
            status_forcelist=[500, 502, 503, 504],
            allowed_methods=["GET", "PUT"],
            raise_on_status=False,
            connect=retry_count,
            read=retry_count,
            other=retry_count
        )
        self.session.mount("http://", HTTPAdapter(max_retries=retries))
        self.session.mount("https://", HTTPAdapter(max_retries=retries))

    def _headers(self, authenticated: bool) -> Dict[str, str]:
        headers = {"x-api-key": self.api_key}
        if authenticated:
            if not self.access_token:
                raise AuthServiceError("Not logged in: call login() or set access_token first")
            headers["Authorization"] = f"Bearer {self.access_token}"
        return headers

    def _request(
        self,
        method: str,
        path: str,
        authenticated: bool = True,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> Any:
        url = f"{self.base_url}{path}"
        headers = self._headers(authenticated)
        self.logger.debug(f"{method} {url} params={params} body={_sanitize(json)}")

        try:
            response = self.session.request(
                method,
                url,
                headers=headers,
                params=params,
                json=json,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            self.logger.error(f"Authorization service request failed: {e}")
            raise AuthServiceUnavailable(f"Authorization service unreachable: {e}") from e

        if response.status_code >= 500:
            raise AuthServiceUnavailable(
                f"Authorization service error {response.status_code} for {path}",
                status_code=response.status_code,
            )
        if response.status_code >= 400:
            raise AuthServiceError(
                f"Authorization service rejected {method} {path}: {response.status_code} {response.text[:200]}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise AuthServiceError(f"Invalid JSON from authorization service: {e}") from e
        self.logger.debug(f"Response from {path}: {_sanitize(data)}")
        return data

    def begin_challenge(self, identity: WalletIdentity) -> LoginChallenge:
        """
        Request a login challenge for a wallet identity.

        Returns:
            The session token and the message to sign

        Raises:
            AuthServiceUnavailable: If the service cannot be reached
            AuthServiceError: If the response has no challenge
        """
        data = self._request("POST", LOGIN_PATH, authenticated=False, json=asdict(identity))
        try:
            return LoginChallenge(
                Session=data["Session"],
                message=data["ChallengeParameters"]["message"],
            )
        except (KeyError, TypeError, ValidationError) as e:
            raise AuthServiceError(f"Malformed login challenge response: {e}") from e

    def complete_challenge(self, identity: WalletIdentity, challenge: LoginChallenge, signature: str) -> str:
        """
        Redeem a signed challenge for an access token.

        Args:
            identity: The identity the challenge was issued for
            challenge: Result of begin_challenge
            signature: 0x-hex EIP-191 signature of ``challenge.message``

        Returns:
            Bearer access token, also stored on the client

        Raises:
            AuthChallengeExpired: If the session is no longer accepted
            AuthServiceUnavailable: If the service cannot be reached
            AuthServiceError: If the response carries no token
        """
        payload = {
            "challengeResponse": {
                "signature": signature,
                "network_id": identity.chain_id,
            },
            "sessionToken": challenge.session_token,
            **asdict(identity),
        }
        try:
            data = self._request("POST", LOGIN_PATH, authenticated=False, json=payload)
        except AuthServiceUnavailable:
            raise
        except AuthServiceError as e:
            if e.status_code in EXPIRED_CHALLENGE_STATUSES:
                raise AuthChallengeExpired(
                    f"Login challenge was not accepted: {e}", status_code=e.status_code
                ) from e
            raise

        try:
            token = data["AuthenticationResult"]["AccessToken"]
        except (KeyError, TypeError) as e:
            raise AuthServiceError(f"Missing access token in login response: {e}") from e
        if not token:
            raise AuthServiceError("Empty access token in login response")

        self.access_token = token
        return token

    def login(self, identity: WalletIdentity, signer) -> str:
        """
        Run the full login handshake with a signer for the wallet owner.

        Returns:
            Bearer access token
        """
        if signer.address.lower() != identity.wallet_owner.lower():
            self.logger.warning(
                f"Signer {signer.address} differs from wallet owner {identity.wallet_owner}; the service may reject it"
            )
        challenge = self.begin_challenge(identity)
        signature = signer.sign_message(challenge.message)
        token = self.complete_challenge(identity, challenge, signature)
        self.logger.info(f"Logged in for wallet {identity.wallet_address} on chain {identity.chain_id}")
        return token

    def get_app_configuration(self, chain_id: int, name: str) -> Any:
        """Read a named configuration value (e.g. a contract address) for a chain."""
        data = self._request("GET", APP_CONFIGURATION_PATH, params={"chain_id": chain_id, "name": name})
        if not isinstance(data, dict) or "value" not in data:
            raise AuthServiceError(f"Missing value for app configuration '{name}'")
        return data["value"]

    def get_wallet_balances(self, chain_id: int, wallet_address: str) -> List[Dict[str, Any]]:
        return self._request(
            "GET", WALLET_BALANCE_PATH, params={"chain_id": chain_id, "wallet_address": wallet_address}
        )

    def get_recovery_vault(self, chain_id: int, wallet_address: str) -> str:
        """Address of the recovery vault linked with a multisig wallet."""
        data = self._request(
            "GET", RECOVERY_VAULT_PATH, params={"wallet_address": wallet_address, "chain_id": chain_id}
        )
        if not isinstance(data, dict) or not data.get("failsafeWallet"):
            raise AuthServiceError(f"No recovery vault linked with {wallet_address}")
        return data["failsafeWallet"]

    def get_recovery_vault_balances(self, chain_id: int) -> Dict[str, Any]:
        return self._request("GET", RECOVERY_VAULT_BALANCES_PATH, params={"chain_id": chain_id})

    def prepare_vault_withdrawal(
        self,
        chain_id: int,
        wallet_address: str,
        token_address: str,
        amount_wei: str,
        auth_code: str = "000000",
    ) -> Dict[str, Any]:
        """
        Request the signed parameters for withdrawing a token from the recovery vault.

        Args:
            amount_wei: Amount in wei as a hex string, as the service expects
            auth_code: 6 digit 2FA code when 2FA is enabled for the wallet
        """
        payload = {
            "wallet_address": wallet_address,
            "token_contract": token_address,
            "safe_wallet": wallet_address,
            "withdraw_amount": amount_wei,
            "chain_id": chain_id,
            "token_interface": "erc20",
            "auth_code": auth_code,
        }
        return self._request("POST", VAULT_WITHDRAWAL_PATH, json=payload)

    def get_nonce(self, wallet_address: str) -> str:
        """One-time nonce for the next protection change; each change invalidates it."""
        data = self._request("GET", NONCE_PATH, params={"wallet_address": wallet_address})
        if not isinstance(data, dict) or data.get("nonce") in (None, ""):
            raise AuthServiceError("Missing nonce in response")
        return str(data["nonce"])

    def _signed_nonce(self, wallet_address: str, signer) -> str:
        nonce = self.get_nonce(wallet_address)
        return signer.sign_message(protection_message(nonce))

    def set_protection(
        self,
        chain_id: int,
        wallet_address: str,
        token_address: str,
        balance: Any,
        signer,
        protected_state: str = SAFE_MODE,
        easy_protect: bool = False,
    ) -> Dict[str, Any]:
        """
        Turn on protection for a token held by a multisig wallet.

        Args:
            balance: Token balance as reported by get_wallet_balances
            signer: Signer for one of the wallet's keys
            protected_state: "f" for safe mode, "p" for partial mode
        """
        if protected_state not in (SAFE_MODE, PARTIAL_MODE):
            raise ValueError(f"protected_state must be '{SAFE_MODE}' or '{PARTIAL_MODE}'")
        payload = {
            "wallet_address": wallet_address,
            "token_address": token_address,
            "switch_value": True,
            "balance": balance,
            "chain_id": chain_id,
            "signing_hash": self._signed_nonce(wallet_address, signer),
            "easy_protect_token": easy_protect,
            "protected_state": protected_state,
        }
        result = self._request("PUT", PROTECTION_PATH, json=payload)
        self.logger.info(f"Protection enabled for token {token_address} of {wallet_address}")
        return result

    def remove_protection(self, chain_id: int, wallet_address: str, token_address: str, signer) -> Dict[str, Any]:
        """Turn off protection for a token. A fresh nonce is fetched and signed."""
        payload = {
            "wallet_address": wallet_address,
            "token_address": token_address,
            "chain_id": chain_id,
            "signing_hash": self._signed_nonce(wallet_address, signer),
        }
        result = self._request("POST", REMOVE_PROTECTION_PATH, json=payload)
        self.logger.info(f"Protection removed for token {token_address} of {wallet_address}")
        return result
