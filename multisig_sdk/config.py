"""
Configuration for the multisig SDK.

Network endpoints ship in ``networks.json``; deployment-specific settings
come from the environment.
"""
import importlib.resources
import json
import logging
import os
import urllib.parse
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from .chains import profile_for

logger = logging.getLogger(__name__)

LOOPBACK_HOSTS = ("localhost", "127.0.0.1", "::1")

DEFAULT_GAS_PRICE_INCREASE_PERCENT = 30
DEFAULT_GAS_CAP = 400000


def validate_url(name: str, url: str) -> str:
    """
    Require https:// unless the URL points at a loopback host.

    Raises:
        ValueError: If the URL is plain http to a remote host or malformed
    """
    if not isinstance(url, str) or not url:
        raise ValueError(f"{name} must be a non-empty URL")
    parsed = urllib.parse.urlparse(url)
    host = parsed.hostname or ""
    if parsed.scheme == "https":
        return url
    if parsed.scheme == "http" and host in LOOPBACK_HOSTS:
        return url
    raise ValueError(f"{name} must use https:// for security (got: {parsed.scheme}://)")


class NetworkConfig:
    """Access to the packaged network table."""

    _networks_cache: Optional[Dict[str, Dict[str, Any]]] = None

    @classmethod
    def load_networks(cls) -> Dict[str, Dict[str, Any]]:
        """
        Load network definitions, caching them after the first read.

        Returns:
            Mapping of network name to its configuration
        """
        if cls._networks_cache is None:
            resource = importlib.resources.files("multisig_sdk").joinpath("networks.json")
            with resource.open("r", encoding="utf-8") as f:
                cls._networks_cache = json.load(f)
            logger.debug(f"Loaded {len(cls._networks_cache)} network definitions")
        return cls._networks_cache

    @classmethod
    def get_network(cls, network: str) -> Dict[str, Any]:
        """
        Raises:
            ValueError: If the network is unknown
        """
        networks = cls.load_networks()
        if network not in networks:
            available = ", ".join(sorted(networks))
            raise ValueError(f"Network '{network}' not found. Available networks: {available}")
        return networks[network]

    @classmethod
    def get_network_for_chain(cls, chain_id: int) -> str:
        """
        Find the network name registered for a chain id.

        Raises:
            ValueError: If no network uses the chain id
        """
        for name, network in cls.load_networks().items():
            if network.get("chainId") == chain_id:
                return name
        raise ValueError(f"No network configured for chain id {chain_id}")

    @classmethod
    def get_chain_id(cls, network: str) -> int:
        return int(cls.get_network(network)["chainId"])

    @classmethod
    def get_rpc_url(cls, network: str, override: Optional[str] = None) -> str:
        """
        Resolve the RPC URL for a network.

        Precedence: explicit override, then ``<NETWORK>_RPC_URL`` in the
        environment, then the packaged default.
        """
        if override:
            return override
        env_var = f"{network.upper().replace('-', '_')}_RPC_URL"
        env_value = os.environ.get(env_var)
        if env_value:
            return env_value
        return cls.get_network(network)["rpc"]

    @classmethod
    def get_explorer_tx_url(cls, network: str, tx_hash: str) -> Optional[str]:
        explorer = cls.get_network(network).get("explorer")
        if not explorer:
            return None
        return f"{explorer.rstrip('/')}/tx/{tx_hash}"


class AuthorizerSettings(BaseModel):
    """Deployment settings for an authorizer process."""

    chain_id: int
    gas_price_increase_percent: int = Field(DEFAULT_GAS_PRICE_INCREASE_PERCENT, ge=0)
    gas_cap: int = Field(DEFAULT_GAS_CAP, gt=0)
    rpc_url: Optional[str] = None
    multisig_contract_address: Optional[str] = None
    auth_api_baseurl: Optional[str] = None
    auth_api_key: Optional[str] = Field(None, repr=False)
    chain_timeout: int = Field(30, gt=0)
    receipt_timeout: int = Field(120, gt=0)

    @field_validator("chain_id")
    @classmethod
    def _supported_chain(cls, value: int) -> int:
        profile_for(value)
        return value

    @field_validator("rpc_url", "auth_api_baseurl")
    @classmethod
    def _secure_url(cls, value: Optional[str], info) -> Optional[str]:
        if value is not None:
            validate_url(info.field_name, value)
        return value

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "AuthorizerSettings":
        """
        Build settings from environment variables.

        ``CHAIN_ID`` is required. ``RPC_URL`` falls back to the packaged
        network table for the chain.

        Raises:
            UnsupportedChain: If CHAIN_ID is not a supported chain
            ValueError: If a variable is missing or invalid
        """
        env = os.environ if environ is None else environ
        if not env.get("CHAIN_ID"):
            raise ValueError("CHAIN_ID environment variable is required")
        try:
            chain_id = int(env["CHAIN_ID"])
        except ValueError:
            raise ValueError(f"CHAIN_ID must be an integer, got {env['CHAIN_ID']!r}") from None
        profile_for(chain_id)

        values: Dict[str, Any] = {"chain_id": chain_id}
        for field_name in (
            "gas_price_increase_percent",
            "gas_cap",
            "rpc_url",
            "multisig_contract_address",
            "auth_api_baseurl",
            "auth_api_key",
            "chain_timeout",
            "receipt_timeout",
        ):
            raw = env.get(field_name.upper())
            if raw not in (None, ""):
                values[field_name] = raw

        try:
            settings = cls(**values)
        except ValidationError as e:
            raise ValueError(f"Invalid authorizer settings: {e}") from e

        if settings.rpc_url is None:
            network = NetworkConfig.get_network_for_chain(settings.chain_id)
            settings = settings.model_copy(update={"rpc_url": NetworkConfig.get_rpc_url(network)})
        return settings
