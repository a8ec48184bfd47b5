"""
Chain parameter registry.

Maps each supported chain id to the network-id prefixes the WalletSimple
executor mixes into its operation hash. The prefixes must match the
deployed contract exactly, otherwise signatures are never accepted.
"""
from dataclasses import dataclass
from enum import IntEnum
from types import MappingProxyType
from typing import Mapping, Union

from .exceptions import UnsupportedChain


class SupportedChain(IntEnum):
    """Closed set of chains with a known executor deployment."""
    POLYGON = 137
    HARDHAT = 31337
    CELO = 42220


@dataclass(frozen=True)
class ChainProfile:
    """Chain-specific prefixes used when hashing multisig operations."""
    chain_id: int
    name: str
    domain_prefix: str
    batch_prefix: str
    token_prefix: str
    executor_contract_kind: str


_PROFILES = {
    SupportedChain.HARDHAT: ChainProfile(
        chain_id=SupportedChain.HARDHAT,
        name="Eth",
        domain_prefix="31337",
        batch_prefix="31337-Batch",
        token_prefix="31337-ERC20",
        executor_contract_kind="EthWalletSimple",
    ),
    SupportedChain.CELO: ChainProfile(
        chain_id=SupportedChain.CELO,
        name="Celo",
        domain_prefix="CELO",
        batch_prefix="CELO-Batch",
        token_prefix="CELO-ERC20",
        executor_contract_kind="CeloWalletSimple",
    ),
    SupportedChain.POLYGON: ChainProfile(
        chain_id=SupportedChain.POLYGON,
        name="Polygon",
        domain_prefix="POLYGON",
        batch_prefix="POLYGON-Batch",
        token_prefix="POLYGON-ERC20",
        executor_contract_kind="PolygonWalletSimple",
    ),
}

CHAIN_PROFILES: Mapping[int, ChainProfile] = MappingProxyType(_PROFILES)


def supported_chain_ids():
    return sorted(int(c) for c in SupportedChain)


def validate_registry(profiles: Mapping[int, ChainProfile] = CHAIN_PROFILES) -> None:
    """
    Check that every supported chain has a complete profile.

    Raises:
        ValueError: If a profile is missing, mislabelled or has an empty prefix
    """
    for chain in SupportedChain:
        profile = profiles.get(chain)
        if profile is None:
            raise ValueError(f"No chain profile registered for {chain.name} ({int(chain)})")
        if profile.chain_id != chain:
            raise ValueError(f"Profile for {chain.name} is registered under chain id {profile.chain_id}")
        for field_name in ("domain_prefix", "batch_prefix", "token_prefix", "executor_contract_kind"):
            if not getattr(profile, field_name):
                raise ValueError(f"Profile for {chain.name} has an empty {field_name}")


def profile_for(chain_id: Union[int, SupportedChain]) -> ChainProfile:
    """
    Look up the chain profile for a chain id.

    Args:
        chain_id: Numeric chain id

    Returns:
        The registered ChainProfile

    Raises:
        UnsupportedChain: If the chain id is not supported
    """
    if isinstance(chain_id, bool) or not isinstance(chain_id, int):
        raise UnsupportedChain(chain_id, supported_chain_ids())
    profile = CHAIN_PROFILES.get(chain_id)
    if profile is None:
        raise UnsupportedChain(chain_id, supported_chain_ids())
    return profile


validate_registry()
