"""
Client for the authorization service that issues bearer tokens to wallet
owners and manages token protection.
"""
import logging
import threading
from typing import Optional

from .client import (
    AuthServiceClient,
    LoginChallenge,
    WalletIdentity,
    protection_message,
)

__all__ = [
    "AuthServiceClient",
    "LoginChallenge",
    "WalletIdentity",
    "protection_message",
    "get_auth_client",
]

logger = logging.getLogger(__name__)

# Module-level auth client cache with thread safety
_auth_client_cache = {}
_cache_lock = threading.RLock()


def get_auth_client(base_url: str, api_key: str, timeout: Optional[int] = None) -> AuthServiceClient:
    """
    Get or create an auth client from the module-level cache.

    Clients are keyed by URL and API key, so a token obtained through
    ``login`` is shared by every caller using the same credentials.
    """
    cache_key = (base_url, api_key)
    with _cache_lock:
        if cache_key not in _auth_client_cache:
            kwargs = {} if timeout is None else {"timeout": timeout}
            _auth_client_cache[cache_key] = AuthServiceClient(base_url, api_key, **kwargs)
        return _auth_client_cache[cache_key]


def clear_auth_client_cache() -> None:
    with _cache_lock:
        _auth_client_cache.clear()
