#!/usr/bin/env python3
"""
Example: log in to the authorization service and toggle protection for a
token held by a multisig wallet.
"""
import logging
import os
import sys

from multisig_sdk import AuthorizerSettings, LocalSigner, WalletIdentity, get_auth_client
from multisig_sdk.exceptions import AuthServiceError

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def main():
    """
    Usage: protect_token.py on|off

    Environment:
        CHAIN_ID, AUTH_API_BASEURL, AUTH_API_KEY, MULTISIG_CONTRACT_ADDRESS
        TOKEN_ADDRESS, OWNER_KEY (hex key of the wallet owner)
    """
    enable = len(sys.argv) < 2 or sys.argv[1] != "off"

    settings = AuthorizerSettings.from_env()
    token_address = os.environ.get("TOKEN_ADDRESS")
    owner_key = os.environ.get("OWNER_KEY")
    if not all([settings.auth_api_baseurl, settings.auth_api_key, settings.multisig_contract_address,
                token_address, owner_key]):
        print("ERROR: AUTH_API_BASEURL, AUTH_API_KEY, MULTISIG_CONTRACT_ADDRESS, "
              "TOKEN_ADDRESS and OWNER_KEY are required")
        return

    owner = LocalSigner(owner_key)
    wallet = settings.multisig_contract_address
    client = get_auth_client(settings.auth_api_baseurl, settings.auth_api_key)

    identity = WalletIdentity(
        wallet_address=wallet,
        wallet_owner=owner.address,
        chain_id=settings.chain_id,
        wallet_type="multisig",
    )

    try:
        client.login(identity, owner)
        print(f"Logged in as {owner.address}")

        if not enable:
            client.remove_protection(settings.chain_id, wallet, token_address, owner)
            print(f"Protection removed for {token_address}")
            return

        balances = client.get_wallet_balances(settings.chain_id, wallet)
        balance = next(
            (b.get("balance") for b in balances if str(b.get("token_address", "")).lower() == token_address.lower()),
            "0",
        )
        client.set_protection(settings.chain_id, wallet, token_address, balance, owner)
        print(f"Protection enabled for {token_address} (balance {balance})")
        print(f"Recovery vault: {client.get_recovery_vault(settings.chain_id, wallet)}")
    except AuthServiceError as e:
        print(f"Error: {e}")


if __name__ == "__main__":
    main()
