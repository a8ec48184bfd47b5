#!/usr/bin/env python3
"""
Example: withdraw an ERC-20 token from the recovery vault back to the
multisig wallet.

The authorization service returns the signed ``wrappedWithdraw``
arguments; the vault call is then wrapped in a sendMultiSig operation with
the vault as target and submitted like any other proposal.
"""
import logging
import os

from multisig_sdk import (
    AuthorizerSettings,
    ExecutorRejected,
    LocalSigner,
    ProposalInputs,
    TransactionAssembler,
    WalletIdentity,
    encode_wrapped_withdraw,
    get_auth_client,
    get_chain_client,
)
from multisig_sdk.exceptions import AuthServiceError, EncodingError

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def main():
    """
    Environment:
        CHAIN_ID, RPC_URL (optional), AUTH_API_BASEURL, AUTH_API_KEY
        MULTISIG_CONTRACT_ADDRESS, TOKEN_ADDRESS, WITHDRAW_AMOUNT_WEI
        OWNER_KEY (logs in and pays fees), COSIGNER_KEY (hex or xprv...)
        AUTH_CODE (optional 2FA code)
    """
    settings = AuthorizerSettings.from_env()
    token_address = os.environ.get("TOKEN_ADDRESS")
    amount = os.environ.get("WITHDRAW_AMOUNT_WEI")
    owner_key = os.environ.get("OWNER_KEY")
    cosigner_key = os.environ.get("COSIGNER_KEY")

    if not all([settings.auth_api_baseurl, settings.auth_api_key, settings.multisig_contract_address,
                token_address, amount, owner_key, cosigner_key]):
        print("ERROR: AUTH_API_BASEURL, AUTH_API_KEY, MULTISIG_CONTRACT_ADDRESS, TOKEN_ADDRESS, "
              "WITHDRAW_AMOUNT_WEI, OWNER_KEY and COSIGNER_KEY are required")
        return

    owner = LocalSigner(owner_key)
    if cosigner_key.startswith("xprv"):
        cosigner = LocalSigner.from_extended_key(cosigner_key)
    else:
        cosigner = LocalSigner(cosigner_key)
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
        vault = client.get_recovery_vault(settings.chain_id, wallet)
        print(f"Recovery vault: {vault}")
        # The service expects the amount as a hex string
        withdrawal = client.prepare_vault_withdrawal(
            settings.chain_id,
            wallet,
            token_address,
            hex(int(amount, 0)),
            auth_code=os.environ.get("AUTH_CODE", "000000"),
        )
        call_data = encode_wrapped_withdraw(withdrawal)
    except (AuthServiceError, EncodingError) as e:
        print(f"Error: {e}")
        return

    chain_client = get_chain_client(
        settings.rpc_url,
        settings.chain_id,
        timeout=settings.chain_timeout,
        receipt_timeout=settings.receipt_timeout,
    )
    assembler = TransactionAssembler(
        chain_client,
        gas_cap=settings.gas_cap,
        markup_percent=settings.gas_price_increase_percent,
    )

    inputs = ProposalInputs(
        executor_address=wallet,
        target_address=vault,
        value=0,
        call_data=call_data,
        ttl_seconds=3600,
    )
    result = assembler.authorize_and_submit(settings.chain_id, inputs, cosigner, owner)
    print(f"Final state: {result.state.value} after {result.attempts} attempt(s)")

    try:
        result.raise_for_status()
    except ExecutorRejected as e:
        print(f"Executor rejected the withdrawal: {e.revert_reason}")
        return
    print(f"Transaction hash: {result.tx_hash}")


if __name__ == "__main__":
    main()
