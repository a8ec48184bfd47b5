#!/usr/bin/env python3
"""
Example: approve a spender for an ERC-20 token held by a multisig wallet.

The approve call is wrapped in a sendMultiSig operation, co-signed with
the wallet's second key and submitted by a separate fee-paying account.
"""
import logging
import os

from multisig_sdk import (
    AuthorizerSettings,
    ExecutorRejected,
    LocalSigner,
    NetworkConfig,
    ProposalInputs,
    TransactionAssembler,
    encode_approve_call,
    get_chain_client,
)

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def main():
    """
    Authorize SPENDER_ADDRESS to move TOKEN_ADDRESS out of the multisig.

    Environment:
        CHAIN_ID, RPC_URL (optional), MULTISIG_CONTRACT_ADDRESS
        TOKEN_ADDRESS, SPENDER_ADDRESS
        COSIGNER_KEY (hex or xprv...), SUBMITTER_KEY (hex)
    """
    settings = AuthorizerSettings.from_env()
    token_address = os.environ.get("TOKEN_ADDRESS")
    spender_address = os.environ.get("SPENDER_ADDRESS")
    cosigner_key = os.environ.get("COSIGNER_KEY")
    submitter_key = os.environ.get("SUBMITTER_KEY")

    if not all([settings.multisig_contract_address, token_address, spender_address, cosigner_key, submitter_key]):
        print("ERROR: MULTISIG_CONTRACT_ADDRESS, TOKEN_ADDRESS, SPENDER_ADDRESS, "
              "COSIGNER_KEY and SUBMITTER_KEY are required")
        return

    if cosigner_key.startswith("xprv"):
        cosigner = LocalSigner.from_extended_key(cosigner_key)
    else:
        cosigner = LocalSigner(cosigner_key)
    submitter = LocalSigner(submitter_key)
    print(f"Co-signer: {cosigner.address}")
    print(f"Submitter: {submitter.address}")

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
        executor_address=settings.multisig_contract_address,
        target_address=token_address,
        value=0,
        call_data=encode_approve_call(spender_address),
        ttl_seconds=3600,
    )

    result = assembler.authorize_and_submit(settings.chain_id, inputs, cosigner, submitter)
    print(f"Final state: {result.state.value} after {result.attempts} attempt(s)")
    print(f"Sequence id: {result.sequence_number}")

    try:
        result.raise_for_status()
    except ExecutorRejected as e:
        print(f"Executor rejected the approval: {e.revert_reason}")
        return

    network = NetworkConfig.get_network_for_chain(settings.chain_id)
    explorer_url = NetworkConfig.get_explorer_tx_url(network, result.tx_hash)
    print(f"Transaction hash: {result.tx_hash}")
    if explorer_url:
        print(f"Block explorer: {explorer_url}")


if __name__ == "__main__":
    main()
