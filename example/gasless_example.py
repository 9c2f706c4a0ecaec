"""
Gasless transfer against a local development chain.

Reads RPC_URL, TOKEN_ADDRESS, OWNER_PRIVATE_KEY and SPENDER_PRIVATE_KEY from
the environment (or a .env file), then has the spender authorize and move
10 tokens out of the owner's account while paying every fee itself.
"""

import asyncio
import logging

from eth_account import Account

from gasless_permit.adapters.evm.adapter import EVMLedger
from gasless_permit.adapters.evm.constants import (
    amount_to_value,
    value_to_amount,
    get_token_address_from_env,
    get_owner_private_key_from_env,
    get_spender_private_key_from_env,
)
from gasless_permit.adapters.evm.signatures import LocalAccountSigner
from gasless_permit.relay import RelayOrchestrator


async def main():
    owner_key = get_owner_private_key_from_env()
    spender_key = get_spender_private_key_from_env()
    if not owner_key or not spender_key:
        raise SystemExit("OWNER_PRIVATE_KEY and SPENDER_PRIVATE_KEY must be set")

    spender = Account.from_key(spender_key).address
    ledger = EVMLedger(token_address=get_token_address_from_env(), private_keys=[spender_key])
    orchestrator = RelayOrchestrator(ledger, ledger.token, relayer=spender)
    owner = LocalAccountSigner(owner_key)

    owner_eth_before = await ledger.get_balance(owner.address)
    spender_eth_before = await ledger.get_balance(spender)
    print("Owner token balance:", value_to_amount(value=await orchestrator.get_balance(owner.address)))

    result = await orchestrator.relay(owner, recipient=spender, amount=amount_to_value(amount=10))
    print("Relay:", result.stage.value, result.failure_kind, result.recovery.value)

    owner_eth_after = await ledger.get_balance(owner.address)
    spender_eth_after = await ledger.get_balance(spender)
    print("Owner ETH unchanged:", owner_eth_before == owner_eth_after)
    print("Spender paid (wei):", spender_eth_before - spender_eth_after)
    print("Spender token balance:", value_to_amount(value=await orchestrator.get_balance(spender)))


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")
    asyncio.run(main())
