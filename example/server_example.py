from eth_account import Account

from gasless_permit.adapters.evm.adapter import EVMLedger
from gasless_permit.adapters.evm.constants import get_token_address_from_env, get_spender_private_key_from_env
from gasless_permit.engine.events import MovedEvent, RelayFailedEvent
from gasless_permit.relay import RelayOrchestrator
from gasless_permit.servers import RelayServer


spender_key = get_spender_private_key_from_env()
relayer = Account.from_key(spender_key).address
ledger = EVMLedger(token_address=get_token_address_from_env(), private_keys=[spender_key])

# Endpoints: GET /permit/context/{owner}, POST /relay, POST /relay/retry-move
app = RelayServer(
    orchestrator=RelayOrchestrator(ledger, ledger.token, relayer=relayer),
    title="Gasless Permit Relay",
)


@app.hook(MovedEvent)
async def on_moved(event, deps):
    """Log completed relays."""
    print(f"Moved {event.amount} from {event.owner} to {event.recipient}: {event.outcome.tx_hash}")


@app.hook(RelayFailedEvent)
async def on_failed(event, deps):
    """Log failed relays."""
    print(f"Relay failed at {event.stage.value}: {event.failure_kind} ({event.recovery.value})")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
