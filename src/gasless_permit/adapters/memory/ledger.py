"""
In-Memory Ledger

Deterministic stand-in for a chain, used by tests and local experiments.
Keeps native fee balances and a manually driven clock, charges a fixed fee
per submission, and hands operations to a ``PermitToken``.

Fee model: a submission the fee payer cannot cover is ``REJECTED`` and
nothing is charged. Otherwise the fee is charged whether the operation is
applied or not, the same as a reverted transaction on a real chain.
"""

import asyncio
import logging
import time
from collections import defaultdict
from typing import Dict, Optional, Union

from eth_utils import keccak

from ...schemas.bases import TransactionStatus, FailureKind
from ..bases import LedgerAdapter
from ..evm.schemas import AuthorizeOperation, MoveFromOperation, EVMSubmissionOutcome
from .token import PermitToken

logger = logging.getLogger(__name__)

#: Gas charged per operation type.
AUTHORIZE_GAS: int = 46_000
MOVE_FROM_GAS: int = 35_000

#: Default price per unit of gas, in wei.
DEFAULT_GAS_PRICE: int = 1_000_000_000


class InMemoryLedger(LedgerAdapter):
    """
    Ledger stand-in backed by dictionaries.

    Args:
        token: Consumer the submissions are applied to.
        fee_balances: Initial native balances (wei).
        gas_price: Wei per unit of gas.
        current_time: Starting clock value. Defaults to the wall clock.

    Example:
        token = PermitToken("MyGaslessToken", TOKEN, 1337, balances={owner: 100})
        ledger = InMemoryLedger(token, fee_balances={relayer: 10**18})
        outcome = await ledger.submit(AuthorizeOperation(permit=permit), relayer)
    """

    def __init__(
        self,
        token: PermitToken,
        fee_balances: Optional[Dict[str, int]] = None,
        gas_price: int = DEFAULT_GAS_PRICE,
        current_time: Optional[int] = None,
    ):
        self.token = token
        self.gas_price = gas_price
        self._now = int(current_time) if current_time is not None else int(time.time())
        self._fee_balances: Dict[str, int] = {
            account.lower(): amount for account, amount in (fee_balances or {}).items()
        }
        self._block_number = 0
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    # ------------------------------------------------------------------
    # Clock
    # ------------------------------------------------------------------

    def advance_time(self, seconds: int) -> int:
        """Move the clock forward and return the new time."""
        self._now += int(seconds)
        return self._now

    def set_time(self, timestamp: int) -> None:
        self._now = int(timestamp)

    def fund(self, account: str, amount: int) -> int:
        """Credit native balance to ``account`` and return the new balance."""
        if amount < 0:
            raise ValueError("amount must be non-negative")
        key = account.lower()
        self._fee_balances[key] = self._fee_balances.get(key, 0) + amount
        return self._fee_balances[key]

    # ------------------------------------------------------------------
    # LedgerAdapter
    # ------------------------------------------------------------------

    async def get_balance(self, account: str) -> int:
        return self._fee_balances.get(account.lower(), 0)

    async def get_current_time(self) -> int:
        return self._now

    async def get_chain_id(self) -> int:
        return self.token.chain_id

    @staticmethod
    def gas_for(operation: Union[AuthorizeOperation, MoveFromOperation]) -> int:
        return AUTHORIZE_GAS if isinstance(operation, AuthorizeOperation) else MOVE_FROM_GAS

    def fee_for(self, operation: Union[AuthorizeOperation, MoveFromOperation]) -> int:
        """Fee charged for submitting ``operation``, in wei."""
        return self.gas_for(operation) * self.gas_price

    async def submit(
        self,
        operation: Union[AuthorizeOperation, MoveFromOperation],
        fee_payer: str,
    ) -> EVMSubmissionOutcome:
        """
        Charge ``fee_payer`` and apply ``operation`` to the token.

        Submissions for the same owner are applied one at a time in arrival
        order. For ``move_from`` the fee payer is the spender.
        """
        owner = operation.permit.owner if isinstance(operation, AuthorizeOperation) else operation.owner
        payer = fee_payer.lower()
        gas = self.gas_for(operation)
        fee = gas * self.gas_price

        async with self._locks[owner.lower()]:
            start = time.monotonic()
            # Yield once, like waiting for a block.
            await asyncio.sleep(0)

            balance = self._fee_balances.get(payer, 0)
            if balance < fee:
                logger.info("Rejected %s from %s: cannot cover fee %s", operation.operation_type, fee_payer, fee)
                return EVMSubmissionOutcome(
                    operation_type=operation.operation_type,
                    status=TransactionStatus.REJECTED,
                    failure_kind=FailureKind.INSUFFICIENT_FEE,
                    fee_payer=fee_payer,
                    execution_time=time.monotonic() - start,
                    error_message=f"Fee payer balance {balance} cannot cover fee {fee}.",
                    error_details={"balance": balance, "fee": fee},
                )

            self._fee_balances[payer] = balance - fee
            self._block_number += 1
            tx_hash = "0x" + keccak(
                text=f"{self._block_number}:{fee_payer}:{operation.to_canonical_json()}"
            ).hex()

            if isinstance(operation, AuthorizeOperation):
                result = await self.token.authorize(operation.permit, current_time=self._now)
                effects = {
                    "nonce": await self.token.get_nonce(operation.permit.owner),
                    "allowance": await self.token.get_allowance(
                        operation.permit.owner, operation.permit.spender
                    ),
                }
            else:
                result = await self.token.move_from(
                    fee_payer, operation.owner, operation.recipient, operation.amount
                )
                effects = result.effects

            common = dict(
                operation_type=operation.operation_type,
                fee_payer=fee_payer,
                fee_paid=fee,
                tx_hash=tx_hash,
                block_number=self._block_number,
                gas_used=gas,
                execution_time=time.monotonic() - start,
            )
            if not result.is_success():
                return EVMSubmissionOutcome(
                    status=TransactionStatus.FAILED,
                    failure_kind=result.failure_kind,
                    error_message=result.message,
                    error_details=result.error_details,
                    **common,
                )
            return EVMSubmissionOutcome(status=TransactionStatus.SUCCESS, effects=effects, **common)
