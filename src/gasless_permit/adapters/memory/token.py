"""
In-Memory Permit Token

``PermitToken`` is the authorization consumer: the only object that holds
and mutates nonces, allowances and token balances. It behaves like an
EIP-2612 token contract and is what ``InMemoryLedger`` dispatches
submissions to.

State transitions are all-or-nothing. Every check runs before the first
mutation, so a rejected ``authorize`` or ``move_from`` leaves no trace.
Operations touching the same owner are serialized by a per-owner lock and
applied in arrival order.
"""

import asyncio
import logging
import time
from collections import defaultdict
from typing import Dict, Optional, Tuple

from ...schemas.bases import FailureKind
from ..bases import TokenMetadata
from ..evm.constants import DEFAULT_DOMAIN_VERSION
from ..evm.schemas import EIP2612Permit, EVMMoveResult, EVMVerificationResult
from ..evm.standards import EIP712Domain
from ..evm.verifies import verify_permit

logger = logging.getLogger(__name__)


def _key(address: str) -> str:
    return address.lower()


class PermitToken(TokenMetadata):
    """
    EIP-2612 token state machine.

    Args:
        name: Token name; part of the EIP-712 domain.
        address: Verifying contract address; part of the EIP-712 domain.
        chain_id: Chain the token lives on; part of the EIP-712 domain.
        version: Domain version.
        balances: Initial token balances.

    Example:
        token = PermitToken("MyGaslessToken", "0x5FbD...", 1337, balances={owner: 100})
        result = await token.authorize(permit, current_time=now)
        if result.is_success():
            await token.move_from(spender, owner, recipient, 30)
    """

    def __init__(
        self,
        name: str,
        address: str,
        chain_id: int,
        version: str = DEFAULT_DOMAIN_VERSION,
        balances: Optional[Dict[str, int]] = None,
    ):
        self.name = name
        self.address = address
        self.chain_id = chain_id
        self.version = version
        self._balances: Dict[str, int] = {}
        self._nonces: Dict[str, int] = {}
        self._allowances: Dict[Tuple[str, str], int] = {}
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        for account, amount in (balances or {}).items():
            if amount < 0:
                raise ValueError(f"Initial balance of {account} must be non-negative")
            self._balances[_key(account)] = amount

    @property
    def domain(self) -> EIP712Domain:
        """Domain every presented signature is verified under."""
        return EIP712Domain(
            name=self.name,
            version=self.version,
            chain_id=self.chain_id,
            verifying_contract=self.address,
        )

    # ------------------------------------------------------------------
    # TokenMetadata
    # ------------------------------------------------------------------

    async def get_name(self) -> str:
        return self.name

    async def get_version(self) -> str:
        return self.version

    async def get_address(self) -> str:
        return self.address

    async def get_nonce(self, owner: str) -> int:
        return self._nonces.get(_key(owner), 0)

    async def get_balance(self, account: str) -> int:
        return self._balances.get(_key(account), 0)

    async def get_allowance(self, owner: str, spender: str) -> int:
        return self._allowances.get((_key(owner), _key(spender)), 0)

    # ------------------------------------------------------------------
    # State transitions
    # ------------------------------------------------------------------

    async def authorize(self, permit: EIP2612Permit, *, current_time: Optional[int] = None) -> EVMVerificationResult:
        """
        Consume a signed permit.

        Verifies deadline, nonce and signature under this token's own domain
        and the owner's authoritative nonce. On success the owner's nonce is
        incremented and ``allowance[owner][spender]`` is set to
        ``permit.value``, replacing any earlier allowance.

        Args:
            permit: Signed permit.
            current_time: Time deadlines are checked against. Defaults to the
                wall clock.

        Returns:
            ``EVMVerificationResult``; on rejection ``failure_kind`` is one of
            ``EXPIRED_DEADLINE``, ``NONCE_MISMATCH`` or ``BAD_SIGNATURE`` and
            nothing changed.
        """
        now = int(current_time) if current_time is not None else int(time.time())
        owner = _key(permit.owner)

        async with self._locks[owner]:
            current_nonce = self._nonces.get(owner, 0)
            result = verify_permit(
                permit,
                domain=self.domain,
                current_nonce=current_nonce,
                current_time=now,
            )
            if not result.is_success():
                logger.info(
                    "authorize rejected for owner %s: %s", permit.owner, result.failure_kind.value
                )
                return result

            self._nonces[owner] = current_nonce + 1
            self._allowances[(owner, _key(permit.spender))] = permit.value

        logger.debug("authorize applied: owner=%s spender=%s value=%s", permit.owner, permit.spender, permit.value)
        return result

    async def move_from(self, spender: str, owner: str, recipient: str, amount: int) -> EVMMoveResult:
        """
        Move ``amount`` from ``owner`` to ``recipient`` on the allowance of ``spender``.

        ``spender`` is the caller; only the account holding the allowance can
        spend it. The allowance, owner balance and recipient balance change
        together or not at all.

        Returns:
            ``EVMMoveResult``; on rejection ``failure_kind`` is
            ``INSUFFICIENT_ALLOWANCE`` or ``INSUFFICIENT_BALANCE``.
        """
        if amount < 0:
            raise ValueError("amount must be non-negative")

        owner_key, spender_key, recipient_key = _key(owner), _key(spender), _key(recipient)

        def _fail(failure_kind: FailureKind, message: str, error_details: Dict[str, int]) -> EVMMoveResult:
            logger.info("move_from rejected for owner %s: %s", owner, failure_kind.value)
            return EVMMoveResult(
                is_valid=False,
                failure_kind=failure_kind,
                message=message,
                error_details=error_details,
                owner=owner,
                spender=spender,
                recipient=recipient,
                amount=amount,
            )

        async with self._locks[owner_key]:
            allowance = self._allowances.get((owner_key, spender_key), 0)
            if allowance < amount:
                return _fail(
                    FailureKind.INSUFFICIENT_ALLOWANCE,
                    f"Allowance {allowance} is below amount {amount}.",
                    {"allowance": allowance, "amount": amount},
                )

            balance = self._balances.get(owner_key, 0)
            if balance < amount:
                return _fail(
                    FailureKind.INSUFFICIENT_BALANCE,
                    f"Owner balance {balance} is below amount {amount}.",
                    {"balance": balance, "amount": amount},
                )

            self._allowances[(owner_key, spender_key)] = allowance - amount
            self._balances[owner_key] = balance - amount
            self._balances[recipient_key] = self._balances.get(recipient_key, 0) + amount

            effects = {
                "allowance": self._allowances[(owner_key, spender_key)],
                "owner_balance": self._balances[owner_key],
                "recipient_balance": self._balances[recipient_key],
            }

        return EVMMoveResult(
            is_valid=True,
            message="Move applied.",
            owner=owner,
            spender=spender,
            recipient=recipient,
            amount=amount,
            effects=effects,
        )

    def __repr__(self) -> str:
        return f"PermitToken(name={self.name!r}, address={self.address}, chain_id={self.chain_id})"
