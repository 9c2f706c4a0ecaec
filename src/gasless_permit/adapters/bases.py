"""
Abstract Base Classes for Relay Collaborators

Defines the interfaces the relay core consumes. Concrete implementations
live in ``adapters.memory`` (in-process ledger stand-in) and ``adapters.evm``
(web3-backed ledger and local-key signer).

Core Classes:
    - LedgerAdapter: Fee balances, clock, chain identity and operation submission
    - TokenMetadata: Read access to the permit token (name, version, nonce, balances)
    - PermitSigner: The owner's signing capability

Every ledger read and every submission is a coroutine: callers must await
acceptance or rejection before relying on its effects.
"""

from abc import ABC, abstractmethod
from typing import Union

from .evm.schemas import (
    AuthorizeOperation,
    MoveFromOperation,
    EVMECDSASignature,
    EVMSubmissionOutcome,
    PermitRequest,
)
from .evm.standards import EIP712Domain


class LedgerAdapter(ABC):
    """
    Abstract ledger access.

    The ledger finalizes submissions and charges their fees to the account
    that submits them. Implementations must apply submissions touching the
    same owner in submission order.

    Example Implementation:
        class InMemoryLedger(LedgerAdapter):
            # Deterministic in-process stand-in for tests
            pass

        class EVMLedger(LedgerAdapter):
            # JSON-RPC backed chain
            pass
    """

    @abstractmethod
    async def get_balance(self, account: str) -> int:
        """
        Return the native (fee-paying) balance of ``account`` in wei.

        This is not the token balance; see ``TokenMetadata.get_balance``.
        """
        pass

    @abstractmethod
    async def submit(
        self,
        operation: Union[AuthorizeOperation, MoveFromOperation],
        fee_payer: str,
    ) -> EVMSubmissionOutcome:
        """
        Submit ``operation`` paid for by ``fee_payer`` and wait for the result.

        For ``MoveFromOperation`` the fee payer is also the spender whose
        allowance is used.

        Returns:
            EVMSubmissionOutcome: ``SUCCESS`` with effects, or a failure with
            a ``failure_kind``. Protocol rejections are never raised.
        """
        pass

    @abstractmethod
    async def get_current_time(self) -> int:
        """Return the ledger's current Unix timestamp (the one deadlines are checked against)."""
        pass

    @abstractmethod
    async def get_chain_id(self) -> int:
        """Return the chain identifier used in the EIP-712 domain."""
        pass


class TokenMetadata(ABC):
    """
    Abstract read access to the permit token.
    """

    @abstractmethod
    async def get_name(self) -> str:
        """Return the token name (EIP-712 domain ``name``)."""
        pass

    @abstractmethod
    async def get_version(self) -> str:
        """Return the EIP-712 domain ``version``."""
        pass

    @abstractmethod
    async def get_address(self) -> str:
        """Return the token address (EIP-712 ``verifyingContract``)."""
        pass

    @abstractmethod
    async def get_nonce(self, owner: str) -> int:
        """Return the owner's current permit nonce."""
        pass

    @abstractmethod
    async def get_balance(self, account: str) -> int:
        """Return the token balance of ``account`` in smallest units."""
        pass

    @abstractmethod
    async def get_allowance(self, owner: str, spender: str) -> int:
        """Return the amount ``spender`` may still move from ``owner``."""
        pass


class PermitSigner(ABC):
    """
    The owner's signing capability.

    Owned by the account holder; the relay core only ever sees signatures,
    never the key material behind them.
    """

    @property
    @abstractmethod
    def address(self) -> str:
        """Address whose signatures this signer produces."""
        pass

    @abstractmethod
    async def sign(self, domain: EIP712Domain, request: PermitRequest) -> EVMECDSASignature:
        """
        Sign the canonical encoding of ``(domain, request)``.

        Raises:
            SigningError: If the signer cannot or will not sign.
        """
        pass
