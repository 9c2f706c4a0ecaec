"""
EVM Ledger Adapter

Runs the two on-chain steps of the gasless flow (``permit`` then
``transferFrom``) against a JSON-RPC node, paying every fee from a relayer
key the adapter holds.

Key Features:
    - Token metadata, nonce, balance and allowance reads
    - Off-chain pre-flight of every submission (deadline, nonce, signature,
      allowance, balance, fee) so predictable reverts are never paid for
    - Transaction build, sign, broadcast and receipt polling
    - Per-owner submission ordering

Dependencies:
    - web3.py: For blockchain RPC interaction
    - eth_account: For transaction signing
"""

from typing import Optional, Dict, Any, Union, Iterable
from collections import defaultdict
import asyncio
import logging
import time

from web3 import AsyncWeb3
from eth_account import Account
from web3.exceptions import TransactionNotFound

from ...engine.exceptions import UnknownAccountError
from ...schemas.bases import FailureKind, TransactionStatus
from ..bases import LedgerAdapter, TokenMetadata
from .ERC20_ABI import get_permit_token_abi
from .constants import get_rpc_url_from_env, get_domain_version_from_env
from .schemas import AuthorizeOperation, MoveFromOperation, EVMSubmissionOutcome
from .standards import EIP712Domain
from .verifies import verify_permit

logger = logging.getLogger(__name__)


class EVMPermitToken(TokenMetadata):
    """
    Read access to a deployed EIP-2612 token.

    Args:
        w3: Connected ``AsyncWeb3`` instance.
        token_address: Token contract address.
        domain_version: Domain ``version`` used when the contract has no
            ``version()`` function. Defaults to ``PERMIT_DOMAIN_VERSION``.
    """

    def __init__(self, w3: AsyncWeb3, token_address: str, domain_version: Optional[str] = None):
        self._w3 = w3
        self._address = AsyncWeb3.to_checksum_address(token_address)
        self._domain_version = domain_version or get_domain_version_from_env()
        self.contract = w3.eth.contract(address=self._address, abi=get_permit_token_abi())

    async def get_name(self) -> str:
        return await self.contract.functions.name().call()

    async def get_version(self) -> str:
        try:
            return await self.contract.functions.version().call()
        except Exception:
            # version() is optional in EIP-2612
            return self._domain_version

    async def get_address(self) -> str:
        return self._address

    async def get_nonce(self, owner: str) -> int:
        return int(await self.contract.functions.nonces(AsyncWeb3.to_checksum_address(owner)).call())

    async def get_balance(self, account: str) -> int:
        return int(await self.contract.functions.balanceOf(AsyncWeb3.to_checksum_address(account)).call())

    async def get_allowance(self, owner: str, spender: str) -> int:
        return int(await self.contract.functions.allowance(
            AsyncWeb3.to_checksum_address(owner),
            AsyncWeb3.to_checksum_address(spender),
        ).call())


class EVMLedger(LedgerAdapter):
    """
    JSON-RPC backed ledger.

    Holds the private keys of the accounts it may submit for (normally just
    the relayer). Asking it to submit with any other fee payer raises
    ``UnknownAccountError``; the owner's key never needs to be here.

    Attributes:
        w3: ``AsyncWeb3`` instance in use.
        token: ``EVMPermitToken`` reader for the token being relayed.

    Example:
        ledger = EVMLedger(
            token_address="0x...",
            private_keys=[os.getenv("SPENDER_PRIVATE_KEY")],
        )
        outcome = await ledger.submit(AuthorizeOperation(permit=permit), relayer_address)
        if outcome.is_success():
            ...
    """

    def __init__(
        self,
        token_address: str,
        private_keys: Iterable[str] = (),
        rpc_url: Optional[str] = None,
        w3: Optional[AsyncWeb3] = None,
        domain_version: Optional[str] = None,
        request_timeout: int = 60,
        max_attempts: int = 60,
        poll_interval: float = 1.0,
    ):
        """
        Args:
            token_address: EIP-2612 token contract address.
            private_keys: Keys of accounts allowed to pay fees.
            rpc_url: JSON-RPC endpoint. Falls back to ``RPC_URL``, then the
                local development node.
            w3: Pre-built ``AsyncWeb3`` instance; takes precedence over
                ``rpc_url``.
            domain_version: See ``EVMPermitToken``.
            request_timeout: HTTP timeout for RPC calls (seconds).
            max_attempts: Receipt poll attempts before reporting ``TIMEOUT``.
            poll_interval: Seconds between receipt polls.
        """
        self.w3 = w3 or AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(
            rpc_url or get_rpc_url_from_env(),
            request_kwargs={"timeout": request_timeout},
        ))
        self.token = EVMPermitToken(self.w3, token_address, domain_version)
        self._accounts = {}
        for key in private_keys:
            account = Account.from_key(key)
            self._accounts[AsyncWeb3.to_checksum_address(account.address)] = account
        self._max_attempts = max_attempts
        self._poll_interval = poll_interval
        self._owner_locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._payer_locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_balance(self, account: str) -> int:
        return int(await self.w3.eth.get_balance(AsyncWeb3.to_checksum_address(account)))

    async def get_current_time(self) -> int:
        block = await self.w3.eth.get_block("latest")
        return int(block["timestamp"])

    async def get_chain_id(self) -> int:
        return int(await self.w3.eth.chain_id)

    async def get_domain(self) -> EIP712Domain:
        """Assemble the token's EIP-712 domain from chain reads."""
        return EIP712Domain(
            name=await self.token.get_name(),
            version=await self.token.get_version(),
            chain_id=await self.get_chain_id(),
            verifying_contract=await self.token.get_address(),
        )

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    async def submit(
        self,
        operation: Union[AuthorizeOperation, MoveFromOperation],
        fee_payer: str,
    ) -> EVMSubmissionOutcome:
        """
        Pre-flight, sign, broadcast and confirm ``operation``.

        Pre-flight rejections are returned as ``REJECTED`` with nothing
        charged. On-chain reverts come back as ``FAILED`` with the fee the
        relayer paid for them.

        Raises:
            UnknownAccountError: If no key for ``fee_payer`` is held.
        """
        payer = AsyncWeb3.to_checksum_address(fee_payer)
        account = self._accounts.get(payer)
        if account is None:
            raise UnknownAccountError(f"No private key registered for fee payer {payer}")

        owner = operation.permit.owner if isinstance(operation, AuthorizeOperation) else operation.owner
        owner_key = owner.lower()

        async with self._owner_locks[owner_key]:
            async with self._payer_locks[payer]:
                start = time.monotonic()
                try:
                    if isinstance(operation, AuthorizeOperation):
                        outcome = await self._submit_authorize(operation, account)
                    else:
                        outcome = await self._submit_move_from(operation, account)
                except Exception as e:
                    logger.warning("Submission of %s failed: %s", operation.operation_type, e)
                    outcome = EVMSubmissionOutcome(
                        operation_type=operation.operation_type,
                        status=TransactionStatus.NETWORK_ERROR,
                        failure_kind=FailureKind.LEDGER_ERROR,
                        fee_payer=payer,
                        error_message=f"Ledger interaction error: {str(e)}",
                    )
                outcome.execution_time = time.monotonic() - start
                return outcome

    async def _submit_authorize(self, operation: AuthorizeOperation, account) -> EVMSubmissionOutcome:
        permit = operation.permit
        domain = await self.get_domain()
        current_nonce = await self.token.get_nonce(permit.owner)
        current_time = await self.get_current_time()

        verification = verify_permit(
            permit,
            domain=domain,
            current_nonce=current_nonce,
            current_time=current_time,
        )
        if not verification.is_success():
            return self._rejected(operation, account.address, verification.failure_kind, verification.message,
                                  verification.error_details)

        v, r, s = permit.signature.to_vrs()
        tx_fn = self.token.contract.functions.permit(
            AsyncWeb3.to_checksum_address(permit.owner),
            AsyncWeb3.to_checksum_address(permit.spender),
            permit.value,
            permit.deadline,
            v,
            r.to_bytes(32, "big"),
            s.to_bytes(32, "big"),
        )
        outcome = await self._send_and_confirm(operation, tx_fn, account)
        if outcome.is_success():
            outcome.effects = {
                "nonce": await self.token.get_nonce(permit.owner),
                "allowance": await self.token.get_allowance(permit.owner, permit.spender),
            }
        return outcome

    async def _submit_move_from(self, operation: MoveFromOperation, account) -> EVMSubmissionOutcome:
        spender = account.address
        allowance = await self.token.get_allowance(operation.owner, spender)
        if allowance < operation.amount:
            return self._rejected(
                operation, spender, FailureKind.INSUFFICIENT_ALLOWANCE,
                f"Allowance {allowance} is below amount {operation.amount}.",
                {"allowance": allowance, "amount": operation.amount},
            )
        balance = await self.token.get_balance(operation.owner)
        if balance < operation.amount:
            return self._rejected(
                operation, spender, FailureKind.INSUFFICIENT_BALANCE,
                f"Owner balance {balance} is below amount {operation.amount}.",
                {"balance": balance, "amount": operation.amount},
            )

        tx_fn = self.token.contract.functions.transferFrom(
            AsyncWeb3.to_checksum_address(operation.owner),
            AsyncWeb3.to_checksum_address(operation.recipient),
            operation.amount,
        )
        outcome = await self._send_and_confirm(operation, tx_fn, account)
        if outcome.is_success():
            outcome.effects = {
                "allowance": await self.token.get_allowance(operation.owner, spender),
                "owner_balance": await self.token.get_balance(operation.owner),
                "recipient_balance": await self.token.get_balance(operation.recipient),
            }
        return outcome

    @staticmethod
    def _rejected(operation, fee_payer: str, failure_kind: FailureKind, message: str,
                  error_details: Optional[Dict[str, Any]] = None) -> EVMSubmissionOutcome:
        return EVMSubmissionOutcome(
            operation_type=operation.operation_type,
            status=TransactionStatus.REJECTED,
            failure_kind=failure_kind,
            fee_payer=fee_payer,
            error_message=message,
            error_details=error_details,
        )

    async def _send_and_confirm(self, operation, tx_fn, account) -> EVMSubmissionOutcome:
        """
        Estimate, fund-check, sign and broadcast ``tx_fn`` and poll for its receipt.

        Polls ``eth_getTransactionReceipt`` every ``poll_interval`` seconds for
        at most ``max_attempts`` rounds. The fee is ``gasUsed * effectiveGasPrice``.
        """
        sender = account.address
        gas_estimate = await tx_fn.estimate_gas({"from": sender})
        gas_price = await self.w3.eth.gas_price
        gas_limit = int(gas_estimate * 1.1)

        payer_balance = await self.get_balance(sender)
        if payer_balance < gas_limit * gas_price:
            return self._rejected(
                operation, sender, FailureKind.INSUFFICIENT_FEE,
                f"Fee payer balance {payer_balance} cannot cover {gas_limit * gas_price} wei.",
                {"balance": payer_balance, "required": gas_limit * gas_price},
            )

        tx_nonce = await self.w3.eth.get_transaction_count(sender)
        tx_dict = await tx_fn.build_transaction({
            "from": sender,
            "gas": gas_limit,
            "gasPrice": gas_price,
            "nonce": tx_nonce,
        })
        signed_tx = account.sign_transaction(tx_dict)

        try:
            tx_hash = await self.w3.eth.send_raw_transaction(signed_tx.raw_transaction)
            tx_hash_hex = tx_hash.hex()
        except Exception as e:
            return EVMSubmissionOutcome(
                operation_type=operation.operation_type,
                status=TransactionStatus.NETWORK_ERROR,
                failure_kind=FailureKind.LEDGER_ERROR,
                fee_payer=sender,
                error_message=f"Failed to broadcast transaction: {str(e)}",
            )
        logger.info("Broadcast %s tx %s from %s", operation.operation_type, tx_hash_hex, sender)

        receipt = None
        for _ in range(self._max_attempts):
            try:
                receipt = await self.w3.eth.get_transaction_receipt(tx_hash_hex)
                if receipt:
                    break
            except TransactionNotFound:
                pass  # still pending
            await asyncio.sleep(self._poll_interval)

        if not receipt:
            return EVMSubmissionOutcome(
                operation_type=operation.operation_type,
                status=TransactionStatus.TIMEOUT,
                failure_kind=FailureKind.LEDGER_ERROR,
                fee_payer=sender,
                tx_hash=tx_hash_hex,
                error_message="Transaction confirmation timed out",
            )

        fee_paid = receipt["gasUsed"] * receipt.get("effectiveGasPrice", gas_price)
        if receipt.get("status") == 1:
            return EVMSubmissionOutcome(
                operation_type=operation.operation_type,
                status=TransactionStatus.SUCCESS,
                fee_payer=sender,
                fee_paid=fee_paid,
                tx_hash=tx_hash_hex,
                block_number=receipt["blockNumber"],
                gas_used=receipt["gasUsed"],
            )
        return EVMSubmissionOutcome(
            operation_type=operation.operation_type,
            status=TransactionStatus.FAILED,
            failure_kind=FailureKind.LEDGER_ERROR,
            fee_payer=sender,
            fee_paid=fee_paid,
            tx_hash=tx_hash_hex,
            block_number=receipt["blockNumber"],
            gas_used=receipt["gasUsed"],
            error_message="Transaction reverted on-chain",
        )
