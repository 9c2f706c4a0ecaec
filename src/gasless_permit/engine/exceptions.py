"""
Exception and Error Definitions Module

Protocol rejections (expired permit, stale nonce, bad signature, short
allowance or balance) are reported as values on verification results and
submission outcomes. The exceptions below cover misconfiguration, signer and
ledger-access failures, and the opt-in ``raise_for_status()`` bridge on
submission outcomes.

Exception Hierarchy:
    GaslessError (root)
    ├── ConfigurationError
    ├── SigningError
    ├── UnknownAccountError
    ├── PermitRejectedError
    │   ├── PermitExpiredError
    │   ├── PermitNonceError
    │   ├── SignatureVerificationError
    │   ├── InsufficientAllowanceError
    │   ├── InsufficientFundsError
    │   └── InsufficientFeeError
    ├── BlockchainInteractionError
    └── InvalidTransition
"""


class GaslessError(Exception):
    """
    Root exception class for all project-specific exceptions.
    """
    pass


class ConfigurationError(GaslessError):
    """
    Raised when configuration is missing or invalid.

    This includes scenarios such as:
    - Missing RPC URL, token address or private keys
    - Invalid configuration values
    """
    pass


class SigningError(GaslessError):
    """
    Raised when the owner's signing capability fails.

    This includes scenarios such as:
    - Signer backend error
    - Signer asked to sign for an owner it does not control
    """
    pass


class UnknownAccountError(GaslessError):
    """
    Raised when a ledger is asked to act for an account it has no key for.
    """
    pass


class PermitRejectedError(GaslessError):
    """
    Base exception for rejected authorizations and moves.

    Only raised through ``raise_for_status()``; the consumer itself returns
    failures as values.
    """
    pass


class PermitExpiredError(PermitRejectedError):
    """
    Raised when a permit deadline is zero or has passed.

    The signature is permanently unusable; a fresh request must be signed.
    """
    pass


class PermitNonceError(PermitRejectedError):
    """
    Raised when the presented nonce is not the owner's current nonce.

    Signals a replayed signature or a race with another authorization for the
    same owner.
    """
    pass


class SignatureVerificationError(PermitRejectedError):
    """
    Raised when permit signature verification fails.

    This includes scenarios such as:
    - Malformed v/r/s components
    - Signature from a different address
    - Signature produced under a different domain (chain, contract, name)
    """
    pass


class InsufficientAllowanceError(PermitRejectedError):
    """
    Raised when a move exceeds the spender's allowance.
    """
    pass


class InsufficientFundsError(PermitRejectedError):
    """
    Raised when a move exceeds the owner's token balance.
    """
    pass


class InsufficientFeeError(PermitRejectedError):
    """
    Raised when the fee payer cannot cover the submission fee.
    """
    pass


class BlockchainInteractionError(GaslessError):
    """
    Raised when ledger interaction fails.

    This includes scenarios such as:
    - RPC call timeout
    - Network connectivity issues
    - Transaction reverted without a recognised cause
    """
    pass


class InvalidTransition(GaslessError):
    """
    Raised when an event handler returns something that is not an event.
    """
    pass
