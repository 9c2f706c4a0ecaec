from .bases import LedgerAdapter, TokenMetadata, PermitSigner
from .unions import OperationTypes, OperationAdapter
from .evm import (
    EIP712Domain,
    EVMECDSASignature,
    PermitRequest,
    EIP2612Permit,
    AuthorizeOperation,
    MoveFromOperation,
    EVMVerificationResult,
    EVMMoveResult,
    EVMSubmissionOutcome,
)
from .evm.signatures import sign_permit, LocalAccountSigner
from .evm.verifies import verify_permit, recover_permit_signer
from .evm.adapter import EVMLedger, EVMPermitToken
from .memory import PermitToken, InMemoryLedger

__all__ = [
    "LedgerAdapter",
    "TokenMetadata",
    "PermitSigner",
    "OperationTypes",
    "OperationAdapter",
    "EIP712Domain",
    "EVMECDSASignature",
    "PermitRequest",
    "EIP2612Permit",
    "AuthorizeOperation",
    "MoveFromOperation",
    "EVMVerificationResult",
    "EVMMoveResult",
    "EVMSubmissionOutcome",
    "sign_permit",
    "LocalAccountSigner",
    "verify_permit",
    "recover_permit_signer",
    "EVMLedger",
    "EVMPermitToken",
    "PermitToken",
    "InMemoryLedger",
]
