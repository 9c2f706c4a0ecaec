from .standards import (
    EIP712Domain,
    PermitMessage,
    PermitTypedData,
    build_permit_typed_data,
    encode_permit,
    hash_permit,
    domain_separator,
)
from .schemas import (
    EVMECDSASignature,
    PermitRequest,
    EIP2612Permit,
    AuthorizeOperation,
    MoveFromOperation,
    EVMVerificationResult,
    EVMMoveResult,
    EVMSubmissionOutcome,
)

# signatures, verifies and adapter depend on ``adapters.bases``, which imports
# this package; they are loaded from ``adapters/__init__.py`` instead.

__all__ = [
    "EIP712Domain",
    "PermitMessage",
    "PermitTypedData",
    "build_permit_typed_data",
    "encode_permit",
    "hash_permit",
    "domain_separator",
    "EVMECDSASignature",
    "PermitRequest",
    "EIP2612Permit",
    "AuthorizeOperation",
    "MoveFromOperation",
    "EVMVerificationResult",
    "EVMMoveResult",
    "EVMSubmissionOutcome",
]
