from .bases import (
    CanonicalModel,
    BaseSignature,
    BasePermit,
    FailureKind,
    BaseVerificationResult,
    TransactionStatus,
    BaseSubmissionOutcome,
)
from .versions import EncodingVersion, LATEST_ENCODING_VERSION

__all__ = [
    "CanonicalModel",
    "BaseSignature",
    "BasePermit",
    "FailureKind",
    "BaseVerificationResult",
    "TransactionStatus",
    "BaseSubmissionOutcome",
    "EncodingVersion",
    "LATEST_ENCODING_VERSION",
]
