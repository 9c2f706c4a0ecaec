"""
EIP-712 / EIP-2612 Permit Encoding

Builds the canonical, domain-separated ``Permit`` message that the owner
signs and the consumer reconstructs. The signer and the verifier both go
through ``build_permit_typed_data`` so the bytes they hash are identical by
construction.

Layouts are fixed per ``EncodingVersion``. Changing a field name, type,
width or position means adding a new version to ``PERMIT_TYPES``, never
editing an existing one.

Exported helpers
----------------
build_permit_typed_data
    Wrap a domain and a request in a ``PermitTypedData`` envelope.
encode_permit
    Produce the ``SignableMessage`` (EIP-191 version 0x01) for signing or
    recovery.
hash_permit
    Produce the 32-byte digest ``keccak(0x19 0x01 || domainSeparator || structHash)``.
domain_separator
    Produce the 32-byte domain separator, comparable with the token
    contract's ``DOMAIN_SEPARATOR()``.
"""

from dataclasses import dataclass, field
from typing import Dict, Any, List

from eth_account.messages import SignableMessage, encode_typed_data
from eth_utils import keccak

from ...schemas.versions import EncodingVersion, LATEST_ENCODING_VERSION


# -----------------------------
# Type layouts
# -----------------------------

PERMIT_TYPES: Dict[EncodingVersion, Dict[str, List[Dict[str, str]]]] = {
    EncodingVersion.V1: {
        "EIP712Domain": [
            {"name": "name", "type": "string"},
            {"name": "version", "type": "string"},
            {"name": "chainId", "type": "uint256"},
            {"name": "verifyingContract", "type": "address"},
        ],
        "Permit": [
            {"name": "owner", "type": "address"},
            {"name": "spender", "type": "address"},
            {"name": "value", "type": "uint256"},
            {"name": "nonce", "type": "uint256"},
            {"name": "deadline", "type": "uint256"},
        ],
    },
}


# -----------------------------
# EIP-712 Domain
# -----------------------------

@dataclass(frozen=True)
class EIP712Domain:
    """
    EIP-712 domain descriptor.

    Binds a signature to one token deployment on one chain; a signature made
    under one domain never verifies under another.
    """
    name: str
    version: str
    chain_id: int
    verifying_contract: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "chainId": self.chain_id,
            "verifyingContract": self.verifying_contract,
        }


# -----------------------------
# Permit Message (EIP-2612)
# -----------------------------

@dataclass(frozen=True)
class PermitMessage:
    """
    Permit message as defined in EIP-2612.
    """
    owner: str
    spender: str
    value: int
    nonce: int
    deadline: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "owner": self.owner,
            "spender": self.spender,
            "value": self.value,
            "nonce": self.nonce,
            "deadline": self.deadline,
        }


# -----------------------------
# EIP-712 Typed Data Wrapper
# -----------------------------

@dataclass(frozen=True)
class PermitTypedData:
    """
    EIP-712 typed-data envelope for a ``Permit``.

    ``to_dict()`` yields the ``{types, primaryType, domain, message}`` layout
    accepted by ``eth_account`` and ``eth_signTypedData_v4``.

    Attributes:
        domain: Domain descriptor.
        message: Permit payload.
        encoding_version: Selects the type layout from ``PERMIT_TYPES``.
    """
    domain: EIP712Domain
    message: PermitMessage
    encoding_version: EncodingVersion = LATEST_ENCODING_VERSION

    primary_type: str = field(default="Permit", init=False)

    @property
    def types(self) -> Dict[str, List[Dict[str, str]]]:
        return PERMIT_TYPES[self.encoding_version]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "types": self.types,
            "primaryType": self.primary_type,
            "domain": self.domain.to_dict(),
            "message": self.message.to_dict(),
        }


def build_permit_typed_data(
    domain: EIP712Domain,
    request,
    *,
    encoding_version: EncodingVersion = LATEST_ENCODING_VERSION,
) -> PermitTypedData:
    """
    Wrap a domain descriptor and a permit request in a ``PermitTypedData``.

    Args:
        domain: Domain descriptor of the verifying token.
        request: Any object exposing ``owner``, ``spender``, ``value``,
            ``nonce`` and ``deadline`` (``PermitRequest``, ``EIP2612Permit``).
        encoding_version: Type layout to use.

    Returns:
        ``PermitTypedData`` ready for signing or verification.

    Raises:
        ValueError: If ``encoding_version`` has no registered layout.
    """
    if encoding_version not in PERMIT_TYPES:
        raise ValueError(f"No permit layout registered for {encoding_version}")
    message = PermitMessage(
        owner=request.owner,
        spender=request.spender,
        value=int(request.value),
        nonce=int(request.nonce),
        deadline=int(request.deadline),
    )
    return PermitTypedData(domain=domain, message=message, encoding_version=encoding_version)


def encode_permit(
    domain: EIP712Domain,
    request,
    *,
    encoding_version: EncodingVersion = LATEST_ENCODING_VERSION,
) -> SignableMessage:
    """
    Encode a permit into the ``SignableMessage`` both signer and verifier use.

    ``header`` is the domain separator and ``body`` the struct hash.
    """
    typed_data = build_permit_typed_data(domain, request, encoding_version=encoding_version)
    return encode_typed_data(full_message=typed_data.to_dict())


def hash_permit(
    domain: EIP712Domain,
    request,
    *,
    encoding_version: EncodingVersion = LATEST_ENCODING_VERSION,
) -> bytes:
    """Return the 32-byte EIP-712 digest that gets signed."""
    signable = encode_permit(domain, request, encoding_version=encoding_version)
    return keccak(b"\x19" + signable.version + signable.header + signable.body)


def domain_separator(
    domain: EIP712Domain,
    *,
    encoding_version: EncodingVersion = LATEST_ENCODING_VERSION,
) -> bytes:
    """Return the 32-byte domain separator for ``domain``."""
    # The separator does not depend on the message; any well-formed one works.
    placeholder = PermitMessage(
        owner=domain.verifying_contract,
        spender=domain.verifying_contract,
        value=0,
        nonce=0,
        deadline=0,
    )
    typed_data = PermitTypedData(domain=domain, message=placeholder, encoding_version=encoding_version)
    return bytes(encode_typed_data(full_message=typed_data.to_dict()).header)
