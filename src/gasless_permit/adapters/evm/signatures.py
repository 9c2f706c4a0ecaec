"""
EVM Off-Chain Permit Signing

Local EIP-712 signing for EIP-2612 ``permit``. All cryptographic operations
run in-process through ``eth_account``; no RPC calls are made.

Exported helpers
----------------
sign_permit
    Sign a ``PermitRequest`` under a domain with a raw private key and return
    the ``EVMECDSASignature``.

LocalAccountSigner
    ``PermitSigner`` backed by a private key held in memory. Stands in for a
    wallet in tests, scripts and local development.
"""

from eth_account import Account

from ...engine.exceptions import SigningError
from ..bases import PermitSigner
from .schemas import EVMECDSASignature, PermitRequest
from .standards import EIP712Domain, build_permit_typed_data


def sign_permit(
    *,
    private_key: str,
    domain: EIP712Domain,
    request: PermitRequest,
) -> EVMECDSASignature:
    """
    Sign an EIP-2612 permit and return its (v, r, s) components.

    The typed data comes from ``build_permit_typed_data``, the same builder the
    verifier uses, so the digest signed here is the one recovered there.

    Args:
        private_key: Hex-encoded secp256k1 key of ``request.owner``.
        domain: Domain descriptor of the token that will consume the permit.
        request: Unsigned request.

    Returns:
        ``EVMECDSASignature`` with zero-padded r and s.

    Example::

        sig = sign_permit(
            private_key="0xYOUR_PRIVATE_KEY",
            domain=EIP712Domain("MyGaslessToken", "1", 1337, "0xToken..."),
            request=PermitRequest(owner="0xOwner", spender="0xRelayer",
                                  value=10**19, nonce=0, deadline=1_900_000_000),
        )
    """
    typed_data = build_permit_typed_data(domain, request)
    signed = Account.sign_typed_data(private_key, full_message=typed_data.to_dict())
    return EVMECDSASignature.from_components(signed.v, signed.r, signed.s)


class LocalAccountSigner(PermitSigner):
    """
    Permit signer holding a private key in process memory.

    Refuses to sign requests whose ``owner`` is not its own address, so a
    relayer cannot get it to authorize someone else's tokens.

    Example::

        signer = LocalAccountSigner("0x...")
        signature = await signer.sign(domain, request)
    """

    def __init__(self, private_key: str):
        self._account = Account.from_key(private_key)
        self._private_key = private_key

    @property
    def address(self) -> str:
        return self._account.address

    async def sign(self, domain: EIP712Domain, request: PermitRequest) -> EVMECDSASignature:
        if request.owner.lower() != self.address.lower():
            raise SigningError(
                f"Signer {self.address} cannot sign a permit for owner {request.owner}"
            )
        try:
            return sign_permit(private_key=self._private_key, domain=domain, request=request)
        except Exception as e:
            raise SigningError(f"Failed to sign permit: {e}") from e

    def __repr__(self) -> str:
        return f"LocalAccountSigner(address={self.address})"
