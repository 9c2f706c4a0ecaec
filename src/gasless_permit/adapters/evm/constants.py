"""
EVM Relay Configuration and Constants

Values are read from the process environment; a ``.env`` file in the working
directory is loaded on import via ``python-dotenv``.

Environment Variables:
    - RPC_URL: JSON-RPC endpoint of the chain (default: local node on 7545)
    - TOKEN_ADDRESS: EIP-2612 token contract address
    - OWNER_PRIVATE_KEY: Token holder key (example script and local signing only)
    - SPENDER_PRIVATE_KEY: Relayer key that pays the fees
    - PERMIT_TTL_SECONDS: Lifetime of a freshly built permit (default: 3600)
    - PERMIT_DOMAIN_VERSION: EIP-712 domain version of the token (default: "1")
"""

import os
from decimal import Decimal, InvalidOperation
from typing import Optional

import dotenv

from ...engine.exceptions import ConfigurationError

dotenv.load_dotenv()


MAX_UINT256: int = 2**256 - 1

#: secp256k1 group order; signatures with ``s > SECP256K1_N // 2`` are malleable.
SECP256K1_N: int = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141

DEFAULT_RPC_URL: str = "http://127.0.0.1:7545"
DEFAULT_PERMIT_TTL: int = 3600
DEFAULT_DOMAIN_VERSION: str = "1"
DEFAULT_TOKEN_DECIMALS: int = 18


def get_rpc_url_from_env() -> str:
    """Return ``RPC_URL`` or the local development node."""
    return os.getenv("RPC_URL") or DEFAULT_RPC_URL


def get_token_address_from_env() -> str:
    """
    Return ``TOKEN_ADDRESS``.

    Raises:
        ConfigurationError: If the variable is unset.
    """
    address = os.getenv("TOKEN_ADDRESS")
    if not address:
        raise ConfigurationError("TOKEN_ADDRESS is not set")
    return address


def get_owner_private_key_from_env() -> Optional[str]:
    """
    Load the token holder's private key.

    Only the example script and local test setups sign with it; a deployed
    relayer never sees the owner's key.
    """
    return os.getenv("OWNER_PRIVATE_KEY")


def get_spender_private_key_from_env() -> Optional[str]:
    """Load the relayer (spender) private key that pays submission fees."""
    return os.getenv("SPENDER_PRIVATE_KEY")


def get_permit_ttl_from_env() -> int:
    """
    Return ``PERMIT_TTL_SECONDS`` as an int.

    Raises:
        ConfigurationError: If the value is not a positive integer.
    """
    raw = os.getenv("PERMIT_TTL_SECONDS")
    if raw is None or raw == "":
        return DEFAULT_PERMIT_TTL
    try:
        ttl = int(raw)
    except ValueError as e:
        raise ConfigurationError(f"PERMIT_TTL_SECONDS must be an integer, got {raw!r}") from e
    if ttl <= 0:
        raise ConfigurationError(f"PERMIT_TTL_SECONDS must be positive, got {ttl}")
    return ttl


def get_domain_version_from_env() -> str:
    """Return ``PERMIT_DOMAIN_VERSION`` or ``"1"``."""
    return os.getenv("PERMIT_DOMAIN_VERSION") or DEFAULT_DOMAIN_VERSION


def amount_to_value(*, amount: float | int | str | Decimal, decimals: int = DEFAULT_TOKEN_DECIMALS) -> int:
    """Convert a human-readable token `amount` into smallest-unit integer `value`.

    Args:
        amount: Human-readable amount (e.g. "10" for 10 tokens). Accepts float/int/str/Decimal.
        decimals: Token decimals (18 unless the token says otherwise).

    Returns:
        int: Smallest-unit integer value.

    Raises:
        ValueError: If inputs are invalid or the amount cannot be represented in smallest units.
    """
    if not isinstance(decimals, int) or decimals < 0:
        raise ValueError("decimals must be a non-negative int")

    try:
        # str() avoids binary-float expansion (0.1 -> 0.1000000000000000055...)
        dec_amount = amount if isinstance(amount, Decimal) else Decimal(str(amount))
    except (InvalidOperation, ValueError, TypeError) as e:
        raise ValueError(f"Invalid amount: {amount!r}") from e

    if dec_amount < 0:
        raise ValueError("amount must be non-negative")

    scaled = dec_amount * (Decimal(10) ** decimals)

    if scaled != scaled.to_integral_value():
        raise ValueError(
            f"amount {amount!r} is not representable with decimals={decimals} "
            f"(would create fractional smallest units)"
        )

    return int(scaled)


def value_to_amount(*, value: int | str | Decimal, decimals: int = DEFAULT_TOKEN_DECIMALS) -> Decimal:
    """Convert a smallest-unit integer `value` into a human-readable `Decimal` amount.

    Raises:
        ValueError: If inputs are invalid.
    """
    if not isinstance(decimals, int) or decimals < 0:
        raise ValueError("decimals must be a non-negative int")

    try:
        dec_value = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError) as e:
        raise ValueError(f"Invalid value: {value!r}") from e

    if dec_value < 0:
        raise ValueError("value must be non-negative")

    if dec_value != dec_value.to_integral_value():
        raise ValueError("value must be an integer in smallest units")

    return dec_value / (Decimal(10) ** decimals)
