"""
ERC20 + EIP-2612 Smart Contract ABI Module

This module provides simplified ABI definitions for the calls the relay makes
against a permit-capable ERC20 token: metadata and balance reads, the
``nonces``/``DOMAIN_SEPARATOR`` pair that backs the EIP-712 domain, and the
two state-changing calls of the gasless flow (``permit`` then
``transferFrom``).

Usage:
    from ERC20_ABI import get_permit_token_abi

    contract = w3.eth.contract(address=token_address, abi=get_permit_token_abi())
    nonce = await contract.functions.nonces(owner).call()
"""

from typing import Dict, Any, List


def get_metadata_abi() -> List[Dict[str, Any]]:
    """
    Get ABI for ``name()`` and ``version()``.

    ``version()`` is optional in EIP-2612; callers fall back to the configured
    domain version when the call reverts.
    """
    return [
        {
            "name": "name",
            "type": "function",
            "stateMutability": "view",
            "inputs": [],
            "outputs": [{"name": "", "type": "string"}],
        },
        {
            "name": "version",
            "type": "function",
            "stateMutability": "view",
            "inputs": [],
            "outputs": [{"name": "", "type": "string"}],
        },
    ]


def get_balance_abi() -> List[Dict[str, Any]]:
    """
    Get ABI for querying token balance.

    Returns:
        List[Dict[str, Any]]: ABI for balanceOf function

    Example:
        abi = get_balance_abi()
        # Use with web3.py: web3.eth.contract(address=token_address, abi=abi)
        # Call: contract.functions.balanceOf(address).call()
    """
    return [
        {
            "name": "balanceOf",
            "type": "function",
            "stateMutability": "view",
            "inputs": [{"name": "account", "type": "address"}],
            "outputs": [{"name": "", "type": "uint256"}],
        }
    ]


def get_allowance_abi() -> List[Dict[str, Any]]:
    """
    Get ABI for ERC20 `allowance(owner, spender)`.

    Example:
        abi = get_allowance_abi()
        contract = web3.eth.contract(address=token_address, abi=abi)
        allowance = contract.functions.allowance(owner, spender).call()
    """
    return [
        {
            "name": "allowance",
            "type": "function",
            "stateMutability": "view",
            "inputs": [
                {"name": "owner", "type": "address"},
                {"name": "spender", "type": "address"},
            ],
            "outputs": [{"name": "", "type": "uint256"}],
        }
    ]


def get_eip2612_abi() -> List[Dict[str, Any]]:
    """
    Get ABI for EIP-2612 ``nonces``, ``DOMAIN_SEPARATOR`` and ``permit``.

    Returns:
        List[Dict[str, Any]]: ABI entries for the permit extension.

    Example::

        abi = get_eip2612_abi()
        contract = web3.eth.contract(address=token_address, abi=abi)
        tx = contract.functions.permit(
            owner, spender, value, deadline, v, r_bytes, s_bytes
        ).build_transaction({...})
    """
    return [
        {
            "name": "nonces",
            "type": "function",
            "stateMutability": "view",
            "inputs": [{"name": "owner", "type": "address"}],
            "outputs": [{"name": "", "type": "uint256"}],
        },
        {
            "name": "DOMAIN_SEPARATOR",
            "type": "function",
            "stateMutability": "view",
            "inputs": [],
            "outputs": [{"name": "", "type": "bytes32"}],
        },
        {
            "name": "permit",
            "type": "function",
            "stateMutability": "nonpayable",
            "inputs": [
                {"name": "owner", "type": "address"},
                {"name": "spender", "type": "address"},
                {"name": "value", "type": "uint256"},
                {"name": "deadline", "type": "uint256"},
                {"name": "v", "type": "uint8"},
                {"name": "r", "type": "bytes32"},
                {"name": "s", "type": "bytes32"},
            ],
            "outputs": [],
        },
    ]


def get_transfer_from_abi() -> List[Dict[str, Any]]:
    """
    Get ABI for ERC20 ``transferFrom(from, to, amount)``.

    The transaction sender must be the spender holding the allowance.
    """
    return [
        {
            "name": "transferFrom",
            "type": "function",
            "stateMutability": "nonpayable",
            "inputs": [
                {"name": "from", "type": "address"},
                {"name": "to", "type": "address"},
                {"name": "amount", "type": "uint256"},
            ],
            "outputs": [{"name": "", "type": "bool"}],
        }
    ]


def get_permit_token_abi() -> List[Dict[str, Any]]:
    """Every entry above, for a single contract object."""
    return (
        get_metadata_abi()
        + get_balance_abi()
        + get_allowance_abi()
        + get_eip2612_abi()
        + get_transfer_from_abi()
    )
