from .token import PermitToken
from .ledger import InMemoryLedger, AUTHORIZE_GAS, MOVE_FROM_GAS, DEFAULT_GAS_PRICE

__all__ = [
    "PermitToken",
    "InMemoryLedger",
    "AUTHORIZE_GAS",
    "MOVE_FROM_GAS",
    "DEFAULT_GAS_PRICE",
]
