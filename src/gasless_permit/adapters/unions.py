"""
Polymorphic Operation Types (Discriminated Unions)

Defines the type union a ledger accepts, discriminated on ``operation_type``.

Pydantic's Discriminated Union automatically:
- Validates and selects the correct model based on the discriminator field value
- Provides type safety and IDE autocomplete for all variants
- Eliminates the need for manual type detection and conversion logic

Example usage:
    # Pydantic selects MoveFromOperation when operation_type="move_from"
    op = OperationAdapter.validate_python({
        "operation_type": "move_from",
        "owner": "0x...",
        "recipient": "0x...",
        "amount": 30,
    })
"""

from typing import Union
from typing_extensions import Annotated
from pydantic import Field, TypeAdapter

from .evm.schemas import AuthorizeOperation, MoveFromOperation


# Discriminated Union for ledger submissions
# Automatically selects correct model based on 'operation_type' field value
OperationTypes = Annotated[
    Union[
        AuthorizeOperation,  # operation_type: "authorize"
        MoveFromOperation,   # operation_type: "move_from"
    ],
    Field(discriminator='operation_type')
]

OperationAdapter: TypeAdapter = TypeAdapter(OperationTypes)
