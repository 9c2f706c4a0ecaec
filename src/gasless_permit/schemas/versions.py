from enum import Enum


class EncodingVersion(Enum):
    """Layout version of the signed permit message.

    Adding, removing or reordering a field of the domain or of the ``Permit``
    struct produces a new member here; existing members never change.
    """
    V1 = "eip2612-v1"

    @classmethod
    def from_string(cls, value):
        try:
            return cls(value)
        except ValueError:
            raise ValueError(f"Unsupported permit encoding version: {value}")


LATEST_ENCODING_VERSION = EncodingVersion.V1
