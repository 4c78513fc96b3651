"""CardDAV access: the vCard codec and the address-book client."""

from dav_manager.api.carddav import (
    CardDAVClient,
    CardDAVError,
    ConflictError,
    TransportError,
)
from dav_manager.api.vcard import (
    DecodeError,
    decode_record,
    decode_records,
    encode_record,
)

__all__ = [
    "CardDAVClient",
    "CardDAVError",
    "ConflictError",
    "TransportError",
    "DecodeError",
    "decode_record",
    "decode_records",
    "encode_record",
]
