"""Contact data model and reconciliation of a CardDAV collection."""

from dav_manager.sync.contact import (
    CardReference,
    DesiredEntry,
    ExecutionMode,
    RemoteRecord,
)

__all__ = [
    "CardReference",
    "DesiredEntry",
    "ExecutionMode",
    "RemoteRecord",
]
