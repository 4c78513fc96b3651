"""
Result types shared by the reconciliation engine and the bulk operations.

Every mutation is recorded whether or not it was carried out, so a
preview run reports exactly what an apply run would do.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from dav_manager.api.carddav import ConflictError, TransportError
from dav_manager.api.vcard import DecodeError
from dav_manager.sync.contact import ExecutionMode, RemoteRecord


class MutationAction(str, Enum):
    """Kinds of change made to the server or the bucket folders."""

    CREATE = "create"
    UPDATE = "update"
    TOUCH = "touch"
    DELETE = "delete"
    DELETE_DUPLICATE = "delete_duplicate"
    REMOVE_EXTRA = "remove_extra"
    MOVE = "move"
    REFRESH_UID = "refresh_uid"


@dataclass
class Mutation:
    """
    One planned change.

    Attributes:
        action: What kind of change
        name: Display name of the contact concerned
        href: Server location of the affected card, None for creates
        bucket: Bucket the card was archived to, if any
        path: Archive or backup file written, if any
        committed: True once the server/file call has actually happened
        detail: Short human-readable description
    """

    action: MutationAction
    name: str
    href: str | None = None
    bucket: str | None = None
    path: Path | None = None
    committed: bool = False
    detail: str = ""


@dataclass
class SyncError:
    """
    A failure of one operation on one contact.

    Attributes:
        operation: Step that failed (e.g. "put", "delete", "archive")
        subject: Name or href of the contact concerned
        kind: "conflict", "transport", "decode", "io" or "error"
        message: Error text
    """

    operation: str
    subject: str
    kind: str
    message: str

    @classmethod
    def from_exception(
        cls, operation: str, subject: str, error: Exception
    ) -> SyncError:
        if isinstance(error, ConflictError):
            kind = "conflict"
        elif isinstance(error, TransportError):
            kind = "transport"
        elif isinstance(error, DecodeError):
            kind = "decode"
        elif isinstance(error, OSError):
            kind = "io"
        else:
            kind = "error"
        return cls(operation=operation, subject=subject, kind=kind, message=str(error))

    def __str__(self) -> str:
        return f"{self.operation} {self.subject}: {self.message}"


@dataclass
class SyncStats:
    """
    Counters for one pass.

    Counts of what was found or planned are filled in both modes.
    created, updated, touched, extras_archived and the *_deleted counters
    only move when the store or file call succeeded.
    """

    remote_fetched: int = 0
    fetch_failures: int = 0
    desired: int = 0
    duplicates_found: int = 0
    duplicates_deleted: int = 0
    extras_found: int = 0
    extras_archived: int = 0
    extras_deleted: int = 0
    to_create: int = 0
    to_update: int = 0
    unchanged: int = 0
    created: int = 0
    updated: int = 0
    touched: int = 0
    conflicts: int = 0
    errors: int = 0
    verified: int = 0


@dataclass
class SyncResult:
    """
    Outcome of a reconciliation pass or a bulk operation.

    Usage:
        result = engine.run(desired)
        print(result.summary())
        for mutation in result.planned(MutationAction.CREATE):
            print(mutation.name)
    """

    mode: ExecutionMode = ExecutionMode.PREVIEW
    mutations: list[Mutation] = field(default_factory=list)
    errors: list[SyncError] = field(default_factory=list)
    verified: list[RemoteRecord] = field(default_factory=list)
    verify_table: Path | None = None
    stats: SyncStats = field(default_factory=SyncStats)

    def add(self, mutation: Mutation) -> Mutation:
        self.mutations.append(mutation)
        return mutation

    def add_error(self, operation: str, subject: str, error: Exception) -> SyncError:
        """Record a failed operation; conflicts are counted on their own."""
        sync_error = SyncError.from_exception(operation, subject, error)
        self.errors.append(sync_error)
        if sync_error.kind == "conflict":
            self.stats.conflicts += 1
        else:
            self.stats.errors += 1
        return sync_error

    def planned(self, action: MutationAction | None = None) -> list[Mutation]:
        """Mutations computed in this pass, optionally of one action."""
        return [m for m in self.mutations if action is None or m.action == action]

    def committed(self, action: MutationAction | None = None) -> list[Mutation]:
        """Mutations that were actually carried out."""
        return [m for m in self.planned(action) if m.committed]

    def has_changes(self) -> bool:
        """Check if the pass computed any mutation."""
        return bool(self.mutations)

    def has_errors(self) -> bool:
        return bool(self.errors)

    def summary(self) -> str:
        """
        Generate a human-readable summary of the pass.

        Returns:
            Formatted string summary of planned and committed changes
        """
        stats = self.stats
        header = "Sync Summary:" if self.mode.applies else "Sync Summary (dry run):"
        lines = [
            header,
            f"  Remote contacts: {stats.remote_fetched}"
            + (f" ({stats.fetch_failures} unreadable)" if stats.fetch_failures else ""),
            f"  Desired entries: {stats.desired}",
            "",
            "Changes:",
            f"  Create: {len(self.planned(MutationAction.CREATE))}",
            f"  Update: {len(self.planned(MutationAction.UPDATE))}",
            f"  Remove extras: {len(self.planned(MutationAction.REMOVE_EXTRA))}",
            f"  Delete duplicates: "
            f"{len(self.planned(MutationAction.DELETE_DUPLICATE))}",
        ]

        touched = self.planned(MutationAction.TOUCH)
        if touched:
            lines.append(f"  Touch: {len(touched)}")
        if stats.unchanged:
            lines.append(f"  Unchanged: {stats.unchanged}")

        if self.mode.applies:
            lines.extend(
                [
                    "",
                    "Applied:",
                    f"  Created: {stats.created}",
                    f"  Updated: {stats.updated}",
                    f"  Deleted: {stats.extras_deleted + stats.duplicates_deleted}",
                    f"  Archived: {stats.extras_archived}",
                ]
            )

        if stats.conflicts or stats.errors:
            lines.append("")
            lines.append("Errors:")
            if stats.conflicts:
                lines.append(f"  Conflicts: {stats.conflicts}")
            if stats.errors:
                lines.append(f"  Failures: {stats.errors}")

        if self.verify_table is not None:
            lines.append("")
            lines.append(f"Verified {stats.verified} contacts -> {self.verify_table}")

        return "\n".join(lines)
