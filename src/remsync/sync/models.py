"""Pydantic models for the pull-sync engine.

Defines the core data contracts used across all sync modules:

- ``MetadataRecord``: the locally persisted description of one node.
- ``SyncAction``: what a pass does (or would do) with one id.
- ``SyncPhase``: states of a sync pass.
- ``ItemResult``: outcome of one deletion or fetch.
- ``PassReport``: aggregate results for a full pass.

All models are frozen (immutable) for safety.
"""

from __future__ import annotations

import json
import time
from enum import Enum

from pydantic import BaseModel, Field, field_serializer, model_validator

from remsync.core.models import DocsResponse, NodeType


def now_millis() -> int:
    """Current time as milliseconds since the epoch."""
    return time.time_ns() // 1_000_000


class MetadataRecord(BaseModel):
    """Metadata held locally for one node.

    The id is the filename stem of the metadata file and is not stored in
    the file itself.  ``last_modified`` is kept as an int and written as a
    decimal string, matching the device's on-disk format.

    Attributes:
        id: Stable node identifier.
        parent: Id of the containing folder, ``""`` at the root.
        node_type: Folder or document.
        version: Remote version at last sync, 0 if never synced.
        name: Display name.
        bookmarked: Pinned in the UI.
        current_page: Last page open on the device.
        last_modified: Local modification time, epoch milliseconds.
        metadata_modified: Metadata changed since last sync.
        content_modified: Document data changed since last sync.
        deleted: Tombstone awaiting sync.
        synced: Ever synced with the remote store.
    """

    id: str = Field(exclude=True)
    parent: str = ""
    node_type: NodeType = Field(alias="type")
    version: int = Field(default=0, ge=0)
    name: str = Field(default="", alias="visibleName")
    bookmarked: bool = Field(default=False, alias="pinned")
    current_page: int = Field(default=0, ge=0, alias="currentPage")
    last_modified: int = Field(default=0, alias="lastModified")
    metadata_modified: bool = Field(
        default=False, alias="metadatamodified"
    )
    content_modified: bool = Field(default=False, alias="modified")
    deleted: bool = False
    synced: bool = False

    model_config = {"frozen": True, "populate_by_name": True}

    @model_validator(mode="after")
    def _never_synced_until_versioned(self) -> MetadataRecord:
        if self.version == 0 and self.synced:
            raise ValueError("a record with version 0 cannot be synced")
        return self

    @field_serializer("last_modified")
    def _last_modified_as_string(self, value: int) -> str:
        return str(value)

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def new(
        cls, doc_id: str, node_type: NodeType, parent: str, name: str
    ) -> MetadataRecord:
        """A node as though just created on a client, ready to be synced."""
        return cls(
            id=doc_id,
            node_type=node_type,
            parent=parent,
            name=name,
            last_modified=now_millis(),
        )

    @classmethod
    def from_remote(cls, doc: DocsResponse) -> MetadataRecord:
        """The record committed when *doc* is adopted."""
        return cls(
            id=doc.id,
            parent=doc.parent,
            node_type=doc.node_type,
            version=doc.version,
            name=doc.name,
            bookmarked=doc.bookmarked,
            current_page=doc.current_page,
            last_modified=now_millis(),
            synced=doc.version > 0,
        )

    # ------------------------------------------------------------------
    # Serialisation
    # ------------------------------------------------------------------

    def to_file_content(self) -> str:
        """Render the metadata file body (pretty JSON, no id)."""
        return json.dumps(
            self.model_dump(by_alias=True, mode="json"),
            indent=4,
            sort_keys=True,
        )

    @classmethod
    def from_file_content(cls, doc_id: str, content: str) -> MetadataRecord:
        """Parse a metadata file body for node *doc_id*.

        Raises:
            ValueError: If the content is not valid JSON or not a valid
                record (``pydantic.ValidationError`` is a ``ValueError``).
        """
        data = json.loads(content)
        if not isinstance(data, dict):
            raise ValueError("metadata file must hold a JSON object")
        return cls.model_validate({**data, "id": doc_id})

    # ------------------------------------------------------------------
    # Client-side edits
    # ------------------------------------------------------------------

    @property
    def is_draft(self) -> bool:
        """Never synced: exists only locally."""
        return self.version == 0 and not self.synced

    def _metadata_change(self, **changes) -> MetadataRecord:
        if all(getattr(self, k) == v for k, v in changes.items()):
            return self
        return self.model_copy(
            update={
                **changes,
                "metadata_modified": True,
                "last_modified": now_millis(),
            }
        )

    def with_name(self, name: str) -> MetadataRecord:
        return self._metadata_change(name=name)

    def with_parent(self, parent: str) -> MetadataRecord:
        return self._metadata_change(parent=parent)

    def with_bookmarked(self, bookmarked: bool) -> MetadataRecord:
        return self._metadata_change(bookmarked=bookmarked)

    def mark_deleted(self) -> MetadataRecord:
        """Turn the record into a tombstone."""
        return self._metadata_change(deleted=True)

    def mark_content_modified(self) -> MetadataRecord:
        return self.model_copy(
            update={
                "content_modified": True,
                "last_modified": now_millis(),
            }
        )


class SyncAction(str, Enum):
    """What a pass does with one id."""

    SKIP = "skip"
    CREATE_LOCAL = "create_local"
    PULL = "pull"
    DELETE_LOCAL = "delete_local"


class SyncPhase(str, Enum):
    """States of a sync pass.

    ``IDLE -> LOADING -> LISTING -> DELETING -> FETCHING -> DONE``, with
    ``ABORTED`` reachable only from ``LOADING`` or ``LISTING``.
    """

    IDLE = "idle"
    LOADING = "loading"
    LISTING = "listing"
    DELETING = "deleting"
    FETCHING = "fetching"
    DONE = "done"
    ABORTED = "aborted"


class ItemResult(BaseModel):
    """Result of deleting or fetching one node.

    Attributes:
        doc_id: Node id.
        name: Display name, when known.
        action: Action that was performed (or planned in a dry run).
        success: Whether the operation succeeded.
        bytes_transferred: Blob bytes written for fetches.
        error: Error message if the operation failed.
    """

    doc_id: str
    name: str = ""
    action: SyncAction
    success: bool
    bytes_transferred: int = 0
    error: str | None = None

    model_config = {"frozen": True}


class PassReport(BaseModel):
    """Aggregate report for one sync pass.

    Attributes:
        store: Local store directory.
        dry_run: Whether this was a dry-run (no changes applied).
        phase: Terminal phase of the pass.
        loaded: Number of records in the local index at start.
        listed: Number of nodes in the remote snapshot.
        results: Per-node results, deletions first.
        started_at: ISO 8601 timestamp when the pass started.
        completed_at: ISO 8601 timestamp when the pass completed.
    """

    store: str
    dry_run: bool = False
    phase: SyncPhase = SyncPhase.DONE
    loaded: int = 0
    listed: int = 0
    results: list[ItemResult] = []
    started_at: str
    completed_at: str | None = None

    model_config = {"frozen": True}

    @property
    def removed(self) -> list[ItemResult]:
        """Successful local deletions."""
        return [
            r
            for r in self.results
            if r.action == SyncAction.DELETE_LOCAL and r.success
        ]

    @property
    def fetched(self) -> list[ItemResult]:
        """Successful fetches, new or updated."""
        return [
            r
            for r in self.results
            if r.action in (SyncAction.CREATE_LOCAL, SyncAction.PULL)
            and r.success
        ]

    @property
    def failures(self) -> list[ItemResult]:
        """Results where success is False."""
        return [r for r in self.results if not r.success]

    @property
    def bytes_transferred(self) -> int:
        return sum(r.bytes_transferred for r in self.results)

    @property
    def ok(self) -> bool:
        return not self.failures

    def summary(self) -> str:
        """Format a one-line summary of the pass."""
        prefix = "Would remove" if self.dry_run else "Removed"
        verb = "fetch" if self.dry_run else "fetched"
        removed = len(self.removed)
        fetched = len(self.fetched)
        return (
            f"{prefix} {removed} {_plural(removed, 'doc')}, "
            f"{verb} {fetched} {_plural(fetched, 'blob')} "
            f"({self.bytes_transferred} bytes), "
            f"{len(self.failures)} {_plural(len(self.failures), 'failure')}"
        )


def _plural(count: int, word: str) -> str:
    return word if count == 1 else f"{word}s"
