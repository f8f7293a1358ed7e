"""Version-based reconciliation between the local index and a remote snapshot.

Pure set logic, no I/O.  Freshness is decided by the version counter
alone: content is never hashed or diffed.  For any pair of mappings:

* ``stale_ids()`` and ``outdated_ids()`` are disjoint;
* every remote id is in exactly one of ``outdated_ids()`` and
  ``up_to_date_ids()``.

Never-synced local drafts show up as stale when the remote store does not
list them.  Deleting them would destroy local work, so callers pass the
stale set through ``exclude_drafts()`` before removing anything.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from remsync.core.models import DocsResponse
from remsync.sync.models import MetadataRecord, SyncAction


class Reconciler:
    """Classify ids of a local index against a remote snapshot.

    Args:
        local: Local records keyed by id.
        remote: Remote listing entries keyed by id.
    """

    def __init__(
        self,
        local: Mapping[str, MetadataRecord],
        remote: Mapping[str, DocsResponse],
    ) -> None:
        self.local = local
        self.remote = remote

    def stale_ids(self) -> set[str]:
        """Ids held locally that the remote store no longer lists."""
        return set(self.local) - set(self.remote)

    def outdated_ids(self) -> set[str]:
        """Remote ids missing locally or held at a different version."""
        return {
            doc_id
            for doc_id, doc in self.remote.items()
            if doc_id not in self.local
            or self.local[doc_id].version != doc.version
        }

    def locally_changed_ids(self) -> set[str]:
        """Local ids missing remotely or held at a different version.

        The outward counterpart of ``outdated_ids()``.  Nothing pushes
        changes yet, so no command uses it.
        """
        return {
            doc_id
            for doc_id, record in self.local.items()
            if doc_id not in self.remote
            or self.remote[doc_id].version != record.version
        }

    def up_to_date_ids(self) -> set[str]:
        """Ids present on both sides at the same version."""
        return {
            doc_id
            for doc_id, doc in self.remote.items()
            if doc_id in self.local
            and self.local[doc_id].version == doc.version
        }

    def classify(self, doc_id: str) -> SyncAction:
        """The pull action for a single id."""
        in_local = doc_id in self.local
        in_remote = doc_id in self.remote
        if in_local and not in_remote:
            return SyncAction.DELETE_LOCAL
        if in_remote and not in_local:
            return SyncAction.CREATE_LOCAL
        if (
            in_local
            and self.local[doc_id].version != self.remote[doc_id].version
        ):
            return SyncAction.PULL
        return SyncAction.SKIP


def exclude_drafts(
    ids: Iterable[str], local: Mapping[str, MetadataRecord]
) -> set[str]:
    """Drop never-synced drafts from *ids*.

    Args:
        ids: Candidate ids, usually ``Reconciler.stale_ids()``.
        local: The records to judge by.  Pass the index's real records,
            not its reconcile view.
    """
    return {
        doc_id
        for doc_id in ids
        if doc_id not in local or not local[doc_id].is_draft
    }
