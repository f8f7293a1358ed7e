"""Sync driver that runs one pull pass over a local store.

The ``SyncDriver`` ties together the local index, the remote listing and
the reconciler into a complete pass.  It:

1. Loads the local index from the store directory and clears crash
   leftovers (not on dry runs).
2. Lists the remote store and builds a snapshot keyed by id.
3. Removes stale ids (never-synced drafts excepted).
4. Fetches and adopts outdated ids, several at a time.
5. Builds and returns a ``PassReport``.

Failures while loading or listing abort the pass.  After that, error
handling is per-id: a single failed deletion or fetch does not stop the
others, whatever the remote store raised while streaming.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable, Iterable
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

from remsync.core.async_utils import run_limited
from remsync.core.models import DocsResponse
from remsync.errors import (
    AdoptError,
    InvariantError,
    LoadError,
    RemoteError,
)
from remsync.sync.index import LocalIndex
from remsync.sync.models import (
    ItemResult,
    MetadataRecord,
    PassReport,
    SyncAction,
    SyncPhase,
)
from remsync.sync.reconciler import Reconciler, exclude_drafts
from remsync.validators import is_valid_doc_id

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[SyncPhase, str | None, SyncAction | None], None]


class RemoteStore(Protocol):
    """What the driver needs from the remote side.

    The collaborator holds its own credentials.  ``fetch_blob`` may raise
    ``RemoteError`` either when called or while being iterated.
    """

    def list_documents(self) -> list[DocsResponse]: ...

    def fetch_blob(self, doc_id: str) -> Iterable[bytes]: ...


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def build_snapshot(docs: Iterable[DocsResponse]) -> dict[str, DocsResponse]:
    """Key a remote listing by id.

    Raises:
        InvariantError: If an id is malformed or listed twice.
    """
    snapshot: dict[str, DocsResponse] = {}
    for doc in docs:
        if not is_valid_doc_id(doc.id):
            raise InvariantError(f"Remote listed an invalid id: {doc.id!r}")
        if doc.id in snapshot:
            raise InvariantError(f"Remote listed id {doc.id} twice")
        snapshot[doc.id] = doc
    return snapshot


class SyncDriver:
    """Run pull passes that make a local store mirror the remote store.

    Args:
        remote: The remote store collaborator.
        base_path: The local store directory.
        max_parallel: Upper bound on concurrent fetches (>= 1).
        progress: Optional callback receiving ``(phase, doc_id, action)``
            events.  Per-id events arrive from worker threads during
            fetching.
    """

    def __init__(
        self,
        remote: RemoteStore,
        base_path: Path,
        max_parallel: int = 4,
        progress: ProgressCallback | None = None,
    ) -> None:
        if max_parallel < 1:
            raise ValueError("max_parallel must be at least 1")
        self.remote = remote
        self.base_path = Path(base_path)
        self.max_parallel = max_parallel
        self.progress = progress
        self.phase = SyncPhase.IDLE
        self.index: LocalIndex | None = None

    # ------------------------------------------------------------------
    # Main entry point
    # ------------------------------------------------------------------

    def run(self, dry_run: bool = False) -> PassReport:
        """Execute one pass.

        Args:
            dry_run: If ``True``, compute actions but neither delete nor
                fetch anything.

        Returns:
            A ``PassReport`` summarising what was (or would be) done.

        Raises:
            LoadError: The local store could not be loaded.
            RemoteError: The remote store could not be listed.
            InvariantError: The remote listing is inconsistent.
        """
        started_at = _now()

        try:
            self._enter(SyncPhase.LOADING)
            index = LocalIndex.load(self.base_path)
            self.index = index
            if not dry_run:
                index.sweep_leftovers()

            self._enter(SyncPhase.LISTING)
            snapshot = build_snapshot(self.remote.list_documents())
        except (LoadError, RemoteError, InvariantError) as exc:
            self._enter(SyncPhase.ABORTED)
            logger.error("Sync pass aborted: %s", exc)
            raise

        records = index.records()
        reconciler = Reconciler(index.reconcile_view(), snapshot)
        to_remove = sorted(exclude_drafts(reconciler.stale_ids(), records))
        to_fetch = sorted(reconciler.outdated_ids())
        skipped_drafts = len(reconciler.stale_ids()) - len(to_remove)
        if skipped_drafts:
            logger.info(
                "Keeping %d never-synced local drafts", skipped_drafts
            )
        logger.info(
            "%d stale, %d outdated, %d up to date",
            len(to_remove),
            len(to_fetch),
            len(reconciler.up_to_date_ids()),
        )

        results: list[ItemResult] = []

        self._enter(SyncPhase.DELETING)
        for doc_id in to_remove:
            results.append(self._remove(index, doc_id, records, dry_run))

        self._enter(SyncPhase.FETCHING)
        jobs = [
            (snapshot[doc_id], reconciler.classify(doc_id))
            for doc_id in to_fetch
        ]
        if dry_run:
            results.extend(
                self._planned_fetch(doc, action) for doc, action in jobs
            )
        else:
            results.extend(
                run_limited(
                    lambda job: self._fetch(index, *job),
                    jobs,
                    self.max_parallel,
                )
            )

        self._enter(SyncPhase.DONE)
        report = PassReport(
            store=str(self.base_path),
            dry_run=dry_run,
            phase=self.phase,
            loaded=len(records),
            listed=len(snapshot),
            results=results,
            started_at=started_at,
            completed_at=_now(),
        )
        logger.info(report.summary())
        return report

    # ------------------------------------------------------------------
    # Per-id work
    # ------------------------------------------------------------------

    def _remove(
        self,
        index: LocalIndex,
        doc_id: str,
        records: dict[str, MetadataRecord],
        dry_run: bool,
    ) -> ItemResult:
        record = records.get(doc_id)
        name = record.name if record is not None else ""
        self._notify(doc_id, SyncAction.DELETE_LOCAL)

        if dry_run:
            return ItemResult(
                doc_id=doc_id,
                name=name,
                action=SyncAction.DELETE_LOCAL,
                success=True,
            )

        try:
            index.remove_local_only(doc_id)
        except OSError as exc:
            logger.error("Failed to remove %s: %s", doc_id, exc)
            return ItemResult(
                doc_id=doc_id,
                name=name,
                action=SyncAction.DELETE_LOCAL,
                success=False,
                error=str(exc),
            )
        logger.debug("Removed %s", doc_id)
        return ItemResult(
            doc_id=doc_id,
            name=name,
            action=SyncAction.DELETE_LOCAL,
            success=True,
        )

    def _planned_fetch(
        self, doc: DocsResponse, action: SyncAction
    ) -> ItemResult:
        self._notify(doc.id, action)
        return ItemResult(
            doc_id=doc.id, name=doc.name, action=action, success=True
        )

    def _fetch(
        self, index: LocalIndex, doc: DocsResponse, action: SyncAction
    ) -> ItemResult:
        """Stream one blob to its download file and adopt it.

        Runs in a worker thread.
        """
        self._notify(doc.id, action)
        download = index.download_path(doc.id)

        try:
            written = self._stream_blob(doc.id, download)
        except Exception as exc:
            logger.error("Failed to fetch %s: %s", doc.id, exc)
            try:
                download.unlink(missing_ok=True)
            except OSError:
                logger.warning("Could not remove partial %s", download)
            return ItemResult(
                doc_id=doc.id,
                name=doc.name,
                action=action,
                success=False,
                error=str(exc),
            )

        try:
            index.adopt(doc, download)
        except AdoptError as exc:
            logger.error("%s", exc)
            return ItemResult(
                doc_id=doc.id,
                name=doc.name,
                action=action,
                success=False,
                bytes_transferred=written,
                error=str(exc),
            )

        logger.debug(
            "Fetched %s (%s, %d bytes)", doc.id, action.value, written
        )
        return ItemResult(
            doc_id=doc.id,
            name=doc.name,
            action=action,
            success=True,
            bytes_transferred=written,
        )

    def _stream_blob(self, doc_id: str, target: Path) -> int:
        """Write the blob of *doc_id* to *target*, fsynced.  Returns bytes."""
        written = 0
        with open(target, "wb") as fh:
            for chunk in self.remote.fetch_blob(doc_id):
                fh.write(chunk)
                written += len(chunk)
            fh.flush()
            os.fsync(fh.fileno())
        return written

    # ------------------------------------------------------------------
    # Phase tracking
    # ------------------------------------------------------------------

    def _enter(self, phase: SyncPhase) -> None:
        logger.debug("Phase %s -> %s", self.phase.value, phase.value)
        self.phase = phase
        if self.progress is not None:
            self.progress(phase, None, None)

    def _notify(self, doc_id: str, action: SyncAction) -> None:
        if self.progress is not None:
            self.progress(self.phase, doc_id, action)
