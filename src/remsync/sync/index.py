"""Local store index.

The local store is a flat directory holding, per node id:

* ``<id>.metadata`` -- JSON ``MetadataRecord`` (the index is built from
  these files only),
* ``<id>.zip`` -- the raw blob,
* ``<id>.download`` -- a blob fetch in progress.

Key design choices:

* **Load all or nothing** -- any unparseable metadata file, or one whose
  stem is not a valid id, aborts ``load()`` with ``LoadError``.
* **Ordered adoption** -- ``adopt()`` commits the metadata file first and
  renames the blob into place second, so an interruption leaves updated
  metadata next to the previous blob plus a leftover ``.download`` file.
  ``load()`` reports such ids as interrupted and ``reconcile_view()``
  forces them to be fetched again.
* **Leftovers** -- metadata temp files and download files with no
  metadata next to them are debris from a crash; ``sweep_leftovers()``
  deletes them.
* **Atomic metadata writes** -- the record is written to a temp file in
  the same directory, fsynced, then moved over the target with
  ``os.replace()``.
"""

from __future__ import annotations

import logging
import os
import tempfile
import threading
from pathlib import Path

from remsync.core.models import DocsResponse
from remsync.errors import AdoptError, LoadError
from remsync.sync.models import MetadataRecord
from remsync.validators import is_valid_doc_id

logger = logging.getLogger(__name__)

METADATA_SUFFIX = ".metadata"
BLOB_SUFFIX = ".zip"
DOWNLOAD_SUFFIX = ".download"
TEMP_SUFFIX = ".tmp"

# Version shown for interrupted adoptions; remote versions are never negative.
INTERRUPTED_VERSION = -1


class LocalIndex:
    """In-memory view of a local store directory.

    Args:
        base_path: The store directory.
        records: Initial records keyed by id (normally from ``load()``).
        interrupted: Ids whose last adoption did not finish.
    """

    def __init__(
        self,
        base_path: Path,
        records: dict[str, MetadataRecord] | None = None,
        interrupted: set[str] | None = None,
    ) -> None:
        self.base_path = Path(base_path)
        self._records: dict[str, MetadataRecord] = dict(records or {})
        self._interrupted: set[str] = set(interrupted or ())
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    @classmethod
    def load(cls, base_path: Path) -> LocalIndex:
        """Load every metadata file in *base_path*.

        Raises:
            LoadError: If the directory cannot be read, a metadata file
                name is not a valid id, or a metadata file cannot be
                parsed.
        """
        base_path = Path(base_path)
        try:
            entries = sorted(base_path.iterdir())
        except OSError as exc:
            raise LoadError(
                f"Cannot read store directory {base_path}: {exc}"
            ) from exc

        records: dict[str, MetadataRecord] = {}
        for entry in entries:
            if entry.suffix != METADATA_SUFFIX:
                continue
            doc_id = entry.stem
            if not is_valid_doc_id(doc_id):
                raise LoadError(
                    f"Metadata file name is not a valid id: {entry.name}"
                )
            try:
                content = entry.read_text(encoding="utf-8")
                records[doc_id] = MetadataRecord.from_file_content(
                    doc_id, content
                )
            except (OSError, ValueError) as exc:
                raise LoadError(
                    f"Cannot load metadata file {entry}: {exc}"
                ) from exc

        index = cls(base_path, records)
        index._interrupted = {
            doc_id
            for doc_id in records
            if index.download_path(doc_id).exists()
        }
        for doc_id in sorted(index._interrupted):
            logger.warning(
                "Adoption of %s was interrupted; it will be fetched again",
                doc_id,
            )
        logger.debug(
            "Loaded %d records from %s", len(records), base_path
        )
        return index

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, doc_id: str) -> MetadataRecord | None:
        """Return the record for *doc_id*, or ``None`` if absent."""
        return self._records.get(doc_id)

    def __contains__(self, doc_id: object) -> bool:
        return doc_id in self._records

    def __len__(self) -> int:
        return len(self._records)

    def ids(self) -> set[str]:
        return set(self._records)

    def records(self) -> dict[str, MetadataRecord]:
        """A copy of the id -> record mapping."""
        with self._lock:
            return dict(self._records)

    def interrupted_ids(self) -> set[str]:
        """Ids whose metadata was committed but whose blob never was."""
        return set(self._interrupted)

    def reconcile_view(self) -> dict[str, MetadataRecord]:
        """The mapping to reconcile against.

        Interrupted adoptions are presented with ``INTERRUPTED_VERSION`` so
        that they compare as outdated against any listed remote version,
        0 included.  The copies are never written to disk.
        """
        view = self.records()
        for doc_id in self._interrupted:
            if doc_id in view:
                view[doc_id] = view[doc_id].model_copy(
                    update={"version": INTERRUPTED_VERSION, "synced": False}
                )
        return view

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    def metadata_path(self, doc_id: str) -> Path:
        return self.base_path / f"{doc_id}{METADATA_SUFFIX}"

    def blob_path(self, doc_id: str) -> Path:
        return self.base_path / f"{doc_id}{BLOB_SUFFIX}"

    def download_path(self, doc_id: str) -> Path:
        return self.base_path / f"{doc_id}{DOWNLOAD_SUFFIX}"

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def adopt(self, doc: DocsResponse, temp_blob_path: Path) -> None:
        """Commit a fetched node: metadata first, then the blob.

        Args:
            doc: The remote listing entry being adopted.
            temp_blob_path: The fully written download file.

        Raises:
            AdoptError: If the metadata cannot be written (nothing is
                changed) or the blob cannot be moved into place (the
                download file is kept and the in-memory index is left
                as it was).
        """
        record = MetadataRecord.from_remote(doc)

        try:
            self._write_metadata(record)
        except OSError as exc:
            raise AdoptError(
                doc.id, f"writing metadata failed: {exc}"
            ) from exc

        try:
            os.replace(temp_blob_path, self.blob_path(doc.id))
        except OSError as exc:
            raise AdoptError(
                doc.id, f"moving blob into place failed: {exc}"
            ) from exc

        with self._lock:
            self._records[doc.id] = record
            self._interrupted.discard(doc.id)
        logger.debug("Adopted %s at version %d", doc.id, doc.version)

    def remove_local_only(self, doc_id: str) -> None:
        """Delete the metadata and blob files for *doc_id*.

        Missing files are not an error, so repeated calls succeed.  Any
        leftover download file goes too.

        Raises:
            OSError: If a file exists but cannot be removed.
        """
        self.blob_path(doc_id).unlink(missing_ok=True)
        self.download_path(doc_id).unlink(missing_ok=True)
        for temp in self._metadata_temps(doc_id):
            temp.unlink(missing_ok=True)
        # Metadata last: a failure above keeps the id in the index.
        self.metadata_path(doc_id).unlink(missing_ok=True)
        with self._lock:
            self._records.pop(doc_id, None)
            self._interrupted.discard(doc_id)

    def sweep_leftovers(self) -> list[Path]:
        """Delete crash debris the index does not account for.

        That is every metadata temp file, and every download file whose id
        has no metadata.  Download files next to committed metadata mark
        interrupted adoptions and are kept.  A file that cannot be removed
        is logged and left for the next sweep.

        Returns:
            The paths that were removed.
        """
        with self._lock:
            known = set(self._records)

        try:
            entries = sorted(self.base_path.iterdir())
        except OSError as exc:
            logger.warning(
                "Cannot scan %s for leftovers: %s", self.base_path, exc
            )
            return []

        removed: list[Path] = []
        for entry in entries:
            name = entry.name
            is_temp = name.startswith(".") and name.endswith(TEMP_SUFFIX)
            is_orphan = (
                entry.suffix == DOWNLOAD_SUFFIX and entry.stem not in known
            )
            if not (is_temp or is_orphan):
                continue
            try:
                entry.unlink()
            except FileNotFoundError:
                continue
            except OSError as exc:
                logger.warning("Could not remove leftover %s: %s", entry, exc)
                continue
            logger.info("Removed leftover %s", name)
            removed.append(entry)
        return removed

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _metadata_temps(self, doc_id: str) -> list[Path]:
        return list(self.base_path.glob(f".{doc_id}.*{TEMP_SUFFIX}"))

    def _write_metadata(self, record: MetadataRecord) -> None:
        """Write *record* atomically, fsyncing before the rename."""
        target = self.metadata_path(record.id)
        fd, tmp_path = tempfile.mkstemp(
            dir=str(self.base_path),
            prefix=f".{record.id}.",
            suffix=TEMP_SUFFIX,
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(record.to_file_content())
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_path, target)
        except BaseException:
            # Clean up temp file on any failure.
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise
