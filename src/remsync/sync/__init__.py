"""Pull-only document sync.

Public API for mirroring the remote document store into a flat local
directory of ``<id>.metadata`` / ``<id>.zip`` pairs.

Architecture
------------
Freshness is decided by the remote version counter alone: a local record
whose version differs from the listed one is fetched again, and a local
record the remote no longer lists is removed.  Content is never compared.

Modules:

- ``engine``     -- ``SyncDriver``: runs one pull pass.
- ``index``      -- ``LocalIndex``: load, adopt and remove local records.
- ``reconciler`` -- ``Reconciler``: stale/outdated set logic.
- ``models``     -- ``MetadataRecord``, ``SyncAction``, ``SyncPhase``,
  ``ItemResult``, ``PassReport``: core data contracts.
- ``reporter``   -- Human-readable and JSON report formatting.

Usage example
-------------
::

    from pathlib import Path
    from remsync.config import load_config
    from remsync.core.client import StorageClient
    from remsync.sync import (
        SyncDriver,
        format_dry_run_preview,
        format_pass_report,
    )

    client = StorageClient(load_config())
    driver = SyncDriver(client, Path("~/remarkable").expanduser())

    # Dry-run first to preview changes
    preview = driver.run(dry_run=True)
    print(format_dry_run_preview(preview))

    report = driver.run()
    print(format_pass_report(report))
"""

from .engine import RemoteStore, SyncDriver
from .index import LocalIndex
from .models import (
    ItemResult,
    MetadataRecord,
    PassReport,
    SyncAction,
    SyncPhase,
)
from .reconciler import Reconciler, exclude_drafts
from .reporter import (
    format_dry_run_preview,
    format_pass_report,
    format_tree,
    report_to_json,
)

__all__ = [
    "ItemResult",
    "LocalIndex",
    "MetadataRecord",
    "PassReport",
    "Reconciler",
    "RemoteStore",
    "SyncAction",
    "SyncDriver",
    "SyncPhase",
    "exclude_drafts",
    "format_dry_run_preview",
    "format_pass_report",
    "format_tree",
    "report_to_json",
]
