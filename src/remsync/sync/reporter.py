"""Report formatting functions.

Provides human-readable and machine-readable output for pull passes and
remote listings:

- ``format_pass_report`` -- full post-pass summary.
- ``format_dry_run_preview`` -- dry-run preview grouped by action.
- ``report_to_json`` -- structured dict for ``pull --json``.
- ``format_tree`` -- indented tree of a remote listing, for ``ls``.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable
from typing import TYPE_CHECKING

from .models import SyncAction

if TYPE_CHECKING:
    from remsync.core.models import DocsResponse

    from .models import PassReport

# ------------------------------------------------------------------
# Human-readable report
# ------------------------------------------------------------------


def _label(doc_id: str, name: str) -> str:
    return f"{name} ({doc_id})" if name else doc_id


def format_pass_report(report: PassReport) -> str:
    """Format a completed pass as human-readable text.

    Sections are only included when they contain at least one result.

    Args:
        report: The completed pass report.

    Returns:
        Multi-line formatted string.
    """
    lines: list[str] = []

    header = f"Pull report for {report.store}"
    if report.dry_run:
        header += " (DRY RUN)"
    lines.append(header)
    lines.append(f"Started: {report.started_at}")
    if report.completed_at:
        lines.append(f"Completed: {report.completed_at}")
    lines.append(
        f"Local records: {report.loaded}, remote nodes: {report.listed}"
    )
    lines.append("")

    lines.append(report.summary())
    lines.append("")

    if report.removed:
        lines.append("Removed:")
        for r in report.removed:
            lines.append(f"  {_label(r.doc_id, r.name)}")
        lines.append("")

    if report.fetched:
        lines.append("Fetched:")
        for r in report.fetched:
            kind = "new" if r.action == SyncAction.CREATE_LOCAL else "updated"
            lines.append(
                f"  {_label(r.doc_id, r.name)} [{kind}, "
                f"{r.bytes_transferred} bytes]"
            )
        lines.append("")

    if report.failures:
        lines.append("Errors:")
        for r in report.failures:
            lines.append(f"  {_label(r.doc_id, r.name)}: {r.error}")
        lines.append("")

    return "\n".join(lines).rstrip()


# ------------------------------------------------------------------
# Dry-run preview
# ------------------------------------------------------------------


def format_dry_run_preview(report: PassReport) -> str:
    """Format a dry-run preview grouped by action type.

    Args:
        report: A dry-run pass report (``dry_run=True``).

    Returns:
        Multi-line formatted string.
    """
    lines: list[str] = []
    lines.append("DRY RUN -- No changes will be made")
    lines.append(f"Store: {report.store}")
    lines.append("")

    groups: dict[SyncAction, list[str]] = defaultdict(list)
    for r in report.results:
        groups[r.action].append(_label(r.doc_id, r.name))

    display_order = [
        SyncAction.DELETE_LOCAL,
        SyncAction.CREATE_LOCAL,
        SyncAction.PULL,
    ]

    for action in display_order:
        if action not in groups:
            continue
        label = action.value.upper().replace("_", " ")
        lines.append(f"[{label}]")
        for entry in groups[action]:
            lines.append(f"  {entry}")
        lines.append("")

    if not any(a != SyncAction.SKIP for a in groups):
        lines.append("No changes needed.")
        lines.append("")

    return "\n".join(lines).rstrip()


# ------------------------------------------------------------------
# JSON output
# ------------------------------------------------------------------


def report_to_json(report: PassReport) -> dict:
    """Convert a pass report to a structured dict for JSON serialisation.

    Args:
        report: The pass report.

    Returns:
        Dict with store info, counts, and per-result details.
    """
    results_list = []
    for r in report.results:
        entry: dict = {
            "id": r.doc_id,
            "name": r.name,
            "action": r.action.value,
            "success": r.success,
            "bytes": r.bytes_transferred,
        }
        if r.error:
            entry["error"] = r.error
        results_list.append(entry)

    return {
        "store": report.store,
        "dry_run": report.dry_run,
        "phase": report.phase.value,
        "started_at": report.started_at,
        "completed_at": report.completed_at,
        "counts": {
            "loaded": report.loaded,
            "listed": report.listed,
            "removed": len(report.removed),
            "fetched": len(report.fetched),
            "bytes": report.bytes_transferred,
            "failures": len(report.failures),
        },
        "results": results_list,
    }


# ------------------------------------------------------------------
# Remote tree
# ------------------------------------------------------------------


def format_tree(docs: Iterable[DocsResponse]) -> str:
    """Render a remote listing as an indented tree.

    Folders print before their contents; siblings are ordered folders
    first, then by name.  Nodes whose parent is not listed (trash,
    orphans) are shown at the top level, and so is the first node of any
    parent cycle, which never hangs off the root.

    Example::

        +-[dir] Notes
        | +-[doc] Shopping
        +-[doc] Quick sheets
    """
    docs = list(docs)
    ids = {doc.id for doc in docs}
    children: dict[str, list[DocsResponse]] = defaultdict(list)
    for doc in docs:
        parent = doc.parent if doc.parent in ids else ""
        children[parent].append(doc)

    lines: list[str] = []
    seen: set[str] = set()

    def _order(nodes: Iterable[DocsResponse]) -> list[DocsResponse]:
        return sorted(
            nodes, key=lambda d: (not d.is_collection, d.name.lower(), d.id)
        )

    def _emit(doc: DocsResponse, depth: int) -> None:
        seen.add(doc.id)
        marker = "dir" if doc.is_collection else "doc"
        lines.append(f"{'| ' * depth}+-[{marker}] {doc.name or doc.id}")
        for child in _order(children.get(doc.id, [])):
            if child.id not in seen:
                _emit(child, depth + 1)

    for doc in _order(children.get("", [])):
        if doc.id not in seen:
            _emit(doc, 0)
    for doc in _order(docs):
        if doc.id not in seen:
            _emit(doc, 0)
    return "\n".join(lines)
