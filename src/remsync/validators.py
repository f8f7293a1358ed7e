"""
Input validation functions for remsync.

Node ids double as file name stems in the local store, so both the
loader and the sync driver check them before touching the filesystem.
"""

import re
from urllib.parse import urlparse

# UUIDs and other simple tokens; no dots, separators or leading dash.
_DOC_ID_PATTERN = re.compile(r"[A-Za-z0-9][A-Za-z0-9_-]*")


def format_validation_error(field_name: str, reason: str) -> str:
    """
    Generate consistent error message for validation failures.

    Args:
        field_name: Human-readable field name (e.g., "Document id")
        reason: Description of validation failure (e.g., "cannot be empty")

    Returns:
        Formatted error message string
    """
    return f"{field_name} {reason}"


def is_valid_doc_id(doc_id: str) -> bool:
    """Return ``True`` if *doc_id* is safe to use as a file name stem."""
    return bool(_DOC_ID_PATTERN.fullmatch(doc_id))


def validate_doc_id(doc_id: str) -> tuple[bool, str]:
    """
    Validate a node id.

    Args:
        doc_id: The id to validate

    Returns:
        Tuple of (is_valid, error_message).
        Returns (True, "") if valid, (False, reason) if invalid.
    """
    if not doc_id or not doc_id.strip():
        return (
            False,
            format_validation_error("Document id", "cannot be empty"),
        )

    if not is_valid_doc_id(doc_id):
        return (
            False,
            format_validation_error(
                "Document id",
                f"'{doc_id}' may only contain letters, digits, '-' and '_'",
            ),
        )

    return (True, "")


def validate_base_url(url: str, field_name: str = "URL") -> tuple[bool, str]:
    """
    Validate a service base URL.

    Returns:
        Tuple of (is_valid, error_message).
    """
    url = url.strip()
    if not url.startswith(("http://", "https://")):
        return (
            False,
            format_validation_error(
                field_name,
                f"'{url}' must start with http:// or https://",
            ),
        )
    if not urlparse(url).hostname:
        return (
            False,
            format_validation_error(
                field_name, f"'{url}' must include a hostname"
            ),
        )
    return (True, "")
