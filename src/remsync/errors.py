"""Exception hierarchy for remsync.

Fatal errors (``LoadError``, ``RemoteError`` while listing,
``InvariantError``) abort a sync pass.  ``AdoptError`` and per-document
``RemoteError``/``OSError`` are recorded in the pass report instead.
"""


class RemsyncError(Exception):
    """Base class for all remsync errors."""


class LoadError(RemsyncError):
    """The local store could not be loaded into an index."""


class AdoptError(RemsyncError):
    """A fetched document could not be committed to the local store."""

    def __init__(self, doc_id: str, message: str) -> None:
        super().__init__(f"Cannot adopt {doc_id}: {message}")
        self.doc_id = doc_id


class RemoteError(RemsyncError):
    """The remote store returned an error or an unusable response."""

    def __init__(
        self, operation: str, message: str, status: int | None = None
    ) -> None:
        detail = f"{operation}: {message}"
        if status is not None:
            detail = f"{operation}: HTTP {status}: {message}"
        super().__init__(detail)
        self.operation = operation
        self.status = status


class AuthError(RemoteError):
    """Token exchange with the authentication server failed."""


class TokenError(RemsyncError):
    """A bearer token could not be decoded."""


class InvariantError(RemsyncError):
    """Local and remote state disagree in a way that should never happen."""
