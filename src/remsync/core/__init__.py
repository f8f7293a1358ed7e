"""Remote store access shared between the CLI and the sync driver."""

from .async_utils import run_limited, run_sync
from .client import StorageClient

__all__ = ["StorageClient", "run_limited", "run_sync"]
