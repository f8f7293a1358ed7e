"""HTTP client for the remote document store.

Implements the ``RemoteStore`` interface consumed by the sync driver
(``list_documents`` / ``fetch_blob``) plus the token exchange and service
discovery needed to reach the storage host.  Blob fetches run in worker
threads, so every thread gets its own ``requests.Session``.
"""

import logging
import threading
from collections.abc import Iterator
from typing import Any
from urllib.parse import quote

import requests

from .. import __version__
from ..config import Config
from ..errors import AuthError, RemoteError, TokenError
from .models import (
    DeviceTokenRequest,
    DiscoveryResponse,
    DocsResponse,
    parse_docs_list,
)
from .tokens import auth0_user_id, decode_claims

logger = logging.getLogger(__name__)

BLOB_CHUNK_SIZE = 64 * 1024

DEVICE_TOKEN_PATH = "/token/json/2/device/new"
USER_TOKEN_PATH = "/token/json/2/user/new"
DISCOVERY_PATH = "/service/json/1/document-storage"
DOCS_PATH = "/document-storage/json/2/docs"


def catenate_url_path(base: str, path: str) -> str:
    """Append *path* to *base*, keeping any path prefix of *base*."""
    return f"{base.rstrip('/')}{path}"


class StorageClient:
    def __init__(
        self,
        config: Config,
        user_token: str | None = None,
        storage_base: str | None = None,
    ):
        self.config = config
        self._thread_local = threading.local()
        self._connect_lock = threading.Lock()
        self._user_token = user_token
        self._storage_base = storage_base

    @property
    def session(self) -> requests.Session:
        """The current thread's session."""
        return self._get_session()

    def _get_session(self) -> requests.Session:
        """Get or create a thread-local requests.Session."""
        if not hasattr(self._thread_local, "session"):
            self._thread_local.session = self._create_session()
        return self._thread_local.session

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        session.headers["User-Agent"] = f"remsync/{__version__}"
        return session

    def _request(
        self,
        method: str,
        url: str,
        operation: str,
        token: str | None = None,
        error_cls: type[RemoteError] = RemoteError,
        **kwargs: Any,
    ) -> requests.Response:
        """Send a request and raise *error_cls* unless it succeeds."""
        headers = dict(kwargs.pop("headers", None) or {})
        if token:
            headers["Authorization"] = f"Bearer {token}"
        try:
            response = self._get_session().request(
                method,
                url,
                headers=headers,
                timeout=(10, self.config.timeout),
                **kwargs,
            )
        except requests.RequestException as exc:
            raise error_cls(operation, str(exc)) from exc

        if not response.ok:
            response.close()
            raise error_cls(
                operation,
                response.reason or "request failed",
                status=response.status_code,
            )
        return response

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    def register_device(
        self, code: str, device_desc: str, device_id: str
    ) -> str:
        """Exchange a one-time registration code for a device bearer.

        Args:
            code: One-time code from the vendor's web app.
            device_desc: Device descriptor, e.g. ``desktop-linux``.
            device_id: Unique id for this client install.

        Returns:
            The new device bearer token.
        """
        body = DeviceTokenRequest(
            code=code, device_desc=device_desc, device_id=device_id
        )
        response = self._request(
            "POST",
            catenate_url_path(self.config.auth_server, DEVICE_TOKEN_PATH),
            "register device",
            error_cls=AuthError,
            json=body.model_dump(by_alias=True),
        )
        return response.text.strip()

    def acquire_user_token(self) -> str:
        """Exchange the configured device bearer for a user bearer."""
        if not self.config.device_token:
            raise AuthError(
                "acquire user token", "no device token configured"
            )
        response = self._request(
            "POST",
            catenate_url_path(self.config.auth_server, USER_TOKEN_PATH),
            "acquire user token",
            token=self.config.device_token,
            error_cls=AuthError,
        )
        token = response.text.strip()
        if not token:
            raise AuthError(
                "acquire user token", "server returned an empty token"
            )
        return token

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    def discover_storage_host(self, user_token: str) -> str:
        """Find the storage service base URL for the token's user.

        Returns:
            ``https://<host>/`` for the storage service.
        """
        try:
            group = auth0_user_id(decode_claims(user_token))
        except TokenError as exc:
            raise RemoteError("discover storage", str(exc)) from exc

        url = (
            catenate_url_path(self.config.discovery_server, DISCOVERY_PATH)
            + "?environment=production&apiVer=2&group="
            + quote(group, safe="")
        )
        response = self._request(
            "GET", url, "discover storage", token=user_token
        )
        try:
            discovery = DiscoveryResponse.model_validate(response.json())
        except ValueError as exc:
            raise RemoteError(
                "discover storage", f"malformed response: {exc}"
            ) from exc
        if not discovery.ok:
            raise RemoteError(
                "discover storage",
                f"unexpected status {discovery.status!r}",
            )
        logger.debug("Discovered storage host %s", discovery.host)
        return f"https://{discovery.host}/"

    def connect(self) -> None:
        """Acquire a user token and locate the storage host, once."""
        with self._connect_lock:
            if self._user_token is None:
                self._user_token = self.acquire_user_token()
            if self._storage_base is None:
                self._storage_base = self.discover_storage_host(
                    self._user_token
                )

    @property
    def user_token(self) -> str:
        self.connect()
        assert self._user_token is not None
        return self._user_token

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    def _docs_url(self) -> str:
        self.connect()
        assert self._storage_base is not None
        return catenate_url_path(self._storage_base, DOCS_PATH)

    def _get_docs(
        self, operation: str, params: dict[str, str] | None = None
    ) -> list[DocsResponse]:
        response = self._request(
            "GET",
            self._docs_url(),
            operation,
            token=self.user_token,
            params=params,
        )
        try:
            return parse_docs_list(response.json())
        except ValueError as exc:
            raise RemoteError(
                operation, f"malformed docs listing: {exc}"
            ) from exc

    def list_documents(self) -> list[DocsResponse]:
        """List every node visible to the user, folders included."""
        docs = self._get_docs("list documents")
        logger.info("Remote store lists %d nodes", len(docs))
        return docs

    def blob_url(self, doc_id: str) -> str:
        """Request a fresh, time-limited download URL for *doc_id*."""
        operation = f"locate blob {doc_id}"
        docs = self._get_docs(
            operation, params={"doc": doc_id, "withBlob": "true"}
        )
        for doc in docs:
            if doc.id != doc_id:
                continue
            if not doc.success:
                raise RemoteError(operation, doc.message or "refused")
            if not doc.blob_url_get:
                raise RemoteError(operation, "no blob URL returned")
            return doc.blob_url_get
        raise RemoteError(operation, "document not listed")

    def fetch_blob(self, doc_id: str) -> Iterator[bytes]:
        """Stream the blob of *doc_id* in chunks.

        Errors surface while iterating, as ``RemoteError``.
        """
        url = self.blob_url(doc_id)
        operation = f"fetch blob {doc_id}"
        response = self._request("GET", url, operation, stream=True)
        with response:
            try:
                for chunk in response.iter_content(
                    chunk_size=BLOB_CHUNK_SIZE
                ):
                    if chunk:
                        yield chunk
            except requests.RequestException as exc:
                raise RemoteError(operation, str(exc)) from exc
