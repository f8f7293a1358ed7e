"""Pydantic models for the remote document-storage wire format.

Field names are Pythonic; aliases carry the server's spelling (including
``VissibleName``, which the service really does misspell).  All models are
frozen and accept either the alias or the field name on input.

- ``NodeType``: folder vs document.
- ``DocsResponse``: one node of a docs listing (the remote snapshot entry).
- ``DiscoveryResponse``: storage-host discovery reply.
- ``DeviceTokenRequest``: body for device registration.
- ``NotificationEvent`` / ``NotificationMessage`` /
  ``NotificationMessageAttributes``: change notifications.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import (
    AliasChoices,
    BaseModel,
    Field,
    TypeAdapter,
    field_serializer,
    model_serializer,
)


class NodeType(str, Enum):
    """Every node is either a folder or a document."""

    COLLECTION = "CollectionType"
    DOCUMENT = "DocumentType"


class DocsResponse(BaseModel):
    """A node as listed by the docs API.

    The blob URL fields are empty unless the listing was requested with
    ``withBlob=true``.  ``current_page`` is zero for collections.
    """

    success: bool = Field(default=True, alias="Success")
    message: str = Field(default="", alias="Message")
    id: str = Field(alias="ID")
    version: int = Field(ge=0, alias="Version")
    blob_url_get: str = Field(default="", alias="BlobURLGet")
    blob_url_get_expires: str = Field(
        default="", alias="BlobURLGetExpires"
    )
    modified_client: str = Field(default="", alias="ModifiedClient")
    node_type: NodeType = Field(alias="Type")
    name: str = Field(default="", alias="VissibleName")
    current_page: int = Field(default=0, ge=0, alias="CurrentPage")
    bookmarked: bool = Field(default=False, alias="Bookmarked")
    parent: str = Field(default="", alias="Parent")

    model_config = {"frozen": True, "populate_by_name": True}

    @property
    def is_collection(self) -> bool:
        return self.node_type == NodeType.COLLECTION

    def to_wire(self) -> dict[str, Any]:
        """Serialise using the server's key names."""
        return self.model_dump(by_alias=True, mode="json")


_DOCS_LIST = TypeAdapter(list[DocsResponse])


def parse_docs_list(data: Any) -> list[DocsResponse]:
    """Validate a decoded JSON docs listing.

    Raises:
        pydantic.ValidationError: If any entry is malformed.
    """
    return _DOCS_LIST.validate_python(data)


class DiscoveryResponse(BaseModel):
    """Reply to a service discovery request.

    ``host`` is a bare hostname; the service is always https on 443.
    """

    status: str = Field(alias="Status")
    host: str = Field(alias="Host")

    model_config = {"frozen": True, "populate_by_name": True}

    @property
    def ok(self) -> bool:
        return self.status == "OK"


class DeviceTokenRequest(BaseModel):
    """Body of a device registration request."""

    code: str
    device_desc: str = Field(alias="deviceDesc")
    device_id: str = Field(alias="deviceID")

    model_config = {"frozen": True, "populate_by_name": True}


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


class NotificationEventType(str, Enum):
    """Kind of change a notification describes."""

    DOC_ADDED = "DocAdded"
    DOC_DELETED = "DocDeleted"


class NotificationMessageAttributes(BaseModel):
    """Payload of a notification: which node changed, and who changed it.

    ``bookmarked`` and ``version`` travel as strings on the wire.
    """

    auth0_user_id: str = Field(alias="auth0UserID")
    bookmarked: bool
    event: NotificationEventType
    id: str
    parent: str
    source_device_desc: str = Field(alias="sourceDeviceDesc")
    source_device_id: str = Field(alias="sourceDeviceID")
    node_type: NodeType = Field(alias="type")
    version: int = Field(ge=0)
    name: str = Field(alias="vissibleName")

    model_config = {"frozen": True, "populate_by_name": True}

    @field_serializer("bookmarked")
    def _bookmarked_as_string(self, value: bool) -> str:
        return "true" if value else "false"

    @field_serializer("version")
    def _version_as_string(self, value: int) -> str:
        return str(value)


class NotificationMessage(BaseModel):
    """A notification message.

    The service sends the message id and publish time twice, once in
    camelCase and once in snake_case.  Each is stored once here and
    written back under both keys.
    """

    attributes: NotificationMessageAttributes
    message_id: str = Field(
        validation_alias=AliasChoices("messageId", "message_id")
    )
    publish_time: str = Field(
        validation_alias=AliasChoices("publishTime", "publish_time")
    )

    model_config = {"frozen": True}

    @model_serializer
    def _serialize(self) -> dict[str, Any]:
        return {
            "attributes": self.attributes.model_dump(
                by_alias=True, mode="json"
            ),
            "messageId": self.message_id,
            "message_id": self.message_id,
            "publishTime": self.publish_time,
            "publish_time": self.publish_time,
        }


class NotificationEvent(BaseModel):
    """A notification as delivered by the subscription push."""

    message: NotificationMessage
    subscription: str

    model_config = {"frozen": True}
