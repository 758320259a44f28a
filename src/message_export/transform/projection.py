from __future__ import annotations

from typing import Any, Dict, Mapping, Optional, Sequence

from message_export.core.models import Message, MessageKind

SMS_PROPERTIES = (
    "body",
    "delivery",
    "deliveryStatus",
    "id",
    "messageClass",
    "read",
    "receiver",
    "sender",
    "threadId",
    "timestamp",
    "type",
)

MMS_PROPERTIES = (
    "attachments",
    "delivery",
    "deliveryStatus",
    "expiryDate",
    "id",
    "read",
    "receivers",
    "sender",
    "smil",
    "subject",
    "threadId",
    "timestamp",
    "type",
)

DEFAULT_ALLOW_LISTS: Dict[MessageKind, Sequence[str]] = {
    MessageKind.SMS: SMS_PROPERTIES,
    MessageKind.MMS: MMS_PROPERTIES,
}


class Projector:
    """Reduces messages to the allow-listed attributes of their kind."""

    def __init__(self, allow_lists: Optional[Mapping[MessageKind, Sequence[str]]] = None):
        self.allow_lists = {**DEFAULT_ALLOW_LISTS, **(allow_lists or {})}

    def project(self, message: Message) -> Dict[str, Any]:
        """Copy allow-listed values verbatim; attributes the store did not set become None."""
        properties = self.allow_lists[message.kind]
        return {prop: message.attributes.get(prop) for prop in properties}
