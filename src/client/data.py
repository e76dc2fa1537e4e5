"""CRUD over data messages.

A data message is a regular chat message whose content is
``@<codicent> #<tag> <json>``. Updates and deletes never modify the
original; they post a new message whose ``parent_id`` points at it.
"""

import json
from typing import TYPE_CHECKING, Any

from src.client.constants import HIDDEN_TAG
from src.client.content import ANY_TAG_PATTERN
from src.client.models import Message
from src.errors import InvalidArgumentError, MessageNotFoundError


if TYPE_CHECKING:
    from src.client.facade import CodicentClient


def _require_codicent(codicent: str) -> None:
    if not codicent or not codicent.strip():
        msg = "codicent is required"
        raise InvalidArgumentError(msg, field="codicent")


def format_data_message(codicent: str, tags: str, data: Any) -> str:
    """Render the content of a data message."""
    return f"@{codicent} {tags} {json.dumps(data)}"


class DataMessages:
    """Data message operations bound to a client."""

    def __init__(self, client: "CodicentClient") -> None:
        """Initialize with the client used for every call."""
        self._client = client

    async def create(self, codicent: str, tag: str, data: Any) -> str:
        """Post a new data message.

        Args:
            codicent: Project name mentioned by the message.
            tag: Single tag naming the collection.
            data: JSON-serializable payload.

        Returns:
            ID of the created message.

        Raises:
            InvalidArgumentError: codicent is empty.
        """
        _require_codicent(codicent)
        return await self._client.post_message(
            format_data_message(codicent, f"#{tag}", data)
        )

    async def read(
        self, codicent: str, tag: str, search: str | None = None
    ) -> list[dict[str, Any]]:
        """List the data messages of a collection."""
        return await self._client.get_data_messages(codicent, [tag], search=search)

    async def read_one(self, message_id: str) -> Message | None:
        """Fetch a single message by ID, or None when it does not exist."""
        messages = await self._client.get_messages(search=message_id, length=1)
        return messages[0] if messages else None

    async def update(self, message_id: str, data: Any, codicent: str) -> str:
        """Post a replacement for a data message, keeping its tags.

        Args:
            message_id: ID of the message being replaced.
            data: New JSON-serializable payload.
            codicent: Project name mentioned by the message.

        Returns:
            ID of the replacement message.

        Raises:
            InvalidArgumentError: codicent is empty or the old message has no tags.
            MessageNotFoundError: No message has the given ID.
        """
        _require_codicent(codicent)
        old = await self.read_one(message_id)
        if old is None:
            raise MessageNotFoundError(message_id)

        tags = ANY_TAG_PATTERN.findall(old.content)
        if not tags:
            msg = f"No tags found in message {message_id}"
            raise InvalidArgumentError(msg, field="message_id")

        return await self._client.post_message(
            format_data_message(codicent, " ".join(tags), data),
            parent_id=message_id,
        )

    async def delete(self, message_id: str, codicent: str) -> str:
        """Hide a data message by posting a ``#hidden`` reply to it.

        Returns:
            ID of the hiding message.
        """
        _require_codicent(codicent)
        return await self._client.post_message(
            f"@{codicent} #{HIDDEN_TAG}", parent_id=message_id
        )
