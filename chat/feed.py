"""Closable, de-duplicating stream of new messages for one conversation.

Usage::

    async with MessageFeed(conversation_id, seen_ids=rendered_ids) as feed:
        async for event in feed:
            render(event)

Delivery through the channel layer is at-least-once and may overlap a bulk
fetch, so every event whose id was already seen is dropped.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from channels.layers import get_channel_layer

logger = logging.getLogger("chat")

MESSAGE_EVENT_TYPE = "chat.message"


def conversation_group(conversation_id) -> str:
    return f"chat_{conversation_id}"


@dataclass(frozen=True)
class MessageEvent:
    id: int
    conversation_id: int
    sender_id: int
    content: str
    read: bool
    created_at: str

    @classmethod
    def from_payload(cls, payload: dict) -> "MessageEvent":
        return cls(
            id=int(payload["id"]),
            conversation_id=int(payload["conversation"]),
            sender_id=int(payload["sender"]),
            content=payload.get("content", ""),
            read=bool(payload.get("read", False)),
            created_at=payload.get("created_at", ""),
        )


class MessageFeed:
    def __init__(self, conversation_id, seen_ids: Iterable[int] = (), channel_layer=None):
        self.conversation_id = conversation_id
        self.group_name = conversation_group(conversation_id)
        self.seen_ids = set(seen_ids)
        self.channel_layer = channel_layer
        self.channel_name: Optional[str] = None
        self._pending: Optional[asyncio.Future] = None
        self._closed = False

    @property
    def is_open(self) -> bool:
        return self.channel_name is not None and not self._closed

    async def open(self) -> "MessageFeed":
        if self.is_open:
            return self
        if self.channel_layer is None:
            self.channel_layer = get_channel_layer()
        self.channel_name = await self.channel_layer.new_channel()
        await self.channel_layer.group_add(self.group_name, self.channel_name)
        self._closed = False
        logger.debug("Feed %s joined %s", self.channel_name, self.group_name)
        return self

    async def close(self) -> None:
        """Leave the group; returns only once membership is gone."""

        if self.channel_name is None or self._closed:
            return
        self._closed = True
        if self._pending is not None and not self._pending.done():
            self._pending.cancel()
        await self.channel_layer.group_discard(self.group_name, self.channel_name)
        logger.debug("Feed %s left %s", self.channel_name, self.group_name)

    async def __aenter__(self) -> "MessageFeed":
        return await self.open()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def __aiter__(self):
        return self

    async def __anext__(self) -> MessageEvent:
        while True:
            if not self.is_open:
                raise StopAsyncIteration
            self._pending = asyncio.ensure_future(self.channel_layer.receive(self.channel_name))
            try:
                message = await self._pending
            except asyncio.CancelledError:
                if self._closed:
                    raise StopAsyncIteration
                raise
            finally:
                self._pending = None

            if message.get("type") != MESSAGE_EVENT_TYPE:
                continue
            try:
                event = MessageEvent.from_payload(message["message"])
            except (KeyError, TypeError, ValueError):
                logger.warning("Dropping malformed event on %s: %r", self.group_name, message)
                continue
            if event.id in self.seen_ids:
                continue
            self.seen_ids.add(event.id)
            return event


__all__ = ["MessageEvent", "MessageFeed", "conversation_group", "MESSAGE_EVENT_TYPE"]
