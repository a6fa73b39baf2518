"""
Outbound ports for pushing events to a participant's connection.

Relay code only ever sees the ``Outbound`` interface. The WebSocket consumer
hands the registry a ``ChannelLayerOutbound`` bound to its own channel name,
tests hand it a ``RecordingOutbound``.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List

from channels.exceptions import ChannelFull

logger = logging.getLogger(__name__)


class Outbound(ABC):
    """Send-capable handle to one connection. ``push`` never blocks and never raises."""

    def __init__(self):
        self._open = True

    @property
    def is_open(self) -> bool:
        return self._open

    def close(self):
        self._open = False

    @abstractmethod
    async def push(self, event: Dict[str, Any]) -> bool:
        """Deliver ``event``; return False if the transport refused it."""


class ChannelLayerOutbound(Outbound):
    """Pushes events through the Channels layer to a consumer's channel."""

    # Handler name on the consumer, see RelayConsumer.relay_event
    handler_type = "relay.event"

    def __init__(self, channel_layer, channel_name: str):
        super().__init__()
        self.channel_layer = channel_layer
        self.channel_name = channel_name

    async def push(self, event: Dict[str, Any]) -> bool:
        if not self.is_open:
            return False
        try:
            await self.channel_layer.send(
                self.channel_name,
                {"type": self.handler_type, "event": event},
            )
            return True
        except ChannelFull:
            logger.warning("Channel %s is full, dropping %s", self.channel_name, event.get("type"))
            return False

    def __repr__(self):
        return f"<ChannelLayerOutbound {self.channel_name}>"


class RecordingOutbound(Outbound):
    """In-memory outbound that keeps every pushed event, for tests."""

    def __init__(self, fail: bool = False):
        super().__init__()
        self.events: List[Dict[str, Any]] = []
        self.fail = fail

    async def push(self, event: Dict[str, Any]) -> bool:
        if not self.is_open or self.fail:
            return False
        self.events.append(event)
        return True

    def of_type(self, event_type: str) -> List[Dict[str, Any]]:
        return [e for e in self.events if e.get("type") == event_type]
