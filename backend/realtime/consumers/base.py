"""Base WebSocket consumer with shared functionality for all consumers."""

import logging
from typing import Dict, Any

from channels.generic.websocket import AsyncJsonWebsocketConsumer

logger = logging.getLogger(__name__)


class BaseConsumer(AsyncJsonWebsocketConsumer):
    """
    Base consumer with shared connection management and helper methods.

    Subclasses should override:
        - on_connect(): set up per-connection state after accept
        - handle_message(msg_type, data): handle incoming messages
        - on_disconnect(close_code): release per-connection state
    """

    async def connect(self):
        await self.accept()
        await self.on_connect()

    async def on_connect(self):
        """Override in subclass for custom connect logic."""
        pass

    async def disconnect(self, close_code):
        try:
            await self.on_disconnect(close_code)
        except Exception:
            logger.exception("Error during disconnect for %s", self.channel_name)

    async def on_disconnect(self, close_code):
        """Override in subclass for custom disconnect logic."""
        pass

    async def receive(self, text_data=None, bytes_data=None, **kwargs):
        """Decode JSON frames; a bad frame gets an error reply instead of closing the socket."""
        if text_data is None:
            await self.send_error("Only JSON text frames are supported")
            return
        try:
            content = await self.decode_json(text_data)
        except (ValueError, TypeError):
            await self.send_error("Message is not valid JSON")
            return
        await self.receive_json(content, **kwargs)

    async def receive_json(self, data: Any, **kwargs):
        """Route incoming messages to appropriate handlers."""
        if not isinstance(data, dict) or not data.get("type"):
            await self.send_error("Message type is required")
            return

        msg_type = data["type"]
        try:
            await self.handle_message(msg_type, data)
        except Exception:
            logger.exception("Error handling message type %s", msg_type)
            await self.send_error(f"Error processing {msg_type}")

    async def handle_message(self, msg_type: str, data: Dict[str, Any]):
        """Override in subclass to handle specific message types."""
        await self.send_error(f"Unknown message type: {msg_type}")

    # ---------------------- Response Helpers ----------------------

    async def send_error(self, message: str):
        """Send an error message to the client."""
        await self.send_json({
            "type": "error",
            "message": message,
        })
