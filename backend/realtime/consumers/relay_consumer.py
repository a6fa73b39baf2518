"""Relay WebSocket consumer shared by drivers and riders."""

import logging
from typing import Dict, Any

from .base import BaseConsumer
from realtime.lifecycle import Connection
from realtime.outbound import ChannelLayerOutbound
from realtime.relay import Relay

logger = logging.getLogger(__name__)


class RelayConsumer(BaseConsumer):
    """
    WebSocket consumer for the presence and signaling relay.

    Handles:
        - Binding the socket to a registry entry on ``register``
        - Handing every message to the relay dispatch table
        - Releasing the registry entry when the socket closes

    Outbound events from any handler reach this socket through the channel
    layer and ``relay_event``.
    """

    relay_class = Relay

    async def on_connect(self):
        self.relay = self.relay_class()
        self.connection = Connection(ChannelLayerOutbound(self.channel_layer, self.channel_name))
        logger.info("New relay connection %s", self.connection.connection_id)

    async def on_disconnect(self, close_code):
        connection = getattr(self, "connection", None)
        if connection is None:
            return
        logger.info(
            "Relay connection %s closed (code=%s, participant=%s)",
            connection.connection_id, close_code, connection.participant_id,
        )
        await self.relay.disconnect(connection)

    async def handle_message(self, msg_type: str, data: Dict[str, Any]):
        logger.debug("WS <- %s: %s", self.connection.sender_id, msg_type)
        await self.relay.receive(self.connection, data)

    # ---------------------- Event Handlers (from channel_layer.send) ----------------------

    async def relay_event(self, event):
        """Forward a relay event pushed through ChannelLayerOutbound to the client."""
        await self.send_json(event["event"])
