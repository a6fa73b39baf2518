"""Binding between a transport connection and its registry entry."""

import logging
import uuid
from typing import Optional

from .outbound import Outbound

logger = logging.getLogger(__name__)


class Connection:
    """
    One live transport connection.

    A connection starts unbound. The first ``register`` binds it to a
    participant id; until then it cannot be targeted or matched.
    """

    def __init__(self, outbound: Outbound, connection_id: Optional[str] = None):
        self.connection_id = connection_id or uuid.uuid4().hex
        self.outbound = outbound
        self.participant_id: Optional[str] = None

    @property
    def is_bound(self) -> bool:
        return self.participant_id is not None

    @property
    def sender_id(self) -> str:
        """Id used as ``fromId``/``driver_id`` on relayed messages."""
        return self.participant_id or self.connection_id

    def bind(self, participant_id: str) -> Optional[str]:
        """Bind to ``participant_id``; return the previous id if it differed."""
        previous = self.participant_id
        self.participant_id = participant_id
        if previous is not None and previous != participant_id:
            logger.info("Connection %s rebound %s -> %s", self.connection_id, previous, participant_id)
            return previous
        return None

    def close(self) -> Optional[str]:
        """Mark the transport closed; return the id that must be released."""
        self.outbound.close()
        participant_id, self.participant_id = self.participant_id, None
        return participant_id

    def __repr__(self):
        return f"<Connection {self.connection_id} bound={self.participant_id}>"
