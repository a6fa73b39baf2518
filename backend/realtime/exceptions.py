"""Custom exceptions for the relay."""


class RelayError(Exception):
    """Base class for errors reported back to the sending connection."""
    pass


class MalformedEvent(RelayError):
    """Raised when an inbound payload is unparsable or missing required fields."""
    pass


class UnknownEventType(RelayError):
    """Raised when an inbound message has a type the relay does not handle."""
    pass


class NotRegisteredError(RelayError):
    """Raised when an event needs a registered sender and there is none."""
    pass


class RoleMismatchError(RelayError):
    """Raised when the sender's role does not allow the event."""
    pass
