"""
Realtime app for the in-memory presence and signaling relay.

This app provides:
- An in-memory presence registry of online drivers and riders
- A relay dispatch table for registration, location, ride and signaling events
- Rider-only fan-out of driver locations and driver lists
- A WebSocket consumer binding each socket to its registry entry
- A background sweeper that drops participants who went quiet

Key Components:
    - registry.py: PresenceRegistry, Participant and Role
    - relay.py: event dispatch table
    - broadcast.py / notifications.py: fan-out and targeted delivery
    - events.py: parsing of inbound messages into typed events
    - consumers/: WebSocket consumer and lifecycle hooks
    - sweeper.py: staleness sweep thread

Usage:
    from realtime.registry import get_presence_registry, Role
    from realtime.relay import Relay
    from services.matching import find_nearby_drivers
"""
