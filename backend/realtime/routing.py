"""WebSocket URL routing for the realtime app."""

from django.urls import re_path

from .consumers.relay_consumer import RelayConsumer

websocket_urlpatterns = [
    # Relay endpoint shared by drivers and riders
    # URL: ws://localhost:8000/ws/
    re_path(
        r"^ws/?$",
        RelayConsumer.as_asgi(),
        name="relay-ws"
    ),
]
