"""Realtime app configuration."""

from django.apps import AppConfig


class RealtimeConfig(AppConfig):
    name = 'realtime'

    def ready(self):
        from .sweeper import start_presence_sweeper
        start_presence_sweeper()
