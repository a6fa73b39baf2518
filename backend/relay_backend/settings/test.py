from .base import *

DEBUG = False
PRESENCE_SWEEP_ENABLED = False
LOG_LEVEL = "WARNING"
for _logger in LOGGING["loggers"].values():
    _logger["level"] = LOG_LEVEL
