from .base import *
import os
from dotenv import load_dotenv
load_dotenv(os.path.join(BASE_DIR, '..', '.env'))

DEBUG = False
SECRET_KEY = os.environ["DJANGO_SECRET_KEY"]
ALLOWED_HOSTS = os.getenv("ALLOWED_HOSTS", "localhost,127.0.0.1").split(',')
CORS_ALLOW_ALL_ORIGINS = False
CORS_ALLOWED_ORIGINS = os.getenv("CORS_ALLOWED_ORIGINS", "http://localhost:3000").split(',')

# Presence stays in process memory, so run a single worker process;
# the Redis layer only carries socket traffic.
CHANNEL_LAYERS = {
    "default": {
        "BACKEND": "channels_redis.core.RedisChannelLayer",
        "CONFIG": {
            "hosts": [os.getenv("REDIS_URL", "redis://localhost:6379/0")],
        },
    }
}

RIDE_MATCH_RADIUS_METERS = float(os.getenv("RIDE_MATCH_RADIUS_METERS", 5000))
PRESENCE_MAX_AGE_SECONDS = int(os.getenv("PRESENCE_MAX_AGE_SECONDS", 300))
PRESENCE_SWEEP_INTERVAL_SECONDS = int(os.getenv("PRESENCE_SWEEP_INTERVAL_SECONDS", 60))
