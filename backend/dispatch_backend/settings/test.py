from .settings import *

DEBUG = False

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': ':memory:',
    }
}

PASSWORD_HASHERS = ['django.contrib.auth.hashers.MD5PasswordHasher']

CHANNEL_LAYERS = {
    "default": {
        "BACKEND": "channels.layers.InMemoryChannelLayer",
    }
}

CELERY_TASK_ALWAYS_EAGER = True
CELERY_TASK_EAGER_PROPAGATES = True
CELERY_BROKER_URL = 'memory://'
CELERY_RESULT_BACKEND = 'cache+memory://'

# Deterministic dispatch tunables regardless of the local .env
BOOKING_EXPIRY_MINUTES = 30
DECLINE_EXTENSION_MINUTES = 5
COMPLETION_RADIUS_METERS = 300
PICKUP_RADIUS_METERS = None
DEFAULT_NEARBY_RADIUS_KM = 5
MAX_NEARBY_RADIUS_KM = 20
GEO_CELL_PRECISION = 5
SERVICE_AREA_CENTER = None
SERVICE_AREA_RADIUS_METERS = None

LOGGING['loggers']['bookings']['level'] = 'WARNING'
LOGGING['loggers']['services']['level'] = 'WARNING'
