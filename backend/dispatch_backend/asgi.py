"""
ASGI config for dispatch_backend project.

HTTP goes to Django; WebSocket connections on ws/bookings/ receive booking
events and authenticate with ``?token=<JWT access token>``.
"""

import os

from django.core.asgi import get_asgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'dispatch_backend.settings.settings')

# Initialize Django before importing anything that touches models
django_asgi_app = get_asgi_application()

from channels.routing import ProtocolTypeRouter, URLRouter  # noqa: E402

from bookings.middleware import JWTAuthMiddleware  # noqa: E402
from bookings.routing import websocket_urlpatterns  # noqa: E402

application = ProtocolTypeRouter({
    "http": django_asgi_app,
    "websocket": JWTAuthMiddleware(URLRouter(websocket_urlpatterns)),
})
