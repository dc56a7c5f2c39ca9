from django.urls import re_path
from . import consumers

websocket_urlpatterns = [
    # URL:= ws://localhost:8000/ws/bookings/?token=<access token>
    re_path(
        r"ws/bookings/$",
        consumers.BookingEventsConsumer.as_asgi(),
        name="booking-events-ws"
    ),
]
