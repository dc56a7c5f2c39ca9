"""WebSocket consumer delivering booking events to the parties of a booking."""

import logging
from typing import Any, Dict, Set

from channels.db import database_sync_to_async
from channels.generic.websocket import AsyncJsonWebsocketConsumer

from .models import Booking

logger = logging.getLogger(__name__)


class BookingEventsConsumer(AsyncJsonWebsocketConsumer):
    """
    Pushes ``booking_event`` messages published by the negotiation service.

    Every connection joins ``user_<id>``. Clients may also send
    ``{"type": "subscribe", "booking_id": N}`` to follow a booking they are a
    party to. Polling the REST API remains the source of truth.
    """

    async def connect(self):
        self.user = self.scope["user"]

        if self.user.is_anonymous:
            await self.close()
            return

        self.user_id = self.user.id
        self.joined_groups: Set[str] = set()
        await self._join_group(f"user_{self.user_id}")

        await self.accept()
        await self.send_json({
            "type": "connection_established",
            "user_id": self.user_id,
            "role": getattr(self.user, "role", None),
        })

    async def disconnect(self, close_code):
        for group in list(getattr(self, "joined_groups", ())):
            await self.channel_layer.group_discard(group, self.channel_name)
        self.joined_groups = set()

    async def receive_json(self, data: Dict[str, Any]):
        msg_type = data.get("type")
        if msg_type == "subscribe":
            await self._subscribe(data.get("booking_id"))
        elif msg_type == "ping":
            await self.send_json({"type": "pong"})
        else:
            await self.send_error(f"Unknown message type: {msg_type}")

    async def _subscribe(self, booking_id):
        try:
            booking_id = int(booking_id)
        except (TypeError, ValueError):
            await self.send_error("booking_id must be an integer")
            return
        if not await self.can_watch(booking_id):
            await self.send_error("Not authorized to follow this booking")
            return
        await self._join_group(f"booking_{booking_id}")
        await self.send_json({"type": "subscribed", "booking_id": booking_id})

    @database_sync_to_async
    def can_watch(self, booking_id) -> bool:
        return Booking.objects.filter(pk=booking_id, passenger_id=self.user_id).exists() or \
            Booking.objects.filter(pk=booking_id, driver_id=self.user_id).exists()

    async def _join_group(self, group_name: str):
        await self.channel_layer.group_add(group_name, self.channel_name)
        self.joined_groups.add(group_name)

    async def send_error(self, message: str):
        await self.send_json({"type": "error", "message": message})

    # group_send handler
    async def booking_event(self, event):
        group = f"booking_{event.get('booking_id')}"
        if group in self.joined_groups and self.user_id not in (event.get("passenger_id"), event.get("driver_id")):
            # No longer a party (e.g. offer declined); stop following the booking
            await self.channel_layer.group_discard(group, self.channel_name)
            self.joined_groups.discard(group)
            logger.debug("User %s left %s", self.user_id, group)

        payload = {key: value for key, value in event.items() if key != "type"}
        await self.send_json({"type": "booking_event", **payload})
