"""WebSocket consumer delivering notifications and read receipts to a user."""

import logging

from channels.generic.websocket import AsyncJsonWebsocketConsumer

from .publisher import user_group

logger = logging.getLogger(__name__)


class NotificationConsumer(AsyncJsonWebsocketConsumer):
    """
    Joins the caller's personal group and forwards server events.

    Server -> client events:
        - notification: a new Notification row was delivered
        - messages_read: another participant read a conversation
    """

    async def connect(self):
        self.user = self.scope.get("user")

        if self.user is None or self.user.is_anonymous:
            await self.close()
            return

        self.user_id = self.user.id
        self.group_name = user_group(self.user_id)
        await self.channel_layer.group_add(self.group_name, self.channel_name)

        await self.accept()
        await self.send_json({
            "type": "connection_established",
            "user_id": self.user_id,
        })

    async def disconnect(self, close_code):
        group_name = getattr(self, "group_name", None)
        if group_name:
            await self.channel_layer.group_discard(group_name, self.channel_name)

    async def receive_json(self, content, **kwargs):
        msg_type = content.get("type")
        if msg_type == "ping":
            await self.send_json({"type": "pong"})
        else:
            await self.send_json({"type": "error", "message": f"Unknown message type: {msg_type}"})

    # ---------------------- Group event handlers ----------------------

    async def notification(self, event):
        await self.send_json(event)

    async def messages_read(self, event):
        await self.send_json(event)
