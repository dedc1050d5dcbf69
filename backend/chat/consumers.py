# chat/consumers.py
import logging
from urllib.parse import parse_qs

from channels.generic.websocket import AsyncJsonWebsocketConsumer
from channels.db import database_sync_to_async
from rest_framework.exceptions import APIException

from .hub import get_hub

logger = logging.getLogger(__name__)


class ChatConsumer(AsyncJsonWebsocketConsumer):
    """
    One socket per client session.

    The client joins the conversations it has open (join_chat / join_group)
    and receives their live events: new messages, typing, reactions,
    deletions and read receipts. Presence updates and personal notices
    (group created, member removed) arrive regardless of joins.

    Writes sent over the socket go through the same services as the REST
    API. A rejected frame gets an "error" reply; the socket stays open.
    """

    CLIENT_EVENTS = (
        "join_chat",
        "leave_chat",
        "join_group",
        "leave_group",
        "typing",
        "message",
        "react",
        "delete",
        "read",
    )

    user = None

    async def connect(self):
        self.user = await self._authenticate_from_querystring()
        if not self.user or not self.user.is_authenticated:
            logger.warning("WebSocket auth failed during connect")
            await self.close(code=4401)
            return

        self.hub = get_hub()
        await self.accept()

        came_online = await self.hub.connect(self.user.id, self.channel_name)
        if came_online:
            await self._set_presence(self.user.id, True)
            await self.hub.broadcast_presence(self.user.id, True)
        await self.send_json({"type": "presence_sync", "users": self.hub.online_users()})

    async def disconnect(self, code):
        if not self.user:
            return
        user_id, went_offline = await self.hub.disconnect(self.channel_name)
        if went_offline:
            await self._set_presence(user_id, False)
            await self.hub.broadcast_presence(user_id, False)

    async def receive_json(self, content, **kwargs):
        if not self.user:
            return

        event_type = content.get("type") if isinstance(content, dict) else None
        if event_type not in self.CLIENT_EVENTS:
            await self.send_json({"type": "error", "event": event_type, "detail": "Unknown event type"})
            return

        handler = getattr(self, f"handle_{event_type}")
        try:
            await handler(content)
        except APIException as exc:
            await self.send_json({
                "type": "error",
                "event": event_type,
                "detail": exc.detail,
                "code": exc.default_code,
            })

    # ----------------- client -> server -----------------
    async def handle_join_chat(self, content):
        frame = self._frame(content, "chat_id")
        await self._join(await self._conversation(chat_id=frame["chat_id"]))

    async def handle_join_group(self, content):
        frame = self._frame(content, "group_id")
        await self._join(await self._conversation(group_id=frame["group_id"]))

    async def handle_leave_chat(self, content):
        frame = self._frame(content, "chat_id")
        await self.hub.leave(self.channel_name, f"chat_{frame['chat_id']}")

    async def handle_leave_group(self, content):
        frame = self._frame(content, "group_id")
        await self.hub.leave(self.channel_name, f"group_{frame['group_id']}")

    async def handle_typing(self, content):
        frame = self._frame(content)
        conversation = await self._conversation(chat_id=frame.get("chat_id"), group_id=frame.get("group_id"))
        await self.hub.broadcast_typing(
            conversation,
            self.user.id,
            self.user.username,
            frame["is_typing"],
            exclude=self.channel_name,
        )

    async def handle_message(self, content):
        conversation, payload = await self._send_message(content)
        await self.hub.broadcast_new_message(conversation, payload)

    async def handle_react(self, content):
        frame = self._frame(content, "message_id")
        conversation, payload = await self._toggle_reaction(frame["message_id"], frame["emoji"])
        await self.hub.broadcast_reaction_update(conversation, payload)

    async def handle_delete(self, content):
        frame = self._frame(content, "message_id")
        conversation, message_id = await self._delete_message(frame["message_id"])
        await self.hub.broadcast_message_deleted(conversation, message_id)

    async def handle_read(self, content):
        frame = self._frame(content)
        conversation = await self._conversation(chat_id=frame.get("chat_id"), group_id=frame.get("group_id"))
        if await self._mark_read(conversation):
            await self.hub.broadcast_read(conversation, self.user.id)

    def _frame(self, content, *required):
        """Coerce frame ids and flags; raises ValidationError before any query runs."""
        from .exceptions import ValidationFailed
        from .serializers import FrameSerializer

        serializer = FrameSerializer(data=content)
        serializer.is_valid(raise_exception=True)
        frame = serializer.validated_data
        for key in required:
            if frame.get(key) is None:
                raise ValidationFailed(f"{key} is required")
        return frame

    async def _join(self, conversation):
        await self.hub.join(self.channel_name, conversation.hub_group)
        # the client re-fetches to pick up anything missed while not joined
        await self.send_json({"type": "refresh", f"{conversation.kind}_id": conversation.pk})

    # ----------------- Event handlers sent to clients -----------------
    async def chat_message(self, event):
        await self.send_json({"type": "message", "data": event["data"]})

    async def chat_group_message(self, event):
        await self.send_json({"type": "group_message", "data": event["data"]})

    async def chat_typing(self, event):
        # the typist doesn't get their own indicator back
        if event.get("exclude") == self.channel_name:
            return
        await self.send_json({
            "type": "typing",
            **self._conversation_keys(event),
            "user": event.get("user"),
            "username": event.get("username"),
            "is_typing": event.get("is_typing"),
        })

    async def chat_reaction(self, event):
        await self.send_json({"type": "reaction", "data": event["data"]})

    async def chat_message_deleted(self, event):
        await self.send_json({
            "type": "message_deleted",
            **self._conversation_keys(event),
            "message_id": event.get("message_id"),
        })

    async def chat_read(self, event):
        await self.send_json({"type": "read", **self._conversation_keys(event), "user": event.get("user")})

    async def presence_update(self, event):
        await self.send_json({
            "type": "presence",
            "user": event.get("user"),
            "online": event.get("online"),
        })

    async def group_created(self, event):
        await self.send_json({"type": "group_created", "data": event["data"]})

    async def group_member_removed(self, event):
        data = event["data"]
        if data.get("user_id") == self.user.id:
            await self.hub.leave(self.channel_name, f"group_{data.get('group_id')}")
        await self.send_json({"type": "group_member_removed", "data": data})

    @staticmethod
    def _conversation_keys(event):
        return {key: event[key] for key in ("chat_id", "group_id") if key in event}

    # ----------------- helpers (lazy imports) -----------------
    async def _authenticate_from_querystring(self):
        # Prefer short-lived WS token over JWT in querystring.
        from django.conf import settings
        from django.core.signing import TimestampSigner, BadSignature, SignatureExpired
        from rest_framework_simplejwt.exceptions import TokenError
        from rest_framework_simplejwt.settings import api_settings
        from rest_framework_simplejwt.tokens import AccessToken
        from .views import WS_TOKEN_SALT

        query = parse_qs(self.scope.get("query_string", b"").decode())
        ws_token = (query.get("ws_token") or [None])[0]
        if ws_token:
            try:
                user_id = TimestampSigner(salt=WS_TOKEN_SALT).unsign(ws_token, max_age=settings.WS_TOKEN_MAX_AGE)
            except (BadSignature, SignatureExpired):
                return None
            return await self._get_user(user_id)

        token = (query.get("token") or [None])[0]
        if not token:
            return None
        try:
            user_id = AccessToken(token).get(api_settings.USER_ID_CLAIM)
        except TokenError as e:
            logger.warning(f"JWT auth failed: {e}")
            return None
        if not user_id:
            return None
        return await self._get_user(user_id)

    @database_sync_to_async
    def _get_user(self, user_id):
        from django.contrib.auth import get_user_model
        User = get_user_model()
        return User.objects.filter(pk=user_id, is_active=True).first()

    @database_sync_to_async
    def _set_presence(self, user_id, online):
        from users.models import set_presence
        set_presence(user_id, online)

    @database_sync_to_async
    def _conversation(self, chat_id=None, group_id=None):
        """Resolve the conversation and check the caller may see it."""
        from .access import assert_conversation_access
        from .directory import resolve_conversation

        conversation = resolve_conversation(chat_id=chat_id, group_id=group_id)
        assert_conversation_access(conversation, self.user)
        return conversation

    @database_sync_to_async
    def _send_message(self, content):
        from .serializers import MessageCreateSerializer, MessageSerializer
        from .services import send_message

        # "type" is the frame type here, the message type travels as message_type
        body = {key: value for key, value in content.items() if key not in ("type", "message_type")}
        if content.get("message_type"):
            body["type"] = content["message_type"]
        serializer = MessageCreateSerializer(data=body)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        message = send_message(
            self.user,
            chat_id=data.get("chat_id"),
            group_id=data.get("group_id"),
            content=data.get("content", ""),
            message_type=data["type"],
            media=data["media"],
            reply_to_id=data.get("reply_to_id"),
        )
        return message.conversation, MessageSerializer(message, context={"user": self.user}).data

    @database_sync_to_async
    def _toggle_reaction(self, message_id, emoji):
        from .messages import get_message
        from .serializers import MessageSerializer
        from .services import react

        message = get_message(message_id)
        react(self.user, message, emoji)
        message = get_message(message_id)
        return message.conversation, MessageSerializer(message, context={"user": self.user}).data

    @database_sync_to_async
    def _delete_message(self, message_id):
        from .messages import get_message
        from .services import delete_message

        message = get_message(message_id)
        delete_message(self.user, message)
        return message.conversation, message.pk

    @database_sync_to_async
    def _mark_read(self, conversation):
        from .services import mark_conversation_read
        return mark_conversation_read(self.user, conversation)
