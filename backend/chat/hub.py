"""
Presence and fan-out hub.

The channel layer does the actual delivery; the hub keeps its own view of
which connection is in which conversation group and which users have at
least one open connection. That view is what presence is derived from, and
what lets a disconnect leave every group the connection had joined.

Delivery is best effort and at most once. A failed send is logged and
dropped; the message is already stored and clients reconcile by re-fetching
the conversation after a reconnect.
"""
import logging
import threading
import zlib

from channels.layers import get_channel_layer
from channels import DEFAULT_CHANNEL_LAYER

logger = logging.getLogger(__name__)

PRESENCE_GROUP = "presence"
LOCK_STRIPES = 64


def user_group(user_id):
    return f"user_{user_id}"


def conversation_ref(conversation):
    return {f"{conversation.kind}_id": conversation.pk}


class ConnectionHub:
    def __init__(self, layer_alias=DEFAULT_CHANNEL_LAYER):
        self.layer_alias = layer_alias
        # striped locks: one key always maps to the same lock, different
        # conversations rarely contend
        self._locks = [threading.Lock() for _ in range(LOCK_STRIPES)]
        self._groups = {}           # group name -> {channel name}
        self._channel_groups = {}   # channel name -> {group name}
        self._user_channels = {}    # user id -> {channel name}
        self._channel_users = {}    # channel name -> user id

    @property
    def layer(self):
        # resolved per call so a settings change (tests) picks up the new layer
        return get_channel_layer(self.layer_alias)

    def _lock(self, key):
        return self._locks[zlib.crc32(str(key).encode()) % LOCK_STRIPES]

    # ----------------- membership -----------------
    def _add(self, mapping, key, value):
        with self._lock(key):
            mapping.setdefault(key, set()).add(value)

    def _discard(self, mapping, key, value):
        """Remove value; returns True when the key's set became empty."""
        with self._lock(key):
            members = mapping.get(key)
            if not members:
                return False
            members.discard(value)
            if not members:
                del mapping[key]
                return True
            return False

    async def join(self, channel_name, group_name):
        await self.layer.group_add(group_name, channel_name)
        self._add(self._groups, group_name, channel_name)
        self._add(self._channel_groups, channel_name, group_name)

    async def leave(self, channel_name, group_name):
        await self.layer.group_discard(group_name, channel_name)
        self._discard(self._groups, group_name, channel_name)
        self._discard(self._channel_groups, channel_name, group_name)

    def members(self, group_name):
        with self._lock(group_name):
            return set(self._groups.get(group_name, ()))

    def groups_of(self, channel_name):
        with self._lock(channel_name):
            return set(self._channel_groups.get(channel_name, ()))

    # ----------------- presence -----------------
    async def connect(self, user_id, channel_name):
        """
        Register a new connection for `user_id`. Returns True when this is the
        user's first open connection (they just came online).
        """
        with self._lock(channel_name):
            self._channel_users[channel_name] = user_id
        with self._lock(user_id):
            channels = self._user_channels.setdefault(user_id, set())
            first = not channels
            channels.add(channel_name)
        await self.join(channel_name, user_group(user_id))
        await self.join(channel_name, PRESENCE_GROUP)
        return first

    async def disconnect(self, channel_name):
        """
        Drop a connection and leave all of its groups. Returns
        (user_id, went_offline).
        """
        for group_name in self.groups_of(channel_name):
            try:
                await self.leave(channel_name, group_name)
            except Exception:
                logger.exception("Failed to discard %s from %s", channel_name, group_name)
                self._discard(self._groups, group_name, channel_name)
        with self._lock(channel_name):
            self._channel_groups.pop(channel_name, None)
            user_id = self._channel_users.pop(channel_name, None)
        if user_id is None:
            return None, False
        went_offline = self._discard(self._user_channels, user_id, channel_name)
        return user_id, went_offline

    def is_online(self, user_id):
        with self._lock(user_id):
            return bool(self._user_channels.get(user_id))

    def online_users(self):
        return [user_id for user_id in list(self._user_channels) if self.is_online(user_id)]

    def clear(self):
        for lock in self._locks:
            lock.acquire()
        try:
            self._groups.clear()
            self._channel_groups.clear()
            self._user_channels.clear()
            self._channel_users.clear()
        finally:
            for lock in self._locks:
                lock.release()

    # ----------------- fan-out -----------------
    async def _send(self, group_name, event):
        try:
            await self.layer.group_send(group_name, event)
        except Exception:
            # Don't fail the caller if broadcasting fails.
            logger.exception("Failed to broadcast %s to %s", event.get("type"), group_name)
            return False
        return True

    async def broadcast_new_message(self, conversation, payload):
        event_type = "chat.message" if conversation.kind == "chat" else "chat.group_message"
        return await self._send(conversation.hub_group, {"type": event_type, "data": payload})

    async def broadcast_typing(self, conversation, user_id, username, is_typing, exclude=None):
        # typing is never stored; clients time it out locally
        return await self._send(
            conversation.hub_group,
            {
                "type": "chat.typing",
                **conversation_ref(conversation),
                "user": user_id,
                "username": username,
                "is_typing": bool(is_typing),
                "exclude": exclude,
            },
        )

    async def broadcast_reaction_update(self, conversation, payload):
        return await self._send(conversation.hub_group, {"type": "chat.reaction", "data": payload})

    async def broadcast_message_deleted(self, conversation, message_id):
        return await self._send(
            conversation.hub_group,
            {"type": "chat.message_deleted", **conversation_ref(conversation), "message_id": message_id},
        )

    async def broadcast_read(self, conversation, user_id):
        return await self._send(
            conversation.hub_group,
            {"type": "chat.read", **conversation_ref(conversation), "user": user_id},
        )

    async def broadcast_presence(self, user_id, is_online):
        return await self._send(
            PRESENCE_GROUP, {"type": "presence.update", "user": user_id, "online": bool(is_online)}
        )

    async def notify_user(self, user_id, event_type, data):
        return await self._send(user_group(user_id), {"type": event_type, "data": data})


_hub = None
_hub_lock = threading.Lock()


def init_hub():
    global _hub
    with _hub_lock:
        if _hub is None:
            _hub = ConnectionHub()
        return _hub


def get_hub():
    return _hub or init_hub()


def shutdown_hub():
    global _hub
    with _hub_lock:
        if _hub is not None:
            _hub.clear()
            _hub = None
