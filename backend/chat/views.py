import logging

from asgiref.sync import async_to_sync
from django.conf import settings
from django.core.signing import TimestampSigner
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from . import directory, messages, services
from .hub import get_hub
from .serializers import (
    ChatSerializer,
    GroupCreateSerializer,
    GroupMemberSerializer,
    GroupSerializer,
    MemberIdsSerializer,
    MemberRoleSerializer,
    MessageCreateSerializer,
    MessageSerializer,
    ReactionSerializer,
)

logger = logging.getLogger(__name__)

WS_TOKEN_SALT = "ws-token"


def broadcast(method, *args):
    """Run a hub broadcast from a sync view. The hub logs and swallows delivery errors."""
    async_to_sync(getattr(get_hub(), method))(*args)


def page_params(request):
    try:
        offset = max(int(request.query_params.get("offset", 0)), 0)
        limit = int(request.query_params.get("limit", settings.CHAT_PAGE_SIZE))
    except (TypeError, ValueError):
        offset, limit = 0, settings.CHAT_PAGE_SIZE
    return offset, min(max(limit, 1), settings.CHAT_MAX_PAGE_SIZE)


class ChatListView(APIView):
    """GET my chats, most recent activity first, with last message and unread count."""

    def get(self, request):
        chats = directory.list_user_chats(request.user)
        return Response(ChatSerializer(chats, many=True, context={"request": request}).data)


class ChatWithUserView(APIView):
    """POST get-or-create the chat with <user_id>."""

    def post(self, request, user_id):
        chat = directory.get_or_create_chat(request.user, user_id)
        return Response(ChatSerializer(chat, context={"request": request}).data)


class ConversationMixin:
    kind = None

    def get_conversation(self, pk):
        if self.kind == "chat":
            return directory.get_chat(pk)
        return directory.get_group(pk)


class ConversationMessagesView(ConversationMixin, APIView):
    """
    GET a page of messages (?offset=&limit=), returned oldest to newest for
    display. Loading a page marks the conversation read for the caller.
    """

    def get(self, request, pk):
        conversation = self.get_conversation(pk)
        offset, limit = page_params(request)
        page = services.conversation_messages(request.user, conversation, offset=offset, limit=limit)
        if services.mark_conversation_read(request.user, conversation):
            broadcast("broadcast_read", conversation, request.user.id)
        page.reverse()
        return Response(MessageSerializer(page, many=True, context={"request": request}).data)


class ConversationReadView(ConversationMixin, APIView):
    """POST mark everything in the conversation read."""

    def post(self, request, pk):
        conversation = self.get_conversation(pk)
        marked = services.mark_conversation_read(request.user, conversation)
        if marked:
            broadcast("broadcast_read", conversation, request.user.id)
        return Response({"marked": marked})


class GroupListView(APIView):
    def get(self, request):
        groups = directory.list_user_groups(request.user)
        return Response(GroupSerializer(groups, many=True, context={"request": request}).data)

    def post(self, request):
        serializer = GroupCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        group = services.create_group(request.user, **serializer.validated_data)
        payload = GroupSerializer(group, context={"request": request}).data

        # Tell every member's open sessions about the new group
        for member in payload["members"]:
            broadcast("notify_user", member["user"]["id"], "group.created", payload)
        return Response(payload, status=status.HTTP_201_CREATED)


class GroupMembersView(APIView):
    """POST { member_ids: [..] } or a bare list of ids. Admin only."""

    def post(self, request, group_id):
        group = directory.get_group(group_id)
        data = {"member_ids": request.data} if isinstance(request.data, list) else request.data
        serializer = MemberIdsSerializer(data=data)
        serializer.is_valid(raise_exception=True)
        added = services.add_members(group, request.user, serializer.validated_data["member_ids"])

        if added:
            payload = GroupSerializer(group, context={"request": request}).data
            for membership in added:
                broadcast("notify_user", membership.user_id, "group.created", payload)
        return Response(GroupMemberSerializer(added, many=True, context={"request": request}).data)


class GroupMemberDetailView(APIView):
    """DELETE remove <user_id> from the group (admins, or the member themselves)."""

    def delete(self, request, group_id, user_id):
        group = directory.get_group(group_id)
        remaining = list(group.memberships.values_list("user_id", flat=True))
        services.remove_member(group, request.user, user_id)

        # removed user included so their sidebar drops the group
        data = {"group_id": group.pk, "user_id": user_id}
        for member_id in remaining:
            broadcast("notify_user", member_id, "group.member_removed", data)
        return Response(status=status.HTTP_204_NO_CONTENT)


class GroupMemberRoleView(APIView):
    """PUT { role: "admin" | "member" }. Admin only."""

    def put(self, request, group_id, user_id):
        group = directory.get_group(group_id)
        serializer = MemberRoleSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        membership = services.set_member_role(group, request.user, user_id, serializer.validated_data["role"])
        return Response(GroupMemberSerializer(membership, context={"request": request}).data)


class MessageCreateView(APIView):
    """
    POST { chat_id | group_id, content, type, reply_to_id?, media_url?, ... }

    Media files are uploaded elsewhere; this only records the resulting url.
    """

    def post(self, request):
        serializer = MessageCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        message = services.send_message(
            request.user,
            chat_id=data.get("chat_id"),
            group_id=data.get("group_id"),
            content=data.get("content", ""),
            message_type=data["type"],
            media=data["media"],
            reply_to_id=data.get("reply_to_id"),
        )
        payload = MessageSerializer(message, context={"request": request}).data

        # Stored already; a failed broadcast only means clients pick it up on next fetch
        broadcast("broadcast_new_message", message.conversation, payload)
        return Response(payload, status=status.HTTP_201_CREATED)


class MessageDetailView(APIView):
    """DELETE soft-deletes the message (sender only)."""

    def delete(self, request, message_id):
        message = messages.get_message(message_id)
        services.delete_message(request.user, message)
        broadcast("broadcast_message_deleted", message.conversation, message.pk)
        return Response(status=status.HTTP_204_NO_CONTENT)


class MessageReactionView(APIView):
    """POST { emoji } toggles the caller's reaction."""

    def post(self, request, message_id):
        serializer = ReactionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        message = messages.get_message(message_id)
        added = services.react(request.user, message, serializer.validated_data["emoji"])

        payload = MessageSerializer(messages.get_message(message_id), context={"request": request}).data
        broadcast("broadcast_reaction_update", message.conversation, payload)
        return Response({"action": "added" if added else "removed", "message": payload})


class WSTokenView(APIView):
    """GET a short-lived signed token for the websocket querystring (?ws_token=)."""

    def get(self, request):
        token = TimestampSigner(salt=WS_TOKEN_SALT).sign(str(request.user.id))
        return Response({"ws_token": token, "expires_in": settings.WS_TOKEN_MAX_AGE})
