# chat/serializers.py
from rest_framework import serializers

from users.serializers import UserSimpleSerializer
from . import messages, reads
from .models import Chat, Group, GroupMember, GroupRole, Media, Message, MessageType


def _context_user(context):
    """The viewing user: from the request for REST, passed directly by the consumer."""
    user = context.get("user")
    if user is None and context.get("request") is not None:
        user = context["request"].user
    return user


def group_reactions(reactions):
    by_emoji = {}
    for reaction in reactions:
        entry = by_emoji.setdefault(reaction.emoji, {"emoji": reaction.emoji, "count": 0, "users": []})
        entry["count"] += 1
        entry["users"].append(reaction.user_id)
    return list(by_emoji.values())


class SenderSerializer(UserSimpleSerializer):
    class Meta(UserSimpleSerializer.Meta):
        fields = ("id", "username", "display_name", "avatar_url")


class ReplyPreviewSerializer(serializers.ModelSerializer):
    """The message being replied to. Never nests further."""

    sender = SenderSerializer(read_only=True)

    class Meta:
        model = Message
        fields = ("id", "sender", "content", "type", "is_deleted", "created_at")


class MessageSerializer(serializers.ModelSerializer):
    chat_id = serializers.IntegerField(read_only=True, allow_null=True)
    group_id = serializers.IntegerField(read_only=True, allow_null=True)
    sender = SenderSerializer(read_only=True)
    media = serializers.SerializerMethodField()
    reply_to_id = serializers.IntegerField(read_only=True, allow_null=True)
    reply_to = ReplyPreviewSerializer(read_only=True)
    reactions = serializers.SerializerMethodField()

    class Meta:
        model = Message
        fields = (
            "id",
            "chat_id",
            "group_id",
            "sender",
            "content",
            "type",
            "media",
            "reply_to_id",
            "reply_to",
            "reactions",
            "is_deleted",
            "created_at",
        )

    def get_media(self, obj):
        media = obj.media
        return media._asdict() if media is not None else None

    def get_reactions(self, obj):
        return group_reactions(obj.reactions.all())


class GroupMemberSerializer(serializers.ModelSerializer):
    user = UserSimpleSerializer(read_only=True)

    class Meta:
        model = GroupMember
        fields = ("id", "user", "role", "joined_at")


class ConversationSummaryMixin(serializers.Serializer):
    last_message = serializers.SerializerMethodField()
    unread_count = serializers.SerializerMethodField()

    def get_last_message(self, obj):
        message = messages.last_message(obj)
        if message is None:
            return None
        return MessageSerializer(message, context=self.context).data

    def get_unread_count(self, obj):
        user = _context_user(self.context)
        if user is None:
            return 0
        return reads.count_unread(obj, user)


class ChatSerializer(ConversationSummaryMixin, serializers.ModelSerializer):
    other_user = serializers.SerializerMethodField()

    class Meta:
        model = Chat
        fields = ("id", "other_user", "last_message", "unread_count", "created_at", "last_message_at")

    def get_other_user(self, obj):
        user = _context_user(self.context)
        other = obj.user2 if user is not None and obj.user1_id == user.pk else obj.user1
        return UserSimpleSerializer(other, context=self.context).data


class GroupSerializer(ConversationSummaryMixin, serializers.ModelSerializer):
    created_by_id = serializers.IntegerField(read_only=True, allow_null=True)
    members = serializers.SerializerMethodField()

    class Meta:
        model = Group
        fields = (
            "id",
            "name",
            "description",
            "created_by_id",
            "members",
            "last_message",
            "unread_count",
            "created_at",
            "last_message_at",
        )

    def get_members(self, obj):
        memberships = obj.memberships.select_related("user__profile")
        return GroupMemberSerializer(memberships, many=True, context=self.context).data


# ----------------- request bodies -----------------

class MessageCreateSerializer(serializers.Serializer):
    chat_id = serializers.IntegerField(required=False, allow_null=True)
    group_id = serializers.IntegerField(required=False, allow_null=True)
    content = serializers.CharField(required=False, allow_blank=True, default="")
    type = serializers.ChoiceField(choices=MessageType.choices, default=MessageType.TEXT)
    reply_to_id = serializers.IntegerField(required=False, allow_null=True)
    media_url = serializers.CharField(required=False, allow_blank=True, max_length=500, default="")
    media_mime_type = serializers.CharField(required=False, allow_blank=True, max_length=100, default="")
    media_file_name = serializers.CharField(required=False, allow_blank=True, max_length=255, default="")
    media_size = serializers.IntegerField(required=False, allow_null=True, min_value=0)

    def validate(self, attrs):
        if bool(attrs.get("chat_id")) == bool(attrs.get("group_id")):
            raise serializers.ValidationError("Exactly one of chat_id or group_id is required")

        if attrs["type"] == MessageType.TEXT:
            if attrs.get("media_url"):
                raise serializers.ValidationError({"media_url": "Text messages cannot carry media"})
            if not (attrs.get("content") or "").strip():
                raise serializers.ValidationError({"content": "Message content is required"})
            attrs["media"] = None
        else:
            if not attrs.get("media_url"):
                raise serializers.ValidationError({"media_url": f"A {attrs['type']} message needs a media url"})
            attrs["media"] = Media(
                url=attrs["media_url"],
                mime_type=attrs.get("media_mime_type", ""),
                file_name=attrs.get("media_file_name", ""),
                size=attrs.get("media_size"),
            )
        return attrs


class GroupCreateSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=150)
    description = serializers.CharField(required=False, allow_blank=True, default="")
    member_ids = serializers.ListField(child=serializers.IntegerField(), required=False, default=list)


class MemberIdsSerializer(serializers.Serializer):
    member_ids = serializers.ListField(child=serializers.IntegerField(), allow_empty=False)


class MemberRoleSerializer(serializers.Serializer):
    role = serializers.ChoiceField(choices=GroupRole.choices)


class ReactionSerializer(serializers.Serializer):
    emoji = serializers.CharField(max_length=16)


class FrameSerializer(serializers.Serializer):
    """Ids and flags carried by websocket frames (everything but "message")."""

    chat_id = serializers.IntegerField(required=False, allow_null=True, min_value=1)
    group_id = serializers.IntegerField(required=False, allow_null=True, min_value=1)
    message_id = serializers.IntegerField(required=False, allow_null=True, min_value=1)
    is_typing = serializers.BooleanField(required=False, default=True)
    emoji = serializers.CharField(required=False, allow_blank=True, max_length=16, default="")
