from typing import NamedTuple, Optional

from django.db import models
from django.db.models import F, Q
from django.conf import settings
from django.utils import timezone


class Conversation(models.Model):
    """
    Shared shape of a 1:1 chat and a group: both own a message list and a
    last-message timestamp used to order the sidebar.
    """

    created_at = models.DateTimeField(default=timezone.now)
    last_message_at = models.DateTimeField(null=True, blank=True)

    kind = None

    class Meta:
        abstract = True

    @property
    def hub_group(self):
        # channel layer group that live connections join for this conversation
        return f"{self.kind}_{self.pk}"

    def message_filter(self):
        return Q(**{self.kind: self})


class Chat(Conversation):
    """
    1:1 conversation. The pair is stored normalized (user1.id < user2.id) so
    the unique constraint covers both orders.
    """

    user1 = models.ForeignKey(
        settings.AUTH_USER_MODEL, related_name="chats_as_user1", on_delete=models.CASCADE
    )
    user2 = models.ForeignKey(
        settings.AUTH_USER_MODEL, related_name="chats_as_user2", on_delete=models.CASCADE
    )

    kind = "chat"

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["user1", "user2"], name="chat_unique_pair"),
            models.CheckConstraint(condition=Q(user1__lt=F("user2")), name="chat_ordered_pair"),
        ]

    def __str__(self):
        return f"chat {self.pk}: {self.user1_id} <-> {self.user2_id}"

    def has_participant(self, user_id):
        return user_id in (self.user1_id, self.user2_id)

    def other_participant_id(self, user_id):
        return self.user2_id if self.user1_id == user_id else self.user1_id


class Group(Conversation):
    name = models.CharField(max_length=150)
    description = models.TextField(blank=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        related_name="groups_created",
        null=True,
        on_delete=models.SET_NULL,
    )

    kind = "group"

    def __str__(self):
        return self.name


class GroupRole(models.TextChoices):
    MEMBER = "member", "Member"
    ADMIN = "admin", "Admin"


class GroupMember(models.Model):
    group = models.ForeignKey(Group, related_name="memberships", on_delete=models.CASCADE)
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL, related_name="group_memberships", on_delete=models.CASCADE
    )
    role = models.CharField(max_length=16, choices=GroupRole.choices, default=GroupRole.MEMBER)
    joined_at = models.DateTimeField(default=timezone.now)

    class Meta:
        unique_together = ("group", "user")
        ordering = ["joined_at", "id"]

    def __str__(self):
        return f"{self.user_id} in {self.group_id} ({self.role})"

    @property
    def is_admin(self):
        return self.role == GroupRole.ADMIN


class MessageType(models.TextChoices):
    TEXT = "text", "Text"
    IMAGE = "image", "Image"
    VIDEO = "video", "Video"
    AUDIO = "audio", "Audio"
    DOCUMENT = "document", "Document"


class Media(NamedTuple):
    url: str
    mime_type: str = ""
    file_name: str = ""
    size: Optional[int] = None


class MessageQuerySet(models.QuerySet):
    def in_conversation(self, conversation):
        return self.filter(conversation.message_filter())

    def visible(self):
        return self.filter(is_deleted=False)

    def newest_first(self):
        return self.order_by("-created_at", "-id")

    def unread_by(self, user, read_ids=None):
        """Not deleted, not sent by `user`, and not yet read by them."""
        qs = self.visible().exclude(sender=user)
        if read_ids is not None:
            return qs.exclude(id__in=read_ids)
        return qs.exclude(reads__user=user)


class Message(models.Model):
    chat = models.ForeignKey(
        Chat, related_name="messages", null=True, blank=True, on_delete=models.CASCADE
    )
    group = models.ForeignKey(
        Group, related_name="messages", null=True, blank=True, on_delete=models.CASCADE
    )
    sender = models.ForeignKey(
        settings.AUTH_USER_MODEL, related_name="messages_sent", on_delete=models.CASCADE
    )
    content = models.TextField(blank=True)  # allow blank if only media
    type = models.CharField(max_length=16, choices=MessageType.choices, default=MessageType.TEXT)

    # Media payload, only for non-text types. The file itself lives in external storage.
    media_url = models.CharField(max_length=500, blank=True)
    media_mime_type = models.CharField(max_length=100, blank=True)
    media_file_name = models.CharField(max_length=255, blank=True)
    media_size = models.PositiveBigIntegerField(null=True, blank=True)

    reply_to = models.ForeignKey(
        "self", related_name="replies", null=True, blank=True, on_delete=models.SET_NULL
    )
    is_deleted = models.BooleanField(default=False)
    created_at = models.DateTimeField(default=timezone.now)

    objects = MessageQuerySet.as_manager()

    class Meta:
        ordering = ["created_at", "id"]
        indexes = [
            models.Index(fields=["chat", "-created_at"], name="message_chat_created"),
            models.Index(fields=["group", "-created_at"], name="message_group_created"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=(
                    Q(chat__isnull=False, group__isnull=True)
                    | Q(chat__isnull=True, group__isnull=False)
                ),
                name="message_one_conversation",
            ),
            models.CheckConstraint(
                condition=(
                    Q(type=MessageType.TEXT, media_url="")
                    | (~Q(type=MessageType.TEXT) & ~Q(media_url=""))
                ),
                name="message_media_matches_type",
            ),
        ]

    def __str__(self):
        preview = (self.content or "")[:20]
        return f"{self.sender_id} -> {self.conversation}: {preview}"

    @property
    def conversation(self):
        return self.chat if self.chat_id else self.group

    @property
    def media(self):
        if self.type == MessageType.TEXT:
            return None
        return Media(
            url=self.media_url,
            mime_type=self.media_mime_type,
            file_name=self.media_file_name,
            size=self.media_size,
        )

    def belongs_to(self, conversation):
        return getattr(self, f"{conversation.kind}_id") == conversation.pk


class MessageRead(models.Model):
    message = models.ForeignKey(Message, related_name="reads", on_delete=models.CASCADE)
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL, related_name="message_reads", on_delete=models.CASCADE
    )
    read_at = models.DateTimeField(default=timezone.now)

    class Meta:
        unique_together = ("message", "user")

    def __str__(self):
        return f"{self.user_id} read {self.message_id}"


class MessageReaction(models.Model):
    message = models.ForeignKey(Message, related_name="reactions", on_delete=models.CASCADE)
    user = models.ForeignKey(settings.AUTH_USER_MODEL, related_name="message_reactions", on_delete=models.CASCADE)
    emoji = models.CharField(max_length=16)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        unique_together = ("message", "user", "emoji")

    def __str__(self):
        return f"{self.user_id} {self.emoji} {self.message_id}"
