"""
Message store: append-only message lists per conversation, soft delete,
newest-first paging.
"""
import logging

from django.utils import timezone

from .exceptions import NotFound, ValidationFailed
from .models import Message, MessageType

logger = logging.getLogger(__name__)


def append_message(conversation, sender, content="", message_type=MessageType.TEXT, media=None, reply_to=None):
    """
    Store a new message in `conversation` and return it.

    The conversation's last_message_at is left alone; the caller updates it
    through the directory right after.
    """
    if conversation is None:
        raise ValidationFailed("Either a chat or a group must be provided")

    content = (content or "").strip()
    if message_type not in MessageType.values:
        raise ValidationFailed(f"Unknown message type: {message_type}")

    if message_type == MessageType.TEXT:
        if media is not None:
            raise ValidationFailed("Text messages cannot carry media")
        if not content:
            raise ValidationFailed("Message content is required")
    elif media is None or not media.url:
        raise ValidationFailed(f"A {message_type} message needs a media url")

    if reply_to is not None and not reply_to.belongs_to(conversation):
        raise ValidationFailed("Replies must reference a message in the same conversation")

    fields = {
        conversation.kind: conversation,
        "sender": sender,
        "content": content,
        "type": message_type,
        "reply_to": reply_to,
        "created_at": timezone.now(),
    }
    if media is not None:
        fields.update(
            media_url=media.url,
            media_mime_type=media.mime_type or "",
            media_file_name=media.file_name or "",
            media_size=media.size,
        )
    message = Message.objects.create(**fields)
    logger.debug("Appended message %s to %s", message.pk, conversation.hub_group)
    return message


def list_messages(conversation, offset=0, limit=50):
    """Newest first, soft-deleted messages excluded."""
    offset = max(int(offset), 0)
    limit = max(int(limit), 0)
    qs = (
        Message.objects.in_conversation(conversation)
        .visible()
        .select_related("sender__profile", "reply_to__sender")
        .prefetch_related("reactions")
        .newest_first()
    )
    return list(qs[offset:offset + limit])


def last_message(conversation):
    return (
        Message.objects.in_conversation(conversation)
        .visible()
        .select_related("sender__profile")
        .newest_first()
        .first()
    )


def get_message(message_id):
    message = (
        Message.objects.select_related("chat", "group", "sender__profile", "reply_to__sender")
        .filter(pk=message_id)
        .first()
    )
    if message is None:
        raise NotFound("Message not found")
    return message


def soft_delete_message(message):
    # the row stays so read receipts and replies still resolve
    if message.is_deleted:
        return message
    message.is_deleted = True
    message.save(update_fields=["is_deleted"])
    return message
