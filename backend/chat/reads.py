"""
Read tracking and unread counts.

A MessageRead row for (message, user) means the user has seen the message.
Rows are only ever inserted; the unique (message, user) pair makes repeated
or concurrent marking harmless.
"""
import logging

from django.utils import timezone

from .models import Message, MessageRead

logger = logging.getLogger(__name__)


def _user_id(user):
    return getattr(user, "pk", user)


def read_ids(conversation, user):
    """Ids of the non-deleted messages in `conversation` the user has read."""
    return set(
        MessageRead.objects.filter(
            user_id=_user_id(user),
            message__in=Message.objects.in_conversation(conversation).visible(),
        ).values_list("message_id", flat=True)
    )


def is_read(message, user):
    return MessageRead.objects.filter(message=message, user_id=_user_id(user)).exists()


def count_unread(conversation, user, read_ids=None):
    """
    Non-deleted messages in the conversation, not sent by `user`, without a
    read row for them. Pass a pre-fetched `read_ids` set to skip the join.
    """
    return (
        Message.objects.in_conversation(conversation)
        .unread_by(_user_id(user), read_ids=read_ids)
        .count()
    )


def mark_read(conversation, user):
    """
    Record a read for every visible message in the conversation the user did
    not send and has not read yet. Returns how many rows were attempted.

    Rows that already exist (a concurrent mark_read won the race) are skipped
    individually; the rest of the batch still goes in.
    """
    user_id = _user_id(user)
    pending = list(
        Message.objects.in_conversation(conversation)
        .unread_by(user_id)
        .values_list("id", flat=True)
    )
    if not pending:
        return 0

    now = timezone.now()
    MessageRead.objects.bulk_create(
        [MessageRead(message_id=message_id, user_id=user_id, read_at=now) for message_id in pending],
        ignore_conflicts=True,
    )
    logger.debug("User %s marked %d messages read in %s", user_id, len(pending), conversation.hub_group)
    return len(pending)
