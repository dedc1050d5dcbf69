"""
Conversation directory: which chats and groups a user is in, ordered for the
sidebar by most recent activity.
"""
import logging

from django.contrib.auth import get_user_model
from django.db import IntegrityError, transaction
from django.db.models import F, Q
from django.utils import timezone

from .exceptions import NotFound, ValidationFailed
from .models import Chat, Group, GroupMember

logger = logging.getLogger(__name__)

User = get_user_model()

# no messages yet sorts after any conversation that has one
ACTIVITY_ORDER = (F("last_message_at").desc(nulls_last=True), "-created_at", "-id")


def _user_id(user):
    return getattr(user, "pk", user)


def get_chat(chat_id):
    chat = Chat.objects.filter(pk=chat_id).first()
    if chat is None:
        raise NotFound("Chat not found")
    return chat


def get_group(group_id):
    group = Group.objects.filter(pk=group_id).first()
    if group is None:
        raise NotFound("Group not found")
    return group


def resolve_conversation(chat_id=None, group_id=None):
    """Exactly one of chat_id / group_id must be given."""
    if chat_id and group_id:
        raise ValidationFailed("A message belongs to a chat or a group, not both")
    if chat_id:
        return get_chat(chat_id)
    if group_id:
        return get_group(group_id)
    raise ValidationFailed("Either a chat or a group must be provided")


def get_or_create_chat(user_a, user_b):
    """
    Return the chat between the two users, creating it on first use. The
    lookup ignores argument order.
    """
    a_id, b_id = _user_id(user_a), _user_id(user_b)
    if a_id == b_id:
        raise ValidationFailed("Cannot start a chat with yourself")
    if not User.objects.filter(pk=b_id).exists():
        raise NotFound("User not found")

    lo, hi = sorted([a_id, b_id])
    chat = Chat.objects.filter(user1_id=lo, user2_id=hi).first()
    if chat is not None:
        return chat

    try:
        with transaction.atomic():
            chat = Chat.objects.create(user1_id=lo, user2_id=hi)
    except IntegrityError:
        # another request created the same pair first
        return Chat.objects.get(user1_id=lo, user2_id=hi)
    logger.info("Created chat %s between %s and %s", chat.pk, lo, hi)
    return chat


def list_user_chats(user):
    user_id = _user_id(user)
    return list(
        Chat.objects.filter(Q(user1_id=user_id) | Q(user2_id=user_id))
        .select_related("user1__profile", "user2__profile")
        .order_by(*ACTIVITY_ORDER)
    )


def list_user_groups(user):
    group_ids = GroupMember.objects.filter(user_id=_user_id(user)).values_list("group_id", flat=True)
    return list(Group.objects.filter(id__in=list(group_ids)).order_by(*ACTIVITY_ORDER))


def touch_last_message(conversation, timestamp=None):
    timestamp = timestamp or timezone.now()
    type(conversation).objects.filter(pk=conversation.pk).update(last_message_at=timestamp)
    conversation.last_message_at = timestamp
    return conversation
