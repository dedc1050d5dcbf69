"""
Chat workflows shared by the REST views and the websocket consumer.

Each operation checks access first, then writes. Nothing here talks to the
hub; callers broadcast after the write has succeeded.
"""
import logging

from django.contrib.auth import get_user_model
from django.db import transaction

from . import access, directory, messages, reads
from .exceptions import NotFound, Unauthorized, ValidationFailed
from .models import Group, GroupMember, GroupRole, MessageReaction

logger = logging.getLogger(__name__)

User = get_user_model()


def send_message(user, chat_id=None, group_id=None, content="", message_type="text", media=None, reply_to_id=None):
    conversation = directory.resolve_conversation(chat_id=chat_id, group_id=group_id)
    access.assert_conversation_access(conversation, user)

    reply_to = messages.get_message(reply_to_id) if reply_to_id else None
    message = messages.append_message(
        conversation,
        user,
        content=content,
        message_type=message_type,
        media=media,
        reply_to=reply_to,
    )
    directory.touch_last_message(conversation, message.created_at)
    return message


def conversation_messages(user, conversation, offset=0, limit=50):
    access.assert_conversation_access(conversation, user)
    return messages.list_messages(conversation, offset=offset, limit=limit)


def mark_conversation_read(user, conversation):
    access.assert_conversation_access(conversation, user)
    return reads.mark_read(conversation, user)


def react(user, message, emoji):
    """
    Toggle `emoji` from `user` on `message`. Returns True when the reaction
    was added, False when an existing one was removed.
    """
    emoji = (emoji or "").strip()
    if not emoji:
        raise ValidationFailed("Emoji is required")
    access.assert_conversation_access(message.conversation, user)

    deleted, _ = MessageReaction.objects.filter(message=message, user=user, emoji=emoji).delete()
    if deleted:
        return False
    # get_or_create absorbs a concurrent duplicate click
    MessageReaction.objects.get_or_create(message=message, user=user, emoji=emoji)
    return True


def delete_message(user, message):
    if message.sender_id != user.pk:
        raise Unauthorized("Only the sender can delete a message")
    return messages.soft_delete_message(message)


def _users_by_id(user_ids):
    user_ids = {int(user_id) for user_id in user_ids}
    found = {u.pk: u for u in User.objects.filter(pk__in=user_ids)}
    missing = user_ids - set(found)
    if missing:
        raise NotFound(f"Unknown user ids: {sorted(missing)}")
    return found


def create_group(user, name, description="", member_ids=()):
    name = (name or "").strip()
    if not name:
        raise ValidationFailed("Group name is required")
    others = _users_by_id(member_id for member_id in member_ids if int(member_id) != user.pk)

    with transaction.atomic():
        group = Group.objects.create(name=name, description=description or "", created_by=user)
        GroupMember.objects.create(group=group, user=user, role=GroupRole.ADMIN)
        GroupMember.objects.bulk_create(
            [GroupMember(group=group, user=member) for member in others.values()]
        )
    logger.info("User %s created group %s with %d members", user.pk, group.pk, len(others) + 1)
    return group


def add_members(group, user, member_ids):
    """Admin only. Users that are already members are skipped. Returns the new memberships."""
    access.assert_group_admin(group, user)
    candidates = _users_by_id(member_ids)
    existing = set(
        GroupMember.objects.filter(group=group, user_id__in=candidates).values_list("user_id", flat=True)
    )
    added = []
    for user_id, member in candidates.items():
        if user_id in existing:
            continue
        membership, created = GroupMember.objects.get_or_create(group=group, user=member)
        if created:
            added.append(membership)
    return added


def _assert_keeps_an_admin(group, membership):
    """An admin can only step down while another admin remains, unless they are the last member."""
    if not membership.is_admin:
        return
    others = GroupMember.objects.filter(group=group).exclude(pk=membership.pk)
    if others.exists() and not others.filter(role=GroupRole.ADMIN).exists():
        raise ValidationFailed("Promote another admin first")


def remove_member(group, user, member_id):
    """Admins can remove anyone; everyone else can only remove themselves."""
    if member_id != user.pk:
        access.assert_group_admin(group, user)
    membership = GroupMember.objects.filter(group=group, user_id=member_id).first()
    if membership is None:
        raise NotFound("Member not found")
    _assert_keeps_an_admin(group, membership)
    membership.delete()
    logger.info("User %s removed %s from group %s", user.pk, member_id, group.pk)


def set_member_role(group, user, member_id, role):
    access.assert_group_admin(group, user)
    if role not in GroupRole.values:
        raise ValidationFailed("Invalid role")
    membership = GroupMember.objects.filter(group=group, user_id=member_id).first()
    if membership is None:
        raise NotFound("Member not found")
    if role == GroupRole.MEMBER:
        _assert_keeps_an_admin(group, membership)
    membership.role = role
    membership.save(update_fields=["role"])
    return membership
