"""
Membership and role checks. Every read or write on a conversation goes
through one of the assert_* helpers before touching the store.
"""
from .exceptions import Unauthorized
from .models import Chat, GroupMember, GroupRole


def _user_id(user):
    return getattr(user, "pk", user)


def is_member(group, user):
    return GroupMember.objects.filter(group=group, user_id=_user_id(user)).exists()


def is_admin(group, user):
    return GroupMember.objects.filter(
        group=group, user_id=_user_id(user), role=GroupRole.ADMIN
    ).exists()


def assert_chat_access(chat, user):
    if not chat.has_participant(_user_id(user)):
        raise Unauthorized("You don't have access to this chat")


def assert_group_access(group, user):
    if not is_member(group, user):
        raise Unauthorized("You are not a member of this group")


def assert_group_admin(group, user):
    if not is_admin(group, user):
        raise Unauthorized("Only group admins can do this")


def assert_conversation_access(conversation, user):
    if isinstance(conversation, Chat):
        assert_chat_access(conversation, user)
    else:
        assert_group_access(conversation, user)
