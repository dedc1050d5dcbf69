from django.urls import path
from .views import (
    ChatListView,
    ChatWithUserView,
    ConversationMessagesView,
    ConversationReadView,
    GroupListView,
    GroupMembersView,
    GroupMemberDetailView,
    GroupMemberRoleView,
    MessageCreateView,
    MessageDetailView,
    MessageReactionView,
    WSTokenView,
)

urlpatterns = [
    path("chats/", ChatListView.as_view(), name="chat-list"),
    path("chats/with/<int:user_id>/", ChatWithUserView.as_view(), name="chat-with-user"),
    path("chats/<int:pk>/messages/", ConversationMessagesView.as_view(kind="chat"), name="chat-messages"),
    path("chats/<int:pk>/read/", ConversationReadView.as_view(kind="chat"), name="chat-read"),
    path("groups/", GroupListView.as_view(), name="group-list"),
    path("groups/<int:pk>/messages/", ConversationMessagesView.as_view(kind="group"), name="group-messages"),
    path("groups/<int:pk>/read/", ConversationReadView.as_view(kind="group"), name="group-read"),
    path("groups/<int:group_id>/members/", GroupMembersView.as_view(), name="group-members"),
    path("groups/<int:group_id>/members/<int:user_id>/", GroupMemberDetailView.as_view(), name="group-member-detail"),
    path("groups/<int:group_id>/members/<int:user_id>/role/", GroupMemberRoleView.as_view(), name="group-member-role"),
    path("messages/", MessageCreateView.as_view(), name="message-create"),
    path("messages/<int:message_id>/", MessageDetailView.as_view(), name="message-detail"),
    path("messages/<int:message_id>/reaction/", MessageReactionView.as_view(), name="message-reaction"),
    path("ws-token/", WSTokenView.as_view(), name="chat-ws-token"),
]
