from django.contrib import admin
from .models import Chat, Group, GroupMember, Message, MessageRead, MessageReaction


class GroupMemberInline(admin.TabularInline):
    model = GroupMember
    extra = 0


@admin.register(Chat)
class ChatAdmin(admin.ModelAdmin):
    list_display = ("id", "user1", "user2", "created_at", "last_message_at")
    search_fields = ("user1__username", "user2__username")


@admin.register(Group)
class GroupAdmin(admin.ModelAdmin):
    list_display = ("id", "name", "created_by", "created_at", "last_message_at")
    search_fields = ("name",)
    inlines = [GroupMemberInline]


@admin.register(Message)
class MessageAdmin(admin.ModelAdmin):
    list_display = ("id", "sender", "chat", "group", "type", "is_deleted", "created_at")
    list_filter = ("type", "is_deleted")
    search_fields = ("content", "sender__username")


admin.site.register(MessageRead)
admin.site.register(MessageReaction)
