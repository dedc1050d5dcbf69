from django.contrib import admin
from .models import Profile, Contact

@admin.register(Profile)
class ProfileAdmin(admin.ModelAdmin):
    list_display = ("user", "display_name", "is_online", "last_seen", "created_at")
    list_filter = ("is_online",)
    search_fields = ("user__username", "display_name", "phone")


@admin.register(Contact)
class ContactAdmin(admin.ModelAdmin):
    list_display = ("user", "contact", "display_name", "created_at")
    search_fields = ("user__username", "contact__username")
