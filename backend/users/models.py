from django.db import models
from django.conf import settings
from django.dispatch import receiver
from django.db.models.signals import post_save
from django.utils import timezone


class Profile(models.Model):
    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="profile"
    )
    display_name = models.CharField(max_length=150, blank=True)
    about = models.TextField(blank=True)
    phone = models.CharField(max_length=30, blank=True)
    avatar = models.ImageField(upload_to="avatars/", blank=True, null=True)
    # free-text status line ("In a meeting"), not presence
    status = models.CharField(max_length=140, blank=True)
    is_online = models.BooleanField(default=False)
    last_seen = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return self.display_name or self.user.username or str(self.user.id)


@receiver(post_save, sender=settings.AUTH_USER_MODEL)
def ensure_profile(sender, instance, created, **kwargs):
    # create profile for new users
    if created:
        Profile.objects.create(user=instance)


class Contact(models.Model):
    """One-directional address book entry: `user` saved `contact`."""

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        related_name="contacts",
        on_delete=models.CASCADE,
    )
    contact = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        related_name="saved_by",
        on_delete=models.CASCADE,
    )
    display_name = models.CharField(max_length=150, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        unique_together = ("user", "contact")
        ordering = ["created_at"]

    def __str__(self):
        return f"{self.user_id} -> {self.contact_id}"


def set_presence(user_id, online):
    """
    Persist the online flag and bump last_seen. Returns False when the user
    has no profile row (deleted between connect and disconnect).
    """
    updated = Profile.objects.filter(user_id=user_id).update(
        is_online=online, last_seen=timezone.now()
    )
    return updated > 0
