# users/serializers.py
from django.contrib.auth import get_user_model
from rest_framework import serializers
from django.contrib.auth.password_validation import validate_password

from .models import Profile, Contact

User = get_user_model()


def build_absolute(context, url):
    """Absolute URL from the request if present, otherwise from a `base_url` in context."""
    if not url:
        return None
    request = context.get("request")
    base = context.get("base_url")
    if request:
        return request.build_absolute_uri(url)
    if base:
        if url.startswith("/"):
            return base.rstrip("/") + url
        return base.rstrip("/") + "/" + url
    return url


def avatar_url_for(user, context):
    profile = getattr(user, "profile", None)
    avatar_field = getattr(profile, "avatar", None) if profile else None
    if not avatar_field:
        return None
    return build_absolute(context, avatar_field.url)


class ProfileSerializer(serializers.ModelSerializer):
    avatar_url = serializers.SerializerMethodField()

    class Meta:
        model = Profile
        fields = ("display_name", "about", "phone", "status", "avatar", "avatar_url", "is_online", "last_seen")
        read_only_fields = ("is_online", "last_seen")

    def get_avatar_url(self, obj):
        if obj.avatar:
            return build_absolute(self.context, obj.avatar.url)
        return None


class RegisterSerializer(serializers.ModelSerializer):
    password = serializers.CharField(write_only=True)

    class Meta:
        model = User
        fields = ("id", "username", "email", "password")

    def validate_email(self, value):
        if value and User.objects.filter(email__iexact=value).exists():
            raise serializers.ValidationError("A user with that email already exists.")
        return value

    def validate_password(self, value):
        validate_password(value)
        return value

    def create(self, validated_data):
        # Use create_user to properly hash password
        return User.objects.create_user(
            username=validated_data["username"],
            email=validated_data.get("email", "") or "",
            password=validated_data["password"],
        )


class UserProfileSerializer(serializers.ModelSerializer):
    # nested profile: name 'profile' matches related_name on Profile
    profile = ProfileSerializer(read_only=True)

    class Meta:
        model = User
        fields = ("id", "username", "email", "profile")


class UserSimpleSerializer(serializers.ModelSerializer):
    """Compact user card used in chat lists, members and message senders."""

    display_name = serializers.SerializerMethodField()
    avatar_url = serializers.SerializerMethodField()
    status = serializers.CharField(source="profile.status", read_only=True, default="")
    is_online = serializers.BooleanField(source="profile.is_online", read_only=True, default=False)
    last_seen = serializers.DateTimeField(source="profile.last_seen", read_only=True, default=None)

    class Meta:
        model = User
        fields = ("id", "username", "email", "display_name", "avatar_url", "status", "is_online", "last_seen")

    def get_display_name(self, obj):
        profile = getattr(obj, "profile", None)
        if profile:
            return profile.display_name or obj.username
        return obj.username

    def get_avatar_url(self, obj):
        return avatar_url_for(obj, self.context)


class ContactSerializer(serializers.ModelSerializer):
    contact = UserSimpleSerializer(read_only=True)

    class Meta:
        model = Contact
        fields = ("id", "contact", "display_name", "created_at")


class StatusSerializer(serializers.Serializer):
    status = serializers.CharField(max_length=140, allow_blank=True)
