import logging

from django.contrib.auth import get_user_model
from django.db.models import Q
from rest_framework import generics, permissions, status
from rest_framework.response import Response
from rest_framework.views import APIView
from rest_framework.parsers import MultiPartParser, FormParser, JSONParser

from rest_framework_simplejwt.views import TokenObtainPairView
from rest_framework_simplejwt.serializers import TokenObtainPairSerializer

from chat.exceptions import Conflict, NotFound, ValidationFailed
from .serializers import (
    RegisterSerializer,
    UserProfileSerializer,
    UserSimpleSerializer,
    ContactSerializer,
    StatusSerializer,
)
from .models import Profile, Contact

logger = logging.getLogger(__name__)

User = get_user_model()

SEARCH_LIMIT = 20


# Accept either username or email as the "username" field.
class EmailOrUsernameTokenObtainPairSerializer(TokenObtainPairSerializer):
    def validate(self, attrs):
        # If user typed an email into the username field, try to resolve username
        username_or_email = attrs.get("username")
        if username_or_email and "@" in username_or_email:
            u = User.objects.filter(email__iexact=username_or_email).first()
            if u is not None:
                attrs["username"] = u.username
        return super().validate(attrs)


class EmailOrUsernameTokenObtainPairView(TokenObtainPairView):
    serializer_class = EmailOrUsernameTokenObtainPairSerializer


class RegisterView(generics.CreateAPIView):
    permission_classes = [permissions.AllowAny]
    serializer_class = RegisterSerializer
    queryset = User.objects.all()


class MeView(APIView):
    parser_classes = [MultiPartParser, FormParser, JSONParser]

    def get(self, request):
        serializer = UserProfileSerializer(request.user, context={"request": request})
        return Response(serializer.data)

    def patch(self, request):
        """
        PATCH /api/auth/me/ :
          - Accept multipart/form-data if uploading avatar
          - Accept JSON to update profile fields
        """
        user = request.user
        profile, _ = Profile.objects.get_or_create(user=user)

        avatar = request.FILES.get("avatar")
        if avatar is not None:
            profile.avatar = avatar

        body = request.data
        for field in ("display_name", "about", "phone"):
            if field in body:
                setattr(profile, field, body.get(field) or "")

        profile.save()
        user = User.objects.select_related("profile").get(pk=user.pk)
        serializer = UserProfileSerializer(user, context={"request": request})
        return Response(serializer.data, status=status.HTTP_200_OK)


class StatusView(APIView):
    """PUT { status: "<text>" }. Free-text status shown next to the name."""

    def put(self, request):
        serializer = StatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        Profile.objects.filter(user=request.user).update(status=serializer.validated_data["status"])
        user = User.objects.select_related("profile").get(pk=request.user.pk)
        return Response(UserSimpleSerializer(user, context={"request": request}).data)


class UserSearchView(generics.ListAPIView):
    """GET ?q=<term>, matching username or email, never returns the caller."""

    serializer_class = UserSimpleSerializer

    def get_queryset(self):
        term = (self.request.query_params.get("q") or "").strip()
        if not term:
            return User.objects.none()
        return (
            User.objects.select_related("profile")
            .filter(Q(username__icontains=term) | Q(email__icontains=term))
            .exclude(id=self.request.user.id)
            .order_by("username")[:SEARCH_LIMIT]
        )


class ContactsView(generics.ListAPIView):
    serializer_class = ContactSerializer

    def get_queryset(self):
        return Contact.objects.filter(user=self.request.user).select_related("contact__profile")


class ContactDetailView(APIView):
    """POST adds <user_id> to my contacts, DELETE removes it."""

    def post(self, request, user_id):
        if user_id == request.user.id:
            raise ValidationFailed("Cannot add yourself as a contact")
        contact_user = User.objects.filter(pk=user_id).first()
        if contact_user is None:
            raise NotFound("User not found")
        if Contact.objects.filter(user=request.user, contact=contact_user).exists():
            raise Conflict("Contact already exists")

        contact = Contact.objects.create(
            user=request.user,
            contact=contact_user,
            display_name=(request.data.get("display_name") or "").strip(),
        )
        logger.info("User %s added contact %s", request.user.id, contact_user.id)
        return Response(ContactSerializer(contact, context={"request": request}).data, status=201)

    def delete(self, request, user_id):
        deleted, _ = Contact.objects.filter(user=request.user, contact_id=user_id).delete()
        if not deleted:
            raise NotFound("Contact not found")
        return Response(status=status.HTTP_204_NO_CONTENT)
