import pytest
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient

from chat.hub import shutdown_hub

User = get_user_model()


@pytest.fixture(autouse=True)
def in_memory_layer(settings):
    # a settings change makes channels build a fresh layer, so groups never leak between tests
    settings.CHANNEL_LAYERS = {"default": {"BACKEND": "channels.layers.InMemoryChannelLayer"}}
    yield
    shutdown_hub()


@pytest.fixture
def make_user(db):
    def make(username, password="pass12345", **extra):
        extra.setdefault("email", f"{username}@example.com")
        return User.objects.create_user(username=username, password=password, **extra)
    return make


@pytest.fixture
def alice(make_user):
    return make_user("alice")


@pytest.fixture
def bob(make_user):
    return make_user("bob")


@pytest.fixture
def carol(make_user):
    return make_user("carol")


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def client_for():
    def make(user):
        client = APIClient()
        client.force_authenticate(user=user)
        return client
    return make
