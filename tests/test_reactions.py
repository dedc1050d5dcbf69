import pytest

from chat import directory, services
from chat.exceptions import Unauthorized, ValidationFailed
from chat.models import MessageReaction
from chat.serializers import MessageSerializer


@pytest.fixture
def message(alice, bob):
    chat = directory.get_or_create_chat(alice, bob)
    return services.send_message(alice, chat_id=chat.pk, content="nice")


@pytest.mark.django_db
def test_react_toggles(bob, message):
    assert services.react(bob, message, "👍") is True
    assert MessageReaction.objects.filter(message=message, user=bob).count() == 1

    assert services.react(bob, message, "👍") is False
    assert not MessageReaction.objects.filter(message=message, user=bob).exists()


@pytest.mark.django_db
def test_reactions_grouped_by_emoji(alice, bob, message):
    services.react(alice, message, "👍")
    services.react(bob, message, "👍")
    services.react(bob, message, "🎉")

    data = MessageSerializer(message, context={"user": alice}).data
    by_emoji = {r["emoji"]: r for r in data["reactions"]}
    assert by_emoji["👍"]["count"] == 2
    assert sorted(by_emoji["👍"]["users"]) == sorted([alice.pk, bob.pk])
    assert by_emoji["🎉"]["users"] == [bob.pk]


@pytest.mark.django_db
def test_outsider_cannot_react(carol, message):
    with pytest.raises(Unauthorized):
        services.react(carol, message, "👍")


@pytest.mark.django_db
def test_blank_emoji(bob, message):
    with pytest.raises(ValidationFailed):
        services.react(bob, message, " ")
