import pytest
from channels.db import database_sync_to_async
from channels.routing import URLRouter
from channels.testing import WebsocketCommunicator
from django.core.signing import TimestampSigner
from rest_framework_simplejwt.tokens import AccessToken

from chat import directory
from chat.models import Message
from chat.routing import websocket_urlpatterns
from chat.views import WS_TOKEN_SALT
from users.models import Profile

application = URLRouter(websocket_urlpatterns)

pytestmark = [pytest.mark.asyncio, pytest.mark.django_db(transaction=True)]


def communicator_for(user):
    return WebsocketCommunicator(application, f"/ws/chat/?token={AccessToken.for_user(user)}")


async def connected(user):
    communicator = communicator_for(user)
    ok, _ = await communicator.connect()
    assert ok
    return communicator


async def receive_until(communicator, frame_type, timeout=1):
    while True:
        frame = await communicator.receive_json_from(timeout=timeout)
        if frame["type"] == frame_type:
            return frame


async def drain(communicator):
    frames = []
    while not await communicator.receive_nothing(timeout=0.2):
        frames.append(await communicator.receive_json_from())
    return frames


@database_sync_to_async
def is_online(user):
    return Profile.objects.get(user=user).is_online


async def test_connect_without_token_is_rejected():
    communicator = WebsocketCommunicator(application, "/ws/chat/")
    ok, code = await communicator.connect()
    assert not ok
    assert code == 4401


async def test_bad_token_is_rejected():
    communicator = WebsocketCommunicator(application, "/ws/chat/?token=not-a-jwt")
    ok, _ = await communicator.connect()
    assert not ok


async def test_presence_on_connect_and_disconnect(alice):
    communicator = await connected(alice)
    sync = await receive_until(communicator, "presence_sync")
    assert alice.pk in sync["users"]
    assert await is_online(alice)

    await communicator.disconnect()
    assert not await is_online(alice)


async def test_signed_ws_token(alice):
    token = TimestampSigner(salt=WS_TOKEN_SALT).sign(str(alice.pk))
    communicator = WebsocketCommunicator(application, f"/ws/chat/?ws_token={token}")
    ok, _ = await communicator.connect()
    assert ok
    await communicator.disconnect()


async def test_message_delivered_to_joined_participant(alice, bob):
    chat = await database_sync_to_async(directory.get_or_create_chat)(alice, bob)
    sender, receiver = await connected(alice), await connected(bob)

    for communicator in (sender, receiver):
        await communicator.send_json_to({"type": "join_chat", "chat_id": chat.pk})
        assert (await receive_until(communicator, "refresh"))["chat_id"] == chat.pk

    await sender.send_json_to({"type": "message", "chat_id": chat.pk, "content": "hi"})
    frame = await receive_until(receiver, "message")
    assert frame["data"]["content"] == "hi"
    assert frame["data"]["sender"]["id"] == alice.pk

    assert await database_sync_to_async(Message.objects.filter(chat=chat).count)() == 1

    await sender.disconnect()
    await receiver.disconnect()


async def test_typing_skips_the_typist(alice, bob):
    chat = await database_sync_to_async(directory.get_or_create_chat)(alice, bob)
    typist, watcher = await connected(alice), await connected(bob)
    for communicator in (typist, watcher):
        await communicator.send_json_to({"type": "join_chat", "chat_id": chat.pk})
        await receive_until(communicator, "refresh")

    await typist.send_json_to({"type": "typing", "chat_id": chat.pk, "is_typing": True})
    frame = await receive_until(watcher, "typing")
    assert frame["user"] == alice.pk
    assert frame["is_typing"] is True
    assert all(f["type"] != "typing" for f in await drain(typist))

    await typist.disconnect()
    await watcher.disconnect()


async def test_read_receipt(alice, bob):
    chat = await database_sync_to_async(directory.get_or_create_chat)(alice, bob)
    sender, reader = await connected(alice), await connected(bob)
    for communicator in (sender, reader):
        await communicator.send_json_to({"type": "join_chat", "chat_id": chat.pk})
        await receive_until(communicator, "refresh")

    await sender.send_json_to({"type": "message", "chat_id": chat.pk, "content": "seen?"})
    await receive_until(reader, "message")

    await reader.send_json_to({"type": "read", "chat_id": chat.pk})
    frame = await receive_until(sender, "read")
    assert frame == {"type": "read", "chat_id": chat.pk, "user": bob.pk}

    await sender.disconnect()
    await reader.disconnect()


async def test_outsider_cannot_join(alice, bob, carol):
    chat = await database_sync_to_async(directory.get_or_create_chat)(alice, bob)
    communicator = await connected(carol)

    await communicator.send_json_to({"type": "join_chat", "chat_id": chat.pk})
    frame = await receive_until(communicator, "error")
    assert frame["event"] == "join_chat"
    assert frame["code"] == "unauthorized"

    await communicator.disconnect()


async def test_unknown_event_type(alice):
    communicator = await connected(alice)
    await communicator.send_json_to({"type": "shout"})
    frame = await receive_until(communicator, "error")
    assert frame["event"] == "shout"
    await communicator.disconnect()


async def test_invalid_message_gets_error_and_socket_stays_open(alice, bob):
    chat = await database_sync_to_async(directory.get_or_create_chat)(alice, bob)
    communicator = await connected(alice)

    await communicator.send_json_to({"type": "message", "chat_id": chat.pk, "content": ""})
    frame = await receive_until(communicator, "error")
    assert frame["event"] == "message"

    await communicator.send_json_to({"type": "join_chat", "chat_id": chat.pk})
    await receive_until(communicator, "refresh")
    await communicator.disconnect()


async def test_media_message_over_socket(alice, bob):
    chat = await database_sync_to_async(directory.get_or_create_chat)(alice, bob)
    communicator = await connected(alice)
    await communicator.send_json_to({"type": "join_chat", "chat_id": chat.pk})
    await receive_until(communicator, "refresh")

    await communicator.send_json_to({
        "type": "message",
        "chat_id": chat.pk,
        "message_type": "image",
        "media_url": "https://cdn.example.com/cat.jpg",
        "media_mime_type": "image/jpeg",
    })
    frame = await receive_until(communicator, "message")
    assert frame["data"]["type"] == "image"
    assert frame["data"]["media"]["url"] == "https://cdn.example.com/cat.jpg"
    await communicator.disconnect()


async def test_non_numeric_ids_get_error_and_socket_stays_open(alice, bob):
    chat = await database_sync_to_async(directory.get_or_create_chat)(alice, bob)
    communicator = await connected(alice)

    frames = [
        {"type": "join_chat", "chat_id": "abc"},
        {"type": "typing", "chat_id": "abc"},
        {"type": "read", "group_id": "abc"},
        {"type": "react", "message_id": "abc", "emoji": "👍"},
        {"type": "delete", "message_id": "abc"},
        {"type": "leave_chat"},
    ]
    for frame in frames:
        await communicator.send_json_to(frame)
        error = await receive_until(communicator, "error")
        assert error["event"] == frame["type"]

    await communicator.send_json_to({"type": "join_chat", "chat_id": chat.pk})
    assert (await receive_until(communicator, "refresh"))["chat_id"] == chat.pk
    await communicator.disconnect()


async def test_typing_flag_is_coerced(alice, bob):
    chat = await database_sync_to_async(directory.get_or_create_chat)(alice, bob)
    typist, watcher = await connected(alice), await connected(bob)
    for communicator in (typist, watcher):
        await communicator.send_json_to({"type": "join_chat", "chat_id": chat.pk})
        await receive_until(communicator, "refresh")

    await typist.send_json_to({"type": "typing", "chat_id": chat.pk, "is_typing": "false"})
    frame = await receive_until(watcher, "typing")
    assert frame["is_typing"] is False

    await typist.disconnect()
    await watcher.disconnect()
