import pytest

from chat import directory, messages, services
from chat.exceptions import NotFound, Unauthorized, ValidationFailed
from chat.models import Media, MessageType


@pytest.fixture
def chat(alice, bob):
    return directory.get_or_create_chat(alice, bob)


@pytest.mark.django_db
def test_messages_listed_newest_first(alice, bob, chat):
    for text in ("one", "two", "three"):
        services.send_message(alice, chat_id=chat.pk, content=text)

    page = messages.list_messages(chat)
    assert [m.content for m in page] == ["three", "two", "one"]


@pytest.mark.django_db
def test_paging_with_offset_and_limit(alice, chat):
    for i in range(5):
        services.send_message(alice, chat_id=chat.pk, content=f"m{i}")

    page = messages.list_messages(chat, offset=1, limit=2)
    assert [m.content for m in page] == ["m3", "m2"]
    assert messages.list_messages(chat, offset=10) == []


@pytest.mark.django_db
def test_send_updates_last_message_at(alice, chat):
    assert chat.last_message_at is None
    message = services.send_message(alice, chat_id=chat.pk, content="hi")

    chat.refresh_from_db()
    assert chat.last_message_at == message.created_at


@pytest.mark.django_db
def test_content_is_stripped(alice, chat):
    message = services.send_message(alice, chat_id=chat.pk, content="  hello  ")
    assert message.content == "hello"


@pytest.mark.django_db
def test_soft_deleted_messages_are_hidden(alice, chat):
    keep = services.send_message(alice, chat_id=chat.pk, content="keep")
    gone = services.send_message(alice, chat_id=chat.pk, content="gone")

    services.delete_message(alice, gone)

    gone.refresh_from_db()
    assert gone.is_deleted
    assert [m.pk for m in messages.list_messages(chat)] == [keep.pk]
    assert messages.last_message(chat).pk == keep.pk


@pytest.mark.django_db
def test_only_sender_can_delete(alice, bob, chat):
    message = services.send_message(alice, chat_id=chat.pk, content="mine")
    with pytest.raises(Unauthorized):
        services.delete_message(bob, message)


@pytest.mark.django_db
def test_text_message_needs_content(alice, chat):
    with pytest.raises(ValidationFailed):
        services.send_message(alice, chat_id=chat.pk, content="   ")


@pytest.mark.django_db
def test_text_message_cannot_carry_media(alice, chat):
    with pytest.raises(ValidationFailed):
        services.send_message(
            alice, chat_id=chat.pk, content="hi", message_type=MessageType.TEXT, media=Media(url="/x.png")
        )


@pytest.mark.django_db
def test_media_message_needs_url(alice, chat):
    with pytest.raises(ValidationFailed):
        services.send_message(alice, chat_id=chat.pk, message_type=MessageType.IMAGE)


@pytest.mark.django_db
def test_media_message_keeps_media_fields(alice, chat):
    media = Media(url="https://cdn.example.com/a.png", mime_type="image/png", file_name="a.png", size=42)
    message = services.send_message(alice, chat_id=chat.pk, message_type=MessageType.IMAGE, media=media)

    assert messages.get_message(message.pk).media == media


@pytest.mark.django_db
def test_outsider_cannot_send(carol, chat):
    with pytest.raises(Unauthorized):
        services.send_message(carol, chat_id=chat.pk, content="let me in")


@pytest.mark.django_db
def test_reply_in_same_conversation(alice, bob, chat):
    original = services.send_message(alice, chat_id=chat.pk, content="question")
    reply = services.send_message(bob, chat_id=chat.pk, content="answer", reply_to_id=original.pk)

    assert reply.reply_to_id == original.pk


@pytest.mark.django_db
def test_reply_to_other_conversation_is_rejected(alice, bob, carol, chat):
    elsewhere = directory.get_or_create_chat(alice, carol)
    other = services.send_message(alice, chat_id=elsewhere.pk, content="private")

    with pytest.raises(ValidationFailed):
        services.send_message(bob, chat_id=chat.pk, content="reply", reply_to_id=other.pk)


@pytest.mark.django_db
def test_missing_message():
    with pytest.raises(NotFound):
        messages.get_message(424242)
