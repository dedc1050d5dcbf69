import pytest
from django.db import DatabaseError

from chat import directory, services
from chat.exceptions import api_exception_handler


@pytest.mark.django_db
def test_direct_chat_scenario(alice, bob, client_for):
    as_alice, as_bob = client_for(alice), client_for(bob)

    response = as_alice.post(f"/api/chat/chats/with/{bob.pk}/")
    assert response.status_code == 200
    chat_id = response.json()["id"]
    assert response.json()["other_user"]["username"] == "bob"

    response = as_alice.post("/api/chat/messages/", {"chat_id": chat_id, "content": "hi"}, format="json")
    assert response.status_code == 201
    assert response.json()["sender"]["id"] == alice.pk
    assert response.json()["chat_id"] == chat_id

    chats = as_bob.get("/api/chat/chats/").json()
    assert len(chats) == 1
    assert chats[0]["id"] == chat_id
    assert chats[0]["unread_count"] == 1
    assert chats[0]["last_message"]["content"] == "hi"

    page = as_bob.get(f"/api/chat/chats/{chat_id}/messages/").json()
    assert [m["content"] for m in page] == ["hi"]

    # loading the page marked it read
    assert as_bob.get("/api/chat/chats/").json()[0]["unread_count"] == 0


@pytest.mark.django_db
def test_message_page_is_chronological(alice, bob, client_for):
    chat = directory.get_or_create_chat(alice, bob)
    for text in ("a", "b", "c", "d"):
        services.send_message(alice, chat_id=chat.pk, content=text)

    response = client_for(bob).get(f"/api/chat/chats/{chat.pk}/messages/", {"limit": 2})
    assert [m["content"] for m in response.json()] == ["c", "d"]


@pytest.mark.django_db
def test_explicit_mark_read(alice, bob, client_for):
    chat = directory.get_or_create_chat(alice, bob)
    services.send_message(alice, chat_id=chat.pk, content="ping")

    response = client_for(bob).post(f"/api/chat/chats/{chat.pk}/read/")
    assert response.json() == {"marked": 1}


@pytest.mark.django_db
def test_outsider_gets_403(alice, bob, carol, client_for):
    chat = directory.get_or_create_chat(alice, bob)

    response = client_for(carol).get(f"/api/chat/chats/{chat.pk}/messages/")
    assert response.status_code == 403
    assert "detail" in response.json()


@pytest.mark.django_db
def test_missing_chat_is_404(alice, client_for):
    assert client_for(alice).get("/api/chat/chats/9999/messages/").status_code == 404


@pytest.mark.django_db
def test_chat_with_self_is_400(alice, client_for):
    assert client_for(alice).post(f"/api/chat/chats/with/{alice.pk}/").status_code == 400


@pytest.mark.django_db
def test_message_validation(alice, bob, client_for):
    chat = directory.get_or_create_chat(alice, bob)
    client = client_for(alice)

    assert client.post("/api/chat/messages/", {"chat_id": chat.pk}, format="json").status_code == 400
    assert client.post("/api/chat/messages/", {"content": "where?"}, format="json").status_code == 400
    response = client.post(
        "/api/chat/messages/", {"chat_id": chat.pk, "type": "image"}, format="json"
    )
    assert response.status_code == 400
    assert "media_url" in response.json()


@pytest.mark.django_db
def test_media_message(alice, bob, client_for):
    chat = directory.get_or_create_chat(alice, bob)
    response = client_for(alice).post(
        "/api/chat/messages/",
        {
            "chat_id": chat.pk,
            "type": "document",
            "media_url": "https://files.example.com/report.pdf",
            "media_mime_type": "application/pdf",
            "media_file_name": "report.pdf",
            "media_size": 2048,
        },
        format="json",
    )
    assert response.status_code == 201
    assert response.json()["media"] == {
        "url": "https://files.example.com/report.pdf",
        "mime_type": "application/pdf",
        "file_name": "report.pdf",
        "size": 2048,
    }


@pytest.mark.django_db
def test_reply_preview(alice, bob, client_for):
    chat = directory.get_or_create_chat(alice, bob)
    original = services.send_message(alice, chat_id=chat.pk, content="lunch?")

    response = client_for(bob).post(
        "/api/chat/messages/", {"chat_id": chat.pk, "content": "yes", "reply_to_id": original.pk}, format="json"
    )
    assert response.status_code == 201
    assert response.json()["reply_to"]["content"] == "lunch?"
    assert response.json()["reply_to"]["sender"]["id"] == alice.pk


@pytest.mark.django_db
def test_unauthenticated_is_rejected(api_client):
    assert api_client.get("/api/chat/chats/").status_code == 401


@pytest.mark.django_db
def test_delete_message(alice, bob, client_for):
    chat = directory.get_or_create_chat(alice, bob)
    message = services.send_message(alice, chat_id=chat.pk, content="typo")

    assert client_for(bob).delete(f"/api/chat/messages/{message.pk}/").status_code == 403
    assert client_for(alice).delete(f"/api/chat/messages/{message.pk}/").status_code == 204
    assert client_for(bob).get(f"/api/chat/chats/{chat.pk}/messages/").json() == []


@pytest.mark.django_db
def test_reaction_endpoint(alice, bob, client_for):
    chat = directory.get_or_create_chat(alice, bob)
    message = services.send_message(alice, chat_id=chat.pk, content="party")
    client = client_for(bob)

    added = client.post(f"/api/chat/messages/{message.pk}/reaction/", {"emoji": "🎉"}, format="json").json()
    assert added["action"] == "added"
    assert added["message"]["reactions"] == [{"emoji": "🎉", "count": 1, "users": [bob.pk]}]

    removed = client.post(f"/api/chat/messages/{message.pk}/reaction/", {"emoji": "🎉"}, format="json").json()
    assert removed["action"] == "removed"
    assert removed["message"]["reactions"] == []


@pytest.mark.django_db
def test_group_flow(alice, bob, carol, client_for):
    as_alice = client_for(alice)

    response = as_alice.post("/api/chat/groups/", {"name": "team", "member_ids": [bob.pk]}, format="json")
    assert response.status_code == 201
    group = response.json()
    assert {m["user"]["id"]: m["role"] for m in group["members"]} == {alice.pk: "admin", bob.pk: "member"}

    # bob is not an admin
    response = client_for(bob).post(f"/api/chat/groups/{group['id']}/members/", [carol.pk], format="json")
    assert response.status_code == 403

    response = as_alice.post(
        f"/api/chat/groups/{group['id']}/members/", {"member_ids": [carol.pk]}, format="json"
    )
    assert response.status_code == 200
    assert [m["user"]["id"] for m in response.json()] == [carol.pk]

    response = client_for(carol).post(
        "/api/chat/messages/", {"group_id": group["id"], "content": "hello all"}, format="json"
    )
    assert response.status_code == 201
    assert response.json()["group_id"] == group["id"]

    groups = client_for(bob).get("/api/chat/groups/").json()
    assert groups[0]["unread_count"] == 1

    response = as_alice.put(
        f"/api/chat/groups/{group['id']}/members/{bob.pk}/role/", {"role": "admin"}, format="json"
    )
    assert response.json()["role"] == "admin"

    assert client_for(carol).delete(f"/api/chat/groups/{group['id']}/members/{carol.pk}/").status_code == 204
    assert client_for(carol).get(f"/api/chat/groups/{group['id']}/messages/").status_code == 403


@pytest.mark.django_db
def test_page_limit_is_clamped(alice, bob, client_for, settings):
    settings.CHAT_MAX_PAGE_SIZE = 3
    chat = directory.get_or_create_chat(alice, bob)
    for i in range(5):
        services.send_message(alice, chat_id=chat.pk, content=str(i))

    response = client_for(alice).get(f"/api/chat/chats/{chat.pk}/messages/", {"limit": 500})
    assert [m["content"] for m in response.json()] == ["2", "3", "4"]


@pytest.mark.django_db
def test_ws_token(alice, client_for, settings):
    data = client_for(alice).get("/api/chat/ws-token/").json()
    assert data["ws_token"].startswith(f"{alice.pk}:")
    assert data["expires_in"] == settings.WS_TOKEN_MAX_AGE


def test_database_errors_become_store_failure(settings):
    settings.DEBUG = False
    response = api_exception_handler(DatabaseError("disk I/O error"), {"view": None})

    assert response.status_code == 500
    assert "disk" not in str(response.data["detail"])
