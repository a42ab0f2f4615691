import anyio

from atelier.api.identity import Role
from tests.conftest import auth_headers, create_assigned_request


def _hire(async_session_maker, **kwargs):
    async def _run():
        async with async_session_maker() as session:
            request, _ = await create_assigned_request(session, **kwargs)
            return request

    return anyio.run(_run)


def test_blocked_without_accepted_proposal(client, customer_headers):
    response = client.post(
        "/v1/messages",
        json={"receiver_id": "designer-1", "content": "Are you free?"},
        headers=customer_headers,
    )

    assert response.status_code == 403
    assert response.json()["kind"] == "forbidden"


def test_conversation_between_hired_pair(client, async_session_maker, customer_headers, designer_headers):
    request = _hire(async_session_maker)

    sent = client.post(
        "/v1/messages",
        json={"receiver_id": "designer-1", "content": "Could the lapels be narrower?"},
        headers=customer_headers,
    )
    assert sent.status_code == 201, sent.text
    assert sent.json()["read"] is False

    reply = client.post(
        "/v1/messages",
        json={"receiver_id": "customer-1", "image_url": "https://cdn.example.com/lapel.jpg"},
        headers=designer_headers,
    )
    assert reply.status_code == 201

    partners = client.get("/v1/messages/partners", headers=designer_headers).json()
    assert [partner["user_id"] for partner in partners] == ["customer-1"]
    assert partners[0]["request_ids"] == [request.request_id]
    assert partners[0]["unread_count"] == 1

    conversation = client.get("/v1/messages/customer-1", headers=designer_headers).json()
    assert [item["sender_id"] for item in conversation["items"]] == ["customer-1", "designer-1"]

    marked = client.post("/v1/messages/customer-1/read", headers=designer_headers)
    assert marked.json() == {"partner_id": "customer-1", "marked_read": 1}


def test_empty_message_is_rejected(client, async_session_maker, customer_headers):
    _hire(async_session_maker)

    response = client.post(
        "/v1/messages", json={"receiver_id": "designer-1", "content": "  "}, headers=customer_headers
    )

    assert response.status_code == 400


def test_stranger_cannot_read_conversation(client, async_session_maker):
    _hire(async_session_maker)

    response = client.get("/v1/messages/customer-1", headers=auth_headers("designer-7", Role.DESIGNER))

    assert response.status_code == 403
