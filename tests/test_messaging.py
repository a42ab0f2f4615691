import pytest
import sqlalchemy as sa

from atelier.domain.errors import AuthorizationError, ValidationError
from atelier.domain.messaging import service as messaging_service
from atelier.domain.messaging.db_models import Message
from atelier.settings import settings
from tests.conftest import create_assigned_request


@pytest.mark.anyio
async def test_unrelated_users_cannot_message(async_session_maker):
    async with async_session_maker() as session:
        await create_assigned_request(session)
        with pytest.raises(AuthorizationError):
            await messaging_service.send_message(
                session, sender_id="customer-1", receiver_id="designer-9", content="Hello?"
            )
        with pytest.raises(AuthorizationError):
            await messaging_service.send_message(
                session, sender_id="customer-1", receiver_id="customer-1", content="Note to self"
            )
        stored = await session.scalar(sa.select(sa.func.count(Message.message_id)))

    assert stored == 0


@pytest.mark.anyio
async def test_hired_pair_exchanges_messages(async_session_maker):
    async with async_session_maker() as session:
        await create_assigned_request(session)
        await messaging_service.send_message(
            session, sender_id="customer-1", receiver_id="designer-1", content="Can we add pockets?"
        )
        await messaging_service.send_message(
            session,
            sender_id="designer-1",
            receiver_id="customer-1",
            content=None,
            image_url="https://cdn.example.com/pocket.jpg",
        )
        await session.commit()

        conversation = await messaging_service.list_conversation(
            session, user_id="designer-1", partner_id="customer-1"
        )

    assert [message.sender_id for message in conversation] == ["customer-1", "designer-1"]
    assert conversation[1].content == ""
    assert conversation[1].image_url == "https://cdn.example.com/pocket.jpg"


@pytest.mark.anyio
async def test_message_content_rules(async_session_maker):
    settings.message_max_length = 10
    async with async_session_maker() as session:
        await create_assigned_request(session)
        with pytest.raises(ValidationError):
            await messaging_service.send_message(
                session, sender_id="customer-1", receiver_id="designer-1", content="   "
            )
        with pytest.raises(ValidationError):
            await messaging_service.send_message(
                session, sender_id="customer-1", receiver_id="designer-1", content="x" * 11
            )


@pytest.mark.anyio
async def test_partners_unread_and_mark_read(async_session_maker):
    async with async_session_maker() as session:
        request, _ = await create_assigned_request(session)
        for text in ("First", "Second"):
            await messaging_service.send_message(
                session, sender_id="designer-1", receiver_id="customer-1", content=text
            )
        await session.commit()

        customer_view = await messaging_service.list_conversation_partners(session, "customer-1")
        designer_view = await messaging_service.list_conversation_partners(session, "designer-1")

        marked = await messaging_service.mark_conversation_read(
            session, reader_id="customer-1", partner_id="designer-1"
        )
        await session.commit()
        marked_again = await messaging_service.mark_conversation_read(
            session, reader_id="customer-1", partner_id="designer-1"
        )
        after = await messaging_service.list_conversation_partners(session, "customer-1")

    assert [(partner.user_id, partner.role) for partner in customer_view] == [("designer-1", "designer")]
    assert customer_view[0].request_ids == [request.request_id]
    assert customer_view[0].unread_count == 2
    assert customer_view[0].last_message.content == "Second"
    assert [(partner.user_id, partner.role) for partner in designer_view] == [("customer-1", "customer")]
    assert designer_view[0].unread_count == 0
    assert marked == 2
    assert marked_again == 0
    assert after[0].unread_count == 0


@pytest.mark.anyio
async def test_conversation_requires_link(async_session_maker):
    async with async_session_maker() as session:
        with pytest.raises(AuthorizationError):
            await messaging_service.list_conversation(session, user_id="customer-1", partner_id="designer-1")
        with pytest.raises(AuthorizationError):
            await messaging_service.mark_conversation_read(
                session, reader_id="customer-1", partner_id="designer-1"
            )


@pytest.mark.anyio
async def test_partner_iteration_pages_and_sees_new_links(async_session_maker, monkeypatch):
    monkeypatch.setattr(messaging_service, "PAGE_SIZE", 1)
    async with async_session_maker() as session:
        for designer_id in ("designer-1", "designer-2", "designer-3"):
            await create_assigned_request(session, designer_id=designer_id)

        partners = messaging_service.iter_conversation_partners(session, "customer-1")
        first = await partners.__anext__()
        await create_assigned_request(session, designer_id="designer-4")
        rest = [partner.user_id async for partner in partners]

    assert first.user_id == "designer-1"
    assert rest == ["designer-2", "designer-3", "designer-4"]
