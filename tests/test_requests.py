import pytest

from atelier.domain.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from atelier.domain.requests import service as requests_service
from atelier.domain.requests.schemas import RequestFilters, RequestStatus, RequestUpdate
from tests.conftest import create_assigned_request, request_fields


@pytest.mark.anyio
async def test_create_request_starts_open_with_ordered_images(async_session_maker):
    async with async_session_maker() as session:
        request = await requests_service.create_request(
            session,
            customer_id="customer-1",
            customer_name="Casey Customer",
            fields=request_fields(
                images=["https://cdn.example.com/a.jpg", "https://cdn.example.com/b.jpg"]
            ),
        )
        await session.commit()

    async with async_session_maker() as session:
        stored = await requests_service.get_request(session, request.request_id)
        assert stored.status == RequestStatus.OPEN.value
        assert stored.image_urls == ["https://cdn.example.com/a.jpg", "https://cdn.example.com/b.jpg"]
        assert stored.accepted_proposal_id is None
        assert stored.designer_id is None
        assert stored.accepted_price_cents is None


@pytest.mark.anyio
async def test_create_request_reports_every_missing_field(async_session_maker):
    async with async_session_maker() as session:
        with pytest.raises(ValidationError) as exc_info:
            await requests_service.create_request(
                session,
                customer_id="customer-1",
                customer_name=None,
                fields=request_fields(title="  ", material=None, budget_cents=0),
            )

    fields = {error["field"] for error in exc_info.value.errors}
    assert fields == {"title", "material", "budget_cents"}


@pytest.mark.anyio
async def test_create_request_rejects_blank_image_url(async_session_maker):
    async with async_session_maker() as session:
        with pytest.raises(ValidationError):
            await requests_service.create_request(
                session,
                customer_id="customer-1",
                customer_name=None,
                fields=request_fields(images=["https://cdn.example.com/a.jpg", " "]),
            )


@pytest.mark.anyio
async def test_get_request_unknown_id(async_session_maker):
    async with async_session_maker() as session:
        with pytest.raises(NotFoundError):
            await requests_service.get_request(session, "missing")


@pytest.mark.anyio
async def test_iter_requests_filters_and_restarts(async_session_maker):
    async with async_session_maker() as session:
        first = await requests_service.create_request(
            session, customer_id="customer-1", customer_name=None, fields=request_fields(title="First")
        )
        second = await requests_service.create_request(
            session, customer_id="customer-1", customer_name=None, fields=request_fields(title="Second")
        )
        await requests_service.create_request(
            session, customer_id="customer-2", customer_name=None, fields=request_fields(title="Other")
        )
        await session.commit()

        filters = RequestFilters(customer_id="customer-1", status=RequestStatus.OPEN)
        first_pass = [request.request_id async for request in requests_service.iter_requests(session, filters)]
        second_pass = [request.request_id async for request in requests_service.iter_requests(session, filters)]

    assert first_pass == [second.request_id, first.request_id]
    assert second_pass == first_pass


@pytest.mark.anyio
async def test_list_requests_by_designer_and_status(async_session_maker):
    async with async_session_maker() as session:
        assigned, _ = await create_assigned_request(session)
        await requests_service.create_request(
            session, customer_id="customer-1", customer_name=None, fields=request_fields()
        )
        await session.commit()

        by_designer = await requests_service.list_requests(session, RequestFilters(designer_id="designer-1"))
        open_only = await requests_service.list_requests(session, RequestFilters(status=RequestStatus.OPEN))

    assert [request.request_id for request in by_designer] == [assigned.request_id]
    assert all(request.status == "open" for request in open_only)
    assert len(open_only) == 1


@pytest.mark.anyio
async def test_transition_to_completed_requires_assigned(async_session_maker):
    async with async_session_maker() as session:
        request = await requests_service.create_request(
            session, customer_id="customer-1", customer_name=None, fields=request_fields()
        )
        with pytest.raises(ConflictError):
            await requests_service.transition_to_completed(session, request)
        assert request.status == RequestStatus.OPEN.value


@pytest.mark.anyio
async def test_update_request_details_owner_only_while_open(async_session_maker):
    async with async_session_maker() as session:
        request = await requests_service.create_request(
            session, customer_id="customer-1", customer_name=None, fields=request_fields()
        )
        await session.commit()

        with pytest.raises(AuthorizationError):
            await requests_service.update_request_details(
                session, request.request_id, customer_id="customer-2", changes=RequestUpdate(title="Nope")
            )

        updated = await requests_service.update_request_details(
            session,
            request.request_id,
            customer_id="customer-1",
            changes=RequestUpdate(title="Silk evening gown", budget_cents=120000),
        )
        await session.commit()
        assert updated.title == "Silk evening gown"
        assert updated.budget_cents == 120000
        assert updated.material == "Linen"


@pytest.mark.anyio
async def test_update_request_details_locked_after_assignment(async_session_maker):
    async with async_session_maker() as session:
        request, _ = await create_assigned_request(session)
        with pytest.raises(ConflictError):
            await requests_service.update_request_details(
                session, request.request_id, customer_id="customer-1", changes=RequestUpdate(title="Late edit")
            )


@pytest.mark.anyio
async def test_attach_image_appends_in_order(async_session_maker):
    async with async_session_maker() as session:
        request = await requests_service.create_request(
            session, customer_id="customer-1", customer_name=None, fields=request_fields()
        )
        await requests_service.attach_image(
            session, request.request_id, customer_id="customer-1", url="https://cdn.example.com/new.jpg"
        )
        await session.commit()
        assert request.image_urls[-1] == "https://cdn.example.com/new.jpg"

        with pytest.raises(AuthorizationError):
            await requests_service.attach_image(
                session, request.request_id, customer_id="designer-1", url="https://cdn.example.com/x.jpg"
            )
