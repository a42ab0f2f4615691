import pytest
from sqlalchemy import select

from atelier.domain.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from atelier.domain.events import service as events_service
from atelier.domain.events.schemas import EventKind
from atelier.domain.proposals import service as proposals_service
from atelier.domain.proposals.db_models import Proposal
from atelier.domain.proposals.schemas import ProposalRevision, ProposalStatus
from atelier.domain.requests import service as requests_service
from atelier.domain.requests.schemas import RequestStatus
from atelier.infra.db import flush_or_conflict
from tests.conftest import request_fields


async def _open_request(session, customer_id: str = "customer-1"):
    request = await requests_service.create_request(
        session, customer_id=customer_id, customer_name="Casey Customer", fields=request_fields()
    )
    await session.commit()
    return request


async def _bid(session, request_id: str, designer_id: str, price_cents: int):
    proposal = await proposals_service.submit_proposal(
        session,
        request_id,
        designer_id=designer_id,
        designer_name=designer_id.title(),
        price_cents=price_cents,
        estimated_time="4 weeks",
        message="Happy to help",
    )
    await session.commit()
    return proposal


@pytest.mark.anyio
async def test_accepting_one_bid_rejects_the_rest_and_assigns(async_session_maker):
    async with async_session_maker() as session:
        request = await _open_request(session)
        first = await _bid(session, request.request_id, "designer-1", 100)
        second = await _bid(session, request.request_id, "designer-2", 120)

        accepted = await proposals_service.accept_proposal(
            session, request.request_id, first.proposal_id, customer_id="customer-1"
        )
        await session.commit()
        assert accepted.status == ProposalStatus.ACCEPTED.value

    async with async_session_maker() as session:
        stored_request = await requests_service.get_request(session, request.request_id)
        proposals = {
            proposal.proposal_id: proposal
            for proposal in await proposals_service.list_proposals(session, request_id=request.request_id)
        }
        events = await events_service.list_events(session, request.request_id, kind=EventKind.PROPOSAL_ACCEPTED)

    assert stored_request.status == RequestStatus.ASSIGNED.value
    assert stored_request.accepted_proposal_id == first.proposal_id
    assert stored_request.accepted_price_cents == 100
    assert stored_request.designer_id == "designer-1"
    assert stored_request.designer_name == "Designer-1"
    assert proposals[first.proposal_id].status == ProposalStatus.ACCEPTED.value
    assert proposals[second.proposal_id].status == ProposalStatus.REJECTED.value
    assert proposals[second.proposal_id].decided_at is not None
    assert len(events) == 1
    assert events[0].payload_json["rejected_proposal_ids"] == [second.proposal_id]


@pytest.mark.anyio
async def test_second_bid_by_same_designer_conflicts(async_session_maker):
    async with async_session_maker() as session:
        request = await _open_request(session)
        await _bid(session, request.request_id, "designer-1", 100)
        with pytest.raises(ConflictError):
            await proposals_service.submit_proposal(
                session,
                request.request_id,
                designer_id="designer-1",
                designer_name=None,
                price_cents=90,
                estimated_time="2 weeks",
            )


@pytest.mark.anyio
async def test_submit_validates_terms(async_session_maker):
    async with async_session_maker() as session:
        request = await _open_request(session)
        with pytest.raises(ValidationError) as exc_info:
            await proposals_service.submit_proposal(
                session,
                request.request_id,
                designer_id="designer-1",
                designer_name=None,
                price_cents=0,
                estimated_time=" ",
            )
    assert {error["field"] for error in exc_info.value.errors} == {"price_cents", "estimated_time"}


@pytest.mark.anyio
async def test_submit_on_unknown_request(async_session_maker):
    async with async_session_maker() as session:
        with pytest.raises(NotFoundError):
            await proposals_service.submit_proposal(
                session,
                "missing",
                designer_id="designer-1",
                designer_name=None,
                price_cents=100,
                estimated_time="1 week",
            )


@pytest.mark.anyio
async def test_accept_on_assigned_request_conflicts_without_changes(async_session_maker):
    async with async_session_maker() as session:
        request = await _open_request(session)
        first = await _bid(session, request.request_id, "designer-1", 100)
        second = await _bid(session, request.request_id, "designer-2", 120)
        await proposals_service.accept_proposal(
            session, request.request_id, first.proposal_id, customer_id="customer-1"
        )
        await session.commit()

        with pytest.raises(ConflictError):
            await proposals_service.accept_proposal(
                session, request.request_id, second.proposal_id, customer_id="customer-1"
            )

    async with async_session_maker() as session:
        stored_request = await requests_service.get_request(session, request.request_id)
        accepted = (
            await session.execute(
                select(Proposal).where(
                    Proposal.request_id == request.request_id,
                    Proposal.status == ProposalStatus.ACCEPTED.value,
                )
            )
        ).scalars().all()

    assert stored_request.designer_id == "designer-1"
    assert [proposal.proposal_id for proposal in accepted] == [first.proposal_id]


@pytest.mark.anyio
async def test_accept_requires_request_owner(async_session_maker):
    async with async_session_maker() as session:
        request = await _open_request(session)
        proposal = await _bid(session, request.request_id, "designer-1", 100)
        with pytest.raises(AuthorizationError):
            await proposals_service.accept_proposal(
                session, request.request_id, proposal.proposal_id, customer_id="customer-2"
            )


@pytest.mark.anyio
async def test_accept_proposal_of_another_request_is_not_found(async_session_maker):
    async with async_session_maker() as session:
        request = await _open_request(session)
        other = await _open_request(session)
        proposal = await _bid(session, other.request_id, "designer-1", 100)
        with pytest.raises(NotFoundError):
            await proposals_service.accept_proposal(
                session, request.request_id, proposal.proposal_id, customer_id="customer-1"
            )


@pytest.mark.anyio
async def test_reject_keeps_request_open_and_is_idempotent(async_session_maker):
    async with async_session_maker() as session:
        request = await _open_request(session)
        proposal = await _bid(session, request.request_id, "designer-1", 100)

        rejected = await proposals_service.reject_proposal(
            session, request.request_id, proposal.proposal_id, customer_id="customer-1"
        )
        await session.commit()
        again = await proposals_service.reject_proposal(
            session, request.request_id, proposal.proposal_id, customer_id="customer-1"
        )
        await session.commit()
        stored_request = await requests_service.get_request(session, request.request_id)

    assert rejected.status == ProposalStatus.REJECTED.value
    assert again.decided_at == rejected.decided_at
    assert stored_request.status == RequestStatus.OPEN.value


@pytest.mark.anyio
async def test_reject_accepted_proposal_conflicts(async_session_maker):
    async with async_session_maker() as session:
        request = await _open_request(session)
        proposal = await _bid(session, request.request_id, "designer-1", 100)
        await proposals_service.accept_proposal(
            session, request.request_id, proposal.proposal_id, customer_id="customer-1"
        )
        await session.commit()
        with pytest.raises(ConflictError):
            await proposals_service.reject_proposal(
                session, request.request_id, proposal.proposal_id, customer_id="customer-1"
            )


@pytest.mark.anyio
async def test_rejected_designer_can_bid_again_on_same_row(async_session_maker):
    async with async_session_maker() as session:
        request = await _open_request(session)
        proposal = await _bid(session, request.request_id, "designer-1", 100)
        await proposals_service.reject_proposal(
            session, request.request_id, proposal.proposal_id, customer_id="customer-1"
        )
        await session.commit()

        revived = await _bid(session, request.request_id, "designer-1", 80)
        rows = await proposals_service.list_proposals(session, request_id=request.request_id)

    assert revived.proposal_id == proposal.proposal_id
    assert revived.status == ProposalStatus.PENDING.value
    assert revived.price_cents == 80
    assert revived.decided_at is None
    assert len(rows) == 1


@pytest.mark.anyio
async def test_revise_and_withdraw_pending_proposal(async_session_maker):
    async with async_session_maker() as session:
        request = await _open_request(session)
        proposal = await _bid(session, request.request_id, "designer-1", 100)

        with pytest.raises(AuthorizationError):
            await proposals_service.revise_proposal(
                session, proposal.proposal_id, designer_id="designer-2", changes=ProposalRevision(price_cents=1)
            )

        revised = await proposals_service.revise_proposal(
            session,
            proposal.proposal_id,
            designer_id="designer-1",
            changes=ProposalRevision(price_cents=95, message="Updated quote"),
        )
        await session.commit()
        assert revised.price_cents == 95
        assert revised.estimated_time == "4 weeks"
        assert revised.message == "Updated quote"

        request_id = await proposals_service.withdraw_proposal(
            session, proposal.proposal_id, designer_id="designer-1"
        )
        await session.commit()
        remaining = await proposals_service.list_proposals(session, request_id=request.request_id)

    assert request_id == request.request_id
    assert remaining == []


@pytest.mark.anyio
async def test_list_proposals_by_designer_and_status(async_session_maker):
    async with async_session_maker() as session:
        first_request = await _open_request(session)
        second_request = await _open_request(session)
        await _bid(session, first_request.request_id, "designer-1", 100)
        rejected = await _bid(session, second_request.request_id, "designer-1", 150)
        await _bid(session, second_request.request_id, "designer-2", 160)
        await proposals_service.reject_proposal(
            session, second_request.request_id, rejected.proposal_id, customer_id="customer-1"
        )
        await session.commit()

        mine = await proposals_service.list_proposals(session, designer_id="designer-1")
        mine_pending = await proposals_service.list_proposals(
            session, designer_id="designer-1", status=ProposalStatus.PENDING
        )

    assert len(mine) == 2
    assert [proposal.request_id for proposal in mine_pending] == [first_request.request_id]


@pytest.mark.anyio
async def test_submit_after_concurrent_acceptance_conflicts(async_session_maker):
    async with async_session_maker() as session:
        request = await _open_request(session)
        first = await _bid(session, request.request_id, "designer-1", 100)

    async with async_session_maker() as late:
        loaded = await requests_service.get_request(late, request.request_id)
        assert loaded.status == RequestStatus.OPEN.value
        async with async_session_maker() as winner:
            await proposals_service.accept_proposal(
                winner, request.request_id, first.proposal_id, customer_id="customer-1"
            )
            await winner.commit()

        with pytest.raises(ConflictError):
            await proposals_service.submit_proposal(
                late,
                request.request_id,
                designer_id="designer-2",
                designer_name=None,
                price_cents=90,
                estimated_time="2 weeks",
            )
        await late.rollback()

    async with async_session_maker() as session:
        pending = await proposals_service.list_proposals(
            session, request_id=request.request_id, status=ProposalStatus.PENDING
        )

    assert pending == []


@pytest.mark.anyio
async def test_withdraw_after_concurrent_acceptance_keeps_accepted_row(async_session_maker):
    async with async_session_maker() as session:
        request = await _open_request(session)
        first = await _bid(session, request.request_id, "designer-1", 100)

    async with async_session_maker() as late:
        loaded = await proposals_service.get_proposal(late, first.proposal_id)
        assert loaded.status == ProposalStatus.PENDING.value
        async with async_session_maker() as winner:
            await proposals_service.accept_proposal(
                winner, request.request_id, first.proposal_id, customer_id="customer-1"
            )
            await winner.commit()

        with pytest.raises(ConflictError):
            await proposals_service.withdraw_proposal(late, first.proposal_id, designer_id="designer-1")
        await late.rollback()

    async with async_session_maker() as session:
        stored_request = await requests_service.get_request(session, request.request_id)
        stored = await proposals_service.get_proposal(session, first.proposal_id)

    assert stored_request.accepted_proposal_id == first.proposal_id
    assert stored.status == ProposalStatus.ACCEPTED.value


@pytest.mark.anyio
async def test_stale_request_version_loses_assignment(async_session_maker):
    async with async_session_maker() as session:
        request = await _open_request(session)
        first = await _bid(session, request.request_id, "designer-1", 100)
        second = await _bid(session, request.request_id, "designer-2", 120)

    async with async_session_maker() as stale:
        stale_request = await requests_service.get_request(stale, request.request_id)
        stale_second = await proposals_service.get_proposal(stale, second.proposal_id)
        async with async_session_maker() as winner:
            await proposals_service.accept_proposal(
                winner, request.request_id, first.proposal_id, customer_id="customer-1"
            )
            await winner.commit()

        stale_second.status = ProposalStatus.ACCEPTED.value
        with pytest.raises(ConflictError):
            await requests_service.transition_to_assigned(stale, stale_request, stale_second)
        await stale.rollback()

    async with async_session_maker() as session:
        stored_request = await requests_service.get_request(session, request.request_id)
        proposals = {
            proposal.proposal_id: proposal.status
            for proposal in await proposals_service.list_proposals(session, request_id=request.request_id)
        }

    assert stored_request.accepted_proposal_id == first.proposal_id
    assert stored_request.designer_id == "designer-1"
    assert proposals == {
        first.proposal_id: ProposalStatus.ACCEPTED.value,
        second.proposal_id: ProposalStatus.REJECTED.value,
    }


@pytest.mark.anyio
async def test_duplicate_proposal_row_is_a_conflict(async_session_maker):
    async with async_session_maker() as session:
        request = await _open_request(session)
        request_id = request.request_id
        await _bid(session, request.request_id, "designer-1", 100)

        session.add(
            Proposal(
                request_id=request.request_id,
                designer_id="designer-1",
                price_cents=150,
                estimated_time="1 week",
                status=ProposalStatus.PENDING.value,
            )
        )
        with pytest.raises(ConflictError):
            await flush_or_conflict(session, detail="Designer already has a proposal on this request")
        await session.rollback()
        stored = await proposals_service.list_proposals(session, request_id=request_id)

    assert [(proposal.designer_id, proposal.price_cents) for proposal in stored] == [("designer-1", 100)]
