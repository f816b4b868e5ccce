"""
Tests for the lifecycle state machine.

Validates:
- Transition table (terminal states, allowed moves)
- Apply / accept / reject / withdraw guards
- Posting completion, update and deletion rules
- Accept creates exactly one work connection in the same transaction
"""
import uuid

import pytest
from sqlalchemy import func, select

from medmatch.errors import (
    DuplicateResponseError,
    InvalidTransitionError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from medmatch.models.posting import Posting, PostingStatus
from medmatch.models.response import Response, ResponseStatus
from medmatch.models.work_connection import WorkConnection
from medmatch.services import state_machine
from medmatch.services.state_machine import ALLOWED_TRANSITIONS, can_transition
from medmatch.services.transactions import run_in_transaction

from conftest import create_posting


async def transact(session_factory, operation):
    return await run_in_transaction(session_factory, operation, timeout=20)


async def count(session_factory, model, *conditions):
    async with session_factory() as s:
        return (await s.execute(select(func.count()).select_from(model).where(*conditions))).scalar_one()


# =============================================================================
# Transition table
# =============================================================================

def test_pending_can_move_to_every_decision():
    for target in (ResponseStatus.ACCEPTED, ResponseStatus.REJECTED, ResponseStatus.WITHDRAWN):
        assert can_transition(ResponseStatus.PENDING, target)


@pytest.mark.parametrize("terminal", [ResponseStatus.ACCEPTED, ResponseStatus.REJECTED, ResponseStatus.WITHDRAWN])
def test_terminal_states_have_no_exits(terminal):
    assert ALLOWED_TRANSITIONS[terminal] == []
    for target in ResponseStatus:
        assert not can_transition(terminal, target)


# =============================================================================
# Apply
# =============================================================================

@pytest.mark.asyncio
async def test_apply_creates_pending_response(session_factory, near_professional, posting):
    response = await transact(
        session_factory,
        lambda db: state_machine.apply_to_posting(db, near_professional.id, posting.id, "Available weekdays"),
    )

    assert response.status == ResponseStatus.PENDING.value
    assert response.message == "Available weekdays"
    assert await count(session_factory, Response) == 1


@pytest.mark.asyncio
async def test_apply_twice_is_duplicate(session_factory, near_professional, posting):
    await transact(session_factory, lambda db: state_machine.apply_to_posting(db, near_professional.id, posting.id))

    with pytest.raises(DuplicateResponseError):
        await transact(session_factory, lambda db: state_machine.apply_to_posting(db, near_professional.id, posting.id))

    assert await count(session_factory, Response) == 1


@pytest.mark.asyncio
async def test_apply_to_unknown_posting(session_factory, near_professional):
    with pytest.raises(NotFoundError):
        await transact(session_factory, lambda db: state_machine.apply_to_posting(db, near_professional.id, uuid.uuid4()))


@pytest.mark.asyncio
async def test_apply_by_unknown_professional(session_factory, posting):
    with pytest.raises(NotFoundError):
        await transact(session_factory, lambda db: state_machine.apply_to_posting(db, uuid.uuid4(), posting.id))


@pytest.mark.asyncio
async def test_apply_to_completed_posting_is_refused(session_factory, db, organization, near_professional):
    completed = await create_posting(db, organization, status=PostingStatus.COMPLETED)

    with pytest.raises(InvalidTransitionError):
        await transact(session_factory, lambda s: state_machine.apply_to_posting(s, near_professional.id, completed.id))


@pytest.mark.asyncio
async def test_unique_index_catches_duplicate_without_precheck(db, near_professional, posting):
    """The storage constraint alone rejects a second active response"""
    db.add(Response(professional_id=near_professional.id, posting_id=posting.id, status="PENDING"))
    await db.commit()

    db.add(Response(professional_id=near_professional.id, posting_id=posting.id, status="ACCEPTED"))
    with pytest.raises(Exception) as exc_info:
        await db.commit()
    assert "UNIQUE" in str(exc_info.value).upper()
    await db.rollback()


@pytest.mark.asyncio
async def test_apply_race_lost_at_flush_is_duplicate(session_factory, near_professional, posting, monkeypatch):
    """A duplicate that slips past the pre-check is still reported as DuplicateResponseError"""
    await transact(session_factory, lambda db: state_machine.apply_to_posting(db, near_professional.id, posting.id))
    # Pre-check matches nothing, as if the competing row were not yet committed
    monkeypatch.setattr(state_machine, "ACTIVE_RESPONSE_STATUSES", ["NO_SUCH_STATUS"])

    with pytest.raises(DuplicateResponseError) as exc_info:
        await transact(session_factory, lambda db: state_machine.apply_to_posting(db, near_professional.id, posting.id))

    assert exc_info.value.details == {
        "professional_id": str(near_professional.id),
        "posting_id": str(posting.id),
    }
    assert await count(session_factory, Response) == 1


@pytest.mark.asyncio
async def test_unique_index_ignores_inactive_rows(db, near_professional, posting):
    for status in ("REJECTED", "WITHDRAWN", "WITHDRAWN", "PENDING"):
        db.add(Response(professional_id=near_professional.id, posting_id=posting.id, status=status))
        await db.commit()


# =============================================================================
# Accept / reject / withdraw
# =============================================================================

@pytest.mark.asyncio
async def test_accept_creates_one_connection(session_factory, organization, near_professional, posting):
    response = await transact(session_factory, lambda db: state_machine.apply_to_posting(db, near_professional.id, posting.id))

    result = await transact(session_factory, lambda db: state_machine.accept_response(db, response.id, organization.id))

    assert result.response.status == ResponseStatus.ACCEPTED.value
    assert result.response.decided_at is not None
    assert result.connection.response_id == response.id
    assert result.connection.professional_id == near_professional.id
    assert result.connection.organization_id == organization.id
    assert result.connection.posting_id == posting.id
    assert await count(session_factory, WorkConnection) == 1


@pytest.mark.asyncio
async def test_accept_twice_is_invalid(session_factory, organization, near_professional, posting):
    response = await transact(session_factory, lambda db: state_machine.apply_to_posting(db, near_professional.id, posting.id))
    await transact(session_factory, lambda db: state_machine.accept_response(db, response.id, organization.id))

    with pytest.raises(InvalidTransitionError):
        await transact(session_factory, lambda db: state_machine.accept_response(db, response.id, organization.id))
    assert await count(session_factory, WorkConnection) == 1


@pytest.mark.asyncio
async def test_accept_by_other_organization_is_unauthorized(
    session_factory, other_organization, near_professional, posting
):
    response = await transact(session_factory, lambda db: state_machine.apply_to_posting(db, near_professional.id, posting.id))

    with pytest.raises(UnauthorizedError):
        await transact(session_factory, lambda db: state_machine.accept_response(db, response.id, other_organization.id))

    async with session_factory() as s:
        assert (await s.get(Response, response.id)).status == ResponseStatus.PENDING.value


@pytest.mark.asyncio
async def test_accept_on_completed_posting_is_refused(session_factory, organization, near_professional, posting):
    response = await transact(session_factory, lambda db: state_machine.apply_to_posting(db, near_professional.id, posting.id))
    await transact(session_factory, lambda db: state_machine.complete_posting(db, posting.id, organization.id))

    with pytest.raises(InvalidTransitionError):
        await transact(session_factory, lambda db: state_machine.accept_response(db, response.id, organization.id))
    assert await count(session_factory, WorkConnection) == 0


@pytest.mark.asyncio
async def test_accept_unknown_response(session_factory, organization):
    with pytest.raises(NotFoundError):
        await transact(session_factory, lambda db: state_machine.accept_response(db, uuid.uuid4(), organization.id))


@pytest.mark.asyncio
async def test_reject_then_accept_is_invalid(session_factory, organization, near_professional, posting):
    response = await transact(session_factory, lambda db: state_machine.apply_to_posting(db, near_professional.id, posting.id))
    rejected = await transact(session_factory, lambda db: state_machine.reject_response(db, response.id, organization.id))
    assert rejected.status == ResponseStatus.REJECTED.value

    with pytest.raises(InvalidTransitionError):
        await transact(session_factory, lambda db: state_machine.accept_response(db, response.id, organization.id))


@pytest.mark.asyncio
async def test_withdraw_then_reapply(session_factory, near_professional, posting):
    response = await transact(session_factory, lambda db: state_machine.apply_to_posting(db, near_professional.id, posting.id))
    withdrawn = await transact(session_factory, lambda db: state_machine.withdraw_response(db, response.id, near_professional.id))
    assert withdrawn.status == ResponseStatus.WITHDRAWN.value

    again = await transact(session_factory, lambda db: state_machine.apply_to_posting(db, near_professional.id, posting.id))
    assert again.id != response.id
    assert again.status == ResponseStatus.PENDING.value


@pytest.mark.asyncio
async def test_withdraw_accepted_is_refused(session_factory, organization, near_professional, posting):
    response = await transact(session_factory, lambda db: state_machine.apply_to_posting(db, near_professional.id, posting.id))
    await transact(session_factory, lambda db: state_machine.accept_response(db, response.id, organization.id))

    with pytest.raises(InvalidTransitionError):
        await transact(session_factory, lambda db: state_machine.withdraw_response(db, response.id, near_professional.id))


@pytest.mark.asyncio
async def test_withdraw_by_other_professional_is_unauthorized(
    session_factory, near_professional, far_professional, posting
):
    response = await transact(session_factory, lambda db: state_machine.apply_to_posting(db, near_professional.id, posting.id))

    with pytest.raises(UnauthorizedError):
        await transact(session_factory, lambda db: state_machine.withdraw_response(db, response.id, far_professional.id))


# =============================================================================
# Postings
# =============================================================================

@pytest.mark.asyncio
async def test_create_posting_defaults_location(session_factory, organization):
    posting = await transact(
        session_factory,
        lambda db: state_machine.create_posting(db, organization.id, {"title": "Locum GP", "posting_type": "onetime"}),
    )
    assert posting.status == PostingStatus.POSTED.value
    assert posting.posting_type == "ONETIME"
    assert posting.location == organization.address
    assert posting.specialization is None


@pytest.mark.asyncio
async def test_create_posting_validates_fields(session_factory, organization):
    with pytest.raises(ValidationError):
        await transact(
            session_factory,
            lambda db: state_machine.create_posting(db, organization.id, {"title": "X", "posting_type": "GIG"}),
        )
    with pytest.raises(ValidationError):
        await transact(
            session_factory,
            lambda db: state_machine.create_posting(db, organization.id, {"title": "  ", "posting_type": "FULLTIME"}),
        )


@pytest.mark.asyncio
async def test_create_posting_for_unknown_organization(session_factory):
    with pytest.raises(NotFoundError):
        await transact(
            session_factory,
            lambda db: state_machine.create_posting(db, uuid.uuid4(), {"title": "X", "posting_type": "FULLTIME"}),
        )


@pytest.mark.asyncio
async def test_complete_posting_once(session_factory, organization, posting):
    completed = await transact(session_factory, lambda db: state_machine.complete_posting(db, posting.id, organization.id))
    assert completed.status == PostingStatus.COMPLETED.value
    assert completed.completed_at is not None

    with pytest.raises(InvalidTransitionError):
        await transact(session_factory, lambda db: state_machine.complete_posting(db, posting.id, organization.id))


@pytest.mark.asyncio
async def test_complete_posting_by_other_organization(session_factory, other_organization, posting):
    with pytest.raises(UnauthorizedError):
        await transact(session_factory, lambda db: state_machine.complete_posting(db, posting.id, other_organization.id))


@pytest.mark.asyncio
async def test_update_posting_only_while_posted(session_factory, organization, posting):
    updated = await transact(
        session_factory,
        lambda db: state_machine.update_posting(
            db, posting.id, organization.id, {"title": "Senior Cardiologist", "specialization": None}
        ),
    )
    assert updated.title == "Senior Cardiologist"
    assert updated.specialization is None

    await transact(session_factory, lambda db: state_machine.complete_posting(db, posting.id, organization.id))
    with pytest.raises(InvalidTransitionError):
        await transact(
            session_factory,
            lambda db: state_machine.update_posting(db, posting.id, organization.id, {"title": "Too late"}),
        )


@pytest.mark.asyncio
async def test_delete_posting_removes_responses(session_factory, organization, near_professional, posting):
    await transact(session_factory, lambda db: state_machine.apply_to_posting(db, near_professional.id, posting.id))

    await transact(session_factory, lambda db: state_machine.delete_posting(db, posting.id, organization.id))

    assert await count(session_factory, Posting) == 0
    assert await count(session_factory, Response) == 0


@pytest.mark.asyncio
async def test_delete_posting_with_accepted_response_is_refused(
    session_factory, organization, near_professional, posting
):
    response = await transact(session_factory, lambda db: state_machine.apply_to_posting(db, near_professional.id, posting.id))
    await transact(session_factory, lambda db: state_machine.accept_response(db, response.id, organization.id))

    with pytest.raises(InvalidTransitionError):
        await transact(session_factory, lambda db: state_machine.delete_posting(db, posting.id, organization.id))
    assert await count(session_factory, Posting) == 1
