"""
State machine for postings and responses.
ALL status changes must go through this module.

Every function here expects to run inside a transaction opened by
``run_in_transaction``; none of them commit. Check-then-act races are closed
at the storage layer: a partial unique index for duplicate applications, a
unique ``response_id`` on work connections and compare-and-set UPDATEs for
status changes.
"""
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Optional

from sqlalchemy import select, update, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from medmatch.database_types import utcnow
from medmatch.errors import (
    DuplicateResponseError,
    InvalidTransitionError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from medmatch.models.organization import Organization
from medmatch.models.posting import Posting, PostingStatus, PostingType
from medmatch.models.professional import Professional, Specialization
from medmatch.models.response import ACTIVE_RESPONSE_STATUSES, Response, ResponseStatus
from medmatch.models.work_connection import WorkConnection

# Configure logger
logger = logging.getLogger(__name__)


# Define allowed state transitions
ALLOWED_TRANSITIONS: Dict[ResponseStatus, list[ResponseStatus]] = {
    ResponseStatus.PENDING: [
        ResponseStatus.ACCEPTED,   # Organization
        ResponseStatus.REJECTED,   # Organization
        ResponseStatus.WITHDRAWN,  # Professional
    ],
    ResponseStatus.ACCEPTED: [],   # Terminal state
    ResponseStatus.REJECTED: [],   # Terminal state
    ResponseStatus.WITHDRAWN: [],  # Terminal state
}

POSTING_TRANSITIONS: Dict[PostingStatus, list[PostingStatus]] = {
    PostingStatus.POSTED: [PostingStatus.COMPLETED],
    PostingStatus.COMPLETED: [],  # Never reopened
}

# Fields an organization may set on create/update
EDITABLE_POSTING_FIELDS = (
    "title",
    "posting_type",
    "specialization",
    "description",
    "location",
    "additional_information",
    "scheduled_date",
)
NULLABLE_POSTING_FIELDS = ("specialization", "additional_information", "scheduled_date")


def _clean_posting_fields(fields: Dict[str, Any], partial: bool) -> Dict[str, Any]:
    """Keep editable fields and normalize enum values to their stored strings."""
    values = {k: v for k, v in fields.items() if k in EDITABLE_POSTING_FIELDS}
    # Only nullable columns may be cleared
    values = {k: v for k, v in values.items() if v is not None or (partial and k in NULLABLE_POSTING_FIELDS)}

    if "posting_type" in values or not partial:
        raw = values.get("posting_type")
        try:
            values["posting_type"] = PostingType(str(getattr(raw, "value", raw)).upper()).value
        except ValueError:
            raise ValidationError(f"Unknown posting type: {raw}", {"field": "posting_type", "value": str(raw)})

    if values.get("specialization") is not None:
        raw = values["specialization"]
        try:
            values["specialization"] = Specialization(str(getattr(raw, "value", raw)).upper()).value
        except ValueError:
            raise ValidationError(f"Unknown specialization: {raw}", {"field": "specialization", "value": str(raw)})

    if "title" in values or not partial:
        if not (values.get("title") or "").strip():
            raise ValidationError("title is required", {"field": "title"})

    return values


@dataclass
class AcceptResult:
    response: Response
    connection: WorkConnection


def can_transition(from_state: ResponseStatus, to_state: ResponseStatus) -> bool:
    """Check if a response transition is allowed without touching the database"""
    return to_state in ALLOWED_TRANSITIONS.get(from_state, [])


def _log_transition(entity: str, entity_id: Any, from_state: str, to_state: str, **extra) -> None:
    log_data = {
        "entity": entity,
        "entity_id": str(entity_id),
        "from_state": from_state,
        "to_state": to_state,
    }
    log_data.update({k: str(v) for k, v in extra.items()})
    logger.info(f"{entity} state transition: {from_state} → {to_state}", extra=log_data)


async def _get_posting(db: AsyncSession, posting_id: uuid.UUID, for_update: bool = False) -> Posting:
    query = select(Posting).where(Posting.id == posting_id)
    if for_update:
        # Serializes accept/complete/delete on the same posting (no-op on SQLite)
        query = query.with_for_update()
    result = await db.execute(query)
    posting = result.scalar_one_or_none()
    if not posting:
        raise NotFoundError("Posting", posting_id)
    return posting


async def _get_response(db: AsyncSession, response_id: uuid.UUID) -> Response:
    result = await db.execute(select(Response).where(Response.id == response_id))
    response = result.scalar_one_or_none()
    if not response:
        raise NotFoundError("Response", response_id)
    return response


def _require_owner(posting: Posting, acting_organization_id: uuid.UUID) -> None:
    if posting.organization_id != acting_organization_id:
        raise UnauthorizedError(
            f"Organization {acting_organization_id} does not own posting {posting.id}",
            {"posting_id": str(posting.id), "organization_id": str(acting_organization_id)},
        )


async def _compare_and_set_response(
    db: AsyncSession,
    response: Response,
    from_state: ResponseStatus,
    to_state: ResponseStatus,
) -> None:
    """
    Move a response from ``from_state`` to ``to_state`` atomically.
    The UPDATE only matches while the row is still in ``from_state``, so of
    two concurrent callers exactly one sees rowcount == 1.
    """
    if not can_transition(from_state, to_state):
        raise InvalidTransitionError(
            f"Invalid transition from {from_state.value} to {to_state.value}",
            {"response_id": str(response.id)},
        )

    now = utcnow()
    result = await db.execute(
        update(Response)
        .where(Response.id == response.id, Response.status == from_state.value)
        .values(status=to_state.value, updated_at=now, decided_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise InvalidTransitionError(
            f"Response {response.id} is no longer {from_state.value}",
            {"response_id": str(response.id), "expected_state": from_state.value},
        )
    await db.refresh(response)


def _require_pending(response: Response) -> None:
    current = ResponseStatus(response.status)
    if current != ResponseStatus.PENDING:
        raise InvalidTransitionError(
            f"Response {response.id} is in state {current.value}, expected {ResponseStatus.PENDING.value}",
            {"response_id": str(response.id), "current_state": current.value},
        )


# =============================================================================
# Postings
# =============================================================================

async def create_posting(
    db: AsyncSession,
    organization_id: uuid.UUID,
    fields: Dict[str, Any],
) -> Posting:
    """
    Create a POSTED posting owned by ``organization_id``.
    Location defaults to the organization's address.
    """
    organization = await db.get(Organization, organization_id)
    if not organization:
        raise NotFoundError("Organization", organization_id)

    values = _clean_posting_fields(fields, partial=False)
    if not values.get("location"):
        values["location"] = organization.address

    posting = Posting(
        organization_id=organization.id,
        status=PostingStatus.POSTED.value,
        **values,
    )
    db.add(posting)
    await db.flush()
    await db.refresh(posting)

    logger.info(f"Created posting {posting.id}: {posting.title} for organization {organization.id}")
    return posting


async def update_posting(
    db: AsyncSession,
    posting_id: uuid.UUID,
    acting_organization_id: uuid.UUID,
    fields: Dict[str, Any],
) -> Posting:
    """Edit posting details. Only allowed while the posting is POSTED."""
    posting = await _get_posting(db, posting_id, for_update=True)
    _require_owner(posting, acting_organization_id)

    if posting.status != PostingStatus.POSTED.value:
        raise InvalidTransitionError(
            f"Posting {posting.id} is {posting.status} and can no longer be edited",
            {"posting_id": str(posting.id), "current_state": posting.status},
        )

    for name, value in _clean_posting_fields(fields, partial=True).items():
        setattr(posting, name, value)
    posting.updated_at = utcnow()

    await db.flush()
    await db.refresh(posting)
    return posting


async def complete_posting(
    db: AsyncSession,
    posting_id: uuid.UUID,
    acting_organization_id: uuid.UUID,
) -> Posting:
    """
    Mark a posting COMPLETED (POSTED -> COMPLETED, never back).

    Raises:
        NotFoundError: posting does not exist
        UnauthorizedError: acting organization does not own it
        InvalidTransitionError: posting is already COMPLETED
    """
    posting = await _get_posting(db, posting_id, for_update=True)
    _require_owner(posting, acting_organization_id)

    current = PostingStatus(posting.status)
    if PostingStatus.COMPLETED not in POSTING_TRANSITIONS[current]:
        raise InvalidTransitionError(
            f"Invalid transition from {current.value} to {PostingStatus.COMPLETED.value}",
            {"posting_id": str(posting.id)},
        )

    now = utcnow()
    result = await db.execute(
        update(Posting)
        .where(Posting.id == posting.id, Posting.status == PostingStatus.POSTED.value)
        .values(status=PostingStatus.COMPLETED.value, completed_at=now, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise InvalidTransitionError(
            f"Posting {posting.id} is no longer {PostingStatus.POSTED.value}",
            {"posting_id": str(posting.id)},
        )
    await db.refresh(posting)

    _log_transition("Posting", posting.id, current.value, PostingStatus.COMPLETED.value)
    return posting


async def delete_posting(
    db: AsyncSession,
    posting_id: uuid.UUID,
    acting_organization_id: uuid.UUID,
) -> None:
    """
    Delete a posting and its responses.

    Refused while any response is ACCEPTED: the work connection would be
    orphaned.
    """
    result = await db.execute(
        select(Posting)
        .where(Posting.id == posting_id)
        .options(selectinload(Posting.responses))
        .with_for_update()
    )
    posting = result.scalar_one_or_none()
    if not posting:
        raise NotFoundError("Posting", posting_id)
    _require_owner(posting, acting_organization_id)

    accepted = [r for r in posting.responses if r.status == ResponseStatus.ACCEPTED.value]
    if accepted:
        raise InvalidTransitionError(
            f"Cannot delete posting {posting.id} with {len(accepted)} accepted response(s)",
            {"posting_id": str(posting.id), "accepted_responses": len(accepted)},
        )

    await db.delete(posting)
    try:
        await db.flush()
    except IntegrityError as e:
        # A connection was created concurrently
        raise InvalidTransitionError(
            f"Cannot delete posting {posting_id}: it is referenced by a work connection",
            {"posting_id": str(posting_id)},
        ) from e

    logger.warning(f"Deleted posting {posting_id} and {len(posting.responses)} response(s)")


# =============================================================================
# Responses
# =============================================================================

async def apply_to_posting(
    db: AsyncSession,
    professional_id: uuid.UUID,
    posting_id: uuid.UUID,
    message: Optional[str] = None,
) -> Response:
    """
    Create a PENDING response.

    The existence pre-check gives a clean error in the common case; the
    partial unique index catches the concurrent case at flush time.

    Raises:
        NotFoundError: professional or posting does not exist
        InvalidTransitionError: posting is not POSTED
        DuplicateResponseError: an active response exists for the pair
    """
    professional = await db.get(Professional, professional_id)
    if not professional:
        raise NotFoundError("Professional", professional_id)

    posting = await _get_posting(db, posting_id)
    if posting.status != PostingStatus.POSTED.value:
        raise InvalidTransitionError(
            f"Posting {posting.id} is {posting.status} and no longer accepts responses",
            {"posting_id": str(posting.id), "current_state": posting.status},
        )

    existing = await db.execute(
        select(Response.id).where(
            Response.professional_id == professional.id,
            Response.posting_id == posting.id,
            Response.status.in_(ACTIVE_RESPONSE_STATUSES),
        ).limit(1)
    )
    if existing.scalar_one_or_none() is not None:
        raise DuplicateResponseError(professional.id, posting.id)

    response = Response(
        professional_id=professional.id,
        posting_id=posting.id,
        message=message,
        status=ResponseStatus.PENDING.value,
    )
    db.add(response)
    try:
        await db.flush()
    except IntegrityError as e:
        # A failed flush rolls back and expires loaded rows; use the plain ids
        raise DuplicateResponseError(professional_id, posting_id) from e

    _log_transition(
        "Response", response.id, "NONE", ResponseStatus.PENDING.value,
        professional_id=professional.id, posting_id=posting.id,
    )
    return response


async def accept_response(
    db: AsyncSession,
    response_id: uuid.UUID,
    acting_organization_id: uuid.UUID,
) -> AcceptResult:
    """
    Accept a PENDING response and create its work connection.

    Both writes belong to the caller's transaction, so either both are
    committed or neither is.

    Raises:
        NotFoundError: response does not exist
        UnauthorizedError: acting organization does not own the posting
        InvalidTransitionError: response not PENDING or posting not POSTED
    """
    response = await _get_response(db, response_id)
    posting = await _get_posting(db, response.posting_id, for_update=True)
    _require_owner(posting, acting_organization_id)

    if posting.status != PostingStatus.POSTED.value:
        raise InvalidTransitionError(
            f"Posting {posting.id} is {posting.status}; responses can no longer be accepted",
            {"posting_id": str(posting.id), "current_state": posting.status},
        )
    _require_pending(response)

    await _compare_and_set_response(db, response, ResponseStatus.PENDING, ResponseStatus.ACCEPTED)

    connection = WorkConnection(
        response_id=response.id,
        professional_id=response.professional_id,
        organization_id=posting.organization_id,
        posting_id=posting.id,
    )
    db.add(connection)
    try:
        await db.flush()
    except IntegrityError as e:
        raise InvalidTransitionError(
            f"Response {response_id} already has a work connection",
            {"response_id": str(response_id)},
        ) from e

    _log_transition(
        "Response", response.id, ResponseStatus.PENDING.value, ResponseStatus.ACCEPTED.value,
        connection_id=connection.id, organization_id=posting.organization_id,
    )
    return AcceptResult(response=response, connection=connection)


async def reject_response(
    db: AsyncSession,
    response_id: uuid.UUID,
    acting_organization_id: uuid.UUID,
) -> Response:
    """Reject a PENDING response on behalf of the posting's organization."""
    response = await _get_response(db, response_id)
    posting = await _get_posting(db, response.posting_id)
    _require_owner(posting, acting_organization_id)
    _require_pending(response)

    await _compare_and_set_response(db, response, ResponseStatus.PENDING, ResponseStatus.REJECTED)

    _log_transition("Response", response.id, ResponseStatus.PENDING.value, ResponseStatus.REJECTED.value)
    return response


async def withdraw_response(
    db: AsyncSession,
    response_id: uuid.UUID,
    acting_professional_id: uuid.UUID,
) -> Response:
    """
    Withdraw a PENDING response on behalf of the professional who made it.
    An ACCEPTED engagement cannot be withdrawn unilaterally.
    """
    response = await _get_response(db, response_id)
    if response.professional_id != acting_professional_id:
        raise UnauthorizedError(
            f"Professional {acting_professional_id} does not own response {response.id}",
            {"response_id": str(response.id)},
        )

    if response.status == ResponseStatus.ACCEPTED.value:
        raise InvalidTransitionError(
            f"Cannot withdraw accepted response {response.id}",
            {"response_id": str(response.id), "current_state": response.status},
        )
    _require_pending(response)

    await _compare_and_set_response(db, response, ResponseStatus.PENDING, ResponseStatus.WITHDRAWN)

    _log_transition("Response", response.id, ResponseStatus.PENDING.value, ResponseStatus.WITHDRAWN.value)
    return response


async def count_responses_by_status(db: AsyncSession, *conditions) -> Dict[str, int]:
    """Group response counts by status for dashboard views."""
    result = await db.execute(
        select(Response.status, func.count(Response.id))
        .join(Posting, Posting.id == Response.posting_id)
        .where(*conditions)
        .group_by(Response.status)
    )
    counts = {status.value: 0 for status in ResponseStatus}
    counts.update({status: count for status, count in result.all()})
    return counts
