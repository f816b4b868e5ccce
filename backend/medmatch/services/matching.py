"""
Matching service facade.

Single entry point for discovery (postings for professionals, professionals
and organizations for organizations), lifecycle transitions and connection
views. Reads take a snapshot through a short-lived session; every transition
runs through ``run_in_transaction``.
"""
import logging
import uuid
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Union

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from medmatch import database
from medmatch.config import settings
from medmatch.errors import NotFoundError, UnauthorizedError, ValidationError
from medmatch.models.organization import Organization
from medmatch.models.posting import Posting, PostingStatus
from medmatch.models.professional import Professional
from medmatch.models.response import ACTIVE_RESPONSE_STATUSES, Response, ResponseStatus
from medmatch.models.work_connection import WorkConnection
from medmatch.services import state_machine
from medmatch.services.connections import (
    ConnectionGroup,
    PartyRole,
    first_connection_per_counterparty,
    group_connections,
)
from medmatch.services.distance import GeoPoint
from medmatch.services.geo_ranking import Candidate, DiscoveryQuery, rank_candidates
from medmatch.services.notifications import (
    RESPONSE_ACCEPTED,
    RESPONSE_REJECTED,
    NotificationDispatcher,
)
from medmatch.services.transactions import run_in_transaction

logger = logging.getLogger(__name__)

IdLike = Union[str, uuid.UUID]


@dataclass
class PostingSummary:
    posting: Posting
    distance_km: Optional[float] = None
    application_count: int = 0


@dataclass
class ProfessionalSummary:
    professional: Professional
    distance_km: Optional[float] = None
    connection_count: int = 0


@dataclass
class OrganizationSummary:
    organization: Organization
    distance_km: Optional[float] = None
    active_postings: int = 0
    recent_postings: List[Posting] = field(default_factory=list)


def parse_response_status(value: str) -> str:
    try:
        return ResponseStatus(value.strip().upper()).value
    except ValueError:
        raise ValidationError(
            f"Unknown response status: {value}",
            {"field": "status", "value": value},
        )


def coerce_id(value: IdLike, resource: str) -> uuid.UUID:
    """Parse an identifier; a malformed one cannot exist, so it is NotFound."""
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError, AttributeError):
        raise NotFoundError(resource, value)


class MatchingService:
    """
    Facade over discovery, the lifecycle state machine and connection views.

    Args:
        session_factory: Session factory; defaults to ``database.AsyncSessionLocal``
            looked up at call time
        notifier: Receives accept/reject events; None disables notifications
        timeout: Per-transaction bound in seconds (default from settings)
    """

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        notifier: Optional[NotificationDispatcher] = None,
        timeout: Optional[float] = None,
    ):
        self._session_factory = session_factory
        self.notifier = notifier
        self.timeout = timeout

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        return self._session_factory or database.AsyncSessionLocal

    async def _transact(self, description: str, operation):
        return await run_in_transaction(
            self.session_factory, operation, description=description, timeout=self.timeout
        )

    def _notify(self, event: str, payload: Dict[str, Any]) -> None:
        if self.notifier is None:
            return
        self.notifier.dispatch(event, {k: str(v) for k, v in payload.items()})

    # =========================================================================
    # Discovery
    # =========================================================================

    async def discover_postings(
        self,
        query: DiscoveryQuery,
        exclude_responded_by: Optional[IdLike] = None,
    ) -> List[PostingSummary]:
        """
        Rank POSTED postings for a professional.
        The posting's point is its organization's location.
        """
        if exclude_responded_by is not None:
            try:
                excluded = str(coerce_id(exclude_responded_by, "Professional"))
            except NotFoundError:
                # Malformed id drops the criterion, like malformed geo input
                logger.warning(f"Ignoring malformed professional id {exclude_responded_by!r} in posting discovery")
                excluded = None
            # Never mutate the caller's query
            query = replace(query, exclude_responded_by=excluded)

        async with self.session_factory() as db:
            result = await db.execute(
                select(Posting)
                .where(Posting.status == PostingStatus.POSTED.value)
                .options(selectinload(Posting.organization), selectinload(Posting.responses))
            )
            postings = result.scalars().all()

        by_id = {}
        candidates = []
        for posting in postings:
            key = str(posting.id)
            by_id[key] = posting
            organization = posting.organization
            candidates.append(
                Candidate(
                    id=key,
                    created_at=posting.created_at,
                    point=GeoPoint.from_coordinates(organization.latitude, organization.longitude),
                    name=posting.title,
                    search_fields=(posting.title, posting.description, organization.name),
                    specialization=posting.specialization,
                    posting_type=posting.posting_type,
                    activity_count=len(posting.responses),
                    responded_by=frozenset(
                        str(r.professional_id) for r in posting.responses
                        if r.status in ACTIVE_RESPONSE_STATUSES
                    ),
                )
            )

        ranked = rank_candidates(candidates, query)
        logger.info(f"Posting discovery: {len(ranked)}/{len(candidates)} candidates matched")
        return [
            PostingSummary(
                posting=by_id[r.id],
                distance_km=r.distance_km,
                application_count=len(by_id[r.id].responses),
            )
            for r in ranked
        ]

    async def discover_professionals(self, query: DiscoveryQuery) -> List[ProfessionalSummary]:
        """Rank professionals for an organization looking for candidates."""
        async with self.session_factory() as db:
            professionals = (await db.execute(select(Professional))).scalars().all()
            counts = dict(
                (await db.execute(
                    select(WorkConnection.professional_id, func.count(WorkConnection.id))
                    .group_by(WorkConnection.professional_id)
                )).all()
            )

        by_id = {}
        candidates = []
        for professional in professionals:
            key = str(professional.id)
            by_id[key] = professional
            candidates.append(
                Candidate(
                    id=key,
                    created_at=professional.created_at,
                    point=GeoPoint.from_coordinates(professional.latitude, professional.longitude),
                    name=professional.full_name,
                    search_fields=(
                        professional.full_name,
                        professional.location_label,
                        professional.about,
                        professional.specialization,
                    ),
                    specialization=professional.specialization,
                    experience_years=professional.experience_years,
                    activity_count=counts.get(professional.id, 0),
                )
            )

        ranked = rank_candidates(candidates, query)
        logger.info(f"Professional discovery: {len(ranked)}/{len(candidates)} candidates matched")
        return [
            ProfessionalSummary(
                professional=by_id[r.id],
                distance_km=r.distance_km,
                connection_count=counts.get(by_id[r.id].id, 0),
            )
            for r in ranked
        ]

    async def discover_organizations(self, query: DiscoveryQuery) -> List[OrganizationSummary]:
        """Rank organizations for a professional browsing clinics."""
        async with self.session_factory() as db:
            result = await db.execute(select(Organization).options(selectinload(Organization.postings)))
            organizations = result.scalars().all()

        by_id = {}
        open_postings = {}
        candidates = []
        for organization in organizations:
            key = str(organization.id)
            by_id[key] = organization
            active = [p for p in organization.postings if p.status == PostingStatus.POSTED.value]
            active.sort(key=lambda p: (p.created_at, str(p.id)), reverse=True)
            open_postings[key] = active
            candidates.append(
                Candidate(
                    id=key,
                    created_at=organization.created_at,
                    point=GeoPoint.from_coordinates(organization.latitude, organization.longitude),
                    name=organization.name,
                    search_fields=(organization.name, organization.address),
                    activity_count=len(active),
                )
            )

        ranked = rank_candidates(candidates, query)
        preview = settings.connections_preview_limit
        return [
            OrganizationSummary(
                organization=by_id[r.id],
                distance_km=r.distance_km,
                active_postings=len(open_postings[r.id]),
                recent_postings=open_postings[r.id][:preview],
            )
            for r in ranked
        ]

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def create_posting(self, organization_id: IdLike, fields: Dict[str, Any]) -> Posting:
        organization_id = coerce_id(organization_id, "Organization")
        return await self._transact(
            "create_posting",
            lambda db: state_machine.create_posting(db, organization_id, fields),
        )

    async def update_posting(
        self,
        posting_id: IdLike,
        acting_organization_id: IdLike,
        fields: Dict[str, Any],
    ) -> Posting:
        posting_id = coerce_id(posting_id, "Posting")
        organization_id = coerce_id(acting_organization_id, "Organization")
        return await self._transact(
            "update_posting",
            lambda db: state_machine.update_posting(db, posting_id, organization_id, fields),
        )

    async def delete_posting(self, posting_id: IdLike, acting_organization_id: IdLike) -> None:
        posting_id = coerce_id(posting_id, "Posting")
        organization_id = coerce_id(acting_organization_id, "Organization")
        await self._transact(
            "delete_posting",
            lambda db: state_machine.delete_posting(db, posting_id, organization_id),
        )

    async def complete_posting(self, posting_id: IdLike, acting_organization_id: IdLike) -> Posting:
        posting_id = coerce_id(posting_id, "Posting")
        organization_id = coerce_id(acting_organization_id, "Organization")
        return await self._transact(
            "complete_posting",
            lambda db: state_machine.complete_posting(db, posting_id, organization_id),
        )

    async def apply(
        self,
        professional_id: IdLike,
        posting_id: IdLike,
        message: Optional[str] = None,
    ) -> Response:
        professional_id = coerce_id(professional_id, "Professional")
        posting_id = coerce_id(posting_id, "Posting")
        return await self._transact(
            "apply",
            lambda db: state_machine.apply_to_posting(db, professional_id, posting_id, message),
        )

    async def accept(
        self,
        response_id: IdLike,
        acting_organization_id: IdLike,
    ) -> state_machine.AcceptResult:
        response_id = coerce_id(response_id, "Response")
        organization_id = coerce_id(acting_organization_id, "Organization")
        result = await self._transact(
            "accept",
            lambda db: state_machine.accept_response(db, response_id, organization_id),
        )
        # Only after commit
        self._notify(RESPONSE_ACCEPTED, {
            "response_id": result.response.id,
            "posting_id": result.response.posting_id,
            "professional_id": result.response.professional_id,
            "organization_id": result.connection.organization_id,
            "connection_id": result.connection.id,
        })
        return result

    async def reject(self, response_id: IdLike, acting_organization_id: IdLike) -> Response:
        response_id = coerce_id(response_id, "Response")
        organization_id = coerce_id(acting_organization_id, "Organization")
        response = await self._transact(
            "reject",
            lambda db: state_machine.reject_response(db, response_id, organization_id),
        )
        self._notify(RESPONSE_REJECTED, {
            "response_id": response.id,
            "posting_id": response.posting_id,
            "professional_id": response.professional_id,
            "organization_id": organization_id,
        })
        return response

    async def withdraw(self, response_id: IdLike, acting_professional_id: IdLike) -> Response:
        response_id = coerce_id(response_id, "Response")
        professional_id = coerce_id(acting_professional_id, "Professional")
        return await self._transact(
            "withdraw",
            lambda db: state_machine.withdraw_response(db, response_id, professional_id),
        )

    # =========================================================================
    # Views
    # =========================================================================

    async def list_connections(
        self,
        party_id: IdLike,
        role: Union[PartyRole, str],
        distinct: bool = False,
    ) -> Union[List[ConnectionGroup], List[WorkConnection]]:
        """
        Work connections of one party, newest first.

        Returns ConnectionGroup entries, or with ``distinct=True`` the first
        connection per counterparty.
        """
        role = PartyRole(role)
        if role == PartyRole.ORGANIZATION:
            model, column = Organization, WorkConnection.organization_id
        else:
            model, column = Professional, WorkConnection.professional_id
        party_id = coerce_id(party_id, model.__name__)

        async with self.session_factory() as db:
            if await db.get(model, party_id) is None:
                raise NotFoundError(model.__name__, party_id)
            result = await db.execute(
                select(WorkConnection)
                .where(column == party_id)
                .options(
                    selectinload(WorkConnection.professional),
                    selectinload(WorkConnection.organization),
                    selectinload(WorkConnection.posting),
                )
                .order_by(WorkConnection.connected_at.desc(), WorkConnection.id)
            )
            records = result.scalars().all()

        if distinct:
            return first_connection_per_counterparty(records, role)
        return group_connections(records, role, settings.connections_preview_limit)

    async def list_responses_for_posting(
        self,
        posting_id: IdLike,
        acting_organization_id: IdLike,
        status: Optional[str] = None,
    ) -> List[Response]:
        """Responses to one posting, newest first. Owner only."""
        posting_id = coerce_id(posting_id, "Posting")
        organization_id = coerce_id(acting_organization_id, "Organization")

        async with self.session_factory() as db:
            posting = await db.get(Posting, posting_id)
            if posting is None:
                raise NotFoundError("Posting", posting_id)
            if posting.organization_id != organization_id:
                raise UnauthorizedError(
                    f"Organization {organization_id} does not own posting {posting_id}",
                    {"posting_id": str(posting_id)},
                )
            query = (
                select(Response)
                .where(Response.posting_id == posting_id)
                .options(selectinload(Response.professional))
                .order_by(Response.created_at.desc(), Response.id)
            )
            if status:
                query = query.where(Response.status == parse_response_status(status))
            return list((await db.execute(query)).scalars().all())

    async def list_responses_for_professional(
        self,
        professional_id: IdLike,
        status: Optional[str] = None,
    ) -> List[Response]:
        """A professional's own responses with their postings, newest first."""
        professional_id = coerce_id(professional_id, "Professional")

        async with self.session_factory() as db:
            if await db.get(Professional, professional_id) is None:
                raise NotFoundError("Professional", professional_id)
            query = (
                select(Response)
                .where(Response.professional_id == professional_id)
                .options(selectinload(Response.posting).selectinload(Posting.organization))
                .order_by(Response.created_at.desc(), Response.id)
            )
            if status:
                query = query.where(Response.status == parse_response_status(status))
            return list((await db.execute(query)).scalars().all())

    async def organization_overview(self, organization_id: IdLike) -> Dict[str, Any]:
        """Dashboard counts for an organization."""
        organization_id = coerce_id(organization_id, "Organization")

        async with self.session_factory() as db:
            if await db.get(Organization, organization_id) is None:
                raise NotFoundError("Organization", organization_id)

            posting_counts = dict(
                (await db.execute(
                    select(Posting.status, func.count(Posting.id))
                    .where(Posting.organization_id == organization_id)
                    .group_by(Posting.status)
                )).all()
            )
            responses = await state_machine.count_responses_by_status(
                db, Posting.organization_id == organization_id
            )
            connections = (await db.execute(
                select(func.count(WorkConnection.id)).where(WorkConnection.organization_id == organization_id)
            )).scalar_one()
            professionals = (await db.execute(
                select(func.count(func.distinct(WorkConnection.professional_id)))
                .where(WorkConnection.organization_id == organization_id)
            )).scalar_one()

        return {
            "total_postings": sum(posting_counts.values()),
            "open_postings": posting_counts.get(PostingStatus.POSTED.value, 0),
            "completed_postings": posting_counts.get(PostingStatus.COMPLETED.value, 0),
            "responses": responses,
            "total_connections": connections,
            "connected_professionals": professionals,
        }

    async def professional_overview(self, professional_id: IdLike) -> Dict[str, Any]:
        """Dashboard counts for a professional."""
        professional_id = coerce_id(professional_id, "Professional")

        async with self.session_factory() as db:
            if await db.get(Professional, professional_id) is None:
                raise NotFoundError("Professional", professional_id)

            responses = await state_machine.count_responses_by_status(
                db, Response.professional_id == professional_id
            )
            connections = (await db.execute(
                select(func.count(WorkConnection.id)).where(WorkConnection.professional_id == professional_id)
            )).scalar_one()
            organizations = (await db.execute(
                select(func.count(func.distinct(WorkConnection.organization_id)))
                .where(WorkConnection.professional_id == professional_id)
            )).scalar_one()
            open_postings = (await db.execute(
                select(func.count(Posting.id)).where(Posting.status == PostingStatus.POSTED.value)
            )).scalar_one()

        return {
            "responses": responses,
            "total_connections": connections,
            "connected_organizations": organizations,
            "open_postings": open_postings,
        }
