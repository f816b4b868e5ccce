"""
Acting-party dependencies.

Identity is established upstream (gateway / auth service); requests carry
the acting party in ``X-Organization-Id`` or ``X-Professional-Id``.
"""
import logging
from typing import Optional

from fastapi import Header, HTTPException

from medmatch.errors import UnauthorizedError
from medmatch.services.connections import PartyRole
from medmatch.services.matching import MatchingService
from medmatch.services.notifications import notification_dispatcher

logger = logging.getLogger(__name__)

matching_service = MatchingService(notifier=notification_dispatcher)


def get_matching_service() -> MatchingService:
    """Dependency returning the shared matching service."""
    return matching_service


async def require_organization(x_organization_id: Optional[str] = Header(None)) -> str:
    """
    Acting organization id.

    Raises:
        HTTPException 401: header missing
    """
    if not x_organization_id:
        raise HTTPException(status_code=401, detail="X-Organization-Id header required")
    return x_organization_id


async def require_professional(x_professional_id: Optional[str] = Header(None)) -> str:
    """
    Acting professional id.

    Raises:
        HTTPException 401: header missing
    """
    if not x_professional_id:
        raise HTTPException(status_code=401, detail="X-Professional-Id header required")
    return x_professional_id


async def optional_professional(x_professional_id: Optional[str] = Header(None)) -> Optional[str]:
    return x_professional_id or None


async def require_party(
    role: PartyRole,
    party_id: str,
    x_organization_id: Optional[str] = Header(None),
    x_professional_id: Optional[str] = Header(None),
) -> str:
    """
    The acting party must be the party named in the path.

    Raises:
        HTTPException 401: header for ``role`` missing
        UnauthorizedError: header names a different party
    """
    acting = x_organization_id if role == PartyRole.ORGANIZATION else x_professional_id
    if not acting:
        header = "X-Organization-Id" if role == PartyRole.ORGANIZATION else "X-Professional-Id"
        raise HTTPException(status_code=401, detail=f"{header} header required")
    if acting.strip().lower() != party_id.strip().lower():
        logger.warning(f"{role.value} {acting} tried to read data of {party_id}")
        raise UnauthorizedError(
            f"Cannot access data of another {role.value}",
            {"role": role.value, "party_id": party_id},
        )
    return party_id
