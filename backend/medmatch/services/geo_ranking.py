"""
Geo-filter and ranking service.
Filters and orders an already-fetched candidate set (postings, professionals
or organizations) by distance, attributes and freshness.

Everything here is pure in-memory computation: no I/O, no mutation of the
inputs, safe to call concurrently from any number of requests.
"""
import logging
import math
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Iterable, List, Optional

from medmatch.errors import ValidationError
from medmatch.models.posting import PostingType
from medmatch.models.professional import Specialization
from medmatch.services.distance import GeoPoint, distance_between

logger = logging.getLogger(__name__)

# Filter value meaning "do not filter on this attribute"
ALL_SENTINEL = "all"


class SortKey(str, Enum):
    NEWEST = "newest"
    OLDEST = "oldest"
    DISTANCE_ASC = "distance_asc"
    EXPERIENCE_ASC = "experience_asc"
    EXPERIENCE_DESC = "experience_desc"
    NAME_ASC = "name_asc"
    NAME_DESC = "name_desc"
    APPLICATIONS_ASC = "applications_asc"
    APPLICATIONS_DESC = "applications_desc"
    TYPE_ASC = "type_asc"


# Sort values used by the existing web and mobile clients
SORT_ALIASES = {
    "date_desc": SortKey.NEWEST,
    "date_asc": SortKey.OLDEST,
    "jobs_desc": SortKey.APPLICATIONS_DESC,
    "acceptances_desc": SortKey.APPLICATIONS_DESC,
}


def parse_sort_key(value: Optional[str]) -> SortKey:
    """
    Resolve a client-supplied sort value.
    Unknown or empty values fall back to newest-first instead of failing.
    """
    if isinstance(value, SortKey):
        return value
    if not value:
        return SortKey.NEWEST
    normalized = value.strip().lower()
    if normalized in SORT_ALIASES:
        return SORT_ALIASES[normalized]
    try:
        return SortKey(normalized)
    except ValueError:
        logger.warning(f"Unknown sort key {value!r}, falling back to {SortKey.NEWEST.value}")
        return SortKey.NEWEST


@dataclass(frozen=True)
class Candidate:
    """Ranking view of a posting, professional or organization."""
    id: str
    created_at: datetime
    point: Optional[GeoPoint] = None
    name: str = ""
    search_fields: tuple = ()
    specialization: Optional[str] = None
    experience_years: Optional[int] = None
    posting_type: Optional[str] = None
    # Applications for postings, connections for professionals, open postings for organizations
    activity_count: int = 0
    # Professionals holding an active response to this candidate (postings only)
    responded_by: frozenset = frozenset()


@dataclass
class DiscoveryQuery:
    """Filter and sort criteria. Raw values; validated by ``normalize_query``."""
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    radius_km: Optional[float] = None
    specializations: Optional[Iterable[str]] = None
    min_experience: Optional[int] = None
    max_experience: Optional[int] = None
    search: Optional[str] = None
    posting_type: Optional[str] = None
    exclude_responded_by: Optional[str] = None
    sort: Optional[str] = None


@dataclass
class NormalizedQuery:
    origin: Optional[GeoPoint]
    radius_km: Optional[float]
    specializations: Optional[frozenset]
    min_experience: Optional[int]
    max_experience: Optional[int]
    search: Optional[str]
    posting_type: Optional[str]
    exclude_responded_by: Optional[str]
    sort: SortKey


@dataclass(frozen=True)
class RankedCandidate:
    id: str
    distance_km: Optional[float] = None


def _normalize_specializations(values: Optional[Iterable[str]]) -> Optional[frozenset]:
    if values is None:
        return None
    if isinstance(values, str):
        values = values.split(",")
    cleaned = {str(v).strip().upper() for v in values if v is not None and str(v).strip()}
    if not cleaned or ALL_SENTINEL.upper() in cleaned:
        return None
    valid = {s.value for s in Specialization}
    unknown = sorted(cleaned - valid)
    if unknown:
        raise ValidationError(
            f"Unknown specialization(s): {', '.join(unknown)}",
            {"field": "specializations", "value": unknown},
        )
    return frozenset(cleaned)


def _normalize_posting_type(value: Optional[str]) -> Optional[str]:
    if value is None or not str(value).strip():
        return None
    normalized = str(value).strip().upper()
    if normalized == ALL_SENTINEL.upper():
        return None
    if normalized not in {t.value for t in PostingType}:
        raise ValidationError(
            f"Unknown posting type: {value}",
            {"field": "posting_type", "value": value},
        )
    return normalized


def _normalize_radius(radius_km) -> Optional[float]:
    if radius_km is None:
        return None
    try:
        radius = float(radius_km)
    except (TypeError, ValueError):
        logger.warning(f"Ignoring non-numeric radius {radius_km!r}")
        return None
    if not math.isfinite(radius) or radius < 0:
        logger.warning(f"Ignoring invalid radius {radius_km!r}")
        return None
    return radius


def normalize_query(query: DiscoveryQuery) -> NormalizedQuery:
    """
    Validate a raw query.

    Malformed geo parameters degrade to "no geo filter" (logged).
    Malformed attribute filters raise ValidationError.
    """
    origin = GeoPoint.from_coordinates(query.latitude, query.longitude)
    if origin is None and (query.latitude is not None or query.longitude is not None):
        logger.warning(
            f"Ignoring invalid origin ({query.latitude!r}, {query.longitude!r}); "
            f"distance filtering and sorting disabled"
        )

    radius = _normalize_radius(query.radius_km)

    for bound_name in ("min_experience", "max_experience"):
        bound = getattr(query, bound_name)
        if bound is not None and bound < 0:
            raise ValidationError(
                f"{bound_name} must be >= 0",
                {"field": bound_name, "value": bound},
            )
    if (
        query.min_experience is not None
        and query.max_experience is not None
        and query.min_experience > query.max_experience
    ):
        raise ValidationError(
            "min_experience cannot exceed max_experience",
            {"min_experience": query.min_experience, "max_experience": query.max_experience},
        )

    search = query.search.strip().casefold() if query.search and query.search.strip() else None

    return NormalizedQuery(
        origin=origin,
        radius_km=radius,
        specializations=_normalize_specializations(query.specializations),
        min_experience=query.min_experience,
        max_experience=query.max_experience,
        search=search,
        posting_type=_normalize_posting_type(query.posting_type),
        exclude_responded_by=str(query.exclude_responded_by) if query.exclude_responded_by else None,
        sort=parse_sort_key(query.sort),
    )


def matches_attributes(candidate: Candidate, query: NormalizedQuery) -> bool:
    """Apply every non-geo predicate. Returns True if the candidate survives."""
    if query.specializations is not None:
        # A posting open to any specialization matches every specialization filter
        if candidate.specialization is not None and candidate.specialization not in query.specializations:
            return False

    if query.min_experience is not None or query.max_experience is not None:
        if candidate.experience_years is None:
            return False
        if query.min_experience is not None and candidate.experience_years < query.min_experience:
            return False
        if query.max_experience is not None and candidate.experience_years > query.max_experience:
            return False

    if query.posting_type is not None and candidate.posting_type != query.posting_type:
        return False

    if query.exclude_responded_by is not None and query.exclude_responded_by in candidate.responded_by:
        return False

    if query.search is not None:
        haystack = [f.casefold() for f in candidate.search_fields if f]
        if not any(query.search in text for text in haystack):
            return False

    return True


def _sorted_total_order(
    entries: List[tuple],
    sort: SortKey,
) -> List[tuple]:
    """
    Order (candidate, distance) pairs.

    Python's sort is stable, so we sort by the least significant key first:
    id ascending, then created_at descending, then the requested key.
    """
    entries = sorted(entries, key=lambda e: e[0].id)
    entries.sort(key=lambda e: e[0].created_at, reverse=True)

    if sort == SortKey.NEWEST:
        return entries
    if sort == SortKey.OLDEST:
        entries.sort(key=lambda e: e[0].created_at)
    elif sort == SortKey.DISTANCE_ASC:
        # Missing distance sorts last (treated as infinite)
        entries.sort(key=lambda e: (e[1] is None, e[1] if e[1] is not None else 0.0))
    elif sort == SortKey.EXPERIENCE_ASC:
        entries.sort(key=lambda e: (e[0].experience_years is None, e[0].experience_years or 0))
    elif sort == SortKey.EXPERIENCE_DESC:
        entries.sort(key=lambda e: (e[0].experience_years is not None, e[0].experience_years or 0), reverse=True)
    elif sort == SortKey.NAME_ASC:
        entries.sort(key=lambda e: e[0].name.casefold())
    elif sort == SortKey.NAME_DESC:
        entries.sort(key=lambda e: e[0].name.casefold(), reverse=True)
    elif sort == SortKey.APPLICATIONS_ASC:
        entries.sort(key=lambda e: e[0].activity_count)
    elif sort == SortKey.APPLICATIONS_DESC:
        entries.sort(key=lambda e: e[0].activity_count, reverse=True)
    elif sort == SortKey.TYPE_ASC:
        entries.sort(key=lambda e: (e[0].posting_type or "").casefold())
    return entries


def rank_candidates(
    candidates: Iterable[Candidate],
    query: DiscoveryQuery,
) -> List[RankedCandidate]:
    """
    Filter and order candidates.

    Steps:
    1. Validate the query (geo degrades gracefully, attributes may raise)
    2. Apply attribute filters (specialization, experience, type, search, exclusions)
    3. Compute distance from the origin when one is valid
    4. Apply the radius filter (candidates without a point are dropped)
    5. Sort under a total order (requested key, then newest, then id)

    Returns:
        Every surviving candidate, unpaginated, with distance attached when an
        origin was supplied.

    Raises:
        ValidationError: attribute filters are malformed
    """
    normalized = normalize_query(query)
    radius_active = normalized.origin is not None and normalized.radius_km is not None

    entries = []
    for candidate in candidates:
        if not matches_attributes(candidate, normalized):
            continue

        distance = None
        if normalized.origin is not None and candidate.point is not None:
            distance = distance_between(normalized.origin, candidate.point)

        if radius_active and (distance is None or distance > normalized.radius_km):
            continue

        entries.append((candidate, distance))

    ordered = _sorted_total_order(entries, normalized.sort)
    return [RankedCandidate(id=c.id, distance_km=d) for c, d in ordered]
