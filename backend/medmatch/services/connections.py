"""
Connection aggregation.
Turns the flat list of work connections of one party into per-counterparty
groups for the "my doctors" / "my clinics" views.
"""
import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List


class PartyRole(str, enum.Enum):
    """Side of the marketplace the viewer is on."""
    ORGANIZATION = "organization"
    PROFESSIONAL = "professional"


@dataclass
class ConnectionGroup:
    counterparty_id: Any
    counterparty: Any
    connection_count: int
    latest_connected_at: datetime
    postings: List[Any] = field(default_factory=list)


def counterparty_of(record, role: PartyRole):
    """Return (id, object) of the other side of a connection."""
    if role == PartyRole.ORGANIZATION:
        return record.professional_id, record.professional
    return record.organization_id, record.organization


def group_connections(
    records: Iterable[Any],
    role: PartyRole,
    preview_limit: int = 3,
) -> List[ConnectionGroup]:
    """
    Group work connections by counterparty.

    Each group carries the number of connections, the most recent connection
    time and up to ``preview_limit`` postings (newest connection first).
    Groups are ordered by most recent connection, ties by counterparty id.
    """
    role = PartyRole(role)
    buckets: Dict[str, list] = {}
    for record in records:
        counterparty_id, _ = counterparty_of(record, role)
        buckets.setdefault(str(counterparty_id), []).append(record)

    groups = []
    for key, bucket in buckets.items():
        bucket.sort(key=lambda r: (r.connected_at, str(r.id)), reverse=True)
        counterparty_id, counterparty = counterparty_of(bucket[0], role)
        groups.append(
            ConnectionGroup(
                counterparty_id=counterparty_id,
                counterparty=counterparty,
                connection_count=len(bucket),
                latest_connected_at=bucket[0].connected_at,
                postings=[r.posting for r in bucket[:max(0, preview_limit)]],
            )
        )

    groups.sort(key=lambda g: str(g.counterparty_id))
    groups.sort(key=lambda g: g.latest_connected_at, reverse=True)
    return groups


def first_connection_per_counterparty(records: Iterable[Any], role: PartyRole) -> List[Any]:
    """
    Keep the first record seen for each counterparty, in iteration order.

    First-wins: later connections to the same counterparty are dropped even
    if they are more recent. Callers wanting the latest must order records
    newest first.
    """
    role = PartyRole(role)
    seen = set()
    kept = []
    for record in records:
        counterparty_id, _ = counterparty_of(record, role)
        key = str(counterparty_id)
        if key in seen:
            continue
        seen.add(key)
        kept.append(record)
    return kept
