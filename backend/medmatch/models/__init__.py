"""Database models"""
from medmatch.models.professional import Professional, Specialization
from medmatch.models.organization import Organization
from medmatch.models.posting import Posting, PostingStatus, PostingType
from medmatch.models.response import Response, ResponseStatus
from medmatch.models.work_connection import WorkConnection

__all__ = [
    "Professional",
    "Specialization",
    "Organization",
    "Posting",
    "PostingStatus",
    "PostingType",
    "Response",
    "ResponseStatus",
    "WorkConnection",
]
