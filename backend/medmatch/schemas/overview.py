"""Dashboard overview schemas."""
from pydantic import BaseModel


class OrganizationOverview(BaseModel):
    total_postings: int
    open_postings: int
    completed_postings: int
    responses: dict[str, int]
    total_connections: int
    connected_professionals: int


class ProfessionalOverview(BaseModel):
    responses: dict[str, int]
    total_connections: int
    connected_organizations: int
    open_postings: int
