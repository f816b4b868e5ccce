"""
Tests for the HTTP API.
"""
import uuid

import pytest
from httpx import AsyncClient


from conftest import ORG_LAT, ORG_LNG, create_posting


def org_headers(organization):
    return {"X-Organization-Id": str(organization.id)}


def pro_headers(professional):
    return {"X-Professional-Id": str(professional.id)}


# ============================================================
# HEALTH
# ============================================================

@pytest.mark.asyncio
async def test_health(async_client: AsyncClient):
    response = await async_client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


# ============================================================
# POSTINGS
# ============================================================

@pytest.mark.asyncio
async def test_create_posting(async_client: AsyncClient, organization):
    response = await async_client.post(
        "/api/postings/",
        json={"title": "ENT specialist", "posting_type": "PARTTIME", "specialization": "ENT_SPECIALIST"},
        headers=org_headers(organization),
    )

    assert response.status_code == 201
    data = response.json()
    assert data["status"] == "POSTED"
    assert data["organization_id"] == str(organization.id)
    assert data["location"] == organization.address


@pytest.mark.asyncio
async def test_create_posting_requires_organization_header(async_client: AsyncClient):
    response = await async_client.post("/api/postings/", json={"title": "X", "posting_type": "FULLTIME"})

    assert response.status_code == 401
    body = response.json()
    assert body["success"] is False
    assert body["error"]["code"] == "UNAUTHORIZED"


@pytest.mark.asyncio
async def test_create_posting_invalid_body(async_client: AsyncClient, organization):
    response = await async_client.post(
        "/api/postings/",
        json={"title": "", "posting_type": "GIG"},
        headers=org_headers(organization),
    )
    assert response.status_code == 422
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"


@pytest.mark.asyncio
async def test_update_and_complete_posting(async_client: AsyncClient, organization, posting):
    response = await async_client.patch(
        f"/api/postings/{posting.id}",
        json={"title": "Interventional Cardiologist"},
        headers=org_headers(organization),
    )
    assert response.status_code == 200
    assert response.json()["title"] == "Interventional Cardiologist"

    response = await async_client.post(f"/api/postings/{posting.id}/complete", headers=org_headers(organization))
    assert response.status_code == 200
    assert response.json()["status"] == "COMPLETED"

    response = await async_client.post(f"/api/postings/{posting.id}/complete", headers=org_headers(organization))
    assert response.status_code == 409
    assert response.json()["error"]["code"] == "INVALID_OPERATION"


@pytest.mark.asyncio
async def test_other_organization_cannot_complete(async_client: AsyncClient, other_organization, posting):
    response = await async_client.post(
        f"/api/postings/{posting.id}/complete", headers=org_headers(other_organization)
    )
    assert response.status_code == 403
    assert response.json()["error"]["code"] == "FORBIDDEN"


@pytest.mark.asyncio
async def test_delete_posting(async_client: AsyncClient, organization, posting):
    response = await async_client.delete(f"/api/postings/{posting.id}", headers=org_headers(organization))
    assert response.status_code == 204

    response = await async_client.delete(f"/api/postings/{posting.id}", headers=org_headers(organization))
    assert response.status_code == 404
    error = response.json()["error"]
    assert error["code"] == "RESOURCE_NOT_FOUND"
    assert error["path"] == f"/api/postings/{posting.id}"
    assert "timestamp" in error


# ============================================================
# APPLY / ACCEPT / REJECT / WITHDRAW
# ============================================================

@pytest.mark.asyncio
async def test_apply_and_accept_flow(async_client: AsyncClient, organization, near_professional, posting):
    response = await async_client.post(
        f"/api/postings/{posting.id}/responses",
        json={"message": "Available from next week"},
        headers=pro_headers(near_professional),
    )
    assert response.status_code == 201
    response_id = response.json()["id"]
    assert response.json()["status"] == "PENDING"

    duplicate = await async_client.post(
        f"/api/postings/{posting.id}/responses", json={}, headers=pro_headers(near_professional)
    )
    assert duplicate.status_code == 409
    assert duplicate.json()["error"]["code"] == "ALREADY_APPLIED"

    listing = await async_client.get(f"/api/postings/{posting.id}/responses", headers=org_headers(organization))
    assert listing.status_code == 200
    assert listing.json()[0]["professional"]["full_name"] == near_professional.full_name

    accepted = await async_client.post(f"/api/responses/{response_id}/accept", headers=org_headers(organization))
    assert accepted.status_code == 200
    data = accepted.json()
    assert data["response"]["status"] == "ACCEPTED"
    assert data["connection"]["professional_id"] == str(near_professional.id)

    again = await async_client.post(f"/api/responses/{response_id}/accept", headers=org_headers(organization))
    assert again.status_code == 409

    withdraw = await async_client.post(
        f"/api/responses/{response_id}/withdraw", headers=pro_headers(near_professional)
    )
    assert withdraw.status_code == 409


@pytest.mark.asyncio
async def test_reject_and_withdraw(async_client: AsyncClient, organization, near_professional, far_professional, posting):
    first = await async_client.post(
        f"/api/postings/{posting.id}/responses", json={}, headers=pro_headers(near_professional)
    )
    second = await async_client.post(
        f"/api/postings/{posting.id}/responses", json={}, headers=pro_headers(far_professional)
    )

    rejected = await async_client.post(
        f"/api/responses/{first.json()['id']}/reject", headers=org_headers(organization)
    )
    assert rejected.status_code == 200
    assert rejected.json()["status"] == "REJECTED"

    withdrawn = await async_client.post(
        f"/api/responses/{second.json()['id']}/withdraw", headers=pro_headers(far_professional)
    )
    assert withdrawn.status_code == 200
    assert withdrawn.json()["status"] == "WITHDRAWN"


@pytest.mark.asyncio
async def test_accept_unknown_or_malformed_response(async_client: AsyncClient, organization):
    for response_id in (uuid.uuid4(), "not-a-uuid"):
        response = await async_client.post(f"/api/responses/{response_id}/accept", headers=org_headers(organization))
        assert response.status_code == 404


@pytest.mark.asyncio
async def test_professional_lists_own_responses(async_client: AsyncClient, near_professional, far_professional, posting):
    await async_client.post(f"/api/postings/{posting.id}/responses", json={}, headers=pro_headers(near_professional))

    response = await async_client.get(
        f"/api/professionals/{near_professional.id}/responses", headers=pro_headers(near_professional)
    )
    assert response.status_code == 200
    assert response.json()[0]["posting"]["id"] == str(posting.id)

    response = await async_client.get(
        f"/api/professionals/{near_professional.id}/responses", headers=pro_headers(far_professional)
    )
    assert response.status_code == 403


# ============================================================
# DISCOVERY
# ============================================================

@pytest.mark.asyncio
async def test_discover_professionals_within_radius(
    async_client: AsyncClient, organization, near_professional, far_professional
):
    response = await async_client.get(
        "/api/discovery/professionals",
        params={"lat": ORG_LAT, "lng": ORG_LNG, "radius_km": 10, "sort": "distance_asc"},
    )

    assert response.status_code == 200
    body = response.json()
    assert [p["id"] for p in body["data"]] == [str(near_professional.id)]
    assert 1.4 < body["data"][0]["distance_km"] < 1.7
    assert body["pagination"] == {"total": 1, "page": 1, "limit": 20, "has_next": False, "has_prev": False}


@pytest.mark.asyncio
async def test_discover_postings_paginates(async_client: AsyncClient, db, organization):
    for i in range(5):
        await create_posting(db, organization, title=f"Role {i}")

    first = await async_client.get("/api/discovery/postings", params={"limit": 2})
    second = await async_client.get("/api/discovery/postings", params={"limit": 2, "page": 2})

    assert first.json()["pagination"]["total"] == 5
    assert first.json()["pagination"]["has_next"] is True
    assert second.json()["pagination"]["has_prev"] is True
    first_ids = {p["id"] for p in first.json()["data"]}
    second_ids = {p["id"] for p in second.json()["data"]}
    assert len(first_ids) == 2 and len(second_ids) == 2
    assert not first_ids & second_ids


@pytest.mark.asyncio
async def test_discover_postings_hides_applied_for_caller(async_client: AsyncClient, near_professional, posting):
    await async_client.post(f"/api/postings/{posting.id}/responses", json={}, headers=pro_headers(near_professional))

    hidden = await async_client.get("/api/discovery/postings", headers=pro_headers(near_professional))
    assert hidden.json()["data"] == []

    shown = await async_client.get(
        "/api/discovery/postings", params={"include_applied": "true"}, headers=pro_headers(near_professional)
    )
    assert shown.json()["data"][0]["application_count"] == 1


@pytest.mark.asyncio
async def test_discover_postings_with_malformed_caller_id(async_client: AsyncClient, posting):
    response = await async_client.get("/api/discovery/postings", headers={"X-Professional-Id": "not-a-uuid"})
    assert response.status_code == 200
    assert [p["id"] for p in response.json()["data"]] == [str(posting.id)]


@pytest.mark.asyncio
async def test_discovery_bad_filter_is_422(async_client: AsyncClient):
    response = await async_client.get("/api/discovery/professionals", params={"specialization": "ASTROLOGER"})
    assert response.status_code == 422
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"


@pytest.mark.asyncio
async def test_discovery_unknown_sort_falls_back(async_client: AsyncClient, organization, other_organization):
    response = await async_client.get("/api/discovery/organizations", params={"sort": "popularity"})
    assert response.status_code == 200
    assert response.json()["data"][0]["id"] == str(other_organization.id)  # newest first


# ============================================================
# CONNECTIONS / OVERVIEW
# ============================================================

@pytest.mark.asyncio
async def test_connections_and_overview(async_client: AsyncClient, organization, near_professional, posting):
    applied = await async_client.post(
        f"/api/postings/{posting.id}/responses", json={}, headers=pro_headers(near_professional)
    )
    await async_client.post(f"/api/responses/{applied.json()['id']}/accept", headers=org_headers(organization))

    response = await async_client.get(
        f"/api/connections/organization/{organization.id}", headers=org_headers(organization)
    )
    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 1
    group = body["groups"][0]
    assert group["professional"]["id"] == str(near_professional.id)
    assert group["connection_count"] == 1
    assert group["postings"][0]["id"] == str(posting.id)

    response = await async_client.get(
        f"/api/connections/professional/{near_professional.id}",
        params={"distinct": "true"},
        headers=pro_headers(near_professional),
    )
    assert response.json()["connections"][0]["organization_id"] == str(organization.id)

    response = await async_client.get(
        f"/api/overview/organization/{organization.id}", headers=org_headers(organization)
    )
    assert response.status_code == 200
    assert response.json()["total_connections"] == 1
    assert response.json()["responses"]["ACCEPTED"] == 1


@pytest.mark.asyncio
async def test_connections_of_another_party_forbidden(async_client: AsyncClient, organization, other_organization):
    response = await async_client.get(
        f"/api/connections/organization/{organization.id}", headers=org_headers(other_organization)
    )
    assert response.status_code == 403

    response = await async_client.get(f"/api/overview/organization/{organization.id}")
    assert response.status_code == 401
