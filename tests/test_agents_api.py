"""Agent API tests — the guard's role and ownership rules over HTTP.

Learn: Listing assertions sort by name, because rows registered within
the same second share a created_at on SQLite.
"""

import pytest

from conftest import PASSWORD, bearer, register_agent


@pytest.mark.asyncio
async def test_agent_reads_own_profile(client):
    data = await register_agent(client)
    r = await client.get("/api/v1/agents/me", headers=bearer(data["tokens"]["accessToken"]))
    assert r.status_code == 200
    agent = r.json()["data"]
    assert agent["id"] == data["agent"]["id"]
    assert agent["userId"] == data["user"]["id"]
    assert agent["isActive"] is True


@pytest.mark.asyncio
async def test_admin_is_not_an_agent(client, admin_headers):
    r = await client.get("/api/v1/agents/me", headers=admin_headers)
    assert r.status_code == 403
    assert r.json()["message"] == "Agent access required"


@pytest.mark.asyncio
async def test_agent_by_id_self_or_admin(client, admin_headers):
    alice = await register_agent(client)
    bob = await register_agent(client)
    alice_id = alice["agent"]["id"]

    r = await client.get(f"/api/v1/agents/{alice_id}", headers=bearer(alice["tokens"]["accessToken"]))
    assert r.status_code == 200

    r = await client.get(f"/api/v1/agents/{alice_id}", headers=bearer(bob["tokens"]["accessToken"]))
    assert r.status_code == 403
    assert r.json()["message"] == "Access denied"

    r = await client.get(f"/api/v1/agents/{alice_id}", headers=admin_headers)
    assert r.status_code == 200
    assert r.json()["data"]["email"] == alice["user"]["email"]


@pytest.mark.asyncio
async def test_unknown_agent_for_admin(client, admin_headers):
    r = await client.get(
        "/api/v1/agents/00000000-0000-0000-0000-000000000000", headers=admin_headers
    )
    assert r.status_code == 404
    assert r.json()["message"] == "Agent not found"


@pytest.mark.asyncio
async def test_agent_cannot_deactivate(client):
    data = await register_agent(client)
    r = await client.patch(
        f"/api/v1/agents/{data['agent']['id']}/deactivate",
        headers=bearer(data["tokens"]["accessToken"]),
    )
    assert r.status_code == 403


@pytest.mark.asyncio
async def test_deactivation_locks_out_immediately(client, admin_headers):
    """Live access tokens stop working, refresh tokens are revoked, login is refused."""
    data = await register_agent(client)
    agent_id = data["agent"]["id"]
    access = data["tokens"]["accessToken"]

    r = await client.patch(f"/api/v1/agents/{agent_id}/deactivate", headers=admin_headers)
    assert r.status_code == 200
    assert r.json()["data"]["isActive"] is False

    r = await client.get("/api/v1/auth/profile", headers=bearer(access))
    assert r.status_code == 401
    assert r.json()["message"] == "Account is deactivated"

    r = await client.post(
        "/api/v1/auth/refresh", json={"refreshToken": data["tokens"]["refreshToken"]}
    )
    assert r.status_code == 401

    login = {"email": data["user"]["email"], "password": PASSWORD}
    r = await client.post("/api/v1/auth/login", json=login)
    assert r.status_code == 401
    assert r.json()["message"] == "Account is deactivated"

    r = await client.patch(f"/api/v1/agents/{agent_id}/reactivate", headers=admin_headers)
    assert r.status_code == 200
    assert r.json()["data"]["isActive"] is True

    r = await client.post("/api/v1/auth/login", json=login)
    assert r.status_code == 200


# ═══════════════════════════════════════════════════════════
# Profile edits
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_agent_updates_own_profile(client):
    data = await register_agent(client, phone="+14155550100")
    headers = bearer(data["tokens"]["accessToken"])

    r = await client.put(
        "/api/v1/agents/me",
        json={"name": "Harbor Referrals", "address": "12 Quay Street"},
        headers=headers,
    )
    assert r.status_code == 200
    assert r.json()["message"] == "Profile updated successfully"
    agent = r.json()["data"]
    assert agent["name"] == "Harbor Referrals"
    assert agent["address"] == "12 Quay Street"
    assert agent["companyName"] == "Harbor Health Ltd"
    assert agent["phone"] == "+14155550100"

    r = await client.get("/api/v1/agents/me", headers=headers)
    assert r.json()["data"]["name"] == "Harbor Referrals"


@pytest.mark.asyncio
async def test_profile_update_ignores_nulls_and_identity_fields(client):
    data = await register_agent(client)
    r = await client.put(
        "/api/v1/agents/me",
        json={"name": None, "email": "hijack@clinicnet.io", "isActive": False},
        headers=bearer(data["tokens"]["accessToken"]),
    )
    assert r.status_code == 200
    agent = r.json()["data"]
    assert agent["name"] == "Harbor Health Agents"
    assert agent["email"] == data["user"]["email"]
    assert agent["isActive"] is True


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "body,field",
    [
        ({"name": "X"}, "name"),
        ({"companyName": "Y"}, "companyName"),
        ({"phone": "0123"}, "phone"),
        ({"address": "a" * 501}, "address"),
    ],
)
async def test_profile_update_validation(client, body, field):
    data = await register_agent(client)
    r = await client.put(
        "/api/v1/agents/me", json=body, headers=bearer(data["tokens"]["accessToken"])
    )
    assert r.status_code == 400
    assert field in r.json()["errors"]


@pytest.mark.asyncio
async def test_admin_cannot_use_agent_profile_update(client, admin_headers):
    r = await client.put("/api/v1/agents/me", json={"name": "Ops"}, headers=admin_headers)
    assert r.status_code == 403
    assert r.json()["message"] == "Agent access required"


@pytest.mark.asyncio
async def test_admin_updates_any_agent(client, admin_headers):
    data = await register_agent(client)
    agent_id = data["agent"]["id"]

    r = await client.put(
        f"/api/v1/agents/{agent_id}", json={"companyName": "Quayside Care"}, headers=admin_headers
    )
    assert r.status_code == 200
    assert r.json()["message"] == "Agent profile updated successfully"
    assert r.json()["data"]["companyName"] == "Quayside Care"


@pytest.mark.asyncio
async def test_agent_cannot_update_by_id_even_own(client):
    data = await register_agent(client)
    r = await client.put(
        f"/api/v1/agents/{data['agent']['id']}",
        json={"name": "Sneaky Rename"},
        headers=bearer(data["tokens"]["accessToken"]),
    )
    assert r.status_code == 403


@pytest.mark.asyncio
async def test_admin_update_unknown_agent(client, admin_headers):
    r = await client.put(
        "/api/v1/agents/00000000-0000-0000-0000-000000000000",
        json={"name": "Nobody"},
        headers=admin_headers,
    )
    assert r.status_code == 404
    assert r.json()["message"] == "Agent not found"


# ═══════════════════════════════════════════════════════════
# Admin listing
# ═══════════════════════════════════════════════════════════


async def _seed_agents(client):
    names = [
        ("Alder Clinics", "Alder Group"),
        ("Birch Medical", "Birchwood Partners"),
        ("Cedar Health", "Alder Group"),
    ]
    return [
        await register_agent(client, name=name, companyName=company)
        for name, company in names
    ]


@pytest.mark.asyncio
async def test_list_agents_requires_admin(client):
    data = await register_agent(client)
    r = await client.get("/api/v1/agents")
    assert r.status_code == 401

    r = await client.get("/api/v1/agents", headers=bearer(data["tokens"]["accessToken"]))
    assert r.status_code == 403


@pytest.mark.asyncio
async def test_list_agents_paginates(client, admin_headers):
    await _seed_agents(client)

    r = await client.get(
        "/api/v1/agents", params={"page": 2, "limit": 2, "sortBy": "name", "sortOrder": "asc"},
        headers=admin_headers,
    )
    assert r.status_code == 200
    body = r.json()
    assert body["message"] == "Agents retrieved successfully"
    assert body["pagination"] == {"page": 2, "limit": 2, "total": 3, "pages": 2}
    assert [a["name"] for a in body["data"]] == ["Cedar Health"]


@pytest.mark.asyncio
async def test_list_agents_defaults(client, admin_headers):
    await _seed_agents(client)
    r = await client.get("/api/v1/agents", headers=admin_headers)
    assert r.json()["pagination"] == {"page": 1, "limit": 10, "total": 3, "pages": 1}


@pytest.mark.asyncio
async def test_list_agents_sorts_descending(client, admin_headers):
    await _seed_agents(client)
    r = await client.get(
        "/api/v1/agents", params={"sortBy": "name", "sortOrder": "desc"}, headers=admin_headers
    )
    assert [a["name"] for a in r.json()["data"]] == [
        "Cedar Health",
        "Birch Medical",
        "Alder Clinics",
    ]


@pytest.mark.asyncio
async def test_list_agents_search_is_case_insensitive(client, admin_headers):
    agents = await _seed_agents(client)

    r = await client.get("/api/v1/agents", params={"search": "alder"}, headers=admin_headers)
    names = sorted(a["name"] for a in r.json()["data"])
    assert names == ["Alder Clinics", "Cedar Health"]

    email = agents[1]["user"]["email"]
    r = await client.get("/api/v1/agents", params={"search": email.upper()}, headers=admin_headers)
    assert [a["name"] for a in r.json()["data"]] == ["Birch Medical"]


@pytest.mark.asyncio
async def test_list_agents_filters_by_active_flag(client, admin_headers):
    agents = await _seed_agents(client)
    await client.patch(f"/api/v1/agents/{agents[0]['agent']['id']}/deactivate", headers=admin_headers)

    r = await client.get("/api/v1/agents", params={"isActive": "true"}, headers=admin_headers)
    assert r.json()["pagination"]["total"] == 2

    r = await client.get("/api/v1/agents", params={"isActive": "false"}, headers=admin_headers)
    assert [a["name"] for a in r.json()["data"]] == ["Alder Clinics"]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "params,field",
    [
        ({"sortBy": "email"}, "sortBy"),
        ({"sortOrder": "sideways"}, "sortOrder"),
        ({"page": 0}, "page"),
        ({"limit": 101}, "limit"),
    ],
)
async def test_list_agents_rejects_bad_query(client, admin_headers, params, field):
    r = await client.get("/api/v1/agents", params=params, headers=admin_headers)
    assert r.status_code == 400
    assert field in r.json()["errors"]
