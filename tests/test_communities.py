# tests/test_communities.py

import re

from conftest import API


async def test_create_and_join_by_code(client, register, create_community, join_community):
    admin_headers, _ = await register("community_admin")
    community = await create_community(admin_headers, "Knitters")
    assert re.fullmatch(r"[A-Z0-9]{6}", community["community_code"])
    assert community["user_role"] == "community_admin"

    member_headers, _ = await register("member")
    joined = await join_community(member_headers, community["community_code"].lower())
    assert joined["community"]["community_id"] == community["community_id"]

    response = await client.post(
        f"{API}/communities/join", json={"community_code": community["community_code"]}, headers=member_headers
    )
    assert response.status_code == 400

    response = await client.get(f"{API}/communities/{community['community_id']}", headers=member_headers)
    assert response.status_code == 200
    detail = response.json()["community"]
    assert detail["member_count"] == 2
    assert detail["task_count"] == 0
    assert detail["user_role"] == "member"


async def test_unknown_code(client, register):
    headers, _ = await register()
    response = await client.post(f"{API}/communities/join", json={"community_code": "ZZZZZZ"}, headers=headers)
    assert response.status_code == 404


async def test_members_cannot_create_communities(client, register):
    headers, _ = await register("member")
    response = await client.post(f"{API}/communities", json={"name": "Nope"}, headers=headers)
    assert response.status_code == 403


async def test_list_only_own_communities(client, register, create_community):
    first_admin, _ = await register("community_admin")
    second_admin, _ = await register("community_admin")
    await create_community(first_admin, "First")
    await create_community(second_admin, "Second")

    response = await client.get(f"{API}/communities", headers=first_admin)
    names = [c["name"] for c in response.json()["communities"]]
    assert names == ["First"]


async def test_leave_and_rejoin(client, register, create_community, join_community):
    admin_headers, _ = await register("community_admin")
    community = await create_community(admin_headers)
    member_headers, member = await register("member")
    await join_community(member_headers, community["community_code"])

    response = await client.post(f"{API}/communities/{community['community_id']}/leave", headers=admin_headers)
    assert response.status_code == 400

    response = await client.post(f"{API}/communities/{community['community_id']}/leave", headers=member_headers)
    assert response.status_code == 200
    response = await client.get(f"{API}/communities/{community['community_id']}", headers=member_headers)
    assert response.status_code == 403

    await join_community(member_headers, community["community_code"])
    response = await client.get(f"{API}/communities/{community['community_id']}/members", headers=admin_headers)
    assert member["user_id"] in [m["user_id"] for m in response.json()["members"]]


async def test_promote_member_to_admin(client, register, create_community, join_community):
    admin_headers, _ = await register("community_admin")
    community = await create_community(admin_headers)
    member_headers, member = await register("member")
    await join_community(member_headers, community["community_code"])

    url = f"{API}/communities/{community['community_id']}/members/{member['user_id']}/role"
    response = await client.put(url, json={"role": "community_admin"}, headers=member_headers)
    assert response.status_code == 403

    response = await client.put(url, json={"role": "community_admin"}, headers=admin_headers)
    assert response.status_code == 200

    response = await client.post(
        f"{API}/tasks", json={"title": "Now allowed", "community_id": community["community_id"]}, headers=member_headers
    )
    assert response.status_code == 201


async def test_only_creator_updates_or_deletes(client, register, create_community, join_community):
    admin_headers, _ = await register("community_admin")
    community = await create_community(admin_headers)
    member_headers, _ = await register("member")
    await join_community(member_headers, community["community_code"])
    url = f"{API}/communities/{community['community_id']}"

    response = await client.put(url, json={"name": "Hijacked"}, headers=member_headers)
    assert response.status_code == 403

    response = await client.put(url, json={"description": "Updated"}, headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["community"]["description"] == "Updated"

    response = await client.delete(url, headers=admin_headers)
    assert response.status_code == 200
    response = await client.get(url, headers=admin_headers)
    assert response.status_code == 404
