# tests/test_tags.py

from conftest import API


async def _tag(client, headers, community_id, name, **extra):
    response = await client.post(f"{API}/tags", json={"name": name, "community_id": community_id, **extra}, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()["tag"]


async def test_members_create_unique_tags(client, admin_and_member):
    ctx = admin_and_member
    community_id = ctx.community["community_id"]

    tag = await _tag(client, ctx.member_headers, community_id, "Outdoor")
    assert tag["color"] == "#3B82F6"

    response = await client.post(
        f"{API}/tags", json={"name": "outdoor", "community_id": community_id}, headers=ctx.member_headers
    )
    assert response.status_code == 409

    response = await client.post(
        f"{API}/tags", json={"name": "Indoor", "community_id": community_id, "color": "blue"}, headers=ctx.member_headers
    )
    assert response.status_code == 422

    await _tag(client, ctx.member_headers, community_id, "Indoor", color="#10b981")
    response = await client.get(f"{API}/tags", headers=ctx.member_headers)
    assert [t["name"] for t in response.json()["tags"]] == ["Indoor", "Outdoor"]


async def test_tagging_tasks_and_filtering(client, admin_and_member, create_task, register, create_community):
    ctx = admin_and_member
    community_id = ctx.community["community_id"]
    urgent = await _tag(client, ctx.admin_headers, community_id, "Urgent")
    garden = await _tag(client, ctx.admin_headers, community_id, "Garden")
    tagged = await create_task(ctx.admin_headers, community_id, title="Weed beds")
    await create_task(ctx.admin_headers, community_id, title="Paint fence")

    response = await client.post(
        f"{API}/tags/task/{tagged['task_id']}",
        json={"tag_ids": [urgent["tag_id"], garden["tag_id"]]},
        headers=ctx.member_headers,
    )
    assert response.status_code == 200, response.text
    assert [t["name"] for t in response.json()["task"]["tags"]] == ["Garden", "Urgent"]

    response = await client.get(f"{API}/tasks", params={"tag_id": urgent["tag_id"]}, headers=ctx.member_headers)
    assert [t["task_id"] for t in response.json()["tasks"]] == [tagged["task_id"]]

    response = await client.get(f"{API}/tags/{garden['tag_id']}/tasks", headers=ctx.member_headers)
    assert response.json()["total"] == 1
    assert response.json()["tag"]["name"] == "Garden"

    other_admin, _ = await register("community_admin", "Otis Other")
    other = await create_community(other_admin, name="Potters")
    foreign = await _tag(client, other_admin, other["community_id"], "Kiln")
    response = await client.post(
        f"{API}/tags/task/{tagged['task_id']}", json={"tag_ids": [foreign["tag_id"]]}, headers=ctx.admin_headers
    )
    assert response.status_code == 400

    response = await client.post(f"{API}/tags/task/{tagged['task_id']}", json={"tag_ids": []}, headers=ctx.admin_headers)
    assert response.json()["task"]["tags"] == []


async def test_only_admins_edit_or_delete_tags(client, admin_and_member, create_task):
    ctx = admin_and_member
    community_id = ctx.community["community_id"]
    tag = await _tag(client, ctx.member_headers, community_id, "Kitchen")
    task = await create_task(ctx.admin_headers, community_id)
    await client.post(f"{API}/tags/task/{task['task_id']}", json={"tag_ids": [tag["tag_id"]]}, headers=ctx.member_headers)

    response = await client.put(f"{API}/tags/{tag['tag_id']}", json={"color": "#000000"}, headers=ctx.member_headers)
    assert response.status_code == 403
    response = await client.put(f"{API}/tags/{tag['tag_id']}", json={"name": "Cooking"}, headers=ctx.admin_headers)
    assert response.status_code == 200
    assert response.json()["tag"]["name"] == "Cooking"

    response = await client.delete(f"{API}/tags/{tag['tag_id']}", headers=ctx.member_headers)
    assert response.status_code == 403
    response = await client.delete(f"{API}/tags/{tag['tag_id']}", headers=ctx.admin_headers)
    assert response.status_code == 200

    response = await client.get(f"{API}/tasks/{task['task_id']}", headers=ctx.member_headers)
    assert response.json()["task"]["tags"] == []
