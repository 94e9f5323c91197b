# tests/test_subtasks.py

from conftest import API


async def _add(client, headers, task_id, title, **extra):
    response = await client.post(f"{API}/subtasks/task/{task_id}", json={"title": title, **extra}, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()["subtask"]


async def test_subtasks_append_in_order_and_track_progress(client, admin_and_member, create_task):
    ctx = admin_and_member
    task = await create_task(ctx.admin_headers, ctx.community["community_id"])

    first = await _add(client, ctx.member_headers, task["task_id"], "Card the wool", assigned_to=ctx.member["user_id"])
    second = await _add(client, ctx.member_headers, task["task_id"], "Spin it")
    assert (first["position"], second["position"]) == (0, 1)
    assert first["assignee"]["user_id"] == ctx.member["user_id"]
    assert first["status"] == "not_started"

    response = await client.put(
        f"{API}/subtasks/{first['subtask_id']}", json={"status": "completed"}, headers=ctx.member_headers
    )
    assert response.status_code == 200, response.text
    completed = response.json()["subtask"]
    assert completed["completed_by"] == ctx.member["user_id"]
    assert completed["completed_at"] is not None

    response = await client.get(f"{API}/subtasks/task/{task['task_id']}", headers=ctx.admin_headers)
    assert response.status_code == 200
    assert response.json()["progress"] == {"total": 2, "completed": 1, "percentage": 50}

    response = await client.put(
        f"{API}/subtasks/{first['subtask_id']}", json={"status": "in_progress"}, headers=ctx.member_headers
    )
    reopened = response.json()["subtask"]
    assert reopened["completed_by"] is None
    assert reopened["completed_at"] is None


async def test_reorder_subtasks(client, admin_and_member, create_task):
    ctx = admin_and_member
    task = await create_task(ctx.admin_headers, ctx.community["community_id"])
    first = await _add(client, ctx.member_headers, task["task_id"], "Wash")
    second = await _add(client, ctx.member_headers, task["task_id"], "Dry")

    response = await client.put(
        f"{API}/subtasks/task/{task['task_id']}/reorder",
        json={"subtask_ids": [second["subtask_id"], first["subtask_id"]]},
        headers=ctx.member_headers,
    )
    assert response.status_code == 200, response.text
    assert [s["subtask_id"] for s in response.json()["subtasks"]] == [second["subtask_id"], first["subtask_id"]]

    other = await create_task(ctx.admin_headers, ctx.community["community_id"], title="Other")
    stray = await _add(client, ctx.member_headers, other["task_id"], "Elsewhere")
    response = await client.put(
        f"{API}/subtasks/task/{task['task_id']}/reorder",
        json={"subtask_ids": [stray["subtask_id"]]},
        headers=ctx.member_headers,
    )
    assert response.status_code == 400


async def test_subtask_permissions(client, admin_and_member, create_task, register, join_community):
    ctx = admin_and_member
    task = await create_task(ctx.admin_headers, ctx.community["community_id"])
    subtask = await _add(client, ctx.member_headers, task["task_id"], "Label jars")

    outsider_headers, outsider = await register("member", "Otto Outsider")
    response = await client.get(f"{API}/subtasks/task/{task['task_id']}", headers=outsider_headers)
    assert response.status_code == 403
    response = await client.post(
        f"{API}/subtasks/task/{task['task_id']}",
        json={"title": "Sneaky", "assigned_to": outsider["user_id"]},
        headers=ctx.member_headers,
    )
    assert response.status_code == 400

    peer_headers, _ = await register("member", "Pia Peer")
    await join_community(peer_headers, ctx.community["community_code"])
    response = await client.delete(f"{API}/subtasks/{subtask['subtask_id']}", headers=peer_headers)
    assert response.status_code == 403

    response = await client.delete(f"{API}/subtasks/{subtask['subtask_id']}", headers=ctx.admin_headers)
    assert response.status_code == 200
    response = await client.get(f"{API}/subtasks/task/{task['task_id']}", headers=ctx.member_headers)
    assert response.json()["subtasks"] == []


async def test_deleting_task_removes_its_subtasks(client, admin_and_member, create_task):
    ctx = admin_and_member
    task = await create_task(ctx.admin_headers, ctx.community["community_id"])
    subtask = await _add(client, ctx.member_headers, task["task_id"], "Sweep")

    response = await client.delete(f"{API}/tasks/{task['task_id']}", headers=ctx.admin_headers)
    assert response.status_code == 200, response.text
    response = await client.put(f"{API}/subtasks/{subtask['subtask_id']}", json={"title": "Mop"}, headers=ctx.member_headers)
    assert response.status_code == 404
