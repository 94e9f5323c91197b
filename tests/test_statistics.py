# tests/test_statistics.py

from conftest import API


async def test_personal_statistics(client, admin_and_member, create_task, complete_task):
    ctx = admin_and_member
    done = await create_task(ctx.admin_headers, ctx.community["community_id"], title="Fix roof", priority="high")
    await complete_task(ctx.member_headers, ctx.admin_headers, done["task_id"])
    open_task = await create_task(ctx.admin_headers, ctx.community["community_id"], title="Fix door")
    await client.post(f"{API}/tasks/{open_task['task_id']}/self-assign", headers=ctx.member_headers)

    response = await client.get(f"{API}/statistics", headers=ctx.member_headers)
    assert response.status_code == 200, response.text
    body = response.json()
    tasks = body["statistics"]["tasks"]
    assert tasks["assigned"] == 2
    assert tasks["completed"] == 1
    assert tasks["completion_rate"] == 50
    assert tasks["by_status"]["assigned"] == 1
    assert tasks["by_priority"]["high"] == 1
    assert body["statistics"]["contributions"]["total_points"] == 10
    assert body["statistics"]["contributions"]["by_type"]["task_completion"] == {"points": 10, "count": 1}
    assert body["period"]["days"] == 30

    response = await client.get(f"{API}/statistics/{ctx.admin['user_id']}", headers=ctx.admin_headers)
    assert response.json()["statistics"]["tasks"]["created"] == 2


async def test_statistics_are_private(client, admin_and_member, platform_admin):
    ctx = admin_and_member
    root_headers, _ = platform_admin

    response = await client.get(f"{API}/statistics/{ctx.admin['user_id']}", headers=ctx.member_headers)
    assert response.status_code == 403
    response = await client.get(f"{API}/statistics/{ctx.admin['user_id']}/activity", headers=ctx.member_headers)
    assert response.status_code == 403

    response = await client.get(f"{API}/statistics/{ctx.member['user_id']}", headers=root_headers)
    assert response.status_code == 200
    response = await client.get(f"{API}/statistics", params={"period": 0}, headers=ctx.member_headers)
    assert response.status_code == 422


async def test_activity_timeline(client, admin_and_member, create_task, complete_task):
    ctx = admin_and_member
    for title in ("Sort books", "Shelve books"):
        task = await create_task(ctx.admin_headers, ctx.community["community_id"], title=title)
        await complete_task(ctx.member_headers, ctx.admin_headers, task["task_id"])

    response = await client.get(
        f"{API}/statistics/{ctx.member['user_id']}/activity", params={"limit": 1}, headers=ctx.member_headers
    )
    assert response.status_code == 200, response.text
    assert response.json()["total"] == 2
    activities = response.json()["activities"]
    assert len(activities) == 1
    assert activities[0]["type"] == "task_completion"
    assert activities[0]["points"] == 10
    assert activities[0]["task"]["title"] == "Shelve books"
