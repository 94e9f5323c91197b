# tests/test_tasks_api.py

from datetime import datetime, timedelta, timezone

from conftest import API


def _deadline(days: int) -> str:
    return (datetime.now(timezone.utc) + timedelta(days=days)).isoformat()


async def _setup(register, create_community, join_community):
    admin_headers, _ = await register("community_admin", "Ada Admin")
    community = await create_community(admin_headers)
    member_headers, member = await register("member", "Mia Member")
    await join_community(member_headers, community["community_code"].lower())
    return admin_headers, member_headers, member, community


async def _create_task(client, headers, community_id, **overrides):
    payload = {
        "title": "Collect wool",
        "description": "Two bags",
        "community_id": community_id,
        "deadline": _deadline(1),
    }
    payload.update(overrides)
    response = await client.post(f"{API}/tasks", json=payload, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()["task"]


async def _work_through(client, headers, task_id):
    response = await client.post(f"{API}/tasks/{task_id}/self-assign", headers=headers)
    assert response.status_code == 201, response.text
    for status in ("accepted", "in_progress"):
        response = await client.put(f"{API}/tasks/{task_id}/status", json={"status": status}, headers=headers)
        assert response.status_code == 200, response.text


async def test_complete_flow_awards_ten_points(client, register, create_community, join_community):
    admin_headers, member_headers, member, community = await _setup(register, create_community, join_community)
    task = await _create_task(client, admin_headers, community["community_id"])
    assert task["status"] == "not_started"
    assert task["points"] == 10

    before = (await client.get(f"{API}/auth/profile", headers=member_headers)).json()["user"]["points"]

    await _work_through(client, member_headers, task["task_id"])
    response = await client.post(
        f"{API}/tasks/{task['task_id']}/submit",
        json={"submission_link": "https://example.com/wool", "submission_notes": "Done"},
        headers=member_headers,
    )
    assert response.status_code == 200, response.text
    assert response.json()["task"]["status"] == "submitted"

    response = await client.post(
        f"{API}/tasks/{task['task_id']}/review",
        json={"action": "approve", "review_notes": "Great"},
        headers=admin_headers,
    )
    assert response.status_code == 200, response.text
    body = response.json()
    assert body["task"]["status"] == "completed"
    assert body["reviewed_user_ids"] == [member["user_id"]]

    after = (await client.get(f"{API}/auth/profile", headers=member_headers)).json()
    assert after["user"]["points"] == before + 10
    assert after["stats"]["completed_tasks"] == 1

    response = await client.post(
        f"{API}/tasks/{task['task_id']}/review", json={"action": "approve"}, headers=admin_headers
    )
    assert response.status_code == 409
    assert response.json()["error"] == "InvalidState"
    again = (await client.get(f"{API}/auth/profile", headers=member_headers)).json()
    assert again["user"]["points"] == before + 10


async def test_submit_after_deadline_is_refused(client, register, create_community, join_community):
    admin_headers, member_headers, _, community = await _setup(register, create_community, join_community)
    task = await _create_task(client, admin_headers, community["community_id"], deadline=_deadline(-1))

    await _work_through(client, member_headers, task["task_id"])
    response = await client.post(
        f"{API}/tasks/{task['task_id']}/submit",
        json={"submission_link": "https://example.com/late", "submission_notes": "Late"},
        headers=member_headers,
    )
    assert response.status_code == 400
    body = response.json()
    assert "deadline" in body["message"].lower()
    assert body["error"] == "DeadlinePassed"

    detail = (await client.get(f"{API}/tasks/{task['task_id']}", headers=member_headers)).json()["task"]
    assert detail["status"] == "in_progress"
    assert detail["assignments"][0]["status"] == "in_progress"
    assert detail["assignments"][0]["submitted_at"] is None


async def test_legacy_review_payload_and_put_submit(client, register, create_community, join_community):
    admin_headers, member_headers, _, community = await _setup(register, create_community, join_community)
    task = await _create_task(client, admin_headers, community["community_id"])
    await _work_through(client, member_headers, task["task_id"])

    response = await client.put(f"{API}/tasks/{task['task_id']}/submit", json={}, headers=member_headers)
    assert response.status_code == 200, response.text

    response = await client.put(
        f"{API}/tasks/{task['task_id']}/review",
        json={"status": "rejected", "review_notes": "Too short"},
        headers=admin_headers,
    )
    assert response.status_code == 200, response.text
    assert response.json()["task"]["status"] == "rejected"
    assert response.json()["points_awarded"] == 0


async def test_review_requires_known_action(client, register, create_community, join_community):
    admin_headers, _, _, community = await _setup(register, create_community, join_community)
    task = await _create_task(client, admin_headers, community["community_id"])

    response = await client.post(
        f"{API}/tasks/{task['task_id']}/review", json={"action": "maybe"}, headers=admin_headers
    )
    assert response.status_code == 422
    assert "message" in response.json()


async def test_group_task_capacity_over_http(client, register, create_community, join_community):
    admin_headers, member_headers, member, community = await _setup(register, create_community, join_community)
    second_headers, second = await register("member", "Sam Second")
    await join_community(second_headers, community["community_code"])
    third_headers, _ = await register("member", "Tia Third")
    await join_community(third_headers, community["community_code"])

    task = await _create_task(
        client, admin_headers, community["community_id"], task_type="group", max_assignees=2
    )
    response = await client.post(
        f"{API}/tasks/{task['task_id']}/assign-users",
        json={"user_ids": [member["user_id"], second["user_id"]]},
        headers=admin_headers,
    )
    assert response.status_code == 200, response.text
    assert response.json()["task"]["assignee_count"] == 2

    response = await client.post(f"{API}/tasks/{task['task_id']}/self-assign", headers=third_headers)
    assert response.status_code == 409
    assert response.json()["error"] == "CapacityExceeded"

    response = await client.delete(f"{API}/tasks/{task['task_id']}/revoke", headers=member_headers)
    assert response.status_code == 200, response.text
    response = await client.post(f"{API}/tasks/{task['task_id']}/self-assign", headers=third_headers)
    assert response.status_code == 201, response.text


async def test_per_assignee_review(client, register, create_community, join_community):
    admin_headers, member_headers, member, community = await _setup(register, create_community, join_community)
    task = await _create_task(
        client, admin_headers, community["community_id"], task_type="group", max_assignees=3
    )
    await _work_through(client, member_headers, task["task_id"])
    await client.post(f"{API}/tasks/{task['task_id']}/submit", json={}, headers=member_headers)

    response = await client.post(
        f"{API}/tasks/{task['task_id']}/review/{member['user_id']}",
        json={"action": "approve"},
        headers=admin_headers,
    )
    assert response.status_code == 200, response.text
    assert response.json()["assignment"]["status"] == "completed"
    assert response.json()["points_awarded"] == 10


async def test_whole_task_review_reports_total_points(client, register, create_community, join_community):
    admin_headers, member_headers, _, community = await _setup(register, create_community, join_community)
    second_headers, _ = await register("member", "Sam Second")
    await join_community(second_headers, community["community_code"])
    task = await _create_task(
        client, admin_headers, community["community_id"], task_type="group", max_assignees=2, points=15
    )
    for headers in (member_headers, second_headers):
        await _work_through(client, headers, task["task_id"])
        response = await client.post(f"{API}/tasks/{task['task_id']}/submit", json={}, headers=headers)
        assert response.status_code == 200, response.text

    response = await client.post(
        f"{API}/tasks/{task['task_id']}/review", json={"action": "approve"}, headers=admin_headers
    )
    assert response.status_code == 200, response.text
    assert len(response.json()["reviewed_user_ids"]) == 2
    assert response.json()["points_awarded"] == 30


async def test_cancelled_task_refuses_submission(client, register, create_community, join_community):
    admin_headers, member_headers, _, community = await _setup(register, create_community, join_community)
    task = await _create_task(client, admin_headers, community["community_id"])
    await _work_through(client, member_headers, task["task_id"])

    response = await client.put(
        f"{API}/tasks/{task['task_id']}", json={"status": "cancelled"}, headers=admin_headers
    )
    assert response.status_code == 200, response.text
    assert response.json()["task"]["status"] == "cancelled"

    response = await client.post(f"{API}/tasks/{task['task_id']}/submit", json={}, headers=member_headers)
    assert response.status_code == 409
    assert response.json()["error"] == "InvalidState"


async def test_requests_without_token_are_unauthorized(client, database):
    response = await client.get(f"{API}/tasks")
    assert response.status_code == 401
    assert response.json()["message"]

    response = await client.get(f"{API}/tasks", headers={"Authorization": "Bearer not-a-token"})
    assert response.status_code == 401


async def test_members_cannot_create_or_delete_tasks(client, register, create_community, join_community):
    admin_headers, member_headers, _, community = await _setup(register, create_community, join_community)

    response = await client.post(
        f"{API}/tasks",
        json={"title": "Sneaky", "community_id": community["community_id"]},
        headers=member_headers,
    )
    assert response.status_code == 403
    assert response.json()["error"] == "AuthorizationError"

    task = await _create_task(client, admin_headers, community["community_id"])
    response = await client.delete(f"{API}/tasks/{task['task_id']}/delete", headers=member_headers)
    assert response.status_code == 403

    response = await client.delete(f"{API}/tasks/{task['task_id']}/delete", headers=admin_headers)
    assert response.status_code == 200
    response = await client.get(f"{API}/tasks/{task['task_id']}", headers=admin_headers)
    assert response.status_code == 404


async def test_listing_and_user_tasks(client, register, create_community, join_community):
    admin_headers, member_headers, _, community = await _setup(register, create_community, join_community)
    first = await _create_task(client, admin_headers, community["community_id"], title="Spin yarn", priority="high")
    await _create_task(client, admin_headers, community["community_id"], title="Dye yarn")

    response = await client.get(f"{API}/tasks", params={"search": "spin"}, headers=member_headers)
    assert [t["task_id"] for t in response.json()["tasks"]] == [first["task_id"]]

    response = await client.get(f"{API}/tasks", params={"priority": "high"}, headers=member_headers)
    assert response.json()["pagination"]["total"] == 1

    await client.post(f"{API}/tasks/{first['task_id']}/self-assign", headers=member_headers)
    response = await client.get(f"{API}/tasks/user", headers=member_headers)
    assignments = response.json()["assignments"]
    assert len(assignments) == 1
    assert assignments[0]["task"]["title"] == "Spin yarn"
    assert assignments[0]["status"] == "assigned"

    outsider_headers, _ = await register("member", "Otto Outsider")
    response = await client.get(f"{API}/tasks", headers=outsider_headers)
    assert response.json()["tasks"] == []


async def test_health_check(client):
    response = await client.get("/")
    assert response.status_code == 200
    assert response.json()["database"] == "connected"
