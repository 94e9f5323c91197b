# tests/test_notifications.py

from datetime import datetime, timedelta, timezone

from conftest import API


async def _community_with_task(client, register, create_community, join_community):
    admin_headers, _ = await register("community_admin", "Ada Admin")
    community = await create_community(admin_headers)
    member_headers, _ = await register("member", "Mia Member")
    await join_community(member_headers, community["community_code"])

    deadline = (datetime.now(timezone.utc) + timedelta(days=2)).isoformat()
    response = await client.post(
        f"{API}/tasks",
        json={"title": "Card fibre", "community_id": community["community_id"], "deadline": deadline},
        headers=admin_headers,
    )
    assert response.status_code == 201, response.text
    return admin_headers, member_headers, response.json()["task"]


async def test_workflow_events_notify_the_right_people(client, register, create_community, join_community):
    admin_headers, member_headers, task = await _community_with_task(client, register, create_community, join_community)

    member_notes = (await client.get(f"{API}/notifications", headers=member_headers)).json()
    assert [n["type"] for n in member_notes["notifications"]] == ["task_created"]
    assert member_notes["notifications"][0]["related_id"] == task["task_id"]

    await client.post(f"{API}/tasks/{task['task_id']}/self-assign", headers=member_headers)
    admin_notes = (await client.get(f"{API}/notifications", headers=admin_headers)).json()
    types = [n["type"] for n in admin_notes["notifications"]]
    assert "task_self_assigned" in types
    assert "community_member_joined" in types


async def test_read_count_and_delete(client, register, create_community, join_community):
    _, member_headers, _ = await _community_with_task(client, register, create_community, join_community)

    count = (await client.get(f"{API}/notifications/count", headers=member_headers)).json()
    assert count["unread_count"] == 1

    notes = (await client.get(f"{API}/notifications", params={"is_read": False}, headers=member_headers)).json()
    notification_id = notes["notifications"][0]["notification_id"]

    response = await client.put(f"{API}/notifications/{notification_id}/read", headers=member_headers)
    assert response.status_code == 200
    assert response.json()["notification"]["is_read"] is True
    count = (await client.get(f"{API}/notifications/count", headers=member_headers)).json()
    assert count["unread_count"] == 0

    response = await client.delete(f"{API}/notifications/{notification_id}", headers=member_headers)
    assert response.status_code == 200
    response = await client.put(f"{API}/notifications/{notification_id}/read", headers=member_headers)
    assert response.status_code == 404


async def test_mark_all_read_only_touches_own(client, register, create_community, join_community):
    admin_headers, member_headers, _ = await _community_with_task(client, register, create_community, join_community)

    response = await client.put(f"{API}/notifications/read-all", headers=member_headers)
    assert response.status_code == 200
    assert response.json()["updated"] == 1

    admin_count = (await client.get(f"{API}/notifications/count", headers=admin_headers)).json()
    assert admin_count["unread_count"] == 1


async def test_cannot_read_someone_elses_notification(client, register, create_community, join_community):
    admin_headers, member_headers, _ = await _community_with_task(client, register, create_community, join_community)
    notes = (await client.get(f"{API}/notifications", headers=member_headers)).json()
    notification_id = notes["notifications"][0]["notification_id"]

    response = await client.put(f"{API}/notifications/{notification_id}/read", headers=admin_headers)
    assert response.status_code == 404
