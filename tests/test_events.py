# tests/test_events.py

from datetime import datetime, timedelta, timezone

from conftest import API


def _at(days: int) -> str:
    return (datetime.now(timezone.utc) + timedelta(days=days)).isoformat()


async def test_event_crud(client, register, create_community, join_community):
    admin_headers, _ = await register("community_admin")
    community = await create_community(admin_headers)
    member_headers, _ = await register("member")
    await join_community(member_headers, community["community_code"])

    payload = {
        "title": "Spinning circle",
        "community_id": community["community_id"],
        "date": _at(3),
        "event_type": "workshop",
        "location": "Hall",
    }
    response = await client.post(f"{API}/events", json=payload, headers=member_headers)
    assert response.status_code == 403

    response = await client.post(f"{API}/events", json=payload, headers=admin_headers)
    assert response.status_code == 201, response.text
    event = response.json()["event"]
    assert event["status"] == "scheduled"

    listed = (await client.get(f"{API}/events", params={"community_id": community["community_id"]}, headers=member_headers)).json()
    assert [e["event_id"] for e in listed["events"]] == [event["event_id"]]

    window = {"community_id": community["community_id"], "start_date": _at(5)}
    assert (await client.get(f"{API}/events", params=window, headers=member_headers)).json()["events"] == []

    notes = (await client.get(f"{API}/notifications", params={"type": "event_created"}, headers=member_headers)).json()
    assert len(notes["notifications"]) == 1

    response = await client.put(f"{API}/events/{event['event_id']}", json={"status": "cancelled"}, headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["event"]["status"] == "cancelled"

    response = await client.delete(f"{API}/events/{event['event_id']}", headers=admin_headers)
    assert response.status_code == 200
    response = await client.get(f"{API}/events/{event['event_id']}", headers=admin_headers)
    assert response.status_code == 404


async def test_end_date_before_start_rejected(client, register, create_community):
    admin_headers, _ = await register("community_admin")
    community = await create_community(admin_headers)
    response = await client.post(
        f"{API}/events",
        json={"title": "Backwards", "community_id": community["community_id"], "date": _at(3), "end_date": _at(1)},
        headers=admin_headers,
    )
    assert response.status_code == 422
