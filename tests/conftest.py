# tests/conftest.py

import itertools
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest
from httpx import ASGITransport, AsyncClient

from loomio.constants.constants import CommunityRole, UserRole
from loomio.core.database import session_manager
from loomio.core.rate_limit import limiter
from loomio.core.security import hash_password
from loomio.main import app
from loomio.models.community import Community, UserCommunity
from loomio.models.user import User

API = "/api/v1"
PASSWORD = "secret123"


@pytest.fixture
async def database(tmp_path):
    """Fresh SQLite file per test; the ASGI transport does not run the app lifespan."""
    await session_manager.init(f"sqlite+aiosqlite:///{tmp_path}/loomio_test.db")
    yield session_manager
    await session_manager.close()


@pytest.fixture
async def db(database):
    async with database.session_factory() as session:
        yield session


@pytest.fixture
async def client(database):
    limiter.reset()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


# ------------------------------
# Service-level factories
# ------------------------------
@pytest.fixture
def make_user(db):
    counter = itertools.count(1)

    async def _make(role: UserRole = UserRole.member, full_name: str = None) -> User:
        n = next(counter)
        user = User(
            email=f"user{n}@example.com",
            full_name=full_name or f"User {n}",
            role=role,
            points=0,
            is_active=True,
        )
        db.add(user)
        await db.flush()
        return user

    return _make


@pytest.fixture
async def community(db, make_user):
    """A community with one community admin, returned as (community, admin)."""
    admin = await make_user(UserRole.community_admin, "Ada Admin")
    community = Community(name="Weavers", description="Test community", community_code="WEAVE1", created_by=admin.user_id)
    db.add(community)
    await db.flush()
    db.add(UserCommunity(user_id=admin.user_id, community_id=community.community_id, role=CommunityRole.community_admin))
    await db.flush()
    return community, admin


@pytest.fixture
def add_member(db, make_user):
    async def _add(community: Community, full_name: str = None) -> User:
        user = await make_user(UserRole.member, full_name)
        db.add(UserCommunity(user_id=user.user_id, community_id=community.community_id, role=CommunityRole.member))
        await db.flush()
        return user

    return _add


# ------------------------------
# HTTP helpers
# ------------------------------
@pytest.fixture
def register(client):
    counter = itertools.count(1)

    async def _register(role: str = "member", full_name: str = None):
        n = next(counter)
        response = await client.post(
            f"{API}/auth/register",
            json={
                "email": f"{role}{n}@example.com",
                "password": PASSWORD,
                "full_name": full_name or f"{role.title()} {n}",
                "role": role,
            },
        )
        assert response.status_code == 201, response.text
        body = response.json()
        return {"Authorization": f"Bearer {body['token']}"}, body["user"]

    return _register


@pytest.fixture
def create_community(client):
    async def _create(headers, name: str = "Weavers"):
        response = await client.post(f"{API}/communities", json={"name": name, "description": "Test"}, headers=headers)
        assert response.status_code == 201, response.text
        return response.json()["community"]

    return _create


@pytest.fixture
def join_community(client):
    async def _join(headers, code: str):
        response = await client.post(f"{API}/communities/join", json={"community_code": code}, headers=headers)
        assert response.status_code == 200, response.text
        return response.json()

    return _join


@pytest.fixture
async def admin_and_member(register, create_community, join_community):
    """A community created over HTTP by a community admin, with one joined member."""
    admin_headers, admin = await register("community_admin", "Ada Admin")
    community = await create_community(admin_headers)
    member_headers, member = await register("member", "Mia Member")
    await join_community(member_headers, community["community_code"])
    return SimpleNamespace(
        admin_headers=admin_headers,
        admin=admin,
        member_headers=member_headers,
        member=member,
        community=community,
    )


@pytest.fixture
async def platform_admin(client, db):
    """Platform admins cannot self-register, so the account is written directly and then logged in."""
    db.add(User(
        email="root@example.com",
        full_name="Pat Platform",
        password_hash=hash_password(PASSWORD),
        role=UserRole.platform_admin,
        points=0,
        is_active=True,
    ))
    await db.commit()
    response = await client.post(f"{API}/auth/login", json={"email": "root@example.com", "password": PASSWORD})
    assert response.status_code == 200, response.text
    body = response.json()
    return {"Authorization": f"Bearer {body['token']}"}, body["user"]


@pytest.fixture
def create_task(client):
    async def _create(headers, community_id, **overrides):
        payload = {
            "title": "Collect wool",
            "community_id": community_id,
            "deadline": (datetime.now(timezone.utc) + timedelta(days=1)).isoformat(),
        }
        payload.update(overrides)
        response = await client.post(f"{API}/tasks", json=payload, headers=headers)
        assert response.status_code == 201, response.text
        return response.json()["task"]

    return _create


@pytest.fixture
def complete_task(client):
    """Drive one member's assignment from self-assign to an approved review."""
    async def _complete(member_headers, admin_headers, task_id):
        response = await client.post(f"{API}/tasks/{task_id}/self-assign", headers=member_headers)
        assert response.status_code == 201, response.text
        for status in ("accepted", "in_progress"):
            response = await client.put(f"{API}/tasks/{task_id}/status", json={"status": status}, headers=member_headers)
            assert response.status_code == 200, response.text
        response = await client.post(f"{API}/tasks/{task_id}/submit", json={}, headers=member_headers)
        assert response.status_code == 200, response.text
        response = await client.post(f"{API}/tasks/{task_id}/review", json={"action": "approve"}, headers=admin_headers)
        assert response.status_code == 200, response.text
        return response.json()

    return _complete
