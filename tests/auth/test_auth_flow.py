"""Integration tests for signup, login, logout and the session gate."""

from __future__ import annotations

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select

from bagelfunds.auth.jwt import create_session_token, verify_session_token
from bagelfunds.auth.password import verify_password
from bagelfunds.auth.service import get_user_by_email, get_user_by_username, register_user
from bagelfunds.db.models import User
from bagelfunds.flash import RuleViolation

SIGNUP = {"username": "sho", "email": "sho@example.com", "password": "bagels4ever"}


class TestSignup:
    @pytest.mark.asyncio
    async def test_signup_success(self, client: AsyncClient, session_scope):
        response = await client.post("/signup", json=SIGNUP)
        assert response.status_code == 201
        data = response.json()
        assert data["message"] == "Signup successful"
        assert data["user"]["username"] == "sho"
        assert data["user"]["email"] == "sho@example.com"
        assert "password" not in data["user"]

        async with session_scope() as db:
            users = (await db.execute(select(User))).scalars().all()
        assert len(users) == 1
        assert verify_password("bagels4ever", users[0].password)
        assert not verify_password("bagels4evr", users[0].password)
        assert users[0].password != "bagels4ever"

    @pytest.mark.asyncio
    async def test_duplicate_username(self, client: AsyncClient, session_scope):
        await client.post("/signup", json=SIGNUP)
        response = await client.post("/signup", json={**SIGNUP, "email": "other@example.com"})
        assert response.status_code == 303
        assert response.headers["location"] == "/?e=username_taken"

        async with session_scope() as db:
            count = (await db.execute(select(func.count()).select_from(User))).scalar_one()
        assert count == 1

    @pytest.mark.asyncio
    async def test_duplicate_email_case_insensitive(self, client: AsyncClient):
        await client.post("/signup", json=SIGNUP)
        response = await client.post("/signup", json={**SIGNUP, "username": "sho2", "email": "SHO@example.com"})
        assert response.status_code == 303
        assert response.headers["location"] == "/?e=email_taken"

    @pytest.mark.asyncio
    async def test_invalid_body(self, client: AsyncClient):
        response = await client.post("/signup", json={"username": "sho", "email": "nope", "password": "x"})
        assert response.status_code == 422
        assert response.json()["detail"] == "Validation error"


def _miss_first_lookup(real):
    """A lookup that misses once, like a concurrent signup that has not committed yet."""
    calls = []

    async def lookup(db, value):
        calls.append(value)
        if len(calls) == 1:
            return None
        return await real(db, value)

    return lookup


class TestSignupRace:
    @pytest.mark.asyncio
    async def test_username_taken_at_flush(self, make_user, session_scope, monkeypatch):
        await make_user("sho")
        monkeypatch.setattr(
            "bagelfunds.auth.service.get_user_by_username", _miss_first_lookup(get_user_by_username)
        )

        async with session_scope() as db:
            with pytest.raises(RuleViolation) as exc_info:
                await register_user(db, "sho", "other@example.com", "bagels4ever")
        assert exc_info.value.code == "username_taken"

        async with session_scope() as db:
            count = (await db.execute(select(func.count()).select_from(User))).scalar_one()
        assert count == 1

    @pytest.mark.asyncio
    async def test_email_taken_at_flush(self, make_user, session_scope, monkeypatch):
        await make_user("sho")
        monkeypatch.setattr("bagelfunds.auth.service.get_user_by_email", _miss_first_lookup(get_user_by_email))

        async with session_scope() as db:
            with pytest.raises(RuleViolation) as exc_info:
                await register_user(db, "sho2", "sho@example.com", "bagels4ever")
        assert exc_info.value.code == "email_taken"


class TestLogin:
    @pytest.mark.asyncio
    async def test_login_sets_session_cookie(self, client: AsyncClient):
        created = (await client.post("/signup", json=SIGNUP)).json()["user"]

        response = await client.post("/login", json={"username": "sho", "password": "bagels4ever"})
        assert response.status_code == 303
        assert response.headers["location"] == "/"
        token = response.cookies["loggedUser"]
        assert verify_session_token(token) == created["id"]
        assert "httponly" in response.headers["set-cookie"].lower()

    @pytest.mark.asyncio
    async def test_unknown_user(self, client: AsyncClient):
        response = await client.post("/login", json={"username": "ghost", "password": "bagels4ever"})
        assert response.status_code == 303
        assert response.headers["location"] == "/login?e=user_not_found"
        assert "loggedUser" not in response.cookies

    @pytest.mark.asyncio
    async def test_wrong_password(self, client: AsyncClient, fake_redis):
        await client.post("/signup", json=SIGNUP)
        response = await client.post("/login", json={"username": "sho", "password": "muffins4ever"})
        assert response.status_code == 303
        assert response.headers["location"] == "/login?e=wrong_password"
        assert "loggedUser" not in response.cookies
        assert list(fake_redis.store.values()) == [1]

    @pytest.mark.asyncio
    async def test_lockout_after_repeated_failures(self, client: AsyncClient):
        await client.post("/signup", json=SIGNUP)
        for _ in range(10):
            await client.post("/login", json={"username": "sho", "password": "muffins4ever"})

        response = await client.post("/login", json={"username": "sho", "password": "bagels4ever"})
        assert response.headers["location"] == "/login?e=account_locked"

    @pytest.mark.asyncio
    async def test_success_clears_failures(self, client: AsyncClient, fake_redis):
        await client.post("/signup", json=SIGNUP)
        await client.post("/login", json={"username": "sho", "password": "muffins4ever"})
        await client.post("/login", json={"username": "sho", "password": "bagels4ever"})
        assert fake_redis.store == {}

    @pytest.mark.asyncio
    async def test_login_page(self, client: AsyncClient):
        response = await client.get("/login")
        assert response.status_code == 200
        assert response.json() == {"page": "login"}


class TestSessionGate:
    @pytest.mark.asyncio
    async def test_logout_clears_cookie(self, client: AsyncClient):
        response = await client.get("/logout")
        assert response.status_code == 303
        assert response.headers["location"] == "/"
        set_cookie = response.headers["set-cookie"]
        assert set_cookie.startswith("loggedUser=")
        assert "Max-Age=0" in set_cookie

    @pytest.mark.asyncio
    async def test_protected_page_requires_session(self, client: AsyncClient):
        response = await client.get("/profile")
        assert response.status_code == 303
        assert response.headers["location"] == "/?e=login_required"

    @pytest.mark.asyncio
    async def test_forged_cookie_is_rejected_and_cleared(self, client: AsyncClient, make_user):
        await make_user("sho")
        client.cookies.set("loggedUser", "1")
        response = await client.get("/profile")
        assert response.headers["location"] == "/?e=login_required"
        assert "Max-Age=0" in response.headers["set-cookie"]

    @pytest.mark.asyncio
    async def test_session_for_deleted_user_is_rejected(self, client: AsyncClient):
        client.cookies.set("loggedUser", create_session_token(999))
        response = await client.get("/create")
        assert response.headers["location"] == "/?e=login_required"


class TestLanding:
    @pytest.mark.asyncio
    async def test_anonymous_landing(self, client: AsyncClient):
        response = await client.get("/")
        assert response.status_code == 200
        assert response.json() == {"page": "landing"}

    @pytest.mark.asyncio
    async def test_dashboard_after_login(self, client: AsyncClient):
        await client.post("/signup", json=SIGNUP)
        login = await client.post("/login", json={"username": "sho", "password": "bagels4ever"})
        client.cookies.clear()
        client.cookies.set("loggedUser", login.cookies["loggedUser"])

        response = await client.get("/")
        assert response.status_code == 200
        data = response.json()
        assert data["page"] == "dashboard"
        assert data["user"]["username"] == "sho"
        assert data["cycles"] == []
        assert data["pending_invites"] == 0
