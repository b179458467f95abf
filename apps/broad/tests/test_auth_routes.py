"""
API tests for phone OTP authentication, the health probe and the error envelope.

The auth provider is the in-memory FakeAuthClient from conftest.
"""

import pytest
from sqlalchemy.exc import OperationalError

from broad.database.db import get_db_session

VALID_OTP = "123456"

PHONE = "+15551234567"


async def _verify(api_client, phone=PHONE, token=VALID_OTP):
    return await api_client.post("/api/auth/verify", json={"phone": phone, "token": token})


# ============================================================================
# OTP request
# ============================================================================


class TestRequestOtp:
    @pytest.mark.asyncio
    async def test_new_number(self, api_client, fake_auth):
        response = await api_client.post("/api/auth/phone", json={"phone": PHONE})
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["data"] == {"message": "OTP sent successfully", "isNewUser": True}

        sent = fake_auth.sent_otps[0]
        assert sent["phone"] == PHONE
        assert sent["create_user"] is True
        assert sent["data"] == {"display_name": "User 4567", "handle": None}

    @pytest.mark.asyncio
    async def test_known_number(self, api_client, fake_auth, make_user):
        await make_user(phoneNumber=PHONE)
        response = await api_client.post("/api/auth/phone", json={"phone": PHONE})
        assert response.status_code == 200
        assert response.json()["data"]["isNewUser"] is False
        assert fake_auth.sent_otps[0]["create_user"] is False
        assert fake_auth.sent_otps[0]["data"] is None

    @pytest.mark.asyncio
    async def test_invalid_number(self, api_client):
        response = await api_client.post("/api/auth/phone", json={"phone": "5551234567"})
        assert response.status_code == 400
        assert response.json() == {
            "success": False,
            "error": {"code": "BAD_REQUEST", "message": "Invalid phone number provided"},
        }

    @pytest.mark.asyncio
    async def test_missing_phone_is_a_validation_error(self, api_client):
        response = await api_client.post("/api/auth/phone", json={})
        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "VALIDATION_ERROR"
        assert error["message"] == "Invalid request data"
        assert error["details"][0]["field"] == "body.phone"


# ============================================================================
# OTP verification
# ============================================================================


class TestVerifyOtp:
    @pytest.mark.asyncio
    async def test_first_login_creates_profile(self, api_client):
        response = await _verify(api_client)
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["isNewUser"] is True
        assert data["user"]["phone"] == PHONE
        assert data["profile"]["id"] == data["user"]["id"]
        assert data["profile"]["displayName"] == "User 4567"
        assert data["profile"]["phoneNumber"] == PHONE
        assert data["profile"]["role"] == "rider"
        assert data["session"]["access_token"].startswith("token-")
        assert data["session"]["refresh_token"]

        me = await api_client.get(
            "/api/profiles/me",
            headers={"Authorization": f"Bearer {data['session']['access_token']}"},
        )
        assert me.status_code == 200
        assert me.json()["data"]["id"] == data["user"]["id"]

    @pytest.mark.asyncio
    async def test_second_login_reuses_profile(self, api_client):
        first = (await _verify(api_client)).json()["data"]
        second = (await _verify(api_client)).json()["data"]
        assert second["isNewUser"] is False
        assert second["profile"]["id"] == first["profile"]["id"]

    @pytest.mark.asyncio
    async def test_wrong_code(self, api_client):
        response = await _verify(api_client, token="000000")
        assert response.status_code == 400
        assert response.json()["error"] == {
            "code": "BAD_REQUEST",
            "message": "Invalid or expired OTP",
        }

    @pytest.mark.asyncio
    async def test_malformed_code(self, api_client):
        response = await _verify(api_client, token="12ab56")
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"


# ============================================================================
# Refresh and logout
# ============================================================================


class TestSessionLifecycle:
    @pytest.mark.asyncio
    async def test_refresh(self, api_client):
        session = (await _verify(api_client)).json()["data"]["session"]
        response = await api_client.post(
            "/api/auth/refresh", json={"refresh_token": session["refresh_token"]}
        )
        assert response.status_code == 200
        refreshed = response.json()["data"]["session"]
        assert refreshed["access_token"] != session["access_token"]

    @pytest.mark.asyncio
    async def test_refresh_with_unknown_token(self, api_client):
        response = await api_client.post("/api/auth/refresh", json={"refresh_token": "nope"})
        assert response.status_code == 401
        assert response.json()["error"] == {
            "code": "UNAUTHORIZED",
            "message": "Invalid or expired refresh token",
        }

    @pytest.mark.asyncio
    async def test_logout_revokes_token(self, api_client, fake_auth):
        token = (await _verify(api_client)).json()["data"]["session"]["access_token"]
        headers = {"Authorization": f"Bearer {token}"}

        response = await api_client.post("/api/auth/logout", headers=headers)
        assert response.status_code == 200
        assert response.json()["data"] == {"message": "Logged out successfully"}
        assert fake_auth.signed_out == [token]

        me = await api_client.get("/api/profiles/me", headers=headers)
        assert me.status_code == 401

    @pytest.mark.asyncio
    async def test_logout_without_token(self, api_client, fake_auth):
        response = await api_client.post("/api/auth/logout")
        assert response.status_code == 200
        assert fake_auth.signed_out == []


# ============================================================================
# Health and error envelope
# ============================================================================


@pytest.mark.asyncio
async def test_health(api_client):
    response = await api_client.get("/health")
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["status"] == "ok"
    assert data["uptime"] >= 0
    assert "timestamp" in data
    assert "environment" in data


@pytest.mark.asyncio
async def test_unknown_route_uses_envelope(api_client):
    response = await api_client.get("/api/nothing-here")
    assert response.status_code == 404
    assert response.json() == {
        "success": False,
        "error": {"code": "NOT_FOUND", "message": "Not Found"},
    }


class _BrokenSession:
    """Session stand-in whose every query fails in the driver."""

    async def execute(self, *args, **kwargs):
        raise OperationalError(
            "SELECT rides.id FROM rides WHERE secret_col = ?", {"p": 1}, Exception("disk I/O error")
        )


async def _broken_session():
    yield _BrokenSession()


@pytest.mark.asyncio
async def test_storage_failure_hides_driver_details(api_client):
    from broad.api.main import app

    app.dependency_overrides[get_db_session] = _broken_session
    response = await api_client.get("/api/rides/upcoming")

    assert response.status_code == 500
    assert response.json() == {
        "success": False,
        "error": {"code": "INTERNAL_ERROR", "message": "Internal server error"},
    }
    assert "secret_col" not in response.text
