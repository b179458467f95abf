"""
API tests for profile endpoints: authentication, ownership, the admin role
gate, search and nearby discovery.
"""

import uuid

import pytest


def _data(response):
    return response.json()["data"]


# ============================================================================
# Authentication
# ============================================================================


class TestAuthentication:
    @pytest.mark.asyncio
    async def test_missing_token(self, api_client):
        response = await api_client.get("/api/profiles/me")
        assert response.status_code == 401
        assert response.json()["error"] == {
            "code": "UNAUTHORIZED",
            "message": "Missing or invalid authorization header",
        }

    @pytest.mark.asyncio
    async def test_rejected_token(self, api_client):
        response = await api_client.get(
            "/api/profiles/me", headers={"Authorization": "Bearer forged"}
        )
        assert response.status_code == 401
        assert response.json()["error"]["message"] == "Invalid or expired token"

    @pytest.mark.asyncio
    async def test_identity_without_profile(self, api_client, fake_auth):
        token = fake_auth.add_user()
        response = await api_client.get(
            "/api/profiles/me", headers={"Authorization": f"Bearer {token}"}
        )
        assert response.status_code == 404
        assert response.json()["error"] == {
            "code": "PROFILE_NOT_FOUND",
            "message": "User profile not found",
        }

    @pytest.mark.asyncio
    async def test_me(self, api_client, make_user):
        profile, headers = await make_user(display_name="Ada")
        response = await api_client.get("/api/profiles/me", headers=headers)
        assert response.status_code == 200
        assert _data(response)["id"] == profile["id"]
        assert _data(response)["displayName"] == "Ada"


# ============================================================================
# Create
# ============================================================================


class TestCreateProfile:
    @pytest.mark.asyncio
    async def test_create_uses_identity(self, api_client, fake_auth):
        user_id = str(uuid.uuid4())
        token = fake_auth.add_user(user_id=user_id, phone="+15550001234")
        headers = {"Authorization": f"Bearer {token}"}

        response = await api_client.post(
            "/api/profiles", json={"displayName": "Ada", "handle": "ada"}, headers=headers
        )
        assert response.status_code == 201
        profile = _data(response)
        assert profile["id"] == user_id
        assert profile["handle"] == "ada"
        assert profile["phoneNumber"] == "+15550001234"
        assert fake_auth.metadata_updates == [(user_id, {"display_name": "Ada"})]

        again = await api_client.post("/api/profiles", json={"displayName": "Ada"}, headers=headers)
        assert again.status_code == 409
        assert again.json()["error"] == {"code": "CONFLICT", "message": "Profile already exists"}

    @pytest.mark.asyncio
    async def test_create_reports_all_invalid_fields(self, api_client, fake_auth):
        headers = {"Authorization": f"Bearer {fake_auth.add_user()}"}
        response = await api_client.post(
            "/api/profiles",
            json={"displayName": "", "handle": "no!", "avatarUrl": "nope"},
            headers=headers,
        )
        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "VALIDATION_ERROR"
        assert {d["field"] for d in error["details"]} == {
            "body.displayName",
            "body.handle",
            "body.avatarUrl",
        }

    @pytest.mark.asyncio
    async def test_taken_handle_conflicts(self, api_client, fake_auth, make_user):
        await make_user(handle="ada")
        headers = {"Authorization": f"Bearer {fake_auth.add_user()}"}
        response = await api_client.post(
            "/api/profiles", json={"displayName": "Ada", "handle": "ada"}, headers=headers
        )
        assert response.status_code == 409


# ============================================================================
# Read and search
# ============================================================================


class TestReadProfiles:
    @pytest.mark.asyncio
    async def test_get_by_id_is_public(self, api_client, make_user):
        profile, _ = await make_user(display_name="Ada")
        response = await api_client.get(f"/api/profiles/{profile['id']}")
        assert response.status_code == 200
        assert _data(response)["displayName"] == "Ada"

    @pytest.mark.asyncio
    async def test_get_missing_and_malformed_ids(self, api_client):
        missing = await api_client.get(f"/api/profiles/{uuid.uuid4()}")
        assert missing.status_code == 404
        assert missing.json()["error"] == {"code": "NOT_FOUND", "message": "Profile not found"}

        malformed = await api_client.get("/api/profiles/not-a-uuid")
        assert malformed.status_code == 400
        assert malformed.json()["error"]["code"] == "VALIDATION_ERROR"

    @pytest.mark.asyncio
    async def test_search_with_pagination_meta(self, api_client, make_user):
        await make_user(display_name="Ada Lovelace")
        await make_user(display_name="Adam Ant")
        await make_user(display_name="Bob")

        response = await api_client.get("/api/profiles?display_name=ada&limit=1")
        assert response.status_code == 200
        body = response.json()
        assert len(body["data"]) == 1
        assert body["meta"] == {"page": 1, "limit": 1, "total": 2, "hasMore": True}

    @pytest.mark.asyncio
    async def test_search_by_role(self, api_client, make_user):
        admin, _ = await make_user(display_name="Boss", role="admin")
        await make_user(display_name="Rider")
        response = await api_client.get("/api/profiles?role=admin")
        assert [p["id"] for p in _data(response)] == [admin["id"]]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("query", ["limit=101", "limit=0", "page=0", "role=king"])
    async def test_search_rejects_bad_query(self, api_client, query):
        response = await api_client.get(f"/api/profiles?{query}")
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    @pytest.mark.asyncio
    async def test_nearby(self, api_client, make_user):
        _, headers = await make_user(display_name="Seeker")
        near, _ = await make_user(
            display_name="Near", isAvailable=True, latitude=37.7749, longitude=-122.4194
        )
        await make_user(display_name="Far", isAvailable=True, latitude=34.0522, longitude=-118.2437)
        await make_user(display_name="Hidden", isAvailable=False, latitude=37.7749, longitude=-122.4194)

        response = await api_client.get(
            "/api/profiles/nearby?latitude=37.78&longitude=-122.42&radius=25", headers=headers
        )
        assert response.status_code == 200
        results = _data(response)
        assert [p["id"] for p in results] == [near["id"]]
        assert results[0]["distanceKm"] < 2

    @pytest.mark.asyncio
    async def test_nearby_requires_auth_and_valid_radius(self, api_client, make_user):
        unauthenticated = await api_client.get("/api/profiles/nearby?latitude=1&longitude=1")
        assert unauthenticated.status_code == 401

        _, headers = await make_user()
        too_wide = await api_client.get(
            "/api/profiles/nearby?latitude=1&longitude=1&radius=500", headers=headers
        )
        assert too_wide.status_code == 400


# ============================================================================
# Updates
# ============================================================================


class TestUpdateProfile:
    @pytest.mark.asyncio
    async def test_update_own_profile(self, api_client, fake_auth, make_user):
        profile, headers = await make_user(display_name="Ada")
        response = await api_client.patch(
            f"/api/profiles/{profile['id']}",
            json={"fullName": "Countess Ada", "bio": "Twisties"},
            headers=headers,
        )
        assert response.status_code == 200
        updated = _data(response)
        assert updated["displayName"] == "Countess Ada"
        assert updated["bio"] == "Twisties"
        assert fake_auth.metadata_updates == [(profile["id"], {"display_name": "Countess Ada"})]

    @pytest.mark.asyncio
    async def test_update_without_name_skips_metadata_sync(self, api_client, fake_auth, make_user):
        profile, headers = await make_user()
        response = await api_client.patch(
            f"/api/profiles/{profile['id']}", json={"bio": "Hi"}, headers=headers
        )
        assert response.status_code == 200
        assert fake_auth.metadata_updates == []

    @pytest.mark.asyncio
    async def test_display_name_cannot_be_nulled(self, api_client, fake_auth, make_user):
        profile, headers = await make_user(display_name="Ada")
        response = await api_client.patch(
            f"/api/profiles/{profile['id']}", json={"displayName": None}, headers=headers
        )
        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "VALIDATION_ERROR"
        assert [d["field"] for d in error["details"]] == ["body.displayName"]
        assert fake_auth.metadata_updates == []

        me = await api_client.get("/api/profiles/me", headers=headers)
        assert _data(me)["displayName"] == "Ada"

    @pytest.mark.asyncio
    async def test_cannot_update_someone_else(self, api_client, make_user):
        other, _ = await make_user(display_name="Other")
        _, headers = await make_user(display_name="Me")
        response = await api_client.patch(
            f"/api/profiles/{other['id']}", json={"bio": "Hacked"}, headers=headers
        )
        assert response.status_code == 403
        assert response.json()["error"] == {
            "code": "FORBIDDEN",
            "message": "You can only modify your own profile",
        }

    @pytest.mark.asyncio
    async def test_location_and_availability(self, api_client, make_user):
        profile, headers = await make_user()
        location = await api_client.patch(
            f"/api/profiles/{profile['id']}/location",
            json={"latitude": 45.5, "longitude": -122.6},
            headers=headers,
        )
        assert location.status_code == 200
        assert _data(location)["latitude"] == 45.5

        availability = await api_client.patch(
            f"/api/profiles/{profile['id']}/availability",
            json={"isAvailable": True},
            headers=headers,
        )
        assert availability.status_code == 200
        assert _data(availability)["isAvailable"] is True

        bad = await api_client.patch(
            f"/api/profiles/{profile['id']}/location",
            json={"latitude": 120, "longitude": 0},
            headers=headers,
        )
        assert bad.status_code == 400


# ============================================================================
# Role gate and deletion
# ============================================================================


class TestRoleAndDelete:
    @pytest.mark.asyncio
    async def test_rider_cannot_change_roles(self, api_client, make_user):
        target, _ = await make_user(display_name="Target")
        _, headers = await make_user(display_name="Rider")
        response = await api_client.patch(
            f"/api/profiles/{target['id']}/role", json={"role": "admin"}, headers=headers
        )
        assert response.status_code == 403
        assert response.json()["error"]["message"] == "Insufficient permissions"

    @pytest.mark.asyncio
    async def test_admin_changes_role(self, api_client, make_user):
        target, _ = await make_user(display_name="Target")
        _, headers = await make_user(display_name="Admin", role="admin")
        response = await api_client.patch(
            f"/api/profiles/{target['id']}/role", json={"role": "moderator"}, headers=headers
        )
        assert response.status_code == 200
        assert _data(response)["role"] == "moderator"

    @pytest.mark.asyncio
    async def test_admin_role_change_validates_role(self, api_client, make_user):
        target, _ = await make_user()
        _, headers = await make_user(role="admin")
        response = await api_client.patch(
            f"/api/profiles/{target['id']}/role", json={"role": "emperor"}, headers=headers
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_delete_own_profile(self, api_client, make_user):
        profile, headers = await make_user()
        response = await api_client.delete(f"/api/profiles/{profile['id']}", headers=headers)
        assert response.status_code == 204
        assert response.content == b""

        gone = await api_client.get(f"/api/profiles/{profile['id']}")
        assert gone.status_code == 404

    @pytest.mark.asyncio
    async def test_cannot_delete_someone_else(self, api_client, make_user):
        other, _ = await make_user(display_name="Other")
        _, headers = await make_user(display_name="Me")
        response = await api_client.delete(f"/api/profiles/{other['id']}", headers=headers)
        assert response.status_code == 403
