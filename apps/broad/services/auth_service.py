"""
Client for the managed auth provider (GoTrue-compatible REST API).

Phone OTP login, token verification, refresh and sign-out are delegated to the
provider; this service never sees passwords or signs tokens itself.
"""

import logging
import os
from typing import Any, Dict, Optional

import httpx
from dotenv import load_dotenv
from fastapi import Request

load_dotenv()

logger = logging.getLogger(__name__)

SUPABASE_URL = os.getenv("SUPABASE_URL", "http://localhost:54321")
SUPABASE_ANON_KEY = os.getenv("SUPABASE_ANON_KEY", "")
SUPABASE_SERVICE_ROLE_KEY = os.getenv("SUPABASE_SERVICE_ROLE_KEY", "")
AUTH_TIMEOUT_SECONDS = float(os.getenv("AUTH_TIMEOUT_SECONDS", "10"))


class AuthProviderError(Exception):
    """
    The auth provider rejected a request or could not be reached.

    Attributes:
        message: Provider message (or transport error text)
        code: Provider error code such as ``validation_failed`` or ``otp_expired``
        status_code: Provider HTTP status (None on transport failure)
    """

    def __init__(self, message: str, code: Optional[str] = None, status_code: Optional[int] = None):
        self.message = message
        self.code = code
        self.status_code = status_code
        super().__init__(message)


def placeholder_display_name(phone: str) -> str:
    """Display name given to a new phone signup: ``User <last 4 digits>``."""
    digits = "".join(ch for ch in phone if ch.isdigit())
    return f"User {digits[-4:]}"


def _error_from_response(response: httpx.Response) -> AuthProviderError:
    try:
        body = response.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}
    message = (
        body.get("msg")
        or body.get("message")
        or body.get("error_description")
        or body.get("error")
        or f"Auth provider returned {response.status_code}"
    )
    code = body.get("error_code") or body.get("code") or body.get("error")
    return AuthProviderError(str(message), code=str(code) if code else None, status_code=response.status_code)


def _session_from_payload(payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    if not payload.get("access_token"):
        return None
    return {
        "access_token": payload.get("access_token"),
        "refresh_token": payload.get("refresh_token"),
        "expires_in": payload.get("expires_in"),
        "expires_at": payload.get("expires_at"),
        "token_type": payload.get("token_type", "bearer"),
    }


class SupabaseAuthClient:
    """
    Thin async wrapper over the provider's ``/auth/v1`` endpoints.

    One instance is created per process (see the app lifespan) and shares a
    pooled ``httpx.AsyncClient``. Every method raises ``AuthProviderError`` on
    a non-2xx response or a transport failure.
    """

    def __init__(
        self,
        base_url: str = SUPABASE_URL,
        anon_key: str = SUPABASE_ANON_KEY,
        service_key: str = SUPABASE_SERVICE_ROLE_KEY,
        timeout: float = AUTH_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.anon_key = anon_key
        self.service_key = service_key
        self._client = httpx.AsyncClient(
            base_url=f"{base_url.rstrip('/')}/auth/v1",
            timeout=timeout,
            transport=transport,
            headers={"apikey": anon_key},
        )

    async def _request(
        self,
        method: str,
        path: str,
        *,
        bearer: Optional[str] = None,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        headers = {"Authorization": f"Bearer {bearer or self.anon_key}"}
        try:
            response = await self._client.request(
                method, path, json=json, params=params, headers=headers
            )
        except httpx.HTTPError as e:
            logger.warning(f"Auth provider request {method} {path} failed: {e}")
            raise AuthProviderError(f"Auth provider unavailable: {e}") from e

        if response.status_code >= 400:
            error = _error_from_response(response)
            logger.warning(
                f"Auth provider {method} {path} returned {response.status_code}: {error.message}"
            )
            raise error

        if not response.content:
            return {}
        return response.json()

    async def send_otp(
        self, phone: str, create_user: bool = True, data: Optional[Dict[str, Any]] = None
    ) -> None:
        """
        Ask the provider to text a one-time code to ``phone``.

        Args:
            phone: Phone number in E.164 format
            create_user: Let the provider create the identity if it does not exist
            data: User metadata stored on a newly created identity
        """
        body: Dict[str, Any] = {"phone": phone, "create_user": create_user}
        if data is not None:
            body["data"] = data
        await self._request("POST", "/otp", json=body)

    async def verify_otp(self, phone: str, token: str) -> Dict[str, Any]:
        """
        Exchange an SMS code for a session.

        Returns:
            Dict with ``user`` (provider user object or None) and ``session``
            (access/refresh tokens or None)
        """
        payload = await self._request(
            "POST", "/verify", json={"type": "sms", "phone": phone, "token": token}
        )
        return {"user": payload.get("user"), "session": _session_from_payload(payload)}

    async def get_user(self, access_token: str) -> Dict[str, Any]:
        """Resolve an access token to the provider's user object."""
        return await self._request("GET", "/user", bearer=access_token)

    async def refresh_session(self, refresh_token: str) -> Dict[str, Any]:
        """Exchange a refresh token for a new session. Returns ``{user, session}``."""
        payload = await self._request(
            "POST",
            "/token",
            params={"grant_type": "refresh_token"},
            json={"refresh_token": refresh_token},
        )
        return {"user": payload.get("user"), "session": _session_from_payload(payload)}

    async def sign_out(self, access_token: str) -> None:
        """Revoke the session behind ``access_token``."""
        await self._request("POST", "/logout", bearer=access_token)

    async def update_user_metadata(self, user_id: str, metadata: Dict[str, Any]) -> Dict[str, Any]:
        """Merge ``metadata`` into the identity's user metadata (service-role call)."""
        return await self._request(
            "PUT",
            f"/admin/users/{user_id}",
            bearer=self.service_key,
            json={"user_metadata": metadata},
        )

    async def aclose(self) -> None:
        await self._client.aclose()


def get_auth_client(request: Request) -> SupabaseAuthClient:
    """
    FastAPI dependency returning the process-wide auth client.

    The client normally comes from the app lifespan; it is created on first
    use when the app runs without one.
    """
    client = getattr(request.app.state, "auth_client", None)
    if client is None:
        client = SupabaseAuthClient()
        request.app.state.auth_client = client
    return client
