"""Phone OTP authentication route handlers."""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Request
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from broad.api.auth_dependencies import security
from broad.api.routes import limiter
from broad.database.db import get_db_session
from broad.database.models import ProfileRole
from broad.models.schemas import PhoneAuthRequest, RefreshRequest, VerifyOtpRequest
from broad.services import profile_service
from broad.services.auth_service import (
    AuthProviderError,
    SupabaseAuthClient,
    get_auth_client,
    placeholder_display_name,
)
from broad.utils.errors import ApiError, BadRequestError, InternalError, UnauthorizedError
from broad.utils.response import success_response

logger = logging.getLogger(__name__)
router = APIRouter()


def _public_session(session: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "access_token": session.get("access_token"),
        "refresh_token": session.get("refresh_token"),
        "expires_at": session.get("expires_at"),
    }


@router.post("/api/auth/phone", response_model=Dict[str, Any])
@limiter.limit("5/minute")
async def request_phone_otp(
    request: Request,
    payload: PhoneAuthRequest,
    session: AsyncSession = Depends(get_db_session),
    auth_client: SupabaseAuthClient = Depends(get_auth_client),
):
    """
    Send an OTP to a phone number. Login and signup share this step.

    New numbers get an identity created by the provider with a placeholder
    display name in its metadata.
    """
    try:
        existing = await profile_service.find_profile_by_phone(session, payload.phone)
        is_new_user = existing is None

        metadata = None
        if is_new_user:
            metadata = {"display_name": placeholder_display_name(payload.phone), "handle": None}

        await auth_client.send_otp(payload.phone, create_user=is_new_user, data=metadata)

        return success_response({"message": "OTP sent successfully", "isNewUser": is_new_user})
    except AuthProviderError as e:
        if e.code == "validation_failed":
            raise BadRequestError("Invalid phone number provided")
        raise BadRequestError(e.message)
    except ApiError:
        raise
    except Exception as e:
        logger.error(f"Error sending OTP: {str(e)}", exc_info=True)
        raise InternalError()


@router.post("/api/auth/verify", response_model=Dict[str, Any])
@limiter.limit("10/minute")
async def verify_phone_otp(
    request: Request,
    payload: VerifyOtpRequest,
    session: AsyncSession = Depends(get_db_session),
    auth_client: SupabaseAuthClient = Depends(get_auth_client),
):
    """
    Verify the OTP and return a session.

    Creates the rider profile on first login.
    """
    try:
        try:
            result = await auth_client.verify_otp(payload.phone, payload.token)
        except AuthProviderError:
            raise BadRequestError("Invalid or expired OTP")

        user, auth_session = result["user"], result["session"]
        if not user or not auth_session:
            raise BadRequestError("Verification failed")

        profile = await profile_service.find_profile_by_id(session, user["id"])
        is_new_user = profile is None
        if is_new_user:
            profile = await profile_service.create_profile(
                session,
                user["id"],
                {
                    "displayName": placeholder_display_name(payload.phone),
                    "phoneNumber": payload.phone,
                    "handle": None,
                    "role": ProfileRole.RIDER.value,
                },
            )

        return success_response(
            {
                "user": {"id": user["id"], "phone": user.get("phone"), "email": user.get("email")},
                "profile": profile,
                "session": _public_session(auth_session),
                "isNewUser": is_new_user,
            }
        )
    except ApiError:
        raise
    except Exception as e:
        logger.error(f"Error verifying OTP: {str(e)}", exc_info=True)
        raise InternalError()


@router.post("/api/auth/refresh", response_model=Dict[str, Any])
async def refresh_token(
    payload: RefreshRequest,
    auth_client: SupabaseAuthClient = Depends(get_auth_client),
):
    """Exchange a refresh token for a new session."""
    try:
        result = await auth_client.refresh_session(payload.refresh_token)
    except AuthProviderError as e:
        logger.info(f"Token refresh rejected: {e.message}")
        raise UnauthorizedError("Invalid or expired refresh token")
    except Exception as e:
        logger.error(f"Error refreshing token: {str(e)}", exc_info=True)
        raise InternalError()

    if not result["session"]:
        raise UnauthorizedError("Invalid or expired refresh token")
    return success_response({"session": _public_session(result["session"])})


@router.post("/api/auth/logout", response_model=Dict[str, Any])
async def logout(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    auth_client: SupabaseAuthClient = Depends(get_auth_client),
):
    """Revoke the caller's session if a bearer token is sent. Always succeeds."""
    if credentials is not None and credentials.credentials:
        try:
            await auth_client.sign_out(credentials.credentials)
        except AuthProviderError as e:
            logger.warning(f"Provider sign-out failed: {e.message}")
    return success_response({"message": "Logged out successfully"})
