"""Passkey registration/login and session endpoints."""

from fastapi import APIRouter, Response

from ..core import CurrentUserDep, get_settings, session_max_age_seconds
from ..schemas import (
    CeremonyFinishRequest,
    MeResponse,
    MessageResponse,
    UsernameRequest,
    VerifiedResponse,
)
from .deps import AuthServiceDep

router = APIRouter(tags=["auth"])
settings = get_settings()


def set_session_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=settings.session_cookie_name,
        value=token,
        max_age=session_max_age_seconds(),
        httponly=True,
        secure=settings.cookie_secure,
        samesite="strict",
        path="/",
    )


# =============================================================================
# REGISTRATION
# =============================================================================


@router.post("/register/start")
async def register_start(data: UsernameRequest, auth: AuthServiceDep):
    """Issue registration options; the browser passes them to navigator.credentials.create()."""
    ceremony, user = await auth.start_registration(data.username)
    return {**ceremony.options, "userId": str(user.id)}


@router.post("/register/finish", response_model=VerifiedResponse)
async def register_finish(data: CeremonyFinishRequest, auth: AuthServiceDep):
    await auth.finish_registration(data.user_id, data.response)
    return VerifiedResponse(verified=True)


# =============================================================================
# LOGIN
# =============================================================================


@router.post("/login/start")
async def login_start(data: UsernameRequest, auth: AuthServiceDep):
    ceremony, user = await auth.start_login(data.username)
    return {**ceremony.options, "userId": str(user.id)}


@router.post("/login/finish", response_model=VerifiedResponse)
async def login_finish(
    data: CeremonyFinishRequest,
    response: Response,
    auth: AuthServiceDep,
):
    """Verify the assertion and deliver the session as an HTTP-only cookie."""
    result = await auth.finish_login(data.user_id, data.response)
    set_session_cookie(response, result.session_token)
    return VerifiedResponse(verified=True)


# =============================================================================
# SESSION
# =============================================================================


@router.get("/me", response_model=MeResponse)
async def me(current_user: CurrentUserDep):
    user = current_user.user
    return MeResponse(
        id=user.id,
        username=user.username,
        family_number=user.family.number if user.family else None,
        surname=user.family.surname if user.family else None,
        is_vendor=user.vendor is not None,
        vendor_id=user.vendor.id if user.vendor else None,
    )


@router.post("/logout", response_model=MessageResponse)
async def logout(response: Response):
    response.delete_cookie(
        key=settings.session_cookie_name,
        path="/",
        httponly=True,
        secure=settings.cookie_secure,
        samesite="strict",
    )
    return MessageResponse(message="Logged out successfully")
