"""One-time invite links for adding another family device."""

from fastapi import APIRouter, Response

from ..core import FamilyMemberDep, get_settings
from ..schemas import (
    InviteCreateResponse,
    InviteFinishRequest,
    InviteFinishResponse,
    InviteStartRequest,
    InviteUser,
    InviteValidateResponse,
)
from .auth import set_session_cookie
from .deps import InviteServiceDep

router = APIRouter(prefix="/invite", tags=["invite"])
settings = get_settings()


@router.post("/create", response_model=InviteCreateResponse)
async def create_invite(current_user: FamilyMemberDep, invites: InviteServiceDep):
    invite = await invites.create(current_user.user)
    return InviteCreateResponse(
        invite_url=f"{settings.rp_origin}/invite?token={invite.token}",
        token=invite.token,
        expires_at=invite.expires_at,
    )


@router.get("/validate/{token}", response_model=InviteValidateResponse)
async def validate_invite(token: str, invites: InviteServiceDep):
    invite = await invites.validate(token)
    return InviteValidateResponse(
        family_number=invite.family.number,
        surname=invite.family.surname,
        expires_at=invite.expires_at,
    )


@router.post("/start")
async def start_invite(data: InviteStartRequest, invites: InviteServiceDep):
    ceremony, user, family = await invites.start(data.token, data.username)
    return {
        **ceremony.options,
        "userId": str(user.id),
        "family_number": family.number,
        "surname": family.surname,
    }


@router.post("/finish", response_model=InviteFinishResponse)
async def finish_invite(
    data: InviteFinishRequest,
    response: Response,
    invites: InviteServiceDep,
):
    """Join the inviter's family; the new device is signed in straight away."""
    registration = await invites.finish(data.token, data.response)
    set_session_cookie(response, registration.session_token)
    return InviteFinishResponse(
        user=InviteUser(
            id=registration.user.id,
            username=registration.user.username,
            family_number=registration.family.number,
            surname=registration.family.surname,
        ),
        token=registration.session_token,
    )
