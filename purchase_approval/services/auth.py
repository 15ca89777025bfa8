"""
Authentication: passkey (WebAuthn) ceremonies and session minting.

The cryptographic verification is delegated to py_webauthn behind the
WebAuthnCeremony protocol. This module owns the challenge lifecycle:
exactly one outstanding challenge per user, stored on the user row and
cleared by a successful finish.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Protocol
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from webauthn import (
    generate_authentication_options,
    generate_registration_options,
    options_to_json,
    verify_authentication_response,
    verify_registration_response,
)
from webauthn.helpers import base64url_to_bytes, bytes_to_base64url
from webauthn.helpers.exceptions import (
    InvalidAuthenticationResponse,
    InvalidRegistrationResponse,
)
from webauthn.helpers.structs import (
    AuthenticatorSelectionCriteria,
    AuthenticatorTransport,
    PublicKeyCredentialDescriptor,
    ResidentKeyRequirement,
    UserVerificationRequirement,
)

from ..core.config import get_settings
from ..core.security import create_session_token
from ..models import Authenticator, User
from .errors import CeremonyError, ConflictError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

USERNAME_RE = re.compile(r"^[A-Za-z0-9_.@-]{3,64}$")


# =============================================================================
# CEREMONY (CRYPTOGRAPHIC BLACK BOX)
# =============================================================================


@dataclass
class CeremonyOptions:
    """Options to hand to the browser plus the challenge to remember."""
    options: dict[str, Any]
    challenge: str  # base64url


@dataclass
class VerifiedCredential:
    credential_id: str  # base64url
    public_key: bytes
    sign_count: int
    transports: list[str] = field(default_factory=list)


class WebAuthnCeremony(Protocol):
    def registration_options(
        self, user_id: UUID, username: str, exclude_credential_ids: list[str]
    ) -> CeremonyOptions:
        ...

    def verify_registration(
        self, credential: dict[str, Any], expected_challenge: str
    ) -> VerifiedCredential:
        ...

    def authentication_options(self, authenticators: list[Authenticator]) -> CeremonyOptions:
        ...

    def verify_authentication(
        self,
        credential: dict[str, Any],
        expected_challenge: str,
        public_key: bytes,
        sign_count: int,
    ) -> int:
        """Verify an assertion and return the new sign count."""
        ...


def _transport(value: str) -> AuthenticatorTransport | None:
    try:
        return AuthenticatorTransport(value)
    except ValueError:
        return None


class PyWebAuthnCeremony:
    """WebAuthnCeremony backed by py_webauthn."""

    def __init__(self, rp_id: str, rp_name: str, origin: str):
        self._rp_id = rp_id
        self._rp_name = rp_name
        self._origin = origin

    @classmethod
    def from_settings(cls) -> "PyWebAuthnCeremony":
        settings = get_settings()
        return cls(settings.rp_id, settings.rp_name, settings.rp_origin)

    def registration_options(
        self, user_id: UUID, username: str, exclude_credential_ids: list[str]
    ) -> CeremonyOptions:
        options = generate_registration_options(
            rp_id=self._rp_id,
            rp_name=self._rp_name,
            user_id=str(user_id).encode(),
            user_name=username,
            exclude_credentials=[
                PublicKeyCredentialDescriptor(id=base64url_to_bytes(cid))
                for cid in exclude_credential_ids
            ],
            authenticator_selection=AuthenticatorSelectionCriteria(
                resident_key=ResidentKeyRequirement.REQUIRED,
                user_verification=UserVerificationRequirement.REQUIRED,
            ),
        )
        return CeremonyOptions(
            options=json.loads(options_to_json(options)),
            challenge=bytes_to_base64url(options.challenge),
        )

    def verify_registration(
        self, credential: dict[str, Any], expected_challenge: str
    ) -> VerifiedCredential:
        try:
            verified = verify_registration_response(
                credential=credential,
                expected_challenge=base64url_to_bytes(expected_challenge),
                expected_origin=self._origin,
                expected_rp_id=self._rp_id,
                require_user_verification=True,
            )
        except InvalidRegistrationResponse as e:
            raise CeremonyError(f"Registration verification failed: {e}")

        transports = credential.get("response", {}).get("transports") or []
        return VerifiedCredential(
            credential_id=bytes_to_base64url(verified.credential_id),
            public_key=verified.credential_public_key,
            sign_count=verified.sign_count,
            transports=list(transports),
        )

    def authentication_options(self, authenticators: list[Authenticator]) -> CeremonyOptions:
        allow = []
        for authenticator in authenticators:
            transports = [t for t in map(_transport, authenticator.transports or []) if t]
            allow.append(PublicKeyCredentialDescriptor(
                id=base64url_to_bytes(authenticator.credential_id),
                transports=transports or None,
            ))
        options = generate_authentication_options(
            rp_id=self._rp_id,
            allow_credentials=allow,
            user_verification=UserVerificationRequirement.REQUIRED,
        )
        return CeremonyOptions(
            options=json.loads(options_to_json(options)),
            challenge=bytes_to_base64url(options.challenge),
        )

    def verify_authentication(
        self,
        credential: dict[str, Any],
        expected_challenge: str,
        public_key: bytes,
        sign_count: int,
    ) -> int:
        try:
            verified = verify_authentication_response(
                credential=credential,
                expected_challenge=base64url_to_bytes(expected_challenge),
                expected_rp_id=self._rp_id,
                expected_origin=self._origin,
                credential_public_key=public_key,
                credential_current_sign_count=sign_count,
                require_user_verification=True,
            )
        except InvalidAuthenticationResponse as e:
            raise CeremonyError(f"Authentication failed: {e}")
        return verified.new_sign_count


# =============================================================================
# AUTH SERVICE
# =============================================================================


@dataclass
class LoginResult:
    user: User
    session_token: str


class AuthService:
    """Registration and login ceremonies with one outstanding challenge per user."""

    def __init__(self, session: AsyncSession, ceremony: WebAuthnCeremony):
        self._session = session
        self._ceremony = ceremony

    async def get_user(self, user_id: UUID) -> User | None:
        result = await self._session.execute(
            select(User)
            .where(User.id == user_id)
            .options(selectinload(User.authenticators), selectinload(User.family))
        )
        return result.scalar_one_or_none()

    async def get_user_by_username(self, username: str) -> User | None:
        result = await self._session.execute(
            select(User)
            .where(func.lower(User.username) == username.strip().lower())
            .options(selectinload(User.authenticators))
        )
        return result.scalar_one_or_none()

    # =========================================================================
    # REGISTRATION
    # =========================================================================

    async def start_registration(self, username: str) -> tuple[CeremonyOptions, User]:
        """Create the account (or resume an unfinished one) and issue a challenge."""
        username = username.strip()
        if not USERNAME_RE.match(username):
            raise ValidationError(
                "Username must be 3-64 letters, digits or . _ @ -", field="username"
            )

        user = await self.get_user_by_username(username)
        if user is not None and user.authenticators:
            raise ConflictError("Username already taken")

        if user is None:
            user = User(username=username)
            self._session.add(user)
            await self._session.flush()

        ceremony = self._ceremony.registration_options(user.id, user.username, [])
        user.current_challenge = ceremony.challenge
        await self._session.flush()
        logger.info(f"Registration challenge issued for user {user.id}")
        return ceremony, user

    async def finish_registration(self, user_id: UUID, credential: dict[str, Any]) -> User:
        user = await self._challenged_user(user_id)
        verified = self._ceremony.verify_registration(credential, user.current_challenge)
        await self._store_credential(user, verified)
        user.current_challenge = None
        await self._session.flush()
        logger.info(f"Passkey registered for user {user.id}")
        return user

    # =========================================================================
    # LOGIN
    # =========================================================================

    async def start_login(self, username: str) -> tuple[CeremonyOptions, User]:
        user = await self.get_user_by_username(username)
        if user is None or not user.authenticators:
            raise NotFoundError("User not found")

        ceremony = self._ceremony.authentication_options(list(user.authenticators))
        user.current_challenge = ceremony.challenge
        await self._session.flush()
        return ceremony, user

    async def finish_login(self, user_id: UUID, credential: dict[str, Any]) -> LoginResult:
        user = await self._challenged_user(user_id)

        credential_id = credential.get("id") or credential.get("rawId")
        authenticator = next(
            (a for a in user.authenticators if a.credential_id == credential_id), None
        )
        if authenticator is None:
            raise NotFoundError("Authenticator not found")

        authenticator.sign_count = self._ceremony.verify_authentication(
            credential,
            user.current_challenge,
            authenticator.public_key,
            authenticator.sign_count,
        )
        user.current_challenge = None
        await self._session.flush()

        logger.info(f"User {user.id} logged in")
        return LoginResult(user=user, session_token=create_session_token(user.id, user.username))

    # =========================================================================
    # HELPERS
    # =========================================================================

    async def _challenged_user(self, user_id: UUID) -> User:
        user = await self.get_user(user_id)
        if user is None:
            raise NotFoundError("User not found")
        if not user.current_challenge:
            raise CeremonyError("No outstanding challenge for user")
        return user

    async def _store_credential(self, user: User, verified: VerifiedCredential) -> Authenticator:
        existing = await self._session.execute(
            select(Authenticator).where(Authenticator.credential_id == verified.credential_id)
        )
        if existing.scalar_one_or_none() is not None:
            raise ConflictError("Credential already registered")

        authenticator = Authenticator(
            user_id=user.id,
            credential_id=verified.credential_id,
            public_key=verified.public_key,
            sign_count=verified.sign_count,
            transports=verified.transports,
        )
        self._session.add(authenticator)
        user.authenticators.append(authenticator)
        return authenticator

