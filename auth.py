"""Identity provider: accounts, signed session tokens and the FastAPI dependencies.

Sign-up creates an ``Account`` and its ``Profile`` under the same id. Sign-in
issues an HS256 JWT (python-jose) carrying ``sub``, ``email``, ``role``,
``jti`` and ``exp``. Sign-out records the ``jti`` in ``revoked_tokens`` until
the token would have expired anyway.

``get_current_actor`` turns an ``Authorization: Bearer <token>`` header into a
``schemas.ActorSession`` that the rule functions in ``logic.py`` take
explicitly; ``get_optional_actor`` does the same but allows anonymous calls.
"""
from __future__ import annotations

import hashlib
import hmac
import re
import secrets
import uuid
from datetime import datetime, timedelta, timezone
from typing import Annotated, Optional

import structlog
from structlog.contextvars import bind_contextvars
from fastapi import Depends, Request
from jose import JWTError, jwt
from pydantic import BaseModel
from sqlalchemy.orm import Session

import crud
import models
import schemas
from database import get_db
from errors import AuthenticationError, ConflictError, ValidationError
from logic import write_transaction
from settings import Settings, get_settings

logger = structlog.get_logger(__name__)

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_HASH_ALGORITHM = "pbkdf2_sha256"
_HASH_ITERATIONS = 120_000


class TokenPayload(BaseModel):
    sub: str
    email: str
    role: models.Role
    jti: str
    exp: int


def email_fingerprint(email: Optional[str]) -> str:
    """Short stable digest of an address, safe to put in logs."""
    normalized = (email or "").strip().lower()
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()[:12]


# --- Password hashing ---
def hash_password(password: str) -> str:
    salt = secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), _HASH_ITERATIONS)
    return f"{_HASH_ALGORITHM}${_HASH_ITERATIONS}${salt}${digest.hex()}"


def verify_password(password: str, stored: str) -> bool:
    try:
        algorithm, iterations, salt, expected = stored.split("$")
    except ValueError:
        return False
    if algorithm != _HASH_ALGORITHM:
        return False
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), int(iterations))
    return hmac.compare_digest(digest.hex(), expected)


# --- Tokens ---
def issue_token(profile: models.Profile, settings: Settings) -> schemas.AuthToken:
    expires_at = datetime.now(timezone.utc) + timedelta(minutes=settings.access_token_ttl_minutes)
    claims = {
        "sub": profile.id,
        "email": profile.email,
        "role": profile.role,
        "jti": uuid.uuid4().hex,
        "exp": int(expires_at.timestamp()),
    }
    token = jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)
    return schemas.AuthToken(
        access_token=token,
        expires_at=expires_at,
        profile_id=profile.id,
        role=models.Role(profile.role),
    )


def decode_token(token: str, settings: Settings) -> TokenPayload:
    """Verify signature and expiry. Raises AuthenticationError on failure."""
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
        return TokenPayload.model_validate(payload)
    except (JWTError, ValueError) as exc:
        logger.warning("JWT verification failed", exc=str(exc))
        raise AuthenticationError("Invalid or expired token") from exc


# --- Identity operations ---
def sign_up(
    db: Session,
    email: str,
    password: str,
    full_name: str,
    role: Optional[models.Role],
    settings: Optional[Settings] = None,
) -> schemas.AuthToken:
    settings = settings or get_settings()
    if role is None:
        raise ValidationError("Please select a role")
    email = (email or "").strip().lower()
    if not _EMAIL_RE.match(email):
        raise ValidationError("A valid email address is required")
    if not full_name or not full_name.strip():
        raise ValidationError("Full name is required")
    if len(password or "") < settings.min_password_length:
        raise ValidationError(
            f"Password must be at least {settings.min_password_length} characters"
        )
    if crud.get_account_by_email(db, email):
        raise ConflictError("Email already registered")

    with write_transaction(db, conflict_message="Email already registered"):
        account = crud.create_account(db, email=email, password_hash=hash_password(password))
        profile = crud.create_profile(
            db,
            account_id=account.id,
            email=email,
            full_name=full_name.strip(),
            role=models.Role(role),
        )
    logger.info("Account created", profile_id=profile.id, role=profile.role)
    return issue_token(profile, settings)


def sign_in(
    db: Session, email: str, password: str, settings: Optional[Settings] = None
) -> schemas.AuthToken:
    settings = settings or get_settings()
    account = crud.get_account_by_email(db, (email or "").strip().lower())
    if not account or not verify_password(password or "", account.password_hash):
        logger.info("Sign-in rejected", email_hash=email_fingerprint(email))
        raise AuthenticationError("Invalid email or password")
    profile = crud.get_profile(db, account.id)
    if not profile:
        raise AuthenticationError("No profile for this account")
    return issue_token(profile, settings)


def sign_out(db: Session, token: str, settings: Optional[Settings] = None) -> None:
    settings = settings or get_settings()
    payload = decode_token(token, settings)
    with write_transaction(db):
        crud.revoke_token(
            db, payload.jti, datetime.fromtimestamp(payload.exp, tz=timezone.utc)
        )
        crud.purge_revoked_tokens(db, datetime.now(timezone.utc))
    logger.info("Signed out", profile_id=payload.sub)


def current_user(
    db: Session, token: Optional[str], settings: Optional[Settings] = None
) -> schemas.ActorSession:
    """Resolve a bearer token to the acting profile."""
    settings = settings or get_settings()
    if not token:
        raise AuthenticationError("Missing bearer token")
    payload = decode_token(token, settings)
    if crud.is_token_revoked(db, payload.jti):
        raise AuthenticationError("Session has been signed out")
    profile = crud.get_profile(db, payload.sub)
    if not profile:
        raise AuthenticationError("Unknown user in token")
    return schemas.ActorSession(
        profile_id=profile.id,
        email=profile.email,
        role=models.Role(profile.role),
        token_id=payload.jti,
    )


# --- FastAPI dependencies ---
def get_bearer_token(request: Request) -> Optional[str]:
    authorization = request.headers.get("Authorization")
    if not authorization or not authorization.lower().startswith("bearer "):
        return None
    return authorization.split(" ", 1)[1].strip() or None


async def get_current_actor(
    token: Annotated[Optional[str], Depends(get_bearer_token)],
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> schemas.ActorSession:
    actor = current_user(db, token, settings)
    bind_contextvars(profile_id=actor.profile_id)
    return actor


async def get_optional_actor(
    token: Annotated[Optional[str], Depends(get_bearer_token)],
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> Optional[schemas.ActorSession]:
    """Like ``get_current_actor`` but an absent or stale token means anonymous.

    Protected routes still reject the anonymous actor downstream.
    """
    if not token:
        return None
    try:
        actor = current_user(db, token, settings)
    except AuthenticationError as exc:
        logger.info("Ignoring unusable bearer token", reason=exc.message)
        return None
    bind_contextvars(profile_id=actor.profile_id)
    return actor
