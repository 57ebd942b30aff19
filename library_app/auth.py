import logging
import uuid
from datetime import timedelta
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

import library_app.models as models
import library_app.schemas as schemas
from library_app.config import settings
from library_app.database import get_db
from library_app.exceptions import UnauthorizedError, ValidationError
from library_app.security import (
    create_access_token,
    decode_access_token,
    generate_refresh_token,
    get_password_hash,
    verify_password,
)

logger = logging.getLogger(__name__)

ROLE_USER = "User"
ROLE_ADMIN = "Admin"

# Bearer tokens are checked here; missing headers are reported as 401 by the policy layer
security = HTTPBearer(auto_error=False)


def role_for_email(email: str) -> str:
    admins = {address.lower() for address in settings.ADMIN_EMAILS}
    return ROLE_ADMIN if email.lower() in admins else ROLE_USER


def get_user_by_email(db: Session, email: str) -> Optional[models.User]:
    return db.query(models.User).filter(func.lower(models.User.email) == email.lower()).first()


def register(db: Session, data: schemas.UserForRegistration) -> models.User:
    """
    Create a user with the User role (Admin for addresses in ADMIN_EMAILS).
    Emails are stored lowercased and are unique regardless of case.
    """
    email = data.email.lower()
    errors = []
    if data.confirm_password is not None and data.confirm_password != data.password:
        errors.append("The password and confirmation password do not match")
    if get_user_by_email(db, email) is not None:
        errors.append(f"Email '{data.email}' is already taken.")
    if errors:
        raise ValidationError("Registration failed", detail=errors)

    user = models.User(
        id=str(uuid.uuid4()),
        email=email,
        hashed_password=get_password_hash(data.password),
        first_name=data.first_name,
        last_name=data.last_name,
        role=role_for_email(email),
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.warning(f"Registration lost a race for {email}")
        raise ValidationError("Registration failed", detail=[f"Email '{data.email}' is already taken."])
    db.refresh(user)

    logger.info(f"User registered: {user.id} ({user.role})")
    return user


def issue_access_token(user: models.User) -> str:
    return create_access_token(
        subject=user.id,
        claims={"email": user.email, "role": user.role},
    )


def authenticate(db: Session, credentials: schemas.UserForAuthentication) -> schemas.AuthResponse:
    user = get_user_by_email(db, credentials.email)
    if user is None or not verify_password(credentials.password, user.hashed_password):
        logger.warning(f"Failed login for {credentials.email}")
        raise UnauthorizedError("Invalid Authentication")

    refresh_token = generate_refresh_token()
    user.refresh_token = refresh_token
    user.refresh_token_expiry_time = models.utcnow() + timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)
    db.commit()

    return schemas.AuthResponse(
        is_auth_successful=True,
        token=issue_access_token(user),
        refresh_token=refresh_token,
        first_name=user.first_name,
        last_name=user.last_name,
        email=user.email,
        role=user.role,
    )


def refresh(db: Session, refresh_token: str) -> schemas.AuthResponse:
    """
    Rotate a refresh token in one conditional UPDATE, so a token can be
    spent at most once even when two refreshes race.
    """
    now = models.utcnow()
    new_token = generate_refresh_token()

    rotated = (
        db.query(models.User)
        .filter(
            models.User.refresh_token == refresh_token,
            models.User.refresh_token_expiry_time > now,
        )
        .update(
            {
                models.User.refresh_token: new_token,
                models.User.refresh_token_expiry_time: now + timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
            },
            synchronize_session=False,
        )
    )
    db.commit()

    if rotated != 1:
        logger.warning("Refresh rejected: unknown or expired refresh token")
        raise UnauthorizedError("Invalid or expired refresh token.")

    user = db.query(models.User).filter(models.User.refresh_token == new_token).first()
    logger.info(f"Refresh token rotated for user {user.id}")
    return schemas.AuthResponse(
        is_auth_successful=True,
        token=issue_access_token(user),
        refresh_token=new_token,
        first_name=user.first_name,
        last_name=user.last_name,
        email=user.email,
        role=user.role,
    )


def logout(db: Session, user: models.User) -> None:
    user.refresh_token = None
    user.refresh_token_expiry_time = None
    db.commit()
    logger.info(f"User logged out: {user.id}")


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> Optional[models.User]:
    """
    Resolve the bearer token to a user. None when no token was sent;
    an invalid token or an unknown user is rejected outright.
    """
    if credentials is None:
        return None

    payload = decode_access_token(credentials.credentials)
    user = db.query(models.User).filter(models.User.id == payload["sub"]).first()
    if user is None:
        raise UnauthorizedError("Could not validate credentials")
    return user
