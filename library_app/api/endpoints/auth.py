from fastapi import APIRouter, Depends, status, Request, Response
from sqlalchemy.orm import Session

import library_app.auth as auth
import library_app.models as models
import library_app.schemas as schemas
from library_app.database import get_db
from library_app.policies import authenticated_user
from library_app.rate_limiter import limiter

router = APIRouter(prefix="/auth", tags=["auth"])

@router.post("/register", response_model=schemas.RegistrationResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("10/minute")
async def register(
    request: Request,
    response: Response,
    user: schemas.UserForRegistration,
    db: Session = Depends(get_db)
):
    """
    Register a new user. Errors come back as 400 with the list in "detail"
    """
    auth.register(db, user)
    return schemas.RegistrationResponse(is_successful_registration=True)

@router.post("/authenticate", response_model=schemas.AuthResponse)
@limiter.limit("20/minute")
async def authenticate(
    request: Request,
    response: Response,
    credentials: schemas.UserForAuthentication,
    db: Session = Depends(get_db)
):
    return auth.authenticate(db, credentials)

@router.post("/refresh", response_model=schemas.AuthResponse)
@limiter.limit("20/minute")
async def refresh(
    request: Request,
    response: Response,
    refresh_request: schemas.RefreshTokenRequest,
    db: Session = Depends(get_db)
):
    """
    Trade a refresh token for a new access token; the refresh token rotates
    """
    return auth.refresh(db, refresh_request.refresh_token)

@router.post("/logout", response_model=schemas.MessageResponse)
@limiter.limit("20/minute")
async def logout(
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
    user: models.User = Depends(authenticated_user)
):
    auth.logout(db, user)
    return schemas.MessageResponse(message="Logged out.")
