from __future__ import annotations
from fastapi import APIRouter, Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy import select, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
import structlog
from luvrix.db import get_session
from luvrix.auth_deps import get_current_user, security, user_from_token
from luvrix.config import settings
from luvrix.models.user import User
from luvrix.schemas.auth import RegisterRequest, LoginRequest, UserPublic, TokenPair
from luvrix.security import hash_password, verify_password, make_access_token, make_refresh_token

router = APIRouter(prefix="/auth", tags=["auth"])
log = structlog.get_logger()

def to_user_public(user: User) -> UserPublic:
    return UserPublic(id=user.id, email=user.email, username=user.username, role=user.role, created_at=user.created_at)

def _tokens(user: User) -> TokenPair:
    return TokenPair(access=make_access_token(str(user.id), user.role), refresh=make_refresh_token(str(user.id)))

@router.post("/register", status_code=201, response_model=UserPublic)
async def register(payload: RegisterRequest, session: AsyncSession = Depends(get_session)):
    email = payload.email.lower()
    taken = await session.scalar(
        select(User).where(or_(User.email == email, User.username == payload.username))
    )
    if taken:
        field = "Email" if taken.email == email else "Username"
        raise HTTPException(status_code=409, detail=f"{field} already registered")
    role = "admin" if email in settings.admin_emails else "user"
    user = User(email=email, username=payload.username, password_hash=hash_password(payload.password), role=role)
    session.add(user)
    try:
        await session.commit()
    except IntegrityError:
        # Concurrent registration with the same email/username
        await session.rollback()
        raise HTTPException(status_code=409, detail="Email or username already registered")
    await session.refresh(user)
    log.info("user_registered", user_id=str(user.id), role=role)
    return to_user_public(user)

@router.post("/login", response_model=TokenPair)
async def login(payload: LoginRequest, session: AsyncSession = Depends(get_session)):
    user = await session.scalar(select(User).where(User.email == payload.email.lower()))
    if not user or not verify_password(payload.password, user.password_hash):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    return _tokens(user)

@router.post("/refresh", response_model=TokenPair)
async def refresh(credentials: HTTPAuthorizationCredentials = Depends(security), session: AsyncSession = Depends(get_session)):
    user = await user_from_token(credentials.credentials, session, expected_type="refresh")
    return _tokens(user)

@router.get("/me", response_model=UserPublic)
async def me(user: User = Depends(get_current_user)):
    return to_user_public(user)
