import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlmodel import Session, select

from vidtube.config import settings
from vidtube.db.models import User
from vidtube.db.session import get_session
from vidtube.errors import AuthError

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="api/v1/users/login", auto_error=False)

ACCESS_TOKEN_COOKIE = "accessToken"
REFRESH_TOKEN_COOKIE = "refreshToken"


def _require_secret(name: str) -> str:
    secret = getattr(settings, name)
    if not secret:
        raise RuntimeError(f"{name} must be set via environment variable for JWT operations")
    return secret


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def _encode(claims: dict, secret: str, expires_delta: timedelta) -> str:
    to_encode = claims.copy()
    now = datetime.now(timezone.utc)
    to_encode.update({"exp": now + expires_delta, "iat": now})
    if settings.JWT_ISSUER:
        to_encode["iss"] = settings.JWT_ISSUER
    if settings.JWT_AUDIENCE:
        to_encode["aud"] = settings.JWT_AUDIENCE
    return jwt.encode(to_encode, secret, algorithm=settings.JWT_ALGORITHM)


def _decode(token: str, secret: str) -> dict:
    return jwt.decode(
        token,
        secret,
        algorithms=[settings.JWT_ALGORITHM],
        audience=settings.JWT_AUDIENCE if settings.JWT_AUDIENCE else None,
        issuer=settings.JWT_ISSUER,
        options={"verify_aud": bool(settings.JWT_AUDIENCE)},
    )


def create_access_token(user: User, expires_delta: timedelta | None = None) -> str:
    claims = {
        "sub": str(user.id),
        "type": "access",
        "username": user.username,
        "email": user.email,
        "fullName": user.full_name,
    }
    return _encode(
        claims,
        _require_secret("ACCESS_TOKEN_SECRET"),
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
    )


def create_refresh_token(user: User, expires_delta: timedelta | None = None) -> str:
    # jti keeps two tokens issued within the same second distinct
    claims = {"sub": str(user.id), "type": "refresh", "jti": uuid.uuid4().hex}
    return _encode(
        claims,
        _require_secret("REFRESH_TOKEN_SECRET"),
        expires_delta or timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
    )


def decode_access_token(token: str) -> dict:
    return _decode(token, _require_secret("ACCESS_TOKEN_SECRET"))


def decode_refresh_token(token: str) -> dict:
    return _decode(token, _require_secret("REFRESH_TOKEN_SECRET"))


def subject_id(payload: dict, expected_type: str) -> int:
    """Pull the user id out of a decoded token, checking its type."""
    if payload.get("type") != expected_type:
        raise AuthError("Invalid token type")
    try:
        return int(payload["sub"])
    except (KeyError, TypeError, ValueError):
        raise AuthError("Invalid token subject")


def get_current_user(
    request: Request,
    bearer_token: Optional[str] = Depends(oauth2_scheme),
    db: Session = Depends(get_session),
) -> User:
    """Resolve the caller from the access token cookie or bearer header."""
    token = request.cookies.get(ACCESS_TOKEN_COOKIE) or bearer_token
    if not token:
        raise AuthError("Unauthorized request")
    try:
        payload = decode_access_token(token)
    except JWTError as e:
        raise AuthError(f"Invalid access token: {e}")
    user_id = subject_id(payload, "access")
    user = db.exec(select(User).where(User.id == user_id)).first()
    if user is None:
        raise AuthError("Invalid access token")
    return user
