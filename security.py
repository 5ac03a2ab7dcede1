import logging
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt
from passlib.context import CryptContext

from config import get_settings
from errors import ErrorKind, ServiceError


logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["argon2"], deprecated="auto")

ISSUER = "finance-api"


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    return pwd_context.verify(password, hashed)


def _create_token(user_id: int, email: str, token_type: str, hours: int) -> str:
    settings = get_settings()
    now = datetime.now(timezone.utc)
    claims = {
        "sub": str(user_id),
        "email": email,
        "type": token_type,
        "iss": ISSUER,
        "iat": now,
        "nbf": now,
        "exp": now + timedelta(hours=hours),
    }
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def create_access_token(user_id: int, email: str) -> str:
    hours = get_settings().access_token_hours
    return _create_token(user_id, email, "access", hours)


def create_refresh_token(user_id: int, email: str) -> str:
    hours = get_settings().refresh_token_hours
    return _create_token(user_id, email, "refresh", hours)


def decode_token(token: str, expected_type: str = "access") -> dict:
    settings = get_settings()
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            issuer=ISSUER,
        )
    except JWTError as exc:
        logger.warning(f"token_rejected: reason={exc}")
        raise ServiceError(ErrorKind.unauthorized, "Invalid or expired token") from exc

    if payload.get("type") != expected_type:
        raise ServiceError(ErrorKind.unauthorized, f"Expected a {expected_type} token")
    try:
        payload["user_id"] = int(payload["sub"])
    except (KeyError, ValueError) as exc:
        raise ServiceError(ErrorKind.unauthorized, "Token has no user") from exc
    return payload
