from dataclasses import dataclass

from jose import JWTError, jwt
from starlette.requests import Request

from app.core.config import get_settings


@dataclass
class AuthUser:
    """Identity asserted by the bearer token. Roles are never taken from the token."""

    sub: str | None

    @property
    def is_authenticated(self) -> bool:
        return bool(self.sub)


async def get_current_user(request: Request) -> AuthUser:
    auth_header = request.headers.get("authorization", "")
    token = auth_header.removeprefix("Bearer ") if auth_header.startswith("Bearer ") else ""
    if not token:
        return AuthUser(sub=None)

    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return AuthUser(sub=None)

    subject = payload.get("sub")
    return AuthUser(sub=str(subject) if subject else None)
