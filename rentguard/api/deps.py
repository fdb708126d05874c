from dataclasses import dataclass

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from rentguard.core.security import JWTKeyError, decode_token
from rentguard.core.settings import settings

UNAUTHORIZED_MESSAGE = "Unauthorized"
FORBIDDEN_MESSAGE = "Forbidden: staff or admin role required"

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(slots=True)
class StaffPrincipal:
    id: str
    role: str
    email: str | None = None


def _unauthorized() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=UNAUTHORIZED_MESSAGE,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_staff(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> StaffPrincipal:
    if credentials is None or not credentials.credentials:
        raise _unauthorized()
    try:
        payload = decode_token(credentials.credentials)
    except (ValueError, JWTKeyError) as exc:
        raise _unauthorized() from exc
    subject = payload.get("sub")
    if not subject:
        raise _unauthorized()
    return StaffPrincipal(
        id=str(subject),
        role=str(payload.get("role") or ""),
        email=payload.get("email"),
    )


async def require_staff(principal: StaffPrincipal = Depends(get_current_staff)) -> StaffPrincipal:
    allowed = {role.lower() for role in settings.staff_roles}
    if principal.role.lower() not in allowed:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=FORBIDDEN_MESSAGE)
    return principal
