from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .rbac import require_role
from .security import Principal, authenticate

bearer_scheme = HTTPBearer(auto_error=False)


def get_store(request: Request):
    return request.app.state.store


def get_redis(request: Request):
    return request.app.state.redis


def get_payment_adapter(request: Request):
    return request.app.state.payment_adapter


def get_notifier(request: Request):
    return request.app.state.notifier


def get_clock(request: Request):
    return request.app.state.clock


async def get_db(request: Request):
    async with request.app.state.store.session() as session:
        yield session


def _bearer(creds: HTTPAuthorizationCredentials | None) -> str | None:
    if creds and creds.scheme.lower() == "bearer":
        return creds.credentials
    return None


async def get_token_claims(
    request: Request,
    creds: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db=Depends(get_db),
) -> tuple[Principal, dict]:
    principal, claims = await authenticate(_bearer(creds), db, request.app.state.redis)
    request.state.user_sub = principal.user_id
    request.state.user_role = principal.role
    return principal, claims


async def get_current_user(auth: tuple[Principal, dict] = Depends(get_token_claims)) -> Principal:
    return auth[0]


async def require_admin(user: Principal = Depends(get_current_user)) -> Principal:
    require_role(user, ["admin"])
    return user
