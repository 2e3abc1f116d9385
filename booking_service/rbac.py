from .errors import ForbiddenError
from .security import Principal


def require_role(principal: Principal, allowed_roles: list[str]) -> None:
    role = (principal.role or "").lower()

    if not role:
        raise ForbiddenError("Role missing for this account")

    allowed = {r.lower() for r in allowed_roles}
    if role not in allowed:
        raise ForbiddenError("Access forbidden for this role")
