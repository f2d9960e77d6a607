from enum import Enum

from fastapi import Depends, HTTPException, Request

from paydesk.deps.auth import CompanyContext, require_auth


class Role(Enum):
    ADMIN = "ADMIN"
    MANAGER = "MANAGER"
    EMPLOYEE = "EMPLOYEE"


ROLE_RANK = {
    Role.EMPLOYEE: 1,
    Role.MANAGER: 2,
    Role.ADMIN: 3,
}


def require_role(role: Role):
    """Tokens without a role claim act as MANAGER."""

    def dependency(request: Request, ctx: CompanyContext = Depends(require_auth)) -> CompanyContext:
        claim_role = ctx.role_claim or Role.MANAGER.value

        try:
            user_role = Role(str(claim_role).upper())
        except ValueError as exc:
            raise HTTPException(status_code=403, detail="Invalid role claim") from exc

        if ROLE_RANK[user_role] < ROLE_RANK[role]:
            raise HTTPException(status_code=403, detail="Insufficient role")

        request.state.role = user_role.value
        return ctx

    return dependency
