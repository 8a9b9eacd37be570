from enum import Enum

from fastapi import Depends, HTTPException

from jornify.deps.auth import AuthContext, require_auth


class Role(Enum):
    EMPLOYEE = "employee"
    COMPANY = "company"


_RANK = {
    Role.EMPLOYEE: 1,
    Role.COMPANY: 2,
}


def require_role(role: Role):
    def dependency(auth: AuthContext = Depends(require_auth)) -> AuthContext:
        try:
            user_role = Role(auth.role)
        except ValueError as exc:
            raise HTTPException(status_code=403, detail="Invalid role claim") from exc

        if _RANK[user_role] < _RANK[role]:
            raise HTTPException(status_code=403, detail="Insufficient role")

        return auth

    return dependency


def ensure_employee_access(auth: AuthContext, employee_id: str) -> None:
    """Employees may only read and write their own records."""
    if auth.role == Role.EMPLOYEE.value and str(auth.user_id) != str(employee_id):
        raise HTTPException(status_code=403, detail="Employees can only access their own records")
