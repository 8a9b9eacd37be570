from datetime import datetime, timedelta, timezone
from typing import Optional
import os

import jwt

JWT_ALGORITHM = "HS256"
JWT_EXP_HOURS = 12

ROLES = ("company", "employee")


def _get_jwt_secret() -> str:
    secret = os.getenv("JWT_SECRET")
    if not secret:
        raise ValueError("JWT_SECRET is required")
    if len(secret) < 32:
        raise ValueError("JWT_SECRET must be at least 32 characters")
    return secret


def create_access_token(user_id: str, company_id: int, role: str = "company") -> str:
    if role not in ROLES:
        raise ValueError(f"Unknown role: {role}")

    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "company_id": int(company_id),
        "role": role,
        "iat": now,
        "exp": now + timedelta(hours=JWT_EXP_HOURS),
    }
    return jwt.encode(payload, _get_jwt_secret(), algorithm=JWT_ALGORITHM)


def verify_token(token: str) -> dict:
    try:
        payload = jwt.decode(token, _get_jwt_secret(), algorithms=[JWT_ALGORITHM])
    except jwt.PyJWTError as exc:
        raise ValueError("Invalid or expired token") from exc

    if "sub" not in payload or "company_id" not in payload:
        raise ValueError("Invalid token claims")

    role: Optional[str] = payload.get("role")
    if role is not None and role not in ROLES:
        raise ValueError("Invalid role claim")

    return payload
