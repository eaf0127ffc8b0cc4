import time
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, HTTPException
from itsdangerous import BadSignature, URLSafeSerializer

from config import get_settings
from models import UserRole


@dataclass(frozen=True)
class Principal:
    user_id: int
    role: UserRole

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.admin


class InvalidToken(ValueError):
    pass


def _serializer() -> URLSafeSerializer:
    settings = get_settings()
    return URLSafeSerializer(settings.secret_key, salt="session-claims")


def issue_token(
    user_id: int,
    role: UserRole = UserRole.user,
    max_age_hours: Optional[int] = None,
) -> str:
    if max_age_hours is None:
        max_age_hours = get_settings().token_max_age_hours
    timestamp = int(time.time())
    expiry = timestamp + (max_age_hours * 3600)
    token_data = {
        "u": user_id,
        "r": UserRole(role).value,
        "ts": timestamp,
        "exp": expiry,
    }
    return _serializer().dumps(token_data)


def read_token(token: str) -> Principal:
    try:
        data = _serializer().loads(token)
    except BadSignature as exc:
        raise InvalidToken("Invalid token signature") from exc

    if int(time.time()) > int(data.get("exp", 0)):
        raise InvalidToken("Token expired")
    try:
        return Principal(user_id=int(data["u"]), role=UserRole(data["r"]))
    except (KeyError, TypeError, ValueError) as exc:
        raise InvalidToken("Malformed token claims") from exc


def current_principal(authorization: Optional[str] = Header(default=None)) -> Principal:
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise HTTPException(status_code=401, detail="Missing bearer token")
    try:
        return read_token(token.strip())
    except InvalidToken as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc


def require_admin(principal: Principal = Depends(current_principal)) -> Principal:
    if not principal.is_admin:
        raise HTTPException(status_code=403, detail="Admin role required")
    return principal
