import logging
import os
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import Depends, Header, HTTPException

import config

logger = logging.getLogger(__name__)

ROLE_CUSTOMER = "customer"
ROLE_STAFF = "staff"
ROLE_ADMIN = "admin"
ROLES = (ROLE_CUSTOMER, ROLE_STAFF, ROLE_ADMIN)


def get_secret_key():
    env_key = os.getenv("SECRET_KEY")
    if env_key:
        return env_key

    key_file = ".secret_key"
    if os.path.exists(key_file):
        try:
            with open(key_file, "r", encoding='utf-8') as f:
                return f.read().strip()
        except UnicodeDecodeError:
            logger.warning("Secret key file is unreadable, generating a new one")
            os.remove(key_file)

    new_key = secrets.token_urlsafe(32)
    with open(key_file, "w", encoding='utf-8') as f:
        f.write(new_key)
    if os.name != 'nt':
        os.chmod(key_file, 0o600)
    logger.info("Generated a new SECRET_KEY")
    return new_key


SECRET_KEY = get_secret_key()
ALGORITHM = "HS256"


@dataclass(frozen=True)
class Actor:
    """Verified caller identity handed over by the token boundary."""
    id: int
    role: str

    @property
    def is_customer(self) -> bool:
        return self.role == ROLE_CUSTOMER


def create_access_token(data: dict, expires_minutes: Optional[int] = None):
    to_encode = data.copy()
    if "sub" in to_encode:
        # registered claim, must be a string
        to_encode["sub"] = str(to_encode["sub"])
    minutes = expires_minutes if expires_minutes is not None else config.ACCESS_TOKEN_EXPIRE_MINUTES
    expire = datetime.now(timezone.utc) + timedelta(minutes=minutes)
    to_encode.update({"exp": expire})
    encoded_jwt = jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)
    return encoded_jwt


def verify_token(token: str):
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        return payload
    except jwt.ExpiredSignatureError:
        return None
    except jwt.InvalidTokenError:
        return None


def actor_from_payload(payload: Optional[dict]) -> Optional[Actor]:
    if not payload:
        return None
    role = payload.get("role")
    try:
        actor_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        return None
    if role not in ROLES:
        return None
    return Actor(id=actor_id, role=role)


def get_optional_actor(authorization: Optional[str] = Header(None)) -> Optional[Actor]:
    if not authorization:
        return None
    if not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Not authenticated")

    token = authorization.replace("Bearer ", "")
    actor = actor_from_payload(verify_token(token))
    if not actor:
        raise HTTPException(status_code=401, detail="Invalid token")
    return actor


def get_current_actor(actor: Optional[Actor] = Depends(get_optional_actor)) -> Actor:
    if actor is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return actor


def require_roles(*roles: str):
    def dependency(actor: Actor = Depends(get_current_actor)) -> Actor:
        if actor.role not in roles:
            raise HTTPException(status_code=403, detail=f"Only {' or '.join(roles)} can perform this action")
        return actor
    return dependency
